# docspace/services/propagation_service.py
"""
Keeps permission records in step with document lifecycle and sharing.

CREATE   author gets DIRECT MANAGE unless the parent already gives it to them;
         the parent's other records are copied down as snapshots.
SHARE    DIRECT: delete then insert. GROUP: upgrade only.
UNSHARE  drop the DIRECT record; an ancestor grant, if any, takes over.
MOVE     no record rewrite, inheritance is re-read from the new parent.
DELETE   soft delete leaves records alone; hard delete removes them.
"""

import logging
from typing import Iterable
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from docspace.models.document import Document
from docspace.models.group import MemberGroup
from docspace.models.permission import DocumentPermission, PermissionLevel, SourceKind
from docspace.schemas.event import PermissionEventName
from docspace.schemas.permission import (
    Action,
    CollaboratorEntry,
    DocumentContext,
    RemoveShareResult,
    ResolutionSource,
)
from docspace.services.ancestor_service import walk_ancestor_permissions
from docspace.services.collaborator_service import list_collaborators
from docspace.services.exceptions import DocspaceError, DocumentNotFoundError, GroupNotFoundError
from docspace.services.permission_event_service import (
    PermissionEventPublisher,
    inheritance_batch,
    publisher,
)
from docspace.services.permission_record_service import (
    cascade_level_to_copies,
    create_record,
    delete_direct_records,
    delete_group_records,
    delete_records_for_documents,
    get_document_records,
)
from docspace.services.permission_resolution_service import ensure_can, load_context, resolve
from docspace.services.role_fallback_service import get_group_member_ids, require_users

logger = logging.getLogger(__name__)


def _require_context(db: Session, document_id: UUID) -> DocumentContext:
    context = load_context(db, document_id)
    if context is None:
        raise DocumentNotFoundError("Document not found")
    return context


def _require_grantable(level: PermissionLevel) -> None:
    if level == PermissionLevel.NONE:
        raise ValueError("Cannot share with level NONE; remove the share instead")


def on_document_created(db: Session, document: Document) -> list[DocumentPermission]:
    """
    Write the initial records of a freshly inserted (flushed) document.

    Runs inside the caller's transaction; nothing is committed here. The
    caller holds a lock on the parent row so the author check below and the
    inserts see the same parent state.
    """
    created: list[DocumentPermission] = []

    parent_context = load_context(db, document.parent_id) if document.parent_id else None
    author_level = resolve(db, document.author_id, parent_context).level

    if author_level != PermissionLevel.MANAGE:
        created.append(
            create_record(
                db,
                document_id=document.id,
                user_id=document.author_id,
                level=PermissionLevel.MANAGE,
                source_kind=SourceKind.DIRECT,
                created_by_id=document.author_id,
            )
        )

    if parent_context is None:
        return created

    parent_records = get_document_records(db, document_id=parent_context.id, originating_only=False)
    for record in parent_records:
        if record.user_id == document.author_id:
            continue
        created.append(
            create_record(
                db,
                document_id=document.id,
                user_id=record.user_id,
                guest_id=record.guest_id,
                level=record.level,
                source_kind=record.source_kind,
                source_group_id=record.source_group_id,
                source_record_id=record.source_record_id or record.id,
                priority=record.priority,
                created_by_id=record.created_by_id,
            )
        )

    logger.info(
        f"Document {document.id} created with {len(created)} permission record(s) "
        f"(author record: {author_level != PermissionLevel.MANAGE})"
    )
    return created


def _has_ancestor_grant(db: Session, user_id: UUID, context: DocumentContext) -> bool:
    return bool(walk_ancestor_permissions(db, context.parent_id, user_id=user_id))


def _replace_direct_record(
    db: Session,
    *,
    actor_id: UUID,
    document_id: UUID,
    level: PermissionLevel,
    user_id: UUID | None = None,
    guest_id: UUID | None = None,
) -> DocumentPermission:
    delete_direct_records(db, document_id=document_id, user_id=user_id, guest_id=guest_id)
    return create_record(
        db,
        document_id=document_id,
        user_id=user_id,
        guest_id=guest_id,
        level=level,
        source_kind=SourceKind.DIRECT,
        created_by_id=actor_id,
    )


def _upgrade_group_records(
    db: Session,
    *,
    actor_id: UUID,
    document_id: UUID,
    group_id: UUID,
    member_ids: list[UUID],
    level: PermissionLevel,
    allow_downgrade: bool = False,
) -> int:
    """
    Bring every member's GROUP record for group_id to level. Existing records
    are only raised unless allow_downgrade is set. Returns rows written.
    """
    existing = {
        record.user_id: record
        for record in get_document_records(db, document_id=document_id, source_kinds=[SourceKind.GROUP])
        if record.source_group_id == group_id
    }

    written = 0
    for member_id in member_ids:
        record = existing.get(member_id)
        if record is None:
            create_record(
                db,
                document_id=document_id,
                user_id=member_id,
                level=level,
                source_kind=SourceKind.GROUP,
                source_group_id=group_id,
                created_by_id=actor_id,
            )
            written += 1
        elif level.rank > record.level.rank or (allow_downgrade and level != record.level):
            record.level = level
            cascade_level_to_copies(db, record_id=record.id, level=level)
            written += 1
    db.flush()
    return written


def share_document(
    db: Session,
    *,
    actor_id: UUID,
    document_id: UUID,
    level: PermissionLevel,
    user_ids: Iterable[UUID] = (),
    group_ids: Iterable[UUID] = (),
    guest_ids: Iterable[UUID] = (),
    events: PermissionEventPublisher | None = None,
) -> list[CollaboratorEntry]:
    """
    Grant level on a document to users, groups and guests.

    User and guest shares replace whatever DIRECT record the grantee held.
    Group shares never lower an existing group grant.

    Raises:
        DocumentNotFoundError, UserNotFoundError, GroupNotFoundError, PermissionDeniedError
    """
    _require_grantable(level)
    events = events or publisher
    user_ids, group_ids, guest_ids = list(user_ids), list(group_ids), list(guest_ids)

    context = _require_context(db, document_id)
    ensure_can(db, actor_id, context, Action.SHARE)
    require_users(db, user_ids)

    group_members = {group_id: get_group_member_ids(db, group_id) for group_id in group_ids}
    overrides = {user_id for user_id in user_ids if _has_ancestor_grant(db, user_id, context)}

    try:
        for user_id in user_ids:
            _replace_direct_record(db, actor_id=actor_id, document_id=document_id, level=level, user_id=user_id)
        for guest_id in guest_ids:
            _replace_direct_record(db, actor_id=actor_id, document_id=document_id, level=level, guest_id=guest_id)
        for group_id, member_ids in group_members.items():
            _upgrade_group_records(
                db,
                actor_id=actor_id,
                document_id=document_id,
                group_id=group_id,
                member_ids=member_ids,
                level=level,
            )
        db.commit()
    except (SQLAlchemyError, DocspaceError):
        db.rollback()
        raise

    logger.info(
        f"User {actor_id} shared document {document_id} at {level.value} with "
        f"{len(user_ids)} user(s), {len(group_ids)} group(s), {len(guest_ids)} guest(s)"
    )

    for user_id in user_ids:
        events.emit(
            PermissionEventName.OVERRIDE_CREATED if user_id in overrides else PermissionEventName.DOCUMENT_SHARED,
            workspace_id=context.workspace_id,
            actor_id=actor_id,
            document_ids=[document_id],
            user_id=str(user_id),
            level=level.value,
        )
    for guest_id in guest_ids:
        events.emit(
            PermissionEventName.DOCUMENT_SHARED,
            workspace_id=context.workspace_id,
            actor_id=actor_id,
            document_ids=[document_id],
            guest_id=str(guest_id),
            level=level.value,
        )
    for group_id in group_ids:
        events.emit(
            PermissionEventName.GROUP_PERMISSION_CHANGED,
            workspace_id=context.workspace_id,
            actor_id=actor_id,
            document_ids=[document_id],
            group_id=str(group_id),
            level=level.value,
        )

    return list_collaborators(db, document_id, actor_id)


def update_share(
    db: Session,
    *,
    actor_id: UUID,
    document_id: UUID,
    level: PermissionLevel,
    user_id: UUID | None = None,
    group_id: UUID | None = None,
    events: PermissionEventPublisher | None = None,
) -> list[CollaboratorEntry]:
    """
    Set the level of an existing share. Unlike a re-share, a group update
    may lower the group's level.
    """
    if (user_id is None) == (group_id is None):
        raise ValueError("Exactly one of user_id or group_id must be given")
    if group_id is None:
        return share_document(
            db,
            actor_id=actor_id,
            document_id=document_id,
            level=level,
            user_ids=[user_id],
            events=events,
        )

    _require_grantable(level)
    events = events or publisher
    context = _require_context(db, document_id)
    ensure_can(db, actor_id, context, Action.SHARE)
    member_ids = get_group_member_ids(db, group_id)

    try:
        _upgrade_group_records(
            db,
            actor_id=actor_id,
            document_id=document_id,
            group_id=group_id,
            member_ids=member_ids,
            level=level,
            allow_downgrade=True,
        )
        db.commit()
    except (SQLAlchemyError, DocspaceError):
        db.rollback()
        raise

    events.emit(
        PermissionEventName.GROUP_PERMISSION_CHANGED,
        workspace_id=context.workspace_id,
        actor_id=actor_id,
        document_ids=[document_id],
        group_id=str(group_id),
        level=level.value,
    )
    return list_collaborators(db, document_id, actor_id)


def remove_share(
    db: Session,
    *,
    actor_id: UUID,
    document_id: UUID,
    user_id: UUID,
    events: PermissionEventPublisher | None = None,
) -> RemoveShareResult:
    """
    Drop a user's DIRECT record on a document.

    The result reports "restored" when the user keeps some access afterwards
    (typically the level inherited from an ancestor) and "revoked" when the
    user is left with nothing.
    """
    events = events or publisher
    context = _require_context(db, document_id)
    ensure_can(db, actor_id, context, Action.SHARE)

    try:
        removed = delete_direct_records(db, document_id=document_id, user_id=user_id)
        db.commit()
    except (SQLAlchemyError, DocspaceError):
        db.rollback()
        raise

    resolved = resolve(db, user_id, context)
    transition = "revoked" if resolved.level == PermissionLevel.NONE else "restored"
    logger.info(
        f"User {actor_id} removed {len(removed)} direct record(s) of user {user_id} "
        f"on document {document_id}: {transition} ({resolved.level.value})"
    )

    if transition == "revoked":
        events.emit(
            PermissionEventName.ACCESS_REVOKED,
            workspace_id=context.workspace_id,
            actor_id=actor_id,
            document_ids=[document_id],
            revoked_user_id=str(user_id),
        )
    elif resolved.source == ResolutionSource.INHERITED:
        events.emit(
            PermissionEventName.OVERRIDE_REMOVED,
            workspace_id=context.workspace_id,
            actor_id=actor_id,
            document_ids=[document_id],
            user_id=str(user_id),
            restored_level=resolved.level.value,
            source_doc_id=str(resolved.source_doc_id),
        )

    return RemoveShareResult(
        document_id=document_id,
        user_id=user_id,
        transition=transition,
        resolved=resolved,
        collaborators=list_collaborators(db, document_id, actor_id),
    )


def remove_guest_share(
    db: Session,
    *,
    actor_id: UUID,
    document_id: UUID,
    guest_id: UUID,
    events: PermissionEventPublisher | None = None,
) -> list[CollaboratorEntry]:
    """Drop a guest's DIRECT record. Guests inherit nothing, so this always revokes."""
    events = events or publisher
    context = _require_context(db, document_id)
    ensure_can(db, actor_id, context, Action.SHARE)

    try:
        removed = delete_direct_records(db, document_id=document_id, guest_id=guest_id)
        db.commit()
    except (SQLAlchemyError, DocspaceError):
        db.rollback()
        raise

    logger.info(f"User {actor_id} removed {len(removed)} direct record(s) of guest {guest_id} on document {document_id}")
    if removed:
        events.emit(
            PermissionEventName.ACCESS_REVOKED,
            workspace_id=context.workspace_id,
            actor_id=actor_id,
            document_ids=[document_id],
            revoked_guest_id=str(guest_id),
        )
    return list_collaborators(db, document_id, actor_id)


def remove_group_share(
    db: Session,
    *,
    actor_id: UUID,
    document_id: UUID,
    group_id: UUID,
    events: PermissionEventPublisher | None = None,
) -> list[CollaboratorEntry]:
    events = events or publisher
    context = _require_context(db, document_id)
    ensure_can(db, actor_id, context, Action.SHARE)
    if db.get(MemberGroup, group_id) is None:
        raise GroupNotFoundError("Group not found")

    try:
        removed = delete_group_records(db, document_id=document_id, group_id=group_id)
        db.commit()
    except (SQLAlchemyError, DocspaceError):
        db.rollback()
        raise

    logger.info(f"User {actor_id} removed group {group_id} ({len(removed)} record(s)) from document {document_id}")
    events.emit(
        PermissionEventName.GROUP_PERMISSION_CHANGED,
        workspace_id=context.workspace_id,
        actor_id=actor_id,
        document_ids=[document_id],
        group_id=str(group_id),
        removed=True,
    )
    return list_collaborators(db, document_id, actor_id)


def on_document_moved(
    db: Session,
    document: Document,
    old_parent_id: UUID | None,
    new_parent_id: UUID | None,
    *,
    descendant_ids: Iterable[UUID] = (),
    actor_id: UUID | None = None,
    events: PermissionEventPublisher | None = None,
) -> list[UUID]:
    """
    Records stay untouched; resolution reads the new chain on its own. Emits
    one batched inheritance event for the moved subtree when the parent
    actually changed. Returns the affected document ids.
    """
    if old_parent_id == new_parent_id:
        return []

    with inheritance_batch(
        events or publisher,
        workspace_id=document.workspace_id,
        actor_id=actor_id,
        old_parent_id=str(old_parent_id) if old_parent_id else None,
        new_parent_id=str(new_parent_id) if new_parent_id else None,
    ) as batch:
        batch.add(document.id, *descendant_ids)

    return batch.document_ids


def on_document_hard_deleted(db: Session, document_ids: Iterable[UUID]) -> int:
    """Remove every record tied to the purged documents. Caller commits."""
    removed = delete_records_for_documents(db, document_ids=document_ids)
    logger.info(f"Removed {removed} permission record(s) of hard-deleted documents")
    return removed
