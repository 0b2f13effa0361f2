# docspace/services/collaborator_service.py
"""
Who has access to a document, and why.

Read-only. Entries come from three places:
- records on the document itself (users, groups, guests)
- records on its ancestors, resolved from the parent's point of view
- the requesting user, who is always listed
"""

import logging
from datetime import datetime
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from docspace.models.document import Document
from docspace.models.group import MemberGroup, MemberGroupUser
from docspace.models.permission import DocumentPermission, SourceKind
from docspace.models.subspace import Subspace, SubspaceMember, SubspaceType
from docspace.models.user import User
from docspace.schemas.document import SharedDocument, SharedDocumentPage
from docspace.schemas.permission import (
    CollaboratorEntry,
    DocumentContext,
    PermissionSource,
    Principal,
    ResolutionSource,
)
from docspace.services.ancestor_service import iter_ancestor_ids, walk_ancestor_permissions
from docspace.services.exceptions import DocumentNotFoundError
from docspace.services.permission_record_service import get_document_records
from docspace.services.permission_resolution_service import load_context, resolve

logger = logging.getLogger(__name__)


def _users_by_id(db: Session, user_ids: set[UUID]) -> dict[UUID, User]:
    if not user_ids:
        return {}
    return {user.id: user for user in db.query(User).filter(User.id.in_(user_ids)).all()}


def _groups_by_id(db: Session, group_ids: set[UUID]) -> dict[UUID, tuple[MemberGroup, int]]:
    if not group_ids:
        return {}
    rows = (
        db.query(MemberGroup, func.count(MemberGroupUser.id))
        .outerjoin(MemberGroupUser, MemberGroupUser.group_id == MemberGroup.id)
        .filter(MemberGroup.id.in_(group_ids))
        .group_by(MemberGroup.id)
        .all()
    )
    return {group.id: (group, count) for group, count in rows}


def _user_principal(user_id: UUID, users: dict[UUID, User]) -> Principal:
    user = users.get(user_id)
    return Principal(
        type="user",
        id=user_id,
        name=user.display_name if user else None,
        email=user.email if user else None,
    )


def _group_principal(group_id: UUID, groups: dict[UUID, tuple[MemberGroup, int]]) -> Principal:
    group, count = groups.get(group_id, (None, 0))
    return Principal(
        type="group",
        id=group_id,
        name=group.name if group else None,
        member_count=count,
    )


def _direct_entries(
    db: Session,
    context: DocumentContext,
    records: list[DocumentPermission],
) -> tuple[list[CollaboratorEntry], list[CollaboratorEntry]]:
    """
    One entry per user, per group and per guest holding a record on the
    document itself. The highest level wins when a principal holds several.
    """
    best_user: dict[UUID, DocumentPermission] = {}
    best_guest: dict[UUID, DocumentPermission] = {}
    best_group: dict[UUID, DocumentPermission] = {}

    for record in records:
        if record.source_kind == SourceKind.GROUP:
            target, key = best_group, record.source_group_id
        elif record.user_id is not None:
            target, key = best_user, record.user_id
        else:
            target, key = best_guest, record.guest_id
        current = target.get(key)
        if current is None or record.level.rank > current.level.rank:
            target[key] = record

    users = _users_by_id(db, set(best_user))
    groups = _groups_by_id(db, set(best_group))

    def entry(principal: Principal, record: DocumentPermission) -> CollaboratorEntry:
        return CollaboratorEntry(
            principal=principal,
            level=record.level,
            source=ResolutionSource.DIRECT,
            source_doc_id=context.id,
            source_doc_title=context.title,
            priority=record.priority,
            granted_by_id=record.created_by_id,
        )

    user_entries = [entry(_user_principal(uid, users), rec) for uid, rec in best_user.items()]
    user_entries += [entry(Principal(type="guest", id=gid), rec) for gid, rec in best_guest.items()]
    group_entries = [entry(_group_principal(gid, groups), rec) for gid, rec in best_group.items()]
    return user_entries, group_entries


def _inherited_entries(
    db: Session,
    context: DocumentContext,
) -> tuple[list[CollaboratorEntry], list[CollaboratorEntry]]:
    """
    Principals granted on an ancestor. Each appears once, attributed to the
    nearest ancestor carrying a record for it; user levels are resolved as
    if the question were asked about the immediate parent.
    """
    if context.parent_id is None:
        return [], []
    parent_context = load_context(db, context.parent_id)
    if parent_context is None:
        logger.warning(f"Document {context.id} references missing parent {context.parent_id}")
        return [], []

    found = walk_ancestor_permissions(db, context.parent_id)

    nearest_user: dict[UUID, tuple[UUID, str]] = {}
    nearest_group: dict[UUID, tuple[UUID, str, DocumentPermission]] = {}
    for item in found:
        record = item.record
        if record.source_kind == SourceKind.DIRECT and record.user_id is not None:
            nearest_user.setdefault(record.user_id, (item.document_id, item.document_title))
        elif record.source_kind == SourceKind.GROUP:
            held = nearest_group.get(record.source_group_id)
            if held is None:
                nearest_group[record.source_group_id] = (item.document_id, item.document_title, record)
            elif held[0] == item.document_id and record.level.rank > held[2].level.rank:
                nearest_group[record.source_group_id] = (held[0], held[1], record)

    users = _users_by_id(db, set(nearest_user))
    groups = _groups_by_id(db, set(nearest_group))

    user_entries = []
    for user_id, (doc_id, doc_title) in nearest_user.items():
        resolved = resolve(db, user_id, parent_context)
        user_entries.append(
            CollaboratorEntry(
                principal=_user_principal(user_id, users),
                level=resolved.level,
                source=ResolutionSource.INHERITED,
                source_doc_id=doc_id,
                source_doc_title=doc_title,
                priority=resolved.priority,
            )
        )

    group_entries = [
        CollaboratorEntry(
            principal=_group_principal(group_id, groups),
            level=record.level,
            source=ResolutionSource.INHERITED,
            source_doc_id=doc_id,
            source_doc_title=doc_title,
            priority=record.priority,
            granted_by_id=record.created_by_id,
        )
        for group_id, (doc_id, doc_title, record) in nearest_group.items()
    ]
    return user_entries, group_entries


def _merge(direct: list[CollaboratorEntry], inherited: list[CollaboratorEntry]) -> list[CollaboratorEntry]:
    """Direct entries win; the inherited grant they shadow is kept for display."""
    by_principal = {entry.principal.id: entry for entry in direct}
    merged = list(direct)
    for entry in inherited:
        shadowing = by_principal.get(entry.principal.id)
        if shadowing is None:
            merged.append(entry)
            continue
        shadowing.has_parent_permission = True
        shadowing.parent_permission_source = PermissionSource(
            level=entry.level,
            source=ResolutionSource.INHERITED,
            source_doc_id=entry.source_doc_id,
            source_doc_title=entry.source_doc_title,
            priority=entry.priority,
        )
    return merged


def list_collaborators(db: Session, document_id: UUID, requesting_user_id: UUID) -> list[CollaboratorEntry]:
    """
    Access list for a document: users (and guests) first, then groups.

    Raises:
        DocumentNotFoundError: document does not exist
    """
    context = load_context(db, document_id)
    if context is None:
        raise DocumentNotFoundError("Document not found")

    records = get_document_records(db, document_id=document_id)
    direct_users, direct_groups = _direct_entries(db, context, records)
    inherited_users, inherited_groups = _inherited_entries(db, context)

    users = _merge(direct_users, inherited_users)
    groups = _merge(direct_groups, inherited_groups)

    # The requesting user always comes first.
    listed = [i for i, entry in enumerate(users) if entry.principal.type == "user" and entry.principal.id == requesting_user_id]
    if listed:
        users.insert(0, users.pop(listed[0]))
    else:
        resolved = resolve(db, requesting_user_id, context)
        viewer = _users_by_id(db, {requesting_user_id})
        users.insert(
            0,
            CollaboratorEntry(
                principal=_user_principal(requesting_user_id, viewer),
                level=resolved.level,
                source=resolved.source,
                source_doc_id=resolved.source_doc_id,
                source_doc_title=resolved.source_doc_title,
                priority=resolved.priority,
            ),
        )

    return users + groups


def list_shared_with_me(
    db: Session,
    user_id: UUID,
    *,
    workspace_id: UUID | None = None,
    page: int = 1,
    limit: int = 100,
) -> SharedDocumentPage:
    """
    Documents other people shared with user_id that have no other entry point
    for them: documents in someone else's PERSONAL subspace, or in a subspace
    the user is not a member of. A document is left out when one of its
    ancestors is already in the shared set.
    """
    records = (
        db.query(DocumentPermission)
        .filter(
            DocumentPermission.user_id == user_id,
            DocumentPermission.source_kind.in_([SourceKind.DIRECT, SourceKind.GROUP]),
            DocumentPermission.source_record_id.is_(None),
            (DocumentPermission.created_by_id.is_(None)) | (DocumentPermission.created_by_id != user_id),
        )
        .order_by(DocumentPermission.created_at.desc())
        .all()
    )

    shared_at: dict[UUID, datetime] = {}
    for record in records:
        shared_at.setdefault(record.document_id, record.created_at)
    if not shared_at:
        return SharedDocumentPage(page=page, limit=limit, total=0, page_count=0, documents=[])

    query = db.query(Document).filter(Document.id.in_(list(shared_at)), Document.deleted_at.is_(None))
    if workspace_id is not None:
        query = query.filter(Document.workspace_id == workspace_id)
    documents = query.all()

    subspace_ids = {doc.subspace_id for doc in documents if doc.subspace_id is not None}
    subspace_types = dict(
        db.query(Subspace.id, Subspace.type).filter(Subspace.id.in_(subspace_ids)).all()
    ) if subspace_ids else {}
    member_of = {
        row[0]
        for row in db.query(SubspaceMember.subspace_id)
        .filter(SubspaceMember.user_id == user_id, SubspaceMember.subspace_id.in_(subspace_ids))
        .all()
    } if subspace_ids else set()

    visible: list[Document] = []
    for doc in documents:
        if doc.subspace_id is None:
            continue
        cross_personal = subspace_types.get(doc.subspace_id) == SubspaceType.PERSONAL and doc.author_id != user_id
        if not cross_personal and doc.subspace_id in member_of:
            continue
        if any(ancestor_id in shared_at for ancestor_id in iter_ancestor_ids(db, doc.parent_id)):
            continue
        visible.append(doc)

    order = {doc_id: index for index, doc_id in enumerate(shared_at)}
    visible.sort(key=lambda doc: order[doc.id])

    total = len(visible)
    start = (page - 1) * limit
    page_docs = visible[start:start + limit]
    return SharedDocumentPage(
        page=page,
        limit=limit,
        total=total,
        page_count=(total + limit - 1) // limit,
        documents=[
            SharedDocument(
                id=doc.id,
                title=doc.title,
                workspace_id=doc.workspace_id,
                parent_id=doc.parent_id,
                author_id=doc.author_id,
                shared_at=shared_at[doc.id],
            )
            for doc in page_docs
        ],
    )
