# docspace/services/permission_resolution_service.py
"""
Effective permission of a user on a document.

Tiers, first match wins:
1. DIRECT record on the document itself
2. best GROUP record on the document itself
3. inherited: highest level found on the ancestor chain, reported against the
   nearest ancestor that carries any record for the user
4. role-based fallback

The author is then raised to MANAGE whatever the tier produced.
"""

import logging
from typing import Iterable
from uuid import UUID

from sqlalchemy.orm import Session

from docspace.models.document import Document
from docspace.models.permission import (
    PermissionLevel,
    SourceKind,
    SourcePriority,
)
from docspace.models.subspace import SubspaceType
from docspace.schemas.permission import (
    Action,
    DocumentContext,
    ResolutionSource,
    ResolvedPermission,
    RoleGrant,
)
from docspace.services.ancestor_service import walk_ancestor_permissions
from docspace.services.exceptions import DocumentNotFoundError, PermissionDeniedError
from docspace.services.permission_record_service import (
    get_document_records,
    pick_effective_record,
)
from docspace.services.role_fallback_service import get_subspace_type, role_fallback

logger = logging.getLogger(__name__)


# Minimum level per content action.
ACTION_MIN_LEVEL: dict[Action, PermissionLevel] = {
    Action.READ: PermissionLevel.READ,
    Action.COMMENT: PermissionLevel.COMMENT,
    Action.UPDATE: PermissionLevel.EDIT,
    Action.PUBLISH: PermissionLevel.EDIT,
    Action.DUPLICATE: PermissionLevel.EDIT,
    Action.ARCHIVE: PermissionLevel.MANAGE,
    Action.RESTORE: PermissionLevel.MANAGE,
    Action.DELETE: PermissionLevel.MANAGE,
    Action.PERMANENT_DELETE: PermissionLevel.MANAGE,
    Action.SHARE: PermissionLevel.MANAGE,
    Action.MOVE: PermissionLevel.MANAGE,
}

TRASH_ACTIONS = (Action.DELETE, Action.RESTORE, Action.PERMANENT_DELETE)


def load_context(db: Session, document_id: UUID) -> DocumentContext | None:
    """Context for a document id, or None if the row does not exist."""
    document = db.get(Document, document_id)
    if document is None:
        return None
    return DocumentContext.model_validate(document)


def _resolve_on_document(db: Session, user_id: UUID, context: DocumentContext) -> ResolvedPermission | None:
    records = get_document_records(db, document_id=context.id, user_id=user_id)
    record = pick_effective_record(records)
    if record is None:
        return None
    return ResolvedPermission(
        level=record.level,
        source=ResolutionSource.DIRECT,
        source_doc_id=context.id,
        source_doc_title=context.title,
        priority=record.priority,
        source_group_id=record.source_group_id if record.source_kind == SourceKind.GROUP else None,
    )


def _resolve_inherited(db: Session, user_id: UUID, context: DocumentContext) -> ResolvedPermission | None:
    found = walk_ancestor_permissions(db, context.parent_id, user_id=user_id)
    if not found:
        return None

    nearest = found[0]
    winner = found[0]
    for item in found[1:]:
        if item.record.level.rank > winner.record.level.rank:
            winner = item

    return ResolvedPermission(
        level=winner.record.level,
        source=ResolutionSource.INHERITED,
        source_doc_id=nearest.document_id,
        source_doc_title=nearest.document_title,
        priority=winner.record.priority,
        source_group_id=winner.record.source_group_id,
    )


def _apply_author_override(user_id: UUID, context: DocumentContext, resolved: ResolvedPermission) -> ResolvedPermission:
    if context.author_id != user_id or resolved.level == PermissionLevel.MANAGE:
        return resolved

    update = {"level": PermissionLevel.MANAGE}
    if resolved.source == ResolutionSource.NONE:
        update.update(
            source=ResolutionSource.ROLE,
            source_doc_id=context.id,
            source_doc_title=context.title,
            priority=SourcePriority.DIRECT,
        )
    return resolved.model_copy(update=update)


def _resolve(
    db: Session,
    user_id: UUID,
    context: DocumentContext,
    role_grant: RoleGrant | None = None,
) -> ResolvedPermission:
    resolved = _resolve_on_document(db, user_id, context)
    if resolved is None:
        resolved = _resolve_inherited(db, user_id, context)
    if resolved is None:
        grant = role_grant if role_grant is not None else role_fallback(db, user_id, context)
        if grant.level != PermissionLevel.NONE:
            resolved = ResolvedPermission(
                level=grant.level,
                source=ResolutionSource.ROLE,
                priority=grant.priority,
            )
        else:
            resolved = ResolvedPermission()
    return _apply_author_override(user_id, context, resolved)


def resolve(db: Session, user_id: UUID, context: DocumentContext | None) -> ResolvedPermission:
    """
    Resolve the effective permission of user_id on a document.

    A missing context resolves to NONE; this function never raises for
    absent data. Use resolve_for_document when the document id comes from a
    caller and must exist.
    """
    if context is None:
        return ResolvedPermission()
    return _resolve(db, user_id, context)


def resolve_for_document(db: Session, user_id: UUID, document_id: UUID) -> ResolvedPermission:
    context = load_context(db, document_id)
    if context is None:
        raise DocumentNotFoundError("Document not found")
    return _resolve(db, user_id, context)


def batch_resolve(
    db: Session,
    user_id: UUID,
    contexts: Iterable[DocumentContext],
) -> dict[UUID, ResolvedPermission]:
    return {context.id: _resolve(db, user_id, context) for context in contexts}


def _can_share(
    db: Session,
    user_id: UUID,
    context: DocumentContext,
    level: PermissionLevel,
) -> bool:
    # PERSONAL subspaces: only the author shares, whatever the level.
    if context.subspace_id is not None and get_subspace_type(db, context.subspace_id) == SubspaceType.PERSONAL:
        return context.author_id == user_id
    return level == PermissionLevel.MANAGE or context.author_id == user_id


def abilities_for(db: Session, user_id: UUID, context: DocumentContext | None) -> dict[Action, bool]:
    """
    Capability map for a user on a document, thresholded from the resolved
    level plus role-derived trash rights.
    """
    if context is None:
        return {action: False for action in Action}

    grant = role_fallback(db, user_id, context)
    level = _resolve(db, user_id, context, role_grant=grant).level

    abilities = {action: level.at_least(minimum) for action, minimum in ACTION_MIN_LEVEL.items()}
    if grant.can_manage_trash:
        for action in TRASH_ACTIONS:
            abilities[action] = True
    abilities[Action.SHARE] = _can_share(db, user_id, context, level)
    return abilities


def ensure_can(db: Session, user_id: UUID, context: DocumentContext | None, action: Action) -> None:
    """
    Raise PermissionDeniedError unless user_id may perform action.
    """
    if not abilities_for(db, user_id, context).get(action, False):
        logger.debug(f"User {user_id} denied {action.value} on {context.id if context else None}")
        raise PermissionDeniedError()
