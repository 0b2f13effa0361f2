# docspace/services/ancestor_service.py
"""
Walks a document's parent chain.

Every walk is guarded against cycles (revisiting an id) and, on the
resolution path, bounded by settings.permission_max_ancestor_depth. Hitting
either guard or a dangling parent id ends the walk; nothing here raises on
malformed data.
"""

import logging
from dataclasses import dataclass
from typing import Iterator
from uuid import UUID

from sqlalchemy.orm import Session

from docspace.core.config import get_settings
from docspace.models.document import Document
from docspace.models.permission import DocumentPermission, SourceKind
from docspace.services.permission_record_service import get_records_for_documents

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AncestorDocument:
    id: UUID
    title: str
    parent_id: UUID | None
    depth: int  # 1 = immediate parent


@dataclass(frozen=True)
class AncestorPermission:
    record: DocumentPermission
    document_id: UUID
    document_title: str
    depth: int


def _depth_limit(max_depth: int | None) -> int:
    return max_depth if max_depth is not None else get_settings().permission_max_ancestor_depth


def iter_ancestors(
    db: Session,
    start_parent_id: UUID | None,
    *,
    max_depth: int | None = None,
    bounded: bool = True,
) -> Iterator[AncestorDocument]:
    """
    Yield ancestors nearest first, starting at start_parent_id.

    With bounded=False only the cycle guard applies (used by lifecycle checks
    that must see the whole chain).
    """
    limit = _depth_limit(max_depth)
    visited: set[UUID] = set()
    current = start_parent_id
    depth = 0

    while current is not None:
        if current in visited:
            logger.warning(f"Cycle in document parent chain at {current}; stopping walk")
            return
        if bounded and depth >= limit:
            logger.warning(f"Ancestor walk from {start_parent_id} hit depth limit {limit}")
            return

        row = (
            db.query(Document.id, Document.title, Document.parent_id)
            .filter(Document.id == current)
            .first()
        )
        if row is None:
            logger.warning(f"Document parent chain references missing document {current}")
            return

        visited.add(current)
        depth += 1
        yield AncestorDocument(id=row.id, title=row.title, parent_id=row.parent_id, depth=depth)
        current = row.parent_id


def iter_ancestor_ids(
    db: Session,
    start_parent_id: UUID | None,
    *,
    max_depth: int | None = None,
    bounded: bool = True,
) -> Iterator[UUID]:
    for ancestor in iter_ancestors(db, start_parent_id, max_depth=max_depth, bounded=bounded):
        yield ancestor.id


def walk_ancestor_permissions(
    db: Session,
    start_parent_id: UUID | None,
    *,
    user_id: UUID | None = None,
    max_depth: int | None = None,
) -> list[AncestorPermission]:
    """
    DIRECT and GROUP records found on the ancestors of a document, nearest
    ancestor first. Only originating records are returned; snapshots copied
    down the tree would duplicate what the walk finds further up anyway.

    Args:
        db: Database session
        start_parent_id: parent of the document being resolved (None -> [])
        user_id: restrict to one user's records
        max_depth: number of ancestors to visit (defaults to settings)
    """
    if start_parent_id is None:
        return []

    ancestors = list(iter_ancestors(db, start_parent_id, max_depth=max_depth))
    if not ancestors:
        return []

    records_by_doc = get_records_for_documents(
        db,
        document_ids=[ancestor.id for ancestor in ancestors],
        user_id=user_id,
    )

    result: list[AncestorPermission] = []
    for ancestor in ancestors:
        for record in records_by_doc.get(ancestor.id, []):
            if record.source_kind not in (SourceKind.DIRECT, SourceKind.GROUP):
                continue
            result.append(
                AncestorPermission(
                    record=record,
                    document_id=ancestor.id,
                    document_title=ancestor.title,
                    depth=ancestor.depth,
                )
            )
    return result


def is_descendant_or_self(db: Session, *, document_id: UUID, candidate_parent_id: UUID) -> bool:
    """
    True when candidate_parent_id is document_id itself or sits below it,
    i.e. re-parenting document_id under it would close a cycle.
    """
    if candidate_parent_id == document_id:
        return True
    return any(
        ancestor_id == document_id
        for ancestor_id in iter_ancestor_ids(db, candidate_parent_id, bounded=False)
    )
