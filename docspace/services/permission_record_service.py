# docspace/services/permission_record_service.py
"""
Persistence helpers for document permission records.

These functions only add/flush/delete; the calling lifecycle service owns the
transaction and commits once the whole operation succeeded.
"""

import logging
from typing import Iterable
from uuid import UUID

from sqlalchemy.orm import Session

from docspace.models.permission import (
    DocumentPermission,
    PermissionLevel,
    SourceKind,
    SourcePriority,
)

logger = logging.getLogger(__name__)

# Guard for following source_record_id back-references.
MAX_TRACE_HOPS = 25


def get_document_records(
    db: Session,
    *,
    document_id: UUID,
    user_id: UUID | None = None,
    source_kinds: Iterable[SourceKind] | None = None,
    originating_only: bool = True,
) -> list[DocumentPermission]:
    """
    Records on one document, optionally narrowed to a user and source kinds.
    Copied snapshots are skipped unless originating_only is False.
    """
    query = db.query(DocumentPermission).filter(DocumentPermission.document_id == document_id)
    if user_id is not None:
        query = query.filter(DocumentPermission.user_id == user_id)
    if source_kinds is not None:
        query = query.filter(DocumentPermission.source_kind.in_(list(source_kinds)))
    if originating_only:
        query = query.filter(DocumentPermission.source_record_id.is_(None))
    return query.order_by(DocumentPermission.priority.asc(), DocumentPermission.created_at.asc()).all()


def get_records_for_documents(
    db: Session,
    *,
    document_ids: Iterable[UUID],
    user_id: UUID | None = None,
    originating_only: bool = True,
) -> dict[UUID, list[DocumentPermission]]:
    """
    Batched variant of get_document_records, keyed by document id.
    """
    ids = list(document_ids)
    if not ids:
        return {}

    query = db.query(DocumentPermission).filter(DocumentPermission.document_id.in_(ids))
    if user_id is not None:
        query = query.filter(DocumentPermission.user_id == user_id)
    if originating_only:
        query = query.filter(DocumentPermission.source_record_id.is_(None))

    grouped: dict[UUID, list[DocumentPermission]] = {doc_id: [] for doc_id in ids}
    for record in query.order_by(DocumentPermission.priority.asc()).all():
        grouped[record.document_id].append(record)
    return grouped


def create_record(
    db: Session,
    *,
    document_id: UUID,
    level: PermissionLevel,
    source_kind: SourceKind,
    created_by_id: UUID | None,
    user_id: UUID | None = None,
    guest_id: UUID | None = None,
    source_group_id: UUID | None = None,
    source_record_id: UUID | None = None,
    priority: int | None = None,
) -> DocumentPermission:
    if (user_id is None) == (guest_id is None):
        raise ValueError("Exactly one of user_id or guest_id must be given")
    if (source_kind == SourceKind.GROUP) != (source_group_id is not None):
        raise ValueError("source_group_id must be set exactly for GROUP records")

    record = DocumentPermission(
        document_id=document_id,
        user_id=user_id,
        guest_id=guest_id,
        level=level,
        source_kind=source_kind,
        source_group_id=source_group_id,
        source_record_id=source_record_id,
        priority=priority if priority is not None else SourcePriority.for_kind(source_kind),
        created_by_id=created_by_id,
    )
    db.add(record)
    db.flush()
    return record


def delete_copies_of(db: Session, *, record_ids: Iterable[UUID]) -> int:
    ids = list(record_ids)
    if not ids:
        return 0
    return (
        db.query(DocumentPermission)
        .filter(DocumentPermission.source_record_id.in_(ids))
        .delete(synchronize_session="fetch")
    )


def _delete_records(db: Session, records: list[DocumentPermission]) -> list[UUID]:
    ids = [record.id for record in records]
    if not ids:
        return []
    delete_copies_of(db, record_ids=ids)
    (
        db.query(DocumentPermission)
        .filter(DocumentPermission.id.in_(ids))
        .delete(synchronize_session="fetch")
    )
    return ids


def delete_direct_records(
    db: Session,
    *,
    document_id: UUID,
    user_id: UUID | None = None,
    guest_id: UUID | None = None,
    include_copies: bool = False,
) -> list[UUID]:
    """
    Delete the DIRECT records one principal holds on a document, together
    with the snapshots that were copied from them. Returns the deleted ids.
    """
    query = db.query(DocumentPermission).filter(
        DocumentPermission.document_id == document_id,
        DocumentPermission.source_kind == SourceKind.DIRECT,
    )
    if user_id is not None:
        query = query.filter(DocumentPermission.user_id == user_id)
    else:
        query = query.filter(DocumentPermission.guest_id == guest_id)
    if not include_copies:
        query = query.filter(DocumentPermission.source_record_id.is_(None))
    return _delete_records(db, query.all())


def delete_group_records(
    db: Session,
    *,
    document_id: UUID,
    group_id: UUID,
) -> list[UUID]:
    records = (
        db.query(DocumentPermission)
        .filter(
            DocumentPermission.document_id == document_id,
            DocumentPermission.source_kind == SourceKind.GROUP,
            DocumentPermission.source_group_id == group_id,
            DocumentPermission.source_record_id.is_(None),
        )
        .all()
    )
    return _delete_records(db, records)


def cascade_level_to_copies(db: Session, *, record_id: UUID, level: PermissionLevel) -> int:
    """Keep snapshots in step with their originating record."""
    return (
        db.query(DocumentPermission)
        .filter(DocumentPermission.source_record_id == record_id)
        .update({DocumentPermission.level: level}, synchronize_session="fetch")
    )


def delete_records_for_documents(db: Session, *, document_ids: Iterable[UUID]) -> int:
    """
    Hard-delete cascade: every record held by the given documents, plus any
    snapshot elsewhere that was copied from them.
    """
    ids = list(document_ids)
    if not ids:
        return 0

    record_ids = [
        row[0]
        for row in db.query(DocumentPermission.id)
        .filter(DocumentPermission.document_id.in_(ids))
        .all()
    ]
    delete_copies_of(db, record_ids=record_ids)
    return (
        db.query(DocumentPermission)
        .filter(DocumentPermission.document_id.in_(ids))
        .delete(synchronize_session="fetch")
    )


def trace_origin(db: Session, *, record_id: UUID) -> DocumentPermission | None:
    """
    Follow source_record_id back to the originating record.
    Returns None if the chain is broken (origin deleted).
    """
    record = db.get(DocumentPermission, record_id)
    hops = 0
    while record is not None and record.source_record_id is not None:
        hops += 1
        if hops > MAX_TRACE_HOPS:
            logger.warning(f"Permission record {record_id} has a source chain longer than {MAX_TRACE_HOPS} hops")
            return None
        record = db.get(DocumentPermission, record.source_record_id)
    if record is None:
        logger.warning(f"Permission record {record_id} points at a missing origin")
    return record


def best_group_record(records: Iterable[DocumentPermission]) -> DocumentPermission | None:
    """Highest-level GROUP record; ties go to the lowest priority."""
    best: DocumentPermission | None = None
    for record in records:
        if record.source_kind != SourceKind.GROUP:
            continue
        if best is None:
            best = record
            continue
        if record.level.rank > best.level.rank or (
            record.level.rank == best.level.rank and record.priority < best.priority
        ):
            best = record
    return best


def pick_effective_record(records: Iterable[DocumentPermission]) -> DocumentPermission | None:
    """
    De-duplicate one user's records on one document: a DIRECT record always
    wins, otherwise the best GROUP record.
    """
    records = list(records)
    direct = [r for r in records if r.source_kind == SourceKind.DIRECT]
    if direct:
        # Duplicate DIRECT rows: keep the strongest.
        return max(direct, key=lambda r: r.level.rank)
    return best_group_record(records)
