# docspace/services/trash_service.py
"""
Trash lifecycle: soft delete, restore, permanent delete and the periodic
purge of expired trash.

Soft delete and restore never touch permission records, so a restored
document comes back with exactly the access it had. Permanent delete removes
the records together with the documents.
"""

import logging
import threading
from datetime import datetime
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from docspace.core.config import get_settings
from docspace.models.document import Document
from docspace.schemas.permission import Action, DocumentContext
from docspace.services.document_service import list_descendant_ids, list_siblings, reindex_positions
from docspace.services.exceptions import (
    ConcurrentModificationError,
    DocspaceError,
    DocumentNotFoundError,
)
from docspace.services.permission_resolution_service import abilities_for, ensure_can
from docspace.services.propagation_service import on_document_hard_deleted
from docspace.utils.datetime_utils import days_ago, utc_now

logger = logging.getLogger(__name__)

# Held while a purge sweep runs; a second caller skips instead of waiting.
_cleanup_lock = threading.Lock()


def _locked_document(db: Session, document_id: UUID) -> Document:
    doc = db.query(Document).filter(Document.id == document_id).with_for_update().first()
    if not doc:
        raise DocumentNotFoundError("Document not found")
    return doc


def soft_delete_document(db: Session, *, actor_id: UUID, document_id: UUID) -> Document:
    """
    Move a document and its live descendants to the trash.

    Raises:
        DocumentNotFoundError
        ConcurrentModificationError: the document is already in the trash
        PermissionDeniedError
    """
    try:
        doc = _locked_document(db, document_id)
        if doc.deleted_at is not None:
            raise ConcurrentModificationError("Document is already deleted")
        ensure_can(db, actor_id, DocumentContext.model_validate(doc), Action.DELETE)

        deleted_at = utc_now()
        doc.deleted_at = deleted_at
        descendant_ids = list_descendant_ids(db, doc.id)
        if descendant_ids:
            (
                db.query(Document)
                .filter(Document.id.in_(descendant_ids), Document.deleted_at.is_(None))
                .update({Document.deleted_at: deleted_at}, synchronize_session="fetch")
            )

        reindex_positions(
            list_siblings(
                db,
                workspace_id=doc.workspace_id,
                parent_id=doc.parent_id,
                subspace_id=doc.subspace_id,
                exclude_id=doc.id,
            )
        )
        db.commit()
        db.refresh(doc)
    except (SQLAlchemyError, DocspaceError):
        db.rollback()
        raise

    logger.info(f"User {actor_id} moved document {doc.id} and {len(descendant_ids)} descendant(s) to trash")
    return doc


def restore_document(db: Session, *, actor_id: UUID, document_id: UUID) -> Document:
    """
    Bring a document back together with the descendants trashed in the same
    soft delete; descendants trashed on their own earlier stay in the trash.
    If the parent is still in the trash (or gone), the document is restored
    at the root of its subspace.

    Raises:
        DocumentNotFoundError
        ConcurrentModificationError: the document is not in the trash
        PermissionDeniedError
    """
    try:
        doc = _locked_document(db, document_id)
        if doc.deleted_at is None:
            raise ConcurrentModificationError("Document is not deleted")
        ensure_can(db, actor_id, DocumentContext.model_validate(doc), Action.RESTORE)

        if doc.parent_id is not None:
            parent = db.get(Document, doc.parent_id)
            if parent is None or parent.deleted_at is not None:
                logger.info(f"Parent of document {doc.id} is not available; restoring to root")
                doc.parent_id = None

        siblings = list_siblings(
            db,
            workspace_id=doc.workspace_id,
            parent_id=doc.parent_id,
            subspace_id=doc.subspace_id,
            exclude_id=doc.id,
        )
        deleted_at = doc.deleted_at
        doc.position = len(siblings)
        doc.deleted_at = None

        descendant_ids = list_descendant_ids(db, doc.id)
        if descendant_ids:
            (
                db.query(Document)
                .filter(Document.id.in_(descendant_ids), Document.deleted_at == deleted_at)
                .update({Document.deleted_at: None}, synchronize_session="fetch")
            )

        db.commit()
        db.refresh(doc)
    except (SQLAlchemyError, DocspaceError):
        db.rollback()
        raise

    logger.info(f"User {actor_id} restored document {doc.id}")
    return doc


def _purge(db: Session, document_id: UUID) -> list[UUID]:
    """Delete a document, its subtree and their permission records. Caller commits."""
    descendant_ids = list_descendant_ids(db, document_id)
    ids = [document_id] + descendant_ids
    on_document_hard_deleted(db, ids)
    # Children before parents.
    for doc_id in reversed(ids):
        db.query(Document).filter(Document.id == doc_id).delete(synchronize_session="fetch")
    return ids


def permanent_delete_document(db: Session, *, actor_id: UUID, document_id: UUID) -> list[UUID]:
    """
    Hard-delete a trashed document and everything below it. Returns the ids
    of the removed documents.

    Raises:
        DocumentNotFoundError: unknown, or not in the trash
        PermissionDeniedError
    """
    try:
        doc = _locked_document(db, document_id)
        if doc.deleted_at is None:
            raise DocumentNotFoundError("Document not found")
        ensure_can(db, actor_id, DocumentContext.model_validate(doc), Action.PERMANENT_DELETE)

        ids = _purge(db, doc.id)
        db.commit()
    except (SQLAlchemyError, DocspaceError):
        db.rollback()
        raise

    logger.info(f"User {actor_id} permanently deleted document {document_id} ({len(ids)} document(s))")
    return ids


def list_trash(db: Session, *, user_id: UUID, workspace_id: UUID) -> list[Document]:
    """
    Trashed documents the user may restore, most recently deleted first.
    Documents trashed together with their parent are not listed separately.
    """
    docs = (
        db.query(Document)
        .filter(Document.workspace_id == workspace_id, Document.deleted_at.is_not(None))
        .order_by(Document.deleted_at.desc())
        .all()
    )
    trashed_ids = {doc.id for doc in docs}

    result = []
    for doc in docs:
        if doc.parent_id in trashed_ids:
            continue
        if abilities_for(db, user_id, DocumentContext.model_validate(doc))[Action.RESTORE]:
            result.append(doc)
    return result


def cleanup_expired_documents(
    db: Session,
    *,
    now: datetime | None = None,
    retention_days: int | None = None,
    batch_size: int | None = None,
) -> int:
    """
    Purge trashed documents older than the retention period, oldest first.

    Single-flight: if another sweep is running this returns 0 immediately.
    A document that fails to purge is logged and skipped; the rest of the
    batch still goes through. Returns the number of documents purged.
    """
    if not _cleanup_lock.acquire(blocking=False):
        logger.info("Trash cleanup already running, skipping")
        return 0

    settings = get_settings()
    retention_days = retention_days if retention_days is not None else settings.trash_retention_days
    batch_size = batch_size if batch_size is not None else settings.trash_cleanup_batch_size

    try:
        cutoff = days_ago(retention_days, now=now)
        expired_ids = [
            row[0]
            for row in db.query(Document.id)
            .filter(Document.deleted_at.is_not(None), Document.deleted_at < cutoff)
            .order_by(Document.deleted_at.asc())
            .limit(batch_size)
            .all()
        ]
        logger.info(f"Trash cleanup found {len(expired_ids)} expired document(s)")

        purged: set[UUID] = set()
        for doc_id in expired_ids:
            if doc_id in purged:
                continue
            try:
                purged.update(_purge(db, doc_id))
                db.commit()
            except SQLAlchemyError:
                db.rollback()
                logger.warning(f"Trash cleanup failed for document {doc_id}", exc_info=True)

        return len(purged)
    except SQLAlchemyError:
        db.rollback()
        raise
    finally:
        _cleanup_lock.release()
