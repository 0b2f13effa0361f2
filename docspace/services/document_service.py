# docspace/services/document_service.py
import logging
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from docspace.models.document import Document
from docspace.models.subspace import Subspace
from docspace.schemas.document import DocumentCreate
from docspace.schemas.permission import Action, DocumentContext
from docspace.services.ancestor_service import is_descendant_or_self
from docspace.services.exceptions import (
    ConcurrentModificationError,
    DocspaceError,
    DocumentNotFoundError,
    InvalidHierarchyError,
    SubspaceNotFoundError,
)
from docspace.services.permission_event_service import PermissionEventPublisher
from docspace.services.permission_resolution_service import ensure_can
from docspace.services.propagation_service import on_document_created, on_document_moved
from docspace.utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)


def get_document(db: Session, *, document_id: UUID) -> Document:
    doc = db.query(Document).filter(Document.id == document_id).first()
    if not doc:
        raise DocumentNotFoundError("Document not found")
    return doc


def get_document_context(db: Session, *, document_id: UUID) -> DocumentContext:
    return DocumentContext.model_validate(get_document(db, document_id=document_id))


def _lock_document(db: Session, document_id: UUID) -> Document:
    doc = db.query(Document).filter(Document.id == document_id).with_for_update().first()
    if not doc or doc.deleted_at is not None:
        raise DocumentNotFoundError("Document not found")
    return doc


def _lock_subspace(db: Session, subspace_id: UUID, *, workspace_id: UUID) -> Subspace:
    subspace = db.query(Subspace).filter(Subspace.id == subspace_id).with_for_update().first()
    if not subspace:
        raise SubspaceNotFoundError("Subspace not found")
    if subspace.workspace_id != workspace_id:
        raise InvalidHierarchyError("Subspace belongs to another workspace")
    return subspace


def list_siblings(
    db: Session,
    *,
    workspace_id: UUID,
    parent_id: UUID | None,
    subspace_id: UUID | None,
    exclude_id: UUID | None = None,
) -> list[Document]:
    """
    Live documents sharing a parent, or the subspace root when parent_id is None,
    in position order.
    """
    query = db.query(Document).filter(
        Document.workspace_id == workspace_id,
        Document.deleted_at.is_(None),
    )
    if parent_id is not None:
        query = query.filter(Document.parent_id == parent_id)
    else:
        query = query.filter(Document.parent_id.is_(None))
        if subspace_id is None:
            query = query.filter(Document.subspace_id.is_(None))
        else:
            query = query.filter(Document.subspace_id == subspace_id)
    if exclude_id is not None:
        query = query.filter(Document.id != exclude_id)
    return query.order_by(Document.position.asc(), Document.created_at.asc()).all()


def reindex_positions(documents: list[Document]) -> None:
    for position, doc in enumerate(documents):
        if doc.position != position:
            doc.position = position


def list_descendant_ids(db: Session, document_id: UUID) -> list[UUID]:
    """
    Ids of every document below document_id (deleted ones included), breadth
    first. Malformed cycles are cut at the first revisit.
    """
    found: list[UUID] = []
    visited = {document_id}
    frontier = [document_id]
    while frontier:
        rows = db.query(Document.id).filter(Document.parent_id.in_(frontier)).all()
        frontier = []
        for (child_id,) in rows:
            if child_id in visited:
                logger.warning(f"Cycle below document {document_id} at {child_id}")
                continue
            visited.add(child_id)
            found.append(child_id)
            frontier.append(child_id)
    return found


def create_document(
    db: Session,
    *,
    author_id: UUID,
    payload: DocumentCreate,
) -> Document:
    """
    Insert a document and its initial permission records in one transaction.

    The parent row is locked first so concurrent creates and shares under
    the same parent see a consistent set of parent records.

    Raises:
        DocumentNotFoundError: parent missing or in trash
        SubspaceNotFoundError: subspace_id unknown
        InvalidHierarchyError: parent or subspace lives in another workspace
        PermissionDeniedError: author may not edit the parent
    """
    subspace_id = payload.subspace_id
    try:
        if payload.parent_id is not None:
            parent = _lock_document(db, payload.parent_id)
            if parent.workspace_id != payload.workspace_id:
                raise InvalidHierarchyError("Parent document belongs to another workspace")
            ensure_can(db, author_id, DocumentContext.model_validate(parent), Action.UPDATE)
            subspace_id = parent.subspace_id
        elif subspace_id is not None:
            _lock_subspace(db, subspace_id, workspace_id=payload.workspace_id)

        siblings = list_siblings(
            db,
            workspace_id=payload.workspace_id,
            parent_id=payload.parent_id,
            subspace_id=subspace_id,
        )
        index = len(siblings) if payload.index is None else max(0, min(payload.index, len(siblings)))

        doc = Document(
            workspace_id=payload.workspace_id,
            parent_id=payload.parent_id,
            subspace_id=subspace_id,
            author_id=author_id,
            title=payload.title,
            position=index,
            is_workspace_public=payload.is_workspace_public,
            published_at=utc_now() if payload.publish else None,
        )
        db.add(doc)
        siblings.insert(index, doc)
        reindex_positions(siblings)
        db.flush()

        on_document_created(db, doc)

        db.commit()
        db.refresh(doc)
    except (SQLAlchemyError, DocspaceError):
        db.rollback()
        raise

    logger.info(f"User {author_id} created document {doc.id} (parent={doc.parent_id}, subspace={doc.subspace_id})")
    return doc


def move_document(
    db: Session,
    *,
    actor_id: UUID,
    document_id: UUID,
    parent_id: UUID | None = None,
    subspace_id: UUID | None = None,
    index: int | None = None,
    expected_version: int | None = None,
    events: PermissionEventPublisher | None = None,
) -> Document:
    """
    Re-parent and/or reorder a document.

    parent_id=None moves the document to the root of subspace_id (or of its
    current subspace when subspace_id is None as well). Sibling positions on
    both ends are compacted, and the whole subtree follows the document into
    its new subspace. Permission records are left as they are.

    Raises:
        DocumentNotFoundError, SubspaceNotFoundError
        InvalidHierarchyError: parent_id is the document or one of its descendants,
            or the target lives in another workspace
        ConcurrentModificationError: expected_version is stale
        PermissionDeniedError: actor may not move the document or edit the target parent
    """
    if parent_id is not None and parent_id == document_id:
        raise InvalidHierarchyError("A document cannot be its own parent")

    try:
        doc = _lock_document(db, document_id)
        ensure_can(db, actor_id, DocumentContext.model_validate(doc), Action.MOVE)
        if expected_version is not None and doc.version != expected_version:
            raise ConcurrentModificationError("Document was modified concurrently")

        if parent_id is not None:
            if is_descendant_or_self(db, document_id=document_id, candidate_parent_id=parent_id):
                raise InvalidHierarchyError("Cannot move a document below itself")
            parent = _lock_document(db, parent_id)
            if parent.workspace_id != doc.workspace_id:
                raise InvalidHierarchyError("Parent document belongs to another workspace")
            ensure_can(db, actor_id, DocumentContext.model_validate(parent), Action.UPDATE)
            target_subspace_id = parent.subspace_id
        else:
            target_subspace_id = subspace_id if subspace_id is not None else doc.subspace_id

        touched_subspaces = {s for s in (doc.subspace_id, target_subspace_id) if s is not None}
        for locked_id in sorted(touched_subspaces, key=str):
            _lock_subspace(db, locked_id, workspace_id=doc.workspace_id)

        old_parent_id, old_subspace_id = doc.parent_id, doc.subspace_id

        old_siblings = list_siblings(
            db,
            workspace_id=doc.workspace_id,
            parent_id=old_parent_id,
            subspace_id=old_subspace_id,
            exclude_id=doc.id,
        )
        reindex_positions(old_siblings)

        new_siblings = list_siblings(
            db,
            workspace_id=doc.workspace_id,
            parent_id=parent_id,
            subspace_id=target_subspace_id,
            exclude_id=doc.id,
        )
        position = len(new_siblings) if index is None else max(0, min(index, len(new_siblings)))
        new_siblings.insert(position, doc)

        doc.parent_id = parent_id
        doc.subspace_id = target_subspace_id
        reindex_positions(new_siblings)

        descendant_ids = list_descendant_ids(db, doc.id)
        if target_subspace_id != old_subspace_id and descendant_ids:
            (
                db.query(Document)
                .filter(Document.id.in_(descendant_ids))
                .update({Document.subspace_id: target_subspace_id}, synchronize_session="fetch")
            )

        db.commit()
        db.refresh(doc)
    except StaleDataError as exc:
        db.rollback()
        raise ConcurrentModificationError("Document was modified concurrently") from exc
    except (SQLAlchemyError, DocspaceError):
        db.rollback()
        raise

    logger.info(
        f"User {actor_id} moved document {doc.id} from parent {old_parent_id} to {doc.parent_id} "
        f"(subspace {old_subspace_id} -> {doc.subspace_id}, position {doc.position})"
    )
    on_document_moved(
        db,
        doc,
        old_parent_id,
        doc.parent_id,
        descendant_ids=descendant_ids,
        actor_id=actor_id,
        events=events,
    )
    return doc
