# docspace/services/navigation_service.py
"""
Subspace navigation tree, derived on read from documents.parent_id and
documents.position. Nothing is stored; concurrent moves cannot corrupt it.
"""

import logging
from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy.orm import Session

from docspace.models.document import Document
from docspace.models.subspace import Subspace
from docspace.schemas.document import NavigationNode
from docspace.services.exceptions import SubspaceNotFoundError

logger = logging.getLogger(__name__)


@dataclass
class _Slot:
    id: UUID
    title: str
    parent_id: UUID | None
    children: list[UUID] = field(default_factory=list)


def _in_cycle(arena: dict[UUID, _Slot], node_id: UUID) -> bool:
    seen: set[UUID] = set()
    current: UUID | None = node_id
    while current in arena:
        if current in seen:
            return True
        seen.add(current)
        current = arena[current].parent_id
    return False


def build_navigation_tree(db: Session, subspace_id: UUID) -> list[NavigationNode]:
    """
    Published, live documents of a subspace as an ordered tree.

    A document whose parent is hidden (trashed, archived, unpublished) is
    hidden too. A parent id pointing at no row at all puts the document at
    the root. Documents caught in a parent cycle are dropped. Both cases are
    logged.
    """
    if db.get(Subspace, subspace_id) is None:
        raise SubspaceNotFoundError("Subspace not found")

    docs = (
        db.query(Document)
        .filter(
            Document.subspace_id == subspace_id,
            Document.deleted_at.is_(None),
            Document.archived_at.is_(None),
            Document.published_at.is_not(None),
        )
        .order_by(Document.position.asc(), Document.created_at.asc())
        .all()
    )

    arena: dict[UUID, _Slot] = {
        doc.id: _Slot(id=doc.id, title=doc.title, parent_id=doc.parent_id) for doc in docs
    }

    unknown_parents = {slot.parent_id for slot in arena.values() if slot.parent_id and slot.parent_id not in arena}
    existing_parents: set[UUID] = set()
    if unknown_parents:
        existing_parents = {
            row[0] for row in db.query(Document.id).filter(Document.id.in_(unknown_parents)).all()
        }

    roots: list[UUID] = []
    for slot in arena.values():
        if slot.parent_id is None:
            roots.append(slot.id)
        elif slot.parent_id in arena:
            arena[slot.parent_id].children.append(slot.id)
        elif slot.parent_id in existing_parents:
            continue
        else:
            logger.warning(f"Document {slot.id} has dangling parent {slot.parent_id}; placing at root")
            roots.append(slot.id)

    placed: set[UUID] = set()

    def to_node(node_id: UUID) -> NavigationNode:
        placed.add(node_id)
        slot = arena[node_id]
        return NavigationNode(
            id=slot.id,
            title=slot.title,
            url=f"/{slot.id}",
            children=[to_node(child_id) for child_id in slot.children if child_id not in placed],
        )

    tree = [to_node(root_id) for root_id in roots]

    cyclic = [node_id for node_id in set(arena) - placed if _in_cycle(arena, node_id)]
    if cyclic:
        logger.warning(f"Navigation tree of subspace {subspace_id} dropped {len(cyclic)} document(s) caught in a parent cycle")
    return tree
