# docspace/models/document.py
import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from docspace.models.base import Base
from docspace.models.user import User


class Document(Base):
    """
    A node of a workspace document tree.

    Lifecycle markers:
    - published_at: set when the document becomes visible in navigation
    - archived_at:  archived, hidden from navigation but not in trash
    - deleted_at:   soft-deleted (trash); permission records stay intact
    """

    __tablename__ = "documents"

    # Primary Key
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    # Foreign Keys
    parent_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    workspace_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("workspaces.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    subspace_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("subspaces.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        doc="NULL for documents living in the author's drafts",
    )
    author_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Document Information
    title: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    position: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        doc="Order among siblings sharing the same parent (or subspace root)",
    )
    is_workspace_public: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
        doc="Workspace members without any grant may read the document",
    )

    # Lifecycle markers
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    archived_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        index=True,
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=datetime.utcnow,
    )

    author: Mapped["User"] = relationship("User")

    __mapper_args__ = {"version_id_col": version}
