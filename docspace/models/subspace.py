# docspace/models/subspace.py
import uuid
from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import (
    DateTime,
    Enum,
    ForeignKey,
    String,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from docspace.models.base import Base


class SubspaceType(str, PyEnum):
    PERSONAL = "PERSONAL"
    PUBLIC = "PUBLIC"
    WORKSPACE_WIDE = "WORKSPACE_WIDE"
    INVITE_ONLY = "INVITE_ONLY"
    PRIVATE = "PRIVATE"


class SubspaceRole(str, PyEnum):
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"


class Subspace(Base):
    """
    A section of a workspace holding a document tree. The navigation tree is
    not stored here; it is derived from the documents on read.
    """

    __tablename__ = "subspaces"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    workspace_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("workspaces.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[SubspaceType] = mapped_column(
        Enum(SubspaceType, name="subspace_type_enum"),
        nullable=False,
        default=SubspaceType.WORKSPACE_WIDE,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )


class SubspaceMember(Base):
    __tablename__ = "subspace_members"
    __table_args__ = (
        UniqueConstraint("subspace_id", "user_id", name="uq_subspace_member"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    subspace_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("subspaces.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role: Mapped[SubspaceRole] = mapped_column(
        Enum(SubspaceRole, name="subspace_role_enum"),
        nullable=False,
        default=SubspaceRole.MEMBER,
    )
