# docspace/models/permission.py
"""
Persisted document permission grants.

A record ties one principal (a user, or a guest principal) to one document.
Records with source_record_id set are snapshots copied from a parent at
creation time; they point back at the originating record and never count as
a grant on the document holding them.
"""

import uuid
from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from docspace.models.base import Base


class PermissionLevel(str, PyEnum):
    NONE = "NONE"
    READ = "READ"
    COMMENT = "COMMENT"
    EDIT = "EDIT"
    MANAGE = "MANAGE"

    @property
    def rank(self) -> int:
        return _LEVEL_ORDER.index(self)

    def at_least(self, minimum: "PermissionLevel") -> bool:
        return self.rank >= minimum.rank


_LEVEL_ORDER = list(PermissionLevel)


class SourceKind(str, PyEnum):
    DIRECT = "DIRECT"
    GROUP = "GROUP"


class SourcePriority:
    """
    Priority per grant source. Lower wins.
    """

    DIRECT = 1
    GROUP = 2
    SUBSPACE_ADMIN = 3
    SUBSPACE_MEMBER = 4
    WORKSPACE_ADMIN = 5
    WORKSPACE_MEMBER = 6
    GUEST = 7
    NONE = 999

    @classmethod
    def for_kind(cls, kind: SourceKind) -> int:
        return cls.DIRECT if kind == SourceKind.DIRECT else cls.GROUP


class DocumentPermission(Base):
    __tablename__ = "document_permissions"
    __table_args__ = (
        CheckConstraint(
            "(user_id IS NULL) != (guest_id IS NULL)",
            name="ck_document_permission_principal",
        ),
        CheckConstraint(
            "(source_kind = 'GROUP') = (source_group_id IS NOT NULL)",
            name="ck_document_permission_group_source",
        ),
        Index("idx_document_permission_doc_user", "document_id", "user_id"),
        Index("idx_document_permission_source_record", "source_record_id"),
    )

    # Primary Key
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    # Principal
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    guest_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        nullable=True,
        index=True,
        doc="External guest principal; resolution for users ignores these rows",
    )

    # Resource
    document_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Grant
    level: Mapped[PermissionLevel] = mapped_column(
        Enum(PermissionLevel, name="permission_level_enum"),
        nullable=False,
    )
    source_kind: Mapped[SourceKind] = mapped_column(
        Enum(SourceKind, name="permission_source_kind_enum"),
        nullable=False,
    )
    source_group_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("member_groups.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    source_record_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("document_permissions.id", ondelete="CASCADE"),
        nullable=True,
        doc="Originating record this one was copied from; NULL for an originating record",
    )
    priority: Mapped[int] = mapped_column(Integer, nullable=False)

    created_by_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

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

    @property
    def is_copy(self) -> bool:
        return self.source_record_id is not None
