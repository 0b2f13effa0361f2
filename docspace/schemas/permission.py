# docspace/schemas/permission.py
from enum import Enum
from typing import Literal
from uuid import UUID

from pydantic import BaseModel

from docspace.models.permission import PermissionLevel, SourcePriority


class ResolutionSource(str, Enum):
    DIRECT = "direct"
    INHERITED = "inherited"
    ROLE = "role"
    NONE = "none"


class Action(str, Enum):
    READ = "read"
    COMMENT = "comment"
    UPDATE = "update"
    PUBLISH = "publish"
    DUPLICATE = "duplicate"
    ARCHIVE = "archive"
    RESTORE = "restore"
    DELETE = "delete"
    PERMANENT_DELETE = "permanent_delete"
    SHARE = "share"
    MOVE = "move"


class DocumentContext(BaseModel):
    """The slice of a document the resolver needs."""

    id: UUID
    workspace_id: UUID
    parent_id: UUID | None = None
    subspace_id: UUID | None = None
    author_id: UUID | None = None
    title: str | None = None
    is_workspace_public: bool = False

    class Config:
        from_attributes = True


class ResolvedPermission(BaseModel):
    level: PermissionLevel = PermissionLevel.NONE
    source: ResolutionSource = ResolutionSource.NONE
    source_doc_id: UUID | None = None
    source_doc_title: str | None = None
    priority: int = SourcePriority.NONE
    source_group_id: UUID | None = None


class RoleGrant(BaseModel):
    """Role-derived defaults used when no explicit record applies."""

    level: PermissionLevel = PermissionLevel.NONE
    can_manage_trash: bool = False
    priority: int = SourcePriority.NONE


class PermissionSource(BaseModel):
    level: PermissionLevel
    source: ResolutionSource
    source_doc_id: UUID | None = None
    source_doc_title: str | None = None
    priority: int | None = None


class Principal(BaseModel):
    type: Literal["user", "group", "guest"]
    id: UUID
    name: str | None = None
    email: str | None = None
    member_count: int | None = None


class CollaboratorEntry(BaseModel):
    principal: Principal
    level: PermissionLevel
    source: ResolutionSource
    source_doc_id: UUID | None = None
    source_doc_title: str | None = None
    priority: int | None = None
    granted_by_id: UUID | None = None
    has_parent_permission: bool = False
    parent_permission_source: PermissionSource | None = None


class RemoveShareResult(BaseModel):
    """
    Outcome of removing a direct share.

    transition is "restored" when an ancestor still grants access (the user
    falls back to that inherited level) and "revoked" otherwise.
    """

    document_id: UUID
    user_id: UUID
    transition: Literal["restored", "revoked"]
    resolved: ResolvedPermission
    collaborators: list[CollaboratorEntry]
