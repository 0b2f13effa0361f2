# docspace/schemas/event.py
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from docspace.utils.datetime_utils import utc_now


class PermissionEventName(str, Enum):
    DOCUMENT_SHARED = "document.shared"
    OVERRIDE_CREATED = "override.created"
    OVERRIDE_REMOVED = "override.removed"
    GROUP_PERMISSION_CHANGED = "group_permission.changed"
    ACCESS_REVOKED = "access.revoked"
    INHERITANCE_CHANGED = "permission_inheritance.changed"


class PermissionEvent(BaseModel):
    name: PermissionEventName
    workspace_id: UUID | None = None
    actor_id: UUID | None = None
    document_ids: list[UUID] = Field(default_factory=list)
    data: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utc_now)
