# docspace/models/__init__.py
from docspace.models.base import Base
from docspace.models.user import User
from docspace.models.workspace import Workspace, WorkspaceMember, WorkspaceRole
from docspace.models.subspace import Subspace, SubspaceMember, SubspaceRole, SubspaceType
from docspace.models.group import MemberGroup, MemberGroupUser
from docspace.models.document import Document
from docspace.models.permission import (
    DocumentPermission,
    PermissionLevel,
    SourceKind,
    SourcePriority,
)
