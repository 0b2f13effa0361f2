# docspace/services/role_fallback_service.py
"""
Role-derived defaults for users without any explicit record on a document
or its ancestors.
"""

from uuid import UUID

from sqlalchemy.orm import Session

from docspace.models.group import MemberGroup, MemberGroupUser
from docspace.models.permission import PermissionLevel, SourcePriority
from docspace.models.subspace import Subspace, SubspaceMember, SubspaceRole, SubspaceType
from docspace.models.user import User
from docspace.models.workspace import WorkspaceMember, WorkspaceRole
from docspace.schemas.permission import DocumentContext, RoleGrant
from docspace.services.exceptions import GroupNotFoundError, UserNotFoundError


def get_workspace_role(db: Session, user_id: UUID, workspace_id: UUID) -> WorkspaceRole | None:
    member = (
        db.query(WorkspaceMember)
        .filter(
            WorkspaceMember.user_id == user_id,
            WorkspaceMember.workspace_id == workspace_id,
        )
        .first()
    )
    return member.role if member else None


def get_subspace_role(db: Session, user_id: UUID, subspace_id: UUID) -> SubspaceRole | None:
    member = (
        db.query(SubspaceMember)
        .filter(
            SubspaceMember.user_id == user_id,
            SubspaceMember.subspace_id == subspace_id,
        )
        .first()
    )
    return member.role if member else None


def get_subspace_type(db: Session, subspace_id: UUID) -> SubspaceType | None:
    row = db.query(Subspace.type).filter(Subspace.id == subspace_id).first()
    return row[0] if row else None


def get_group_member_ids(db: Session, group_id: UUID) -> list[UUID]:
    """
    Raises GroupNotFoundError for an unknown group; an existing group with no
    members returns [].
    """
    if db.get(MemberGroup, group_id) is None:
        raise GroupNotFoundError("Group not found")
    rows = db.query(MemberGroupUser.user_id).filter(MemberGroupUser.group_id == group_id).all()
    return [row[0] for row in rows]


def require_users(db: Session, user_ids: list[UUID]) -> None:
    """Raise UserNotFoundError unless every id names an existing user."""
    if not user_ids:
        return
    found = {row[0] for row in db.query(User.id).filter(User.id.in_(user_ids)).all()}
    if set(user_ids) - found:
        raise UserNotFoundError("User not found")


def role_fallback(db: Session, user_id: UUID, context: DocumentContext) -> RoleGrant:
    """
    Defaults applied when no DIRECT/GROUP record exists on the document or
    any ancestor.

    - PERSONAL subspace: its owner (the single member) gets MANAGE, everybody
      else NONE, and workspace admins get no trash rights there.
    - Workspace OWNER/ADMIN: delete/restore/permanent-delete rights across the
      workspace, without content rights.
    - Subspace ADMIN: the same trash rights, scoped to that subspace.
    - Workspace members may READ documents flagged is_workspace_public.
    """
    subspace_type = get_subspace_type(db, context.subspace_id) if context.subspace_id else None
    subspace_role = get_subspace_role(db, user_id, context.subspace_id) if context.subspace_id else None

    if subspace_type == SubspaceType.PERSONAL:
        if subspace_role is not None:
            return RoleGrant(
                level=PermissionLevel.MANAGE,
                can_manage_trash=True,
                priority=SourcePriority.SUBSPACE_ADMIN,
            )
        return RoleGrant()

    workspace_role = get_workspace_role(db, user_id, context.workspace_id)

    grant = RoleGrant()
    if workspace_role in (WorkspaceRole.OWNER, WorkspaceRole.ADMIN):
        grant.can_manage_trash = True
        grant.priority = SourcePriority.WORKSPACE_ADMIN
    if subspace_role == SubspaceRole.ADMIN:
        grant.can_manage_trash = True
        grant.priority = SourcePriority.SUBSPACE_ADMIN

    if workspace_role is not None and context.is_workspace_public:
        grant.level = PermissionLevel.READ
        if grant.priority == SourcePriority.NONE:
            grant.priority = SourcePriority.WORKSPACE_MEMBER

    return grant
