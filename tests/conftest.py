"""
Shared pytest fixtures.

Provides:
- an in-memory SQLite database with the full schema, one per test
- a `make` factory for users, workspaces, subspaces, groups and documents
- an isolated permission event publisher that records what it receives
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from typing import Generator
from uuid import UUID

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from docspace.models import (
    Base,
    Document,
    MemberGroup,
    MemberGroupUser,
    Subspace,
    SubspaceMember,
    SubspaceRole,
    SubspaceType,
    User,
    Workspace,
    WorkspaceMember,
    WorkspaceRole,
)
from docspace.schemas.document import DocumentCreate
from docspace.schemas.event import PermissionEvent
from docspace.services.document_service import create_document
from docspace.services.permission_event_service import PermissionEventPublisher


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)


@pytest.fixture
def db(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


# ============================================================================
# Events
# ============================================================================

class RecordingPublisher(PermissionEventPublisher):
    def __init__(self) -> None:
        super().__init__()
        self.received: list[PermissionEvent] = []
        self.subscribe(self.received.append)

    def names(self) -> list[str]:
        return [event.name.value for event in self.received]


@pytest.fixture
def events() -> RecordingPublisher:
    return RecordingPublisher()


# ============================================================================
# Data Factories
# ============================================================================

class Factory:
    def __init__(self, db: Session):
        self.db = db
        self._counter = 0

    def _next(self) -> int:
        self._counter += 1
        return self._counter

    def user(self, name: str | None = None) -> User:
        n = self._next()
        name = name or f"user{n}"
        user = User(email=f"{name}.{n}@example.com", display_name=name)
        self.db.add(user)
        self.db.commit()
        return user

    def workspace(self, owner: User | None = None, name: str = "Workspace") -> Workspace:
        workspace = Workspace(name=name)
        self.db.add(workspace)
        self.db.flush()
        if owner is not None:
            self.db.add(WorkspaceMember(workspace_id=workspace.id, user_id=owner.id, role=WorkspaceRole.OWNER))
        self.db.commit()
        return workspace

    def member(self, workspace: Workspace, user: User, role: WorkspaceRole = WorkspaceRole.MEMBER) -> WorkspaceMember:
        member = WorkspaceMember(workspace_id=workspace.id, user_id=user.id, role=role)
        self.db.add(member)
        self.db.commit()
        return member

    def subspace(
        self,
        workspace: Workspace,
        type: SubspaceType = SubspaceType.PUBLIC,
        members: dict[UUID, SubspaceRole] | None = None,
        name: str = "Subspace",
    ) -> Subspace:
        subspace = Subspace(workspace_id=workspace.id, name=name, type=type)
        self.db.add(subspace)
        self.db.flush()
        for user_id, role in (members or {}).items():
            self.db.add(SubspaceMember(subspace_id=subspace.id, user_id=user_id, role=role))
        self.db.commit()
        return subspace

    def group(self, workspace: Workspace, members: list[User], name: str = "Group") -> MemberGroup:
        group = MemberGroup(workspace_id=workspace.id, name=name)
        self.db.add(group)
        self.db.flush()
        for user in members:
            self.db.add(MemberGroupUser(group_id=group.id, user_id=user.id))
        self.db.commit()
        return group

    def doc(
        self,
        author: User,
        workspace: Workspace,
        *,
        parent: Document | None = None,
        subspace: Subspace | None = None,
        title: str | None = None,
        is_workspace_public: bool = False,
    ) -> Document:
        """Create through the document service, initial records included."""
        payload = DocumentCreate(
            workspace_id=workspace.id,
            title=title or f"Doc {self._next()}",
            parent_id=parent.id if parent else None,
            subspace_id=subspace.id if subspace else None,
            is_workspace_public=is_workspace_public,
        )
        return create_document(self.db, author_id=author.id, payload=payload)

    def raw_doc(
        self,
        author: User,
        workspace: Workspace,
        *,
        parent_id: UUID | None = None,
        subspace: Subspace | None = None,
        title: str | None = None,
    ) -> Document:
        """Insert a bare row: no permission records, no hierarchy checks."""
        doc = Document(
            workspace_id=workspace.id,
            author_id=author.id,
            parent_id=parent_id,
            subspace_id=subspace.id if subspace else None,
            title=title or f"Raw {self._next()}",
        )
        self.db.add(doc)
        self.db.commit()
        return doc


@pytest.fixture
def make(db) -> Factory:
    return Factory(db)


@pytest.fixture
def alice(make) -> User:
    return make.user("alice")


@pytest.fixture
def bob(make) -> User:
    return make.user("bob")


@pytest.fixture
def carol(make) -> User:
    return make.user("carol")


@pytest.fixture
def workspace(make, alice, bob, carol) -> Workspace:
    workspace = make.workspace(owner=alice)
    make.member(workspace, bob)
    make.member(workspace, carol)
    return workspace


@pytest.fixture
def subspace(make, workspace, alice, bob, carol) -> Subspace:
    return make.subspace(
        workspace,
        SubspaceType.PUBLIC,
        members={
            alice.id: SubspaceRole.ADMIN,
            bob.id: SubspaceRole.MEMBER,
            carol.id: SubspaceRole.MEMBER,
        },
    )
