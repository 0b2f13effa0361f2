import uuid

import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from docspace.core.database import get_db
from docspace.dependencies.authz import require_document_action
from docspace.models import Document, PermissionLevel, SubspaceRole, SubspaceType, WorkspaceRole
from docspace.schemas.permission import Action
from docspace.services.permission_resolution_service import abilities_for, load_context
from docspace.services.propagation_service import share_document


def allowed(abilities):
    return {action for action, ok in abilities.items() if ok}


@pytest.mark.parametrize(
    "level, expected",
    [
        (PermissionLevel.READ, {Action.READ}),
        (PermissionLevel.COMMENT, {Action.READ, Action.COMMENT}),
        (
            PermissionLevel.EDIT,
            {Action.READ, Action.COMMENT, Action.UPDATE, Action.PUBLISH, Action.DUPLICATE},
        ),
        (PermissionLevel.MANAGE, set(Action)),
    ],
)
def test_abilities_follow_level_thresholds(db, make, workspace, subspace, alice, bob, events, level, expected):
    doc = make.doc(alice, workspace, subspace=subspace)
    share_document(db, actor_id=alice.id, document_id=doc.id, level=level, user_ids=[bob.id], events=events)

    assert allowed(abilities_for(db, bob.id, load_context(db, doc.id))) == expected


def test_workspace_admin_gets_trash_rights_only(db, make, workspace, subspace, alice):
    admin = make.user("admin")
    make.member(workspace, admin, WorkspaceRole.ADMIN)
    doc = make.doc(alice, workspace, subspace=subspace)

    assert allowed(abilities_for(db, admin.id, load_context(db, doc.id))) == {
        Action.DELETE,
        Action.RESTORE,
        Action.PERMANENT_DELETE,
    }


def test_no_context_means_no_abilities(db, bob):
    assert allowed(abilities_for(db, bob.id, None)) == set()


def test_personal_subspace_rules(db, make, workspace, alice, bob, carol, events):
    personal = make.subspace(workspace, SubspaceType.PERSONAL, members={bob.id: SubspaceRole.ADMIN})
    doc = make.doc(bob, workspace, subspace=personal)
    share_document(db, actor_id=bob.id, document_id=doc.id, level=PermissionLevel.MANAGE, user_ids=[carol.id], events=events)
    context = load_context(db, doc.id)

    # workspace owner: no trash rights inside someone's personal subspace
    assert allowed(abilities_for(db, alice.id, context)) == set()

    carol_can = abilities_for(db, carol.id, context)
    assert carol_can[Action.MOVE] is True
    assert carol_can[Action.SHARE] is False
    assert abilities_for(db, bob.id, context)[Action.SHARE] is True


@pytest.fixture
def client(db):
    app = FastAPI()

    @app.patch("/documents/{document_id}")
    def update_document(document: Document = Depends(require_document_action(Action.UPDATE))):
        return {"id": str(document.id)}

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)


def test_require_action_allows_editors(client, db, make, workspace, subspace, alice, bob, events):
    doc = make.doc(alice, workspace, subspace=subspace)
    share_document(db, actor_id=alice.id, document_id=doc.id, level=PermissionLevel.EDIT, user_ids=[bob.id], events=events)

    response = client.patch(f"/documents/{doc.id}", headers={"X-User-Id": str(bob.id)})

    assert response.status_code == 200
    assert response.json() == {"id": str(doc.id)}


def test_require_action_forbids_readers(client, db, make, workspace, subspace, alice, bob, events):
    doc = make.doc(alice, workspace, subspace=subspace)
    share_document(db, actor_id=alice.id, document_id=doc.id, level=PermissionLevel.READ, user_ids=[bob.id], events=events)

    response = client.patch(f"/documents/{doc.id}", headers={"X-User-Id": str(bob.id)})

    assert response.status_code == 403
    assert response.json() == {"detail": "Forbidden"}


def test_require_action_unknown_document(client, alice):
    response = client.patch(f"/documents/{uuid.uuid4()}", headers={"X-User-Id": str(alice.id)})
    assert response.status_code == 404


@pytest.mark.parametrize("header", [None, "not-a-uuid", str(uuid.uuid4())])
def test_require_action_needs_a_known_user(client, make, workspace, subspace, alice, header):
    doc = make.doc(alice, workspace, subspace=subspace)
    headers = {"X-User-Id": header} if header else {}

    response = client.patch(f"/documents/{doc.id}", headers=headers)

    assert response.status_code == 401
    assert response.json() == {"detail": "Not authenticated"}
