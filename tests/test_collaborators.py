import uuid

import pytest

from docspace.models import PermissionLevel, SubspaceRole, SubspaceType
from docspace.schemas.permission import ResolutionSource
from docspace.services.collaborator_service import list_collaborators, list_shared_with_me
from docspace.services.exceptions import DocumentNotFoundError
from docspace.services.propagation_service import share_document


def entries_for(collaborators, principal_id):
    return [entry for entry in collaborators if entry.principal.id == principal_id]


def test_user_listed_once_from_nearest_ancestor(db, make, workspace, subspace, alice, bob, events):
    grandparent = make.doc(alice, workspace, subspace=subspace)
    parent = make.doc(alice, workspace, parent=grandparent, title="Parent")
    child = make.doc(alice, workspace, parent=parent)
    share_document(db, actor_id=alice.id, document_id=grandparent.id, level=PermissionLevel.READ, user_ids=[bob.id], events=events)
    share_document(db, actor_id=alice.id, document_id=parent.id, level=PermissionLevel.EDIT, user_ids=[bob.id], events=events)

    bobs = entries_for(list_collaborators(db, child.id, alice.id), bob.id)

    assert len(bobs) == 1
    assert bobs[0].level == PermissionLevel.EDIT
    assert bobs[0].source == ResolutionSource.INHERITED
    assert bobs[0].source_doc_id == parent.id
    assert bobs[0].source_doc_title == "Parent"


def test_direct_entry_flags_the_inherited_grant_it_overrides(db, make, workspace, subspace, alice, bob, events):
    parent = make.doc(alice, workspace, subspace=subspace)
    child = make.doc(alice, workspace, parent=parent)
    share_document(db, actor_id=alice.id, document_id=parent.id, level=PermissionLevel.EDIT, user_ids=[bob.id], events=events)
    share_document(db, actor_id=alice.id, document_id=child.id, level=PermissionLevel.READ, user_ids=[bob.id], events=events)

    [entry] = entries_for(list_collaborators(db, child.id, alice.id), bob.id)

    assert entry.source == ResolutionSource.DIRECT
    assert entry.level == PermissionLevel.READ
    assert entry.has_parent_permission is True
    assert entry.parent_permission_source.level == PermissionLevel.EDIT
    assert entry.parent_permission_source.source_doc_id == parent.id
    assert entry.granted_by_id == alice.id


def test_requesting_user_always_present(db, make, workspace, subspace, alice, carol):
    doc = make.doc(alice, workspace, subspace=subspace)

    collaborators = list_collaborators(db, doc.id, carol.id)

    assert collaborators[0].principal.id == carol.id
    assert collaborators[0].level == PermissionLevel.NONE
    assert len(entries_for(collaborators, alice.id)) == 1


def test_groups_are_listed_with_member_count(db, make, workspace, subspace, alice, bob, carol, events):
    parent = make.doc(alice, workspace, subspace=subspace)
    child = make.doc(alice, workspace, parent=parent)
    group = make.group(workspace, [bob, carol], name="Editors")
    share_document(db, actor_id=alice.id, document_id=parent.id, level=PermissionLevel.EDIT, group_ids=[group.id], events=events)

    on_parent = entries_for(list_collaborators(db, parent.id, alice.id), group.id)
    on_child = entries_for(list_collaborators(db, child.id, alice.id), group.id)

    assert [(e.principal.type, e.principal.name, e.principal.member_count) for e in on_parent] == [("group", "Editors", 2)]
    assert on_parent[0].source == ResolutionSource.DIRECT
    assert on_child[0].source == ResolutionSource.INHERITED
    assert on_child[0].source_doc_id == parent.id
    # group members are represented by the group entry only
    assert entries_for(list_collaborators(db, child.id, alice.id), bob.id) == []


def test_list_collaborators_unknown_document(db, alice):
    with pytest.raises(DocumentNotFoundError):
        list_collaborators(db, uuid.uuid4(), alice.id)


def test_shared_with_me_hides_documents_under_a_shared_ancestor(db, make, workspace, subspace, alice, bob, events):
    personal = make.subspace(workspace, SubspaceType.PERSONAL, members={alice.id: SubspaceRole.ADMIN})
    top = make.doc(alice, workspace, subspace=personal, title="Top")
    nested = make.doc(alice, workspace, parent=top)
    share_document(db, actor_id=alice.id, document_id=top.id, level=PermissionLevel.READ, user_ids=[bob.id], events=events)
    share_document(db, actor_id=alice.id, document_id=nested.id, level=PermissionLevel.EDIT, user_ids=[bob.id], events=events)

    # bob can reach this one through the subspace tree already
    reachable = make.doc(alice, workspace, subspace=subspace)
    share_document(db, actor_id=alice.id, document_id=reachable.id, level=PermissionLevel.READ, user_ids=[bob.id], events=events)

    page = list_shared_with_me(db, bob.id, workspace_id=workspace.id)

    assert page.total == 1
    assert page.page_count == 1
    assert [doc.id for doc in page.documents] == [top.id]
    assert page.documents[0].author_id == alice.id


def test_shared_with_me_empty(db, bob):
    page = list_shared_with_me(db, bob.id)
    assert page.total == 0
    assert page.documents == []


def test_requesting_user_with_a_share_is_moved_to_the_front(db, make, workspace, subspace, alice, bob, carol, events):
    doc = make.doc(alice, workspace, subspace=subspace)
    share_document(db, actor_id=alice.id, document_id=doc.id, level=PermissionLevel.READ, user_ids=[carol.id, bob.id], events=events)

    collaborators = list_collaborators(db, doc.id, bob.id)

    assert collaborators[0].principal.id == bob.id
    assert collaborators[0].level == PermissionLevel.READ
    assert collaborators[0].source == ResolutionSource.DIRECT
    assert len(entries_for(collaborators, bob.id)) == 1
