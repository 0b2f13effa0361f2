import uuid

import pytest

from docspace.services.document_service import move_document
from docspace.services.exceptions import SubspaceNotFoundError
from docspace.services.navigation_service import build_navigation_tree
from docspace.services.trash_service import soft_delete_document
from docspace.utils.datetime_utils import utc_now


def outline(nodes):
    return [(node.title, outline(node.children)) for node in nodes]


def published_raw(make, db, author, workspace, subspace, **kwargs):
    doc = make.raw_doc(author, workspace, subspace=subspace, **kwargs)
    doc.published_at = utc_now()
    db.commit()
    return doc


def test_tree_follows_parents_and_positions(db, make, workspace, subspace, alice, events):
    guide = make.doc(alice, workspace, subspace=subspace, title="Guide")
    make.doc(alice, workspace, parent=guide, title="Install")
    usage = make.doc(alice, workspace, parent=guide, title="Usage")
    make.doc(alice, workspace, subspace=subspace, title="FAQ")
    move_document(db, actor_id=alice.id, document_id=usage.id, parent_id=guide.id, index=0, events=events)

    tree = build_navigation_tree(db, subspace.id)

    assert outline(tree) == [
        ("Guide", [("Usage", []), ("Install", [])]),
        ("FAQ", []),
    ]
    assert tree[0].url == f"/{guide.id}"


def test_hidden_documents_take_their_subtree_with_them(db, make, workspace, subspace, alice):
    archived = make.doc(alice, workspace, subspace=subspace, title="Archived")
    make.doc(alice, workspace, parent=archived, title="Under archived")
    trashed = make.doc(alice, workspace, subspace=subspace, title="Trashed")
    make.doc(alice, workspace, subspace=subspace, title="Visible")
    make.raw_doc(alice, workspace, subspace=subspace, title="Draft")

    archived.archived_at = utc_now()
    db.commit()
    soft_delete_document(db, actor_id=alice.id, document_id=trashed.id)

    assert outline(build_navigation_tree(db, subspace.id)) == [("Visible", [])]


def test_dangling_parent_lands_at_root(db, make, workspace, subspace, alice, caplog):
    published_raw(make, db, alice, workspace, subspace, parent_id=uuid.uuid4(), title="Orphan")

    with caplog.at_level("WARNING"):
        tree = build_navigation_tree(db, subspace.id)

    assert outline(tree) == [("Orphan", [])]
    assert "dangling parent" in caplog.text


def test_parent_cycle_is_dropped(db, make, workspace, subspace, alice, caplog):
    a = published_raw(make, db, alice, workspace, subspace, title="A")
    b = published_raw(make, db, alice, workspace, subspace, parent_id=a.id, title="B")
    a.parent_id = b.id
    db.commit()
    published_raw(make, db, alice, workspace, subspace, title="Fine")

    with caplog.at_level("WARNING"):
        tree = build_navigation_tree(db, subspace.id)

    assert outline(tree) == [("Fine", [])]
    assert "parent cycle" in caplog.text


def test_unknown_subspace(db):
    with pytest.raises(SubspaceNotFoundError):
        build_navigation_tree(db, uuid.uuid4())
