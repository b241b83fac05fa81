import pytest

from syncnotes.backend import DELETE, INSERT, UPDATE
from syncnotes.errors import AuthMissing, PersistenceFailure, SubscriptionFailure
from syncnotes.note_store import NoteStore

from conftest import USER_A, USER_B


def test_insert_assigns_identity_and_owner(store):
    note = store.insert_note({'title': 't1', 'content': '<p>c1</p>', 'owner_id': USER_A.id})
    assert note.id
    assert note.created_at
    assert note.owner_id == USER_A.id
    assert store.get_note(note.id) == note


def test_list_is_newest_first_and_per_owner(store):
    first = store.insert_note({'title': 'first', 'owner_id': USER_A.id})
    second = store.insert_note({'title': 'second', 'owner_id': USER_A.id})
    store.sign_in(USER_B)
    store.insert_note({'title': 'other', 'owner_id': USER_B.id})

    assert [n.id for n in store.list_notes(USER_A.id)] == [second.id, first.id]
    assert [n.title for n in store.list_notes(USER_B.id)] == ['other']


def test_update_changes_only_given_fields(store):
    note = store.insert_note({'title': 't', 'content': 'c', 'owner_id': USER_A.id})

    updated = store.update_note(note.id, {'content': 'c2', 'op_id': 'op-1'})

    assert updated.title == 't'
    assert updated.content == 'c2'
    assert updated.op_id == 'op-1'
    assert updated.created_at == note.created_at


def test_update_without_op_id_clears_previous_one(store):
    note = store.insert_note({'title': 't', 'owner_id': USER_A.id, 'op_id': 'op-1'})
    store.update_note(note.id, {'content': 'c', 'op_id': 'op-2'})

    updated = store.update_note(note.id, {'content': 'c2'})

    assert updated.op_id is None
    assert store.get_note(note.id).op_id is None


def test_update_rejects_immutable_fields(store):
    note = store.insert_note({'title': 't', 'owner_id': USER_A.id})
    with pytest.raises(ValueError):
        store.update_note(note.id, {'owner_id': USER_B.id})


def test_writes_require_signed_in_user(store):
    note = store.insert_note({'title': 't', 'owner_id': USER_A.id})
    store.sign_out()

    with pytest.raises(AuthMissing):
        store.insert_note({'title': 'x', 'owner_id': USER_A.id})
    with pytest.raises(AuthMissing):
        store.update_note(note.id, {'title': 'x'})
    with pytest.raises(AuthMissing):
        store.delete_note(note.id)


def test_foreign_notes_look_missing(store):
    note = store.insert_note({'title': 't', 'owner_id': USER_A.id})
    store.sign_in(USER_B)

    with pytest.raises(PersistenceFailure):
        store.update_note(note.id, {'title': 'x'})
    with pytest.raises(PersistenceFailure):
        store.delete_note(note.id)
    with pytest.raises(PersistenceFailure):
        store.insert_note({'title': 'x', 'owner_id': USER_A.id})


def test_delete_missing_note_fails(store):
    with pytest.raises(PersistenceFailure):
        store.delete_note('nope')


def test_change_events_arrive_in_order_on_main_loop(store, drain_main_context):
    events = []
    store.subscribe('notes', events.append)

    note = store.insert_note({'title': 't', 'owner_id': USER_A.id})
    store.update_note(note.id, {'title': 't2'})
    store.delete_note(note.id)
    assert events == []

    drain_main_context()

    assert [e.kind for e in events] == [INSERT, UPDATE, DELETE]
    assert events[1].record.title == 't2'
    assert all(e.record.id == note.id for e in events)


def test_events_only_reach_the_owner(store, drain_main_context):
    events = []
    store.subscribe('notes', events.append)
    store.sign_in(USER_B)
    store.insert_note({'title': 'b', 'owner_id': USER_B.id})
    store.sign_in(USER_A)

    drain_main_context()

    assert events == []


def test_unsubscribe_stops_delivery(store, drain_main_context):
    events = []
    subscription = store.subscribe('notes', events.append)
    subscription.unsubscribe()
    assert not subscription.active

    store.insert_note({'title': 't', 'owner_id': USER_A.id})
    drain_main_context()

    assert events == []


def test_subscribe_failures():
    store = NoteStore(':memory:')
    with pytest.raises(SubscriptionFailure):
        store.subscribe('tags', lambda event: None)
    store.close()
    with pytest.raises(SubscriptionFailure):
        store.subscribe('notes', lambda event: None)


def test_file_database_persists(tmp_path):
    path = str(tmp_path / 'notes.db')
    store = NoteStore(path)
    store.sign_in(USER_A)
    note = store.insert_note({'title': 'kept', 'owner_id': USER_A.id})
    store.close()

    reopened = NoteStore(path)
    assert reopened.get_note(note.id).title == 'kept'
    reopened.close()
