import dataclasses

import pytest
from gi.repository import GLib

from syncnotes.backend import (
    DELETE,
    INSERT,
    UPDATE,
    ChangeEvent,
    NoteBackend,
    Subscription,
    User,
)
from syncnotes.errors import AuthMissing, PersistenceFailure, SubscriptionFailure
from syncnotes.note import Note
from syncnotes.note_store import NoteStore
from syncnotes.settings import Settings

USER_A = User(id='user-a', email='a@example.com')
USER_B = User(id='user-b', email='b@example.com')


class FakeBackend(NoteBackend):
    """In-memory backend that records every call.

    Change events are only pushed when echo_writes is set, and then
    synchronously from inside the write. on_write runs inside every
    insert/update, while the caller's save is still in flight.
    """

    def __init__(self, user=USER_A):
        self.user = user
        self.notes = {}
        self.calls = []
        self.callbacks = []
        self.echo_writes = False
        self.fail_writes = False
        self.fail_list = False
        self.fail_subscribe = False
        self.list_auth_lost = False
        self.write_auth_lost = False
        self.on_write = None
        self._counter = 0

    def add(self, title='', content='', owner_id=None):
        self._counter += 1
        note = Note(
            id=f'note-{self._counter}',
            title=title,
            content=content,
            owner_id=owner_id or self.user.id,
            created_at=f'2026-01-01T00:00:{self._counter:02d}',
        )
        self.notes[note.id] = note
        return note

    @property
    def writes(self):
        return [c for c in self.calls if c[0] in ('insert', 'update')]

    def push(self, event):
        for callback in list(self.callbacks):
            callback(event)

    def get_current_user(self):
        return self.user

    def list_notes(self, owner_id):
        self.calls.append(('list', owner_id))
        if self.list_auth_lost:
            raise AuthMissing('session expired')
        if self.fail_list:
            raise PersistenceFailure('list rejected')
        notes = [n for n in self.notes.values() if n.owner_id == owner_id]
        return sorted(notes, key=lambda n: n.created_at, reverse=True)

    def insert_note(self, fields):
        self.calls.append(('insert', dict(fields)))
        if self.write_auth_lost:
            raise AuthMissing('session expired')
        if self.fail_writes:
            raise PersistenceFailure('insert rejected')
        if self.on_write is not None:
            self.on_write()
        note = self.add(fields['title'], fields['content'], fields['owner_id'])
        note.op_id = fields.get('op_id')
        self._notify(INSERT, note)
        return note

    def update_note(self, note_id, fields):
        self.calls.append(('update', note_id, dict(fields)))
        if self.write_auth_lost:
            raise AuthMissing('session expired')
        if self.fail_writes:
            raise PersistenceFailure('update rejected')
        if note_id not in self.notes:
            raise PersistenceFailure(f'Note not found: {note_id}')
        if self.on_write is not None:
            self.on_write()
        note = dataclasses.replace(self.notes[note_id], **fields)
        self.notes[note_id] = note
        self._notify(UPDATE, note)
        return note

    def delete_note(self, note_id):
        self.calls.append(('delete', note_id))
        if self.write_auth_lost:
            raise AuthMissing('session expired')
        if self.fail_writes:
            raise PersistenceFailure('delete rejected')
        note = self.notes.pop(note_id, None)
        if note is None:
            raise PersistenceFailure(f'Note not found: {note_id}')
        self._notify(DELETE, note)

    def subscribe(self, table, callback):
        if self.fail_subscribe:
            raise SubscriptionFailure('channel closed')
        self.callbacks.append(callback)
        return Subscription(lambda: self.callbacks.remove(callback))

    def _notify(self, kind, note):
        if self.echo_writes:
            self.push(ChangeEvent(kind=kind, record=note))


@pytest.fixture()
def backend():
    return FakeBackend()


@pytest.fixture()
def settings(tmp_path):
    settings = Settings(path=str(tmp_path / 'settings.ini'))
    settings.set_int('autosave-delay-ms', 20)
    return settings


@pytest.fixture()
def store():
    store = NoteStore(':memory:')
    store.sign_in(USER_A)
    yield store
    store.close()


@pytest.fixture()
def run_main_loop():
    """Run the default main loop for timeout_ms milliseconds."""
    def run(timeout_ms):
        loop = GLib.MainLoop()
        GLib.timeout_add(timeout_ms, loop.quit)
        loop.run()
    return run


@pytest.fixture()
def drain_main_context():
    """Dispatch everything already queued on the default main context."""
    def drain():
        context = GLib.MainContext.default()
        while context.pending():
            context.iteration(False)
    return drain
