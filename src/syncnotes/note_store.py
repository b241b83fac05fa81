# SPDX-License-Identifier: GPL-3.0-or-later

import logging
import os
import sqlite3
import uuid
from collections import deque
from datetime import datetime, timezone

from gi.repository import GLib

from syncnotes.backend import (
    DELETE,
    INSERT,
    UPDATE,
    ChangeEvent,
    NoteBackend,
    Subscription,
)
from syncnotes.constants import DATA_DIR_NAME, NOTES_TABLE
from syncnotes.errors import AuthMissing, PersistenceFailure, SubscriptionFailure
from syncnotes.note import Note

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ('title', 'content', 'op_id')


class NoteStore(NoteBackend):
    """SQLite implementation of the note backend.

    Holds a local session in place of the hosted auth service and pushes
    change events to subscribers from the GLib main loop, one event at a
    time and in write order.
    """

    def __init__(self, db_path=None):
        if db_path is None:
            data_dir = os.path.join(GLib.get_user_data_dir(), DATA_DIR_NAME)
            os.makedirs(data_dir, exist_ok=True)
            db_path = os.path.join(data_dir, 'notes.db')

        self._db = sqlite3.connect(db_path)
        self._db.execute('PRAGMA journal_mode=WAL')
        self._db.row_factory = sqlite3.Row
        self._create_tables()

        self._user = None
        self._subscribers = {}
        self._pending_events = deque()
        self._dispatch_id = None
        self._closed = False

    def _create_tables(self):
        self._db.executescript('''
            CREATE TABLE IF NOT EXISTS notes (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL DEFAULT '',
                content TEXT NOT NULL DEFAULT '',
                owner_id TEXT NOT NULL,
                created_at TEXT NOT NULL,
                op_id TEXT
            );

            CREATE INDEX IF NOT EXISTS notes_owner
                ON notes (owner_id, created_at);
        ''')

    # --- Session ---

    def sign_in(self, user):
        self._user = user
        logger.info('Signed in as %s', user.id)

    def sign_out(self):
        self._user = None

    def get_current_user(self):
        return self._user

    def _require_user(self):
        if self._user is None:
            raise AuthMissing('No signed-in user')
        return self._user

    # --- Notes CRUD ---

    def list_notes(self, owner_id) -> list[Note]:
        try:
            rows = self._db.execute(
                'SELECT * FROM notes WHERE owner_id = ? '
                'ORDER BY created_at DESC, rowid DESC',
                (owner_id,),
            ).fetchall()
        except sqlite3.Error as e:
            raise PersistenceFailure(f'Could not list notes: {e}') from e
        return [self._row_to_note(row) for row in rows]

    def get_note(self, note_id):
        row = self._db.execute(
            'SELECT * FROM notes WHERE id = ?', (note_id,)
        ).fetchone()
        if row is None:
            return None
        return self._row_to_note(row)

    def insert_note(self, fields) -> Note:
        user = self._require_user()
        owner_id = fields.get('owner_id', user.id)
        if owner_id != user.id:
            raise PersistenceFailure('Cannot create a note for another user')

        note = Note(
            id=str(uuid.uuid4()),
            title=fields.get('title', ''),
            content=fields.get('content', ''),
            owner_id=owner_id,
            created_at=datetime.now(timezone.utc).isoformat(),
            op_id=fields.get('op_id'),
        )
        try:
            self._db.execute(
                'INSERT INTO notes (id, title, content, owner_id, created_at, op_id) '
                'VALUES (?, ?, ?, ?, ?, ?)',
                (note.id, note.title, note.content, note.owner_id,
                 note.created_at, note.op_id),
            )
            self._db.commit()
        except sqlite3.Error as e:
            raise PersistenceFailure(f'Could not create note: {e}') from e

        self._emit(INSERT, note)
        return note

    def update_note(self, note_id, fields) -> Note:
        unknown = set(fields) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f'Fields cannot be updated: {sorted(unknown)}')

        existing = self._get_owned(note_id)
        if not fields:
            return existing
        # Every write stamps its own op_id, or clears the previous one.
        fields = dict(fields)
        fields.setdefault('op_id', None)

        set_clause = ', '.join(f'{k} = ?' for k in fields)
        values = list(fields.values()) + [note_id]
        try:
            self._db.execute(
                f'UPDATE notes SET {set_clause} WHERE id = ?', values
            )
            self._db.commit()
        except sqlite3.Error as e:
            raise PersistenceFailure(f'Could not update note {note_id}: {e}') from e

        note = self.get_note(note_id)
        self._emit(UPDATE, note)
        return note

    def delete_note(self, note_id):
        note = self._get_owned(note_id)
        try:
            self._db.execute('DELETE FROM notes WHERE id = ?', (note_id,))
            self._db.commit()
        except sqlite3.Error as e:
            raise PersistenceFailure(f'Could not delete note {note_id}: {e}') from e

        self._emit(DELETE, note)

    def _get_owned(self, note_id) -> Note:
        user = self._require_user()
        try:
            note = self.get_note(note_id)
        except sqlite3.Error as e:
            raise PersistenceFailure(f'Could not read note {note_id}: {e}') from e
        # Same answer for missing and foreign notes.
        if note is None or note.owner_id != user.id:
            raise PersistenceFailure(f'Note not found: {note_id}')
        return note

    # --- Change feed ---

    def subscribe(self, table, callback) -> Subscription:
        if self._closed:
            raise SubscriptionFailure('Store is closed')
        if table != NOTES_TABLE:
            raise SubscriptionFailure(f'Unknown table: {table}')

        token = object()
        self._subscribers[token] = callback
        return Subscription(lambda: self._subscribers.pop(token, None))

    def _emit(self, kind, note):
        if not self._subscribers:
            return
        self._pending_events.append(ChangeEvent(kind=kind, record=note))
        if self._dispatch_id is None:
            self._dispatch_id = GLib.idle_add(self._dispatch_events)

    def _dispatch_events(self):
        self._dispatch_id = None
        while self._pending_events:
            event = self._pending_events.popleft()
            # Row level access: only the signed-in owner sees the change.
            if self._user is None or event.record.owner_id != self._user.id:
                continue
            for callback in list(self._subscribers.values()):
                callback(event)
        return GLib.SOURCE_REMOVE

    # --- Helpers ---

    def _row_to_note(self, row) -> Note:
        return Note(
            id=row['id'],
            title=row['title'],
            content=row['content'],
            owner_id=row['owner_id'],
            created_at=row['created_at'],
            op_id=row['op_id'],
        )

    def close(self):
        if self._dispatch_id is not None:
            GLib.source_remove(self._dispatch_id)
            self._dispatch_id = None
        self._pending_events.clear()
        self._subscribers.clear()
        self._closed = True
        self._db.close()
