# SPDX-License-Identifier: GPL-3.0-or-later
"""
Editor session controller.

Owns the draft of the open note, its undo/redo history, the debounced
autosave and the reconciliation of realtime change events. The UI shell
drives it with plain method calls and listens to its signals:

    draft-reset(title, content)   editor must show a new title and content
    content-reset(content)        editor must show new content (undo/redo)
    notes-changed()               the note list changed
    selection-changed(note_id)    selected note, '' for a new draft
    save-failed(message)          a write was rejected by the backend
    auth-required()               there is no signed-in user
"""

import dataclasses
import logging
import uuid
from collections import deque
from dataclasses import dataclass
from typing import Optional

from gi.repository import GObject

from syncnotes.auto_save import AutoSave
from syncnotes.backend import DELETE, INSERT, UPDATE
from syncnotes.constants import NOTES_TABLE
from syncnotes.errors import AuthMissing, PersistenceFailure, SubscriptionFailure
from syncnotes.filtering import filter_notes
from syncnotes.history import EditHistory
from syncnotes.settings import Settings

logger = logging.getLogger(__name__)

# Operation ids remembered for recognising echoes of our own writes.
RECENT_OPS_LIMIT = 32


@dataclass
class Draft:
    note_id: Optional[str] = None
    title: str = ''
    content: str = ''


class EditorSession(GObject.Object):

    __gsignals__ = {
        'draft-reset': (GObject.SignalFlags.RUN_LAST, None, (str, str)),
        'content-reset': (GObject.SignalFlags.RUN_LAST, None, (str,)),
        'notes-changed': (GObject.SignalFlags.RUN_LAST, None, ()),
        'selection-changed': (GObject.SignalFlags.RUN_LAST, None, (str,)),
        'save-failed': (GObject.SignalFlags.RUN_LAST, None, (str,)),
        'auth-required': (GObject.SignalFlags.RUN_LAST, None, ()),
    }

    def __init__(self, backend, settings=None, history_cache=None):
        super().__init__()
        self._backend = backend
        self._settings = settings if settings is not None else Settings()
        self._history_cache = history_cache

        self._notes = []
        self._draft = Draft()
        self._history = EditHistory(
            max_entries=self._settings.get_int('history-limit'),
        )
        self._auto_save = AutoSave(
            self._save, self._settings.get_int('autosave-delay-ms'),
        )
        self._subscription = None
        self._save_in_flight = False
        self._recent_ops = deque(maxlen=RECENT_OPS_LIMIT)
        self._resetting_editor = False

        self._settings_handler = self._settings.connect(
            'changed', self._on_setting_changed,
        )

    # --- State ---

    @property
    def draft(self) -> Draft:
        return dataclasses.replace(self._draft)

    @property
    def notes(self):
        return list(self._notes)

    @property
    def history(self) -> EditHistory:
        return self._history

    @property
    def save_in_flight(self) -> bool:
        return self._save_in_flight

    @property
    def save_pending(self) -> bool:
        return self._auto_save.pending

    def visible_notes(self, query=''):
        return filter_notes(self._notes, query)

    # --- Lifecycle ---

    def load(self):
        """Fetch the user's notes, subscribe to changes, start a new draft."""
        user = self._backend.get_current_user()
        if user is None:
            logger.info('No signed-in user, login required')
            self.emit('auth-required')
            return False

        try:
            self._notes = self._backend.list_notes(user.id)
        except AuthMissing:
            logger.info('Session ended while loading notes')
            self.emit('auth-required')
            return False
        except PersistenceFailure as e:
            logger.warning('Could not fetch notes: %s', e)
            self._notes = []
        self.emit('notes-changed')

        if self._subscription is None:
            try:
                self._subscription = self._backend.subscribe(
                    NOTES_TABLE, self.handle_change,
                )
                logger.info('Subscribed to %s changes', NOTES_TABLE)
            except SubscriptionFailure as e:
                logger.warning('Realtime updates unavailable: %s', e)

        self.new_note()
        return True

    def close(self):
        self._auto_save.flush()
        self._cache_history()
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        if self._settings_handler is not None:
            self._settings.disconnect(self._settings_handler)
            self._settings_handler = None

    # --- Selection ---

    def select_note(self, note_id):
        note = self._find(note_id)
        if note is None:
            logger.debug('Cannot select unknown note %s', note_id)
            return False
        # The previous draft is saved before it is replaced.
        self._auto_save.flush()
        self._open_draft(Draft(note.id, note.title, note.content))
        return True

    def resume(self, note_id):
        """Select a note, restoring its cached undo history if still valid."""
        note = self._find(note_id)
        if note is None:
            logger.debug('Cannot resume unknown note %s', note_id)
            return False
        self._auto_save.flush()

        cached = None
        if self._caching_history():
            cached = self._history_cache.lookup(note.id)
            if cached is not None:
                entries, index = cached
                if entries[index].content != note.content:
                    logger.debug('Cached history for %s is stale', note.id)
                    cached = None
        self._open_draft(Draft(note.id, note.title, note.content), cached)
        return True

    def new_note(self):
        self._auto_save.flush()
        self._open_draft(Draft())

    def _open_draft(self, draft, cached_history=None):
        self._draft = draft
        if cached_history is not None:
            self._history.restore(*cached_history)
        else:
            self._history.reset(draft.content)
        self._cache_history()
        self._emit_editor_reset('draft-reset', draft.title, draft.content)
        self.emit('selection-changed', draft.note_id or '')

    # --- Local edits ---

    def set_title(self, title):
        if self._resetting_editor:
            return
        self._draft.title = title
        self.schedule_save()

    def edit_content(self, content):
        if self._resetting_editor:
            return
        self._draft.content = content
        self._history.record(content)
        self._cache_history()
        self.schedule_save()

    def undo(self):
        content = self._history.undo()
        if content is not None:
            self._apply_history_content(content)
        return content

    def redo(self):
        content = self._history.redo()
        if content is not None:
            self._apply_history_content(content)
        return content

    def _apply_history_content(self, content):
        self._draft.content = content
        self._cache_history()
        self._emit_editor_reset('content-reset', content)
        self.schedule_save()

    def _emit_editor_reset(self, signal_name, *args):
        # Change notifications from the editor surface caused by this
        # reset must not be taken for user edits.
        self._resetting_editor = True
        try:
            self.emit(signal_name, *args)
        finally:
            self._resetting_editor = False

    # --- Persistence ---

    def schedule_save(self):
        self._auto_save.schedule()

    def cancel_pending(self):
        self._auto_save.cancel()

    def save_now(self):
        self._auto_save.save_now()

    def _save(self):
        # Checked when the timer fires, the user may have signed out since.
        user = self._backend.get_current_user()
        if user is None:
            logger.debug('Skipping save, no signed-in user')
            return

        draft = self._draft
        op_id = uuid.uuid4().hex
        self._recent_ops.append(op_id)
        self._save_in_flight = True
        try:
            if draft.note_id is None:
                note = self._backend.insert_note({
                    'title': draft.title,
                    'content': draft.content,
                    'owner_id': user.id,
                    'op_id': op_id,
                })
            else:
                note = self._backend.update_note(draft.note_id, {
                    'title': draft.title,
                    'content': draft.content,
                    'op_id': op_id,
                })
        except AuthMissing:
            logger.debug('Skipping save, session ended')
            return
        except PersistenceFailure as e:
            logger.warning('Could not save note %s: %s', draft.note_id or '(new)', e)
            self.emit('save-failed', str(e))
            return
        finally:
            self._save_in_flight = False

        if draft.note_id is None:
            draft.note_id = note.id
            self._discard_cached_history(None)
            self._cache_history()
            self.emit('selection-changed', note.id)
        self._put_note(note, prepend=True)
        self.emit('notes-changed')

    def delete_note(self, note_id):
        try:
            self._backend.delete_note(note_id)
        except AuthMissing:
            logger.info('Cannot delete note %s, no signed-in user', note_id)
            self.emit('auth-required')
            return False
        except PersistenceFailure as e:
            logger.warning('Could not delete note %s: %s', note_id, e)
            self.emit('save-failed', str(e))
            return False

        if self._remove_note(note_id):
            self.emit('notes-changed')
        if note_id == self._draft.note_id:
            self._close_deleted_draft(note_id)
        return True

    def _close_deleted_draft(self, note_id):
        self._auto_save.cancel()
        self._discard_cached_history(note_id)
        self._open_draft(Draft())

    # --- Realtime ---

    def handle_change(self, event):
        note = event.record
        if event.kind == INSERT:
            self._put_note(note, prepend=True)
            self.emit('notes-changed')
        elif event.kind == UPDATE:
            if self._put_note(note, prepend=False):
                self.emit('notes-changed')
            if note.id == self._draft.note_id:
                self._apply_remote_update(note)
        elif event.kind == DELETE:
            if self._remove_note(note.id):
                self.emit('notes-changed')
            if note.id == self._draft.note_id:
                self._close_deleted_draft(note.id)

    def _apply_remote_update(self, note):
        if self._is_own_write(note):
            logger.debug('Ignoring echo of own save for %s', note.id)
            return
        # The remote version replaces the draft, an older pending save
        # would only write it back.
        self._auto_save.cancel()
        self._draft.title = note.title
        self._draft.content = note.content
        self._history.reset(note.content)
        self._cache_history()
        self._emit_editor_reset('draft-reset', note.title, note.content)

    def _is_own_write(self, note):
        if self._save_in_flight:
            return True
        return note.op_id is not None and note.op_id in self._recent_ops

    # --- Helpers ---

    def _find(self, note_id):
        for note in self._notes:
            if note.id == note_id:
                return note
        return None

    def _put_note(self, note, prepend):
        """Replace the listed note with the same id, else optionally prepend."""
        for i, listed in enumerate(self._notes):
            if listed.id == note.id:
                self._notes[i] = note
                return True
        if prepend:
            self._notes.insert(0, note)
            return True
        logger.debug('Ignoring change for unlisted note %s', note.id)
        return False

    def _remove_note(self, note_id):
        before = len(self._notes)
        self._notes = [n for n in self._notes if n.id != note_id]
        return len(self._notes) != before

    def _caching_history(self):
        return (
            self._history_cache is not None
            and self._settings.get_boolean('cache-history')
        )

    def _cache_history(self):
        if self._caching_history():
            self._history_cache.store(
                self._draft.note_id, *self._history.snapshot(),
            )

    def _discard_cached_history(self, note_id):
        if self._caching_history():
            self._history_cache.discard(note_id)

    def _on_setting_changed(self, settings, key):
        if key == 'autosave-delay-ms':
            self._auto_save.delay_ms = settings.get_int(key)
        elif key == 'history-limit':
            self._history.max_entries = settings.get_int(key)
