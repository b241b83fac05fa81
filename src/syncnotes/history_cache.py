# SPDX-License-Identifier: GPL-3.0-or-later

import json
import logging
import os

from gi.repository import GLib

from syncnotes.constants import DATA_DIR_NAME
from syncnotes.history import HistoryEntry

logger = logging.getLogger(__name__)

# Key used for a draft that has no note id yet.
NEW_DRAFT_KEY = ''


class HistoryCache:
    """Client-side cache of undo histories, keyed by note id.

    Kept on disk so an editing session can be resumed after a restart.
    Never sent to the note backend.
    """

    def __init__(self, path=None):
        if path is None:
            path = os.path.join(
                GLib.get_user_cache_dir(), DATA_DIR_NAME, 'history.json'
            )
        self._path = path
        self._histories = {}
        self._load()

    def _load(self):
        if not os.path.exists(self._path):
            return
        try:
            with open(self._path, encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning('Discarding history cache %s: %s', self._path, e)
            return
        if isinstance(data, dict):
            self._histories = data

    def _flush(self):
        os.makedirs(os.path.dirname(os.path.abspath(self._path)), exist_ok=True)
        tmp_path = self._path + '.tmp'
        try:
            with open(tmp_path, 'w', encoding='utf-8') as f:
                json.dump(self._histories, f, ensure_ascii=False)
            os.replace(tmp_path, self._path)
        except OSError as e:
            logger.warning('Could not write history cache %s: %s', self._path, e)

    def store(self, note_key, entries, index):
        self._histories[note_key or NEW_DRAFT_KEY] = {
            'index': index,
            'entries': [
                {'content': e.content, 'timestamp': e.timestamp} for e in entries
            ],
        }
        self._flush()

    def lookup(self, note_key):
        """Return (entries, index) for note_key, or None."""
        raw = self._histories.get(note_key or NEW_DRAFT_KEY)
        if raw is None:
            return None
        try:
            entries = [
                HistoryEntry(content=e['content'], timestamp=e['timestamp'])
                for e in raw['entries']
            ]
            index = int(raw['index'])
        except (KeyError, TypeError, ValueError):
            logger.debug('Ignoring malformed cached history for %r', note_key)
            return None
        if not 0 <= index < len(entries):
            return None
        return entries, index

    def discard(self, note_key):
        if self._histories.pop(note_key or NEW_DRAFT_KEY, None) is not None:
            self._flush()
