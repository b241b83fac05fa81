# SPDX-License-Identifier: GPL-3.0-or-later
"""
Linear undo/redo history over the editor content.

Every entry is a full snapshot of the editor markup. A new edit after an
undo discards the redo branch.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class HistoryEntry:
    content: str
    timestamp: str


def _entry(content) -> HistoryEntry:
    return HistoryEntry(content=content, timestamp=datetime.now().isoformat())


class EditHistory:

    def __init__(self, seed='', max_entries=0):
        self._max_entries = max_entries
        self._entries = [_entry(seed)]
        self._index = 0

    @property
    def entries(self) -> list[HistoryEntry]:
        return list(self._entries)

    @property
    def index(self) -> int:
        return self._index

    @property
    def current(self) -> str:
        return self._entries[self._index].content

    @property
    def can_undo(self) -> bool:
        return self._index > 0

    @property
    def can_redo(self) -> bool:
        return self._index < len(self._entries) - 1

    @property
    def max_entries(self) -> int:
        return self._max_entries

    @max_entries.setter
    def max_entries(self, value):
        if value < 0:
            raise ValueError('max_entries must be >= 0')
        self._max_entries = value
        self._trim()

    def __len__(self):
        return len(self._entries)

    def record(self, content):
        """Append a snapshot after the cursor, dropping any redo branch."""
        del self._entries[self._index + 1:]
        self._entries.append(_entry(content))
        self._index = len(self._entries) - 1
        self._trim()

    def undo(self) -> Optional[str]:
        if self._index <= 0:
            return None
        self._index -= 1
        return self._entries[self._index].content

    def redo(self) -> Optional[str]:
        if self._index >= len(self._entries) - 1:
            return None
        self._index += 1
        return self._entries[self._index].content

    def reset(self, seed=''):
        self._entries = [_entry(seed)]
        self._index = 0

    def snapshot(self):
        """Return (entries, index) for restore()."""
        return list(self._entries), self._index

    def restore(self, entries, index):
        """Replace the whole history, e.g. from a cached session."""
        entries = list(entries)
        if not entries:
            raise ValueError('history needs at least one entry')
        if not 0 <= index < len(entries):
            raise ValueError(f'history index {index} out of range')
        self._entries = entries
        self._index = index
        self._trim()

    def _trim(self):
        # Oldest entries go first; the cursor follows its entry.
        if not self._max_entries:
            return
        overflow = len(self._entries) - self._max_entries
        if overflow <= 0:
            return
        dropped = min(overflow, self._index)
        del self._entries[:dropped]
        self._index -= dropped
        del self._entries[self._max_entries:]
