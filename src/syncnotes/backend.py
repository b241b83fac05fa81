# SPDX-License-Identifier: GPL-3.0-or-later
"""
Contract of the storage/auth/realtime collaborator.

The hosted platform owns persistence, authentication and change
notification. The editor only ever talks to it through NoteBackend.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional

from syncnotes.note import Note

INSERT = 'insert'
UPDATE = 'update'
DELETE = 'delete'

EVENT_KINDS = (INSERT, UPDATE, DELETE)


@dataclass(frozen=True)
class User:
    id: str
    email: str = ''


@dataclass(frozen=True)
class ChangeEvent:
    kind: str
    record: Note

    def __post_init__(self):
        if self.kind not in EVENT_KINDS:
            raise ValueError(f'Unknown change kind: {self.kind!r}')


class Subscription:
    """Handle returned by NoteBackend.subscribe."""

    def __init__(self, unsubscribe_callback):
        self._unsubscribe_callback = unsubscribe_callback
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self):
        if not self._active:
            return
        self._active = False
        self._unsubscribe_callback()


class NoteBackend(ABC):

    @abstractmethod
    def get_current_user(self) -> Optional[User]: ...

    @abstractmethod
    def list_notes(self, owner_id: str) -> list[Note]:
        """Notes owned by owner_id, newest first."""

    @abstractmethod
    def insert_note(self, fields: dict) -> Note:
        """Create a note. The backend assigns id and created_at."""

    @abstractmethod
    def update_note(self, note_id: str, fields: dict) -> Note: ...

    @abstractmethod
    def delete_note(self, note_id: str) -> None: ...

    @abstractmethod
    def subscribe(
        self, table: str, callback: Callable[[ChangeEvent], None]
    ) -> Subscription: ...
