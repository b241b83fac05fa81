# SPDX-License-Identifier: GPL-3.0-or-later


class NoteBackendError(Exception):
    """Base class for failures reported by a note backend."""


class AuthMissing(NoteBackendError):
    """No authenticated user at the time of the action."""


class PersistenceFailure(NoteBackendError):
    """A list, insert, update or delete was rejected."""


class SubscriptionFailure(NoteBackendError):
    """The realtime change feed could not be opened."""
