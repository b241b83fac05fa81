# SPDX-License-Identifier: GPL-3.0-or-later

from gi.repository import GLib

from syncnotes.constants import AUTOSAVE_DELAY_MS


class AutoSave:
    """Trailing-edge debounce of draft saves on the GLib main loop.

    Only the last schedule() in a burst of edits reaches the save
    callback, delay_ms after that edit.
    """

    def __init__(self, save, delay_ms=AUTOSAVE_DELAY_MS):
        self._save = save
        self._delay_ms = delay_ms
        self._source_id = None

    @property
    def delay_ms(self):
        return self._delay_ms

    @delay_ms.setter
    def delay_ms(self, value):
        if value < 0:
            raise ValueError('delay_ms must be >= 0')
        # Applies to the next schedule(); a pending timer keeps its delay.
        self._delay_ms = value

    @property
    def pending(self):
        return self._source_id is not None

    def schedule(self):
        """Restart the countdown to the next save."""
        self.cancel()
        self._source_id = GLib.timeout_add(self._delay_ms, self._on_timeout)

    def cancel(self):
        if self._source_id is None:
            return
        GLib.source_remove(self._source_id)
        self._source_id = None

    def save_now(self):
        """Drop the countdown and save right away, pending or not."""
        self.cancel()
        self._save()

    def flush(self):
        """Run the pending save now, if there is one."""
        if self.pending:
            self.save_now()

    def _on_timeout(self):
        self._source_id = None
        self._save()
        return GLib.SOURCE_REMOVE
