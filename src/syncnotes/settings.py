# SPDX-License-Identifier: GPL-3.0-or-later

import logging
import os

from gi.repository import GLib, GObject

from syncnotes.constants import AUTOSAVE_DELAY_MS, DATA_DIR_NAME, HISTORY_LIMIT

logger = logging.getLogger(__name__)

GROUP = 'editor'

DEFAULTS = {
    'autosave-delay-ms': AUTOSAVE_DELAY_MS,
    'history-limit': HISTORY_LIMIT,
    'cache-history': False,
}


class Settings(GObject.Object):
    """Process-wide editor settings stored in a GLib key file.

    Read once on construction, written back on every change.
    """

    __gsignals__ = {
        'changed': (GObject.SignalFlags.RUN_LAST, None, (str,)),
    }

    def __init__(self, path=None):
        super().__init__()
        if path is None:
            path = os.path.join(
                GLib.get_user_config_dir(), DATA_DIR_NAME, 'settings.ini'
            )
        self._path = path
        self._values = dict(DEFAULTS)
        self._load()

    @property
    def path(self):
        return self._path

    def _load(self):
        if not os.path.exists(self._path):
            return
        key_file = GLib.KeyFile()
        try:
            key_file.load_from_file(self._path, GLib.KeyFileFlags.NONE)
        except GLib.Error as e:
            logger.warning('Ignoring unreadable settings %s: %s', self._path, e.message)
            return
        if not key_file.has_group(GROUP):
            return

        for key, default in DEFAULTS.items():
            try:
                if isinstance(default, bool):
                    self._values[key] = key_file.get_boolean(GROUP, key)
                else:
                    self._values[key] = self._checked_int(
                        key, key_file.get_integer(GROUP, key)
                    )
            except GLib.Error:
                # Key missing or malformed, keep the default.
                continue
            except ValueError as e:
                logger.warning('Ignoring setting %s: %s', key, e)

    def _flush(self):
        key_file = GLib.KeyFile()
        for key, value in self._values.items():
            if isinstance(value, bool):
                key_file.set_boolean(GROUP, key, value)
            else:
                key_file.set_integer(GROUP, key, value)
        os.makedirs(os.path.dirname(os.path.abspath(self._path)), exist_ok=True)
        key_file.save_to_file(self._path)

    def _checked_int(self, key, value):
        if value < 0:
            raise ValueError(f'{key} must be >= 0, got {value}')
        return value

    def get_int(self, key) -> int:
        return self._values[key]

    def set_int(self, key, value):
        if isinstance(DEFAULTS[key], bool):
            raise TypeError(f'{key} is a boolean setting')
        value = self._checked_int(key, int(value))
        if self._values[key] == value:
            return
        self._values[key] = value
        self._flush()
        self.emit('changed', key)

    def get_boolean(self, key) -> bool:
        return self._values[key]

    def set_boolean(self, key, value):
        if not isinstance(DEFAULTS[key], bool):
            raise TypeError(f'{key} is an integer setting')
        value = bool(value)
        if self._values[key] == value:
            return
        self._values[key] = value
        self._flush()
        self.emit('changed', key)
