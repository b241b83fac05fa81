# SPDX-License-Identifier: GPL-3.0-or-later

DATA_DIR_NAME = 'syncnotes'

NOTES_TABLE = 'notes'

AUTOSAVE_DELAY_MS = 1000

# 0 keeps the undo history unbounded.
HISTORY_LIMIT = 0
