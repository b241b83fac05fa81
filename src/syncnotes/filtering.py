# SPDX-License-Identifier: GPL-3.0-or-later

from syncnotes.note import Note


def filter_notes(notes, query) -> list[Note]:
    """Notes whose title or content contains query, ignoring case.

    The empty query matches every note. Order is preserved.
    """
    if not query:
        return list(notes)
    return [note for note in notes if note.matches(query)]
