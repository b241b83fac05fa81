# SPDX-License-Identifier: GPL-3.0-or-later

from dataclasses import dataclass
from typing import Optional


@dataclass
class Note:
    id: str
    title: str
    content: str  # rich text markup
    owner_id: str
    created_at: str
    op_id: Optional[str] = None

    def matches(self, query: str) -> bool:
        """Case-insensitive substring match on title or content."""
        if not query:
            return True
        needle = query.casefold()
        return needle in self.title.casefold() or needle in self.content.casefold()
