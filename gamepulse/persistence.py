# gamepulse/persistence.py

"""
JSON list persistence.

Small durable lists (sent reminders, seen media, the notification error log)
are stored as JSON arrays. Writes go through a temporary file and a rename so
a crash never leaves a half-written file. I/O problems are logged and the
caller keeps working with its in-memory state.
"""

import json
import logging
import os
from typing import Any, List, Optional, Sequence

logger = logging.getLogger(__name__)


class JsonListStore:
    """
    Load and save a capped JSON array.

    Args:
        path: File location
        max_entries: Length cap applied on save (None for no cap)
        newest_first: True when index 0 holds the newest entry; the cap then
            keeps the head of the list instead of the tail
    """

    def __init__(self, path: str, max_entries: Optional[int] = None, newest_first: bool = False):
        self.path = path
        self.max_entries = max_entries
        self.newest_first = newest_first

    def load(self) -> List[Any]:
        if not os.path.exists(self.path):
            return []
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Error reading {self.path}: {e}")
            return []
        if not isinstance(data, list):
            logger.warning(f"Ignoring {self.path}: expected a JSON array")
            return []
        return self.cap(data)

    def save(self, items: Sequence[Any]) -> bool:
        """
        Persist the list.

        Returns:
            bool: False if the write failed (the error is logged)
        """
        data = self.cap(items)
        tmp_path = f"{self.path}.tmp"
        try:
            directory = os.path.dirname(self.path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(tmp_path, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self.path)
            return True
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Error saving {self.path}: {e}")
            return False

    def cap(self, items: Sequence[Any]) -> List[Any]:
        items = list(items)
        if self.max_entries is None or len(items) <= self.max_entries:
            return items
        if self.newest_first:
            return items[:self.max_entries]
        return items[-self.max_entries:]
