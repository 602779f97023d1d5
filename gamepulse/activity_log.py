# gamepulse/activity_log.py

"""
Bounded operational activity log, newest entry first.
"""

import itertools
from collections import deque
from dataclasses import asdict, dataclass
from datetime import tzinfo
from typing import Any, Dict, Optional

from .clock import Clock


@dataclass(frozen=True)
class ActivityEntry:
    id: str
    source: str
    type: str
    title: str
    details: Optional[Dict[str, Any]]
    timestamp: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ActivityLog:
    """Keeps the most recent max_entries entries in memory."""

    def __init__(self, clock: Clock, max_entries: int = 200, tz: Optional[tzinfo] = None):
        self.max_entries = max_entries
        self._clock = clock
        self._tz = tz
        self._entries = deque(maxlen=max_entries)
        self._sequence = itertools.count(1)

    def add_entry(self, source: str, entry_type: str, title: str,
                  details: Optional[Dict[str, Any]] = None) -> ActivityEntry:
        now = self._clock.now()
        if self._tz is not None:
            now = now.astimezone(self._tz)
        entry = ActivityEntry(
            id=f"{int(now.timestamp() * 1000)}-{next(self._sequence)}",
            source=source,
            type=entry_type,
            title=title,
            details=details,
            timestamp=now.isoformat(),
        )
        self._entries.appendleft(entry)
        return entry

    def get_entries(self, limit: int = 50) -> Dict[str, Any]:
        entries = list(itertools.islice(self._entries, max(0, limit)))
        return {
            'entries': [entry.to_dict() for entry in entries],
            'total': len(self._entries),
        }

    def clear(self):
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
