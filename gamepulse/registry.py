# gamepulse/registry.py

"""
Seen-state registries.

SeenRegistry is the in-memory record of goal fingerprints per event; losing
it on restart only re-triggers back-fill suppression. DurableIdSet (and its
SentReminderRegistry flavour) is persisted after every mutation so a restart
does not repeat a reminder or a media announcement.
"""

import logging
from typing import Dict, Iterable, List, Set

from .persistence import JsonListStore

logger = logging.getLogger(__name__)


class SeenRegistry:
    """Per-event sets of goal fingerprints that have already been handled."""

    def __init__(self):
        self._seen: Dict[str, Set[str]] = {}

    def is_tracking(self, event_id: str) -> bool:
        return event_id in self._seen

    def initialize(self, event_id: str, fingerprints: Iterable[str]) -> int:
        """
        Start tracking an event with its current goals marked as seen.

        Returns:
            int: Number of fingerprints recorded
        """
        self._seen[event_id] = set(fingerprints)
        return len(self._seen[event_id])

    def contains(self, event_id: str, fingerprint: str) -> bool:
        return fingerprint in self._seen.get(event_id, ())

    def add(self, event_id: str, fingerprint: str) -> bool:
        """
        Mark a fingerprint as seen.

        Returns:
            bool: True if it was not seen before
        """
        seen = self._seen.setdefault(event_id, set())
        if fingerprint in seen:
            return False
        seen.add(fingerprint)
        return True

    def fingerprints(self, event_id: str) -> Set[str]:
        return set(self._seen.get(event_id, ()))

    @property
    def tracked_count(self) -> int:
        return len(self._seen)


class DurableIdSet:
    """
    Insertion-ordered id set persisted as a JSON array.

    The set is capped to the store's max_entries most recent ids and flushed
    synchronously after each addition. A failed flush is logged by the store
    and the in-memory set keeps working.
    """

    def __init__(self, store: JsonListStore):
        self._store = store
        self._ids: List[str] = []
        self._index: Set[str] = set()

    def load(self) -> int:
        ids = [str(item) for item in self._store.load()]
        self._ids = list(dict.fromkeys(ids))
        self._index = set(self._ids)
        logger.info(f"Loaded {len(self._ids)} ids from {self._store.path}")
        return len(self._ids)

    def contains(self, item_id: str) -> bool:
        return item_id in self._index

    __contains__ = contains

    def add(self, item_id: str) -> bool:
        """
        Add an id and flush to disk.

        Returns:
            bool: True if the id is recorded durably
        """
        if item_id in self._index:
            return True
        self._ids.append(item_id)
        self._index.add(item_id)
        capped = self._store.cap(self._ids)
        if len(capped) != len(self._ids):
            self._ids = capped
            self._index = set(capped)
        return self._store.save(self._ids)

    def ids(self) -> List[str]:
        return list(self._ids)

    def __len__(self) -> int:
        return len(self._ids)


class SentReminderRegistry(DurableIdSet):
    """Event ids whose pre-game reminder has already been dispatched."""

    def record(self, event_id: str) -> bool:
        return self.add(event_id)
