"""Ordered stops of one route, kept dense.

Every mutating method leaves ``order`` equal to ``index + 1`` for each entry.
Persistence always takes the whole recomputed list (``records``), never a
diff of individual positions.
"""
from __future__ import annotations

from typing import Iterable, Iterator, List, Optional, Set, Tuple

from fleet_admin.route_builder.models import (
    ConfirmedLink,
    LinkRecord,
    SequenceEntry,
    Stop,
)


class RouteStopSequence:
    def __init__(self, route_id: str, entries: Iterable[SequenceEntry] = ()) -> None:
        self.route_id = route_id
        self._entries: List[SequenceEntry] = sorted(entries, key=lambda e: e.order)

    @classmethod
    def from_records(cls, route_id: str, rows: Iterable[Tuple[LinkRecord, Stop]]) -> 'RouteStopSequence':
        return cls(route_id, [ConfirmedLink(record.id, stop, record.order) for record, stop in rows])

    def __iter__(self) -> Iterator[SequenceEntry]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __getitem__(self, index: int) -> SequenceEntry:
        return self._entries[index]

    @property
    def entries(self) -> List[SequenceEntry]:
        return list(self._entries)

    def orders(self) -> List[int]:
        return [entry.order for entry in self._entries]

    def stop_ids(self) -> Set[str]:
        return {entry.stop.id for entry in self._entries}

    def is_dense(self) -> bool:
        return self.orders() == list(range(1, len(self._entries) + 1))

    def next_order(self) -> int:
        if not self._entries:
            return 1
        return max(self.orders()) + 1

    def index_of(self, key: str) -> Optional[int]:
        for index, entry in enumerate(self._entries):
            if entry.key == key:
                return index
        return None

    def get(self, key: str) -> Optional[SequenceEntry]:
        index = self.index_of(key)
        return None if index is None else self._entries[index]

    def renumber(self) -> bool:
        """Set ``order = index + 1`` everywhere. Returns True if anything moved."""
        changed = False
        for index, entry in enumerate(self._entries):
            if entry.order != index + 1:
                entry.order = index + 1
                changed = True
        return changed

    def append(self, entry: SequenceEntry) -> None:
        self._entries.append(entry)
        self.renumber()

    def replace(self, key: str, entry: SequenceEntry) -> bool:
        """Swap the entry identified by ``key`` for ``entry`` at the same position."""
        index = self.index_of(key)
        if index is None:
            return False
        entry.order = self._entries[index].order
        self._entries[index] = entry
        return True

    def remove(self, key: str) -> Optional[SequenceEntry]:
        """Take the entry out and renumber the rest.

        The returned entry keeps the order it had before removal, which is
        what ``reinsert`` uses to put it back.
        """
        index = self.index_of(key)
        if index is None:
            return None
        entry = self._entries.pop(index)
        removed_order = entry.order
        self.renumber()
        entry.order = removed_order
        return entry

    def reinsert(self, entry: SequenceEntry) -> None:
        """Put a removed entry back in front of the first neighbour at or after its order."""
        position = len(self._entries)
        for index, other in enumerate(self._entries):
            if other.order >= entry.order:
                position = index
                break
        self._entries.insert(position, entry)
        self.renumber()

    def move(self, from_index: int, to_index: int) -> None:
        entry = self._entries.pop(from_index)
        self._entries.insert(to_index, entry)
        self.renumber()

    def drop_stop(self, stop_id: str) -> Optional[SequenceEntry]:
        for entry in self._entries:
            if entry.stop.id == stop_id:
                return self.remove(entry.key)
        return None

    def records(self) -> List[LinkRecord]:
        """Rows for a bulk upsert: confirmed links only, at their current order."""
        return [
            LinkRecord(entry.id, self.route_id, entry.stop.id, entry.order)
            for entry in self._entries
            if isinstance(entry, ConfirmedLink)
        ]
