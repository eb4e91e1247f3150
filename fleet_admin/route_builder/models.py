"""Entities of the route builder.

A link between a route and a stop has two phases: ``PendingLink`` while the
create call is outstanding (identified by a local placeholder) and
``ConfirmedLink`` once the store has assigned its id. The two never share an
identity space: placeholders are ``temp-<n>`` strings owned by the engine,
link ids come from the store.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Union


@dataclass(frozen=True)
class Stop:
    id: str
    name: str
    lat: float
    lng: float

    def to_dict(self) -> dict:
        return {'id': self.id, 'name': self.name, 'lat': self.lat, 'lng': self.lng}


@dataclass(frozen=True)
class Route:
    id: str
    name: str

    def to_dict(self) -> dict:
        return {'id': self.id, 'name': self.name}


@dataclass(frozen=True)
class LinkRecord:
    """A ``route_stops`` row as the store holds it."""

    id: str
    route_id: str
    stop_id: str
    order: int

    def to_row(self) -> dict:
        return {
            'id': self.id,
            'route_id': self.route_id,
            'stop_id': self.stop_id,
            'order': self.order,
        }


@dataclass
class PendingLink:
    placeholder: str
    stop: Stop
    order: int
    pending: bool = field(default=True, init=False)

    @property
    def key(self) -> str:
        return self.placeholder

    @property
    def link_id(self) -> Optional[str]:
        return None


@dataclass
class ConfirmedLink:
    id: str
    stop: Stop
    order: int
    pending: bool = field(default=False, init=False)

    @property
    def key(self) -> str:
        return self.id

    @property
    def link_id(self) -> Optional[str]:
        return self.id


SequenceEntry = Union[PendingLink, ConfirmedLink]


def entry_to_dict(entry: SequenceEntry) -> dict:
    return {
        'key': entry.key,
        'link_id': entry.link_id,
        'pending': entry.pending,
        'order': entry.order,
        'stop': entry.stop.to_dict(),
    }


@dataclass(frozen=True)
class ChangeEvent:
    """One row-level notification from the store's change feed."""

    table: str
    kind: str  # insert | update | delete
    row_id: Optional[str] = None
