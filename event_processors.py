"""
event_processors.py
Per-event filter/transform steps applied while assembling a merged calendar.

Each processor answers two questions for every retained VEVENT, in order:

    should_keep(event) -> bool        False drops the event
    transform(event)   -> Event|None  a replacement event, or None for "as is"

Transforms never touch the event they are given; they edit a detached copy.

Dependencies:
    pip install icalendar
"""

from __future__ import annotations

from typing import Iterable, List, Optional

from icalendar import Event, vText

TZID_PARAM = "TZID"


def clone_event(event: Event) -> Event:
    """Return a detached copy of an icalendar event."""
    return event.__class__.from_ical(event.to_ical(sorted=False))


def _normalise_names(names: Iterable[str]) -> frozenset:
    return frozenset(name.strip().upper() for name in names if name.strip())


def _property_values(event: Event):
    for value in event.values():
        if isinstance(value, list):
            yield from value
        else:
            yield value


class EventProcessor:
    """Keep every event and never transform it.

    Subclasses override one or both hooks.
    """

    def should_keep(self, event: Event) -> bool:
        return True

    def transform(self, event: Event) -> Optional[Event]:
        return None


class IdentityProcessor(EventProcessor):
    """Pass events through untouched (the ``cat`` operation)."""


class PropertyFilter(EventProcessor):
    """Drop the named properties, or with ``keep=True`` drop all the others.

    Surviving properties keep their order, repeats and parameters.
    """

    def __init__(self, names: Iterable[str], keep: bool = False):
        self.names = _normalise_names(names)
        self.keep = keep

    def transform(self, event: Event) -> Event:
        clone = clone_event(event)
        for name in list(clone.keys()):
            if (name.upper() in self.names) != self.keep:
                del clone[name]
        return clone


class ReplaceProperty(EventProcessor):
    """Collapse every ``name`` property into a single ``name:value``.

    The new property has no parameters and goes after all the others.
    """

    def __init__(self, name: str, value: str):
        self.name = name.strip().upper()
        self.value = value

    def transform(self, event: Event) -> Event:
        clone = clone_event(event)
        clone.pop(self.name, None)
        clone.add(self.name, vText(self.value))
        return clone


class TimezoneRelabel(EventProcessor):
    """Rename a TZID parameter value on every property of the event.

    Only the label changes; the wall-clock value stays as written.
    """

    def __init__(self, from_id: str, to_id: str):
        self.from_id = from_id
        self.to_id = to_id

    def transform(self, event: Event) -> Event:
        clone = clone_event(event)
        for value in _property_values(clone):
            params = getattr(value, "params", None)
            if params is not None and params.get(TZID_PARAM) == self.from_id:
                params[TZID_PARAM] = self.to_id
        return clone


class Limit(EventProcessor):
    """Keep the first ``maximum`` events of the run, drop the rest."""

    def __init__(self, maximum: int):
        if maximum < 0:
            raise ValueError(f"limit must not be negative: {maximum}")
        self.remaining = maximum

    def should_keep(self, event: Event) -> bool:
        if self.remaining > 0:
            self.remaining -= 1
            return True
        return False


def distinct_property_names(events: Iterable[Event]) -> List[str]:
    """Every property name used by ``events``, once each, in first-seen order."""
    seen = {}
    for event in events:
        for name in event.keys():
            seen.setdefault(name, None)
    return list(seen)
