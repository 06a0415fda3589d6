#!/usr/bin/env python3
"""
calendar_builder.py
Accumulate the components of several calendars into one, keeping at most
one VEVENT per UID and one VTIMEZONE per TZID, then assemble the result.

Key rules
---------
• An event whose UID was already seen goes through a replacement policy; if
  it wins it takes over the *original position* of the earlier event.
• Events without a UID are dropped with a warning.
• The first VTIMEZONE for a TZID is kept; later ones are dropped.
• Every other component is kept in arrival order.
• Calendar name / description / timezone: first non-empty value wins,
  explicit overrides are seeded before any calendar is ingested.

Usage:
    python3 calendar_builder.py a.ics b.ics > merged.ics

Dependencies:
    pip install icalendar
"""

from __future__ import annotations

import datetime as _dt
import sys
from typing import Callable, Dict, Iterator, List, Optional, Set

from icalendar import Calendar, Event
from icalendar.cal import Component

PRODID = "-//Merged via calmerge//EN"
EVENT_KIND = "VEVENT"
DEDUP_KIND = "VTIMEZONE"
DEDUP_KEY = "TZID"

NAME_KEYS = ("NAME", "X-WR-CALNAME")
DESCRIPTION_KEYS = ("DESCRIPTION", "X-WR-CALDESC")
TIMEZONE_KEYS = ("TIMEZONE-ID", "X-WR-TIMEZONE")

ReplacementPolicy = Callable[[Event, Event], bool]

###############################################################################
# Replacement policies
###############################################################################

def always_replace(new_event: Event, old_event: Event) -> bool:
    """The event observed later wins."""
    return True


def keep_first(new_event: Event, old_event: Event) -> bool:
    """The event observed first wins."""
    return False


def _last_modified(event: Event) -> Optional[_dt.datetime]:
    try:
        stamp = event.decoded("LAST-MODIFIED")
    except (KeyError, ValueError, TypeError):
        return None
    if not isinstance(stamp, _dt.datetime):
        return None
    if stamp.tzinfo is None:
        stamp = stamp.replace(tzinfo=_dt.timezone.utc)
    return stamp


def prefer_last_modified(new_event: Event, old_event: Event) -> bool:
    """Replace when the new event's LAST-MODIFIED is not older than the old one's.

    Without a stamp on both sides this behaves like ``always_replace``.
    """
    new_stamp = _last_modified(new_event)
    old_stamp = _last_modified(old_event)
    if new_stamp is None or old_stamp is None:
        return True
    return new_stamp >= old_stamp


POLICIES: Dict[str, ReplacementPolicy] = {
    "newest": always_replace,
    "first": keep_first,
    "modified": prefer_last_modified,
}

###############################################################################
# Keys
###############################################################################

def _first_value(component: Component, keys) -> Optional[str]:
    """Return the first non-empty string among ``keys`` on ``component``."""
    for key in keys:
        value = component.get(key)
        if isinstance(value, list):
            value = value[0] if value else None
        if value is not None and str(value):
            return str(value)
    return None


def event_uid(event: Event) -> Optional[str]:
    """Return the event's UID, or None when it has none (or an empty one)."""
    return _first_value(event, ("UID",))


def secondary_key(component: Component) -> Optional[str]:
    """Return the dedup key of a VTIMEZONE, None for anything else."""
    if component.name != DEDUP_KIND:
        return None
    return _first_value(component, (DEDUP_KEY,))

###############################################################################
# Builder
###############################################################################

class CalendarBuilder:
    """Merge state shared across every ingested calendar of one run."""

    def __init__(
        self,
        policy: ReplacementPolicy = always_replace,
        name: Optional[str] = None,
        description: Optional[str] = None,
        timezone: Optional[str] = None,
    ):
        self.policy = policy
        self.components: List[Component] = []
        self.uid_index: Dict[str, int] = {}
        self.seen_tzids: Set[str] = set()
        self.name = name or None
        self.description = description or None
        self.timezone = timezone or None
        self.ingested = 0
        self.replaced = 0
        self.skipped_without_uid = 0
        self._drained = False

    def _merge_metadata(self, calendar: Calendar) -> None:
        self.name = self.name or _first_value(calendar, NAME_KEYS)
        self.description = self.description or _first_value(calendar, DESCRIPTION_KEYS)
        self.timezone = self.timezone or _first_value(calendar, TIMEZONE_KEYS)

    def _ingest_event(self, event: Event, source: str) -> None:
        uid = event_uid(event)
        if uid is None:
            self.skipped_without_uid += 1
            print(f"⚠️  {source}: calendar event without UID; skipping", file=sys.stderr)
            return

        index = self.uid_index.get(uid)
        if index is None:
            self.uid_index[uid] = len(self.components)
            self.components.append(event)
        elif self.policy(event, self.components[index]):
            self.components[index] = event
            self.replaced += 1

    def ingest(self, calendar: Calendar, source: str = "<calendar>") -> None:
        """Fold one parsed calendar into the merge."""
        if self._drained:
            raise RuntimeError("builder was already assembled")
        self.ingested += 1
        self._merge_metadata(calendar)

        for component in calendar.subcomponents:
            if component.name == EVENT_KIND:
                self._ingest_event(component, source)
                continue

            key = secondary_key(component)
            if key is not None:
                if key in self.seen_tzids:
                    continue
                self.seen_tzids.add(key)
            self.components.append(component)

    def events(self) -> Iterator[Event]:
        """Yield the retained events in merge order."""
        return (c for c in self.components if c.name == EVENT_KIND)

    def drain(self) -> List[Component]:
        """Hand over the merged components; the builder is spent afterwards."""
        if self._drained:
            raise RuntimeError("builder was already assembled")
        self._drained = True
        components, self.components = self.components, []
        self.uid_index = {}
        return components

    def empty_calendar(self) -> Calendar:
        """Return a VCALENDAR carrying only the resolved metadata."""
        cal = Calendar()
        cal.add("prodid", PRODID)
        cal.add("version", "2.0")
        cal.add("calscale", "GREGORIAN")
        for keys, value in (
            (NAME_KEYS, self.name),
            (DESCRIPTION_KEYS, self.description),
            (TIMEZONE_KEYS, self.timezone),
        ):
            if value:
                for key in keys:
                    cal.add(key, value)
        return cal

###############################################################################
# Assembly
###############################################################################

def assemble(builder: CalendarBuilder, processor) -> Calendar:
    """Drain ``builder`` through ``processor`` into the output calendar.

    ``processor`` needs ``should_keep(event)`` and ``transform(event)``; a
    transform returning None leaves the event unchanged.
    """
    output = builder.empty_calendar()
    for component in builder.drain():
        if component.name == EVENT_KIND:
            if not processor.should_keep(component):
                continue
            replacement = processor.transform(component)
            if replacement is not None:
                component = replacement
        output.add_component(component)
    return output


if __name__ == "__main__":
    from calendar_errors import CalendarError
    from calendar_sources import parse_calendar, read_source, write_output
    from event_processors import IdentityProcessor

    builder = CalendarBuilder()
    try:
        for path in sys.argv[1:]:
            builder.ingest(parse_calendar(read_source(path), path), path)
    except CalendarError as e:
        sys.exit(f"❌ {e}")
    write_output(assemble(builder, IdentityProcessor()).to_ical(sorted=False))
