"""
calendar_errors.py
Exceptions raised while reading, parsing or writing calendars.

Every fatal condition of a merge run is a ``CalendarError``; the CLI turns
them into a one-line message and a non-zero exit status.
"""

from __future__ import annotations


class CalendarError(Exception):
    """Base class for fatal merge failures."""


class ParseFailure(CalendarError):
    """A source's content is not a single iCalendar document."""

    def __init__(self, source: str, reason: str):
        super().__init__(f"Cannot parse {source}: {reason}")
        self.source = source
        self.reason = reason


class SourceError(CalendarError):
    """A source cannot be read or downloaded, or the output cannot be written."""

    def __init__(self, source: str, reason: str):
        super().__init__(f"{source}: {reason}")
        self.source = source
        self.reason = reason
