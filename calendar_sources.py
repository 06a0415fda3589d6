#!/usr/bin/env python3
"""
calendar_sources.py

Turn input sources into parsed calendars and write merged output.

A source is one of:
    * a local .ics file path
    * an http(s):// or webcal:// feed URL (downloaded with requests)
    * an Evolution calendar cache (``~/.cache/evolution/calendar/.../cache.db``)

Usage:
    python3 calendar_sources.py SOURCE   # prints the parsed calendar back

Dependencies:
    pip install requests icalendar
"""
from __future__ import annotations

import sqlite3
import sys
from contextlib import closing
from pathlib import Path
from typing import TextIO

import requests
from icalendar import Calendar

from calendar_errors import ParseFailure, SourceError

HEADERS = {"User-Agent": "Calendar-Merger/2.0 (+calmerge)"}
URL_SCHEMES = ("http://", "https://", "webcal://")
EVOLUTION_SUFFIX = ".db"
STDIN_LABEL = "<stdin>"

# Evolution caches do not always carry the zones their events reference,
# so one default zone is always included.
DEFAULT_VTIMEZONE = """\
BEGIN:VTIMEZONE
DTSTAMP:20250104T181459Z
TZID:Europe/Copenhagen
UID:af073073-a47e-4260-bb14-c6df7fd343fd
BEGIN:STANDARD
DTSTAMP:20250104T181459Z
DTSTART:20001029T040000
RRULE:FREQ=YEARLY;BYDAY=-1SU;BYMONTH=10
TZNAME:CET
TZOFFSETFROM:+0200
TZOFFSETTO:+0100
UID:3a834cf7-e932-4239-91dc-e808067c8672
END:STANDARD
BEGIN:DAYLIGHT
DTSTAMP:20250104T181459Z
DTSTART:20000326T020000
RRULE:FREQ=YEARLY;BYDAY=-1SU;BYMONTH=3
TZNAME:CEST
TZOFFSETFROM:+0100
TZOFFSETTO:+0200
UID:938b3e51-29fd-494f-b8f5-1ff886993968
END:DAYLIGHT
END:VTIMEZONE
"""

EVOLUTION_HEADER = "BEGIN:VCALENDAR\nVERSION:2.0\nPRODID:ICALENDAR-RS\nCALSCALE:GREGORIAN\n"
EVOLUTION_FOOTER = "END:VCALENDAR\n"


def is_url(source: str) -> bool:
    return source.lower().startswith(URL_SCHEMES)


def normalise_url(raw_url: str) -> str:
    """Rewrite webcal:// to https:// and strip any text before the scheme."""
    lowered = raw_url.lower()
    webcal_pos = lowered.find("webcal://")
    if webcal_pos != -1:
        return "https://" + raw_url[webcal_pos + len("webcal://"):]
    http_pos = lowered.find("http")
    if http_pos == -1:
        raise ValueError(f"Invalid URL string: {raw_url!r}")
    return raw_url[http_pos:]


def download_text(url: str) -> str:
    """Fetch an .ics feed and return its body as text."""
    try:
        resp = requests.get(normalise_url(url), headers=HEADERS, timeout=30)
        resp.raise_for_status()
    except (requests.RequestException, ValueError) as e:
        raise SourceError(url, f"download failed ({e!s})") from e
    return resp.content.decode("utf-8-sig", errors="replace")


def extract_evolution_cache(db_path: Path) -> str:
    """Translate an Evolution calendar cache into iCalendar text.

    Stored time zones come first, then every cached object, wrapped in a
    VCALENDAR that also carries DEFAULT_VTIMEZONE.
    """
    if not db_path.is_file():
        raise SourceError(str(db_path), "no such file")
    try:
        with closing(sqlite3.connect(f"file:{db_path}?mode=ro", uri=True)) as db:
            zones = [row[0] for row in db.execute("select zone from timezones")]
            objects = [row[0] for row in db.execute("select EcacheOBJ from EcacheObjects")]
    except sqlite3.Error as e:
        raise SourceError(str(db_path), f"cannot read Evolution cache ({e!s})") from e

    parts = [EVOLUTION_HEADER, DEFAULT_VTIMEZONE]
    for blob in zones + objects:
        if isinstance(blob, bytes):
            blob = blob.decode("utf-8", errors="replace")
        if blob:
            parts.append(str(blob).strip() + "\n")
    parts.append(EVOLUTION_FOOTER)
    return "".join(parts)


def read_source(source: str) -> str:
    """Return the calendar text behind ``source``."""
    if is_url(source):
        return download_text(source)

    path = Path(source)
    if path.suffix == EVOLUTION_SUFFIX:
        return extract_evolution_cache(path)
    try:
        return path.read_text(encoding="utf-8-sig")
    except (OSError, UnicodeDecodeError) as e:
        raise SourceError(source, f"cannot read ({e!s})") from e


def read_stdin(stream: TextIO | None = None) -> str:
    stream = stream if stream is not None else sys.stdin
    try:
        return stream.read()
    except (OSError, UnicodeDecodeError) as e:
        raise SourceError(STDIN_LABEL, f"cannot read ({e!s})") from e


def parse_calendar(text: str, source: str = STDIN_LABEL) -> Calendar:
    """Parse ``text`` into exactly one VCALENDAR."""
    if text.startswith("\ufeff"):
        text = text[1:]
    try:
        calendar = Calendar.from_ical(text)
    except Exception as e:
        raise ParseFailure(source, str(e) or e.__class__.__name__) from e
    if isinstance(calendar, list) or calendar.name != "VCALENDAR":
        raise ParseFailure(source, "top-level component is not a VCALENDAR")
    return calendar


def write_output(calendar_bytes: bytes, output_path: Path | None = None) -> None:
    """Write serialised output to ``output_path`` or, when None, stdout."""
    if output_path is None:
        sys.stdout.flush()
        sys.stdout.buffer.write(calendar_bytes)
        sys.stdout.buffer.flush()
        return
    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with output_path.open("wb") as fh:
            fh.write(calendar_bytes)
    except OSError as e:
        raise SourceError(str(output_path), f"cannot write ({e!s})") from e


if __name__ == "__main__":
    if len(sys.argv) != 2:
        sys.exit("Usage: python3 calendar_sources.py SOURCE")
    try:
        cal = parse_calendar(read_source(sys.argv[1]), sys.argv[1])
    except (ParseFailure, SourceError) as e:
        sys.exit(f"❌ {e}")
    write_output(cal.to_ical(sorted=False))
