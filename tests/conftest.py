"""Shared builders for small iCalendar documents used across the tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from calendar_sources import parse_calendar


def vevent(uid=None, summary="Meeting", *extra):
    lines = ["BEGIN:VEVENT"]
    if uid is not None:
        lines.append(f"UID:{uid}")
    lines.append(f"SUMMARY:{summary}")
    lines.append("DTSTART:20250301T090000Z")
    lines.extend(extra)
    lines.append("END:VEVENT")
    return "\n".join(lines)


def vtimezone(tzid, offset="+0100"):
    return "\n".join([
        "BEGIN:VTIMEZONE",
        f"TZID:{tzid}",
        "BEGIN:STANDARD",
        "DTSTART:19701025T030000",
        f"TZOFFSETFROM:{offset}",
        f"TZOFFSETTO:{offset}",
        "END:STANDARD",
        "END:VTIMEZONE",
    ])


def vtodo(uid, summary="Chore"):
    return "\n".join(["BEGIN:VTODO", f"UID:{uid}", f"SUMMARY:{summary}", "END:VTODO"])


def vcalendar(*blocks, headers=()):
    lines = ["BEGIN:VCALENDAR", "VERSION:2.0", "PRODID:-//tests//EN", *headers, *blocks, "END:VCALENDAR"]
    return "\n".join(lines) + "\n"


def calendar(*blocks, headers=()):
    return parse_calendar(vcalendar(*blocks, headers=headers), "<test>")


@pytest.fixture
def write_ics(tmp_path: Path):
    """Write calendar text to a file under tmp_path and return its path as str."""

    def _write(name: str, text: str) -> str:
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        return str(path)

    return _write
