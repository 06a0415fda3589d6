#!/usr/bin/env python3
"""
merge_calendars.py
Merge several .ics calendars into one, keeping one event per UID, and
optionally rewrite every event on the way out.

Sources are read in order (standard input first when it is piped), so later
sources replace earlier events with the same UID while those events keep
their original position. Duplicate VTIMEZONE blocks are dropped.

Operations
----------
cat                  merge only
remove -p NAME ...   drop the named properties from every event
keep -p NAME ...     drop every property except the named ones
replace NAME VALUE   set NAME to VALUE on every event (one instance)
retz FROM TO         relabel TZID=FROM parameters as TZID=TO
limit MAX            keep only the first MAX events
props                list every property name used by the events

Usage:
    python3 merge_calendars.py [--name N] [--description D] [-o OUT] OP [ARGS] [FILES...]
    cat work.ics | python3 merge_calendars.py retz Europe/Berlin Europe/Copenhagen home.ics

Config (.env in the working directory, command-line flags win):
    CALMERGE_NAME=Family
    CALMERGE_DESCRIPTION=Everything in one place
    CALMERGE_OUTPUT=calendars/combined.ics
    CALMERGE_PREFER=newest

Dependencies:
    pip install requests icalendar python-dotenv
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path
from typing import Iterable, List, Optional, TextIO

from dotenv import load_dotenv

from calendar_builder import POLICIES, CalendarBuilder, assemble
from calendar_errors import CalendarError
from calendar_sources import STDIN_LABEL, parse_calendar, read_source, read_stdin, write_output
from event_processors import (
    EventProcessor,
    IdentityProcessor,
    Limit,
    PropertyFilter,
    ReplaceProperty,
    TimezoneRelabel,
    distinct_property_names,
)

ENV_FILE_NAME = ".env"
PREFER_DEFAULT = "newest"

###############################################################################
# Merge routine
###############################################################################

def ingest_text(builder: CalendarBuilder, text: str, label: str) -> None:
    """Parse ``text`` and fold it into ``builder``; blank input is ignored."""
    if not text.strip():
        return
    builder.ingest(parse_calendar(text, label), label)


def merge_sources(
    builder: CalendarBuilder,
    sources: Iterable[str],
    *,
    include_stdin: bool = False,
    stdin: Optional[TextIO] = None,
    verbose: bool = False,
) -> CalendarBuilder:
    """Feed standard input (when asked) and then every source into ``builder``."""
    if include_stdin:
        if verbose:
            print(f"→ Reading {STDIN_LABEL} …", file=sys.stderr)
        ingest_text(builder, read_stdin(stdin), STDIN_LABEL)

    for source in sources:
        if verbose:
            print(f"→ Reading {source} …", file=sys.stderr)
        ingest_text(builder, read_source(source), source)
    return builder


def make_processor(args: argparse.Namespace) -> EventProcessor:
    if args.command == "remove":
        return PropertyFilter(args.properties, keep=False)
    if args.command == "keep":
        return PropertyFilter(args.properties, keep=True)
    if args.command == "replace":
        return ReplaceProperty(args.property, args.value)
    if args.command == "retz":
        return TimezoneRelabel(args.from_tzid, args.to_tzid)
    if args.command == "limit":
        return Limit(args.max)
    return IdentityProcessor()


def render(builder: CalendarBuilder, args: argparse.Namespace) -> bytes:
    """Produce the bytes the selected operation writes out."""
    if args.command == "props":
        names = distinct_property_names(builder.events())
        return "".join(f"{name}\n" for name in names).encode("utf-8")
    return assemble(builder, make_processor(args)).to_ical(sorted=False)

###############################################################################
# CLI entry-point
###############################################################################

def _property_names(raw: str) -> List[str]:
    names = [part.strip() for part in raw.split(",") if part.strip()]
    if not names:
        raise argparse.ArgumentTypeError("expected at least one property name")
    return names


def _non_negative(raw: str) -> int:
    try:
        value = int(raw)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {raw!r}")
    if value < 0:
        raise argparse.ArgumentTypeError(f"must not be negative: {value}")
    return value


def build_parser() -> argparse.ArgumentParser:
    output_default = os.getenv("CALMERGE_OUTPUT") or None
    parser = argparse.ArgumentParser(
        prog="calmerge",
        description=(
            "Merge .ics calendars, keeping one event per UID (later sources win "
            "but keep the earlier position) and one VTIMEZONE per TZID."
        ),
    )
    parser.add_argument("--name", default=os.getenv("CALMERGE_NAME") or None,
                        help="Calendar name (default: first name found in the inputs)")
    parser.add_argument("--description", default=os.getenv("CALMERGE_DESCRIPTION") or None,
                        help="Calendar description (default: first description found in the inputs)")
    parser.add_argument("-o", "--output", type=Path,
                        default=Path(output_default) if output_default else None,
                        help="Output file (default: standard output)")
    parser.add_argument("--prefer", choices=sorted(POLICIES),
                        default=os.getenv("CALMERGE_PREFER") or PREFER_DEFAULT,
                        help=f"Which of two events with the same UID survives (default: {PREFER_DEFAULT})")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Report progress on standard error")

    commands = parser.add_subparsers(dest="command", required=True, metavar="COMMAND")

    def command(name: str, help_text: str) -> argparse.ArgumentParser:
        return commands.add_parser(name, help=help_text, description=help_text)

    def files(sub: argparse.ArgumentParser) -> None:
        sub.add_argument("files", nargs="*", help="Input calendars (paths, URLs or Evolution cache.db)")

    files(command("cat", "Concatenate and merge calendars"))

    for name, verb in (("remove", "Remove"), ("keep", "Keep only")):
        sub = command(name, f"{verb} the given properties on every event")
        sub.add_argument("-p", "--property", dest="property_lists", action="append",
                         type=_property_names, required=True,
                         help="Property name; repeat or separate with commas")
        files(sub)

    sub = command("replace", "Set one property to a fixed value on every event")
    sub.add_argument("property", help="Property name, e.g. SUMMARY")
    sub.add_argument("value", help="New value")
    files(sub)

    sub = command("retz", "Relabel a TZID parameter on every event (no time conversion)")
    sub.add_argument("from_tzid", help="TZID to replace")
    sub.add_argument("to_tzid", help="Replacement TZID")
    files(sub)

    sub = command("limit", "Keep only the first MAX events")
    sub.add_argument("max", type=_non_negative, help="Number of events to keep")
    files(sub)

    files(command("props", "List the distinct property names used by the events"))
    return parser


def main(argv: Optional[List[str]] = None, stdin_is_tty: Optional[bool] = None) -> None:
    load_dotenv(dotenv_path=Path.cwd() / ENV_FILE_NAME)
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.prefer not in POLICIES:
        parser.error(f"invalid --prefer {args.prefer!r} (choose from {', '.join(sorted(POLICIES))})")
    args.properties = [n for names in getattr(args, "property_lists", None) or [] for n in names]

    if stdin_is_tty is None:
        stdin_is_tty = sys.stdin is None or sys.stdin.isatty()

    builder = CalendarBuilder(
        policy=POLICIES[args.prefer],
        name=args.name,
        description=args.description,
    )
    try:
        merge_sources(builder, args.files, include_stdin=not stdin_is_tty, verbose=args.verbose)
        retained = len(builder.components)
        write_output(render(builder, args), args.output)
    except CalendarError as e:
        sys.exit(f"❌ {e}")

    if builder.skipped_without_uid:
        print(f"⚠️  Skipped {builder.skipped_without_uid} event(s) without UID", file=sys.stderr)
    if args.verbose:
        print(f"✅ Merged {retained} components from {builder.ingested} sources", file=sys.stderr)
        if args.output is not None:
            print(f"✅ Done. Merged calendar written to: {args.output}", file=sys.stderr)


if __name__ == "__main__":
    main()
