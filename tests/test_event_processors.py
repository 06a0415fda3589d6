"""Tests for the per-event filter/transform steps."""

import pytest

from calendar_builder import CalendarBuilder, assemble
from event_processors import (
    EventProcessor,
    IdentityProcessor,
    Limit,
    PropertyFilter,
    ReplaceProperty,
    TimezoneRelabel,
    clone_event,
    distinct_property_names,
)
from conftest import calendar, vevent, vtodo


def first_event(*extra, uid="x", summary="Meeting"):
    return calendar(vevent(uid, summary, *extra)).subcomponents[0]


def test_identity_keeps_and_never_transforms():
    event = first_event()
    processor = IdentityProcessor()

    assert processor.should_keep(event) is True
    assert processor.transform(event) is None
    assert isinstance(processor, EventProcessor)


def test_clone_is_detached():
    event = first_event("LOCATION:Room 1")
    clone = clone_event(event)
    del clone["LOCATION"]

    assert "LOCATION" in event
    assert list(clone.keys()) == ["UID", "SUMMARY", "DTSTART"]


class TestPropertyFilter:
    def test_remove_named_properties(self):
        event = first_event("LOCATION:Room 1", "DESCRIPTION:Agenda", "CATEGORIES:work")
        result = PropertyFilter(["location", "CATEGORIES"]).transform(event)

        assert list(result.keys()) == ["UID", "SUMMARY", "DTSTART", "DESCRIPTION"]
        assert "LOCATION" in event

    def test_keep_only_named_properties(self):
        event = first_event("LOCATION:Room 1", "DESCRIPTION:Agenda")
        result = PropertyFilter(["UID", "DESCRIPTION", "SUMMARY"], keep=True).transform(event)

        assert list(result.keys()) == ["UID", "SUMMARY", "DESCRIPTION"]

    def test_surviving_parameters_are_kept(self):
        event = first_event("DTEND;TZID=Europe/Berlin:20250301T100000", "LOCATION:Room 1")
        result = PropertyFilter(["LOCATION"]).transform(event)

        assert result["DTEND"].params["TZID"] == "Europe/Berlin"

    def test_remove_nothing_is_a_no_op(self):
        event = first_event("ATTENDEE:mailto:a@example.com", "ATTENDEE:mailto:b@example.com")
        result = PropertyFilter([]).transform(event)

        assert result.to_ical(sorted=False) == event.to_ical(sorted=False)

    def test_keep_everything_is_a_no_op(self):
        event = first_event("ATTENDEE:mailto:a@example.com", "ATTENDEE:mailto:b@example.com")
        result = PropertyFilter(list(event.keys()), keep=True).transform(event)

        assert result.to_ical(sorted=False) == event.to_ical(sorted=False)
        assert [str(a) for a in result["ATTENDEE"]] == ["mailto:a@example.com", "mailto:b@example.com"]

    def test_alarms_survive(self):
        alarm = "BEGIN:VALARM\nACTION:DISPLAY\nTRIGGER:-PT15M\nEND:VALARM"
        event = first_event(alarm, "LOCATION:Room 1")
        result = PropertyFilter(["LOCATION"]).transform(event)

        assert [c.name for c in result.subcomponents] == ["VALARM"]


class TestReplaceProperty:
    def test_repeated_property_collapses_to_one(self):
        event = first_event("X-TAG:a", "LOCATION:Room 1", "X-TAG:b", "X-TAG:c")
        result = ReplaceProperty("X-TAG", "v").transform(event)

        assert list(result.keys()) == ["UID", "SUMMARY", "DTSTART", "LOCATION", "X-TAG"]
        assert not isinstance(result["X-TAG"], list)
        assert str(result["X-TAG"]) == "v"
        assert str(result["LOCATION"]) == "Room 1"

    def test_missing_property_is_added(self):
        result = ReplaceProperty("location", "Hall").transform(first_event())

        assert list(result.keys())[-1] == "LOCATION"
        assert str(result["LOCATION"]) == "Hall"

    def test_new_property_has_no_parameters(self):
        event = first_event("LOCATION;LANGUAGE=da:Lokale 1")
        result = ReplaceProperty("LOCATION", "Room 2").transform(event)

        assert dict(result["LOCATION"].params) == {}
        assert b"LOCATION:Room 2" in result.to_ical()


class TestTimezoneRelabel:
    def test_matching_tzid_is_relabelled(self):
        event = first_event(
            "DTEND;TZID=Europe/Berlin:20250301T100000",
            "EXDATE;TZID=Europe/Berlin:20250308T090000",
            "RECURRENCE-ID;TZID=Europe/Paris:20250301T090000",
        )
        result = TimezoneRelabel("Europe/Berlin", "Europe/Copenhagen").transform(event)

        assert result["DTEND"].params["TZID"] == "Europe/Copenhagen"
        assert result["EXDATE"].params["TZID"] == "Europe/Copenhagen"
        assert result["RECURRENCE-ID"].params["TZID"] == "Europe/Paris"
        assert event["DTEND"].params["TZID"] == "Europe/Berlin"

    def test_wall_clock_value_is_untouched(self):
        event = first_event("DTEND;TZID=Europe/Berlin:20250301T100000")
        text = TimezoneRelabel("Europe/Berlin", "Europe/Copenhagen").transform(event).to_ical().decode()

        assert "DTEND;TZID=Europe/Copenhagen:20250301T100000" in text

    def test_other_properties_pass_through(self):
        event = first_event("LOCATION:Room 1")
        result = TimezoneRelabel("Europe/Berlin", "Europe/Copenhagen").transform(event)

        assert result.to_ical(sorted=False) == event.to_ical(sorted=False)


class TestLimit:
    def test_keeps_first_survivors_across_documents(self):
        builder = CalendarBuilder()
        builder.ingest(calendar(vevent("1"), vevent("2"), vtodo("t")))
        builder.ingest(calendar(vevent("3"), vevent("4"), vevent("5")))

        out = assemble(builder, Limit(2))

        assert [c.name for c in out.subcomponents] == ["VEVENT", "VEVENT", "VTODO"]
        assert [str(c["UID"]) for c in out.walk("VEVENT")] == ["1", "2"]

    def test_counter_never_recovers(self):
        limit = Limit(1)
        event = first_event()

        assert [limit.should_keep(event) for _ in range(4)] == [True, False, False, False]
        assert limit.transform(event) is None

    def test_zero_drops_everything(self):
        assert Limit(0).should_keep(first_event()) is False

    def test_negative_is_rejected(self):
        with pytest.raises(ValueError):
            Limit(-1)


def test_distinct_property_names_in_first_seen_order():
    builder = CalendarBuilder()
    builder.ingest(calendar(
        vevent("a", "A", "LOCATION:Room"),
        vtodo("t"),
        vevent("b", "B", "X-TAG:1", "LOCATION:Hall", "X-TAG:2"),
    ))

    assert distinct_property_names(builder.events()) == ["UID", "SUMMARY", "DTSTART", "LOCATION", "X-TAG"]
