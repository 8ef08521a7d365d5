"""Tests for the linked-entry cascade."""

from datetime import UTC, datetime

import pytest

from backend.app.db.repositories import PersistenceError
from backend.app.models.cascade import AnchorField, CascadeCommand, CascadeReason
from backend.app.models.common import LinkRole
from backend.app.models.entries import Entry, EntryOption, Trip
from backend.app.scheduling.cascade import (
    apply_cascade,
    checkin_hours_for,
    load_dependents,
    on_anchor_time_changed,
)
from backend.app.scheduling.timezones import local_to_utc, utc_to_local
from backend.app.scheduling.views import EntryView

TRIP = Trip(id="t", home_timezone="Europe/London")


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=UTC)


def entry(entry_id: str, start: datetime, end: datetime, **fields: object) -> Entry:
    return Entry(id=entry_id, trip_id="t", start_time=start, end_time=end, **fields)


def child(
    entry_id: str, start: datetime, end: datetime, role: LinkRole, **fields: object
) -> Entry:
    return entry(entry_id, start, end, linked_flight_id="f1", linked_type=role, **fields)


def flight_view(start: datetime, end: datetime, **option_fields: object) -> EntryView:
    option = EntryOption(
        id="o-f1",
        entry_id="f1",
        name="LHR to AMS",
        category="flight",
        departure_tz="Europe/London",
        arrival_tz="Europe/Amsterdam",
        **option_fields,
    )
    return EntryView(entry=entry("f1", start, end), option=option)


def transfer_view(entry_id: str, start: datetime, end: datetime, **fields: object) -> EntryView:
    option = EntryOption(id=f"o-{entry_id}", entry_id=entry_id, name="Walk", category="transfer")
    return EntryView(entry=entry(entry_id, start, end, **fields), option=option)


def london(clock: str) -> datetime:
    return local_to_utc("2025-06-01", clock, "Europe/London")


class TestFlightChildren:
    """Check-in and check-out blocks follow their flight."""

    def test_moving_departure_moves_checkin(self) -> None:
        checkin = child("ci", london("08:00"), london("10:00"), LinkRole.checkin)
        arrival = local_to_utc("2025-06-01", "13:30", "Europe/Amsterdam")
        moved = flight_view(london("11:00"), arrival)

        (command,) = on_anchor_time_changed(moved, AnchorField.start_time, [checkin], TRIP)

        assert command.entry_id == "ci"
        assert command.reason == CascadeReason.checkin
        assert utc_to_local(command.new_start, "Europe/London").time == "09:00"
        assert utc_to_local(command.new_end, "Europe/London").time == "11:00"
        assert command.expected_version == checkin.version

    def test_moving_arrival_moves_checkout(self) -> None:
        checkout = child("co", utc(2025, 6, 1, 10, 30), utc(2025, 6, 1, 11, 0), LinkRole.checkout)
        moved = flight_view(utc(2025, 6, 1, 9, 0), utc(2025, 6, 1, 11, 0))

        (command,) = on_anchor_time_changed(moved, AnchorField.end_time, [checkout], TRIP)

        assert (command.new_start, command.new_end) == (
            utc(2025, 6, 1, 11, 0),
            utc(2025, 6, 1, 11, 30),
        )

    def test_flight_policy_overrides_trip_default(self) -> None:
        checkin = child("ci", utc(2025, 6, 1, 7, 0), utc(2025, 6, 1, 9, 0), LinkRole.checkin)
        anchor = flight_view(
            utc(2025, 6, 1, 9, 0), utc(2025, 6, 1, 10, 30), airport_checkin_hours=3
        )

        (command,) = on_anchor_time_changed(anchor, AnchorField.checkin_hours, [checkin], TRIP)

        assert command.new_start == utc(2025, 6, 1, 6, 0)
        assert checkin_hours_for(anchor, TRIP) == 3

    def test_unrelated_field_does_not_touch_checkin(self) -> None:
        checkin = child("ci", utc(2025, 6, 1, 5, 0), utc(2025, 6, 1, 6, 0), LinkRole.checkin)
        anchor = flight_view(utc(2025, 6, 1, 9, 0), utc(2025, 6, 1, 10, 30))

        assert on_anchor_time_changed(anchor, AnchorField.end_time, [checkin], TRIP) == []

    def test_consistent_children_produce_no_commands(self) -> None:
        anchor = flight_view(utc(2025, 6, 1, 9, 0), utc(2025, 6, 1, 10, 30))
        children = [
            child("ci", utc(2025, 6, 1, 7, 0), utc(2025, 6, 1, 9, 0), LinkRole.checkin),
            child("co", utc(2025, 6, 1, 10, 30), utc(2025, 6, 1, 11, 0), LinkRole.checkout),
        ]

        for field in AnchorField:
            assert on_anchor_time_changed(anchor, field, children, TRIP) == []

    def test_locked_child_is_left_alone(self) -> None:
        checkin = child(
            "ci", utc(2025, 6, 1, 5, 0), utc(2025, 6, 1, 6, 0), LinkRole.checkin, is_locked=True
        )
        anchor = flight_view(utc(2025, 6, 1, 9, 0), utc(2025, 6, 1, 10, 30))

        assert on_anchor_time_changed(anchor, AnchorField.start_time, [checkin], TRIP) == []

    def test_zero_checkin_hours_produces_no_write(self) -> None:
        checkin = child("ci", utc(2025, 6, 1, 7, 0), utc(2025, 6, 1, 9, 0), LinkRole.checkin)
        anchor = flight_view(
            utc(2025, 6, 1, 10, 0), utc(2025, 6, 1, 11, 30), airport_checkin_hours=0
        )

        assert on_anchor_time_changed(anchor, AnchorField.start_time, [checkin], TRIP) == []


class TestTransfers:
    """Transfers pull their destination and follow their origin."""

    def test_transfer_end_pulls_destination(self) -> None:
        destination = entry("dinner", utc(2025, 6, 1, 12, 0), utc(2025, 6, 1, 13, 0))
        transfer = transfer_view(
            "tr",
            utc(2025, 6, 1, 11, 30),
            utc(2025, 6, 1, 12, 10),
            from_entry_id="museum",
            to_entry_id="dinner",
        )

        (command,) = on_anchor_time_changed(
            transfer, AnchorField.end_time, [destination], TRIP
        )

        assert command.reason == CascadeReason.transfer_pull
        assert (command.new_start, command.new_end) == (
            utc(2025, 6, 1, 12, 10),
            utc(2025, 6, 1, 13, 10),
        )

    def test_moved_entry_repositions_outgoing_transfer(self) -> None:
        museum = EntryView(
            entry=entry("museum", utc(2025, 6, 1, 9, 0), utc(2025, 6, 1, 11, 0)),
            option=EntryOption(id="o-m", entry_id="museum", name="Museum"),
        )
        transfer = entry(
            "tr",
            utc(2025, 6, 1, 10, 30),
            utc(2025, 6, 1, 10, 45),
            from_entry_id="museum",
            to_entry_id="dinner",
        )

        (command,) = on_anchor_time_changed(museum, AnchorField.end_time, [transfer], TRIP)

        assert command.reason == CascadeReason.transfer_reposition
        assert (command.new_start, command.new_end) == (
            utc(2025, 6, 1, 11, 0),
            utc(2025, 6, 1, 11, 15),
        )

    def test_transfer_after_flight_leaves_after_checkout(self) -> None:
        anchor = flight_view(utc(2025, 6, 1, 9, 0), utc(2025, 6, 1, 11, 0))
        checkout = child("co", utc(2025, 6, 1, 11, 0), utc(2025, 6, 1, 11, 30), LinkRole.checkout)
        transfer = entry(
            "tr", utc(2025, 6, 1, 10, 0), utc(2025, 6, 1, 10, 40), from_entry_id="f1"
        )

        commands = on_anchor_time_changed(anchor, AnchorField.end_time, [checkout, transfer], TRIP)

        (reposition,) = [c for c in commands if c.entry_id == "tr"]
        assert reposition.new_start == utc(2025, 6, 1, 11, 30)
        assert reposition.new_end == utc(2025, 6, 1, 12, 10)

    def test_cascade_is_idempotent(self) -> None:
        museum = EntryView(
            entry=entry("museum", utc(2025, 6, 1, 9, 0), utc(2025, 6, 1, 11, 0)),
            option=EntryOption(id="o-m", entry_id="museum", name="Museum"),
        )
        transfer = entry(
            "tr", utc(2025, 6, 1, 10, 30), utc(2025, 6, 1, 10, 45), from_entry_id="museum"
        )

        (command,) = on_anchor_time_changed(museum, AnchorField.end_time, [transfer], TRIP)
        settled = transfer.model_copy(
            update={"start_time": command.new_start, "end_time": command.new_end}
        )

        assert on_anchor_time_changed(museum, AnchorField.end_time, [settled], TRIP) == []


class TestStoreIntegration:
    """load_dependents and apply_cascade against the in-memory store."""

    @pytest.mark.asyncio
    async def test_load_dependents(self, store, add_entry) -> None:
        flight = await add_entry(
            utc(2025, 6, 1, 9, 0),
            utc(2025, 6, 1, 10, 30),
            entry_id="f1",
            category="flight",
            departure_tz="Europe/London",
            arrival_tz="Europe/Paris",
        )
        await add_entry(
            utc(2025, 6, 1, 7, 0),
            utc(2025, 6, 1, 9, 0),
            entry_id="ci",
            linked_flight_id="f1",
            linked_type=LinkRole.checkin,
        )
        await add_entry(
            utc(2025, 6, 1, 10, 30),
            utc(2025, 6, 1, 11, 0),
            entry_id="tr",
            category="transfer",
            from_entry_id="f1",
        )
        await add_entry(utc(2025, 6, 1, 15, 0), utc(2025, 6, 1, 16, 0), entry_id="other")

        dependents = await load_dependents(store, flight)

        assert {d.id for d in dependents} == {"ci", "tr"}

    @pytest.mark.asyncio
    async def test_apply_continues_after_a_failed_write(self, store, add_entry) -> None:
        await add_entry(utc(2025, 6, 1, 9, 0), utc(2025, 6, 1, 10, 0), entry_id="a")
        await add_entry(utc(2025, 6, 1, 11, 0), utc(2025, 6, 1, 12, 0), entry_id="b")
        commands = [
            CascadeCommand(
                entry_id="a",
                new_start=utc(2025, 6, 1, 9, 30),
                new_end=utc(2025, 6, 1, 10, 30),
                reason=CascadeReason.checkin,
                expected_version=7,
            ),
            CascadeCommand(
                entry_id="missing",
                new_start=utc(2025, 6, 1, 9, 30),
                new_end=utc(2025, 6, 1, 10, 30),
                reason=CascadeReason.checkout,
            ),
            CascadeCommand(
                entry_id="b",
                new_start=utc(2025, 6, 1, 11, 30),
                new_end=utc(2025, 6, 1, 12, 30),
                reason=CascadeReason.transfer_reposition,
                expected_version=1,
            ),
        ]

        outcome = await apply_cascade(store, commands)

        assert outcome.applied == ["b"]
        assert outcome.failed == ["a", "missing"]
        assert (await store.get_entry("a")).start_time == utc(2025, 6, 1, 9, 0)
        assert (await store.get_entry("b")).start_time == utc(2025, 6, 1, 11, 30)

    @pytest.mark.asyncio
    async def test_apply_reports_store_outage(self, store) -> None:
        async def down(*args: object, **kwargs: object) -> Entry:
            raise PersistenceError("connection lost")

        store.update_entry = down
        command = CascadeCommand(
            entry_id="a",
            new_start=utc(2025, 6, 1, 9, 30),
            new_end=utc(2025, 6, 1, 10, 30),
            reason=CascadeReason.checkin,
        )

        outcome = await apply_cascade(store, [command])

        assert outcome.failed == ["a"]
