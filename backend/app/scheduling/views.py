"""Active-option boundary: one resolved option view per entry."""

from collections.abc import Iterable, Sequence
from datetime import datetime

from pydantic import BaseModel

from backend.app.models.common import TRANSPORT_LIKE_CATEGORIES, Category
from backend.app.models.entries import Entry, EntryOption


class EntryView(BaseModel):
    """An entry paired with its authoritative option."""

    entry: Entry
    option: EntryOption | None = None

    @property
    def id(self) -> str:
        return self.entry.id

    @property
    def start_time(self) -> datetime:
        return self.entry.start_time

    @property
    def end_time(self) -> datetime:
        return self.entry.end_time

    @property
    def is_locked(self) -> bool:
        return self.entry.is_locked

    @property
    def name(self) -> str:
        return self.option.name if self.option else "Entry"

    @property
    def category(self) -> str | None:
        return self.option.category if self.option else None

    @property
    def is_flight(self) -> bool:
        return self.category == Category.flight.value

    @property
    def is_transfer(self) -> bool:
        return self.category == Category.transfer.value

    @property
    def is_transport_like(self) -> bool:
        return self.category in TRANSPORT_LIKE_CATEGORIES


def select_active_option(options: Sequence[EntryOption]) -> EntryOption | None:
    """Pick the option the scheduler treats as authoritative.

    Highest vote count wins; ties keep the earliest option in the given order.
    """
    best: EntryOption | None = None
    for option in options:
        if best is None or option.vote_count > best.vote_count:
            best = option
    return best


def build_entry_views(
    entries: Iterable[Entry], options: Iterable[EntryOption]
) -> list[EntryView]:
    """Attach the active option to each entry, keeping entry order."""
    by_entry: dict[str, list[EntryOption]] = {}
    for option in options:
        by_entry.setdefault(option.entry_id, []).append(option)

    return [
        EntryView(entry=entry, option=select_active_option(by_entry.get(entry.id, [])))
        for entry in entries
    ]
