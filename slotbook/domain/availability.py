"""
Availability rules: which grid slots are offered for a partner on a day.

Pure domain logic. The occupied times are handed in by the caller; nothing
here talks to the record store.
"""

from dataclasses import dataclass
from datetime import time
from typing import Collection, FrozenSet, Iterable, List, Optional, Sequence

import pendulum
from pendulum import Date, DateTime

from .models import AppointmentOverview, AppointmentSummary, SlotOffer, TimeSlot


@dataclass(frozen=True)
class ConflictResult:
    """
    Outcome of a conflict lookup.

    A failed lookup is kept distinct from "no conflicts" so the caller decides
    whether to fail open or refuse to show slots.
    """
    conflicts: FrozenSet[time]
    error: Optional[str] = None

    @classmethod
    def ok(cls, conflicts: Iterable[time]) -> "ConflictResult":
        return cls(conflicts=frozenset(conflicts))

    @classmethod
    def failed(cls, reason: str) -> "ConflictResult":
        return cls(conflicts=frozenset(), error=reason)

    @property
    def is_ok(self) -> bool:
        return self.error is None

    def conflicts_or_empty(self) -> FrozenSet[time]:
        """Occupied times, or an empty set when the lookup failed."""
        return self.conflicts if self.is_ok else frozenset()


def slot_datetime(day: Date, slot_time: time, timezone: str) -> DateTime:
    """Combine a calendar day and a time of day into a local date-time."""
    return pendulum.datetime(
        day.year,
        day.month,
        day.day,
        slot_time.hour,
        slot_time.minute,
        tz=timezone,
    )


def is_slot_available(
    slot_time: time,
    selected_date: Optional[Date],
    now: DateTime,
    conflicts: Collection[time],
    timezone: str,
    lead_time_minutes: int = 0,
) -> bool:
    """
    Decide whether a single slot can be offered.

    A slot is offered only when a date is selected, its local date-time is
    strictly later than ``now`` (plus the optional lead time), and nobody
    holds an active appointment starting at that time.
    """
    if selected_date is None:
        return False

    starts_at = slot_datetime(selected_date, slot_time, timezone)
    if not starts_at > now.add(minutes=lead_time_minutes):
        return False

    return slot_time not in conflicts


class AvailabilityCalculator:
    """
    Applies the availability rules to a whole day's grid.
    """

    def __init__(
        self,
        grid: Sequence[time],
        timezone: str,
        lead_time_minutes: int = 0,
    ):
        self.grid = tuple(grid)
        self.timezone = timezone
        self.lead_time_minutes = lead_time_minutes

    def offers(
        self,
        selected_date: Optional[Date],
        now: DateTime,
        conflicts: Collection[time],
    ) -> List[SlotOffer]:
        """Return every grid slot in order, each flagged as available or not."""
        return [
            SlotOffer(
                start=slot_time,
                available=is_slot_available(
                    slot_time,
                    selected_date,
                    now,
                    conflicts,
                    self.timezone,
                    self.lead_time_minutes,
                ),
            )
            for slot_time in self.grid
        ]

    def available_slots(
        self,
        selected_date: Date,
        now: DateTime,
        conflicts: Collection[time],
    ) -> List[TimeSlot]:
        """Return only the slots that can be booked."""
        return [
            TimeSlot(day=selected_date, start=offer.start)
            for offer in self.offers(selected_date, now, conflicts)
            if offer.available
        ]

    def to_datetime(self, day: Date, slot_time: time) -> DateTime:
        return slot_datetime(day, slot_time, self.timezone)


def split_appointments(
    appointments: Iterable[AppointmentSummary],
    now: DateTime,
) -> AppointmentOverview:
    """
    Split appointments into upcoming and past.

    Upcoming means still active and not yet started. Everything else,
    including canceled and completed appointments, counts as past.
    """
    overview = AppointmentOverview()
    for appointment in appointments:
        if appointment.is_active and appointment.date_time >= now:
            overview.upcoming.append(appointment)
        else:
            overview.past.append(appointment)
    return overview
