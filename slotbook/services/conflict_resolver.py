"""
Lookup of the start times a partner already has booked on a given day.
"""

from __future__ import annotations

import logging
from datetime import time
from typing import List

import pendulum
from pendulum import Date, DateTime

from ..domain.availability import ConflictResult
from ..domain.exceptions import RecordStoreError
from ..domain.models import ACTIVE_APPOINTMENT_STATUSES
from .record_store import RecordStoreProtocol

logger = logging.getLogger(__name__)


class ConflictResolver:
    """
    Collects the occupied times of a partner for one local calendar day.

    Only pending and confirmed appointments block a slot: canceled ones free
    it again and completed ones lie in the past.
    """

    def __init__(self, store: RecordStoreProtocol, timezone: str) -> None:
        self._store = store
        self._timezone = timezone

    def day_bounds(self, day: Date) -> tuple[DateTime, DateTime]:
        """Return the inclusive local start and end of ``day``."""
        start = pendulum.datetime(day.year, day.month, day.day, tz=self._timezone)
        return start.start_of("day"), start.end_of("day")

    async def resolve(self, partner_id: str, day: Date) -> ConflictResult:
        """
        Fetch the partner's active appointments on ``day``.

        Store failures are reported through the result rather than raised.
        """
        if not partner_id:
            raise ValueError("partner_id must not be empty")

        day_start, day_end = self.day_bounds(day)

        try:
            booked = await self._store.list_appointment_times(
                partner_id,
                day_start,
                day_end,
                ACTIVE_APPOINTMENT_STATUSES,
            )
        except RecordStoreError as exc:
            logger.warning(
                "Conflict lookup failed for partner %s on %s: %s",
                partner_id,
                day.to_date_string(),
                exc,
            )
            return ConflictResult.failed(str(exc))

        return ConflictResult.ok(self._times_of_day(booked))

    def _times_of_day(self, booked: List[DateTime]) -> List[time]:
        local_times = []
        for date_time in booked:
            local = date_time.in_timezone(self._timezone)
            local_times.append(time(hour=local.hour, minute=local.minute))
        return local_times
