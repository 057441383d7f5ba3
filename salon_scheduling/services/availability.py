"""
Availability Service

Lists the bookable slots of a professional on a given day or across a
range of days, using the same booking-store queries as the conflict
checker.
"""

import logging
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Iterator, List, Optional

from salon_scheduling.db.repository import BookingRepository
from salon_scheduling.models.schemas import (
    BookingCandidate,
    DayAvailability,
    DayOfWeek,
    SchedulingPolicy,
    TimeRange,
    TimeSlot,
    WorkingSchedule,
)
from salon_scheduling.services.conflict_checker import ConflictChecker

logger = logging.getLogger(__name__)


class AvailabilityService:
    """Computes free slots from schedules, blocks and existing bookings."""

    def __init__(
        self,
        repository: BookingRepository,
        default_policy: Optional[SchedulingPolicy] = None,
    ):
        self.repository = repository
        self.default_policy = default_policy or SchedulingPolicy()
        self.conflict_checker = ConflictChecker(repository, self.default_policy)

    async def resolve_policy(
        self,
        tenant_id: str,
        professional_id: str,
        policy: Optional[SchedulingPolicy] = None,
    ) -> SchedulingPolicy:
        """Tenant policy with the professional's slot interval and buffer applied."""
        return await self.repository.get_professional_policy(
            tenant_id, professional_id, policy or self.default_policy
        )

    async def get_available_slots(
        self,
        tenant_id: str,
        professional_id: str,
        day: date,
        duration_minutes: int,
        policy: Optional[SchedulingPolicy] = None,
        now: Optional[datetime] = None,
        tz: Optional[tzinfo] = None,
    ) -> List[TimeSlot]:
        """
        Calculate the available slots for a professional on one day.

        Candidates start every ``slot_interval_minutes`` from the beginning
        of each working period and must end inside it. A candidate is
        dropped when it starts outside the advance window, overlaps a time
        block, or overlaps an existing booking widened by ``buffer_minutes``.
        The professional's own interval and buffer take precedence over
        ``policy``.

        Args:
            tenant_id: Tenant scope
            professional_id: Professional to search
            day: Calendar day
            duration_minutes: Length of the requested service
            policy: Tenant scheduling policy
            now: Reference instant for the advance window
            tz: Timezone the schedule's wall-clock times are expressed in

        Returns:
            Free slots in chronological order; empty when the professional
            does not work that day
        """
        policy = await self.resolve_policy(tenant_id, professional_id, policy)
        if now is None:
            now = datetime.now(tz)

        return await self._slots_for_day(
            tenant_id, professional_id, day, duration_minutes, policy, now, tz
        )

    async def get_availability_range(
        self,
        tenant_id: str,
        professional_id: str,
        start_day: date,
        end_day: date,
        duration_minutes: int,
        include_slots: bool = False,
        policy: Optional[SchedulingPolicy] = None,
        now: Optional[datetime] = None,
        tz: Optional[tzinfo] = None,
    ) -> List[DayAvailability]:
        """
        Summarize availability for every day from ``start_day`` to ``end_day``.

        Args:
            tenant_id: Tenant scope
            professional_id: Professional to search
            start_day: First calendar day (inclusive)
            end_day: Last calendar day (inclusive)
            duration_minutes: Length of the requested service
            include_slots: Attach each day's slot list to its summary
            policy: Tenant scheduling policy
            now: Reference instant for the advance window
            tz: Timezone the schedule's wall-clock times are expressed in

        Returns:
            One DayAvailability per day, in order

        Raises:
            ValueError: If ``end_day`` is before ``start_day``
        """
        if end_day < start_day:
            raise ValueError(f"end_day ({end_day}) is before start_day ({start_day})")

        policy = await self.resolve_policy(tenant_id, professional_id, policy)
        if now is None:
            now = datetime.now(tz)

        availability: List[DayAvailability] = []
        day = start_day
        while day <= end_day:
            slots = await self._slots_for_day(
                tenant_id, professional_id, day, duration_minutes, policy, now, tz
            )
            availability.append(
                DayAvailability(
                    date=day,
                    available=len(slots) > 0,
                    total_slots=len(slots),
                    slots=slots if include_slots else None,
                )
            )
            day += timedelta(days=1)

        logger.info(
            f"Availability for professional {professional_id} from {start_day.isoformat()} "
            f"to {end_day.isoformat()}: "
            f"{sum(1 for d in availability if d.available)}/{len(availability)} day(s) open"
        )
        return availability

    async def is_slot_available(
        self,
        candidate: BookingCandidate,
        policy: Optional[SchedulingPolicy] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        """True iff the candidate booking raises no conflict at all."""
        result = await self.conflict_checker.check_conflicts(candidate, policy, now)
        return not result.has_conflict

    async def _slots_for_day(
        self,
        tenant_id: str,
        professional_id: str,
        day: date,
        duration_minutes: int,
        policy: SchedulingPolicy,
        now: datetime,
        tz: Optional[tzinfo],
    ) -> List[TimeSlot]:
        day_start = datetime.combine(day, time.min, tzinfo=tz)

        schedule = await self.repository.get_working_schedule(
            tenant_id, professional_id, DayOfWeek.from_date(day)
        )
        if schedule is None:
            logger.debug(f"No working hours for professional {professional_id} on {day.isoformat()}")
            return []

        day_range = TimeRange(start=day_start, end=day_start + timedelta(days=1))
        bookings = await self.repository.find_professional_bookings(
            tenant_id, professional_id, day_range
        )
        blocks = await self.repository.find_time_blocks(tenant_id, professional_id, day_range)

        buffer = timedelta(minutes=policy.buffer_minutes)
        busy = [
            TimeRange(start=booking.time_range.start - buffer, end=booking.time_range.end + buffer)
            for booking in bookings
        ]
        busy.extend(block.time_range for block in blocks)

        earliest = now + timedelta(minutes=policy.min_advance_minutes)
        latest = now + timedelta(minutes=policy.max_advance_minutes)

        slots: List[TimeSlot] = []
        for period in self._working_periods(schedule, day_start):
            for candidate in self._iter_candidates(
                period, duration_minutes, policy.slot_interval_minutes
            ):
                if candidate.start < earliest or candidate.start > latest:
                    continue
                if any(candidate.overlaps(taken) for taken in busy):
                    continue
                slots.append(
                    TimeSlot(
                        start_time=candidate.start,
                        end_time=candidate.end,
                        professional_id=professional_id,
                    )
                )

        logger.debug(
            f"Found {len(slots)} free slot(s) for professional {professional_id} "
            f"on {day.isoformat()}"
        )
        return slots

    @staticmethod
    def _working_periods(schedule: WorkingSchedule, reference: datetime) -> List[TimeRange]:
        """Working interval, split in two around the break when there is one."""
        working = schedule.working_range(reference)
        break_range = schedule.break_range(reference)

        if break_range is None or not break_range.overlaps(working):
            return [working]

        periods = []
        if break_range.start > working.start:
            periods.append(TimeRange(start=working.start, end=break_range.start))
        if break_range.end < working.end:
            periods.append(TimeRange(start=break_range.end, end=working.end))
        return periods

    @staticmethod
    def _iter_candidates(
        period: TimeRange,
        duration_minutes: int,
        interval_minutes: int,
    ) -> Iterator[TimeRange]:
        start = period.start
        step = timedelta(minutes=interval_minutes)

        while True:
            candidate = TimeRange.from_duration(start, duration_minutes)
            if candidate.end > period.end:
                return
            yield candidate
            start += step
