"""
Conflict Checker Service

Decides whether a proposed booking is legal given the professional's and
client's agendas, time blocks, working hours, shared resources and the
tenant's advance-booking window.

The checker only reads. Two concurrent requests for the same slot can
both pass; the booking store must enforce exclusivity when inserting.
"""

import logging
from datetime import datetime
from typing import List, Optional

from salon_scheduling.db.repository import BookingRepository
from salon_scheduling.models.schemas import (
    BookingCandidate,
    Conflict,
    ConflictCheckResult,
    ConflictSeverity,
    ConflictType,
    DayOfWeek,
    SchedulingPolicy,
    TimeRange,
)

logger = logging.getLogger(__name__)


def _hhmm(value: datetime) -> str:
    return value.strftime("%H:%M")


class ConflictChecker:
    """
    Validates booking candidates against the booking store.

    Repository failures are not caught: they reach the caller as
    ``DatabaseError`` and nothing is retried here.
    """

    def __init__(
        self,
        repository: BookingRepository,
        default_policy: Optional[SchedulingPolicy] = None,
    ):
        """
        Initialize ConflictChecker.

        Args:
            repository: Read-only booking store
            default_policy: Policy used when check_conflicts gets none
        """
        self.repository = repository
        self.default_policy = default_policy or SchedulingPolicy()

    async def check_conflicts(
        self,
        candidate: BookingCandidate,
        policy: Optional[SchedulingPolicy] = None,
        now: Optional[datetime] = None,
    ) -> ConflictCheckResult:
        """
        Run every conflict check for a candidate booking.

        The checks are independent; their order only affects the order of
        the returned conflicts.

        Args:
            candidate: Proposed booking
            policy: Tenant scheduling policy (advance window)
            now: Reference instant for the advance window (defaults to the
                current time in the candidate's timezone)

        Returns:
            ConflictCheckResult listing every detected conflict

        Example:
            >>> checker = ConflictChecker(BookingRepository(db))
            >>> result = await checker.check_conflicts(candidate)
            >>> result.has_conflict, result.can_override
            (True, False)
        """
        policy = policy or self.default_policy
        time_range = candidate.time_range
        conflicts: List[Conflict] = []

        conflicts.extend(await self._check_professional_conflicts(candidate, time_range))

        if candidate.client_id:
            conflicts.extend(await self._check_client_conflicts(candidate, time_range))

        conflicts.extend(await self._check_blocked_time_conflicts(candidate, time_range))

        working_hours_conflict = await self._check_working_hours_conflict(
            candidate, time_range
        )
        if working_hours_conflict:
            conflicts.append(working_hours_conflict)

        if candidate.resource_ids:
            conflicts.extend(await self._check_resource_conflicts(candidate, time_range))

        advance_conflict = self._check_advance_time_conflict(
            candidate.start_time, policy, now
        )
        if advance_conflict:
            conflicts.append(advance_conflict)

        result = ConflictCheckResult(conflicts=conflicts)

        logger.info(
            f"Checked booking for professional {candidate.professional_id} at "
            f"{candidate.start_time.isoformat()}: {len(conflicts)} conflict(s), "
            f"can_override={result.can_override}"
        )
        return result

    async def _check_professional_conflicts(
        self,
        candidate: BookingCandidate,
        time_range: TimeRange,
    ) -> List[Conflict]:
        bookings = await self.repository.find_professional_bookings(
            candidate.tenant_id,
            candidate.professional_id,
            time_range,
            exclude_id=candidate.exclude_id,
        )

        return [
            Conflict(
                type=ConflictType.PROFESSIONAL_BUSY,
                appointment_id=booking.id,
                start_time=booking.time_range.start,
                end_time=booking.time_range.end,
                description=(
                    f"Professional already has an appointment with "
                    f"{booking.client_name or 'another client'} from "
                    f"{_hhmm(booking.time_range.start)} to {_hhmm(booking.time_range.end)}"
                ),
                severity=ConflictSeverity.ERROR,
            )
            for booking in bookings
        ]

    async def _check_client_conflicts(
        self,
        candidate: BookingCandidate,
        time_range: TimeRange,
    ) -> List[Conflict]:
        bookings = await self.repository.find_client_bookings(
            candidate.tenant_id,
            candidate.client_id,
            time_range,
            exclude_id=candidate.exclude_id,
        )

        return [
            Conflict(
                type=ConflictType.CLIENT_BUSY,
                appointment_id=booking.id,
                start_time=booking.time_range.start,
                end_time=booking.time_range.end,
                description=(
                    f"Client already has an appointment with "
                    f"{booking.professional_name or 'another professional'} from "
                    f"{_hhmm(booking.time_range.start)} to {_hhmm(booking.time_range.end)}"
                ),
                severity=ConflictSeverity.WARNING,
            )
            for booking in bookings
        ]

    async def _check_blocked_time_conflicts(
        self,
        candidate: BookingCandidate,
        time_range: TimeRange,
    ) -> List[Conflict]:
        blocks = await self.repository.find_time_blocks(
            candidate.tenant_id,
            candidate.professional_id,
            time_range,
        )

        return [
            Conflict(
                type=ConflictType.BLOCKED_TIME,
                start_time=block.time_range.start,
                end_time=block.time_range.end,
                description=block.reason or "Time blocked by the professional",
                severity=ConflictSeverity.ERROR,
            )
            for block in blocks
        ]

    async def _check_working_hours_conflict(
        self,
        candidate: BookingCandidate,
        time_range: TimeRange,
    ) -> Optional[Conflict]:
        """At most one conflict: working hours are checked before the break."""
        schedule = await self.repository.get_working_schedule(
            candidate.tenant_id,
            candidate.professional_id,
            DayOfWeek.from_date(candidate.start_time),
        )

        if schedule is None:
            return Conflict(
                type=ConflictType.OUTSIDE_WORKING_HOURS,
                start_time=time_range.start,
                end_time=time_range.end,
                description="Professional does not work on this day",
                severity=ConflictSeverity.ERROR,
            )

        working = schedule.working_range(candidate.start_time)
        if not working.contains(time_range):
            return Conflict(
                type=ConflictType.OUTSIDE_WORKING_HOURS,
                start_time=time_range.start,
                end_time=time_range.end,
                description=(
                    f"Outside working hours ({_hhmm(working.start)} - {_hhmm(working.end)})"
                ),
                severity=ConflictSeverity.ERROR,
            )

        break_range = schedule.break_range(candidate.start_time)
        if break_range is not None and break_range.overlaps(time_range):
            return Conflict(
                type=ConflictType.OUTSIDE_WORKING_HOURS,
                start_time=break_range.start,
                end_time=break_range.end,
                description=(
                    f"Conflicts with the professional's break "
                    f"({_hhmm(break_range.start)} - {_hhmm(break_range.end)})"
                ),
                severity=ConflictSeverity.ERROR,
            )

        return None

    async def _check_resource_conflicts(
        self,
        candidate: BookingCandidate,
        time_range: TimeRange,
    ) -> List[Conflict]:
        """One conflict per colliding (booking, resource) pair."""
        requested = set(candidate.resource_ids)
        bookings = await self.repository.find_resource_bookings(
            candidate.tenant_id,
            candidate.resource_ids,
            time_range,
            exclude_id=candidate.exclude_id,
        )

        conflicts: List[Conflict] = []
        for booking in bookings:
            for resource_id in booking.resource_ids:
                if resource_id not in requested:
                    continue
                conflicts.append(
                    Conflict(
                        type=ConflictType.RESOURCE_UNAVAILABLE,
                        appointment_id=booking.id,
                        start_time=booking.time_range.start,
                        end_time=booking.time_range.end,
                        description=(
                            f'Resource "{booking.resource_label(resource_id)}" is already in use'
                        ),
                        severity=ConflictSeverity.ERROR,
                    )
                )

        return conflicts

    def _check_advance_time_conflict(
        self,
        start_time: datetime,
        policy: SchedulingPolicy,
        now: Optional[datetime] = None,
    ) -> Optional[Conflict]:
        if now is None:
            now = datetime.now(start_time.tzinfo)

        # Whole minutes, truncated toward zero
        minutes_until = int((start_time - now).total_seconds() / 60)

        if minutes_until < policy.min_advance_minutes:
            return Conflict(
                type=ConflictType.INSUFFICIENT_ADVANCE,
                start_time=start_time,
                end_time=start_time,
                description=(
                    f"Booking requires at least {policy.min_advance_minutes} "
                    f"minutes of advance notice"
                ),
                severity=ConflictSeverity.ERROR,
            )

        if minutes_until > policy.max_advance_minutes:
            return Conflict(
                type=ConflictType.EXCEEDS_MAX_ADVANCE,
                start_time=start_time,
                end_time=start_time,
                description=(
                    f"Booking cannot be made more than "
                    f"{policy.max_advance_minutes / 1440:g} days in advance"
                ),
                severity=ConflictSeverity.ERROR,
            )

        return None
