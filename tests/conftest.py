"""Shared test fixtures for the scheduling tests."""

from datetime import datetime, time, timedelta
from typing import Dict, List, Optional, Tuple

import pytest

from salon_scheduling.models.schemas import (
    AppointmentStatus,
    DayOfWeek,
    ExistingBooking,
    SchedulingPolicy,
    TimeBlock,
    TimeRange,
    WorkingSchedule,
)
from salon_scheduling.services.conflict_checker import ConflictChecker

TENANT = "tenant-1"
PROFESSIONAL = "pro-1"
CLIENT = "client-1"

# Monday 2030-03-04, 08:00. Every checker test measures the advance window from here.
NOW = datetime(2030, 3, 4, 8, 0)
MONDAY = datetime(2030, 3, 4)


def at(hour: int, minute: int = 0, day: datetime = MONDAY) -> datetime:
    return day.replace(hour=hour, minute=minute)


def make_booking(
    booking_id: str,
    start: datetime,
    minutes: int = 60,
    *,
    tenant_id: str = TENANT,
    professional_id: str = PROFESSIONAL,
    client_id: Optional[str] = "client-2",
    status: AppointmentStatus = AppointmentStatus.CONFIRMED,
    resource_ids: Optional[List[str]] = None,
    resource_names: Optional[Dict[str, str]] = None,
    client_name: Optional[str] = "Maria",
    professional_name: Optional[str] = "Ana",
) -> ExistingBooking:
    return ExistingBooking(
        id=booking_id,
        tenant_id=tenant_id,
        professional_id=professional_id,
        client_id=client_id,
        time_range=TimeRange.from_duration(start, minutes),
        status=status,
        resource_ids=resource_ids or [],
        resource_names=resource_names or {},
        client_name=client_name,
        professional_name=professional_name,
    )


def make_schedule(
    day: DayOfWeek = DayOfWeek.MONDAY,
    start: time = time(9, 0),
    end: time = time(18, 0),
    break_start: Optional[time] = None,
    break_end: Optional[time] = None,
    professional_id: str = PROFESSIONAL,
) -> WorkingSchedule:
    return WorkingSchedule(
        professional_id=professional_id,
        day_of_week=day,
        start_time=start,
        end_time=end,
        break_start=break_start,
        break_end=break_end,
    )


class InMemoryBookingRepository:
    """Booking-store double answering the same queries as BookingRepository."""

    def __init__(self):
        self.bookings: List[ExistingBooking] = []
        self.blocks: List[Tuple[str, TimeBlock]] = []
        self.schedules: Dict[Tuple[str, str, DayOfWeek], WorkingSchedule] = {}
        self.policies: Dict[str, SchedulingPolicy] = {}
        self.professional_overrides: Dict[Tuple[str, str], Dict[str, int]] = {}
        self.calls: List[str] = []

    def add_booking(self, booking: ExistingBooking) -> None:
        self.bookings.append(booking)

    def add_block(self, start: datetime, end: datetime, reason: Optional[str] = None,
                  tenant_id: str = TENANT, professional_id: str = PROFESSIONAL) -> None:
        block = TimeBlock(
            professional_id=professional_id,
            time_range=TimeRange(start=start, end=end),
            reason=reason,
        )
        self.blocks.append((tenant_id, block))

    def add_schedule(self, schedule: WorkingSchedule, tenant_id: str = TENANT) -> None:
        self.schedules[(tenant_id, schedule.professional_id, schedule.day_of_week)] = schedule

    def _overlapping(self, tenant_id: str, time_range: TimeRange,
                     exclude_id: Optional[str]) -> List[ExistingBooking]:
        return [
            b for b in self.bookings
            if b.tenant_id == tenant_id
            and b.is_active
            and b.id != exclude_id
            and b.time_range.overlaps(time_range)
        ]

    async def find_professional_bookings(self, tenant_id, professional_id, time_range, exclude_id=None):
        self.calls.append("professional")
        return [b for b in self._overlapping(tenant_id, time_range, exclude_id)
                if b.professional_id == professional_id]

    async def find_client_bookings(self, tenant_id, client_id, time_range, exclude_id=None):
        self.calls.append("client")
        return [b for b in self._overlapping(tenant_id, time_range, exclude_id)
                if b.client_id == client_id]

    async def find_resource_bookings(self, tenant_id, resource_ids, time_range, exclude_id=None):
        self.calls.append("resources")
        wanted = set(resource_ids)
        return [b for b in self._overlapping(tenant_id, time_range, exclude_id)
                if wanted.intersection(b.resource_ids)]

    async def find_time_blocks(self, tenant_id, professional_id, time_range):
        self.calls.append("blocks")
        return [
            block for block_tenant, block in self.blocks
            if block_tenant == tenant_id
            and block.professional_id == professional_id
            and block.time_range.overlaps(time_range)
        ]

    async def get_working_schedule(self, tenant_id, professional_id, day_of_week):
        self.calls.append("schedule")
        return self.schedules.get((tenant_id, professional_id, day_of_week))

    async def get_tenant_policy(self, tenant_id, defaults=None):
        return self.policies.get(tenant_id)

    async def get_professional_policy(self, tenant_id, professional_id, base):
        overrides = self.professional_overrides.get((tenant_id, professional_id))
        if not overrides:
            return base
        return base.model_copy(update=overrides)


@pytest.fixture
def repository() -> InMemoryBookingRepository:
    """Repository where pro-1 works Mondays 09:00-18:00."""
    repo = InMemoryBookingRepository()
    repo.add_schedule(make_schedule())
    return repo


@pytest.fixture
def checker(repository) -> ConflictChecker:
    return ConflictChecker(repository)


@pytest.fixture
def every_day_repository() -> InMemoryBookingRepository:
    """Repository where pro-1 works every day 09:00-18:00, for wall-clock tests."""
    repo = InMemoryBookingRepository()
    for day in DayOfWeek:
        repo.add_schedule(make_schedule(day=day))
    return repo


def days_from_now(days: int, hour: int = 10) -> datetime:
    return (datetime.now() + timedelta(days=days)).replace(
        hour=hour, minute=0, second=0, microsecond=0
    )
