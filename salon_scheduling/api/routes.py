"""
Scheduling API Routes

Thin HTTP adapter over the conflict checker, the recurrence engine and
the availability service. Tenant resolution happens upstream; the tenant
id travels explicitly in each request.
"""

import logging
from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field, model_validator
from sqlalchemy.ext.asyncio import AsyncSession

from salon_scheduling.config import settings
from salon_scheduling.db.repository import BookingRepository, DatabaseError
from salon_scheduling.db.session import get_db_session
from salon_scheduling.models.schemas import (
    BookingCandidate,
    ConflictCheckResult,
    DayAvailability,
    PatternValidation,
    RecurrenceOccurrence,
    RecurrencePattern,
    RecurrenceType,
    SchedulingPolicy,
    TimeSlot,
)
from salon_scheduling.services.availability import AvailabilityService
from salon_scheduling.services.conflict_checker import ConflictChecker
from salon_scheduling.services.recurrence import RecurrenceEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/scheduling", tags=["scheduling"])

STORE_UNAVAILABLE = "Scheduling data is temporarily unavailable. Please try again."


class RecurrenceExpandRequest(BaseModel):
    start_date: datetime
    pattern: RecurrencePattern
    excluded_dates: List[date] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_timezones(self) -> "RecurrenceExpandRequest":
        end_date = self.pattern.end_date
        if end_date is not None and (end_date.tzinfo is None) != (self.start_date.tzinfo is None):
            raise ValueError("start_date and pattern.end_date must both be naive or both be timezone-aware")
        return self


class RecurrenceExpandResponse(BaseModel):
    occurrences: List[RecurrenceOccurrence]
    description: str
    end_date: Optional[datetime] = None
    group_id: Optional[str] = None


def get_booking_repository(db: AsyncSession = Depends(get_db_session)) -> BookingRepository:
    return BookingRepository(db)


def get_recurrence_engine() -> RecurrenceEngine:
    return RecurrenceEngine()


async def resolve_policy(repository: BookingRepository, tenant_id: str) -> SchedulingPolicy:
    """Tenant overrides on top of the configured defaults."""
    defaults = settings.default_policy()
    policy = await repository.get_tenant_policy(tenant_id, defaults)
    return policy or defaults


@router.post("/conflicts", response_model=ConflictCheckResult)
async def check_conflicts(
    candidate: BookingCandidate,
    repository: BookingRepository = Depends(get_booking_repository),
) -> ConflictCheckResult:
    """
    Validate a proposed booking.

    Conflicts are data, not errors: the response is 200 whether or not the
    booking collides with anything. Only a store failure yields 503.
    """
    try:
        policy = await resolve_policy(repository, candidate.tenant_id)
        checker = ConflictChecker(repository, policy)
        return await checker.check_conflicts(candidate)
    except DatabaseError as e:
        logger.error(f"Conflict check failed for tenant {candidate.tenant_id}: {e}")
        raise HTTPException(status_code=503, detail=STORE_UNAVAILABLE)


@router.post("/recurrence/validate", response_model=PatternValidation)
async def validate_recurrence(
    pattern: RecurrencePattern,
    engine: RecurrenceEngine = Depends(get_recurrence_engine),
) -> PatternValidation:
    return engine.validate_pattern(pattern)


@router.post("/recurrence/expand", response_model=RecurrenceExpandResponse)
async def expand_recurrence(
    request: RecurrenceExpandRequest,
    engine: RecurrenceEngine = Depends(get_recurrence_engine),
) -> RecurrenceExpandResponse:
    """Preview the occurrences a recurring booking would create."""
    validation = engine.validate_pattern(request.pattern)
    if not validation.valid:
        logger.warning(f"Rejected recurrence pattern: {validation.error}")
        raise HTTPException(status_code=400, detail=validation.error)

    occurrences = engine.expand_with_exclusions(
        request.start_date,
        request.pattern,
        request.excluded_dates,
    )

    is_recurring = request.pattern.type != RecurrenceType.NONE
    return RecurrenceExpandResponse(
        occurrences=occurrences,
        description=engine.get_recurrence_description(request.pattern),
        end_date=engine.calculate_end_date(request.start_date, request.pattern),
        group_id=engine.generate_recurrence_group_id() if is_recurring else None,
    )


@router.get("/availability", response_model=List[TimeSlot])
async def get_availability(
    tenant_id: str,
    professional_id: str,
    day: date,
    duration_minutes: int = Query(default=30, ge=1, le=1440),
    repository: BookingRepository = Depends(get_booking_repository),
) -> List[TimeSlot]:
    try:
        policy = await resolve_policy(repository, tenant_id)
        service = AvailabilityService(repository, policy)
        return await service.get_available_slots(
            tenant_id, professional_id, day, duration_minutes
        )
    except DatabaseError as e:
        logger.error(f"Availability lookup failed for tenant {tenant_id}: {e}")
        raise HTTPException(status_code=503, detail=STORE_UNAVAILABLE)


@router.get("/availability/range", response_model=List[DayAvailability])
async def get_availability_range(
    tenant_id: str,
    professional_id: str,
    start_day: date,
    end_day: date,
    duration_minutes: int = Query(default=30, ge=1, le=1440),
    include_slots: bool = False,
    repository: BookingRepository = Depends(get_booking_repository),
) -> List[DayAvailability]:
    """Day-by-day availability summary, optionally with each day's slots."""
    if end_day < start_day:
        raise HTTPException(status_code=400, detail="end_day must not be before start_day")

    try:
        policy = await resolve_policy(repository, tenant_id)
        service = AvailabilityService(repository, policy)
        return await service.get_availability_range(
            tenant_id,
            professional_id,
            start_day,
            end_day,
            duration_minutes,
            include_slots=include_slots,
        )
    except DatabaseError as e:
        logger.error(f"Availability range lookup failed for tenant {tenant_id}: {e}")
        raise HTTPException(status_code=503, detail=STORE_UNAVAILABLE)
