"""
Pydantic Schemas

Value objects shared by the conflict checker, the recurrence engine,
the availability service and the HTTP layer.
"""

from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Dict, List, Optional, Set

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator


class AppointmentStatus(str, Enum):
    """Lifecycle status of a persisted appointment."""

    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    WAITING = "WAITING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"


# Bookings in these statuses never take part in conflict checks
TERMINAL_STATUSES = frozenset({AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW})


class ConflictType(str, Enum):
    PROFESSIONAL_BUSY = "PROFESSIONAL_BUSY"
    CLIENT_BUSY = "CLIENT_BUSY"
    RESOURCE_UNAVAILABLE = "RESOURCE_UNAVAILABLE"
    OUTSIDE_WORKING_HOURS = "OUTSIDE_WORKING_HOURS"
    BLOCKED_TIME = "BLOCKED_TIME"
    INSUFFICIENT_ADVANCE = "INSUFFICIENT_ADVANCE"
    EXCEEDS_MAX_ADVANCE = "EXCEEDS_MAX_ADVANCE"


# An ERROR conflict of one of these kinds cannot be forced through
NON_OVERRIDABLE_TYPES = frozenset({
    ConflictType.PROFESSIONAL_BUSY,
    ConflictType.CLIENT_BUSY,
    ConflictType.RESOURCE_UNAVAILABLE,
})


class ConflictSeverity(str, Enum):
    ERROR = "ERROR"
    WARNING = "WARNING"


class RecurrenceType(str, Enum):
    NONE = "NONE"
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    BIWEEKLY = "BIWEEKLY"
    MONTHLY = "MONTHLY"


class DayOfWeek(str, Enum):
    """Weekday names as stored in professional_schedules.day_of_week."""

    MONDAY = "MONDAY"
    TUESDAY = "TUESDAY"
    WEDNESDAY = "WEDNESDAY"
    THURSDAY = "THURSDAY"
    FRIDAY = "FRIDAY"
    SATURDAY = "SATURDAY"
    SUNDAY = "SUNDAY"

    @classmethod
    def from_date(cls, value: date) -> "DayOfWeek":
        """Return the weekday of ``value`` (declaration order matches ``weekday()``)."""
        return list(cls)[value.weekday()]


class TimeRange(BaseModel):
    """
    Half-open interval ``[start, end)``.

    Two ranges overlap iff ``a.start < b.end and a.end > b.start``, so
    ranges that only touch at a boundary do not overlap.
    """

    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime

    @model_validator(mode="after")
    def check_order(self) -> "TimeRange":
        if self.end <= self.start:
            raise ValueError(f"end ({self.end}) must be after start ({self.start})")
        return self

    @classmethod
    def from_duration(cls, start: datetime, minutes: int) -> "TimeRange":
        return cls(start=start, end=start + timedelta(minutes=minutes))

    def overlaps(self, other: "TimeRange") -> bool:
        return self.start < other.end and self.end > other.start

    def contains(self, other: "TimeRange") -> bool:
        return self.start <= other.start and other.end <= self.end


class SchedulingPolicy(BaseModel):
    """Per-tenant booking rules. Defaults come from settings."""

    model_config = ConfigDict(frozen=True)

    min_advance_minutes: int = Field(default=60, ge=0)
    max_advance_minutes: int = Field(default=43200, ge=1)
    slot_interval_minutes: int = Field(default=30, ge=1)
    buffer_minutes: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def check_window(self) -> "SchedulingPolicy":
        if self.max_advance_minutes <= self.min_advance_minutes:
            raise ValueError("max_advance_minutes must be greater than min_advance_minutes")
        return self


class BookingCandidate(BaseModel):
    """A proposed appointment, built per validation call."""

    tenant_id: str
    professional_id: str
    client_id: Optional[str] = None
    start_time: datetime
    duration: int = Field(..., ge=1, description="Duration in minutes")
    resource_ids: List[str] = Field(default_factory=list)
    exclude_id: Optional[str] = Field(
        default=None,
        description="Appointment being edited; ignored when looking for collisions",
    )

    @property
    def end_time(self) -> datetime:
        return self.start_time + timedelta(minutes=self.duration)

    @property
    def time_range(self) -> TimeRange:
        return TimeRange(start=self.start_time, end=self.end_time)


class ExistingBooking(BaseModel):
    id: str
    tenant_id: str
    professional_id: str
    client_id: Optional[str] = None
    time_range: TimeRange
    status: AppointmentStatus
    resource_ids: List[str] = Field(default_factory=list)
    resource_names: Dict[str, str] = Field(default_factory=dict)
    client_name: Optional[str] = None
    professional_name: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status not in TERMINAL_STATUSES

    def resource_label(self, resource_id: str) -> str:
        return self.resource_names.get(resource_id) or resource_id


class TimeBlock(BaseModel):
    """Ad hoc unavailability set by a professional. Always blocking."""

    id: Optional[str] = None
    professional_id: str
    time_range: TimeRange
    reason: Optional[str] = None


class WorkingSchedule(BaseModel):
    """
    One weekday of a professional's recurring availability.

    Times are wall-clock values; ``working_range`` and ``break_range``
    anchor them to the calendar date (and tzinfo) of a reference instant.
    The break is expected to lie inside the working interval, which is
    not checked here.
    """

    professional_id: str
    day_of_week: DayOfWeek
    is_active: bool = True
    start_time: time
    end_time: time
    break_start: Optional[time] = None
    break_end: Optional[time] = None

    @staticmethod
    def _anchor(value: time, reference: datetime) -> datetime:
        return reference.replace(
            hour=value.hour, minute=value.minute, second=0, microsecond=0
        )

    def working_range(self, reference: datetime) -> TimeRange:
        return TimeRange(
            start=self._anchor(self.start_time, reference),
            end=self._anchor(self.end_time, reference),
        )

    def break_range(self, reference: datetime) -> Optional[TimeRange]:
        if self.break_start is None or self.break_end is None:
            return None
        return TimeRange(
            start=self._anchor(self.break_start, reference),
            end=self._anchor(self.break_end, reference),
        )


class Conflict(BaseModel):
    type: ConflictType
    description: str
    severity: ConflictSeverity
    appointment_id: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None


class ConflictCheckResult(BaseModel):
    conflicts: List[Conflict] = Field(default_factory=list)

    @computed_field
    @property
    def has_conflict(self) -> bool:
        return len(self.conflicts) > 0

    @computed_field
    @property
    def can_override(self) -> bool:
        """False iff an ERROR conflict has a non-overridable kind."""
        return not any(
            c.type in NON_OVERRIDABLE_TYPES and c.severity == ConflictSeverity.ERROR
            for c in self.conflicts
        )


class RecurrencePattern(BaseModel):
    """
    How a booking repeats.

    A pattern without ``count`` or ``end_date`` can be built but fails
    ``RecurrenceEngine.validate_pattern``; the same goes for a ``count``
    above the occurrence ceiling.
    """

    type: RecurrenceType = RecurrenceType.NONE
    interval: int = Field(default=1, ge=1)
    count: Optional[int] = Field(default=None, ge=1)
    end_date: Optional[datetime] = None
    days_of_week: Optional[Set[int]] = Field(
        default=None,
        description="Weekday indices, 0 = Monday ... 6 = Sunday",
    )

    @field_validator("days_of_week")
    @classmethod
    def validate_days_of_week(cls, v: Optional[Set[int]]) -> Optional[Set[int]]:
        if v is not None:
            invalid = sorted(day for day in v if not 0 <= day <= 6)
            if invalid:
                raise ValueError(f"Invalid weekday indices: {invalid}")
        return v


class RecurrenceOccurrence(BaseModel):
    date: datetime
    index: int = Field(..., ge=0)
    is_last: bool = False


class PatternValidation(BaseModel):
    valid: bool
    error: Optional[str] = None


class TimeSlot(BaseModel):
    start_time: datetime
    end_time: datetime
    professional_id: str
    available: bool = True


class DayAvailability(BaseModel):
    """Availability summary for one calendar day."""

    date: date
    available: bool
    total_slots: int = Field(..., ge=0)
    slots: Optional[List[TimeSlot]] = None
