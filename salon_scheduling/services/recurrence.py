"""
Recurrence Engine

Expands a recurrence pattern into a bounded, deterministic sequence of
occurrence dates. Pure date arithmetic: no I/O and no shared state, so a
single engine can serve any number of concurrent callers.
"""

import logging
import secrets
import string
import time
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional, Union

from dateutil.relativedelta import relativedelta

from salon_scheduling.models.schemas import (
    PatternValidation,
    RecurrenceOccurrence,
    RecurrencePattern,
    RecurrenceType,
)

logger = logging.getLogger(__name__)

DateLike = Union[date, datetime]

_GROUP_ID_ALPHABET = string.ascii_lowercase + string.digits


def _calendar_date(value: DateLike) -> date:
    """Drop the time of day; plain dates pass through."""
    return value.date() if isinstance(value, datetime) else value


class RecurrenceEngine:
    """Generates and validates recurring booking dates."""

    # One year of weekly bookings
    MAX_OCCURRENCES = 52

    def generate_occurrences(
        self,
        start_date: datetime,
        pattern: RecurrencePattern,
    ) -> List[RecurrenceOccurrence]:
        """
        Expand ``pattern`` starting at ``start_date``.

        Generation stops at the first date after ``pattern.end_date`` (that
        date is not included) or once ``min(count, MAX_OCCURRENCES)``
        occurrences exist. Only the final element has ``is_last`` set.

        Args:
            start_date: First occurrence
            pattern: Recurrence pattern; should have passed validate_pattern

        Returns:
            Occurrences in chronological order
        """
        if pattern.type == RecurrenceType.NONE:
            return [RecurrenceOccurrence(date=start_date, index=0, is_last=True)]

        limit = min(
            pattern.count if pattern.count is not None else self.MAX_OCCURRENCES,
            self.MAX_OCCURRENCES,
        )

        occurrences: List[RecurrenceOccurrence] = []
        current = start_date

        while len(occurrences) < limit:
            if pattern.end_date is not None and current > pattern.end_date:
                break

            occurrences.append(
                RecurrenceOccurrence(date=current, index=len(occurrences))
            )
            current = self.next_occurrence(current, pattern)

        if occurrences:
            occurrences[-1] = occurrences[-1].model_copy(update={"is_last": True})

        logger.debug(
            f"Generated {len(occurrences)} {pattern.type.value} occurrences "
            f"from {start_date.isoformat()}"
        )
        return occurrences

    def next_occurrence(self, current: datetime, pattern: RecurrencePattern) -> datetime:
        """Advance ``current`` by one step of ``pattern``."""
        if pattern.type == RecurrenceType.DAILY:
            return current + timedelta(days=pattern.interval)
        if pattern.type == RecurrenceType.WEEKLY:
            return current + timedelta(weeks=pattern.interval)
        if pattern.type == RecurrenceType.BIWEEKLY:
            return current + timedelta(weeks=2)
        if pattern.type == RecurrenceType.MONTHLY:
            # relativedelta clamps Jan 31 + 1 month to the end of February
            return current + relativedelta(months=pattern.interval)
        return current

    def is_date_in_pattern(
        self,
        value: DateLike,
        start_date: datetime,
        pattern: RecurrencePattern,
    ) -> bool:
        """
        Check whether ``value`` falls on one of the pattern's occurrences.

        A non-recurring pattern matches only the exact start instant; a
        recurring one matches on calendar date, ignoring the time of day.
        """
        if pattern.type == RecurrenceType.NONE:
            return value == start_date

        target = _calendar_date(value)
        return any(
            _calendar_date(occurrence.date) == target
            for occurrence in self.generate_occurrences(start_date, pattern)
        )

    def get_recurrence_description(self, pattern: RecurrencePattern) -> str:
        if pattern.type == RecurrenceType.DAILY:
            return "Daily" if pattern.interval == 1 else f"Every {pattern.interval} days"
        if pattern.type == RecurrenceType.WEEKLY:
            return "Weekly" if pattern.interval == 1 else f"Every {pattern.interval} weeks"
        if pattern.type == RecurrenceType.BIWEEKLY:
            return "Every 2 weeks"
        if pattern.type == RecurrenceType.MONTHLY:
            return "Monthly" if pattern.interval == 1 else f"Every {pattern.interval} months"
        return "No recurrence"

    def calculate_end_date(
        self,
        start_date: datetime,
        pattern: RecurrencePattern,
    ) -> Optional[datetime]:
        """
        Date that closes a recurrence series.

        Returns:
            ``pattern.end_date`` when set, else the last generated occurrence
            for count-bounded patterns, else None
        """
        if pattern.type == RecurrenceType.NONE:
            return None

        if pattern.end_date is not None:
            return pattern.end_date

        if pattern.count is not None:
            occurrences = self.generate_occurrences(start_date, pattern)
            return occurrences[-1].date if occurrences else None

        return None

    def validate_pattern(
        self,
        pattern: RecurrencePattern,
        now: Optional[datetime] = None,
    ) -> PatternValidation:
        """
        Validate a pattern before it is used to create bookings.

        Only the first failing rule is reported.

        Args:
            pattern: Pattern to validate
            now: Reference instant for the end-date rule (defaults to the
                current time in the end date's timezone)

        Returns:
            PatternValidation with ``valid`` and, when invalid, ``error``
        """
        if pattern.type == RecurrenceType.NONE:
            return PatternValidation(valid=True)

        if pattern.count is None and pattern.end_date is None:
            return PatternValidation(
                valid=False,
                error="Recurrence requires a number of occurrences or an end date",
            )

        if pattern.count is not None and pattern.count > self.MAX_OCCURRENCES:
            return PatternValidation(
                valid=False,
                error=f"Maximum number of occurrences is {self.MAX_OCCURRENCES}",
            )

        if pattern.end_date is not None:
            if now is None:
                now = datetime.now(pattern.end_date.tzinfo)
            if pattern.end_date <= now:
                return PatternValidation(
                    valid=False,
                    error="Recurrence end date must be in the future",
                )

        return PatternValidation(valid=True)

    def generate_recurrence_group_id(self) -> str:
        """Id shared by every appointment created from one series."""
        suffix = "".join(secrets.choice(_GROUP_ID_ALPHABET) for _ in range(9))
        return f"recurrence_{int(time.time() * 1000)}_{suffix}"

    def expand_with_exclusions(
        self,
        start_date: datetime,
        pattern: RecurrencePattern,
        excluded_dates: Iterable[DateLike],
    ) -> List[RecurrenceOccurrence]:
        """
        Expand ``pattern`` and drop occurrences on excluded calendar dates.

        Each kept occurrence retains its position in the unfiltered series
        as ``index``; ``is_last`` marks the last occurrence that survives
        the filter.
        """
        excluded = {_calendar_date(value) for value in excluded_dates}

        kept = [
            occurrence
            for occurrence in self.generate_occurrences(start_date, pattern)
            if _calendar_date(occurrence.date) not in excluded
        ]

        return [
            occurrence.model_copy(update={"is_last": position == len(kept) - 1})
            for position, occurrence in enumerate(kept)
        ]
