"""Tests for the recurrence engine."""

import re
from datetime import date, datetime, timedelta

import pytest
from pydantic import ValidationError

from salon_scheduling.models.schemas import RecurrencePattern, RecurrenceType
from salon_scheduling.services.recurrence import RecurrenceEngine

START = datetime(2030, 3, 4, 10, 0)
NOW = datetime(2030, 3, 1, 9, 0)


@pytest.fixture
def engine() -> RecurrenceEngine:
    return RecurrenceEngine()


class TestGenerateOccurrences:

    def test_non_recurring_yields_start_only(self, engine):
        occurrences = engine.generate_occurrences(START, RecurrencePattern())

        assert len(occurrences) == 1
        assert occurrences[0].date == START
        assert occurrences[0].index == 0
        assert occurrences[0].is_last is True

    def test_weekly_with_count(self, engine):
        pattern = RecurrencePattern(type=RecurrenceType.WEEKLY, count=5)

        occurrences = engine.generate_occurrences(START, pattern)

        assert [o.date for o in occurrences] == [START + timedelta(weeks=i) for i in range(5)]
        assert [o.index for o in occurrences] == [0, 1, 2, 3, 4]
        assert [o.is_last for o in occurrences] == [False, False, False, False, True]

    def test_count_is_capped(self, engine):
        pattern = RecurrencePattern(type=RecurrenceType.DAILY, count=1000)

        occurrences = engine.generate_occurrences(START, pattern)

        assert len(occurrences) == RecurrenceEngine.MAX_OCCURRENCES
        assert occurrences[-1].is_last is True

    def test_end_date_is_inclusive(self, engine):
        pattern = RecurrencePattern(type=RecurrenceType.DAILY, end_date=START + timedelta(days=3))

        occurrences = engine.generate_occurrences(START, pattern)

        assert [o.date.day for o in occurrences] == [4, 5, 6, 7]

    def test_end_date_and_count_whichever_first(self, engine):
        pattern = RecurrencePattern(
            type=RecurrenceType.DAILY, count=2, end_date=START + timedelta(days=10)
        )

        assert len(engine.generate_occurrences(START, pattern)) == 2

    def test_end_date_before_start_is_empty(self, engine):
        pattern = RecurrencePattern(type=RecurrenceType.DAILY, end_date=START - timedelta(days=1))

        assert engine.generate_occurrences(START, pattern) == []

    def test_interval_applies_to_daily(self, engine):
        pattern = RecurrencePattern(type=RecurrenceType.DAILY, interval=3, count=3)

        occurrences = engine.generate_occurrences(START, pattern)

        assert [o.date.day for o in occurrences] == [4, 7, 10]

    def test_biweekly_ignores_interval(self, engine):
        pattern = RecurrencePattern(type=RecurrenceType.BIWEEKLY, interval=5, count=3)

        occurrences = engine.generate_occurrences(START, pattern)

        assert [o.date for o in occurrences] == [
            START, START + timedelta(weeks=2), START + timedelta(weeks=4)
        ]

    def test_monthly_clamps_to_month_end(self, engine):
        start = datetime(2030, 1, 31, 10, 0)
        pattern = RecurrencePattern(type=RecurrenceType.MONTHLY, count=3)

        occurrences = engine.generate_occurrences(start, pattern)

        assert [o.date for o in occurrences] == [
            start,
            datetime(2030, 2, 28, 10, 0),
            datetime(2030, 3, 28, 10, 0),
        ]

    def test_generation_is_deterministic(self, engine):
        pattern = RecurrencePattern(type=RecurrenceType.WEEKLY, interval=2, count=10)

        assert engine.generate_occurrences(START, pattern) == engine.generate_occurrences(
            START, pattern
        )


class TestValidatePattern:

    def test_non_recurring_is_valid(self, engine):
        assert engine.validate_pattern(RecurrencePattern(), now=NOW).valid is True

    def test_missing_bound(self, engine):
        result = engine.validate_pattern(RecurrencePattern(type=RecurrenceType.WEEKLY), now=NOW)

        assert result.valid is False
        assert result.error == "Recurrence requires a number of occurrences or an end date"

    def test_count_above_ceiling(self, engine):
        result = engine.validate_pattern(
            RecurrencePattern(type=RecurrenceType.WEEKLY, count=53), now=NOW
        )

        assert result.valid is False
        assert result.error == "Maximum number of occurrences is 52"

    def test_count_at_ceiling(self, engine):
        result = engine.validate_pattern(
            RecurrencePattern(type=RecurrenceType.WEEKLY, count=52), now=NOW
        )

        assert result.valid is True
        assert result.error is None

    @pytest.mark.parametrize("offset", [timedelta(0), timedelta(days=-1)])
    def test_end_date_not_in_future(self, engine, offset):
        pattern = RecurrencePattern(type=RecurrenceType.DAILY, end_date=NOW + offset)

        result = engine.validate_pattern(pattern, now=NOW)

        assert result.valid is False
        assert result.error == "Recurrence end date must be in the future"

    def test_first_failing_rule_is_reported(self, engine):
        pattern = RecurrencePattern(
            type=RecurrenceType.DAILY, count=100, end_date=NOW - timedelta(days=1)
        )

        result = engine.validate_pattern(pattern, now=NOW)

        assert result.error == "Maximum number of occurrences is 52"

    def test_future_end_date_is_valid(self, engine):
        pattern = RecurrencePattern(type=RecurrenceType.DAILY, end_date=NOW + timedelta(days=7))

        assert engine.validate_pattern(pattern, now=NOW).valid is True


class TestPatternHelpers:

    def test_calculate_end_date_prefers_end_date(self, engine):
        end = START + timedelta(days=20)
        pattern = RecurrencePattern(type=RecurrenceType.WEEKLY, count=10, end_date=end)

        assert engine.calculate_end_date(START, pattern) == end

    def test_calculate_end_date_from_count(self, engine):
        pattern = RecurrencePattern(type=RecurrenceType.WEEKLY, count=4)

        assert engine.calculate_end_date(START, pattern) == START + timedelta(weeks=3)

    def test_calculate_end_date_unbounded(self, engine):
        assert engine.calculate_end_date(START, RecurrencePattern()) is None
        assert engine.calculate_end_date(
            START, RecurrencePattern(type=RecurrenceType.DAILY)
        ) is None

    def test_date_in_pattern_matches_calendar_day(self, engine):
        pattern = RecurrencePattern(type=RecurrenceType.WEEKLY, count=4)

        assert engine.is_date_in_pattern(date(2030, 3, 18), START, pattern) is True
        assert engine.is_date_in_pattern(datetime(2030, 3, 18, 23, 0), START, pattern) is True
        assert engine.is_date_in_pattern(date(2030, 3, 19), START, pattern) is False
        assert engine.is_date_in_pattern(date(2030, 4, 1), START, pattern) is False

    def test_date_in_non_recurring_pattern_needs_exact_instant(self, engine):
        pattern = RecurrencePattern()

        assert engine.is_date_in_pattern(START, START, pattern) is True
        assert engine.is_date_in_pattern(START + timedelta(hours=1), START, pattern) is False

    @pytest.mark.parametrize(
        "pattern,expected",
        [
            (RecurrencePattern(), "No recurrence"),
            (RecurrencePattern(type=RecurrenceType.DAILY), "Daily"),
            (RecurrencePattern(type=RecurrenceType.DAILY, interval=3), "Every 3 days"),
            (RecurrencePattern(type=RecurrenceType.WEEKLY), "Weekly"),
            (RecurrencePattern(type=RecurrenceType.WEEKLY, interval=2), "Every 2 weeks"),
            (RecurrencePattern(type=RecurrenceType.BIWEEKLY, interval=4), "Every 2 weeks"),
            (RecurrencePattern(type=RecurrenceType.MONTHLY), "Monthly"),
            (RecurrencePattern(type=RecurrenceType.MONTHLY, interval=6), "Every 6 months"),
        ],
    )
    def test_description(self, engine, pattern, expected):
        assert engine.get_recurrence_description(pattern) == expected

    def test_group_id_format(self, engine):
        first = engine.generate_recurrence_group_id()
        second = engine.generate_recurrence_group_id()

        assert re.fullmatch(r"recurrence_\d+_[a-z0-9]{9}", first)
        assert first != second

    def test_invalid_weekday_indices_rejected(self):
        with pytest.raises(ValidationError):
            RecurrencePattern(type=RecurrenceType.WEEKLY, count=4, days_of_week={0, 7})

    def test_non_positive_interval_rejected(self):
        with pytest.raises(ValidationError):
            RecurrencePattern(type=RecurrenceType.DAILY, interval=0, count=2)


class TestExpandWithExclusions:

    def test_excluded_dates_are_dropped(self, engine):
        pattern = RecurrencePattern(type=RecurrenceType.WEEKLY, count=4)

        occurrences = engine.expand_with_exclusions(
            START, pattern, [date(2030, 3, 11), datetime(2030, 3, 25, 18, 0)]
        )

        assert [o.date for o in occurrences] == [START, START + timedelta(weeks=2)]
        assert [o.index for o in occurrences] == [0, 2]
        assert [o.is_last for o in occurrences] == [False, True]

    def test_no_exclusions(self, engine):
        pattern = RecurrencePattern(type=RecurrenceType.DAILY, count=3)

        assert engine.expand_with_exclusions(START, pattern, []) == engine.generate_occurrences(
            START, pattern
        )

    def test_everything_excluded(self, engine):
        pattern = RecurrencePattern(type=RecurrenceType.DAILY, count=2)

        assert engine.expand_with_exclusions(
            START, pattern, [date(2030, 3, 4), date(2030, 3, 5)]
        ) == []
