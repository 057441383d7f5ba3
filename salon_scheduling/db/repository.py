"""
Database Repository Layer

Implements repository pattern for database operations.
Provides the read-only booking-store queries the scheduling services
depend on. Every query is scoped by tenant id.

Tables read:
    appointments             (id, tenant_id, professional_id, client_id,
                              scheduled_at, end_time, status)
    appointment_resources    (appointment_id, resource_id)
    resources                (id, name)
    clients                  (id, name)
    professionals            (id, tenant_id, name, slot_interval,
                              buffer_time)
    professional_time_blocks (id, tenant_id, professional_id, start_time,
                              end_time, reason)
    professional_schedules   (tenant_id, professional_id, day_of_week,
                              start_time, end_time, break_start, break_end,
                              is_active)
    tenant_settings          (tenant_id, min_advance_booking,
                              max_advance_booking, default_slot_interval,
                              buffer_minutes)
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError
from sqlalchemy import bindparam, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from salon_scheduling.models.schemas import (
    DayOfWeek,
    ExistingBooking,
    SchedulingPolicy,
    TimeBlock,
    TimeRange,
    WorkingSchedule,
)

logger = logging.getLogger(__name__)


class DatabaseError(Exception):
    """Custom exception for database operations."""
    pass


class BaseRepository:
    """Base repository with common database operations."""

    def __init__(self, session: AsyncSession):
        """
        Initialize repository with database session.

        Args:
            session: AsyncSession instance for database operations
        """
        self.session = session

    async def execute_query(
        self,
        query: str,
        params: Optional[Dict[str, Any]] = None,
        expanding: Sequence[str] = (),
    ) -> Any:
        """
        Execute a parametrized SQL query safely.

        Args:
            query: SQL query string
            params: Dictionary of query parameters
            expanding: Names of list parameters used with ``IN :name``

        Returns:
            Query result

        Raises:
            DatabaseError: If query execution fails
        """
        statement = text(query)
        if expanding:
            statement = statement.bindparams(
                *[bindparam(name, expanding=True) for name in expanding]
            )

        try:
            result = await self.session.execute(statement, params or {})
            return result
        except SQLAlchemyError as e:
            logger.error(f"Query execution failed: {e}")
            raise DatabaseError(f"Database operation failed: {str(e)}") from e


# Shared SELECT for appointment rows. Terminal statuses never conflict.
_BOOKING_SELECT = """
    SELECT
        a.id,
        a.tenant_id,
        a.professional_id,
        a.client_id,
        a.scheduled_at,
        a.end_time,
        a.status,
        COALESCE(
            array_agg(ar.resource_id ORDER BY ar.resource_id)
                FILTER (WHERE ar.resource_id IS NOT NULL),
            '{}'
        ) AS resource_ids,
        COALESCE(
            array_agg(res.name ORDER BY ar.resource_id)
                FILTER (WHERE ar.resource_id IS NOT NULL),
            '{}'
        ) AS resource_names,
        c.name AS client_name,
        p.name AS professional_name
    FROM appointments a
    LEFT JOIN appointment_resources ar ON ar.appointment_id = a.id
    LEFT JOIN resources res ON res.id = ar.resource_id
    LEFT JOIN clients c ON c.id = a.client_id
    LEFT JOIN professionals p ON p.id = a.professional_id
    WHERE a.tenant_id = :tenant_id
        AND a.status NOT IN ('CANCELLED', 'NO_SHOW')
        AND a.scheduled_at < :range_end
        AND a.end_time > :range_start
"""

_BOOKING_GROUP_BY = """
    GROUP BY a.id, c.name, p.name
    ORDER BY a.scheduled_at
"""


def _row_to_booking(row: Any) -> ExistingBooking:
    resource_ids = [str(resource_id) for resource_id in (row[7] or [])]
    # Both arrays share the same ORDER BY, so positions line up
    resource_names = {
        resource_id: name
        for resource_id, name in zip(resource_ids, row[8] or [])
        if name
    }

    return ExistingBooking(
        id=str(row[0]),
        tenant_id=str(row[1]),
        professional_id=str(row[2]),
        client_id=str(row[3]) if row[3] is not None else None,
        time_range=TimeRange(start=row[4], end=row[5]),
        status=row[6],
        resource_ids=resource_ids,
        resource_names=resource_names,
        client_name=row[9],
        professional_name=row[10],
    )


class BookingRepository(BaseRepository):
    """Read-only queries over appointments, time blocks and schedules."""

    async def _find_bookings(
        self,
        filters: str,
        params: Dict[str, Any],
        time_range: TimeRange,
        exclude_id: Optional[str],
        expanding: Sequence[str] = (),
    ) -> List[ExistingBooking]:
        query = _BOOKING_SELECT + filters
        params = {
            **params,
            "range_start": time_range.start,
            "range_end": time_range.end,
        }

        if exclude_id:
            query += " AND a.id <> :exclude_id"
            params["exclude_id"] = exclude_id

        query += _BOOKING_GROUP_BY

        result = await self.execute_query(query, params, expanding=expanding)
        return [_row_to_booking(row) for row in result.fetchall()]

    async def find_professional_bookings(
        self,
        tenant_id: str,
        professional_id: str,
        time_range: TimeRange,
        exclude_id: Optional[str] = None,
    ) -> List[ExistingBooking]:
        """
        Find non-terminal bookings of a professional overlapping a range.

        Args:
            tenant_id: Tenant scope
            professional_id: Professional whose agenda is searched
            time_range: Half-open range to test for overlap
            exclude_id: Appointment id to leave out (the one being edited)

        Returns:
            Overlapping bookings ordered by start time
        """
        try:
            return await self._find_bookings(
                " AND a.professional_id = :professional_id",
                {"tenant_id": tenant_id, "professional_id": professional_id},
                time_range,
                exclude_id,
            )
        except DatabaseError as e:
            logger.error(
                f"Failed to load bookings for professional {professional_id}: {e}"
            )
            raise

    async def find_client_bookings(
        self,
        tenant_id: str,
        client_id: str,
        time_range: TimeRange,
        exclude_id: Optional[str] = None,
    ) -> List[ExistingBooking]:
        """Same as ``find_professional_bookings`` but scoped to a client."""
        try:
            return await self._find_bookings(
                " AND a.client_id = :client_id",
                {"tenant_id": tenant_id, "client_id": client_id},
                time_range,
                exclude_id,
            )
        except DatabaseError as e:
            logger.error(f"Failed to load bookings for client {client_id}: {e}")
            raise

    async def find_resource_bookings(
        self,
        tenant_id: str,
        resource_ids: List[str],
        time_range: TimeRange,
        exclude_id: Optional[str] = None,
    ) -> List[ExistingBooking]:
        """
        Find overlapping bookings that reference any of ``resource_ids``.

        Each returned booking carries its full resource list, so the caller
        can tell which of the requested resources collide.
        """
        if not resource_ids:
            return []

        filters = """
            AND EXISTS (
                SELECT 1 FROM appointment_resources r
                WHERE r.appointment_id = a.id
                    AND r.resource_id IN :resource_ids
            )
        """

        try:
            return await self._find_bookings(
                filters,
                {"tenant_id": tenant_id, "resource_ids": list(resource_ids)},
                time_range,
                exclude_id,
                expanding=("resource_ids",),
            )
        except DatabaseError as e:
            logger.error(f"Failed to load bookings for resources {resource_ids}: {e}")
            raise

    async def find_time_blocks(
        self,
        tenant_id: str,
        professional_id: str,
        time_range: TimeRange,
    ) -> List[TimeBlock]:
        """
        Find a professional's time blocks overlapping a range.

        Args:
            tenant_id: Tenant scope
            professional_id: Professional who set the blocks
            time_range: Half-open range to test for overlap

        Returns:
            Overlapping blocks ordered by start time
        """
        query = """
            SELECT
                id,
                professional_id,
                start_time,
                end_time,
                reason
            FROM professional_time_blocks
            WHERE tenant_id = :tenant_id
                AND professional_id = :professional_id
                AND start_time < :range_end
                AND end_time > :range_start
            ORDER BY start_time;
        """

        try:
            result = await self.execute_query(
                query,
                {
                    "tenant_id": tenant_id,
                    "professional_id": professional_id,
                    "range_start": time_range.start,
                    "range_end": time_range.end,
                },
            )
            rows = result.fetchall()

            return [
                TimeBlock(
                    id=str(row[0]),
                    professional_id=str(row[1]),
                    time_range=TimeRange(start=row[2], end=row[3]),
                    reason=row[4],
                )
                for row in rows
            ]
        except DatabaseError as e:
            logger.error(f"Failed to load time blocks for professional {professional_id}: {e}")
            raise

    async def get_working_schedule(
        self,
        tenant_id: str,
        professional_id: str,
        day_of_week: DayOfWeek,
    ) -> Optional[WorkingSchedule]:
        """
        Get the active schedule entry of a professional for one weekday.

        Returns:
            The schedule, or None when the professional does not work that day
        """
        query = """
            SELECT
                professional_id,
                day_of_week,
                is_active,
                start_time,
                end_time,
                break_start,
                break_end
            FROM professional_schedules
            WHERE tenant_id = :tenant_id
                AND professional_id = :professional_id
                AND day_of_week = :day_of_week
                AND is_active = true
            LIMIT 1;
        """

        try:
            result = await self.execute_query(
                query,
                {
                    "tenant_id": tenant_id,
                    "professional_id": professional_id,
                    "day_of_week": day_of_week.value,
                },
            )
            row = result.fetchone()

            if not row:
                logger.debug(
                    f"No schedule for professional {professional_id} on {day_of_week.value}"
                )
                return None

            return WorkingSchedule(
                professional_id=str(row[0]),
                day_of_week=row[1],
                is_active=row[2],
                start_time=row[3],
                end_time=row[4],
                break_start=row[5],
                break_end=row[6],
            )
        except DatabaseError as e:
            logger.error(f"Failed to load schedule for professional {professional_id}: {e}")
            raise

    async def get_tenant_policy(
        self,
        tenant_id: str,
        defaults: Optional[SchedulingPolicy] = None,
    ) -> Optional[SchedulingPolicy]:
        """
        Get the tenant's scheduling policy overrides.

        Args:
            tenant_id: Tenant scope
            defaults: Values used for columns left NULL

        Returns:
            Tenant policy, or None if the tenant has no settings row

        Raises:
            DatabaseError: If the query fails or the stored values do not
                form a valid policy
        """
        query = """
            SELECT
                min_advance_booking,
                max_advance_booking,
                default_slot_interval,
                buffer_minutes
            FROM tenant_settings
            WHERE tenant_id = :tenant_id;
        """

        try:
            result = await self.execute_query(query, {"tenant_id": tenant_id})
            row = result.fetchone()

            if not row:
                return None

            return _merge_policy(
                defaults,
                {
                    "min_advance_minutes": row[0],
                    "max_advance_minutes": row[1],
                    "slot_interval_minutes": row[2],
                    "buffer_minutes": row[3],
                },
                f"tenant {tenant_id}",
            )
        except DatabaseError as e:
            logger.error(f"Failed to load settings for tenant {tenant_id}: {e}")
            raise

    async def get_professional_policy(
        self,
        tenant_id: str,
        professional_id: str,
        base: SchedulingPolicy,
    ) -> SchedulingPolicy:
        """
        Layer a professional's own slot interval and buffer over ``base``.

        Args:
            tenant_id: Tenant scope
            professional_id: Professional whose settings are read
            base: Tenant (or default) policy

        Returns:
            ``base`` with the professional's non-NULL overrides applied
        """
        query = """
            SELECT
                slot_interval,
                buffer_time
            FROM professionals
            WHERE id = :professional_id
                AND tenant_id = :tenant_id;
        """

        try:
            result = await self.execute_query(
                query,
                {"tenant_id": tenant_id, "professional_id": professional_id},
            )
            row = result.fetchone()

            if not row:
                return base

            return _merge_policy(
                base,
                {
                    "slot_interval_minutes": row[0],
                    "buffer_minutes": row[1],
                },
                f"professional {professional_id}",
            )
        except DatabaseError as e:
            logger.error(f"Failed to load settings for professional {professional_id}: {e}")
            raise


def _merge_policy(
    base: Optional[SchedulingPolicy],
    overrides: Dict[str, Any],
    owner: str,
) -> SchedulingPolicy:
    """Apply non-NULL ``overrides`` on top of ``base``."""
    values = base.model_dump() if base is not None else {}
    values.update({k: v for k, v in overrides.items() if v is not None})

    try:
        return SchedulingPolicy(**values)
    except ValidationError as e:
        logger.error(f"Invalid scheduling settings for {owner}: {e}")
        raise DatabaseError(f"Invalid scheduling settings for {owner}") from e
