"""
Booking admission: reserve a restaurant table at a slot, rejecting double bookings.

Every write runs inside one scoped transaction (``async with session.begin()``),
so a failure at any step rolls the whole admission back. Two mechanisms keep
concurrent admissions for the same table and slot from both succeeding:

1. The restaurant table row is locked with ``SELECT ... FOR UPDATE`` before the
   conflict check, which serialises admissions per table on PostgreSQL/MySQL.
2. ``uq_bookings_table_slot`` on ``bookings`` turns a lost race into an
   ``IntegrityError``, which is translated back into a rejection.

Slots conflict only on exact equality. A booking at 19:00 does not block 19:30.
"""
import asyncio
from datetime import date, datetime, timezone
from enum import Enum
from typing import Literal, Optional, Union

from pydantic import BaseModel
from sqlalchemy import delete, func
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.exc import TimeoutError as PoolTimeout
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

import config
from errors import (
    BookingError,
    ConflictError,
    ConstraintViolation,
    DeadlineExceeded,
    InvalidInput,
    NotFoundError,
    StorageUnavailable,
    classify_integrity_error,
)
from logger import logger
from models import Booking, Customer, RestaurantTable

ALREADY_BOOKED = "table already booked"
MAX_ID = 2**31 - 1  # SQL INTEGER
NOTES_MAX_LENGTH = 255


class AvailabilityStatus(str, Enum):
    AVAILABLE = "available"
    OCCUPIED = "occupied"


class Availability(BaseModel):
    table_id: int
    slot: datetime
    status: AvailabilityStatus
    message: str


class Admitted(BaseModel):
    outcome: Literal["admitted"] = "admitted"
    booking_id: int


class Rejected(BaseModel):
    outcome: Literal["rejected"] = "rejected"
    reason: str


class Rescheduled(BaseModel):
    outcome: Literal["rescheduled"] = "rescheduled"
    booking_id: int
    slot: datetime


class Cancelled(BaseModel):
    outcome: Literal["cancelled"] = "cancelled"
    booking_id: int


class NotFound(BaseModel):
    outcome: Literal["not_found"] = "not_found"
    reason: str


AdmissionResult = Union[Admitted, Rejected, NotFound]
RescheduleResult = Union[Rescheduled, Rejected, NotFound]
CancelResult = Union[Cancelled, NotFound]


def normalize_slot(slot: Union[datetime, str]) -> datetime:
    """
    Parse and normalise a slot to a naive UTC datetime with whole seconds.
    Raises InvalidInput for anything that is not a datetime or ISO-8601 string.
    """
    if isinstance(slot, str):
        text = slot.strip()
        try:
            date.fromisoformat(text)
        except ValueError:
            pass
        else:
            raise InvalidInput(f"slot needs a time of day, got date only: {slot!r}")
        try:
            slot = datetime.fromisoformat(text)
        except ValueError:
            raise InvalidInput(f"malformed slot: {slot!r}")

    if not isinstance(slot, datetime):
        raise InvalidInput(f"slot must be a datetime, got {type(slot).__name__}")

    if slot.tzinfo is not None:
        slot = slot.astimezone(timezone.utc).replace(tzinfo=None)
    return slot.replace(microsecond=0)


def _positive_int(name: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not 1 <= value <= MAX_ID:
        raise InvalidInput(f"{name} must be an integer between 1 and {MAX_ID}, got {value!r}")
    return value


def _as_outcome(error: BookingError):
    if isinstance(error, ConflictError):
        return Rejected(reason=error.message)
    if isinstance(error, NotFoundError):
        return NotFound(reason=error.message)
    raise error


# Query helpers. Plain parameterised statements, one per step of the admission.

async def _lock_table(session: AsyncSession, table_id: int) -> Optional[RestaurantTable]:
    statement = (
        select(RestaurantTable)
        .where(RestaurantTable.id == table_id)
        .with_for_update()
    )
    result = await session.execute(statement)
    return result.scalars().first()


async def _lock_booking(session: AsyncSession, booking_id: int) -> Optional[Booking]:
    statement = select(Booking).where(Booking.id == booking_id).with_for_update()
    result = await session.execute(statement)
    return result.scalars().first()


async def _count_bookings_at(
    session: AsyncSession,
    table_id: int,
    slot: datetime,
    exclude_booking_id: Optional[int] = None,
) -> int:
    statement = (
        select(func.count())
        .select_from(Booking)
        .where(Booking.table_id == table_id, Booking.slot == slot)
    )
    if exclude_booking_id is not None:
        statement = statement.where(Booking.id != exclude_booking_id)
    result = await session.execute(statement)
    return result.scalar_one()


async def _insert_booking(session: AsyncSession, booking: Booking) -> Booking:
    session.add(booking)
    # Flush inside the transaction so constraint violations surface here
    await session.flush()
    return booking


class BookingAdmissionService:
    """
    Stateless admission service. Each call opens its own session and
    transaction from ``session_factory``; nothing is shared between calls.

    ``timeout`` is a per-operation deadline in seconds. When it expires the
    in-flight transaction is cancelled, rolled back, and DeadlineExceeded is
    raised.
    """

    def __init__(self, session_factory, timeout: Optional[float] = config.BOOKING_TIMEOUT_SECONDS):
        self._sessions = session_factory
        self._timeout = timeout

    async def _run(self, operation: str, coro, timeout: Optional[float]):
        limit = self._timeout if timeout is None else timeout
        try:
            if limit is None:
                return await coro
            return await asyncio.wait_for(coro, limit)
        except asyncio.TimeoutError:
            logger.warning(f"⏱️ {operation} exceeded its {limit}s deadline, transaction rolled back")
            raise DeadlineExceeded(f"{operation} did not complete within {limit}s")
        except IntegrityError as exc:
            raise classify_integrity_error(exc) from exc
        except (DBAPIError, PoolTimeout, OSError) as exc:
            logger.error(f"❌ Storage failure during {operation}: {exc}")
            raise StorageUnavailable(f"storage unavailable during {operation}") from exc

    # --- CheckAvailability ---

    async def check_availability(
        self, table_id: int, slot: Union[datetime, str], timeout: Optional[float] = None
    ) -> Availability:
        table_id = _positive_int("table_id", table_id)
        slot = normalize_slot(slot)
        return await self._run("check_availability", self._check(table_id, slot), timeout)

    async def _check(self, table_id: int, slot: datetime) -> Availability:
        async with self._sessions() as session:
            taken = await _count_bookings_at(session, table_id, slot)

        if taken:
            return Availability(
                table_id=table_id,
                slot=slot,
                status=AvailabilityStatus.OCCUPIED,
                message=f"Table {table_id} is already booked",
            )
        return Availability(
            table_id=table_id,
            slot=slot,
            status=AvailabilityStatus.AVAILABLE,
            message=f"Table {table_id} is available",
        )

    # --- AdmitBooking ---

    async def admit_booking(
        self,
        table_id: int,
        slot: Union[datetime, str],
        customer_id: int,
        party_size: int,
        notes: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> AdmissionResult:
        table_id = _positive_int("table_id", table_id)
        customer_id = _positive_int("customer_id", customer_id)
        party_size = _positive_int("party_size", party_size)
        slot = normalize_slot(slot)
        if notes is not None and len(notes) > NOTES_MAX_LENGTH:
            raise InvalidInput(f"notes must be at most {NOTES_MAX_LENGTH} characters")

        logger.info(
            f"📥 Admission request: table {table_id} at {slot:%Y-%m-%d %H:%M}, "
            f"customer {customer_id}, party of {party_size}"
        )
        return await self._run(
            "admit_booking",
            self._admit(table_id, slot, customer_id, party_size, notes),
            timeout,
        )

    async def _admit(
        self,
        table_id: int,
        slot: datetime,
        customer_id: int,
        party_size: int,
        notes: Optional[str],
    ) -> AdmissionResult:
        try:
            async with self._sessions() as session:
                async with session.begin():
                    table = await _lock_table(session, table_id)
                    if table is None:
                        raise NotFoundError(f"table {table_id} does not exist")

                    if await session.get(Customer, customer_id) is None:
                        raise NotFoundError(f"customer {customer_id} does not exist")

                    if party_size > table.capacity:
                        raise ConflictError(
                            f"party of {party_size} exceeds capacity {table.capacity} of table {table_id}"
                        )

                    if await _count_bookings_at(session, table_id, slot) > 0:
                        raise ConflictError(ALREADY_BOOKED)

                    booking = await _insert_booking(
                        session,
                        Booking(
                            customer_id=customer_id,
                            table_id=table_id,
                            slot=slot,
                            party_size=party_size,
                            notes=notes,
                        ),
                    )
                    booking_id = booking.id
        except IntegrityError as exc:
            error = classify_integrity_error(exc)
            logger.warning(f"⚠️ Constraint hit while admitting table {table_id} at {slot}: {error.message}")
            if isinstance(error, ConstraintViolation):
                raise error from exc
            return _as_outcome(error)
        except (ConflictError, NotFoundError) as exc:
            logger.info(f"🚫 Admission rejected for table {table_id} at {slot}: {exc.message}")
            return _as_outcome(exc)

        logger.info(f"✅ Booking {booking_id} admitted: table {table_id} at {slot}")
        return Admitted(booking_id=booking_id)

    # --- RescheduleBooking ---

    async def reschedule_booking(
        self, booking_id: int, new_slot: Union[datetime, str], timeout: Optional[float] = None
    ) -> RescheduleResult:
        booking_id = _positive_int("booking_id", booking_id)
        new_slot = normalize_slot(new_slot)
        return await self._run("reschedule_booking", self._reschedule(booking_id, new_slot), timeout)

    async def _reschedule(self, booking_id: int, new_slot: datetime) -> RescheduleResult:
        try:
            async with self._sessions() as session:
                async with session.begin():
                    booking = await _lock_booking(session, booking_id)
                    if booking is None:
                        raise NotFoundError(f"booking {booking_id} does not exist")

                    await _lock_table(session, booking.table_id)
                    previous = booking.slot

                    if previous != new_slot:
                        taken = await _count_bookings_at(
                            session, booking.table_id, new_slot, exclude_booking_id=booking.id
                        )
                        if taken:
                            raise ConflictError(ALREADY_BOOKED)

                        booking.slot = new_slot
                        await session.flush()
        except IntegrityError as exc:
            error = classify_integrity_error(exc)
            logger.warning(f"⚠️ Constraint hit while rescheduling booking {booking_id}: {error.message}")
            if isinstance(error, ConstraintViolation):
                raise error from exc
            return _as_outcome(error)
        except (ConflictError, NotFoundError) as exc:
            logger.info(f"🚫 Reschedule of booking {booking_id} to {new_slot} refused: {exc.message}")
            return _as_outcome(exc)

        logger.info(f"🔁 Booking {booking_id} moved from {previous} to {new_slot}")
        return Rescheduled(booking_id=booking_id, slot=new_slot)

    # --- CancelBooking ---

    async def cancel_booking(self, booking_id: int, timeout: Optional[float] = None) -> CancelResult:
        booking_id = _positive_int("booking_id", booking_id)
        return await self._run("cancel_booking", self._cancel(booking_id), timeout)

    async def _cancel(self, booking_id: int) -> CancelResult:
        async with self._sessions() as session:
            async with session.begin():
                result = await session.execute(delete(Booking).where(Booking.id == booking_id))
                deleted = result.rowcount

        if not deleted:
            return NotFound(reason=f"booking {booking_id} does not exist")

        logger.info(f"🗑️ Booking {booking_id} cancelled")
        return Cancelled(booking_id=booking_id)
