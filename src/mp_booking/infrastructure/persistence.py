"""BookingRepository — appointments, availability slots and professionals.

Appointments are never deleted; every change is an UPDATE guarded by the
status it expects, so a concurrent change shows up as 0 rows.
Transaction ownership: the CALLER commits.
"""

from datetime import datetime

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.mp_booking.domain.models import Appointment, AvailabilitySlot, Professional
from src.mp_common.errors import InternalError

_APPOINTMENT_COLUMNS = """
    id, client_id, professional_id, slot_id, start_time, end_time, status,
    rate_cents, adjusted_rate_cents, dispute_status, dispute_reason, disputed_by,
    payment_reference, venue, admin_notes, created_at, updated_at
"""

_PROFESSIONAL_COLUMNS = """
    id, user_id, display_name, hourly_rate_cents, cut_bps, payout_account_ref, created_at
"""

_GET_PROFESSIONAL_SQL = text(f"""
    SELECT {_PROFESSIONAL_COLUMNS} FROM professionals WHERE id = :professional_id
""")

_GET_PROFESSIONAL_BY_USER_SQL = text(f"""
    SELECT {_PROFESSIONAL_COLUMNS} FROM professionals WHERE user_id = :user_id
""")

_GET_APPOINTMENT_SQL = text(f"""
    SELECT {_APPOINTMENT_COLUMNS} FROM appointments WHERE id = :appointment_id
""")

_BOOK_SLOT_SQL = text("""
    UPDATE availability_slots
    SET is_booked = TRUE, updated_at = NOW()
    WHERE id = :slot_id
      AND professional_id = :professional_id
      AND is_booked = FALSE
    RETURNING id, professional_id, start_time, end_time, is_booked
""")

_RELEASE_SLOT_SQL = text("""
    UPDATE availability_slots
    SET is_booked = FALSE, updated_at = NOW()
    WHERE id = :slot_id AND is_booked = TRUE
    RETURNING id
""")

_INSERT_APPOINTMENT_SQL = text(f"""
    INSERT INTO appointments
        (client_id, professional_id, slot_id, start_time, end_time,
         status, rate_cents, venue)
    VALUES
        (:client_id, :professional_id, :slot_id, :start_time, :end_time,
         'upcoming', :rate_cents, :venue)
    RETURNING {_APPOINTMENT_COLUMNS}
""")

_MARK_COMPLETED_SQL = text("""
    UPDATE appointments
    SET status = 'completed', updated_at = NOW()
    WHERE status = 'upcoming' AND end_time <= :now
    RETURNING id
""")

_OPEN_DISPUTE_SQL = text(f"""
    UPDATE appointments
    SET status = 'disputed',
        dispute_status = 'open',
        dispute_reason = :reason,
        disputed_by = :disputed_by,
        updated_at = NOW()
    WHERE id = :appointment_id
      AND status <> 'cancelled'
      AND dispute_status = 'none'
    RETURNING {_APPOINTMENT_COLUMNS}
""")

_CLOSE_DISPUTE_SQL = text(f"""
    UPDATE appointments
    SET status = :status,
        dispute_status = :dispute_status,
        admin_notes = :admin_notes,
        updated_at = NOW()
    WHERE id = :appointment_id AND dispute_status = 'open'
    RETURNING {_APPOINTMENT_COLUMNS}
""")


def _row_to_professional(row: object) -> Professional:
    return Professional(
        id=str(row.id),  # type: ignore[attr-defined]
        user_id=str(row.user_id),  # type: ignore[attr-defined]
        display_name=row.display_name,  # type: ignore[attr-defined]
        hourly_rate_cents=row.hourly_rate_cents,  # type: ignore[attr-defined]
        cut_bps=row.cut_bps,  # type: ignore[attr-defined]
        payout_account_ref=row.payout_account_ref,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
    )


def _row_to_slot(row: object) -> AvailabilitySlot:
    return AvailabilitySlot(
        id=str(row.id),  # type: ignore[attr-defined]
        professional_id=str(row.professional_id),  # type: ignore[attr-defined]
        start_time=row.start_time,  # type: ignore[attr-defined]
        end_time=row.end_time,  # type: ignore[attr-defined]
        is_booked=row.is_booked,  # type: ignore[attr-defined]
    )


def _row_to_appointment(row: object) -> Appointment:
    return Appointment(
        id=str(row.id),  # type: ignore[attr-defined]
        client_id=str(row.client_id),  # type: ignore[attr-defined]
        professional_id=str(row.professional_id),  # type: ignore[attr-defined]
        slot_id=str(row.slot_id) if row.slot_id else None,  # type: ignore[attr-defined]
        start_time=row.start_time,  # type: ignore[attr-defined]
        end_time=row.end_time,  # type: ignore[attr-defined]
        status=row.status,  # type: ignore[attr-defined]
        rate_cents=row.rate_cents,  # type: ignore[attr-defined]
        adjusted_rate_cents=row.adjusted_rate_cents,  # type: ignore[attr-defined]
        dispute_status=row.dispute_status,  # type: ignore[attr-defined]
        dispute_reason=row.dispute_reason,  # type: ignore[attr-defined]
        disputed_by=str(row.disputed_by) if row.disputed_by else None,  # type: ignore[attr-defined]
        payment_reference=row.payment_reference,  # type: ignore[attr-defined]
        venue=row.venue,  # type: ignore[attr-defined]
        admin_notes=row.admin_notes,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
        updated_at=row.updated_at,  # type: ignore[attr-defined]
    )


class BookingRepository:
    async def get_professional(
        self, db: AsyncSession, professional_id: str
    ) -> Professional | None:
        result = await db.execute(_GET_PROFESSIONAL_SQL, {"professional_id": professional_id})
        row = result.fetchone()
        return _row_to_professional(row) if row is not None else None

    async def get_professional_by_user_id(
        self, db: AsyncSession, user_id: str
    ) -> Professional | None:
        result = await db.execute(_GET_PROFESSIONAL_BY_USER_SQL, {"user_id": user_id})
        row = result.fetchone()
        return _row_to_professional(row) if row is not None else None

    async def get_appointment(
        self, db: AsyncSession, appointment_id: str
    ) -> Appointment | None:
        result = await db.execute(_GET_APPOINTMENT_SQL, {"appointment_id": appointment_id})
        row = result.fetchone()
        return _row_to_appointment(row) if row is not None else None

    async def book_slot(
        self, db: AsyncSession, slot_id: str, professional_id: str
    ) -> AvailabilitySlot | None:
        result = await db.execute(
            _BOOK_SLOT_SQL, {"slot_id": slot_id, "professional_id": professional_id}
        )
        row = result.fetchone()
        return _row_to_slot(row) if row is not None else None

    async def release_slot(self, db: AsyncSession, slot_id: str) -> bool:
        result = await db.execute(_RELEASE_SLOT_SQL, {"slot_id": slot_id})
        return result.fetchone() is not None

    async def insert_appointment(
        self,
        db: AsyncSession,
        client_id: str,
        professional_id: str,
        slot: AvailabilitySlot,
        rate_cents: int,
        venue: str | None,
    ) -> Appointment:
        result = await db.execute(
            _INSERT_APPOINTMENT_SQL,
            {
                "client_id": client_id,
                "professional_id": professional_id,
                "slot_id": slot.id,
                "start_time": slot.start_time,
                "end_time": slot.end_time,
                "rate_cents": rate_cents,
                "venue": venue,
            },
        )
        row = result.fetchone()
        if row is None:
            raise InternalError("Appointment insert returned no rows")
        return _row_to_appointment(row)

    async def mark_completed_appointments(
        self, db: AsyncSession, now: datetime
    ) -> list[str]:
        result = await db.execute(_MARK_COMPLETED_SQL, {"now": now})
        return [str(row.id) for row in result.fetchall()]

    async def open_dispute(
        self, db: AsyncSession, appointment_id: str, reason: str, disputed_by: str
    ) -> Appointment | None:
        result = await db.execute(
            _OPEN_DISPUTE_SQL,
            {"appointment_id": appointment_id, "reason": reason, "disputed_by": disputed_by},
        )
        row = result.fetchone()
        return _row_to_appointment(row) if row is not None else None

    async def close_dispute(
        self,
        db: AsyncSession,
        appointment_id: str,
        status: str,
        dispute_status: str,
        admin_notes: str | None,
    ) -> Appointment | None:
        result = await db.execute(
            _CLOSE_DISPUTE_SQL,
            {
                "appointment_id": appointment_id,
                "status": status,
                "dispute_status": dispute_status,
                "admin_notes": admin_notes,
            },
        )
        row = result.fetchone()
        return _row_to_appointment(row) if row is not None else None
