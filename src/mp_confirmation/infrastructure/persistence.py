"""ConfirmationRepository — appointment_confirmations persistence.

UNIQUE(appointment_id) guarantees one confirmation per appointment; creation is
INSERT ... ON CONFLICT DO NOTHING. Every resolution change is an UPDATE whose
WHERE clause lists the states it may leave, so the row itself serializes
concurrent confirms, disputes and the auto-confirm sweep.

Transaction ownership: the CALLER commits.
"""

from datetime import datetime

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.mp_booking.domain.models import Appointment
from src.mp_common.enums import PartyRole
from src.mp_confirmation.domain.models import Confirmation

_COLUMNS = """
    id, appointment_id, client_id, professional_id, professional_user_id,
    client_confirmed, client_confirmed_at, professional_confirmed, professional_confirmed_at,
    resolution, auto_confirm_deadline, auto_resolved_at, dispute_resolved_at,
    resolution_notes, resolved_by, reminder_sent_at, created_at, updated_at
"""

_ALIASED_COLUMNS = ", ".join(f"c.{col.strip()}" for col in _COLUMNS.split(","))

_OPEN = "('pending', 'client_confirmed', 'professional_confirmed')"

_INSERT_IF_ABSENT_SQL = text("""
    INSERT INTO appointment_confirmations
        (appointment_id, client_id, professional_id, professional_user_id,
         resolution, auto_confirm_deadline)
    VALUES
        (:appointment_id, :client_id, :professional_id, :professional_user_id,
         'pending', :deadline)
    ON CONFLICT (appointment_id) DO NOTHING
    RETURNING id
""")

_GET_BY_ID_SQL = text(f"SELECT {_COLUMNS} FROM appointment_confirmations WHERE id = :id")

_GET_BY_APPOINTMENT_SQL = text(f"""
    SELECT {_COLUMNS} FROM appointment_confirmations WHERE appointment_id = :appointment_id
""")

# One side confirms; the other side's flag decides whether we reach both_confirmed
_CONFIRM_CLIENT_SQL = text(f"""
    UPDATE appointment_confirmations
    SET client_confirmed = TRUE,
        client_confirmed_at = :now,
        resolution = CASE WHEN professional_confirmed THEN 'both_confirmed'
                          ELSE 'client_confirmed' END,
        updated_at = NOW()
    WHERE id = :id
      AND client_confirmed = FALSE
      AND resolution IN ('pending', 'professional_confirmed')
    RETURNING {_COLUMNS}
""")

_CONFIRM_PROFESSIONAL_SQL = text(f"""
    UPDATE appointment_confirmations
    SET professional_confirmed = TRUE,
        professional_confirmed_at = :now,
        resolution = CASE WHEN client_confirmed THEN 'both_confirmed'
                          ELSE 'professional_confirmed' END,
        updated_at = NOW()
    WHERE id = :id
      AND professional_confirmed = FALSE
      AND resolution IN ('pending', 'client_confirmed')
    RETURNING {_COLUMNS}
""")

_MARK_DISPUTED_SQL = text(f"""
    UPDATE appointment_confirmations
    SET resolution = 'disputed', updated_at = NOW()
    WHERE id = :id AND resolution IN {_OPEN}
    RETURNING {_COLUMNS}
""")

_RESOLVE_DISPUTE_SQL = text(f"""
    UPDATE appointment_confirmations
    SET resolution = :resolution,
        resolution_notes = :notes,
        resolved_by = :admin_id,
        dispute_resolved_at = :now,
        updated_at = NOW()
    WHERE id = :id AND resolution = 'disputed'
    RETURNING {_COLUMNS}
""")

_AUTO_CONFIRM_SQL = text(f"""
    UPDATE appointment_confirmations c
    SET resolution = 'auto_confirmed',
        auto_resolved_at = :now,
        updated_at = NOW()
    WHERE c.id = :id
      AND c.resolution IN {_OPEN}
      AND c.auto_confirm_deadline <= :now
      AND EXISTS (
          SELECT 1 FROM appointments a
          WHERE a.id = c.appointment_id AND a.dispute_status = 'none'
      )
    RETURNING {_COLUMNS}
""")

_LIST_AUTO_CONFIRM_SQL = text(f"""
    SELECT {_ALIASED_COLUMNS}
    FROM appointment_confirmations c
    JOIN appointments a ON a.id = c.appointment_id
    WHERE c.resolution IN {_OPEN}
      AND c.auto_confirm_deadline <= :now
      AND a.dispute_status = 'none'
      AND a.status <> 'disputed'
    ORDER BY c.auto_confirm_deadline ASC
""")

_LIST_OPEN_FOR_CLIENT_SQL = text(f"""
    SELECT {_COLUMNS} FROM appointment_confirmations
    WHERE client_id = :user_id AND resolution IN {_OPEN}
    ORDER BY auto_confirm_deadline ASC
""")

_LIST_OPEN_FOR_PROFESSIONAL_SQL = text(f"""
    SELECT {_COLUMNS} FROM appointment_confirmations
    WHERE professional_user_id = :user_id AND resolution IN {_OPEN}
    ORDER BY auto_confirm_deadline ASC
""")

_LIST_DUE_FOR_REMINDER_SQL = text(f"""
    SELECT {_COLUMNS} FROM appointment_confirmations
    WHERE resolution IN {_OPEN}
      AND reminder_sent_at IS NULL
      AND auto_confirm_deadline > :now
      AND auto_confirm_deadline <= :window_end
    ORDER BY auto_confirm_deadline ASC
""")

_MARK_REMINDER_SENT_SQL = text("""
    UPDATE appointment_confirmations
    SET reminder_sent_at = :now, updated_at = NOW()
    WHERE id = :id
""")

_LIST_DISPUTED_SQL = text(f"""
    SELECT {_COLUMNS} FROM appointment_confirmations
    WHERE resolution = 'disputed'
    ORDER BY updated_at ASC
    LIMIT :limit OFFSET :offset
""")

_LIST_NEEDING_CONFIRMATION_SQL = text("""
    SELECT a.id
    FROM appointments a
    LEFT JOIN appointment_confirmations c ON c.appointment_id = a.id
    WHERE a.status = 'completed'
      AND a.end_time <= :now
      AND c.id IS NULL
    ORDER BY a.end_time ASC
""")


def _row_to_confirmation(row: object) -> Confirmation:
    return Confirmation(
        id=str(row.id),  # type: ignore[attr-defined]
        appointment_id=str(row.appointment_id),  # type: ignore[attr-defined]
        client_id=str(row.client_id),  # type: ignore[attr-defined]
        professional_id=str(row.professional_id),  # type: ignore[attr-defined]
        professional_user_id=str(row.professional_user_id),  # type: ignore[attr-defined]
        client_confirmed=row.client_confirmed,  # type: ignore[attr-defined]
        client_confirmed_at=row.client_confirmed_at,  # type: ignore[attr-defined]
        professional_confirmed=row.professional_confirmed,  # type: ignore[attr-defined]
        professional_confirmed_at=row.professional_confirmed_at,  # type: ignore[attr-defined]
        resolution=row.resolution,  # type: ignore[attr-defined]
        auto_confirm_deadline=row.auto_confirm_deadline,  # type: ignore[attr-defined]
        auto_resolved_at=row.auto_resolved_at,  # type: ignore[attr-defined]
        dispute_resolved_at=row.dispute_resolved_at,  # type: ignore[attr-defined]
        resolution_notes=row.resolution_notes,  # type: ignore[attr-defined]
        resolved_by=str(row.resolved_by) if row.resolved_by else None,  # type: ignore[attr-defined]
        reminder_sent_at=row.reminder_sent_at,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
        updated_at=row.updated_at,  # type: ignore[attr-defined]
    )


class ConfirmationRepository:
    async def insert_if_absent(
        self,
        db: AsyncSession,
        appointment: Appointment,
        professional_user_id: str,
        deadline: datetime,
    ) -> bool:
        result = await db.execute(
            _INSERT_IF_ABSENT_SQL,
            {
                "appointment_id": appointment.id,
                "client_id": appointment.client_id,
                "professional_id": appointment.professional_id,
                "professional_user_id": professional_user_id,
                "deadline": deadline,
            },
        )
        return result.fetchone() is not None

    async def get_by_id(self, db: AsyncSession, confirmation_id: str) -> Confirmation | None:
        result = await db.execute(_GET_BY_ID_SQL, {"id": confirmation_id})
        row = result.fetchone()
        return _row_to_confirmation(row) if row is not None else None

    async def get_by_appointment(
        self, db: AsyncSession, appointment_id: str
    ) -> Confirmation | None:
        result = await db.execute(_GET_BY_APPOINTMENT_SQL, {"appointment_id": appointment_id})
        row = result.fetchone()
        return _row_to_confirmation(row) if row is not None else None

    async def mark_party_confirmed(
        self, db: AsyncSession, confirmation_id: str, role: PartyRole, now: datetime
    ) -> Confirmation | None:
        sql = _CONFIRM_CLIENT_SQL if role == PartyRole.CLIENT else _CONFIRM_PROFESSIONAL_SQL
        result = await db.execute(sql, {"id": confirmation_id, "now": now})
        row = result.fetchone()
        return _row_to_confirmation(row) if row is not None else None

    async def mark_disputed(
        self, db: AsyncSession, confirmation_id: str
    ) -> Confirmation | None:
        result = await db.execute(_MARK_DISPUTED_SQL, {"id": confirmation_id})
        row = result.fetchone()
        return _row_to_confirmation(row) if row is not None else None

    async def resolve_dispute(
        self,
        db: AsyncSession,
        confirmation_id: str,
        resolution: str,
        notes: str | None,
        admin_id: str,
        now: datetime,
    ) -> Confirmation | None:
        result = await db.execute(
            _RESOLVE_DISPUTE_SQL,
            {
                "id": confirmation_id,
                "resolution": resolution,
                "notes": notes,
                "admin_id": admin_id,
                "now": now,
            },
        )
        row = result.fetchone()
        return _row_to_confirmation(row) if row is not None else None

    async def auto_confirm(
        self, db: AsyncSession, confirmation_id: str, now: datetime
    ) -> Confirmation | None:
        result = await db.execute(_AUTO_CONFIRM_SQL, {"id": confirmation_id, "now": now})
        row = result.fetchone()
        return _row_to_confirmation(row) if row is not None else None

    async def list_auto_confirm_candidates(
        self, db: AsyncSession, now: datetime
    ) -> list[Confirmation]:
        result = await db.execute(_LIST_AUTO_CONFIRM_SQL, {"now": now})
        return [_row_to_confirmation(row) for row in result.fetchall()]

    async def list_open_for_client(
        self, db: AsyncSession, user_id: str
    ) -> list[Confirmation]:
        result = await db.execute(_LIST_OPEN_FOR_CLIENT_SQL, {"user_id": user_id})
        return [_row_to_confirmation(row) for row in result.fetchall()]

    async def list_open_for_professional_user(
        self, db: AsyncSession, user_id: str
    ) -> list[Confirmation]:
        result = await db.execute(_LIST_OPEN_FOR_PROFESSIONAL_SQL, {"user_id": user_id})
        return [_row_to_confirmation(row) for row in result.fetchall()]

    async def list_due_for_reminder(
        self, db: AsyncSession, now: datetime, window_end: datetime
    ) -> list[Confirmation]:
        result = await db.execute(
            _LIST_DUE_FOR_REMINDER_SQL, {"now": now, "window_end": window_end}
        )
        return [_row_to_confirmation(row) for row in result.fetchall()]

    async def mark_reminder_sent(
        self, db: AsyncSession, confirmation_id: str, now: datetime
    ) -> None:
        await db.execute(_MARK_REMINDER_SENT_SQL, {"id": confirmation_id, "now": now})

    async def list_disputed(
        self, db: AsyncSession, limit: int, offset: int
    ) -> list[Confirmation]:
        result = await db.execute(_LIST_DISPUTED_SQL, {"limit": limit, "offset": offset})
        return [_row_to_confirmation(row) for row in result.fetchall()]

    async def list_appointments_needing_confirmation(
        self, db: AsyncSession, now: datetime
    ) -> list[str]:
        result = await db.execute(_LIST_NEEDING_CONFIRMATION_SQL, {"now": now})
        return [str(row.id) for row in result.fetchall()]
