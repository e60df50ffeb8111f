"""EarningsRepository — append-only earnings lines and the platform-cut setting.

UNIQUE(appointment_id) makes recording idempotent: INSERT ... ON CONFLICT DO
NOTHING returns no row when the appointment already has its earning.
Cycle totals are SUM(platform_fee_cents); per-session fees are never
re-rounded in aggregate.

Transaction ownership: the CALLER commits.
"""

from datetime import datetime

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.mp_earnings.domain.models import (
    CycleEarnings,
    Earning,
    EarningsTotals,
    PendingConfirmationTotals,
)

PLATFORM_CUT_KEY = "platform_cut_bps"

_EARNING_COLUMNS = """
    id, professional_id, appointment_id, cycle_id, gross_cents,
    platform_fee_bps, platform_fee_cents, session_start, session_end, created_at
"""

_INSERT_IF_ABSENT_SQL = text(f"""
    INSERT INTO earnings
        (professional_id, appointment_id, cycle_id, gross_cents,
         platform_fee_bps, platform_fee_cents, session_start, session_end)
    VALUES
        (:professional_id, :appointment_id, :cycle_id, :gross_cents,
         :platform_fee_bps, :platform_fee_cents, :session_start, :session_end)
    ON CONFLICT (appointment_id) DO NOTHING
    RETURNING {_EARNING_COLUMNS}
""")

_GET_BY_APPOINTMENT_SQL = text(f"""
    SELECT {_EARNING_COLUMNS} FROM earnings WHERE appointment_id = :appointment_id
""")

_SUMMARIZE_SQL = text("""
    SELECT COALESCE(SUM(gross_cents), 0)         AS gross_cents,
           COALESCE(SUM(platform_fee_cents), 0)  AS fee_cents,
           COUNT(*)                              AS session_count
    FROM earnings
    WHERE professional_id = :professional_id
      AND (CAST(:cycle_id AS UUID) IS NULL OR cycle_id = CAST(:cycle_id AS UUID))
""")

_PENDING_CONFIRMATIONS_SQL = text("""
    SELECT COUNT(*) AS cnt,
           COALESCE(SUM(COALESCE(a.adjusted_rate_cents, a.rate_cents)), 0) AS gross_cents
    FROM appointment_confirmations c
    JOIN appointments a ON a.id = c.appointment_id
    WHERE c.professional_id = :professional_id
      AND c.resolution IN ('pending', 'client_confirmed', 'professional_confirmed', 'disputed')
""")

_LIST_EARNINGS_SQL = text(f"""
    SELECT {_EARNING_COLUMNS}
    FROM earnings
    WHERE professional_id = :professional_id
      AND (CAST(:cycle_id AS UUID) IS NULL OR cycle_id = CAST(:cycle_id AS UUID))
      AND (CAST(:cursor_id AS BIGINT) IS NULL OR id < :cursor_id)
    ORDER BY id DESC
    LIMIT :limit
""")

_CYCLE_BREAKDOWN_SQL = text("""
    SELECT c.id AS cycle_id, c.start_date, c.end_date, c.status,
           COALESCE(SUM(e.gross_cents), 0)        AS gross_cents,
           COALESCE(SUM(e.platform_fee_cents), 0) AS fee_cents,
           COUNT(e.id)                            AS session_count
    FROM payout_cycles c
    JOIN earnings e ON e.cycle_id = c.id AND e.professional_id = :professional_id
    GROUP BY c.id, c.start_date, c.end_date, c.status
    ORDER BY c.start_date DESC
    LIMIT :limit
""")

_GET_SETTING_SQL = text("SELECT value FROM platform_settings WHERE key = :key")

_SET_SETTING_SQL = text("""
    INSERT INTO platform_settings (key, value, updated_by)
    VALUES (:key, :value, :updated_by)
    ON CONFLICT (key) DO UPDATE
        SET value = EXCLUDED.value,
            updated_by = EXCLUDED.updated_by,
            updated_at = NOW()
""")


def _row_to_earning(row: object) -> Earning:
    return Earning(
        id=row.id,  # type: ignore[attr-defined]
        professional_id=str(row.professional_id),  # type: ignore[attr-defined]
        appointment_id=str(row.appointment_id),  # type: ignore[attr-defined]
        cycle_id=str(row.cycle_id),  # type: ignore[attr-defined]
        gross_cents=row.gross_cents,  # type: ignore[attr-defined]
        platform_fee_bps=row.platform_fee_bps,  # type: ignore[attr-defined]
        platform_fee_cents=row.platform_fee_cents,  # type: ignore[attr-defined]
        session_start=row.session_start,  # type: ignore[attr-defined]
        session_end=row.session_end,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
    )


def _row_to_totals(row: object | None) -> EarningsTotals:
    if row is None:
        return EarningsTotals()
    return EarningsTotals(
        gross_cents=int(row.gross_cents),  # type: ignore[attr-defined]
        fee_cents=int(row.fee_cents),  # type: ignore[attr-defined]
        session_count=int(row.session_count),  # type: ignore[attr-defined]
    )


class EarningsRepository:
    async def insert_if_absent(
        self,
        db: AsyncSession,
        professional_id: str,
        appointment_id: str,
        cycle_id: str,
        gross_cents: int,
        platform_fee_bps: int,
        platform_fee_cents: int,
        session_start: datetime,
        session_end: datetime,
    ) -> Earning | None:
        result = await db.execute(
            _INSERT_IF_ABSENT_SQL,
            {
                "professional_id": professional_id,
                "appointment_id": appointment_id,
                "cycle_id": cycle_id,
                "gross_cents": gross_cents,
                "platform_fee_bps": platform_fee_bps,
                "platform_fee_cents": platform_fee_cents,
                "session_start": session_start,
                "session_end": session_end,
            },
        )
        row = result.fetchone()
        return _row_to_earning(row) if row is not None else None

    async def get_by_appointment(
        self, db: AsyncSession, appointment_id: str
    ) -> Earning | None:
        result = await db.execute(_GET_BY_APPOINTMENT_SQL, {"appointment_id": appointment_id})
        row = result.fetchone()
        return _row_to_earning(row) if row is not None else None

    async def summarize(
        self, db: AsyncSession, professional_id: str, cycle_id: str | None
    ) -> EarningsTotals:
        result = await db.execute(
            _SUMMARIZE_SQL, {"professional_id": professional_id, "cycle_id": cycle_id}
        )
        return _row_to_totals(result.fetchone())

    async def pending_confirmations(
        self, db: AsyncSession, professional_id: str
    ) -> PendingConfirmationTotals:
        result = await db.execute(
            _PENDING_CONFIRMATIONS_SQL, {"professional_id": professional_id}
        )
        row = result.fetchone()
        if row is None:
            return PendingConfirmationTotals()
        return PendingConfirmationTotals(count=int(row.cnt), gross_cents=int(row.gross_cents))

    async def list_earnings(
        self,
        db: AsyncSession,
        professional_id: str,
        cycle_id: str | None,
        cursor_id: int | None,
        limit: int,
    ) -> list[Earning]:
        result = await db.execute(
            _LIST_EARNINGS_SQL,
            {
                "professional_id": professional_id,
                "cycle_id": cycle_id,
                "cursor_id": cursor_id,
                "limit": limit,
            },
        )
        return [_row_to_earning(row) for row in result.fetchall()]

    async def cycle_breakdown(
        self, db: AsyncSession, professional_id: str, limit: int
    ) -> list[CycleEarnings]:
        result = await db.execute(
            _CYCLE_BREAKDOWN_SQL, {"professional_id": professional_id, "limit": limit}
        )
        return [
            CycleEarnings(
                cycle_id=str(row.cycle_id),
                start_date=row.start_date,
                end_date=row.end_date,
                status=row.status,
                totals=_row_to_totals(row),
            )
            for row in result.fetchall()
        ]

    async def get_platform_cut_bps(self, db: AsyncSession) -> int | None:
        result = await db.execute(_GET_SETTING_SQL, {"key": PLATFORM_CUT_KEY})
        row = result.fetchone()
        return int(row.value) if row is not None else None

    async def set_platform_cut_bps(
        self, db: AsyncSession, bps: int, admin_id: str
    ) -> None:
        await db.execute(
            _SET_SETTING_SQL,
            {"key": PLATFORM_CUT_KEY, "value": str(bps), "updated_by": admin_id},
        )
