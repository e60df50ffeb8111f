"""CycleRepository — concrete implementation of CycleRepositoryProtocol.

UNIQUE(start_date, end_date) is the serialization point for "exactly one row per
window": creation is INSERT ... ON CONFLICT DO NOTHING followed by a select, so
concurrent callers converge on the same row. Status transitions are conditional
UPDATE ... RETURNING; 0 rows means another worker already moved the cycle.

Transaction ownership: the CALLER commits.
"""

from datetime import datetime

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.mp_cycle.domain.models import Cycle, CycleStats
from src.mp_cycle.domain.periods import CycleWindow

_CYCLE_COLUMNS = """
    id, start_date, end_date, cutoff_at, status,
    processing_started_at, completed_at, failure_reason, created_at, updated_at
"""

_INSERT_IF_ABSENT_SQL = text("""
    INSERT INTO payout_cycles (start_date, end_date, cutoff_at, status)
    VALUES (:start_date, :end_date, :cutoff_at, 'active')
    ON CONFLICT (start_date, end_date) DO NOTHING
""")

_GET_BY_WINDOW_SQL = text(f"""
    SELECT {_CYCLE_COLUMNS}
    FROM payout_cycles
    WHERE start_date = :start_date AND end_date = :end_date
""")

_GET_BY_ID_SQL = text(f"""
    SELECT {_CYCLE_COLUMNS}
    FROM payout_cycles
    WHERE id = :cycle_id
""")

_START_PROCESSING_SQL = text(f"""
    UPDATE payout_cycles
    SET status = 'processing',
        processing_started_at = :now,
        updated_at = NOW()
    WHERE id = :cycle_id
      AND status = 'active'
      AND cutoff_at <= :now
    RETURNING {_CYCLE_COLUMNS}
""")

_RESUME_PROCESSING_SQL = text(f"""
    UPDATE payout_cycles
    SET status = 'processing',
        failure_reason = NULL,
        updated_at = NOW()
    WHERE id = :cycle_id AND status = 'failed'
    RETURNING {_CYCLE_COLUMNS}
""")

_MARK_COMPLETED_SQL = text(f"""
    UPDATE payout_cycles
    SET status = 'completed',
        completed_at = :now,
        failure_reason = NULL,
        updated_at = NOW()
    WHERE id = :cycle_id AND status IN ('processing', 'failed')
    RETURNING {_CYCLE_COLUMNS}
""")

_MARK_FAILED_SQL = text(f"""
    UPDATE payout_cycles
    SET status = 'failed',
        failure_reason = :reason,
        updated_at = NOW()
    WHERE id = :cycle_id AND status = 'processing'
    RETURNING {_CYCLE_COLUMNS}
""")

_LIST_READY_FOR_ROLLOVER_SQL = text(f"""
    SELECT {_CYCLE_COLUMNS}
    FROM payout_cycles
    WHERE status = 'active' AND cutoff_at <= :now
    ORDER BY start_date ASC
""")

_LIST_BY_STATUSES_SQL = text(f"""
    SELECT {_CYCLE_COLUMNS}
    FROM payout_cycles
    WHERE status = ANY(:statuses)
    ORDER BY start_date ASC
""")

_LIST_CYCLES_SQL = text(f"""
    SELECT {_CYCLE_COLUMNS}
    FROM payout_cycles
    WHERE (CAST(:status AS TEXT) IS NULL OR status = :status)
    ORDER BY start_date DESC
    LIMIT :limit OFFSET :offset
""")

_EARNINGS_STATS_SQL = text("""
    SELECT COUNT(*)                              AS earnings_count,
           COUNT(DISTINCT professional_id)       AS professional_count,
           COALESCE(SUM(gross_cents), 0)         AS gross_cents,
           COALESCE(SUM(platform_fee_cents), 0)  AS fee_cents
    FROM earnings
    WHERE cycle_id = :cycle_id
""")

_PAYOUT_STATUS_COUNTS_SQL = text("""
    SELECT status, COUNT(*) AS cnt
    FROM payouts
    WHERE cycle_id = :cycle_id
    GROUP BY status
""")

_FEE_CHARGE_STATUS_COUNTS_SQL = text("""
    SELECT status, COUNT(*) AS cnt
    FROM fee_charges
    WHERE cycle_id = :cycle_id
    GROUP BY status
""")


def _row_to_cycle(row: object) -> Cycle:
    return Cycle(
        id=str(row.id),  # type: ignore[attr-defined]
        start_date=row.start_date,  # type: ignore[attr-defined]
        end_date=row.end_date,  # type: ignore[attr-defined]
        cutoff_at=row.cutoff_at,  # type: ignore[attr-defined]
        status=row.status,  # type: ignore[attr-defined]
        processing_started_at=row.processing_started_at,  # type: ignore[attr-defined]
        completed_at=row.completed_at,  # type: ignore[attr-defined]
        failure_reason=row.failure_reason,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
        updated_at=row.updated_at,  # type: ignore[attr-defined]
    )


class CycleRepository:
    async def insert_if_absent(self, db: AsyncSession, window: CycleWindow) -> None:
        await db.execute(
            _INSERT_IF_ABSENT_SQL,
            {
                "start_date": window.start,
                "end_date": window.end,
                "cutoff_at": window.cutoff,
            },
        )

    async def get_by_window(
        self, db: AsyncSession, start: datetime, end: datetime
    ) -> Cycle | None:
        result = await db.execute(_GET_BY_WINDOW_SQL, {"start_date": start, "end_date": end})
        row = result.fetchone()
        return _row_to_cycle(row) if row is not None else None

    async def get_by_id(self, db: AsyncSession, cycle_id: str) -> Cycle | None:
        result = await db.execute(_GET_BY_ID_SQL, {"cycle_id": cycle_id})
        row = result.fetchone()
        return _row_to_cycle(row) if row is not None else None

    async def start_processing(
        self, db: AsyncSession, cycle_id: str, now: datetime
    ) -> Cycle | None:
        result = await db.execute(_START_PROCESSING_SQL, {"cycle_id": cycle_id, "now": now})
        row = result.fetchone()
        return _row_to_cycle(row) if row is not None else None

    async def resume_processing(self, db: AsyncSession, cycle_id: str) -> Cycle | None:
        result = await db.execute(_RESUME_PROCESSING_SQL, {"cycle_id": cycle_id})
        row = result.fetchone()
        return _row_to_cycle(row) if row is not None else None

    async def mark_completed(
        self, db: AsyncSession, cycle_id: str, now: datetime
    ) -> Cycle | None:
        result = await db.execute(_MARK_COMPLETED_SQL, {"cycle_id": cycle_id, "now": now})
        row = result.fetchone()
        return _row_to_cycle(row) if row is not None else None

    async def mark_failed(
        self, db: AsyncSession, cycle_id: str, reason: str
    ) -> Cycle | None:
        result = await db.execute(_MARK_FAILED_SQL, {"cycle_id": cycle_id, "reason": reason})
        row = result.fetchone()
        return _row_to_cycle(row) if row is not None else None

    async def list_ready_for_rollover(
        self, db: AsyncSession, now: datetime
    ) -> list[Cycle]:
        result = await db.execute(_LIST_READY_FOR_ROLLOVER_SQL, {"now": now})
        return [_row_to_cycle(row) for row in result.fetchall()]

    async def list_by_statuses(
        self, db: AsyncSession, statuses: list[str]
    ) -> list[Cycle]:
        result = await db.execute(_LIST_BY_STATUSES_SQL, {"statuses": list(statuses)})
        return [_row_to_cycle(row) for row in result.fetchall()]

    async def list_cycles(
        self, db: AsyncSession, status: str | None, limit: int, offset: int
    ) -> list[Cycle]:
        result = await db.execute(
            _LIST_CYCLES_SQL, {"status": status, "limit": limit, "offset": offset}
        )
        return [_row_to_cycle(row) for row in result.fetchall()]

    async def get_stats(self, db: AsyncSession, cycle_id: str) -> CycleStats:
        params = {"cycle_id": cycle_id}
        earnings_row = (await db.execute(_EARNINGS_STATS_SQL, params)).fetchone()
        payout_rows = (await db.execute(_PAYOUT_STATUS_COUNTS_SQL, params)).fetchall()
        fee_rows = (await db.execute(_FEE_CHARGE_STATUS_COUNTS_SQL, params)).fetchall()
        return CycleStats(
            cycle_id=cycle_id,
            earnings_count=int(earnings_row.earnings_count) if earnings_row else 0,
            professional_count=int(earnings_row.professional_count) if earnings_row else 0,
            gross_cents=int(earnings_row.gross_cents) if earnings_row else 0,
            fee_cents=int(earnings_row.fee_cents) if earnings_row else 0,
            payout_status_counts={r.status: int(r.cnt) for r in payout_rows},
            fee_charge_status_counts={r.status: int(r.cnt) for r in fee_rows},
        )
