"""PayoutRepository — payouts persistence.

Creation aggregates the cycle's earnings that no payout has consumed yet, in
one statement: lock the unlinked rows, INSERT one payout per professional with
the next sequence_no, and link the rows to it. A second run finds nothing
unlinked and inserts zero rows; an earning recorded after the cycle was paid
becomes a top-up payout with sequence_no 2, 3, ...
Claims and settlements are conditional UPDATEs.

Transaction ownership: the CALLER commits.
"""

from datetime import datetime

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.mp_payout.domain.models import Payout, PayoutSummary

_COLUMNS = """
    id, professional_id, cycle_id, sequence_no, amount_cents, paid_cents,
    gross_cents, fee_cents, earnings_count, status, attempt_count,
    gateway_reference, failure_reason, last_attempt_at, completed_at,
    created_at, updated_at
"""

_CREATE_FOR_CYCLE_SQL = text(f"""
    WITH unlinked AS (
        SELECT id, professional_id, cycle_id, gross_cents, platform_fee_cents
        FROM earnings
        WHERE cycle_id = :cycle_id AND payout_id IS NULL
        FOR UPDATE
    ),
    created AS (
        INSERT INTO payouts
            (professional_id, cycle_id, sequence_no, amount_cents, gross_cents,
             fee_cents, earnings_count, status)
        SELECT u.professional_id,
               u.cycle_id,
               (SELECT COALESCE(MAX(p.sequence_no), 0) + 1 FROM payouts p
                WHERE p.professional_id = u.professional_id AND p.cycle_id = u.cycle_id),
               SUM(u.gross_cents) - SUM(u.platform_fee_cents),
               SUM(u.gross_cents),
               SUM(u.platform_fee_cents),
               COUNT(*),
               'pending'
        FROM unlinked u
        GROUP BY u.professional_id, u.cycle_id
        ON CONFLICT (professional_id, cycle_id, sequence_no) DO NOTHING
        RETURNING {_COLUMNS}
    ),
    linked AS (
        UPDATE earnings e
        SET payout_id = c.id
        FROM created c, unlinked u
        WHERE e.id = u.id AND u.professional_id = c.professional_id
        RETURNING e.id
    )
    SELECT {_COLUMNS} FROM created
""")

_LIST_COMPLETED_WITH_UNPAID_SQL = text("""
    SELECT DISTINCT e.cycle_id
    FROM earnings e
    JOIN payout_cycles c ON c.id = e.cycle_id
    WHERE e.payout_id IS NULL AND c.status = 'completed'
""")

_GET_SQL = text(f"SELECT {_COLUMNS} FROM payouts WHERE id = :payout_id")

_LIST_FOR_CYCLE_SQL = text(f"""
    SELECT {_COLUMNS} FROM payouts
    WHERE cycle_id = :cycle_id AND status = :status
    ORDER BY created_at ASC, id ASC
""")

_LIST_BY_CYCLE_SQL = text(f"""
    SELECT {_COLUMNS} FROM payouts
    WHERE cycle_id = :cycle_id
    ORDER BY created_at ASC, id ASC
""")

_LIST_BY_STATUS_SQL = text(f"""
    SELECT {_COLUMNS} FROM payouts
    WHERE status = :status
    ORDER BY created_at ASC, id ASC
""")

_LIST_FOR_PROFESSIONAL_SQL = text(f"""
    SELECT {_COLUMNS} FROM payouts
    WHERE professional_id = :professional_id
    ORDER BY created_at DESC, id DESC
    LIMIT :limit OFFSET :offset
""")

_CLAIM_SQL = text(f"""
    UPDATE payouts
    SET status = 'processing',
        attempt_count = attempt_count + 1,
        last_attempt_at = :now,
        updated_at = NOW()
    WHERE id = :payout_id AND status = 'pending'
    RETURNING {_COLUMNS}
""")

_MARK_COMPLETED_SQL = text(f"""
    UPDATE payouts
    SET status = 'completed',
        paid_cents = GREATEST(amount_cents, 0),
        gateway_reference = COALESCE(:reference, gateway_reference),
        failure_reason = NULL,
        completed_at = :now,
        updated_at = NOW()
    WHERE id = :payout_id AND status = 'processing'
    RETURNING {_COLUMNS}
""")

_MARK_FAILED_SQL = text(f"""
    UPDATE payouts
    SET status = 'failed',
        failure_reason = :reason,
        updated_at = NOW()
    WHERE id = :payout_id AND status = 'processing'
    RETURNING {_COLUMNS}
""")

_MARK_PARTIALLY_PAID_SQL = text(f"""
    UPDATE payouts
    SET status = 'failed',
        paid_cents = :paid_cents,
        failure_reason = :reason,
        updated_at = NOW()
    WHERE id = :payout_id AND status = 'processing'
    RETURNING {_COLUMNS}
""")

_REQUEUE_FAILED_SQL = text(f"""
    UPDATE payouts
    SET status = 'pending', updated_at = NOW()
    WHERE status = 'failed' AND attempt_count < :max_attempts
    RETURNING {_COLUMNS}
""")

_COUNT_UNSETTLED_SQL = text("""
    SELECT COUNT(*) AS cnt FROM payouts
    WHERE cycle_id = :cycle_id AND status IN ('pending', 'processing')
""")

_SUMMARY_SQL = text("""
    SELECT status,
           COUNT(*) AS cnt,
           COALESCE(SUM(amount_cents), 0) AS total
    FROM payouts
    WHERE cycle_id = :cycle_id
    GROUP BY status
""")


def _row_to_payout(row: object) -> Payout:
    return Payout(
        id=str(row.id),  # type: ignore[attr-defined]
        professional_id=str(row.professional_id),  # type: ignore[attr-defined]
        cycle_id=str(row.cycle_id),  # type: ignore[attr-defined]
        sequence_no=row.sequence_no,  # type: ignore[attr-defined]
        amount_cents=row.amount_cents,  # type: ignore[attr-defined]
        paid_cents=row.paid_cents,  # type: ignore[attr-defined]
        gross_cents=row.gross_cents,  # type: ignore[attr-defined]
        fee_cents=row.fee_cents,  # type: ignore[attr-defined]
        earnings_count=row.earnings_count,  # type: ignore[attr-defined]
        status=row.status,  # type: ignore[attr-defined]
        attempt_count=row.attempt_count,  # type: ignore[attr-defined]
        gateway_reference=row.gateway_reference,  # type: ignore[attr-defined]
        failure_reason=row.failure_reason,  # type: ignore[attr-defined]
        last_attempt_at=row.last_attempt_at,  # type: ignore[attr-defined]
        completed_at=row.completed_at,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
        updated_at=row.updated_at,  # type: ignore[attr-defined]
    )


class PayoutRepository:
    async def create_for_cycle(self, db: AsyncSession, cycle_id: str) -> list[Payout]:
        result = await db.execute(_CREATE_FOR_CYCLE_SQL, {"cycle_id": cycle_id})
        return [_row_to_payout(row) for row in result.fetchall()]

    async def list_completed_cycles_with_unpaid_earnings(self, db: AsyncSession) -> list[str]:
        result = await db.execute(_LIST_COMPLETED_WITH_UNPAID_SQL)
        return [str(row.cycle_id) for row in result.fetchall()]

    async def get(self, db: AsyncSession, payout_id: str) -> Payout | None:
        result = await db.execute(_GET_SQL, {"payout_id": payout_id})
        row = result.fetchone()
        return _row_to_payout(row) if row is not None else None

    async def list_for_cycle(
        self, db: AsyncSession, cycle_id: str, status: str
    ) -> list[Payout]:
        result = await db.execute(_LIST_FOR_CYCLE_SQL, {"cycle_id": cycle_id, "status": status})
        return [_row_to_payout(row) for row in result.fetchall()]

    async def list_by_cycle(self, db: AsyncSession, cycle_id: str) -> list[Payout]:
        result = await db.execute(_LIST_BY_CYCLE_SQL, {"cycle_id": cycle_id})
        return [_row_to_payout(row) for row in result.fetchall()]

    async def list_by_status(self, db: AsyncSession, status: str) -> list[Payout]:
        result = await db.execute(_LIST_BY_STATUS_SQL, {"status": status})
        return [_row_to_payout(row) for row in result.fetchall()]

    async def list_for_professional(
        self, db: AsyncSession, professional_id: str, limit: int, offset: int
    ) -> list[Payout]:
        result = await db.execute(
            _LIST_FOR_PROFESSIONAL_SQL,
            {"professional_id": professional_id, "limit": limit, "offset": offset},
        )
        return [_row_to_payout(row) for row in result.fetchall()]

    async def claim(self, db: AsyncSession, payout_id: str, now: datetime) -> Payout | None:
        result = await db.execute(_CLAIM_SQL, {"payout_id": payout_id, "now": now})
        row = result.fetchone()
        return _row_to_payout(row) if row is not None else None

    async def mark_completed(
        self, db: AsyncSession, payout_id: str, reference: str | None, now: datetime
    ) -> Payout | None:
        result = await db.execute(
            _MARK_COMPLETED_SQL, {"payout_id": payout_id, "reference": reference, "now": now}
        )
        row = result.fetchone()
        return _row_to_payout(row) if row is not None else None

    async def mark_failed(
        self, db: AsyncSession, payout_id: str, reason: str
    ) -> Payout | None:
        result = await db.execute(_MARK_FAILED_SQL, {"payout_id": payout_id, "reason": reason})
        row = result.fetchone()
        return _row_to_payout(row) if row is not None else None

    async def mark_partially_paid(
        self, db: AsyncSession, payout_id: str, paid_cents: int, reason: str
    ) -> Payout | None:
        result = await db.execute(
            _MARK_PARTIALLY_PAID_SQL,
            {"payout_id": payout_id, "paid_cents": paid_cents, "reason": reason},
        )
        row = result.fetchone()
        return _row_to_payout(row) if row is not None else None

    async def requeue_failed(self, db: AsyncSession, max_attempts: int) -> list[Payout]:
        result = await db.execute(_REQUEUE_FAILED_SQL, {"max_attempts": max_attempts})
        return [_row_to_payout(row) for row in result.fetchall()]

    async def count_unsettled_for_cycle(self, db: AsyncSession, cycle_id: str) -> int:
        result = await db.execute(_COUNT_UNSETTLED_SQL, {"cycle_id": cycle_id})
        row = result.fetchone()
        return int(row.cnt) if row is not None else 0

    async def get_summary(self, db: AsyncSession, cycle_id: str) -> PayoutSummary:
        result = await db.execute(_SUMMARY_SQL, {"cycle_id": cycle_id})
        status_counts: dict[str, int] = {}
        total = 0
        completed = 0
        for row in result.fetchall():
            status_counts[row.status] = int(row.cnt)
            total += int(row.total)
            if row.status == "completed":
                completed = int(row.total)
        return PayoutSummary(
            cycle_id=cycle_id,
            payout_count=sum(status_counts.values()),
            total_amount_cents=total,
            completed_cents=completed,
            status_counts=status_counts,
        )
