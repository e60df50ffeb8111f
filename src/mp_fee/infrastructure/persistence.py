"""Fee-charge and payment-method repositories.

Creation sums the fees of the cycle's earnings not yet linked to a charge,
inserts one charge per professional with the next sequence_no and links the
rows in the same statement, so a re-run creates nothing.
A charge is claimed (→ processing, attempt_count + 1) before the gateway is
called; every later transition is conditional on the status it expects.

Transaction ownership: the CALLER commits.
"""

from datetime import datetime

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.mp_common.errors import InternalError
from src.mp_fee.domain.models import FeeCharge, PaymentMethod

# ---------------------------------------------------------------------------
# SQL: fee_charges
# ---------------------------------------------------------------------------

_FEE_COLUMNS = """
    id, professional_id, cycle_id, sequence_no, amount_cents, charged_cents, status,
    attempt_count, consecutive_failures, gateway_reference, failure_code,
    failure_reason, last_attempt_at, next_retry_at, charged_at,
    waived_at, waived_by, waived_reason, created_at, updated_at
"""

_CREATE_FOR_CYCLE_SQL = text(f"""
    WITH unlinked AS (
        SELECT id, professional_id, cycle_id, platform_fee_cents
        FROM earnings
        WHERE cycle_id = :cycle_id AND fee_charge_id IS NULL AND platform_fee_cents > 0
        FOR UPDATE
    ),
    created AS (
        INSERT INTO fee_charges (professional_id, cycle_id, sequence_no, amount_cents, status)
        SELECT u.professional_id,
               u.cycle_id,
               (SELECT COALESCE(MAX(f.sequence_no), 0) + 1 FROM fee_charges f
                WHERE f.professional_id = u.professional_id AND f.cycle_id = u.cycle_id),
               SUM(u.platform_fee_cents),
               'pending'
        FROM unlinked u
        GROUP BY u.professional_id, u.cycle_id
        ON CONFLICT (professional_id, cycle_id, sequence_no) DO NOTHING
        RETURNING {_FEE_COLUMNS}
    ),
    linked AS (
        UPDATE earnings e
        SET fee_charge_id = c.id
        FROM created c, unlinked u
        WHERE e.id = u.id AND u.professional_id = c.professional_id
        RETURNING e.id
    )
    SELECT {_FEE_COLUMNS} FROM created
""")

_GET_SQL = text(f"SELECT {_FEE_COLUMNS} FROM fee_charges WHERE id = :fee_charge_id")

_LIST_FOR_CYCLE_SQL = text(f"""
    SELECT {_FEE_COLUMNS} FROM fee_charges
    WHERE cycle_id = :cycle_id AND status = :status
    ORDER BY created_at ASC, id ASC
""")

_LIST_BY_STATUS_SQL = text(f"""
    SELECT {_FEE_COLUMNS} FROM fee_charges
    WHERE status = :status
    ORDER BY created_at ASC, id ASC
""")

_LIST_DUE_FOR_RETRY_SQL = text(f"""
    SELECT {_FEE_COLUMNS} FROM fee_charges
    WHERE status IN ('failed', 'partially_paid')
      AND next_retry_at IS NOT NULL
      AND next_retry_at <= :now
    ORDER BY next_retry_at ASC, id ASC
""")

_LIST_FOR_PROFESSIONAL_SQL = text(f"""
    SELECT {_FEE_COLUMNS} FROM fee_charges
    WHERE professional_id = :professional_id
    ORDER BY created_at DESC, id DESC
    LIMIT :limit OFFSET :offset
""")

_CLAIM_SQL = text(f"""
    UPDATE fee_charges
    SET status = 'processing',
        attempt_count = attempt_count + 1,
        last_attempt_at = :now,
        updated_at = NOW()
    WHERE id = :fee_charge_id
      AND status IN ('pending', 'failed', 'partially_paid')
    RETURNING {_FEE_COLUMNS}
""")

_MARK_COMPLETED_SQL = text(f"""
    UPDATE fee_charges
    SET status = 'completed',
        charged_cents = :charged_cents,
        gateway_reference = COALESCE(:reference, gateway_reference),
        consecutive_failures = 0,
        failure_code = NULL,
        failure_reason = NULL,
        next_retry_at = NULL,
        charged_at = :now,
        updated_at = NOW()
    WHERE id = :fee_charge_id AND status = 'processing'
    RETURNING {_FEE_COLUMNS}
""")

_MARK_PARTIALLY_PAID_SQL = text(f"""
    UPDATE fee_charges
    SET status = 'partially_paid',
        charged_cents = :charged_cents,
        gateway_reference = COALESCE(:reference, gateway_reference),
        consecutive_failures = 0,
        next_retry_at = :next_retry_at,
        updated_at = NOW()
    WHERE id = :fee_charge_id AND status = 'processing'
    RETURNING {_FEE_COLUMNS}
""")

_MARK_FAILED_SQL = text(f"""
    UPDATE fee_charges
    SET status = 'failed',
        consecutive_failures = consecutive_failures + 1,
        failure_code = :failure_code,
        failure_reason = :failure_reason,
        next_retry_at = :next_retry_at,
        last_attempt_at = :now,
        updated_at = NOW()
    WHERE id = :fee_charge_id
      AND status IN ('pending', 'processing', 'failed', 'partially_paid')
    RETURNING {_FEE_COLUMNS}
""")

_WAIVE_SQL = text(f"""
    UPDATE fee_charges
    SET status = 'waived',
        waived_at = :now,
        waived_by = :admin_id,
        waived_reason = :reason,
        next_retry_at = NULL,
        updated_at = NOW()
    WHERE id = :fee_charge_id
      AND status IN ('pending', 'failed', 'partially_paid')
    RETURNING {_FEE_COLUMNS}
""")

_PENDING_TOTAL_SQL = text("""
    SELECT COALESCE(SUM(amount_cents - charged_cents), 0) AS total
    FROM fee_charges
    WHERE professional_id = :professional_id
      AND status IN ('pending', 'processing', 'failed', 'partially_paid')
""")

_MAKE_RETRYABLE_SQL = text("""
    UPDATE fee_charges
    SET next_retry_at = :now, updated_at = NOW()
    WHERE professional_id = :professional_id
      AND status IN ('failed', 'partially_paid')
    RETURNING id
""")

_COUNT_UNSETTLED_SQL = text("""
    SELECT COUNT(*) AS cnt FROM fee_charges
    WHERE cycle_id = :cycle_id AND status IN ('pending', 'processing')
""")

# ---------------------------------------------------------------------------
# SQL: professional_payment_methods
# ---------------------------------------------------------------------------

_METHOD_COLUMNS = """
    professional_id, card_brand, card_last4, card_exp_month, card_exp_year,
    gateway_token, is_active, is_blocked, blocked_reason, blocked_at,
    created_at, updated_at
"""

_GET_METHOD_SQL = text(f"""
    SELECT {_METHOD_COLUMNS} FROM professional_payment_methods
    WHERE professional_id = :professional_id
""")

_UPSERT_METHOD_SQL = text(f"""
    INSERT INTO professional_payment_methods
        (professional_id, card_brand, card_last4, card_exp_month, card_exp_year,
         gateway_token, is_active, is_blocked)
    VALUES
        (:professional_id, :card_brand, :card_last4, :card_exp_month, :card_exp_year,
         :gateway_token, TRUE, FALSE)
    ON CONFLICT (professional_id) DO UPDATE
        SET card_brand = EXCLUDED.card_brand,
            card_last4 = EXCLUDED.card_last4,
            card_exp_month = EXCLUDED.card_exp_month,
            card_exp_year = EXCLUDED.card_exp_year,
            gateway_token = EXCLUDED.gateway_token,
            is_active = TRUE,
            is_blocked = FALSE,
            blocked_reason = NULL,
            blocked_at = NULL,
            updated_at = NOW()
    RETURNING {_METHOD_COLUMNS}
""")

_DEACTIVATE_METHOD_SQL = text(f"""
    UPDATE professional_payment_methods
    SET is_active = FALSE, gateway_token = NULL, updated_at = NOW()
    WHERE professional_id = :professional_id
    RETURNING {_METHOD_COLUMNS}
""")

_BLOCK_METHOD_SQL = text(f"""
    INSERT INTO professional_payment_methods
        (professional_id, is_active, is_blocked, blocked_reason, blocked_at)
    VALUES
        (:professional_id, FALSE, TRUE, :reason, :now)
    ON CONFLICT (professional_id) DO UPDATE
        SET is_blocked = TRUE,
            blocked_reason = EXCLUDED.blocked_reason,
            blocked_at = COALESCE(professional_payment_methods.blocked_at, EXCLUDED.blocked_at),
            updated_at = NOW()
    RETURNING {_METHOD_COLUMNS}
""")

_UNBLOCK_METHOD_SQL = text(f"""
    UPDATE professional_payment_methods
    SET is_blocked = FALSE, blocked_reason = NULL, blocked_at = NULL, updated_at = NOW()
    WHERE professional_id = :professional_id
    RETURNING {_METHOD_COLUMNS}
""")

_LIST_BLOCKED_SQL = text(f"""
    SELECT {_METHOD_COLUMNS} FROM professional_payment_methods
    WHERE is_blocked = TRUE
    ORDER BY blocked_at ASC
""")

_LIST_EXPIRED_ACTIVE_SQL = text(f"""
    SELECT {_METHOD_COLUMNS} FROM professional_payment_methods
    WHERE is_active = TRUE
      AND (card_exp_year < :year
           OR (card_exp_year = :year AND card_exp_month < :month))
""")


def _row_to_fee_charge(row: object) -> FeeCharge:
    return FeeCharge(
        id=str(row.id),  # type: ignore[attr-defined]
        professional_id=str(row.professional_id),  # type: ignore[attr-defined]
        cycle_id=str(row.cycle_id),  # type: ignore[attr-defined]
        sequence_no=row.sequence_no,  # type: ignore[attr-defined]
        amount_cents=row.amount_cents,  # type: ignore[attr-defined]
        charged_cents=row.charged_cents,  # type: ignore[attr-defined]
        status=row.status,  # type: ignore[attr-defined]
        attempt_count=row.attempt_count,  # type: ignore[attr-defined]
        consecutive_failures=row.consecutive_failures,  # type: ignore[attr-defined]
        gateway_reference=row.gateway_reference,  # type: ignore[attr-defined]
        failure_code=row.failure_code,  # type: ignore[attr-defined]
        failure_reason=row.failure_reason,  # type: ignore[attr-defined]
        last_attempt_at=row.last_attempt_at,  # type: ignore[attr-defined]
        next_retry_at=row.next_retry_at,  # type: ignore[attr-defined]
        charged_at=row.charged_at,  # type: ignore[attr-defined]
        waived_at=row.waived_at,  # type: ignore[attr-defined]
        waived_by=str(row.waived_by) if row.waived_by else None,  # type: ignore[attr-defined]
        waived_reason=row.waived_reason,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
        updated_at=row.updated_at,  # type: ignore[attr-defined]
    )


def _row_to_method(row: object) -> PaymentMethod:
    return PaymentMethod(
        professional_id=str(row.professional_id),  # type: ignore[attr-defined]
        card_brand=row.card_brand,  # type: ignore[attr-defined]
        card_last4=row.card_last4,  # type: ignore[attr-defined]
        card_exp_month=row.card_exp_month,  # type: ignore[attr-defined]
        card_exp_year=row.card_exp_year,  # type: ignore[attr-defined]
        gateway_token=row.gateway_token,  # type: ignore[attr-defined]
        is_active=row.is_active,  # type: ignore[attr-defined]
        is_blocked=row.is_blocked,  # type: ignore[attr-defined]
        blocked_reason=row.blocked_reason,  # type: ignore[attr-defined]
        blocked_at=row.blocked_at,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
        updated_at=row.updated_at,  # type: ignore[attr-defined]
    )


class FeeChargeRepository:
    async def create_for_cycle(self, db: AsyncSession, cycle_id: str) -> list[FeeCharge]:
        result = await db.execute(_CREATE_FOR_CYCLE_SQL, {"cycle_id": cycle_id})
        return [_row_to_fee_charge(row) for row in result.fetchall()]

    async def get(self, db: AsyncSession, fee_charge_id: str) -> FeeCharge | None:
        result = await db.execute(_GET_SQL, {"fee_charge_id": fee_charge_id})
        row = result.fetchone()
        return _row_to_fee_charge(row) if row is not None else None

    async def list_for_cycle(
        self, db: AsyncSession, cycle_id: str, status: str
    ) -> list[FeeCharge]:
        result = await db.execute(_LIST_FOR_CYCLE_SQL, {"cycle_id": cycle_id, "status": status})
        return [_row_to_fee_charge(row) for row in result.fetchall()]

    async def list_by_status(self, db: AsyncSession, status: str) -> list[FeeCharge]:
        result = await db.execute(_LIST_BY_STATUS_SQL, {"status": status})
        return [_row_to_fee_charge(row) for row in result.fetchall()]

    async def list_due_for_retry(
        self, db: AsyncSession, now: datetime
    ) -> list[FeeCharge]:
        result = await db.execute(_LIST_DUE_FOR_RETRY_SQL, {"now": now})
        return [_row_to_fee_charge(row) for row in result.fetchall()]

    async def list_for_professional(
        self, db: AsyncSession, professional_id: str, limit: int, offset: int
    ) -> list[FeeCharge]:
        result = await db.execute(
            _LIST_FOR_PROFESSIONAL_SQL,
            {"professional_id": professional_id, "limit": limit, "offset": offset},
        )
        return [_row_to_fee_charge(row) for row in result.fetchall()]

    async def claim(
        self, db: AsyncSession, fee_charge_id: str, now: datetime
    ) -> FeeCharge | None:
        result = await db.execute(_CLAIM_SQL, {"fee_charge_id": fee_charge_id, "now": now})
        row = result.fetchone()
        return _row_to_fee_charge(row) if row is not None else None

    async def mark_completed(
        self,
        db: AsyncSession,
        fee_charge_id: str,
        reference: str | None,
        charged_cents: int,
        now: datetime,
    ) -> FeeCharge | None:
        result = await db.execute(
            _MARK_COMPLETED_SQL,
            {
                "fee_charge_id": fee_charge_id,
                "reference": reference,
                "charged_cents": charged_cents,
                "now": now,
            },
        )
        row = result.fetchone()
        return _row_to_fee_charge(row) if row is not None else None

    async def mark_partially_paid(
        self,
        db: AsyncSession,
        fee_charge_id: str,
        reference: str | None,
        charged_cents: int,
        next_retry_at: datetime,
    ) -> FeeCharge | None:
        result = await db.execute(
            _MARK_PARTIALLY_PAID_SQL,
            {
                "fee_charge_id": fee_charge_id,
                "reference": reference,
                "charged_cents": charged_cents,
                "next_retry_at": next_retry_at,
            },
        )
        row = result.fetchone()
        return _row_to_fee_charge(row) if row is not None else None

    async def mark_failed(
        self,
        db: AsyncSession,
        fee_charge_id: str,
        failure_code: str,
        failure_reason: str | None,
        next_retry_at: datetime,
        now: datetime,
    ) -> FeeCharge | None:
        result = await db.execute(
            _MARK_FAILED_SQL,
            {
                "fee_charge_id": fee_charge_id,
                "failure_code": failure_code,
                "failure_reason": failure_reason,
                "next_retry_at": next_retry_at,
                "now": now,
            },
        )
        row = result.fetchone()
        return _row_to_fee_charge(row) if row is not None else None

    async def waive(
        self,
        db: AsyncSession,
        fee_charge_id: str,
        admin_id: str,
        reason: str,
        now: datetime,
    ) -> FeeCharge | None:
        result = await db.execute(
            _WAIVE_SQL,
            {"fee_charge_id": fee_charge_id, "admin_id": admin_id, "reason": reason, "now": now},
        )
        row = result.fetchone()
        return _row_to_fee_charge(row) if row is not None else None

    async def get_pending_total(self, db: AsyncSession, professional_id: str) -> int:
        result = await db.execute(_PENDING_TOTAL_SQL, {"professional_id": professional_id})
        row = result.fetchone()
        return int(row.total) if row is not None else 0

    async def make_retryable_now(
        self, db: AsyncSession, professional_id: str, now: datetime
    ) -> int:
        result = await db.execute(
            _MAKE_RETRYABLE_SQL, {"professional_id": professional_id, "now": now}
        )
        return len(result.fetchall())

    async def count_unsettled_for_cycle(self, db: AsyncSession, cycle_id: str) -> int:
        result = await db.execute(_COUNT_UNSETTLED_SQL, {"cycle_id": cycle_id})
        row = result.fetchone()
        return int(row.cnt) if row is not None else 0


class PaymentMethodRepository:
    async def get(self, db: AsyncSession, professional_id: str) -> PaymentMethod | None:
        result = await db.execute(_GET_METHOD_SQL, {"professional_id": professional_id})
        row = result.fetchone()
        return _row_to_method(row) if row is not None else None

    async def upsert(
        self,
        db: AsyncSession,
        professional_id: str,
        card_brand: str,
        card_last4: str,
        card_exp_month: int,
        card_exp_year: int,
        gateway_token: str,
    ) -> PaymentMethod:
        result = await db.execute(
            _UPSERT_METHOD_SQL,
            {
                "professional_id": professional_id,
                "card_brand": card_brand,
                "card_last4": card_last4,
                "card_exp_month": card_exp_month,
                "card_exp_year": card_exp_year,
                "gateway_token": gateway_token,
            },
        )
        row = result.fetchone()
        if row is None:
            raise InternalError("Payment method upsert returned no rows")
        return _row_to_method(row)

    async def deactivate(
        self, db: AsyncSession, professional_id: str
    ) -> PaymentMethod | None:
        result = await db.execute(_DEACTIVATE_METHOD_SQL, {"professional_id": professional_id})
        row = result.fetchone()
        return _row_to_method(row) if row is not None else None

    async def block(
        self, db: AsyncSession, professional_id: str, reason: str, now: datetime
    ) -> PaymentMethod:
        result = await db.execute(
            _BLOCK_METHOD_SQL,
            {"professional_id": professional_id, "reason": reason, "now": now},
        )
        row = result.fetchone()
        if row is None:
            raise InternalError("Payment method block returned no rows")
        return _row_to_method(row)

    async def unblock(
        self, db: AsyncSession, professional_id: str
    ) -> PaymentMethod | None:
        result = await db.execute(_UNBLOCK_METHOD_SQL, {"professional_id": professional_id})
        row = result.fetchone()
        return _row_to_method(row) if row is not None else None

    async def list_blocked(self, db: AsyncSession) -> list[PaymentMethod]:
        result = await db.execute(_LIST_BLOCKED_SQL)
        return [_row_to_method(row) for row in result.fetchall()]

    async def list_expired_active(
        self, db: AsyncSession, year: int, month: int
    ) -> list[PaymentMethod]:
        result = await db.execute(_LIST_EXPIRED_ACTIVE_SQL, {"year": year, "month": month})
        return [_row_to_method(row) for row in result.fetchall()]
