"""Repository Protocols — dependency inversion for testability."""

from datetime import datetime
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.mp_fee.domain.models import FeeCharge, PaymentMethod


class FeeChargeRepositoryProtocol(Protocol):
    async def create_for_cycle(self, db: AsyncSession, cycle_id: str) -> list[FeeCharge]: ...

    async def get(self, db: AsyncSession, fee_charge_id: str) -> FeeCharge | None: ...

    async def list_for_cycle(
        self, db: AsyncSession, cycle_id: str, status: str
    ) -> list[FeeCharge]: ...

    async def list_by_status(self, db: AsyncSession, status: str) -> list[FeeCharge]: ...

    async def list_due_for_retry(
        self, db: AsyncSession, now: datetime
    ) -> list[FeeCharge]: ...

    async def list_for_professional(
        self, db: AsyncSession, professional_id: str, limit: int, offset: int
    ) -> list[FeeCharge]: ...

    async def claim(
        self, db: AsyncSession, fee_charge_id: str, now: datetime
    ) -> FeeCharge | None: ...

    async def mark_completed(
        self,
        db: AsyncSession,
        fee_charge_id: str,
        reference: str | None,
        charged_cents: int,
        now: datetime,
    ) -> FeeCharge | None: ...

    async def mark_partially_paid(
        self,
        db: AsyncSession,
        fee_charge_id: str,
        reference: str | None,
        charged_cents: int,
        next_retry_at: datetime,
    ) -> FeeCharge | None: ...

    async def mark_failed(
        self,
        db: AsyncSession,
        fee_charge_id: str,
        failure_code: str,
        failure_reason: str | None,
        next_retry_at: datetime,
        now: datetime,
    ) -> FeeCharge | None: ...

    async def waive(
        self,
        db: AsyncSession,
        fee_charge_id: str,
        admin_id: str,
        reason: str,
        now: datetime,
    ) -> FeeCharge | None: ...

    async def get_pending_total(self, db: AsyncSession, professional_id: str) -> int: ...

    async def make_retryable_now(
        self, db: AsyncSession, professional_id: str, now: datetime
    ) -> int: ...

    async def count_unsettled_for_cycle(self, db: AsyncSession, cycle_id: str) -> int: ...


class PaymentMethodRepositoryProtocol(Protocol):
    async def get(self, db: AsyncSession, professional_id: str) -> PaymentMethod | None: ...

    async def upsert(
        self,
        db: AsyncSession,
        professional_id: str,
        card_brand: str,
        card_last4: str,
        card_exp_month: int,
        card_exp_year: int,
        gateway_token: str,
    ) -> PaymentMethod: ...

    async def deactivate(
        self, db: AsyncSession, professional_id: str
    ) -> PaymentMethod | None: ...

    async def block(
        self, db: AsyncSession, professional_id: str, reason: str, now: datetime
    ) -> PaymentMethod: ...

    async def unblock(
        self, db: AsyncSession, professional_id: str
    ) -> PaymentMethod | None: ...

    async def list_blocked(self, db: AsyncSession) -> list[PaymentMethod]: ...

    async def list_expired_active(
        self, db: AsyncSession, year: int, month: int
    ) -> list[PaymentMethod]: ...
