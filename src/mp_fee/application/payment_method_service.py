"""PaymentMethodService — the on-file card used for fee collection.

A professional is blocked (cannot accept new appointments) when:
  - the method carries the blocked flag (set by the fee engine after repeated
    declines, a missing card at charge time, or an expired card with fees owed), or
  - fees are outstanding and no usable card is on file, or
  - FEE_BLOCK_THRESHOLD_CENTS > 0 and the outstanding total exceeds it.

Updating the card lifts the flag and makes failed charges retryable at once.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.mp_common.batch import BatchReport
from src.mp_common.cents import cents_to_display
from src.mp_common.datetime_utils import Clock, SystemClock
from src.mp_common.errors import (
    InvalidPaymentMethodError,
    OutstandingFeesError,
    PaymentMethodNotFoundError,
    ProfessionalBlockedError,
)
from src.mp_fee.application.schemas import (
    BlockedProfessionalItem,
    PaymentMethodStatusResponse,
    SetPaymentMethodRequest,
)
from src.mp_fee.domain.models import PaymentMethod
from src.mp_fee.domain.repository import (
    FeeChargeRepositoryProtocol,
    PaymentMethodRepositoryProtocol,
)
from src.mp_fee.infrastructure.persistence import FeeChargeRepository, PaymentMethodRepository

logger = logging.getLogger(__name__)

EXPIRED_CARD_REASON = "Card expired with outstanding platform fees"


class PaymentMethodService:
    def __init__(
        self,
        method_repo: PaymentMethodRepositoryProtocol | None = None,
        fee_repo: FeeChargeRepositoryProtocol | None = None,
        clock: Clock | None = None,
        block_threshold_cents: int | None = None,
    ) -> None:
        self._methods: PaymentMethodRepositoryProtocol = method_repo or PaymentMethodRepository()
        self._fees: FeeChargeRepositoryProtocol = fee_repo or FeeChargeRepository()
        self._clock: Clock = clock or SystemClock()
        self._threshold = (
            block_threshold_cents
            if block_threshold_cents is not None
            else settings.FEE_BLOCK_THRESHOLD_CENTS
        )

    def _block_reason(self, method: PaymentMethod | None, pending: int) -> str | None:
        """Why the professional may not accept appointments, or None."""
        if method is not None and method.is_blocked:
            return method.blocked_reason or "Payment method blocked"
        if pending > 0 and (method is None or not method.is_usable(self._clock.now())):
            return f"{cents_to_display(pending)} in platform fees owed with no usable payment method"
        if self._threshold > 0 and pending > self._threshold:
            return f"{cents_to_display(pending)} in platform fees owed"
        return None

    async def ensure_can_accept_appointments(
        self, db: AsyncSession, professional_id: str
    ) -> None:
        method = await self._methods.get(db, professional_id)
        pending = await self._fees.get_pending_total(db, professional_id)
        reason = self._block_reason(method, pending)
        if reason is not None:
            logger.info(
                "Booking rejected for blocked professional=%s reason=%s", professional_id, reason
            )
            raise ProfessionalBlockedError(professional_id, reason)

    async def is_blocked(self, db: AsyncSession, professional_id: str) -> bool:
        method = await self._methods.get(db, professional_id)
        pending = await self._fees.get_pending_total(db, professional_id)
        return self._block_reason(method, pending) is not None

    async def get_payment_method_status(
        self, db: AsyncSession, professional_id: str
    ) -> PaymentMethodStatusResponse:
        method = await self._methods.get(db, professional_id)
        pending = await self._fees.get_pending_total(db, professional_id)
        return PaymentMethodStatusResponse.from_domain(
            professional_id=professional_id,
            method=method,
            is_expired=bool(method and method.is_expired(self._clock.now())),
            pending=pending,
            can_accept=self._block_reason(method, pending) is None,
        )

    async def set_payment_method(
        self, db: AsyncSession, professional_id: str, body: SetPaymentMethodRequest
    ) -> PaymentMethodStatusResponse:
        now = self._clock.now()
        if (body.card_exp_year, body.card_exp_month) < (now.year, now.month):
            raise InvalidPaymentMethodError("card is expired")
        try:
            await self._methods.upsert(
                db,
                professional_id,
                card_brand=body.card_brand,
                card_last4=body.card_last4,
                card_exp_month=body.card_exp_month,
                card_exp_year=body.card_exp_year,
                gateway_token=body.gateway_token,
            )
            retryable = await self._fees.make_retryable_now(db, professional_id, now)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.info(
            "Payment method set: professional=%s brand=%s last4=%s retryable_charges=%d",
            professional_id,
            body.card_brand,
            body.card_last4,
            retryable,
        )
        return await self.get_payment_method_status(db, professional_id)

    async def remove_payment_method(
        self, db: AsyncSession, professional_id: str
    ) -> PaymentMethodStatusResponse:
        pending = await self._fees.get_pending_total(db, professional_id)
        if pending > 0:
            raise OutstandingFeesError(pending)
        try:
            method = await self._methods.deactivate(db, professional_id)
            if method is None:
                raise PaymentMethodNotFoundError(professional_id)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.info("Payment method removed: professional=%s", professional_id)
        return await self.get_payment_method_status(db, professional_id)

    async def unblock(
        self, db: AsyncSession, professional_id: str, admin_id: str
    ) -> PaymentMethodStatusResponse:
        try:
            method = await self._methods.unblock(db, professional_id)
            if method is None:
                raise PaymentMethodNotFoundError(professional_id)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.info("Professional unblocked: professional=%s admin=%s", professional_id, admin_id)
        return await self.get_payment_method_status(db, professional_id)

    async def list_blocked_professionals(
        self, db: AsyncSession
    ) -> list[BlockedProfessionalItem]:
        items = []
        for method in await self._methods.list_blocked(db):
            pending = await self._fees.get_pending_total(db, method.professional_id)
            items.append(
                BlockedProfessionalItem(
                    professional_id=method.professional_id,
                    blocked_reason=method.blocked_reason,
                    blocked_at=method.blocked_at.isoformat() if method.blocked_at else None,
                    pending_fee_cents=pending,
                    pending_fee_display=cents_to_display(pending),
                )
            )
        return items

    async def invalidate_expired_cards(self, db: AsyncSession) -> BatchReport:
        """Deactivate expired cards; block the professional when fees are owed."""
        now = self._clock.now()
        report = BatchReport()
        for method in await self._methods.list_expired_active(db, now.year, now.month):
            key = method.professional_id
            try:
                await self._methods.deactivate(db, method.professional_id)
                pending = await self._fees.get_pending_total(db, method.professional_id)
                if pending > 0:
                    await self._methods.block(db, method.professional_id, EXPIRED_CARD_REASON, now)
                await db.commit()
            except Exception as exc:
                await db.rollback()
                logger.exception("Expired-card check failed: professional=%s", key)
                report.fail(key, exc)
                continue
            logger.info(
                "Expired card deactivated: professional=%s blocked=%s", key, pending > 0
            )
            report.ok(key)
        return report
