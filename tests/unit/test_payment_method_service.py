"""Unit tests for PaymentMethodService — on-file cards and blocking."""

from dataclasses import replace
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.mp_common.errors import (
    InvalidPaymentMethodError,
    OutstandingFeesError,
    PaymentMethodNotFoundError,
    ProfessionalBlockedError,
)
from src.mp_fee.application.payment_method_service import (
    EXPIRED_CARD_REASON,
    PaymentMethodService,
)
from src.mp_fee.application.schemas import SetPaymentMethodRequest
from src.mp_fee.domain.models import PaymentMethod

UTC = timezone.utc
NOW = datetime(2024, 3, 15, tzinfo=UTC)


def _make_method(**overrides: object) -> PaymentMethod:
    method = PaymentMethod(
        professional_id="pro-1",
        card_brand="visa",
        card_last4="4242",
        card_exp_month=12,
        card_exp_year=2030,
        gateway_token="tok_1",
        is_active=True,
    )
    return replace(method, **overrides)


def _service(
    method: PaymentMethod | None, pending: int = 0, threshold: int = 0
) -> tuple[PaymentMethodService, AsyncMock, AsyncMock]:
    methods = AsyncMock()
    methods.get.return_value = method
    fees = AsyncMock()
    fees.get_pending_total.return_value = pending
    clock = MagicMock()
    clock.now.return_value = NOW
    svc = PaymentMethodService(
        method_repo=methods, fee_repo=fees, clock=clock, block_threshold_cents=threshold
    )
    return svc, methods, fees


def _request(**overrides: object) -> SetPaymentMethodRequest:
    data = {
        "card_brand": "visa",
        "card_last4": "4242",
        "card_exp_month": 12,
        "card_exp_year": 2030,
        "gateway_token": "tok_new",
    }
    data.update(overrides)
    return SetPaymentMethodRequest(**data)


class TestBlockRules:
    async def test_clean_professional_can_accept(self) -> None:
        svc, _, _ = _service(_make_method())

        await svc.ensure_can_accept_appointments(AsyncMock(), "pro-1")  # Should not raise

    async def test_blocked_flag_rejects(self) -> None:
        svc, _, _ = _service(_make_method(is_blocked=True, blocked_reason="3 declines"))

        with pytest.raises(ProfessionalBlockedError, match="3 declines"):
            await svc.ensure_can_accept_appointments(AsyncMock(), "pro-1")

    async def test_fees_owed_without_card_rejects(self) -> None:
        svc, _, _ = _service(None, pending=3000)

        assert await svc.is_blocked(AsyncMock(), "pro-1") is True

    async def test_no_card_and_nothing_owed_is_fine(self) -> None:
        svc, _, _ = _service(None, pending=0)

        assert await svc.is_blocked(AsyncMock(), "pro-1") is False

    async def test_expired_card_with_fees_owed_rejects(self) -> None:
        svc, _, _ = _service(_make_method(card_exp_month=2, card_exp_year=2024), pending=100)

        assert await svc.is_blocked(AsyncMock(), "pro-1") is True

    async def test_card_valid_through_expiry_month(self) -> None:
        svc, _, _ = _service(_make_method(card_exp_month=3, card_exp_year=2024), pending=100)

        assert await svc.is_blocked(AsyncMock(), "pro-1") is False

    async def test_threshold_disabled_by_default(self) -> None:
        svc, _, _ = _service(_make_method(), pending=1_000_000, threshold=0)

        assert await svc.is_blocked(AsyncMock(), "pro-1") is False

    async def test_threshold_exceeded_rejects(self) -> None:
        svc, _, _ = _service(_make_method(), pending=5001, threshold=5000)

        assert await svc.is_blocked(AsyncMock(), "pro-1") is True

    async def test_threshold_exactly_met_is_fine(self) -> None:
        svc, _, _ = _service(_make_method(), pending=5000, threshold=5000)

        assert await svc.is_blocked(AsyncMock(), "pro-1") is False


class TestSetPaymentMethod:
    async def test_upsert_makes_charges_retryable(self) -> None:
        svc, methods, fees = _service(_make_method(), pending=3000)
        fees.make_retryable_now.return_value = 1
        db = AsyncMock()

        status = await svc.set_payment_method(db, "pro-1", _request())

        assert methods.upsert.await_args.kwargs["gateway_token"] == "tok_new"
        fees.make_retryable_now.assert_awaited_once_with(db, "pro-1", NOW)
        db.commit.assert_awaited_once()
        assert status.has_payment_method is True
        assert status.can_accept_appointments is True

    async def test_expired_card_rejected(self) -> None:
        svc, methods, _ = _service(None)

        with pytest.raises(InvalidPaymentMethodError):
            await svc.set_payment_method(
                AsyncMock(), "pro-1", _request(card_exp_month=1, card_exp_year=2024)
            )
        methods.upsert.assert_not_awaited()


class TestRemovePaymentMethod:
    async def test_blocked_while_fees_owed(self) -> None:
        svc, methods, _ = _service(_make_method(), pending=3000)

        with pytest.raises(OutstandingFeesError):
            await svc.remove_payment_method(AsyncMock(), "pro-1")
        methods.deactivate.assert_not_awaited()

    async def test_remove_without_method(self) -> None:
        svc, methods, _ = _service(None)
        methods.deactivate.return_value = None

        with pytest.raises(PaymentMethodNotFoundError):
            await svc.remove_payment_method(AsyncMock(), "pro-1")

    async def test_remove(self) -> None:
        svc, methods, _ = _service(_make_method(is_active=False, gateway_token=None))
        methods.deactivate.return_value = _make_method(is_active=False)

        status = await svc.remove_payment_method(AsyncMock(), "pro-1")

        assert status.has_payment_method is False


class TestUnblock:
    async def test_unblock_missing_method(self) -> None:
        svc, methods, _ = _service(None)
        methods.unblock.return_value = None

        with pytest.raises(PaymentMethodNotFoundError):
            await svc.unblock(AsyncMock(), "pro-1", "admin-1")

    async def test_list_blocked_includes_pending(self) -> None:
        svc, methods, _ = _service(None, pending=4500)
        methods.list_blocked.return_value = [
            _make_method(is_blocked=True, blocked_reason="declines", blocked_at=NOW)
        ]

        items = await svc.list_blocked_professionals(AsyncMock())

        assert items[0].pending_fee_cents == 4500
        assert items[0].pending_fee_display == "$45.00"


class TestInvalidateExpiredCards:
    async def test_blocks_only_when_fees_owed(self) -> None:
        svc, methods, fees = _service(None)
        methods.list_expired_active.return_value = [
            _make_method(professional_id="pro-1"),
            _make_method(professional_id="pro-2"),
        ]
        fees.get_pending_total.side_effect = [3000, 0]

        report = await svc.invalidate_expired_cards(AsyncMock())

        assert report.succeeded == 2
        assert methods.deactivate.await_count == 2
        methods.block.assert_awaited_once()
        assert methods.block.await_args.args[1:3] == ("pro-1", EXPIRED_CARD_REASON)
        assert methods.list_expired_active.await_args.args[1:] == (2024, 3)
