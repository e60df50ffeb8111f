"""Payment-gateway capability.

The gateway moves real money, so every call carries an idempotency key derived
from the row id and attempt number:

    payout:{payout_id}:{attempt}
    fee_charge:{fee_charge_id}:{attempt}
    refund:{appointment_id}

A TIMEOUT result is indeterminate: the caller leaves its row `processing` and a
later run calls lookup() with the same key before deciding anything.
"""

from dataclasses import dataclass
from typing import Protocol

from src.mp_common.enums import GatewayStatus


@dataclass(frozen=True)
class GatewayResult:
    status: GatewayStatus
    reference: str | None = None
    amount_cents: int | None = None  # amount actually moved (partial captures)
    failure_code: str | None = None
    failure_message: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == GatewayStatus.SUCCEEDED

    @property
    def indeterminate(self) -> bool:
        return self.status == GatewayStatus.TIMEOUT


class PaymentGatewayProtocol(Protocol):
    async def payout(
        self, amount_cents: int, destination: str, idempotency_key: str
    ) -> GatewayResult: ...

    async def charge(
        self, amount_cents: int, method_token: str, idempotency_key: str
    ) -> GatewayResult: ...

    async def refund(self, reference: str, idempotency_key: str) -> GatewayResult: ...

    async def lookup(self, idempotency_key: str) -> GatewayResult: ...


def payout_key(payout_id: str, attempt: int) -> str:
    return f"payout:{payout_id}:{attempt}"


def fee_charge_key(fee_charge_id: str, attempt: int) -> str:
    return f"fee_charge:{fee_charge_id}:{attempt}"


def refund_key(appointment_id: str) -> str:
    return f"refund:{appointment_id}"
