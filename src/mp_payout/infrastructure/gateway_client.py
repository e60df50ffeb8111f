"""HttpPaymentGateway — PaymentGatewayProtocol over the gateway's REST API.

Endpoints (all JSON, "Authorization: Bearer <api key>", "Idempotency-Key"):
    POST /v1/payouts                 {amount_cents, destination}
    POST /v1/charges                 {amount_cents, payment_method_token}
    POST /v1/refunds                 {reference}
    GET  /v1/operations/{key}        → result of an earlier call, 404 if unknown

Response body: {status, reference, amount_cents, failure_code, failure_message}
with status in succeeded | failed | partial.

Transport errors, timeouts and 5xx answers are indeterminate (TIMEOUT), never
FAILED: the money may have moved.
"""

import logging
from typing import Any

import httpx

from config.settings import settings
from src.mp_common.enums import GatewayStatus
from src.mp_common.errors import PipelineConfigError
from src.mp_payout.domain.gateway import GatewayResult

logger = logging.getLogger(__name__)

_BODY_STATUSES = {
    "succeeded": GatewayStatus.SUCCEEDED,
    "failed": GatewayStatus.FAILED,
    "partial": GatewayStatus.PARTIAL,
}


class HttpPaymentGateway:
    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = (base_url or settings.PAYMENT_GATEWAY_URL).rstrip("/")
        self._api_key = api_key if api_key is not None else settings.PAYMENT_GATEWAY_API_KEY
        self._timeout = timeout if timeout is not None else settings.PAYMENT_GATEWAY_TIMEOUT_SECONDS
        self._transport = transport

    def _client(self, idempotency_key: str) -> httpx.AsyncClient:
        if not self._api_key:
            raise PipelineConfigError("PAYMENT_GATEWAY_API_KEY is not set")
        return httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            transport=self._transport,
            headers={
                "Authorization": f"Bearer {self._api_key}",
                "Idempotency-Key": idempotency_key,
                "Content-Type": "application/json",
            },
        )

    async def payout(
        self, amount_cents: int, destination: str, idempotency_key: str
    ) -> GatewayResult:
        return await self._request(
            "POST",
            "/v1/payouts",
            idempotency_key,
            {"amount_cents": amount_cents, "destination": destination},
        )

    async def charge(
        self, amount_cents: int, method_token: str, idempotency_key: str
    ) -> GatewayResult:
        return await self._request(
            "POST",
            "/v1/charges",
            idempotency_key,
            {"amount_cents": amount_cents, "payment_method_token": method_token},
        )

    async def refund(self, reference: str, idempotency_key: str) -> GatewayResult:
        return await self._request(
            "POST", "/v1/refunds", idempotency_key, {"reference": reference}
        )

    async def lookup(self, idempotency_key: str) -> GatewayResult:
        return await self._request(
            "GET", f"/v1/operations/{idempotency_key}", idempotency_key, None
        )

    async def _request(
        self,
        method: str,
        path: str,
        idempotency_key: str,
        payload: dict[str, Any] | None,
    ) -> GatewayResult:
        try:
            async with self._client(idempotency_key) as client:
                response = await client.request(method, path, json=payload)
        except httpx.TimeoutException:
            logger.warning("Gateway timeout: %s %s key=%s", method, path, idempotency_key)
            return GatewayResult(status=GatewayStatus.TIMEOUT, failure_message="timeout")
        except httpx.TransportError as exc:
            logger.warning(
                "Gateway transport error: %s %s key=%s error=%s",
                method,
                path,
                idempotency_key,
                exc,
            )
            return GatewayResult(status=GatewayStatus.TIMEOUT, failure_message=str(exc))

        if response.status_code == 404 and method == "GET":
            return GatewayResult(status=GatewayStatus.NOT_FOUND)
        if response.status_code >= 500:
            logger.warning(
                "Gateway %d on %s %s key=%s; treating as indeterminate",
                response.status_code,
                method,
                path,
                idempotency_key,
            )
            return GatewayResult(
                status=GatewayStatus.TIMEOUT,
                failure_message=f"gateway returned {response.status_code}",
            )
        return self._parse(response, idempotency_key)

    @staticmethod
    def _parse(response: httpx.Response, idempotency_key: str) -> GatewayResult:
        try:
            body = response.json()
        except ValueError:
            body = {}
        status = _BODY_STATUSES.get(str(body.get("status", "")).lower())
        if status is None:
            # A 4xx without a recognised body is a permanent rejection
            status = GatewayStatus.FAILED if response.is_client_error else GatewayStatus.TIMEOUT
        result = GatewayResult(
            status=status,
            reference=body.get("reference"),
            amount_cents=body.get("amount_cents"),
            failure_code=body.get("failure_code")
            or (f"http_{response.status_code}" if response.is_client_error else None),
            failure_message=body.get("failure_message"),
        )
        if status != GatewayStatus.SUCCEEDED:
            logger.info(
                "Gateway result: key=%s status=%s code=%s",
                idempotency_key,
                status.value,
                result.failure_code,
            )
        return result
