"""Unit tests for RequestLogMiddleware request-id handling."""

from fastapi import FastAPI, Request
from httpx import ASGITransport, AsyncClient

from src.mp_gateway.middleware.request_log import REQUEST_ID_HEADER, RequestLogMiddleware


def _app() -> FastAPI:
    app = FastAPI()
    app.add_middleware(RequestLogMiddleware)

    @app.get("/echo")
    async def echo(request: Request) -> dict[str, str]:
        return {"request_id": request.state.request_id}

    return app


async def _get(headers: dict[str, str] | None = None):  # type: ignore[no-untyped-def]
    transport = ASGITransport(app=_app())
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        return await ac.get("/echo", headers=headers)


class TestRequestId:
    async def test_generated_when_absent(self) -> None:
        resp = await _get()
        request_id = resp.json()["request_id"]
        assert request_id.startswith("req_")
        assert resp.headers[REQUEST_ID_HEADER] == request_id

    async def test_incoming_id_is_kept(self) -> None:
        resp = await _get({REQUEST_ID_HEADER: "weekly-2024-03-04"})
        assert resp.json()["request_id"] == "weekly-2024-03-04"
        assert resp.headers[REQUEST_ID_HEADER] == "weekly-2024-03-04"

    async def test_oversized_id_replaced(self) -> None:
        resp = await _get({REQUEST_ID_HEADER: "x" * 200})
        assert resp.json()["request_id"].startswith("req_")
