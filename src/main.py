"""FastAPI application entry point.

Run with: uvicorn src.main:app --reload --port 8000
"""

# ruff: noqa: E402  -- uvloop.install() must run before other imports

import uvloop

uvloop.install()

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from config.settings import settings
from src.mp_admin.api.router import router as admin_router
from src.mp_booking.api.router import router as booking_router
from src.mp_common.database import engine
from src.mp_common.errors import AppError
from src.mp_common.redis_client import close_redis, get_redis
from src.mp_common.response import error_response
from src.mp_confirmation.api.router import router as confirmation_router
from src.mp_cycle.api.router import router as cycle_router
from src.mp_earnings.api.router import router as earnings_router
from src.mp_fee.api.router import router as fee_router
from src.mp_gateway.middleware.request_log import RequestLogMiddleware
from src.mp_payout.api.router import router as payout_router
from src.mp_pipeline.api.router import router as cron_router


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup: verify DB + Redis connections. Shutdown: dispose."""
    # Startup
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    redis = await get_redis()
    await redis.ping()
    yield
    # Shutdown
    await engine.dispose()
    await close_redis()


app = FastAPI(
    title=settings.APP_NAME,
    version="0.1.0",
    lifespan=lifespan,
)


app.add_middleware(RequestLogMiddleware)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    resp = error_response(exc.code, exc.message)
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return JSONResponse(
        status_code=exc.http_status,
        content=resp.model_dump(),
    )


app.include_router(booking_router, prefix="/api/v1")
app.include_router(cycle_router, prefix="/api/v1")
app.include_router(earnings_router, prefix="/api/v1")
app.include_router(confirmation_router, prefix="/api/v1")
app.include_router(payout_router, prefix="/api/v1")
app.include_router(fee_router, prefix="/api/v1")
app.include_router(admin_router, prefix="/api/v1")
app.include_router(cron_router, prefix="/api/v1")


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok", "version": "0.1.0"}
