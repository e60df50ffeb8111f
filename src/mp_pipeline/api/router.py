"""mp_pipeline REST API — the scheduler's entry point."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from src.mp_common.database import get_db_session
from src.mp_common.response import ApiResponse, success_response
from src.mp_gateway.auth.dependencies import require_cron_secret
from src.mp_pipeline.application.schemas import RunPipelineRequest
from src.mp_pipeline.application.service import PaymentPipeline

router = APIRouter(prefix="/cron", tags=["cron"])

_pipeline = PaymentPipeline()


@router.post("/payments", dependencies=[Depends(require_cron_secret)])
async def run_payment_pipeline(
    body: RunPipelineRequest,
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
    response: Response,
) -> ApiResponse:
    result = await _pipeline.run(db, body.trigger_type, body.request_id)
    if not result.success:
        # Misconfiguration: let the scheduler see a failed call
        response.status_code = 500
    return success_response(result.model_dump(), request)
