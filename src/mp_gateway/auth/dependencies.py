"""FastAPI dependencies: get_current_user, require_admin, require_cron_secret.

Usage in any protected router:
    from src.mp_gateway.auth.dependencies import get_current_user

    @router.get("/protected")
    async def protected(user: UserModel = Depends(get_current_user)):
        ...
"""

import hmac
import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer, OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.mp_common.database import get_db_session
from src.mp_common.errors import (
    AccountDisabledError,
    AdminRequiredError,
    CronUnauthorizedError,
    InvalidCredentialsError,
    PipelineConfigError,
)
from src.mp_gateway.auth.jwt_handler import decode_token
from src.mp_gateway.user.db_models import UserModel

logger = logging.getLogger(__name__)

# Tokens are issued by the identity service; tokenUrl only feeds Swagger UI
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/token")

_cron_scheme = HTTPBearer(auto_error=False)

# Reusable 401 exception with WWW-Authenticate header (OAuth2 standard)
_CREDENTIALS_EXCEPTION = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Invalid or expired token",
    headers={"WWW-Authenticate": "Bearer"},
)


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db_session),
) -> UserModel:
    """Extract and validate the JWT Bearer token, return the UserModel.

    Raises HTTP 401 if the token is missing, invalid, or expired.
    Raises HTTP 403 (AccountDisabledError) if the user account is disabled.
    """
    try:
        payload = decode_token(token)
    except InvalidCredentialsError:
        raise _CREDENTIALS_EXCEPTION from None

    user_id: str | None = payload.get("sub")
    if not user_id:
        raise _CREDENTIALS_EXCEPTION

    result = await db.execute(select(UserModel).where(UserModel.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise _CREDENTIALS_EXCEPTION

    if not user.is_active:
        raise AccountDisabledError()

    return user


async def require_admin(
    current_user: UserModel = Depends(get_current_user),
) -> UserModel:
    """Verify the caller holds the admin flag (AdminRequiredError, 403)."""
    if not current_user.is_admin:
        raise AdminRequiredError()
    return current_user


async def require_cron_secret(
    credentials: HTTPAuthorizationCredentials | None = Depends(_cron_scheme),
) -> None:
    """Verify "Authorization: Bearer <CRON_SECRET>" on scheduler calls.

    An unset CRON_SECRET is a deployment error, not an auth failure.
    """
    if not settings.CRON_SECRET:
        logger.error("CRON_SECRET is not configured; rejecting scheduler call")
        raise PipelineConfigError("CRON_SECRET is not set")
    if credentials is None or not hmac.compare_digest(
        credentials.credentials.encode(), settings.CRON_SECRET.encode()
    ):
        raise CronUnauthorizedError()
