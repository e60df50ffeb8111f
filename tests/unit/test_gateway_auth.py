"""Unit tests for JWT handling and auth dependencies."""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import UUID

import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials
from jose import jwt

from config.settings import settings
from src.mp_common.errors import (
    AccountDisabledError,
    AdminRequiredError,
    CronUnauthorizedError,
    InvalidCredentialsError,
    PipelineConfigError,
)
from src.mp_gateway.auth.dependencies import (
    get_current_user,
    require_admin,
    require_cron_secret,
)
from src.mp_gateway.auth.jwt_handler import create_access_token, decode_token
from src.mp_gateway.user.db_models import UserModel

USER_ID = "12345678-1234-5678-1234-567812345678"


def _mock_db(user: object) -> AsyncMock:
    """Build an AsyncMock db that returns *user* from scalar_one_or_none()."""
    mock_result = MagicMock()
    mock_result.scalar_one_or_none.return_value = user
    mock_db = AsyncMock()
    mock_db.execute.return_value = mock_result
    return mock_db


def _make_user(is_active: bool = True, is_admin: bool = False) -> UserModel:
    user = MagicMock(spec=UserModel)
    user.id = UUID(USER_ID)
    user.is_active = is_active
    user.is_admin = is_admin
    return user


def _bearer(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


class TestJwt:
    def test_access_token_claims(self) -> None:
        payload = jwt.get_unverified_claims(create_access_token("user-123"))
        assert payload["sub"] == "user-123"
        assert payload["type"] == "access"

    def test_decode_valid_token(self) -> None:
        assert decode_token(create_access_token("user-abc"))["sub"] == "user-abc"

    def test_expired_token_rejected(self) -> None:
        now = datetime.now(UTC)
        token = jwt.encode(
            {"sub": "u", "type": "access", "iat": now - timedelta(hours=2),
             "exp": now - timedelta(hours=1)},
            settings.JWT_SECRET,
            algorithm=settings.JWT_ALGORITHM,
        )
        with pytest.raises(InvalidCredentialsError):
            decode_token(token)

    def test_wrong_secret_rejected(self) -> None:
        token = jwt.encode({"sub": "u", "type": "access"}, "other-secret", algorithm="HS256")
        with pytest.raises(InvalidCredentialsError):
            decode_token(token)

    def test_non_access_token_rejected(self) -> None:
        token = jwt.encode(
            {"sub": "u", "type": "refresh"}, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM
        )
        with pytest.raises(InvalidCredentialsError):
            decode_token(token)


class TestGetCurrentUser:
    async def test_valid_token_returns_user(self) -> None:
        user = _make_user()
        result = await get_current_user(create_access_token(USER_ID), _mock_db(user))
        assert result is user

    async def test_garbage_token_is_401(self) -> None:
        with pytest.raises(HTTPException) as exc_info:
            await get_current_user("not-a-jwt", _mock_db(_make_user()))
        assert exc_info.value.status_code == 401

    async def test_unknown_user_is_401(self) -> None:
        with pytest.raises(HTTPException) as exc_info:
            await get_current_user(create_access_token(USER_ID), _mock_db(None))
        assert exc_info.value.status_code == 401

    async def test_disabled_user_rejected(self) -> None:
        with pytest.raises(AccountDisabledError):
            await get_current_user(
                create_access_token(USER_ID), _mock_db(_make_user(is_active=False))
            )


class TestRequireAdmin:
    async def test_admin_passes(self) -> None:
        admin = _make_user(is_admin=True)
        assert await require_admin(current_user=admin) is admin

    async def test_non_admin_rejected(self) -> None:
        with pytest.raises(AdminRequiredError):
            await require_admin(current_user=_make_user())


class TestRequireCronSecret:
    async def test_matching_secret_passes(self) -> None:
        with patch.object(settings, "CRON_SECRET", "s3cret"):
            await require_cron_secret(_bearer("s3cret"))  # Should not raise

    async def test_wrong_secret_rejected(self) -> None:
        with patch.object(settings, "CRON_SECRET", "s3cret"):
            with pytest.raises(CronUnauthorizedError):
                await require_cron_secret(_bearer("guess"))

    async def test_missing_header_rejected(self) -> None:
        with patch.object(settings, "CRON_SECRET", "s3cret"):
            with pytest.raises(CronUnauthorizedError):
                await require_cron_secret(None)

    async def test_unset_secret_is_config_error(self) -> None:
        with patch.object(settings, "CRON_SECRET", ""):
            with pytest.raises(PipelineConfigError):
                await require_cron_secret(_bearer("anything"))
