"""
Tests for JWT Authentication Middleware.

Verifies token creation, validation, tenant resolution and the
back-office/client split.
"""

import pytest
from datetime import timedelta
from unittest.mock import MagicMock, patch

from fastapi import HTTPException
from jose import jwt

# Constants matching the middleware
ALGORITHM = "HS256"
TEST_SECRET = "test-secret-key-for-testing-only"


@pytest.fixture
def mock_secret():
    """Mock the secret key for all tests."""
    with patch('app.auth_middleware._get_secret_key', return_value=TEST_SECRET):
        yield TEST_SECRET


def _request(cookies=None):
    request = MagicMock()
    request.cookies = cookies or {}
    return request


class TestCreateTokens:
    """Tests for token creation."""

    def test_creates_valid_tenant_token(self, mock_secret):
        """Token should be decodable and contain the tenant_id."""
        from app.auth_middleware import create_access_token

        token = create_access_token("tenant-123")

        payload = jwt.decode(token, TEST_SECRET, algorithms=[ALGORITHM])

        assert payload["sub"] == "tenant-123"
        assert "exp" in payload

    def test_custom_expiration(self, mock_secret):
        from app.auth_middleware import create_access_token

        token = create_access_token("tenant-456", expires_delta=timedelta(minutes=5))

        payload = jwt.decode(token, TEST_SECRET, algorithms=[ALGORITHM])

        assert payload["sub"] == "tenant-456"

    def test_client_token_carries_tenant(self, mock_secret):
        from app.auth_middleware import create_client_token

        token = create_client_token("tenant-1", "client-9")

        payload = jwt.decode(token, TEST_SECRET, algorithms=[ALGORITHM])

        assert payload["sub"] == "client-9"
        assert payload["tenant_id"] == "tenant-1"
        assert payload["type"] == "client"


class TestGetTokenPayload:
    """Tests for header/cookie token extraction."""

    @pytest.mark.asyncio
    async def test_bearer_header(self, mock_secret):
        from app.auth_middleware import create_access_token, get_token_payload

        payload = await get_token_payload(_request(), f"Bearer {create_access_token('tenant-789')}")

        assert payload["sub"] == "tenant-789"

    @pytest.mark.asyncio
    async def test_cookie_fallback(self, mock_secret):
        from app.auth_middleware import create_access_token, get_token_payload

        request = _request({"auth_token": create_access_token("tenant-cookie")})
        payload = await get_token_payload(request, None)

        assert payload["sub"] == "tenant-cookie"

    @pytest.mark.asyncio
    async def test_missing_bearer_prefix_raises_401(self, mock_secret):
        """Token without 'Bearer ' prefix should raise 401."""
        from app.auth_middleware import create_access_token, get_token_payload

        with pytest.raises(HTTPException) as exc_info:
            await get_token_payload(_request(), create_access_token("some-tenant"))

        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_invalid_token_raises_401(self, mock_secret):
        from app.auth_middleware import get_token_payload

        with pytest.raises(HTTPException) as exc_info:
            await get_token_payload(_request(), "Bearer invalid.token.here")

        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_token_with_wrong_secret_raises_401(self, mock_secret):
        """Token signed with different secret should raise 401."""
        from app.auth_middleware import get_token_payload

        token = jwt.encode({"sub": "tenant-abc"}, "wrong-secret-key", algorithm=ALGORITHM)

        with pytest.raises(HTTPException) as exc_info:
            await get_token_payload(_request(), f"Bearer {token}")

        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_token_without_sub_raises_401(self, mock_secret):
        from app.auth_middleware import get_token_payload

        token = jwt.encode({"other": "data"}, TEST_SECRET, algorithm=ALGORITHM)

        with pytest.raises(HTTPException) as exc_info:
            await get_token_payload(_request(), f"Bearer {token}")

        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_client_token_without_tenant_raises_401(self, mock_secret):
        from app.auth_middleware import get_token_payload

        token = jwt.encode({"sub": "client-1", "type": "client"}, TEST_SECRET, algorithm=ALGORITHM)

        with pytest.raises(HTTPException) as exc_info:
            await get_token_payload(_request(), f"Bearer {token}")

        assert exc_info.value.status_code == 401


class TestTenantResolution:

    @pytest.mark.asyncio
    async def test_tenant_token(self):
        from app.auth_middleware import get_current_tenant, get_optional_client, require_back_office

        payload = {"sub": "tenant-1"}

        assert await get_current_tenant(payload) == "tenant-1"
        assert await get_optional_client(payload) is None
        assert await require_back_office(payload) == "tenant-1"

    @pytest.mark.asyncio
    async def test_client_token(self):
        from app.auth_middleware import get_current_tenant, get_optional_client, require_back_office

        payload = {"sub": "client-9", "type": "client", "tenant_id": "tenant-1"}

        assert await get_current_tenant(payload) == "tenant-1"
        assert await get_optional_client(payload) == "client-9"
        with pytest.raises(HTTPException) as exc_info:
            await require_back_office(payload)
        assert exc_info.value.status_code == 403
