"""Tests for tracker credentials."""

import asyncio
from unittest.mock import patch

import httpx
import pytest
from pytest_httpx import HTTPXMock

from tracknotify.credentials import AccessToken, TokenProvider
from tracknotify.exceptions import TransportError
from tracknotify.models import OAuthConfig, TrackerConfig

TOKEN_URL = "https://hub.test/api/rest/oauth2/token"


@pytest.fixture
def oauth_config() -> TrackerConfig:
    """Create a tracker configuration with OAuth credentials."""
    return TrackerConfig(
        base_url="https://yt.test",
        oauth=OAuthConfig(url=TOKEN_URL, client_id="id", client_secret="secret"),
    )


class TestAccessToken:
    """Tests for AccessToken."""

    def test_permanent_token_never_expires(self) -> None:
        """Test a token without ttl."""
        token = AccessToken("Bearer", "perm")

        assert token.is_expired() is False
        assert token.header == "Bearer perm"

    def test_token_expires_after_ttl(self) -> None:
        """Test expiry against the monotonic clock."""
        with patch("tracknotify.credentials.time.monotonic", return_value=100.0):
            token = AccessToken("Bearer", "short", ttl=10)

        with patch("tracknotify.credentials.time.monotonic", return_value=105.0):
            assert token.is_expired() is False

        with patch("tracknotify.credentials.time.monotonic", return_value=111.0):
            assert token.is_expired() is True


class TestTokenProvider:
    """Tests for TokenProvider."""

    async def test_permanent_token_header(self) -> None:
        """Test a configured permanent token."""
        provider = TokenProvider(TrackerConfig(base_url="https://yt.test", token="perm"))

        async with httpx.AsyncClient() as client:
            headers = await provider.auth_headers(client)

        assert headers == {"Authorization": "Bearer perm"}

    async def test_no_credentials(self) -> None:
        """Test a tracker without authentication."""
        provider = TokenProvider(TrackerConfig(base_url="https://yt.test"))

        async with httpx.AsyncClient() as client:
            assert await provider.auth_headers(client) == {}

    async def test_concurrent_callers_share_one_request(
        self, oauth_config: TrackerConfig, httpx_mock: HTTPXMock
    ) -> None:
        """Test the refresh lock."""
        httpx_mock.add_response(
            method="POST",
            url=TOKEN_URL,
            json={"access_token": "shared", "expires_in": 3600},
        )
        provider = TokenProvider(oauth_config)

        async with httpx.AsyncClient() as client:
            tokens = await asyncio.gather(*(provider.get_token(client) for _ in range(5)))

        assert {token.value for token in tokens} == {"shared"}
        assert len(httpx_mock.get_requests()) == 1

    async def test_missing_access_token_raises(
        self, oauth_config: TrackerConfig, httpx_mock: HTTPXMock
    ) -> None:
        """Test a token response without access_token."""
        httpx_mock.add_response(method="POST", url=TOKEN_URL, json={"error": "invalid_scope"})
        provider = TokenProvider(oauth_config)

        async with httpx.AsyncClient() as client:
            with pytest.raises(TransportError):
                await provider.get_token(client)

    async def test_invalidate_keeps_permanent_token(self) -> None:
        """Test invalidate() only drops OAuth tokens."""
        provider = TokenProvider(TrackerConfig(base_url="https://yt.test", token="perm"))
        provider.invalidate()

        async with httpx.AsyncClient() as client:
            token = await provider.get_token(client)

        assert token is not None
        assert token.value == "perm"

    async def test_token_request_without_oauth_raises(self, httpx_mock: HTTPXMock) -> None:
        """Test requesting a token with no OAuth client configured."""
        provider = TokenProvider(TrackerConfig(base_url="https://yt.test", token="perm"))

        async with httpx.AsyncClient() as client:
            with pytest.raises(TransportError, match="No OAuth client"):
                await provider._request_token(client)

        assert httpx_mock.get_requests() == []
