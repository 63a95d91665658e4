"""Tests for the YouTrack client."""

from collections.abc import AsyncIterator

import httpx
import pytest
from pytest_httpx import HTTPXMock

from tracknotify.adapters.youtrack import YouTrackClient
from tracknotify.exceptions import TransportError
from tracknotify.models import OAuthConfig, Project, TrackerConfig

BASE_URL = "https://yt.test"
LIST_URL = (
    f"{BASE_URL}/rest/issue/byproject/PRJ"
    "?updatedAfter=1700000000000&max=100&with=summary&with=updaterName"
)
HISTORY_URL = f"{BASE_URL}/rest/issue/PRJ-1/changes"
TOKEN_URL = "https://hub.test/api/rest/oauth2/token"
FIELDS = ["summary", "updaterName"]

SAMPLE_ISSUES_RESPONSE = [
    {
        "id": "PRJ-1",
        "field": [
            {"name": "summary", "value": "Crash on start"},
            {"name": "updaterName", "value": "alice"},
        ],
    }
]

SAMPLE_HISTORY_RESPONSE = {
    "issue": {"id": "PRJ-1", "field": [{"name": "summary", "value": "Crash on start"}]},
    "change": [
        {
            "field": [
                {"name": "updaterName", "value": "bob"},
                {"name": "updated", "value": "1700000001000"},
                {"name": "State", "oldValue": ["Open"], "newValue": ["Fixed"]},
            ]
        }
    ],
}


@pytest.fixture
def project() -> Project:
    """Create a test project."""
    return Project(name="PRJ", base_url=BASE_URL, target="-100123", checkpoint_key="PRJ")


@pytest.fixture
def tracker_config() -> TrackerConfig:
    """Create a tracker configuration with a permanent token."""
    return TrackerConfig(base_url=BASE_URL + "/", token="perm:token")


@pytest.fixture
async def client(tracker_config: TrackerConfig) -> AsyncIterator[YouTrackClient]:
    """Create a YouTrack client."""
    client = YouTrackClient(tracker_config)
    yield client
    await client.close()


class TestListIssues:
    """Tests for YouTrackClient.list_issues."""

    async def test_list_issues_success(
        self, client: YouTrackClient, project: Project, httpx_mock: HTTPXMock
    ) -> None:
        """Test listing with query parameters and auth header."""
        httpx_mock.add_response(url=LIST_URL, json=SAMPLE_ISSUES_RESPONSE)

        issues = await client.list_issues(project, "1700000000000", 100, FIELDS)

        assert issues == SAMPLE_ISSUES_RESPONSE
        request = httpx_mock.get_request()
        assert request.headers["Authorization"] == "Bearer perm:token"
        assert request.headers["Accept"] == "application/json"

    async def test_list_issues_wrapped_payload(
        self, client: YouTrackClient, project: Project, httpx_mock: HTTPXMock
    ) -> None:
        """Test the `{"issue": [...]}` response shape."""
        httpx_mock.add_response(url=LIST_URL, json={"issue": SAMPLE_ISSUES_RESPONSE})

        issues = await client.list_issues(project, "1700000000000", 100, FIELDS)

        assert [issue["id"] for issue in issues] == ["PRJ-1"]

    async def test_list_issues_http_error(
        self, client: YouTrackClient, project: Project, httpx_mock: HTTPXMock
    ) -> None:
        """Test a server error raises TransportError."""
        httpx_mock.add_response(url=LIST_URL, status_code=500)

        with pytest.raises(TransportError) as exc_info:
            await client.list_issues(project, "1700000000000", 100, FIELDS)

        assert exc_info.value.status_code == 500

    async def test_list_issues_network_error(
        self, client: YouTrackClient, project: Project, httpx_mock: HTTPXMock
    ) -> None:
        """Test a connection failure raises TransportError."""
        httpx_mock.add_exception(httpx.ConnectError("Connection refused"), url=LIST_URL)

        with pytest.raises(TransportError):
            await client.list_issues(project, "1700000000000", 100, FIELDS)

    async def test_list_issues_unexpected_payload(
        self, client: YouTrackClient, project: Project, httpx_mock: HTTPXMock
    ) -> None:
        """Test a scalar body is rejected."""
        httpx_mock.add_response(url=LIST_URL, json="maintenance")

        with pytest.raises(TransportError):
            await client.list_issues(project, "1700000000000", 100, FIELDS)


class TestIssueHistory:
    """Tests for YouTrackClient.issue_history."""

    async def test_issue_history_success(
        self, client: YouTrackClient, httpx_mock: HTTPXMock
    ) -> None:
        """Test fetching a change history."""
        httpx_mock.add_response(url=HISTORY_URL, json=SAMPLE_HISTORY_RESPONSE)

        history = await client.issue_history("PRJ-1")

        assert history == SAMPLE_HISTORY_RESPONSE

    async def test_issue_history_not_found(
        self, client: YouTrackClient, httpx_mock: HTTPXMock
    ) -> None:
        """Test 404 returns None."""
        httpx_mock.add_response(url=HISTORY_URL, status_code=404)

        assert await client.issue_history("PRJ-1") is None

    async def test_issue_history_forbidden(
        self, client: YouTrackClient, httpx_mock: HTTPXMock
    ) -> None:
        """Test other errors raise TransportError."""
        httpx_mock.add_response(url=HISTORY_URL, status_code=403)

        with pytest.raises(TransportError) as exc_info:
            await client.issue_history("PRJ-1")

        assert exc_info.value.status_code == 403

    async def test_issue_history_invalid_json(
        self, client: YouTrackClient, httpx_mock: HTTPXMock
    ) -> None:
        """Test a non-JSON body raises TransportError."""
        httpx_mock.add_response(url=HISTORY_URL, text="<html>proxy error</html>")

        with pytest.raises(TransportError):
            await client.issue_history("PRJ-1")


class TestHealthCheck:
    """Tests for YouTrackClient.health_check."""

    async def test_health_check_success(
        self, client: YouTrackClient, httpx_mock: HTTPXMock
    ) -> None:
        """Test a reachable tracker."""
        httpx_mock.add_response(url=f"{BASE_URL}/rest/user/current", json={"login": "bot"})

        assert await client.health_check() is True

    async def test_health_check_unauthorized(
        self, client: YouTrackClient, httpx_mock: HTTPXMock
    ) -> None:
        """Test rejected credentials."""
        httpx_mock.add_response(url=f"{BASE_URL}/rest/user/current", status_code=401)

        assert await client.health_check() is False


class TestOAuth:
    """Tests for OAuth client-credentials authentication."""

    @pytest.fixture
    def oauth_config(self) -> TrackerConfig:
        """Create a tracker configuration with OAuth credentials."""
        return TrackerConfig(
            base_url=BASE_URL,
            oauth=OAuthConfig(
                url=TOKEN_URL,
                client_id="service-id",
                client_secret="service-secret",
                scope="youtrack",
            ),
        )

    async def test_token_is_requested_once(
        self, oauth_config: TrackerConfig, httpx_mock: HTTPXMock
    ) -> None:
        """Test the token is cached across requests."""
        httpx_mock.add_response(
            method="POST",
            url=TOKEN_URL,
            json={"access_token": "oauth-token", "token_type": "Bearer", "expires_in": 3600},
        )
        httpx_mock.add_response(url=HISTORY_URL, json=SAMPLE_HISTORY_RESPONSE)
        httpx_mock.add_response(url=HISTORY_URL, json=SAMPLE_HISTORY_RESPONSE)

        client = YouTrackClient(oauth_config)
        try:
            await client.issue_history("PRJ-1")
            await client.issue_history("PRJ-1")
        finally:
            await client.close()

        requests = httpx_mock.get_requests()
        assert [r.method for r in requests] == ["POST", "GET", "GET"]
        assert requests[0].headers["Authorization"].startswith("Basic ")
        assert b"grant_type=client_credentials" in requests[0].content
        assert requests[1].headers["Authorization"] == "Bearer oauth-token"

    async def test_unauthorized_response_drops_token(
        self, oauth_config: TrackerConfig, httpx_mock: HTTPXMock
    ) -> None:
        """Test a 401 makes the next request fetch a fresh token."""
        httpx_mock.add_response(method="POST", url=TOKEN_URL, json={"access_token": "first"})
        httpx_mock.add_response(url=HISTORY_URL, status_code=401)
        httpx_mock.add_response(method="POST", url=TOKEN_URL, json={"access_token": "second"})
        httpx_mock.add_response(url=HISTORY_URL, json=SAMPLE_HISTORY_RESPONSE)

        client = YouTrackClient(oauth_config)
        try:
            with pytest.raises(TransportError):
                await client.issue_history("PRJ-1")
            assert await client.issue_history("PRJ-1") == SAMPLE_HISTORY_RESPONSE
        finally:
            await client.close()

        requests = httpx_mock.get_requests()
        assert requests[-1].headers["Authorization"] == "Bearer second"

    async def test_rejected_client_credentials(
        self, oauth_config: TrackerConfig, httpx_mock: HTTPXMock
    ) -> None:
        """Test a failing token endpoint raises TransportError."""
        httpx_mock.add_response(method="POST", url=TOKEN_URL, status_code=401)

        client = YouTrackClient(oauth_config)
        try:
            with pytest.raises(TransportError) as exc_info:
                await client.issue_history("PRJ-1")
        finally:
            await client.close()

        assert exc_info.value.status_code == 401
