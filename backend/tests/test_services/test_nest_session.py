"""
Tests for NestSession

Uses httpx.MockTransport to stand in for the Google and Nest endpoints.
"""
import json

import httpx
import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from nestcam.config.nest import ISSUE_JWT_URL
from nestcam.core.config import GoogleAuth, Settings
from nestcam.core.errors import AuthError, ConfigurationError, NetworkError
from nestcam.services.nest_session import RENEWAL_JOB_ID, NestSession, validate_credentials

ISSUE_TOKEN = "https://accounts.google.com/o/oauth2/iframerpc?action=issueToken&origin=https://home.nest.com"
FT_ISSUE_TOKEN = "https://accounts.google.com/o/oauth2/iframerpc?action=issueToken&origin=https://home.ft.nest.com"


def make_auth(issue_token=ISSUE_TOKEN):
    return GoogleAuth(issue_token=issue_token, cookies="SID=abc; HSID=def", api_key="AIzaKey")


def make_handler(google=None, jwt=None, calls=None):
    """Route requests to the Google or Nest stub by host."""
    google = google or (lambda request: httpx.Response(200, json={"access_token": "ya29.google"}))
    jwt = jwt or (lambda request: httpx.Response(
        200, json={"jwt": "nest-jwt", "claims": {"expirationTime": "2030-01-01T00:00:00Z"}}
    ))

    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(request)
        if request.url.host == "accounts.google.com":
            return google(request)
        return jwt(request)

    return handler


def make_session(handler, issue_token=ISSUE_TOKEN):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return NestSession(make_auth(issue_token), http_client=client)


class TestAuthenticate:

    @pytest.mark.asyncio
    async def test_two_step_exchange(self):
        calls = []
        session = make_session(make_handler(calls=calls))

        token = await session.authenticate()

        assert token.value == "nest-jwt"
        assert token.expires_at.year == 2030
        assert session.token is token
        assert session.authenticated is True

        google, issue = calls
        assert google.method == "GET"
        assert google.headers["cookie"] == "SID=abc; HSID=def"
        assert google.headers["Referer"] == "https://accounts.google.com/o/oauth2/iframe"
        assert issue.method == "POST"
        assert str(issue.url) == ISSUE_JWT_URL
        assert issue.headers["Authorization"] == "Bearer ya29.google"
        assert issue.headers["x-goog-api-key"] == "AIzaKey"
        body = json.loads(issue.content)
        assert body["google_oauth_access_token"] == "ya29.google"
        assert body["policy_id"] == "authproxy-oauth-policy"

    @pytest.mark.asyncio
    async def test_google_error_field_is_auth_error(self):
        session = make_session(make_handler(
            google=lambda request: httpx.Response(200, json={"error": "USER_LOGGED_OUT"})
        ))

        with pytest.raises(AuthError):
            await session.authenticate()
        assert session.token is None

    @pytest.mark.asyncio
    async def test_missing_jwt_is_auth_error(self):
        session = make_session(make_handler(jwt=lambda request: httpx.Response(200, json={})))

        with pytest.raises(AuthError):
            await session.authenticate()

    @pytest.mark.asyncio
    async def test_http_401_is_auth_error(self):
        session = make_session(make_handler(jwt=lambda request: httpx.Response(401, text="denied")))

        with pytest.raises(AuthError) as exc_info:
            await session.authenticate()
        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_http_500_is_network_error(self):
        session = make_session(make_handler(jwt=lambda request: httpx.Response(500, text="oops")))

        with pytest.raises(NetworkError) as exc_info:
            await session.authenticate()
        assert exc_info.value.status_code == 500
        assert exc_info.value.has_response

    @pytest.mark.asyncio
    async def test_transport_failure_has_no_status(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        session = make_session(make_handler(google=refuse))

        with pytest.raises(NetworkError) as exc_info:
            await session.authenticate()
        assert exc_info.value.status_code is None

    @pytest.mark.asyncio
    async def test_unparseable_expiry_uses_default_lifetime(self):
        session = make_session(make_handler(
            jwt=lambda request: httpx.Response(200, json={"jwt": "nest-jwt", "claims": {"expirationTime": "soon"}})
        ))

        token = await session.authenticate()

        assert (token.expires_at - token.issued_at).total_seconds() == 3600


class TestFieldTest:

    def test_production_token(self):
        session = NestSession(make_auth(ISSUE_TOKEN))

        assert session.field_test is False
        assert session.endpoints.camera_api_host == "https://webapi.camera.home.nest.com"

    def test_field_test_token(self):
        session = NestSession(make_auth(FT_ISSUE_TOKEN))

        assert session.field_test is True
        assert session.endpoints.camera_api_host == "https://webapi.camera.home.ft.nest.com"

    @pytest.mark.asyncio
    async def test_field_test_decision_is_sticky(self):
        calls = []
        session = make_session(make_handler(calls=calls), issue_token=FT_ISSUE_TOKEN)

        await session.authenticate()
        await session.authenticate()

        assert session.field_test is True
        assert all(c.headers.get("Referer") == "https://home.ft.nest.com" for c in calls[1::2])


class TestRenew:

    @pytest.mark.asyncio
    async def test_renew_swaps_token(self):
        responses = iter(["jwt-1", "jwt-2"])
        session = make_session(make_handler(
            jwt=lambda request: httpx.Response(200, json={"jwt": next(responses)})
        ))
        first = await session.authenticate()

        assert await session.renew() is True
        assert session.token is not first
        assert session.token.value == "jwt-2"
        assert first.value == "jwt-1"

    @pytest.mark.asyncio
    async def test_renew_failure_keeps_old_token(self):
        responses = iter([
            httpx.Response(200, json={"jwt": "jwt-1"}),
            httpx.Response(503, text="unavailable"),
        ])
        session = make_session(make_handler(jwt=lambda request: next(responses)))
        first = await session.authenticate()

        assert await session.renew() is False
        assert session.token is first
        assert "503" in session.last_error

    @pytest.mark.asyncio
    async def test_renew_swallows_auth_error(self):
        session = make_session(make_handler(
            google=lambda request: httpx.Response(200, json={"error": "USER_LOGGED_OUT"})
        ))

        assert await session.renew() is False
        assert session.last_error is not None

    def test_schedule_renewal_adds_job(self):
        scheduler = AsyncIOScheduler()
        session = NestSession(make_auth())

        session.schedule_renewal(scheduler, interval_seconds=120)
        session.schedule_renewal(scheduler, interval_seconds=120)

        job = scheduler.get_job(RENEWAL_JOB_ID)
        assert job is not None
        assert len(scheduler.get_jobs()) == 1


class TestValidateCredentials:

    def test_missing_fields(self):
        settings = Settings(_env_file=None, NEST_ISSUE_TOKEN=ISSUE_TOKEN)

        with pytest.raises(ConfigurationError) as exc_info:
            validate_credentials(settings)
        assert "NEST_COOKIES" in str(exc_info.value)
        assert "NEST_API_KEY" in str(exc_info.value)

    def test_issue_token_must_be_https(self):
        settings = Settings(
            _env_file=None, NEST_ISSUE_TOKEN="iframerpc?x=1", NEST_COOKIES="c", NEST_API_KEY="k"
        )

        with pytest.raises(ConfigurationError):
            validate_credentials(settings)

    def test_valid(self):
        settings = Settings(
            _env_file=None, NEST_ISSUE_TOKEN=ISSUE_TOKEN, NEST_COOKIES="c", NEST_API_KEY="k"
        )

        auth = validate_credentials(settings)

        assert auth.issue_token == ISSUE_TOKEN
