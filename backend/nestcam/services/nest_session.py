"""
Nest authentication session.

Exchanges the Google credentials copied from a signed-in browser session for
a short-lived Nest JWT, and renews it on a fixed schedule.

Flow:
    GET  <issue_token URL>  (cookie blob)       -> Google OAuth access token
    POST issue_jwt          (Bearer + API key)  -> Nest JWT + expiry

The current token is held as one immutable AccessToken reference. Renewal
builds a new AccessToken and swaps the reference, so a poll tick that read
the old token keeps a consistent value and fails fast with AuthError once it
expires.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import httpx

from nestcam.config.nest import (
    GOOGLE_OAUTH_REFERER,
    ISSUE_JWT_POLICY_ID,
    ISSUE_JWT_URL,
    SESSION_RENEWAL_SECONDS,
    TOKEN_LIFETIME_SECONDS,
    USER_AGENT,
    NestEndpoints,
    is_field_test_token,
)
from nestcam.core.config import GoogleAuth, Settings
from nestcam.core.errors import AuthError, ConfigurationError, NetworkError
from nestcam.core.logging_config import clear_job_id, register_secrets, set_job_id
from nestcam.core.metrics import record_session_renewal
from nestcam.services.nest_http import request_json

logger = logging.getLogger(__name__)

RENEWAL_JOB_ID = "session_renewal"


@dataclass(frozen=True)
class AccessToken:
    """One issued Nest JWT."""
    value: str
    issued_at: datetime
    expires_at: datetime

    @property
    def expired(self) -> bool:
        return datetime.now(timezone.utc) >= self.expires_at


def validate_credentials(settings: Settings) -> GoogleAuth:
    """
    Check that all three Google credential fields are present and sane.

    Raises:
        ConfigurationError: A field is missing, or the issue token is not an
            https URL
    """
    missing = [
        name for name in ("NEST_ISSUE_TOKEN", "NEST_COOKIES", "NEST_API_KEY")
        if not getattr(settings, name)
    ]
    if missing:
        raise ConfigurationError(
            f"Missing Google credentials: {', '.join(missing)}. "
            "Provide the issue token, cookies and API key from a signed-in browser session"
        )

    auth = settings.google_auth
    register_secrets([auth.cookies, auth.api_key])
    if not auth.issue_token.startswith("https://"):
        raise ConfigurationError("NEST_ISSUE_TOKEN must be the full https:// iframerpc URL")

    return auth


def _parse_expiry(raw: Optional[str], issued_at: datetime) -> datetime:
    """Parse claims.expirationTime, falling back to the requested lifetime."""
    if raw:
        try:
            parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed
        except ValueError:
            logger.debug(f"Unparseable token expiry {raw!r}, using default lifetime")
    return issued_at + timedelta(seconds=TOKEN_LIFETIME_SECONDS)


class NestSession:
    """
    Owns the current Nest access token and its renewal job.

    Example:
        >>> session = NestSession(validate_credentials(settings))
        >>> await session.authenticate()
        >>> session.schedule_renewal(scheduler)
    """

    def __init__(
        self,
        auth: GoogleAuth,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 15.0,
    ):
        self._auth = auth
        self._client = http_client
        self._owns_client = http_client is None
        self._timeout = timeout
        self._token: Optional[AccessToken] = None
        self._last_error: Optional[str] = None
        # Decided once; never recomputed for the lifetime of the process
        self._field_test = is_field_test_token(auth.issue_token)
        self._endpoints = NestEndpoints(field_test=self._field_test)

    @property
    def field_test(self) -> bool:
        return self._field_test

    @property
    def endpoints(self) -> NestEndpoints:
        return self._endpoints

    @property
    def token(self) -> Optional[AccessToken]:
        """The current token reference; None before the first authentication."""
        return self._token

    @property
    def authenticated(self) -> bool:
        return self._token is not None and not self._token.expired

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def authenticate(self) -> AccessToken:
        """
        Run the two-step Google to Nest token exchange.

        Returns:
            The newly issued token, which also becomes the current one

        Raises:
            AuthError: Google or Nest rejected the credentials
            NetworkError: Transport or HTTP failure
        """
        google_token = await self._fetch_google_token()

        issued_at = datetime.now(timezone.utc)
        data = await request_json(
            self.client,
            "POST",
            ISSUE_JWT_URL,
            headers={
                "Authorization": f"Bearer {google_token}",
                "User-Agent": USER_AGENT,
                "x-goog-api-key": self._auth.api_key,
                "Referer": self._endpoints.nest_api_host,
            },
            json={
                "embed_google_oauth_access_token": True,
                "expire_after": f"{TOKEN_LIFETIME_SECONDS}s",
                "google_oauth_access_token": google_token,
                "policy_id": ISSUE_JWT_POLICY_ID,
            },
        )

        jwt = data.get("jwt") if isinstance(data, dict) else None
        if not jwt:
            raise AuthError("issue_jwt response did not contain a jwt")

        claims = data.get("claims") or {}
        token = AccessToken(
            value=jwt,
            issued_at=issued_at,
            expires_at=_parse_expiry(claims.get("expirationTime"), issued_at),
        )

        # Single reference swap; readers see the old or the new token, never a mix
        self._token = token
        self._last_error = None

        logger.info(
            "Authenticated with Nest",
            extra={
                "event_type": "nest_authenticated",
                "field_test": self._field_test,
                "expires_at": token.expires_at.isoformat(),
            }
        )
        return token

    async def _fetch_google_token(self) -> str:
        data = await request_json(
            self.client,
            "GET",
            self._auth.issue_token,
            headers={
                "Sec-Fetch-Mode": "cors",
                "User-Agent": USER_AGENT,
                "X-Requested-With": "XmlHttpRequest",
                "Referer": GOOGLE_OAUTH_REFERER,
                "cookie": self._auth.cookies,
            },
        )

        if not isinstance(data, dict):
            raise AuthError("Unexpected response from Google token endpoint")
        if data.get("error"):
            raise AuthError(
                f"Google rejected the credentials: {data['error']}. "
                "The cookies have likely expired; copy fresh ones from the browser"
            )

        access_token = data.get("access_token")
        if not access_token:
            raise AuthError("Google token response did not contain an access_token")
        return access_token

    async def renew(self) -> bool:
        """
        Renewal job tick.

        Failures are logged and left for the next scheduled tick; nothing
        escapes to the scheduler.

        Returns:
            True if a new token was issued
        """
        job_token = set_job_id(RENEWAL_JOB_ID)
        try:
            await self.authenticate()
            record_session_renewal("success")
            return True
        except AuthError as e:
            self._last_error = str(e)
            record_session_renewal("auth_error")
            logger.error(
                f"Session renewal rejected: {e}",
                extra={"event_type": "session_renewal_failed", "status_code": e.status_code}
            )
        except NetworkError as e:
            self._last_error = str(e)
            record_session_renewal("network_error")
            log = logger.debug if e.has_response else logger.error
            log(
                f"Session renewal failed: {e}",
                extra={"event_type": "session_renewal_failed", "status_code": e.status_code}
            )
        except Exception as e:
            self._last_error = str(e)
            record_session_renewal("error")
            logger.error(
                f"Unexpected error renewing session: {e}",
                exc_info=True,
                extra={"event_type": "session_renewal_failed"}
            )
        finally:
            clear_job_id(job_token)
        return False

    def schedule_renewal(self, scheduler, interval_seconds: int = SESSION_RENEWAL_SECONDS) -> None:
        """
        Arm the process-wide renewal job on an APScheduler scheduler.

        Args:
            scheduler: AsyncIOScheduler that runs the poll jobs
            interval_seconds: Seconds between renewals
        """
        scheduler.add_job(
            self.renew,
            trigger="interval",
            seconds=interval_seconds,
            id=RENEWAL_JOB_ID,
            name="Nest session renewal",
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
        logger.info(
            f"Session renewal scheduled every {interval_seconds}s",
            extra={"event_type": "session_renewal_scheduled", "interval_seconds": interval_seconds}
        )

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
