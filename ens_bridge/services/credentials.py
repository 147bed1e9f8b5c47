"""
Salesforce access credentials via the OAuth 2.0 JWT bearer flow.

A signed assertion is exchanged for an access token, which is cached well
below its real lifetime and refreshed lazily on the first call after expiry.
"""
import asyncio
import time
from typing import Callable, Optional

import httpx
import jwt
import structlog
from pydantic import BaseModel

from ..config import Settings
from ..errors import AuthError, ConfigError, parse_salesforce_error

log = structlog.get_logger()

PRODUCTION_LOGIN_URL = "https://login.salesforce.com"
SANDBOX_LOGIN_URL = "https://test.salesforce.com"
TOKEN_PATH = "/services/oauth2/token"
JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"


class Credential(BaseModel):
    access_token: str
    instance_url: str
    expires_at: float  # epoch seconds

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


def login_url_for(instance_url: str) -> str:
    """Pick the identity provider (and JWT audience) for an instance URL."""
    if "sandbox" in instance_url or "test" in instance_url:
        return SANDBOX_LOGIN_URL
    return PRODUCTION_LOGIN_URL


def load_private_key(value: str) -> str:
    """Restore newlines in a PEM key stored as a single-line env value."""
    return value.replace("\\n", "\n")


class CredentialCache:
    """
    Lazily obtained, time-limited Salesforce credential.

    Concurrent callers arriving while a refresh is in flight share that
    refresh instead of starting their own.
    """

    def __init__(
        self,
        settings: Settings,
        client: httpx.AsyncClient,
        clock: Callable[[], float] = time.time,
        metrics=None,
    ):
        """
        Initialize the cache.

        Args:
            settings: Application settings with the SF_* values populated
            client: Shared HTTP client for the token exchange
            clock: Source of the current time in epoch seconds
            metrics: Optional Metrics instance for refresh counters

        Raises:
            ConfigError: If the Salesforce settings are incomplete
        """
        if not settings.salesforce_enabled:
            raise ConfigError("Salesforce settings are incomplete")
        self._settings = settings
        self._client = client
        self._clock = clock
        self._metrics = metrics
        self._credential: Optional[Credential] = None
        self._refresh_task: Optional[asyncio.Task] = None

    @property
    def audience(self) -> str:
        return login_url_for(self._settings.SF_INSTANCE_URL)

    @property
    def credential(self) -> Optional[Credential]:
        """Cached credential, possibly expired."""
        return self._credential

    async def get_credential(self) -> Credential:
        """
        Return a valid credential, refreshing it if needed.

        Raises:
            AuthError: If the token exchange fails
        """
        cached = self._credential
        if cached is not None and not cached.is_expired(self._clock()):
            return cached

        if self._refresh_task is None:
            self._refresh_task = asyncio.create_task(self._refresh())
            self._refresh_task.add_done_callback(self._refresh_done)

        # Shielded so a cancelled caller does not abort the shared refresh
        return await asyncio.shield(self._refresh_task)

    def _refresh_done(self, task: asyncio.Task) -> None:
        if self._refresh_task is task:
            self._refresh_task = None
        if not task.cancelled():
            # Mark retrieved even when every waiter was cancelled
            task.exception()

    def build_assertion(self) -> str:
        """Create the signed RS256 JWT assertion."""
        claims = {
            "iss": self._settings.SF_CONSUMER_KEY,
            "sub": self._settings.SF_USERNAME,
            "aud": self.audience,
            "exp": int(self._clock()) + self._settings.ASSERTION_TTL_SECONDS,
        }
        return jwt.encode(claims, load_private_key(self._settings.PRIVATE_KEY), algorithm="RS256")

    async def _refresh(self) -> Credential:
        log.info("credential.refreshing", audience=self.audience)
        try:
            credential = await self._exchange()
        except AuthError as e:
            log.error(
                "credential.refresh_failed",
                error=str(e),
                status_code=e.status_code,
                detail=e.detail,
            )
            self._record("failure")
            raise

        self._credential = credential
        self._record("success")
        log.info("credential.refreshed", instance_url=credential.instance_url)
        return credential

    async def _exchange(self) -> Credential:
        try:
            assertion = self.build_assertion()
        except Exception as e:
            raise AuthError(f"Failed to sign JWT assertion: {e}") from e

        token_url = f"{self.audience}{TOKEN_PATH}"
        try:
            response = await self._client.post(
                token_url,
                data={"grant_type": JWT_BEARER_GRANT, "assertion": assertion},
            )
        except httpx.HTTPError as e:
            raise AuthError(f"Token request to {token_url} failed: {e}") from e

        if response.is_error:
            detail = parse_salesforce_error(response.text)
            raise AuthError(
                f"Token exchange rejected with HTTP {response.status_code}",
                status_code=response.status_code,
                detail=detail,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise AuthError("Token response is not valid JSON", status_code=response.status_code) from e

        access_token = data.get("access_token") if isinstance(data, dict) else None
        if not access_token:
            raise AuthError("Token response has no access_token", status_code=response.status_code)

        return Credential(
            access_token=access_token,
            instance_url=data.get("instance_url") or self._settings.SF_INSTANCE_URL,
            expires_at=self._clock() + self._settings.TOKEN_TTL_SECONDS,
        )

    def _record(self, outcome: str) -> None:
        if self._metrics is not None:
            self._metrics.credential_refresh_total.labels(outcome=outcome).inc()
