"""Salesforce REST record sink."""
from typing import Any, List
import httpx
import orjson
import structlog
from .base import RecordSink, SinkResult
from ..config import Settings
from ..errors import SinkError, parse_salesforce_error
from ..event_models import StoredEvent
from ..services.credentials import CredentialCache

log = structlog.get_logger()


def payload_text(payload: Any, max_chars: int) -> str:
    """Pretty-print a payload and cut it to the target field's length limit."""
    return orjson.dumps(payload, option=orjson.OPT_INDENT_2).decode("utf-8")[:max_chars]


def _error_messages(body: Any) -> List[str]:
    if isinstance(body, dict):
        body = body.get("errors") or []
    messages = []
    for err in body if isinstance(body, list) else []:
        if isinstance(err, dict):
            code = err.get("errorCode") or err.get("statusCode")
            msg = err.get("message", "")
            messages.append(f"{code}: {msg}" if code else str(msg))
        else:
            messages.append(str(err))
    return messages


class SalesforceRecordSink(RecordSink):
    """Creates one sObject record per forwarded event.

    Authentication uses the shared CredentialCache; each record is
    attempted exactly once.
    """

    def __init__(self, settings: Settings, credentials: CredentialCache, client: httpx.AsyncClient):
        """
        Initialize Salesforce sink.

        Args:
            settings: Application settings (object, field names, API version)
            credentials: Cache providing the bearer token and instance URL
            client: Shared HTTP client
        """
        self._settings = settings
        self._credentials = credentials
        self._client = client

    def build_record(self, event: StoredEvent) -> dict:
        return {
            self._settings.SF_MESSAGE_ID_FIELD: event.id,
            self._settings.SF_PAYLOAD_FIELD: payload_text(event.payload, self._settings.PAYLOAD_MAX_CHARS),
        }

    async def create_record(self, event: StoredEvent) -> SinkResult:
        """
        Create the sObject record for an event.

        Returns:
            SinkResult; success is False when Salesforce rejected the record

        Raises:
            AuthError: If no credential could be obtained
            SinkError: On transport failure or a Salesforce server error
        """
        credential = await self._credentials.get_credential()
        url = (
            f"{credential.instance_url.rstrip('/')}/services/data/"
            f"v{self._settings.SF_API_VERSION}/sobjects/{self._settings.SF_OBJECT_NAME}/"
        )

        try:
            response = await self._client.post(
                url,
                content=orjson.dumps(self.build_record(event)),
                headers={
                    "Authorization": f"Bearer {credential.access_token}",
                    "Content-Type": "application/json",
                },
            )
        except httpx.HTTPError as e:
            log.error("salesforce.request_failed", error=str(e), id=event.id)
            raise SinkError(f"Record request to Salesforce failed: {e}") from e

        if response.status_code >= 500:
            raise SinkError(
                f"Salesforce returned HTTP {response.status_code}: {parse_salesforce_error(response.text)}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.is_error:
            errors = _error_messages(body) or [parse_salesforce_error(response.text)]
            return SinkResult(success=False, errors=errors)

        if isinstance(body, dict) and body.get("success"):
            return SinkResult(success=True, record_id=body.get("id"))
        return SinkResult(success=False, errors=_error_messages(body) or ["Unexpected response from Salesforce"])
