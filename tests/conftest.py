"""Shared fixtures for ENS bridge tests."""
import base64
from typing import List, Optional

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from ens_bridge.adapters.base import RecordSink, SinkResult
from ens_bridge.config import Settings
from ens_bridge.event_models import StoredEvent
from ens_bridge.services.signature import compute_signature

SIGNATURE_KEY = base64.b64encode(b"ens-callback-signing-key-0123456789").decode()
INSTANCE_URL = "https://acme.my.salesforce.com"
INBOUND = "EngagementEvents.OttMobileOriginated"
DELIVERED = "EngagementEvents.OttDelivered"


class RecordingSink(RecordSink):
    """Record sink double that remembers what it was asked to create."""

    def __init__(self, result: Optional[SinkResult] = None, fail_for: Optional[dict] = None):
        self.result = result or SinkResult(success=True, record_id="a0B000000000001")
        self.fail_for = fail_for or {}
        self.calls: List[StoredEvent] = []
        self.closed = False

    async def create_record(self, event: StoredEvent) -> SinkResult:
        self.calls.append(event)
        if event.id in self.fail_for:
            raise self.fail_for[event.id]
        return self.result

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture(scope="session")
def rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def private_key_pem(rsa_key) -> str:
    return rsa_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


@pytest.fixture
def make_settings():
    """Build Settings isolated from the environment and any .env file."""
    def _make(**overrides) -> Settings:
        values = {
            "ENS_SIGNATURE_KEY": SIGNATURE_KEY,
            "SF_INSTANCE_URL": None,
            "SF_CONSUMER_KEY": None,
            "SF_USERNAME": None,
            "PRIVATE_KEY": None,
            "IGNORED_EVENT_TYPES": "",
            "LOG_JSON": False,
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)
    return _make


@pytest.fixture
def sf_settings(make_settings, private_key_pem):
    """Settings with the Salesforce sink enabled; key stored newline-escaped as in .env."""
    return make_settings(
        SF_INSTANCE_URL=INSTANCE_URL,
        SF_CONSUMER_KEY="3MVG9consumer",
        SF_USERNAME="integration@acme.com",
        PRIVATE_KEY=private_key_pem.replace("\n", "\\n"),
    )


@pytest.fixture
def sign():
    def _sign(body: bytes, key: str = SIGNATURE_KEY) -> str:
        return compute_signature(body, key)
    return _sign


@pytest.fixture
def sink_factory():
    return RecordingSink
