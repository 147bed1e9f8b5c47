"""
ENS ingestion services

Provides the core of the webhook bridge:
- Webhook signature verification
- Salesforce credential caching (JWT bearer flow)
- Event normalization
- The ingestion pipeline tying them together
"""

from .credentials import Credential, CredentialCache
from .normalizer import normalize
from .pipeline import Acknowledgement, IngestionPipeline
from .signature import VerifyResult, compute_signature, verify_signature

__all__ = [
    "Credential",
    "CredentialCache",
    "normalize",
    "Acknowledgement",
    "IngestionPipeline",
    "VerifyResult",
    "compute_signature",
    "verify_signature",
]
