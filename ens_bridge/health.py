"""
Health checks for liveness and readiness probes.
"""
from typing import Dict, Any, Optional
import psutil
from .adapters.base import EventStore
from .config import Settings
from .logging import SERVICE_NAME, get_logger
from .services.credentials import CredentialCache
from .services.normalizer import to_iso, utcnow

logger = get_logger()


class HealthChecker:
    """
    Health checker for the ENS bridge.

    Provides:
    - Liveness checks (is the service running?)
    - Readiness checks (is it configured and able to handle traffic?)
    """

    def __init__(
        self,
        settings: Settings,
        store: EventStore,
        credentials: Optional[CredentialCache] = None,
        service_name: str = SERVICE_NAME,
        version: str = "0.1.0",
    ):
        self.settings = settings
        self.store = store
        self.credentials = credentials
        self.service_name = service_name
        self.version = version

    def liveness(self) -> Dict[str, Any]:
        """
        Liveness check - basic health check.

        Returns:
            dict: Health status, timestamp and number of events in memory
        """
        return {
            "status": "healthy",
            "service": self.service_name,
            "timestamp": to_iso(utcnow()),
            "eventsInMemory": self.store.count(),
        }

    def readiness(self) -> Dict[str, Any]:
        """
        Readiness check.

        Checks:
        - Signature key configured (warning only; callbacks are still acknowledged)
        - Salesforce sink mode and cached credential state
        - Memory availability

        Returns:
            dict: Readiness status with detailed check results
        """
        checks = {
            "signature_key": self._check_signature_key(),
            "salesforce": self._check_salesforce(),
            "memory": self._check_memory(),
        }
        overall_status = "not_ready" if any(c["status"] == "error" for c in checks.values()) else "ready"

        return {
            "status": overall_status,
            "service": self.service_name,
            "version": self.version,
            "timestamp": to_iso(utcnow()),
            "checks": checks,
        }

    def _check_signature_key(self) -> Dict[str, Any]:
        if self.settings.ENS_SIGNATURE_KEY:
            return {"status": "ok"}
        return {
            "status": "warning",
            "message": "ENS_SIGNATURE_KEY not configured; callbacks are not processed",
        }

    def _check_salesforce(self) -> Dict[str, Any]:
        if self.credentials is None:
            return {"status": "skipped", "message": "Salesforce integration disabled"}

        credential = self.credentials.credential
        return {
            "status": "ok",
            "audience": self.credentials.audience,
            "credential_cached": credential is not None,
        }

    def _check_memory(self, threshold_mb: float = 50.0) -> Dict[str, Any]:
        """
        Check available memory.

        Args:
            threshold_mb: Minimum available memory in MB (default: 50.0)

        Returns:
            dict: Memory health check result
        """
        try:
            memory = psutil.virtual_memory()
            available_mb = memory.available / (1024**2)

            if available_mb < threshold_mb:
                status = "error"
            elif available_mb < threshold_mb * 2:
                status = "warning"
            else:
                status = "ok"

            return {
                "status": status,
                "available_mb": round(available_mb, 2),
                "used_percent": memory.percent,
            }

        except Exception as e:
            logger.warning("memory_health_check_failed", error=str(e))
            return {
                "status": "error",
                "error": str(e),
            }
