"""
Prometheus metrics for the ENS bridge.
"""
from prometheus_client import Counter, Histogram, Gauge, Info, CollectorRegistry


class Metrics:
    """
    Centralized metrics for the ENS bridge.

    Each instance owns its registry, so several apps can coexist in one
    process (tests create one app per case).
    """

    def __init__(self, service_name: str = "ens-bridge", version: str = "0.1.0", registry=None):
        self.service_name = service_name
        self.version = version
        self.registry = registry or CollectorRegistry()

        # HTTP Metrics
        self.http_requests_total = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["service", "method", "path", "status"],
            registry=self.registry,
        )

        self.http_request_duration = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["service", "method", "path"],
            registry=self.registry,
        )

        self.http_requests_active = Gauge(
            "http_requests_active",
            "Number of active HTTP requests",
            registry=self.registry,
        )

        # Application Info
        self.app_info = Info(
            "app",
            "Application information",
            registry=self.registry,
        )
        self.app_info.info({"service": service_name, "version": version})

        self.app_up = Gauge(
            "app_up",
            "Application up status (1=up, 0=down)",
            ["service", "version"],
            registry=self.registry,
        )
        self.app_up.labels(service=service_name, version=version).set(1)

        # Business Metrics
        self.webhooks_received_total = Counter(
            "ens_webhooks_received_total",
            "ENS callbacks received, by acknowledgement outcome",
            ["outcome"],
            registry=self.registry,
        )

        self.events_processed_total = Counter(
            "ens_events_processed_total",
            "ENS events processed",
            ["event_type", "status"],
            registry=self.registry,
        )

        self.events_in_memory = Gauge(
            "ens_events_in_memory",
            "Number of events held in the in-memory store",
            registry=self.registry,
        )

        self.credential_refresh_total = Counter(
            "ens_credential_refresh_total",
            "Salesforce token exchanges",
            ["outcome"],
            registry=self.registry,
        )

        self.sink_latency = Histogram(
            "ens_sink_latency_seconds",
            "Salesforce record creation latency in seconds",
            registry=self.registry,
        )

    def record_webhook(self, outcome: str):
        self.webhooks_received_total.labels(outcome=outcome).inc()

    def record_event_processed(self, event_type: str, status: str):
        self.events_processed_total.labels(event_type=event_type, status=status).inc()

    def set_events_in_memory(self, count: int):
        self.events_in_memory.set(count)
