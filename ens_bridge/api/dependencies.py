"""FastAPI dependencies resolving the components owned by the app."""
from fastapi import Request
from ..adapters.base import EventStore
from ..health import HealthChecker
from ..services.pipeline import IngestionPipeline


def get_pipeline(request: Request) -> IngestionPipeline:
    return request.app.state.pipeline


def get_store(request: Request) -> EventStore:
    return request.app.state.store


def get_health_checker(request: Request) -> HealthChecker:
    return request.app.state.health_checker
