from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from fastapi.responses import PlainTextResponse
import structlog
from .dependencies import get_pipeline, get_store
from .schemas import EventListResponse
from ..adapters.base import EventStore
from ..services.pipeline import IngestionPipeline

log = structlog.get_logger()

router = APIRouter()


@router.get("/api/events", response_model=EventListResponse)
async def list_events(
    event_type: str | None = Query(default=None, alias="type", description="Event type to filter by, or 'all'"),
    store: EventStore = Depends(get_store),
):
    events = await store.query(event_type)
    log.debug("events.listed", filter=event_type or "all", total=store.count(), matched=len(events))
    return EventListResponse(total=len(events), events=events)


@router.post("/ens/callback", response_class=PlainTextResponse)
async def ens_callback(
    request: Request,
    background_tasks: BackgroundTasks,
    pipeline: IngestionPipeline = Depends(get_pipeline),
):
    """
    Marketing Cloud ENS callback.

    Always answers 200: ENS treats any other status as a delivery failure
    and backs off or suspends the callback. Events are processed after the
    response has been sent.
    """
    raw_body = await request.body()
    ack = pipeline.handle_raw(raw_body, request.headers)
    if ack.accepted:
        background_tasks.add_task(pipeline.process_batch, ack.payload)
    return PlainTextResponse(ack.message, status_code=200)
