"""Dashboard view over the in-memory event store."""
from functools import lru_cache
from pathlib import Path
from fastapi import APIRouter
from fastapi.responses import HTMLResponse, RedirectResponse

router = APIRouter(tags=["dashboard"])

TEMPLATE_PATH = Path(__file__).resolve().parent.parent / "templates" / "dashboard.html"

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


@lru_cache(maxsize=1)
def load_dashboard() -> str:
    return TEMPLATE_PATH.read_text(encoding="utf-8")


@router.get("/", include_in_schema=False)
async def root():
    return RedirectResponse(url="/dashboard")


@router.get("/dashboard", response_class=HTMLResponse)
async def dashboard():
    """Polling dashboard; never cached so the latest markup is always served."""
    return HTMLResponse(load_dashboard(), headers=NO_CACHE_HEADERS)
