from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, AsyncIterator, Dict

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from . import __version__
from . import places_proxy
from .config import Settings
from .errors import ConfigError, PlacesAPIError
from .logging_utils import configure_logging, log_event, new_correlation_id, set_correlation_id
from .places_client import PlacesClient
from .store import DocumentStore, InMemoryDocumentStore
from .trigger import handle_document_created

# ------------------------------------------------------------------------------
# APP + LOGGING SETUP
# ------------------------------------------------------------------------------

configure_logging()
logger = logging.getLogger("tripintel.api")

app = FastAPI(title="trip-intel", version=__version__)


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()


_default_store = InMemoryDocumentStore()


def get_store() -> DocumentStore:
    # Deployments override this dependency with their document database
    return _default_store


async def get_places_client(settings: Settings = Depends(get_settings)) -> AsyncIterator[PlacesClient]:
    async with PlacesClient(
        settings.places_api_key, settings.places_base_url, timeout=settings.http_timeout
    ) as client:
        yield client


# ------------------------------------------------------------------------------
# REQUEST MODELS
# ------------------------------------------------------------------------------


class TextInput(BaseModel):
    input: str = Field(..., min_length=1)


class PlaceIdInput(BaseModel):
    placeId: str = Field(..., min_length=1)


class PhotosInput(PlaceIdInput):
    maxPhotos: int = Field(20, ge=1, le=50)
    maxWidth: int = Field(800, ge=16, le=4800)


# ------------------------------------------------------------------------------
# REQUEST LOGGING MIDDLEWARE (Loki-ready)
# ------------------------------------------------------------------------------


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    rid = new_correlation_id("req-")
    start = time.time()

    log_event(
        logger,
        "http_request_started",
        method=request.method,
        path=request.url.path,
        client_ip=request.client.host if request.client else None,
        request_id=rid,
    )

    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        return response
    finally:
        log_event(
            logger,
            "http_request_finished",
            method=request.method,
            path=request.url.path,
            status_code=status_code,
            duration_ms=int((time.time() - start) * 1000),
            request_id=rid,
        )
        set_correlation_id(None)


@app.exception_handler(PlacesAPIError)
async def places_error_handler(request: Request, exc: PlacesAPIError) -> JSONResponse:
    log_event(logger, "places_upstream_error", level=logging.ERROR, path=request.url.path, status=exc.status, error=str(exc))
    return JSONResponse(status_code=502, content={"detail": f"Places request failed: {exc}"})


@app.exception_handler(ConfigError)
async def config_error_handler(request: Request, exc: ConfigError) -> JSONResponse:
    log_event(logger, "config_error", level=logging.ERROR, path=request.url.path, error=str(exc))
    return JSONResponse(status_code=503, content={"detail": str(exc)})


# ------------------------------------------------------------------------------
# ROUTES
# ------------------------------------------------------------------------------


@app.get("/health")
async def health() -> Dict[str, Any]:
    return {
        "status": "ok",
        "version": app.version,
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
    }


@app.post("/places/search-destinations")
async def search_destinations(body: TextInput, client: PlacesClient = Depends(get_places_client)) -> Dict[str, Any]:
    return await places_proxy.search_destinations(client, body.input.strip())


@app.post("/places/photos")
async def place_photos(body: PhotosInput, client: PlacesClient = Depends(get_places_client)) -> Dict[str, Any]:
    return await places_proxy.get_place_photos(client, body.placeId, body.maxPhotos, body.maxWidth)


@app.post("/places/details")
async def place_details(body: PlaceIdInput, client: PlacesClient = Depends(get_places_client)) -> Dict[str, Any]:
    return await places_proxy.get_place_details(client, body.placeId)


@app.post("/places/autocomplete")
async def autocomplete(body: TextInput, client: PlacesClient = Depends(get_places_client)) -> Dict[str, Any]:
    return await places_proxy.get_autocomplete_suggestions(client, body.input.strip())


@app.post("/events/document-created")
async def document_created(
    request: Request,
    settings: Settings = Depends(get_settings),
    store: DocumentStore = Depends(get_store),
) -> Dict[str, Any]:
    """Trigger endpoint for the host; always 200 so the scheduler does not retry-storm."""
    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(400, "Event body must be JSON")
    if not isinstance(payload, dict):
        raise HTTPException(400, "Event body must be a JSON object")

    outcome = await handle_document_created(payload, settings, store)
    return outcome.model_dump()


if __name__ == "__main__":
    import os

    import uvicorn

    uvicorn.run(
        app,
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8080")),
        log_level="info",
        access_log=False,
    )
