"""Integration tests for the HTTP surface: places proxy routes and the event endpoint."""

from typing import Any, Dict, List
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from trip_intel.api import app, get_places_client, get_settings, get_store
from trip_intel.config import Settings
from trip_intel.errors import PlacesAPIError
from trip_intel.models import IngestOutcome
from trip_intel.store import InMemoryDocumentStore


class StubPlacesClient:
    def __init__(self) -> None:
        self.autocomplete_inputs: List[str] = []
        self.fail_with: Exception = None

    async def autocomplete(self, text: str) -> Dict[str, Any]:
        self.autocomplete_inputs.append(text)
        if self.fail_with:
            raise self.fail_with
        return {"suggestions": [{"placePrediction": {"placeId": "goa", "text": {"text": "Goa, India"}}}]}

    async def details(self, place_id: str, field_mask: str = "") -> Dict[str, Any]:
        if self.fail_with:
            raise self.fail_with
        return {"id": place_id, "displayName": {"text": "Goa"}, "rating": 4.5}

    async def photo_names(self, place_id: str) -> List[str]:
        return ["places/goa/photos/1"]

    async def location(self, place_id: str) -> Dict[str, float]:
        return {"latitude": 15.3, "longitude": 74.1}

    async def search_nearby(self, latitude: float, longitude: float, **kwargs) -> List[Dict[str, Any]]:
        return [{"photos": [{"name": "places/beach/photos/9"}]}]

    def photo_url(self, name: str, max_width: int) -> str:
        return f"https://places.test/{name}/media?maxWidthPx={max_width}"


@pytest.fixture
def places() -> StubPlacesClient:
    return StubPlacesClient()


@pytest.fixture
def api_store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def client(places: StubPlacesClient, api_store: InMemoryDocumentStore):
    app.dependency_overrides[get_settings] = lambda: Settings(places_api_key="test-key")
    app.dependency_overrides[get_places_client] = lambda: places
    app.dependency_overrides[get_store] = lambda: api_store
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def test_health(client: TestClient) -> None:
    resp = client.get("/health")

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "ok"
    assert body["timestamp"].endswith("Z")


def test_autocomplete_passes_through(client: TestClient, places: StubPlacesClient) -> None:
    resp = client.post("/places/autocomplete", json={"input": "  goa "})

    assert resp.status_code == 200
    assert resp.json()["suggestions"][0]["placePrediction"]["placeId"] == "goa"
    assert places.autocomplete_inputs == ["goa"]


def test_search_destinations_adds_photo_urls(client: TestClient) -> None:
    resp = client.post("/places/search-destinations", json={"input": "goa"})

    assert resp.status_code == 200
    [place] = resp.json()["places"]
    assert place["id"] == "goa"
    assert place["photoUrls"] == ["https://places.test/places/goa/photos/1/media?maxWidthPx=200"]


def test_photos_tops_up_from_nearby(client: TestClient) -> None:
    resp = client.post("/places/photos", json={"placeId": "goa", "maxPhotos": 2, "maxWidth": 640})

    assert resp.status_code == 200
    assert resp.json()["photos"] == [
        "https://places.test/places/goa/photos/1/media?maxWidthPx=640",
        "https://places.test/places/beach/photos/9/media?maxWidthPx=640",
    ]


def test_details(client: TestClient) -> None:
    resp = client.post("/places/details", json={"placeId": "goa"})

    assert resp.status_code == 200
    assert resp.json()["place"]["rating"] == 4.5


@pytest.mark.parametrize(
    "path,body",
    [
        ("/places/autocomplete", {"input": ""}),
        ("/places/autocomplete", {}),
        ("/places/details", {"placeId": ""}),
        ("/places/photos", {"placeId": "goa", "maxPhotos": 0}),
    ],
)
def test_invalid_input_is_422(client: TestClient, path: str, body: dict) -> None:
    assert client.post(path, json=body).status_code == 422


def test_upstream_failure_is_502(client: TestClient, places: StubPlacesClient) -> None:
    places.fail_with = PlacesAPIError("PERMISSION_DENIED", status=403)

    resp = client.post("/places/details", json={"placeId": "goa"})

    assert resp.status_code == 502
    assert "PERMISSION_DENIED" in resp.json()["detail"]


def test_document_created_event_runs_ingest(client: TestClient, api_store: InMemoryDocumentStore) -> None:
    payload = {"params": {"tripId": "t1", "documentId": "d1"}, "data": {"original_file_name": "visa.png"}}
    outcome = IngestOutcome(trip_id="t1", document_id="d1", state="done", label="visa", committed=True)
    handler = AsyncMock(return_value=outcome)

    with patch("trip_intel.api.handle_document_created", new=handler):
        resp = client.post("/events/document-created", json=payload)

    assert resp.status_code == 200
    assert resp.json()["label"] == "visa"
    args = handler.await_args.args
    assert args[0] == payload
    assert args[2] is api_store


def test_document_created_rejects_non_object(client: TestClient) -> None:
    assert client.post("/events/document-created", json=[1, 2]).status_code == 400
    assert client.post(
        "/events/document-created", content=b"not json", headers={"content-type": "application/json"}
    ).status_code == 400
