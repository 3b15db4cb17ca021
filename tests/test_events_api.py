from __future__ import annotations

import uuid

from fastapi.testclient import TestClient

from eventhub.main import app
from eventhub.services.exceptions import StorageError
from eventhub.storage import LocalStorageAdapter, get_storage
from tests.utils import auth_headers, event_form, png_file

CREATOR = "creator@example.com"


def _create(client: TestClient, email: str = CREATOR, files=None, **overrides):
    return client.post(
        "/api/events",
        data=event_form(**overrides),
        files=files,
        headers=auth_headers(email),
    )


def test_create_requires_auth(client: TestClient):
    resp = client.post("/api/events", data=event_form())
    assert resp.status_code == 401
    assert resp.headers["WWW-Authenticate"] == "Bearer"


def test_create_returns_201_with_resolved_event(client: TestClient):
    resp = _create(client)

    assert resp.status_code == 201
    body = resp.json()
    assert body["title"] == "Rooftop Jazz Night"
    assert body["maxAttendees"] == 10
    assert body["attendees"] == []
    assert body["imageUrl"] is None
    assert body["creator"]["email"] == CREATOR
    assert set(body["creator"]) == {"id", "name", "email"}
    assert body["date"].startswith("2030-06-01T19:00:00")


def test_create_with_image_serves_it_from_media(client: TestClient):
    resp = _create(client, files={"image": png_file()})

    assert resp.status_code == 201
    image_url = resp.json()["imageUrl"]
    assert image_url.startswith("/media/events/")

    media = client.get(image_url)
    assert media.status_code == 200
    assert media.content.startswith(b"\x89PNG")


def test_create_validates_fields(client: TestClient):
    assert _create(client, maxAttendees=0).status_code == 422
    assert _create(client, date="not-a-date").status_code == 422
    assert _create(client, title="   ").status_code == 422


def test_create_rejects_non_image_upload(client: TestClient):
    resp = _create(client, files={"image": ("notes.txt", b"hello", "text/plain")})

    assert resp.status_code == 422
    assert resp.json()["detail"]["code"] == "INVALID_IMAGE"


def test_create_storage_failure_is_generic_server_error(tmp_path):
    class BrokenStorage(LocalStorageAdapter):
        def put_file(self, key, fileobj, content_type=None) -> str:
            raise StorageError("bucket unavailable")

    app.dependency_overrides[get_storage] = lambda: BrokenStorage(tmp_path / "media")
    try:
        with TestClient(app, raise_server_exceptions=False) as client:
            resp = _create(client, files={"image": png_file()})
            listing = client.get("/api/events").json()
    finally:
        app.dependency_overrides.pop(get_storage, None)

    assert resp.status_code == 500
    assert resp.json() == {"detail": {"code": "SERVER_ERROR", "message": "Server error"}}
    assert listing["pagination"]["totalEvents"] == 0


def test_get_one_and_not_found(client: TestClient):
    event_id = _create(client).json()["id"]

    assert client.get(f"/api/events/{event_id}").json()["id"] == event_id

    missing = client.get(f"/api/events/{uuid.uuid4()}")
    assert missing.status_code == 404
    assert missing.json()["detail"]["code"] == "EVENT_NOT_FOUND"


def test_list_shape_and_defaults(client: TestClient):
    for i in range(10):
        _create(client, title=f"Event {i}", date=f"2030-01-{i + 1:02d}T10:00:00Z")

    body = client.get("/api/events").json()

    assert len(body["events"]) == 9
    assert body["pagination"] == {
        "currentPage": 1,
        "totalPages": 2,
        "totalEvents": 10,
        "hasNextPage": True,
        "hasPrevPage": False,
    }
    assert body["events"][0]["title"] == "Event 0"


def test_list_filters_by_category_and_date(client: TestClient):
    _create(client, title="Old gig", category="music", date="2029-01-01T10:00:00Z")
    _create(client, title="New gig", category="music", date="2031-01-01T10:00:00Z")
    _create(client, title="New match", category="sport", date="2031-01-01T10:00:00Z")

    body = client.get("/api/events", params={"category": "music", "date": "2030-01-01"}).json()

    assert [e["title"] for e in body["events"]] == ["New gig"]


def test_list_rejects_bad_paging(client: TestClient):
    assert client.get("/api/events", params={"page": 0}).status_code == 422
    assert client.get("/api/events", params={"limit": 0}).status_code == 422


def test_list_caps_page_size(client: TestClient):
    for i in range(3):
        _create(client, title=f"Event {i}")

    body = client.get("/api/events", params={"limit": 10_000}).json()

    assert body["pagination"]["totalPages"] == 1
    assert len(body["events"]) == 3


def test_search_endpoint(client: TestClient):
    _create(client, title="Python Meetup", location="Berlin")
    _create(client, title="Python Sprint", location="Paris")

    resp = client.get("/api/events/search", params={"search": "python", "location": "BERLIN"})

    assert resp.status_code == 200
    assert [e["title"] for e in resp.json()] == ["Python Meetup"]


def test_update_by_non_creator_is_401(client: TestClient):
    event_id = _create(client).json()["id"]

    resp = client.put(
        f"/api/events/{event_id}",
        data={"title": "Hijacked"},
        headers=auth_headers("stranger@example.com"),
    )

    assert resp.status_code == 401
    assert resp.json()["detail"]["code"] == "NOT_EVENT_CREATOR"
    assert client.get(f"/api/events/{event_id}").json()["title"] == "Rooftop Jazz Night"


def test_update_by_creator_with_new_image(client: TestClient):
    created = _create(client, files={"image": png_file("old.png")}).json()

    resp = client.put(
        f"/api/events/{created['id']}",
        data={"title": "Renamed", "maxAttendees": "20"},
        files={"image": png_file("new.png", b"\x89PNGnew")},
        headers=auth_headers(CREATOR),
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["title"] == "Renamed"
    assert body["maxAttendees"] == 20
    assert body["location"] == created["location"]
    assert body["imageUrl"] != created["imageUrl"]
    assert client.get(created["imageUrl"]).status_code == 404


def test_update_missing_event_is_404(client: TestClient):
    resp = client.put(
        f"/api/events/{uuid.uuid4()}",
        data={"title": "x"},
        headers=auth_headers(CREATOR),
    )
    assert resp.status_code == 404


def test_delete_flow(client: TestClient):
    event_id = _create(client).json()["id"]

    forbidden = client.delete(f"/api/events/{event_id}", headers=auth_headers("stranger@example.com"))
    assert forbidden.status_code == 401

    resp = client.delete(f"/api/events/{event_id}", headers=auth_headers(CREATOR))
    assert resp.status_code == 200
    assert resp.json() == {"message": "Event removed"}

    assert client.get(f"/api/events/{event_id}").status_code == 404
    assert client.delete(f"/api/events/{event_id}", headers=auth_headers(CREATOR)).status_code == 404


def test_join_and_leave_flow(client: TestClient):
    event_id = _create(client, maxAttendees=1).json()["id"]

    joined = client.post(f"/api/events/{event_id}/join", headers=auth_headers("a@example.com"))
    assert joined.status_code == 200
    assert [u["email"] for u in joined.json()["attendees"]] == ["a@example.com"]

    again = client.post(f"/api/events/{event_id}/join", headers=auth_headers("a@example.com"))
    assert again.status_code == 400
    assert again.json()["detail"] == {"code": "ALREADY_JOINED", "message": "Already joined"}

    full = client.post(f"/api/events/{event_id}/join", headers=auth_headers("b@example.com"))
    assert full.status_code == 400
    assert full.json()["detail"]["code"] == "EVENT_FULL"

    not_member = client.post(f"/api/events/{event_id}/leave", headers=auth_headers("b@example.com"))
    assert not_member.status_code == 400
    assert not_member.json()["detail"]["code"] == "NOT_JOINED"

    left = client.post(f"/api/events/{event_id}/leave", headers=auth_headers("a@example.com"))
    assert left.status_code == 200
    assert left.json()["attendees"] == []


def test_join_missing_event_is_404(client: TestClient):
    resp = client.post(f"/api/events/{uuid.uuid4()}/join", headers=auth_headers("a@example.com"))
    assert resp.status_code == 404


def test_health_and_request_id(client: TestClient):
    resp = client.get("/health", headers={"X-Request-ID": "abc-123"})

    assert resp.json() == {"status": "ok"}
    assert resp.headers["X-Request-ID"] == "abc-123"


def test_update_rejects_blank_text_fields(client: TestClient):
    event_id = _create(client).json()["id"]

    resp = client.put(
        f"/api/events/{event_id}",
        data={"title": "   ", "location": "  "},
        headers=auth_headers(CREATOR),
    )

    assert resp.status_code == 422
    body = client.get(f"/api/events/{event_id}").json()
    assert body["title"] == "Rooftop Jazz Night"
    assert body["location"] == "Berlin"


def test_leave_missing_event_is_404(client: TestClient):
    resp = client.post(f"/api/events/{uuid.uuid4()}/leave", headers=auth_headers("a@example.com"))

    assert resp.status_code == 404
    assert resp.json()["detail"]["code"] == "EVENT_NOT_FOUND"
