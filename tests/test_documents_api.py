from __future__ import annotations

import asyncio

from tripdochub.modules.extraction.repair import AIRPORT_ADDRESSES

FLIGHT = {
    "category": "flight",
    "documentType": "Boarding Pass",
    "title": "TLV to BUD",
    "details": {
        "departureAirport": "TLV",
        "arrivalAirport": "BUD",
        "phoneNumber": "00972 3 123 4567",
        "emailAddress": "mailto:help@elal.example",
    },
    "documentDate": "2026-05-10T06:00:00Z",
}
HOTEL = {
    "category": "accommodation",
    "title": "Hotel Gellert",
    "details": {"address": "Szent Gellert ter 1, Budapest"},
    "documentDate": "2026-09-01",
}


def _upload(client, headers, body=b"%PDF-1.7 boarding pass", name="pass.pdf", **form):
    return client.post(
        "/api/documents/upload",
        files={"upload": (name, body, "application/pdf")},
        data=form,
        headers=headers,
    )


def _trip(client, headers) -> dict:
    return client.post(
        "/api/trips",
        json={"name": "Budapest", "start_date": "2026-05-10", "end_date": "2026-05-15"},
        headers=headers,
    ).json()


def test_upload_extracts_and_auto_assigns(client, make_user, fake_oracle):
    fake_oracle.documents = [FLIGHT]
    _, headers = make_user()
    trip = _trip(client, headers)

    r = _upload(client, headers)

    assert r.status_code == 200, r.text
    out = r.json()
    assert out["status"] == "created"
    assert out["auto_assigned_trip_id"] == trip["id"]
    assert out["auto_assigned_trip_name"] == "Budapest"
    [doc] = out["documents"]
    assert doc["category"] == "flight"
    assert doc["trip_id"] == trip["id"]
    assert doc["original_file_name"] == "pass.pdf"
    assert doc["actions"] == {
        "navigate": AIRPORT_ADDRESSES["BUD"],
        "call": "+972 3 123 4567",
        "email": "help@elal.example",
    }

    file_r = client.get(doc["original_file_url"].removeprefix("http://localhost:8000"))
    assert file_r.content == b"%PDF-1.7 boarding pass"
    assert client.get("/api/credits", headers=headers).json()["credits"] == 19


def test_reupload_is_reported_as_duplicate(client, make_user, fake_oracle):
    fake_oracle.documents = [FLIGHT]
    _, headers = make_user()

    first = _upload(client, headers).json()
    second = _upload(client, headers, name="copy-of-pass.pdf").json()

    assert first["status"] == "created"
    assert second["status"] == "duplicate"
    assert second["documents"] == []
    assert client.get("/api/credits", headers=headers).json()["credits"] == 19


def test_upload_into_chosen_trip(client, make_user, fake_oracle):
    fake_oracle.documents = [HOTEL]
    _, headers = make_user()
    trip = _trip(client, headers)

    out = _upload(client, headers, trip_id=trip["id"], source="camera").json()

    assert out["auto_assigned_trip_id"] is None
    assert out["documents"][0]["trip_id"] == trip["id"]
    assert out["documents"][0]["source"] == "camera"


def test_upload_rejections(client, make_user, fake_oracle):
    _, headers = make_user()
    _, broke = make_user("broke@example.com", credits=0)

    assert _upload(client, headers, body=b"").status_code == 400
    assert _upload(client, broke).status_code == 402
    assert fake_oracle.calls == []


def test_ingest_by_url(client, make_user, fake_oracle):
    fake_oracle.documents = [HOTEL]
    _, headers = make_user()

    r = client.post(
        "/api/documents/ingest-url",
        json={"file_url": "https://cdn.example/hotel.jpg", "mime_type": "image/jpeg"},
        headers=headers,
    )

    assert r.status_code == 200
    assert r.json()["needs_manual_assignment"] is True
    assert fake_oracle.calls[0][1]["image_url"]["url"] == "https://cdn.example/hotel.jpg"


def test_inbox_read_assign_and_counts(client, make_user, fake_oracle):
    fake_oracle.documents = [HOTEL]
    _, headers = make_user()
    trip = _trip(client, headers)
    doc_id = _upload(client, headers).json()["created_document_ids"][0]

    inbox = client.get("/api/documents/inbox", headers=headers).json()
    assert [d["id"] for d in inbox] == [doc_id]
    assert inbox[0]["is_read"] is False
    assert inbox[0]["actions"]["navigate"] == "Szent Gellert ter 1, Budapest"

    counts = client.get("/api/documents/counts", headers=headers).json()
    assert counts == {"inbox": 1, "unread": 1, "by_trip": {}}

    assert client.get(f"/api/documents/{doc_id}", headers=headers).json()["is_read"] is True

    r = client.put(f"/api/documents/{doc_id}/trip", json={"trip_id": trip["id"]}, headers=headers)
    assert r.json()["trip_id"] == trip["id"]
    assert client.get("/api/documents/inbox", headers=headers).json() == []
    trip_docs = client.get(f"/api/trips/{trip['id']}/documents", headers=headers).json()
    assert [d["id"] for d in trip_docs] == [doc_id]
    assert client.get("/api/documents/counts", headers=headers).json() == {
        "inbox": 0,
        "unread": 0,
        "by_trip": {trip["id"]: 1},
    }

    r = client.put(f"/api/documents/{doc_id}/trip", json={"trip_id": None}, headers=headers)
    assert r.json()["trip_id"] is None


def test_cannot_assign_to_someone_elses_trip(client, make_user, fake_oracle):
    fake_oracle.documents = [HOTEL]
    _, alice = make_user("alice@example.com")
    _, bob = make_user("bob@example.com")
    bobs_trip = _trip(client, bob)
    doc_id = _upload(client, alice).json()["created_document_ids"][0]

    r = client.put(
        f"/api/documents/{doc_id}/trip", json={"trip_id": bobs_trip["id"]}, headers=alice
    )

    assert r.status_code == 404
    assert client.get(f"/api/documents/{doc_id}", headers=bob).status_code == 404


def test_delete_document_removes_stored_file(client, make_user, fake_oracle):
    fake_oracle.documents = [HOTEL]
    _, headers = make_user()
    doc = _upload(client, headers).json()["documents"][0]
    file_path = doc["original_file_url"].removeprefix("http://localhost:8000")

    assert client.delete(f"/api/documents/{doc['id']}", headers=headers).status_code == 204

    assert client.get(f"/api/documents/{doc['id']}", headers=headers).status_code == 404
    assert client.get(file_path).status_code == 404


def test_split_documents_share_the_stored_file(client, make_user, fake_oracle):
    fake_oracle.documents = [FLIGHT, HOTEL]
    _, headers = make_user()
    first, second = _upload(client, headers).json()["documents"]
    file_path = first["original_file_url"].removeprefix("http://localhost:8000")

    client.delete(f"/api/documents/{first['id']}", headers=headers)
    assert client.get(file_path).status_code == 200

    client.delete(f"/api/documents/{second['id']}", headers=headers)
    assert client.get(file_path).status_code == 404


def test_extraction_runs_off_the_event_loop(client, make_user, fake_oracle, monkeypatch):
    fake_oracle.documents = [HOTEL]
    _, headers = make_user()
    loops: list[bool] = []
    complete = fake_oracle.complete

    def complete_and_record(content):
        try:
            asyncio.get_running_loop()
            loops.append(True)
        except RuntimeError:
            loops.append(False)
        return complete(content)

    monkeypatch.setattr(fake_oracle, "complete", complete_and_record)

    assert _upload(client, headers).status_code == 200
    assert loops == [False]


def test_clients_cannot_claim_email_source(client, make_user, fake_oracle):
    _, headers = make_user()

    uploaded = _upload(client, headers, source="email")
    by_url = client.post(
        "/api/documents/ingest-url",
        json={
            "file_url": "https://cdn.example/a.jpg",
            "mime_type": "image/jpeg",
            "source": "email",
        },
        headers=headers,
    )

    assert uploaded.status_code == 422
    assert by_url.status_code == 422
    assert fake_oracle.calls == []
