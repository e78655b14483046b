from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from drawmark_api.main import app
from drawmark_core.models import Box
from drawmark_core.pdf_parser import FALLBACK_WARNING, SOURCE_ERROR_WARNING
from drawmark_core.state import AppState


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def record_json():
    state = AppState(drawing_image="blob://drawing")
    state.boxes = [
        Box(id=1, x=0, y=0, width=40, height=20, ordinal=1, value="7"),
        Box(id=2, x=50, y=0, width=40, height=20, ordinal=0),
    ]
    return state.to_record().to_json()


def as_dicts(page):
    return [{"text": f.text, "x": f.x, "y": f.y} for f in page]


def test_index_lists_workers(client):
    body = client.get("/").json()
    assert body["workers"] == ["parse"]


def test_parse_endpoint(client, free_page):
    response = client.post("/measurements/parse", json={"pages": [as_dicts(free_page)]})
    assert response.status_code == 200
    body = response.json()
    assert [m["name"] for m in body["measurements"]] == ["平面度1", "直径円16"]
    assert body["measurements"][1]["outOfTolerance"] is True
    assert body["formats"] == ["free"]


def test_parse_without_rows_returns_fallback(client):
    body = client.post("/measurements/parse", json={"pages": []}).json()
    assert body["usedFallback"] is True
    assert body["warning"] == FALLBACK_WARNING
    assert len(body["measurements"]) == 7


def test_parse_rejects_malformed_fragments(client):
    response = client.post("/measurements/parse", json={"pages": [[{"text": "a"}]]})
    assert response.status_code == 422


def test_fallback_table(client):
    rows = client.get("/measurements/fallback").json()
    assert rows[0] == {"name": "平面度1", "value": "0.0392", "unit": "mm", "outOfTolerance": False}


def test_assign_uses_supplied_measurements(client, record_json):
    response = client.post(
        "/workstates/assign",
        json={"record": record_json, "measurements": [{"name": "a", "value": "1.1"}, {"name": "b", "value": "2.2"}]},
    )
    assert response.status_code == 200
    boxes = response.json()["boxes"]
    assert [b["value"] for b in boxes] == ["2.2", "1.1"]
    assert len(response.json()["measurements"]) == 2


def test_assign_rejects_incomplete_measurements(client, record_json):
    for row in ({"name": "a", "value": None}, {"value": "1.1"}):
        response = client.post("/workstates/assign", json={"record": record_json, "measurements": [row]})
        assert response.status_code == 422


def test_assign_accepts_legacy_tolerance_flag(client, record_json):
    rows = [{"name": "a", "value": "1.1", "isOutOfTolerance": True}]
    body = client.post("/workstates/assign", json={"record": record_json, "measurements": rows}).json()
    assert body["measurements"][0]["outOfTolerance"] is True


def test_assign_rejects_invalid_record(client):
    response = client.post("/workstates/assign", json={"record": {"viewTransform": {"scale": -1}}})
    assert response.status_code == 422


def test_renumber(client, record_json):
    boxes = client.post("/workstates/renumber", json=record_json).json()["boxes"]
    assert [(b["id"], b["ordinalIndex"]) for b in boxes] == [(2, 0), (1, 1)]


def test_render_plan(client, record_json):
    response = client.post("/workstates/render-plan", params={"scale": 2}, json=record_json)
    assert response.status_code == 200
    plan = response.json()
    assert [item["kind"] for item in plan] == ["box", "box"]
    assert plan[0]["text"] == "7.00"
    assert client.post("/workstates/render-plan", params={"scale": 0}, json=record_json).status_code == 422


def test_parse_job_streams_progress(client, free_page):
    response = client.post("/jobs/", json={"worker": "parse", "payload": {"pages": [as_dicts(free_page)]}})
    assert response.status_code == 202
    job_id = response.json()["id"]

    with client.stream("GET", f"/jobs/{job_id}/stream") as stream:
        text = "".join(stream.iter_text())
    assert "event: progress" in text
    assert '"state": "completed"' in text

    job = client.get(f"/jobs/{job_id}").json()
    assert job["status"] == "completed"
    assert len(job["result"]["measurements"]) == 2
    assert job["kind"] == "parse" and job["finished_at"] is not None


def test_failed_job_reports_message(client, tmp_path):
    response = client.post("/jobs/", json={"payload": {"path": str(tmp_path / "missing.pdf")}})
    job_id = response.json()["id"]
    with client.stream("GET", f"/jobs/{job_id}/stream") as stream:
        text = "".join(stream.iter_text())
    assert '"state": "failed"' in text
    assert client.get(f"/jobs/{job_id}").json()["error"].startswith("PDF not found")


def test_unreadable_pdf_job_completes_with_fallback(client, tmp_path):
    path = tmp_path / "scan.pdf"
    path.write_bytes(b"not a pdf at all")
    job_id = client.post("/jobs/", json={"payload": {"path": str(path)}}).json()["id"]
    with client.stream("GET", f"/jobs/{job_id}/stream") as stream:
        text = "".join(stream.iter_text())
    assert "event: warning" in text
    job = client.get(f"/jobs/{job_id}").json()
    assert job["status"] == "completed"
    assert job["result"]["usedFallback"] is True
    assert job["result"]["warning"] == SOURCE_ERROR_WARNING


def test_unknown_worker_and_job(client):
    assert client.post("/jobs/", json={"worker": "ocr"}).status_code == 404
    assert client.get("/jobs/does-not-exist").status_code == 404
    assert client.get("/jobs/does-not-exist/stream").status_code == 404
