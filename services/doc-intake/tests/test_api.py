"""Tests for the FastAPI surface, with fake extraction and submission."""

import httpx
import pytest
from httpx import ASGITransport

import main
from conftest import FakeClock, FakeExtractor, FakeSubmitter
from errors import ExtractionError
from workflow import ReviewWorkflow


@pytest.fixture
def workflow(monkeypatch) -> ReviewWorkflow:
    clock = FakeClock()
    wf = ReviewWorkflow(
        FakeExtractor({"bad.jpg": ExtractionError("blurry")}),
        FakeSubmitter(clock),
        submission_delay=2.0,
        success_delay=0.01,
        sleep=clock.sleep,
    )
    monkeypatch.setattr(main, "_workflow", wf)
    return wf


@pytest.fixture
async def client(workflow):
    transport = ASGITransport(app=main.app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


def _upload(*names: str, media_type: str = "image/jpeg"):
    return [("files", (name, b"fake-bytes-" + name.encode(), media_type)) for name in names]


class TestUpload:
    async def test_single_upload_enters_review(self, client: httpx.AsyncClient):
        resp = await client.post("/api/v1/documents", files=_upload("a.jpg"))

        assert resp.status_code == 200
        body = resp.json()
        assert body["mode"] == "review_single"
        assert body["single"]["file_name"] == "a.jpg"
        assert body["single"]["record"]["document_number"] == "a.jpg"

    async def test_multi_upload_enters_batch(self, client: httpx.AsyncClient):
        resp = await client.post("/api/v1/documents", files=_upload("a.jpg", "b.jpg"))

        body = resp.json()
        assert body["mode"] == "review_batch"
        assert [i["file_name"] for i in body["items"]] == ["a.jpg", "b.jpg"]

    async def test_unsupported_type_rejected(self, client: httpx.AsyncClient):
        resp = await client.post("/api/v1/documents", files=_upload("notes.txt", media_type="text/plain"))
        assert resp.status_code == 415

    async def test_pdf_guessed_from_extension(self, client: httpx.AsyncClient):
        resp = await client.post(
            "/api/v1/documents", files=_upload("f.pdf", media_type="application/octet-stream"),
        )
        assert resp.status_code == 200
        assert resp.json()["single"]["media_type"] == "application/pdf"

    async def test_empty_file_rejected(self, client: httpx.AsyncClient):
        resp = await client.post("/api/v1/documents", files=[("files", ("a.jpg", b"", "image/jpeg"))])
        assert resp.status_code == 400

    async def test_failed_extraction_reports_error(self, client: httpx.AsyncClient):
        resp = await client.post("/api/v1/documents", files=_upload("bad.jpg"))
        body = resp.json()
        assert body["mode"] == "error"
        assert body["error"]


class TestPreviews:
    async def test_preview_served_until_released(self, client: httpx.AsyncClient):
        body = (await client.post("/api/v1/documents", files=_upload("a.jpg"))).json()
        url = body["single"]["preview_url"]

        resp = await client.get(url)
        assert resp.status_code == 200
        assert resp.content == b"fake-bytes-a.jpg"
        assert resp.headers["content-type"] == "image/jpeg"

        await client.post("/api/v1/discard")
        assert (await client.get(url)).status_code == 404


class TestReviewActions:
    async def test_remove_batch_item(self, client: httpx.AsyncClient):
        body = (await client.post("/api/v1/documents", files=_upload("a.jpg", "b.jpg"))).json()
        item_id = body["items"][0]["id"]

        resp = await client.delete(f"/api/v1/batch/{item_id}")
        assert resp.status_code == 200
        assert [i["file_name"] for i in resp.json()["items"]] == ["b.jpg"]

    async def test_remove_unknown_item_404(self, client: httpx.AsyncClient):
        await client.post("/api/v1/documents", files=_upload("a.jpg", "b.jpg"))
        resp = await client.delete("/api/v1/batch/missing")
        assert resp.status_code == 404

    async def test_invalid_transition_409(self, client: httpx.AsyncClient):
        resp = await client.post("/api/v1/confirm")
        assert resp.status_code == 409

    async def test_confirm_single(self, client: httpx.AsyncClient, workflow: ReviewWorkflow):
        await client.post("/api/v1/documents", files=_upload("a.jpg"))
        resp = await client.post("/api/v1/confirm")
        assert resp.json()["mode"] == "success"

    async def test_retry_after_error(self, client: httpx.AsyncClient, workflow: ReviewWorkflow):
        await client.post("/api/v1/documents", files=_upload("bad.jpg"))
        resp = await client.post("/api/v1/retry")

        assert resp.json()["mode"] == "idle"
        assert workflow.previews.outstanding == 0

    async def test_add_more(self, client: httpx.AsyncClient):
        await client.post("/api/v1/documents", files=_upload("a.jpg", "b.jpg"))
        resp = await client.post("/api/v1/add-more")
        assert resp.json()["mode"] == "idle"
        assert resp.json()["items"] == []

    async def test_state(self, client: httpx.AsyncClient):
        resp = await client.get("/api/v1/state")
        assert resp.status_code == 200
        assert resp.json()["mode"] == "idle"
        assert resp.json()["progress"] == {"current": 0, "total": 0}


class TestHealth:
    async def test_health_reports_collaborators(self, client: httpx.AsyncClient, monkeypatch):
        monkeypatch.setattr(main, "_extractor", None)
        monkeypatch.setattr(main, "_submitter", FakeSubmitter())

        resp = await client.get("/health")

        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "healthy"
        assert body["mode"] == "idle"
        assert body["extraction_backends"] == {}
        assert body["webhook_configured"] is True
