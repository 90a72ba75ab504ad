"""Tests for the webhook submission client."""

import json
from unittest.mock import patch

import httpx
import pytest

from conftest import make_file, make_record
from errors import ConfigurationError, SubmissionError
from submission import SubmissionClient

WEBHOOK = "https://automation.example.com/webhook/documents"


@pytest.fixture
async def client():
    c = SubmissionClient(url=WEBHOOK, source="test-suite", include_file=False, timeout=5)
    yield c
    await c.aclose()


class TestBuildPayload:
    def test_metadata_added(self, client: SubmissionClient):
        payload = client.build_payload(make_record(), mode="batch")
        assert payload["source"] == "test-suite"
        assert payload["mode"] == "batch"
        assert "timestamp" in payload
        assert "file_name" not in payload

    def test_file_metadata_added(self, client: SubmissionClient):
        payload = client.build_payload(make_record(), make_file("t.jpg", "image/jpeg", b"12345"))
        assert payload["file_name"] == "t.jpg"
        assert payload["file_size"] == 5
        assert payload["file_type"] == "image/jpeg"


class TestSubmit:
    async def test_json_submission(self, client: SubmissionClient):
        with patch.object(client._client, "post", return_value=httpx.Response(200)) as post:
            await client.submit(make_record(), make_file())

        assert post.call_args.args[0] == WEBHOOK
        body = post.call_args.kwargs["json"]
        assert body["document_number"] == "F-1"
        assert body["total_numeric"] == 121.0
        assert body["total"] == "121,00 €"
        assert body["file_name"] == "ticket.jpg"

    async def test_every_record_field_delivered_with_defaults(self, client: SubmissionClient):
        from models import DocumentRecord

        with patch.object(client._client, "post", return_value=httpx.Response(204)) as post:
            await client.submit(DocumentRecord.model_validate({"total": "9,99"}))

        body = post.call_args.kwargs["json"]
        for key in ("document_type", "document_number", "date", "supplier", "concept",
                    "tax_base", "taxes", "total"):
            assert key in body
        assert body["supplier"] == ""
        assert body["total_numeric"] == 9.99

    async def test_multipart_when_file_included(self):
        client = SubmissionClient(url=WEBHOOK, include_file=True)
        with patch.object(client._client, "post", return_value=httpx.Response(200)) as post:
            await client.submit(make_record(), make_file("t.jpg", "image/jpeg", b"bytes"))
        await client.aclose()

        kwargs = post.call_args.kwargs
        assert kwargs["files"]["file"] == ("t.jpg", b"bytes", "image/jpeg")
        assert json.loads(kwargs["data"]["data"])["document_number"] == "F-1"

    async def test_non_success_status_raises(self, client: SubmissionClient):
        with patch.object(client._client, "post", return_value=httpx.Response(500, text="boom")):
            with pytest.raises(SubmissionError, match="500"):
                await client.submit(make_record())

    async def test_unreachable_raises(self, client: SubmissionClient):
        with patch.object(client._client, "post", side_effect=httpx.ConnectError("refused")):
            with pytest.raises(SubmissionError, match="unreachable"):
                await client.submit(make_record())

    async def test_missing_url_is_configuration_error(self):
        client = SubmissionClient(url="")
        with patch.object(client._client, "post") as post:
            with pytest.raises(ConfigurationError):
                await client.submit(make_record())
            post.assert_not_called()
        await client.aclose()
