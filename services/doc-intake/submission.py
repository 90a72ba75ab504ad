"""HTTP client for the downstream automation webhook.

One call forwards one DocumentRecord, optionally with its source file.
There is no partial success: anything but a 2xx response is a failure.
"""

import json
import logging
from datetime import datetime, timezone

import httpx

from config import settings
from errors import ConfigurationError, SubmissionError
from models import DocumentRecord, InputFile

logger = logging.getLogger(__name__)


class SubmissionClient:
    """Posts confirmed records to the fixed, pre-configured webhook URL."""

    def __init__(
        self,
        url: str | None = None,
        source: str | None = None,
        include_file: bool | None = None,
        timeout: int | None = None,
    ):
        self._url = url if url is not None else settings.WEBHOOK_URL
        self._source = source if source is not None else settings.WEBHOOK_SOURCE
        self._include_file = include_file if include_file is not None else settings.WEBHOOK_INCLUDE_FILE

        read_timeout = timeout if timeout is not None else settings.WEBHOOK_TIMEOUT_SECONDS
        self._client = httpx.AsyncClient(timeout=httpx.Timeout(float(read_timeout), connect=10.0))

    @property
    def configured(self) -> bool:
        return bool(self._url)

    async def aclose(self):
        await self._client.aclose()

    def build_payload(
        self,
        record: DocumentRecord,
        file: InputFile | None = None,
        mode: str = "single",
    ) -> dict:
        """Webhook body: every record field plus delivery metadata."""
        payload = record.to_payload()
        payload.update({
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "source": self._source,
            "mode": mode,
        })
        if file is not None:
            payload.update({
                "file_name": file.name,
                "file_size": file.size,
                "file_type": file.media_type,
            })
        return payload

    async def submit(
        self,
        record: DocumentRecord,
        file: InputFile | None = None,
        *,
        mode: str = "single",
    ) -> None:
        """Send one record. Raises SubmissionError on any failure."""
        if not self._url:
            raise ConfigurationError("WEBHOOK_URL is not configured")

        payload = self.build_payload(record, file, mode)

        try:
            if file is not None and self._include_file:
                resp = await self._client.post(
                    self._url,
                    data={"data": json.dumps(payload, ensure_ascii=False)},
                    files={"file": (file.name, file.content, file.media_type or "application/octet-stream")},
                )
            else:
                resp = await self._client.post(self._url, json=payload)
        except httpx.HTTPError as e:
            logger.error("Webhook unreachable: %s", e)
            raise SubmissionError(f"Webhook unreachable: {e}") from e

        if not 200 <= resp.status_code < 300:
            logger.error("Webhook returned %d: %s", resp.status_code, resp.text[:200])
            raise SubmissionError(f"Webhook returned HTTP {resp.status_code}")

        logger.info(
            "Submitted %s %s (%s) to webhook",
            record.document_type.value,
            record.document_number or "-",
            mode,
        )
