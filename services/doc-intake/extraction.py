"""Extraction client — prepare input, call vision backends in order, normalize.

The backend chain is an ordered list of vendor/model configurations. The
first backend that returns a parseable JSON object wins; a failing backend
only advances the chain. Configuration and input-type problems are raised
before any network call.
"""

import asyncio
import json
import logging
import re
import time

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_none

from backends import VisionBackend, build_backend, parse_backend_chain
from config import settings
from errors import ConfigurationError, ExtractionError, UnsupportedInputError
from models import DocumentRecord, InputFile
from preprocessing import RenderError, prepare_image, rasterize_first_page
from prompts import EXTRACTION_PROMPT, RESPONSE_FIELDS

logger = logging.getLogger(__name__)


class ExtractionClient:
    """Turns one uploaded file into a DocumentRecord."""

    def __init__(
        self,
        backends: list[VisionBackend] | None = None,
        pdf_rasterize: bool | None = None,
        render_dpi: int | None = None,
        prompt: str = EXTRACTION_PROMPT,
    ):
        if backends is None:
            backends = [build_backend(c) for c in parse_backend_chain(settings.EXTRACTION_BACKENDS)]
        self._backends = backends
        self._pdf_rasterize = pdf_rasterize if pdf_rasterize is not None else settings.PDF_RASTERIZE
        self._render_dpi = render_dpi if render_dpi is not None else settings.PDF_RENDER_DPI
        self._prompt = prompt

    @property
    def backends(self) -> list[VisionBackend]:
        return list(self._backends)

    async def aclose(self):
        for backend in self._backends:
            await backend.aclose()

    def eligible_backends(self, file: InputFile) -> list[VisionBackend]:
        """Backends, in chain order, that have credentials and can take this file.

        Raises ConfigurationError when no backend has a credential, and
        UnsupportedInputError when none can consume the file's media type.
        """
        configured = [b for b in self._backends if b.has_credentials]
        if not configured:
            raise ConfigurationError("No extraction backend has an API key configured")

        if not file.is_pdf:
            return configured

        eligible = [b for b in configured if b.config.accepts_pdf or self._pdf_rasterize]
        if not eligible:
            raise UnsupportedInputError(
                f"No configured backend accepts PDF input ({', '.join(b.name for b in configured)})"
            )
        return eligible

    async def extract(self, file: InputFile) -> DocumentRecord:
        """Run the backend chain for one file and return the normalized record."""
        start = time.monotonic()
        chain = self.eligible_backends(file)
        prepared: dict[str, tuple[bytes, str]] = {}

        logger.info(
            "Extracting %s: type=%s size=%d bytes, chain=%s",
            file.name, file.media_type or "unknown", file.size,
            ",".join(b.name for b in chain),
        )

        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(ExtractionError),
            stop=stop_after_attempt(len(chain)),
            wait=wait_none(),
            reraise=True,
            before_sleep=lambda state: logger.warning(
                "Backend %s failed (%s), trying next backend (%d/%d)",
                chain[state.attempt_number - 1].name,
                state.outcome.exception(),  # type: ignore[union-attr]
                state.attempt_number + 1,
                len(chain),
            ),
        ):
            with attempt:
                backend = chain[attempt.retry_state.attempt_number - 1]
                content, media_type = await self._payload_for(backend, file, prepared)
                raw_text = await backend.infer(content, media_type, self._prompt)
                parsed = try_parse_json(raw_text)
                if parsed is None:
                    raise ExtractionError(f"{backend.name} returned no JSON object")

        record = normalize_record(parsed)
        elapsed_ms = int((time.monotonic() - start) * 1000)
        logger.info("Extracted %s via %s in %dms", file.name, backend.name, elapsed_ms)
        return record

    async def _payload_for(
        self,
        backend: VisionBackend,
        file: InputFile,
        prepared: dict[str, tuple[bytes, str]],
    ) -> tuple[bytes, str]:
        """Pick native-PDF or image submission for this backend (cached per call)."""
        if file.is_pdf and backend.config.accepts_pdf:
            return file.content, "application/pdf"

        if "image" not in prepared:
            if file.is_pdf:
                try:
                    png = await asyncio.to_thread(rasterize_first_page, file.content, self._render_dpi)
                except RenderError as e:
                    raise ExtractionError(str(e)) from e
                prepared["image"] = await asyncio.to_thread(prepare_image, png, "image/png")
            else:
                prepared["image"] = await asyncio.to_thread(prepare_image, file.content, file.media_type)
        return prepared["image"]


def normalize_record(parsed: dict) -> DocumentRecord:
    """Map a parsed model response onto DocumentRecord, defaulting missing fields."""
    missing = [key for key in RESPONSE_FIELDS if parsed.get(key) in (None, "")]
    if missing:
        logger.info("Model response missing fields, using defaults: %s", ", ".join(missing))
    return DocumentRecord.model_validate({key: parsed.get(key) for key in RESPONSE_FIELDS})


def try_parse_json(raw: str) -> dict | None:
    """Try to extract a JSON object from the model output.

    Handles: direct JSON, markdown fences, preamble/trailing text and
    <think>...</think> reasoning blocks.
    """
    if not raw:
        return None

    cleaned = re.sub(r"<think>.*?</think>", "", raw, flags=re.DOTALL).strip()

    candidates = [cleaned]

    fence = re.search(r"```(?:json)?\s*\n?(.*?)\n?```", cleaned, re.DOTALL)
    if fence:
        candidates.append(fence.group(1).strip())

    first, last = cleaned.find("{"), cleaned.rfind("}")
    if 0 <= first < last:
        candidates.append(cleaned[first:last + 1])

    for candidate in candidates:
        try:
            result = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(result, dict):
            return result

    logger.warning("Could not parse JSON from model response (%d chars)", len(cleaned))
    return None
