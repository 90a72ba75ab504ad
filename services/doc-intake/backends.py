"""HTTP clients for the vision model vendors used for extraction.

Each backend wraps one vendor endpoint and one model behind the same
``infer(content, media_type, prompt) -> raw_text`` call, using httpx with
configurable timeouts. Vendor failures are mapped to ExtractionError with a
user-facing message per status code.
"""

import base64
import logging
from dataclasses import dataclass

import httpx

from config import settings
from errors import ConfigurationError, ExtractionError
from prompts import RESPONSE_SCHEMA

logger = logging.getLogger(__name__)

OPENAI_URL = "https://api.openai.com/v1/chat/completions"
GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

# Backend kinds that read PDFs natively (no rasterization needed)
PDF_NATIVE_KINDS = {"gemini"}


@dataclass(frozen=True)
class BackendConfig:
    kind: str
    model: str

    @property
    def accepts_pdf(self) -> bool:
        return self.kind in PDF_NATIVE_KINDS

    @property
    def name(self) -> str:
        return f"{self.kind}:{self.model}"


def parse_backend_chain(raw: str) -> list[BackendConfig]:
    """Parse "kind:model,kind:model" into an ordered backend list."""
    chain = []
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        kind, sep, model = entry.partition(":")
        kind = kind.strip().lower()
        if not sep or not model.strip() or kind not in BACKEND_TYPES:
            raise ConfigurationError(f"Invalid extraction backend entry: {entry!r}")
        chain.append(BackendConfig(kind=kind, model=model.strip()))
    return chain


class VisionBackend:
    """Base class: one vendor endpoint, one model, one shared async client."""

    def __init__(
        self,
        config: BackendConfig,
        api_key: str,
        timeout: int | None = None,
        connect_timeout: int | None = None,
    ):
        self.config = config
        self._api_key = api_key

        read_timeout = timeout if timeout is not None else settings.EXTRACTION_TIMEOUT_SECONDS
        conn_timeout = connect_timeout if connect_timeout is not None else settings.EXTRACTION_CONNECT_TIMEOUT

        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(
                connect=float(conn_timeout),
                read=float(read_timeout),
                write=30.0,
                pool=30.0,
            ),
        )

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def has_credentials(self) -> bool:
        return bool(self._api_key)

    async def aclose(self):
        await self._client.aclose()

    async def infer(self, content: bytes, media_type: str, prompt: str) -> str:
        """Send one document to the vendor and return the raw model text."""
        if not self._api_key:
            raise ConfigurationError(f"No API key configured for {self.name}")

        url, headers, payload = self._build_request(base64.b64encode(content).decode(), media_type, prompt)
        try:
            resp = await self._client.post(url, headers=headers, json=payload)
        except httpx.HTTPError as e:
            logger.warning("%s request failed: %s", self.name, e)
            raise ExtractionError(f"{self.name} request failed: {e}") from e

        if not 200 <= resp.status_code < 300:
            raise _status_error(self.name, resp)

        try:
            return self._read_text(resp.json())
        except (KeyError, IndexError, TypeError, ValueError, AttributeError) as e:
            logger.error("%s returned an unexpected payload: %s", self.name, e)
            raise ExtractionError(f"{self.name} returned an unexpected payload: {e}") from e

    def _build_request(self, data_b64: str, media_type: str, prompt: str) -> tuple[str, dict, dict]:
        raise NotImplementedError

    def _read_text(self, data: dict) -> str:
        raise NotImplementedError


class OpenAIBackend(VisionBackend):
    """OpenAI chat completions with an inline image. Images only."""

    def _build_request(self, data_b64: str, media_type: str, prompt: str) -> tuple[str, dict, dict]:
        headers = {"Authorization": f"Bearer {self._api_key}"}
        payload = {
            "model": self.config.model,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": prompt},
                        {
                            "type": "image_url",
                            "image_url": {"url": f"data:{media_type};base64,{data_b64}"},
                        },
                    ],
                }
            ],
            "response_format": {"type": "json_object"},
            "temperature": 0,
        }
        return OPENAI_URL, headers, payload

    def _read_text(self, data: dict) -> str:
        return data["choices"][0]["message"]["content"]


class GeminiBackend(VisionBackend):
    """Gemini generateContent with inline data and a JSON response schema."""

    def _build_request(self, data_b64: str, media_type: str, prompt: str) -> tuple[str, dict, dict]:
        headers = {"x-goog-api-key": self._api_key}
        payload = {
            "contents": [
                {
                    "parts": [
                        {"inline_data": {"mime_type": media_type, "data": data_b64}},
                        {"text": prompt},
                    ]
                }
            ],
            "generationConfig": {
                "temperature": 0,
                "responseMimeType": "application/json",
                "responseSchema": RESPONSE_SCHEMA,
            },
        }
        return GEMINI_URL.format(model=self.config.model), headers, payload

    def _read_text(self, data: dict) -> str:
        parts = data["candidates"][0]["content"]["parts"]
        return "".join(part.get("text", "") for part in parts)


BACKEND_TYPES: dict[str, type[VisionBackend]] = {
    "openai": OpenAIBackend,
    "gemini": GeminiBackend,
}


def build_backend(config: BackendConfig, api_key: str | None = None) -> VisionBackend:
    key = api_key if api_key is not None else settings.api_key_for(config.kind)
    return BACKEND_TYPES[config.kind](config, key)


def _error_detail(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200]
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
    return str(body)[:200]


def _status_error(name: str, resp: httpx.Response) -> ExtractionError:
    status = resp.status_code
    detail = _error_detail(resp)
    logger.error("%s error %d: %s", name, status, detail)

    if status == 400 and "image" in detail.lower():
        return ExtractionError(
            f"{name} rejected the image: {detail}",
            "El formato de la imagen no es compatible. Prueba con JPG o PNG.",
        )
    if status in (401, 403):
        return ExtractionError(f"{name} rejected the API key", "API Key inválida o incorrecta.")
    if status == 429:
        return ExtractionError(
            f"{name} quota exhausted: {detail}",
            "Se ha agotado la cuota del servicio de lectura. Revisa la facturación.",
        )
    return ExtractionError(f"{name} error ({status}): {detail}")
