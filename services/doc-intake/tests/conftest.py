"""Shared test fixtures and fakes for the document intake tests."""

import json
import sys
from pathlib import Path

import numpy as np
import pytest

# Add parent directory to path so we can import the modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from backends import BackendConfig  # noqa: E402
from errors import SubmissionError  # noqa: E402
from models import DocumentRecord, InputFile  # noqa: E402


@pytest.fixture
def sample_image_bytes() -> bytes:
    """Generate a minimal valid JPEG receipt-like image."""
    import cv2

    img = np.zeros((300, 200, 3), dtype=np.uint8)
    img[:] = (240, 240, 240)
    cv2.rectangle(img, (20, 30), (180, 50), (30, 30, 30), -1)
    cv2.rectangle(img, (20, 70), (160, 90), (30, 30, 30), -1)

    _, buf = cv2.imencode(".jpg", img, [cv2.IMWRITE_JPEG_QUALITY, 90])
    return buf.tobytes()


@pytest.fixture
def large_image_bytes() -> bytes:
    """Generate an image whose longest side exceeds MAX_SIDE."""
    import cv2

    img = np.zeros((3000, 4000, 3), dtype=np.uint8)
    img[:] = (200, 200, 200)
    _, buf = cv2.imencode(".png", img)
    return buf.tobytes()


@pytest.fixture
def sample_pdf_bytes() -> bytes:
    """Generate a two-page PDF."""
    import pymupdf

    with pymupdf.open() as doc:
        for text in ("FACTURA 2024-001", "Página 2"):
            page = doc.new_page(width=595, height=842)
            page.insert_text((72, 72), text, fontsize=18)
        return doc.tobytes()


@pytest.fixture
def factura_response() -> str:
    """Mock model response for a complete invoice."""
    return json.dumps({
        "document_type": "FACTURA",
        "document_number": "F-2024-001",
        "date": "15/03/2024",
        "supplier": "Suministros Levante S.L.",
        "concept": "Material de oficina",
        "tax_base": 100.0,
        "taxes": 21.0,
        "total": 121.0,
    })


@pytest.fixture
def partial_response() -> str:
    """Mock model response missing most fields."""
    return '{"document_type": "Ticket", "total": "12,50 €"}'


def make_file(name: str = "ticket.jpg", media_type: str = "image/jpeg", content: bytes = b"img") -> InputFile:
    return InputFile(name=name, media_type=media_type, content=content)


def make_record(**overrides) -> DocumentRecord:
    fields = {
        "document_type": "FACTURA",
        "document_number": "F-1",
        "date": "01/02/2024",
        "supplier": "Proveedor S.A.",
        "concept": "Servicios",
        "tax_base": "100.00",
        "taxes": "21.00",
        "total": "121.00",
    }
    fields.update(overrides)
    return DocumentRecord.model_validate(fields)


class FakeBackend:
    """Scripted stand-in for a VisionBackend."""

    def __init__(self, kind: str = "openai", model: str = "gpt-4o", responses=None, api_key: str = "key"):
        self.config = BackendConfig(kind=kind, model=model)
        self._responses = list(responses or [])
        self._api_key = api_key
        self.calls: list[tuple[int, str]] = []
        self.closed = False

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def has_credentials(self) -> bool:
        return bool(self._api_key)

    async def infer(self, content: bytes, media_type: str, prompt: str) -> str:
        self.calls.append((len(content), media_type))
        response = self._responses.pop(0) if self._responses else "{}"
        if isinstance(response, Exception):
            raise response
        return response

    async def aclose(self):
        self.closed = True


class FakeExtractor:
    """Returns a record per file name; exceptions in ``outcomes`` are raised."""

    def __init__(self, outcomes: dict | None = None):
        self.outcomes = outcomes or {}
        self.calls: list[str] = []

    async def extract(self, file: InputFile) -> DocumentRecord:
        self.calls.append(file.name)
        outcome = self.outcomes.get(file.name)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome or make_record(document_number=file.name)


class FakeClock:
    """Monotonic fake time advanced only by the injected sleep."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: list[float] = []

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeSubmitter:
    """Records submissions with fake timestamps; fails on chosen document numbers."""

    def __init__(self, clock: FakeClock | None = None, fail_on: set[str] | None = None):
        self.clock = clock or FakeClock()
        self.fail_on = fail_on or set()
        self.calls: list[tuple[float, DocumentRecord, InputFile | None, str]] = []
        self.configured = True

    async def submit(self, record, file=None, *, mode="single"):
        self.calls.append((self.clock.now, record, file, mode))
        if record.document_number in self.fail_on:
            raise SubmissionError(f"webhook rejected {record.document_number}")

    async def aclose(self):
        pass


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
