"""Batch ingestion pipeline — extract N files one after another.

A failing file is logged and recorded, never aborting the rest of the
batch. The pipeline returns an outcome; applying it to the workflow state
is the state machine's job.
"""

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field

from errors import ExtractionError, IntakeError
from extraction import ExtractionClient
from models import DocumentRecord, InputFile
from previews import PreviewHandle, PreviewRegistry

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


@dataclass
class BatchItem:
    """One analyzed file held for review."""

    id: str
    file: InputFile
    preview: PreviewHandle
    record: DocumentRecord
    submitted: bool = False


@dataclass(frozen=True)
class FileFailure:
    file_name: str
    error: IntakeError


@dataclass
class IngestionOutcome:
    items: list[BatchItem] = field(default_factory=list)
    failures: list[FileFailure] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return len(self.items)

    @property
    def ok(self) -> bool:
        return self.success_count > 0

    @property
    def last_error(self) -> IntakeError | None:
        return self.failures[-1].error if self.failures else None


def new_item_id() -> str:
    return uuid.uuid4().hex


async def ingest_batch(
    files: list[InputFile],
    extractor: ExtractionClient,
    previews: PreviewRegistry,
    on_progress: ProgressCallback | None = None,
    id_factory: Callable[[], str] = new_item_id,
) -> IngestionOutcome:
    """Extract every file in order; successful files become BatchItems."""
    outcome = IngestionOutcome()
    total = len(files)

    for index, file in enumerate(files, start=1):
        if on_progress is not None:
            on_progress(index, total)

        try:
            record = await extractor.extract(file)
        except IntakeError as e:
            logger.error("Error processing file %s (%d/%d): %s", file.name, index, total, e)
            outcome.failures.append(FileFailure(file_name=file.name, error=e))
            continue
        except Exception as e:
            logger.exception("Unexpected error processing file %s (%d/%d)", file.name, index, total)
            error = ExtractionError(f"Unexpected error processing {file.name}: {e}")
            outcome.failures.append(FileFailure(file_name=file.name, error=error))
            continue

        outcome.items.append(BatchItem(
            id=id_factory(),
            file=file,
            preview=previews.acquire(file),
            record=record,
        ))

    logger.info(
        "Batch ingestion finished: %d/%d succeeded, %d failed",
        outcome.success_count, total, len(outcome.failures),
    )
    return outcome
