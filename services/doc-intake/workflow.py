"""Review state machine for the upload → analyze → review → confirm workflow.

All state lives in one WorkflowState owned by ReviewWorkflow. Every change
goes through a named transition; pipelines only return outcomes. Preview
handles are released by the machine itself whenever the items that own
them are discarded, so a full reset always leaves zero handles outstanding.

    idle ──select──▶ analyzing ──▶ review_single ──confirm──▶ success ──timer──▶ idle
                         │    └───▶ review_batch  ──confirm──▶ success
                         └──▶ error ──retry──▶ idle
"""

import asyncio
import logging
from dataclasses import dataclass, field

from config import settings
from dispatch import Sleep, submit_batch
from errors import (
    BATCH_EXTRACTION_MESSAGE,
    GENERIC_EXTRACTION_MESSAGE,
    GENERIC_SUBMISSION_MESSAGE,
    IntakeError,
    InvalidTransition,
    ItemNotFound,
)
from extraction import ExtractionClient
from ingestion import BatchItem, ingest_batch
from models import (
    BatchItemView,
    DocumentRecord,
    InputFile,
    Mode,
    ProgressView,
    SingleView,
    WorkflowSnapshot,
)
from previews import PreviewHandle, PreviewRegistry
from submission import SubmissionClient

logger = logging.getLogger(__name__)


@dataclass
class WorkflowState:
    mode: Mode = Mode.IDLE

    # Single mode
    single_file: InputFile | None = None
    single_preview: PreviewHandle | None = None
    single_record: DocumentRecord | None = None

    # Batch mode
    items: list[BatchItem] = field(default_factory=list)
    progress_current: int = 0
    progress_total: int = 0

    error: str | None = None
    is_sending: bool = False
    # Review mode to go back to after a submission error (data retained)
    resume_mode: Mode | None = None


class ReviewWorkflow:
    """Per-session workflow: one instance per page session."""

    def __init__(
        self,
        extractor: ExtractionClient,
        submitter: SubmissionClient,
        previews: PreviewRegistry | None = None,
        submission_delay: float | None = None,
        success_delay: float | None = None,
        include_files: bool = True,
        sleep: Sleep = asyncio.sleep,
    ):
        self._extractor = extractor
        self._submitter = submitter
        self._previews = previews if previews is not None else PreviewRegistry()
        self._submission_delay = (
            submission_delay if submission_delay is not None else settings.SUBMISSION_DELAY_SECONDS
        )
        self._success_delay = success_delay if success_delay is not None else settings.SUCCESS_DISPLAY_SECONDS
        self._include_files = include_files
        self._sleep = sleep
        self._success_timer: asyncio.Task | None = None
        self._state = WorkflowState()

    @property
    def state(self) -> WorkflowState:
        return self._state

    @property
    def mode(self) -> Mode:
        return self._state.mode

    @property
    def previews(self) -> PreviewRegistry:
        return self._previews

    # --- transitions -------------------------------------------------------

    async def select_files(self, files: list[InputFile]) -> None:
        """Analyze newly selected files.

        Exactly one file with no batch in progress runs in single mode;
        anything else runs in batch mode and appends to the current batch.
        """
        if not files:
            return
        self._require(Mode.IDLE, Mode.REVIEW_BATCH)

        self._state.error = None
        if len(files) == 1 and not self._state.items:
            await self._analyze_single(files[0])
        else:
            await self._analyze_batch(files)

    def remove_item(self, item_id: str) -> None:
        """Drop one batch item; removing the last one resets the workflow."""
        self._require(Mode.REVIEW_BATCH)

        item = next((i for i in self._state.items if i.id == item_id), None)
        if item is None:
            raise ItemNotFound(item_id)

        self._previews.release(item.preview)
        self._state.items.remove(item)
        logger.info("Removed batch item %s (%d left)", item_id, len(self._state.items))

        if not self._state.items:
            self._reset()

    def add_more(self) -> None:
        """Return to upload. Discards the current batch."""
        self._require(Mode.REVIEW_BATCH)
        self._reset()

    def discard(self) -> None:
        self._require(Mode.REVIEW_SINGLE)
        self._reset()

    def retry(self) -> None:
        """Leave the error state with a full reset (partial results are dropped)."""
        self._require(Mode.ERROR)
        self._reset()

    def dismiss_error(self) -> None:
        """Go back to review after a failure that kept the reviewed data."""
        self._require(Mode.ERROR)
        if self._state.resume_mode is None:
            raise InvalidTransition("No reviewed data to return to; use retry")
        self._state.mode = self._state.resume_mode
        self._state.resume_mode = None
        self._state.error = None

    async def confirm(self) -> None:
        """Submit the reviewed record(s) downstream."""
        self._require(Mode.REVIEW_SINGLE, Mode.REVIEW_BATCH)

        review_mode = self._state.mode
        self._state.is_sending = True
        try:
            if review_mode == Mode.REVIEW_SINGLE:
                await self._submitter.submit(
                    self._state.single_record, self._state.single_file, mode="single",
                )
            else:
                await submit_batch(
                    self._state.items,
                    self._submitter,
                    delay=self._submission_delay,
                    include_files=self._include_files,
                    sleep=self._sleep,
                )
        except IntakeError as e:
            logger.error("Submission failed in %s: %s", review_mode.value, e)
            self._fail(e.user_message, resume_mode=review_mode)
            return
        except Exception:
            logger.exception("Unexpected error while submitting in %s", review_mode.value)
            self._fail(GENERIC_SUBMISSION_MESSAGE, resume_mode=review_mode)
            return
        finally:
            self._state.is_sending = False

        self._succeed()

    async def aclose(self) -> None:
        """Cancel pending timers and release everything (service shutdown)."""
        self._reset()

    # --- internals -----------------------------------------------------------

    async def _analyze_single(self, file: InputFile) -> None:
        state = self._state
        state.mode = Mode.ANALYZING
        state.progress_current = state.progress_total = 0
        state.single_file = file
        state.single_preview = self._previews.acquire(file)

        try:
            record = await self._extractor.extract(file)
        except IntakeError as e:
            logger.error("Single extraction failed for %s: %s", file.name, e)
            self._fail(e.user_message)
            return
        except Exception:
            logger.exception("Unexpected error analyzing %s", file.name)
            self._fail(GENERIC_EXTRACTION_MESSAGE)
            return

        state.single_record = record
        state.mode = Mode.REVIEW_SINGLE

    async def _analyze_batch(self, files: list[InputFile]) -> None:
        state = self._state
        had_items = bool(state.items)
        state.mode = Mode.ANALYZING
        state.progress_current, state.progress_total = 0, len(files)

        try:
            outcome = await ingest_batch(files, self._extractor, self._previews, on_progress=self._on_progress)
        except Exception:
            logger.exception("Unexpected error during batch analysis of %d file(s)", len(files))
            state.progress_current = state.progress_total = 0
            self._fail(
                f"{BATCH_EXTRACTION_MESSAGE} {GENERIC_EXTRACTION_MESSAGE}",
                resume_mode=Mode.REVIEW_BATCH if had_items else None,
            )
            return
        state.progress_current = state.progress_total = 0

        if not outcome.ok:
            last = outcome.last_error
            logger.error("Batch extraction failed for all %d file(s); last error: %s", len(files), last)
            message = BATCH_EXTRACTION_MESSAGE
            if last is not None:
                message = f"{message} {last.user_message}"
            self._fail(message, resume_mode=Mode.REVIEW_BATCH if had_items else None)
            return

        state.items.extend(outcome.items)
        state.mode = Mode.REVIEW_BATCH

    def _on_progress(self, current: int, total: int) -> None:
        self._state.progress_current = current
        self._state.progress_total = total

    def _succeed(self) -> None:
        self._state.mode = Mode.SUCCESS
        self._state.resume_mode = None
        self._success_timer = asyncio.get_running_loop().create_task(self._expire_success())

    async def _expire_success(self) -> None:
        await asyncio.sleep(self._success_delay)
        if self._state.mode == Mode.SUCCESS:
            self._reset()

    def _fail(self, message: str, resume_mode: Mode | None = None) -> None:
        self._state.mode = Mode.ERROR
        self._state.error = message
        self._state.resume_mode = resume_mode

    def _reset(self) -> None:
        timer = self._success_timer
        self._success_timer = None
        if timer is not None and not timer.done() and timer is not asyncio.current_task():
            timer.cancel()

        released = self._previews.release_all()
        self._state = WorkflowState()
        logger.info("Workflow reset to idle (%d preview handle(s) released)", released)

    def _require(self, *modes: Mode) -> None:
        if self._state.mode not in modes:
            allowed = ", ".join(m.value for m in modes)
            raise InvalidTransition(f"Action not allowed in mode {self._state.mode.value} (expected {allowed})")
        if self._state.is_sending:
            raise InvalidTransition("A submission is in progress")

    # --- views -------------------------------------------------------------

    def snapshot(self) -> WorkflowSnapshot:
        state = self._state
        single = None
        if state.single_file is not None:
            single = SingleView(
                file_name=state.single_file.name,
                media_type=state.single_file.media_type,
                preview_url=state.single_preview.url if state.single_preview else None,
                record=state.single_record.to_payload() if state.single_record else None,
                balanced=state.single_record.is_balanced if state.single_record else None,
            )

        return WorkflowSnapshot(
            mode=state.mode,
            single=single,
            items=[
                BatchItemView(
                    id=item.id,
                    file_name=item.file.name,
                    media_type=item.file.media_type,
                    preview_url=item.preview.url,
                    record=item.record.to_payload(),
                    balanced=item.record.is_balanced,
                    submitted=item.submitted,
                )
                for item in state.items
            ],
            progress=ProgressView(current=state.progress_current, total=state.progress_total),
            error=state.error,
            is_sending=state.is_sending,
            can_resume=state.resume_mode is not None,
        )
