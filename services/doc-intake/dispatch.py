"""Batch submission pipeline — forward reviewed items one at a time.

The downstream webhook tolerates very little throughput, so consecutive
submissions are spaced by a fixed delay. The first failure stops the run.
Items are marked as submitted as they succeed, so a later re-confirm only
sends what is still pending.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from config import settings
from errors import BATCH_SUBMISSION_MESSAGE, BatchSubmissionError, ConfigurationError, SubmissionError
from ingestion import BatchItem
from submission import SubmissionClient

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


@dataclass
class DispatchOutcome:
    submitted_ids: list[str] = field(default_factory=list)
    skipped_ids: list[str] = field(default_factory=list)


async def submit_batch(
    items: list[BatchItem],
    client: SubmissionClient,
    delay: float | None = None,
    include_files: bool = True,
    sleep: Sleep = asyncio.sleep,
) -> DispatchOutcome:
    """Submit pending items sequentially, waiting ``delay`` seconds between calls.

    Raises BatchSubmissionError on the first failing item; items after it
    are not attempted.
    """
    pause = delay if delay is not None else settings.SUBMISSION_DELAY_SECONDS
    outcome = DispatchOutcome()
    pending = []
    for item in items:
        if item.submitted:
            outcome.skipped_ids.append(item.id)
        else:
            pending.append(item)

    if outcome.skipped_ids:
        logger.info("Skipping %d already submitted item(s)", len(outcome.skipped_ids))

    for position, item in enumerate(pending):
        if position > 0:
            await sleep(pause)

        try:
            await client.submit(item.record, item.file if include_files else None, mode="batch")
        except (SubmissionError, ConfigurationError) as e:
            logger.error(
                "Batch submission stopped at item %d/%d (%s): %s",
                position + 1, len(pending), item.file.name, e,
            )
            raise BatchSubmissionError(
                f"Submission of {item.file.name} failed: {e}",
                failed_id=item.id,
                submitted_ids=list(outcome.submitted_ids),
                user_message=BATCH_SUBMISSION_MESSAGE if isinstance(e, SubmissionError) else e.user_message,
            ) from e

        item.submitted = True
        outcome.submitted_ids.append(item.id)

    logger.info("Batch submission complete: %d item(s) sent", len(outcome.submitted_ids))
    return outcome
