"""Revocable preview handles over uploaded file contents.

A handle is the in-process equivalent of a browser object URL: it makes
the original bytes reachable under a URL until it is released. The
registry tracks every live handle so the workflow can release them all on
reset and tests can assert that nothing is left outstanding.
"""

import logging
import uuid
from dataclasses import dataclass

from models import InputFile

logger = logging.getLogger(__name__)

PREVIEW_PATH = "/api/v1/previews/{handle_id}"


@dataclass(frozen=True)
class PreviewHandle:
    id: str
    file_name: str
    media_type: str

    @property
    def url(self) -> str:
        return PREVIEW_PATH.format(handle_id=self.id)


class PreviewRegistry:
    """Owns the bytes behind every live preview handle."""

    def __init__(self):
        self._live: dict[str, tuple[PreviewHandle, InputFile]] = {}

    @property
    def outstanding(self) -> int:
        return len(self._live)

    def acquire(self, file: InputFile) -> PreviewHandle:
        handle = PreviewHandle(id=uuid.uuid4().hex, file_name=file.name, media_type=file.media_type)
        self._live[handle.id] = (handle, file)
        logger.debug("Preview acquired: %s (%s)", handle.id, file.name)
        return handle

    def release(self, handle: PreviewHandle | None) -> bool:
        """Release one handle. Returns False if it was already released."""
        if handle is None:
            return False
        released = self._live.pop(handle.id, None) is not None
        if released:
            logger.debug("Preview released: %s", handle.id)
        return released

    def release_all(self) -> int:
        count = len(self._live)
        self._live.clear()
        if count:
            logger.debug("Released %d preview handle(s)", count)
        return count

    def lookup(self, handle_id: str) -> tuple[PreviewHandle, InputFile] | None:
        """Return the handle and file for a live id, None once released."""
        return self._live.get(handle_id)
