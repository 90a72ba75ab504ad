"""FastAPI document intake service — upload, review and forward documents.

Hosts one review workflow per running process (the "page session"):
uploaded documents are analyzed by the extraction backends, held in memory
for review and forwarded to the automation webhook on confirm.
Nothing is written to disk; file contents are only held while under review.
"""

import logging
import mimetypes
from contextlib import asynccontextmanager

from fastapi import FastAPI, File, UploadFile
from fastapi.responses import JSONResponse, Response

from config import settings
from errors import InvalidTransition, ItemNotFound
from extraction import ExtractionClient
from models import InputFile, WorkflowSnapshot
from submission import SubmissionClient
from workflow import ReviewWorkflow

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

_workflow: ReviewWorkflow | None = None
_extractor: ExtractionClient | None = None
_submitter: SubmissionClient | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the clients and the session workflow on startup."""
    global _workflow, _extractor, _submitter

    _extractor = ExtractionClient()
    _submitter = SubmissionClient()
    _workflow = ReviewWorkflow(_extractor, _submitter, include_files=settings.WEBHOOK_INCLUDE_FILE)

    configured = [b.name for b in _extractor.backends if b.has_credentials]
    if configured:
        logger.info("Extraction backends ready: %s", ", ".join(configured))
    else:
        logger.warning("No extraction backend has an API key — document analysis will fail")
    if not _submitter.configured:
        logger.warning("WEBHOOK_URL is empty — confirming documents will fail")

    yield

    await _workflow.aclose()
    await _extractor.aclose()
    await _submitter.aclose()


app = FastAPI(title="Document Intake", version="1.0.0", lifespan=lifespan)


@app.exception_handler(InvalidTransition)
async def invalid_transition_handler(request, exc: InvalidTransition):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(ItemNotFound)
async def item_not_found_handler(request, exc: ItemNotFound):
    return JSONResponse(status_code=404, content={"detail": f"Batch item not found: {exc}"})


def _media_type(upload: UploadFile) -> str:
    media_type = (upload.content_type or "").lower()
    if media_type in ("", "application/octet-stream"):
        guessed, _ = mimetypes.guess_type(upload.filename or "")
        media_type = guessed or media_type
    return media_type


def _is_accepted(media_type: str) -> bool:
    return media_type.startswith("image/") or media_type == "application/pdf"


@app.get("/api/v1/state", response_model=WorkflowSnapshot)
async def get_state():
    return _workflow.snapshot()


@app.post("/api/v1/documents", response_model=WorkflowSnapshot)
async def upload_documents(files: list[UploadFile] = File(...)):
    """Select one or more documents for analysis."""
    inputs = []
    for upload in files:
        media_type = _media_type(upload)
        if not _is_accepted(media_type):
            return JSONResponse(
                status_code=415,
                content={"detail": f"Unsupported file type for {upload.filename}: {media_type or 'unknown'}"},
            )
        content = await upload.read()
        if not content:
            return JSONResponse(
                status_code=400,
                content={"detail": f"Empty file uploaded: {upload.filename}"},
            )
        inputs.append(InputFile(name=upload.filename or "document", media_type=media_type, content=content))

    # log names and sizes only, never document content
    logger.info(
        "Received %d file(s): %s",
        len(inputs),
        ", ".join(f"{f.name} ({f.size} bytes)" for f in inputs),
    )

    await _workflow.select_files(inputs)
    return _workflow.snapshot()


@app.delete("/api/v1/batch/{item_id}", response_model=WorkflowSnapshot)
async def remove_batch_item(item_id: str):
    _workflow.remove_item(item_id)
    return _workflow.snapshot()


@app.post("/api/v1/confirm", response_model=WorkflowSnapshot)
async def confirm():
    """Forward the reviewed document(s) to the automation webhook."""
    await _workflow.confirm()
    return _workflow.snapshot()


@app.post("/api/v1/discard", response_model=WorkflowSnapshot)
async def discard():
    _workflow.discard()
    return _workflow.snapshot()


@app.post("/api/v1/add-more", response_model=WorkflowSnapshot)
async def add_more():
    _workflow.add_more()
    return _workflow.snapshot()


@app.post("/api/v1/retry", response_model=WorkflowSnapshot)
async def retry():
    _workflow.retry()
    return _workflow.snapshot()


@app.post("/api/v1/dismiss-error", response_model=WorkflowSnapshot)
async def dismiss_error():
    _workflow.dismiss_error()
    return _workflow.snapshot()


@app.get("/api/v1/previews/{handle_id}")
async def get_preview(handle_id: str):
    """Serve the original bytes behind a live preview handle."""
    found = _workflow.previews.lookup(handle_id)
    if found is None:
        return JSONResponse(status_code=404, content={"detail": "Preview not available"})
    handle, file = found
    return Response(content=file.content, media_type=handle.media_type or "application/octet-stream")


@app.get("/health")
async def health():
    """Return service status and which collaborators are configured."""
    return {
        "status": "healthy",
        "mode": _workflow.mode.value if _workflow else None,
        "extraction_backends": {
            b.name: b.has_credentials for b in (_extractor.backends if _extractor else [])
        },
        "webhook_configured": bool(_submitter and _submitter.configured),
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
