"""Image preparation for vision backends.

1. PDF -> raster image of the first page (for image-only backends)
2. Decode image bytes
3. Downscale oversized images to keep request payloads small
4. Encode as JPEG

Image steps degrade gracefully: if decoding fails, the original bytes are
sent unchanged. PDF rendering failures are raised, since there is nothing
to fall back to.
"""

import logging

import cv2
import pymupdf
import numpy as np

logger = logging.getLogger(__name__)

MAX_SIDE = 2048
JPEG_QUALITY = 90
FALLBACK_IMAGE_TYPE = "image/jpeg"


class RenderError(Exception):
    """A paginated document could not be rendered to an image."""


def rasterize_first_page(pdf_bytes: bytes, dpi: int = 150) -> bytes:
    """Render page 1 of a PDF to PNG bytes."""
    try:
        with pymupdf.open(stream=pdf_bytes, filetype="pdf") as doc:
            if doc.page_count == 0:
                raise RenderError("PDF has no pages")
            pix = doc.load_page(0).get_pixmap(dpi=dpi)
            png = pix.tobytes("png")
    except RenderError:
        raise
    except Exception as e:
        raise RenderError(f"Cannot render PDF: {e}") from e

    logger.info("Rasterized PDF first page: %d bytes -> %d bytes", len(pdf_bytes), len(png))
    return png


def normalize_image_type(media_type: str) -> str:
    """Return a MIME type vision APIs accept, forcing image/jpeg when missing or odd."""
    if media_type in ("image/jpeg", "image/png", "image/webp", "image/gif"):
        return media_type
    return FALLBACK_IMAGE_TYPE


def prepare_image(image_bytes: bytes, media_type: str) -> tuple[bytes, str]:
    """Downscale and re-encode an image for upload.

    Returns (bytes, media_type). Images already within MAX_SIDE are sent as-is.
    """
    img = _decode(image_bytes)
    if img is None:
        logger.warning("preprocessing: could not decode image, sending original")
        return image_bytes, normalize_image_type(media_type)

    h, w = img.shape[:2]
    if max(h, w) <= MAX_SIDE:
        return image_bytes, normalize_image_type(media_type)

    resized = _resize(img)
    encoded = _encode(resized)
    if encoded is None:
        return image_bytes, normalize_image_type(media_type)

    logger.info("preprocessing: resized %dx%d -> %dx%d", w, h, resized.shape[1], resized.shape[0])
    return encoded, "image/jpeg"


def _decode(image_bytes: bytes) -> np.ndarray | None:
    """Decode raw bytes into an OpenCV BGR array."""
    arr = np.frombuffer(image_bytes, dtype=np.uint8)
    if arr.size == 0:
        return None
    return cv2.imdecode(arr, cv2.IMREAD_COLOR)


def _resize(img: np.ndarray) -> np.ndarray:
    """Scale so the longest side equals MAX_SIDE, keeping aspect ratio."""
    h, w = img.shape[:2]
    scale = MAX_SIDE / max(h, w)
    size = (max(1, int(w * scale)), max(1, int(h * scale)))
    return cv2.resize(img, size, interpolation=cv2.INTER_AREA)


def _encode(img: np.ndarray) -> bytes | None:
    """Encode image as JPEG bytes."""
    try:
        success, buf = cv2.imencode(".jpg", img, [cv2.IMWRITE_JPEG_QUALITY, JPEG_QUALITY])
        if success:
            return buf.tobytes()
    except cv2.error as e:
        logger.warning("preprocessing: JPEG encode failed: %s", e)
    return None
