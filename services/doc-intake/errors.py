"""Error taxonomy shared by the extraction, submission and workflow layers.

Every intake error carries a short user-facing message (Spanish, the
product's locale) next to the technical detail used for logging.
"""

GENERIC_EXTRACTION_MESSAGE = (
    "No se pudo leer el documento. Intenta con mejor iluminación o verifica el formato."
)
GENERIC_SUBMISSION_MESSAGE = "Error al conectar con el sistema. Verifica tu conexión."
BATCH_EXTRACTION_MESSAGE = "Error al procesar el lote. Ningún documento pudo leerse."
BATCH_SUBMISSION_MESSAGE = "Error al enviar el lote. Verifica tu conexión."
UPLOAD_IMAGE_MESSAGE = (
    "El sistema de lectura no admite PDFs directamente. "
    "Por favor, sube una imagen (JPG/PNG) del documento."
)


class IntakeError(Exception):
    """Base class for failures surfaced to the user."""

    user_message = GENERIC_EXTRACTION_MESSAGE

    def __init__(self, detail: str, user_message: str | None = None):
        super().__init__(detail)
        if user_message is not None:
            self.user_message = user_message


class ConfigurationError(IntakeError):
    """A required credential or endpoint is not configured (not retryable)."""

    user_message = "El servicio no está configurado. Contacta con el administrador."


class UnsupportedInputError(IntakeError):
    """No configured backend can consume the input media type."""

    user_message = UPLOAD_IMAGE_MESSAGE


class ExtractionError(IntakeError):
    """Remote extraction call failed or returned unparseable content."""

    user_message = GENERIC_EXTRACTION_MESSAGE


class SubmissionError(IntakeError):
    """Downstream webhook call failed (unreachable or non-2xx)."""

    user_message = GENERIC_SUBMISSION_MESSAGE


class BatchSubmissionError(SubmissionError):
    """A batch submission stopped at the first failing item."""

    def __init__(
        self,
        detail: str,
        failed_id: str,
        submitted_ids: list[str],
        user_message: str | None = None,
    ):
        super().__init__(detail, user_message)
        self.failed_id = failed_id
        self.submitted_ids = submitted_ids


class InvalidTransition(Exception):
    """A user action is not allowed in the current workflow mode."""


class ItemNotFound(Exception):
    """No batch item with the requested id."""
