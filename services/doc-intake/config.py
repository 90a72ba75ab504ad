"""Environment-based configuration for the document intake service."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Document intake settings, loaded from environment variables."""

    # Server
    PORT: int = 8092
    LOG_LEVEL: str = "INFO"

    # Extraction backends, tried in order (kind:model, comma-separated)
    EXTRACTION_BACKENDS: str = "gemini:gemini-2.0-flash,openai:gpt-4o"
    GEMINI_API_KEY: str = ""
    OPENAI_API_KEY: str = ""
    EXTRACTION_TIMEOUT_SECONDS: int = 60
    EXTRACTION_CONNECT_TIMEOUT: int = 10

    # PDF handling for image-only backends (first page only)
    PDF_RASTERIZE: bool = True
    PDF_RENDER_DPI: int = 150

    # Downstream automation webhook (empty = submission disabled)
    WEBHOOK_URL: str = ""
    WEBHOOK_SOURCE: str = "gestoria-app"
    WEBHOOK_INCLUDE_FILE: bool = False
    WEBHOOK_TIMEOUT_SECONDS: int = 30

    # Workflow pacing
    SUBMISSION_DELAY_SECONDS: float = 2.0  # downstream tolerates ~1 req / 2s
    SUCCESS_DISPLAY_SECONDS: float = 2.0

    model_config = {"env_prefix": "", "case_sensitive": True}

    def api_key_for(self, kind: str) -> str:
        """Return the credential configured for a backend kind ("" if none)."""
        return {
            "gemini": self.GEMINI_API_KEY,
            "openai": self.OPENAI_API_KEY,
        }.get(kind, "")


settings = Settings()
