"""Global configuration for Unfoldy: dual-provider story and image generation."""
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Centralised settings read from .env file automatically."""

    # ── Paths ──────────────────────────────────────────────
    PROJECT_ROOT: Path = Path(__file__).parent
    SESSION_FILE: Path = Path(__file__).parent / "data" / "session.json"

    # ── Primary provider: Google Gemini / Imagen ──────────
    GEMINI_API_KEY: str = Field(default="", description="Google AI Studio API key")
    GEMINI_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta/models"
    GEMINI_TEXT_MODEL: str = "gemini-3-flash-preview"
    GEMINI_IMAGE_MODEL: str = "imagen-4.0-fast-generate-001"

    # ── Secondary provider: OpenAI / DALL-E ───────────────
    OPENAI_API_KEY: str = Field(default="", description="OpenAI API key")
    OPENAI_BASE_URL: str = Field(default="", description="OpenAI-compatible API base URL (e.g. https://your-server.com/v1)")
    OPENAI_TEXT_MODEL: str = "gpt-4o"
    OPENAI_IMAGE_MODEL: str = "dall-e-3"
    OPENAI_IMAGE_SIZE: str = "1024x1024"

    # ── Generation ────────────────────────────────────────
    TEXT_TEMPERATURE: float = 0.9
    TEXT_MAX_TOKENS: int = 4096
    TEXT_TIMEOUT_S: float = 30.0
    IMAGE_TIMEOUT_S: float = 60.0
    ERROR_EXCERPT_CHARS: int = 200

    # ── Game Config ───────────────────────────────────────
    MAX_TURNS: int = 10
    NUM_CHOICES: int = 3

    # ── Logging / Gradio ──────────────────────────────────
    LOG_LEVEL: str = "INFO"
    GRADIO_PORT: int = 7860

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


# Singleton settings instance used by every module
settings = Settings()
