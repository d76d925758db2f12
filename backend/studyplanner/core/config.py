import json

from pathlib import Path
from typing import Annotated

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


# Resolve backend root (…/backend/) regardless of current working directory
BASE_DIR = Path(__file__).resolve().parents[2]
ENV_FILE = BASE_DIR / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    APP_NAME: str = "Study Planner AI"
    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"
    # Single origin or several, comma separated (or a JSON list).
    # Example: "http://localhost:3000,https://example.com"
    BACKEND_CORS_ORIGINS: Annotated[list[str], NoDecode] = ["http://localhost:3000"]

    # Durable store for per-user todos.
    DATABASE_URL: str = f"sqlite:///{BASE_DIR / 'studyplanner.db'}"

    # ===== LLM settings =====
    # OPENAI_API_KEY may stay empty when OPENAI_BASE_URL points at a local
    # OpenAI-compatible server (Ollama/LM Studio).
    OPENAI_API_KEY: str | None = None
    OPENAI_BASE_URL: str | None = None
    OPENAI_CHAT_MODEL: str = "gpt-4o-mini"
    # Model used for image syllabi (OCR + generation). Falls back to OPENAI_CHAT_MODEL.
    OPENAI_VISION_MODEL: str | None = None

    # The SDK retries transient failures (connection errors, 408/429/5xx)
    # with exponential backoff; keep it bounded so a request cannot hang forever.
    OPENAI_HTTP_TIMEOUT_SEC: int = 120
    OPENAI_MAX_RETRIES: int = 2

    GENERATION_TEMPERATURE: float = 0.4
    GENERATION_MAX_TOKENS: int = 4096
    GRADING_TEMPERATURE: float = 0.0
    GRADING_MAX_TOKENS: int = 600

    # ===== Syllabus upload =====
    SYLLABUS_MAX_UPLOAD_MB: int = 5
    # Prefix of the extracted text included in schedule/notes prompts.
    SYLLABUS_TEXT_MAX_CHARS: int = 15000
    # Full tests cover the whole syllabus, so they get a longer prefix.
    FULL_TEST_TEXT_MAX_CHARS: int = 30000

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def _parse_cors_origins(cls, v):
        if v is None or v == "":
            return []

        if isinstance(v, list):
            return v

        # JSON list first, then comma separated
        if isinstance(v, str):
            s = v.strip()
            if s.startswith("["):
                try:
                    return json.loads(s)
                except ValueError:
                    pass
            return [item.strip() for item in s.split(",") if item.strip()]

        return v

    @property
    def max_upload_bytes(self) -> int:
        return int(self.SYLLABUS_MAX_UPLOAD_MB) * 1024 * 1024


settings = Settings()
