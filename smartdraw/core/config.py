from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import List, Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    # ── Server-side LLM Provider ──────────────────────────────────────────────
    # Used whenever a request does not carry its own provider config.
    SERVER_LLM_TYPE: Optional[str] = None
    SERVER_LLM_BASE_URL: Optional[str] = None
    SERVER_LLM_API_KEY: Optional[str] = None
    SERVER_LLM_MODEL: Optional[str] = None

    @field_validator("SERVER_LLM_TYPE")
    @classmethod
    def validate_llm_type(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        allowed = {"openai", "anthropic"}
        if v.lower() not in allowed:
            raise ValueError(f"SERVER_LLM_TYPE must be one of {allowed}, got '{v}'")
        return v.lower()

    # ── Provider Transport ────────────────────────────────────────────────────
    LLM_TIMEOUT_SECONDS: float = 120.0
    ANTHROPIC_VERSION: str = "2023-06-01"
    ANTHROPIC_MAX_TOKENS: int = 64000

    # ── Generation ────────────────────────────────────────────────────────────
    GENERATION_MAX_RETRIES: int = 2
    AI_TIMEOUT_SECONDS: int = 300  # hard ceiling for a non-streaming generation

    # ── Mind Map Layout ───────────────────────────────────────────────────────
    MINDMAP_BASE_RADIUS: int = 240
    MINDMAP_RADIUS_STEP: int = 240
    MAX_MINDMAP_DEPTH: int = 32

    # ── Limits ────────────────────────────────────────────────────────────────
    MAX_IMAGE_SIZE_MB: int = 5

    # ── Core ──────────────────────────────────────────────────────────────────
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


settings = Settings()
