"""Centralized configuration for the booking assistant.

Secret resolution order (per variable):
  1. Environment variable / ``.env`` file  (local dev)
  2. AWS SSM Parameter Store SecureString  (when ``AWS_EXECUTION_ENV`` is set)

The SSM paths follow the convention ``/booking-assistant/<VARIABLE_NAME>``.
Only the completion-service key is required; embeddings and the calendar
are optional and their absence degrades the matching features.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

_ON_AWS = bool(os.getenv("AWS_EXECUTION_ENV"))


# ── Secret resolution ────────────────────────────────────────────────

def _get_ssm_parameter(name: str) -> str | None:
    """Fetch a SecureString from SSM Parameter Store.

    Returns ``None`` if the parameter does not exist or boto3 is
    unavailable.  Errors are logged but never raised so that local-dev
    fallback still works.
    """
    try:
        import boto3  # noqa: PLC0415

        ssm = boto3.client("ssm")
        resp = ssm.get_parameter(Name=f"/booking-assistant/{name}", WithDecryption=True)
        return resp["Parameter"]["Value"]
    except Exception:
        logger.debug("SSM lookup for %s failed (expected locally)", name)
        return None


def _optional_secret(name: str) -> str | None:
    """Return a config value from env-var or SSM, or ``None``."""
    value = os.getenv(name)
    if value and not value.startswith("your_"):
        return value
    if _ON_AWS:
        return _get_ssm_parameter(name)
    return None


def _require_env(name: str) -> str:
    """Return a config value from env-var or SSM, or raise a clear error."""
    value = _optional_secret(name)
    if value:
        return value
    raise OSError(
        f"Missing required configuration: {name}. "
        f"Set it in .env (local) or SSM Parameter Store /booking-assistant/{name} (AWS)."
    )


# ── LLM (completion service) ────────────────────────────────────────
ANTHROPIC_API_KEY: str = _require_env("ANTHROPIC_API_KEY")
MODEL_NAME: str = os.getenv("MODEL_NAME", "claude-sonnet-4-5")
MODEL_TEMPERATURE: float = float(os.getenv("MODEL_TEMPERATURE", "0.7"))
MODEL_MAX_TOKENS: int = int(os.getenv("MODEL_MAX_TOKENS", "1024"))

# ── Embedding service ───────────────────────────────────────────────
OPENAI_API_KEY: str | None = _optional_secret("OPENAI_API_KEY")
EMBEDDING_MODEL: str = os.getenv("EMBEDDING_MODEL", "text-embedding-ada-002")
AZURE_EMBEDDINGS_ENDPOINT: str | None = os.getenv("AZURE_EMBEDDINGS_ENDPOINT")
AZURE_EMBEDDINGS_API_KEY: str | None = _optional_secret("AZURE_EMBEDDINGS_API_KEY")
AZURE_EMBEDDINGS_API_VERSION: str = os.getenv("AZURE_EMBEDDINGS_API_VERSION", "2024-02-01")
EMBEDDING_DEPLOYMENT_NAME: str | None = os.getenv("EMBEDDING_DEPLOYMENT_NAME")

# ── Knowledge base ──────────────────────────────────────────────────
KNOWLEDGE_BASE_PATH: Path = Path(os.getenv("KNOWLEDGE_BASE_PATH", "./knowledge"))
SNAPSHOT_FILENAME: str = "vector-store.json"
KNOWLEDGE_WATCH_INTERVAL_SECONDS: float = float(
    os.getenv("KNOWLEDGE_WATCH_INTERVAL_SECONDS", "2.0")
)

# ── Google Calendar ─────────────────────────────────────────────────
GOOGLE_CLIENT_ID: str | None = _optional_secret("GOOGLE_CLIENT_ID")
GOOGLE_CLIENT_SECRET: str | None = _optional_secret("GOOGLE_CLIENT_SECRET")
GOOGLE_REFRESH_TOKEN: str | None = _optional_secret("GOOGLE_REFRESH_TOKEN")
GOOGLE_CALENDAR_BASE_URL: str = "https://www.googleapis.com/calendar/v3"
GOOGLE_TOKEN_URL: str = "https://oauth2.googleapis.com/token"
CALENDAR_TIMEZONE: str = os.getenv("CALENDAR_TIMEZONE", "America/Los_Angeles")

# ── Server ──────────────────────────────────────────────────────────
SERVER_HOST: str = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT: int = int(os.getenv("SERVER_PORT", "3000"))
CORS_ORIGINS: list[str] = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:5173",
).split(",")
