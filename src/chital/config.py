"""Runtime settings.

Read once from environment variables (a local .env file is honoured) and
passed explicitly to the components that need them.
"""

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field

DEFAULT_OLLAMA_HOST = "http://localhost:11434"
DEFAULT_TITLE_SUMMARY_PROMPT = (
    "Summarize the conversation so far in a short title of no more than five words. "
    "Reply with the title only."
)
DEFAULT_REQUEST_TIMEOUT = 120.0
DEFAULT_DB_PATH = Path.home() / ".chital" / "chital.db"


class Settings(BaseModel):
    """User-adjustable settings consumed by the session layer."""

    ollama_host: str = Field(default=DEFAULT_OLLAMA_HOST, description="Base URL of the local Ollama server")
    default_model_name: str = Field(default="", description="Preferred model for new threads")
    title_summary_prompt: str = Field(
        default=DEFAULT_TITLE_SUMMARY_PROMPT,
        description="Instruction appended to the history when generating a thread title"
    )
    request_timeout: float = Field(
        default=DEFAULT_REQUEST_TIMEOUT,
        gt=0,
        description="Seconds before a backend request is abandoned"
    )
    db_backend: str = Field(default="sqlite", description="Thread persistence backend: sqlite or memory")
    db_path: Path = Field(default=DEFAULT_DB_PATH, description="SQLite database file")
    log_level: str = Field(default="WARNING")


def load_settings(env_file: str | Path | None = None) -> Settings:
    """Build settings from the environment.

    Environment variables:
        OLLAMA_HOST: Ollama server URL (default: http://localhost:11434)
        CHITAL_DEFAULT_MODEL: Default model name (default: empty, first available)
        CHITAL_TITLE_PROMPT: Title summarization instruction
        CHITAL_REQUEST_TIMEOUT: Request timeout in seconds (default: 120)
        CHITAL_DB_BACKEND: sqlite or memory (default: sqlite)
        CHITAL_DB_PATH: SQLite file (default: ~/.chital/chital.db)
        CHITAL_LOG_LEVEL: Logging level (default: WARNING)
    """
    load_dotenv(env_file)

    return Settings(
        ollama_host=os.getenv("OLLAMA_HOST", DEFAULT_OLLAMA_HOST),
        default_model_name=os.getenv("CHITAL_DEFAULT_MODEL", ""),
        title_summary_prompt=os.getenv("CHITAL_TITLE_PROMPT", DEFAULT_TITLE_SUMMARY_PROMPT),
        request_timeout=float(os.getenv("CHITAL_REQUEST_TIMEOUT", str(DEFAULT_REQUEST_TIMEOUT))),
        db_backend=os.getenv("CHITAL_DB_BACKEND", "sqlite"),
        db_path=Path(os.getenv("CHITAL_DB_PATH", str(DEFAULT_DB_PATH))).expanduser(),
        log_level=os.getenv("CHITAL_LOG_LEVEL", "WARNING"),
    )
