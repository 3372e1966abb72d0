"""Centralised settings for statecrawl.

All runtime configuration is resolved here in one place.  Values can be
overridden via environment variables or a `.env` file in the project root
(loaded automatically when this module is imported).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Load .env from the project root (one level up from this package)
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_env_path, override=False)

_DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    # ------------------------------------------------------------------
    # Workspace / storage
    # ------------------------------------------------------------------
    workspace_dir: Path = field(
        default_factory=lambda: Path(
            os.environ.get("STATECRAWL_WORKSPACE", Path.home() / ".statecrawl_data")
        )
    )

    @property
    def db_path(self) -> Path:
        """Absolute path to the SQLite database file."""
        return self.workspace_dir / "crawl.db"

    @property
    def log_dir(self) -> Path:
        return self.workspace_dir / "logs"

    @property
    def schema_path(self) -> Path:
        """Absolute path to the schema SQL file bundled with the package."""
        return Path(__file__).resolve().parent / "db" / "schema.sql"

    # ------------------------------------------------------------------
    # Crawl pipeline
    # ------------------------------------------------------------------
    request_delay_ms: int = field(
        default_factory=lambda: int(os.environ.get("REQUEST_DELAY", "1000"))
    )
    max_retries: int = field(
        default_factory=lambda: int(os.environ.get("MAX_RETRIES", "3"))
    )
    timeout_ms: int = field(
        default_factory=lambda: int(os.environ.get("TIMEOUT", "10000"))
    )
    max_concurrent_requests: int = field(
        default_factory=lambda: int(os.environ.get("MAX_CONCURRENT_REQUESTS", "5"))
    )
    max_redirects: int = field(
        default_factory=lambda: int(os.environ.get("MAX_REDIRECTS", "5"))
    )
    user_agent: str = field(
        default_factory=lambda: os.environ.get("USER_AGENT", _DEFAULT_USER_AGENT)
    )
    use_random_user_agent: bool = field(
        default_factory=lambda: _env_bool("USE_RANDOM_USER_AGENT", False)
    )

    # ------------------------------------------------------------------
    # State extraction
    # ------------------------------------------------------------------
    state_global_name: str = field(
        default_factory=lambda: os.environ.get("STATE_GLOBAL_NAME", "window.__NUXT__")
    )
    enable_function_eval: bool = field(
        default_factory=lambda: _env_bool("ENABLE_FUNCTION_EVAL", True)
    )

    # ------------------------------------------------------------------
    # Spider endpoints
    # ------------------------------------------------------------------
    article_url_template: str = field(
        default_factory=lambda: os.environ.get(
            "ARTICLE_URL_TEMPLATE", "https://www.dongqiudi.com/articles/{article_id}"
        )
    )

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------
    log_level: str = field(
        default_factory=lambda: os.environ.get("LOG_LEVEL", "INFO")
    )

    def ensure_workspace(self) -> None:
        """Create the workspace directory if it does not exist."""
        self.workspace_dir.mkdir(parents=True, exist_ok=True)


# Module-level singleton, import this everywhere:
#   from statecrawl.config import settings
settings = Settings()
