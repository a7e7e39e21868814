"""
Process-level runtime configuration, read from the environment.

Operator-editable settings live in the database (see settings/); this only
covers what must be known before the database is opened.
"""

import os
from dataclasses import dataclass, field
from typing import List, Mapping, Optional


ENV_DB_PATH = "FFCONDUCTOR_DB_PATH"
ENV_LOG_LEVEL = "FFCONDUCTOR_LOG_LEVEL"
ENV_CORS_ORIGINS = "FFCONDUCTOR_CORS_ORIGINS"

DEFAULT_DB_PATH = "~/.ffconductor/data.db"
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_CORS_ORIGINS = ["http://localhost:5173"]  # Vite dev server


@dataclass
class RuntimeConfig:
    """Startup configuration for the CLI and the HTTP app."""

    db_path: str = DEFAULT_DB_PATH
    log_level: str = DEFAULT_LOG_LEVEL
    cors_origins: List[str] = field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "RuntimeConfig":
        env = os.environ if environ is None else environ

        origins = [
            origin.strip()
            for origin in env.get(ENV_CORS_ORIGINS, "").split(",")
            if origin.strip()
        ]

        return cls(
            db_path=env.get(ENV_DB_PATH) or DEFAULT_DB_PATH,
            log_level=(env.get(ENV_LOG_LEVEL) or DEFAULT_LOG_LEVEL).upper(),
            cors_origins=origins or list(DEFAULT_CORS_ORIGINS),
        )

    @property
    def resolved_db_path(self) -> str:
        """`db_path` with `~` expanded; `:memory:` passes through."""
        if self.db_path == ":memory:":
            return self.db_path
        return os.path.expanduser(self.db_path)
