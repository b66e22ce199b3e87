"""
Environment-driven settings for the TaskDesk API.

Values come from the process environment, after a ``.env`` file in the
working directory has been loaded. Missing required values abort startup
with a ConfigError naming every missing variable.
"""

import os
from typing import List, Mapping, Optional

from dotenv import load_dotenv

from .domain import ConfigError

BACKENDS = ("supabase", "sqlite", "memory")

REQUIRED_BY_BACKEND = {
    "supabase": ["SUPABASE_URL", "SUPABASE_SERVICE_ROLE_KEY"],
    "sqlite": [],
    "memory": [],
}

class Settings:
    """Resolved runtime configuration."""

    def __init__(
        self,
        backend: str = "memory",
        supabase_url: Optional[str] = None,
        supabase_key: Optional[str] = None,
        db_path: str = "taskdesk.db",
        host: str = "0.0.0.0",
        port: int = 3001,
        env: str = "development",
        cors_origins: Optional[List[str]] = None,
        log_level: Optional[str] = None,
    ):
        self.backend = backend
        self.supabase_url = supabase_url.rstrip("/") if supabase_url else None
        self.supabase_key = supabase_key
        self.db_path = db_path
        self.host = host
        self.port = port
        self.env = env
        self.cors_origins = cors_origins or ["http://localhost:3000"]
        self.log_level = log_level or ("INFO" if self.is_production else "DEBUG")

    @property
    def is_production(self) -> bool:
        return self.env == "production"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, dotenv: bool = True) -> "Settings":
        """Build settings from ``environ`` (defaults to ``os.environ``)."""
        if environ is None:
            if dotenv:
                load_dotenv()
            environ = os.environ

        backend = environ.get("TASKDESK_BACKEND", "supabase").strip().lower()
        if backend not in BACKENDS:
            raise ConfigError(f"TASKDESK_BACKEND must be one of: {', '.join(BACKENDS)} (got {backend!r})")

        missing = [name for name in REQUIRED_BY_BACKEND[backend] if not environ.get(name)]
        if missing:
            raise ConfigError("Missing required environment variables: " + ", ".join(missing))

        port_text = environ.get("PORT", "3001")
        try:
            port = int(port_text)
        except ValueError:
            raise ConfigError(f"PORT must be an integer (got {port_text!r})")

        origins = [o.strip() for o in environ.get("CORS_ORIGINS", "http://localhost:3000").split(",") if o.strip()]

        return cls(
            backend=backend,
            supabase_url=environ.get("SUPABASE_URL"),
            supabase_key=environ.get("SUPABASE_SERVICE_ROLE_KEY"),
            db_path=environ.get("TASKDESK_DB_PATH", "taskdesk.db"),
            host=environ.get("HOST", "0.0.0.0"),
            port=port,
            env=environ.get("APP_ENV", "development").strip().lower(),
            cors_origins=origins,
            log_level=environ.get("LOG_LEVEL"),
        )
