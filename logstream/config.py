from __future__ import annotations

from pathlib import Path

from dotenv import load_dotenv
from pydantic_settings import BaseSettings

load_dotenv(Path(__file__).resolve().parent / ".env")


class Settings(BaseSettings):
    # App
    app_env: str = "development"
    app_port: int = 3001
    app_host: str = "0.0.0.0"
    cors_origins: str = "http://localhost:3000"

    # Log source
    default_source_id: str = "redis"
    tail_binary: str = "docker"
    backlog_lines: int = 100
    not_found_pattern: str = r"No such container"
    # Comma-separated "source_id=kind" pairs, e.g. "b0553f497026=redis"
    source_aliases: str = "b0553f497026=redis"

    # Synthetic fallback
    synthetic_min_interval_ms: int = 500
    synthetic_max_interval_ms: int = 1500

    # Subscriptions
    teardown_timeout_seconds: float = 2.0
    recent_window_size: int = 500

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def source_alias_map(self) -> dict[str, str]:
        aliases: dict[str, str] = {}
        for pair in self.source_aliases.split(","):
            source_id, sep, kind = pair.partition("=")
            if sep and source_id.strip() and kind.strip():
                aliases[source_id.strip()] = kind.strip()
        return aliases

    @property
    def is_dev(self) -> bool:
        return self.app_env == "development"

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
