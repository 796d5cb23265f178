"""Application and database configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

_TRUTHY = ("1", "true", "yes")


@dataclass
class DatabaseConfig:
    """Database connection configuration.

    Supports sqlite:/// and postgresql:// URL schemes.
    """

    url: str

    @classmethod
    def from_env(cls, base_path: Path | None = None) -> DatabaseConfig:
        """Create config from environment variables.

        Resolution order:
        1. DATABASE_URL env var (standard)
        2. COLLECTRA_DB_PATH env var (converted to sqlite:/// URL)
        3. Default: sqlite:///{base_path}/data/collectra.db
        """
        url = os.environ.get("DATABASE_URL")
        if url:
            return cls(url=url)

        db_path = os.environ.get("COLLECTRA_DB_PATH")
        if db_path:
            return cls(url=f"sqlite:///{db_path}")

        if base_path:
            return cls(url=f"sqlite:///{base_path / 'data' / 'collectra.db'}")

        return cls(url="sqlite:///collectra.db")

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

    @property
    def is_postgresql(self) -> bool:
        return self.url.startswith("postgresql")

    @property
    def sqlalchemy_url(self) -> str:
        """URL suitable for SQLAlchemy engine creation.

        Ensures postgresql:// URLs use the psycopg (v3) driver.
        """
        if self.url.startswith("postgresql://"):
            return self.url.replace("postgresql://", "postgresql+psycopg://", 1)
        return self.url

    def ensure_directory(self) -> None:
        """Create the parent directory of a file-backed SQLite database."""
        if not self.is_sqlite:
            return
        sqlite_path = self.url.replace("sqlite:///", "", 1)
        if sqlite_path and sqlite_path != ":memory:" and not sqlite_path.startswith("sqlite"):
            Path(sqlite_path).parent.mkdir(parents=True, exist_ok=True)


@dataclass
class AppConfig:
    """Runtime settings for the HTTP engine."""

    database: DatabaseConfig
    metadata_path: Path
    log_file: Path | None = None
    log_level: str = "info"
    port: int = 8000
    hook_timeout: float | None = 30.0
    webhook_timeout: float = 10.0
    secret_key: str = "dev-secret-key-change-in-production"
    auth_enabled: bool = True
    users_slug: str = "users"
    health_path: str | None = "/health"
    health_data: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_env(cls, base_path: Path | None = None) -> AppConfig:
        """Create config from COLLECTRA_* environment variables.

        Args:
            base_path: Project root used for default data/log/metadata paths.
                Defaults to the current working directory.
        """
        base = base_path or Path.cwd()

        hook_timeout = float(os.environ.get("COLLECTRA_HOOK_TIMEOUT", "30"))
        log_file = os.environ.get("COLLECTRA_LOG_FILE")
        health_path = os.environ.get("COLLECTRA_HEALTH_PATH", "/health")

        return cls(
            database=DatabaseConfig.from_env(base),
            metadata_path=Path(
                os.environ.get("COLLECTRA_METADATA_PATH", str(base / "metadata"))
            ),
            log_file=Path(log_file) if log_file else base / "logs" / "collectra.log",
            log_level=os.environ.get("COLLECTRA_LOG_LEVEL", "info"),
            port=int(os.environ.get("COLLECTRA_PORT", "8000")),
            hook_timeout=hook_timeout if hook_timeout > 0 else None,
            webhook_timeout=float(os.environ.get("COLLECTRA_WEBHOOK_TIMEOUT", "10")),
            secret_key=os.environ.get(
                "COLLECTRA_SECRET_KEY", "dev-secret-key-change-in-production"
            ),
            auth_enabled=os.environ.get("COLLECTRA_DISABLE_AUTH", "").lower() not in _TRUTHY,
            users_slug=os.environ.get("COLLECTRA_USERS_SLUG", "users"),
            health_path=health_path or None,
        )
