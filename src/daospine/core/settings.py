"""
Centralized settings for daospine.

Manifesto:
    Configuration should be explicit, validated, and environment-driven.
    ``DaoSettings`` holds everything daospine itself reads: where the
    database lives, how audit records are emitted, whether ``save`` is
    insert-only, and where native query files are found.

    - **Pydantic validation:** Type-checked at startup, not at call time
    - **Environment-driven:** ``DAOSPINE_*`` env vars and ``.env`` files
    - **Sensible defaults:** In-memory SQLite, auditing on, console logs

Examples:
    >>> from daospine.core.settings import get_settings
    >>> settings = get_settings()
    >>> settings.audit_enabled
    True

Tags:
    settings, configuration, pydantic, environment, daospine
"""

from __future__ import annotations

from pathlib import Path

try:
    from pydantic_settings import BaseSettings, SettingsConfigDict
except ImportError as exc:  # pragma: no cover
    raise ImportError(
        "daospine.core.settings requires pydantic-settings. Install it with: pip install pydantic-settings"
    ) from exc

from pydantic import Field, field_validator


class DaoSettings(BaseSettings):
    """daospine configuration.

    Fields
    ──────
    database_url             : SQLAlchemy URL used by ``create_dao_engine``
    database_echo            : Echo SQL through the engine logger
    database_pool_size       : Pool size (ignored for SQLite)
    database_max_overflow    : Pool overflow (ignored for SQLite)
    audit_enabled            : Default for the DAO audit policy
    audit_defer_until_commit : Emit audit records only after commit
    audit_actor              : Actor recorded on audit rows
    strict_insert            : ``save`` refuses any assigned identifier
    native_query_dir         : Base directory for native SQL files
    log_level / log_json     : structlog configuration
    """

    model_config = SettingsConfigDict(
        env_prefix="DAOSPINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Database ─────────────────────────────────────────────────
    database_url: str = Field(default="sqlite:///:memory:")
    database_echo: bool = Field(default=False)
    database_pool_size: int | None = Field(default=None, ge=1)
    database_max_overflow: int | None = Field(default=None, ge=0)

    # ── Audit ────────────────────────────────────────────────────
    audit_enabled: bool = Field(default=True)
    audit_defer_until_commit: bool = Field(default=False)
    audit_actor: str | None = Field(default=None)

    # ── Persistence ──────────────────────────────────────────────
    strict_insert: bool = Field(
        default=False,
        description="Reject save() for any entity whose identifier is already assigned",
    )

    # ── Native queries ───────────────────────────────────────────
    native_query_dir: Path = Field(
        default_factory=lambda: Path.cwd() / "queries",
        description="Directory that relative native query paths resolve against",
    )

    # ── Observability ────────────────────────────────────────────
    service_name: str = Field(default="daospine")
    log_level: str = Field(default="INFO")
    log_json: bool | None = Field(default=None)

    @field_validator("log_level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {value}")
        return level

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


_settings_cache: dict[str, DaoSettings] = {}


def get_settings(*, _force_reload: bool = False) -> DaoSettings:
    """Load, validate, and cache a :class:`DaoSettings` instance.

    Parameters
    ----------
    _force_reload:
        Bypass cache and re-read the environment.
    """
    if not _force_reload and "default" in _settings_cache:
        return _settings_cache["default"]
    settings = DaoSettings()
    _settings_cache["default"] = settings
    return settings


def clear_settings_cache() -> None:
    """Drop the cached settings (tests)."""
    _settings_cache.clear()


__all__ = ["DaoSettings", "get_settings", "clear_settings_cache"]
