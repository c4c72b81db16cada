"""Centralised configuration helper.

This module eliminates scattered ``os.getenv`` calls by exposing a **single**
process-wide :class:`Settings` instance (retrieved via :func:`get_settings`).

Every sync limit (batch size, page size, retention window …) is tunable via an
environment variable so operators can adjust them per deployment without a
code change.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

# ``_REPO_ROOT`` points to the top-level repository directory (one level
# **above** the "backend" package).  We use ``parents[3]`` because this file is
# located at ``backend/cloudsync/config/__init__.py``.

_REPO_ROOT = Path(__file__).resolve().parents[3]

_DAY_SECONDS = 24 * 3600


def _truthy(value: str | None) -> bool:  # noqa: D401 – small helper
    """Return *True* when *value* looks like an affirmative string."""

    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _int_env(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


@dataclass
class Settings:  # noqa: D401 – simple data container
    """Lightweight settings container populated from environment variables."""

    # Runtime flags -----------------------------------------------------
    testing: bool
    auth_disabled: bool

    # Secrets -----------------------------------------------------------
    jwt_secret: str

    # Database ---------------------------------------------------------
    database_url: str

    # Misc
    log_level: str
    environment: Any
    allowed_cors_origins: str

    # Push limits -------------------------------------------------------
    max_push_ops: int
    max_op_id_length: int
    max_payload_bytes: int

    # Pull / watch limits ----------------------------------------------
    max_pull_limit: int
    watch_default_limit: int

    # Retention GC ------------------------------------------------------
    default_retention_seconds: int
    default_gc_batch_size: int
    max_gc_continuations: int
    gc_continuation_delay_seconds: int
    max_workspaces_per_gc_run: int
    gc_sweep_interval_seconds: int
    gc_sweep_spacing_seconds: int
    gc_activity_window_seconds: int
    gc_activity_sample_size: int

    # Version allocator -------------------------------------------------
    version_cas_attempts: int

    # Helper for tests to override values at runtime -------------------
    def override(self, **kwargs: Any) -> None:  # noqa: D401 – test util
        for key, value in kwargs.items():
            if not hasattr(self, key):  # pragma: no cover – safety
                raise AttributeError(f"Settings has no attribute '{key}'")
            setattr(self, key, value)


# ---------------------------------------------------------------------------
# Singleton accessor – values loaded only once per interpreter
# ---------------------------------------------------------------------------


def _load_settings() -> Settings:  # noqa: D401 – helper
    """Populate :class:`Settings` from environment variables."""

    node_env = os.getenv("NODE_ENV", "development")

    if node_env == "test":
        env_path = _REPO_ROOT / ".env.test"
        if not env_path.exists():
            env_path = _REPO_ROOT / ".env"
    else:
        env_path = _REPO_ROOT / ".env"

    if env_path.exists():
        # Preserve TESTING if it was explicitly set by the test-runner
        current_testing = os.getenv("TESTING")
        load_dotenv(env_path, override=True)
        if current_testing:
            os.environ["TESTING"] = current_testing

    testing = _truthy(os.getenv("TESTING"))

    return Settings(
        testing=testing,
        auth_disabled=_truthy(os.getenv("AUTH_DISABLED")) or testing,
        jwt_secret=os.getenv("JWT_SECRET", "dev-secret"),
        database_url=os.getenv("DATABASE_URL", ""),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        environment=os.getenv("ENVIRONMENT"),
        allowed_cors_origins=os.getenv("ALLOWED_CORS_ORIGINS", ""),
        max_push_ops=_int_env("SYNC_MAX_PUSH_OPS", 100),
        max_op_id_length=_int_env("SYNC_MAX_OP_ID_LENGTH", 64),
        max_payload_bytes=_int_env("SYNC_MAX_PAYLOAD_BYTES", 64 * 1024),
        max_pull_limit=_int_env("SYNC_MAX_PULL_LIMIT", 500),
        watch_default_limit=_int_env("SYNC_WATCH_DEFAULT_LIMIT", 100),
        default_retention_seconds=_int_env("SYNC_RETENTION_SECONDS", 30 * _DAY_SECONDS),
        default_gc_batch_size=_int_env("SYNC_GC_BATCH_SIZE", 100),
        max_gc_continuations=_int_env("SYNC_GC_MAX_CONTINUATIONS", 10),
        gc_continuation_delay_seconds=_int_env("SYNC_GC_CONTINUATION_DELAY_SECONDS", 60),
        max_workspaces_per_gc_run=_int_env("SYNC_GC_MAX_WORKSPACES", 50),
        gc_sweep_interval_seconds=_int_env("SYNC_GC_SWEEP_INTERVAL_SECONDS", 3600),
        gc_sweep_spacing_seconds=_int_env("SYNC_GC_SWEEP_SPACING_SECONDS", 1),
        gc_activity_window_seconds=_int_env("SYNC_GC_ACTIVITY_WINDOW_SECONDS", 7 * _DAY_SECONDS),
        gc_activity_sample_size=_int_env("SYNC_GC_ACTIVITY_SAMPLE_SIZE", 1000),
        version_cas_attempts=_int_env("SYNC_VERSION_CAS_ATTEMPTS", 5),
    )


# ------------------------------------------------------------------
# Runtime validation – fail fast on nonsensical limits.
# ------------------------------------------------------------------


def _validate_required(settings: Settings) -> None:  # noqa: D401 – helper
    """Abort startup when a limit is configured to a value the engine cannot honour."""

    positive = (
        "max_push_ops",
        "max_op_id_length",
        "max_payload_bytes",
        "max_pull_limit",
        "watch_default_limit",
        "default_gc_batch_size",
        "max_workspaces_per_gc_run",
        "gc_sweep_interval_seconds",
        "gc_activity_sample_size",
        "version_cas_attempts",
    )
    for name in positive:
        if getattr(settings, name) <= 0:
            raise RuntimeError(f"Setting {name} must be positive (got {getattr(settings, name)})")

    if settings.testing or settings.auth_disabled:
        return

    weak = settings.jwt_secret.strip() in {"", "dev-secret"} or len(settings.jwt_secret) < 16
    if weak:
        raise RuntimeError(
            "CRITICAL: JWT_SECRET must be >=16 chars and not 'dev-secret' when authentication is enabled.\n"
            "Set it in your .env file or deployment environment."
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:  # noqa: D401 – public accessor
    """Return the cached :class:`Settings` instance."""

    settings = _load_settings()
    _validate_required(settings)
    return settings


__all__ = ["Settings", "get_settings"]
