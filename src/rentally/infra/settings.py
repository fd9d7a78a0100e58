"""Deployment settings loaded from environment variables.

Settings are read once into a frozen dataclass. ``check_required`` is called
at application startup so a missing secret fails the deploy instead of the
first customer request.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import Mapping


class ConfigurationError(RuntimeError):
    """Raised when required configuration is missing or malformed."""


@dataclass(frozen=True)
class LeadTimePolicy:
    """Minimum notice for resources that need heavy transport."""

    lead_days: int = 2
    cutoff_hour: int = 15


DEFAULT_LEAD_TIME_POLICIES: dict[str, LeadTimePolicy] = {"heavy": LeadTimePolicy()}

# Required variables per app role
_REQUIRED = {
    "public": ("DATABASE_URL", "STRIPE_SECRET_KEY", "STRIPE_WEBHOOK_SECRET"),
    "worker": ("DATABASE_URL",),
}


@dataclass(frozen=True)
class Settings:
    """Typed view over the environment."""

    hold_window_minutes: int = 30
    local_timezone: str = "Europe/Lisbon"
    lead_time_policies: Mapping[str, LeadTimePolicy] = field(
        default_factory=lambda: dict(DEFAULT_LEAD_TIME_POLICIES)
    )
    lock_timeout_ms: int = 5000
    statement_timeout_ms: int = 8000
    db_connect_timeout_s: int = 5
    job_batch_limit: int = 10
    job_max_attempts: int = 3
    hold_expiry_grace_seconds: int = 120
    currency: str = "eur"
    app_base_url: str = "http://localhost:3000"
    ops_notification_email: str | None = None

    def lead_time_policy(self, category: str | None) -> LeadTimePolicy | None:
        """Lead-time policy for a resource category, if any applies."""
        if not category:
            return None
        return self.lead_time_policies.get(category)

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "Settings":
        """Build settings from ``os.environ`` (or an explicit mapping).

        Raises:
            ConfigurationError: If a numeric variable or the lead-time JSON
                cannot be parsed.
        """
        env = os.environ if env is None else env

        return cls(
            hold_window_minutes=_int(env, "HOLD_WINDOW_MINUTES", 30),
            local_timezone=env.get("LOCAL_TIMEZONE", "Europe/Lisbon"),
            lead_time_policies=_parse_lead_time_policies(
                env.get("LEAD_TIME_POLICIES")
            ),
            lock_timeout_ms=_int(env, "LOCK_TIMEOUT_MS", 5000),
            statement_timeout_ms=_int(env, "STATEMENT_TIMEOUT_MS", 8000),
            db_connect_timeout_s=_int(env, "DB_CONNECT_TIMEOUT_S", 5),
            job_batch_limit=_int(env, "JOB_BATCH_LIMIT", 10),
            job_max_attempts=_int(env, "JOB_MAX_ATTEMPTS", 3),
            hold_expiry_grace_seconds=_int(env, "HOLD_EXPIRY_GRACE_SECONDS", 120),
            currency=env.get("CURRENCY", "eur").lower(),
            app_base_url=env.get("APP_BASE_URL", "http://localhost:3000").rstrip("/"),
            ops_notification_email=env.get("OPS_NOTIFICATION_EMAIL") or None,
        )


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e


def _parse_lead_time_policies(raw: str | None) -> dict[str, LeadTimePolicy]:
    """Parse ``{"heavy": {"lead_days": 2, "cutoff_hour": 15}}``."""
    if not raw:
        return dict(DEFAULT_LEAD_TIME_POLICIES)
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigurationError("LEAD_TIME_POLICIES is not valid JSON") from e
    if not isinstance(data, dict):
        raise ConfigurationError("LEAD_TIME_POLICIES must be a JSON object")

    policies: dict[str, LeadTimePolicy] = {}
    for category, value in data.items():
        if not isinstance(value, dict):
            raise ConfigurationError(
                f"LEAD_TIME_POLICIES[{category!r}] must be an object"
            )
        policy = LeadTimePolicy(
            lead_days=int(value.get("lead_days", 2)),
            cutoff_hour=int(value.get("cutoff_hour", 15)),
        )
        if not 0 <= policy.cutoff_hour <= 24 or policy.lead_days < 0:
            raise ConfigurationError(
                f"LEAD_TIME_POLICIES[{category!r}] out of range"
            )
        policies[category] = policy
    return policies


def check_required(role: str, env: Mapping[str, str] | None = None) -> None:
    """Fail fast when a required variable for ``role`` is missing.

    Raises:
        ConfigurationError: Listing every missing variable.
    """
    env = os.environ if env is None else env
    missing = [name for name in _REQUIRED.get(role, ()) if not env.get(name)]
    if missing:
        raise ConfigurationError(
            f"missing required configuration for role={role}: {', '.join(missing)}"
        )
    # Validate the parseable settings too
    Settings.from_env(env)


_settings: Settings | None = None


def get_settings() -> Settings:
    """Process-wide settings (loaded lazily, overridable in tests)."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def set_settings(settings: Settings | None) -> None:
    """Override (or reset with None) the cached settings."""
    global _settings
    _settings = settings
