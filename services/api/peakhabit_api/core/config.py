from __future__ import annotations

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="PEAKHABIT_", extra="ignore")

    allowed_hosts: str = "localhost,127.0.0.1,testserver"
    cors_allowed_origins: str = "http://localhost:5173,http://127.0.0.1:5173"
    log_json: bool = False
    log_level: str = "INFO"

    db_url: str = "sqlite:///./artifacts/peakhabit.db"

    auth_jwt_secret: str = "dev-secret-change-me"
    auth_jwt_issuer: str = "peakhabit-local"
    auth_jwt_exp_minutes: int = 60 * 24 * 7

    # Canonical "today" is computed at this fixed offset (no DST). -3 = BRT.
    day_boundary_utc_offset_hours: int = -3

    raid_time_budget_days: int = 7
    raid_failure_hp_penalty: int = 25

    # When the database is unreachable, profile reads degrade to a default
    # snapshot (flagged degraded) instead of failing.
    storage_fallback_enabled: bool = True

    # Optional periodic sweep of expired raids (lazy sweep on read otherwise).
    scheduler_enabled: bool = False
    scheduler_interval_minutes: int = 60

    # Optional: seed default daily challenges + dungeon on boot (idempotent).
    seed_on_boot: bool = False

    @field_validator("day_boundary_utc_offset_hours")
    @classmethod
    def _validate_offset(cls, v: int) -> int:
        if not -12 <= int(v) <= 14:
            raise ValueError(
                "PEAKHABIT_DAY_BOUNDARY_UTC_OFFSET_HOURS must be within -12..+14 "
                f"(got {v!r})"
            )
        return int(v)

    @field_validator("raid_time_budget_days", "raid_failure_hp_penalty")
    @classmethod
    def _validate_non_negative(cls, v: int) -> int:
        if int(v) < 0:
            raise ValueError("raid settings must be non-negative")
        return int(v)
