from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    """Runtime settings loaded from the environment with fail-fast validation."""

    database_url: str = "sqlite+aiosqlite:///:memory:"
    retry_attempts: int = 3
    retry_base_delay: float = 1.0
    success_clear_seconds: float = 3.0
    simulation_speed: str = "NORMAL"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("MDKSYS_DATABASE_URL", "sqlite+aiosqlite:///:memory:"),
            retry_attempts=_get_env_int("MDKSYS_RETRY_ATTEMPTS", default=3, minimum=1),
            retry_base_delay=_get_env_float("MDKSYS_RETRY_BASE_DELAY", default=1.0, minimum=0.0),
            success_clear_seconds=_get_env_float(
                "MDKSYS_SUCCESS_CLEAR_SECONDS", default=3.0, minimum=0.0,
            ),
            simulation_speed=os.getenv("MDKSYS_SIMULATION_SPEED", "NORMAL"),
        ).normalized()

    def normalized(self) -> "Settings":
        """Validate and normalize all fields. Raises ValueError on invalid configuration."""
        database_url = self.database_url.strip()
        if not database_url:
            raise ValueError("MDKSYS_DATABASE_URL must be non-empty")
        if self.retry_attempts > 10:
            raise ValueError(f"MDKSYS_RETRY_ATTEMPTS must be <= 10, got: {self.retry_attempts}")

        simulation_speed = self.simulation_speed.strip().upper()
        if simulation_speed not in {"FAST", "NORMAL", "SLOW", "DEBUG"}:
            raise ValueError("MDKSYS_SIMULATION_SPEED must be one of: FAST, NORMAL, SLOW, DEBUG")
        return Settings(
            database_url=database_url,
            retry_attempts=self.retry_attempts,
            retry_base_delay=self.retry_base_delay,
            success_clear_seconds=self.success_clear_seconds,
            simulation_speed=simulation_speed,
        )


def _get_env_int(name: str, *, default: int, minimum: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got: {raw!r}") from exc
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got: {value}")
    return value


def _get_env_float(name: str, *, default: float, minimum: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got: {raw!r}") from exc
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got: {value}")
    return value
