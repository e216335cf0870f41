"""Kernel configuration — loaded once at initialization, immutable afterwards."""

import os
from typing import Mapping, Optional

from croniter import croniter
from pydantic import BaseModel, ConfigDict, Field, field_validator

NO_DATA_TIMEOUT_SECONDS = 72 * 3600


class PolicyConfig(BaseModel):
    """
    Defaults copied onto every new policy.

    The no-data timeout is not configurable; see NO_DATA_TIMEOUT_SECONDS.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    delay_threshold_seconds: int = Field(ge=0, default=4 * 3600)
    premium: int = Field(ge=0, default=1_000)
    claim_amount: int = Field(ge=0, default=10_000)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "PolicyConfig":
        """Build a config from FDI_* environment variables, falling back to defaults."""
        env = os.environ if environ is None else environ
        overrides = {}
        for field_name, var in (
            ("delay_threshold_seconds", "FDI_DELAY_THRESHOLD_SECONDS"),
            ("premium", "FDI_PREMIUM"),
            ("claim_amount", "FDI_CLAIM_AMOUNT"),
        ):
            if env.get(var):
                overrides[field_name] = int(env[var])
        return cls(**overrides)


class SweeperConfig(BaseModel):
    """Configuration for the Claim Sweeper."""

    heartbeat_interval_seconds: int = 300
    schedule: Optional[str] = None          # Cron expression, overrides heartbeat
    cooldown_seconds: int = 600
    circuit_breaker_threshold: int = Field(ge=1, default=5)

    @field_validator("schedule")
    @classmethod
    def validate_schedule(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not croniter.is_valid(v):
            raise ValueError(f"Invalid cron schedule '{v}'")
        return v
