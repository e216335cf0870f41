"""Sweeper backoff state for policies whose payout keeps failing."""

from typing import Optional

from pydantic import BaseModel


class PayoutBackoffState(BaseModel):
    """Prevents hammering the settlement gateway for a single policy."""

    policy_id: int
    last_failure_at: int
    consecutive_failures: int = 0
    cooldown_until: Optional[int] = None
    circuit_broken: bool = False
