"""Policy — one flight-delay insurance contract and its lifecycle fields."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class PolicyStatus(str, Enum):
    ACTIVE = "active"
    TERMINATED = "terminated"
    CLAIMED = "claimed"


class ClaimOutcome(str, Enum):
    NONE = "none"
    PAID = "paid"
    DENIED = "denied"


class FlightStatus(str, Enum):
    NORMAL = "normal"
    CANCELED = "canceled"
    OTHER = "other"     # Set only when the no-data timeout denies a claim


TERMINAL_STATUSES = frozenset({PolicyStatus.TERMINATED, PolicyStatus.CLAIMED})


class Policy(BaseModel):
    """
    A single flight-delay policy.

    Timestamps are epoch seconds, durations are seconds, amounts are minor units.
    premium, claim_amount and delay_threshold are captured at creation and
    never recomputed.
    """

    id: int
    holder: str
    flight_code: str
    scheduled_departure: int                # T1
    scheduled_arrival: int                  # TP
    actual_arrival: Optional[int] = None    # TA, None = not yet reported
    last_evaluated_at: Optional[int] = None  # Audit only, never read by decisions
    delay_threshold: int = Field(ge=0)      # CT
    premium: int = Field(ge=0)
    claim_amount: int = Field(ge=0)
    status: PolicyStatus = PolicyStatus.ACTIVE
    claim_outcome: ClaimOutcome = ClaimOutcome.NONE
    flight_status: FlightStatus = FlightStatus.NORMAL
    created_at: Optional[int] = None

    @property
    def is_active(self) -> bool:
        return self.status == PolicyStatus.ACTIVE

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES
