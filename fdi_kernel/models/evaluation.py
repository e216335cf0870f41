"""Evaluation Result — output of one ClaimEvaluator run."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel

from fdi_kernel.models.policy import Policy
from fdi_kernel.models.settlement import SettlementReceipt


class Decision(str, Enum):
    """Which branch of the decision procedure fired."""
    CANCELED = "canceled"
    NO_DATA_TIMEOUT = "no_data_timeout"
    AWAITING_DATA = "awaiting_data"
    ON_TIME = "on_time"
    LATE = "late"


class EvaluationResult(BaseModel):
    policy: Policy
    decision: Decision
    evaluated_at: int
    receipt: Optional[SettlementReceipt] = None

    @property
    def terminal(self) -> bool:
        return self.policy.is_terminal
