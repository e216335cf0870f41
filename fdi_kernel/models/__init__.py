"""Flight-delay insurance kernel data models."""

from fdi_kernel.models.config import NO_DATA_TIMEOUT_SECONDS, PolicyConfig, SweeperConfig
from fdi_kernel.models.evaluation import Decision, EvaluationResult
from fdi_kernel.models.events import EventKind, PolicyEvent
from fdi_kernel.models.policy import (
    ClaimOutcome,
    FlightStatus,
    Policy,
    PolicyStatus,
)
from fdi_kernel.models.settlement import PayoutInstruction, SettlementReceipt
from fdi_kernel.models.sweeper import PayoutBackoffState

__all__ = [
    "ClaimOutcome",
    "Decision",
    "EvaluationResult",
    "EventKind",
    "FlightStatus",
    "NO_DATA_TIMEOUT_SECONDS",
    "PayoutBackoffState",
    "PayoutInstruction",
    "Policy",
    "PolicyConfig",
    "PolicyEvent",
    "PolicyStatus",
    "SettlementReceipt",
    "SweeperConfig",
]
