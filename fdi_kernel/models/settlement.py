"""Settlement models — what the kernel asks the ledger to do, and what came back."""

from typing import Optional

from pydantic import BaseModel, Field


class PayoutInstruction(BaseModel):
    """
    A single claim payout. instruction_id is the idempotency key: every
    attempt for the same policy reuses it.
    """

    instruction_id: str
    policy_id: int
    holder: str
    amount: int = Field(ge=0)
    issued_at: int


class SettlementReceipt(BaseModel):
    """Outcome of a payout or withdrawal request."""

    instruction_id: str
    success: bool
    amount: int = 0
    reference: Optional[str] = None
    error: Optional[str] = None
