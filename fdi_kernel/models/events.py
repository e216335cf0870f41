"""Policy Event — notification emitted by the kernel and kept in the audit ledger."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel


class EventKind(str, Enum):
    POLICY_CREATED = "policy_created"
    FLIGHT_INFO_UPDATED = "flight_info_updated"
    AWAITING_DATA = "awaiting_data"
    POLICY_TERMINATED = "policy_terminated"
    POLICY_CLAIMED = "policy_claimed"
    PAYOUT_FAILED = "payout_failed"
    FUNDS_WITHDRAWN = "funds_withdrawn"


class PolicyEvent(BaseModel):
    """
    One notification. Events are audit metadata: appending one never counts
    as a change to the policy it refers to.
    """

    id: str
    kind: EventKind
    policy_id: Optional[int] = None         # None for treasury events
    holder: Optional[str] = None
    occurred_at: int
    details: dict = {}

    # INTEGRITY
    signature: str = ""
    prior_record_hash: Optional[str] = None
