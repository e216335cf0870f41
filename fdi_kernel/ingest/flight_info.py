"""
Flight Info Ingest — the validated, authorized entry point for observed flight data.

Behavioral Contract:
- Callable only by an oracle or an administrator
- Rejects updates to policies that are no longer Active (PolicyNotActive)
- Overwrites actual arrival and flight status unconditionally (last write wins)
- Emits a flight_info_updated notification
"""

import logging
import time
from typing import Optional

from fdi_kernel.authorization.roles import UPDATE_FLIGHT_INFO_ROLES, Caller, require_role
from fdi_kernel.errors import PolicyNotActive
from fdi_kernel.models.events import EventKind
from fdi_kernel.models.policy import FlightStatus, Policy
from fdi_kernel.policy_store.store import PolicyStore

logger = logging.getLogger(__name__)


class FlightInfoIngest:
    def __init__(self, store: PolicyStore):
        self.store = store

    def update_flight_info(
        self,
        caller: Caller,
        policy_id: int,
        actual_arrival: Optional[int],
        flight_status: FlightStatus,
        received_at: Optional[int] = None,
    ) -> Policy:
        """
        Record observed flight data on an Active policy and return the updated copy.

        actual_arrival may be None when the oracle only knows the status
        (e.g. a cancellation).
        """
        require_role(caller, *UPDATE_FLIGHT_INFO_ROLES)
        flight_status = FlightStatus(flight_status)
        if received_at is None:
            received_at = int(time.time())

        with self.store.policy_lock(policy_id):
            policy = self.store.get_policy(policy_id)
            if not policy.is_active:
                raise PolicyNotActive(
                    f"Policy {policy_id} is {policy.status.value}; "
                    f"flight info can no longer change"
                )

            policy.actual_arrival = actual_arrival
            policy.flight_status = flight_status
            policy.last_evaluated_at = received_at
            self.store.commit(policy)

            # Ledger order must match commit order
            logger.info(
                "Flight info for policy %d updated by %s: arrival=%s status=%s",
                policy_id, caller.id, actual_arrival, flight_status.value,
            )
            self.store.ledger.emit(
                EventKind.FLIGHT_INFO_UPDATED,
                policy_id=policy_id,
                holder=policy.holder,
                occurred_at=received_at,
                actual_arrival=actual_arrival,
                flight_status=flight_status.value,
                source=caller.id,
            )
        return policy
