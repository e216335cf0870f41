"""
Policy Store — owns every policy and the per-holder index of policy ids.

Mutated by: policy creation, flight-info ingest, claim evaluation
Queried by: ClaimEvaluator, ClaimSweeper, read-only API surface

Concurrency: all mutations on one policy run under that policy's lock;
holder-index appends are serialized per holder. Policies on different
holders never contend beyond id allocation.
"""

import logging
import threading
import time
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional

from fdi_kernel.audit.ledger import AuditLedger
from fdi_kernel.errors import IncorrectPremium, InvalidSchedule, PolicyNotFound
from fdi_kernel.models.config import PolicyConfig
from fdi_kernel.models.events import EventKind
from fdi_kernel.models.policy import Policy, PolicyStatus

logger = logging.getLogger(__name__)


class PolicyStore:
    """
    In-memory policy store with explicit lifetime and injected configuration.
    Policies are never deleted; terminal policies are retained for audit.
    """

    def __init__(
        self,
        config: Optional[PolicyConfig] = None,
        ledger: Optional[AuditLedger] = None,
    ):
        self.config = config or PolicyConfig()
        self.ledger = ledger or AuditLedger()

        self._policies: Dict[int, Policy] = {}
        self._holder_index: Dict[str, List[int]] = {}
        self._next_id = 1

        self._id_lock = threading.Lock()
        self._locks_guard = threading.Lock()
        self._policy_locks: Dict[int, threading.RLock] = {}
        self._holder_locks: Dict[str, threading.Lock] = {}

    # --- Creation ---

    def create_policy(
        self,
        holder: str,
        flight_code: str,
        scheduled_departure: int,
        scheduled_arrival: int,
        paid_amount: int,
        created_at: Optional[int] = None,
    ) -> int:
        """
        Register a new Active policy and return its id.

        Raises InvalidSchedule if arrival is not after departure and
        IncorrectPremium if the payment differs from the configured premium.
        """
        if scheduled_arrival <= scheduled_departure:
            raise InvalidSchedule(
                f"Scheduled arrival {scheduled_arrival} is not after "
                f"scheduled departure {scheduled_departure}"
            )
        if paid_amount != self.config.premium:
            raise IncorrectPremium(
                f"Paid {paid_amount}, premium is {self.config.premium}"
            )

        if created_at is None:
            created_at = int(time.time())

        with self._holder_lock(holder):
            with self._id_lock:
                policy_id = self._next_id
                self._next_id += 1
                policy = Policy(
                    id=policy_id,
                    holder=holder,
                    flight_code=flight_code,
                    scheduled_departure=scheduled_departure,
                    scheduled_arrival=scheduled_arrival,
                    delay_threshold=self.config.delay_threshold_seconds,
                    premium=self.config.premium,
                    claim_amount=self.config.claim_amount,
                    created_at=created_at,
                )
                self._policies[policy_id] = policy
            self._holder_index.setdefault(holder, []).append(policy_id)

        logger.info(
            "Created policy %d for holder %s on flight %s",
            policy_id, holder, flight_code,
        )
        self.ledger.emit(
            EventKind.POLICY_CREATED,
            policy_id=policy_id,
            holder=holder,
            occurred_at=created_at,
            flight_code=flight_code,
        )
        return policy_id

    # --- Queries ---

    def get_policy(self, policy_id: int) -> Policy:
        """Get a copy of a policy. Raises PolicyNotFound for unknown ids."""
        policy = self._policies.get(policy_id)
        if policy is None:
            raise PolicyNotFound(f"Policy {policy_id} not found")
        return policy.model_copy(deep=True)

    def get_policies_by_holder(self, holder: str) -> List[int]:
        """Policy ids for a holder in creation order. Empty for unknown holders."""
        return list(self._holder_index.get(holder, []))

    def get_active_policy_ids(self) -> List[int]:
        """Ids of all policies still Active, in creation order."""
        return [
            pid for pid, p in sorted(list(self._policies.items()))
            if p.status == PolicyStatus.ACTIVE
        ]

    def count(self) -> int:
        return len(self._policies)

    # --- Mutation support ---

    @contextmanager
    def policy_lock(self, policy_id: int) -> Iterator[None]:
        """Serialize mutations on one policy. Raises PolicyNotFound for unknown ids."""
        if policy_id not in self._policies:
            raise PolicyNotFound(f"Policy {policy_id} not found")
        with self._locks_guard:
            lock = self._policy_locks.setdefault(policy_id, threading.RLock())
        with lock:
            yield

    def commit(self, policy: Policy) -> None:
        """
        Replace the stored policy with an updated copy.
        Callers must hold policy_lock(policy.id).
        """
        if policy.id not in self._policies:
            raise PolicyNotFound(f"Policy {policy.id} not found")
        self._policies[policy.id] = policy.model_copy(deep=True)

    @contextmanager
    def _holder_lock(self, holder: str) -> Iterator[None]:
        with self._locks_guard:
            lock = self._holder_locks.setdefault(holder, threading.Lock())
        with lock:
            yield
