"""
Claim Evaluator — the policy lifecycle state machine.

States:
  ACTIVE → TERMINATED (denied) | CLAIMED (paid)
Both terminal states are final; evaluating a terminal policy is rejected
with PolicyNotActive, so the evaluator is safe to call on any cadence.

Decision procedure, in priority order (order matters: actual arrival may be
unknown until rule 4):
  1. Flight canceled                         → TERMINATED / DENIED
  2. No arrival and now >= TP + 72h          → TERMINATED / DENIED, status OTHER
  3. No arrival yet                          → stay ACTIVE (awaiting data)
  4. TA <= TP + CT                           → TERMINATED / DENIED (on time)
  5. Otherwise                               → CLAIMED / PAID, one payout

Payout reconciliation: the transfer is issued before the policy is committed
as CLAIMED, under the policy lock. A failed transfer leaves the policy
untouched and Active; the retry reuses the same idempotency key.
"""

import logging
import time
from typing import Optional

from fdi_kernel.audit.ledger import AuditLedger
from fdi_kernel.authorization.roles import EVALUATE_ROLES, Caller, require_role
from fdi_kernel.errors import PolicyNotActive, SettlementFailure
from fdi_kernel.models.config import NO_DATA_TIMEOUT_SECONDS
from fdi_kernel.models.evaluation import Decision, EvaluationResult
from fdi_kernel.models.events import EventKind
from fdi_kernel.models.policy import ClaimOutcome, FlightStatus, Policy, PolicyStatus
from fdi_kernel.models.settlement import PayoutInstruction, SettlementReceipt
from fdi_kernel.policy_store.store import PolicyStore
from fdi_kernel.settlement.gateway import SettlementGateway

logger = logging.getLogger(__name__)


def decide(
    policy: Policy,
    now: int,
    no_data_timeout: int = NO_DATA_TIMEOUT_SECONDS,
) -> Decision:
    """Pick the branch of the decision procedure. Pure; reads no clock."""
    if policy.flight_status == FlightStatus.CANCELED:
        return Decision.CANCELED

    if policy.actual_arrival is None:
        if now >= policy.scheduled_arrival + no_data_timeout:
            return Decision.NO_DATA_TIMEOUT
        return Decision.AWAITING_DATA

    if policy.actual_arrival <= policy.scheduled_arrival + policy.delay_threshold:
        return Decision.ON_TIME

    return Decision.LATE


def apply_decision(policy: Policy, decision: Decision, now: int) -> Policy:
    """Return a copy of the policy with the decision's state transition applied."""
    updated = policy.model_copy(deep=True)
    updated.last_evaluated_at = now

    if decision == Decision.AWAITING_DATA:
        return updated

    if decision == Decision.LATE:
        updated.status = PolicyStatus.CLAIMED
        updated.claim_outcome = ClaimOutcome.PAID
        return updated

    updated.status = PolicyStatus.TERMINATED
    updated.claim_outcome = ClaimOutcome.DENIED
    if decision == Decision.NO_DATA_TIMEOUT:
        # Absence of data, not an on-time arrival, caused the denial
        updated.flight_status = FlightStatus.OTHER
    return updated


def payout_instruction_id(policy_id: int) -> str:
    """Idempotency key shared by every payout attempt for a policy."""
    return f"payout-{policy_id}"


class ClaimEvaluator:
    """
    Evaluates Active policies against observed flight data and the
    caller-supplied current time.
    """

    def __init__(
        self,
        store: PolicyStore,
        gateway: SettlementGateway,
        ledger: Optional[AuditLedger] = None,
    ):
        self.store = store
        self.gateway = gateway
        self.ledger = ledger or store.ledger

    def evaluate(
        self,
        caller: Caller,
        policy_id: int,
        now: Optional[int] = None,
    ) -> EvaluationResult:
        """
        Run the decision procedure once for a policy.

        Raises PolicyNotActive for terminal policies and SettlementFailure
        when the payout for a late flight does not complete.
        """
        require_role(caller, *EVALUATE_ROLES)
        if now is None:
            now = int(time.time())

        with self.store.policy_lock(policy_id):
            policy = self.store.get_policy(policy_id)
            if not policy.is_active:
                raise PolicyNotActive(
                    f"Policy {policy_id} is already {policy.status.value}"
                )

            decision = decide(policy, now)
            updated = apply_decision(policy, decision, now)

            receipt = None
            if decision == Decision.LATE:
                receipt = self._settle(policy, now)

            self.store.commit(updated)
            self._notify(updated, decision, now, receipt)

        return EvaluationResult(
            policy=updated,
            decision=decision,
            evaluated_at=now,
            receipt=receipt,
        )

    def _settle(self, policy: Policy, now: int) -> SettlementReceipt:
        """Issue the claim payout. Raises SettlementFailure without touching the policy."""
        instruction = PayoutInstruction(
            instruction_id=payout_instruction_id(policy.id),
            policy_id=policy.id,
            holder=policy.holder,
            amount=policy.claim_amount,
            issued_at=now,
        )
        try:
            receipt = self.gateway.payout(instruction)
        except Exception as e:
            self._record_payout_failure(policy, now, str(e))
            raise SettlementFailure(
                f"Payout for policy {policy.id} failed: {e}"
            ) from e

        if not receipt.success:
            self._record_payout_failure(policy, now, receipt.error or "unknown")
            raise SettlementFailure(
                f"Payout for policy {policy.id} failed: {receipt.error}"
            )
        return receipt

    def _record_payout_failure(self, policy: Policy, now: int, error: str) -> None:
        logger.warning(
            "Payout of %d to %s for policy %d failed: %s",
            policy.claim_amount, policy.holder, policy.id, error,
        )
        self.ledger.emit(
            EventKind.PAYOUT_FAILED,
            policy_id=policy.id,
            holder=policy.holder,
            occurred_at=now,
            amount=policy.claim_amount,
            error=error,
        )

    def _notify(
        self,
        policy: Policy,
        decision: Decision,
        now: int,
        receipt: Optional[SettlementReceipt],
    ) -> None:
        if decision == Decision.AWAITING_DATA:
            logger.debug("Policy %d awaiting flight data", policy.id)
            self.ledger.emit(
                EventKind.AWAITING_DATA,
                policy_id=policy.id,
                holder=policy.holder,
                occurred_at=now,
                timeout_at=policy.scheduled_arrival + NO_DATA_TIMEOUT_SECONDS,
            )
            return

        if decision == Decision.LATE:
            logger.info(
                "Policy %d claimed: paid %d to %s (ref %s)",
                policy.id, policy.claim_amount, policy.holder, receipt.reference,
            )
            self.ledger.emit(
                EventKind.POLICY_CLAIMED,
                policy_id=policy.id,
                holder=policy.holder,
                occurred_at=now,
                amount=policy.claim_amount,
                reference=receipt.reference,
            )
            return

        logger.info("Policy %d terminated: %s", policy.id, decision.value)
        self.ledger.emit(
            EventKind.POLICY_TERMINATED,
            policy_id=policy.id,
            holder=policy.holder,
            occurred_at=now,
            reason=decision.value,
        )
