"""
Claim Sweeper — periodic evaluation of every Active policy.

The decision core never waits on a clock; this loop supplies the cadence.
Each sweep evaluates all Active policies as an administrative caller.

Payout backoff:
  A policy whose payout fails enters a cooldown. After repeated failures it
  is circuit-broken and queued for an operator, who resolves the escalation
  to put it back into rotation.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Dict, List, Optional
from uuid import uuid4

from croniter import croniter

from fdi_kernel.authorization.roles import Caller, Role
from fdi_kernel.errors import PolicyNotActive, SettlementFailure
from fdi_kernel.evaluator.engine import ClaimEvaluator
from fdi_kernel.models.config import SweeperConfig
from fdi_kernel.models.sweeper import PayoutBackoffState
from fdi_kernel.policy_store.store import PolicyStore

logger = logging.getLogger(__name__)

SWEEPER_CALLER = Caller(id="claim_sweeper", roles=frozenset({Role.ADMIN}))


class ClaimSweeper:
    def __init__(
        self,
        store: PolicyStore,
        evaluator: ClaimEvaluator,
        config: Optional[SweeperConfig] = None,
        caller: Caller = SWEEPER_CALLER,
    ):
        self.store = store
        self.evaluator = evaluator
        self.config = config or SweeperConfig()
        self.caller = caller

        self._backoff: Dict[int, PayoutBackoffState] = {}
        self._escalation_queue: List[dict] = []
        self._running = False
        self.last_swept_at: Optional[int] = None

    @property
    def status(self) -> str:
        return "running" if self._running else "stopped"

    @property
    def pending_escalations(self) -> List[dict]:
        return [e for e in self._escalation_queue if e.get("status") == "pending"]

    def sweep_once(self, now: Optional[int] = None) -> List[dict]:
        """
        Evaluate every Active policy once.
        Returns one result per policy evaluated or failed.
        """
        if now is None:
            now = int(time.time())

        results = []
        for policy_id in self.store.get_active_policy_ids():
            if self._is_backed_off(policy_id, now):
                continue

            try:
                result = self.evaluator.evaluate(self.caller, policy_id, now)
            except PolicyNotActive:
                # Settled by another caller since the id list was taken
                continue
            except SettlementFailure as e:
                self._record_failure(policy_id, now, e.message)
                results.append({
                    "policy_id": policy_id,
                    "decision": "late",
                    "status": "active",
                    "error": e.kind,
                    "detail": e.message,
                })
                continue

            self._backoff.pop(policy_id, None)
            results.append({
                "policy_id": policy_id,
                "decision": result.decision.value,
                "status": result.policy.status.value,
                "claim_outcome": result.policy.claim_outcome.value,
            })

        self.last_swept_at = now
        logger.info("Sweep at %d evaluated %d policies", now, len(results))
        return results

    def _is_backed_off(self, policy_id: int, now: int) -> bool:
        state = self._backoff.get(policy_id)
        if not state:
            return False
        if state.circuit_broken:
            return True
        if state.cooldown_until is not None and now < state.cooldown_until:
            return True
        return False

    def _record_failure(self, policy_id: int, now: int, error: str) -> None:
        state = self._backoff.get(policy_id)
        if not state:
            state = PayoutBackoffState(policy_id=policy_id, last_failure_at=now)
            self._backoff[policy_id] = state

        state.last_failure_at = now
        state.consecutive_failures += 1
        state.cooldown_until = now + self.config.cooldown_seconds

        if state.consecutive_failures >= self.config.circuit_breaker_threshold:
            state.circuit_broken = True
            logger.warning(
                "Policy %d circuit-broken after %d failed payouts",
                policy_id, state.consecutive_failures,
            )
            self._escalation_queue.append({
                "id": f"esc_{uuid4().hex[:12]}",
                "policy_id": policy_id,
                "consecutive_failures": state.consecutive_failures,
                "last_error": error,
                "status": "pending",
                "created_at": now,
            })

    def backoff_state(self, policy_id: int) -> Optional[PayoutBackoffState]:
        return self._backoff.get(policy_id)

    def resolve_escalation(
        self, escalation_id: str, resolution: str, resolver: str
    ) -> Optional[dict]:
        """Resolve a pending escalation and return its policy to the sweep."""
        for esc in self._escalation_queue:
            if esc["id"] == escalation_id and esc["status"] == "pending":
                esc["status"] = "resolved"
                esc["resolution"] = resolution
                esc["resolved_by"] = resolver
                esc["resolved_at"] = int(time.time())
                self._backoff.pop(esc["policy_id"], None)
                return esc
        return None

    def seconds_until_next_sweep(self, current: Optional[datetime] = None) -> float:
        """Delay before the next sweep: cron schedule if configured, else heartbeat."""
        if not self.config.schedule:
            return float(self.config.heartbeat_interval_seconds)
        if current is None:
            current = datetime.now(timezone.utc)
        next_fire = croniter(self.config.schedule, current).get_next(datetime)
        return max(0.0, (next_fire - current).total_seconds())

    async def run_async(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """Run sweeps until stop_event is set."""
        self._running = True
        if stop_event is None:
            stop_event = asyncio.Event()

        try:
            while not stop_event.is_set():
                self.sweep_once()
                try:
                    await asyncio.wait_for(
                        stop_event.wait(),
                        timeout=self.seconds_until_next_sweep(),
                    )
                except asyncio.TimeoutError:
                    continue
        finally:
            self._running = False
