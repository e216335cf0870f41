"""
Settlement Gateway — the external ledger that moves funds.

The kernel consumes this interface; it does not custody funds itself.
Both operations may fail, either by returning an unsuccessful receipt
or by raising.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, List
from uuid import uuid4

from fdi_kernel.models.settlement import PayoutInstruction, SettlementReceipt

logger = logging.getLogger(__name__)


class SettlementGateway(ABC):
    @abstractmethod
    def payout(self, instruction: PayoutInstruction) -> SettlementReceipt:
        """Transfer instruction.amount to instruction.holder."""

    @abstractmethod
    def deposit(self, amount: int) -> None:
        """Credit collected funds, e.g. an accepted premium, to the pool."""

    @abstractmethod
    def withdraw_all(self, destination: str) -> SettlementReceipt:
        """Transfer the entire pool balance to destination."""


class InMemorySettlementGateway(SettlementGateway):
    """
    Pool-balance gateway for local runs and tests. In production this would
    front a payment processor or on-chain account.

    Honours the instruction idempotency key: repeating a successful
    instruction returns the original receipt without moving funds again.
    """

    def __init__(self, funds: int = 0):
        self._balance = funds
        self._lock = threading.Lock()
        self._settled: Dict[str, SettlementReceipt] = {}
        self.transfers: List[dict] = []

    @property
    def balance(self) -> int:
        return self._balance

    def deposit(self, amount: int) -> None:
        """Add funds to the pool, e.g. collected premiums."""
        with self._lock:
            self._balance += amount

    def payout(self, instruction: PayoutInstruction) -> SettlementReceipt:
        with self._lock:
            previous = self._settled.get(instruction.instruction_id)
            if previous is not None:
                logger.info(
                    "Payout %s already settled, returning original receipt",
                    instruction.instruction_id,
                )
                return previous

            if instruction.amount > self._balance:
                return SettlementReceipt(
                    instruction_id=instruction.instruction_id,
                    success=False,
                    amount=instruction.amount,
                    error=(
                        f"Insufficient pool balance: {self._balance} "
                        f"< {instruction.amount}"
                    ),
                )

            self._balance -= instruction.amount
            receipt = SettlementReceipt(
                instruction_id=instruction.instruction_id,
                success=True,
                amount=instruction.amount,
                reference=f"txn_{uuid4().hex[:12]}",
            )
            self._settled[instruction.instruction_id] = receipt
            self.transfers.append({
                "type": "payout",
                "to": instruction.holder,
                "amount": instruction.amount,
                "policy_id": instruction.policy_id,
                "reference": receipt.reference,
            })
            return receipt

    def withdraw_all(self, destination: str) -> SettlementReceipt:
        with self._lock:
            amount = self._balance
            self._balance = 0
            reference = f"txn_{uuid4().hex[:12]}"
            self.transfers.append({
                "type": "withdrawal",
                "to": destination,
                "amount": amount,
                "reference": reference,
            })
        return SettlementReceipt(
            instruction_id=f"withdraw_{reference}",
            success=True,
            amount=amount,
            reference=reference,
        )

    def payouts_for(self, policy_id: int) -> List[dict]:
        """Completed payout transfers for one policy."""
        return [
            t for t in self.transfers
            if t["type"] == "payout" and t["policy_id"] == policy_id
        ]
