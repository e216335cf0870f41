"""Tests for the settlement gateway and treasury."""

import pytest

from fdi_kernel.audit.ledger import AuditLedger
from fdi_kernel.authorization.roles import Caller, Role
from fdi_kernel.errors import SettlementFailure, Unauthorized
from fdi_kernel.models.events import EventKind
from fdi_kernel.models.settlement import PayoutInstruction, SettlementReceipt
from fdi_kernel.settlement.gateway import InMemorySettlementGateway, SettlementGateway
from fdi_kernel.settlement.treasury import Treasury

ADMIN = Caller(id="ops", roles=frozenset({Role.ADMIN}))
ORACLE = Caller(id="flight_oracle", roles=frozenset({Role.ORACLE}))


def _make_instruction(policy_id: int = 1, amount: int = 500) -> PayoutInstruction:
    return PayoutInstruction(
        instruction_id=f"payout-{policy_id}",
        policy_id=policy_id,
        holder="alice",
        amount=amount,
        issued_at=100,
    )


class RefusingGateway(SettlementGateway):
    def payout(self, instruction: PayoutInstruction) -> SettlementReceipt:
        return SettlementReceipt(instruction_id=instruction.instruction_id, success=False)

    def deposit(self, amount: int) -> None:
        pass

    def withdraw_all(self, destination: str) -> SettlementReceipt:
        return SettlementReceipt(
            instruction_id="withdraw", success=False, error="account frozen"
        )


class TestInMemorySettlementGateway:
    def test_payout_moves_funds(self):
        gateway = InMemorySettlementGateway(funds=1_000)
        receipt = gateway.payout(_make_instruction())

        assert receipt.success is True
        assert receipt.reference.startswith("txn_")
        assert gateway.balance == 500

    def test_insufficient_funds(self):
        gateway = InMemorySettlementGateway(funds=100)
        receipt = gateway.payout(_make_instruction())

        assert receipt.success is False
        assert "Insufficient" in receipt.error
        assert gateway.balance == 100
        assert gateway.transfers == []

    def test_idempotent_instruction(self):
        gateway = InMemorySettlementGateway(funds=1_000)
        first = gateway.payout(_make_instruction())
        second = gateway.payout(_make_instruction())

        assert first == second
        assert gateway.balance == 500
        assert len(gateway.payouts_for(1)) == 1

    def test_withdraw_all_empties_pool(self):
        gateway = InMemorySettlementGateway(funds=700)
        gateway.deposit(300)
        receipt = gateway.withdraw_all("treasury_account")

        assert receipt.success is True
        assert receipt.amount == 1_000
        assert gateway.balance == 0


class TestTreasury:
    def setup_method(self):
        self.ledger = AuditLedger(db_path=":memory:")

    def test_admin_withdraws(self):
        gateway = InMemorySettlementGateway(funds=2_500)
        treasury = Treasury(gateway, self.ledger)

        receipt = treasury.withdraw_all(ADMIN, "cold_wallet", now=50)

        assert receipt.amount == 2_500
        events = self.ledger.query_by_kind(EventKind.FUNDS_WITHDRAWN)
        assert len(events) == 1
        assert events[0].details["destination"] == "cold_wallet"
        assert events[0].details["requested_by"] == "ops"

    def test_oracle_cannot_withdraw(self):
        gateway = InMemorySettlementGateway(funds=2_500)
        treasury = Treasury(gateway, self.ledger)

        with pytest.raises(Unauthorized):
            treasury.withdraw_all(ORACLE, "somewhere")
        assert gateway.balance == 2_500

    def test_failed_withdrawal_raises(self):
        treasury = Treasury(RefusingGateway(), self.ledger)

        with pytest.raises(SettlementFailure, match="account frozen"):
            treasury.withdraw_all(ADMIN, "cold_wallet")
        assert self.ledger.count() == 0
