"""Tests for Flight Info Ingest."""

import threading

import pytest

from fdi_kernel.authorization.roles import Caller, Role
from fdi_kernel.errors import PolicyNotActive, PolicyNotFound, Unauthorized
from fdi_kernel.ingest.flight_info import FlightInfoIngest
from fdi_kernel.models.config import PolicyConfig
from fdi_kernel.models.events import EventKind
from fdi_kernel.models.policy import ClaimOutcome, FlightStatus, PolicyStatus
from fdi_kernel.policy_store.store import PolicyStore

ADMIN = Caller(id="ops", roles=frozenset({Role.ADMIN}))
ORACLE = Caller(id="flight_oracle", roles=frozenset({Role.ORACLE}))
HOLDER = Caller(id="alice")


class TestFlightInfoIngest:
    def setup_method(self):
        self.store = PolicyStore(config=PolicyConfig(premium=100))
        self.ingest = FlightInfoIngest(self.store)
        self.policy_id = self.store.create_policy("alice", "LH400", 1000, 2000, 100)

    def test_oracle_updates_flight_info(self):
        policy = self.ingest.update_flight_info(
            ORACLE, self.policy_id, 2600, FlightStatus.NORMAL, received_at=2700
        )
        assert policy.actual_arrival == 2600
        assert policy.last_evaluated_at == 2700

        stored = self.store.get_policy(self.policy_id)
        assert stored.actual_arrival == 2600
        assert stored.status == PolicyStatus.ACTIVE
        assert stored.claim_outcome == ClaimOutcome.NONE

    def test_admin_may_act_as_oracle(self):
        self.ingest.update_flight_info(ADMIN, self.policy_id, 2100, FlightStatus.NORMAL)
        assert self.store.get_policy(self.policy_id).actual_arrival == 2100

    def test_holder_cannot_report(self):
        with pytest.raises(Unauthorized):
            self.ingest.update_flight_info(HOLDER, self.policy_id, 99999, FlightStatus.NORMAL)
        assert self.store.get_policy(self.policy_id).actual_arrival is None

    def test_last_write_wins(self):
        self.ingest.update_flight_info(ORACLE, self.policy_id, 30000, FlightStatus.NORMAL)
        self.ingest.update_flight_info(ORACLE, self.policy_id, 2100, FlightStatus.NORMAL)
        self.ingest.update_flight_info(ORACLE, self.policy_id, None, FlightStatus.CANCELED)

        policy = self.store.get_policy(self.policy_id)
        assert policy.actual_arrival is None
        assert policy.flight_status == FlightStatus.CANCELED

    def test_accepts_status_strings(self):
        policy = self.ingest.update_flight_info(ORACLE, self.policy_id, None, "canceled")
        assert policy.flight_status == FlightStatus.CANCELED

    def test_update_emits_notification(self):
        self.ingest.update_flight_info(ORACLE, self.policy_id, 2600, FlightStatus.NORMAL)
        events = self.store.ledger.query_by_kind(EventKind.FLIGHT_INFO_UPDATED)
        assert len(events) == 1
        assert events[0].details["actual_arrival"] == 2600
        assert events[0].details["source"] == "flight_oracle"

    def test_unknown_policy(self):
        with pytest.raises(PolicyNotFound):
            self.ingest.update_flight_info(ORACLE, 77, 2600, FlightStatus.NORMAL)

    def test_terminal_policy_rejected(self):
        with self.store.policy_lock(self.policy_id):
            policy = self.store.get_policy(self.policy_id)
            policy.status = PolicyStatus.TERMINATED
            policy.claim_outcome = ClaimOutcome.DENIED
            self.store.commit(policy)

        with pytest.raises(PolicyNotActive):
            self.ingest.update_flight_info(ORACLE, self.policy_id, 2600, FlightStatus.NORMAL)
        assert self.store.get_policy(self.policy_id).actual_arrival is None
        assert self.store.ledger.query_by_kind(EventKind.FLIGHT_INFO_UPDATED) == []


class TestConcurrentIngest:
    def test_ledger_order_matches_commit_order(self):
        store = PolicyStore(config=PolicyConfig(premium=100))
        ingest = FlightInfoIngest(store)
        policy_id = store.create_policy("alice", "LH400", 1000, 2000, 100)

        def worker(n):
            for i in range(20):
                ingest.update_flight_info(
                    ORACLE, policy_id, 3000 + n * 100 + i, FlightStatus.NORMAL
                )

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        events = store.ledger.query_by_kind(EventKind.FLIGHT_INFO_UPDATED)
        assert len(events) == 160
        assert events[-1].details["actual_arrival"] == store.get_policy(policy_id).actual_arrival
