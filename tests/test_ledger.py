"""
Tests for the transaction ledger
"""

import pytest
from datetime import datetime, timezone, timedelta

from mobile_money.money import Money
from mobile_money.storage import InMemoryStorage, SQLiteStorage
from mobile_money.ledger import (
    TransactionLedger, TransactionKind, TransactionStatus, assert_transition
)
from mobile_money.exceptions import AlreadyProcessed, InternalFailure


class TestTransactionRecord:
    """Test transaction construction rules"""

    def setup_method(self):
        self.ledger = TransactionLedger(InMemoryStorage())

    def test_initial_status_by_kind(self):
        """Test transfers complete immediately while cash requests wait"""
        transfer = self.ledger.new_transaction(TransactionKind.TRANSFER, "U1", "U2", Money("60"))
        cash_in = self.ledger.new_transaction(TransactionKind.CASH_IN, "U1", "A1", Money("60"))
        cash_out = self.ledger.new_transaction(TransactionKind.CASH_OUT, "U1", "A1", Money("60"), Money("0.90"))
        assert transfer.status == TransactionStatus.COMPLETED
        assert cash_in.status == TransactionStatus.PENDING
        assert cash_out.status == TransactionStatus.PENDING
        assert cash_out.total == Money("60.90")

    def test_party_roles(self):
        """Test user and agent ids are only defined for cash requests"""
        transfer = self.ledger.new_transaction(TransactionKind.TRANSFER, "U1", "U2", Money("60"))
        cash_out = self.ledger.new_transaction(TransactionKind.CASH_OUT, "U1", "A1", Money("60"))
        assert transfer.agent_id is None
        assert transfer.user_id is None
        assert cash_out.user_id == "U1"
        assert cash_out.agent_id == "A1"

    def test_invalid_transactions(self):
        """Test non-positive amounts, negative fees and self-transactions"""
        with pytest.raises(ValueError):
            self.ledger.new_transaction(TransactionKind.TRANSFER, "U1", "U2", Money("0"))
        with pytest.raises(ValueError):
            self.ledger.new_transaction(TransactionKind.TRANSFER, "U1", "U2", Money("10"), Money("-1"))
        with pytest.raises(ValueError):
            self.ledger.new_transaction(TransactionKind.TRANSFER, "U1", "U1", Money("10"))


class TestLedgerStorage:
    """Test recording and querying"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.ledger = TransactionLedger(self.storage)

    def _record(self, kind, initiator, counterparty, amount="60"):
        return self.ledger.record(
            self.ledger.new_transaction(kind, initiator, counterparty, Money(amount))
        )

    def test_record_and_get(self):
        """Test a recorded transaction loads back intact"""
        txn = self._record(TransactionKind.CASH_OUT, "U1", "A1", "100")
        loaded = self.ledger.get(txn.id)
        assert loaded.kind == TransactionKind.CASH_OUT
        assert loaded.amount == Money("100")
        assert loaded.created_at == txn.created_at
        assert self.ledger.get("missing") is None

    def test_duplicate_record_refused(self):
        """Test transaction ids are never reused"""
        txn = self._record(TransactionKind.TRANSFER, "U1", "U2")
        with pytest.raises(InternalFailure):
            self.ledger.record(txn)

    def test_query_newest_first_with_limit(self):
        """Test history is most recent first and capped"""
        ids = [self._record(TransactionKind.TRANSFER, "U1", "U2").id for _ in range(12)]
        history = self.ledger.query("U1", limit=10)
        assert len(history) == 10
        assert [t.id for t in history] == list(reversed(ids))[:10]

    def test_query_orders_by_timestamp(self):
        """Test an older timestamp sorts later even if inserted last"""
        recent = self._record(TransactionKind.TRANSFER, "U1", "U2")
        old = self.ledger.new_transaction(TransactionKind.TRANSFER, "U2", "U1", Money("70"))
        old.created_at = datetime.now(timezone.utc) - timedelta(days=1)
        self.ledger.record(old)
        assert [t.id for t in self.ledger.query("U1")] == [recent.id, old.id]

    def test_query_covers_both_sides(self):
        """Test an account sees transactions it sent and received"""
        self._record(TransactionKind.TRANSFER, "U1", "U2")
        self._record(TransactionKind.TRANSFER, "U3", "U1")
        self._record(TransactionKind.TRANSFER, "U2", "U3")
        assert len(self.ledger.query("U1")) == 2
        assert len(self.ledger.query("U3")) == 2

    def test_query_kind_filter(self):
        """Test filtering history by kind"""
        self._record(TransactionKind.TRANSFER, "U1", "U2")
        self._record(TransactionKind.CASH_IN, "U1", "A1")
        self._record(TransactionKind.CASH_OUT, "U1", "A1")
        cash_ins = self.ledger.query("U1", kind=TransactionKind.CASH_IN)
        assert [t.kind for t in cash_ins] == [TransactionKind.CASH_IN]
        assert len(self.ledger.query("A1")) == 2

    def test_pending_for_agent(self):
        """Test agents see only their own pending requests"""
        first = self._record(TransactionKind.CASH_IN, "U1", "A1")
        second = self._record(TransactionKind.CASH_OUT, "U2", "A1")
        self._record(TransactionKind.CASH_IN, "U1", "A2")
        self._record(TransactionKind.TRANSFER, "U1", "A1")
        self.ledger.mark_settled(self.ledger.get(first.id), TransactionStatus.REJECTED, "A1")

        pending = self.ledger.pending_for_agent("A1")
        assert [t.id for t in pending] == [second.id]

    def test_mark_settled_once(self):
        """Test the pending transition happens exactly once"""
        txn = self._record(TransactionKind.CASH_IN, "U1", "A1")
        settled = self.ledger.mark_settled(txn, TransactionStatus.APPROVED, "A1")
        assert settled.settled_by == "A1"
        assert settled.settled_at is not None

        reloaded = self.ledger.get(txn.id)
        assert reloaded.status == TransactionStatus.APPROVED
        with pytest.raises(AlreadyProcessed):
            self.ledger.mark_settled(reloaded, TransactionStatus.REJECTED, "A1")

    def test_sqlite_backend(self, tmp_path):
        """Test the ledger persists through SQLite"""
        storage = SQLiteStorage(tmp_path / "ledger.db")
        ledger = TransactionLedger(storage)
        txn = ledger.record(ledger.new_transaction(TransactionKind.TRANSFER, "U1", "U2", Money("75.5")))
        assert ledger.get(txn.id).amount == Money("75.50")
        assert [t.id for t in ledger.query("U2")] == [txn.id]
        storage.close()


class TestTransitions:
    """Test the transaction state machine"""

    def test_allowed(self):
        """Test pending may become approved or rejected"""
        assert_transition("t", TransactionStatus.PENDING, TransactionStatus.APPROVED)
        assert_transition("t", TransactionStatus.PENDING, TransactionStatus.REJECTED)

    @pytest.mark.parametrize("old", [
        TransactionStatus.COMPLETED, TransactionStatus.APPROVED, TransactionStatus.REJECTED
    ])
    def test_terminal_states(self, old):
        """Test terminal statuses never change"""
        with pytest.raises(AlreadyProcessed):
            assert_transition("t", old, TransactionStatus.APPROVED)
