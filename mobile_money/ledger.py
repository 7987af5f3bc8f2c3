"""
Transaction Ledger Module

Append-only record of money movements: direct transfers (always completed)
and agent-mediated cash-in/cash-out requests (pending until settled). The
only mutation ever applied to a recorded transaction is its single
pending -> approved/rejected transition.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Dict, List, Optional
from enum import Enum
import uuid

from .money import Money
from .storage import StorageInterface, StorageRecord
from .exceptions import AlreadyProcessed, InternalFailure


class TransactionKind(Enum):
    """Kinds of money movement"""
    TRANSFER = "transfer"    # Immediate user-to-user transfer
    CASH_IN = "cash-in"      # Agent deposits into a user account
    CASH_OUT = "cash-out"    # User withdraws through an agent


class TransactionStatus(Enum):
    """Transaction statuses"""
    COMPLETED = "completed"  # Terminal, transfers only
    PENDING = "pending"      # Awaiting agent settlement
    APPROVED = "approved"    # Terminal, settled with balance effect
    REJECTED = "rejected"    # Terminal, settled without balance effect


INITIAL_STATUS = {
    TransactionKind.TRANSFER: TransactionStatus.COMPLETED,
    TransactionKind.CASH_IN: TransactionStatus.PENDING,
    TransactionKind.CASH_OUT: TransactionStatus.PENDING,
}

ALLOWED_TRANSITIONS = {
    TransactionStatus.PENDING: {TransactionStatus.APPROVED, TransactionStatus.REJECTED},
    TransactionStatus.COMPLETED: set(),
    TransactionStatus.APPROVED: set(),
    TransactionStatus.REJECTED: set(),
}


def assert_transition(transaction_id: str, old: TransactionStatus, new: TransactionStatus) -> None:
    if new not in ALLOWED_TRANSITIONS[old]:
        raise AlreadyProcessed(
            f"Transaction {transaction_id} is already {old.value}",
            transaction_id=transaction_id, status=old.value
        )


@dataclass
class Transaction(StorageRecord):
    """
    A recorded money movement

    ``initiator_id`` is the sender of a transfer or the user of a cash
    request; ``counterparty_id`` is the transfer recipient or the agent.
    """
    kind: TransactionKind
    initiator_id: str
    counterparty_id: str
    amount: Money
    fee: Money
    status: TransactionStatus
    settled_at: Optional[datetime] = None
    settled_by: Optional[str] = None

    def __post_init__(self):
        if not self.amount.is_positive():
            raise ValueError("Transaction amount must be positive")
        if self.fee.is_negative():
            raise ValueError("Transaction fee cannot be negative")
        if self.initiator_id == self.counterparty_id:
            raise ValueError("Transaction parties must differ")

    @property
    def total(self) -> Money:
        """Amount plus fee"""
        return self.amount + self.fee

    @property
    def is_pending(self) -> bool:
        return self.status == TransactionStatus.PENDING

    @property
    def is_cash(self) -> bool:
        return self.kind in (TransactionKind.CASH_IN, TransactionKind.CASH_OUT)

    @property
    def user_id(self) -> Optional[str]:
        return self.initiator_id if self.is_cash else None

    @property
    def agent_id(self) -> Optional[str]:
        return self.counterparty_id if self.is_cash else None


class TransactionLedger:
    """
    Stores transactions and answers history queries
    """

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.table_name = "transactions"

    def new_transaction(
        self,
        kind: TransactionKind,
        initiator_id: str,
        counterparty_id: str,
        amount: Money,
        fee: Optional[Money] = None
    ) -> Transaction:
        """Build an unsaved transaction in its kind's initial status"""
        now = datetime.now(timezone.utc)
        return Transaction(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            kind=kind,
            initiator_id=initiator_id,
            counterparty_id=counterparty_id,
            amount=amount,
            fee=fee or Money.zero(),
            status=INITIAL_STATUS[kind]
        )

    def record(self, transaction: Transaction) -> Transaction:
        """Append a transaction; ids are never reused"""
        if self.storage.exists(self.table_name, transaction.id):
            raise InternalFailure(f"Transaction {transaction.id} already recorded", operation="record")
        self._save_transaction(transaction)
        return transaction

    def get(self, transaction_id: str) -> Optional[Transaction]:
        """Get transaction by ID"""
        data = self.storage.load(self.table_name, transaction_id)
        if data:
            return self._transaction_from_dict(data)
        return None

    def mark_settled(self, transaction: Transaction, status: TransactionStatus, agent_id: str) -> Transaction:
        """Apply the single pending -> approved/rejected transition"""
        assert_transition(transaction.id, transaction.status, status)

        now = datetime.now(timezone.utc)
        transaction.status = status
        transaction.settled_at = now
        transaction.settled_by = agent_id
        transaction.updated_at = now
        self._save_transaction(transaction)
        return transaction

    def query(
        self,
        account_id: str,
        limit: Optional[int] = None,
        kind: Optional[TransactionKind] = None
    ) -> List[Transaction]:
        """
        Transactions in which the account takes part, most recent first

        Args:
            account_id: Payer, sender, recipient or agent of the transaction
            limit: Optional cap on the number of results
            kind: Optional kind filter

        Returns:
            List of Transaction objects
        """
        rows = self.storage.find(self.table_name, {"kind": kind.value} if kind else {})
        transactions = [
            self._transaction_from_dict(data) for data in rows
            if account_id in (data['initiator_id'], data['counterparty_id'])
        ]
        return self._newest_first(transactions, limit)

    def pending_for_agent(self, agent_id: str, limit: Optional[int] = None) -> List[Transaction]:
        """Pending cash requests addressed to an agent, most recent first"""
        rows = self.storage.find(self.table_name, {
            "counterparty_id": agent_id,
            "status": TransactionStatus.PENDING.value
        })
        transactions = [self._transaction_from_dict(data) for data in rows]
        return self._newest_first([t for t in transactions if t.is_cash], limit)

    def _newest_first(self, transactions: List[Transaction], limit: Optional[int]) -> List[Transaction]:
        # Storage returns insertion order; reversing first keeps later inserts
        # ahead of earlier ones that share a timestamp
        ordered = sorted(reversed(transactions), key=lambda t: t.created_at, reverse=True)
        if limit:
            ordered = ordered[:limit]
        return ordered

    def _save_transaction(self, transaction: Transaction) -> None:
        self.storage.save(self.table_name, transaction.id, self._transaction_to_dict(transaction))

    def _transaction_to_dict(self, transaction: Transaction) -> Dict:
        """Convert Transaction to dictionary for storage"""
        result = transaction.to_dict()
        result['kind'] = transaction.kind.value
        result['status'] = transaction.status.value
        result['amount'] = str(transaction.amount.amount)
        result['fee'] = str(transaction.fee.amount)
        result['settled_at'] = transaction.settled_at.isoformat() if transaction.settled_at else None
        return result

    def _transaction_from_dict(self, data: Dict) -> Transaction:
        """Convert dictionary to Transaction"""
        settled_at = None
        if data.get('settled_at'):
            settled_at = datetime.fromisoformat(data['settled_at'])

        return Transaction(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            kind=TransactionKind(data['kind']),
            initiator_id=data['initiator_id'],
            counterparty_id=data['counterparty_id'],
            amount=Money(Decimal(data['amount'])),
            fee=Money(Decimal(data['fee'])),
            status=TransactionStatus(data['status']),
            settled_at=settled_at,
            settled_by=data.get('settled_by')
        )
