"""
Pending Transaction Queue Module

Records cash-in and cash-out requests for an agent to settle later. No
balance changes at request time; the balance checks made here are advisory
and are repeated authoritatively by the settlement engine.
"""

from typing import List, Optional, Union
from decimal import Decimal

from .money import Money, parse_amount
from .storage import StorageInterface, atomic_unit
from .accounts import Account, AccountRole, AccountStore
from .fees import FeePolicy
from .ledger import TransactionLedger, Transaction, TransactionKind
from .exceptions import (
    AccountBlocked, AgentNotFound, InsufficientFunds, InvalidRequest, UserNotFound
)
from .logging_config import get_logger, log_action


class PendingTransactionQueue:
    """Creates pending cash-in/cash-out requests"""

    def __init__(
        self,
        storage: StorageInterface,
        account_store: AccountStore,
        ledger: TransactionLedger,
        fee_policy: Optional[FeePolicy] = None
    ):
        self.storage = storage
        self.account_store = account_store
        self.ledger = ledger
        self.fee_policy = fee_policy or FeePolicy()
        self.logger = get_logger("mobile_money.pending")

    def request_cash_in(self, user_id: str, agent_id: str, amount: Union[Money, Decimal]) -> Transaction:
        """
        Ask an agent to deposit money into the user's account

        The agent must currently hold at least ``amount``.
        """
        amount = self._validate_amount(amount)
        user, agent = self._resolve_parties(user_id, agent_id)

        if agent.balance < amount:
            raise InsufficientFunds(agent.id, agent.balance.amount, amount.amount)

        return self._enqueue(TransactionKind.CASH_IN, user, agent, amount, Money.zero())

    def request_cash_out(self, user_id: str, agent_id: str, amount: Union[Money, Decimal]) -> Transaction:
        """
        Ask an agent to pay out cash from the user's account

        The user must currently hold at least ``amount`` plus the cash-out fee.
        """
        amount = self._validate_amount(amount)
        user, agent = self._resolve_parties(user_id, agent_id)

        fee = self.fee_policy.compute_fee(TransactionKind.CASH_OUT, amount)
        total = amount + fee
        if user.balance < total:
            raise InsufficientFunds(user.id, user.balance.amount, total.amount)

        return self._enqueue(TransactionKind.CASH_OUT, user, agent, amount, fee)

    def pending_for_agent(self, agent_id: str, limit: Optional[int] = None) -> List[Transaction]:
        """Requests waiting for this agent's decision, most recent first"""
        return self.ledger.pending_for_agent(agent_id, limit)

    def _validate_amount(self, amount: Union[Money, Decimal]) -> Money:
        amount = parse_amount(amount)
        if not amount.is_positive():
            raise InvalidRequest("Amount must be positive")
        return amount

    def _resolve_parties(self, user_id: str, agent_id: str):
        user = self.account_store.require_account(user_id, UserNotFound)
        agent = self.account_store.require_account(agent_id, AgentNotFound, role=AccountRole.AGENT)
        if user.id == agent.id:
            raise InvalidRequest("An agent cannot request a cash transaction from itself")
        for account in (user, agent):
            if not account.can_transact():
                raise AccountBlocked(f"Account {account.id} is blocked", account_id=account.id)
        return user, agent

    def _enqueue(self, kind: TransactionKind, user: Account, agent: Account,
                 amount: Money, fee: Money) -> Transaction:
        with atomic_unit(self.storage, kind.value, self.logger):
            transaction = self.ledger.record(
                self.ledger.new_transaction(kind, user.id, agent.id, amount, fee)
            )

        log_action(
            self.logger, "info", f"{kind.value} request queued",
            user_id=user.id, action=f"request_{kind.name.lower()}",
            resource=f"transaction:{transaction.id}",
            extra={"agent_id": agent.id, "amount": str(amount), "fee": str(fee)}
        )
        return transaction
