"""
Settlement Engine Module

Agent approval or rejection of pending cash-in/cash-out requests.

State machine: pending -> approved | rejected, both terminal. Approval applies
the balance effect and the status change in one atomic unit; the balance
check made here is the authoritative one. Rejection never touches balances.
"""

from typing import Optional

from .storage import StorageInterface, atomic_unit
from .accounts import AccountRole, AccountStore
from .fees import FeePolicy, dispose_fee
from .ledger import TransactionLedger, Transaction, TransactionKind, TransactionStatus
from .exceptions import (
    AlreadyProcessed, InsufficientFunds, MobileMoneyError, NotAuthorized, NotFound
)
from .logging_config import get_logger, log_action


class SettlementEngine:
    """Settles pending cash transactions on behalf of their agent"""

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
        self.logger = get_logger("mobile_money.settlement")

    def settle(self, transaction_id: str, agent_id: str, approve: bool) -> Transaction:
        """
        Approve or reject a pending transaction

        Args:
            transaction_id: Pending cash-in/cash-out transaction
            agent_id: Calling agent; must be the agent named on the transaction
            approve: True to apply the balance effect, False to reject

        Returns:
            The settled Transaction

        Raises:
            NotAuthorized: Caller is not an agent, or not this transaction's agent
            NotFound: No such transaction
            AlreadyProcessed: Transaction is not pending
            InsufficientFunds: Payer cannot cover the amount; stays pending
            InternalFailure: The atomic unit failed and was rolled back
        """
        agent = self.account_store.get_account(agent_id)
        if not agent or agent.role != AccountRole.AGENT:
            raise NotAuthorized("Only agents can settle transactions", account_id=agent_id)

        transaction = self.ledger.get(transaction_id)
        if not transaction:
            raise NotFound(f"Transaction {transaction_id} not found", transaction_id=transaction_id)
        if transaction.agent_id != agent_id:
            raise NotAuthorized(
                f"Transaction {transaction_id} is not assigned to this agent",
                transaction_id=transaction_id
            )

        fee_account_id = self.fee_policy.fee_account_id if approve else None
        try:
            with self.account_store.lock(transaction.user_id, agent_id, fee_account_id, transaction_id), \
                    atomic_unit(self.storage, "settlement", self.logger):
                # Re-read under the lock so concurrent settlements see each other
                transaction = self.ledger.get(transaction_id)
                if not transaction.is_pending:
                    raise AlreadyProcessed(
                        f"Transaction {transaction_id} is already {transaction.status.value}",
                        transaction_id=transaction_id, status=transaction.status.value
                    )

                if approve:
                    self._apply(transaction)
                    status = TransactionStatus.APPROVED
                else:
                    status = TransactionStatus.REJECTED
                self.ledger.mark_settled(transaction, status, agent_id)
        except MobileMoneyError as e:
            log_action(
                self.logger, "warning", f"Settlement refused: {e.code}",
                user_id=agent_id, action="settle", resource=f"transaction:{transaction_id}",
                extra={"approve": approve, "error": e.code}
            )
            raise

        log_action(
            self.logger, "info", f"Transaction {transaction.status.value}",
            user_id=agent_id, action="settle", resource=f"transaction:{transaction_id}",
            extra={
                "kind": transaction.kind.value,
                "amount": str(transaction.amount),
                "fee": str(transaction.fee)
            }
        )
        return transaction

    def _apply(self, transaction: Transaction) -> None:
        """Balance effect of an approved cash transaction"""
        store = self.account_store
        if transaction.kind == TransactionKind.CASH_IN:
            available = store.get_balance(transaction.agent_id)
            if available < transaction.amount:
                raise InsufficientFunds(transaction.agent_id, available.amount, transaction.amount.amount)
            store.debit(transaction.agent_id, transaction.amount)
            store.credit(transaction.user_id, transaction.amount)

        elif transaction.kind == TransactionKind.CASH_OUT:
            available = store.get_balance(transaction.user_id)
            if available < transaction.total:
                raise InsufficientFunds(transaction.user_id, available.amount, transaction.total.amount)
            store.debit(transaction.user_id, transaction.total)
            store.credit(transaction.agent_id, transaction.amount)
            dispose_fee(self.fee_policy, store, transaction.fee)

        else:
            raise AlreadyProcessed(f"Transaction {transaction.id} cannot be settled")
