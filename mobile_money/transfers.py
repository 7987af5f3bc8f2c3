"""
Transfer Executor Module

Immediate, synchronous user-to-user transfers. The sender pays the amount
plus the transfer fee; the recipient receives the amount. Both balance
mutations, the fee disposal and the ledger insert form one atomic unit.
"""

from typing import Optional, Union
from decimal import Decimal

from .money import Money, parse_amount
from .storage import StorageInterface, atomic_unit
from .accounts import AccountStore
from .fees import FeePolicy, dispose_fee
from .ledger import TransactionLedger, Transaction, TransactionKind
from .exceptions import (
    AccountBlocked, InsufficientFunds, InvalidRequest, MobileMoneyError,
    RecipientNotFound, UserNotFound
)
from .logging_config import get_logger, log_action


class TransferExecutor:
    """Performs direct transfers between two accounts"""

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
        self.logger = get_logger("mobile_money.transfers")

    def transfer(self, sender_id: str, recipient_id: str, amount: Union[Money, Decimal]) -> Transaction:
        """
        Move money from sender to recipient immediately

        Args:
            sender_id: Account paying the amount and the fee
            recipient_id: Account id or mobile number of the recipient
            amount: Amount the recipient receives

        Returns:
            The completed transfer Transaction

        Raises:
            UserNotFound: Sender does not exist
            RecipientNotFound: Recipient does not exist
            InvalidRequest: Amount finer than the minor unit or out of range
            BelowMinimum: Amount not positive or under the transfer minimum
            InsufficientFunds: Sender cannot cover amount + fee
            InternalFailure: The atomic unit failed and was rolled back
        """
        amount = parse_amount(amount)

        sender = self.account_store.require_account(sender_id, UserNotFound)
        recipient = self.account_store.resolve(recipient_id)
        if not recipient:
            raise RecipientNotFound(f"Recipient {recipient_id} not found", recipient=recipient_id)
        if recipient.id == sender.id:
            raise InvalidRequest("Cannot send money to yourself")
        for account in (sender, recipient):
            if not account.can_transact():
                raise AccountBlocked(f"Account {account.id} is blocked", account_id=account.id)

        self.fee_policy.check_minimum(TransactionKind.TRANSFER, amount)
        fee = self.fee_policy.compute_fee(TransactionKind.TRANSFER, amount)
        total = amount + fee

        try:
            with self.account_store.lock(sender.id, recipient.id, self.fee_policy.fee_account_id), \
                    atomic_unit(self.storage, "transfer", self.logger):
                # Authoritative check, read inside the unit that debits
                balance = self.account_store.get_balance(sender.id)
                if balance < total:
                    raise InsufficientFunds(sender.id, balance.amount, total.amount)

                self.account_store.debit(sender.id, total)
                self.account_store.credit(recipient.id, amount)
                dispose_fee(self.fee_policy, self.account_store, fee)

                transaction = self.ledger.record(self.ledger.new_transaction(
                    TransactionKind.TRANSFER, sender.id, recipient.id, amount, fee
                ))
        except MobileMoneyError as e:
            log_action(
                self.logger, "warning", f"Transfer refused: {e.code}",
                user_id=sender.id, action="transfer",
                extra={"recipient": recipient.id, "amount": str(amount), "error": e.code}
            )
            raise

        log_action(
            self.logger, "info", "Transfer completed",
            user_id=sender.id, action="transfer", resource=f"transaction:{transaction.id}",
            extra={"recipient": recipient.id, "amount": str(amount), "fee": str(fee)}
        )
        return transaction
