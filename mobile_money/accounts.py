"""
Account Store Module

Owns every account record and every balance mutation. Balances are adjusted
only through ``adjust_balance`` (and its ``credit``/``debit`` wrappers), which
refuses any change that would leave a balance negative. Multi-account
operations hold ``AccountStore.lock`` over exactly the accounts they touch and
run inside one ``storage.atomic()`` unit.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Type
from contextlib import contextmanager
from enum import Enum
import threading
import uuid

from .money import Money
from .storage import StorageInterface, StorageRecord
from .config import MobileMoneyConfig, get_config
from .exceptions import (
    AccountBlocked, InsufficientFunds, InternalFailure, InvalidRequest,
    MobileMoneyError, UserNotFound
)
from .logging_config import get_logger, log_action


class AccountRole(Enum):
    """Account holder roles"""
    USER = "user"
    AGENT = "agent"
    SYSTEM = "system"  # Internal accounts such as the platform fee account


class AccountState(Enum):
    """Account lifecycle states"""
    PENDING = "pending"      # Registered, awaiting approval
    APPROVED = "approved"    # Approved by an administrator
    ACTIVE = "active"        # Re-activated after a block
    BLOCKED = "blocked"      # May neither send nor receive money


ALLOWED_STATE_TRANSITIONS = {
    AccountState.PENDING: {AccountState.APPROVED, AccountState.BLOCKED},
    AccountState.APPROVED: {AccountState.ACTIVE, AccountState.BLOCKED},
    AccountState.ACTIVE: {AccountState.BLOCKED},
    AccountState.BLOCKED: {AccountState.ACTIVE},
}


@dataclass
class Account(StorageRecord):
    """Mobile money account held by a user, an agent or the platform"""
    role: AccountRole
    name: str
    balance: Money
    state: AccountState = AccountState.PENDING
    mobile_number: Optional[str] = None
    email: Optional[str] = None
    bonus_granted: bool = False

    def __post_init__(self):
        if self.balance.is_negative():
            raise ValueError("Account balance cannot be negative")

    @property
    def is_agent(self) -> bool:
        return self.role == AccountRole.AGENT

    @property
    def is_user(self) -> bool:
        return self.role == AccountRole.USER

    def can_transact(self) -> bool:
        """Check if account may send or receive money"""
        return self.state != AccountState.BLOCKED


class AccountLocks:
    """
    Per-key re-entrant locks.

    ``hold`` acquires the locks for a set of keys in sorted order so two
    operations touching the same accounts can never wait on each other in a
    cycle. Each acquisition is bounded by ``timeout`` seconds.
    """

    def __init__(self, timeout: float):
        self.timeout = timeout
        self._locks: Dict[str, threading.RLock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, key: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, *keys: Optional[str]) -> Iterator[None]:
        acquired = []
        try:
            for key in sorted({key for key in keys if key}):
                lock = self._lock_for(key)
                if not lock.acquire(timeout=self.timeout):
                    raise InternalFailure(f"Timed out waiting for lock on {key}", operation="lock")
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()


class AccountStore:
    """
    Manages account lifecycle and atomic balance adjustments
    """

    def __init__(self, storage: StorageInterface, config: Optional[MobileMoneyConfig] = None):
        self.storage = storage
        self.config = config or get_config()
        self.accounts_table = "accounts"
        self.logger = get_logger("mobile_money.accounts")
        self._locks = AccountLocks(self.config.lock_timeout_seconds)

    def lock(self, *keys: Optional[str]):
        """Critical section over exactly the given accounts (or other record ids)"""
        return self._locks.hold(*keys)

    def create_account(
        self,
        role: AccountRole,
        name: str,
        mobile_number: Optional[str] = None,
        email: Optional[str] = None,
        account_id: Optional[str] = None,
        state: AccountState = AccountState.PENDING
    ) -> Account:
        """
        Create a new account with its role-dependent starting balance

        Users start at zero; agents receive the onboarding credit once, here.

        Args:
            role: Account holder role
            name: Display name
            mobile_number: Mobile number (usable as a transfer recipient)
            email: Contact email
            account_id: Specific id (generated if not provided)
            state: Initial lifecycle state

        Returns:
            Created Account object
        """
        now = datetime.now(timezone.utc)
        account_id = account_id or str(uuid.uuid4())

        if self.storage.exists(self.accounts_table, account_id):
            raise InvalidRequest(f"Account {account_id} already exists")

        if role == AccountRole.AGENT:
            balance = Money(self.config.agent_onboarding_credit)
        else:
            balance = Money.zero()

        account = Account(
            id=account_id,
            created_at=now,
            updated_at=now,
            role=role,
            name=name,
            balance=balance,
            state=state,
            mobile_number=mobile_number,
            email=email,
            bonus_granted=role == AccountRole.AGENT
        )
        self._save_account(account)

        log_action(
            self.logger, "info", f"Account created: {role.value}",
            action="create_account", resource=f"account:{account.id}",
            extra={"role": role.value, "starting_balance": str(balance)}
        )
        return account

    def ensure_system_account(self, account_id: str, name: str = "Platform fees") -> Account:
        """Get or create an internal system account"""
        account = self.get_account(account_id)
        if account:
            return account
        return self.create_account(
            AccountRole.SYSTEM, name, account_id=account_id, state=AccountState.ACTIVE
        )

    def get_account(self, account_id: str) -> Optional[Account]:
        """Get account by ID"""
        account_dict = self.storage.load(self.accounts_table, account_id)
        if account_dict:
            return self._account_from_dict(account_dict)
        return None

    def get_account_by_mobile(self, mobile_number: str) -> Optional[Account]:
        """Get account by mobile number"""
        accounts = self.storage.find(self.accounts_table, {"mobile_number": mobile_number})
        if accounts:
            return self._account_from_dict(accounts[0])
        return None

    def resolve(self, identifier: str) -> Optional[Account]:
        """Find an account by id, falling back to mobile number"""
        return self.get_account(identifier) or self.get_account_by_mobile(identifier)

    def require_account(
        self,
        account_id: str,
        missing_error: Type[MobileMoneyError] = UserNotFound,
        role: Optional[AccountRole] = None
    ) -> Account:
        """Load an account or raise ``missing_error`` (also when the role differs)"""
        account = self.get_account(account_id)
        if not account or (role is not None and account.role != role):
            raise missing_error(f"Account {account_id} not found", account_id=account_id)
        return account

    def list_accounts(self, role: Optional[AccountRole] = None) -> List[Account]:
        """List accounts, optionally filtered by role"""
        filters = {"role": role.value} if role else {}
        return [self._account_from_dict(data) for data in self.storage.find(self.accounts_table, filters)]

    def get_balance(self, account_id: str) -> Money:
        """Current balance of an account"""
        return self.require_account(account_id).balance

    def adjust_balance(self, account_id: str, delta: Money) -> Money:
        """
        Apply a signed change to an account balance

        Args:
            account_id: Account to adjust
            delta: Positive to credit, negative to debit

        Returns:
            The new balance

        Raises:
            UserNotFound: If the account does not exist
            AccountBlocked: If the account is blocked
            InsufficientFunds: If the balance would become negative
        """
        with self.lock(account_id), self.storage.atomic():
            account = self.require_account(account_id)
            if not account.can_transact():
                raise AccountBlocked(f"Account {account_id} is blocked", account_id=account_id)

            new_balance = account.balance + delta
            if new_balance.is_negative():
                raise InsufficientFunds(account_id, account.balance.amount, (-delta).amount)

            account.balance = new_balance
            account.updated_at = datetime.now(timezone.utc)
            self._save_account(account)
            return new_balance

    def credit(self, account_id: str, amount: Money) -> Money:
        """Add funds to an account"""
        if amount.is_negative():
            raise InvalidRequest("Credit amount cannot be negative")
        return self.adjust_balance(account_id, amount)

    def debit(self, account_id: str, amount: Money) -> Money:
        """Remove funds from an account"""
        if amount.is_negative():
            raise InvalidRequest("Debit amount cannot be negative")
        return self.adjust_balance(account_id, -amount)

    def update_account_state(self, account_id: str, new_state: AccountState) -> Account:
        """Move an account to a new lifecycle state"""
        with self.lock(account_id), self.storage.atomic():
            account = self.require_account(account_id)
            old_state = account.state
            if new_state not in ALLOWED_STATE_TRANSITIONS[old_state]:
                raise InvalidRequest(
                    f"Illegal account transition: {old_state.value} -> {new_state.value}",
                    account_id=account_id
                )

            account.state = new_state
            account.updated_at = datetime.now(timezone.utc)

            if (new_state == AccountState.APPROVED and account.is_user
                    and not account.bonus_granted):
                account.balance = account.balance + Money(self.config.user_signup_bonus)
                account.bonus_granted = True

            self._save_account(account)

        log_action(
            self.logger, "info", f"Account state changed: {old_state.value} -> {new_state.value}",
            action="update_account_state", resource=f"account:{account_id}",
            extra={"balance": str(account.balance)}
        )
        return account

    def approve_account(self, account_id: str) -> Account:
        """Approve a registered account; users receive the signup bonus once"""
        return self.update_account_state(account_id, AccountState.APPROVED)

    def block_account(self, account_id: str) -> Account:
        """Block an account"""
        return self.update_account_state(account_id, AccountState.BLOCKED)

    def activate_account(self, account_id: str) -> Account:
        """Re-activate an account"""
        return self.update_account_state(account_id, AccountState.ACTIVE)

    def total_balance(self) -> Money:
        """Sum of all account balances"""
        total = Money.zero()
        for account in self.list_accounts():
            total = total + account.balance
        return total

    def _save_account(self, account: Account) -> None:
        """Save account to storage"""
        self.storage.save(self.accounts_table, account.id, self._account_to_dict(account))

    def _account_to_dict(self, account: Account) -> Dict:
        """Convert Account to dictionary for storage"""
        result = account.to_dict()
        result['role'] = account.role.value
        result['state'] = account.state.value
        result['balance'] = str(account.balance.amount)
        return result

    def _account_from_dict(self, data: Dict) -> Account:
        """Convert dictionary to Account"""
        return Account(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            role=AccountRole(data['role']),
            name=data['name'],
            balance=Money(Decimal(data['balance'])),
            state=AccountState(data['state']),
            mobile_number=data.get('mobile_number'),
            email=data.get('email'),
            bonus_granted=data.get('bonus_granted', False)
        )
