"""
System wiring and caller identity dependencies
"""

from dataclasses import dataclass
from typing import Optional

import jwt
from fastapi import Depends, Header, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from ..storage import StorageInterface, create_storage
from ..accounts import AccountRole, AccountStore
from ..fees import FeePolicy
from ..ledger import TransactionLedger
from ..transfers import TransferExecutor
from ..pending import PendingTransactionQueue
from ..settlement import SettlementEngine
from ..config import MobileMoneyConfig, get_config


class MoneySystem:
    """Ledger core with all components sharing one storage handle"""

    def __init__(self, storage: Optional[StorageInterface] = None,
                 config: Optional[MobileMoneyConfig] = None):
        self.config = config or get_config()
        self.storage = storage or create_storage(self.config.storage_backend, self.config.database_path)

        self.fee_policy = FeePolicy.from_config(self.config)
        self.account_store = AccountStore(self.storage, self.config)
        self.ledger = TransactionLedger(self.storage)
        self.transfer_executor = TransferExecutor(
            self.storage, self.account_store, self.ledger, self.fee_policy
        )
        self.pending_queue = PendingTransactionQueue(
            self.storage, self.account_store, self.ledger, self.fee_policy
        )
        self.settlement_engine = SettlementEngine(
            self.storage, self.account_store, self.ledger, self.fee_policy
        )

        if self.fee_policy.fee_account_id:
            self.account_store.ensure_system_account(self.fee_policy.fee_account_id)

    def close(self) -> None:
        self.storage.close()


_money_system: Optional[MoneySystem] = None


def get_money_system() -> MoneySystem:
    """Dependency returning the process-wide ledger core"""
    global _money_system
    if _money_system is None:
        _money_system = MoneySystem()
    return _money_system


@dataclass(frozen=True)
class Caller:
    """Verified identity of the party making a request"""
    id: str
    role: AccountRole

    @property
    def is_agent(self) -> bool:
        return self.role == AccountRole.AGENT


security = HTTPBearer(auto_error=False)


def _parse_role(value: Optional[str]) -> AccountRole:
    try:
        role = AccountRole(value)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid caller role")
    if role == AccountRole.SYSTEM:
        raise HTTPException(status_code=401, detail="Invalid caller role")
    return role


def get_current_caller(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    x_caller_id: Optional[str] = Header(None),
    x_caller_role: Optional[str] = Header(None)
) -> Caller:
    """Dependency that validates the bearer token and returns the caller"""
    config = get_config()

    if not config.auth_enabled:
        # Development mode: identity asserted by trusted headers
        if not x_caller_id:
            raise HTTPException(status_code=403, detail="A caller id is required")
        return Caller(id=x_caller_id, role=_parse_role(x_caller_role or "user"))

    if not credentials:
        raise HTTPException(status_code=403, detail="A token is required for authentication")
    try:
        payload = jwt.decode(credentials.credentials, config.jwt_secret, algorithms=[config.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")

    caller_id = payload.get("id") or payload.get("sub")
    if not caller_id:
        raise HTTPException(status_code=401, detail="Invalid token")
    return Caller(id=str(caller_id), role=_parse_role(payload.get("role")))


def require_agent(caller: Caller = Depends(get_current_caller)) -> Caller:
    """Dependency restricting an endpoint to agents"""
    if not caller.is_agent:
        raise HTTPException(
            status_code=403,
            detail={"error": "NotAgent", "message": "Only agents can perform this action"}
        )
    return caller
