"""
Pydantic schemas for API requests and responses
"""

from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field

from ..ledger import Transaction


class SendMoneyRequest(BaseModel):
    recipient: str = Field(..., description="Recipient account id or mobile number")
    amount: Decimal = Field(..., description="Amount as a decimal string with at most two places")


class CashRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    agent_id: str = Field(..., alias="agentId")
    amount: Decimal = Field(..., description="Amount as a decimal string with at most two places")


class ApproveRequest(BaseModel):
    approve: bool


class TransactionModel(BaseModel):
    id: str
    kind: str
    initiator_id: str
    counterparty_id: str
    amount: str = Field(..., description="Decimal amount as string")
    fee: str = Field(..., description="Decimal fee as string")
    status: str
    created_at: str
    settled_at: Optional[str] = None
    settled_by: Optional[str] = None

    @classmethod
    def from_transaction(cls, transaction: Transaction) -> 'TransactionModel':
        return cls(
            id=transaction.id,
            kind=transaction.kind.value,
            initiator_id=transaction.initiator_id,
            counterparty_id=transaction.counterparty_id,
            amount=str(transaction.amount.amount),
            fee=str(transaction.fee.amount),
            status=transaction.status.value,
            created_at=transaction.created_at.isoformat(),
            settled_at=transaction.settled_at.isoformat() if transaction.settled_at else None,
            settled_by=transaction.settled_by
        )


class TransactionResponse(BaseModel):
    message: str
    transaction: TransactionModel


class TransactionListResponse(BaseModel):
    transactions: List[TransactionModel]


class BalanceResponse(BaseModel):
    account_id: str
    balance: str = Field(..., description="Decimal balance as string")
