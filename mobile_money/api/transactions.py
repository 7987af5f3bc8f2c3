"""
Money movement endpoints
"""

from typing import Optional
from fastapi import APIRouter, HTTPException, Depends

from .auth import Caller, MoneySystem, get_current_caller, get_money_system, require_agent
from .schemas import (
    ApproveRequest, BalanceResponse, CashRequest, SendMoneyRequest,
    TransactionListResponse, TransactionModel, TransactionResponse
)
from ..ledger import TransactionKind
from ..exceptions import MobileMoneyError


router = APIRouter()


def _error(e: MobileMoneyError) -> HTTPException:
    return HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.post("/send-money", response_model=TransactionResponse)
def send_money(
    request: SendMoneyRequest,
    caller: Caller = Depends(get_current_caller),
    system: MoneySystem = Depends(get_money_system)
):
    """Transfer money to another account immediately"""
    try:
        transaction = system.transfer_executor.transfer(
            sender_id=caller.id,
            recipient_id=request.recipient,
            amount=request.amount
        )
    except MobileMoneyError as e:
        raise _error(e)

    return TransactionResponse(
        message="Money sent successfully",
        transaction=TransactionModel.from_transaction(transaction)
    )


@router.post("/cash-in", response_model=TransactionResponse)
def cash_in(
    request: CashRequest,
    caller: Caller = Depends(get_current_caller),
    system: MoneySystem = Depends(get_money_system)
):
    """Request a cash-in from an agent"""
    try:
        transaction = system.pending_queue.request_cash_in(
            user_id=caller.id,
            agent_id=request.agent_id,
            amount=request.amount
        )
    except MobileMoneyError as e:
        raise _error(e)

    return TransactionResponse(
        message="Cash-in request sent for agent approval",
        transaction=TransactionModel.from_transaction(transaction)
    )


@router.post("/cash-out", response_model=TransactionResponse)
def cash_out(
    request: CashRequest,
    caller: Caller = Depends(get_current_caller),
    system: MoneySystem = Depends(get_money_system)
):
    """Request a cash-out through an agent"""
    try:
        transaction = system.pending_queue.request_cash_out(
            user_id=caller.id,
            agent_id=request.agent_id,
            amount=request.amount
        )
    except MobileMoneyError as e:
        raise _error(e)

    return TransactionResponse(
        message="Cash-out request sent for agent approval",
        transaction=TransactionModel.from_transaction(transaction)
    )


@router.patch("/approve-transaction/{transaction_id}", response_model=TransactionResponse)
def approve_transaction(
    transaction_id: str,
    request: ApproveRequest,
    caller: Caller = Depends(require_agent),
    system: MoneySystem = Depends(get_money_system)
):
    """Approve or reject a pending cash transaction"""
    try:
        transaction = system.settlement_engine.settle(
            transaction_id=transaction_id,
            agent_id=caller.id,
            approve=request.approve
        )
    except MobileMoneyError as e:
        raise _error(e)

    return TransactionResponse(
        message=f"Transaction {transaction.status.value}",
        transaction=TransactionModel.from_transaction(transaction)
    )


@router.get("/transactions", response_model=TransactionListResponse)
def list_transactions(
    kind: Optional[TransactionKind] = None,
    caller: Caller = Depends(get_current_caller),
    system: MoneySystem = Depends(get_money_system)
):
    """Most recent transactions of the caller"""
    transactions = system.ledger.query(
        caller.id,
        limit=system.config.transaction_history_limit,
        kind=kind
    )
    return TransactionListResponse(
        transactions=[TransactionModel.from_transaction(t) for t in transactions]
    )


@router.get("/pending-transactions", response_model=TransactionListResponse)
def list_pending_transactions(
    caller: Caller = Depends(require_agent),
    system: MoneySystem = Depends(get_money_system)
):
    """Cash requests waiting for the calling agent"""
    transactions = system.pending_queue.pending_for_agent(caller.id)
    return TransactionListResponse(
        transactions=[TransactionModel.from_transaction(t) for t in transactions]
    )


@router.get("/balance", response_model=BalanceResponse)
def get_balance(
    caller: Caller = Depends(get_current_caller),
    system: MoneySystem = Depends(get_money_system)
):
    """Current balance of the caller"""
    try:
        balance = system.account_store.get_balance(caller.id)
    except MobileMoneyError as e:
        raise _error(e)

    return BalanceResponse(account_id=caller.id, balance=str(balance.amount))
