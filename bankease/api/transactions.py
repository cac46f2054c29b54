"""
Balance, transfer, bill payment and statement endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header, Query

from .auth import BankingSystem, get_banking_system, get_current_account
from .schemas import (
    SendMoneyRequest, PayBillRequest, record_payload, page_payload,
    transfer_payload, payment_payload
)
from ..ledger import AccountSummary
from ..errors import NotFoundError, InvalidInputError


router = APIRouter()


@router.get("/balance")
async def get_balance(
    account: AccountSummary = Depends(get_current_account),
    system: BankingSystem = Depends(get_banking_system)
):
    """Get the caller's current balance"""
    stored = system.ledger.get_account_by_id(account.id)
    if stored is None:
        raise NotFoundError("User not found")
    return {
        "success": True,
        "data": {
            "balance": stored.balance.to_decimal_string(),
            "currency": stored.balance.currency.code,
            "account_id": stored.id,
            "last_updated": stored.updated_at.isoformat()
        }
    }


@router.post("/send")
async def send_money(
    request: SendMoneyRequest,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    account: AccountSummary = Depends(get_current_account),
    system: BankingSystem = Depends(get_banking_system)
):
    """Send money to another account, addressed by phone number"""
    result = system.transfer_service.transfer(
        sender_id=account.id,
        recipient_phone=request.to,
        amount=request.amount,
        description=request.description,
        idempotency_key=idempotency_key
    )
    return {
        "success": True,
        "message": "Money sent successfully",
        "data": transfer_payload(result)
    }


@router.post("/pay")
async def pay_bill(
    request: PayBillRequest,
    account: AccountSummary = Depends(get_current_account),
    system: BankingSystem = Depends(get_banking_system)
):
    """Pay a bill from the caller's balance"""
    result = system.transfer_service.pay_bill(
        account_id=account.id,
        biller=request.biller,
        amount=request.amount,
        description=request.description
    )
    return {
        "success": True,
        "message": "Bill paid successfully",
        "data": payment_payload(result)
    }


@router.get("/recent")
async def get_recent_transactions(
    account: AccountSummary = Depends(get_current_account),
    system: BankingSystem = Depends(get_banking_system)
):
    """Get the caller's latest transactions"""
    records = system.ledger.list_transactions(
        account.id, limit=system.config.recent_transactions_limit
    )
    return {
        "success": True,
        "data": {"transactions": [record_payload(r) for r in records]}
    }


@router.get("/history")
async def get_transaction_history(
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    account: AccountSummary = Depends(get_current_account),
    system: BankingSystem = Depends(get_banking_system)
):
    """Get one page of the caller's transaction history, newest first"""
    limit = limit or system.config.history_page_size
    if limit > system.config.history_max_page_size:
        raise InvalidInputError(
            f"limit cannot exceed {system.config.history_max_page_size}"
        )

    result = system.ledger.transaction_page(account.id, page=page, limit=limit)
    return {
        "success": True,
        "data": page_payload(result)
    }


@router.get("/{transaction_id}")
async def get_transaction(
    transaction_id: str,
    account: AccountSummary = Depends(get_current_account),
    system: BankingSystem = Depends(get_banking_system)
):
    """Get one of the caller's transactions by its transaction id"""
    record = system.ledger.get_transaction(account.id, transaction_id)
    if not record:
        raise NotFoundError("Transaction not found")
    return {
        "success": True,
        "data": {"transaction": record_payload(record)}
    }
