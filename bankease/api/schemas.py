"""
Pydantic schemas for API requests and response payload builders
"""

from typing import Any, Dict, Optional
from pydantic import BaseModel, Field

from ..auth import AuthResult
from ..ledger import AccountSummary, TransactionRecord, TransactionKind, TransactionPage
from ..transfers import TransferResult, PaymentResult


# Passed through untouched; parse_amount decides what counts as an amount
AmountField = Any


# Identity schemas
class RegisterRequest(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    pin: Optional[str] = Field(None, description="Exactly 4 digits")


class LoginRequest(BaseModel):
    phone: Optional[str] = None
    pin: Optional[str] = None


# Transaction schemas
class SendMoneyRequest(BaseModel):
    to: str = Field(..., description="Recipient phone number")
    amount: AmountField = Field(..., description="Decimal amount, string preferred")
    description: Optional[str] = None


class PayBillRequest(BaseModel):
    biller: str = Field(..., description="Biller reference, e.g. utility account number")
    amount: AmountField = Field(..., description="Decimal amount, string preferred")
    description: Optional[str] = None


def account_payload(account: AccountSummary) -> Dict[str, Any]:
    return {
        "id": account.id,
        "name": account.name,
        "phone": account.phone,
        "balance": account.balance.to_decimal_string(),
        "currency": account.balance.currency.code
    }


def auth_payload(result: AuthResult) -> Dict[str, Any]:
    return {
        "token": result.credential.token,
        "token_type": result.credential.token_type,
        "expires_at": result.credential.expires_at.isoformat(),
        "user": account_payload(result.account)
    }


def record_payload(record: TransactionRecord) -> Dict[str, Any]:
    """Serialize a record; the counterparty shows up as 'from' on receipts and 'to' otherwise"""
    data = {
        "id": record.id,
        "transaction_id": record.transaction_id,
        "type": record.kind.value,
        "amount": record.amount.to_decimal_string(),
        "currency": record.amount.currency.code,
        "description": record.description,
        "status": record.status.value,
        "balance_after": (
            record.balance_after.to_decimal_string() if record.balance_after else None
        ),
        "timestamp": record.created_at.isoformat()
    }
    if record.kind == TransactionKind.RECEIVE:
        data["from"] = record.counterparty
    else:
        data["to"] = record.counterparty
    return data


def page_payload(page: TransactionPage) -> Dict[str, Any]:
    return {
        "transactions": [record_payload(r) for r in page.records],
        "pagination": {
            "current_page": page.page,
            "limit": page.limit,
            "total_pages": page.total_pages,
            "total_transactions": page.total_count,
            "has_next_page": page.has_next,
            "has_prev_page": page.has_prev
        }
    }


def transfer_payload(result: TransferResult) -> Dict[str, Any]:
    return {
        "transaction_id": result.transaction_id,
        "amount": result.amount.to_decimal_string(),
        "recipient": {
            "name": result.recipient_name,
            "phone": result.recipient_phone
        },
        "new_balance": result.new_balance.to_decimal_string(),
        "description": result.description,
        "timestamp": result.timestamp.isoformat(),
        "replayed": result.replayed
    }


def payment_payload(result: PaymentResult) -> Dict[str, Any]:
    return {
        "transaction_id": result.transaction_id,
        "amount": result.amount.to_decimal_string(),
        "biller": result.biller,
        "new_balance": result.new_balance.to_decimal_string(),
        "description": result.description,
        "timestamp": result.timestamp.isoformat()
    }
