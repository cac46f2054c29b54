"""
Registration, login and credential verification endpoints
"""

from fastapi import APIRouter, Depends, status

from .auth import BankingSystem, get_banking_system, get_current_account
from .schemas import RegisterRequest, LoginRequest, account_payload, auth_payload
from ..ledger import AccountSummary


router = APIRouter()


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    request: RegisterRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    """Register a new account"""
    result = system.identity_gate.register(
        name=request.name,
        phone=request.phone,
        pin=request.pin
    )
    return {
        "success": True,
        "message": "User registered successfully",
        "data": auth_payload(result)
    }


@router.post("/login")
async def login(
    request: LoginRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    """Exchange phone + PIN for a bearer token"""
    result = system.identity_gate.login(phone=request.phone, pin=request.pin)
    return {
        "success": True,
        "message": "Login successful",
        "data": auth_payload(result)
    }


@router.get("/verify")
async def verify(account: AccountSummary = Depends(get_current_account)):
    """Validate the bearer token and return the account it belongs to"""
    return {
        "success": True,
        "data": {"user": account_payload(account)}
    }
