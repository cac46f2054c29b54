"""
Identity Gate

Binds a phone + PIN pair to an account and issues stateless bearer
credentials (HS256 JWTs) scoped to that account.
"""

from datetime import datetime, timezone, timedelta
from dataclasses import dataclass
from typing import Optional
import hashlib
import hmac
import re
import secrets

import jwt

from .config import BankEaseConfig, get_config
from .ledger import LedgerStore, Account, AccountSummary
from .errors import (
    InvalidInputError, InvalidCredentialsError, InvalidOrExpiredCredentialError
)
from .logging_config import get_logger, log_action


PIN_PATTERN = re.compile(r"^\d{4}$")
PHONE_PATTERN = re.compile(r"^\+?[\d\s\-()]+$")
NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 50


@dataclass(frozen=True)
class Credential:
    """Opaque bearer token bound to one account"""
    token: str
    account_id: str
    expires_at: datetime
    token_type: str = "bearer"

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or datetime.now(timezone.utc)) >= self.expires_at


@dataclass(frozen=True)
class AuthResult:
    """Credential plus the account it was issued for"""
    credential: Credential
    account: AccountSummary


def generate_salt() -> str:
    """Generate random salt for PIN hashing"""
    return secrets.token_hex(16)


def hash_pin(pin: str, salt: str) -> str:
    """Hash a PIN with salt using scrypt"""
    return hashlib.scrypt(
        pin.encode(),
        salt=salt.encode(),
        n=16384, r=8, p=1
    ).hex()


def verify_pin(pin: str, pin_hash: str, salt: str) -> bool:
    """Constant-time comparison of a candidate PIN against a stored hash"""
    return hmac.compare_digest(hash_pin(pin, salt), pin_hash)


class IdentityGate:
    """
    Registration, login and credential verification
    """

    def __init__(self, ledger: LedgerStore, config: Optional[BankEaseConfig] = None):
        self.ledger = ledger
        self.config = config or get_config()
        self.logger = get_logger("bankease.auth")
        # Compared against when the phone is unknown so both failure paths
        # cost one scrypt evaluation
        self._decoy_salt = generate_salt()
        self._decoy_hash = hash_pin("0000", self._decoy_salt)

    def register(self, name: Optional[str], phone: Optional[str], pin: Optional[str]) -> AuthResult:
        """
        Register a new account and issue a credential for it

        Raises:
            InvalidInputError: On missing or malformed name, phone or PIN
            ConflictError: If the phone is already registered
        """
        if not name or not phone or not pin:
            raise InvalidInputError("Please provide name, phone, and PIN")

        name = name.strip()
        phone = phone.strip()

        if len(name) < NAME_MIN_LENGTH:
            raise InvalidInputError(f"Name must be at least {NAME_MIN_LENGTH} characters long")
        if len(name) > NAME_MAX_LENGTH:
            raise InvalidInputError(f"Name must be less than {NAME_MAX_LENGTH} characters")
        if not PHONE_PATTERN.match(phone):
            raise InvalidInputError("Please enter a valid phone number")
        if not PIN_PATTERN.match(pin):
            raise InvalidInputError("PIN must be exactly 4 digits")

        salt = generate_salt()
        account = self.ledger.create_account(
            name=name,
            phone=phone,
            pin_hash=hash_pin(pin, salt),
            pin_salt=salt
        )

        log_action(
            self.logger, "info", "Account registered",
            user_id=account.id, action="register", resource="auth"
        )
        return AuthResult(credential=self.issue_credential(account), account=account.summary())

    def login(self, phone: Optional[str], pin: Optional[str]) -> AuthResult:
        """
        Exchange a phone + PIN pair for a credential

        Raises:
            InvalidInputError: If phone or PIN is missing
            InvalidCredentialsError: If the phone is unknown or the PIN is
                wrong (the error does not say which)
        """
        if not phone or not pin:
            raise InvalidInputError("Please provide phone and PIN")

        account = self.ledger.get_account_by_phone(phone.strip())
        if account is None:
            verify_pin(pin, self._decoy_hash, self._decoy_salt)
            log_action(
                self.logger, "warning", "Login failed",
                action="login_failed", resource="auth"
            )
            raise InvalidCredentialsError()

        if not verify_pin(pin, account.pin_hash, account.pin_salt):
            log_action(
                self.logger, "warning", "Login failed",
                user_id=account.id, action="login_failed", resource="auth"
            )
            raise InvalidCredentialsError()

        log_action(
            self.logger, "info", "User authenticated successfully",
            user_id=account.id, action="login", resource="auth"
        )
        return AuthResult(credential=self.issue_credential(account), account=account.summary())

    def issue_credential(self, account: Account) -> Credential:
        """Sign a credential valid for the configured time-to-live"""
        now = datetime.now(timezone.utc)
        expires_at = now + timedelta(hours=self.config.jwt_expiry_hours)
        payload = {
            "sub": account.id,
            "iat": now,
            "exp": expires_at,
            "jti": secrets.token_hex(8)
        }
        token = jwt.encode(payload, self.config.jwt_secret, algorithm=self.config.jwt_algorithm)
        return Credential(token=token, account_id=account.id, expires_at=expires_at)

    def verify(self, token: Optional[str]) -> AccountSummary:
        """
        Validate a bearer token and return the account it is bound to

        Raises:
            InvalidOrExpiredCredentialError: On bad signature, expiry,
                malformed payload or an account that no longer exists
        """
        if not token:
            raise InvalidOrExpiredCredentialError("Access denied. No valid token provided.")

        try:
            payload = jwt.decode(
                token, self.config.jwt_secret,
                algorithms=[self.config.jwt_algorithm],
                options={"require": ["exp", "sub"]}
            )
        except jwt.ExpiredSignatureError:
            raise InvalidOrExpiredCredentialError("Token expired")
        except jwt.InvalidTokenError:
            raise InvalidOrExpiredCredentialError()

        account = self.ledger.get_account_by_id(str(payload["sub"]))
        if account is None:
            raise InvalidOrExpiredCredentialError("Invalid token. User not found.")
        return account.summary()
