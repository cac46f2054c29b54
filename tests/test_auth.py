"""
Tests for registration, login and bearer credentials
"""

import pytest
from datetime import datetime, timezone, timedelta

import jwt

from bankease.config import BankEaseConfig
from bankease.currency import Money, Currency
from bankease.storage import InMemoryStorage
from bankease.ledger import LedgerStore
from bankease.auth import IdentityGate, hash_pin, verify_pin, generate_salt
from bankease.errors import (
    InvalidInputError, ConflictError, InvalidCredentialsError,
    InvalidOrExpiredCredentialError
)


class TestPinHashing:

    def test_hash_and_verify(self):
        salt = generate_salt()
        pin_hash = hash_pin("1234", salt)

        assert pin_hash != "1234"
        assert verify_pin("1234", pin_hash, salt)
        assert not verify_pin("4321", pin_hash, salt)

    def test_salt_changes_hash(self):
        assert hash_pin("1234", generate_salt()) != hash_pin("1234", generate_salt())


class TestIdentityGate:
    """Test the identity gate against an in-memory ledger"""

    def setup_method(self):
        self.config = BankEaseConfig(database_url="memory://", jwt_secret="test-secret")
        self.storage = InMemoryStorage()
        self.ledger = LedgerStore(self.storage)
        self.gate = IdentityGate(self.ledger, self.config)

    def test_register_issues_credential(self):
        result = self.gate.register("Alice", "+1 555 0001", "1234")

        assert result.account.name == "Alice"
        assert result.account.balance == Money.zero(Currency.USD) + self.ledger.starting_balance
        assert result.credential.account_id == result.account.id
        assert result.credential.token_type == "bearer"
        assert not result.credential.is_expired()
        assert self.gate.verify(result.credential.token).id == result.account.id

    def test_register_stores_hash_not_pin(self):
        result = self.gate.register("Alice", "+15550001", "1234")
        account = self.ledger.get_account_by_id(result.account.id)

        assert account.pin_hash != "1234"
        assert verify_pin("1234", account.pin_hash, account.pin_salt)

    def test_register_trims_name_and_phone(self):
        result = self.gate.register("  Alice  ", " +15550001 ", "1234")
        assert result.account.name == "Alice"
        assert result.account.phone == "+15550001"

    @pytest.mark.parametrize("name,phone,pin,message", [
        (None, "+15550001", "1234", "Please provide name, phone, and PIN"),
        ("Alice", "", "1234", "Please provide name, phone, and PIN"),
        ("Alice", "+15550001", None, "Please provide name, phone, and PIN"),
        ("A", "+15550001", "1234", "Name must be at least 2 characters long"),
        ("A" * 51, "+15550001", "1234", "Name must be less than 50 characters"),
        ("Alice", "call me", "1234", "Please enter a valid phone number"),
        ("Alice", "+15550001", "123", "PIN must be exactly 4 digits"),
        ("Alice", "+15550001", "12a4", "PIN must be exactly 4 digits"),
        ("Alice", "+15550001", "12345", "PIN must be exactly 4 digits"),
    ])
    def test_register_validation(self, name, phone, pin, message):
        with pytest.raises(InvalidInputError) as exc_info:
            self.gate.register(name, phone, pin)

        assert exc_info.value.message == message
        assert self.storage.count(self.ledger.accounts_table) == 0

    def test_register_duplicate_phone(self):
        self.gate.register("Alice", "+15550001", "1234")
        with pytest.raises(ConflictError):
            self.gate.register("Other", "+15550001", "9999")

    def test_login(self):
        registered = self.gate.register("Alice", "+15550001", "1234")
        result = self.gate.login("+15550001", "1234")

        assert result.account.id == registered.account.id
        assert self.gate.verify(result.credential.token).id == registered.account.id

    def test_login_failures_are_indistinguishable(self):
        self.gate.register("Alice", "+15550001", "1234")

        with pytest.raises(InvalidCredentialsError) as wrong_pin:
            self.gate.login("+15550001", "9999")
        with pytest.raises(InvalidCredentialsError) as unknown_phone:
            self.gate.login("+15559999", "1234")

        assert wrong_pin.value.message == unknown_phone.value.message

    def test_failed_login_does_not_change_account(self):
        registered = self.gate.register("Alice", "+15550001", "1234")
        before = self.storage.load(self.ledger.accounts_table, registered.account.id)

        with pytest.raises(InvalidCredentialsError):
            self.gate.login("+15550001", "0000")

        assert self.storage.load(self.ledger.accounts_table, registered.account.id) == before

    def test_login_missing_fields(self):
        with pytest.raises(InvalidInputError):
            self.gate.login("", "1234")
        with pytest.raises(InvalidInputError):
            self.gate.login("+15550001", None)


class TestCredentialVerification:
    """Test bearer token validation"""

    def setup_method(self):
        self.config = BankEaseConfig(database_url="memory://", jwt_secret="test-secret")
        self.storage = InMemoryStorage()
        self.ledger = LedgerStore(self.storage)
        self.gate = IdentityGate(self.ledger, self.config)
        self.result = self.gate.register("Alice", "+15550001", "1234")

    def _token(self, **claims):
        now = datetime.now(timezone.utc)
        payload = {"sub": self.result.account.id, "iat": now, "exp": now + timedelta(hours=1)}
        payload.update(claims)
        return jwt.encode(payload, "test-secret", algorithm="HS256")

    def test_valid_token(self):
        assert self.gate.verify(self._token()).phone == "+15550001"

    def test_expired_token(self):
        expired = self._token(exp=datetime.now(timezone.utc) - timedelta(seconds=1))
        with pytest.raises(InvalidOrExpiredCredentialError) as exc_info:
            self.gate.verify(expired)
        assert exc_info.value.message == "Token expired"

    def test_token_signed_with_other_secret(self):
        forged = jwt.encode(
            {"sub": self.result.account.id, "exp": datetime.now(timezone.utc) + timedelta(hours=1)},
            "someone-elses-secret", algorithm="HS256"
        )
        with pytest.raises(InvalidOrExpiredCredentialError):
            self.gate.verify(forged)

    def test_tampered_token(self):
        other = self.gate.register("Mallory", "+15550666", "6666")
        header, _, signature = self.result.credential.token.split(".")
        _, other_payload, _ = other.credential.token.split(".")
        tampered = ".".join([header, other_payload, signature])
        with pytest.raises(InvalidOrExpiredCredentialError):
            self.gate.verify(tampered)

    def test_missing_or_garbage_token(self):
        with pytest.raises(InvalidOrExpiredCredentialError):
            self.gate.verify(None)
        with pytest.raises(InvalidOrExpiredCredentialError):
            self.gate.verify("not-a-jwt")

    def test_token_without_subject(self):
        token = jwt.encode(
            {"exp": datetime.now(timezone.utc) + timedelta(hours=1)},
            "test-secret", algorithm="HS256"
        )
        with pytest.raises(InvalidOrExpiredCredentialError):
            self.gate.verify(token)

    def test_account_removed_after_issue(self):
        self.storage.delete(self.ledger.accounts_table, self.result.account.id)
        with pytest.raises(InvalidOrExpiredCredentialError) as exc_info:
            self.gate.verify(self.result.credential.token)
        assert exc_info.value.message == "Invalid token. User not found."
