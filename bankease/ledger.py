"""
Ledger Store

Authoritative storage of account balances and transaction records. Every
balance change happens inside an account section: the affected accounts'
locks are taken in sorted id order and the storage backend runs the writes
as one atomic unit, so a transfer either fully lands or leaves no trace.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Dict, List, Optional
from enum import Enum
from contextlib import contextmanager, ExitStack
import math
import threading
import uuid

from .currency import Money, Currency
from .storage import StorageInterface, StorageRecord
from .errors import (
    ConflictError, NotFoundError, InsufficientFundsError,
    SelfTransferNotAllowedError
)
from .logging_config import get_logger, log_action


DEFAULT_STARTING_BALANCE = Decimal('1000.00')


class TransactionKind(Enum):
    """Direction of a transaction record relative to its owning account"""
    SEND = "send"        # Debit, counterparty is the recipient's phone
    RECEIVE = "receive"  # Credit, counterparty is the sender's phone
    PAY = "pay"          # Debit, counterparty is the biller reference


class TransactionStatus(Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class AccountSummary:
    """Public view of an account; never carries PIN material"""
    id: str
    name: str
    phone: str
    balance: Money


@dataclass
class Account(StorageRecord):
    """A registered user's balance-holding identity, addressed by phone"""
    name: str
    phone: str
    pin_hash: str
    pin_salt: str
    balance: Money

    def __post_init__(self):
        if self.balance.is_negative():
            raise ValueError("Account balance cannot be negative")

    def summary(self) -> AccountSummary:
        return AccountSummary(
            id=self.id, name=self.name, phone=self.phone, balance=self.balance
        )


@dataclass
class TransactionRecord(StorageRecord):
    """
    One side of a money movement, owned by a single account.

    The two records of a transfer share ``transaction_id``; ``id`` is unique
    per record. Records are immutable once stored.
    """
    account_id: str
    transaction_id: str
    kind: TransactionKind
    counterparty: str
    amount: Money
    status: TransactionStatus = TransactionStatus.COMPLETED
    description: Optional[str] = None
    balance_after: Optional[Money] = None
    idempotency_key: Optional[str] = None

    def __post_init__(self):
        if not self.amount.is_positive():
            raise ValueError("Transaction amount must be positive")

        if not self.counterparty:
            raise ValueError(f"A {self.kind.value} record requires a counterparty")

    @property
    def is_debit(self) -> bool:
        return self.kind in (TransactionKind.SEND, TransactionKind.PAY)


@dataclass(frozen=True)
class BalanceAdjustment:
    """Balances right after an atomic debit/credit"""
    new_debit_balance: Money
    new_credit_balance: Money


@dataclass
class TransactionPage:
    """One page of an account's history, newest first"""
    records: List[TransactionRecord]
    page: int
    limit: int
    total_count: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_count / self.limit) if self.limit else 0

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev(self) -> bool:
        return self.page > 1


class _AccountLocks:
    """Registry of per-account re-entrant locks"""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.RLock] = {}

    @contextmanager
    def hold(self, account_ids):
        # Canonical order prevents deadlock between A->B and B->A transfers
        ordered = sorted(set(account_ids))
        with self._guard:
            locks = [self._locks.setdefault(account_id, threading.RLock())
                     for account_id in ordered]
        with ExitStack() as stack:
            for lock in locks:
                stack.enter_context(lock)
            yield


class LedgerStore:
    """
    Owns Account and TransactionRecord state.

    Other components only reach balances and records through this class;
    they keep no copies beyond what they read per call.
    """

    def __init__(
        self,
        storage: StorageInterface,
        currency: Currency = Currency.USD,
        starting_balance: Decimal = DEFAULT_STARTING_BALANCE
    ):
        self.storage = storage
        self.currency = currency
        self.starting_balance = Money(starting_balance, currency)
        self.accounts_table = "accounts"
        self.transactions_table = "transactions"
        self.logger = get_logger("bankease.ledger")
        self._locks = _AccountLocks()

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def create_account(self, name: str, phone: str, pin_hash: str, pin_salt: str) -> Account:
        """
        Create a new account with the configured starting balance

        Raises:
            ConflictError: If the phone number is already registered
        """
        now = datetime.now(timezone.utc)
        account = Account(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            name=name,
            phone=phone,
            pin_hash=pin_hash,
            pin_salt=pin_salt,
            balance=self.starting_balance
        )

        # Check and insert under one atomic section so two registrations
        # of the same phone cannot both pass the check
        with self.storage.atomic():
            if self.storage.find(self.accounts_table, {"phone": phone}):
                raise ConflictError("User with this phone number already exists")
            self._save_account(account)

        log_action(
            self.logger, "info", "Account created",
            user_id=account.id, action="create_account",
            resource=f"account:{account.id}",
            extra={"starting_balance": account.balance.to_decimal_string()}
        )
        return account

    def get_account_by_id(self, account_id: str) -> Optional[Account]:
        """Get account by ID"""
        account_dict = self.storage.load(self.accounts_table, account_id)
        if account_dict:
            return self._account_from_dict(account_dict)
        return None

    def get_account_by_phone(self, phone: str) -> Optional[Account]:
        """Get account by phone number"""
        accounts = self.storage.find(self.accounts_table, {"phone": phone})
        if accounts:
            return self._account_from_dict(accounts[0])
        return None

    def get_balance(self, account_id: str) -> Money:
        account = self.get_account_by_id(account_id)
        if not account:
            raise NotFoundError("User not found")
        return account.balance

    # ------------------------------------------------------------------
    # Balance mutation
    # ------------------------------------------------------------------

    @contextmanager
    def account_section(self, *account_ids: str):
        """
        Lock the given accounts (sorted order) and open one atomic storage
        unit. Everything written inside commits together or not at all.
        Sections nest: re-entering with the same accounts joins the outer one.
        """
        with self._locks.hold(account_ids):
            with self.storage.atomic():
                yield

    def adjust_balances(self, debit_id: str, credit_id: str, amount: Money) -> BalanceAdjustment:
        """
        Move ``amount`` from the debit account to the credit account.

        Both balances change or neither does. The funds check runs here,
        inside the section, against the balance as stored right now.

        Raises:
            NotFoundError: If either account is unknown
            SelfTransferNotAllowedError: If both ids are the same
            InsufficientFundsError: If the debit balance is below ``amount``
        """
        if debit_id == credit_id:
            raise SelfTransferNotAllowedError()
        self._check_amount(amount)

        with self.account_section(debit_id, credit_id):
            debit_account = self._require_account(debit_id)
            credit_account = self._require_account(credit_id)

            if debit_account.balance < amount:
                raise InsufficientFundsError()

            now = datetime.now(timezone.utc)
            debit_account.balance = debit_account.balance - amount
            debit_account.updated_at = now
            credit_account.balance = credit_account.balance + amount
            credit_account.updated_at = now

            self._save_account(debit_account)
            self._save_account(credit_account)

        return BalanceAdjustment(
            new_debit_balance=debit_account.balance,
            new_credit_balance=credit_account.balance
        )

    def debit(self, account_id: str, amount: Money) -> Money:
        """
        Remove ``amount`` from one account (money leaving the ledger).

        Returns:
            The new balance

        Raises:
            NotFoundError: If the account is unknown
            InsufficientFundsError: If the balance is below ``amount``
        """
        self._check_amount(amount)

        with self.account_section(account_id):
            account = self._require_account(account_id)
            if account.balance < amount:
                raise InsufficientFundsError()

            account.balance = account.balance - amount
            account.updated_at = datetime.now(timezone.utc)
            self._save_account(account)

        return account.balance

    # ------------------------------------------------------------------
    # Transaction records
    # ------------------------------------------------------------------

    def record_transaction_pair(self, debit_record: TransactionRecord,
                                credit_record: TransactionRecord) -> None:
        """
        Persist the send/receive records of one transfer as a unit

        Raises:
            ValueError: If the records do not describe the two sides of
                one transfer
        """
        if debit_record.kind != TransactionKind.SEND or credit_record.kind != TransactionKind.RECEIVE:
            raise ValueError("A transfer pair is one send record and one receive record")
        if debit_record.transaction_id != credit_record.transaction_id:
            raise ValueError("Paired records must share a transaction id")
        if debit_record.amount != credit_record.amount:
            raise ValueError("Paired records must carry equal amounts")
        if debit_record.account_id == credit_record.account_id:
            raise ValueError("Paired records must belong to different accounts")

        with self.account_section(debit_record.account_id, credit_record.account_id):
            self._save_record(debit_record)
            self._save_record(credit_record)

    def record_transaction(self, record: TransactionRecord) -> None:
        """Persist a single-sided record (bill payments)"""
        if record.kind != TransactionKind.PAY:
            raise ValueError("Transfers must be recorded as a pair")

        with self.account_section(record.account_id):
            self._save_record(record)

    def list_transactions(self, account_id: str, limit: Optional[int] = None,
                          offset: int = 0) -> List[TransactionRecord]:
        """
        Get an account's records, newest first

        Records with equal timestamps are ordered by insertion, latest first.
        """
        records = [
            self._record_from_dict(data)
            for data in self.storage.find(self.transactions_table, {"account_id": account_id})
        ]
        # find() returns oldest first; reverse before the stable sort so ties
        # end up latest-inserted first
        records.reverse()
        records.sort(key=lambda r: r.created_at, reverse=True)

        if offset:
            records = records[offset:]
        if limit is not None:
            records = records[:limit]
        return records

    def count_transactions(self, account_id: str) -> int:
        return len(self.storage.find(self.transactions_table, {"account_id": account_id}))

    def transaction_page(self, account_id: str, page: int, limit: int) -> TransactionPage:
        """Get page ``page`` (1-based) of ``limit`` records, newest first"""
        if page < 1 or limit < 1:
            raise ValueError("page and limit must be positive")

        records = self.list_transactions(account_id)
        start = (page - 1) * limit
        return TransactionPage(
            records=records[start:start + limit],
            page=page,
            limit=limit,
            total_count=len(records)
        )

    def get_transaction(self, account_id: str, transaction_id: str) -> Optional[TransactionRecord]:
        """Get the account's own record for a transaction id"""
        found = self.storage.find(
            self.transactions_table,
            {"account_id": account_id, "transaction_id": transaction_id}
        )
        if found:
            return self._record_from_dict(found[0])
        return None

    def find_by_idempotency_key(self, account_id: str, idempotency_key: str) -> Optional[TransactionRecord]:
        """Find the debit record an account created with an idempotency key"""
        found = self.storage.find(
            self.transactions_table,
            {"account_id": account_id, "idempotency_key": idempotency_key}
        )
        if found:
            return self._record_from_dict(found[0])
        return None

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def _check_amount(self, amount: Money) -> None:
        if amount.currency != self.currency:
            raise ValueError(f"Ledger currency is {self.currency.code}, got {amount.currency.code}")
        if not amount.is_positive():
            raise ValueError("Amount must be positive")

    def _require_account(self, account_id: str) -> Account:
        account = self.get_account_by_id(account_id)
        if not account:
            raise NotFoundError(f"Account {account_id} not found")
        return account

    def _save_account(self, account: Account) -> None:
        self.storage.save(self.accounts_table, account.id, self._account_to_dict(account))

    def _save_record(self, record: TransactionRecord) -> None:
        self.storage.save(self.transactions_table, record.id, self._record_to_dict(record))

    def _account_to_dict(self, account: Account) -> Dict:
        """Convert Account to dictionary for storage"""
        result = account.to_dict()
        result['balance'] = str(account.balance.amount)
        result['currency'] = account.balance.currency.code
        return result

    def _account_from_dict(self, data: Dict) -> Account:
        """Convert dictionary to Account"""
        currency = Currency[data['currency']]
        return Account(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            name=data['name'],
            phone=data['phone'],
            pin_hash=data['pin_hash'],
            pin_salt=data['pin_salt'],
            balance=Money(Decimal(data['balance']), currency)
        )

    def _record_to_dict(self, record: TransactionRecord) -> Dict:
        """Convert TransactionRecord to dictionary for storage"""
        result = record.to_dict()
        result['kind'] = record.kind.value
        result['status'] = record.status.value
        result['amount'] = str(record.amount.amount)
        result['currency'] = record.amount.currency.code
        result['balance_after'] = (
            str(record.balance_after.amount) if record.balance_after else None
        )
        return result

    def _record_from_dict(self, data: Dict) -> TransactionRecord:
        """Convert dictionary to TransactionRecord"""
        currency = Currency[data['currency']]

        balance_after = None
        if data.get('balance_after') is not None:
            balance_after = Money(Decimal(data['balance_after']), currency)

        return TransactionRecord(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            account_id=data['account_id'],
            transaction_id=data['transaction_id'],
            kind=TransactionKind(data['kind']),
            counterparty=data['counterparty'],
            amount=Money(Decimal(data['amount']), currency),
            status=TransactionStatus(data['status']),
            description=data.get('description'),
            balance_after=balance_after,
            idempotency_key=data.get('idempotency_key')
        )
