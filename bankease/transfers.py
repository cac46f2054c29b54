"""
Transfer Processing Module

Validates and executes money movements: peer-to-peer transfers between two
accounts (paired send/receive records) and bill payments (a single pay
record). This is the only place balance-changing business rules live.
"""

from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Any, Optional
import secrets
import time
import uuid

from .config import BankEaseConfig, get_config
from .currency import Money, parse_amount
from .ledger import (
    LedgerStore, Account, TransactionRecord, TransactionKind, TransactionStatus
)
from .errors import (
    BankingError, ConflictError, InternalError, InvalidInputError, NotFoundError,
    RecipientNotFoundError, SelfTransferNotAllowedError, InsufficientFundsError
)
from .logging_config import get_logger, log_action


@dataclass(frozen=True)
class TransferResult:
    """What the sender learns once a transfer has durably committed"""
    transaction_id: str
    amount: Money
    new_balance: Money
    recipient_name: str
    recipient_phone: str
    timestamp: datetime
    description: str
    replayed: bool = False


@dataclass(frozen=True)
class PaymentResult:
    transaction_id: str
    amount: Money
    new_balance: Money
    biller: str
    timestamp: datetime
    description: str


def generate_transaction_id() -> str:
    """
    Time component (ms since epoch) plus 40 random bits, e.g.
    ``TXN1729262400123A1B2C3D4E5``
    """
    return f"TXN{int(time.time() * 1000)}{secrets.token_hex(5).upper()}"


class TransferService:
    """
    Orchestrates transfers and payments on top of the LedgerStore
    """

    def __init__(self, ledger: LedgerStore, config: Optional[BankEaseConfig] = None):
        self.ledger = ledger
        self.config = config or get_config()
        self.logger = get_logger("bankease.transfers")

    def transfer(
        self,
        sender_id: str,
        recipient_phone: Optional[str],
        amount: Any,
        description: Optional[str] = None,
        idempotency_key: Optional[str] = None
    ) -> TransferResult:
        """
        Move money from the sender's account to the account registered
        under ``recipient_phone``.

        Validation runs in a fixed order and the first failure wins:
        amount, recipient lookup, self-transfer, funds. The funds check is
        repeated inside the atomic commit.

        Args:
            sender_id: Authenticated sender account id
            recipient_phone: Recipient's registered phone number
            amount: Amount as string, int or Decimal
            description: Optional note; defaults to "Sent to {name}" /
                "Received from {name}" on the two records
            idempotency_key: Caller-chosen key; a retry with the same key
                returns the original result without moving money again

        Returns:
            TransferResult, only after the mutation has committed

        Raises:
            InvalidAmountError, RecipientNotFoundError,
            SelfTransferNotAllowedError, InsufficientFundsError,
            NotFoundError (unknown sender), InternalError (rolled back),
            ConflictError (idempotency key reused for another transfer)
        """
        money = self._parse_amount(amount)
        description = self._clean_description(description)

        recipient = None
        if recipient_phone and recipient_phone.strip():
            recipient = self.ledger.get_account_by_phone(recipient_phone.strip())
        if recipient is None:
            raise RecipientNotFoundError()

        if recipient.id == sender_id:
            raise SelfTransferNotAllowedError()

        # A retry of a committed transfer replays even if the first attempt
        # drained the funds; the lookup is repeated under the lock below
        if idempotency_key:
            previous = self.ledger.find_by_idempotency_key(sender_id, idempotency_key)
            if previous is not None:
                return self._replay(previous, recipient, money)

        sender = self.ledger.get_account_by_id(sender_id)
        if sender is None:
            raise NotFoundError("Sender not found")
        if sender.balance < money:
            self._log_failure(sender_id, "transfer", InsufficientFundsError(), money)
            raise InsufficientFundsError()

        try:
            with self.ledger.account_section(sender.id, recipient.id):
                if idempotency_key:
                    previous = self.ledger.find_by_idempotency_key(sender.id, idempotency_key)
                    if previous is not None:
                        return self._replay(previous, recipient, money)

                adjustment = self.ledger.adjust_balances(sender.id, recipient.id, money)

                now = datetime.now(timezone.utc)
                transaction_id = generate_transaction_id()
                send_record = TransactionRecord(
                    id=str(uuid.uuid4()),
                    created_at=now,
                    updated_at=now,
                    account_id=sender.id,
                    transaction_id=transaction_id,
                    kind=TransactionKind.SEND,
                    counterparty=recipient.phone,
                    amount=money,
                    status=TransactionStatus.COMPLETED,
                    description=description or f"Sent to {recipient.name}",
                    balance_after=adjustment.new_debit_balance,
                    idempotency_key=idempotency_key
                )
                receive_record = TransactionRecord(
                    id=str(uuid.uuid4()),
                    created_at=now,
                    updated_at=now,
                    account_id=recipient.id,
                    transaction_id=transaction_id,
                    kind=TransactionKind.RECEIVE,
                    counterparty=sender.phone,
                    amount=money,
                    status=TransactionStatus.COMPLETED,
                    description=description or f"Received from {sender.name}",
                    balance_after=adjustment.new_credit_balance
                )
                self.ledger.record_transaction_pair(send_record, receive_record)
        except BankingError as e:
            self._log_failure(sender_id, "transfer", e, money)
            raise
        except Exception as e:
            self.logger.exception("Transfer rolled back after storage failure")
            raise InternalError("Server error during money transfer") from e

        log_action(
            self.logger, "info", "Transfer completed",
            user_id=sender.id, action="transfer",
            resource=f"transaction:{transaction_id}",
            extra={
                "transaction_id": transaction_id,
                "amount": money.to_string(),
                "recipient_id": recipient.id
            }
        )

        return TransferResult(
            transaction_id=transaction_id,
            amount=money,
            new_balance=adjustment.new_debit_balance,
            recipient_name=recipient.name,
            recipient_phone=recipient.phone,
            timestamp=now,
            description=send_record.description
        )

    def pay_bill(
        self,
        account_id: str,
        biller: Optional[str],
        amount: Any,
        description: Optional[str] = None
    ) -> PaymentResult:
        """
        Pay a bill: debit the account and record one ``pay`` record,
        atomically.

        Raises:
            InvalidAmountError, InvalidInputError (blank biller),
            NotFoundError, InsufficientFundsError, InternalError
        """
        money = self._parse_amount(amount)
        description = self._clean_description(description)

        if not biller or not biller.strip():
            raise InvalidInputError("Please provide the biller reference")
        biller = biller.strip()

        account = self.ledger.get_account_by_id(account_id)
        if account is None:
            raise NotFoundError("User not found")
        if account.balance < money:
            self._log_failure(account_id, "pay_bill", InsufficientFundsError(), money)
            raise InsufficientFundsError()

        try:
            with self.ledger.account_section(account.id):
                new_balance = self.ledger.debit(account.id, money)

                now = datetime.now(timezone.utc)
                transaction_id = generate_transaction_id()
                record = TransactionRecord(
                    id=str(uuid.uuid4()),
                    created_at=now,
                    updated_at=now,
                    account_id=account.id,
                    transaction_id=transaction_id,
                    kind=TransactionKind.PAY,
                    counterparty=biller,
                    amount=money,
                    status=TransactionStatus.COMPLETED,
                    description=description or f"Bill payment to {biller}",
                    balance_after=new_balance
                )
                self.ledger.record_transaction(record)
        except BankingError as e:
            self._log_failure(account_id, "pay_bill", e, money)
            raise
        except Exception as e:
            self.logger.exception("Bill payment rolled back after storage failure")
            raise InternalError("Server error during bill payment") from e

        log_action(
            self.logger, "info", "Bill paid",
            user_id=account.id, action="pay_bill",
            resource=f"transaction:{transaction_id}",
            extra={"transaction_id": transaction_id, "amount": money.to_string(), "biller": biller}
        )

        return PaymentResult(
            transaction_id=transaction_id,
            amount=money,
            new_balance=new_balance,
            biller=biller,
            timestamp=now,
            description=record.description
        )

    def _parse_amount(self, amount: Any) -> Money:
        return parse_amount(
            amount,
            self.ledger.currency,
            minimum=self.config.min_transfer_decimal,
            maximum=self.config.max_transaction_decimal
        )

    def _clean_description(self, description: Optional[str]) -> Optional[str]:
        if description is None:
            return None
        description = description.strip()
        if len(description) > self.config.description_max_length:
            raise InvalidInputError(
                f"Description must be less than {self.config.description_max_length} characters"
            )
        return description or None

    def _replay(self, previous: TransactionRecord, recipient: Account, amount: Money) -> TransferResult:
        """
        Rebuild the result of an already committed transfer

        Raises:
            ConflictError: If the key was used for a different recipient or amount
        """
        if previous.counterparty != recipient.phone or previous.amount != amount:
            raise ConflictError("Idempotency key was already used for a different transfer")

        log_action(
            self.logger, "info", "Idempotent transfer replayed",
            user_id=previous.account_id, action="transfer_replay",
            resource=f"transaction:{previous.transaction_id}"
        )
        return TransferResult(
            transaction_id=previous.transaction_id,
            amount=previous.amount,
            new_balance=previous.balance_after,
            recipient_name=recipient.name,
            recipient_phone=recipient.phone,
            timestamp=previous.created_at,
            description=previous.description,
            replayed=True
        )

    def _log_failure(self, account_id: str, action: str, error: BankingError, amount: Money) -> None:
        log_action(
            self.logger, "warning", f"{action} rejected: {error.kind}",
            user_id=account_id, action=f"{action}_failed",
            extra={"error": error.kind, "amount": amount.to_string()}
        )
