"""
System container and authentication dependencies
"""

from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..config import BankEaseConfig, get_config
from ..currency import Currency
from ..storage import StorageInterface, create_storage
from ..ledger import LedgerStore, AccountSummary
from ..auth import IdentityGate
from ..transfers import TransferService
from ..errors import InvalidOrExpiredCredentialError


class BankingSystem:
    """Ledger, identity gate and transfer service sharing one storage backend"""

    def __init__(self, config: Optional[BankEaseConfig] = None,
                 storage: Optional[StorageInterface] = None):
        self.config = config or get_config()

        # Initialize storage
        self.storage = storage or create_storage(self.config.database_url)

        # Initialize core components
        self.ledger = LedgerStore(
            self.storage,
            currency=Currency[self.config.currency],
            starting_balance=self.config.starting_balance_decimal
        )
        self.identity_gate = IdentityGate(self.ledger, self.config)
        self.transfer_service = TransferService(self.ledger, self.config)

    def close(self) -> None:
        self.storage.close()


security = HTTPBearer(auto_error=False)


def get_banking_system(request: Request) -> BankingSystem:
    """Dependency returning the system owned by the running app"""
    return request.app.state.banking_system


def get_current_account(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    system: BankingSystem = Depends(get_banking_system)
) -> AccountSummary:
    """Dependency that validates the bearer credential and returns its account"""
    if not credentials:
        raise InvalidOrExpiredCredentialError("Access denied. No valid token provided.")
    return system.identity_gate.verify(credentials.credentials)
