from __future__ import annotations

from functools import lru_cache
from typing import Optional

from fastapi import Depends

from .errors import AlreadyExists, DuplicateKey
from .logging_config import get_logger
from .models import AccountEntity
from .repositories import get_store
from .security import hash_password, verify_password
from .settings import get_settings
from .stores import AccountStore
from .utils import utcnow

logger = get_logger(__name__)


# PUBLIC_INTERFACE
class CredentialStore:
    """
    Accounts: unique case-sensitive usernames with bcrypt password hashes.
    Plain text passwords are never stored.
    """

    def __init__(self, store: AccountStore, rounds: int = 10) -> None:
        self._store = store
        self._rounds = rounds

    def create(self, username: str, password: str) -> AccountEntity:
        if self._store.find_account(username) is not None:
            raise AlreadyExists(username)
        account: AccountEntity = {
            "username": username,
            "password_hash": hash_password(password, self._rounds),
            "created_at": utcnow(),
        }
        try:
            self._store.insert_account(account)
        except DuplicateKey as e:
            # Lost a concurrent signup race for the same username
            raise AlreadyExists(username) from e
        logger.info(f"Created account {username}")
        return account

    def verify_password(self, username: str, password: str) -> bool:
        account: Optional[AccountEntity] = self._store.find_account(username)
        if account is None:
            # Same bcrypt work as a real check so timing does not reveal unknown usernames
            verify_password(password, _dummy_hash(self._rounds))
            return False
        return verify_password(password, account["password_hash"])


@lru_cache(maxsize=4)
def _dummy_hash(rounds: int) -> str:
    return hash_password("not-a-real-password", rounds)


# PUBLIC_INTERFACE
def get_credential_store(store: AccountStore = Depends(get_store)) -> CredentialStore:
    """Dependency returning the CredentialStore for the configured backend."""
    return CredentialStore(store, rounds=get_settings().password_hash_rounds)
