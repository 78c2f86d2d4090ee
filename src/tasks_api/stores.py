from __future__ import annotations

from abc import ABC, abstractmethod
from threading import RLock
from typing import Dict, List, Mapping, Optional, Tuple

from .errors import DuplicateId, DuplicateKey
from .models import AccountEntity, TodoEntity

# Fields a todo update may touch; everything else is fixed at creation.
MUTABLE_TODO_FIELDS = ("description", "target_date", "done", "updated_at")


# PUBLIC_INTERFACE
class TodoStore(ABC):
    """
    Storage primitives for todos. Each call is atomic on its own; the
    per-owner id allocation built on top of them lives in TodoRepository.
    """

    name: str = "abstract"

    @abstractmethod
    def max_id(self, username: str) -> int:
        """Return the highest todo id owned by username, or 0 if none."""

    @abstractmethod
    def insert(self, entity: TodoEntity) -> None:
        """Insert a new todo. Raise DuplicateId if (username, id) is taken."""

    @abstractmethod
    def find(self, username: str, todo_id: int) -> Optional[TodoEntity]:
        """Return the todo, or None if username owns no todo with that id."""

    @abstractmethod
    def find_all(self, username: str) -> List[TodoEntity]:
        """Return all todos owned by username, ascending by id."""

    @abstractmethod
    def update(self, username: str, todo_id: int, fields: Mapping[str, object]) -> Optional[TodoEntity]:
        """Apply fields to the todo and return the stored result, or None if not found."""

    @abstractmethod
    def delete(self, username: str, todo_id: int) -> bool:
        """Delete a todo. Return True if deleted, False if not found."""

    @abstractmethod
    def ping(self) -> None:
        """Raise BackendUnavailable if the backend cannot be reached."""

    def close(self) -> None:
        """Release backend resources. No-op by default."""


# PUBLIC_INTERFACE
class AccountStore(ABC):
    """Storage primitives for accounts, keyed by case-sensitive username."""

    @abstractmethod
    def insert_account(self, account: AccountEntity) -> None:
        """Insert an account. Raise DuplicateKey if the username is taken."""

    @abstractmethod
    def find_account(self, username: str) -> Optional[AccountEntity]:
        """Return the account or None."""


class InMemoryStore(TodoStore, AccountStore):
    """
    Thread-safe in-memory backend suitable for testing and default runtime.
    The dict keys play the role of the unique (username, id) index.
    """

    name = "memory"

    def __init__(self) -> None:
        self._lock = RLock()
        self._todos: Dict[Tuple[str, int], TodoEntity] = {}
        self._accounts: Dict[str, AccountEntity] = {}

    def max_id(self, username: str) -> int:
        with self._lock:
            return max((i for (u, i) in self._todos if u == username), default=0)

    def insert(self, entity: TodoEntity) -> None:
        key = (entity["username"], entity["id"])
        with self._lock:
            if key in self._todos:
                raise DuplicateId(*key)
            self._todos[key] = entity.copy()  # type: ignore[assignment]

    def find(self, username: str, todo_id: int) -> Optional[TodoEntity]:
        with self._lock:
            item = self._todos.get((username, todo_id))
            return None if item is None else item.copy()  # type: ignore[return-value]

    def find_all(self, username: str) -> List[TodoEntity]:
        with self._lock:
            items = [t.copy() for (u, _), t in self._todos.items() if u == username]
        return sorted(items, key=lambda t: t["id"])  # type: ignore[return-value]

    def update(self, username: str, todo_id: int, fields: Mapping[str, object]) -> Optional[TodoEntity]:
        with self._lock:
            existing = self._todos.get((username, todo_id))
            if existing is None:
                return None
            updated = existing.copy()
            for k in MUTABLE_TODO_FIELDS:
                if k in fields:
                    updated[k] = fields[k]  # type: ignore[literal-required]
            self._todos[(username, todo_id)] = updated  # type: ignore[assignment]
            return updated.copy()  # type: ignore[return-value]

    def delete(self, username: str, todo_id: int) -> bool:
        with self._lock:
            return self._todos.pop((username, todo_id), None) is not None

    def ping(self) -> None:
        return None

    def insert_account(self, account: AccountEntity) -> None:
        with self._lock:
            if account["username"] in self._accounts:
                raise DuplicateKey("users", {"username": account["username"]})
            self._accounts[account["username"]] = account.copy()  # type: ignore[assignment]

    def find_account(self, username: str) -> Optional[AccountEntity]:
        with self._lock:
            account = self._accounts.get(username)
            return None if account is None else account.copy()  # type: ignore[return-value]
