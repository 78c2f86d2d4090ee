from __future__ import annotations

from datetime import date, datetime
from functools import lru_cache
from typing import Callable, List, Mapping, Optional

from fastapi import Depends

from .errors import Conflict, DuplicateId, NotFound, ValidationError
from .logging_config import get_logger
from .models import TodoEntity
from .settings import get_settings
from .stores import InMemoryStore, TodoStore
from .utils import utcnow

logger = get_logger(__name__)


# PUBLIC_INTERFACE
class TodoRepository:
    """
    Owns the per-user todo collection on top of any TodoStore.

    Ids are per owner and sequential: a new todo gets one more than the
    owner's current maximum. Nothing is reserved, so two concurrent creates
    can pick the same id; the store's unique (username, id) constraint
    rejects the loser, which re-reads the maximum and tries again
    ``id_retries`` times (once by default) before giving up with Conflict.
    """

    def __init__(
        self,
        store: TodoStore,
        id_retries: int = 1,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._id_retries = max(id_retries, 0)
        self._now = clock

    def next_id(self, owner: str) -> int:
        return self._store.max_id(owner) + 1

    def create(
        self,
        owner: str,
        description: Optional[str],
        target_date: Optional[date],
        done: bool = False,
    ) -> TodoEntity:
        if description is None or not description.strip():
            raise ValidationError("description", "is required")
        if target_date is None:
            raise ValidationError("targetDate", "is required")

        attempts = 0
        while True:
            todo_id = self.next_id(owner)
            # Stamped after reading the max so created_at follows id order
            now = self._now()
            entity: TodoEntity = {
                "username": owner,
                "id": todo_id,
                "description": description.strip(),
                "target_date": target_date,
                "done": bool(done),
                "created_at": now,
                "updated_at": now,
            }
            try:
                self._store.insert(entity)
                return entity.copy()  # type: ignore[return-value]
            except DuplicateId:
                if attempts >= self._id_retries:
                    logger.warning(f"Giving up allocating id {entity['id']} for {owner}")
                    raise Conflict()
                attempts += 1
                logger.info(f"Id {entity['id']} for {owner} taken concurrently, retrying")

    def list(self, owner: str) -> List[TodoEntity]:
        return self._store.find_all(owner)

    def get(self, owner: str, todo_id: int) -> TodoEntity:
        item = self._store.find(owner, todo_id)
        if item is None:
            raise NotFound(details={"username": owner, "id": todo_id})
        return item

    def update(self, owner: str, todo_id: int, fields: Mapping[str, object]) -> TodoEntity:
        """
        Apply the mutable fields (description, target_date, done) and refresh
        updated_at. Any other key, id and username included, is ignored.
        """
        changes = {}
        if fields.get("description") is not None:
            description = str(fields["description"]).strip()
            if not description:
                raise ValidationError("description", "must not be empty")
            changes["description"] = description
        if fields.get("target_date") is not None:
            changes["target_date"] = fields["target_date"]
        if fields.get("done") is not None:
            changes["done"] = bool(fields["done"])
        changes["updated_at"] = self._now()

        updated = self._store.update(owner, todo_id, changes)
        if updated is None:
            raise NotFound(details={"username": owner, "id": todo_id})
        return updated

    def delete(self, owner: str, todo_id: int) -> None:
        if not self._store.delete(owner, todo_id):
            raise NotFound(details={"username": owner, "id": todo_id})


# PUBLIC_INTERFACE
@lru_cache(maxsize=1)
def get_store() -> TodoStore:
    """
    Process-wide store based on settings.
    - memory: InMemoryStore
    - sqlite: SQLiteStore (direct driver)
    - dataapi: DataApiStore (HTTP data-access gateway)
    """
    settings = get_settings()
    if settings.persistence_backend == "sqlite":
        from .db import SQLiteStore

        logger.info(f"Using SQLite backend at {settings.sqlite_db_path}")
        return SQLiteStore(settings.sqlite_db_path, timeout=settings.backend_timeout_seconds)
    if settings.persistence_backend == "dataapi":
        from .dataapi import DataApiStore

        logger.info("Using Data API gateway backend")
        return DataApiStore(
            base_url=settings.data_api_url,
            api_key=settings.data_api_key,
            database=settings.data_api_database,
            data_source=settings.data_api_data_source,
            timeout=settings.backend_timeout_seconds,
        )
    logger.info("Using in-memory backend")
    return InMemoryStore()


# PUBLIC_INTERFACE
def get_repository(store: TodoStore = Depends(get_store)) -> TodoRepository:
    """Dependency returning a TodoRepository over the configured store."""
    return TodoRepository(store, id_retries=get_settings().id_allocation_retries)
