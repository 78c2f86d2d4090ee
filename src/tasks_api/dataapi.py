"""
HTTP data-access gateway backend.

Talks to a document store through a Data API style gateway: every operation
is a JSON POST to ``{base_url}/action/{action}`` carrying the data source,
database and collection plus action arguments, authenticated with an
``api-key`` header. The gateway's collections must carry a unique index on
``{username: 1, id: 1}`` for todos and ``{username: 1}`` for users; a
duplicate-key rejection from the gateway is reported as DuplicateKey /
DuplicateId exactly like the other backends.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

import httpx

from .errors import BackendError, BackendUnavailable, DuplicateId, DuplicateKey
from .logging_config import get_logger
from .models import AccountEntity, TodoEntity
from .stores import MUTABLE_TODO_FIELDS, AccountStore, TodoStore
from .utils import parse_target_date, parse_timestamp

logger = get_logger(__name__)

TODOS = "todos"
USERS = "users"

# Mongo's duplicate key error code, as reported by gateways in error text
_DUPLICATE_MARKERS = ("E11000", "duplicate key")

# Data API gateways return at most 1000 documents per find unless told otherwise
DEFAULT_PAGE_SIZE = 1000

# Stored document field names (camelCase, as the original documents use)
_DOC_FIELDS = {
    "description": "description",
    "target_date": "targetDate",
    "done": "done",
    "updated_at": "updatedAt",
}


class DuplicateKeyResponse(Exception):
    """Internal signal: the gateway rejected an insert on a unique index."""


class DataApiStore(TodoStore, AccountStore):
    """
    Gateway transport for the store contract. Every request is bounded by
    ``timeout``; transport failures and timeouts surface as
    BackendUnavailable, other non-2xx answers and unreadable bodies as
    BackendError. Listings are fetched in pages of ``page_size``.
    """

    name = "dataapi"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        database: str,
        data_source: str = "Cluster0",
        timeout: float = 5.0,
        transport: Optional[httpx.BaseTransport] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        if not base_url:
            raise ValueError("DATA_API_URL is required for the dataapi backend")
        self.base_url = base_url.rstrip("/")
        self.database = database
        self.data_source = data_source
        self.timeout = timeout
        self.page_size = max(page_size, 1)
        self._client = httpx.Client(
            base_url=self.base_url,
            timeout=timeout,
            headers={
                "Content-Type": "application/json",
                "Accept": "application/json",
                "api-key": api_key,
            },
            transport=transport,
        )
        logger.info(f"Initialized DataApiStore: database={database}, timeout={timeout}s")

    def close(self) -> None:
        self._client.close()

    def _request(self, action: str, collection: str, **data: Any) -> Dict[str, Any]:
        body = {
            "dataSource": self.data_source,
            "database": self.database,
            "collection": collection,
            **data,
        }
        try:
            response = self._client.post(f"/action/{action}", json=body)
        except httpx.TimeoutException as e:
            logger.error(f"Data API {action} on {collection} timed out after {self.timeout}s")
            raise BackendUnavailable("timeout") from e
        except httpx.TransportError as e:
            logger.error(f"Data API {action} on {collection} transport error: {e}")
            raise BackendUnavailable(type(e).__name__) from e
        except httpx.HTTPError as e:
            # Decoding errors, redirect loops and other protocol failures
            logger.error(f"Data API {action} on {collection} failed: {type(e).__name__}: {e}")
            raise BackendError(type(e).__name__) from e

        if response.is_success:
            try:
                result = response.json()
            except ValueError as e:
                logger.error(f"Data API {action} on {collection} returned a non-JSON body: {response.text[:200]}")
                raise BackendError("invalid JSON response") from e
            if not isinstance(result, dict):
                logger.error(f"Data API {action} on {collection} returned {type(result).__name__}, expected an object")
                raise BackendError("unexpected response shape")
            return result

        text = response.text
        if action == "insertOne" and any(m in text for m in _DUPLICATE_MARKERS):
            raise DuplicateKeyResponse(text)
        logger.error(f"Data API {action} on {collection} failed: HTTP {response.status_code}: {text}")
        if response.status_code in (502, 503, 504):
            raise BackendUnavailable(f"HTTP {response.status_code}")
        raise BackendError(f"HTTP {response.status_code}")

    @staticmethod
    def _doc_to_entity(doc: Mapping[str, Any]) -> TodoEntity:
        return {
            "username": str(doc["username"]),
            "id": int(doc["id"]),
            "description": str(doc["description"]),
            "target_date": parse_target_date(doc["targetDate"]),  # type: ignore[typeddict-item]
            "done": bool(doc.get("done", False)),
            "created_at": parse_timestamp(doc["createdAt"]),
            "updated_at": parse_timestamp(doc["updatedAt"]),
        }

    @staticmethod
    def _entity_to_doc(entity: TodoEntity) -> Dict[str, Any]:
        return {
            "id": entity["id"],
            "username": entity["username"],
            "description": entity["description"],
            "targetDate": entity["target_date"].isoformat(),
            "done": entity["done"],
            "createdAt": entity["created_at"].isoformat(),
            "updatedAt": entity["updated_at"].isoformat(),
        }

    def max_id(self, username: str) -> int:
        result = self._request(
            "find",
            TODOS,
            filter={"username": username},
            sort={"id": -1},
            limit=1,
            projection={"id": 1},
        )
        documents = result.get("documents") or []
        return int(documents[0]["id"]) if documents else 0

    def insert(self, entity: TodoEntity) -> None:
        try:
            self._request("insertOne", TODOS, document=self._entity_to_doc(entity))
        except DuplicateKeyResponse as e:
            raise DuplicateId(entity["username"], entity["id"]) from e

    def find(self, username: str, todo_id: int) -> Optional[TodoEntity]:
        result = self._request("findOne", TODOS, filter={"username": username, "id": todo_id})
        doc = result.get("document")
        return self._doc_to_entity(doc) if doc else None

    def find_all(self, username: str) -> List[TodoEntity]:
        # Paged with skip/limit; a short page ends the listing
        entities: List[TodoEntity] = []
        while True:
            result = self._request(
                "find",
                TODOS,
                filter={"username": username},
                sort={"id": 1},
                skip=len(entities),
                limit=self.page_size,
            )
            documents = result.get("documents") or []
            entities.extend(self._doc_to_entity(d) for d in documents)
            if len(documents) < self.page_size:
                return entities

    def update(self, username: str, todo_id: int, fields: Mapping[str, object]) -> Optional[TodoEntity]:
        changes: Dict[str, Any] = {}
        for k in MUTABLE_TODO_FIELDS:
            if k not in fields:
                continue
            value = fields[k]
            if k in ("target_date", "updated_at"):
                value = value.isoformat()  # type: ignore[attr-defined]
            changes[_DOC_FIELDS[k]] = value

        if changes:
            result = self._request(
                "updateOne",
                TODOS,
                filter={"username": username, "id": todo_id},
                update={"$set": changes},
            )
            if result.get("matchedCount", 0) == 0:
                return None
        return self.find(username, todo_id)

    def delete(self, username: str, todo_id: int) -> bool:
        result = self._request("deleteOne", TODOS, filter={"username": username, "id": todo_id})
        return result.get("deletedCount", 0) > 0

    def ping(self) -> None:
        self._request("findOne", USERS, filter={"username": ""}, projection={"_id": 1})

    def insert_account(self, account: AccountEntity) -> None:
        document = {
            "username": account["username"],
            "password": account["password_hash"],
            "createdAt": account["created_at"].isoformat(),
        }
        try:
            self._request("insertOne", USERS, document=document)
        except DuplicateKeyResponse as e:
            raise DuplicateKey(USERS, {"username": account["username"]}) from e

    def find_account(self, username: str) -> Optional[AccountEntity]:
        result = self._request("findOne", USERS, filter={"username": username})
        doc = result.get("document")
        if not doc:
            return None
        return {
            "username": str(doc["username"]),
            "password_hash": str(doc["password"]),
            "created_at": parse_timestamp(doc["createdAt"]),
        }
