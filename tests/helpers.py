import json
import threading
from typing import Any, Dict, List, Optional

import httpx
from fastapi.testclient import TestClient

from src.tasks_api.dataapi import DataApiStore

UNIQUE_KEYS = {"todos": ("username", "id"), "users": ("username",)}


class FakeDataApi:
    """
    In-process stand-in for a Data API gateway, mounted with
    httpx.MockTransport. Enforces the unique indexes the real collections
    carry and answers duplicates the way the gateway does (E11000 text).
    """

    def __init__(self) -> None:
        self.collections: Dict[str, List[Dict[str, Any]]] = {"todos": [], "users": []}
        self.requests: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    @staticmethod
    def _matches(doc: Dict[str, Any], flt: Dict[str, Any]) -> bool:
        return all(doc.get(k) == v for k, v in flt.items())

    def _find(self, body: Dict[str, Any]) -> List[Dict[str, Any]]:
        docs = [d for d in self.collections[body["collection"]] if self._matches(d, body.get("filter", {}))]
        for key, direction in (body.get("sort") or {}).items():
            docs.sort(key=lambda d: d[key], reverse=direction < 0)
        if body.get("skip"):
            docs = docs[body["skip"] :]
        if body.get("limit"):
            docs = docs[: body["limit"]]
        return [dict(d) for d in docs]

    def handler(self, request: httpx.Request) -> httpx.Response:
        action = request.url.path.rsplit("/", 1)[-1]
        body = json.loads(request.content)
        with self._lock:
            self.requests.append({"action": action, "body": body, "api_key": request.headers.get("api-key")})
            collection = self.collections[body["collection"]]

            if action == "find":
                return httpx.Response(200, json={"documents": self._find(body)})

            if action == "findOne":
                docs = self._find(body)
                return httpx.Response(200, json={"document": docs[0] if docs else None})

            if action == "insertOne":
                doc = body["document"]
                key_fields = UNIQUE_KEYS[body["collection"]]
                if any(all(d.get(k) == doc.get(k) for k in key_fields) for d in collection):
                    return httpx.Response(
                        400,
                        json={"error": "Failed to insert document: E11000 duplicate key error collection"},
                    )
                collection.append(dict(doc))
                return httpx.Response(200, json={"insertedId": str(len(collection))})

            if action == "updateOne":
                for d in collection:
                    if self._matches(d, body["filter"]):
                        d.update(body["update"]["$set"])
                        return httpx.Response(200, json={"matchedCount": 1, "modifiedCount": 1})
                return httpx.Response(200, json={"matchedCount": 0, "modifiedCount": 0})

            if action == "deleteOne":
                for i, d in enumerate(collection):
                    if self._matches(d, body["filter"]):
                        del collection[i]
                        return httpx.Response(200, json={"deletedCount": 1})
                return httpx.Response(200, json={"deletedCount": 0})

        return httpx.Response(404, json={"error": f"unknown action {action}"})


def make_dataapi_store(
    fake: Optional[FakeDataApi] = None,
    transport: Optional[httpx.BaseTransport] = None,
    page_size: int = 1000,
) -> DataApiStore:
    fake = fake or FakeDataApi()
    return DataApiStore(
        base_url="https://data.example.test/app/data-abc/endpoint/data/v1",
        api_key="test-api-key",
        database="todo-app",
        timeout=2.0,
        transport=transport or httpx.MockTransport(fake.handler),
        page_size=page_size,
    )


def signup(client: TestClient, username: str, password: str = "p1") -> str:
    res = client.post("/api/signup", json={"username": username, "password": password})
    assert res.status_code == 201, res.text
    return res.json()["token"]


def bearer(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def todo_payload(description="buy milk", target_date="2025-01-01", done=None) -> dict:
    payload = {"description": description, "targetDate": target_date}
    if done is not None:
        payload["done"] = done
    return payload
