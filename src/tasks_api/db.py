from __future__ import annotations

import os
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from threading import Lock
from typing import Generator, List, Mapping, Optional

from .errors import BackendError, BackendUnavailable, DuplicateId, DuplicateKey
from .logging_config import get_logger
from .models import AccountEntity, TodoEntity
from .stores import MUTABLE_TODO_FIELDS, AccountStore, TodoStore
from .utils import parse_target_date, parse_timestamp

logger = get_logger(__name__)


@dataclass(frozen=True)
class _Cols:
    table: str = "todos"
    username: str = "username"
    id: str = "id"
    description: str = "description"
    target_date: str = "target_date"
    done: str = "done"
    created_at: str = "created_at"
    updated_at: str = "updated_at"


@dataclass(frozen=True)
class _UserCols:
    table: str = "users"
    username: str = "username"
    password_hash: str = "password_hash"
    created_at: str = "created_at"


_COLS = _Cols()
_USERS = _UserCols()


class SQLiteStore(TodoStore, AccountStore):
    """
    SQLite backend, the direct-driver transport. The composite primary key
    on (username, id) is the unique constraint that id allocation relies on.
    Every connection waits at most ``timeout`` seconds for a lock.
    """

    name = "sqlite"

    def __init__(self, db_path: str, timeout: float = 5.0) -> None:
        os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        self._db_path = db_path
        self._timeout = timeout
        self._schema_lock = Lock()
        self._schema_ready = False

    @contextmanager
    def _conn(self) -> Generator[sqlite3.Connection, None, None]:
        try:
            conn = sqlite3.connect(self._db_path, timeout=self._timeout)
        except sqlite3.Error as e:
            raise BackendUnavailable(str(e)) from e
        conn.row_factory = sqlite3.Row
        try:
            self._ensure_schema(conn)
            yield conn
            conn.commit()
        except sqlite3.IntegrityError:
            conn.rollback()
            raise
        except sqlite3.OperationalError as e:
            conn.rollback()
            logger.error(f"SQLite operation failed: {e}")
            raise BackendUnavailable(str(e)) from e
        except sqlite3.DatabaseError as e:
            conn.rollback()
            logger.error(f"SQLite error: {e}")
            raise BackendError(str(e)) from e
        except BaseException:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _ensure_schema(self, conn: sqlite3.Connection) -> None:
        if self._schema_ready:
            return
        with self._schema_lock:
            if self._schema_ready:
                return
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {_COLS.table} (
                    {_COLS.username} TEXT NOT NULL,
                    {_COLS.id} INTEGER NOT NULL,
                    {_COLS.description} TEXT NOT NULL,
                    {_COLS.target_date} TEXT NOT NULL,
                    {_COLS.done} INTEGER NOT NULL DEFAULT 0,
                    {_COLS.created_at} TEXT NOT NULL,
                    {_COLS.updated_at} TEXT NOT NULL,
                    PRIMARY KEY ({_COLS.username}, {_COLS.id})
                )
                """
            )
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {_USERS.table} (
                    {_USERS.username} TEXT PRIMARY KEY,
                    {_USERS.password_hash} TEXT NOT NULL,
                    {_USERS.created_at} TEXT NOT NULL
                )
                """
            )
            conn.commit()
            self._schema_ready = True

    def _row_to_entity(self, row: sqlite3.Row) -> TodoEntity:
        return {
            "username": str(row[_COLS.username]),
            "id": int(row[_COLS.id]),
            "description": str(row[_COLS.description]),
            "target_date": parse_target_date(row[_COLS.target_date]),  # type: ignore[typeddict-item]
            "done": bool(row[_COLS.done]),
            "created_at": parse_timestamp(row[_COLS.created_at]),
            "updated_at": parse_timestamp(row[_COLS.updated_at]),
        }

    def _select_one(self, conn: sqlite3.Connection, username: str, todo_id: int) -> Optional[sqlite3.Row]:
        return conn.execute(
            f"SELECT * FROM {_COLS.table} WHERE {_COLS.username} = ? AND {_COLS.id} = ?",
            (username, todo_id),
        ).fetchone()

    def max_id(self, username: str) -> int:
        with self._conn() as conn:
            row = conn.execute(
                f"SELECT MAX({_COLS.id}) AS max_id FROM {_COLS.table} WHERE {_COLS.username} = ?",
                (username,),
            ).fetchone()
            return int(row["max_id"]) if row and row["max_id"] is not None else 0

    def insert(self, entity: TodoEntity) -> None:
        try:
            with self._conn() as conn:
                conn.execute(
                    f"""
                    INSERT INTO {_COLS.table} ({_COLS.username}, {_COLS.id}, {_COLS.description},
                        {_COLS.target_date}, {_COLS.done}, {_COLS.created_at}, {_COLS.updated_at})
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        entity["username"],
                        entity["id"],
                        entity["description"],
                        entity["target_date"].isoformat(),
                        1 if entity["done"] else 0,
                        entity["created_at"].isoformat(),
                        entity["updated_at"].isoformat(),
                    ),
                )
        except sqlite3.IntegrityError as e:
            raise DuplicateId(entity["username"], entity["id"]) from e

    def find(self, username: str, todo_id: int) -> Optional[TodoEntity]:
        with self._conn() as conn:
            row = self._select_one(conn, username, todo_id)
            return self._row_to_entity(row) if row else None

    def find_all(self, username: str) -> List[TodoEntity]:
        with self._conn() as conn:
            rows = conn.execute(
                f"SELECT * FROM {_COLS.table} WHERE {_COLS.username} = ? ORDER BY {_COLS.id} ASC",
                (username,),
            ).fetchall()
            return [self._row_to_entity(r) for r in rows]

    def update(self, username: str, todo_id: int, fields: Mapping[str, object]) -> Optional[TodoEntity]:
        assignments = []
        params: list = []
        for k in MUTABLE_TODO_FIELDS:
            if k not in fields:
                continue
            value = fields[k]
            if k == "done":
                value = 1 if value else 0
            elif k in ("target_date", "updated_at"):
                value = value.isoformat()  # type: ignore[attr-defined]
            assignments.append(f"{getattr(_COLS, k)} = ?")
            params.append(value)

        with self._conn() as conn:
            if assignments:
                cur = conn.execute(
                    f"""
                    UPDATE {_COLS.table}
                    SET {', '.join(assignments)}
                    WHERE {_COLS.username} = ? AND {_COLS.id} = ?
                    """,
                    [*params, username, todo_id],
                )
                if cur.rowcount == 0:
                    return None
            row = self._select_one(conn, username, todo_id)
            return self._row_to_entity(row) if row else None

    def delete(self, username: str, todo_id: int) -> bool:
        with self._conn() as conn:
            cur = conn.execute(
                f"DELETE FROM {_COLS.table} WHERE {_COLS.username} = ? AND {_COLS.id} = ?",
                (username, todo_id),
            )
            return cur.rowcount > 0

    def ping(self) -> None:
        with self._conn() as conn:
            conn.execute("SELECT 1").fetchone()

    def insert_account(self, account: AccountEntity) -> None:
        try:
            with self._conn() as conn:
                conn.execute(
                    f"""
                    INSERT INTO {_USERS.table} ({_USERS.username}, {_USERS.password_hash}, {_USERS.created_at})
                    VALUES (?, ?, ?)
                    """,
                    (account["username"], account["password_hash"], account["created_at"].isoformat()),
                )
        except sqlite3.IntegrityError as e:
            raise DuplicateKey("users", {"username": account["username"]}) from e

    def find_account(self, username: str) -> Optional[AccountEntity]:
        with self._conn() as conn:
            row = conn.execute(
                f"SELECT * FROM {_USERS.table} WHERE {_USERS.username} = ?", (username,)
            ).fetchone()
            if row is None:
                return None
            return {
                "username": str(row[_USERS.username]),
                "password_hash": str(row[_USERS.password_hash]),
                "created_at": parse_timestamp(row[_USERS.created_at]),
            }
