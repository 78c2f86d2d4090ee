from __future__ import annotations

from datetime import date, datetime
from typing import TypedDict


# PUBLIC_INTERFACE
class TodoEntity(TypedDict):
    """
    A lightweight domain model representing a Todo item as exchanged with
    storage backends.

    Fields:
    - username: Owner of the todo; immutable after creation
    - id: Per-owner sequential integer identifier; (username, id) is unique
    - description: Non-empty text
    - target_date: Date the todo is due
    - done: Completion flag
    - created_at: UTC creation timestamp
    - updated_at: UTC last update timestamp
    """

    username: str
    id: int
    description: str
    target_date: date
    done: bool
    created_at: datetime
    updated_at: datetime


# PUBLIC_INTERFACE
class AccountEntity(TypedDict):
    """A registered user: unique case-sensitive username and bcrypt hash."""

    username: str
    password_hash: str
    created_at: datetime
