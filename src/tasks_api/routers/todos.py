from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Response, status

from ..auth import owner_scope
from ..repositories import TodoRepository, get_repository
from ..schemas import TodoCreate, TodoOut, TodoUpdate

router = APIRouter(
    prefix="/api/users/{username}/todos",
    tags=["todos"],
    responses={
        401: {"description": "Missing access token"},
        403: {"description": "Invalid token, or the path names another user"},
    },
)


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=List[TodoOut],
    summary="List Todos",
    description="List the caller's todos in ascending id order.",
    responses={200: {"description": "List retrieved successfully"}},
)
def list_todos(
    owner: str = Depends(owner_scope),
    repo: TodoRepository = Depends(get_repository),
) -> List[TodoOut]:
    return [TodoOut(**it) for it in repo.list(owner)]  # type: ignore[arg-type]


# PUBLIC_INTERFACE
@router.get(
    "/{todo_id}",
    response_model=TodoOut,
    summary="Get Todo",
    description="Get one of the caller's todos by its per-user id.",
    responses={
        200: {"description": "Todo found"},
        404: {"description": "Todo not found"},
    },
)
def get_todo(
    todo_id: int,
    owner: str = Depends(owner_scope),
    repo: TodoRepository = Depends(get_repository),
) -> TodoOut:
    return TodoOut(**repo.get(owner, todo_id))  # type: ignore[arg-type]


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=TodoOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create Todo",
    description="Create a todo; it gets the next id in the caller's sequence.",
    responses={
        201: {"description": "Todo created successfully"},
        400: {"description": "Validation error"},
        409: {"description": "Id allocation lost a concurrent race twice"},
    },
)
def create_todo(
    payload: TodoCreate,
    owner: str = Depends(owner_scope),
    repo: TodoRepository = Depends(get_repository),
) -> TodoOut:
    created = repo.create(owner, payload.description, payload.target_date, payload.done)
    return TodoOut(**created)  # type: ignore[arg-type]


# PUBLIC_INTERFACE
@router.put(
    "/{todo_id}",
    response_model=TodoOut,
    summary="Update Todo",
    description=(
        "Update description, targetDate and/or done. Omitted fields keep their value; "
        "id and username cannot be changed and are ignored."
    ),
    responses={
        200: {"description": "Todo updated"},
        404: {"description": "Todo not found"},
    },
)
def update_todo(
    todo_id: int,
    payload: TodoUpdate,
    owner: str = Depends(owner_scope),
    repo: TodoRepository = Depends(get_repository),
) -> TodoOut:
    updated = repo.update(owner, todo_id, payload.changes())
    return TodoOut(**updated)  # type: ignore[arg-type]


# PUBLIC_INTERFACE
@router.delete(
    "/{todo_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete Todo",
    description="Permanently delete a todo.",
    responses={
        204: {"description": "Todo deleted"},
        404: {"description": "Todo not found"},
    },
)
def delete_todo(
    todo_id: int,
    owner: str = Depends(owner_scope),
    repo: TodoRepository = Depends(get_repository),
) -> Response:
    repo.delete(owner, todo_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
