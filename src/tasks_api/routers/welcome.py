from fastapi import APIRouter

from ..schemas import MessageOut

router = APIRouter(prefix="/api", tags=["welcome"])


# PUBLIC_INTERFACE
@router.get("/hello-world/{param}", response_model=MessageOut, response_model_exclude_none=True, summary="Hello World")
def hello_world(param: str) -> MessageOut:
    """Unauthenticated greeting, used by clients as a connectivity check."""
    return MessageOut(message=f"Hello World, {param}!")
