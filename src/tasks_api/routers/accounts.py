from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ..auth import Identity, require_basic_identity
from ..credentials import CredentialStore, get_credential_store
from ..errors import InvalidCredentials
from ..logging_config import get_logger
from ..schemas import Credentials, MessageOut, TokenOut
from ..security import TokenService, get_token_service

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["auth"])


# PUBLIC_INTERFACE
@router.post(
    "/signup",
    response_model=TokenOut,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
    summary="Sign up",
    description="Register a username and password and receive a 24 hour bearer token.",
    responses={
        201: {"description": "Account created"},
        400: {"description": "Username and password required"},
        409: {"description": "Username already exists"},
    },
)
def signup(
    payload: Credentials,
    credentials: CredentialStore = Depends(get_credential_store),
    tokens: TokenService = Depends(get_token_service),
) -> TokenOut:
    credentials.create(payload.username, payload.password)
    return TokenOut(
        message="User created successfully",
        token=tokens.issue(payload.username),
        username=payload.username,
    )


# PUBLIC_INTERFACE
@router.post(
    "/authenticate",
    response_model=TokenOut,
    response_model_exclude_none=True,
    summary="Authenticate",
    description="Exchange a username and password for a 24 hour bearer token.",
    responses={
        200: {"description": "Authenticated"},
        400: {"description": "Username and password required"},
        401: {"description": "Invalid credentials"},
    },
)
def authenticate(
    payload: Credentials,
    credentials: CredentialStore = Depends(get_credential_store),
    tokens: TokenService = Depends(get_token_service),
) -> TokenOut:
    if not credentials.verify_password(payload.username, payload.password):
        logger.info(f"Failed login for {payload.username}")
        raise InvalidCredentials()
    logger.info(f"Authenticated {payload.username}")
    return TokenOut(token=tokens.issue(payload.username), username=payload.username)


# PUBLIC_INTERFACE
@router.get(
    "/basicauth",
    response_model=MessageOut,
    summary="Basic auth probe",
    description=(
        "Echo the username from an HTTP Basic header. The password is not "
        "verified; this is an identity claim only and grants no todo access."
    ),
    responses={401: {"description": "Missing or undecodable Basic credentials"}},
)
def basic_auth_probe(identity: Identity = Depends(require_basic_identity)) -> MessageOut:
    return MessageOut(message="You are authenticated", username=identity.username)
