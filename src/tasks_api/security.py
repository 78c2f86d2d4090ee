"""
Security utilities for authentication.

Provides bcrypt password hashing and the JWT identity token service.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Callable, Optional

import bcrypt
import jwt
from jwt.exceptions import InvalidTokenError

from .errors import InsecureConfigurationError, InvalidSignature, TokenExpired
from .logging_config import get_logger
from .settings import INSECURE_DEFAULT_SECRET, Settings, get_settings

logger = get_logger(__name__)

TOKEN_LIFETIME = timedelta(hours=24)

Clock = Callable[[], datetime]


def _utc_clock() -> datetime:
    return datetime.now(timezone.utc)


# ==================== PASSWORD HASHING ====================


def hash_password(password: str, rounds: int = 10) -> str:
    """
    Hash a password using bcrypt with a fresh per-account salt.

    Args:
        password: Plain text password
        rounds: bcrypt cost factor

    Returns:
        Hashed password string (salt embedded)
    """
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
    return hashed.decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    """
    Verify a password against its hash. bcrypt compares in constant time.

    Returns:
        True if password matches, False otherwise
    """
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError as e:
        logger.error(f"Password verification failed: {e}")
        return False


# ==================== JWT TOKENS ====================


class TokenService:
    """
    Issues and verifies signed identity tokens.

    Tokens carry ``username``, ``iat`` and ``exp`` and live for 24 hours.
    Verification needs only the shared secret: no account lookup is made, so
    a token stays valid for its whole lifetime even if the account goes away.
    """

    def __init__(self, secret: str, algorithm: str = "HS256", clock: Optional[Clock] = None) -> None:
        self._secret = secret
        self._algorithm = algorithm
        self._clock = clock or _utc_clock

    def issue(self, username: str) -> str:
        now = self._clock()
        expire = now + TOKEN_LIFETIME
        payload = {
            "username": username,
            "iat": now,
            "exp": expire,
        }
        token = jwt.encode(payload, self._secret, algorithm=self._algorithm)
        logger.debug(f"Issued token for {username}, expires at {expire}")
        return token

    def verify(self, token: str) -> str:
        """
        Return the username embedded in ``token``.

        Raises:
            InvalidSignature: token is malformed or signed with another secret
            TokenExpired: the service clock is past the token's expiry
        """
        try:
            # Expiry is checked below against the service clock rather than wall time
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"verify_exp": False, "verify_iat": False, "require": ["exp", "iat"]},
            )
        except InvalidTokenError as e:
            logger.debug(f"Rejected token: {e}")
            raise InvalidSignature() from e

        username = payload.get("username")
        exp = payload.get("exp")
        if not isinstance(username, str) or not username or not isinstance(exp, (int, float)):
            raise InvalidSignature()

        if self._clock().timestamp() > exp:
            logger.debug(f"Expired token for {username}")
            raise TokenExpired()

        return username


def check_secret(settings: Settings) -> None:
    """
    Refuse to start in production with a missing or default signing secret;
    outside production only warn.
    """
    if not settings.uses_insecure_secret:
        return
    if settings.is_production:
        raise InsecureConfigurationError(
            "JWT_SECRET is unset or uses the insecure default; refusing to start in production"
        )
    logger.warning(
        "JWT_SECRET is unset or '%s'; tokens are forgeable. Set JWT_SECRET before deploying.",
        INSECURE_DEFAULT_SECRET,
    )


# PUBLIC_INTERFACE
@lru_cache(maxsize=1)
def get_token_service() -> TokenService:
    """Process-wide token service built from settings."""
    settings = get_settings()
    return TokenService(settings.jwt_secret, settings.jwt_algorithm)
