from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List

INSECURE_DEFAULT_SECRET = "your-secret-key"

SUPPORTED_BACKENDS = {"memory", "sqlite", "dataapi"}


@dataclass(frozen=True)
class Settings:
    """
    Application settings loaded from environment variables.

    Env vars:
    - ENVIRONMENT: 'development' (default) or 'production'
    - PERSISTENCE_BACKEND: 'memory' (default), 'sqlite' or 'dataapi'
    - SQLITE_DB_PATH: path to sqlite db file. Default './data/todos.db'
    - DATA_API_URL / DATA_API_KEY: HTTP data-access gateway endpoint and key
    - DATA_API_DATA_SOURCE / DATA_API_DATABASE: gateway data source and database
    - BACKEND_TIMEOUT_SECONDS: timeout applied to every backend call
    - BACKEND_CONNECT_MAX_ATTEMPTS, BACKEND_CONNECT_BASE_DELAY,
      BACKEND_CONNECT_MAX_DELAY, BACKEND_CHECK_INTERVAL: backend monitor tuning
    - JWT_SECRET / JWT_ALGORITHM: token signing
    - PASSWORD_HASH_ROUNDS: bcrypt cost factor
    - ID_ALLOCATION_RETRIES: retries after a duplicate todo id
    - CORS_ALLOW_ORIGINS: comma-separated list of allowed origins
    - CORS_ALLOW_ORIGIN_REGEX: regex of additionally allowed origins
    - LOG_LEVEL, HOST, PORT
    """

    environment: str
    persistence_backend: str
    sqlite_db_path: str
    data_api_url: str
    data_api_key: str
    data_api_data_source: str
    data_api_database: str
    backend_timeout_seconds: float
    backend_connect_max_attempts: int
    backend_connect_base_delay: float
    backend_connect_max_delay: float
    backend_check_interval: float
    jwt_secret: str
    jwt_algorithm: str
    password_hash_rounds: int
    id_allocation_retries: int
    cors_allow_origins: List[str]
    cors_allow_origin_regex: str
    log_level: str
    host: str
    port: int

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def uses_insecure_secret(self) -> bool:
        return not self.jwt_secret or self.jwt_secret == INSECURE_DEFAULT_SECRET


def _get_env(name: str, default: str) -> str:
    value = os.getenv(name, default)
    if value is None or value == "":
        return default
    return value


def _parse_int(value: str, default: int, minimum: int = 0) -> int:
    try:
        parsed = int(value.strip())
    except ValueError:
        return default
    return parsed if parsed >= minimum else default


def _parse_float(value: str, default: float) -> float:
    try:
        parsed = float(value.strip())
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _parse_origins(origins_value: str) -> List[str]:
    """
    Parse CORS origins from env. Supports:
    - '*' to allow all origins
    - Comma-separated list of origins
    """
    value = origins_value.strip()
    if value == "*":
        return ["*"]
    return [o.strip() for o in value.split(",") if o.strip()]


# PUBLIC_INTERFACE
def get_settings() -> Settings:
    """Return application settings loaded from environment variables."""
    backend = _get_env("PERSISTENCE_BACKEND", "memory").strip().lower()
    if backend not in SUPPORTED_BACKENDS:
        # Fallback to memory if unsupported
        backend = "memory"

    return Settings(
        environment=_get_env("ENVIRONMENT", "development").strip().lower(),
        persistence_backend=backend,
        sqlite_db_path=_get_env("SQLITE_DB_PATH", "./data/todos.db").strip(),
        data_api_url=_get_env("DATA_API_URL", "").strip().rstrip("/"),
        data_api_key=_get_env("DATA_API_KEY", "").strip(),
        data_api_data_source=_get_env("DATA_API_DATA_SOURCE", "Cluster0").strip(),
        data_api_database=_get_env("DATA_API_DATABASE", "todo-app").strip(),
        backend_timeout_seconds=_parse_float(_get_env("BACKEND_TIMEOUT_SECONDS", "5.0"), 5.0),
        backend_connect_max_attempts=_parse_int(_get_env("BACKEND_CONNECT_MAX_ATTEMPTS", "5"), 5, minimum=1),
        backend_connect_base_delay=_parse_float(_get_env("BACKEND_CONNECT_BASE_DELAY", "0.5"), 0.5),
        backend_connect_max_delay=_parse_float(_get_env("BACKEND_CONNECT_MAX_DELAY", "30.0"), 30.0),
        backend_check_interval=_parse_float(_get_env("BACKEND_CHECK_INTERVAL", "30.0"), 30.0),
        jwt_secret=_get_env("JWT_SECRET", INSECURE_DEFAULT_SECRET),
        jwt_algorithm=_get_env("JWT_ALGORITHM", "HS256").strip(),
        password_hash_rounds=_parse_int(_get_env("PASSWORD_HASH_ROUNDS", "10"), 10, minimum=4),
        id_allocation_retries=_parse_int(_get_env("ID_ALLOCATION_RETRIES", "1"), 1),
        cors_allow_origins=_parse_origins(_get_env("CORS_ALLOW_ORIGINS", "http://localhost:4200")),
        cors_allow_origin_regex=_get_env("CORS_ALLOW_ORIGIN_REGEX", r"https://.*\.pages\.dev"),
        log_level=_get_env("LOG_LEVEL", "INFO").strip().upper(),
        host=_get_env("HOST", "0.0.0.0").strip(),
        port=_parse_int(_get_env("PORT", "8080"), 8080, minimum=1),
    )
