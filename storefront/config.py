"""Configuration helpers for the storefront service.

Settings are read once at start-up from the process environment, after an
optional ``.env`` file has been loaded. Tests and scripts pass an explicit
mapping instead, which bypasses the ``.env`` lookup entirely.
"""

from dataclasses import dataclass
from typing import Iterable, Mapping, Optional, Tuple, Union
import os

from dotenv import load_dotenv


DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./storefront.db"


@dataclass(frozen=True)
class Settings:
    """Strongly typed configuration for the API server."""

    database_url: str
    address: str
    request_timeout: float
    token_ttl_hours: int
    token_bytes: int
    bcrypt_rounds: int
    max_body_bytes: int
    log_level: str
    cors_origins: Tuple[str, ...]

    @property
    def host(self) -> str:
        host, _, _ = self.address.rpartition(":")
        return host or "127.0.0.1"

    @property
    def port(self) -> int:
        _, _, port = self.address.rpartition(":")
        return int(port)


def _coerce_origins(raw: Union[str, Iterable[str]]) -> Tuple[str, ...]:
    if isinstance(raw, str):
        items = [piece.strip() for piece in raw.split(",")]
    else:
        items = [piece.strip() for piece in raw]
    return tuple(filter(None, items)) or ("*",)


def _positive(env_map: Mapping[str, str], key: str, default: str, cast=int):
    raw = env_map.get(key, default)
    try:
        value = cast(raw)
    except (TypeError, ValueError):
        raise ValueError(f"{key} must be a number, got {raw!r}") from None
    if value <= 0:
        raise ValueError(f"{key} must be positive, got {raw!r}")
    return value


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Load settings from ``env``, or from ``.env`` plus ``os.environ``."""

    if env is None:
        load_dotenv()
        env = os.environ
    env_map = dict(env)

    database_url = env_map.get("DATABASE_URL") or env_map.get("DSN") or DEFAULT_DATABASE_URL
    address = env_map.get("ADDRESS", "127.0.0.1:8085")
    if not address.rpartition(":")[2].isdigit():
        raise ValueError(f"ADDRESS must look like host:port, got {address!r}")

    return Settings(
        database_url=database_url,
        address=address,
        request_timeout=_positive(env_map, "REQUEST_TIMEOUT", "5", cast=float),
        token_ttl_hours=_positive(env_map, "TOKEN_TTL_HOURS", "72"),
        token_bytes=_positive(env_map, "TOKEN_BYTES", "16"),
        bcrypt_rounds=_positive(env_map, "BCRYPT_ROUNDS", "12"),
        max_body_bytes=_positive(env_map, "MAX_BODY_BYTES", "1048576"),
        log_level=env_map.get("LOG_LEVEL", "INFO").upper(),
        cors_origins=_coerce_origins(env_map.get("CORS_ORIGINS", "*")),
    )
