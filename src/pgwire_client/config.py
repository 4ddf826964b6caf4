"""
Session configuration

Values the protocol engine consumes from the layer above it. Can be built
directly or from PGWIRE_* environment variables; explicit arguments win
over the environment.
"""

import codecs
import os
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, field_validator

ENV_PREFIX = "PGWIRE_"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


class SessionConfig(BaseModel):
    """Connection parameters for one session"""

    model_config = ConfigDict(frozen=True)

    host: str = "localhost"
    port: int = 5432
    database: str
    user: str
    # Kept for the layer above; the startup packet never carries it
    password: str = ""
    autocommit: bool = True
    connect_timeout: Optional[float] = None
    encoding: str = "utf-8"

    @field_validator("port")
    @classmethod
    def _check_port(cls, v: int) -> int:
        if not (1 <= v <= 65535):
            raise ValueError(f"port must be 1-65535, got {v}")
        return v

    @field_validator("database", "user")
    @classmethod
    def _check_not_empty(cls, v: str, info) -> str:
        if not v:
            raise ValueError(f"{info.field_name} must not be empty")
        return v

    @field_validator("connect_timeout")
    @classmethod
    def _check_timeout(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v <= 0:
            raise ValueError(f"connect_timeout must be > 0, got {v}")
        return v

    @field_validator("encoding")
    @classmethod
    def _check_encoding(cls, v: str) -> str:
        try:
            codecs.lookup(v)
        except LookupError:
            raise ValueError(f"unknown encoding: {v}") from None
        return v

    @classmethod
    def from_env(cls, **overrides: Any) -> "SessionConfig":
        """
        Build a config from the environment.

        Reads PGWIRE_HOST, PGWIRE_PORT, PGWIRE_DATABASE, PGWIRE_USER,
        PGWIRE_PASSWORD, PGWIRE_AUTOCOMMIT and PGWIRE_CONNECT_TIMEOUT.
        Keyword arguments that are not None override the environment.
        """
        values: Dict[str, Any] = {}
        for name in ("host", "port", "database", "user", "password", "connect_timeout"):
            raw = os.getenv(ENV_PREFIX + name.upper())
            if raw is not None:
                values[name] = raw

        raw_autocommit = os.getenv(ENV_PREFIX + "AUTOCOMMIT")
        if raw_autocommit is not None:
            values["autocommit"] = _parse_bool(raw_autocommit)

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def safe_dict(self) -> Dict[str, Any]:
        """Config as a dict suitable for logging"""
        data = self.model_dump()
        if data.get("password"):
            data["password"] = "***"
        return data


def _parse_bool(raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"{ENV_PREFIX}AUTOCOMMIT must be a boolean, got {raw!r}")
