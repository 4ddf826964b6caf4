"""
pgwire-client

Synchronous client for the classic frontend/backend wire protocol: startup
handshake, simple queries, tagged response decoding and autocommit-based
transaction control over a single blocking session.
"""

from typing import Any, Optional

from .config import SessionConfig
from .exceptions import (
    ConnectionError,
    DatabaseError,
    ProtocolError,
    ServerError,
    UnsupportedError,
    ValidationError,
)
from .models import FieldDescriptor, ResultBundle, SessionStatus
from .protocol import NoticeHandler
from .session import PGSession

__version__ = "0.1.0"


def connect(config: Optional[SessionConfig] = None,
            notice_handler: Optional[NoticeHandler] = None,
            **overrides: Any) -> PGSession:
    """
    Open a session.

    ``config`` defaults to SessionConfig.from_env(); keyword arguments
    override individual fields.
    """
    if config is None:
        config = SessionConfig.from_env(**overrides)
    elif overrides:
        config = SessionConfig(**{**config.model_dump(), **overrides})
    return PGSession(config, notice_handler=notice_handler).connect()


__all__ = [
    "__version__",
    "connect",
    "PGSession",
    "SessionConfig",
    "SessionStatus",
    "FieldDescriptor",
    "ResultBundle",
    "DatabaseError",
    "ConnectionError",
    "ProtocolError",
    "ServerError",
    "ValidationError",
    "UnsupportedError",
]
