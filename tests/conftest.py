"""
Pytest configuration for pgwire_client tests

Unit tests drive the protocol engine against an in-memory backend: a
scripted socket serves pre-built response bytes and records everything the
client writes. No network or running backend is needed.
"""

from typing import Optional

import pytest
import structlog

from pgwire_client.config import SessionConfig
from pgwire_client.session import PGSession
from pgwire_client.stream import PGStream

from backend_script import BackendScript, ScriptedSocket

logger = structlog.get_logger()


@pytest.fixture
def backend():
    """Fresh response builder"""
    return BackendScript()


@pytest.fixture
def make_stream():
    """Factory: PGStream over a ScriptedSocket serving ``response``"""
    def _make(response: bytes = b'', chunk_size: Optional[int] = None):
        sock = ScriptedSocket(bytes(response), chunk_size=chunk_size)
        return PGStream(sock, connection_id="test"), sock
    return _make


@pytest.fixture
def session_config():
    return SessionConfig(host="db.example", port=5432, database="testdb",
                         user="tester", password="secret")


@pytest.fixture
def open_session(session_config):
    """
    Factory: handshake-complete PGSession over a ScriptedSocket.

    The probe's empty-query acknowledgment is scripted automatically;
    ``response`` is queued behind it and the recorded writes are cleared
    so tests only see their own traffic.
    """
    def _open(response: bytes = b'', config: Optional[SessionConfig] = None, **kwargs):
        sock = ScriptedSocket(b'I\x00' + bytes(response))
        session = PGSession(config or session_config, stream=PGStream(sock), **kwargs)
        session.connect()
        sock.sent.clear()
        logger.debug("Test session opened", connection_id=session.connection_id)
        return session, sock
    return _open
