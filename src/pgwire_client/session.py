"""
Protocol session: startup handshake, exclusive query execution, and
transaction control

Startup packet (288 bytes, no type byte):
- Int32: total length (288)
- Int32: startup code (7)
- Byte[64]: database name, zero-padded or truncated
- Byte[216]: user name, zero-padded or truncated

The handshake is confirmed by running an empty query through the normal
response reader; the session only becomes OPEN once that probe succeeds.
Passwords are held in the config but are not part of this handshake.
"""

import secrets
import threading
from typing import Optional

import structlog

from .config import SessionConfig
from .exceptions import ConnectionError, DatabaseError, UnsupportedError
from .models import ResultBundle, SessionStatus
from .protocol import NoticeHandler, execute_simple_query
from .stream import PGStream

logger = structlog.get_logger()

STARTUP_PACKET_LENGTH = 288
STARTUP_CODE = 7
DATABASE_FIELD_LENGTH = 64
USER_FIELD_LENGTH = STARTUP_PACKET_LENGTH - 4 - 4 - DATABASE_FIELD_LENGTH

PROBE_QUERY = " "
DEFAULT_ISOLATION = "serializable"


class PGSession:
    """
    A single backend session.

    All statement traffic (user queries, the handshake probe and
    transaction control) goes through one lock so that exactly one
    send-then-drain cycle is in flight at a time. close() takes the same
    lock and therefore waits for a running query.
    """

    def __init__(self, config: SessionConfig, stream: Optional[PGStream] = None,
                 notice_handler: Optional[NoticeHandler] = None):
        self.config = config
        self.notice_handler = notice_handler
        self.connection_id = secrets.token_hex(4)

        self._stream = stream
        if stream is not None:
            stream.connection_id = self.connection_id
        self._status = SessionStatus.BROKEN
        self._lock = threading.RLock()

        # Session state
        self._autocommit = True
        self._read_only = False
        self._cursor_name: Optional[str] = None

    # ------------------------------------------------------------------
    # Handshake
    # ------------------------------------------------------------------

    def connect(self) -> "PGSession":
        """
        Open the transport, send the startup packet and probe the session.

        With autocommit off in the config, the first transaction is opened
        before the session is handed back. Raises ConnectionError if any
        step fails; the transport is closed again in that case.
        """
        with self._lock:
            if self._status is SessionStatus.OPEN:
                return self

            logger.info("Connecting to backend",
                        connection_id=self.connection_id,
                        host=self.config.host,
                        port=self.config.port,
                        database=self.config.database,
                        user=self.config.user)

            if self._stream is None:
                self._stream = PGStream.open(self.config.host, self.config.port,
                                             connect_timeout=self.config.connect_timeout,
                                             connection_id=self.connection_id,
                                             encoding=self.config.encoding)

            try:
                self._send_startup_packet()
                self._execute(PROBE_QUERY)
                if not self.config.autocommit:
                    self._execute("begin")
                    self._autocommit = False
            except ConnectionError:
                self._abort()
                raise
            except DatabaseError as e:
                self._abort()
                raise ConnectionError(f"Connection failed: {e}") from e

            self._status = SessionStatus.OPEN
            logger.info("Session established",
                        connection_id=self.connection_id, autocommit=self._autocommit)
            return self

    def _send_startup_packet(self):
        encoding = self.config.encoding
        stream = self._stream
        stream.send_integer(STARTUP_PACKET_LENGTH, 4)
        stream.send_integer(STARTUP_CODE, 4)
        stream.send_padded(self.config.database.encode(encoding), DATABASE_FIELD_LENGTH)
        stream.send_padded(self.config.user.encode(encoding), USER_FIELD_LENGTH)
        stream.flush()
        logger.debug("Startup packet sent",
                     connection_id=self.connection_id, length=STARTUP_PACKET_LENGTH)

    def _abort(self):
        self._status = SessionStatus.BROKEN
        if self._stream is not None:
            self._stream.close()

    # ------------------------------------------------------------------
    # Query execution
    # ------------------------------------------------------------------

    def execute_simple_query(self, sql: str) -> ResultBundle:
        """Run one SQL string and return its decoded result"""
        with self._lock:
            self._check_open()
            return self._execute(sql)

    def _execute(self, sql: str) -> ResultBundle:
        try:
            result = execute_simple_query(self._stream, sql, self.notice_handler)
        except ConnectionError:
            logger.error("Session broken by transport failure", connection_id=self.connection_id)
            self._abort()
            raise

        logger.debug("Query complete",
                     connection_id=self.connection_id,
                     status=result.status,
                     field_count=len(result.fields),
                     row_count=result.row_count)
        return result

    def _check_open(self):
        if self._status is not SessionStatus.OPEN:
            raise ConnectionError("Session is not open")

    # ------------------------------------------------------------------
    # Transaction control
    # ------------------------------------------------------------------

    @property
    def autocommit(self) -> bool:
        return self._autocommit

    def set_autocommit(self, autocommit: bool):
        """Switch autocommit; 'begin' opens a transaction, 'end' closes it"""
        with self._lock:
            self._check_open()
            if self._autocommit == autocommit:
                return
            self._execute("end" if autocommit else "begin")
            self._autocommit = autocommit

    def commit(self):
        """Commit and immediately open the next transaction"""
        self._finish_transaction("commit")

    def rollback(self):
        """Roll back and immediately open the next transaction"""
        self._finish_transaction("rollback")

    def _finish_transaction(self, verb: str):
        with self._lock:
            self._check_open()
            if self._autocommit:
                return
            # A failing verb raises before 'begin' is sent
            self._execute(verb)
            # Between the verb and 'begin' no transaction is open
            self._autocommit = True
            self._execute("begin")
            self._autocommit = False

    # ------------------------------------------------------------------
    # Local session attributes
    # ------------------------------------------------------------------

    @property
    def status(self) -> SessionStatus:
        return self._status

    def is_open(self) -> bool:
        return self._status is SessionStatus.OPEN

    @property
    def host(self) -> str:
        return self.config.host

    @property
    def port(self) -> int:
        return self.config.port

    @property
    def database(self) -> str:
        return self.config.database

    @property
    def user(self) -> str:
        return self.config.user

    @property
    def read_only(self) -> bool:
        """Advisory only; never sent to the backend"""
        return self._read_only

    @read_only.setter
    def read_only(self, value: bool):
        self._read_only = bool(value)

    @property
    def cursor_name(self) -> Optional[str]:
        return self._cursor_name

    @cursor_name.setter
    def cursor_name(self, name: Optional[str]):
        self._cursor_name = name

    @property
    def catalog(self) -> Optional[str]:
        return None

    @catalog.setter
    def catalog(self, name: Optional[str]):
        pass  # catalogs are not supported; silently ignored

    @property
    def transaction_isolation(self) -> str:
        return DEFAULT_ISOLATION

    def set_transaction_isolation(self, level: str):
        raise UnsupportedError("Transaction isolation levels are not implemented")

    def get_metadata(self):
        raise UnsupportedError("Database metadata is not supported")

    def prepare_call(self, sql: str):
        raise UnsupportedError("Callable statements are not supported")

    def native_sql(self, sql: str) -> str:
        return sql

    @property
    def warnings(self):
        # Notices are logged as they arrive, never accumulated
        return None

    def clear_warnings(self):
        pass

    # ------------------------------------------------------------------

    def close(self):
        """Release the transport. Waits for an in-flight query to finish."""
        with self._lock:
            if self._stream is None or self._stream.closed:
                self._status = SessionStatus.BROKEN
                return
            self._abort()
            logger.info("Session closed", connection_id=self.connection_id)

    def __enter__(self) -> "PGSession":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def __repr__(self) -> str:
        return (f"<PGSession {self.connection_id} {self.config.user}@{self.config.host}:"
                f"{self.config.port}/{self.config.database} {self._status.value}>")
