"""
Simple-query protocol engine

Sends a Query ('Q') message and drives the tagged response stream to
completion. Each backend message starts with a single tag byte:

- 'T' row description      - 'B'/'D' binary/text tuple
- 'C' command complete     - 'I' empty query acknowledgment
- 'E' error                - 'N' notice
- 'A' asynchronous notify  - 'P' portal name

Row-less statements ('C' with no prior 'T') carry no explicit "ready"
signal, so the reader answers them with an empty query and waits for its
'I' acknowledgment before returning. Reading stops once a final message has
been seen AND every such flush query has been acknowledged.
"""

from typing import Callable, List, Optional, Tuple

import structlog

from .decoders import receive_fields, receive_tuple
from .exceptions import ProtocolError, ServerError, ValidationError
from .models import FieldDescriptor, ResultBundle, Row
from .stream import PGStream

logger = structlog.get_logger()

# Frontend message types
MSG_QUERY = b'Q'

# Backend message types
MSG_ASYNC_NOTIFY = b'A'
MSG_BINARY_ROW = b'B'
MSG_COMMAND_COMPLETE = b'C'
MSG_TEXT_ROW = b'D'
MSG_ERROR_RESPONSE = b'E'
MSG_EMPTY_QUERY = b'I'
MSG_NOTICE_RESPONSE = b'N'
MSG_PORTAL_NAME = b'P'
MSG_ROW_DESCRIPTION = b'T'

# Limits
MAX_QUERY_LENGTH = 8192
MAX_STATUS_LENGTH = 8192
MAX_ERROR_LENGTH = 4096

# Statement sent to force an 'I' acknowledgment after a row-less result
FLUSH_QUERY = b' '

NoticeHandler = Callable[[str], None]


def send_query(stream: PGStream, sql: bytes):
    """Query: 'Q' + text + NUL"""
    stream.send(MSG_QUERY)
    stream.send(sql)
    stream.send_char(0)
    stream.flush()


class ResponseReader:
    """
    Response state machine for one submitted query.

    Not reusable: create one per query. The caller must hold the session's
    execution lock for the whole send + read cycle.
    """

    def __init__(self, stream: PGStream, notice_handler: Optional[NoticeHandler] = None):
        self.stream = stream
        self.notice_handler = notice_handler
        self.connection_id = stream.connection_id

        self.fields: Optional[Tuple[FieldDescriptor, ...]] = None
        self.rows: List[Row] = []
        self.status: Optional[str] = None
        self.error: Optional[ServerError] = None

        self.final_seen = False
        self.pending_flushes = 0

    @property
    def done(self) -> bool:
        return self.final_seen and self.pending_flushes == 0

    def read(self) -> ResultBundle:
        """Consume backend messages until the response is complete"""
        while not self.done:
            tag = bytes([self.stream.receive_char()])
            logger.debug("Backend message",
                         connection_id=self.connection_id,
                         tag=tag.decode('latin-1'),
                         final_seen=self.final_seen,
                         pending_flushes=self.pending_flushes)

            if tag == MSG_ROW_DESCRIPTION:
                self._handle_row_description()
            elif tag == MSG_BINARY_ROW:
                self._handle_tuple(binary=True)
            elif tag == MSG_TEXT_ROW:
                self._handle_tuple(binary=False)
            elif tag == MSG_COMMAND_COMPLETE:
                self._handle_command_complete()
            elif tag == MSG_EMPTY_QUERY:
                self._handle_empty_query()
            elif tag == MSG_ERROR_RESPONSE:
                self._handle_error()
            elif tag == MSG_NOTICE_RESPONSE:
                self._handle_notice()
            elif tag == MSG_ASYNC_NOTIFY:
                self._handle_async_notify()
            elif tag == MSG_PORTAL_NAME:
                self._handle_portal_name()
            else:
                logger.error("Unknown response type",
                             connection_id=self.connection_id, tag=repr(tag))
                raise ProtocolError(f"Unknown response type: {tag.decode('latin-1')!r}")

        if self.error is not None:
            # Partial results are never handed back
            logger.info("Query failed on backend",
                        connection_id=self.connection_id,
                        error=self.error.message,
                        discarded_rows=len(self.rows))
            self.rows = []
            raise self.error

        return ResultBundle(fields=self.fields or (),
                            rows=self.rows,
                            status=self.status)

    # ------------------------------------------------------------------
    # Message handlers
    # ------------------------------------------------------------------

    def _handle_row_description(self):
        if self.fields is not None:
            raise ProtocolError("Cannot handle multiple result groups")
        self.fields = receive_fields(self.stream)
        logger.debug("Row description received",
                     connection_id=self.connection_id, field_count=len(self.fields))

    def _handle_tuple(self, binary: bool):
        if self.fields is None:
            raise ProtocolError("Tuple received before metadata")
        self.rows.append(receive_tuple(self.stream, len(self.fields), binary))

    def _handle_command_complete(self):
        self.status = self.stream.receive_string(MAX_STATUS_LENGTH)
        if self.fields is not None:
            self.final_seen = True
            return
        # No row description: resynchronize with an empty query
        send_query(self.stream, FLUSH_QUERY)
        self.pending_flushes += 1
        logger.debug("Flush query sent",
                     connection_id=self.connection_id,
                     status=self.status,
                     pending_flushes=self.pending_flushes)

    def _handle_empty_query(self):
        terminator = self.stream.receive_char()
        if terminator != 0:
            raise ProtocolError("Garbled data")
        if self.pending_flushes > 0:
            self.pending_flushes -= 1
        if self.pending_flushes == 0:
            self.final_seen = True

    def _handle_error(self):
        message = self.stream.receive_string(MAX_ERROR_LENGTH)
        self.error = ServerError(message)
        self.final_seen = True

    def _handle_notice(self):
        message = self.stream.receive_string(MAX_ERROR_LENGTH)
        if self.notice_handler is not None:
            self.notice_handler(message)
        else:
            logger.warning("Backend notice", connection_id=self.connection_id, notice=message)

    def _handle_async_notify(self):
        pid = self.stream.receive_integer(4)
        message = self.stream.receive_string(MAX_STATUS_LENGTH)
        logger.debug("Asynchronous notify ignored",
                     connection_id=self.connection_id, backend_pid=pid, notify=message)

    def _handle_portal_name(self):
        portal = self.stream.receive_string(MAX_STATUS_LENGTH)
        logger.debug("Portal name ignored", connection_id=self.connection_id, portal=portal)


def execute_simple_query(stream: PGStream, sql: str,
                         notice_handler: Optional[NoticeHandler] = None) -> ResultBundle:
    """
    Send ``sql`` as a simple query and return its decoded result.

    Raises:
        ValidationError: statement longer than MAX_QUERY_LENGTH (nothing sent)
        ServerError: backend reported an error
        ProtocolError: malformed response stream
        ConnectionError: transport failure
    """
    if len(sql) > MAX_QUERY_LENGTH:
        raise ValidationError(f"SQL statement too long: {len(sql)} > {MAX_QUERY_LENGTH} characters")

    send_query(stream, sql.encode(stream.encoding))
    return ResponseReader(stream, notice_handler).read()
