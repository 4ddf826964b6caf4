"""
Byte transport for a single backend connection

Owns the socket and exposes the fixed-width and length-bounded primitives the
protocol is built from. All integers travel big-endian (network order).
Every call blocks until its bytes are written or read; end-of-stream and
socket failures surface as ConnectionError.

Outgoing bytes are staged in a write buffer and pushed with flush() once a
whole frontend message has been assembled.
"""

import socket
import struct
from typing import Optional, Union

import structlog

from .exceptions import ConnectionError, ProtocolError

logger = structlog.get_logger()

RECV_CHUNK_SIZE = 8192

# Supported fixed integer widths (bytes) -> unsigned big-endian struct format
_INT_FORMATS = {
    1: '!B',
    2: '!H',
    4: '!I',
}


def _int_format(width: int) -> str:
    try:
        return _INT_FORMATS[width]
    except KeyError:
        raise ValueError(f"Unsupported integer width: {width}") from None


class PGStream:
    """
    Blocking byte stream to the backend.

    Wraps any object with ``sendall``, ``recv`` and ``close`` (a connected
    socket in production, a scripted fake in tests).
    """

    def __init__(self, sock, connection_id: str = "-", encoding: str = "utf-8"):
        self._sock = sock
        self.connection_id = connection_id
        self.encoding = encoding
        self._read_buffer = bytearray()
        self._write_buffer = bytearray()

    @classmethod
    def open(cls, host: str, port: int, connect_timeout: Optional[float] = None,
             connection_id: str = "-", encoding: str = "utf-8") -> "PGStream":
        """Open a TCP connection to the backend"""
        try:
            sock = socket.create_connection((host, port), timeout=connect_timeout)
        except OSError as e:
            logger.error("Backend connection failed",
                         connection_id=connection_id, host=host, port=port, error=str(e))
            raise ConnectionError(f"Connection failed: {e}") from e

        # connect_timeout only bounds the TCP connect; protocol I/O blocks
        sock.settimeout(None)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

        logger.debug("Backend socket opened", connection_id=connection_id, host=host, port=port)
        return cls(sock, connection_id=connection_id, encoding=encoding)

    @property
    def closed(self) -> bool:
        return self._sock is None

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    def send_char(self, value: Union[int, bytes, str]):
        """Stage a single byte"""
        if isinstance(value, str):
            value = value.encode('ascii')
        if isinstance(value, (bytes, bytearray)):
            if len(value) != 1:
                raise ValueError(f"send_char expects one byte, got {len(value)}")
            value = value[0]
        self._write_buffer += struct.pack('!B', value & 0xFF)

    def send_integer(self, value: int, width: int):
        """Stage ``value`` as a ``width``-byte big-endian integer"""
        mask = (1 << (8 * width)) - 1
        self._write_buffer += struct.pack(_int_format(width), value & mask)

    def send(self, buf: bytes):
        """Stage ``buf`` verbatim"""
        self._write_buffer += buf

    def send_padded(self, buf: bytes, width: int):
        """
        Stage exactly ``width`` bytes: ``buf`` truncated to ``width``, or
        ``buf`` followed by zero bytes up to ``width``. No terminator is
        added when ``buf`` fills the field.
        """
        self._write_buffer += buf[:width]
        if len(buf) < width:
            self._write_buffer += bytes(width - len(buf))

    def flush(self):
        """Write all staged bytes to the socket"""
        if not self._write_buffer:
            return
        sock = self._require_socket()
        data = bytes(self._write_buffer)
        self._write_buffer.clear()
        try:
            sock.sendall(data)
        except OSError as e:
            logger.error("Write to backend failed",
                         connection_id=self.connection_id, error=str(e))
            raise ConnectionError(f"I/O Error: {e}") from e

    # ------------------------------------------------------------------
    # Receiving
    # ------------------------------------------------------------------

    def receive_char(self) -> int:
        """Read one byte"""
        if not self._read_buffer:
            self._fill()
        c = self._read_buffer[0]
        del self._read_buffer[0]
        return c

    def receive_integer(self, width: int) -> int:
        """Read a ``width``-byte big-endian unsigned integer"""
        fmt = _int_format(width)
        return struct.unpack(fmt, self.receive(width))[0]

    def receive_string(self, cap: int) -> str:
        """
        Read a zero-terminated string of at most ``cap`` bytes.

        Consuming ``cap`` bytes without seeing the terminator raises
        ProtocolError.
        """
        data = bytearray()
        while True:
            if not self._read_buffer:
                self._fill()
            room = cap - len(data)
            end = self._read_buffer.find(0, 0, room)
            if end != -1:
                data += self._read_buffer[:end]
                del self._read_buffer[:end + 1]
                return data.decode(self.encoding, errors="replace")
            take = min(room, len(self._read_buffer))
            data += self._read_buffer[:take]
            del self._read_buffer[:take]
            if len(data) >= cap:
                logger.error("String exceeds cap", connection_id=self.connection_id, cap=cap)
                raise ProtocolError(f"Too much data: string longer than {cap} bytes")

    def receive(self, n: int) -> bytes:
        """Read exactly ``n`` bytes"""
        while len(self._read_buffer) < n:
            self._fill()
        data = bytes(self._read_buffer[:n])
        del self._read_buffer[:n]
        return data

    def _fill(self):
        sock = self._require_socket()
        try:
            chunk = sock.recv(RECV_CHUNK_SIZE)
        except OSError as e:
            logger.error("Read from backend failed",
                         connection_id=self.connection_id, error=str(e))
            raise ConnectionError(f"Error reading from backend: {e}") from e
        if not chunk:
            logger.warning("Backend closed the stream", connection_id=self.connection_id)
            raise ConnectionError("Error reading from backend: EOF")
        self._read_buffer += chunk

    def _require_socket(self):
        if self._sock is None:
            raise ConnectionError("Stream is closed")
        return self._sock

    # ------------------------------------------------------------------

    def close(self):
        """Release the socket. Safe to call more than once."""
        sock, self._sock = self._sock, None
        self._write_buffer.clear()
        self._read_buffer.clear()
        if sock is None:
            return
        try:
            sock.close()
        except OSError as e:
            # Nothing left to recover on a socket we are discarding
            logger.debug("Socket close raised", connection_id=self.connection_id, error=str(e))
        logger.debug("Backend stream closed", connection_id=self.connection_id)
