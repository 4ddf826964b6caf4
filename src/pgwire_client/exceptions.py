"""
Error taxonomy for the wire protocol client

- ConnectionError: transport or handshake failure. Fatal to the session.
- ProtocolError: malformed or out-of-order backend stream. Fatal to the query.
- ServerError: ErrorResponse ('E') sent by the backend. Fatal to the query.
- ValidationError: request rejected locally before any bytes are written.
- UnsupportedError: feature not implemented by this client.
"""


class DatabaseError(Exception):
    """Base class for all errors raised by pgwire_client"""


class ConnectionError(DatabaseError):
    """Transport failure: connect refused, read/write failure, end-of-stream"""


class ProtocolError(DatabaseError):
    """Backend sent bytes that do not fit the protocol state machine"""


class ServerError(DatabaseError):
    """Error message reported by the backend for the current query"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(DatabaseError):
    """Request rejected before anything reached the transport"""


class UnsupportedError(DatabaseError):
    """Requested feature is not implemented"""
