"""Exception hierarchy raised by HTTP sessions.

Callers usually only need two categories: :class:`TransportError`, raised when
the transfer itself failed (DNS, connect, TLS, timeout, redirect policy, or an
HTTP error status), and :class:`MalformedResponseError`, raised when a transfer
succeeded but its output could not be turned into a response envelope. Both
derive from :class:`HttpSessionError` so a single ``except`` clause can catch
everything this package raises.
"""

from __future__ import annotations

from enum import IntEnum

__all__ = [
    "HttpSessionError",
    "TransportErrorCode",
    "TransportError",
    "MalformedResponseError",
    "ResponseDecodeError",
    "SessionStateError",
]


class TransportErrorCode(IntEnum):
    """Numeric transfer failure codes, numbered like libcurl's ``CURLcode``."""

    OK = 0
    UNSUPPORTED_PROTOCOL = 1
    URL_MALFORMAT = 3
    COULDNT_RESOLVE_HOST = 6
    COULDNT_CONNECT = 7
    WEIRD_SERVER_REPLY = 8
    HTTP_RETURNED_ERROR = 22
    OPERATION_TIMEDOUT = 28
    SSL_CONNECT_ERROR = 35
    TOO_MANY_REDIRECTS = 47
    GOT_NOTHING = 52
    SEND_ERROR = 55
    RECV_ERROR = 56
    PEER_FAILED_VERIFICATION = 60
    BAD_CONTENT_ENCODING = 61


class HttpSessionError(RuntimeError):
    """Base exception for every failure raised by this package."""


class TransportError(HttpSessionError):
    """Raised when a transfer reports a non-zero error code."""

    def __init__(self, code: int, message: str) -> None:
        super().__init__(message)
        self.code = int(code)
        self.message = message

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class MalformedResponseError(HttpSessionError):
    """Raised when the combined response buffer lacks a header/body separator."""


class ResponseDecodeError(MalformedResponseError):
    """Raised when a JSON content type carries a body that is not valid JSON."""

    def __init__(self, message: str, *, body: str = "") -> None:
        super().__init__(message)
        self.body = body


class SessionStateError(HttpSessionError):
    """Raised when a session or shared state is used outside its lifecycle."""
