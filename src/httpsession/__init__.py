"""Configurable HTTP(S) client sessions with shared state and parsed responses."""

from .errors import (
    HttpSessionError,
    MalformedResponseError,
    ResponseDecodeError,
    SessionStateError,
    TransportError,
    TransportErrorCode,
)
from .models import ResponseEnvelope, TransferInfo
from .session import HttpSession
from .settings import SessionSettings, get_settings, reset_settings
from .shared import SharedState

__version__ = "1.0.0"

__all__ = [
    "HttpSession",
    "HttpSessionError",
    "MalformedResponseError",
    "ResponseDecodeError",
    "ResponseEnvelope",
    "SessionSettings",
    "SessionStateError",
    "SharedState",
    "TransferInfo",
    "TransportError",
    "TransportErrorCode",
    "get_settings",
    "reset_settings",
]
