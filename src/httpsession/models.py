"""Value objects returned by :class:`~httpsession.session.HttpSession` verbs."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict

__all__ = ["ResponseEnvelope", "TransferInfo"]


@dataclass(frozen=True)
class TransferInfo:
    """Metadata about a completed transfer.

    Attributes:
        url: Effective URL after redirects.
        time: Total transfer time in seconds.
        response_code: Final HTTP status.
        http_code: Same value as ``response_code``, kept for callers that read either.
        http_method: Verb tag recorded by the session (``"get"`` or ``"post"``).
    """

    url: str
    time: float
    response_code: int
    http_code: int
    http_method: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "time": self.time,
            "response_code": self.response_code,
            "http_code": self.http_code,
            "http_method": self.http_method,
        }


@dataclass(frozen=True)
class ResponseEnvelope:
    """Parsed response: transfer ``info``, header mapping ``head``, and ``body``.

    ``body`` is the decoded JSON value for JSON content types and text otherwise.
    """

    info: TransferInfo
    head: Dict[str, str] = field(default_factory=dict)
    body: Any = None

    @property
    def status(self) -> int:
        return self.info.response_code
