# === NAVMAP v1 ===
# {
#   "module": "httpsession.session",
#   "purpose": "Configurable HTTP(S) session with shared state, header management, and parsed responses.",
#   "sections": [
#     {"id": "httpsession", "name": "HttpSession", "anchor": "class-httpsession", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Configurable HTTP(S) session with shared state, header management, and parsed responses.

Example:
    >>> from httpsession import HttpSession
    >>> with HttpSession() as session:
    ...     session.initialize(shared=True)
    ...     session.set_header("Accept-Language", "en")
    ...     response = session.get("https://api.example.com/items")
    ...     response.info.response_code, response.head["Content-Type"], response.body
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

from .errors import SessionStateError, TransportError
from .logging_config import mask_sensitive_data
from .models import ResponseEnvelope, TransferInfo
from .parsing import (
    build_query,
    canonical_header_name,
    decode_body,
    parse_header_block,
    split_response,
)
from .settings import SessionSettings, get_settings
from .shared import SharedState
from .transport import HttpxTransport, TransferOptions, TransferPolicy, Transport

__all__ = ["HttpSession", "TransportFactory"]

logger = logging.getLogger(__name__)

#: Builds a transport handle from the session's policy and its shared state (if sharing).
TransportFactory = Callable[[TransferPolicy, Optional[SharedState]], Transport]

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
JSON_CONTENT_TYPE = "application/json"

PostData = Union[str, bytes, Mapping[str, Any], List[Any], Tuple[Any, ...]]


class HttpSession:
    """HTTP(S) client wrapper owning one transport handle.

    A session must be :meth:`initialize`-d before use. Configuration calls
    return the session so they can be chained::

        session = HttpSession().initialize().basic_auth("user", "pw").set_header("X-Trace", "1")

    Args:
        shared_state: Existing :class:`SharedState` to join when sharing is
            enabled. When omitted, :meth:`initialize` creates one on demand.
        transport: Existing transport handle to adopt; :meth:`initialize`
            closes and replaces it.
        settings: Overrides for the process-wide :class:`SessionSettings`.
        transport_factory: Builds transport handles; defaults to
            :class:`~httpsession.transport.HttpxTransport`.
    """

    def __init__(
        self,
        shared_state: Optional[SharedState] = None,
        *,
        transport: Optional[Transport] = None,
        settings: Optional[SessionSettings] = None,
        transport_factory: Optional[TransportFactory] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.policy = TransferPolicy.from_settings(self.settings)
        self._shared = shared_state
        self._attached = False
        self._transport: Optional[Transport] = transport
        self._transport_factory: TransportFactory = transport_factory or HttpxTransport
        self._headers: Dict[str, str] = {}
        self._auth: Optional[Tuple[str, str]] = None
        self._closed = False

    def __repr__(self) -> str:
        state = "closed" if self._closed else ("ready" if self._transport else "new")
        return f"HttpSession(state={state}, shared={self._attached})"

    def __enter__(self) -> "HttpSession":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def shared_state(self) -> Optional[SharedState]:
        return self._shared

    @property
    def closed(self) -> bool:
        return self._closed

    def initialize(self, shared: bool = True) -> "HttpSession":
        """(Re)create the transport handle.

        Any existing handle is closed first. With ``shared`` the session joins
        its :class:`SharedState` (creating one if it has none) so cookies, DNS
        results, TLS sessions, and pooled connections are shared, and cookies
        persist to the cookie jar file. The shared state itself is never closed
        here and survives repeated calls.

        Raises:
            SessionStateError: If the session has been closed.
        """
        if self._closed:
            raise SessionStateError("Session is closed; create a new HttpSession")

        if self._transport is not None:
            self._transport.close()
            self._transport = None

        bound: Optional[SharedState] = None
        if shared:
            if self._shared is None:
                self._shared = SharedState(self.settings)
            if not self._attached:
                self._shared.attach()
                self._attached = True
            bound = self._shared

        self._transport = self._transport_factory(self.policy, bound)
        logger.debug(
            "Session initialized",
            extra={
                "shared": shared,
                "cookie_jar": str(bound.cookie_jar_path) if bound is not None else None,
            },
        )
        return self

    def close(self) -> None:
        """Close the transport handle and release the shared state. Idempotent."""
        if self._closed:
            return
        self._closed = True
        if self._transport is not None:
            self._transport.close()
            self._transport = None
        if self._attached and self._shared is not None:
            self._attached = False
            self._shared.release()
        logger.debug("Session closed")

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def basic_auth(self, username: str, password: str) -> "HttpSession":
        """Send HTTP Basic credentials with subsequent requests."""
        self._auth = (username, password)
        return self

    def set_header(self, key: str, value: Optional[str] = None) -> "HttpSession":
        """Store a request header; an empty or ``None`` value removes it."""
        if value:
            self._headers[key] = value
        else:
            self._headers.pop(key, None)
        return self

    def get_header(self, key: str, fallback: Any = None) -> Any:
        """Return the stored header value, or *fallback* when it is absent or empty."""
        value = self._headers.get(key)
        if not value:
            return fallback
        return value

    def headers(self) -> Dict[str, str]:
        """Return every header with a non-empty value."""
        return {key: value for key, value in self._headers.items() if value}

    def clear_headers(self) -> "HttpSession":
        self._headers.clear()
        return self

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def get(self, url: str) -> ResponseEnvelope:
        return self._send("GET", url, tag="get")

    def post(self, url: str, data: PostData = "") -> ResponseEnvelope:
        """POST *data* to *url*.

        Mappings and sequences are form-encoded (nested keys become
        ``key[sub]``); strings and bytes are sent verbatim. Unless a
        ``Content-Type`` header is set, the body is labelled as
        ``application/x-www-form-urlencoded``.
        """
        if isinstance(data, bytes):
            body = data
        elif isinstance(data, str):
            body = data.encode("utf-8")
        else:
            body = build_query(data).encode("ascii")

        extra: Tuple[Tuple[str, str], ...] = ()
        if not any(key.lower() == "content-type" for key in self.headers()):
            extra = (("Content-Type", FORM_CONTENT_TYPE),)
        return self._send("POST", url, body=body, extra_headers=extra, tag="post")

    def post_json(self, url: str, data: Any = None) -> ResponseEnvelope:
        """Set ``Content-Type: application/json`` on the session and POST *data* as JSON.

        ``None`` is sent as an empty JSON array. The header stays set for later
        requests until it is changed or cleared.
        """
        self.set_header("Content-Type", JSON_CONTENT_TYPE)
        payload = json.dumps([] if data is None else data, separators=(",", ":"))
        return self.post(url, payload)

    def _send(
        self,
        method: str,
        url: str,
        *,
        body: Optional[bytes] = None,
        extra_headers: Tuple[Tuple[str, str], ...] = (),
        tag: str,
    ) -> ResponseEnvelope:
        transport = self._require_transport()
        headers = tuple(
            (canonical_header_name(key), value) for key, value in self.headers().items()
        ) + extra_headers
        options = TransferOptions(
            method=method,
            url=url,
            headers=headers,
            body=body,
            auth=self._auth,
            tag=tag,
        )
        logger.debug(
            "Sending request",
            extra={
                "method": method,
                "url": url,
                "headers": mask_sensitive_data(dict(headers)),
                "body_bytes": len(body) if body is not None else 0,
            },
        )

        result = transport.perform(options)
        if result.errno != 0:
            raise TransportError(result.errno, result.error) from result.cause

        info = TransferInfo(
            url=result.effective_url,
            time=result.total_time,
            response_code=result.status,
            http_code=result.status,
            http_method=result.private or tag,
        )
        raw_head, raw_body = split_response(result.raw)
        head = parse_header_block(raw_head)
        return ResponseEnvelope(info=info, head=head, body=decode_body(head, raw_body))

    def _require_transport(self) -> Transport:
        if self._closed:
            raise SessionStateError("Session is closed")
        if self._transport is None:
            raise SessionStateError("Session is not initialized; call initialize() first")
        return self._transport
