# === NAVMAP v1 ===
# {
#   "module": "httpsession.shared",
#   "purpose": "Reference-counted state shared between HTTP sessions.",
#   "sections": [
#     {"id": "sharedstate", "name": "SharedState", "anchor": "class-sharedstate", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Reference-counted state shared between HTTP sessions.

A :class:`SharedState` bundles what sessions that opt into sharing have in
common:

- **DNS cache**: one :class:`~httpsession.dns.DNSCache` for every lookup.
- **TLS sessions & connections**: one SSL context and one keep-alive
  connection pool, lent to each session's client.
- **Cookies**: one Netscape-format jar, loaded from and saved back to the
  cookie file.

Sessions :meth:`~SharedState.attach` when they start sharing and
:meth:`~SharedState.release` when they close; the last release closes the
state. Closing saves the cookie jar and shuts the pool down. Nothing here
relies on garbage collection: call :meth:`~SharedState.close` or use the state
as a context manager.

Example:
    >>> with SharedState() as shared:
    ...     a = HttpSession(shared).initialize()
    ...     b = HttpSession(shared).initialize()
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional, Union

import httpx

from .cookies import load_cookie_jar, save_cookie_jar
from .dns import DNSCache
from .errors import SessionStateError
from .settings import SessionSettings, get_settings
from .transport import ResolvingTransport, TransferPolicy, create_ssl_context

__all__ = ["SharedState"]

logger = logging.getLogger(__name__)


class _BorrowedTransport(httpx.BaseTransport):
    """Non-owning view of the shared pool; closing it leaves the pool open."""

    def __init__(self, inner: httpx.BaseTransport) -> None:
        self._inner = inner

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        return self._inner.handle_request(request)

    def close(self) -> None:
        pass


class SharedState:
    """DNS cache, TLS session cache, and cookie jar shared across sessions."""

    def __init__(
        self,
        settings: Optional[SessionSettings] = None,
        *,
        cookie_jar_path: Optional[Union[str, Path]] = None,
        dns_cache: Optional[DNSCache] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.cookie_jar_path = Path(cookie_jar_path or self.settings.cookie_jar_path)
        self.cookies = load_cookie_jar(self.cookie_jar_path)
        self.dns_cache = dns_cache or DNSCache(
            ttl=self.settings.dns_cache_ttl_sec,
            max_entries=self.settings.dns_cache_max_entries,
        )
        self.ssl_context = create_ssl_context(self.settings.ca_bundle)
        self._transport = transport
        self._lock = threading.Lock()
        self._holders = 0
        self._closed = False

    def __repr__(self) -> str:
        return (
            f"SharedState(cookie_jar_path={str(self.cookie_jar_path)!r}, "
            f"holders={self._holders}, closed={self._closed})"
        )

    def __enter__(self) -> "SharedState":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def holders(self) -> int:
        """Number of sessions currently attached."""
        return self._holders

    def attach(self) -> "SharedState":
        """Register one more holder.

        Raises:
            SessionStateError: If the state has already been closed.
        """
        with self._lock:
            if self._closed:
                raise SessionStateError("Shared state is closed")
            self._holders += 1
            holders = self._holders
        logger.debug("Shared state attached", extra={"holders": holders})
        return self

    def release(self) -> None:
        """Drop one holder; the last release closes the state."""
        with self._lock:
            if self._holders > 0:
                self._holders -= 1
            last = self._holders == 0
        logger.debug("Shared state released", extra={"holders": self._holders})
        if last:
            self.close()

    def pool(self) -> httpx.BaseTransport:
        """Lend the shared connection pool, creating it on first use."""
        with self._lock:
            if self._closed:
                raise SessionStateError("Shared state is closed")
            if self._transport is None:
                limits = TransferPolicy.from_settings(self.settings).limits
                self._transport = ResolvingTransport(
                    dns_cache=self.dns_cache,
                    ssl_context=self.ssl_context,
                    limits=limits,
                )
            return _BorrowedTransport(self._transport)

    def close(self) -> None:
        """Save cookies and close the shared pool. Safe to call more than once."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            transport, self._transport = self._transport, None

        try:
            save_cookie_jar(self.cookies)
        except OSError as exc:
            logger.error(
                "Failed to save cookie jar",
                extra={"cookie_jar": str(self.cookie_jar_path), "error": str(exc)},
            )
        if transport is not None:
            transport.close()
        logger.debug("Shared state closed", extra={"cookie_jar": str(self.cookie_jar_path)})
