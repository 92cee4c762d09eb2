# === NAVMAP v1 ===
# {
#   "module": "httpsession.transport",
#   "purpose": "HTTPX-backed transfer engine with hardened defaults and curl-style error codes.",
#   "sections": [
#     {"id": "create-ssl-context", "name": "create_ssl_context", "anchor": "function-create-ssl-context", "kind": "function"},
#     {"id": "resolvingtransport", "name": "ResolvingTransport", "anchor": "class-resolvingtransport", "kind": "class"},
#     {"id": "transferpolicy", "name": "TransferPolicy", "anchor": "class-transferpolicy", "kind": "class"},
#     {"id": "transferoptions", "name": "TransferOptions", "anchor": "class-transferoptions", "kind": "class"},
#     {"id": "transferresult", "name": "TransferResult", "anchor": "class-transferresult", "kind": "class"},
#     {"id": "transport", "name": "Transport", "anchor": "class-transport", "kind": "class"},
#     {"id": "httpxtransport", "name": "HttpxTransport", "anchor": "class-httpxtransport", "kind": "class"},
#     {"id": "error-code-for", "name": "error_code_for", "anchor": "function-error-code-for", "kind": "function"},
#     {"id": "render-response", "name": "render_response", "anchor": "function-render-response", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""HTTPX-backed transfer engine with hardened defaults and curl-style error codes.

A transport handle executes one :class:`TransferOptions` at a time and reports
the outcome as a :class:`TransferResult`. Failures are never raised from
:meth:`HttpxTransport.perform`; they are reported through ``errno``/``error``
using the numbering of :class:`~httpsession.errors.TransportErrorCode`, and the
session decides how to surface them.

Key behaviour:
- **Redirects**: followed manually (the client runs with
  ``follow_redirects=False``) so every hop is checked against the redirect
  scheme policy, receives a ``Referer``, and counts against the hop limit.
- **Deadline**: the overall timeout spans all hops; each hop gets whatever is
  left of it.
- **Fail on error**: a final status >= 400 becomes error 22.
- **Combined buffer**: the final response is rendered back into one
  ``status line + headers + CRLF CRLF + body`` buffer.
"""

from __future__ import annotations

import logging
import ssl
import time
from dataclasses import dataclass, field
from http.cookiejar import CookieJar, DefaultCookiePolicy
from pathlib import Path
from typing import TYPE_CHECKING, Iterator, Optional, Protocol, Tuple

import certifi
import httpcore
import httpx

from .dns import DNSCache, DNSResolutionError, ResolvingBackend
from .errors import TransportErrorCode
from .parsing import HEADER_SEPARATOR, canonical_header_name
from .policy import (
    ALLOWED_SCHEMES,
    AUTO_REFERER,
    DEFAULT_SCHEME,
    DNS_CACHE_MAX_ENTRIES,
    DNS_CACHE_TTL,
    FAIL_ON_ERROR,
    HTTP_CONNECT_TIMEOUT,
    HTTP_TOTAL_TIMEOUT,
    KEEPALIVE_EXPIRY,
    MAX_CONNECTIONS,
    MAX_KEEPALIVE_CONNECTIONS,
    MAX_REDIRECT_HOPS,
    POST_TO_GET_STATUSES,
    REDIRECT_SCHEMES,
    USER_AGENT,
)
from .settings import SessionSettings, get_settings

if TYPE_CHECKING:
    from .shared import SharedState

__all__ = [
    "HttpxTransport",
    "ResolvingTransport",
    "TransferOptions",
    "TransferPolicy",
    "TransferResult",
    "Transport",
    "create_ssl_context",
    "error_code_for",
    "render_response",
]

logger = logging.getLogger(__name__)

_BODY_HEADERS = ("content-type", "content-length", "content-encoding", "transfer-encoding")
_ENCODING_HEADERS = ("content-encoding", "transfer-encoding")
_FRAMING_HEADERS = _ENCODING_HEADERS + ("content-length",)


# ============================================================================
# TLS & Connection Pool
# ============================================================================


def create_ssl_context(ca_bundle: Optional[Path] = None) -> ssl.SSLContext:
    """Create a verifying SSL context.

    Peer certificates and host names are always verified against the certifi
    bundle (or *ca_bundle*). TLS 1.2 is the floor; the ceiling is the highest
    version the linked OpenSSL supports. No OCSP stapling check is requested.

    Returns:
        Configured ssl.SSLContext shared by every connection of one pool.
    """
    cafile = str(ca_bundle) if ca_bundle is not None else certifi.where()
    ctx = ssl.create_default_context(cafile=cafile)
    ctx.check_hostname = True
    ctx.verify_mode = ssl.CERT_REQUIRED
    ctx.minimum_version = ssl.TLSVersion.TLSv1_2
    ctx.maximum_version = ssl.TLSVersion.MAXIMUM_SUPPORTED
    return ctx


class ResolvingTransport(httpx.HTTPTransport):
    """HTTP transport whose connection pool resolves names through a :class:`DNSCache`.

    The pool keeps connections alive between requests; TLS session reuse comes
    from handing every connection the same SSL context.
    """

    def __init__(
        self,
        *,
        dns_cache: DNSCache,
        ssl_context: ssl.SSLContext,
        limits: httpx.Limits,
    ) -> None:
        super().__init__(verify=ssl_context, trust_env=False, limits=limits)
        self._pool.close()
        self._pool = httpcore.ConnectionPool(
            ssl_context=ssl_context,
            max_connections=limits.max_connections,
            max_keepalive_connections=limits.max_keepalive_connections,
            keepalive_expiry=limits.keepalive_expiry,
            network_backend=ResolvingBackend(dns_cache),
        )
        self.dns_cache = dns_cache


# ============================================================================
# Transfer Values
# ============================================================================


def _default_limits() -> httpx.Limits:
    return httpx.Limits(
        max_connections=MAX_CONNECTIONS,
        max_keepalive_connections=MAX_KEEPALIVE_CONNECTIONS,
        keepalive_expiry=KEEPALIVE_EXPIRY,
    )


@dataclass(frozen=True)
class TransferPolicy:
    """Hardened defaults applied to every transfer of a transport handle."""

    connect_timeout: float = HTTP_CONNECT_TIMEOUT
    total_timeout: float = HTTP_TOTAL_TIMEOUT
    max_redirects: int = MAX_REDIRECT_HOPS
    user_agent: str = USER_AGENT
    allowed_schemes: frozenset = ALLOWED_SCHEMES
    redirect_schemes: frozenset = REDIRECT_SCHEMES
    default_scheme: str = DEFAULT_SCHEME
    fail_on_error: bool = FAIL_ON_ERROR
    auto_referer: bool = AUTO_REFERER
    ca_bundle: Optional[Path] = None
    dns_cache_ttl: float = DNS_CACHE_TTL
    dns_cache_max_entries: int = DNS_CACHE_MAX_ENTRIES
    limits: httpx.Limits = field(default_factory=_default_limits)

    @classmethod
    def from_settings(cls, settings: Optional[SessionSettings] = None) -> "TransferPolicy":
        settings = settings or get_settings()
        return cls(
            connect_timeout=settings.connect_timeout_sec,
            total_timeout=settings.timeout_sec,
            max_redirects=settings.max_redirects,
            user_agent=settings.user_agent,
            ca_bundle=settings.ca_bundle,
            dns_cache_ttl=settings.dns_cache_ttl_sec,
            dns_cache_max_entries=settings.dns_cache_max_entries,
            limits=httpx.Limits(
                max_connections=settings.max_connections,
                max_keepalive_connections=settings.max_keepalive_connections,
                keepalive_expiry=settings.keepalive_expiry_sec,
            ),
        )


@dataclass(frozen=True)
class TransferOptions:
    """Everything one request needs; built fresh by the session for every call."""

    method: str
    url: str
    headers: Tuple[Tuple[str, str], ...] = ()
    body: Optional[bytes] = None
    auth: Optional[Tuple[str, str]] = None
    tag: str = ""


@dataclass(frozen=True)
class TransferResult:
    """Outcome of one transfer. ``errno == 0`` means success."""

    errno: int = 0
    error: str = ""
    raw: bytes = b""
    effective_url: str = ""
    total_time: float = 0.0
    status: int = 0
    private: str = ""
    cause: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.errno == 0


class Transport(Protocol):
    """A transport handle owned by exactly one session."""

    def perform(self, options: TransferOptions) -> TransferResult: ...

    def close(self) -> None: ...


# ============================================================================
# Event Hooks
# ============================================================================


def _on_request(request: httpx.Request) -> None:
    """Hook: capture hop start time."""
    request.extensions["t0_perf"] = time.perf_counter()


def _on_response(response: httpx.Response) -> None:
    """Hook: emit net.request debug telemetry for each hop."""
    req = response.request
    t0 = req.extensions.get("t0_perf", time.perf_counter())
    logger.debug(
        "net.request",
        extra={
            "method": req.method,
            "url": str(req.url),
            "host": req.url.host,
            "status": response.status_code,
            "elapsed_ms": round((time.perf_counter() - t0) * 1000.0, 3),
            "http_version": response.http_version,
        },
    )


# ============================================================================
# Error Mapping & Rendering
# ============================================================================


def _exception_chain(exc: BaseException) -> Iterator[BaseException]:
    seen = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def error_code_for(exc: BaseException) -> TransportErrorCode:
    """Map an HTTPX/httpcore exception onto a transfer error code."""

    for item in _exception_chain(exc):
        if isinstance(item, DNSResolutionError):
            return TransportErrorCode.COULDNT_RESOLVE_HOST
        if isinstance(item, ssl.SSLCertVerificationError):
            return TransportErrorCode.PEER_FAILED_VERIFICATION
        if isinstance(item, ssl.SSLError):
            return TransportErrorCode.SSL_CONNECT_ERROR

    if isinstance(exc, httpx.TimeoutException):
        return TransportErrorCode.OPERATION_TIMEDOUT
    if isinstance(exc, httpx.ConnectError):
        return TransportErrorCode.COULDNT_CONNECT
    if isinstance(exc, httpx.UnsupportedProtocol):
        return TransportErrorCode.UNSUPPORTED_PROTOCOL
    if isinstance(exc, httpx.InvalidURL):
        return TransportErrorCode.URL_MALFORMAT
    if isinstance(exc, httpx.TooManyRedirects):
        return TransportErrorCode.TOO_MANY_REDIRECTS
    if isinstance(exc, httpx.RemoteProtocolError):
        if "without sending" in str(exc):
            return TransportErrorCode.GOT_NOTHING
        return TransportErrorCode.WEIRD_SERVER_REPLY
    if isinstance(exc, httpx.ProtocolError):
        return TransportErrorCode.WEIRD_SERVER_REPLY
    if isinstance(exc, httpx.WriteError):
        return TransportErrorCode.SEND_ERROR
    if isinstance(exc, httpx.DecodingError):
        return TransportErrorCode.BAD_CONTENT_ENCODING
    return TransportErrorCode.RECV_ERROR


def render_response(response: httpx.Response, *, method: str = "GET") -> bytes:
    """Render a read response back into one ``head + CRLF CRLF + body`` buffer.

    Header names are written in their canonical spelling; the body is the
    content after transfer and content decoding. When the wire body was
    content- or transfer-encoded, the framing headers describe the decoded
    body instead: ``Content-Encoding`` and ``Transfer-Encoding`` are dropped and
    ``Content-Length`` is the decoded length. HEAD responses keep their headers.
    """
    headers = response.headers.multi_items()
    encoded = any(name in _ENCODING_HEADERS for name, _ in headers)
    if encoded and method.upper() != "HEAD":
        headers = [(name, value) for name, value in headers if name not in _FRAMING_HEADERS]
        headers.append(("content-length", str(len(response.content))))

    status_line = f"{response.http_version} {response.status_code} {response.reason_phrase}"
    lines = [status_line.rstrip()]
    lines.extend(f"{canonical_header_name(name)}: {value}" for name, value in headers)
    head = "\r\n".join(lines).encode("utf-8", errors="replace")
    return head + HEADER_SEPARATOR + response.content


# ============================================================================
# Transport Handle
# ============================================================================


class _TransferFailed(Exception):
    def __init__(self, code: TransportErrorCode, message: str, *, url: str = "", status: int = 0):
        super().__init__(message)
        self.code = code
        self.message = message
        self.url = url
        self.status = status


def _with_default_scheme(url: str, default_scheme: str) -> str:
    url = url.strip()
    if "://" in url:
        return url
    return f"{default_scheme}://{url.lstrip('/')}"


class HttpxTransport:
    """Default transport handle built on :class:`httpx.Client`.

    When *shared* is given, the handle borrows the shared connection pool and
    stores cookies in the shared jar; otherwise it owns a private pool and
    ignores cookies. Tests inject *transport* (for example an
    :class:`httpx.MockTransport`) to stay off the network.
    """

    def __init__(
        self,
        policy: Optional[TransferPolicy] = None,
        shared: Optional["SharedState"] = None,
        *,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.policy = policy or TransferPolicy.from_settings()
        if transport is None:
            if shared is not None:
                transport = shared.pool()
            else:
                transport = ResolvingTransport(
                    dns_cache=DNSCache(
                        ttl=self.policy.dns_cache_ttl,
                        max_entries=self.policy.dns_cache_max_entries,
                    ),
                    ssl_context=create_ssl_context(self.policy.ca_bundle),
                    limits=self.policy.limits,
                )
        if shared is not None:
            cookies: CookieJar = shared.cookies
        else:
            cookies = CookieJar(policy=DefaultCookiePolicy(allowed_domains=[]))

        self._client = httpx.Client(
            transport=transport,
            cookies=cookies,
            follow_redirects=False,
            trust_env=False,
            headers={"User-Agent": self.policy.user_agent},
            timeout=httpx.Timeout(self.policy.total_timeout, connect=self.policy.connect_timeout),
            event_hooks={"request": [_on_request], "response": [_on_response]},
        )
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Close the client. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._client.close()

    def perform(self, options: TransferOptions) -> TransferResult:
        """Execute *options* synchronously and report the outcome."""

        started = time.perf_counter()
        url = _with_default_scheme(options.url, self.policy.default_scheme)
        try:
            response = self._follow(options, url, started + self.policy.total_timeout)
        except _TransferFailed as failure:
            return self._failure(options, started, failure.code, failure.message,
                                 url=failure.url or url, status=failure.status)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            code = error_code_for(exc)
            message = self._describe(exc, code, started)
            return self._failure(options, started, code, message, url=url, cause=exc)

        effective_url = str(response.url)
        if self.policy.fail_on_error and response.status_code >= 400:
            return self._failure(
                options,
                started,
                TransportErrorCode.HTTP_RETURNED_ERROR,
                f"The requested URL returned error: {response.status_code}",
                url=effective_url,
                status=response.status_code,
            )

        return TransferResult(
            raw=render_response(response, method=response.request.method),
            effective_url=effective_url,
            total_time=time.perf_counter() - started,
            status=response.status_code,
            private=options.tag,
        )

    def _follow(self, options: TransferOptions, url: str, deadline: float) -> httpx.Response:
        target = httpx.URL(url)
        if target.scheme not in self.policy.allowed_schemes:
            raise _TransferFailed(
                TransportErrorCode.UNSUPPORTED_PROTOCOL,
                f'Protocol "{target.scheme}" not supported',
                url=url,
            )

        method = options.method.upper()
        body = options.body
        headers = httpx.Headers(list(options.headers))
        auth = options.auth
        referer: Optional[str] = None
        hop = 0

        while True:
            remaining = deadline - time.perf_counter()
            if remaining <= 0:
                raise httpx.TimeoutException("Transfer deadline exceeded")

            hop_headers = headers.copy()
            if referer is not None and self.policy.auto_referer:
                hop_headers["Referer"] = referer
            request = self._client.build_request(
                method,
                target,
                headers=hop_headers,
                content=body,
                timeout=httpx.Timeout(remaining, connect=min(self.policy.connect_timeout, remaining)),
            )
            response = self._client.send(
                request, auth=httpx.BasicAuth(*auth) if auth is not None else None
            )

            if not response.has_redirect_location:
                return response

            location = response.url.join(response.headers["Location"])
            if hop == self.policy.max_redirects:
                raise _TransferFailed(
                    TransportErrorCode.TOO_MANY_REDIRECTS,
                    f"Maximum ({self.policy.max_redirects}) redirects followed",
                    url=str(response.url),
                    status=response.status_code,
                )
            if location.scheme not in self.policy.redirect_schemes:
                raise _TransferFailed(
                    TransportErrorCode.UNSUPPORTED_PROTOCOL,
                    f'Protocol "{location.scheme}" not supported or disabled',
                    url=str(response.url),
                    status=response.status_code,
                )

            status = response.status_code
            if status in POST_TO_GET_STATUSES and (
                method == "POST" or (status == 303 and method != "HEAD")
            ):
                method = "GET"
                body = None
                for name in _BODY_HEADERS:
                    headers.pop(name, None)
            if location.host != response.url.host:
                auth = None
                headers.pop("Authorization", None)

            logger.debug(
                "Following redirect",
                extra={"hop": hop + 1, "status": status, "from": str(response.url), "to": str(location)},
            )
            referer = str(response.url)
            target = location
            hop += 1

    def _describe(self, exc: BaseException, code: TransportErrorCode, started: float) -> str:
        if code == TransportErrorCode.OPERATION_TIMEDOUT:
            elapsed_ms = int((time.perf_counter() - started) * 1000)
            return f"Operation timed out after {elapsed_ms} milliseconds"
        return str(exc) or type(exc).__name__

    def _failure(
        self,
        options: TransferOptions,
        started: float,
        code: TransportErrorCode,
        message: str,
        *,
        url: str,
        status: int = 0,
        cause: Optional[BaseException] = None,
    ) -> TransferResult:
        logger.debug(
            "Transfer failed",
            extra={"errno": int(code), "error": message, "url": url, "method": options.method},
        )
        return TransferResult(
            errno=int(code),
            error=message,
            effective_url=url,
            total_time=time.perf_counter() - started,
            status=status,
            private=options.tag,
            cause=cause,
        )
