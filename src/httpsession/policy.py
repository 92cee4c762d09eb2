# === NAVMAP v1 ===
# {
#   "module": "httpsession.policy",
#   "purpose": "Hardened transfer defaults applied to every session.",
#   "sections": []
# }
# === /NAVMAP ===

"""Hardened transfer defaults applied to every session.

These values are not per-request knobs. Every transport handle created by
:class:`httpsession.session.HttpSession` applies them unconditionally; the
timeout, redirect, pooling, and DNS values may be overridden process-wide via
:class:`httpsession.settings.SessionSettings`.
"""

from pathlib import Path

# ============================================================================
# Timeout Budgets (seconds)
# ============================================================================

#: Connection establishment timeout (TCP handshake plus TLS negotiation)
HTTP_CONNECT_TIMEOUT = 10.0

#: Overall transfer deadline, shared by every redirect hop of one request
HTTP_TOTAL_TIMEOUT = 25.0


# ============================================================================
# Protocols & Redirects
# ============================================================================

#: Schemes a request URL may use
ALLOWED_SCHEMES = frozenset({"http", "https"})

#: Schemes a redirect target may use (no downgrade to cleartext)
REDIRECT_SCHEMES = frozenset({"https"})

#: Scheme assumed when the caller passes a URL without one
DEFAULT_SCHEME = "https"

#: Maximum number of redirect hops followed before giving up
MAX_REDIRECT_HOPS = 20

#: Send the previous URL as Referer on every followed redirect
AUTO_REFERER = True

#: Statuses that switch a POST to a body-less GET (303 switches every method)
POST_TO_GET_STATUSES = frozenset({301, 302, 303})

#: Treat any status >= 400 as a transport failure
FAIL_ON_ERROR = True


# ============================================================================
# Connection Pooling
# ============================================================================

#: Maximum concurrent connections held by one pool
MAX_CONNECTIONS = 20

#: Idle connections kept open for reuse
MAX_KEEPALIVE_CONNECTIONS = 10

#: Seconds an idle connection stays in the pool
KEEPALIVE_EXPIRY = 30.0


# ============================================================================
# DNS
# ============================================================================

#: Shuffle resolved addresses before connecting
DNS_SHUFFLE = True

#: Seconds a resolution stays cached
DNS_CACHE_TTL = 120.0

#: Upper bound on cached host entries
DNS_CACHE_MAX_ENTRIES = 1024


# ============================================================================
# Cookies & Identity
# ============================================================================

#: Netscape-format cookie file used when sharing is enabled
DEFAULT_COOKIE_JAR = Path(__file__).resolve().parent / "cookie_jar.txt"

#: User-Agent sent when the caller does not set one
USER_AGENT = "httpsession/1.0"


__all__ = [
    "ALLOWED_SCHEMES",
    "AUTO_REFERER",
    "DEFAULT_COOKIE_JAR",
    "DEFAULT_SCHEME",
    "DNS_CACHE_MAX_ENTRIES",
    "DNS_CACHE_TTL",
    "DNS_SHUFFLE",
    "FAIL_ON_ERROR",
    "HTTP_CONNECT_TIMEOUT",
    "HTTP_TOTAL_TIMEOUT",
    "KEEPALIVE_EXPIRY",
    "MAX_CONNECTIONS",
    "MAX_KEEPALIVE_CONNECTIONS",
    "MAX_REDIRECT_HOPS",
    "POST_TO_GET_STATUSES",
    "REDIRECT_SCHEMES",
    "USER_AGENT",
]
