# === NAVMAP v1 ===
# {
#   "module": "httpsession.dns",
#   "purpose": "Expiring DNS cache and the httpcore network backend that consults it.",
#   "sections": [
#     {"id": "dnsresolutionerror", "name": "DNSResolutionError", "anchor": "class-dnsresolutionerror", "kind": "class"},
#     {"id": "dnscache", "name": "DNSCache", "anchor": "class-dnscache", "kind": "class"},
#     {"id": "resolvingbackend", "name": "ResolvingBackend", "anchor": "class-resolvingbackend", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Expiring DNS cache and the httpcore network backend that consults it.

Sessions that share state also share one :class:`DNSCache`. The cache keeps
``getaddrinfo`` results in an LRU bounded by entry count and expires them after
a TTL. Every lookup returns a freshly shuffled copy of the addresses, so
consecutive connections to a multi-homed host spread across its addresses.

:class:`ResolvingBackend` plugs the cache into httpcore: host names are
resolved through the cache and each address is tried in turn with the stock
synchronous backend (which sets ``TCP_NODELAY`` on every socket).
"""

from __future__ import annotations

import ipaddress
import logging
import random
import socket
import threading
import time
from collections import OrderedDict
from typing import Callable, Dict, Iterable, List, Optional, Tuple

import httpcore

from .policy import DNS_CACHE_MAX_ENTRIES, DNS_CACHE_TTL, DNS_SHUFFLE

__all__ = ["DNSCache", "DNSResolutionError", "ResolvingBackend"]

logger = logging.getLogger(__name__)

AddrInfo = Tuple
Resolver = Callable[[str], List[AddrInfo]]


class DNSResolutionError(httpcore.ConnectError):
    """Raised when a host name cannot be resolved to any address."""


def _is_ip_literal(host: str) -> bool:
    try:
        ipaddress.ip_address(host)
    except ValueError:
        return False
    return True


def _system_resolver(host: str) -> List[AddrInfo]:
    return socket.getaddrinfo(host, None, type=socket.SOCK_STREAM)


class DNSCache:
    """Resolve host names using an expiring LRU cache."""

    def __init__(
        self,
        ttl: float = DNS_CACHE_TTL,
        max_entries: int = DNS_CACHE_MAX_ENTRIES,
        *,
        shuffle: bool = DNS_SHUFFLE,
        resolver: Optional[Resolver] = None,
    ) -> None:
        self.ttl = ttl
        self.max_entries = max_entries
        self.shuffle = shuffle
        self._resolver = resolver or _system_resolver
        self._entries: "OrderedDict[str, Tuple[float, List[str]]]" = OrderedDict()
        self._stubs: Dict[str, Resolver] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def resolve(self, host: str) -> List[str]:
        """Return the addresses for *host*, shuffled when shuffling is enabled.

        IP literals are returned unchanged without touching the cache.

        Raises:
            DNSResolutionError: If the lookup fails or yields no addresses.
        """
        host = host.strip("[]")
        if _is_ip_literal(host):
            return [host]

        key = host.lower()
        now = time.monotonic()
        with self._lock:
            cached = self._entries.get(key)
            if cached is not None:
                expires_at, addresses = cached
                if expires_at > now:
                    self._entries.move_to_end(key)
                    self._prune(now)
                    return self._ordered(addresses)
                self._entries.pop(key, None)
            self._prune(now)
            stub = self._stubs.get(key)

        resolver = stub or self._resolver
        try:
            results = resolver(host)
        except (socket.gaierror, UnicodeError) as exc:
            raise DNSResolutionError(f"Could not resolve host: {host}") from exc

        addresses = _unique_addresses(results)
        if not addresses:
            raise DNSResolutionError(f"Could not resolve host: {host}")

        with self._lock:
            self._entries[key] = (now + self.ttl, addresses)
            self._entries.move_to_end(key)
            self._prune(now)
        logger.debug(
            "dns.resolve",
            extra={"host": key, "addresses": len(addresses), "stub": stub is not None},
        )
        return self._ordered(addresses)

    def register_stub(self, host: str, handler: Resolver) -> None:
        """Register a resolver callable used for ``host`` instead of the system one."""

        key = host.lower()
        with self._lock:
            self._stubs[key] = handler
            self._entries.pop(key, None)

    def clear_stubs(self) -> None:
        with self._lock:
            for key in self._stubs:
                self._entries.pop(key, None)
            self._stubs.clear()

    def clear(self) -> None:
        """Forget every cached resolution."""

        with self._lock:
            self._entries.clear()

    def _ordered(self, addresses: List[str]) -> List[str]:
        copy = list(addresses)
        if self.shuffle and len(copy) > 1:
            random.shuffle(copy)
        return copy

    def _prune(self, current_time: float) -> None:
        # Caller holds the lock.
        while self._entries:
            first_key, (expires_at, _) = next(iter(self._entries.items()))
            if expires_at > current_time:
                break
            self._entries.pop(first_key, None)

        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)


def _unique_addresses(results: Iterable[AddrInfo]) -> List[str]:
    seen: List[str] = []
    for info in results:
        address = info[4][0]
        if address not in seen:
            seen.append(address)
    return seen


class ResolvingBackend(httpcore.NetworkBackend):
    """Synchronous network backend that resolves names through a :class:`DNSCache`."""

    def __init__(
        self,
        dns_cache: DNSCache,
        backend: Optional[httpcore.NetworkBackend] = None,
    ) -> None:
        self.dns_cache = dns_cache
        self._backend = backend or httpcore.SyncBackend()

    def connect_tcp(
        self,
        host: str,
        port: int,
        timeout: Optional[float] = None,
        local_address: Optional[str] = None,
        socket_options: Optional[Iterable[httpcore.SOCKET_OPTION]] = None,
    ) -> httpcore.NetworkStream:
        *fallbacks, last = self.dns_cache.resolve(host)

        def connect(address: str) -> httpcore.NetworkStream:
            return self._backend.connect_tcp(
                address,
                port,
                timeout=timeout,
                local_address=local_address,
                socket_options=socket_options,
            )

        for address in fallbacks:
            try:
                return connect(address)
            except (httpcore.ConnectError, httpcore.ConnectTimeout) as exc:
                logger.debug(
                    "Connect attempt failed",
                    extra={"host": host, "address": address, "port": port, "error": str(exc)},
                )
        return connect(last)

    def connect_unix_socket(
        self,
        path: str,
        timeout: Optional[float] = None,
        socket_options: Optional[Iterable[httpcore.SOCKET_OPTION]] = None,
    ) -> httpcore.NetworkStream:
        return self._backend.connect_unix_socket(
            path, timeout=timeout, socket_options=socket_options
        )

    def sleep(self, seconds: float) -> None:
        self._backend.sleep(seconds)
