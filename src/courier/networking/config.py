"""Mutable, fluent configuration for the courier HttpClient.

A Config owns the delegate client it builds. The client is constructed on the
first call to :meth:`Config.get_client`, cached, and dropped again whenever a
setter changes something the client was built from.
"""

from __future__ import annotations

import logging
import os
import ssl
import threading
from datetime import timedelta
from types import MappingProxyType
from typing import Any, Callable, Mapping, Protocol

from requests.structures import CaseInsensitiveDict

from .client import HttpClient
from .errors import ConfigError
from .proxy import Proxy
from .tls import (
    KeyStore,
    KeyStoreCredential,
    NoCredential,
    SslContextCredential,
    TlsCredential,
)
from .units import TimeUnit, duration_to_millis

logger = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT = 10_000
DEFAULT_SOCKET_TIMEOUT = 60_000
DEFAULT_MAX_RETRIES = 3
DEFAULT_MAX_CONNECTIONS = 200
DEFAULT_MAX_PER_ROUTE = 20
NO_TTL = -1

SSL_CONFLICT_MESSAGE = (
    "You may only configure a SSLContext OR a Keystore, but not both"
)


class Client(Protocol):
    """Delegate handle built by a Config."""

    def is_running(self) -> bool: ...


ClientFactory = Callable[["Config"], Client]


def _non_negative(name: str, value: int) -> int:
    if value < 0:
        raise ValueError(f"{name} must be >= 0")
    return value


class Config:
    """Settings holder that lazily builds and caches a Client.

    Setters return the Config itself so calls can be chained::

        config = Config().connect_timeout(5_000).proxy("localhost", 8080)
        client = config.get_client()
    """

    def __init__(self) -> None:
        """The default base URL, or ``None``."""
        """The configured proxy, or ``None``."""
        self._lock = threading.RLock()
        self._client: Client | None = None
        self._apply_defaults()

    def _apply_defaults(self) -> None:
        self._connect_timeout = DEFAULT_CONNECT_TIMEOUT
        self._request_timeout = DEFAULT_SOCKET_TIMEOUT
        self._ttl = NO_TTL
        self._request_compression = True
        self._automatic_retries = True
        self._max_retries = DEFAULT_MAX_RETRIES
        self._proxy: Proxy | None = None
        self._credential: TlsCredential = NoCredential()
        self._verify_ssl = True
        self._follow_redirects = True
        self._default_headers: CaseInsensitiveDict[str] = CaseInsensitiveDict()
        self._default_base_url: str | None = None
        self._max_connections = DEFAULT_MAX_CONNECTIONS
        self._max_per_route = DEFAULT_MAX_PER_ROUTE
        self._client_factory: ClientFactory | None = None

    # -- client lifecycle -------------------------------------------------

    def http_client(self, factory: ClientFactory) -> Config:
        """Install a custom ``Config -> Client`` factory.

        Nothing is built until the next :meth:`get_client` call.

        The Config owns every client the factory returns: when a setter,
        :meth:`shutdown` or :meth:`reset` drops the cached client, its
        ``close()`` is called if it has one. A factory that hands out one
        shared instance should return a client that tolerates that.
        """
        self._client_factory = factory
        self._invalidate()
        return self

    def get_client(self) -> Client:
        """Return the cached client, building a new one when needed."""
        with self._lock:
            client = self._client
            if client is not None and client.is_running():
                return client
            factory = self._client_factory or HttpClient
            client = factory(self)
            self._client = client
            logger.debug("Built client %r", client)
            return client

    def is_running(self) -> bool:
        """True once a client is built and while it reports running."""
        client = self._client
        return client is not None and bool(client.is_running())

    def shutdown(self) -> None:
        """Close and drop the cached client; settings are kept."""
        with self._lock:
            self._release_client()

    def reset(self) -> Config:
        """Shut down and restore every setting to its default."""
        with self._lock:
            self._release_client()
            self._apply_defaults()
        return self

    def _invalidate(self) -> None:
        with self._lock:
            self._release_client()

    def _release_client(self) -> None:
        client = self._client
        if client is None:
            return
        self._client = None
        close = getattr(client, "close", None)
        if callable(close):
            close()
        logger.debug("Released client %r", client)

    # -- timeouts ---------------------------------------------------------

    def connect_timeout(self, millis: int) -> Config:
        """Time allowed to establish a connection; ``0`` waits forever."""
        self._connect_timeout = _non_negative("connect timeout", millis)
        self._invalidate()
        return self

    def get_connection_timeout(self) -> int:
        """Connect timeout in milliseconds."""
        return self._connect_timeout

    def request_timeout(self, millis: int) -> Config:
        """Time allowed between bytes of a response; ``0`` waits forever."""
        self._request_timeout = _non_negative("request timeout", millis)
        self._invalidate()
        return self

    def get_request_timeout(self) -> int:
        """Request timeout in milliseconds."""
        return self._request_timeout

    def connection_ttl(
        self, amount: int | timedelta, unit: TimeUnit | None = None
    ) -> Config:
        """Set how long a pooled connection may live.

        A TTL of zero places no limit on connection lifetime.

        Args:
            amount: Duration amount, or a ``timedelta`` on its own.
            unit: Unit of ``amount``; omitted for a ``timedelta``.
        """
        self._ttl = _non_negative(
            "connection ttl", duration_to_millis(amount, unit)
        )
        self._invalidate()
        return self

    def get_ttl(self) -> int:
        """TTL in milliseconds, or ``-1`` when no TTL is enforced."""
        return self._ttl

    # -- behavior toggles -------------------------------------------------

    def request_compression(self, enabled: bool) -> Config:
        """Ask servers for compressed responses."""
        self._request_compression = enabled
        self._invalidate()
        return self

    def is_request_compression_on(self) -> bool:
        """Whether responses may be compressed."""
        return self._request_compression

    def automatic_retries(self, enabled: bool) -> Config:
        """Retry idempotent requests that fail in transport."""
        self._automatic_retries = enabled
        self._invalidate()
        return self

    def is_automatic_retries(self) -> bool:
        """Whether transport failures are retried."""
        return self._automatic_retries

    def max_retries(self, count: int) -> Config:
        """Extra attempts made when automatic retries are on."""
        self._max_retries = _non_negative("max retries", count)
        self._invalidate()
        return self

    def get_max_retries(self) -> int:
        """Extra attempts per request."""
        return self._max_retries

    def verify_ssl(self, enabled: bool) -> Config:
        """Verify server certificates."""
        self._verify_ssl = enabled
        self._invalidate()
        return self

    def is_verify_ssl(self) -> bool:
        """Whether server certificates are verified."""
        return self._verify_ssl

    def follow_redirects(self, enabled: bool) -> Config:
        """Follow redirects unless a request says otherwise."""
        self._follow_redirects = enabled
        self._invalidate()
        return self

    def is_follow_redirects(self) -> bool:
        """Whether redirects are followed by default."""
        return self._follow_redirects

    # -- proxy ------------------------------------------------------------

    def proxy(
        self,
        host: str | Proxy | None,
        port: int | None = None,
        username: str | None = None,
        password: str | None = None,
    ) -> Config:
        """Replace the proxy.

        Accepts a :class:`Proxy`, ``None`` to clear it, or the host and port
        with optional credentials.
        """
        if host is None or isinstance(host, Proxy):
            if port is not None or username is not None or password is not None:
                raise TypeError("a Proxy value takes no further arguments")
            self._proxy = host
        else:
            if port is None:
                raise TypeError("port is required with a proxy host")
            self._proxy = Proxy(host, port, username, password)
        self._invalidate()
        return self

    def get_proxy(self) -> Proxy | None:
        """The configured proxy, or ``None``."""
        return self._proxy

    # -- TLS --------------------------------------------------------------

    def ssl_context(self, context: ssl.SSLContext) -> Config:
        """Use ``context`` for TLS connections.

        Raises:
            ConfigError: A client certificate store is already configured.
        """
        if isinstance(self._credential, KeyStoreCredential):
            raise ConfigError(SSL_CONFLICT_MESSAGE)
        self._credential = SslContextCredential(context)
        self._invalidate()
        return self

    def client_certificate_store(
        self,
        store: KeyStore | str | os.PathLike[str],
        password: str | None,
    ) -> Config:
        """Present a client certificate from ``store`` on TLS connections.

        Args:
            store: A loaded :class:`KeyStore` or a path to a PEM file that
                holds the certificate chain and private key.
            password: Password for the private key, if it is encrypted.

        Raises:
            ConfigError: An SSLContext is already configured.
        """
        if isinstance(self._credential, SslContextCredential):
            raise ConfigError(SSL_CONFLICT_MESSAGE)
        if not isinstance(store, KeyStore):
            store = KeyStore(certfile=store)
        self._credential = KeyStoreCredential(store, password)
        self._invalidate()
        return self

    def get_tls_credential(self) -> TlsCredential:
        """The active TLS credential variant."""
        return self._credential

    # -- defaults applied to every request --------------------------------

    def set_default_header(self, name: str, value: str) -> Config:
        """Send ``name: value`` on every request, replacing earlier values."""
        self._default_headers[name] = value
        self._invalidate()
        return self

    def add_default_header(self, name: str, value: str) -> Config:
        """Append ``value`` to any existing default header of that name."""
        existing = self._default_headers.get(name)
        self._default_headers[name] = (
            value if existing is None else f"{existing}, {value}"
        )
        self._invalidate()
        return self

    def clear_default_headers(self) -> Config:
        """Remove all default headers."""
        self._default_headers.clear()
        self._invalidate()
        return self

    def get_default_headers(self) -> Mapping[str, str]:
        """Read-only copy of the default headers."""
        return MappingProxyType(self._default_headers.copy())

    def default_base_url(self, url: str | None) -> Config:
        """Base URL that relative request paths are joined onto."""
        self._default_base_url = url
        self._invalidate()
        return self

    def get_default_base_url(self) -> str | None:
        """The default base URL, or ``None``."""
        return self._default_base_url

    def concurrency(self, max_total: int, max_per_route: int) -> Config:
        """Size the connection pools."""
        if max_total <= 0 or max_per_route <= 0:
            raise ValueError("concurrency limits must be > 0")
        self._max_connections = max_total
        self._max_per_route = max_per_route
        self._invalidate()
        return self

    def get_max_connections(self) -> int:
        """Upper bound on pooled connections."""
        return self._max_connections

    def get_max_per_route(self) -> int:
        """Upper bound on pooled connections per host."""
        return self._max_per_route

    def __repr__(self) -> str:
        fields: dict[str, Any] = {
            "connect_timeout": self._connect_timeout,
            "request_timeout": self._request_timeout,
            "ttl": self._ttl,
            "proxy": self._proxy,
            "running": self.is_running(),
        }
        rendered = ", ".join(f"{key}={value!r}" for key, value in fields.items())
        return f"Config({rendered})"
