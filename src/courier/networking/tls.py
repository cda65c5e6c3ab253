"""TLS credential selection and its wiring into requests sessions.

A Config carries exactly one credential variant at a time: none, a caller
supplied ``ssl.SSLContext``, or a client certificate keystore with password.
"""

from __future__ import annotations

import logging
import os
import ssl
from dataclasses import dataclass
from typing import Any, Union

from requests.adapters import HTTPAdapter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KeyStore:
    """Client certificate material held in PEM files.

    Args:
        certfile: PEM file with the client certificate chain. May also hold
            the private key.
        keyfile: Optional separate PEM file with the private key.
    """

    certfile: str | os.PathLike[str]
    keyfile: str | os.PathLike[str] | None = None


@dataclass(frozen=True)
class NoCredential:
    pass


@dataclass(frozen=True)
class SslContextCredential:
    context: ssl.SSLContext


@dataclass(frozen=True)
class KeyStoreCredential:
    store: KeyStore
    password: str | None = None


TlsCredential = Union[NoCredential, SslContextCredential, KeyStoreCredential]


def build_ssl_context(credential: TlsCredential) -> ssl.SSLContext | None:
    """Resolve a credential into the SSLContext used for connections."""
    if isinstance(credential, SslContextCredential):
        return credential.context
    if isinstance(credential, KeyStoreCredential):
        context = ssl.create_default_context()
        context.load_cert_chain(
            certfile=credential.store.certfile,
            keyfile=credential.store.keyfile,
            password=credential.password,
        )
        logger.debug(
            "Loaded client certificate chain from %s", credential.store.certfile
        )
        return context
    return None


class SSLContextAdapter(HTTPAdapter):
    """HTTPAdapter that hands a fixed SSLContext to its connection pools."""

    def __init__(
        self, ssl_context: ssl.SSLContext | None = None, **kwargs: Any
    ) -> None:
        self._ssl_context = ssl_context
        super().__init__(**kwargs)

    def init_poolmanager(self, *args: Any, **kwargs: Any) -> None:
        if self._ssl_context is not None:
            kwargs["ssl_context"] = self._ssl_context
        super().init_poolmanager(*args, **kwargs)

    def proxy_manager_for(self, *args: Any, **kwargs: Any) -> Any:
        if self._ssl_context is not None:
            kwargs["ssl_context"] = self._ssl_context
        return super().proxy_manager_for(*args, **kwargs)
