"""Proxy endpoint value used by Config and HttpClient."""

from __future__ import annotations

from dataclasses import dataclass, field
from urllib.parse import quote


@dataclass(frozen=True)
class Proxy:
    """Proxy host and port with optional basic credentials."""

    host: str
    port: int
    username: str | None = None
    password: str | None = field(default=None, repr=False)

    def has_credentials(self) -> bool:
        return self.username is not None

    def to_url(self, scheme: str = "http") -> str:
        """Render the proxy as a URL suitable for ``requests`` proxies."""
        if not self.has_credentials():
            return f"{scheme}://{self.host}:{self.port}"
        userinfo = quote(self.username or "", safe="")
        if self.password is not None:
            userinfo += ":" + quote(self.password, safe="")
        return f"{scheme}://{userinfo}@{self.host}:{self.port}"
