from .client import HttpClient
from .config import (
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_MAX_CONNECTIONS,
    DEFAULT_MAX_PER_ROUTE,
    DEFAULT_MAX_RETRIES,
    DEFAULT_SOCKET_TIMEOUT,
    Client,
    ClientFactory,
    Config,
)
from .errors import (
    ConfigError,
    HttpClientError,
    RequestTimeoutError,
    RetryableHttpError,
)
from .proxy import Proxy
from .tls import KeyStore
from .types import Err, Ok, Result
from .units import TimeUnit

__all__ = [
    "DEFAULT_CONNECT_TIMEOUT",
    "DEFAULT_MAX_CONNECTIONS",
    "DEFAULT_MAX_PER_ROUTE",
    "DEFAULT_MAX_RETRIES",
    "DEFAULT_SOCKET_TIMEOUT",
    "Client",
    "ClientFactory",
    "Config",
    "ConfigError",
    "Err",
    "HttpClient",
    "HttpClientError",
    "KeyStore",
    "Ok",
    "Proxy",
    "RequestTimeoutError",
    "Result",
    "RetryableHttpError",
    "TimeUnit",
]
