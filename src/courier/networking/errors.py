"""Error types raised or returned by the courier networking layer."""


class HttpClientError(Exception):
    """Base error for all courier networking failures."""


class ConfigError(HttpClientError):
    """Invalid or conflicting client configuration."""


class RequestTimeoutError(HttpClientError):
    """The request did not complete within the configured timeout."""


class RetryableHttpError(HttpClientError):
    """Transient transport failure that may succeed when retried."""
