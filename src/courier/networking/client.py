"""Default synchronous HTTP client built from a courier Config.

The client snapshots the Config when it is constructed; later changes to the
Config invalidate and replace the client rather than mutating it. Transport,
TLS and pooling are delegated to ``requests``.
"""

from __future__ import annotations

import logging
from time import monotonic, sleep
from typing import TYPE_CHECKING, Any, Callable, Mapping, TypeVar
from urllib.parse import urljoin

import requests

from .errors import HttpClientError, RequestTimeoutError, RetryableHttpError
from .tls import SSLContextAdapter, build_ssl_context
from .types import Err, Ok, Result

if TYPE_CHECKING:
    from .config import Config

logger = logging.getLogger(__name__)

ResponseValue = TypeVar("ResponseValue")

RETRY_BACKOFF_BASE_SECONDS = 0.1


def _seconds_or_none(millis: int) -> float | None:
    """Convert a millisecond setting; zero or less means unbounded."""
    if millis <= 0:
        return None
    return millis / 1000


class HttpClient:
    """Core HTTP client (sync).

    Methods return a Result that contains either a value or an error plus
    request metadata. HTTP status codes never turn into errors; only
    transport failures do.
    """

    def __init__(self, config: Config) -> None:
        """Create a new HttpClient.

        Args:
            config: Settings for timeouts, proxy, TLS, retries and defaults.
        """
        self._connect_timeout_s = _seconds_or_none(
            config.get_connection_timeout()
        )
        self._request_timeout_s = _seconds_or_none(config.get_request_timeout())
        self._ttl_s = _seconds_or_none(config.get_ttl())
        self._automatic_retries = config.is_automatic_retries()
        self._retries = config.get_max_retries()
        self._follow_redirects = config.is_follow_redirects()
        self._verify_ssl = config.is_verify_ssl()
        self._base_url = config.get_default_base_url()
        self._max_connections = config.get_max_connections()
        self._max_per_route = config.get_max_per_route()
        self._ssl_context = build_ssl_context(config.get_tls_credential())

        self._headers: dict[str, str] = {}
        if not config.is_request_compression_on():
            self._headers["Accept-Encoding"] = "identity"
        self._headers.update(config.get_default_headers())

        proxy = config.get_proxy()
        self._proxies: dict[str, str] = {}
        if proxy is not None:
            self._proxies = {"http": proxy.to_url(), "https": proxy.to_url()}

        self._running = True
        self._session = self._new_session()

    def _new_session(self) -> requests.Session:
        session = requests.Session()
        session.headers.update(self._headers)
        session.proxies.update(self._proxies)
        session.verify = self._verify_ssl
        adapter = SSLContextAdapter(
            ssl_context=self._ssl_context,
            pool_connections=self._max_connections,
            pool_maxsize=self._max_per_route,
        )
        session.mount("https://", adapter)
        session.mount("http://", adapter)
        self._session_started = monotonic()
        return session

    def _current_session(self) -> requests.Session:
        """Return the session, recycling it once it outlives the TTL."""
        if (
            self._ttl_s is not None
            and monotonic() - self._session_started >= self._ttl_s
        ):
            logger.debug("Recycling session older than %.3fs", self._ttl_s)
            self._session.close()
            self._session = self._new_session()
        return self._session

    def is_running(self) -> bool:
        return self._running

    def close(self) -> None:
        """Release pooled connections. The client cannot be reused."""
        if self._running:
            self._running = False
            self._session.close()

    def _resolve_url(self, url: str) -> str:
        if self._base_url and "://" not in url:
            return urljoin(self._base_url.rstrip("/") + "/", url.lstrip("/"))
        return url

    def _get_timeout(
        self, override: float | None
    ) -> float | tuple[float | None, float | None]:
        """Resolve timeout preference."""
        if override is not None:
            if override <= 0:
                raise ValueError("timeout override must be > 0 when provided")
            return override
        return (self._connect_timeout_s, self._request_timeout_s)

    def _max_attempts(self) -> int:
        """Return the total number of attempts for one request."""
        if not self._automatic_retries:
            return 1
        return 1 + max(0, self._retries)

    def _is_retryable_exception(
        self, method: str, error: requests.exceptions.RequestException
    ) -> bool:
        """Return True for retryable transport errors."""
        if method.upper() not in {"GET", "HEAD"}:
            return False
        return isinstance(
            error,
            (requests.exceptions.Timeout, requests.exceptions.ConnectionError),
        )

    def _sleep_between_attempts(self, attempt: int) -> None:
        """Sleep between retry attempts using exponential backoff."""
        sleep(RETRY_BACKOFF_BASE_SECONDS * (2 ** max(0, attempt - 1)))

    def _build_meta(
        self,
        method: str,
        request_url: str,
        response: requests.Response | None,
        context: Mapping[str, Any] | None,
        attempts: int,
        timeout: float | tuple[float | None, float | None],
        final_error: str | None = None,
    ) -> dict[str, Any]:
        """Construct metadata dictionary from response and context."""
        meta: dict[str, Any] = {
            "method": method,
            "url": request_url,
            "attempts": attempts,
            "timeout_s": timeout,
        }
        if context:
            context_dict = dict(context)
            meta["context"] = context_dict
            for key, value in context_dict.items():
                meta.setdefault(key, value)

        if response is not None:
            meta["status"] = response.status_code
            meta["status_code"] = response.status_code
            meta["url"] = response.url
            meta["reason"] = response.reason
            try:
                meta["elapsed_s"] = response.elapsed.total_seconds()
            except AttributeError:
                pass
        if final_error is not None:
            meta["final_error"] = final_error

        return meta

    def _map_request_exception(
        self, error: requests.exceptions.RequestException
    ) -> HttpClientError:
        """Map requests exceptions to courier errors."""
        if isinstance(error, requests.exceptions.Timeout):
            return RequestTimeoutError(str(error))
        if isinstance(error, requests.exceptions.ConnectionError):
            return RetryableHttpError(str(error))
        return HttpClientError(str(error))

    def _request(
        self,
        method: str,
        url: str,
        *,
        context: Mapping[str, Any] | None,
        timeout: float | tuple[float | None, float | None],
        request_fn: Callable[[requests.Session], requests.Response],
        value_builder: Callable[[requests.Response], ResponseValue],
    ) -> Result[ResponseValue, Exception]:
        """Execute request with retries and normalized metadata."""
        if not self._running:
            raise HttpClientError("client is closed")
        attempts = 0
        max_attempts = self._max_attempts()
        last_error: requests.exceptions.RequestException | None = None
        while attempts < max_attempts:
            attempts += 1
            session = self._current_session()
            try:
                response = request_fn(session)
            except requests.exceptions.RequestException as exc:
                last_error = exc
                if attempts >= max_attempts or not self._is_retryable_exception(
                    method, exc
                ):
                    break
                logger.debug(
                    "%s %s failed (attempt %d/%d): %s",
                    method,
                    url,
                    attempts,
                    max_attempts,
                    exc,
                )
                self._sleep_between_attempts(attempts)
                continue
            except Exception as exc:
                return Err(
                    HttpClientError(str(exc)),
                    meta=self._build_meta(
                        method=method,
                        request_url=url,
                        response=None,
                        context=context,
                        attempts=attempts,
                        timeout=timeout,
                        final_error=type(exc).__name__,
                    ),
                )
            return Ok(
                value_builder(response),
                meta=self._build_meta(
                    method=method,
                    request_url=url,
                    response=response,
                    context=context,
                    attempts=attempts,
                    timeout=timeout,
                ),
            )

        assert last_error is not None
        if attempts > 1:
            logger.warning(
                "%s %s failed after %d attempts: %s",
                method,
                url,
                attempts,
                last_error,
            )
        return Err(
            self._map_request_exception(last_error),
            meta=self._build_meta(
                method=method,
                request_url=url,
                response=last_error.response,
                context=context,
                attempts=attempts,
                timeout=timeout,
                final_error=type(last_error).__name__,
            ),
        )

    @staticmethod
    def _content_value(response: requests.Response) -> bytes:
        return response.content

    @staticmethod
    def _headers_value(response: requests.Response) -> Mapping[str, Any]:
        return dict(response.headers)

    @staticmethod
    def _response_value(response: requests.Response) -> requests.Response:
        return response

    def _redirects(self, allow_redirects: bool | None) -> bool:
        if allow_redirects is None:
            return self._follow_redirects
        return allow_redirects

    def get(
        self,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        params: Mapping[str, str] | None = None,
        timeout: float | None = None,
        allow_redirects: bool | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> Result[bytes, Exception]:
        """Perform an HTTP GET request.

        Args:
            url: Absolute URL, or a path joined onto the default base URL.
            headers: Optional per-request headers merged with defaults.
            params: Optional query parameters.
            timeout: Override timeout in seconds for this request.
            allow_redirects: Override the configured redirect policy.
            context: Optional caller context for logging/tracing.

        Returns:
            Result containing response bytes on success, or an error on failure.
        """
        resolved_url = self._resolve_url(url)
        resolved_timeout = self._get_timeout(timeout)
        return self._request(
            method="GET",
            url=resolved_url,
            context=context,
            timeout=resolved_timeout,
            request_fn=lambda session: session.get(
                resolved_url,
                headers=headers,
                params=params,
                timeout=resolved_timeout,
                allow_redirects=self._redirects(allow_redirects),
            ),
            value_builder=self._content_value,
        )

    def head(
        self,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        params: Mapping[str, str] | None = None,
        timeout: float | None = None,
        allow_redirects: bool | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> Result[Mapping[str, Any], Exception]:
        """Perform an HTTP HEAD request.

        Returns:
            Result containing response headers on success, or an error on
            failure.
        """
        resolved_url = self._resolve_url(url)
        resolved_timeout = self._get_timeout(timeout)
        return self._request(
            method="HEAD",
            url=resolved_url,
            context=context,
            timeout=resolved_timeout,
            request_fn=lambda session: session.head(
                resolved_url,
                headers=headers,
                params=params,
                timeout=resolved_timeout,
                allow_redirects=self._redirects(allow_redirects),
            ),
            value_builder=self._headers_value,
        )

    def _send_body(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str] | None,
        data: Any | None,
        json: Any | None,
        timeout: float | None,
        allow_redirects: bool | None,
        context: Mapping[str, Any] | None,
    ) -> Result[bytes, Exception]:
        resolved_url = self._resolve_url(url)
        resolved_timeout = self._get_timeout(timeout)
        return self._request(
            method=method,
            url=resolved_url,
            context=context,
            timeout=resolved_timeout,
            request_fn=lambda session: session.request(
                method,
                resolved_url,
                headers=headers,
                data=data,
                json=json,
                timeout=resolved_timeout,
                allow_redirects=self._redirects(allow_redirects),
            ),
            value_builder=self._content_value,
        )

    def post(
        self,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        data: Any | None = None,
        json: Any | None = None,
        timeout: float | None = None,
        allow_redirects: bool | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> Result[bytes, Exception]:
        """Perform an HTTP POST request.

        Args:
            url: Absolute URL, or a path joined onto the default base URL.
            headers: Optional per-request headers merged with defaults.
            data: Optional form/body payload.
            json: Optional JSON payload (mutually exclusive with data).
            timeout: Override timeout in seconds for this request.
            allow_redirects: Override the configured redirect policy.
            context: Optional caller context for logging/tracing.
        """
        return self._send_body(
            "POST",
            url,
            headers=headers,
            data=data,
            json=json,
            timeout=timeout,
            allow_redirects=allow_redirects,
            context=context,
        )

    def put(
        self,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        data: Any | None = None,
        json: Any | None = None,
        timeout: float | None = None,
        allow_redirects: bool | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> Result[bytes, Exception]:
        return self._send_body(
            "PUT",
            url,
            headers=headers,
            data=data,
            json=json,
            timeout=timeout,
            allow_redirects=allow_redirects,
            context=context,
        )

    def patch(
        self,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        data: Any | None = None,
        json: Any | None = None,
        timeout: float | None = None,
        allow_redirects: bool | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> Result[bytes, Exception]:
        return self._send_body(
            "PATCH",
            url,
            headers=headers,
            data=data,
            json=json,
            timeout=timeout,
            allow_redirects=allow_redirects,
            context=context,
        )

    def delete(
        self,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
        allow_redirects: bool | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> Result[bytes, Exception]:
        return self._send_body(
            "DELETE",
            url,
            headers=headers,
            data=None,
            json=None,
            timeout=timeout,
            allow_redirects=allow_redirects,
            context=context,
        )

    def download(
        self,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
        allow_redirects: bool | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> Result[requests.Response, Exception]:
        """Stream a download request.

        Returns:
            Result containing the streaming response on success, or an error
            on failure. The caller closes the response.
        """
        resolved_url = self._resolve_url(url)
        resolved_timeout = self._get_timeout(timeout)
        return self._request(
            method="GET",
            url=resolved_url,
            context=context,
            timeout=resolved_timeout,
            request_fn=lambda session: session.get(
                resolved_url,
                headers=headers,
                timeout=resolved_timeout,
                allow_redirects=self._redirects(allow_redirects),
                stream=True,
            ),
            value_builder=self._response_value,
        )
