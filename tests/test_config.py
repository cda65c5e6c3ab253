# pyright: reportUnknownParameterType=false, reportUnknownMemberType=false
# pyright: reportUnknownVariableType=false, reportMissingParameterType=false
import ssl
import threading
import time
from datetime import timedelta
from unittest.mock import Mock

import pytest

from courier.networking.client import HttpClient
from courier.networking.config import (
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_MAX_RETRIES,
    DEFAULT_SOCKET_TIMEOUT,
    Config,
)
from courier.networking.errors import ConfigError
from courier.networking.proxy import Proxy
from courier.networking.tls import (
    KeyStore,
    KeyStoreCredential,
    NoCredential,
    SslContextCredential,
)
from courier.networking.units import TimeUnit

CONFLICT = "You may only configure a SSLContext OR a Keystore, but not both"


@pytest.fixture
def config():
    return Config()


def _factory():
    built = []

    def build(config):
        client = Mock()
        client.is_running.return_value = True
        built.append(client)
        return client

    return build, built


def test_config_defaults_are_stable(config):
    assert config.get_connection_timeout() == DEFAULT_CONNECT_TIMEOUT
    assert config.get_request_timeout() == DEFAULT_SOCKET_TIMEOUT
    assert config.get_ttl() == -1
    assert config.is_request_compression_on() is True
    assert config.is_automatic_retries() is True
    assert config.get_max_retries() == DEFAULT_MAX_RETRIES
    assert config.get_proxy() is None
    assert config.get_tls_credential() == NoCredential()
    assert config.is_verify_ssl() is True
    assert config.is_follow_redirects() is True
    assert dict(config.get_default_headers()) == {}
    assert config.get_default_base_url() is None
    assert config.is_running() is False


def test_get_client_is_memoized(config):
    assert config.get_client() is config.get_client()


def test_default_factory_builds_http_client(config):
    assert isinstance(config.get_client(), HttpClient)


def test_connection_ttl_is_normalized_to_millis(config):
    assert config.connection_ttl(42, TimeUnit.MILLISECONDS).get_ttl() == 42
    assert config.connection_ttl(42, TimeUnit.MINUTES).get_ttl() == 2_520_000

    assert config.connection_ttl(timedelta(milliseconds=43)).get_ttl() == 43
    assert config.connection_ttl(timedelta(minutes=43)).get_ttl() == 2_580_000


def test_connection_ttl_rejects_negative_amounts(config):
    with pytest.raises(ValueError):
        config.connection_ttl(-1, TimeUnit.SECONDS)
    with pytest.raises(ValueError):
        config.connection_ttl(timedelta(seconds=-5))

    assert config.get_ttl() == -1


def test_connection_ttl_requires_a_unit_for_plain_amounts(config):
    with pytest.raises(TypeError):
        config.connection_ttl(42)


def test_custom_client_factory_is_used(config):
    client = Mock()

    config.http_client(lambda c: client)

    assert config.get_client() is client


def test_custom_client_factory_receives_the_config(config):
    factory = Mock()

    config.http_client(factory)
    config.get_client()

    factory.assert_called_once_with(config)


def test_installing_a_factory_does_not_build(config):
    factory = Mock()

    config.http_client(factory)

    factory.assert_not_called()
    assert config.is_running() is False


def test_can_disable_request_compression(config):
    assert config.is_request_compression_on()
    config.request_compression(False)
    assert not config.is_request_compression_on()


def test_can_disable_automatic_retries(config):
    assert config.is_automatic_retries()
    config.automatic_retries(False)
    assert not config.is_automatic_retries()


def _assert_proxy(config, host, port, username, password):
    proxy = config.get_proxy()
    assert proxy.host == host
    assert proxy.port == port
    assert proxy.username == username
    assert proxy.password == password


def test_can_set_proxy_via_setter(config):
    config.proxy(Proxy("localhost", 8080, "ryan", "password"))
    _assert_proxy(config, "localhost", 8080, "ryan", "password")

    config.proxy("local2", 8888)
    _assert_proxy(config, "local2", 8888, None, None)

    config.proxy("local3", 7777, "barb", "12345")
    _assert_proxy(config, "local3", 7777, "barb", "12345")


def test_proxy_can_be_cleared(config):
    config.proxy("localhost", 8080).proxy(None)

    assert config.get_proxy() is None


def test_proxy_value_rejects_extra_arguments(config):
    with pytest.raises(TypeError):
        config.proxy(Proxy("localhost", 8080), 9090)


def test_proxy_host_requires_port(config):
    with pytest.raises(TypeError):
        config.proxy("localhost")


def test_cannot_set_ssl_context_when_keystore_is_present(config):
    config.client_certificate_store(KeyStore("/a/path/client.pem"), "foo")

    with pytest.raises(ConfigError) as excinfo:
        config.ssl_context(ssl.create_default_context())

    assert str(excinfo.value) == CONFLICT
    assert isinstance(config.get_tls_credential(), KeyStoreCredential)


def test_cannot_set_keystore_when_ssl_context_is_present(config):
    context = ssl.create_default_context()
    config.ssl_context(context)

    with pytest.raises(ConfigError) as excinfo:
        config.client_certificate_store(KeyStore("/a/path/client.pem"), "foo")
    assert str(excinfo.value) == CONFLICT

    with pytest.raises(ConfigError) as excinfo:
        config.client_certificate_store("/a/path/file.pem", "foo")
    assert str(excinfo.value) == CONFLICT

    assert config.get_tls_credential() == SslContextCredential(context)


def test_tls_conflict_does_not_invalidate_client(config):
    build, built = _factory()
    config.http_client(build).ssl_context(ssl.create_default_context())
    client = config.get_client()

    with pytest.raises(ConfigError):
        config.client_certificate_store("/a/path/file.pem", "foo")

    assert config.get_client() is client
    client.close.assert_not_called()


def test_keystore_path_is_wrapped(config):
    config.client_certificate_store("/a/path/file.pem", "secret")

    credential = config.get_tls_credential()
    assert credential == KeyStoreCredential(
        KeyStore(certfile="/a/path/file.pem"), "secret"
    )


def test_same_kind_of_credential_can_be_replaced(config):
    first = ssl.create_default_context()
    second = ssl.create_default_context()

    config.ssl_context(first).ssl_context(second)

    assert config.get_tls_credential() == SslContextCredential(second)


def test_is_running_once_client_is_built(config):
    assert not config.is_running()
    config.get_client()
    assert config.is_running()


def test_is_running_follows_the_client_state(config):
    client = Mock()
    client.is_running.return_value = True
    config.http_client(lambda c: client)
    config.get_client()

    client.is_running.return_value = False

    assert not config.is_running()


def test_stopped_client_is_rebuilt(config):
    build, built = _factory()
    config.http_client(build)
    first = config.get_client()

    first.is_running.return_value = False
    second = config.get_client()

    assert second is not first
    assert len(built) == 2


@pytest.mark.parametrize(
    "mutate",
    [
        lambda c: c.connect_timeout(1_000),
        lambda c: c.request_timeout(1_000),
        lambda c: c.connection_ttl(5, TimeUnit.SECONDS),
        lambda c: c.request_compression(False),
        lambda c: c.automatic_retries(False),
        lambda c: c.max_retries(1),
        lambda c: c.verify_ssl(False),
        lambda c: c.follow_redirects(False),
        lambda c: c.proxy("localhost", 8080),
        lambda c: c.ssl_context(ssl.create_default_context()),
        lambda c: c.client_certificate_store("/a/path/file.pem", "foo"),
        lambda c: c.set_default_header("X-Test", "1"),
        lambda c: c.add_default_header("X-Test", "1"),
        lambda c: c.clear_default_headers(),
        lambda c: c.default_base_url("http://example.com"),
        lambda c: c.concurrency(10, 2),
    ],
)
def test_setters_invalidate_the_cached_client(config, mutate):
    build, built = _factory()
    config.http_client(build)
    first = config.get_client()

    mutate(config)

    first.close.assert_called_once_with()
    assert not config.is_running()
    assert config.get_client() is not first
    assert len(built) == 2


def test_new_factory_replaces_a_built_client(config):
    build, built = _factory()
    config.http_client(build)
    first = config.get_client()
    replacement = Mock()

    config.http_client(lambda c: replacement)

    first.close.assert_called_once_with()
    assert config.get_client() is replacement


def test_shutdown_closes_client_and_keeps_settings(config):
    build, built = _factory()
    config.http_client(build).proxy("localhost", 8080)
    client = config.get_client()

    config.shutdown()

    client.close.assert_called_once_with()
    assert not config.is_running()
    assert config.get_proxy() == Proxy("localhost", 8080)


def test_shutdown_without_client_is_noop(config):
    config.shutdown()

    assert not config.is_running()


def test_reset_restores_defaults(config):
    build, built = _factory()
    config.http_client(build)
    config.connect_timeout(5).automatic_retries(False).proxy("localhost", 8080)
    config.ssl_context(ssl.create_default_context())
    client = config.get_client()

    assert config.reset() is config

    client.close.assert_called_once_with()
    assert config.get_connection_timeout() == DEFAULT_CONNECT_TIMEOUT
    assert config.is_automatic_retries() is True
    assert config.get_proxy() is None
    assert config.get_tls_credential() == NoCredential()
    assert isinstance(config.get_client(), HttpClient)


def test_rejects_negative_values(config):
    with pytest.raises(ValueError):
        config.connect_timeout(-1)
    with pytest.raises(ValueError):
        config.request_timeout(-1)
    with pytest.raises(ValueError):
        config.max_retries(-1)
    with pytest.raises(ValueError):
        config.concurrency(0, 1)
    with pytest.raises(ValueError):
        config.concurrency(1, 0)


def test_default_headers(config):
    config.set_default_header("Accept", "application/json")
    config.add_default_header("x-tags", "a").add_default_header("X-Tags", "b")

    headers = config.get_default_headers()
    assert headers["Accept"] == "application/json"
    assert headers["x-tags"] == "a, b"

    with pytest.raises(TypeError):
        headers["Accept"] = "text/plain"  # type: ignore[index]

    config.clear_default_headers()
    assert dict(config.get_default_headers()) == {}


def test_concurrent_first_calls_build_one_client(config):
    calls = []

    def slow_build(c):
        calls.append(c)
        time.sleep(0.05)
        client = Mock()
        client.is_running.return_value = True
        return client

    config.http_client(slow_build)
    results = []
    threads = [
        threading.Thread(target=lambda: results.append(config.get_client()))
        for _ in range(8)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(calls) == 1
    assert all(result is results[0] for result in results)


def test_shared_factory_instance_is_closed_when_dropped(config):
    shared = Mock()
    shared.is_running.return_value = True
    config.http_client(lambda c: shared)
    assert config.get_client() is shared

    config.verify_ssl(False)

    shared.close.assert_called_once_with()
    assert config.get_client() is shared
