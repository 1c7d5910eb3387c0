"""Tests for endpoint URI normalization."""

import pytest

from spacetimedb_mcp.core.config import BridgeConfig, get_server_uri
from spacetimedb_mcp.core.uri import normalize_uri, split_scheme


class TestNormalizeUri:
    """Tests for normalize_uri()."""

    @pytest.mark.parametrize(
        "uri,expected",
        [
            ("ws://localhost:3000", ("http://localhost:3000", "ws://localhost:3000")),
            ("http://localhost:3000", ("http://localhost:3000", "ws://localhost:3000")),
            ("https://example.com", ("https://example.com", "wss://example.com")),
            ("wss://example.com", ("http://example.com", "wss://example.com")),
        ],
    )
    def test_scheme_mapping(self, uri: str, expected: tuple[str, str]) -> None:
        assert normalize_uri(uri) == expected

    def test_host_port_and_path_preserved(self) -> None:
        """Only the scheme changes."""
        http, stream = normalize_uri("ws://db.internal:3100/prefix")
        assert http == "http://db.internal:3100/prefix"
        assert stream == "ws://db.internal:3100/prefix"

    def test_trailing_slash_dropped(self) -> None:
        assert normalize_uri("ws://localhost:3000/") == (
            "http://localhost:3000",
            "ws://localhost:3000",
        )

    def test_scheme_case_insensitive(self) -> None:
        assert normalize_uri("WS://localhost:3000")[0] == "http://localhost:3000"

    def test_stream_form_is_stable(self) -> None:
        """Normalizing the stream form again gives the same pair."""
        for uri in ("ws://localhost:3000", "https://example.com", "wss://example.com"):
            _, stream = normalize_uri(uri)
            assert normalize_uri(stream)[1] == stream

    def test_request_form_keeps_host(self) -> None:
        for uri in ("ws://localhost:3000", "https://example.com", "wss://example.com"):
            http, _ = normalize_uri(uri)
            assert normalize_uri(http)[0].split("://")[1] == http.split("://")[1]

    @pytest.mark.parametrize("uri", ["localhost:3000", "ftp://example.com", ""])
    def test_invalid_uri(self, uri: str) -> None:
        with pytest.raises(ValueError):
            normalize_uri(uri)

    def test_split_scheme(self) -> None:
        assert split_scheme("HTTPS://a.b/c") == ("https", "a.b/c")


class TestServerUri:
    """Tests for get_server_uri() resolution order."""

    def test_explicit_argument_wins(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SPACETIMEDB_URI", "wss://env.example.com")
        assert get_server_uri("ws://arg:3000") == "ws://arg:3000"

    def test_environment_variable(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SPACETIMEDB_URI", "wss://env.example.com")
        assert get_server_uri(None) == "wss://env.example.com"

    def test_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("SPACETIMEDB_URI", raising=False)
        assert get_server_uri(None) == "ws://localhost:3000"


class TestBridgeConfig:
    """Tests for BridgeConfig.from_env()."""

    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("SPACETIMEDB_MCP_HTTP_TIMEOUT", raising=False)
        config = BridgeConfig.from_env()
        assert config.http_timeout == 30.0
        assert config.read_retries == 2
        assert config.cli_fallback is True

    def test_environment_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SPACETIMEDB_MCP_HTTP_TIMEOUT", "5")
        monkeypatch.setenv("SPACETIMEDB_MCP_CLI_FALLBACK", "false")
        config = BridgeConfig.from_env()
        assert config.http_timeout == 5.0
        assert config.cli_fallback is False

    def test_explicit_overrides_beat_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SPACETIMEDB_MCP_READ_RETRIES", "5")
        assert BridgeConfig.from_env(read_retries=0).read_retries == 0
