"""Tests for the index handle, HTTP client and secret resolution."""

from __future__ import annotations

import httpx
import pytest

from helmsource.core.digest import digest_bytes
from helmsource.index.client import HttpIndexClient, IndexFetchError
from helmsource.index.handle import (
    IndexConstructionError,
    IndexHandle,
    IndexValidationError,
    InvalidURLError,
    index_url,
    validate_index,
)
from helmsource.index.options import ClientOptions
from helmsource.index.secrets import (
    SecretDataError,
    SecretNotFoundError,
    StaticSecretResolver,
)

REPO_URL = "https://charts.example.com"
INDEX_A = b"apiVersion: v1\nentries:\n  nginx:\n    - name: nginx\n      version: 1.0.0\n"
PEM = "-----BEGIN CERTIFICATE-----\nMIIB\n-----END CERTIFICATE-----\n"


def _handle(client, url: str = REPO_URL) -> IndexHandle:
    return IndexHandle(url, client, ClientOptions(url=url))


class TestIndexHandle:
    """Construction, caching, digests and validation."""

    def test_index_url(self):
        assert index_url("https://charts.example.com/") == "https://charts.example.com/index.yaml"
        assert index_url("https://charts.example.com/sub") == "https://charts.example.com/sub/index.yaml"

    @pytest.mark.parametrize(
        "url",
        ["not a url", "https://", "http://host:notaport/", "http://exa mple.com/", "http://example.com/\x7f"],
    )
    def test_malformed_url(self, make_index_client, url):
        with pytest.raises(InvalidURLError):
            _handle(make_index_client(), url)

    def test_unsupported_scheme(self, make_index_client):
        with pytest.raises(IndexConstructionError):
            _handle(make_index_client(), "oci://registry.example.com/charts")

    def test_cache_and_digest(self, make_index_client):
        client = make_index_client(INDEX_A)
        handle = _handle(client)
        path = handle.cache_index()
        try:
            assert path.read_bytes() == INDEX_A
            assert client.requests[0][0] == f"{REPO_URL}/index.yaml"
            assert handle.digest() == digest_bytes(INDEX_A)
            assert handle.digest("sha512") == digest_bytes(INDEX_A, "sha512")
            assert handle.digest("md5") == ""
        finally:
            handle.clear()
        assert not path.exists()
        assert handle.digest() == ""

    def test_load_from_path(self, make_index_client):
        handle = _handle(make_index_client(INDEX_A))
        handle.cache_index()
        try:
            index = handle.load_from_path()
        finally:
            handle.clear()
        assert index["apiVersion"] == "v1"
        assert "nginx" in index["entries"]
        assert handle.index is None

    def test_load_invalid_yaml(self, make_index_client):
        handle = _handle(make_index_client(b"apiVersion: [unclosed"))
        handle.cache_index()
        try:
            with pytest.raises(IndexValidationError):
                handle.load_from_path()
        finally:
            handle.clear()

    def test_load_without_cache(self, make_index_client):
        with pytest.raises(IndexValidationError):
            _handle(make_index_client()).load_from_path()


class TestValidateIndex:
    @pytest.mark.parametrize(
        "data",
        [
            [],
            "text",
            {"entries": {}},
            {"apiVersion": "v1", "entries": []},
            {"apiVersion": "v1", "entries": {"nginx": {"version": "1"}}},
        ],
    )
    def test_rejects(self, data):
        with pytest.raises(IndexValidationError):
            validate_index(data)

    def test_missing_entries_defaults_to_empty(self):
        assert validate_index({"apiVersion": "v1"})["entries"] == {}


class TestHttpIndexClient:
    """Download behaviour against a mocked transport."""

    @pytest.fixture
    def serve(self, monkeypatch):
        def _serve(handler):
            def _client(self, options):
                return httpx.Client(transport=httpx.MockTransport(handler), follow_redirects=False)

            monkeypatch.setattr(HttpIndexClient, "_client", _client)
            return HttpIndexClient()

        return _serve

    def test_get(self, serve):
        client = serve(lambda request: httpx.Response(200, content=INDEX_A))
        assert client.get(f"{REPO_URL}/index.yaml", ClientOptions(url=REPO_URL)) == INDEX_A

    def test_http_error(self, serve):
        client = serve(lambda request: httpx.Response(404))
        with pytest.raises(IndexFetchError, match="404"):
            client.get(f"{REPO_URL}/index.yaml", ClientOptions(url=REPO_URL))

    def test_invalid_url_is_fetch_error(self, serve):
        def handler(request):
            raise httpx.InvalidURL("invalid host")

        client = serve(handler)
        with pytest.raises(IndexFetchError, match="invalid host"):
            client.get(f"{REPO_URL}/index.yaml", ClientOptions(url=REPO_URL))

    def test_size_limit(self, serve):
        client = serve(lambda request: httpx.Response(200, content=b"x" * 100))
        with pytest.raises(IndexFetchError, match="maximum size"):
            client.get(f"{REPO_URL}/index.yaml", ClientOptions(url=REPO_URL), max_size=10)

    @pytest.mark.parametrize(("pass_credentials", "want"), [(False, False), (True, True)])
    def test_credentials_on_cross_host_redirect(self, serve, pass_credentials, want):
        seen: dict[str, bool] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen[request.url.host] = "authorization" in request.headers
            if request.url.host == "charts.example.com":
                return httpx.Response(302, headers={"Location": "https://cdn.example.net/index.yaml"})
            return httpx.Response(200, content=INDEX_A)

        client = serve(handler)
        options = ClientOptions(
            url=REPO_URL, username="user", password="pass", pass_credentials=pass_credentials
        )
        assert client.get(f"{REPO_URL}/index.yaml", options) == INDEX_A
        assert seen["charts.example.com"] is True
        assert seen["cdn.example.net"] is want


class TestSecrets:
    """Secret lookup and parsing."""

    def test_resolve_basic_auth(self):
        resolver = StaticSecretResolver()
        resolver.add("default", "creds", {"username": "u", "password": "p"})
        options = resolver.resolve("default", "creds").apply(ClientOptions(url=REPO_URL))
        assert options.has_basic_auth
        assert options.url == REPO_URL

    def test_resolve_ca(self):
        resolver = StaticSecretResolver({"default/ca": {"caFile": PEM}})
        assert resolver.resolve("default", "ca").ca_data == PEM

    def test_missing_secret(self):
        with pytest.raises(SecretNotFoundError):
            StaticSecretResolver().resolve("default", "missing")

    @pytest.mark.parametrize(
        "data",
        [{"username": "only"}, {"password": "only"}, {"caFile": "not a pem"}],
    )
    def test_invalid_data(self, data):
        resolver = StaticSecretResolver({"default/bad": data})
        with pytest.raises(SecretDataError):
            resolver.resolve("default", "bad")
