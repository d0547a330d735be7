"""HTTP client for downloading repository index files."""

from __future__ import annotations

import logging
import ssl
from typing import Protocol
from urllib.parse import urljoin, urlparse

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from helmsource.index.options import ClientOptions

logger = logging.getLogger(__name__)

DEFAULT_MAX_INDEX_SIZE = 50 * 1024 * 1024
_MAX_REDIRECTS = 10
_USER_AGENT = "helmsource/0.1.0"


class IndexFetchError(RuntimeError):
    """Raised when the index cannot be downloaded."""


class RemoteIndexClient(Protocol):
    """Downloads raw index bytes from a repository URL."""

    schemes: tuple[str, ...]

    def get(self, url: str, options: ClientOptions, *, max_size: int) -> bytes: ...


class HttpIndexClient:
    """Fetches index files over HTTP(S) with basic auth and custom CAs.

    Credentials are only sent to the repository host unless
    ``options.pass_credentials`` is set, in which case redirects to other
    hosts receive them too.
    """

    schemes: tuple[str, ...] = ("http", "https")

    def _client(self, options: ClientOptions) -> httpx.Client:
        verify: bool | ssl.SSLContext = True
        if options.ca_data:
            verify = ssl.create_default_context(cadata=options.ca_data)
        return httpx.Client(
            timeout=httpx.Timeout(options.timeout),
            follow_redirects=False,
            verify=verify,
            headers={"User-Agent": _USER_AGENT},
        )

    def get(self, url: str, options: ClientOptions, *, max_size: int = DEFAULT_MAX_INDEX_SIZE) -> bytes:
        try:
            with self._client(options) as client:
                return self._get(client, url, options, max_size)
        except httpx.HTTPStatusError as exc:
            raise IndexFetchError(
                f"failed to fetch {url}: {exc.response.status_code} {exc.response.reason_phrase}"
            ) from exc
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise IndexFetchError(f"failed to fetch {url}: {exc}") from exc

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
        retry=retry_if_exception_type((httpx.ConnectTimeout, httpx.ReadTimeout)),
        reraise=True,
    )
    def _get(self, client: httpx.Client, url: str, options: ClientOptions, max_size: int) -> bytes:
        origin_host = urlparse(url).netloc
        current = url
        for _ in range(_MAX_REDIRECTS + 1):
            auth = None
            if options.has_basic_auth and (
                options.pass_credentials or urlparse(current).netloc == origin_host
            ):
                auth = httpx.BasicAuth(options.username or "", options.password or "")
            with client.stream("GET", current, auth=auth) as response:
                if response.is_redirect:
                    current = urljoin(current, response.headers["Location"])
                    logger.debug("following redirect to %s", current)
                    continue
                response.raise_for_status()
                return self._read_limited(response, current, max_size)
        raise IndexFetchError(f"failed to fetch {url}: too many redirects")

    @staticmethod
    def _read_limited(response: httpx.Response, url: str, max_size: int) -> bytes:
        chunks: list[bytes] = []
        size = 0
        for chunk in response.iter_bytes():
            size += len(chunk)
            if size > max_size:
                raise IndexFetchError(
                    f"index from {url} exceeds the maximum size of {max_size} bytes"
                )
            chunks.append(chunk)
        return b"".join(chunks)
