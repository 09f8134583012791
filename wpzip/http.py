"""HTTP access to the exported site.

Scripts uploaded to the public directory are run by requesting them through
the site's own web server. Response bodies are exposed as input streams, so a
database dump flows to the archive without being held in memory.
"""
from abc import ABC, abstractmethod
from contextlib import AsyncExitStack, asynccontextmanager
from logging import getLogger
from typing import AsyncContextManager, AsyncIterator, Iterable

from httpx import AsyncClient, HTTPError

from wpzip.stream import InputStream, IteratorInputStream

_LOGGER = getLogger(__name__)


class HttpGetError(Exception):
    """A GET request failed, or answered with an error status."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"GET {url} failed : {reason}")
        self.url = url
        self.reason = reason


class HttpGetter(ABC):
    @abstractmethod
    def get(self, url: str) -> AsyncContextManager[InputStream]:
        """Request an url, streaming the response body.

        Raises:
            HttpGetError: If the request fails or the status isn't a success.
        """


class HttpxGetter(HttpGetter):
    """HTTP getter backed by an httpx client."""

    def __init__(self, client: AsyncClient) -> None:
        self._client = client

    @asynccontextmanager
    async def get(self, url: str) -> AsyncIterator[InputStream]:
        _LOGGER.debug("GET %s", url)
        try:
            async with self._client.stream("GET", url) as response:
                response.raise_for_status()
                yield IteratorInputStream(response.aiter_bytes())
        except HTTPError as ex:
            raise HttpGetError(url, str(ex) or type(ex).__name__) from ex


@asynccontextmanager
async def get_first(
    http: HttpGetter, urls: Iterable[str]
) -> AsyncIterator[InputStream]:
    """Request urls in order, streaming the first successful response.

    A failure while reading the body of the successful response isn't
    retried on the next url.

    Raises:
        HttpGetError: The error of the last url, if none answered.
    """
    last_error: HttpGetError | None = None
    for url in urls:
        async with AsyncExitStack() as stack:
            try:
                body = await stack.enter_async_context(http.get(url))
            except HttpGetError as ex:
                _LOGGER.debug("%s", ex)
                last_error = ex
                continue

            yield body
            return

    if last_error is None:
        raise HttpGetError("", "no url to request")
    raise last_error
