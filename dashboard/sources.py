"""
ARTIFACT SOURCES - Where the static artifacts are read from

Two interchangeable sources behind one coroutine, fetch_text(path):
- HttpArtifactSource: artifacts published behind a web server (httpx)
- FileArtifactSource: artifacts on the local disk

Paths are relative to the data root ("config.yaml",
"agent_data/gpt-5/position/position.jsonl", ...). Every failure surfaces as
MissingArtifact so callers handle a single exception type.
"""

import asyncio
from pathlib import Path
from typing import Optional, Protocol, Union

import httpx
from loguru import logger

from core.errors import MissingArtifact
from core.retry import FETCH_RETRY_CONFIG, RetryConfig, RetryError, retry_async_operation


class ArtifactSource(Protocol):
    """Anything that can fetch an artifact's text by relative path."""

    async def fetch_text(self, path: str) -> str:
        ...


class FileArtifactSource:
    """Reads artifacts below a local root directory."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    async def fetch_text(self, path: str) -> str:
        full_path = self.root / path
        try:
            text = await asyncio.to_thread(full_path.read_text, encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise MissingArtifact(str(full_path), str(e)) from e
        logger.debug(f"Read {full_path} ({len(text)} bytes)")
        return text

    def __repr__(self) -> str:
        return f"FileArtifactSource({str(self.root)!r})"


class HttpArtifactSource:
    """
    Fetches artifacts over HTTP with httpx.

    Transport errors are retried with backoff; an HTTP error status is an
    immediate MissingArtifact.
    """

    def __init__(
        self,
        base_url: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
        retry_config: RetryConfig = FETCH_RETRY_CONFIG
    ):
        self.base_url = base_url.rstrip("/")
        self._client = client
        self._owns_client = client is None
        self._timeout = timeout
        self.retry_config = retry_config

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout, follow_redirects=True)
        return self._client

    def url_for(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    async def _get(self, url: str) -> str:
        response = await self._get_client().get(url)
        response.raise_for_status()
        return response.text

    async def fetch_text(self, path: str) -> str:
        url = self.url_for(path)
        try:
            text = await retry_async_operation(self._get, url, config=self.retry_config)
        except httpx.HTTPStatusError as e:
            raise MissingArtifact(url, f"HTTP {e.response.status_code}") from e
        except RetryError as e:
            raise MissingArtifact(url, str(e.last_exception)) from e
        logger.debug(f"Fetched {url} ({len(text)} bytes)")
        return text

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "HttpArtifactSource":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    def __repr__(self) -> str:
        return f"HttpArtifactSource({self.base_url!r})"


def source_for(location: str) -> Union[FileArtifactSource, HttpArtifactSource]:
    """HTTP source for http(s) URLs, file source otherwise."""
    if location.startswith(("http://", "https://")):
        return HttpArtifactSource(location)
    return FileArtifactSource(location)
