"""Source PDF storage: local blob store for uploads and a fetcher for ingestion."""

import asyncio
import logging
from pathlib import Path
from typing import Protocol

import httpx

from pdfchat.errors import BlobNotFoundError, NonRetriableError

logger = logging.getLogger(__name__)


class BlobStore(Protocol):
    """Upload-side source storage: write, read back and delete."""

    async def put(self, name: str, data: bytes) -> str:
        """Store bytes and return an opaque retrieval handle."""
        ...

    async def get(self, handle: str) -> bytes:
        """Read stored bytes; raises BlobNotFoundError when absent."""
        ...

    async def delete(self, handle: str) -> None:
        """Remove stored bytes; missing handles are ignored."""
        ...


class LocalBlobStore:
    """Filesystem-backed blob store."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    async def put(self, name: str, data: bytes) -> str:
        """Write bytes under root and return the absolute path as handle."""
        path = self.root / name
        await asyncio.to_thread(path.parent.mkdir, parents=True, exist_ok=True)
        await asyncio.to_thread(path.write_bytes, data)
        return str(path.resolve())

    async def get(self, handle: str) -> bytes:
        """Read a stored file back.

        Raises:
            BlobNotFoundError: If the file is missing or unreadable
        """
        try:
            return await asyncio.to_thread(Path(handle).read_bytes)
        except OSError as e:
            raise BlobNotFoundError(f"Blob {handle} not available: {e.strerror}") from e

    async def delete(self, handle: str) -> None:
        """Remove a stored file if it exists."""
        await asyncio.to_thread(Path(handle).unlink, missing_ok=True)


class SourceFetcher:
    """Read side of source storage: handle (URL or path) to bytes.

    Every failure here is non-retriable; a source that cannot be read now
    will not become readable by retrying the pipeline.
    """

    def __init__(
        self, *, timeout_seconds: float = 60.0, transport: httpx.AsyncBaseTransport | None = None
    ) -> None:
        self._timeout = timeout_seconds
        self._transport = transport

    async def fetch(self, handle: str) -> bytes:
        """Load the source bytes.

        Raises:
            NonRetriableError: On a non-2xx response, network failure or missing file
        """
        if handle.startswith(("http://", "https://")):
            return await self._fetch_url(handle)
        return await self._read_path(handle)

    async def _fetch_url(self, url: str) -> bytes:
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport, follow_redirects=True
            ) as client:
                response = await client.get(url)
        except httpx.HTTPError as e:
            raise NonRetriableError(f"Failed to fetch PDF from storage: {type(e).__name__}") from e

        if response.status_code >= 400:
            raise NonRetriableError(
                f"Failed to fetch PDF from storage: HTTP {response.status_code}"
            )
        return response.content

    async def _read_path(self, handle: str) -> bytes:
        path = Path(handle.removeprefix("file://"))
        try:
            return await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            raise NonRetriableError(f"Failed to read PDF from storage: {e.strerror}") from e
