"""Streaming archive downloads with byte-progress reporting."""

import logging
from typing import Callable, Optional

import httpx

from skyup.models.errors import EmptyBodyError, HttpStatusError, NetworkIOError

ProgressCallback = Callable[[float], None]

DEFAULT_CHUNK_SIZE = 4096


def _content_length(response: httpx.Response) -> Optional[int]:
    """Declared body length, or None when absent or unusable."""
    raw = response.headers.get("Content-Length")
    if raw is None:
        return None
    try:
        length = int(raw)
    except ValueError:
        return None
    return length if length > 0 else None


class DownloadService:
    """Fetches a URL body in fixed-size chunks into memory."""

    def __init__(
        self,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        timeout: Optional[float] = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize download service.

        Args:
            chunk_size: Bytes per read, one progress emission per chunk
            timeout: httpx client timeout in seconds (None disables)
            transport: Custom httpx transport (tests use httpx.MockTransport)
        """
        self.logger = logging.getLogger("skyup.download")
        self.chunk_size = chunk_size
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            transport=self.transport,
            follow_redirects=True,
        )

    async def download(
        self, url: str, on_progress: Optional[ProgressCallback] = None
    ) -> bytes:
        """Download the full body of url.

        After every chunk on_progress receives bytes_read / Content-Length.
        Without a usable Content-Length no per-chunk fraction is reported.
        A successful download always ends with exactly one 1.0 emission.

        Args:
            url: HTTP(S) URL of the archive
            on_progress: Called with a fraction in [0, 1]

        Returns:
            The complete response body

        Raises:
            HttpStatusError: If the server answers with a non-2xx status
            EmptyBodyError: If the response has no body
            NetworkIOError: If the transfer fails at the transport level
        """
        self.logger.info(f"Starting download: url={url}")
        buffer = bytearray()
        last_fraction = 0.0

        try:
            async with self._client() as client:
                async with client.stream("GET", url) as response:
                    if not response.is_success:
                        self.logger.error(
                            f"Download rejected: url={url}, status={response.status_code}"
                        )
                        raise HttpStatusError(response.status_code, url)

                    total = _content_length(response)
                    self.logger.debug(f"Content-Length for {url}: {total}")
                    last_logged = -1

                    async for chunk in response.aiter_bytes(chunk_size=self.chunk_size):
                        buffer.extend(chunk)
                        if total is None:
                            continue

                        fraction = min(len(buffer) / total, 1.0)
                        if fraction <= last_fraction:
                            continue
                        last_fraction = fraction
                        if on_progress is not None:
                            on_progress(fraction)

                        # Log every 5%
                        percent = int(fraction * 100)
                        if percent >= last_logged + 5:
                            last_logged = percent
                            self.logger.debug(
                                f"Download progress: {percent}% "
                                f"({len(buffer)}/{total} bytes) {url}"
                            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            self.logger.error(f"Download failed: url={url}: {e}")
            raise NetworkIOError(f"Failed to download {url}: {e}") from e

        if not buffer:
            self.logger.error(f"Download returned an empty body: url={url}")
            raise EmptyBodyError(f"Failed to download archive: empty body from {url}")

        if last_fraction < 1.0 and on_progress is not None:
            on_progress(1.0)

        self.logger.info(f"Downloaded {len(buffer)} bytes from {url}")
        return bytes(buffer)
