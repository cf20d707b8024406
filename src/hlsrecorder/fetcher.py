"""
Segment downloader.
Fetches one media segment, decrypts it when the playlist is encrypted and writes it to disk.
"""

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import aiofiles
import aiofiles.os
import aiohttp

from .errors import SegmentFetchError
from .http_client import HttpClient
from .keys import EncryptionContext
from .logger import get_logger


def format_size(size: float) -> str:
    """Get human-readable file size."""
    for unit in ['B', 'KB', 'MB', 'GB']:
        if size < 1024:
            return f"{size:.2f} {unit}"
        size /= 1024
    return f"{size:.2f} TB"


@dataclass(frozen=True)
class Segment:
    """One unit of work for the download workers."""
    destination_path: str
    url: str
    sequence_number: int
    iv: Optional[bytes] = None
    encryption: Optional[EncryptionContext] = None


@dataclass
class DownloadStats:
    """Counters shared by the poller and the workers of one session."""
    queued: int = 0
    downloaded: int = 0
    dropped: int = 0
    bytes_written: int = 0

    def summary(self) -> str:
        text = f"{self.downloaded}/{self.queued} segments, {format_size(self.bytes_written)}"
        if self.dropped:
            text += f", {self.dropped} dropped"
        return text


class SegmentFetcher:
    """
    Downloads segments with a per-segment retry budget.

    The destination file is recreated on every attempt. A segment that fails
    every attempt is logged and dropped; the session carries on.
    """

    def __init__(
        self,
        client: HttpClient,
        retries: int = 5,
        stats: Optional[DownloadStats] = None,
        logger=None
    ):
        self.client = client
        self.retries = retries
        self.stats = stats if stats is not None else DownloadStats()
        self._logger = logger or get_logger('fetcher')

    async def fetch(self, segment: Segment) -> bool:
        """
        Download one segment.

        Returns:
            True if the file was written.
        """
        for attempt in range(1, self.retries + 1):
            try:
                size = await self._fetch_once(segment)
            except (SegmentFetchError, aiohttp.ClientError, asyncio.TimeoutError, OSError, ValueError) as e:
                self._logger.warning(
                    f"Segment {segment.sequence_number} attempt {attempt}/{self.retries} failed: {e}"
                )
                continue

            self.stats.downloaded += 1
            self.stats.bytes_written += size
            self._logger.info(f"Downloaded {Path(segment.destination_path).name} ({format_size(size)})")
            return True

        self.stats.dropped += 1
        try:
            await aiofiles.os.remove(segment.destination_path)
        except FileNotFoundError:
            pass
        self._logger.error(
            f"Dropping segment {segment.sequence_number} ({segment.url}) after {self.retries} attempts"
        )
        return False

    async def _fetch_once(self, segment: Segment) -> int:
        async with aiofiles.open(segment.destination_path, 'wb') as out:
            resp = await self.client.get(segment.url)
            if not resp.ok:
                raise SegmentFetchError(f"HTTP request to {resp.url} returned status {resp.status}")

            data = resp.body
            if segment.encryption is not None:
                data = segment.encryption.decrypt(data, segment.iv)

            await out.write(data)
            return len(data)
