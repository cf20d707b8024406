"""
M3U8 playlist snapshots.
Adapts the m3u8 library's parse result into the few fields the recorder needs.
"""

import asyncio
import os
import posixpath
from dataclasses import dataclass, field
from typing import List, Optional, Union
from urllib.parse import urljoin, urlparse

import aiohttp
import m3u8

from .errors import PlaylistFetchError, PlaylistParseError


@dataclass(frozen=True)
class PlaylistRef:
    """A playlist URL; relative segment and key URIs resolve against it."""
    url: str

    def resolve(self, uri: str) -> str:
        return urljoin(self.url, uri)


@dataclass
class SegmentEntry:
    """One media segment line of a playlist."""
    uri: str
    discontinuity: bool = False


@dataclass
class Variant:
    """One entry of a master playlist."""
    uri: str
    bandwidth: int = 0


@dataclass
class MediaSnapshot:
    """One parsed poll of a media playlist."""
    sequence_base: int
    target_duration: float
    segments: List[Optional[SegmentEntry]] = field(default_factory=list)
    key_method: Optional[str] = None
    key_uri: Optional[str] = None
    key_iv: Optional[str] = None
    closed: bool = False

    @property
    def is_encrypted(self) -> bool:
        return bool(self.key_method) and self.key_method.upper() != 'NONE'


@dataclass
class MasterSnapshot:
    """A parsed master playlist."""
    variants: List[Variant] = field(default_factory=list)

    def best_variant(self) -> Optional[Variant]:
        """Highest bandwidth variant, the first one listed wins ties."""
        best = None
        for variant in self.variants:
            if best is None or variant.bandwidth > best.bandwidth:
                best = variant
        return best


Snapshot = Union[MediaSnapshot, MasterSnapshot]


def parse_playlist(body: Union[bytes, str], url: str) -> Snapshot:
    """
    Parse an M3U8 body.

    Args:
        body: Raw playlist body.
        url: URL the body was fetched from.

    Returns:
        MasterSnapshot or MediaSnapshot.

    Raises:
        PlaylistParseError: If the body is not a playlist.
    """
    if isinstance(body, bytes):
        text = body.decode('utf-8', errors='replace')
    else:
        text = body

    text = text.lstrip('\ufeff')
    if not text.strip().startswith('#EXTM3U'):
        raise PlaylistParseError(f"Response from {url} is not an M3U8 playlist")

    try:
        playlist = m3u8.loads(text, uri=url)
    except Exception as e:
        raise PlaylistParseError(f"Failed to parse playlist from {url}: {e}") from e

    if playlist.is_variant:
        variants = [
            Variant(
                uri=p.uri,
                bandwidth=(p.stream_info.bandwidth or 0) if p.stream_info else 0
            )
            for p in playlist.playlists
        ]
        if not variants:
            raise PlaylistParseError(f"Master playlist {url} has no variants")
        return MasterSnapshot(variants=variants)

    segments: List[Optional[SegmentEntry]] = []
    for segment in playlist.segments:
        if not segment.uri:
            segments.append(None)
            continue
        segments.append(SegmentEntry(uri=segment.uri, discontinuity=bool(segment.discontinuity)))

    key = next((k for k in playlist.keys if k is not None), None)

    return MediaSnapshot(
        sequence_base=int(playlist.media_sequence or 0),
        target_duration=float(playlist.target_duration or 0),
        segments=segments,
        key_method=key.method if key else None,
        key_uri=key.uri if key else None,
        key_iv=key.iv if key else None,
        closed=bool(playlist.is_endlist),
    )


def segment_file_name(directory: Union[str, os.PathLike], url: str) -> str:
    """Destination path for a segment: the last component of its URL path."""
    name = posixpath.basename(urlparse(url).path)
    return os.path.join(str(directory), name)


async def fetch_playlist(client, url: str) -> Snapshot:
    """
    Download and parse a playlist.

    Args:
        client: HttpClient (or anything with a compatible get()).
        url: Playlist URL.

    Raises:
        PlaylistFetchError: If the request fails or does not return 200.
        PlaylistParseError: If the body is not a playlist.
    """
    try:
        resp = await client.get(url)
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        raise PlaylistFetchError(f"Failed to get {url}: {e!r}") from e

    if not resp.ok:
        raise PlaylistFetchError(f"HTTP request to {resp.url} returned status {resp.status}")

    return parse_playlist(resp.body, url)
