"""Pytest configuration and fixtures."""

import asyncio
from typing import Callable, Dict, List, Optional

import pytest

from hlsrecorder.config import Config, RecorderConfig, UploadConfig
from hlsrecorder.http_client import HttpResponse
from hlsrecorder.notifier import Notifier


PLAYLIST_URL = "https://cdn.example.com/live/index.m3u8"


def media_playlist(
    sequence: int,
    uris: List[str],
    target_duration: int = 6,
    closed: bool = False,
    key: Optional[str] = None
) -> str:
    """Build a media playlist body."""
    lines = [
        "#EXTM3U",
        "#EXT-X-VERSION:3",
        f"#EXT-X-TARGETDURATION:{target_duration}",
        f"#EXT-X-MEDIA-SEQUENCE:{sequence}",
    ]
    if key:
        lines.append(key)
    for uri in uris:
        lines.append("#EXTINF:6.000,")
        lines.append(uri)
    if closed:
        lines.append("#EXT-X-ENDLIST")
    return "\n".join(lines) + "\n"


def master_playlist(variants: Dict[str, int]) -> str:
    """Build a master playlist body from uri -> bandwidth."""
    lines = ["#EXTM3U"]
    for uri, bandwidth in variants.items():
        lines.append(f"#EXT-X-STREAM-INF:BANDWIDTH={bandwidth},RESOLUTION=1280x720")
        lines.append(uri)
    return "\n".join(lines) + "\n"


class FakeHttpClient:
    """
    In-memory stand-in for HttpClient.

    A route is a list of responses served in order (the last one repeats) or a
    callable taking the call number. Strings and bytes become 200 responses,
    exceptions are raised.
    """

    def __init__(self, routes: Optional[Dict[str, object]] = None):
        self.routes: Dict[str, object] = dict(routes or {})
        self.calls: List[str] = []

    def count(self, url: str) -> int:
        return self.calls.count(url)

    async def get(self, url: str) -> HttpResponse:
        self.calls.append(url)
        route = self.routes.get(url)
        if route is None:
            return HttpResponse(status=404, body=b"", url=url)

        if callable(route):
            item = route(self.count(url))
            if asyncio.iscoroutine(item):
                item = await item
        elif isinstance(route, list):
            item = route.pop(0) if len(route) > 1 else route[0]
        else:
            item = route

        if isinstance(item, BaseException):
            raise item
        if isinstance(item, HttpResponse):
            return item
        if isinstance(item, str):
            item = item.encode("utf-8")
        return HttpResponse(status=200, body=item, url=url)

    async def close(self) -> None:
        pass

    async def __aenter__(self) -> "FakeHttpClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        pass


class RecordingNotifier(Notifier):
    """Collects chat messages; status messages keep every edit."""

    def __init__(self):
        self.messages: List[str] = []
        self.statuses: List[List[str]] = []

    async def send(self, text: str) -> None:
        self.messages.append(text)

    async def send_status_message(self, text: str) -> Optional[int]:
        self.statuses.append([text])
        return len(self.statuses) - 1

    async def update_status(self, message_id: int, text: str) -> bool:
        self.statuses[message_id].append(text)
        return True


class FakePool:
    """Worker pool stand-in that only records what the poller queues."""

    def __init__(self, on_put: Optional[Callable] = None):
        self.segments = []
        self.started = False
        self.closed = False
        self.discarded = None
        self.aborted = False
        self._on_put = on_put

    def start(self) -> None:
        self.started = True

    async def put(self, segment) -> None:
        self.segments.append(segment)
        if self._on_put:
            self._on_put(segment)

    async def close(self, discard_pending: bool = False) -> None:
        self.closed = True
        self.discarded = discard_pending

    async def abort(self) -> None:
        self.aborted = True


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def config(tmp_path) -> Config:
    """Config writing sessions and uploads below tmp_path, polling without delay."""
    return Config(
        recorder=RecorderConfig(
            output_dir=str(tmp_path / "sessions"),
            poll_interval=0.0,
            max_playlist_errors=3,
        ),
        upload=UploadConfig(
            enabled=True,
            destination_dir=str(tmp_path / "storage"),
        ),
    )
