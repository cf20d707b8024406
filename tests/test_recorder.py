"""End-to-end tests for the recording orchestrator."""

import asyncio
import os

import pytest

from conftest import PLAYLIST_URL, FakeHttpClient, master_playlist, media_playlist
from hlsrecorder.recorder import RecordingOrchestrator, RecordingRequest, RecordingStatus
from hlsrecorder.uploader import StorageUploader


BASE = "https://cdn.example.com/live/"


def orchestrator(config, notifier, client):
    return RecordingOrchestrator(
        config,
        notifier,
        uploader=StorageUploader(),
        client_factory=lambda headers: client
    )


class TestRecordingOrchestrator:

    @pytest.mark.asyncio
    async def test_records_best_variant_and_uploads(self, config, notifier, tmp_path):
        variant = BASE + "hi/index.m3u8"
        client = FakeHttpClient({
            PLAYLIST_URL: master_playlist({"lo/index.m3u8": 300000, "hi/index.m3u8": 6000000}),
            variant: [
                media_playlist(0, ["a.ts", "b.ts"]),
                media_playlist(0, ["a.ts", "b.ts", "c.ts"], closed=True),
            ],
            BASE + "hi/a.ts": b"AAA",
            BASE + "hi/b.ts": b"BBB",
            BASE + "hi/c.ts": b"CCC",
        })

        result = await orchestrator(config, notifier, client).record(
            RecordingRequest(url=PLAYLIST_URL, file_name="stream.mp4", session_id="42")
        )

        assert result.status == RecordingStatus.COMPLETED
        assert result.uploaded == ["stream.mp4"]
        assert (tmp_path / "storage" / "stream.mp4").read_bytes() == b"AAABBBCCC"
        assert BASE + "lo/index.m3u8" not in client.calls
        assert result.directory.endswith("-42")

        assert notifier.messages[0] == "Starting to download stream.mp4"
        assert notifier.messages[1] == "Stream closed, starting to upload stream.mp4"
        assert notifier.messages[2] == "Successfully completed stream.mp4 (3/3 segments, 9.00 B)"
        assert notifier.messages[3].startswith("Available space: ")

    @pytest.mark.asyncio
    async def test_existing_destination_is_skipped(self, config, notifier, tmp_path):
        storage = tmp_path / "storage"
        storage.mkdir()
        (storage / "stream.mp4").write_bytes(b"old")
        client = FakeHttpClient({PLAYLIST_URL: media_playlist(0, ["a.ts"], closed=True)})

        result = await orchestrator(config, notifier, client).record(
            RecordingRequest(url=PLAYLIST_URL, file_name="stream.mp4")
        )

        assert result.status == RecordingStatus.SKIPPED
        assert notifier.messages == ["File stream.mp4 already exists!"]
        assert not (tmp_path / "sessions").exists()
        assert (storage / "stream.mp4").read_bytes() == b"old"

    @pytest.mark.asyncio
    async def test_unreachable_playlist_fails(self, config, notifier):
        client = FakeHttpClient()

        result = await orchestrator(config, notifier, client).record(
            RecordingRequest(url=PLAYLIST_URL, file_name="stream.ts")
        )

        assert result.status == RecordingStatus.FAILED
        assert result.directory is None
        assert notifier.messages[0].startswith("Failed to complete stream.ts, error: ")

    @pytest.mark.asyncio
    async def test_key_failure_fails_session(self, config, notifier, tmp_path):
        key = '#EXT-X-KEY:METHOD=AES-128,URI="https://keys.example.com/k"'
        client = FakeHttpClient({PLAYLIST_URL: media_playlist(0, ["a.ts"], key=key)})

        result = await orchestrator(config, notifier, client).record(
            RecordingRequest(url=PLAYLIST_URL, file_name="stream.ts")
        )

        assert result.status == RecordingStatus.FAILED
        assert len(notifier.messages) == 1
        assert notifier.messages[0].startswith("Failed to complete stream.ts, error: ")
        assert BASE + "a.ts" not in client.calls
        assert not (tmp_path / "sessions").exists()

    @pytest.mark.asyncio
    async def test_restart_uploads_numbered_runs(self, config, notifier, tmp_path):
        first = media_playlist(10, ["a.ts", "b.ts"])
        client = FakeHttpClient({
            PLAYLIST_URL: [first, first, media_playlist(10, ["x.ts", "y.ts"], closed=True)],
            BASE + "a.ts": b"a",
            BASE + "b.ts": b"b",
            BASE + "x.ts": b"x",
            BASE + "y.ts": b"y",
        })

        result = await orchestrator(config, notifier, client).record(
            RecordingRequest(url=PLAYLIST_URL, file_name="stream.mp4")
        )

        storage = tmp_path / "storage"
        assert result.status == RecordingStatus.COMPLETED
        assert result.uploaded == ["stream_1.mp4", "stream_2.mp4"]
        assert (storage / "stream_1.mp4").read_bytes() == b"ab"
        assert (storage / "stream_2.mp4").read_bytes() == b"xy"

    @pytest.mark.asyncio
    async def test_cancel_skips_upload(self, config, notifier, tmp_path):
        cancel_event = asyncio.Event()

        def playlist(call):
            if call >= 3:
                cancel_event.set()
            return media_playlist(0, ["a.ts"])

        client = FakeHttpClient({PLAYLIST_URL: playlist, BASE + "a.ts": b"a"})

        result = await orchestrator(config, notifier, client).record(
            RecordingRequest(url=PLAYLIST_URL, file_name="stream.mp4"),
            cancel_event
        )

        assert result.status == RecordingStatus.CANCELLED
        assert len(result.runs) == 1
        assert "Download of stream.mp4 aborted" in notifier.messages
        assert not any(m.startswith("Stream closed") for m in notifier.messages)
        assert not (tmp_path / "storage").exists()

    @pytest.mark.asyncio
    async def test_delete_after_upload(self, config, notifier):
        client = FakeHttpClient({
            PLAYLIST_URL: media_playlist(0, ["a.ts"], closed=True),
            BASE + "a.ts": b"a",
        })

        result = await orchestrator(config, notifier, client).record(
            RecordingRequest(url=PLAYLIST_URL, file_name="stream.ts", delete_after_upload=True)
        )

        assert result.status == RecordingStatus.COMPLETED
        assert "Clearing disk space..." in notifier.messages
        assert not os.path.exists(result.directory)

    @pytest.mark.asyncio
    async def test_cancel_while_fetching_start_playlist(self, config, notifier, tmp_path):
        cancel_event = asyncio.Event()

        async def slow_playlist():
            await asyncio.sleep(3)
            return media_playlist(0, ["a.ts"])

        client = FakeHttpClient({PLAYLIST_URL: lambda call: slow_playlist()})
        loop = asyncio.get_running_loop()
        loop.call_later(0.1, cancel_event.set)

        started = loop.time()
        result = await orchestrator(config, notifier, client).record(
            RecordingRequest(url=PLAYLIST_URL, file_name="s.ts"),
            cancel_event
        )

        assert loop.time() - started < 2
        assert result.status == RecordingStatus.CANCELLED
        assert result.directory is None
        assert notifier.messages == ["Download of s.ts aborted"]
        assert not (tmp_path / "sessions").exists()

    @pytest.mark.asyncio
    async def test_cancel_while_fetching_key(self, config, notifier, tmp_path):
        cancel_event = asyncio.Event()
        key = '#EXT-X-KEY:METHOD=AES-128,URI="https://keys.example.com/k"'

        async def slow_key():
            await asyncio.sleep(3)
            return b"0123456789abcdef"

        client = FakeHttpClient({
            PLAYLIST_URL: media_playlist(0, ["a.ts"], key=key),
            "https://keys.example.com/k": lambda call: slow_key(),
        })
        asyncio.get_running_loop().call_later(0.1, cancel_event.set)

        result = await asyncio.wait_for(
            orchestrator(config, notifier, client).record(
                RecordingRequest(url=PLAYLIST_URL, file_name="s.ts"),
                cancel_event
            ),
            timeout=2
        )

        assert result.status == RecordingStatus.CANCELLED
        assert notifier.messages == ["Download of s.ts aborted"]
        assert not (tmp_path / "sessions").exists()

    @pytest.mark.asyncio
    async def test_progress_messages(self, config, notifier):
        client = FakeHttpClient({
            PLAYLIST_URL: media_playlist(0, ["a.ts", "b.ts"], closed=True),
            BASE + "a.ts": b"aaaa",
            BASE + "b.ts": b"bbbbbb",
        })

        result = await orchestrator(config, notifier, client).record(
            RecordingRequest(url=PLAYLIST_URL, file_name="stream.ts")
        )

        assert result.status == RecordingStatus.COMPLETED
        download, upload = notifier.statuses
        assert download[0] == "Downloading: 0/0 segments, 0.00 B"
        assert download[-1] == "Downloading: 2/2 segments, 10.00 B"
        assert upload[0] == "Uploading stream.ts: 0.00 B / 10.00 B"
        assert upload[-1] == "Uploading stream.ts: 10.00 B / 10.00 B"
