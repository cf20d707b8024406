"""
Recording orchestrator for HLS Recorder.
Runs one recording session: resolve the playlist, record it, upload the runs and report to chat.
"""

import asyncio
import os
import shutil
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from .config import Config
from .errors import DestinationExistsError, PlaylistParseError, RecorderError, SessionCancelled
from .fetcher import DownloadStats, SegmentFetcher, format_size
from .http_client import HttpClient
from .keys import KeyResolver
from .logger import get_session_logger
from .notifier import Notifier
from .playlist import MediaSnapshot, PlaylistRef, fetch_playlist
from .poller import PlaylistPoller, wait_or_cancel
from .progress import ProgressMessage
from .runs import run_file_names
from .uploader import Uploader
from .workers import SegmentWorkerPool


SESSION_TIME_FORMAT = '%y%m%d%H%M%S'
MAX_MASTER_DEPTH = 3


class RecordingStatus(Enum):
    """Recording status enumeration."""
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    SKIPPED = "skipped"      # destination already exists


@dataclass
class RecordingRequest:
    """A request to record one live playlist."""
    url: str
    file_name: str
    session_id: str = "cli"
    headers: Dict[str, str] = field(default_factory=dict)
    delete_after_upload: Optional[bool] = None


@dataclass
class RecordingResult:
    """Result of a recording session."""
    file_name: str
    status: RecordingStatus
    started_at: datetime
    ended_at: datetime
    directory: Optional[str] = None
    runs: List[List[str]] = field(default_factory=list)
    uploaded: List[str] = field(default_factory=list)
    bytes_uploaded: int = 0
    error: Optional[str] = None

    @property
    def duration_seconds(self) -> float:
        return (self.ended_at - self.started_at).total_seconds()

    @property
    def duration_formatted(self) -> str:
        """Get human-readable duration."""
        hours = int(self.duration_seconds // 3600)
        minutes = int((self.duration_seconds % 3600) // 60)
        seconds = int(self.duration_seconds % 60)
        return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


class RecordingOrchestrator:
    """
    Wires the poller, workers, key resolver and uploader for one session.

    Only start failures (unreachable or malformed start playlist, broken key,
    session directory errors) and upload failures end a session with an
    error; problems while recording are absorbed by the poller and workers.
    """

    def __init__(
        self,
        config: Config,
        notifier: Notifier,
        uploader: Optional[Uploader] = None,
        client_factory: Optional[Callable[[Dict[str, str]], HttpClient]] = None
    ):
        """
        Initialize orchestrator.

        Args:
            config: Application configuration.
            notifier: Chat that receives progress messages.
            uploader: Storage uploader, used when upload is enabled.
            client_factory: Builds the HTTP client of a session from its headers.
        """
        self.config = config
        self.notifier = notifier
        self.uploader = uploader
        self._client_factory = client_factory or self._default_client

    def _default_client(self, headers: Dict[str, str]) -> HttpClient:
        return HttpClient(
            headers=headers,
            timeout=self.config.recorder.http_timeout,
            retries=self.config.recorder.http_retries
        )

    @property
    def upload_enabled(self) -> bool:
        return self.config.upload.enabled and self.uploader is not None

    async def record(
        self,
        request: RecordingRequest,
        cancel_event: Optional[asyncio.Event] = None
    ) -> RecordingResult:
        """
        Record a live playlist.

        Args:
            request: What to record and how to name it.
            cancel_event: Set to abort the session.

        Returns:
            RecordingResult with recording details.
        """
        logger = get_session_logger(request.file_name, 'recorder')
        result = RecordingResult(
            file_name=request.file_name,
            status=RecordingStatus.FAILED,
            started_at=datetime.now(),
            ended_at=datetime.now()
        )

        cancel_event = cancel_event or asyncio.Event()
        headers = dict(request.headers)
        if self.config.recorder.user_agent and 'User-Agent' not in headers:
            headers['User-Agent'] = self.config.recorder.user_agent

        try:
            async with self._client_factory(headers) as client:
                await self._record(request, client, cancel_event, result, logger)
        except SessionCancelled:
            logger.info("Cancelled before recording started")
            result.status = RecordingStatus.CANCELLED
            await self.notifier.send(f"Download of {request.file_name} aborted")
        except DestinationExistsError as e:
            result.status = RecordingStatus.SKIPPED
            result.error = str(e)
            await self.notifier.send(str(e))
        except (RecorderError, OSError) as e:
            logger.error(f"Recording failed: {e}")
            result.status = RecordingStatus.FAILED
            result.error = str(e)
            await self.notifier.send(f"Failed to complete {request.file_name}, error: {e}")

        result.ended_at = datetime.now()
        if result.directory is not None:
            await self._report_disk_space(logger)
        return result

    async def _record(
        self,
        request: RecordingRequest,
        client: HttpClient,
        cancel_event: asyncio.Event,
        result: RecordingResult,
        logger
    ) -> None:
        playlist, snapshot = await self._resolve_media_playlist(client, request.url, cancel_event, logger)

        upload_names = run_file_names(request.file_name, 1)
        if self.upload_enabled:
            exists = await wait_or_cancel(
                self.uploader.exists(self.config.upload.destination_dir, upload_names[0]),
                cancel_event
            )
            if exists:
                raise DestinationExistsError(upload_names[0])

        key_resolver = KeyResolver(client)
        encryption = None
        if snapshot.is_encrypted:
            encryption = await wait_or_cancel(key_resolver.resolve_snapshot(playlist, snapshot), cancel_event)

        if cancel_event.is_set():
            raise SessionCancelled()

        directory = self._create_session_dir(request.session_id)
        result.directory = str(directory)
        logger.info(f"Recording {playlist.url} into {directory}")
        await self.notifier.send(f"Starting to download {request.file_name}")

        stats = DownloadStats()
        fetcher = SegmentFetcher(
            client,
            retries=self.config.recorder.segment_retries,
            stats=stats,
            logger=logger
        )
        pool = SegmentWorkerPool(
            fetcher,
            workers=self.config.recorder.workers,
            queue_size=self.config.recorder.queue_size
        )
        poller = PlaylistPoller(
            playlist,
            client,
            pool,
            str(directory),
            key_resolver=key_resolver,
            cancel_event=cancel_event,
            max_errors=self.config.recorder.max_playlist_errors,
            poll_interval=self.config.recorder.poll_interval,
            encryption=encryption,
            logger=logger
        )

        def render() -> str:
            return f"Downloading: {stats.summary()}"

        async with ProgressMessage(self.notifier, render, self.config.recorder.progress_interval):
            poll_result = await poller.run(initial=snapshot)
        result.runs = poll_result.runs

        if poll_result.cancelled:
            result.status = RecordingStatus.CANCELLED
            await self.notifier.send(f"Download of {request.file_name} aborted")
            return

        runs = [run for run in poll_result.runs if run]
        if not runs:
            raise RecorderError("No segments were found in the playlist")

        if self.upload_enabled:
            await self._upload_runs(request, runs, result, logger)

        result.status = RecordingStatus.COMPLETED
        await self.notifier.send(f"Successfully completed {request.file_name} ({stats.summary()})")

    async def _resolve_media_playlist(
        self,
        client: HttpClient,
        url: str,
        cancel_event: asyncio.Event,
        logger
    ) -> Tuple[PlaylistRef, MediaSnapshot]:
        """Follow master playlists to their highest bandwidth variant."""
        for _ in range(MAX_MASTER_DEPTH + 1):
            playlist = PlaylistRef(url)
            snapshot = await wait_or_cancel(fetch_playlist(client, url), cancel_event)
            if isinstance(snapshot, MediaSnapshot):
                return playlist, snapshot

            variant = snapshot.best_variant()
            url = playlist.resolve(variant.uri)
            logger.info(f"Master playlist, using variant of {variant.bandwidth} bps: {url}")

        raise PlaylistParseError(f"Too many nested master playlists from {url}")

    def _create_session_dir(self, session_id: str) -> Path:
        name = f"{datetime.now().strftime(SESSION_TIME_FORMAT)}-{session_id}"
        directory = Path(self.config.recorder.output_dir) / name
        directory.mkdir(parents=True)
        return directory

    async def _upload_runs(
        self,
        request: RecordingRequest,
        runs: List[List[str]],
        result: RecordingResult,
        logger
    ) -> None:
        await self.notifier.send(f"Stream closed, starting to upload {request.file_name}")

        destination = self.config.upload.destination_dir
        for name, paths in zip(run_file_names(request.file_name, len(runs)), runs):
            result.bytes_uploaded += await self._upload_run(destination, name, paths)
            result.uploaded.append(name)

        logger.info(f"Uploaded {len(result.uploaded)} file(s), {format_size(result.bytes_uploaded)}")

        delete = request.delete_after_upload
        if delete is None:
            delete = self.config.upload.delete_after_upload
        if delete and result.directory:
            await self.notifier.send("Clearing disk space...")
            shutil.rmtree(result.directory)

    async def _upload_run(self, destination: str, name: str, paths: List[str]) -> int:
        total = sum(os.path.getsize(path) for path in paths if os.path.isfile(path))
        written = 0

        def on_progress(size: int) -> None:
            nonlocal written
            written = size

        def render() -> str:
            return f"Uploading {name}: {format_size(written)} / {format_size(total)}"

        async with ProgressMessage(self.notifier, render, self.config.recorder.progress_interval):
            return await self.uploader.upload(destination, name, paths, progress=on_progress)

    async def _report_disk_space(self, logger) -> None:
        try:
            usage = shutil.disk_usage(self.config.recorder.output_dir)
        except OSError as e:
            logger.warning(f"Failed to read disk usage: {e}")
            return
        await self.notifier.send(f"Available space: {format_size(usage.free)}")
