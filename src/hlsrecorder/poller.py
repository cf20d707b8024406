"""
Live playlist poller.

Polls a growing media playlist, queues every new segment for download and
splits the session into runs when the playlist restarts. The poller is the
only writer of the run table and of its poll state.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, List, Optional, TypeVar

from .errors import CipherInitError, KeyFetchError, PlaylistFetchError, PlaylistParseError, SessionCancelled
from .fetcher import Segment
from .http_client import HttpClient
from .keys import EncryptionContext, KeyResolver, derive_iv
from .logger import get_logger
from .playlist import MediaSnapshot, PlaylistRef, fetch_playlist, segment_file_name
from .runs import RecordOutcome, RunTable, assemble_runs
from .workers import SegmentWorkerPool


MIN_POLL_INTERVAL = 1.0

T = TypeVar('T')


async def wait_or_cancel(aw: Awaitable[T], cancel_event: asyncio.Event) -> T:
    """
    Await aw unless cancel_event fires first.

    A result that arrives together with the cancellation is discarded.

    Raises:
        SessionCancelled: If cancel_event is set before or while waiting.
    """
    if cancel_event.is_set():
        if asyncio.iscoroutine(aw):
            aw.close()
        raise SessionCancelled()

    task = asyncio.ensure_future(aw)
    cancelled = asyncio.ensure_future(cancel_event.wait())
    try:
        await asyncio.wait({task, cancelled}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for pending in (task, cancelled):
            if not pending.done():
                pending.cancel()
        await asyncio.gather(task, cancelled, return_exceptions=True)

    if cancel_event.is_set():
        raise SessionCancelled()
    return task.result()


class PollerStatus(Enum):
    """Poller lifecycle."""
    INITIALIZING = "initializing"
    POLLING = "polling"
    DRAINING = "draining"
    DONE = "done"
    CANCELLED = "cancelled"


class StopReason(Enum):
    """Why the poll loop ended."""
    CLOSED = "closed"            # playlist carried EXT-X-ENDLIST
    ERROR_BUDGET = "error_budget"
    CANCELLED = "cancelled"


@dataclass
class PollState:
    """Control-loop state, touched only by the poller task."""
    current_run: int = 0
    sleep_interval: float = 0.0
    error_count: int = 0
    cycles: int = 0


@dataclass
class PollResult:
    """Outcome of one polling session."""
    runs: List[List[str]] = field(default_factory=list)
    reason: StopReason = StopReason.CLOSED

    @property
    def cancelled(self) -> bool:
        return self.reason == StopReason.CANCELLED


class PlaylistPoller:
    """
    Drives one recording session from the first poll to the drained pool.

    Flow:
    - Initializing: resolve the key when the first snapshot is encrypted
    - Polling: fetch, record and queue new segments every target duration
    - Draining: close the worker pool once the playlist closes, the error
      budget runs out or the session is cancelled
    """

    def __init__(
        self,
        playlist: PlaylistRef,
        client: HttpClient,
        pool: SegmentWorkerPool,
        directory: str,
        key_resolver: Optional[KeyResolver] = None,
        cancel_event: Optional[asyncio.Event] = None,
        max_errors: int = 10,
        poll_interval: Optional[float] = None,
        encryption: Optional[EncryptionContext] = None,
        logger=None
    ):
        """
        Initialize playlist poller.

        Args:
            playlist: Media playlist to follow.
            client: HTTP client for playlist requests.
            pool: Worker pool receiving new segments.
            directory: Session directory segment files are written to.
            key_resolver: Resolver used for encrypted playlists.
            cancel_event: Set to stop the session early.
            max_errors: Consecutive failed polls before the stream is considered over.
            poll_interval: Fixed delay between polls instead of the target duration.
            encryption: Key already resolved by the caller.
            logger: Session logger.
        """
        self.playlist = playlist
        self.client = client
        self.pool = pool
        self.directory = directory
        self.key_resolver = key_resolver
        self.cancel_event = cancel_event or asyncio.Event()
        self.max_errors = max_errors
        self.poll_interval = poll_interval

        self.status = PollerStatus.INITIALIZING
        self.state = PollState()
        self.table = RunTable()
        self.encryption: Optional[EncryptionContext] = encryption

        self._logger = logger or get_logger('poller')

    async def run(self, initial: Optional[MediaSnapshot] = None) -> PollResult:
        """
        Record until the stream ends or the session is cancelled.

        Args:
            initial: Snapshot already fetched by the caller, used to set up
                decryption before the first poll.

        Returns:
            PollResult with the file paths of every run in sequence order.

        Raises:
            KeyFetchError: If the key of the initial snapshot cannot be fetched.
            CipherInitError: If that key is unusable.
        """
        self.status = PollerStatus.INITIALIZING
        if initial is not None and initial.is_encrypted:
            try:
                await self._ensure_encryption(initial)
            except SessionCancelled:
                self.status = PollerStatus.CANCELLED
                self._logger.info("Cancelled before recording started")
                return PollResult(reason=StopReason.CANCELLED)

        self.status = PollerStatus.POLLING
        self.pool.start()
        try:
            reason = await self._poll_loop()
        except BaseException:
            await self.pool.abort()
            raise

        self.status = PollerStatus.DRAINING
        await self.pool.close(discard_pending=reason == StopReason.CANCELLED)

        runs = assemble_runs(self.table)
        if reason == StopReason.CANCELLED:
            self.status = PollerStatus.CANCELLED
            self._logger.info("Context cancelled, download aborted")
        else:
            self.status = PollerStatus.DONE
            self._logger.info(f"Stream closed ({reason.value}), {len(runs)} run(s) recorded")

        return PollResult(runs=runs, reason=reason)

    def _next_delay(self) -> float:
        if self.state.cycles == 0:
            return 0.0
        if self.poll_interval is not None:
            return self.poll_interval
        return max(self.state.sleep_interval, MIN_POLL_INTERVAL)

    async def _poll_loop(self) -> StopReason:
        while True:
            if await self._sleep(self._next_delay()):
                return StopReason.CANCELLED
            self.state.cycles += 1

            try:
                snapshot = await wait_or_cancel(self._fetch(), self.cancel_event)
                await self._process(snapshot)
            except SessionCancelled:
                return StopReason.CANCELLED
            except (PlaylistFetchError, PlaylistParseError, KeyFetchError, CipherInitError) as e:
                self.state.error_count += 1
                self._logger.error(f"Playlist poll failed ({self.state.error_count}/{self.max_errors}): {e}")
                if self.state.error_count >= self.max_errors:
                    self._logger.error("Too many errors when getting M3U8, aborting...")
                    return StopReason.ERROR_BUDGET
                continue

            self.state.error_count = 0
            if snapshot.closed:
                return StopReason.CLOSED

    async def _sleep(self, delay: float) -> bool:
        """Wait for the next poll. Returns True if the session was cancelled."""
        if self.cancel_event.is_set():
            return True
        if delay <= 0:
            return False
        try:
            await asyncio.wait_for(self.cancel_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True

    async def _fetch(self) -> MediaSnapshot:
        snapshot = await fetch_playlist(self.client, self.playlist.url)
        if not isinstance(snapshot, MediaSnapshot):
            raise PlaylistParseError("not a media playlist")
        return snapshot

    async def _ensure_encryption(self, snapshot: MediaSnapshot) -> None:
        if self.encryption is not None:
            return

        if self.key_resolver is None:
            raise KeyFetchError("Playlist is encrypted but no key resolver is configured")

        self.encryption = await wait_or_cancel(
            self.key_resolver.resolve_snapshot(self.playlist, snapshot),
            self.cancel_event
        )

    async def _process(self, snapshot: MediaSnapshot) -> None:
        self.state.sleep_interval = snapshot.target_duration

        encryption = None
        if snapshot.is_encrypted:
            await self._ensure_encryption(snapshot)
            encryption = self.encryption

        for i, entry in enumerate(snapshot.segments):
            if entry is None:
                continue

            sequence_number = snapshot.sequence_base + i
            url = self.playlist.resolve(entry.uri)
            path = segment_file_name(self.directory, url)

            if self.table.is_duplicate(sequence_number, path):
                continue

            iv = derive_iv(sequence_number, snapshot.key_iv) if encryption else None

            # Recorded before queueing so a worker never sees an unrecorded segment
            if self.table.record(sequence_number, path) == RecordOutcome.NEW_RUN:
                self.state.current_run = self.table.current_index
                self._logger.warning(
                    f"Playlist restarted at sequence {sequence_number}, "
                    f"starting run {self.state.current_run + 1}"
                )

            await self.pool.put(Segment(
                destination_path=path,
                url=url,
                sequence_number=sequence_number,
                iv=iv,
                encryption=encryption,
            ))
