"""
Live progress messages.
Posts one chat message and keeps editing it while a download or upload runs.
"""

import asyncio
from typing import Callable, Optional

from .logger import get_logger
from .notifier import Notifier


class ProgressMessage:
    """
    A status message refreshed from a render callback.

    Used as an async context manager: entering posts the message and starts
    a ticker that edits it every interval when the rendered text changed,
    leaving stops the ticker and writes the final text.
    """

    def __init__(
        self,
        notifier: Notifier,
        render: Callable[[], str],
        interval: float = 3.0
    ):
        """
        Initialize progress message.

        Args:
            notifier: Chat that receives the message.
            render: Returns the current progress text.
            interval: Minimum seconds between edits.
        """
        self.notifier = notifier
        self.interval = interval
        self._render = render
        self._message_id: Optional[int] = None
        self._last_text: Optional[str] = None
        self._task: Optional[asyncio.Task] = None
        self._logger = get_logger('progress')

    async def __aenter__(self) -> 'ProgressMessage':
        text = self._render()
        self._message_id = await self.notifier.send_status_message(text)
        if self._message_id is not None:
            self._last_text = text
            self._task = asyncio.create_task(self._tick())
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._task:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None
        await self.refresh()

    async def refresh(self) -> None:
        """Edit the message if the rendered text changed."""
        if self._message_id is None:
            return

        text = self._render()
        if text == self._last_text:
            return
        if await self.notifier.update_status(self._message_id, text):
            self._last_text = text

    async def _tick(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.refresh()
            except Exception as e:
                self._logger.warning(f"Failed to refresh progress message: {e}")
