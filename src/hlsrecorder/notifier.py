"""
Chat notifications for recording progress.
Sends plain text messages to a Telegram chat using Telethon, or to the log.
"""

from abc import ABC, abstractmethod
from itertools import count
from typing import Optional

from telethon import TelegramClient

from .logger import get_logger


class Notifier(ABC):
    """Receives human-readable progress messages of recording sessions."""

    @abstractmethod
    async def send(self, text: str) -> None:
        """Post a one-off message."""

    @abstractmethod
    async def send_status_message(self, text: str) -> Optional[int]:
        """
        Post a message that is edited as the session progresses.

        Returns:
            Message ID, or None if the message could not be posted.
        """

    @abstractmethod
    async def update_status(self, message_id: int, text: str) -> bool:
        """Replace the text of a status message."""


class LogNotifier(Notifier):
    """Writes messages to the application log."""

    def __init__(self):
        self._logger = get_logger('chat')
        self._ids = count(1)

    async def send(self, text: str) -> None:
        self._logger.info(f"[chat] {text}")

    async def send_status_message(self, text: str) -> Optional[int]:
        message_id = next(self._ids)
        self._logger.info(f"[chat #{message_id}] {text}")
        return message_id

    async def update_status(self, message_id: int, text: str) -> bool:
        self._logger.debug(f"[chat #{message_id}] {text}")
        return True


class TelegramNotifier(Notifier):
    """
    Posts messages to a Telegram chat through a Telethon user session.

    Delivery failures are logged and never interrupt a recording.
    """

    def __init__(
        self,
        api_id: int,
        api_hash: str,
        chat_id: int,
        session_name: str = "hls_recorder"
    ):
        """
        Initialize Telegram notifier.

        Args:
            api_id: Telegram API ID.
            api_hash: Telegram API hash.
            chat_id: Chat receiving the messages.
            session_name: Session file name.
        """
        self.api_id = api_id
        self.api_hash = api_hash
        self.chat_id = chat_id
        self.session_name = session_name

        self._client: Optional[TelegramClient] = None
        self._logger = get_logger('chat')

    async def connect(self) -> bool:
        """
        Connect to Telegram.

        Returns:
            True if connected successfully.
        """
        try:
            self._client = TelegramClient(self.session_name, self.api_id, self.api_hash)
            await self._client.start()

            me = await self._client.get_me()
            self._logger.info(f"Connected to Telegram as {me.first_name}")
            return True

        except Exception as e:
            self._logger.error(f"Failed to connect: {e}")
            self._client = None
            return False

    async def disconnect(self) -> None:
        """Disconnect from Telegram."""
        if self._client:
            await self._client.disconnect()
            self._client = None

    async def send(self, text: str) -> None:
        await self.send_status_message(text)

    async def send_status_message(self, text: str) -> Optional[int]:
        if not self._client:
            self._logger.info(f"[chat, not connected] {text}")
            return None

        try:
            message = await self._client.send_message(self.chat_id, text)
            return message.id
        except Exception as e:
            self._logger.error(f"Failed to send message: {e}")
            return None

    async def update_status(self, message_id: int, text: str) -> bool:
        if not self._client:
            return False

        try:
            await self._client.edit_message(self.chat_id, message_id, text)
            return True
        except Exception as e:
            self._logger.warning(f"Failed to update status: {e}")
            return False
