"""
Storage uploader for finished recording runs.
Concatenates the ordered segment files of a run into one file on mounted storage.
"""

import os
from abc import ABC, abstractmethod
from typing import Callable, List, Optional

import aiofiles
import aiofiles.os

from .errors import UploadError
from .logger import get_logger


class Uploader(ABC):
    """Delivers recording runs to storage."""

    @abstractmethod
    async def exists(self, destination_dir: str, file_name: str) -> bool:
        """Whether destination_dir/file_name is already taken."""

    @abstractmethod
    async def upload(
        self,
        destination_dir: str,
        file_name: str,
        file_paths: List[str],
        progress: Optional[Callable[[int], None]] = None
    ) -> int:
        """Store the concatenation of file_paths and return the bytes written."""


class StorageUploader(Uploader):
    """
    Writes runs to a directory on network storage (NAS mount or similar).

    The output is written to a ".part" file and renamed once complete, so a
    failed upload never leaves a truncated file under the final name.
    Segments that were never downloaded are skipped.
    """

    def __init__(self, chunk_size: int = 4 * 1024 * 1024):
        self.chunk_size = chunk_size
        self._logger = get_logger('uploader')

    async def exists(self, destination_dir: str, file_name: str) -> bool:
        return await aiofiles.os.path.exists(os.path.join(destination_dir, file_name))

    async def upload(
        self,
        destination_dir: str,
        file_name: str,
        file_paths: List[str],
        progress: Optional[Callable[[int], None]] = None
    ) -> int:
        """
        Concatenate segment files into destination_dir/file_name.

        Args:
            destination_dir: Storage directory, created if missing.
            file_name: Name of the uploaded file.
            file_paths: Segment files in playback order.
            progress: Called with the bytes written so far after every chunk.

        Returns:
            Number of bytes written.

        Raises:
            UploadError: If the destination cannot be written.
        """
        target = os.path.join(destination_dir, file_name)
        part = f"{target}.part"
        written = 0
        skipped = 0

        self._logger.info(f"Uploading {file_name} from {len(file_paths)} segments")

        try:
            await aiofiles.os.makedirs(destination_dir, exist_ok=True)

            async with aiofiles.open(part, 'wb') as out:
                for path in file_paths:
                    if not await aiofiles.os.path.isfile(path):
                        skipped += 1
                        continue

                    async with aiofiles.open(path, 'rb') as segment:
                        while True:
                            chunk = await segment.read(self.chunk_size)
                            if not chunk:
                                break
                            await out.write(chunk)
                            written += len(chunk)
                            if progress:
                                progress(written)

            await aiofiles.os.replace(part, target)

        except OSError as e:
            try:
                await aiofiles.os.remove(part)
            except OSError:
                pass
            raise UploadError(f"Failed to upload {file_name}: {e}") from e

        if skipped:
            self._logger.warning(f"{file_name}: skipped {skipped} segments that were never downloaded")
        self._logger.info(f"Uploaded {file_name} ({written} bytes)")
        return written
