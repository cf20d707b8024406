"""
Exceptions raised by HLS Recorder.
"""


class RecorderError(Exception):
    """Base class for recorder errors."""


class PlaylistFetchError(RecorderError):
    """The playlist could not be downloaded."""


class PlaylistParseError(RecorderError):
    """The playlist body is malformed or of an unexpected type."""


class KeyFetchError(RecorderError):
    """The AES key referenced by a playlist could not be downloaded."""


class CipherInitError(RecorderError):
    """The downloaded key cannot be used to build a cipher."""


class SegmentFetchError(RecorderError):
    """One download attempt of a media segment failed."""


class UploadError(RecorderError):
    """A recording run could not be written to storage."""


class DestinationExistsError(UploadError):
    """The destination file already exists in storage."""

    def __init__(self, file_name: str):
        super().__init__(f"File {file_name} already exists!")
        self.file_name = file_name


class SessionCancelled(Exception):
    """The cancellation event fired while a session step was waiting."""
