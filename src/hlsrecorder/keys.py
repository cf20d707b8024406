"""
AES-128 key resolution and segment decryption for encrypted playlists.
"""

import asyncio
from dataclasses import dataclass
from typing import Optional

import aiohttp
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .errors import CipherInitError, KeyFetchError, PlaylistParseError
from .http_client import HttpClient
from .logger import get_logger
from .playlist import MediaSnapshot, PlaylistRef


IV_SIZE = 16
SUPPORTED_KEY_METHODS = ('AES-128',)


@dataclass(frozen=True)
class EncryptionContext:
    """Resolved key of one recording session, shared read-only by all workers."""
    algorithm: algorithms.AES
    is_encrypted: bool = True

    def decrypt(self, data: bytes, iv: bytes) -> bytes:
        """
        Decrypt a whole segment payload with AES-CBC.

        Raises:
            ValueError: If the IV or payload length is invalid for CBC.
        """
        decryptor = Cipher(self.algorithm, modes.CBC(iv)).decryptor()
        return decryptor.update(data) + decryptor.finalize()


def build_context(key: bytes) -> EncryptionContext:
    """
    Build the session cipher from raw key bytes.

    Raises:
        CipherInitError: If the key length is invalid for AES.
    """
    try:
        return EncryptionContext(algorithm=algorithms.AES(key))
    except ValueError as e:
        raise CipherInitError(f"Invalid AES key of {len(key)} bytes: {e}") from e


def derive_iv(sequence_number: int, explicit_iv: Optional[str] = None) -> bytes:
    """
    IV for one segment.

    An explicit "0x" hex IV is decoded and left-padded to 16 bytes; any other
    explicit value is used as its raw bytes. Without one, the low 16 bits of
    the sequence number are stored big-endian in the last two bytes.
    """
    if explicit_iv:
        if explicit_iv[:2].lower() == '0x':
            digits = explicit_iv[2:]
            if len(digits) % 2:
                digits = '0' + digits
            try:
                raw = bytes.fromhex(digits.rjust(IV_SIZE * 2, '0'))
            except ValueError as e:
                raise PlaylistParseError(f"Invalid IV {explicit_iv!r}") from e
            return raw[-IV_SIZE:]
        return explicit_iv.encode('utf-8')

    return bytes(IV_SIZE - 2) + (sequence_number & 0xFFFF).to_bytes(2, 'big')


class KeyResolver:
    """Downloads the key referenced by an encrypted playlist."""

    def __init__(self, client: HttpClient):
        self.client = client
        self._logger = get_logger('keys')

    async def resolve(self, playlist: PlaylistRef, key_uri: str) -> EncryptionContext:
        """
        Fetch key bytes and build the decryption context.

        Raises:
            KeyFetchError: If the key cannot be downloaded.
            CipherInitError: If the key is unusable.
        """
        if not key_uri:
            raise KeyFetchError("Encrypted playlist does not reference a key URI")

        key_url = playlist.resolve(key_uri)
        try:
            resp = await self.client.get(key_url)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise KeyFetchError(f"Failed to download key {key_url}: {e}") from e

        if not resp.ok:
            raise KeyFetchError(f"HTTP request to {resp.url} returned status {resp.status}")

        self._logger.info(f"Resolved encryption key from {key_url}")
        return build_context(resp.body)

    async def resolve_snapshot(self, playlist: PlaylistRef, snapshot: MediaSnapshot) -> EncryptionContext:
        """
        Resolve the key announced by an encrypted snapshot.

        Raises:
            CipherInitError: If the encryption method is not supported.
            KeyFetchError: If the key cannot be downloaded.
        """
        method = (snapshot.key_method or '').upper()
        if method not in SUPPORTED_KEY_METHODS:
            raise CipherInitError(f"Unsupported encryption method {snapshot.key_method}")
        return await self.resolve(playlist, snapshot.key_uri)
