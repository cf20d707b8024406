"""Tests for key resolution and IV derivation."""

import pytest

from conftest import PLAYLIST_URL, FakeHttpClient
from hlsrecorder.errors import CipherInitError, KeyFetchError
from hlsrecorder.http_client import HttpResponse
from hlsrecorder.keys import KeyResolver, build_context, derive_iv
from hlsrecorder.playlist import PlaylistRef


class TestDeriveIV:

    def test_derived_from_sequence_number(self):
        for seq in (0, 1, 255, 256, 4242, 65535):
            iv = derive_iv(seq)
            assert len(iv) == 16
            assert iv[:14] == bytes(14)
            assert iv[14:] == seq.to_bytes(2, "big")

    def test_explicit_hex_iv(self):
        assert derive_iv(9, "0x000102030405060708090A0B0C0D0E0F") == bytes(range(16))

    def test_short_hex_iv_is_left_padded(self):
        assert derive_iv(9, "0x1") == bytes(15) + b"\x01"

    def test_explicit_raw_iv(self):
        assert derive_iv(9, "abcdefghijklmnop") == b"abcdefghijklmnop"


class TestKeyResolver:

    @pytest.mark.asyncio
    async def test_resolves_relative_key(self):
        key_url = "https://cdn.example.com/live/keys/k1"
        client = FakeHttpClient({key_url: b"0123456789abcdef"})

        context = await KeyResolver(client).resolve(PlaylistRef(PLAYLIST_URL), "keys/k1")

        assert context.is_encrypted
        assert client.calls == [key_url]

    @pytest.mark.asyncio
    async def test_http_failure(self):
        key_url = "https://keys.example.com/k1"
        client = FakeHttpClient({key_url: HttpResponse(status=403, body=b"", url=key_url)})

        with pytest.raises(KeyFetchError):
            await KeyResolver(client).resolve(PlaylistRef(PLAYLIST_URL), key_url)

    @pytest.mark.asyncio
    async def test_invalid_key_length(self):
        key_url = "https://keys.example.com/k1"
        client = FakeHttpClient({key_url: b"short"})

        with pytest.raises(CipherInitError):
            await KeyResolver(client).resolve(PlaylistRef(PLAYLIST_URL), key_url)

    def test_build_context_rejects_bad_key(self):
        with pytest.raises(CipherInitError):
            build_context(b"x" * 7)
