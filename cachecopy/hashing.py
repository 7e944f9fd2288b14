"""Pure-Python XXH64 hashing used to fingerprint file contents."""

from __future__ import annotations

import struct
from os import PathLike

_MASK = (1 << 64) - 1

_P1 = 0x9E3779B185EBCA87
_P2 = 0xC2B2AE3D27D4EB4F
_P3 = 0x165667B19E3779F9
_P4 = 0x85EBCA77C2B2AE63
_P5 = 0x27D4EB2F165667C5

_STRIPE = 32
_CHUNK_SIZE = 1 << 20


def _rotl(value: int, bits: int) -> int:
    return ((value << bits) | (value >> (64 - bits))) & _MASK


def _round(acc: int, lane: int) -> int:
    acc = (acc + lane * _P2) & _MASK
    acc = _rotl(acc, 31)
    return (acc * _P1) & _MASK


def _merge(acc: int, value: int) -> int:
    acc ^= _round(0, value)
    return (acc * _P1 + _P4) & _MASK


class XXH64:
    """Streaming 64-bit xxHash."""

    def __init__(self, seed: int = 0) -> None:
        self._seed = seed & _MASK
        self._acc = (
            (self._seed + _P1 + _P2) & _MASK,
            (self._seed + _P2) & _MASK,
            self._seed,
            (self._seed - _P1) & _MASK,
        )
        self._pending = b""
        self._length = 0

    def update(self, data: bytes | bytearray | memoryview) -> None:
        """Feed more bytes into the hash."""
        chunk = bytes(data)
        self._length += len(chunk)
        buf = self._pending + chunk
        whole = len(buf) - len(buf) % _STRIPE
        v1, v2, v3, v4 = self._acc
        for a, b, c, d in struct.iter_unpack("<4Q", memoryview(buf)[:whole]):
            v1 = _round(v1, a)
            v2 = _round(v2, b)
            v3 = _round(v3, c)
            v4 = _round(v4, d)
        self._acc = (v1, v2, v3, v4)
        self._pending = buf[whole:]

    def intdigest(self) -> int:
        """Return the hash of everything fed so far as an unsigned integer."""
        if self._length >= _STRIPE:
            v1, v2, v3, v4 = self._acc
            h = (_rotl(v1, 1) + _rotl(v2, 7) + _rotl(v3, 12) + _rotl(v4, 18)) & _MASK
            for v in self._acc:
                h = _merge(h, v)
        else:
            h = (self._seed + _P5) & _MASK
        h = (h + self._length) & _MASK

        tail = self._pending
        eights = len(tail) - len(tail) % 8
        for (lane,) in struct.iter_unpack("<Q", tail[:eights]):
            h ^= _round(0, lane)
            h = (_rotl(h, 27) * _P1 + _P4) & _MASK
        rest = tail[eights:]
        if len(rest) >= 4:
            (word,) = struct.unpack_from("<I", rest)
            h ^= (word * _P1) & _MASK
            h = (_rotl(h, 23) * _P2 + _P3) & _MASK
            rest = rest[4:]
        for byte in rest:
            h ^= (byte * _P5) & _MASK
            h = (_rotl(h, 11) * _P1) & _MASK

        h ^= h >> 33
        h = (h * _P2) & _MASK
        h ^= h >> 29
        h = (h * _P3) & _MASK
        h ^= h >> 32
        return h

    def hexdigest(self) -> str:
        """Return the hash as 16 lower-case hex digits."""
        return f"{self.intdigest():016x}"


def xxh64(data: bytes | bytearray | memoryview, seed: int = 0) -> int:
    """Hash a byte string in one call."""
    hasher = XXH64(seed)
    hasher.update(data)
    return hasher.intdigest()


def file_hash(path: str | PathLike[str]) -> int:
    """Return the XXH64 hash of a file's contents."""
    hasher = XXH64()
    with open(path, "rb") as handle:
        while chunk := handle.read(_CHUNK_SIZE):
            hasher.update(chunk)
    return hasher.intdigest()