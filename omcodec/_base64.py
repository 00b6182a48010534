"""Streaming base64 (RFC 4648 standard alphabet) for OMB payloads.

Both directions are iterators over a byte source: nothing is buffered
beyond the current group, so an OMB payload can be written straight into
an XML or JSON sink and decoded straight out of element text.

    >>> b"".join(Base64Encoder(b"foo bar"))
    b'Zm9vIGJhcg=='
    >>> b"".join(Base64Decoder(b"Zm9vIGJhcg=="))
    b'foo bar'
"""

from __future__ import annotations

import itertools
from typing import Iterable, Iterator, List, Optional, Union

from ._errors import (
    ERR_B64_ILLEGAL_CHAR,
    ERR_B64_ILLEGAL_LENGTH,
    ERR_B64_NONSENSICAL_PADDING,
    ERR_TYPE,
    OpenMathError,
)

ALPHABET = b"ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/"
PAD = ord("=")

_INVERSE: List[int] = [-1] * 256
for _i, _c in enumerate(ALPHABET):
    _INVERSE[_c] = _i
del _i, _c

ByteSource = Union[bytes, bytearray, str, Iterable[int], Iterable[bytes]]


def _octets(source: ByteSource) -> Iterator[int]:
    """Flatten a byte source into single octets.

    Accepts bytes-like objects, str (code points must be < 256), and
    iterables of ints or of bytes chunks.
    """
    if isinstance(source, str):
        for ch in source:
            yield ord(ch)
        return
    for item in source:
        if isinstance(item, int):
            if not 0 <= item <= 0xFF:
                raise OpenMathError(ERR_TYPE, "byte value out of range: {}".format(item))
            yield item
        else:
            yield from item


def _known_length(source: ByteSource) -> Optional[int]:
    if isinstance(source, (bytes, bytearray, str)):
        return len(source)
    return None


# ── Encoder ──────────────────────────────────────────────────

class Base64Encoder:
    """Yield 4-byte base64 groups for every 3 input bytes.

    The final group is padded with '='; output length is 4*ceil(n/3).
    """

    __slots__ = ("_octets", "_remaining")

    def __init__(self, source: ByteSource) -> None:
        self._remaining = _known_length(source)
        self._octets = _octets(source)

    def __iter__(self) -> "Base64Encoder":
        return self

    def __next__(self) -> bytes:
        group = list(itertools.islice(self._octets, 3))
        if not group:
            raise StopIteration
        if self._remaining is not None:
            self._remaining -= len(group)
        a = group[0]
        b = group[1] if len(group) > 1 else 0
        c = group[2] if len(group) > 2 else 0
        return bytes((
            ALPHABET[a >> 2],
            ALPHABET[((a << 4) | (b >> 4)) & 0x3F],
            ALPHABET[((b << 2) | (c >> 6)) & 0x3F] if len(group) > 1 else PAD,
            ALPHABET[c & 0x3F] if len(group) > 2 else PAD,
        ))

    def __length_hint__(self) -> int:
        if self._remaining is None:
            return NotImplemented
        return -(-self._remaining // 3)


# ── Decoder ──────────────────────────────────────────────────

class Base64Decoder:
    """Yield decoded chunks of up to 3 bytes for every 4 input characters.

    Errors are raised as OpenMathError with `.position` set to the offset
    of the offending input byte:

        ERR_B64_ILLEGAL_LENGTH       input ended inside a group
        ERR_B64_ILLEGAL_CHAR         byte outside the alphabet
        ERR_B64_NONSENSICAL_PADDING  data after '=' (or '=' too early)
    """

    __slots__ = ("_octets", "_pos", "_padded", "_remaining")

    def __init__(self, source: ByteSource) -> None:
        self._remaining = _known_length(source)
        self._octets = _octets(source)
        self._pos = 0
        self._padded = False

    def __iter__(self) -> "Base64Decoder":
        return self

    def _sextet(self, byte: int, index: int) -> int:
        if byte == PAD:
            # A group carries at least one full byte: '=' only in slots 2-3.
            if index < 2:
                raise OpenMathError(ERR_B64_NONSENSICAL_PADDING,
                                    "padding too early in group", self._pos)
            self._padded = True
            return 0
        if self._padded:
            raise OpenMathError(ERR_B64_NONSENSICAL_PADDING,
                                "base64 data after padding", self._pos)
        value = _INVERSE[byte] if byte < 256 else -1
        if value < 0:
            err = OpenMathError(ERR_B64_ILLEGAL_CHAR,
                                "illegal base64 character {!r}".format(chr(byte)),
                                self._pos)
            err.byte = byte
            raise err
        return value

    def __next__(self) -> bytes:
        try:
            first = next(self._octets)
        except StopIteration:
            raise StopIteration from None
        bits = 0
        real = 0
        byte = first
        for index in range(4):
            if index:
                try:
                    byte = next(self._octets)
                except StopIteration:
                    raise OpenMathError(ERR_B64_ILLEGAL_LENGTH,
                                        "base64 length not divisible by 4",
                                        self._pos) from None
            was_padded = self._padded
            bits = (bits << 6) | self._sextet(byte, index)
            if not self._padded and not was_padded:
                real += 1
            self._pos += 1
        if self._remaining is not None:
            self._remaining -= 4
        # 4 sextets -> 3 bytes; 3 -> 2; 2 -> 1.
        return bits.to_bytes(3, "big")[:real - 1]

    def __length_hint__(self) -> int:
        if self._remaining is None:
            return NotImplemented
        return self._remaining // 4


# ── Convenience ──────────────────────────────────────────────

def b64encode(data: ByteSource) -> str:
    """Encode bytes as a base64 string."""
    return b"".join(Base64Encoder(data)).decode("ascii")


def b64decode(text: ByteSource) -> bytes:
    """Decode a base64 string or bytes.  Raises OpenMathError on bad input."""
    return b"".join(Base64Decoder(text))
