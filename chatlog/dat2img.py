"""Decoding of obfuscated ``.dat`` image files into plain image bytes.

Older files are XOR-ed with a single byte; v4 files combine an AES-ECB
encrypted head, a plain middle and an XOR-ed tail.
"""

from __future__ import annotations

import os
import stat
from collections.abc import Iterator
from dataclasses import dataclass

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

__all__ = [
    "ImageFormat",
    "DatDecodeError",
    "DatDecoder",
    "calculate_xor_key_v4",
    "decrypt_aes_ecb",
    "dat_to_image",
    "JPG",
    "PNG",
    "GIF",
    "TIFF",
    "BMP",
    "FORMATS",
    "DEFAULT_V4_XOR_KEY",
    "V4_DAT_HEADER",
    "V4_AES_KEY",
    "JPG_TAIL",
]


@dataclass(frozen=True)
class ImageFormat:
    """An image type recognised by its leading magic bytes."""

    header: bytes
    ext: str


JPG = ImageFormat(b"\xff\xd8\xff", "jpg")
PNG = ImageFormat(b"\x89PNG", "png")
GIF = ImageFormat(b"GIF8", "gif")
TIFF = ImageFormat(b"II*\x00", "tiff")
BMP = ImageFormat(b"BM", "bmp")
FORMATS = (JPG, PNG, GIF, TIFF, BMP)

DEFAULT_V4_XOR_KEY = 0x37
V4_DAT_HEADER = b"\x07\x08V1"
V4_AES_KEY = b"cfcd208495d565ef"
JPG_TAIL = b"\xff\xd9"

_AES_BLOCK = 16
_V4_HEADER_SIZE = 15
_U32 = 0xFFFFFFFF


class DatDecodeError(ValueError):
    """Raised when a ``.dat`` file cannot be decoded."""


def _xor(data: bytes, key: int) -> bytes:
    return data.translate(bytes(i ^ key for i in range(256)))


def calculate_xor_key_v4(data: bytes) -> int:
    """Derive the XOR key from a tail that should end with the JPEG end marker."""
    if len(data) < 2:
        raise DatDecodeError("data too short to calculate XOR key")
    first, second = (b ^ t for b, t in zip(data[-2:], JPG_TAIL))
    if first != second:
        raise DatDecodeError(f"inconsistent XOR key: 0x{first:x} vs 0x{second:x}")
    return first


def decrypt_aes_ecb(data: bytes, key: bytes) -> bytes:
    """Decrypt AES-ECB data, removing PKCS#7 padding when it is valid."""
    if not data:
        return b""
    try:
        decryptor = Cipher(algorithms.AES(bytes(key)), modes.ECB()).decryptor()
    except ValueError as exc:
        raise DatDecodeError(str(exc)) from exc
    if len(data) % _AES_BLOCK:
        raise DatDecodeError("data length is not a multiple of block size")
    decrypted = decryptor.update(bytes(data)) + decryptor.finalize()
    pad = decrypted[-1]
    if 0 < pad <= _AES_BLOCK and decrypted[-pad:] == bytes([pad]) * pad:
        return decrypted[:-pad]
    return decrypted


def _match_format(data: bytes) -> ImageFormat | None:
    return next((f for f in FORMATS if data.startswith(f.header)), None)


def _walk_files(path: str) -> Iterator[str]:
    info = os.lstat(path)
    if not stat.S_ISDIR(info.st_mode):
        yield path
        return
    for name in sorted(os.listdir(path)):
        yield from _walk_files(os.path.join(path, name))


class DatDecoder:
    """Decoder holding the XOR key used for the tail of v4 files."""

    def __init__(self, v4_xor_key: int = DEFAULT_V4_XOR_KEY) -> None:
        self.v4_xor_key = v4_xor_key

    def decode(self, data: bytes) -> tuple[bytes, str]:
        """Decode a ``.dat`` file into image bytes and the image extension."""
        data = bytes(data)
        if len(data) < 4:
            raise DatDecodeError(f"data length is too short: {len(data)}")
        if len(data) >= 6 and data.startswith(V4_DAT_HEADER):
            return self.decode_v4(data)

        for fmt in FORMATS:
            key = data[0] ^ fmt.header[0]
            if all(b ^ h == key for b, h in zip(data, fmt.header)):
                return _xor(data, key), fmt.ext
        raise DatDecodeError(f"unknown image type: {data[0]:x} {data[1]:x}")

    def decode_v4(self, data: bytes) -> tuple[bytes, str]:
        """Decode a v4 ``.dat`` file (AES-ECB head, plain middle, XOR tail)."""
        data = bytes(data)
        if len(data) < _V4_HEADER_SIZE:
            raise DatDecodeError(
                f"data length is too short for WeChat v4 format: {len(data)}"
            )
        aes_len = int.from_bytes(data[6:10], "little")
        xor_len = int.from_bytes(data[10:14], "little")
        body = data[_V4_HEADER_SIZE:]
        size = len(body)

        aes_span = min((aes_len // _AES_BLOCK * _AES_BLOCK + _AES_BLOCK) & _U32, size)
        try:
            head = decrypt_aes_ecb(body[:aes_span], V4_AES_KEY)
        except DatDecodeError as exc:
            raise DatDecodeError(f"AES decrypt error: {exc}") from exc
        parts = [head[:aes_len]]

        middle_end = (size - xor_len) & _U32
        if aes_span < middle_end:
            if middle_end > size:
                raise DatDecodeError("XOR length exceeds data length")
            parts.append(body[aes_span:middle_end])
        if xor_len > 0 and middle_end < size:
            parts.append(_xor(body[middle_end:], self.v4_xor_key))

        result = b"".join(parts)
        fmt = _match_format(result)
        if fmt is None:
            raise DatDecodeError("unknown image type after decryption")
        return result, fmt.ext

    def scan_and_set_xor_key(self, dir_path: str) -> int:
        """Find the v4 XOR key from a ``*_t.dat`` thumbnail under ``dir_path``.

        The first usable thumbnail sets the key; the current key is returned.
        """
        try:
            for path in _walk_files(dir_path):
                if not os.path.basename(path).endswith("_t.dat"):
                    continue
                key = self._key_from_file(path)
                if key is not None:
                    self.v4_xor_key = key
                    break
        except OSError as exc:
            raise DatDecodeError(f"error scanning directory: {exc}") from exc
        return self.v4_xor_key

    @staticmethod
    def _key_from_file(path: str) -> int | None:
        try:
            with open(path, "rb") as fh:
                data = fh.read()
        except OSError:
            return None
        if len(data) < _V4_HEADER_SIZE or not data.startswith(V4_DAT_HEADER):
            return None
        xor_len = int.from_bytes(data[10:14], "little")
        body = data[_V4_HEADER_SIZE:]
        if xor_len == 0 or xor_len > len(body):
            return None
        try:
            return calculate_xor_key_v4(body[len(body) - xor_len:])
        except DatDecodeError:
            return None


_default_decoder = DatDecoder()


def dat_to_image(data: bytes) -> tuple[bytes, str]:
    """Decode a ``.dat`` file with the default v4 XOR key."""
    return _default_decoder.decode(data)