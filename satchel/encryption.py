from __future__ import annotations

import os
from typing import BinaryIO

from Cryptodome.Cipher import AES
from Cryptodome.Util.Padding import pad, unpad

from .constants import BLOCK_SIZE, DEFAULT_CHUNK_SIZE, IV_SIZE, KEY_SIZE, ZERO_IV
from .errors import InvalidFormatError


def derive_key(passphrase: str) -> bytes:
    """Derive the 32-byte AES key from ``passphrase``.

    The passphrase's ASCII bytes (non-ASCII characters become ``?``) are
    truncated or zero-padded to 32 bytes. This is not an iterated KDF and is
    weak against guessing; it is kept because the archive format depends on it.
    Changing it requires a new format signature.
    """
    raw = passphrase.encode("ascii", errors="replace")[:KEY_SIZE]
    return raw.ljust(KEY_SIZE, b"\x00")


def new_iv() -> bytes:
    # An all-zero IV marks an unencrypted archive
    while True:
        iv = os.urandom(IV_SIZE)
        if iv != ZERO_IV:
            return iv


class EncryptingWriter:
    """AES-256-CBC write filter. PKCS7 padding is emitted on ``close()``;
    ``lower`` is not closed."""

    def __init__(self, lower: BinaryIO, key: bytes, iv: bytes):
        self.lower = lower
        self._cipher = AES.new(key, AES.MODE_CBC, iv=iv)
        self._pending = bytearray()
        self.closed = False

    def write(self, data) -> int:
        if self.closed:
            raise ValueError("write to closed encrypting filter")
        self._pending += data
        whole = len(self._pending) - (len(self._pending) % BLOCK_SIZE)
        if whole:
            self.lower.write(self._cipher.encrypt(bytes(self._pending[:whole])))
            del self._pending[:whole]
        return len(data)

    def flush(self) -> None:
        flush = getattr(self.lower, "flush", None)
        if flush is not None:
            flush()

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.lower.write(self._cipher.encrypt(pad(bytes(self._pending), BLOCK_SIZE, style="pkcs7")))
        self._pending.clear()
        self.flush()


class DecryptingReader:
    """AES-256-CBC read filter.

    The last ciphertext block is held back until ``lower`` reports end of
    input, since only that block carries the PKCS7 padding.
    """

    def __init__(self, lower: BinaryIO, key: bytes, iv: bytes, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.lower = lower
        self.chunk_size = chunk_size
        self._cipher = AES.new(key, AES.MODE_CBC, iv=iv)
        self._cipher_pending = bytearray()
        self._plain = bytearray()
        self._done = False

    def _fill(self) -> bool:
        if self._done:
            return False
        raw = self.lower.read(self.chunk_size)
        if raw:
            self._cipher_pending += raw
            # keep at least one full block back until end of input
            usable = len(self._cipher_pending) - BLOCK_SIZE
            usable -= usable % BLOCK_SIZE
            if usable > 0:
                self._plain += self._cipher.decrypt(bytes(self._cipher_pending[:usable]))
                del self._cipher_pending[:usable]
            return True
        self._done = True
        tail = bytes(self._cipher_pending)
        self._cipher_pending.clear()
        if not tail or len(tail) % BLOCK_SIZE:
            raise InvalidFormatError("Encrypted stream length is not a whole number of blocks")
        try:
            self._plain += unpad(self._cipher.decrypt(tail), BLOCK_SIZE, style="pkcs7")
        except ValueError as exc:
            raise InvalidFormatError("Encrypted stream has invalid padding") from exc
        return False

    def read(self, size: int = -1) -> bytes:
        if size is None or size < 0:
            while self._fill():
                pass
        else:
            while len(self._plain) < size and self._fill():
                pass
            if len(self._plain) > size:
                out = bytes(self._plain[:size])
                del self._plain[:size]
                return out
        out = bytes(self._plain)
        self._plain.clear()
        return out

    def drain(self) -> int:
        total = len(self._plain)
        self._plain.clear()
        while self._fill():
            total += len(self._plain)
            self._plain.clear()
        total += len(self._plain)
        self._plain.clear()
        return total
