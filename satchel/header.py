from __future__ import annotations

import struct
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import List

from .constants import (
    IV_SIZE,
    MAGIC,
    RECORD_SIZE,
    TICK_EPOCH,
    TICKS_PER_MICROSECOND,
    ZERO_IV,
)
from .errors import InvalidFormatError
from .manifest import AssetRecord, decode_record, encode_record


_INT64 = struct.Struct("<q")


def ticks_from_datetime(dt: datetime) -> int:
    """Convert ``dt`` to .NET UTC ticks. Naive datetimes are taken as UTC."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return ((dt - TICK_EPOCH) // timedelta(microseconds=1)) * TICKS_PER_MICROSECOND


def datetime_from_ticks(ticks: int) -> datetime:
    try:
        return TICK_EPOCH + timedelta(microseconds=ticks // TICKS_PER_MICROSECOND)
    except OverflowError as exc:
        raise InvalidFormatError(f"Creation timestamp out of range: {ticks}") from exc


@dataclass
class ArchiveHeader:
    created: datetime
    assets: List[AssetRecord] = field(default_factory=list)
    iv: bytes = ZERO_IV

    @property
    def encrypted(self) -> bool:
        return self.iv != ZERO_IV


def read_exact(f, size: int) -> bytes:
    """Read exactly ``size`` bytes from ``f``; short reads raise InvalidFormatError."""
    buf = bytearray()
    while len(buf) < size:
        chunk = f.read(size - len(buf))
        if not chunk:
            raise InvalidFormatError(f"Unexpected end of archive (wanted {size} bytes, got {len(buf)})")
        buf += chunk
    return bytes(buf)


def check_magic(f) -> bool:
    return read_exact(f, len(MAGIC)) == MAGIC


def write_header(out, header: ArchiveHeader) -> None:
    if len(header.iv) != IV_SIZE:
        raise ValueError(f"IV must be {IV_SIZE} bytes")
    out.write(MAGIC)
    out.write(_INT64.pack(ticks_from_datetime(header.created)))
    out.write(_INT64.pack(len(header.assets)))
    for rec in header.assets:
        out.write(encode_record(rec.class_id, rec.name))
    out.write(header.iv)


def read_header(f) -> ArchiveHeader:
    """Parse magic, timestamp, manifest and IV slot from the decompressed layer."""
    if not check_magic(f):
        raise InvalidFormatError("Not a backup archive (bad magic)")
    (ticks,) = _INT64.unpack(read_exact(f, _INT64.size))
    (count,) = _INT64.unpack(read_exact(f, _INT64.size))
    if count < 0:
        raise InvalidFormatError(f"Negative asset count: {count}")
    # count is untrusted: never preallocate from it
    assets: List[AssetRecord] = []
    for _ in range(count):
        assets.append(decode_record(read_exact(f, RECORD_SIZE)))
    iv = read_exact(f, IV_SIZE)
    return ArchiveHeader(created=datetime_from_ticks(ticks), assets=assets, iv=iv)
