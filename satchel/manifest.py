from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Iterable, Optional, Union

from .constants import CLASS_ID_SIZE, NAME_PAD, NAME_SIZE, RECORD_SIZE
from .errors import InvalidFormatError


ClassId = Union[uuid.UUID, str, bytes]


@dataclass(frozen=True)
class AssetRecord:
    """Identity of one asset as stored in the archive manifest."""

    class_id: uuid.UUID
    name: str

    @property
    def key(self) -> str:
        return entry_key(self.class_id, self.name)


def coerce_class_id(value: ClassId) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    if isinstance(value, bytes):
        if len(value) != CLASS_ID_SIZE:
            raise ValueError("class id must be 16 bytes")
        return uuid.UUID(bytes_le=value)
    return uuid.UUID(str(value))


def entry_key(class_id: uuid.UUID, name: str) -> str:
    return f"{class_id}/{name}"


def _truncate_utf8(name: str, limit: int = NAME_SIZE) -> bytes:
    """UTF-8 encode ``name`` and cut it to ``limit`` bytes without splitting a codepoint."""
    raw = name.encode("utf-8")
    if len(raw) <= limit:
        return raw
    cut = limit
    # Back up over continuation bytes (10xxxxxx) to the start of the split codepoint
    while cut > 0 and (raw[cut] & 0xC0) == 0x80:
        cut -= 1
    return raw[:cut]


def normalize_name(name: str) -> str:
    """Return ``name`` exactly as it reads back from a manifest record."""
    return _truncate_utf8(name).decode("utf-8").rstrip(" ")


def encode_record(class_id: ClassId, name: str) -> bytes:
    """Encode an asset identity into a fixed 272-byte manifest slot.

    Layout: class id (16 bytes, .NET GUID byte order) followed by the UTF-8
    name, truncated to 256 bytes at a codepoint boundary and padded with
    ASCII spaces. Names longer than 256 bytes do not survive a round trip.
    """
    cid = coerce_class_id(class_id)
    name_bytes = _truncate_utf8(name)
    rec = cid.bytes_le + name_bytes.ljust(NAME_SIZE, NAME_PAD)
    assert len(rec) == RECORD_SIZE
    return rec


def decode_record(buf: bytes) -> AssetRecord:
    if len(buf) != RECORD_SIZE:
        raise InvalidFormatError(f"Manifest record must be {RECORD_SIZE} bytes, got {len(buf)}")
    cid = uuid.UUID(bytes_le=bytes(buf[:CLASS_ID_SIZE]))
    try:
        name = bytes(buf[CLASS_ID_SIZE:]).decode("utf-8")
    except UnicodeDecodeError as exc:
        raise InvalidFormatError("Manifest record name is not valid UTF-8") from exc
    return AssetRecord(class_id=cid, name=name.rstrip(" "))


def find_record(records: Iterable[AssetRecord], key: str) -> Optional[AssetRecord]:
    # First match wins when the manifest carries duplicate identities
    for rec in records:
        if rec.key == key:
            return rec
    return None
