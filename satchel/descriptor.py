from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import BinaryIO, List, Optional

from .codec import DecompressingReader
from .constants import DEFAULT_CHUNK_SIZE
from .header import read_header
from .manifest import AssetRecord


@dataclass
class BackupDescriptor:
    """Metadata of a backup archive, read from its header alone.

    No passphrase is needed: the header and manifest sit in front of the
    cipher layer.
    """

    label: str
    timestamp: datetime
    encrypted: bool
    size: Optional[int] = None
    assets: List[AssetRecord] = field(default_factory=list)

    @classmethod
    def from_stream(
        cls,
        stream: BinaryIO,
        label: str = "",
        size: Optional[int] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> "BackupDescriptor":
        header = read_header(DecompressingReader(stream, chunk_size))
        return cls(
            label=label,
            timestamp=header.created,
            encrypted=header.encrypted,
            size=size,
            assets=header.assets,
        )

    @classmethod
    def from_file(cls, path, chunk_size: int = DEFAULT_CHUNK_SIZE) -> "BackupDescriptor":
        p = Path(path)
        with open(p, "rb") as fh:
            return cls.from_stream(fh, label=p.stem, size=os.fstat(fh.fileno()).st_size, chunk_size=chunk_size)
