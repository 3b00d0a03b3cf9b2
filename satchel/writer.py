from __future__ import annotations

import io
import logging
import shutil
import tarfile
import tempfile
import time
from datetime import datetime, timezone
from typing import BinaryIO, Iterable, List, Optional, Set, Tuple

from .assets import BackupAsset
from .codec import CompressingWriter
from .constants import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_COMPRESS_LEVEL,
    ENTRY_MODE,
    MAGIC,
    SPOOL_MAX_MEMORY,
    ZERO_IV,
)
from .encryption import EncryptingWriter, derive_key, new_iv
from .errors import BackupError, DisposedError, ManifestMismatchError
from .header import ArchiveHeader, write_header
from .manifest import AssetRecord, normalize_name


log = logging.getLogger(__name__)


def _measure(stream: BinaryIO, chunk_size: int) -> Tuple[BinaryIO, int, bool]:
    """Return (readable stream, remaining payload length, spooled?).

    Seekable streams are measured in place; anything else is copied through a
    spooled temporary file that moves to disk once it grows large.
    """
    seekable = getattr(stream, "seekable", None)
    if seekable is not None and seekable():
        start = stream.tell()
        end = stream.seek(0, io.SEEK_END)
        stream.seek(start)
        return stream, end - start, False
    spool = tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_MEMORY)
    shutil.copyfileobj(stream, spool, chunk_size)
    size = spool.tell()
    spool.seek(0)
    return spool, size, True


class BackupWriter:
    """Streaming writer producing a compressed, optionally encrypted backup archive.

    Layers, outermost first: channel <- bzip2 <- [AES-CBC] <- tar entries.
    Use :meth:`create` to start a session; :meth:`close` finishes it.
    """

    def __init__(
        self,
        channel: BinaryIO,
        layers: List,
        tar: tarfile.TarFile,
        records: List[AssetRecord],
        *,
        encrypted: bool = False,
        keep_open: bool = False,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        self.channel = channel
        self.records = records
        self.encrypted = encrypted
        self.keep_open = keep_open
        self.chunk_size = chunk_size
        self.entries_written = 0
        self._layers = layers
        self._tar: Optional[tarfile.TarFile] = tar
        self._keys: Set[str] = {rec.key for rec in records}
        self._faulted = False

    @classmethod
    def create(
        cls,
        channel: BinaryIO,
        assets: Iterable[BackupAsset],
        password: Optional[str] = None,
        *,
        keep_open: bool = False,
        compress_level: int = DEFAULT_COMPRESS_LEVEL,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        created: Optional[datetime] = None,
    ) -> "BackupWriter":
        """Start a backup session over ``channel``.

        Writes the header and manifest for ``assets`` (in order) and prepares
        the entry stream. Entries are then added with :meth:`write_asset_entry`.

        Args:
            channel: Writable binary stream; owned by the session once returned.
            assets: The complete, known set of assets the archive will hold.
            password: Optional passphrase; when non-empty the entry stream is
                AES-256-CBC encrypted.
            keep_open: Leave ``channel`` open when the session closes.
            compress_level: bzip2 level, 1-9.
            chunk_size: Copy buffer size for non-seekable asset streams.
            created: Override for the archive timestamp (defaults to now, UTC).
        """
        records = [AssetRecord(a.class_id, normalize_name(a.name)) for a in assets]
        compressor = CompressingWriter(channel, compress_level)
        layers: List = [compressor]
        iv = new_iv() if password else ZERO_IV
        header = ArchiveHeader(created=created or datetime.now(timezone.utc), assets=records, iv=iv)
        write_header(compressor, header)
        top = compressor
        if password:
            top = EncryptingWriter(compressor, derive_key(password), iv)
            layers.append(top)
            # passphrase self-check
            top.write(MAGIC)
        tar = tarfile.open(fileobj=top, mode="w|", format=tarfile.PAX_FORMAT)
        log.debug("backup session created: %d asset(s), encrypted=%s", len(records), bool(password))
        return cls(
            channel,
            layers,
            tar,
            records,
            encrypted=bool(password),
            keep_open=keep_open,
            chunk_size=chunk_size,
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is not None:
            self._faulted = True
        self.close()

    @property
    def closed(self) -> bool:
        return self._tar is None

    def write_asset_entry(self, asset: BackupAsset) -> None:
        """Copy ``asset``'s full payload into the archive as one entry.

        The asset is opened but not disposed; its owner remains responsible.
        """
        if self._tar is None:
            raise DisposedError("Backup writer has been closed")
        if self._faulted:
            raise BackupError("Backup writer failed earlier and cannot be reused")
        key = AssetRecord(asset.class_id, normalize_name(asset.name)).key
        if key not in self._keys:
            raise ManifestMismatchError(f"Asset {key} is not part of this archive's manifest")
        try:
            src, size, spooled = _measure(asset.open(), self.chunk_size)
            try:
                info = tarfile.TarInfo(name=key)
                info.size = size
                info.mtime = int(time.time())
                info.mode = ENTRY_MODE
                self._tar.addfile(info, src)
            finally:
                if spooled:
                    src.close()
        except BaseException:
            self._faulted = True
            raise
        self.entries_written += 1
        log.debug("wrote entry %s (%d bytes)", key, size)

    def close(self) -> None:
        """Finish the archive and release every layer, innermost first.

        Safe to call more than once. If the session failed, the archive is
        left unfinished and only the channel is released.
        """
        tar = self._tar
        if tar is None:
            return
        self._tar = None
        try:
            if not self._faulted:
                tar.close()
                for layer in reversed(self._layers):
                    layer.close()
                self.channel.flush()
                log.info("backup archive written: %d/%d entries", self.entries_written, len(self.records))
        finally:
            self._layers = []
            if not self.keep_open:
                self.channel.close()

    dispose = close
