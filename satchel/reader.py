from __future__ import annotations

import logging
import tarfile
from datetime import datetime
from typing import BinaryIO, Iterator, List, Optional

from .assets import ArchiveEntryBackupAsset
from .codec import DecompressingReader
from .constants import DEFAULT_CHUNK_SIZE
from .encryption import DecryptingReader, derive_key
from .errors import (
    DisposedError,
    InvalidFormatError,
    InvalidPassphraseError,
    ManifestMismatchError,
    PassphraseRequiredError,
)
from .header import ArchiveHeader, check_magic, read_header
from .manifest import AssetRecord, find_record


log = logging.getLogger(__name__)


def _drain(stream, chunk_size: int) -> int:
    total = 0
    while True:
        buf = stream.read(chunk_size)
        if not buf:
            return total
        total += len(buf)


class _EntryStream:
    """Payload stream of one archive entry. A failed read faults the owning reader
    so that closing it afterwards does not drain the broken layers again."""

    def __init__(self, reader: "BackupReader", stream: BinaryIO):
        self._reader = reader
        self._stream = stream

    @property
    def closed(self) -> bool:
        return self._stream.closed

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return False

    def read(self, size: int = -1) -> bytes:
        try:
            return self._stream.read(size)
        except BaseException:
            self._reader._faulted = True
            raise

    def close(self) -> None:
        self._stream.close()


class BackupReader:
    """Reads a backup archive produced by :class:`~satchel.writer.BackupWriter`.

    Use :meth:`open` to validate the archive and parse its manifest; entries are
    then pulled one at a time with :meth:`get_next_entry` (or by iterating).
    """

    def __init__(
        self,
        channel: BinaryIO,
        header: ArchiveHeader,
        layers: List,
        tar: tarfile.TarFile,
        *,
        keep_open: bool = False,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        self.channel = channel
        self.header = header
        self.keep_open = keep_open
        self.chunk_size = chunk_size
        self._layers = layers
        self._tar: Optional[tarfile.TarFile] = tar
        self._exhausted = False
        self._faulted = False
        self._current: Optional[ArchiveEntryBackupAsset] = None

    @classmethod
    def open(
        cls,
        channel: BinaryIO,
        password: Optional[str] = None,
        *,
        keep_open: bool = False,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> "BackupReader":
        """Validate ``channel`` as a backup archive and return a reader session.

        On failure nothing is returned and ``channel`` is left open, so the
        caller may rewind and retry (for example with a passphrase).

        Raises:
            InvalidFormatError: Not an archive, or the header/manifest is corrupt.
            PassphraseRequiredError: The archive is encrypted and no passphrase was given.
            InvalidPassphraseError: The passphrase does not decrypt the archive.
        """
        decompressor = DecompressingReader(channel, chunk_size)
        layers: List = [decompressor]
        header = read_header(decompressor)
        top = decompressor
        if header.encrypted:
            if password is None:
                raise PassphraseRequiredError("Archive is encrypted; passphrase required")
            top = DecryptingReader(decompressor, derive_key(password), header.iv, chunk_size)
            layers.append(top)
            if not check_magic(top):
                raise InvalidPassphraseError("Invalid passphrase for encrypted archive")
        try:
            tar = tarfile.open(fileobj=top, mode="r|")
        except tarfile.TarError as exc:
            raise InvalidFormatError(f"Corrupt entry stream: {exc}") from exc
        log.debug(
            "backup session opened: %d asset(s), encrypted=%s, created=%s",
            len(header.assets),
            header.encrypted,
            header.created.isoformat(),
        )
        return cls(channel, header, layers, tar, keep_open=keep_open, chunk_size=chunk_size)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is not None:
            self._faulted = True
        self.close()

    def __iter__(self) -> Iterator[ArchiveEntryBackupAsset]:
        while True:
            asset = self.get_next_entry()
            if asset is None:
                return
            yield asset

    @property
    def assets(self) -> List[AssetRecord]:
        return self.header.assets

    @property
    def backup_date(self) -> datetime:
        return self.header.created

    @property
    def encrypted(self) -> bool:
        return self.header.encrypted

    @property
    def closed(self) -> bool:
        return self._tar is None

    def get_next_entry(self) -> Optional[ArchiveEntryBackupAsset]:
        """Advance to the next entry and return it as an asset, or None when exhausted.

        The returned asset streams directly from the archive. It is disposed
        when the reader advances again or closes.
        """
        if self._tar is None:
            raise DisposedError("Backup reader has been closed")
        self._release_current()
        if self._exhausted:
            return None
        try:
            member = self._tar.next()
        except tarfile.TarError as exc:
            self._faulted = True
            raise InvalidFormatError(f"Corrupt entry stream: {exc}") from exc
        except BaseException:
            self._faulted = True
            raise
        if member is None:
            self._exhausted = True
            return None
        if not member.isfile():
            self._faulted = True
            raise InvalidFormatError(f"Unexpected entry type for {member.name!r}")
        rec = find_record(self.header.assets, member.name)
        if rec is None:
            self._faulted = True
            raise ManifestMismatchError(f"Entry {member.name!r} has no matching manifest record")
        stream = _EntryStream(self, self._tar.extractfile(member))
        self._current = ArchiveEntryBackupAsset(rec.class_id, rec.name, stream, size=member.size)
        return self._current

    def _release_current(self) -> None:
        current, self._current = self._current, None
        if current is not None:
            current.dispose()

    def close(self) -> None:
        """Release the session.

        Unread entries and trailing bytes are consumed first so the cipher and
        compression layers verify their end state; corruption there surfaces
        here. Draining is skipped when the session already failed, including
        a failed read of an entry payload.

        The raw channel is drained past the compressed end-of-stream only when
        the session owns it. With ``keep_open`` the channel is left wherever
        the decompressor stopped reading and the caller decides what follows.
        """
        tar = self._tar
        if tar is None:
            return
        self._tar = None
        try:
            self._release_current()
            if not self._faulted:
                skipped = 0
                if not self._exhausted:
                    try:
                        while tar.next() is not None:
                            skipped += 1
                    except tarfile.TarError as exc:
                        raise InvalidFormatError(f"Corrupt entry stream: {exc}") from exc
                    self._exhausted = True
                if skipped:
                    log.debug("skipped %d unread entr%s on close", skipped, "y" if skipped == 1 else "ies")
                _drain(self._layers[-1], self.chunk_size)
                if not self.keep_open:
                    _drain(self.channel, self.chunk_size)
            tar.close()
        finally:
            self._layers = []
            if not self.keep_open:
                self.channel.close()

    dispose = close
