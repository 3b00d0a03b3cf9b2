from __future__ import annotations

import io
import os
from typing import BinaryIO, Callable, Optional

from .errors import AssetDisposedError
from .manifest import ClassId, coerce_class_id, entry_key


class BackupAsset:
    """A named, classified unit of data that can be written to or read from a backup.

    The first ``open()`` fixes the stream handle; later calls return the same
    handle so the backing source cannot change underneath a writer. The asset
    owns that handle and releases it on ``dispose()``.
    """

    def __init__(self, class_id: ClassId, name: str):
        self.class_id = coerce_class_id(class_id)
        self.name = name
        self._stream: Optional[BinaryIO] = None
        self._disposed = False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.dispose()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.key!r})"

    @property
    def key(self) -> str:
        return entry_key(self.class_id, self.name)

    @property
    def disposed(self) -> bool:
        return self._disposed

    def open(self) -> BinaryIO:
        if self._disposed:
            raise AssetDisposedError(f"Asset {self.key} has been disposed")
        if self._stream is None:
            self._stream = self._open_stream()
        return self._stream

    def _open_stream(self) -> BinaryIO:
        raise NotImplementedError

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        if self._stream is not None:
            try:
                self._stream.close()
            finally:
                self._stream = None

    close = dispose


class StreamBackupAsset(BackupAsset):
    """Asset whose stream comes from a deferred factory, invoked at most once."""

    def __init__(self, class_id: ClassId, name: str, factory: Callable[[], BinaryIO]):
        super().__init__(class_id, name)
        self._factory = factory

    def _open_stream(self) -> BinaryIO:
        stream = self._factory()
        if stream is None:
            raise ValueError(f"Stream factory for {self.key} returned None")
        return stream


class MemoryBackupAsset(StreamBackupAsset):
    def __init__(self, class_id: ClassId, name: str, data: bytes):
        self.data = bytes(data)
        super().__init__(class_id, name, lambda: io.BytesIO(self.data))


class FileBackupAsset(StreamBackupAsset):
    def __init__(self, class_id: ClassId, name: str, path):
        self.path = os.fspath(path)
        super().__init__(class_id, name, lambda: open(self.path, "rb"))


class ArchiveEntryBackupAsset(BackupAsset):
    """Read-side asset over a live entry of an open backup reader.

    The entry stream is only valid until the reader advances. Disposing the
    asset releases the entry stream, never the archive.
    """

    def __init__(self, class_id: ClassId, name: str, entry_stream: BinaryIO, size: Optional[int] = None):
        super().__init__(class_id, name)
        self._stream = entry_stream
        self.size = size

    def read(self) -> bytes:
        """Return the remaining entry payload."""
        return self.open().read()
