from __future__ import annotations

import logging
import uuid
from pathlib import Path
from typing import BinaryIO, Callable, Iterable, List, Mapping, Optional

from .assets import BackupAsset
from .config import SatchelConfig
from .descriptor import BackupDescriptor
from .reader import BackupReader
from .writer import BackupWriter


log = logging.getLogger(__name__)

ProgressCallback = Callable[[float, str], None]
Restorer = Callable[[BackupAsset], None]


class BackupService:
    """Drives a backup or restore over explicitly supplied collaborators.

    Args:
        providers: Objects with a ``get_backup_assets()`` method returning the
            assets they contribute.
        restorers: Mapping of asset class id to a callable that applies a
            restored asset's payload.
        on_progress: Optional ``(fraction, message)`` observer, called after
            each asset is written or restored.
        config: Compression and buffer settings.
    """

    def __init__(
        self,
        providers: Iterable = (),
        restorers: Optional[Mapping[uuid.UUID, Restorer]] = None,
        on_progress: Optional[ProgressCallback] = None,
        config: Optional[SatchelConfig] = None,
    ):
        self.providers = list(providers)
        self.restorers = dict(restorers or {})
        self.on_progress = on_progress
        self.config = config or SatchelConfig()

    def _progress(self, fraction: float, message: str) -> None:
        if self.on_progress is not None:
            self.on_progress(fraction, message)

    def collect_assets(self) -> List[BackupAsset]:
        assets: List[BackupAsset] = []
        for provider in self.providers:
            assets.extend(provider.get_backup_assets())
        return assets

    def backup_to_stream(self, stream: BinaryIO, password: Optional[str] = None, *, keep_open: bool = True) -> int:
        """Write every provider's assets to ``stream``; returns the entry count."""
        assets = self.collect_assets()
        total = len(assets)
        self._progress(0.0, "Creating backup")
        try:
            with BackupWriter.create(
                stream,
                assets,
                password,
                keep_open=keep_open,
                compress_level=self.config.compress_level,
                chunk_size=self.config.chunk_size,
            ) as writer:
                for i, asset in enumerate(assets, 1):
                    log.info("adding %s to backup", asset.key)
                    writer.write_asset_entry(asset)
                    self._progress(i / total, f"Backed up {asset.name}")
        finally:
            for asset in assets:
                asset.dispose()
        self._progress(1.0, "Backup complete")
        return total

    def backup_to_file(self, path, password: Optional[str] = None) -> BackupDescriptor:
        p = Path(path)
        log.info("writing backup to %s", p)
        with open(p, "wb") as fh:
            self.backup_to_stream(fh, password)
        return BackupDescriptor.from_file(p, chunk_size=self.config.chunk_size)

    def restore_from_stream(self, stream: BinaryIO, password: Optional[str] = None, *, keep_open: bool = True) -> int:
        """Apply each archived asset through its class's restorer; returns the number applied."""
        applied = 0
        with BackupReader.open(stream, password, keep_open=keep_open, chunk_size=self.config.chunk_size) as reader:
            total = len(reader.assets)
            self._progress(0.0, "Restoring backup")
            for i, asset in enumerate(reader, 1):
                with asset:
                    restorer = self.restorers.get(asset.class_id)
                    if restorer is None:
                        log.warning("no restorer for asset class %s; skipping %s", asset.class_id, asset.name)
                    else:
                        log.info("restoring %s", asset.key)
                        restorer(asset)
                        applied += 1
                self._progress(i / total if total else 1.0, f"Restored {asset.name}")
        self._progress(1.0, "Restore complete")
        return applied

    def restore_from_file(self, path, password: Optional[str] = None) -> int:
        log.info("restoring backup from %s", path)
        with open(path, "rb") as fh:
            return self.restore_from_stream(fh, password)

    def describe(self, path) -> BackupDescriptor:
        return BackupDescriptor.from_file(path, chunk_size=self.config.chunk_size)
