from __future__ import annotations

import io
import os
import tempfile
import unittest
import uuid
from pathlib import Path

from satchel.assets import MemoryBackupAsset
from satchel.descriptor import BackupDescriptor
from satchel.errors import InvalidFormatError, InvalidPassphraseError, PassphraseRequiredError
from satchel.service import BackupService


CONFIG_CLASS = uuid.UUID("b1a7c0de-0000-4000-8000-000000000001")
KEYS_CLASS = uuid.UUID("b1a7c0de-0000-4000-8000-000000000002")


class _Provider:
    def __init__(self, class_id, items):
        self.class_id = class_id
        self.items = items
        self.handed_out = []

    def get_backup_assets(self):
        assets = [MemoryBackupAsset(self.class_id, n, d) for n, d in self.items.items()]
        self.handed_out.extend(assets)
        return assets


class _Sink:
    def __init__(self):
        self.restored = {}

    def __call__(self, asset):
        self.restored[asset.name] = asset.open().read()


def _service(**kwargs):
    config = _Provider(CONFIG_CLASS, {"app.config": b"<config/>", "db.config": b"<db/>"})
    keys = _Provider(KEYS_CLASS, {"signing.key": os.urandom(64)})
    return BackupService([config, keys], **kwargs), config, keys


class BackupServiceTests(unittest.TestCase):
    def test_backup_and_restore_stream(self):
        progress = []
        svc, config, keys = _service(on_progress=lambda f, m: progress.append((f, m)))
        buf = io.BytesIO()
        self.assertEqual(3, svc.backup_to_stream(buf))
        self.assertFalse(buf.closed)
        for asset in config.handed_out + keys.handed_out:
            self.assertTrue(asset.disposed)
        self.assertEqual((0.0, "Creating backup"), progress[0])
        self.assertEqual((1.0, "Backup complete"), progress[-1])
        fractions = [f for f, _ in progress]
        self.assertEqual(sorted(fractions), fractions)

        sink_cfg, sink_keys = _Sink(), _Sink()
        restorer = BackupService(restorers={CONFIG_CLASS: sink_cfg, KEYS_CLASS: sink_keys})
        buf.seek(0)
        self.assertEqual(3, restorer.restore_from_stream(buf))
        self.assertEqual(config.items, sink_cfg.restored)
        self.assertEqual(keys.items, sink_keys.restored)

    def test_restore_skips_classes_without_restorer(self):
        svc, config, _ = _service()
        buf = io.BytesIO()
        svc.backup_to_stream(buf)
        buf.seek(0)
        sink = _Sink()
        with self.assertLogs("satchel.service", level="WARNING") as logs:
            applied = BackupService(restorers={CONFIG_CLASS: sink}).restore_from_stream(buf)
        self.assertEqual(2, applied)
        self.assertEqual(config.items, sink.restored)
        self.assertTrue(any("signing.key" in line for line in logs.output))

    def test_encrypted_file_round_trip(self):
        svc, config, keys = _service()
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "nightly.bin"
            desc = svc.backup_to_file(path, "s3cret")
            self.assertEqual("nightly", desc.label)
            self.assertTrue(desc.encrypted)
            self.assertEqual(path.stat().st_size, desc.size)
            self.assertEqual(
                ["app.config", "db.config", "signing.key"],
                [rec.name for rec in desc.assets],
            )

            sink_cfg, sink_keys = _Sink(), _Sink()
            restorer = BackupService(restorers={CONFIG_CLASS: sink_cfg, KEYS_CLASS: sink_keys})
            with self.assertRaises(PassphraseRequiredError):
                restorer.restore_from_file(path)
            with self.assertRaises(InvalidPassphraseError):
                restorer.restore_from_file(path, "guess")
            self.assertEqual(3, restorer.restore_from_file(path, "s3cret"))
            self.assertEqual(keys.items, sink_keys.restored)

    def test_no_providers(self):
        progress = []
        svc = BackupService(on_progress=lambda f, m: progress.append(f))
        buf = io.BytesIO()
        self.assertEqual(0, svc.backup_to_stream(buf))
        buf.seek(0)
        self.assertEqual(0, svc.restore_from_stream(buf))
        self.assertEqual([0.0, 1.0, 0.0, 1.0], progress)


class DescriptorTests(unittest.TestCase):
    def test_describe_without_passphrase(self):
        svc, _, _ = _service()
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "weekly.bin"
            svc.backup_to_file(path, "pw")
            desc = svc.describe(path)
            self.assertIsInstance(desc, BackupDescriptor)
            self.assertTrue(desc.encrypted)
            self.assertEqual(3, len(desc.assets))
            self.assertEqual({CONFIG_CLASS, KEYS_CLASS}, {rec.class_id for rec in desc.assets})

    def test_from_stream(self):
        svc, _, _ = _service()
        buf = io.BytesIO()
        svc.backup_to_stream(buf)
        buf.seek(0)
        desc = BackupDescriptor.from_stream(buf, label="mem")
        self.assertEqual("mem", desc.label)
        self.assertFalse(desc.encrypted)
        self.assertIsNone(desc.size)
        self.assertEqual(3, len(desc.assets))

    def test_not_a_backup(self):
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "junk.bin"
            path.write_bytes(b"junk" * 100)
            with self.assertRaises(InvalidFormatError):
                BackupDescriptor.from_file(path)


if __name__ == "__main__":
    unittest.main()
