from __future__ import annotations

import contextlib
import io
import os
import tempfile
import unittest
import uuid
from pathlib import Path

from satchel.cli import FILE_ASSET_CLASS, _safe_destination, cmd_info, cmd_pack, cmd_unpack, cmd_verify, main
from satchel.errors import BackupError, PassphraseRequiredError


def _create_sample_files(base: Path):
    (base / "in").mkdir()
    (base / "in" / "a.txt").write_text("hello world\n" * 50, encoding="utf-8")
    (base / "in" / "b.bin").write_bytes(os.urandom(4096))
    (base / "in" / "notes.md").write_text("# Title\nSome content\n", encoding="utf-8")
    return sorted((base / "in").iterdir())


def _quiet(fn, *args, **kwargs):
    out, err = io.StringIO(), io.StringIO()
    with contextlib.redirect_stdout(out), contextlib.redirect_stderr(err):
        result = fn(*args, **kwargs)
    return result, out.getvalue(), err.getvalue()


def _main_exit_code(argv):
    out, err = io.StringIO(), io.StringIO()
    with contextlib.redirect_stdout(out), contextlib.redirect_stderr(err):
        try:
            main(argv)
        except SystemExit as e:
            return e.code, out.getvalue(), err.getvalue()
    return 0, out.getvalue(), err.getvalue()


class CliWorkflowTests(unittest.TestCase):
    def test_pack_info_verify_unpack(self):
        with tempfile.TemporaryDirectory() as td:
            base = Path(td)
            files = _create_sample_files(base)
            archive = base / "files.bin"

            count, out, _ = _quiet(cmd_pack, str(archive), [str(p) for p in files])
            self.assertEqual(3, count)
            self.assertIn("Done: 3 assets", out)

            desc, out, _ = _quiet(cmd_info, str(archive))
            self.assertFalse(desc.encrypted)
            self.assertEqual([p.name for p in files], [rec.name for rec in desc.assets])
            self.assertIn("Encrypted: no", out)

            ok, out, _ = _quiet(cmd_verify, str(archive))
            self.assertTrue(ok)
            self.assertIn("OK: 3/3 entries", out)

            outdir = base / "out"
            n, _, _ = _quiet(cmd_unpack, str(archive), outdir=str(outdir), quiet=True)
            self.assertEqual(3, n)
            for p in files:
                self.assertEqual(p.read_bytes(), (outdir / str(FILE_ASSET_CLASS) / p.name).read_bytes())

    def test_encrypted_workflow_with_class_id(self):
        cid = uuid.uuid4()
        with tempfile.TemporaryDirectory() as td:
            base = Path(td)
            files = _create_sample_files(base)
            archive = base / "secret.bin"
            _quiet(cmd_pack, str(archive), [str(p) for p in files], class_id=str(cid), password="pw", quiet=True)

            desc, out, _ = _quiet(cmd_info, str(archive))
            self.assertTrue(desc.encrypted)
            self.assertIn("Encrypted: yes", out)
            self.assertEqual({cid}, {rec.class_id for rec in desc.assets})

            with self.assertRaises(PassphraseRequiredError):
                _quiet(cmd_verify, str(archive))
            ok, _, _ = _quiet(cmd_verify, str(archive), password="pw")
            self.assertTrue(ok)

            outdir = base / "out"
            _quiet(cmd_unpack, str(archive), outdir=str(outdir), password="pw")
            self.assertEqual(files[0].read_bytes(), (outdir / str(cid) / files[0].name).read_bytes())

    def test_pack_rejects_missing_input(self):
        with tempfile.TemporaryDirectory() as td:
            with self.assertRaises(FileNotFoundError):
                cmd_pack(str(Path(td) / "x.bin"), [str(Path(td) / "missing.txt")])

    def test_pack_rejects_duplicate_base_names(self):
        with tempfile.TemporaryDirectory() as td:
            base = Path(td)
            (base / "a").mkdir()
            (base / "b").mkdir()
            (base / "a" / "x").write_bytes(b"first")
            (base / "b" / "x").write_bytes(b"second")
            archive = base / "dup.bin"
            with self.assertRaises(BackupError):
                cmd_pack(str(archive), [str(base / "a" / "x"), str(base / "b" / "x")], quiet=True)
            self.assertFalse(archive.exists())

            code, _, err = _main_exit_code(["pack", str(archive), str(base / "a" / "x"), str(base / "b" / "x")])
            self.assertEqual(2, code)
            self.assertIn("Duplicate asset name", err)

    def test_safe_destination(self):
        with tempfile.TemporaryDirectory() as td:
            out = Path(td)
            dst = _safe_destination(out, FILE_ASSET_CLASS, "ok.txt")
            self.assertEqual((out / str(FILE_ASSET_CLASS) / "ok.txt").resolve(), dst)
            with self.assertRaises(BackupError):
                _safe_destination(out, FILE_ASSET_CLASS, "../../escape.txt")


class CliMainTests(unittest.TestCase):
    def test_main_exit_codes(self):
        with tempfile.TemporaryDirectory() as td:
            base = Path(td)
            files = _create_sample_files(base)
            archive = base / "main.bin"

            code, _, _ = _main_exit_code(["pack", str(archive), *map(str, files), "--password", "pw", "--quiet"])
            self.assertEqual(0, code)

            code, _, err = _main_exit_code(["verify", str(archive)])
            self.assertEqual(2, code)
            self.assertIn("Provide --password", err)

            code, _, err = _main_exit_code(["unpack", str(archive), "--outdir", str(base / "o"), "--password", "nope"])
            self.assertEqual(2, code)
            self.assertIn("Error:", err)

            code, out, _ = _main_exit_code(["verify", str(archive), "--password", "pw"])
            self.assertEqual(0, code)
            self.assertIn("OK: 3/3", out)

            code, out, _ = _main_exit_code(["info", str(archive)])
            self.assertEqual(0, code)
            self.assertIn("Assets:    3", out)

    def test_main_reports_bad_archive(self):
        with tempfile.TemporaryDirectory() as td:
            junk = Path(td) / "junk.bin"
            junk.write_bytes(b"not an archive")
            code, _, err = _main_exit_code(["info", str(junk)])
            self.assertEqual(2, code)
            self.assertIn("Error:", err)

            code, _, _ = _main_exit_code(["info", str(Path(td) / "absent.bin")])
            self.assertEqual(2, code)


if __name__ == "__main__":
    unittest.main()
