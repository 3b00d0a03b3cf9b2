from __future__ import annotations

import argparse
import shutil
import sys
import time
import uuid
from pathlib import Path
from typing import List, Optional

from satchel.assets import FileBackupAsset
from satchel.config import SatchelConfig
from satchel.descriptor import BackupDescriptor
from satchel.errors import BackupError, PassphraseRequiredError
from satchel.logger import setup_logger
from satchel.manifest import normalize_name
from satchel.reader import BackupReader
from satchel.writer import BackupWriter


# Default asset class for files packed from the command line
FILE_ASSET_CLASS = uuid.UUID("5b2d6d3e-4c0f-4a63-9f6e-2f1d0b5a8c11")


def _safe_destination(outdir: Path, class_id: uuid.UUID, name: str) -> Path:
    """Resolve where an entry lands under ``outdir``; rejects names escaping it."""
    base = (outdir / str(class_id)).resolve()
    dst = (base / name).resolve()
    if dst != base and base not in dst.parents:
        raise BackupError(f"Refusing to write outside {base}: {name!r}")
    return dst


def cmd_pack(
    output: str,
    inputs: List[str],
    *,
    class_id: Optional[str] = None,
    password: Optional[str] = None,
    config: Optional[SatchelConfig] = None,
    quiet: bool = False,
) -> int:
    """Pack files into a new backup archive.

    Args:
        output: Archive path to create.
        inputs: Files to store; each becomes one asset named by its file name.
        class_id: Asset class for every input (default: the generic file class).
        password: Optional passphrase; encrypts the entries when given.

    Returns:
        Number of assets written.
    """
    cfg = config or SatchelConfig()
    cid = uuid.UUID(class_id) if class_id else FILE_ASSET_CLASS
    paths = [Path(p) for p in inputs]
    for p in paths:
        if not p.is_file():
            raise FileNotFoundError(f"Not a file: {p}")
    # entries are keyed by class id and file name, so base names must be unique
    seen = {}
    for p in paths:
        name = normalize_name(p.name)
        if name in seen:
            raise BackupError(f"Duplicate asset name {name!r}: {seen[name]} and {p}")
        seen[name] = p
    assets = [FileBackupAsset(cid, p.name, p) for p in paths]
    total_bytes = sum(p.stat().st_size for p in paths) or 1
    processed = 0
    t0 = time.time()
    try:
        with open(output, "wb") as fh:
            with BackupWriter.create(
                fh,
                assets,
                password,
                keep_open=True,
                compress_level=cfg.compress_level,
                chunk_size=cfg.chunk_size,
            ) as w:
                for asset, p in zip(assets, paths):
                    w.write_asset_entry(asset)
                    processed += p.stat().st_size
                    if not quiet:
                        print(f" {processed * 100.0 / total_bytes:6.2f}% packing: {asset.name}")
    finally:
        for asset in assets:
            asset.dispose()
    dt = max(0.000001, time.time() - t0)
    print(f"Done: {len(assets)} assets; {processed / (1024.0 * 1024.0):.2f} MiB in {dt:.1f}s")
    return len(assets)


def cmd_unpack(
    archive: str,
    *,
    outdir: str = ".",
    password: Optional[str] = None,
    config: Optional[SatchelConfig] = None,
    quiet: bool = False,
) -> int:
    """Extract every asset to ``outdir/<class-id>/<name>``. Returns the asset count."""
    cfg = config or SatchelConfig()
    out = Path(outdir)
    count = 0
    with open(archive, "rb") as fh:
        with BackupReader.open(fh, password, keep_open=True, chunk_size=cfg.chunk_size) as r:
            total = len(r.assets)
            for asset in r:
                with asset:
                    dst = _safe_destination(out, asset.class_id, asset.name)
                    dst.parent.mkdir(parents=True, exist_ok=True)
                    with open(dst, "wb") as wf:
                        shutil.copyfileobj(asset.open(), wf, cfg.chunk_size)
                count += 1
                if not quiet:
                    print(f" unpacking: {count:>4}/{total:<4} {asset.key}")
    print(f"Done: extracted {count} assets to {out}")
    return count


def cmd_info(archive: str) -> BackupDescriptor:
    """Print the archive's header summary."""
    d = BackupDescriptor.from_file(archive)
    print(f"Label:     {d.label}")
    print(f"Created:   {d.timestamp.isoformat()}")
    print(f"Size:      {d.size}")
    print(f"Encrypted: {'yes' if d.encrypted else 'no'}")
    print(f"Assets:    {len(d.assets)}")
    for rec in d.assets:
        print(f"  {rec.class_id}\t{rec.name}")
    return d


def cmd_verify(archive: str, *, password: Optional[str] = None, config: Optional[SatchelConfig] = None) -> bool:
    """Read every entry to the end; any format or passphrase problem raises.

    Prints "OK" with the entry count on success.
    """
    cfg = config or SatchelConfig()
    seen = 0
    with open(archive, "rb") as fh:
        with BackupReader.open(fh, password, keep_open=True, chunk_size=cfg.chunk_size) as r:
            expected = len(r.assets)
            for asset in r:
                with asset:
                    while asset.open().read(cfg.chunk_size):
                        pass
                seen += 1
    ok = seen == expected
    print(f"{'OK' if ok else 'FAIL'}: {seen}/{expected} entries")
    return ok


def main(argv: Optional[List[str]] = None) -> None:
    ap = argparse.ArgumentParser(prog="satchel", description="Backup archive tool")
    sub = ap.add_subparsers(dest="cmd", required=True)

    ap_pack = sub.add_parser("pack", help="Create a backup archive from files")
    ap_pack.add_argument("output", help="Output archive path")
    ap_pack.add_argument("inputs", nargs="+", help="Files to store")
    ap_pack.add_argument("--class-id", help="Asset class id (UUID) for all inputs")
    ap_pack.add_argument("--password", help="Encrypt with this passphrase")
    ap_pack.add_argument("--quiet", help="limit outputs to summaries only", action="store_true")

    ap_unpack = sub.add_parser("unpack", help="Extract assets from a backup archive")
    ap_unpack.add_argument("archive", help="Archive path")
    ap_unpack.add_argument("--outdir", default=".", help="Destination directory")
    ap_unpack.add_argument("--password", help="Archive passphrase")
    ap_unpack.add_argument("--quiet", help="limit outputs to summaries only", action="store_true")

    ap_info = sub.add_parser("info", help="Show archive header and manifest")
    ap_info.add_argument("archive", help="Archive path")

    ap_verify = sub.add_parser("verify", help="Read the whole archive and check its integrity")
    ap_verify.add_argument("archive", help="Archive path")
    ap_verify.add_argument("--password", help="Archive passphrase")

    args = ap.parse_args(argv)
    try:
        cfg = SatchelConfig.from_env()
        setup_logger(cfg.log_level)
        if args.cmd == "pack":
            cmd_pack(args.output, args.inputs, class_id=args.class_id, password=args.password, config=cfg, quiet=args.quiet)
        elif args.cmd == "unpack":
            cmd_unpack(args.archive, outdir=args.outdir, password=args.password, config=cfg, quiet=args.quiet)
        elif args.cmd == "info":
            cmd_info(args.archive)
        elif args.cmd == "verify":
            if not cmd_verify(args.archive, password=args.password, config=cfg):
                sys.exit(1)
    except PassphraseRequiredError:
        print("Error: Archive is encrypted. Provide --password.", file=sys.stderr)
        sys.exit(2)
    except (BackupError, OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
