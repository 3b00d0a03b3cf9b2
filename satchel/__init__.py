"""
Satchel: snapshot and restore application state as one portable backup file.

Archive layout (outermost first):

- bzip2 compression over everything below
- header: signature, creation time (.NET UTC ticks), asset count, fixed
  272-byte manifest records, 16-byte IV slot (all-zero when unencrypted)
- optional AES-256-CBC layer, starting with the signature again as a
  passphrase self-check
- a tar stream with one entry per asset, keyed ``"<class-id>/<name>"``

Programmatic API: satchel.writer.BackupWriter / satchel.reader.BackupReader,
the asset types in satchel.assets, and satchel.service.BackupService.
"""

__version__ = "0.1"

__all__ = [
    "assets",
    "cli",
    "codec",
    "config",
    "constants",
    "descriptor",
    "encryption",
    "errors",
    "header",
    "logger",
    "manifest",
    "reader",
    "service",
    "writer",
]
