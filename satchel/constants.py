from datetime import datetime, timezone


# Format signature; written once before the header and repeated under the cipher
MAGIC = b"SB\x00BK"

# Manifest record layout
CLASS_ID_SIZE = 16
NAME_SIZE = 256
RECORD_SIZE = CLASS_ID_SIZE + NAME_SIZE  # 272
NAME_PAD = b" "

# Cipher (AES-256-CBC, PKCS7)
IV_SIZE = 16
KEY_SIZE = 32
BLOCK_SIZE = 16
ZERO_IV = b"\x00" * IV_SIZE

# .NET DateTime ticks: 100ns intervals since 0001-01-01T00:00:00Z
TICK_EPOCH = datetime(1, 1, 1, tzinfo=timezone.utc)
TICKS_PER_MICROSECOND = 10

DEFAULT_COMPRESS_LEVEL = 9
DEFAULT_CHUNK_SIZE = 65536  # 64 KiB
# Non-seekable asset streams spill to disk past this size while being measured
SPOOL_MAX_MEMORY = 8 * 1024 * 1024

ENTRY_MODE = 0o644
