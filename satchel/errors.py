class BackupError(Exception):
    """Base class for satchel-specific errors."""


# Format/consistency
class InvalidFormatError(BackupError):
    pass


class ManifestMismatchError(InvalidFormatError):
    pass


# Passphrase
class PassphraseRequiredError(BackupError):
    pass


class InvalidPassphraseError(BackupError):
    pass


# Resource state
class DisposedError(BackupError):
    pass


class AssetDisposedError(DisposedError):
    pass


class ConfigError(BackupError):
    pass
