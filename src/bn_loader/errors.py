"""Exceptions for bn-loader operations."""


class BnLoaderError(Exception):
    """Base exception for bn-loader."""

    pass


class ConfigError(BnLoaderError):
    """Missing or invalid configuration (unknown profile, unreadable file)."""

    pass


class PatternError(BnLoaderError):
    """An exclusion pattern could not be compiled."""

    pass


class ScanError(BnLoaderError):
    """A path under a data directory could not be read."""

    def __init__(self, path: str, message: str):
        super().__init__(f"{path}: {message}")
        self.path = path
        self.message = message


class BackupError(BnLoaderError):
    """A pre-sync snapshot could not be created or verified."""

    pass


class CopyError(BnLoaderError):
    """A single sync action failed."""

    def __init__(self, path: str, message: str):
        super().__init__(f"{path}: {message}")
        self.path = path
        self.message = message
