"""Binary Ninja profile launcher: profile sync, backups and diffs."""

__version__ = "0.4.0"
