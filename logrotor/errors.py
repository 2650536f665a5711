"""Error taxonomy for rotation, reopening, and retention scanning."""


class RotationError(Exception):
    """Base class for every error raised by logrotor."""


class ConfigError(RotationError):
    """Config file missing, unreadable, or failing schema validation."""


class OpenError(RotationError):
    """The live file could not be created or opened for append."""

    def __init__(self, path: str, cause: OSError):
        super().__init__(f"Failed to open {path} for log: {cause}")
        self.path = path
        self.cause = cause


class CloseError(RotationError):
    """Closing the live stream failed; the rotate was aborted before renaming."""

    def __init__(self, path: str, cause: OSError):
        super().__init__(f"Failed to close {path} before rotating: {cause}")
        self.path = path
        self.cause = cause


class RenameError(RotationError):
    """Renaming the live file aside failed; the file is left in place."""

    def __init__(self, path: str, rotated_path: str, cause: OSError):
        super().__init__(f"Failed to rename {path} to {rotated_path}: {cause}")
        self.path = path
        self.rotated_path = rotated_path
        self.cause = cause


class ReopenAfterRotateError(RotationError):
    """The file was rotated but the new live file could not be opened.

    Data written so far is safe under ``rotated_path``; new writes are
    dropped until a later rotate succeeds.
    """

    def __init__(self, path: str, rotated_path: str | None, cause: OSError):
        super().__init__(
            f"Rotated {path} to {rotated_path} but failed to reopen it: {cause}"
        )
        self.path = path
        self.rotated_path = rotated_path
        self.cause = cause


class CompressionError(RotationError):
    """Gzip-compressing one rotated file failed."""

    def __init__(self, path: str, cause: Exception):
        super().__init__(f"Failed to compress {path}: {cause}")
        self.path = path
        self.cause = cause


class ScanError(RotationError):
    """Listing or stat-ing the log directory failed."""

    def __init__(self, path: str, cause: OSError):
        super().__init__(f"Failed to scan {path}: {cause}")
        self.path = path
        self.cause = cause
