from __future__ import annotations

from typing import Optional


class BundleError(OSError):
    """
    Raised when a bundle cannot be built or unpacked.

    Carries the filesystem path involved and the operation that failed so
    callers can report something more useful than the bare OS error.
    """

    def __init__(self, message: str, *, path: Optional[str] = None, operation: Optional[str] = None):
        super().__init__(message)
        self.path = path
        self.operation = operation

    def __str__(self) -> str:
        msg = super().__str__()
        if self.path:
            return f"{msg} (path: {self.path})"
        return msg


class UnsafeBundleEntryError(BundleError):
    """
    Raised when an archive entry would land outside the extraction target,
    or is not a plain file or directory.
    """

    pass


class BundleLimitError(BundleError):
    """
    Raised when an archive exceeds the configured extraction limits.
    """

    pass
