"""Error taxonomy for tfvm.

Every failure the version manager raises on purpose derives from
:class:`TfvmError` so the CLI can render it as a single line. Transport
failures surface as ``httpx.HTTPError`` and filesystem failures as
``OSError``; neither is wrapped.
"""

from __future__ import annotations


class TfvmError(Exception):
    """Base class for tfvm errors."""


class UnsupportedPlatformError(TfvmError):
    """Raised when the host operating system has no published release.

    Attributes:
        value: The host system string that was not recognized
    """

    def __init__(self, value: str):
        self.value = value
        super().__init__(f"Unsupported platform: {value}")


class UnsupportedArchError(TfvmError):
    """Raised when the host CPU architecture has no published release.

    Attributes:
        value: The host machine string that was not recognized
    """

    def __init__(self, value: str):
        self.value = value
        super().__init__(f"Unsupported architecture: {value}")


class DownloadError(TfvmError):
    """Raised when a release endpoint answers with a non-success status.

    Attributes:
        status: HTTP status code of the response
        url: Requested URL
    """

    def __init__(self, status: int, url: str = ""):
        self.status = status
        self.url = url
        message = f"Download failed with status {status}"
        if url:
            message += f" ({url})"
        super().__init__(message)


class ArchiveFormatError(TfvmError):
    """Raised when a release archive is malformed or ambiguous."""


class SignatureVerificationError(TfvmError):
    """Raised when the checksum manifest signature does not validate."""


class ChecksumNotFoundError(TfvmError):
    """Raised when the manifest has no entry for the requested archive.

    Attributes:
        filename: Archive file name that was looked up
    """

    def __init__(self, filename: str):
        self.filename = filename
        super().__init__(f"No checksum published for {filename}")


class HashMismatchError(TfvmError):
    """Raised when the downloaded archive digest differs from the manifest.

    Attributes:
        expected: Digest from the signed manifest (hex)
        actual: Digest of the downloaded archive (hex)
    """

    def __init__(self, expected: str, actual: str):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Hash verification failed: expected {expected}, got {actual}"
        )


class NotInstalledError(TfvmError):
    """Raised when an operation needs a version that is not installed.

    Attributes:
        version: The requested version
    """

    def __init__(self, version: str):
        self.version = version
        super().__init__(f"Version {version} is not installed")


class PermissionDeniedError(TfvmError, PermissionError):
    """Raised when the current pointer symlink cannot be created."""


class CurrentPointerError(TfvmError, OSError):
    """Raised when the current pointer exists but is not usable."""
