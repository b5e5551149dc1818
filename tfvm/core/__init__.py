"""Core functionality for tfvm.

This module provides the pieces the CLI is built from:
- Configuration management
- Platform resolution and release naming
- Streaming hashing and archive extraction
- Signed checksum verification
- The install pipeline and the version store
"""

from tfvm.core.config import AppConfig
from tfvm.core.errors import (
    ArchiveFormatError,
    ChecksumNotFoundError,
    CurrentPointerError,
    DownloadError,
    HashMismatchError,
    NotInstalledError,
    PermissionDeniedError,
    SignatureVerificationError,
    TfvmError,
    UnsupportedArchError,
    UnsupportedPlatformError,
)
from tfvm.core.install import Installer
from tfvm.core.platforms import host_platform, resolve_platform
from tfvm.core.store import VersionStore

__all__ = [
    # Config
    "AppConfig",
    # Components
    "Installer",
    "VersionStore",
    "host_platform",
    "resolve_platform",
    # Errors
    "TfvmError",
    "UnsupportedPlatformError",
    "UnsupportedArchError",
    "DownloadError",
    "ArchiveFormatError",
    "SignatureVerificationError",
    "ChecksumNotFoundError",
    "HashMismatchError",
    "NotInstalledError",
    "PermissionDeniedError",
    "CurrentPointerError",
]
