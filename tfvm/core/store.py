"""Filesystem-backed store of installed versions.

The directory is the database: a version is installed when
``versions/<tool>_<version><suffix>`` exists, and the active version is the
target of the ``<tool><suffix>`` symlink at the install root.
"""

from __future__ import annotations

import os
import re
from pathlib import Path

import structlog

from tfvm.core.config import AppConfig
from tfvm.core.errors import (
    CurrentPointerError,
    NotInstalledError,
    PermissionDeniedError,
)

logger = structlog.get_logger()


class VersionStore:
    """Installed versions and the current pointer.

    Args:
        config: Application configuration
    """

    def __init__(self, config: AppConfig):
        self.config = config
        suffix = config.target_platform().exe_suffix
        self._suffix = suffix
        self._name_pattern = re.compile(
            rf"^{re.escape(config.tool_name)}_(.+){re.escape(suffix)}$"
        )

    @property
    def versions_dir(self) -> Path:
        return self.config.versions_dir

    @property
    def current_link(self) -> Path:
        return self.config.current_link

    def path_for(self, version: str) -> Path:
        """Path of the executable for a version."""
        return self.versions_dir / f"{self.config.tool_name}_{version}{self._suffix}"

    def version_of(self, path: str | os.PathLike[str]) -> str | None:
        """Extract the version token from a version file name.

        Args:
            path: Version file path or name

        Returns:
            Version string, or None if the name is not a version record
        """
        match = self._name_pattern.match(Path(path).name)
        return match.group(1) if match else None

    def is_installed(self, version: str) -> bool:
        """Check whether a version is installed.

        Raises:
            OSError: For any failure other than the file being absent
        """
        try:
            self.path_for(version).stat()
        except FileNotFoundError:
            return False
        return True

    def list(self) -> list[str]:
        """Return installed versions, sorted lexicographically.

        A missing versions directory means nothing is installed.
        """
        try:
            names = os.listdir(self.versions_dir)
        except FileNotFoundError:
            return []

        versions = [v for v in (self.version_of(name) for name in names) if v is not None]
        return sorted(versions)

    def _read_link(self) -> str | None:
        try:
            return os.readlink(self.current_link)
        except FileNotFoundError:
            return None

    def get_current(self) -> str | None:
        """Return the active version, or None if no version is active.

        Raises:
            CurrentPointerError: If the pointer exists but does not resolve to
                an installed version
        """
        target = self._read_link()
        if target is None:
            return None

        version = self.version_of(target)
        if version is None:
            raise CurrentPointerError(
                f"{self.current_link} points at {target}, which is not a managed version"
            )

        target_path = Path(target)
        if not target_path.is_absolute():
            target_path = self.current_link.parent / target_path
        if not target_path.exists():
            raise CurrentPointerError(
                f"{self.current_link} points at missing version {version}"
            )
        return version

    def set_current(self, version: str | None) -> None:
        """Point the current link at a version, or clear it with None.

        Raises:
            NotInstalledError: If the version is not installed
            PermissionDeniedError: If the symlink may not be created
        """
        if version is not None and not self.is_installed(version):
            raise NotInstalledError(version)

        try:
            self.current_link.unlink()
        except FileNotFoundError:
            pass

        if version is None:
            logger.info("current_cleared", link=str(self.current_link))
            return

        self.current_link.parent.mkdir(parents=True, exist_ok=True)
        try:
            self.current_link.symlink_to(self.path_for(version))
        except PermissionError as e:
            raise PermissionDeniedError(
                "Creating the current version link requires elevated privileges; "
                "retry as administrator"
            ) from e

        logger.info("current_set", version=version, link=str(self.current_link))

    def uninstall(self, version: str) -> None:
        """Remove an installed version, clearing the pointer if it is active.

        Raises:
            NotInstalledError: If the version is not installed
        """
        if not self.is_installed(version):
            raise NotInstalledError(version)

        target = self._read_link()
        if target is not None and self.version_of(target) == version:
            self.set_current(None)

        self.path_for(version).unlink()
        logger.info("version_uninstalled", version=version)
