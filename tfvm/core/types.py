"""Core type definitions for tfvm."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from tfvm.core.config import AppConfig


class PlatformTriple(BaseModel):
    """Release naming for one host: platform, architecture and exe suffix."""
    platform: str = Field(..., description="Release platform name, e.g. linux")
    arch: str = Field(..., description="Release architecture name, e.g. amd64")
    exe_suffix: str = Field("", description="Executable suffix, .exe on Windows")

    model_config = ConfigDict(frozen=True)


class InstallStage(StrEnum):
    """Install pipeline states."""
    NOT_INSTALLED = "not_installed"
    DOWNLOADING = "downloading"
    EXTRACTING = "extracting"
    WRITTEN_UNVERIFIED = "written_unverified"
    VERIFIED = "verified"
    FAILED = "failed"


class ReleaseArtifact(BaseModel):
    """Remote locations for one release of the managed tool."""
    version: str = Field(..., description="Version string, used verbatim")
    archive_name: str = Field(..., description="Archive file name")
    archive_url: str = Field(..., description="Archive URL")
    sums_url: str = Field(..., description="SHA256SUMS manifest URL")
    sig_url: str = Field(..., description="Detached manifest signature URL")

    model_config = ConfigDict(frozen=True)

    @classmethod
    def for_version(cls, version: str, config: AppConfig) -> ReleaseArtifact:
        """Derive release URLs from a version and the configured platform.

        Args:
            version: Version string
            config: Application configuration

        Returns:
            Release artifact descriptor
        """
        tool = config.tool_name
        target = config.target_platform()
        base = f"{config.releases_url}/{tool}/{version}"
        archive_name = f"{tool}_{version}_{target.platform}_{target.arch}.zip"
        sums_name = f"{tool}_{version}_SHA256SUMS"
        return cls(
            version=version,
            archive_name=archive_name,
            archive_url=f"{base}/{archive_name}",
            sums_url=f"{base}/{sums_name}",
            sig_url=f"{base}/{sums_name}.sig",
        )


@dataclass
class InstallResult:
    """Outcome of an install.

    Attributes:
        version: Installed version
        path: Path of the installed executable
        digest: Verified archive digest (hex), empty if nothing was downloaded
        bytes_downloaded: Archive bytes received
        already_installed: True if the version was present before the call
    """

    version: str
    path: Path
    digest: str = ""
    bytes_downloaded: int = 0
    already_installed: bool = False
