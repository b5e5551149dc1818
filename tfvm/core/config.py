"""Configuration management for tfvm."""

from __future__ import annotations

import json
from pathlib import Path

import structlog
from pydantic import BaseModel, Field, field_validator

from tfvm.core.platforms import host_platform
from tfvm.core.types import PlatformTriple

logger = structlog.get_logger()

DEFAULT_CONFIG_FILE = Path.home() / ".config" / "tfvm" / "config.json"


class AppConfig(BaseModel):
    """Application configuration.

    Every component receives this object instead of reading process-wide
    constants, so tests and alternative tools can point it elsewhere.
    """

    install_root: Path = Field(
        default=Path.home() / ".tfvm",
        description="Root of the version store"
    )
    tool_name: str = Field(
        default="terraform",
        description="Name of the managed binary"
    )
    releases_url: str = Field(
        default="https://releases.hashicorp.com",
        description="Releases host serving archives and checksum manifests"
    )
    timeout: float = Field(default=60.0, description="HTTP timeout in seconds")
    platform: PlatformTriple | None = Field(
        default=None,
        description="Release platform override, host platform if unset"
    )

    # Output settings
    output_format: str = Field(
        default="rich",
        description="Output format (rich, json, plain)"
    )
    log_level: str = Field(
        default="WARNING",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    @property
    def versions_dir(self) -> Path:
        """Directory holding one executable per installed version."""
        return self.install_root / "versions"

    @property
    def current_link(self) -> Path:
        """Symlink pointing at the active version."""
        return self.install_root / f"{self.tool_name}{self.target_platform().exe_suffix}"

    def target_platform(self) -> PlatformTriple:
        """Platform used for archive names and executable suffixes."""
        return self.platform or host_platform()

    @classmethod
    def load(cls, config_file: Path | None = None) -> AppConfig:
        """Load configuration from file.

        Args:
            config_file: Path to config file, uses default if None

        Returns:
            Application configuration
        """
        if config_file is None:
            config_file = DEFAULT_CONFIG_FILE

        if config_file.exists():
            with open(config_file) as f:
                data = json.load(f)
                return cls(**data)

        # Return defaults
        return cls()

    def save(self, config_file: Path | None = None) -> None:
        """Save configuration to file.

        Args:
            config_file: Path to config file, uses default if None
        """
        if config_file is None:
            config_file = DEFAULT_CONFIG_FILE

        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, "w") as f:
            json.dump(self.model_dump(mode="json"), f, indent=2, default=str)

        logger.info("config_saved", path=str(config_file))

    @field_validator("tool_name")
    @classmethod
    def validate_tool_name(cls, v: str) -> str:
        """Validate tool name."""
        if not v or "/" in v or "\\" in v:
            raise ValueError(f"Invalid tool name: {v!r}")
        return v

    @field_validator("releases_url")
    @classmethod
    def validate_releases_url(cls, v: str) -> str:
        """Validate releases URL."""
        if not v.startswith("https://"):
            raise ValueError("Releases URL must use https")
        return v.rstrip("/")

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        """Validate timeout value."""
        if v <= 0:
            raise ValueError("Timeout must be positive")
        return v

    @field_validator("output_format")
    @classmethod
    def validate_output_format(cls, v: str) -> str:
        """Validate output format."""
        valid_formats = {"rich", "json", "plain"}
        if v not in valid_formats:
            raise ValueError(f"Invalid output format: {v}. Valid formats: {valid_formats}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Valid levels: {valid_levels}")
        return v
