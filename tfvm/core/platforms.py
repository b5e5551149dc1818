"""Host platform resolution for release archive names."""

from __future__ import annotations

import platform as _platform
from functools import cache

import structlog

from tfvm.core.errors import UnsupportedArchError, UnsupportedPlatformError
from tfvm.core.types import PlatformTriple

logger = structlog.get_logger()

# platform.system() value -> (release platform, executable suffix)
PLATFORMS: dict[str, tuple[str, str]] = {
    "linux": ("linux", ""),
    "darwin": ("darwin", ""),
    "windows": ("windows", ".exe"),
    "freebsd": ("freebsd", ""),
    "openbsd": ("openbsd", ""),
}

# platform.machine() value (lowercased) -> release architecture
ARCHITECTURES: dict[str, str] = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "x64": "amd64",
    "i386": "386",
    "i686": "386",
    "x86": "386",
    "ia32": "386",
    "aarch64": "arm64",
    "arm64": "arm64",
    "armv6l": "arm",
    "armv7l": "arm",
    "arm": "arm",
}


def resolve_platform(
    system: str | None = None,
    machine: str | None = None,
) -> PlatformTriple:
    """Map host OS and CPU names to the release naming scheme.

    Args:
        system: OS name as reported by ``platform.system()``; host if None
        machine: CPU name as reported by ``platform.machine()``; host if None

    Returns:
        Platform triple used in archive names and installed file names

    Raises:
        UnsupportedPlatformError: If the OS has no published release
        UnsupportedArchError: If the CPU architecture has no published release

    Example:
        >>> resolve_platform("Linux", "x86_64")
        PlatformTriple(platform='linux', arch='amd64', exe_suffix='')
    """
    if system is None:
        system = _platform.system()
    if machine is None:
        machine = _platform.machine()

    try:
        platform_name, exe_suffix = PLATFORMS[system.lower()]
    except KeyError:
        raise UnsupportedPlatformError(system) from None

    try:
        arch = ARCHITECTURES[machine.lower()]
    except KeyError:
        raise UnsupportedArchError(machine) from None

    return PlatformTriple(platform=platform_name, arch=arch, exe_suffix=exe_suffix)


@cache
def host_platform() -> PlatformTriple:
    """Resolve the host platform once per process."""
    triple = resolve_platform()
    logger.debug(
        "platform_resolved",
        platform=triple.platform,
        arch=triple.arch,
        exe_suffix=triple.exe_suffix,
    )
    return triple
