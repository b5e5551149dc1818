"""CLI command implementations for tfvm.

- install / uninstall: Add and remove versions
- list / use / current: Inspect and switch the active version
"""

from tfvm.commands.install import install, uninstall
from tfvm.commands.versions import current, list_versions, use

__all__ = [
    "install",
    "uninstall",
    "list_versions",
    "use",
    "current",
]
