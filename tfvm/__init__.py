"""tfvm - a version manager for the Terraform binary.

Downloads release archives, authenticates them against HashiCorp's signed
checksum manifests, and keeps several versions side by side with a
"current" symlink selecting the active one.

Key modules:
- core: Install pipeline, version store, configuration and types
- commands: CLI command implementations
"""

__version__ = "0.1.0"

from tfvm.core.types import InstallResult, InstallStage, PlatformTriple, ReleaseArtifact

__all__ = [
    "__version__",
    "InstallResult",
    "InstallStage",
    "PlatformTriple",
    "ReleaseArtifact",
]
