"""Signed checksum manifest verification.

HashiCorp publishes, per release, a ``SHA256SUMS`` manifest listing the
SHA-256 of every archive and a detached OpenPGP signature over that
manifest. The signature is checked against a pinned release key before the
manifest is trusted; the archive itself is then authenticated by comparing
its digest with the manifest entry.

Verification runs GnuPG in a throwaway home directory that only ever
contains the pinned key, so the user's own keyring is neither read nor
modified and no key is discovered at runtime.
"""

from __future__ import annotations

import asyncio
import re
import tempfile
from importlib import resources
from pathlib import Path

import gnupg
import httpx
import structlog

from tfvm.core.config import AppConfig
from tfvm.core.errors import (
    ChecksumNotFoundError,
    DownloadError,
    SignatureVerificationError,
)
from tfvm.core.types import ReleaseArtifact

logger = structlog.get_logger()

# HashiCorp Security <security@hashicorp.com>
HASHICORP_KEY_FINGERPRINT = "C874011F0AB405110D02105534365D9472D7468F"
BUNDLED_KEY_PACKAGE = "tfvm.keys"
BUNDLED_KEY_NAME = "hashicorp.asc"

_CHECKSUM_LINE = re.compile(r"^([0-9a-fA-F]+)  \*?(.+)$")


def load_bundled_key() -> str:
    """Read the pinned release key shipped with the package.

    Returns:
        ASCII-armored public key

    Raises:
        SignatureVerificationError: If the key is missing from the installation
    """
    try:
        return (
            resources.files(BUNDLED_KEY_PACKAGE)
            .joinpath(BUNDLED_KEY_NAME)
            .read_text(encoding="ascii")
        )
    except (FileNotFoundError, ModuleNotFoundError) as e:
        raise SignatureVerificationError(
            "Pinned release key is not bundled with this installation"
        ) from e


def parse_checksums(text: str) -> dict[str, str]:
    """Parse a SHA256SUMS manifest.

    Each line is ``<hex digest><two spaces><file name>``. A ``*`` in front of
    the file name (binary mode marker) is dropped. Blank and malformed lines
    are ignored.

    Args:
        text: Manifest text

    Returns:
        Mapping of file name to lowercase hex digest

    Example:
        >>> parse_checksums("ab12  terraform_1.5.0_linux_amd64.zip\\n")
        {'terraform_1.5.0_linux_amd64.zip': 'ab12'}
    """
    sums: dict[str, str] = {}
    for line in text.splitlines():
        if not line.strip():
            continue
        match = _CHECKSUM_LINE.match(line)
        if match is None:
            logger.debug("checksum_line_skipped", line=line)
            continue
        digest, name = match.groups()
        sums[name] = digest.lower()
    return sums


def verify_signature(
    manifest: bytes,
    signature: bytes,
    public_key: str,
    fingerprint: str,
    gpg_binary: str = "gpg",
) -> str:
    """Verify a detached signature over the manifest bytes as received.

    Args:
        manifest: Signed manifest bytes, unmodified
        signature: Detached signature (binary or armored)
        public_key: ASCII-armored trusted public key
        fingerprint: Expected fingerprint of the signing key
        gpg_binary: GnuPG executable

    Returns:
        Fingerprint of the key that made the signature

    Raises:
        SignatureVerificationError: If the trust anchor cannot be loaded or
            the signature is not a good signature by the pinned key
    """
    expected = fingerprint.replace(" ", "").upper()

    with tempfile.TemporaryDirectory(
        prefix="tfvm-gpg-", ignore_cleanup_errors=True
    ) as home:
        try:
            gpg = gnupg.GPG(gnupghome=home, gpgbinary=gpg_binary)
        except (OSError, ValueError) as e:
            raise SignatureVerificationError(f"GnuPG is not available: {e}") from e

        imported = gpg.import_keys(public_key)
        if expected not in [fp.upper() for fp in imported.fingerprints]:
            raise SignatureVerificationError(
                f"Pinned release key {expected} could not be loaded"
            )

        sig_path = Path(home) / "SHA256SUMS.sig"
        sig_path.write_bytes(signature)
        result = gpg.verify_data(str(sig_path), manifest)

    if not result.valid:
        raise SignatureVerificationError(
            f"Signature verification failed: {result.status or 'no valid signature'}"
        )

    signer = (result.pubkey_fingerprint or result.fingerprint or "").upper()
    if signer != expected:
        raise SignatureVerificationError(
            f"Manifest signed by unexpected key {signer or 'unknown'}"
        )

    logger.debug("signature_verified", fingerprint=signer)
    return signer


class ChecksumVerifier:
    """Fetch and authenticate the expected archive digest for a release.

    Args:
        config: Application configuration
        client: HTTP client used for both manifest and signature requests
        public_key: Armored trusted key; the bundled release key if None
        fingerprint: Fingerprint the signing key must have
    """

    def __init__(
        self,
        config: AppConfig,
        client: httpx.AsyncClient,
        public_key: str | None = None,
        fingerprint: str = HASHICORP_KEY_FINGERPRINT,
    ):
        self.config = config
        self.client = client
        self.fingerprint = fingerprint
        self._public_key = public_key

    @property
    def public_key(self) -> str:
        if self._public_key is None:
            self._public_key = load_bundled_key()
        return self._public_key

    async def fetch_sum(self, version: str) -> str:
        """Return the authenticated SHA-256 for a release archive.

        Args:
            version: Version string

        Returns:
            Lowercase hex digest from the signed manifest

        Raises:
            DownloadError: If the manifest or signature request fails
            SignatureVerificationError: If the manifest signature is not valid
            ChecksumNotFoundError: If the manifest has no entry for the archive
        """
        artifact = ReleaseArtifact.for_version(version, self.config)

        manifest, signature = await asyncio.gather(
            self._fetch(artifact.sums_url),
            self._fetch(artifact.sig_url),
        )

        await asyncio.to_thread(
            verify_signature,
            manifest,
            signature,
            self.public_key,
            self.fingerprint,
        )

        sums = parse_checksums(manifest.decode("utf-8", errors="replace"))
        try:
            digest = sums[artifact.archive_name]
        except KeyError:
            raise ChecksumNotFoundError(artifact.archive_name) from None

        logger.info(
            "checksum_resolved",
            version=version,
            archive=artifact.archive_name,
            digest=digest,
        )
        return digest

    async def _fetch(self, url: str) -> bytes:
        response = await self.client.get(url)
        if not response.is_success:
            raise DownloadError(response.status_code, url)
        return response.content
