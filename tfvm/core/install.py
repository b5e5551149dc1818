"""Install pipeline: download, hash, extract, verify, activate on disk.

The archive streams from the releases host through a SHA-256 stage and the
ZIP extractor straight into a hidden partial file next to the version
store. The digest covers the compressed archive bytes, which is what the
signed manifest lists. Only after the digest matches is the partial file
made executable and renamed onto its final path, so the version store never
sees an unverified executable. Every failure removes the partial file
before the error propagates.
"""

from __future__ import annotations

import os
from collections.abc import AsyncIterator, Callable
from contextlib import aclosing
from pathlib import Path

import httpx
import structlog

from tfvm.core.archive import ZipEntryExtractor
from tfvm.core.config import AppConfig
from tfvm.core.errors import DownloadError, HashMismatchError
from tfvm.core.hashing import Sha256Stream
from tfvm.core.store import VersionStore
from tfvm.core.types import InstallResult, InstallStage, ReleaseArtifact
from tfvm.core.verifier import HASHICORP_KEY_FINGERPRINT, ChecksumVerifier

logger = structlog.get_logger()

EXECUTABLE_MODE = 0o755
DEFAULT_CHUNK_SIZE = 64 * 1024

ProgressCallback = Callable[[int, int | None], None]


class Installer:
    """Install release versions into a version store.

    Args:
        config: Application configuration
        store: Version store, built from config if None
        client: HTTP client to use; a client is created per install if None
        public_key: Armored trusted key, the bundled release key if None
        fingerprint: Fingerprint the manifest signer must have
        chunk_size: Download chunk size in bytes
    """

    def __init__(
        self,
        config: AppConfig,
        store: VersionStore | None = None,
        client: httpx.AsyncClient | None = None,
        public_key: str | None = None,
        fingerprint: str = HASHICORP_KEY_FINGERPRINT,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        self.config = config
        self.store = store or VersionStore(config)
        self.public_key = public_key
        self.fingerprint = fingerprint
        self.chunk_size = chunk_size
        self.stage = InstallStage.NOT_INSTALLED
        self._client = client

    @property
    def member_name(self) -> str:
        """Name of the executable inside release archives."""
        return f"{self.config.tool_name}{self.config.target_platform().exe_suffix}"

    def partial_path(self, version: str) -> Path:
        """Hidden path the executable is written to before verification."""
        final = self.store.path_for(version)
        return final.with_name(f".{final.name}.partial")

    async def install(
        self, version: str, progress: ProgressCallback | None = None
    ) -> InstallResult:
        """Install a version if it is not installed yet.

        Args:
            version: Version string
            progress: Optional callback(bytes_downloaded, total_bytes)

        Returns:
            Install result; ``already_installed`` is set when nothing was done

        Raises:
            DownloadError: If a release endpoint answers with an error status
            SignatureVerificationError: If the manifest signature is invalid
            ChecksumNotFoundError: If the manifest lacks the archive
            ArchiveFormatError: If the archive is malformed
            HashMismatchError: If the archive digest differs from the manifest
        """
        path = self.store.path_for(version)
        if self.store.is_installed(version):
            logger.info("already_installed", version=version, path=str(path))
            return InstallResult(version=version, path=path, already_installed=True)

        if self._client is not None:
            return await self._install(self._client, version, progress)

        async with httpx.AsyncClient(
            timeout=self.config.timeout,
            follow_redirects=True,
        ) as client:
            return await self._install(client, version, progress)

    async def _install(
        self,
        client: httpx.AsyncClient,
        version: str,
        progress: ProgressCallback | None,
    ) -> InstallResult:
        artifact = ReleaseArtifact.for_version(version, self.config)
        path = self.store.path_for(version)
        partial = self.partial_path(version)
        verifier = ChecksumVerifier(
            self.config,
            client,
            public_key=self.public_key,
            fingerprint=self.fingerprint,
        )

        logger.info("install_started", version=version, url=artifact.archive_url)
        self.stage = InstallStage.NOT_INSTALLED

        try:
            expected = await verifier.fetch_sum(version)

            self.store.versions_dir.mkdir(parents=True, exist_ok=True)
            hasher = Sha256Stream()
            extractor = ZipEntryExtractor(member=self.member_name)

            self._advance(version, InstallStage.DOWNLOADING)
            async with client.stream("GET", artifact.archive_url) as response:
                if not response.is_success:
                    raise DownloadError(response.status_code, artifact.archive_url)

                self._advance(version, InstallStage.EXTRACTING)
                received = self._receive(response, progress)
                chunks = hasher.pipe(received)
                # Close the whole generator chain before the response closes.
                async with (
                    aclosing(received),
                    aclosing(chunks),
                    aclosing(extractor.extract(chunks)) as entry,
                ):
                    with open(partial, "wb") as sink:
                        async for data in entry:
                            sink.write(data)

            self._advance(version, InstallStage.WRITTEN_UNVERIFIED)
            actual = hasher.digest("hex")
            logger.info(
                "archive_downloaded",
                version=version,
                size=hasher.bytes_seen,
                digest=actual,
            )
            if actual != expected.lower():
                logger.warning(
                    "hash_mismatch", version=version, expected=expected, actual=actual
                )
                raise HashMismatchError(expected, actual)

            os.chmod(partial, EXECUTABLE_MODE)
            os.replace(partial, path)
        except BaseException as e:
            self.stage = InstallStage.FAILED
            logger.info("install_failed", version=version, error=str(e) or type(e).__name__)
            self._remove_partial(partial)
            raise

        self._advance(version, InstallStage.VERIFIED)
        return InstallResult(
            version=version,
            path=path,
            digest=actual,
            bytes_downloaded=hasher.bytes_seen,
        )

    async def _receive(
        self, response: httpx.Response, progress: ProgressCallback | None
    ) -> AsyncIterator[bytes]:
        length = response.headers.get("Content-Length")
        total = int(length) if length and length.isdigit() else None
        received = 0
        async for chunk in response.aiter_bytes(self.chunk_size):
            received += len(chunk)
            if progress is not None:
                progress(received, total)
            yield chunk

    def _advance(self, version: str, stage: InstallStage) -> None:
        self.stage = stage
        logger.debug("install_stage", version=version, stage=stage.value)

    @staticmethod
    def _remove_partial(partial: Path) -> None:
        try:
            partial.unlink()
        except FileNotFoundError:
            return
        logger.info("partial_removed", path=str(partial))
