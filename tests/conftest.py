"""Pytest configuration and shared fixtures for tfvm tests."""

import hashlib
import io
import json
import shutil
import tempfile
import zipfile
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import httpx
import pytest

from tfvm.core.config import AppConfig
from tfvm.core.types import PlatformTriple

RELEASES_URL = "https://releases.example.test"
TERRAFORM_PAYLOAD = b"#!/bin/sh\necho terraform\n" + bytes(range(256)) * 64


class _WriteOnlyBuffer(io.RawIOBase):
    """Unseekable sink; zipfile writes data descriptors into it."""

    def __init__(self) -> None:
        self.data = bytearray()

    def writable(self) -> bool:
        return True

    def write(self, b) -> int:
        self.data += b
        return len(b)


def build_zip(
    entries: dict[str, bytes],
    compression: int = zipfile.ZIP_DEFLATED,
    streamed: bool = False,
    force_zip64: bool = False,
) -> bytes:
    """Build a ZIP archive in memory.

    Args:
        entries: Entry name to content; names ending in "/" are directories
        compression: zipfile compression constant
        streamed: Write to an unseekable sink so entries use data descriptors
        force_zip64: Write zip64 extra fields even for small entries
    """
    sink: Any = _WriteOnlyBuffer() if streamed else io.BytesIO()
    with zipfile.ZipFile(sink, "w", compression=compression) as archive:
        for name, content in entries.items():
            if force_zip64:
                with archive.open(name, "w", force_zip64=True) as entry:
                    entry.write(content)
            else:
                archive.writestr(name, content)
    if streamed:
        return bytes(sink.data)
    return sink.getvalue()


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmp_dir:
        yield Path(tmp_dir)


@pytest.fixture
def linux_amd64() -> PlatformTriple:
    """Platform triple used by most tests."""
    return PlatformTriple(platform="linux", arch="amd64", exe_suffix="")


@pytest.fixture
def app_config(temp_dir: Path, linux_amd64: PlatformTriple) -> AppConfig:
    """Configuration rooted in a temporary directory."""
    return AppConfig(
        install_root=temp_dir / "tfvm",
        releases_url=RELEASES_URL,
        platform=linux_amd64,
    )


@pytest.fixture
def config_file(temp_dir: Path, app_config: AppConfig) -> Path:
    """Configuration written to disk for CLI tests."""
    path = temp_dir / "config.json"
    path.write_text(json.dumps(app_config.model_dump(mode="json")))
    return path


@pytest.fixture
def make_zip() -> Callable[..., bytes]:
    """Factory building ZIP archives in memory."""
    return build_zip


@pytest.fixture
def release_archive() -> bytes:
    """Release archive holding a terraform executable and a license."""
    return build_zip({
        "LICENSE.txt": b"Business Source License 1.1\n",
        "terraform": TERRAFORM_PAYLOAD,
    })


@pytest.fixture
def release_routes(release_archive: bytes) -> dict[str, httpx.Response]:
    """Responses for a complete 1.5.0 release on linux/amd64."""
    digest = hashlib.sha256(release_archive).hexdigest()
    base = f"{RELEASES_URL}/terraform/1.5.0"
    manifest = (
        f"{'0' * 64}  terraform_1.5.0_darwin_arm64.zip\n"
        f"{digest}  terraform_1.5.0_linux_amd64.zip\n"
    ).encode()
    return {
        f"{base}/terraform_1.5.0_linux_amd64.zip": httpx.Response(200, content=release_archive),
        f"{base}/terraform_1.5.0_SHA256SUMS": httpx.Response(200, content=manifest),
        f"{base}/terraform_1.5.0_SHA256SUMS.sig": httpx.Response(200, content=b"signature"),
    }


@pytest.fixture
def mock_transport() -> Callable[[dict[str, httpx.Response]], tuple[httpx.MockTransport, list[str]]]:
    """Factory for an httpx transport serving fixed routes and recording requests."""

    def factory(routes: dict[str, httpx.Response]) -> tuple[httpx.MockTransport, list[str]]:
        requested: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            url = str(request.url)
            requested.append(url)
            response = routes.get(url)
            if response is None:
                return httpx.Response(404, content=b"not found")
            return httpx.Response(
                response.status_code,
                content=response.content,
                headers=response.headers,
            )

        return httpx.MockTransport(handler), requested

    return factory


@pytest.fixture(scope="session")
def signing_key() -> Generator[dict[str, Any], None, None]:
    """Throwaway GnuPG key for real signature tests.

    Skips when no gpg binary is available or key generation fails.
    """
    if shutil.which("gpg") is None:
        pytest.skip("gpg binary not available")

    import gnupg

    home = tempfile.mkdtemp(prefix="tfvm-test-gpg-")
    try:
        gpg = gnupg.GPG(gnupghome=home)
        key = gpg.gen_key(gpg.gen_key_input(
            key_type="RSA",
            key_length=2048,
            name_real="tfvm test",
            name_email="release@example.invalid",
            no_protection=True,
        ))
        if not key.fingerprint:
            pytest.skip("gpg key generation failed")

        yield {
            "gpg": gpg,
            "fingerprint": key.fingerprint,
            "public_key": gpg.export_keys(key.fingerprint),
        }
    finally:
        shutil.rmtree(home, ignore_errors=True)


# Pytest configuration
def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest settings."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list) -> None:
    """Modify test collection to add markers automatically."""
    for item in items:
        # Add unit marker to all tests by default
        if not any(marker.name in ['integration', 'slow'] for marker in item.iter_markers()):
            item.add_marker(pytest.mark.unit)
