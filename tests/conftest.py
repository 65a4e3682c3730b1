"""Global pytest fixtures and configuration."""

import io
import sys
import tarfile
from pathlib import Path
from typing import Callable, Optional

import httpx
import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from skyup.config import SkyupConfig  # noqa: E402

ESSENTIALS_URL = "https://updates.example.test/5mini-essentials.tar"
SYSTEM_URL = "https://updates.example.test/5mini-system.tar"


def build_tar(entries: dict[str, Optional[bytes]]) -> bytes:
    """Build an in-memory tar. A value of None makes a directory entry."""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w", format=tarfile.USTAR_FORMAT) as tar:
        for name, content in entries.items():
            info = tarfile.TarInfo(name)
            if content is None:
                info.type = tarfile.DIRTYPE
                info.mode = 0o755
                tar.addfile(info)
            else:
                info.size = len(content)
                info.mode = 0o644
                tar.addfile(info, io.BytesIO(content))
    return buffer.getvalue()


def xlb_content(build: int, size: int = 64) -> bytes:
    """Descriptor bytes with a 12-digit build number at offset 24."""
    header = b"XLB-DESCRIPTOR-HEADER-00"  # 24 bytes
    body = header + f"{build:012d}".encode("ascii")
    return body + b"\x00" * (size - len(body))


@pytest.fixture
def make_archive() -> Callable[[dict[str, Optional[bytes]]], bytes]:
    """Factory for tar archives (None value = directory)."""
    return build_tar


@pytest.fixture
def device_root(tmp_path) -> Path:
    """A mounted 5mini device running build 102."""
    root = tmp_path / "device"
    (root / ".sys").mkdir(parents=True)
    (root / ".sys" / "hwsw.info").write_text('hw="5mini"\nsw="build-102"\n', encoding="utf-8")
    return root


@pytest.fixture
def test_config(tmp_path) -> SkyupConfig:
    return SkyupConfig(
        essentials_url=ESSENTIALS_URL,
        system_url=SYSTEM_URL,
        log_file=str(tmp_path / "logs" / "skyup.log"),
    )


@pytest.fixture
def archive_transport() -> Callable[[dict[str, bytes]], httpx.MockTransport]:
    """Factory for a MockTransport serving fixed bodies per URL (404 otherwise)."""

    def factory(bodies: dict[str, bytes]) -> httpx.MockTransport:
        def handler(request: httpx.Request) -> httpx.Response:
            body = bodies.get(str(request.url))
            if body is None:
                return httpx.Response(404)
            return httpx.Response(200, content=body)

        return httpx.MockTransport(handler)

    return factory
