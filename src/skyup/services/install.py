"""Install decisions and atomic file writes on the device."""

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import aiofiles
import aiofiles.os

from skyup.models.archive import ArchiveEntry
from skyup.models.errors import ArchiveCorruptError, FileSystemIOError
from skyup.models.status import InstallDecision

FINGERPRINT_SUFFIXES = (".oab", ".owb", ".otb", ".oob")
DESCRIPTOR_SUFFIX = ".xlb"
FINGERPRINT_LENGTH = 12
BUILD_NUMBER_START = 24
BUILD_NUMBER_END = 36  # exclusive
UPDATE_DIR = "update"
TMP_SUFFIX = ".tmp"


def read_build_number(content: bytes) -> int:
    """Build number stored as 12 ASCII digits at offset 24 of an .xlb file.

    Raises:
        ArchiveCorruptError: If the field is truncated or not decimal
    """
    raw = content[BUILD_NUMBER_START:BUILD_NUMBER_END]
    if len(raw) != BUILD_NUMBER_END - BUILD_NUMBER_START or not raw.isdigit():
        raise ArchiveCorruptError(f"Invalid build number field in descriptor: {raw!r}")
    return int(raw.decode("ascii"))


def decide(
    path: str,
    existing_head: Optional[bytes],
    content: bytes,
    firmware_build: int,
) -> InstallDecision:
    """Decide whether an archive file must be written.

    Args:
        path: Entry path, only the suffix matters
        existing_head: First 12 bytes of the file on the device, None when
            there is no file or it is shorter than 12 bytes
        content: New file content from the archive
        firmware_build: Build currently installed on the device

    Returns:
        InstallDecision.SKIP or InstallDecision.INSTALL

    Raises:
        ArchiveCorruptError: If an .xlb entry has no valid build number
    """
    if path.endswith(FINGERPRINT_SUFFIXES):
        if existing_head is not None and existing_head == content[:FINGERPRINT_LENGTH]:
            return InstallDecision.SKIP
        return InstallDecision.INSTALL

    if path.endswith(DESCRIPTOR_SUFFIX):
        if read_build_number(content) <= firmware_build:
            return InstallDecision.SKIP
        return InstallDecision.INSTALL

    return InstallDecision.INSTALL


@dataclass
class InstallStats:
    installed: int = 0
    skipped: int = 0
    directories: int = 0


class InstallPolicy:
    """Applies the install rules for one device root."""

    def __init__(self, root: Path, firmware_build: int):
        """Initialize install policy.

        Args:
            root: Mounted device directory
            firmware_build: Build currently installed on the device
        """
        self.logger = logging.getLogger("skyup.install")
        self.root = Path(root)
        self.firmware_build = firmware_build
        self.stats = InstallStats()

    def target_path(self, entry: ArchiveEntry) -> Path:
        return self.root / entry.path

    async def _read_head(self, target: Path) -> Optional[bytes]:
        """First FINGERPRINT_LENGTH bytes of target, None if absent or shorter."""
        try:
            async with aiofiles.open(target, "rb") as f:
                head = await f.read(FINGERPRINT_LENGTH)
        except FileNotFoundError:
            return None
        except OSError as e:
            raise FileSystemIOError(f"Failed to read {target}: {e}") from e
        if len(head) < FINGERPRINT_LENGTH:
            return None
        return head

    async def _ensure_dir(self, directory: Path) -> None:
        try:
            await aiofiles.os.makedirs(directory, exist_ok=True)
        except OSError as e:
            raise FileSystemIOError(f"Failed to create directory {directory}: {e}") from e

    async def evaluate(self, entry: ArchiveEntry) -> InstallDecision:
        """Decide for a file entry, with the .xlb side effect.

        Any .xlb entry makes sure <root>/update/ exists, whatever the
        decision turns out to be.
        """
        target = self.target_path(entry)

        if entry.path.endswith(DESCRIPTOR_SUFFIX):
            await self._ensure_dir(self.root / UPDATE_DIR)

        existing_head = None
        if entry.path.endswith(FINGERPRINT_SUFFIXES):
            existing_head = await self._read_head(target)

        return decide(entry.path, existing_head, entry.content, self.firmware_build)

    async def apply(self, target: Path, content: bytes) -> None:
        """Atomically replace target with content.

        The content goes to <target>.tmp first, is fsynced, and is then
        renamed over target, so readers see either the old or the new
        file. A .tmp left behind by a crash is overwritten here.

        Raises:
            FileSystemIOError: If any write, sync, or rename fails
        """
        await self._ensure_dir(target.parent)
        tmp_path = target.with_name(target.name + TMP_SUFFIX)

        try:
            async with aiofiles.open(tmp_path, "wb") as f:
                await f.write(content)
                await f.flush()
                await asyncio.to_thread(os.fsync, f.fileno())
            await aiofiles.os.replace(tmp_path, target)
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            self.logger.error(f"Failed to write {target}: {e}")
            raise FileSystemIOError(f"Failed to write {target}: {e}") from e
        except asyncio.CancelledError:
            tmp_path.unlink(missing_ok=True)
            raise

    async def install(self, entry: ArchiveEntry) -> Optional[InstallDecision]:
        """Route one archive entry onto the device.

        Directories are created without a decision and return None.
        """
        target = self.target_path(entry)

        if entry.is_directory:
            await self._ensure_dir(target)
            self.stats.directories += 1
            return None

        decision = await self.evaluate(entry)
        if decision == InstallDecision.SKIP:
            self.stats.skipped += 1
            self.logger.debug(f"Skipping up-to-date file: {entry.path}")
            return decision

        await self.apply(target, entry.content)
        self.stats.installed += 1
        self.logger.debug(f"Installed {entry.path} ({len(entry.content)} bytes)")
        return decision
