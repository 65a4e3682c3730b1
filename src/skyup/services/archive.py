"""Two-pass tar extraction with entry-count progress."""

import asyncio
import io
import logging
import tarfile
from typing import Awaitable, Callable, Iterator, Optional

from skyup.models.archive import ArchiveEntry
from skyup.models.errors import ArchiveCorruptError

EntryCallback = Callable[[ArchiveEntry, float], Awaitable[None]]


def normalize_entry_path(name: str) -> str:
    """Make a tar member name relative to the device root.

    Leading "/" and "./" segments are dropped. Returns "" for the
    archive root itself.

    Raises:
        ArchiveCorruptError: If the name escapes the root via ".."
    """
    parts = [p for p in name.replace("\\", "/").split("/") if p not in ("", ".")]
    if ".." in parts:
        raise ArchiveCorruptError(f"Entry path must not contain '..': {name}")
    return "/".join(parts)


def _deliverable_path(member: tarfile.TarInfo) -> Optional[str]:
    """Normalized path for regular files and directories, None otherwise."""
    if not (member.isfile() or member.isdir()):
        return None
    path = normalize_entry_path(member.name)
    return path or None


def _open(data: bytes) -> tarfile.TarFile:
    return tarfile.open(fileobj=io.BytesIO(data), mode="r:")


def _check_end_of_archive(tar: tarfile.TarFile, data: bytes) -> None:
    """Make sure iteration stopped at the end-of-archive blocks.

    tarfile stops silently on a damaged or truncated header after the
    first one; whatever follows the last member must be non-empty NUL
    padding.

    Raises:
        ArchiveCorruptError: If the archive ends early or has a bad header
    """
    trailer = data[tar.offset:]
    if not trailer or trailer.count(0) != len(trailer):
        raise ArchiveCorruptError(
            f"Invalid tar archive: damaged or missing header at offset {tar.offset}"
        )


class ArchiveExtractor:
    """Walks a tar byte stream entry by entry.

    The first pass only counts entries so that the second pass can report
    processed / total after every entry.
    """

    def __init__(self):
        self.logger = logging.getLogger("skyup.archive")

    def count_entries(self, data: bytes) -> int:
        """Count deliverable entries (files and directories).

        Raises:
            ArchiveCorruptError: If the tar data cannot be parsed
        """
        try:
            with _open(data) as tar:
                count = sum(1 for member in tar if _deliverable_path(member))
                _check_end_of_archive(tar, data)
                return count
        except tarfile.TarError as e:
            raise ArchiveCorruptError(f"Invalid tar archive: {e}") from e

    def _iter_entries(self, tar: tarfile.TarFile) -> Iterator[ArchiveEntry]:
        for member in tar:
            path = _deliverable_path(member)
            if path is None:
                if member.isdir():
                    self.logger.debug(f"Skipping archive root member: {member.name}")
                else:
                    self.logger.warning(
                        f"Ignoring unsupported tar member: {member.name} (type={member.type!r})"
                    )
                continue

            if member.isdir():
                yield ArchiveEntry(path=path, is_directory=True)
                continue

            fileobj = tar.extractfile(member)
            content = fileobj.read() if fileobj is not None else b""
            yield ArchiveEntry(path=path, content=content)

    async def extract(self, data: bytes, on_entry: EntryCallback) -> int:
        """Deliver every entry of the archive in stream order.

        Args:
            data: Complete tar archive
            on_entry: Awaited with (entry, processed / total) per entry

        Returns:
            Number of entries delivered

        Raises:
            ArchiveCorruptError: If the tar data is malformed or has no entries
        """
        total = self.count_entries(data)
        if total == 0:
            raise ArchiveCorruptError("Archive contains no entries")
        self.logger.info(f"Archive contains {total} entries")

        processed = 0
        try:
            with _open(data) as tar:
                for entry in self._iter_entries(tar):
                    processed += 1
                    await on_entry(entry, processed / total)
                    # Let the sibling pipeline run between entries
                    await asyncio.sleep(0)
                _check_end_of_archive(tar, data)
        except tarfile.TarError as e:
            raise ArchiveCorruptError(
                f"Invalid tar archive after {processed} entries: {e}"
            ) from e

        return processed
