"""One download → extract → install sequence for a single archive."""

import logging
from pathlib import Path
from typing import Optional

from skyup.models.archive import ArchiveEntry
from skyup.models.status import PipelineName
from skyup.services.archive import ArchiveExtractor
from skyup.services.download import DownloadService
from skyup.services.install import InstallPolicy, InstallStats
from skyup.services.state_manager import StateManager


class Pipeline:
    """Drives one archive from URL to device, feeding one progress record."""

    def __init__(
        self,
        name: PipelineName,
        url: str,
        state_manager: StateManager,
        download_service: Optional[DownloadService] = None,
        extractor: Optional[ArchiveExtractor] = None,
    ):
        self.logger = logging.getLogger(f"skyup.pipeline.{name.value}")
        self.name = name
        self.url = url
        self.state_manager = state_manager
        self.download_service = download_service or DownloadService()
        self.extractor = extractor or ArchiveExtractor()

    def _on_download_progress(self, fraction: float) -> None:
        self.state_manager.update_pipeline(self.name, download_fraction=fraction)

    async def run(self, root: Path, firmware_build: int) -> InstallStats:
        """Download, extract and install the archive onto root.

        Args:
            root: Mounted device directory
            firmware_build: Build currently installed on the device

        Returns:
            Counts of installed, skipped and directory entries

        Raises:
            UpdateError: Any failure, unchanged, for the orchestrator
        """
        self.logger.info(f"Pipeline started: url={self.url}")
        archive = await self.download_service.download(
            self.url, on_progress=self._on_download_progress
        )

        policy = InstallPolicy(root, firmware_build)

        async def on_entry(entry: ArchiveEntry, fraction: float) -> None:
            self.state_manager.update_pipeline(
                self.name,
                install_fraction=fraction,
                current_install_file=entry.path,
            )
            await policy.install(entry)

        await self.extractor.extract(archive, on_entry)

        stats = policy.stats
        self.logger.info(
            f"Pipeline finished: installed={stats.installed}, "
            f"skipped={stats.skipped}, directories={stats.directories}"
        )
        return stats
