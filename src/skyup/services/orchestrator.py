"""Update orchestrator: device check, concurrent pipelines, aggregated state."""

import asyncio
import logging
from pathlib import Path
from typing import Callable, Iterable, Optional

from skyup.config import SkyupConfig
from skyup.models.errors import ErrorKind, UpdateError, UpdateInProgressError, WrongDeviceError
from skyup.models.progress import ErrorInfo, UpdateState
from skyup.models.status import PipelineName, StageEnum
from skyup.services.archive import ArchiveExtractor
from skyup.services.device_info import DeviceInfoReader
from skyup.services.download import DownloadService
from skyup.services.pipeline import Pipeline
from skyup.services.state_manager import StateListener, StateManager


class UpdateOrchestrator:
    """Runs the essentials and system pipelines against one device root.

    Lifecycle: idle → validating → running → succeeded | failed, and back
    to idle through clear(). The first pipeline to fail decides the
    reported error; its sibling is cancelled and awaited before the
    failure is published.
    """

    def __init__(
        self,
        config: Optional[SkyupConfig] = None,
        state_manager: Optional[StateManager] = None,
        device_info_reader: Optional[DeviceInfoReader] = None,
        download_service: Optional[DownloadService] = None,
        extractor: Optional[ArchiveExtractor] = None,
    ):
        """Initialize orchestrator.

        Args:
            config: Service configuration (defaults when None)
            state_manager: Progress/error sink (a private one when None)
            device_info_reader: Reader for .sys/hwsw.info
            download_service: Shared by both pipelines
            extractor: Shared by both pipelines
        """
        self.logger = logging.getLogger("skyup.orchestrator")
        self.config = config or SkyupConfig()
        self.state_manager = state_manager or StateManager()
        self.device_info_reader = device_info_reader or DeviceInfoReader()
        self.download_service = download_service or DownloadService(
            chunk_size=self.config.chunk_size,
            timeout=self.config.http_timeout,
        )
        self.extractor = extractor or ArchiveExtractor()
        self._busy = False

    @property
    def is_running(self) -> bool:
        return self._busy

    def reserve(self) -> None:
        """Claim the orchestrator for an update that starts later.

        The caller must follow up with update(root, reserved=True).

        Raises:
            UpdateInProgressError: If an update is already running or reserved
        """
        if self._busy:
            raise UpdateInProgressError("An update is already in progress")
        self._busy = True

    def get_state(self) -> UpdateState:
        return self.state_manager.get_state()

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        return self.state_manager.subscribe(listener)

    def clear(self) -> None:
        """Return to idle with empty progress and no error.

        Raises:
            UpdateInProgressError: If an update is still running
        """
        if self._busy:
            raise UpdateInProgressError("Cannot clear state while an update is running")
        self.state_manager.reset()

    def set_error(self, message: Optional[str]) -> None:
        """Surface a caller-side error (or clear it with None)."""
        self.state_manager.set_error(message)

    def _pipelines(self) -> list[Pipeline]:
        urls = {
            PipelineName.ESSENTIALS: self.config.essentials_url,
            PipelineName.SYSTEM: self.config.system_url,
        }
        return [
            Pipeline(
                name,
                url,
                self.state_manager,
                download_service=self.download_service,
                extractor=self.extractor,
            )
            for name, url in urls.items()
        ]

    async def _cancel(self, tasks: Iterable[asyncio.Task]) -> None:
        tasks = list(tasks)
        for task in tasks:
            if not task.done():
                self.logger.warning(f"Cancelling {task.get_name()}")
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _run_pipelines(self, root: Path, firmware_build: int) -> None:
        tasks = [
            asyncio.create_task(
                pipeline.run(root, firmware_build),
                name=f"pipeline-{pipeline.name.value}",
            )
            for pipeline in self._pipelines()
        ]

        try:
            done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        except asyncio.CancelledError:
            await self._cancel(tasks)
            raise

        # Task order breaks ties when both fail in the same iteration
        failed = [
            task
            for task in tasks
            if task in done and not task.cancelled() and task.exception() is not None
        ]
        if failed:
            await self._cancel(pending)
            raise failed[0].exception()

        for task in tasks:
            task.result()

    async def update(self, root: Path, reserved: bool = False) -> UpdateState:
        """Validate the device and install both archives onto root.

        UpdateErrors do not propagate: they end up in the returned (and
        published) state as the terminal error.

        Args:
            root: Mounted device directory
            reserved: The caller already holds the slot taken by reserve()

        Returns:
            Final UpdateState snapshot

        Raises:
            UpdateInProgressError: If an update is already running
        """
        if not reserved:
            self.reserve()
        root = Path(root)

        try:
            self.state_manager.reset()
            self.state_manager.set_stage(StageEnum.VALIDATING, loading=True)

            info = await asyncio.to_thread(self.device_info_reader.read, root)
            if info.model_name != self.config.required_model:
                raise WrongDeviceError(
                    f"This device is not a {self.config.required_model} "
                    f"(found {info.model_name})"
                )

            self.state_manager.set_stage(StageEnum.RUNNING)
            self.logger.info(
                f"Updating {root} (model={info.model_name}, build={info.firmware_build})"
            )
            await self._run_pipelines(root, info.firmware_build)

            self.state_manager.set_stage(StageEnum.SUCCEEDED, loading=False)
            self.logger.info("Update succeeded")

        except UpdateError as e:
            self.state_manager.fail(ErrorInfo.from_exception(e))
        except asyncio.CancelledError:
            self.state_manager.fail(
                ErrorInfo(kind=ErrorKind.CANCELLED, message="Update cancelled")
            )
            raise
        except Exception as e:
            self.logger.error(f"Unexpected update failure: {e}", exc_info=True)
            self.state_manager.fail(ErrorInfo(kind=ErrorKind.INTERNAL, message=str(e)))
            raise
        finally:
            self._busy = False

        return self.state_manager.get_state()
