"""In-memory update state shared by the orchestrator and its pipelines."""

import logging
import threading
from typing import Callable, Optional

from skyup.models.errors import ErrorKind
from skyup.models.progress import ErrorInfo, UpdateState
from skyup.models.status import PipelineName, StageEnum

StateListener = Callable[[UpdateState], None]


class StateManager:
    """Single sink for progress and error updates.

    Both pipelines write here concurrently; every mutation is serialized by
    a lock, fractions never move backwards, and each accepted change is
    published to subscribers as a deep copy, in mutation order.
    """

    def __init__(self):
        self.logger = logging.getLogger("skyup.state_manager")
        self._lock = threading.RLock()
        self._state = UpdateState()
        self._listeners: list[StateListener] = []

    def get_state(self) -> UpdateState:
        """Snapshot of the current state (safe to keep and mutate)."""
        with self._lock:
            return self._state.model_copy(deep=True)

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a listener called with a snapshot after every change.

        Returns:
            Function that removes the listener again
        """
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _publish(self) -> None:
        snapshot = self._state.model_copy(deep=True)
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                # Observers must not be able to break an update run
                self.logger.error(f"State listener failed: {e}", exc_info=True)

    def set_stage(self, stage: StageEnum, loading: Optional[bool] = None) -> None:
        with self._lock:
            self._state.stage = stage
            if loading is not None:
                self._state.loading = loading
            self.logger.info(f"Stage changed: {stage.value}")
            self._publish()

    def update_pipeline(
        self,
        name: PipelineName,
        download_fraction: Optional[float] = None,
        install_fraction: Optional[float] = None,
        current_install_file: Optional[str] = None,
    ) -> None:
        """Update one pipeline's progress record.

        Fractions lower than the stored value are ignored so observers
        always see non-decreasing progress.
        """
        with self._lock:
            progress = self._state.pipeline(name)
            changed = False
            if download_fraction is not None and download_fraction > progress.download_fraction:
                progress.download_fraction = min(download_fraction, 1.0)
                changed = True
            if install_fraction is not None and install_fraction > progress.install_fraction:
                progress.install_fraction = min(install_fraction, 1.0)
                changed = True
            if current_install_file is not None and current_install_file != progress.current_install_file:
                progress.current_install_file = current_install_file
                changed = True
            if changed:
                self._publish()

    def fail(self, error: ErrorInfo) -> None:
        """Record the terminal error and move to the failed stage."""
        with self._lock:
            self._state.error = error
            self._state.stage = StageEnum.FAILED
            self._state.loading = False
            self.logger.error(f"Update failed: {error.kind.value}: {error.message}")
            self._publish()

    def set_error(self, message: Optional[str], kind: ErrorKind = ErrorKind.EXTERNAL) -> None:
        """Set or clear an error without touching the stage."""
        with self._lock:
            self._state.error = ErrorInfo(kind=kind, message=message) if message else None
            self._publish()

    def reset(self) -> None:
        """Back to a fresh idle state with empty progress."""
        with self._lock:
            self._state = UpdateState()
            self.logger.info("State reset to idle")
            self._publish()
