"""Progress and update state models published to observers."""

from typing import Optional

from pydantic import BaseModel, Field

from skyup.models.errors import ErrorKind, UpdateError
from skyup.models.status import PipelineName, StageEnum


class PipelineProgress(BaseModel):
    """Progress record of one pipeline (essentials or system)."""

    download_fraction: float = Field(default=0.0, ge=0.0, le=1.0)
    install_fraction: float = Field(default=0.0, ge=0.0, le=1.0)
    current_install_file: str = Field(default="")

    @property
    def complete(self) -> bool:
        return self.download_fraction == 1.0 and self.install_fraction == 1.0


class ErrorInfo(BaseModel):
    """Terminal error exposed verbatim to the caller."""

    kind: ErrorKind
    message: str
    status: Optional[int] = Field(None, description="HTTP status for HttpError")

    @classmethod
    def from_exception(cls, exc: UpdateError) -> "ErrorInfo":
        return cls(kind=exc.kind, message=exc.message, status=exc.status)


class UpdateState(BaseModel):
    """Aggregated state of an update run.

    Owned by the orchestrator's StateManager; observers only ever receive
    deep copies.
    """

    stage: StageEnum = Field(default=StageEnum.IDLE)
    loading: bool = Field(default=False)
    essentials: PipelineProgress = Field(default_factory=PipelineProgress)
    system: PipelineProgress = Field(default_factory=PipelineProgress)
    error: Optional[ErrorInfo] = Field(default=None)

    def pipeline(self, name: PipelineName) -> PipelineProgress:
        if name == PipelineName.ESSENTIALS:
            return self.essentials
        return self.system

    @property
    def done(self) -> bool:
        """Both pipelines fully downloaded and installed."""
        return self.essentials.complete and self.system.complete
