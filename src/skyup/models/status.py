"""Status enums for the SkyUp update engine."""

from enum import Enum


class StageEnum(str, Enum):
    """Orchestrator lifecycle stages.

    State transitions:
    idle → validating → running → succeeded
                ↓           ↓
              failed ←──────
    succeeded / failed → idle (explicit clear)
    """

    IDLE = "idle"
    VALIDATING = "validating"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class PipelineName(str, Enum):
    """The two independent archive pipelines."""

    ESSENTIALS = "essentials"
    SYSTEM = "system"


class InstallDecision(str, Enum):
    """Per-entry outcome of the install policy. Never persisted."""

    SKIP = "skip"
    INSTALL = "install"
