"""Runtime configuration for the SkyUp updater."""

import logging
import os
from typing import Mapping, Optional

from pydantic import BaseModel, Field, field_validator

ENV_PREFIX = "SKYUP_"

DEFAULT_ESSENTIALS_URL = "https://www.skytraxx.org/skytraxx5mini/skytraxx5mini-essentials.tar"
DEFAULT_SYSTEM_URL = "https://www.skytraxx.org/skytraxx5mini/skytraxx5mini-system.tar"


class SkyupConfig(BaseModel):
    """Engine and service settings.

    Every field can be overridden through a SKYUP_-prefixed environment
    variable, see from_env().
    """

    essentials_url: str = Field(
        default=DEFAULT_ESSENTIALS_URL,
        pattern=r"^https?://.+",
        description="Tar archive with the essentials set",
    )
    system_url: str = Field(
        default=DEFAULT_SYSTEM_URL,
        pattern=r"^https?://.+",
        description="Tar archive with the system set",
    )
    required_model: str = Field(default="5mini", min_length=1)
    chunk_size: int = Field(default=4096, gt=0, description="Download read size in bytes")
    http_timeout: Optional[float] = Field(
        default=30.0, gt=0, description="HTTP client timeout in seconds, None disables"
    )
    log_file: str = Field(default="./logs/skyup.log")
    log_level: str = Field(default="INFO")
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=12316, gt=0, lt=65536)

    @field_validator("log_level")
    @classmethod
    def known_log_level(cls, v: str) -> str:
        """Accept only level names the logging module knows."""
        level = v.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator("http_timeout", mode="before")
    @classmethod
    def parse_disabled_timeout(cls, v):
        if isinstance(v, str) and v.strip().lower() in ("", "none", "off"):
            return None
        return v

    @property
    def log_level_value(self) -> int:
        return logging.getLevelName(self.log_level)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "SkyupConfig":
        """Build config from SKYUP_* environment variables.

        Args:
            environ: Mapping to read instead of os.environ (tests)

        Raises:
            pydantic.ValidationError: If a value is invalid
        """
        environ = os.environ if environ is None else environ
        overrides = {}
        for name in cls.model_fields:
            key = f"{ENV_PREFIX}{name.upper()}"
            if key in environ:
                overrides[name] = environ[key]
        return cls(**overrides)
