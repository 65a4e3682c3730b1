"""Device metadata model."""

from pydantic import BaseModel, Field


class DeviceInfo(BaseModel):
    """Identity of the mounted device, read from .sys/hwsw.info."""

    model_name: str = Field(..., min_length=1, description="Hardware model (hw key)")
    firmware_build: int = Field(..., description="Installed firmware build (sw key)")
