"""Archive entry model."""

from pydantic import BaseModel, Field


class ArchiveEntry(BaseModel):
    """A single tar member handed to the install policy.

    Directory entries always carry empty content.
    """

    path: str = Field(..., min_length=1, description="Path relative to the device root")
    is_directory: bool = Field(default=False)
    content: bytes = Field(default=b"", repr=False)
