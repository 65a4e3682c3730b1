"""Pydantic models for HTTP API requests and responses."""

from typing import Optional

from pydantic import BaseModel, Field

from skyup.models.progress import UpdateState
from skyup.models.status import StageEnum


class UpdateRequest(BaseModel):
    """POST /api/v1.0/update payload.

    Starts an update of the device mounted at root_path.

    Example:
        {
            "root_path": "/media/user/SKYTRAXX"
        }
    """

    root_path: str = Field(
        ...,
        min_length=1,
        description="Already mounted, writable device directory",
        examples=["/media/user/SKYTRAXX", "/mnt/5mini"],
    )


class ProgressResponse(BaseModel):
    """GET /api/v1.0/progress response.

    HTTP status is always 200; code is 500 when the update failed.
    """

    code: int = Field(..., description="Application-level status code (200/500)")
    msg: str = Field(..., description="Status message or error description")
    data: UpdateState = Field(..., description="Full update state")
    done: bool = Field(default=False, description="Both pipelines fully installed")


class SuccessResponse(BaseModel):
    """Success response for command endpoints."""

    code: int = Field(default=200, description="Application-level status code (200)")
    msg: str = Field(default="success", description="Success message")
    data: Optional[dict] = Field(None, description="Optional response data")


class ErrorResponse(BaseModel):
    """Error response for command endpoints.

    HTTP status code is always 200, real status in 'code' field.
    """

    code: int = Field(..., description="Application-level error code (404/409)")
    msg: str = Field(..., description="Error message")
    stage: Optional[StageEnum] = Field(None, description="Current stage")
