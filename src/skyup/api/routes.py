"""API route handlers for the SkyUp update service."""

import logging
from pathlib import Path

from fastapi import APIRouter, BackgroundTasks, Request
from fastapi.responses import JSONResponse

from skyup.api.models import ErrorResponse, ProgressResponse, SuccessResponse, UpdateRequest
from skyup.models.errors import UpdateInProgressError
from skyup.models.status import StageEnum
from skyup.services.orchestrator import UpdateOrchestrator

router = APIRouter(prefix="/api/v1.0")
logger = logging.getLogger("skyup.api")


def _orchestrator(request: Request) -> UpdateOrchestrator:
    return request.app.state.orchestrator


def _error(code: int, msg: str, stage: StageEnum) -> JSONResponse:
    body = ErrorResponse(code=code, msg=msg, stage=stage)
    return JSONResponse(status_code=200, content=body.model_dump(mode="json"))


@router.get("/progress", response_model=ProgressResponse)
async def get_progress(request: Request):
    """GET /api/v1.0/progress - Poll the current update state.

    Response format (running):
        {
            "code": 200,
            "msg": "success",
            "data": {
                "stage": "running",
                "loading": true,
                "essentials": {"download_fraction": 1.0, "install_fraction": 0.4,
                               "current_install_file": "fonts/a.otb"},
                "system": {"download_fraction": 0.7, "install_fraction": 0.0,
                           "current_install_file": ""},
                "error": null
            },
            "done": false
        }

    Response format (failed stage):
        {
            "code": 500,
            "msg": "Update failed: HttpError: Unexpected HTTP status 500 for ...",
            "data": {..., "stage": "failed", "error": {"kind": "HttpError", ...}},
            "done": false
        }
    """
    state = _orchestrator(request).get_state()

    if state.stage == StageEnum.FAILED:
        msg = "Update failed"
        if state.error is not None:
            msg = f"Update failed: {state.error.kind.value}: {state.error.message}"
        return ProgressResponse(code=500, msg=msg, data=state, done=state.done)

    return ProgressResponse(code=200, msg="success", data=state, done=state.done)


@router.post("/update", response_model=SuccessResponse)
async def post_update(
    payload: UpdateRequest, request: Request, background_tasks: BackgroundTasks
):
    """POST /api/v1.0/update - Start updating the device at root_path.

    Returns:
        SuccessResponse if the update was scheduled, otherwise an
        ErrorResponse with code 409 (already running) or 404 (no such
        directory)
    """
    orchestrator = _orchestrator(request)
    current = orchestrator.get_state()

    if orchestrator.is_running:
        return _error(409, f"Update already in progress: {current.stage.value}", current.stage)

    root = Path(payload.root_path)
    if not root.is_dir():
        return _error(404, f"Device root not found: {payload.root_path}", current.stage)

    # Claimed here so a second request is refused before the task starts
    try:
        orchestrator.reserve()
    except UpdateInProgressError as e:
        return _error(409, str(e), current.stage)

    background_tasks.add_task(_update_workflow, orchestrator, root)
    return SuccessResponse()


@router.post("/clear", response_model=SuccessResponse)
async def post_clear(request: Request):
    """POST /api/v1.0/clear - Dismiss the last result and return to idle."""
    orchestrator = _orchestrator(request)
    try:
        orchestrator.clear()
    except UpdateInProgressError as e:
        return _error(409, str(e), orchestrator.get_state().stage)
    return SuccessResponse()


async def _update_workflow(orchestrator: UpdateOrchestrator, root: Path) -> None:
    """Background task running the update reserved by post_update."""
    try:
        await orchestrator.update(root, reserved=True)
    except Exception as e:
        # Already recorded in the state by the orchestrator
        logger.error(f"Update workflow crashed: {e}")
