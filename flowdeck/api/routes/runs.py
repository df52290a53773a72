"""
Run artifact endpoints for the flowdeck API.

Read-only access to what step execution persisted for a run:
- GET /api/runs/{run_id}/progress      - The cumulative progress log
- GET /api/runs/{run_id}/step-outputs  - Names of the step artifacts
- GET /api/runs/{run_id}/step-outputs/{filename} - One step artifact
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from flowdeck.runtime.errors import InvalidRunIdError
from flowdeck.runtime.storage import list_step_outputs, read_progress, read_step_output

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/runs", tags=["runs"])


# =============================================================================
# Pydantic Models
# =============================================================================


class ProgressResponse(BaseModel):
    """Response for GET /api/runs/{run_id}/progress."""

    run_id: str
    exists: bool
    content: str = ""


class StepOutputListResponse(BaseModel):
    """Response for GET /api/runs/{run_id}/step-outputs."""

    run_id: str
    files: List[str]


class StepOutputResponse(BaseModel):
    """Response for GET /api/runs/{run_id}/step-outputs/{filename}."""

    run_id: str
    filename: str
    content: str


# =============================================================================
# Helper Functions
# =============================================================================


def _get_runs_dir(request: Request) -> Path:
    return request.app.state.runs_dir


def _invalid_run_id(e: InvalidRunIdError) -> HTTPException:
    return HTTPException(
        status_code=400,
        detail={
            "error": "invalid_run_id",
            "message": str(e),
            "details": {"run_id": e.run_id},
        },
    )


# =============================================================================
# Endpoints
# =============================================================================


@router.get("/{run_id}/progress", response_model=ProgressResponse)
async def get_progress(run_id: str, request: Request):
    """Get a run's progress log.

    A run with no steps logged yet returns ``exists: false`` and empty content.

    Raises:
        400: If run_id is not a safe directory name.
    """
    try:
        content = read_progress(run_id, _get_runs_dir(request))
    except InvalidRunIdError as e:
        raise _invalid_run_id(e)

    return ProgressResponse(run_id=run_id, exists=content is not None, content=content or "")


@router.get("/{run_id}/step-outputs", response_model=StepOutputListResponse)
async def get_step_outputs(run_id: str, request: Request):
    """List the step artifacts written for a run.

    Raises:
        400: If run_id is not a safe directory name.
    """
    try:
        files = list_step_outputs(run_id, _get_runs_dir(request))
    except InvalidRunIdError as e:
        raise _invalid_run_id(e)

    return StepOutputListResponse(run_id=run_id, files=files)


@router.get("/{run_id}/step-outputs/{filename}", response_model=StepOutputResponse)
async def get_step_output(run_id: str, filename: str, request: Request):
    """Read one step artifact.

    Raises:
        400: If run_id is not a safe directory name.
        404: If the run has no artifact with that name.
    """
    try:
        content = read_step_output(run_id, filename, _get_runs_dir(request))
    except InvalidRunIdError as e:
        raise _invalid_run_id(e)

    if content is None:
        raise HTTPException(
            status_code=404,
            detail={
                "error": "step_output_not_found",
                "message": f"Step output '{filename}' not found for run {run_id}",
                "details": {"run_id": run_id, "filename": filename},
            },
        )
    return StepOutputResponse(run_id=run_id, filename=filename, content=content)
