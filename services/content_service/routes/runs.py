# runs.py - Start/monitor content generation runs
# This file defines the API endpoints for starting, polling and cancelling workflow runs.

from fastapi import APIRouter, HTTPException, Depends
import logging

from ..errors import ContentWorkflowError, MissingSeedInput, NoMatchingWorkflow
from ..models import GenerationRequest, PhaseStatus, RunResult, RunStatus
from ..workflow_engine import FINISHED_STATUSES, WorkflowEngine
from .workflows import get_engine

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/runs", tags=["runs"])

@router.post("/", response_model=RunResult, status_code=202)
async def start_run(
    request: GenerationRequest,
    engine: WorkflowEngine = Depends(get_engine)
):
    """Start a run in the background and return its pending record."""
    try:
        model = engine.select(request.quality_level, request.content_type, request.workflow_id,
                             request.platform)
        run = await engine.start_run(model, request.seed)
        logger.info(f"Started run {run.run_id} with workflow {model.id}")
        return run

    except NoMatchingWorkflow as e:
        raise HTTPException(status_code=404, detail=str(e))
    except MissingSeedInput as e:
        raise HTTPException(status_code=422, detail=str(e))
    except ContentWorkflowError as e:
        raise HTTPException(status_code=429, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to start run: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

@router.post("/sync", response_model=RunResult)
async def run_sync(
    request: GenerationRequest,
    engine: WorkflowEngine = Depends(get_engine)
):
    """Run a workflow and wait for its result."""
    try:
        return await engine.run_workflow(
            request.quality_level, request.content_type, request.seed, request.workflow_id,
            platform=request.platform
        )

    except NoMatchingWorkflow as e:
        raise HTTPException(status_code=404, detail=str(e))
    except MissingSeedInput as e:
        raise HTTPException(status_code=422, detail=str(e))
    except Exception as e:
        logger.error(f"Run failed: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

@router.get("/{run_id}", response_model=RunResult)
async def get_run(
    run_id: str,
    engine: WorkflowEngine = Depends(get_engine)
):
    """Get a run record, live or persisted."""
    run = await engine.get_run(run_id)
    if not run:
        raise HTTPException(status_code=404, detail="Run not found")
    return run

@router.get("/{run_id}/status")
async def get_run_status(
    run_id: str,
    engine: WorkflowEngine = Depends(get_engine)
):
    """Get run status and phase progress."""
    run = await engine.get_run(run_id)
    if not run:
        raise HTTPException(status_code=404, detail="Run not found")

    model = engine.registry.get(run.workflow_id)
    total_phases = len(model.phases) if model else len(run.phase_results)
    completed_phases = sum(1 for r in run.phase_results if r.status == PhaseStatus.SUCCEEDED)
    progress_percentage = (completed_phases / total_phases * 100) if total_phases > 0 else 0
    current_phase = None
    if run.status == RunStatus.RUNNING and model and len(run.phase_results) < total_phases:
        current_phase = engine.registry.execution_order(model.id)[len(run.phase_results)]

    return {
        "run_id": run_id,
        "workflow_id": run.workflow_id,
        "status": run.status,
        "progress_percentage": round(progress_percentage, 2),
        "completed_phases": completed_phases,
        "total_phases": total_phases,
        "current_phase": current_phase,
        "total_tokens": run.total_tokens,
        "started_at": run.started_at,
        "completed_at": run.completed_at,
        "error": run.error
    }

@router.post("/{run_id}/cancel")
async def cancel_run(
    run_id: str,
    engine: WorkflowEngine = Depends(get_engine)
):
    """Cancel a running run."""
    run = await engine.get_run(run_id)
    if not run:
        raise HTTPException(status_code=404, detail="Run not found")
    if run.status in FINISHED_STATUSES:
        raise HTTPException(
            status_code=400,
            detail=f"Cannot cancel run with status: {run.status.value}"
        )

    cancelled = await engine.cancel_run(run_id)
    if cancelled:
        return {"message": f"Run {run_id} cancellation requested"}
    return {"message": f"Run {run_id} was not running"}
