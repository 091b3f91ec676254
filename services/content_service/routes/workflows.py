# workflows.py - Read-only endpoints for workflow models
# This file defines the API endpoints for listing, inspecting and selecting workflow models.

from fastapi import APIRouter, HTTPException, Depends, Request
from typing import List
import logging

from ..errors import NoMatchingWorkflow
from ..models import SelectionRequest, WorkflowModel, WorkflowSummary
from ..workflow_engine import WorkflowEngine

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/workflows", tags=["workflows"])

# Dependencies
def get_engine(request: Request) -> WorkflowEngine:
    return request.app.state.workflow_engine

@router.get("/", response_model=List[WorkflowSummary])
async def list_workflows(
    engine: WorkflowEngine = Depends(get_engine)
):
    """List registered workflow models in registration order."""
    try:
        return engine.registry.summaries()

    except Exception as e:
        logger.error(f"Failed to list workflow models: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

@router.get("/{workflow_id}", response_model=WorkflowModel)
async def get_workflow(
    workflow_id: str,
    engine: WorkflowEngine = Depends(get_engine)
):
    """Get the full definition of a workflow model."""
    model = engine.registry.get(workflow_id)
    if not model:
        raise HTTPException(status_code=404, detail="Workflow model not found")
    return model

@router.post("/select", response_model=WorkflowSummary)
async def select_workflow(
    request: SelectionRequest,
    engine: WorkflowEngine = Depends(get_engine)
):
    """Preview which workflow model a generation request would use."""
    try:
        model = engine.select(request.quality_level, request.content_type, request.workflow_id,
                              request.platform)
        return engine.registry.summary(model)

    except NoMatchingWorkflow as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to select workflow: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))
