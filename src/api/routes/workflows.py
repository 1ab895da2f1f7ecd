"""Workflow definition routes (read-only).

Endpoints:
    GET /workflows                  List workflows with their declared steps
    GET /workflows/{workflow_name}  One workflow
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from src.api.deps import get_container
from src.container import ServiceContainer
from src.workflows.schemas import WorkflowSummary

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/workflows", tags=["workflows"])


@router.get("", response_model=list[WorkflowSummary])
async def list_workflows(container: ServiceContainer = Depends(get_container)):
    """List all workflows: trigger event, entity kind, steps and input schema."""
    return container.registry.list_all()


@router.get("/{workflow_name}", response_model=WorkflowSummary)
async def get_workflow(workflow_name: str, container: ServiceContainer = Depends(get_container)):
    for summary in container.registry.list_all():
        if summary.workflow_name == workflow_name:
            return summary
    raise HTTPException(status_code=404, detail=f"Workflow not found: {workflow_name}")
