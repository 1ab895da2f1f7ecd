"""Workflow definitions for the listing pipeline.

Each workflow declares its trigger event, its ordered steps (with fork
groups), its input model, and a body that runs the steps through a
StepContext.
"""

from .schemas import WorkflowDefinition, WorkflowStep, WorkflowSummary
from .registry import WorkflowRegistry, build_default_registry

__all__ = [
    "WorkflowDefinition",
    "WorkflowStep",
    "WorkflowSummary",
    "WorkflowRegistry",
    "build_default_registry",
]
