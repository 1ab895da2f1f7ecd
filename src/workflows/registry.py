"""Workflow registry: lookup by workflow name or trigger event."""

import logging
from typing import Optional

from .schemas import WorkflowDefinition, WorkflowSummary

logger = logging.getLogger(__name__)


class WorkflowRegistry:
    """Registry for workflow definitions.

    Definitions are registered in code (see build_default_registry).
    """

    def __init__(self, definitions: Optional[list[WorkflowDefinition]] = None):
        self._workflows: dict[str, WorkflowDefinition] = {}
        self._by_event: dict[str, WorkflowDefinition] = {}
        for definition in definitions or []:
            self.register(definition)

    def register(self, definition: WorkflowDefinition) -> None:
        if definition.workflow_name in self._workflows:
            raise ValueError(f"Workflow already registered: {definition.workflow_name}")
        if definition.event_name in self._by_event:
            raise ValueError(f"Event already bound: {definition.event_name}")
        self._workflows[definition.workflow_name] = definition
        self._by_event[definition.event_name] = definition
        logger.debug(f"Registered workflow {definition.workflow_name} ({definition.event_name})")

    def get(self, workflow_name: str) -> Optional[WorkflowDefinition]:
        """Get a workflow definition by name."""
        return self._workflows.get(workflow_name)

    def get_by_event(self, event_name: str) -> Optional[WorkflowDefinition]:
        """Get the workflow a trigger event starts."""
        return self._by_event.get(event_name)

    def list_all(self) -> list[WorkflowSummary]:
        """List all workflow summaries."""
        return [
            WorkflowSummary(
                workflow_name=w.workflow_name,
                event_name=w.event_name,
                description=w.description,
                entity_kind=w.entity_kind,
                steps=w.steps,
                input_schema=w.input_model.model_json_schema(),
            )
            for w in self._workflows.values()
        ]

    def count(self) -> int:
        return len(self._workflows)


def build_default_registry() -> WorkflowRegistry:
    """Registry with the four listing workflows."""
    from .definitions import ALL_DEFINITIONS

    return WorkflowRegistry(ALL_DEFINITIONS)
