"""Workflow schemas for the listing pipeline.

A workflow is an ordered list of named steps. Consecutive steps that
share a fork_group run concurrently; every other step runs alone. The
step list is the closed set of names the executor will accept for a
workflow, in the only order it will accept them.
"""

from typing import Any, Callable, Optional

from pydantic import AnyHttpUrl, BaseModel, ConfigDict, Field, model_validator

from src.executor.schemas import FINISHED_STEP, EntityKind

SETUP_STEP = "setup"


class WorkflowStep(BaseModel):
    """A single declared step of a workflow."""

    step_name: str = Field(..., description="Checkpoint name written to the job row")
    label: str = Field(default="", description="Human-readable progress label")
    fork_group: Optional[str] = Field(
        default=None,
        description="Steps sharing a fork group run concurrently (must be adjacent)",
    )


class WorkflowDefinition(BaseModel):
    """Definition of one workflow: trigger, steps, input and body."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    workflow_name: str = Field(..., description="Unique key, stored on the job row")
    event_name: str = Field(..., description="Trigger event that starts this workflow")
    description: str = ""
    entity_kind: EntityKind = Field(..., description="Kind of entity the job attaches to")
    steps: list[WorkflowStep]
    input_model: type[BaseModel] = Field(..., exclude=True)
    handler: Callable[..., Any] = Field(
        ...,
        exclude=True,
        description="run(ctx, payload): executes the steps through the StepContext",
    )

    @model_validator(mode="after")
    def _check_steps(self):
        names = [s.step_name for s in self.steps]
        if len(names) != len(set(names)):
            raise ValueError(f"Workflow {self.workflow_name} declares a step twice")
        if not names or names[0] != SETUP_STEP or names[-1] != FINISHED_STEP:
            raise ValueError(
                f"Workflow {self.workflow_name} must start with '{SETUP_STEP}' "
                f"and end with '{FINISHED_STEP}'"
            )

        seen_groups: set[str] = set()
        previous = None
        for step in self.steps:
            group = step.fork_group
            if group and group != previous:
                if group in seen_groups:
                    raise ValueError(
                        f"Fork group '{group}' in {self.workflow_name} is not contiguous"
                    )
                seen_groups.add(group)
            previous = group
        return self

    @property
    def step_names(self) -> list[str]:
        return [s.step_name for s in self.steps]

    def step_index(self, step_name: Optional[str]) -> int:
        """Position of a step in declared order, -1 if unknown or None."""
        if step_name is None:
            return -1
        try:
            return self.step_names.index(step_name)
        except ValueError:
            return -1

    def execution_groups(self) -> list[list[WorkflowStep]]:
        """Steps in execution order. Each inner list runs as one unit."""
        groups: list[list[WorkflowStep]] = []
        for step in self.steps:
            if step.fork_group and groups and groups[-1][0].fork_group == step.fork_group:
                groups[-1].append(step)
            else:
                groups.append([step])
        return groups


class WorkflowSummary(BaseModel):
    """Lightweight summary for listing workflows."""

    workflow_name: str
    event_name: str
    description: str
    entity_kind: EntityKind
    steps: list[WorkflowStep]
    input_schema: dict[str, Any] = Field(default_factory=dict)


# --- Trigger payloads ---


class ParseListingInput(BaseModel):
    url: AnyHttpUrl = Field(..., description="Public listing page to scrape")


class ListingJobInput(BaseModel):
    listing_id: str = Field(..., min_length=1)


class GroupJobInput(BaseModel):
    group_id: str = Field(..., min_length=1)
