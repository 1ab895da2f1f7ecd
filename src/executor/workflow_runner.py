"""Top-level workflow execution.

A workflow body is ordinary Python that calls ctx.run(step, work) for
each declared step (and ctx.parallel({...}) for a declared fork group).
The StepContext enforces the declared order, writes the checkpoint
before the work starts, and hands the work's return value back as local
state.

Resume after a restart re-runs the body from the top. Steps declared
before the job's stored current_step are replayed without writing their
checkpoint again, so the checkpoint sequence a poller sees never moves
backwards. Replayed work must therefore be idempotent (upserts,
deterministic object keys, reuse of the attached entity).

Each job gets its own scheduler thread; WorkSlots bound how many of
them do active work at once, and poll loops hand their slot back while
they sleep. A per-process guard blocks double execution of the same job
id.
"""

import logging
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from typing import Any, Callable, Optional

import pydantic

from src.executor.errors import (
    StepCancelledError,
    StepFailedError,
    UndeclaredStepError,
    ValidationError,
)
from src.executor.job_manager import JobLedger
from src.executor.schemas import Job
from src.executor.slots import WorkSlots
from src.workflows.registry import WorkflowRegistry
from src.workflows.schemas import WorkflowDefinition, WorkflowStep

logger = logging.getLogger(__name__)


def _error_message(error: Exception) -> str:
    return str(error) or type(error).__name__


class StepContext:
    """Per-run handle passed to a workflow body."""

    def __init__(
        self,
        job: Job,
        definition: WorkflowDefinition,
        ledger: JobLedger,
        deps: Any = None,
        cancel_event: Optional[threading.Event] = None,
        slots: Optional[WorkSlots] = None,
    ):
        self.job = job
        self.definition = definition
        self.ledger = ledger
        self.deps = deps
        # Passed to poll_until_done so sleeping polls free the job's slot
        self.slots = slots
        self.cancel_event = cancel_event or threading.Event()
        self.label = f"{definition.workflow_name}:{job.id}"
        self._groups = definition.execution_groups()
        self._cursor = 0

        self._resume_index = definition.step_index(job.current_step)
        if job.current_step is not None and self._resume_index < 0:
            raise StepFailedError(
                f"Stored step '{job.current_step}' is not declared by "
                f"workflow '{definition.workflow_name}'"
            )
        if self._resume_index >= 0:
            logger.info(f"[{self.label}] Resuming, last checkpoint '{job.current_step}'")

    @property
    def job_id(self) -> str:
        return self.job.id

    @property
    def finished(self) -> bool:
        """True once every declared step has been run."""
        return self._cursor >= len(self._groups)

    @property
    def next_step(self) -> Optional[str]:
        if self.finished:
            return None
        return "+".join(s.step_name for s in self._groups[self._cursor])

    def attach_entity(self, entity_id: str) -> None:
        self.job = self.ledger.attach_entity(self.job.id, entity_id)

    def run(self, step_name: str, work: Callable[[], Any]) -> Any:
        """Checkpoint `step_name`, then run `work` and return its result."""
        step = self._take([step_name])[0]
        self._checkpoint(step)
        logger.info(f"[{self.label}] Running step {step_name}")
        return work()

    def parallel(self, works: dict[str, Callable[[], Any]]) -> dict[str, Any]:
        """Run a declared fork group concurrently.

        All checkpoints are written (in declared order) before any work
        starts. The first failure cancels the siblings and is re-raised.
        """
        group = self._take(list(works))
        if group[0].fork_group is None:
            raise UndeclaredStepError(
                self.definition.workflow_name, "+".join(works), "a declared fork group"
            )

        for step in group:
            self._checkpoint(step)

        results: dict[str, Any] = {}
        first_error: Optional[Exception] = None
        logger.info(
            f"[{self.label}] Running fork '{group[0].fork_group}': "
            f"{', '.join(s.step_name for s in group)}"
        )

        with ThreadPoolExecutor(
            max_workers=len(group),
            thread_name_prefix=f"fork-{self.job.id}",
        ) as executor:
            futures = {executor.submit(works[s.step_name]): s.step_name for s in group}
            for future in as_completed(futures):
                step_name = futures[future]
                try:
                    results[step_name] = future.result()
                except Exception as e:
                    if first_error is None:
                        first_error = e
                        logger.error(f"[{self.label}] Step {step_name} failed in fork: {e}")
                        self.cancel_event.set()
                    else:
                        logger.warning(f"[{self.label}] Step {step_name} stopped: {e}")

        if first_error is not None:
            raise first_error
        return results

    def _take(self, step_names: list[str]) -> list[WorkflowStep]:
        """Consume the next declared unit if it matches `step_names`."""
        if self.cancel_event.is_set():
            raise StepCancelledError(self.label)

        requested = "+".join(step_names)
        if self.finished:
            raise UndeclaredStepError(self.definition.workflow_name, requested, None)

        group = self._groups[self._cursor]
        if sorted(step_names) != sorted(s.step_name for s in group):
            raise UndeclaredStepError(self.definition.workflow_name, requested, self.next_step)

        self._cursor += 1
        return group

    def _checkpoint(self, step: WorkflowStep) -> None:
        if self.definition.step_index(step.step_name) < self._resume_index:
            logger.info(f"[{self.label}] Replaying {step.step_name} (already checkpointed)")
            return

        self.job = self.ledger.advance_step(self.job.id, step.step_name)
        if self.job.is_terminal:
            raise StepFailedError(f"Job {self.job.id} is already {self.job.status.value}")


class WorkflowRunner:
    """Runs one job to a terminal state."""

    def __init__(
        self,
        ledger: JobLedger,
        registry: WorkflowRegistry,
        deps: Any = None,
        slots: Optional[WorkSlots] = None,
    ):
        self.ledger = ledger
        self.registry = registry
        self.deps = deps
        self.slots = slots or WorkSlots(4)
        self._active_jobs: set[str] = set()
        self._active_jobs_lock = threading.Lock()

    def execute(self, job_id: str) -> Optional[Job]:
        """Run the job's workflow. Called from a worker thread.

        Never raises for workflow errors: they are recorded on the job.
        """
        # Guard against double-execution
        with self._active_jobs_lock:
            if job_id in self._active_jobs:
                logger.warning(
                    f"DUPLICATE EXECUTION BLOCKED: job {job_id} is already running"
                )
                return None
            self._active_jobs.add(job_id)

        try:
            with self.slots.hold():
                return self._execute(job_id)
        finally:
            with self._active_jobs_lock:
                self._active_jobs.discard(job_id)

    def _execute(self, job_id: str) -> Optional[Job]:
        job = self.ledger.get_by_id(job_id)
        if job is None:
            logger.error(f"Job {job_id} not found, nothing to execute")
            return None
        if job.is_terminal:
            logger.info(f"Job {job_id} is already {job.status.value}, skipping")
            return job

        try:
            self._run(job)
        except Exception as e:
            logger.error(f"Job {job_id} failed: {e}", exc_info=True)
            return self.ledger.fail(job_id, _error_message(e))

        return self.ledger.complete(job_id)

    def _run(self, job: Job) -> None:
        definition = self.registry.get(job.workflow_name)
        if definition is None:
            raise StepFailedError(f"Unknown workflow: {job.workflow_name}")

        payload = definition.input_model.model_validate(job.input)
        ctx = StepContext(job, definition, self.ledger, deps=self.deps, slots=self.slots)
        logger.info(f"[{ctx.label}] Starting workflow")

        definition.handler(ctx, payload)

        if not ctx.finished:
            raise StepFailedError(
                f"Workflow {definition.workflow_name} ended before step '{ctx.next_step}'"
            )
        logger.info(f"[{ctx.label}] Workflow finished")


class JobScheduler:
    """Turns trigger events into jobs and gives each job its own thread.

    `max_threads` caps live job threads (mostly idle pollers); how many
    jobs do active work at once is bounded by the runner's WorkSlots.
    """

    def __init__(
        self,
        ledger: JobLedger,
        registry: WorkflowRegistry,
        runner: WorkflowRunner,
        max_threads: int = 256,
    ):
        self.ledger = ledger
        self.registry = registry
        self.runner = runner
        self._pool = ThreadPoolExecutor(max_workers=max_threads, thread_name_prefix="job")
        self._futures: dict[str, Future] = {}
        self._lock = threading.RLock()

    def dispatch(self, event_name: str, data: dict, event_id: Optional[str] = None) -> Job:
        """Validate a trigger event, create its job, and schedule it.

        Redelivering an event id returns the existing job without
        starting a second run.
        """
        definition = self.registry.get_by_event(event_name)
        if definition is None:
            raise ValidationError(f"Unknown event: {event_name}")

        try:
            payload = definition.input_model.model_validate(data)
        except pydantic.ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            raise ValidationError(f"Invalid payload for {event_name}: {problems}") from e

        job = self.ledger.create(
            event_id or f"evt-{uuid.uuid4().hex}",
            definition.workflow_name,
            input=payload.model_dump(mode="json"),
        )
        if job.workflow_name != definition.workflow_name:
            raise ValidationError(
                f"Event id {job.id} already belongs to workflow {job.workflow_name}"
            )

        if not job.is_terminal:
            self.submit(job.id)
        return job

    def submit(self, job_id: str) -> Future:
        """Schedule a job unless it is already queued or running here."""
        with self._lock:
            existing = self._futures.get(job_id)
            if existing is not None and not existing.done():
                return existing

            future = self._pool.submit(self.runner.execute, job_id)
            self._futures[job_id] = future
            future.add_done_callback(lambda f: self._forget(job_id, f))
            logger.info(f"Scheduled job {job_id}")
            return future

    def _forget(self, job_id: str, future: Future) -> None:
        if not future.cancelled() and future.exception() is not None:
            logger.error(f"Job {job_id} worker crashed: {future.exception()}")
        with self._lock:
            if self._futures.get(job_id) is future:
                del self._futures[job_id]

    def wait(self, job_id: str, timeout: Optional[float] = None) -> Optional[Job]:
        """Block until the job's current run ends (used by tests and the CLI)."""
        with self._lock:
            future = self._futures.get(job_id)
        if future is not None:
            future.result(timeout=timeout)
        return self.ledger.get_by_id(job_id)

    def recover_orphaned_jobs(self) -> tuple[int, int]:
        """Resume jobs left running by a previous process.

        Returns (resumed_count, failed_count).
        """
        resumed = 0
        failed = 0
        for job in self.ledger.list_running():
            if self.registry.get(job.workflow_name) is None:
                self.ledger.fail(job.id, f"Resume failed: unknown workflow {job.workflow_name}")
                failed += 1
                continue
            logger.info(
                f"RESUME: orphaned job {job.id} ({job.workflow_name}) "
                f"at step {job.current_step or '-'}"
            )
            self.submit(job.id)
            resumed += 1

        if resumed or failed:
            logger.info(f"Orphan recovery: {resumed} resumed, {failed} failed")
        return resumed, failed

    def shutdown(self, wait: bool = False) -> None:
        self._pool.shutdown(wait=wait, cancel_futures=True)
