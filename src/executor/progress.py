"""Read-only progress snapshots for polling clients."""

import logging
from typing import Optional, Union

from src.executor.entity_store import EntityStore
from src.executor.job_manager import JobLedger
from src.executor.schemas import EntityKind, JobProgress, Listing, MediaGroup

logger = logging.getLogger(__name__)


class ProgressService:
    """Reads the job row and, on request, the entity it is attached to.

    Nothing is cached: every call reflects the committed database state.
    """

    def __init__(self, ledger: JobLedger, entities: EntityStore):
        self.ledger = ledger
        self.entities = entities

    def get_progress(
        self,
        job_id: str,
        entity_kind: Optional[EntityKind] = None,
    ) -> JobProgress:
        job = self.ledger.get_by_id(job_id)
        if job is None:
            return JobProgress(job=None, entity=None)

        entity: Optional[Union[Listing, MediaGroup]] = None
        if entity_kind is not None and job.entity_id:
            if entity_kind == EntityKind.LISTING:
                entity = self.entities.get_listing(job.entity_id)
            elif entity_kind == EntityKind.GROUP:
                entity = self.entities.get_group(job.entity_id)

        return JobProgress(job=job, entity=entity)
