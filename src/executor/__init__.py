"""Durable step executor for the listing pipeline.

Architecture (bottom-up):
- db: Database handle (Postgres or SQLite), raw SQL
- job_manager: JobLedger, one row per workflow invocation
- entity_store: Listing / MediaGroup / Media rows
- polling: poll_until_done over any PollableService
- workflow_runner: StepContext, WorkflowRunner, JobScheduler
- progress: read-only job + entity snapshots for pollers
"""
