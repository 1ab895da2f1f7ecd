"""Listing Pipeline - durable workflows that turn a listing URL into short videos.

- executor: job ledger, entity store, step runner and scheduler
- providers: scraper, auto-reel, render, TTS and storage adapters
- llm: photo description, grouping and script writing
- workflows: the four listing / group workflows
- api: FastAPI surface for events, jobs and entities
"""

__version__ = "0.1.0"
