"""Listing Pipeline API.

Starts durable multi-step jobs (scrape, analyze, group, scripts,
auto-reel, final video) from trigger events and serves their progress:
- Trigger events (POST /events) and action routes that validate
  preconditions before creating a job
- Job progress polling with the attached listing or group
- Read-only views of listings, groups and workflow definitions
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.routes import events, groups, jobs, listings, workflows
from src.config import Settings
from src.container import ServiceContainer

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

VERSION = "0.1.0"


def create_app(container: Optional[ServiceContainer] = None) -> FastAPI:
    """Build the app. Without a container one is built from the environment at startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler."""
        # Startup: database, registry, orphaned-job recovery
        if getattr(app.state, "container", None) is None:
            app.state.container = ServiceContainer(Settings.from_env())
        logger.info("Initializing executor database and recovering jobs...")
        app.state.container.start()
        logger.info("Listing Pipeline API ready")
        yield
        # Shutdown
        logger.info("Shutting down Listing Pipeline API")
        app.state.container.shutdown()

    app = FastAPI(
        title="Listing Pipeline API",
        description="""
## Durable listing-to-video pipeline

Every request that starts work returns an event id. Poll
`GET /jobs/{event_id}/{listing|group}` for the job's current step and
the entity it is building.

### Key Endpoints

- `POST /events` - Trigger a workflow by event name
- `POST /listings/parse` - Scrape and analyze a listing URL
- `POST /listings/{id}/scripts` - Write voice-over scripts for a listing
- `POST /groups/{id}/auto-reel` - Generate a video from a group's photos
- `POST /groups/{id}/voice-over` - Synthesize the group's script
- `POST /groups/{id}/final-video` - Render the final video
- `GET /jobs/{id}` - Poll a job
""",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.container = container

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(events.router)
    app.include_router(jobs.router)
    app.include_router(listings.router)
    app.include_router(groups.router)
    app.include_router(workflows.router)

    @app.get("/")
    async def root():
        """Root endpoint with API info."""
        return {
            "service": "Listing Pipeline API",
            "version": VERSION,
            "docs": "/docs",
            "endpoints": {
                "events": "/events",
                "jobs": "/jobs",
                "listings": "/listings",
                "groups": "/groups",
                "workflows": "/workflows",
            },
        }

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        c: ServiceContainer = app.state.container
        return {
            "status": "healthy",
            "database": "postgres" if c.db.is_postgres else "sqlite",
            "workflows_loaded": c.registry.count(),
        }

    return app


app = create_app()
