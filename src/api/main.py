"""
FastAPI application entry point.

Operator review surface for the resolution engine: stage and resolve
batches, inspect and amend ledger decisions, triage unresolved candidates,
export publications.
"""

from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import Depends, FastAPI

from src import __version__
from src.infra.data_paths import get_resolution_db_path
from .routers import batches, ledger, publications
from ._resolver_state import init_resolver, shutdown_resolver
from .dependencies.auth import verify_api_key, API_AUTH_ENABLED

load_dotenv()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Opens the resolution store on startup and drops it on shutdown.
    """
    init_resolver(get_resolution_db_path())

    yield

    shutdown_resolver()


# Tag metadata for Swagger UI
tags_metadata = [
    {
        "name": "batches",
        "description": "Batch operations - stage candidates, resolve a batch, list unresolved candidates",
    },
    {
        "name": "ledger",
        "description": "Resolution ledger - inspect decisions, record amendments, triage unresolved candidates",
    },
    {
        "name": "publications",
        "description": "Publication export - ordered canonical articles with update history",
    },
]

app = FastAPI(
    title="Publication Resolution API",
    lifespan=lifespan,
    description="""
## Publication Resolution API

Review surface for the daily duplicate-detection and publication-resolution engine.

### Authentication
When `API_AUTH_ENABLED=true`, all endpoints except `/health` require an `X-API-Key`
header matching the `API_KEY` environment variable.

### Usage
```bash
# Start server
uvicorn src.api.main:app --host 127.0.0.1 --port 8000

# Stage and resolve a batch
curl -X POST http://localhost:8000/batches/2025-10-14/candidates \\
  -H "Content-Type: application/json" \\
  -d '{"candidates": [{"candidate_id": "c1", "headline": "...", "summary": "...", "body": "..."}]}'
curl -X POST http://localhost:8000/batches/2025-10-14/resolve
```
    """,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=tags_metadata,
)


# Health check - NO authentication
@app.get("/health")
async def health_check():
    """Health check endpoint. Not authenticated."""
    return {"status": "ok", "version": __version__}


# Include routers WITH authentication dependency (when enabled)
auth_dependency = [Depends(verify_api_key)] if API_AUTH_ENABLED else []

app.include_router(
    batches.router, prefix="/batches", tags=["batches"], dependencies=auth_dependency
)
app.include_router(
    ledger.router, prefix="/ledger", tags=["ledger"], dependencies=auth_dependency
)
app.include_router(
    publications.router, prefix="/publications", tags=["publications"], dependencies=auth_dependency
)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="127.0.0.1", port=8000)
