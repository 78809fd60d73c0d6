"""
main.py

Entry point for the Construction Site Dashboard API.

Configures logging, builds the configured key-value store, wires it into the
FastAPI app and starts uvicorn.

Usage
-----
    # Option 1 — run directly
    python main.py

    # Option 2 — run via uvicorn CLI (recommended for development)
    uvicorn main:app --reload --port 8000

Configuration comes from environment variables (see config.py):

    SITEBOARD_STORAGE=memory      # keep everything in process memory
    SITEBOARD_DATA_DIR=/var/lib/siteboard
    SITEBOARD_LOG_LEVEL=DEBUG
    MAP_ACCESS_TOKEN=pk.xxxxx     # enables the materials stock map

Once running, open your browser at:
    http://localhost:8000/docs      ← Swagger UI
    http://localhost:8000/health    ← liveness check

Quick-start walkthrough (use Swagger UI or curl)
-------------------------------------------------
1.  GET   /api/v1/materials                 — seeds the four default materials
2.  POST  /api/v1/projects                  — add a project with a deadline
3.  POST  /api/v1/workers                   — add a worker (name and role required)
4.  GET   /api/v1/notifications             — new project, deadline and stock alerts
5.  POST  /api/v1/notifications/mark-all-read
6.  POST  /api/v1/notifications/toggle-show-all
"""

import logging

import uvicorn

from api import app, get_uow
from app_logging import configure_logging
from config import CONFIG
from infrastructure import KeyValueUnitOfWork, build_store

configure_logging(CONFIG.log_level, CONFIG.log_file)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Wire the configured store into the FastAPI dependency system.
# ---------------------------------------------------------------------------

store = build_store(CONFIG)
app.dependency_overrides[get_uow] = lambda: KeyValueUnitOfWork(store)
logger.info("%s ready (storage: %s)", CONFIG.app_name, CONFIG.storage_backend)


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=CONFIG.host,
        port=CONFIG.port,
        reload=True,          # auto-reload on file changes during development
        log_level=CONFIG.log_level.lower(),
    )
