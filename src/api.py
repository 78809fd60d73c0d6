"""
api.py

REST API layer for the Construction Site Dashboard.

Framework : FastAPI
Pages     : every router maps onto one dashboard page controller from
            application.py.  Each request mounts a fresh controller over the
            shared key-value store, so the stored collection is always the
            starting point.

Structure
---------
  Routers (all prefixed under /api/v1)
  ├── /materials                    — stock list, status toggle, quantity edit
  │   ├── /stats                    — in/out of stock counts
  │   └── /map                      — stock map access gate and view state
  ├── /workers                      — workforce list and absence toggle
  │   └── /stats                    — headcount cards
  ├── /projects                     — project CRUD (delete needs confirm=true)
  └── /notifications                — derived notifications and read marks

Error handling
--------------
  NotFoundError      → 404
  ValidationError    → 422
  ApplicationError   → 422
  ValueError         → 422
  Unhandled          → 500 (FastAPI default)

Response envelope
-----------------
  Success  : { "data": <payload> }
  Error    : { "detail": "<message>" }

Running
-------
  uvicorn api:app --reload

Dependencies (install via pip)
-------------------------------
  fastapi>=0.110
  uvicorn[standard]>=0.29
  pydantic>=2.0
  fastapi-mcp
"""

from __future__ import annotations

import dataclasses
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Union

from fastapi import APIRouter, Depends, FastAPI, Path, Query, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi_mcp import FastApiMCP
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator

from application import (
    # Exceptions
    ApplicationError,
    NotFoundError,
    # Commands
    AddMaterialCommand,
    AddProjectCommand,
    AddWorkerCommand,
    UpdateProjectCommand,
    # Page controllers
    LabourPage,
    MaterialsPage,
    NotificationInbox,
    NotificationsPage,
    ProjectsPage,
    AbstractUnitOfWork,
    map_settings,
)
from config import CONFIG
from infrastructure import KeyValueUnitOfWork
from model import NO_DEADLINE, DEFAULT_PROJECT_STATUS, MaterialStatus, WorkerStatus
from service import IdGenerator, parse_deadline, utcnow


# ---------------------------------------------------------------------------
# OpenAPI tag order and descriptions
# ---------------------------------------------------------------------------

tags_metadata = [
    {
        "name": "Health",
        "description": "Liveness probe.",
    },
    {
        "name": "Materials",
        "description": (
            "Materials inventory.  Lines are addressed by position; the four "
            "default materials are seeded the first time nothing is stored."
        ),
    },
    {
        "name": "Labour",
        "description": "Workforce list, absence tracking and headcount cards.",
    },
    {
        "name": "Projects",
        "description": (
            "Project list with in-place edits.  Deleting requires an explicit "
            "confirmation and takes effect immediately."
        ),
    },
    {
        "name": "Notifications",
        "description": (
            "Notifications derived from the stored projects and materials: new "
            "projects, approaching deadlines and out-of-stock lines.  Read marks "
            "live only for the current view."
        ),
    },
]


# ---------------------------------------------------------------------------
# App bootstrap
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Construction Site Dashboard API",
    version="1.0.0",
    description=(
        "REST API behind the construction-management dashboard: materials "
        "inventory, labour status, project progress and derived notifications."
    ),
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=tags_metadata,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Global exception handlers
# ---------------------------------------------------------------------------

@app.exception_handler(NotFoundError)
async def not_found_handler(request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(ApplicationError)
async def application_error_handler(request, exc: ApplicationError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(ValueError)
async def value_error_handler(request, exc: ValueError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

# Session state of the Notifications page; one dashboard user per process
_inbox = NotificationInbox()

# One id sequence per collection for the whole process, so a deleted id is
# never handed out again
_worker_ids = IdGenerator()
_project_ids = IdGenerator()


def get_uow() -> AbstractUnitOfWork:
    """Returns a Unit of Work over the shared in-memory store."""
    return KeyValueUnitOfWork()


def get_inbox() -> NotificationInbox:
    return _inbox


def get_clock() -> Callable[[], datetime]:
    return utcnow


def get_worker_ids() -> IdGenerator:
    return _worker_ids


def get_project_ids() -> IdGenerator:
    return _project_ids


# ---------------------------------------------------------------------------
# Envelope helper
# ---------------------------------------------------------------------------

def _ok(data: Any) -> Dict:
    """Wrap a DTO or list of DTOs in the standard success envelope."""
    if dataclasses.is_dataclass(data):
        return {"data": dataclasses.asdict(data)}
    if isinstance(data, list):
        return {
            "data": [
                dataclasses.asdict(item) if dataclasses.is_dataclass(item) else item
                for item in data
            ]
        }
    return {"data": data}


# ===========================================================================
# REQUEST BODY SCHEMAS  (Pydantic v2)
# ===========================================================================

# ---------------------------------------------------------------------------
# Material schemas
# ---------------------------------------------------------------------------

class AddMaterialRequest(BaseModel):
    name: str = Field(default="", max_length=200)
    quantity: Optional[Union[int, float]] = Field(default=None, ge=0)
    status: str = Field(default=MaterialStatus.IN_STOCK.value, description="In Stock or Out of Stock")

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: str) -> str:
        valid = {s.value for s in MaterialStatus}
        if v not in valid:
            raise ValueError(f"status must be one of: {sorted(valid)}")
        return v


class UpdateMaterialQuantityRequest(BaseModel):
    quantity: Union[int, float] = Field(..., ge=0)


# ---------------------------------------------------------------------------
# Worker schemas
# ---------------------------------------------------------------------------

class AddWorkerRequest(BaseModel):
    name: str = Field(default="", max_length=200)
    role: str = Field(default="", max_length=200)
    status: str = Field(default=WorkerStatus.AVAILABLE.value, description="available, assigned or on-leave")
    project: Optional[str] = Field(default=None, max_length=200)

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: str) -> str:
        valid = {s.value for s in WorkerStatus}
        if v not in valid:
            raise ValueError(f"status must be one of: {sorted(valid)}")
        return v


# ---------------------------------------------------------------------------
# Project schemas
# ---------------------------------------------------------------------------

def _check_deadline(v: Optional[str]) -> Optional[str]:
    if v in (None, "", NO_DEADLINE):
        return v
    if parse_deadline(v) is None:
        raise ValueError("deadline must be an ISO date such as 2026-10-21")
    return v


class AddProjectRequest(BaseModel):
    name: str = Field(default="", max_length=200)
    deadline: Optional[str] = None
    progress: int = Field(default=0, ge=0, le=100)
    status: str = Field(default=DEFAULT_PROJECT_STATUS, max_length=100)

    @field_validator("deadline")
    @classmethod
    def validate_deadline(cls, v: Optional[str]) -> Optional[str]:
        return _check_deadline(v)


class UpdateProjectRequest(BaseModel):
    name: Optional[str] = Field(default=None, max_length=200)
    deadline: Optional[str] = None
    progress: Optional[int] = Field(default=None, ge=0, le=100)

    @field_validator("deadline")
    @classmethod
    def validate_deadline(cls, v: Optional[str]) -> Optional[str]:
        return _check_deadline(v)


# ===========================================================================
# ROUTERS
# ===========================================================================

api_v1 = APIRouter(prefix="/api/v1")


# ---------------------------------------------------------------------------
# Materials
# ---------------------------------------------------------------------------

materials_router = APIRouter(prefix="/materials", tags=["Materials"])


@materials_router.get(
    "",
    summary="List materials (seeds the defaults on first use)",
)
def list_materials(uow: AbstractUnitOfWork = Depends(get_uow)):
    return _ok(MaterialsPage(uow).mount())


@materials_router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Add a material line",
)
def add_material(
    body: AddMaterialRequest,
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    cmd = AddMaterialCommand(
        name=body.name,
        quantity=body.quantity,
        status=MaterialStatus(body.status),
    )
    return _ok(MaterialsPage(uow).add(cmd))


@materials_router.get(
    "/stats",
    summary="Stock counts across all material lines",
)
def material_stats(uow: AbstractUnitOfWork = Depends(get_uow)):
    return _ok(MaterialsPage(uow).stats())


@materials_router.get(
    "/map",
    summary="Stock map access gate and initial view",
)
def material_map():
    return _ok(map_settings(CONFIG.map_access_token))


@materials_router.patch(
    "/{index}",
    summary="Change the quantity of the material at a position",
)
def update_material_quantity(
    body: UpdateMaterialQuantityRequest,
    index: int = Path(..., ge=0),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    return _ok(MaterialsPage(uow).update_quantity(index, body.quantity))


@materials_router.post(
    "/{index}/toggle-status",
    summary="Flip a material between In Stock and Out of Stock",
)
def toggle_material_status(
    index: int = Path(..., ge=0),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    return _ok(MaterialsPage(uow).toggle_status(index))


# ---------------------------------------------------------------------------
# Workers
# ---------------------------------------------------------------------------

workers_router = APIRouter(prefix="/workers", tags=["Labour"])


@workers_router.get(
    "",
    summary="List workers",
)
def list_workers(uow: AbstractUnitOfWork = Depends(get_uow)):
    return _ok(LabourPage(uow).mount())


@workers_router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Add a worker",
)
def add_worker(
    body: AddWorkerRequest,
    uow: AbstractUnitOfWork = Depends(get_uow),
    clock: Callable[[], datetime] = Depends(get_clock),
    ids: IdGenerator = Depends(get_worker_ids),
):
    """Name and role are required; the worker starts present."""
    cmd = AddWorkerCommand(
        name=body.name,
        role=body.role,
        status=WorkerStatus(body.status),
        project=body.project,
    )
    return _ok(LabourPage(uow, clock=clock, ids=ids).add(cmd))


@workers_router.get(
    "/stats",
    summary="Available, assigned, on-leave and absent headcounts",
)
def labour_stats(uow: AbstractUnitOfWork = Depends(get_uow)):
    return _ok(LabourPage(uow).stats())


@workers_router.post(
    "/{worker_id}/toggle-absent",
    summary="Mark a worker absent or present",
)
def toggle_worker_absent(
    worker_id: int = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    return _ok(LabourPage(uow).toggle_absent(worker_id))


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------

projects_router = APIRouter(prefix="/projects", tags=["Projects"])


@projects_router.get(
    "",
    summary="List projects",
)
def list_projects(uow: AbstractUnitOfWork = Depends(get_uow)):
    return _ok(ProjectsPage(uow).mount())


@projects_router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Add a project",
)
def add_project(
    body: AddProjectRequest,
    uow: AbstractUnitOfWork = Depends(get_uow),
    clock: Callable[[], datetime] = Depends(get_clock),
    ids: IdGenerator = Depends(get_project_ids),
):
    """A missing deadline is stored as "No deadline"."""
    cmd = AddProjectCommand(
        name=body.name,
        deadline=body.deadline,
        progress=body.progress,
        status=body.status,
    )
    return _ok(ProjectsPage(uow, clock=clock, ids=ids).add(cmd))


@projects_router.patch(
    "/{project_id}",
    summary="Edit a project's name, deadline or progress",
)
def update_project(
    body: UpdateProjectRequest,
    project_id: int = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    cmd = UpdateProjectCommand(
        project_id=project_id,
        name=body.name,
        deadline=body.deadline,
        progress=body.progress,
    )
    return _ok(ProjectsPage(uow).update(cmd))


@projects_router.delete(
    "/{project_id}",
    summary="Delete a project (only with confirm=true)",
)
def delete_project(
    project_id: int = Path(...),
    confirm: bool = Query(default=False, description="The user's answer to the delete prompt"),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    return _ok(ProjectsPage(uow).delete(project_id, confirm))


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------

notifications_router = APIRouter(prefix="/notifications", tags=["Notifications"])


@notifications_router.get(
    "",
    summary="Visible notifications from the current snapshot",
)
def list_notifications(
    uow: AbstractUnitOfWork = Depends(get_uow),
    inbox: NotificationInbox = Depends(get_inbox),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    """The snapshot is derived on first view and kept until the next refresh."""
    return _ok(NotificationsPage(uow, inbox, clock=clock).feed())


@notifications_router.post(
    "/refresh",
    summary="Re-derive notifications from the stored projects and materials",
)
def refresh_notifications(
    uow: AbstractUnitOfWork = Depends(get_uow),
    inbox: NotificationInbox = Depends(get_inbox),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    """Starts a new view: read marks and the show-all toggle are cleared."""
    return _ok(NotificationsPage(uow, inbox, clock=clock).mount())


@notifications_router.post(
    "/mark-all-read",
    summary="Mark every notification in the snapshot as read",
)
def mark_all_notifications_read(
    uow: AbstractUnitOfWork = Depends(get_uow),
    inbox: NotificationInbox = Depends(get_inbox),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    return _ok(NotificationsPage(uow, inbox, clock=clock).mark_all_as_read())


@notifications_router.post(
    "/toggle-show-all",
    summary="Show or hide notifications already marked read",
)
def toggle_show_all_notifications(
    uow: AbstractUnitOfWork = Depends(get_uow),
    inbox: NotificationInbox = Depends(get_inbox),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    return _ok(NotificationsPage(uow, inbox, clock=clock).toggle_show_all())


# ---------------------------------------------------------------------------
# Register all routers
# ---------------------------------------------------------------------------

api_v1.include_router(materials_router)
api_v1.include_router(workers_router)
api_v1.include_router(projects_router)
api_v1.include_router(notifications_router)

app.include_router(api_v1)


# ===========================================================================
# HEALTH CHECK
# ===========================================================================

@app.get("/health", tags=["Health"], summary="Service health check")
def health():
    return {"status": "ok"}


# ---------------------------------------------------------------------------
# MCP Server — exposes all API routes as MCP tools
# Accessible at: http://localhost:8000/mcp
# ---------------------------------------------------------------------------
mcp = FastApiMCP(app)
mcp.mount()

