"""
model.py

Domain models for the Construction Site Dashboard.

Entities
--------
- Material       – a stock line on the Materials page (positional, no id)
- Worker         – a member of the workforce on the Labour page
- Project        – a tracked site project on the Projects page
- Notification   – derived event shown on the Notifications page (never stored)

All models use Python dataclasses for clean, framework-agnostic definitions.
Worker and Project ids are creation timestamps in epoch milliseconds; they
double as the "created at" reference for the new-project notification rule.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class MaterialStatus(str, Enum):
    """Stock state of a material line."""
    IN_STOCK = "In Stock"
    OUT_OF_STOCK = "Out of Stock"


class WorkerStatus(str, Enum):
    """Deployment state of a worker."""
    AVAILABLE = "available"
    ASSIGNED = "assigned"
    ON_LEAVE = "on-leave"


class NotificationType(str, Enum):
    """Severity of a dashboard notification."""
    WARNING = "warning"
    SUCCESS = "success"
    INFO = "info"


class NotificationSource(str, Enum):
    """
    The rule that produced a notification.

    Together with the source entity's id (or index, for materials) this forms
    the notification key, so two rules can never claim the same key.
    """
    PROJECT_CREATED = "project_created"
    DEADLINE_APPROACHING = "deadline_approaching"
    OUT_OF_STOCK = "out_of_stock"


NO_DEADLINE = "No deadline"
DEFAULT_PROJECT_STATUS = "In Progress"


# ---------------------------------------------------------------------------
# Collection entities
# ---------------------------------------------------------------------------


@dataclass
class Material:
    """
    A material stock line.

    Materials carry no identifier: they are addressed by their position in
    the stored collection.
    """
    name: str = ""
    status: MaterialStatus = MaterialStatus.IN_STOCK
    quantity: float = 0        # expected >= 0, not enforced here


@dataclass
class Worker:
    """
    A worker on the Labour page.

    `project` is a free-text label, not a reference to a Project entity.
    `month` is the abbreviated month name at the time the worker was added.
    """
    id: int = 0
    name: str = ""
    role: str = ""
    status: WorkerStatus = WorkerStatus.AVAILABLE
    project: Optional[str] = None
    is_absent: bool = False
    month: str = ""


@dataclass
class Project:
    """
    A site project.

    `deadline` is kept exactly as entered: an ISO date (or datetime) string,
    or the literal "No deadline".
    """
    id: int = 0
    name: str = ""
    deadline: str = NO_DEADLINE
    progress: float = 0        # 0 – 100, enforced at the input boundary only
    status: str = DEFAULT_PROJECT_STATUS


# ---------------------------------------------------------------------------
# Derived entities
# ---------------------------------------------------------------------------


@dataclass
class Notification:
    """
    A transient notification derived from the stored Projects and Materials.

    `id` keeps the numeric band scheme shown on the dashboard
    (project id + 1000 / + 2000, material index + 3000). `key` is the
    collision-free identity used for read tracking.
    """
    id: int
    type: NotificationType
    message: str
    time: str
    source: NotificationSource
    source_id: int

    @property
    def key(self) -> str:
        return f"{self.source.value}:{self.source_id}"


# ---------------------------------------------------------------------------
# Seed data
# ---------------------------------------------------------------------------


def default_materials() -> List[Material]:
    """Materials seeded the first time the Materials page finds no stored collection."""
    return [
        Material(name="Cement", status=MaterialStatus.IN_STOCK, quantity=200),
        Material(name="Steel", status=MaterialStatus.OUT_OF_STOCK, quantity=0),
        Material(name="Bricks", status=MaterialStatus.IN_STOCK, quantity=500),
        Material(name="Sand", status=MaterialStatus.IN_STOCK, quantity=300),
    ]
