"""
service.py

Service layer for the Construction Site Dashboard.

Responsibilities
----------------
Each service class encapsulates the business rules for its page.
Services receive and return domain model instances (from model.py).
No persistence is handled here; the page controllers in application.py
load and store whole collections through the repositories.

Services
--------
- IdGenerator          – monotonic timestamp ids for workers and projects
- MaterialService      – material creation, status toggle, quantity edits
- WorkerService        – worker creation, absence toggle, headcount
- ProjectService       – project creation and in-place field updates
- NotificationService  – derives the notification list from Projects and
                         Materials, and applies the read filter

Design notes
------------
- UTC datetimes are used throughout; naive values are read as UTC.
- Business rule violations raise a ValueError with a descriptive message.
- Quantity and progress bounds are not checked here; they are enforced by
  the request schemas in api.py.
- Methods that mutate an entity return it so callers can chain or assemble.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Set

from model import (
    NO_DEADLINE,
    DEFAULT_PROJECT_STATUS,
    Material,
    MaterialStatus,
    Notification,
    NotificationSource,
    NotificationType,
    Project,
    Worker,
    WorkerStatus,
)

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

NEW_PROJECT_WINDOW = timedelta(hours=24)
DEADLINE_WARNING_DAYS = 3

# Numeric id bands for displayed notification ids
PROJECT_CREATED_OFFSET = 1000
DEADLINE_OFFSET = 2000
OUT_OF_STOCK_OFFSET = 3000


# ---------------------------------------------------------------------------
# Time helpers
# ---------------------------------------------------------------------------

def utcnow() -> datetime:
    """Default clock for the page controllers."""
    return datetime.now(timezone.utc)


def _as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def epoch_ms(dt: datetime) -> int:
    """Milliseconds since the Unix epoch."""
    return (_as_utc(dt) - _EPOCH) // timedelta(milliseconds=1)


def parse_deadline(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a stored deadline string.

    Accepts ISO dates ("2026-10-21", read as midnight UTC) and ISO datetimes
    (a trailing "Z" is accepted; naive values are UTC). Returns None for
    "No deadline" and anything unparseable.
    """
    if not value or value == NO_DEADLINE:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return _as_utc(parsed)


# ---------------------------------------------------------------------------
# IdGenerator
# ---------------------------------------------------------------------------

class IdGenerator:
    """
    Issues creation-timestamp ids that are strictly increasing.

    The id is the creation time in epoch milliseconds, bumped past the last
    id handed out when two creations land in the same millisecond (or the
    clock steps backwards).
    """

    def __init__(self, last_id: int = 0):
        self._last = last_id

    def prime(self, existing_ids: Iterable[int]) -> None:
        """Make sure every future id exceeds all ids already in use."""
        for existing in existing_ids:
            if existing > self._last:
                self._last = existing

    def next_id(self, now: datetime) -> int:
        candidate = epoch_ms(now)
        if candidate <= self._last:
            candidate = self._last + 1
        self._last = candidate
        return candidate


# ---------------------------------------------------------------------------
# MaterialService
# ---------------------------------------------------------------------------

class MaterialService:
    """
    Manages material stock lines. Materials are positional: the caller
    resolves the index before handing the entity over.
    """

    def create_material(
        self,
        name: str,
        quantity: Optional[float],
        status: MaterialStatus = MaterialStatus.IN_STOCK,
    ) -> Material:
        """Create and return a new Material (unsaved)."""
        if not name or not name.strip() or quantity is None:
            raise ValueError("Please fill in both Material Name and Quantity.")
        return Material(name=name, status=status, quantity=quantity)

    def toggle_status(self, material: Material) -> Material:
        if material.status == MaterialStatus.IN_STOCK:
            material.status = MaterialStatus.OUT_OF_STOCK
        else:
            material.status = MaterialStatus.IN_STOCK
        return material

    def set_quantity(self, material: Material, quantity: float) -> Material:
        material.quantity = quantity
        return material

    def stock_summary(self, materials: List[Material]) -> Dict[MaterialStatus, int]:
        """Return a count of material lines in each stock state."""
        summary: Dict[MaterialStatus, int] = {
            MaterialStatus.IN_STOCK: 0,
            MaterialStatus.OUT_OF_STOCK: 0,
        }
        for material in materials:
            summary[material.status] += 1
        return summary

    def total_quantity(self, materials: List[Material]) -> float:
        return sum(m.quantity for m in materials)


# ---------------------------------------------------------------------------
# WorkerService
# ---------------------------------------------------------------------------

class WorkerService:
    """
    Manages the workforce list.
    """

    def create_worker(
        self,
        worker_id: int,
        name: str,
        role: str,
        status: WorkerStatus,
        project: Optional[str],
        now: datetime,
    ) -> Worker:
        """
        Create and return a new Worker (unsaved).

        Name and role are trimmed and both required. A blank project label
        is stored as None.
        """
        name = (name or "").strip()
        role = (role or "").strip()
        if not name or not role:
            raise ValueError("Please fill in both Name and Role.")
        return Worker(
            id=worker_id,
            name=name,
            role=role,
            status=status,
            project=(project or "").strip() or None,
            is_absent=False,
            month=now.strftime("%b"),
        )

    def toggle_absent(self, worker: Worker) -> Worker:
        worker.is_absent = not worker.is_absent
        return worker

    def headcount(self, workers: List[Worker]) -> Dict[WorkerStatus, int]:
        """Return a count of workers in each deployment state."""
        summary: Dict[WorkerStatus, int] = {status: 0 for status in WorkerStatus}
        for worker in workers:
            summary[worker.status] += 1
        return summary

    def absent_count(self, workers: List[Worker]) -> int:
        return sum(1 for w in workers if w.is_absent)


# ---------------------------------------------------------------------------
# ProjectService
# ---------------------------------------------------------------------------

class ProjectService:
    """
    Manages project creation and in-place edits.
    """

    def create_project(
        self,
        project_id: int,
        name: str,
        deadline: Optional[str] = None,
        progress: int = 0,
        status: str = DEFAULT_PROJECT_STATUS,
    ) -> Project:
        """Create and return a new Project (unsaved). A blank deadline becomes "No deadline"."""
        if not name or not name.strip():
            raise ValueError("Project name must not be empty.")
        return Project(
            id=project_id,
            name=name,
            deadline=deadline or NO_DEADLINE,
            progress=progress,
            status=status or DEFAULT_PROJECT_STATUS,
        )

    def update_project(
        self,
        project: Project,
        name: Optional[str] = None,
        deadline: Optional[str] = None,
        progress: Optional[int] = None,
    ) -> Project:
        """Apply field-level updates to a project; fields left as None are kept."""
        if name is not None:
            project.name = name
        if deadline is not None:
            project.deadline = deadline
        if progress is not None:
            project.progress = progress
        return project


# ---------------------------------------------------------------------------
# NotificationService
# ---------------------------------------------------------------------------

class NotificationService:
    """
    Derives the Notifications page contents from the stored collections.

    Derivation is pure: the same projects, materials and `now` always
    produce the same list, and nothing is written back.
    """

    def derive(
        self,
        projects: List[Project],
        materials: List[Material],
        now: datetime,
    ) -> List[Notification]:
        """
        Build the notification list.

        Order: for each project (collection order) its "new project" event
        then its "deadline approaching" event; after all projects, one
        "out of stock" event per material (collection order).
        """
        now = _as_utc(now)
        now_ms = epoch_ms(now)
        window_ms = NEW_PROJECT_WINDOW // timedelta(milliseconds=1)
        notifications: List[Notification] = []

        for project in projects:
            if now_ms - project.id < window_ms:
                notifications.append(
                    Notification(
                        id=project.id + PROJECT_CREATED_OFFSET,
                        type=NotificationType.SUCCESS,
                        message=f"New project added: {project.name}",
                        time="Just now",
                        source=NotificationSource.PROJECT_CREATED,
                        source_id=project.id,
                    )
                )

            deadline = parse_deadline(project.deadline)
            if deadline is None:
                continue
            days_left = (deadline - now) / timedelta(days=1)
            if 0 <= days_left <= DEADLINE_WARNING_DAYS:
                notifications.append(
                    Notification(
                        id=project.id + DEADLINE_OFFSET,
                        type=NotificationType.WARNING,
                        message=(
                            f"Deadline approaching for {project.name} "
                            f"({math.ceil(days_left)} days left)"
                        ),
                        time="Today",
                        source=NotificationSource.DEADLINE_APPROACHING,
                        source_id=project.id,
                    )
                )

        for index, material in enumerate(materials):
            if material.status == MaterialStatus.OUT_OF_STOCK:
                notifications.append(
                    Notification(
                        id=index + OUT_OF_STOCK_OFFSET,
                        type=NotificationType.WARNING,
                        message=f"Out of stock: {material.name}",
                        time="Today",
                        source=NotificationSource.OUT_OF_STOCK,
                        source_id=index,
                    )
                )

        logger.debug(
            "Derived %d notifications from %d projects and %d materials",
            len(notifications), len(projects), len(materials),
        )
        return notifications

    def visible(
        self,
        notifications: List[Notification],
        read_keys: Set[str],
        show_all: bool = False,
    ) -> List[Notification]:
        """Hide notifications already marked read unless show_all is set."""
        if show_all:
            return list(notifications)
        return [n for n in notifications if n.key not in read_keys]

    def unread_count(self, notifications: List[Notification], read_keys: Set[str]) -> int:
        return sum(1 for n in notifications if n.key not in read_keys)
