"""
application.py

Application layer for the Construction Site Dashboard.

Overview
--------
The application layer sits between the presentation layer (API) and the
domain / service layer.  It is responsible for:

  1. Defining output DTOs (dataclasses) that carry only the data the
     presentation layer needs — no raw domain objects are leaked upward.
  2. Declaring the key-value store and collection repository interfaces so
     that the application layer remains storage-agnostic (implementations
     live in infrastructure.py).
  3. Declaring the UnitOfWork abstraction that groups the three collection
     repositories.
  4. Implementing one page controller per dashboard page.  A controller
     loads its collection on mount, applies user operations to the
     in-memory copy, and writes the whole collection back.

Structure
---------
DTOs
    MaterialDTO, MaterialStatsDTO, MapSettingsDTO
    WorkerDTO, LabourStatsDTO
    ProjectDTO, ProjectDeletionDTO
    NotificationDTO, NotificationFeedDTO

Storage interfaces
    AbstractKeyValueStore
    AbstractMaterialRepository
    AbstractWorkerRepository
    AbstractProjectRepository

Unit of Work
    AbstractUnitOfWork

Page controllers
    MaterialsPage       – seed / add / toggle status / edit quantity / stats
    LabourPage          – add worker / toggle absence / stats
    ProjectsPage        – add / edit / delete (with confirmation)
    NotificationsPage   – derive on mount / mark all read / show all

Design notes
------------
- Controllers return DTOs only.
- Errors bubble up as ApplicationError subclasses (NotFoundError,
  ValidationError); storage read failures never reach this layer because
  the repositories turn them into "nothing stored".
- Materials and Workers persist only while their collection is non-empty;
  every Projects mutation persists immediately, even when it empties the
  collection.
"""

from __future__ import annotations

import abc
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, List, Optional, Set, Union

from config import MAP_TOKEN_PLACEHOLDER
from model import (
    DEFAULT_PROJECT_STATUS,
    Material,
    MaterialStatus,
    Notification,
    Project,
    Worker,
    WorkerStatus,
    default_materials,
)
from service import (
    IdGenerator,
    MaterialService,
    NotificationService,
    ProjectService,
    WorkerService,
    utcnow,
)

logger = logging.getLogger(__name__)

MATERIALS_KEY = "materials"
WORKERS_KEY = "workers"
PROJECTS_KEY = "projects"


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class ApplicationError(Exception):
    """Raised when an operation cannot complete due to a business rule violation."""


class NotFoundError(ApplicationError):
    """Raised when a requested entity does not exist."""


class ValidationError(ApplicationError):
    """Raised when a required form field is missing or blank."""


# ===========================================================================
# DTO DEFINITIONS
# ===========================================================================

@dataclass
class MaterialDTO:
    index: int
    name: str
    status: str
    quantity: float


@dataclass
class MaterialStatsDTO:
    in_stock: int
    out_of_stock: int
    total_quantity: float


@dataclass
class MapSettingsDTO:
    """Access gate and initial view for the material stock map."""
    enabled: bool
    access_token: Optional[str]
    longitude: float
    latitude: float
    zoom: float


@dataclass
class WorkerDTO:
    id: int
    name: str
    role: str
    status: str
    project: Optional[str]
    is_absent: bool
    month: str


@dataclass
class LabourStatsDTO:
    available: int
    assigned: int
    on_leave: int
    absent: int


@dataclass
class ProjectDTO:
    id: int
    name: str
    deadline: str
    progress: float
    status: str


@dataclass
class ProjectDeletionDTO:
    project_id: int
    deleted: bool


@dataclass
class NotificationDTO:
    id: int
    key: str
    type: str
    message: str
    time: str
    is_read: bool


@dataclass
class NotificationFeedDTO:
    """What the Notifications page shows: the visible list plus the header badge."""
    notifications: List[NotificationDTO]
    unread_count: int
    total: int
    show_all: bool


# ===========================================================================
# DTO ASSEMBLERS
# ===========================================================================

class _Assembler:
    """Converts domain model instances into DTOs."""

    @staticmethod
    def material(index: int, m: Material) -> MaterialDTO:
        return MaterialDTO(
            index=index,
            name=m.name,
            status=m.status.value,
            quantity=m.quantity,
        )

    @staticmethod
    def worker(w: Worker) -> WorkerDTO:
        return WorkerDTO(
            id=w.id,
            name=w.name,
            role=w.role,
            status=w.status.value,
            project=w.project,
            is_absent=w.is_absent,
            month=w.month,
        )

    @staticmethod
    def project(p: Project) -> ProjectDTO:
        return ProjectDTO(
            id=p.id,
            name=p.name,
            deadline=p.deadline,
            progress=p.progress,
            status=p.status,
        )

    @staticmethod
    def notification(n: Notification, read_keys: Set[str]) -> NotificationDTO:
        return NotificationDTO(
            id=n.id,
            key=n.key,
            type=n.type.value,
            message=n.message,
            time=n.time,
            is_read=n.key in read_keys,
        )


# ===========================================================================
# STORAGE INTERFACES
# ===========================================================================

class AbstractKeyValueStore(abc.ABC):
    """
    Named slots holding JSON-serialisable values.

    load() returns None both when nothing is stored under the key and when
    the stored content cannot be deserialised.
    """

    @abc.abstractmethod
    def load(self, key: str) -> Optional[Any]: ...
    @abc.abstractmethod
    def save(self, key: str, value: Any) -> None: ...


class AbstractMaterialRepository(abc.ABC):
    @abc.abstractmethod
    def load(self) -> Optional[List[Material]]: ...
    @abc.abstractmethod
    def save(self, materials: List[Material]) -> None: ...


class AbstractWorkerRepository(abc.ABC):
    @abc.abstractmethod
    def load(self) -> Optional[List[Worker]]: ...
    @abc.abstractmethod
    def save(self, workers: List[Worker]) -> None: ...


class AbstractProjectRepository(abc.ABC):
    @abc.abstractmethod
    def load(self) -> Optional[List[Project]]: ...
    @abc.abstractmethod
    def save(self, projects: List[Project]) -> None: ...


# ===========================================================================
# UNIT OF WORK
# ===========================================================================

class AbstractUnitOfWork(abc.ABC):
    """
    Groups the collection repositories.
    Use as a context manager:

        with uow:
            uow.projects.save(projects)
            uow.commit()

    Collections are stored under independent keys; there is no atomicity
    across them.
    """
    materials: AbstractMaterialRepository
    workers: AbstractWorkerRepository
    projects: AbstractProjectRepository

    def __enter__(self) -> "AbstractUnitOfWork":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if exc_type:
            self.rollback()
        else:
            self.commit()

    @abc.abstractmethod
    def commit(self) -> None: ...

    @abc.abstractmethod
    def rollback(self) -> None: ...


# ===========================================================================
# SERVICE SINGLETONS (shared across pages)
# ===========================================================================

_material_svc = MaterialService()
_worker_svc = WorkerService()
_project_svc = ProjectService()
_notification_svc = NotificationService()


Clock = Callable[[], datetime]


# ===========================================================================
# PAGE CONTROLLER BASE
# ===========================================================================

class _CollectionPage(abc.ABC):
    """
    Shared lifecycle for the three collection pages.

    Subclasses implement _load(), _store() and mount(); operations call
    _ensure_mounted() so a page used without an explicit mount() still
    starts from the stored collection.
    """

    def __init__(self, uow: AbstractUnitOfWork, clock: Clock = utcnow):
        self._uow = uow
        self._clock = clock
        self._items: list = []
        self._mounted = False

    @property
    def mounted(self) -> bool:
        return self._mounted

    @abc.abstractmethod
    def _load(self) -> list: ...

    @abc.abstractmethod
    def _store(self, items: list) -> None: ...

    @abc.abstractmethod
    def mount(self) -> list: ...

    def _on_mounted(self) -> None:
        """Hook run after the collection has been loaded."""

    def _ensure_mounted(self) -> None:
        if not self._mounted:
            self.mount()

    def _mount_collection(self) -> None:
        with self._uow:
            self._items = self._load()
            self._mounted = True
            self._on_mounted()
            self._uow.commit()

    def _persist(self) -> None:
        """Write the whole collection back, skipping empty collections."""
        if self._items:
            self._store(self._items)

    def _commit_change(self) -> None:
        with self._uow:
            self._persist()
            self._uow.commit()


# ===========================================================================
# MATERIALS PAGE
# ===========================================================================

@dataclass
class AddMaterialCommand:
    name: str
    quantity: Optional[float]
    status: MaterialStatus = MaterialStatus.IN_STOCK


class MaterialsPage(_CollectionPage):
    """
    Materials stock list.  On first use with nothing stored, the page seeds
    the default materials and persists them straight away.
    """

    def _load(self) -> List[Material]:
        stored = self._uow.materials.load()
        if stored is None:
            logger.info("No stored materials found; seeding %d defaults", len(default_materials()))
            stored = default_materials()
            self._uow.materials.save(stored)
        return stored

    def _store(self, items: List[Material]) -> None:
        self._uow.materials.save(items)

    def mount(self) -> List[MaterialDTO]:
        self._mount_collection()
        return self.list()

    def list(self) -> List[MaterialDTO]:
        self._ensure_mounted()
        return [_Assembler.material(i, m) for i, m in enumerate(self._items)]

    def _material_at(self, index: int) -> Material:
        if not 0 <= index < len(self._items):
            raise NotFoundError(f"Material at position {index} not found.")
        return self._items[index]

    def add(self, cmd: AddMaterialCommand) -> MaterialDTO:
        self._ensure_mounted()
        try:
            material = _material_svc.create_material(
                name=cmd.name,
                quantity=cmd.quantity,
                status=cmd.status,
            )
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        self._items.append(material)
        self._commit_change()
        logger.info("Added material %r", material.name)
        return _Assembler.material(len(self._items) - 1, material)

    def toggle_status(self, index: int) -> MaterialDTO:
        self._ensure_mounted()
        material = _material_svc.toggle_status(self._material_at(index))
        self._commit_change()
        return _Assembler.material(index, material)

    def update_quantity(self, index: int, quantity: float) -> MaterialDTO:
        self._ensure_mounted()
        material = _material_svc.set_quantity(self._material_at(index), quantity)
        self._commit_change()
        return _Assembler.material(index, material)

    def stats(self) -> MaterialStatsDTO:
        self._ensure_mounted()
        summary = _material_svc.stock_summary(self._items)
        return MaterialStatsDTO(
            in_stock=summary[MaterialStatus.IN_STOCK],
            out_of_stock=summary[MaterialStatus.OUT_OF_STOCK],
            total_quantity=_material_svc.total_quantity(self._items),
        )


def map_settings(access_token: Optional[str]) -> MapSettingsDTO:
    """
    Settings for the material stock map panel.  The map is only enabled
    once a real access token replaces the placeholder.
    """
    enabled = bool(access_token) and access_token != MAP_TOKEN_PLACEHOLDER
    return MapSettingsDTO(
        enabled=enabled,
        access_token=access_token if enabled else None,
        longitude=78.9629,
        latitude=20.5937,
        zoom=4,
    )


# ===========================================================================
# LABOUR PAGE
# ===========================================================================

@dataclass
class AddWorkerCommand:
    name: str
    role: str
    status: WorkerStatus = WorkerStatus.AVAILABLE
    project: Optional[str] = None


class LabourPage(_CollectionPage):
    """Workforce list.  Starts empty when nothing is stored."""

    def __init__(
        self,
        uow: AbstractUnitOfWork,
        clock: Clock = utcnow,
        ids: Optional[IdGenerator] = None,
    ):
        super().__init__(uow, clock)
        self._ids = ids or IdGenerator()

    def _load(self) -> List[Worker]:
        return self._uow.workers.load() or []

    def _store(self, items: List[Worker]) -> None:
        self._uow.workers.save(items)

    def _on_mounted(self) -> None:
        self._ids.prime(w.id for w in self._items)

    def mount(self) -> List[WorkerDTO]:
        self._mount_collection()
        return self.list()

    def list(self) -> List[WorkerDTO]:
        self._ensure_mounted()
        return [_Assembler.worker(w) for w in self._items]

    def _worker_or_raise(self, worker_id: int) -> Worker:
        worker = next((w for w in self._items if w.id == worker_id), None)
        if worker is None:
            raise NotFoundError(f"Worker {worker_id} not found.")
        return worker

    def add(self, cmd: AddWorkerCommand) -> WorkerDTO:
        self._ensure_mounted()
        now = self._clock()
        try:
            worker = _worker_svc.create_worker(
                worker_id=self._ids.next_id(now),
                name=cmd.name,
                role=cmd.role,
                status=cmd.status,
                project=cmd.project,
                now=now,
            )
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        self._items.append(worker)
        self._commit_change()
        logger.info("Added worker %s (%s)", worker.id, worker.name)
        return _Assembler.worker(worker)

    def toggle_absent(self, worker_id: int) -> WorkerDTO:
        self._ensure_mounted()
        worker = _worker_svc.toggle_absent(self._worker_or_raise(worker_id))
        self._commit_change()
        return _Assembler.worker(worker)

    def stats(self) -> LabourStatsDTO:
        self._ensure_mounted()
        headcount = _worker_svc.headcount(self._items)
        return LabourStatsDTO(
            available=headcount[WorkerStatus.AVAILABLE],
            assigned=headcount[WorkerStatus.ASSIGNED],
            on_leave=headcount[WorkerStatus.ON_LEAVE],
            absent=_worker_svc.absent_count(self._items),
        )


# ===========================================================================
# PROJECTS PAGE
# ===========================================================================

@dataclass
class AddProjectCommand:
    name: str
    deadline: Optional[str] = None
    progress: int = 0
    status: str = DEFAULT_PROJECT_STATUS


@dataclass
class UpdateProjectCommand:
    project_id: int
    name: Optional[str] = None
    deadline: Optional[str] = None
    progress: Optional[int] = None


ConfirmDelete = Callable[[ProjectDTO], bool]


class ProjectsPage(_CollectionPage):
    """
    Project list.  Every mutation is written back immediately, including a
    delete that leaves no projects.
    """

    def __init__(
        self,
        uow: AbstractUnitOfWork,
        clock: Clock = utcnow,
        ids: Optional[IdGenerator] = None,
    ):
        super().__init__(uow, clock)
        self._ids = ids or IdGenerator()

    def _load(self) -> List[Project]:
        return self._uow.projects.load() or []

    def _store(self, items: List[Project]) -> None:
        self._uow.projects.save(items)

    def _on_mounted(self) -> None:
        self._ids.prime(p.id for p in self._items)

    def _persist(self) -> None:
        self._store(self._items)

    def mount(self) -> List[ProjectDTO]:
        self._mount_collection()
        return self.list()

    def list(self) -> List[ProjectDTO]:
        self._ensure_mounted()
        return [_Assembler.project(p) for p in self._items]

    def _project_or_raise(self, project_id: int) -> Project:
        project = next((p for p in self._items if p.id == project_id), None)
        if project is None:
            raise NotFoundError(f"Project {project_id} not found.")
        return project

    def add(self, cmd: AddProjectCommand) -> ProjectDTO:
        self._ensure_mounted()
        try:
            project = _project_svc.create_project(
                project_id=self._ids.next_id(self._clock()),
                name=cmd.name,
                deadline=cmd.deadline,
                progress=cmd.progress,
                status=cmd.status,
            )
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        self._items.append(project)
        self._commit_change()
        logger.info("Added project %s (%s)", project.id, project.name)
        return _Assembler.project(project)

    def update(self, cmd: UpdateProjectCommand) -> ProjectDTO:
        self._ensure_mounted()
        project = _project_svc.update_project(
            self._project_or_raise(cmd.project_id),
            name=cmd.name,
            deadline=cmd.deadline,
            progress=cmd.progress,
        )
        self._commit_change()
        return _Assembler.project(project)

    def delete(
        self,
        project_id: int,
        confirm: Union[bool, ConfirmDelete],
    ) -> ProjectDeletionDTO:
        """
        Remove a project once the user confirms.  `confirm` is either the
        user's answer or a callback asked with the project about to go.
        Declining leaves the collection untouched.
        """
        self._ensure_mounted()
        target = _Assembler.project(self._project_or_raise(project_id))
        confirmed = confirm(target) if callable(confirm) else bool(confirm)
        if not confirmed:
            logger.info("Deletion of project %s declined", project_id)
            return ProjectDeletionDTO(project_id=project_id, deleted=False)

        self._items = [p for p in self._items if p.id != project_id]
        self._commit_change()
        logger.info("Deleted project %s", project_id)
        return ProjectDeletionDTO(project_id=project_id, deleted=True)


# ===========================================================================
# NOTIFICATIONS PAGE
# ===========================================================================

@dataclass
class NotificationInbox:
    """
    Per-session state of the Notifications page.  Held in memory only:
    read marks are lost when the page is mounted again.
    """
    notifications: List[Notification] = field(default_factory=list)
    read_keys: Set[str] = field(default_factory=set)
    show_all: bool = False
    mounted: bool = False


class NotificationsPage:
    """
    Snapshot-on-view notification list.

    mount() derives notifications from whatever Projects and Materials are
    stored at that moment; later changes to those collections show up only
    after the next mount().  The page never seeds or writes collections.
    """

    def __init__(
        self,
        uow: AbstractUnitOfWork,
        inbox: Optional[NotificationInbox] = None,
        clock: Clock = utcnow,
    ):
        self._uow = uow
        self._inbox = inbox if inbox is not None else NotificationInbox()
        self._clock = clock

    @property
    def inbox(self) -> NotificationInbox:
        return self._inbox

    def mount(self) -> NotificationFeedDTO:
        with self._uow:
            projects = self._uow.projects.load() or []
            materials = self._uow.materials.load() or []
            self._uow.commit()

        self._inbox.notifications = _notification_svc.derive(
            projects, materials, self._clock()
        )
        self._inbox.read_keys = set()
        self._inbox.show_all = False
        self._inbox.mounted = True
        return self.feed()

    def feed(self) -> NotificationFeedDTO:
        if not self._inbox.mounted:
            return self.mount()
        inbox = self._inbox
        visible = _notification_svc.visible(
            inbox.notifications, inbox.read_keys, inbox.show_all
        )
        return NotificationFeedDTO(
            notifications=[_Assembler.notification(n, inbox.read_keys) for n in visible],
            unread_count=_notification_svc.unread_count(inbox.notifications, inbox.read_keys),
            total=len(inbox.notifications),
            show_all=inbox.show_all,
        )

    def mark_all_as_read(self) -> NotificationFeedDTO:
        if not self._inbox.mounted:
            self.mount()
        self._inbox.read_keys = {n.key for n in self._inbox.notifications}
        return self.feed()

    def toggle_show_all(self) -> NotificationFeedDTO:
        if not self._inbox.mounted:
            self.mount()
        self._inbox.show_all = not self._inbox.show_all
        return self.feed()
