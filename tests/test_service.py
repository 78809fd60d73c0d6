from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from model import (
    Material,
    MaterialStatus,
    NotificationSource,
    NotificationType,
    Project,
    WorkerStatus,
)
from service import (
    IdGenerator,
    MaterialService,
    NotificationService,
    ProjectService,
    WorkerService,
    epoch_ms,
    parse_deadline,
    utcnow,
)

NOW = datetime(2026, 10, 19, 15, 0, tzinfo=timezone.utc)
NOW_MS = epoch_ms(NOW)
DAY_MS = 24 * 60 * 60 * 1000

notifications = NotificationService()


def _project(project_id: int, name: str = "Tower A", deadline: str = "No deadline") -> Project:
    return Project(id=project_id, name=name, deadline=deadline, progress=10)


# ---------------------------------------------------------------------------
# Ids and deadlines
# ---------------------------------------------------------------------------

def test_id_generator_is_strictly_increasing_within_one_millisecond():
    ids = IdGenerator()
    issued = [ids.next_id(NOW) for _ in range(3)]
    assert issued == [NOW_MS, NOW_MS + 1, NOW_MS + 2]


def test_id_generator_prime_skips_ids_in_use():
    ids = IdGenerator()
    ids.prime([NOW_MS + 50, 3])
    assert ids.next_id(NOW) == NOW_MS + 51
    assert ids.next_id(NOW + timedelta(seconds=1)) == NOW_MS + 1000


def test_parse_deadline():
    assert parse_deadline("2026-10-21") == datetime(2026, 10, 21, tzinfo=timezone.utc)
    assert parse_deadline("2026-10-21T12:00:00Z") == datetime(2026, 10, 21, 12, tzinfo=timezone.utc)
    assert parse_deadline("No deadline") is None
    assert parse_deadline("") is None
    assert parse_deadline("next week") is None


# ---------------------------------------------------------------------------
# Notification derivation
# ---------------------------------------------------------------------------

def test_new_project_with_close_deadline_emits_both_notifications():
    project = _project(NOW_MS - 1000, deadline="2026-10-21")

    result = notifications.derive([project], [], NOW)

    assert [(n.type, n.id, n.message) for n in result] == [
        (NotificationType.SUCCESS, project.id + 1000, "New project added: Tower A"),
        (
            NotificationType.WARNING,
            project.id + 2000,
            "Deadline approaching for Tower A (2 days left)",
        ),
    ]
    assert result[0].time == "Just now"
    assert result[1].time == "Today"
    assert result[0].key != result[1].key


def test_out_of_stock_material_emits_single_warning():
    result = notifications.derive(
        [], [Material("Steel", MaterialStatus.OUT_OF_STOCK, 0)], NOW
    )

    assert len(result) == 1
    assert result[0].type == NotificationType.WARNING
    assert result[0].message == "Out of stock: Steel"
    assert result[0].id == 3000
    assert result[0].source == NotificationSource.OUT_OF_STOCK


def test_old_project_without_deadline_emits_nothing():
    assert notifications.derive([_project(NOW_MS - 2 * DAY_MS)], [], NOW) == []


def test_new_project_window_is_exclusive_at_24_hours():
    assert notifications.derive([_project(NOW_MS - DAY_MS)], [], NOW) == []
    assert len(notifications.derive([_project(NOW_MS - DAY_MS + 1)], [], NOW)) == 1


@pytest.mark.parametrize(
    "deadline, expected",
    [
        ("2026-10-19T15:00:00Z", "0 days left"),
        ("2026-10-22T15:00:00Z", "3 days left"),
        ("2026-10-20", "1 days left"),
    ],
)
def test_deadline_window_bounds(deadline, expected):
    result = notifications.derive([_project(1, deadline=deadline)], [], NOW)
    assert len(result) == 1
    assert expected in result[0].message


@pytest.mark.parametrize(
    "deadline",
    ["2026-10-19", "2026-10-22T15:00:01Z", "2026-11-30", "No deadline", "soon"],
)
def test_deadlines_outside_window_are_ignored(deadline):
    assert notifications.derive([_project(1, deadline=deadline)], [], NOW) == []


def test_derivation_order_projects_then_materials():
    projects = [
        _project(NOW_MS - 10, name="A", deadline="2026-10-20"),
        _project(1, name="B", deadline="2026-10-21"),
        _project(NOW_MS - 5, name="C"),
    ]
    materials = [
        Material("Cement", MaterialStatus.IN_STOCK, 10),
        Material("Steel", MaterialStatus.OUT_OF_STOCK, 0),
        Material("Glass", MaterialStatus.OUT_OF_STOCK, 0),
    ]

    result = notifications.derive(projects, materials, NOW)

    assert [n.message for n in result] == [
        "New project added: A",
        "Deadline approaching for A (1 days left)",
        "Deadline approaching for B (2 days left)",
        "New project added: C",
        "Out of stock: Steel",
        "Out of stock: Glass",
    ]
    assert [n.id for n in result[-2:]] == [3001, 3002]


def test_read_filter_and_unread_count():
    derived = notifications.derive(
        [_project(NOW_MS - 1)], [Material("Steel", MaterialStatus.OUT_OF_STOCK, 0)], NOW
    )
    read = {derived[0].key}

    assert notifications.visible(derived, read) == derived[1:]
    assert notifications.visible(derived, read, show_all=True) == derived
    assert notifications.unread_count(derived, read) == 1


# ---------------------------------------------------------------------------
# Entity services
# ---------------------------------------------------------------------------

def test_create_worker_trims_and_stamps_month():
    worker = WorkerService().create_worker(
        worker_id=9, name="  Asha ", role=" Mason", status=WorkerStatus.ASSIGNED,
        project="   ", now=NOW,
    )
    assert (worker.name, worker.role, worker.project) == ("Asha", "Mason", None)
    assert worker.is_absent is False
    assert worker.month == "Oct"


@pytest.mark.parametrize("name, role", [("", "Mason"), ("Asha", "  "), ("   ", "")])
def test_create_worker_requires_name_and_role(name, role):
    with pytest.raises(ValueError, match="Please fill in both Name and Role"):
        WorkerService().create_worker(1, name, role, WorkerStatus.AVAILABLE, None, NOW)


def test_headcount():
    svc = WorkerService()
    workers = [
        svc.create_worker(1, "A", "Mason", WorkerStatus.AVAILABLE, None, NOW),
        svc.create_worker(2, "B", "Mason", WorkerStatus.ON_LEAVE, None, NOW),
        svc.create_worker(3, "C", "Mason", WorkerStatus.AVAILABLE, None, NOW),
    ]
    svc.toggle_absent(workers[2])

    assert svc.headcount(workers) == {
        WorkerStatus.AVAILABLE: 2,
        WorkerStatus.ASSIGNED: 0,
        WorkerStatus.ON_LEAVE: 1,
    }
    assert svc.absent_count(workers) == 1


def test_create_project_defaults_and_validation():
    svc = ProjectService()
    project = svc.create_project(project_id=3, name="Depot", deadline="")
    assert project.deadline == "No deadline"
    assert project.status == "In Progress"
    with pytest.raises(ValueError):
        svc.create_project(project_id=4, name="   ")


def test_update_project_replaces_only_given_fields():
    project = _project(3, deadline="2026-12-01")
    ProjectService().update_project(project, progress=75)
    assert (project.name, project.deadline, project.progress) == ("Tower A", "2026-12-01", 75)


def test_material_service():
    svc = MaterialService()
    material = svc.create_material("Cement", 0)
    assert material.status == MaterialStatus.IN_STOCK
    svc.toggle_status(material)
    assert material.status == MaterialStatus.OUT_OF_STOCK
    with pytest.raises(ValueError):
        svc.create_material("Cement", None)
    with pytest.raises(ValueError):
        svc.create_material(" ", 5)


def test_utcnow_is_timezone_aware():
    assert utcnow().tzinfo is timezone.utc
