from __future__ import annotations

import json

from service import epoch_ms


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


# ---------------------------------------------------------------------------
# Materials
# ---------------------------------------------------------------------------

def test_materials_listing_seeds_defaults(client, store):
    response = client.get("/api/v1/materials")

    assert response.status_code == 200
    names = [m["name"] for m in response.json()["data"]]
    assert names == ["Cement", "Steel", "Bricks", "Sand"]
    assert store.raw("materials") is not None


def test_material_lifecycle(client):
    created = client.post("/api/v1/materials", json={"name": "Gravel", "quantity": 25})
    assert created.status_code == 201
    assert created.json()["data"] == {"index": 4, "name": "Gravel", "status": "In Stock", "quantity": 25}

    toggled = client.post("/api/v1/materials/4/toggle-status")
    assert toggled.json()["data"]["status"] == "Out of Stock"

    edited = client.patch("/api/v1/materials/0", json={"quantity": 150})
    assert edited.json()["data"]["quantity"] == 150

    stats = client.get("/api/v1/materials/stats").json()["data"]
    assert stats == {"in_stock": 3, "out_of_stock": 2, "total_quantity": 975}


def test_material_validation(client):
    blank = client.post("/api/v1/materials", json={"name": "  ", "quantity": 3})
    assert blank.status_code == 422
    assert blank.json() == {"detail": "Please fill in both Material Name and Quantity."}

    assert client.post("/api/v1/materials", json={"name": "Sand", "quantity": -1}).status_code == 422
    assert client.post("/api/v1/materials", json={"name": "Sand", "quantity": 1, "status": "Gone"}).status_code == 422
    assert client.patch("/api/v1/materials/0", json={"quantity": -5}).status_code == 422


def test_material_unknown_position(client):
    response = client.post("/api/v1/materials/9/toggle-status")
    assert response.status_code == 404
    assert "9" in response.json()["detail"]


def test_material_map_disabled_with_placeholder_token(client):
    data = client.get("/api/v1/materials/map").json()["data"]
    assert data["enabled"] is False
    assert data["access_token"] is None


# ---------------------------------------------------------------------------
# Workers
# ---------------------------------------------------------------------------

def test_worker_lifecycle(client, clock):
    created = client.post(
        "/api/v1/workers",
        json={"name": " Asha ", "role": "Mason", "status": "assigned", "project": "Tower A"},
    )
    assert created.status_code == 201
    worker = created.json()["data"]
    assert worker == {
        "id": epoch_ms(clock.now),
        "name": "Asha",
        "role": "Mason",
        "status": "assigned",
        "project": "Tower A",
        "is_absent": False,
        "month": "Oct",
    }

    toggled = client.post(f"/api/v1/workers/{worker['id']}/toggle-absent").json()["data"]
    assert toggled["is_absent"] is True

    stats = client.get("/api/v1/workers/stats").json()["data"]
    assert stats == {"available": 0, "assigned": 1, "on_leave": 0, "absent": 1}
    assert len(client.get("/api/v1/workers").json()["data"]) == 1


def test_worker_validation(client):
    response = client.post("/api/v1/workers", json={"name": "Asha", "role": ""})
    assert response.status_code == 422
    assert response.json() == {"detail": "Please fill in both Name and Role."}
    assert client.post("/api/v1/workers", json={"name": "A", "role": "B", "status": "retired"}).status_code == 422


def test_toggle_unknown_worker(client):
    assert client.post("/api/v1/workers/123/toggle-absent").status_code == 404


def test_worker_id_not_reissued_after_storage_is_lost(client, store):
    first = client.post("/api/v1/workers", json={"name": "Asha", "role": "Mason"}).json()["data"]
    store.save("workers", "unreadable")

    second = client.post("/api/v1/workers", json={"name": "Ravi", "role": "Mason"}).json()["data"]

    assert second["id"] > first["id"]


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------

def test_project_lifecycle(client, store):
    created = client.post(
        "/api/v1/projects", json={"name": "Tower A", "deadline": "2026-10-21", "progress": 15}
    ).json()["data"]
    assert created["status"] == "In Progress"

    patched = client.patch(
        f"/api/v1/projects/{created['id']}", json={"name": "Tower A East", "progress": 60}
    ).json()["data"]
    assert (patched["name"], patched["deadline"], patched["progress"]) == ("Tower A East", "2026-10-21", 60)

    declined = client.delete(f"/api/v1/projects/{created['id']}")
    assert declined.json()["data"] == {"project_id": created["id"], "deleted": False}
    assert len(client.get("/api/v1/projects").json()["data"]) == 1

    confirmed = client.delete(f"/api/v1/projects/{created['id']}", params={"confirm": True})
    assert confirmed.json()["data"]["deleted"] is True
    assert client.get("/api/v1/projects").json()["data"] == []
    assert json.loads(store.raw("projects")) == []


def test_project_input_bounds(client):
    assert client.post("/api/v1/projects", json={"name": "A", "progress": 101}).status_code == 422
    assert client.post("/api/v1/projects", json={"name": "A", "deadline": "someday"}).status_code == 422
    assert client.post("/api/v1/projects", json={"name": " "}).status_code == 422
    assert client.patch("/api/v1/projects/1", json={"progress": 5}).status_code == 404


def test_project_id_not_reissued_after_delete(client):
    first = client.post("/api/v1/projects", json={"name": "Tower A"}).json()["data"]
    client.delete(f"/api/v1/projects/{first['id']}", params={"confirm": True})

    second = client.post("/api/v1/projects", json={"name": "Depot"}).json()["data"]

    assert second["id"] > first["id"]


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------

def test_notification_flow(client):
    client.post("/api/v1/projects", json={"name": "Tower A", "deadline": "2026-10-21"})
    client.get("/api/v1/materials")

    feed = client.get("/api/v1/notifications").json()["data"]
    assert [n["type"] for n in feed["notifications"]] == ["success", "warning", "warning"]
    assert feed["unread_count"] == 3

    read = client.post("/api/v1/notifications/mark-all-read").json()["data"]
    assert read["notifications"] == []
    assert read["unread_count"] == 0

    shown = client.post("/api/v1/notifications/toggle-show-all").json()["data"]
    assert len(shown["notifications"]) == 3

    refreshed = client.post("/api/v1/notifications/refresh").json()["data"]
    assert refreshed["unread_count"] == 3
    assert refreshed["show_all"] is False


def test_notifications_snapshot_ignores_later_changes(client):
    client.get("/api/v1/materials")
    assert client.get("/api/v1/notifications").json()["data"]["total"] == 1

    client.post("/api/v1/materials/0/toggle-status")
    assert client.get("/api/v1/notifications").json()["data"]["total"] == 1
    assert client.post("/api/v1/notifications/refresh").json()["data"]["total"] == 2
