"""
Tests for the REST API around projects.

Tests cover:
- Authentication (register, login, me)
- Namespace and project creation with rights
- Project duplication endpoint (PUT /api/projects/{id}/duplicate)
- Tasks, comments, relations and attachments through the API
- Error rendering as {"code", "message"}
"""

import logging

from fastapi.testclient import TestClient
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import models
from services import duplicate as duplicate_module

logger = logging.getLogger(__name__)


# ============== Authentication ==============


def test_register_login_and_me(client: TestClient):
    """Test the full account flow."""
    response = client.post("/api/auth/register", json={
        "username": "dave",
        "email": "dave@test.com",
        "password": "correct horse battery",
    })
    assert response.status_code == 201, f"Expected 201, got {response.status_code}: {response.json()}"

    response = client.post("/api/auth/login", json={"username": "dave", "password": "correct horse battery"})
    assert response.status_code == 200, f"Expected 200, got {response.status_code}: {response.json()}"
    token = response.json()["access_token"]

    response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 200
    assert response.json()["username"] == "dave"
    logger.info("✓ Register, login and me work")


def test_login_with_wrong_password(client: TestClient, owner):
    response = client.post("/api/auth/login", json={"username": owner.username, "password": "nope"})
    assert response.status_code == 401, f"Expected 401, got {response.status_code}: {response.json()}"


def test_register_duplicate_username(client: TestClient, owner):
    response = client.post("/api/auth/register", json={
        "username": owner.username,
        "email": "someone-else@test.com",
        "password": "long enough password",
    })
    assert response.status_code == 400, f"Expected 400, got {response.status_code}: {response.json()}"


def test_projects_require_authentication(client: TestClient):
    response = client.get("/api/projects")
    assert response.status_code == 401, f"Expected 401, got {response.status_code}: {response.json()}"


# ============== Namespaces and projects ==============


def test_create_namespace_and_project(client: TestClient, auth_headers):
    """Test that a user can create a namespace and a project in it."""
    response = client.post("/api/namespaces", json={"title": "Personal"}, headers=auth_headers)
    assert response.status_code == 201, f"Expected 201, got {response.status_code}: {response.json()}"
    namespace_id = response.json()["id"]

    response = client.post(
        f"/api/namespaces/{namespace_id}/projects",
        json={"title": "Groceries", "identifier": "GROC"},
        headers=auth_headers,
    )
    assert response.status_code == 201, f"Expected 201, got {response.status_code}: {response.json()}"
    project = response.json()
    assert project["namespace_id"] == namespace_id
    assert project["identifier"] == "GROC"

    response = client.get("/api/projects", headers=auth_headers)
    assert [p["id"] for p in response.json()] == [project["id"]]
    logger.info("✓ Namespace and project created")


def test_create_project_with_taken_identifier(client: TestClient, auth_headers, project, namespace):
    """Test that identifiers are unique across projects."""
    response = client.post(
        f"/api/namespaces/{namespace.id}/projects",
        json={"title": "Other", "identifier": project.identifier},
        headers=auth_headers,
    )
    assert response.status_code == 400, f"Expected 400, got {response.status_code}: {response.json()}"
    assert response.json()["code"] == 3007


def test_create_project_in_foreign_namespace(client: TestClient, namespace, other_user, auth_headers_for):
    response = client.post(
        f"/api/namespaces/{namespace.id}/projects",
        json={"title": "Sneaky"},
        headers=auth_headers_for(other_user),
    )
    assert response.status_code == 403, f"Expected 403, got {response.status_code}: {response.json()}"
    assert response.json()["code"] == 1001


def test_get_project_hidden_from_non_members(client: TestClient, project, other_user, auth_headers_for):
    """Test that projects without access look like missing projects."""
    response = client.get(f"/api/projects/{project.id}", headers=auth_headers_for(other_user))
    assert response.status_code == 404, f"Expected 404, got {response.status_code}: {response.json()}"
    assert response.json()["code"] == 3001


def test_namespace_share_grants_project_access(
    client: TestClient, project, namespace, other_user, auth_headers, auth_headers_for
):
    """Test that a namespace share gives access to all projects in it."""
    response = client.put(
        f"/api/namespaces/{namespace.id}/users",
        json={"user_id": other_user.id, "right": 0},
        headers=auth_headers,
    )
    assert response.status_code == 200, f"Expected 200, got {response.status_code}: {response.json()}"

    response = client.get(f"/api/projects/{project.id}", headers=auth_headers_for(other_user))
    assert response.status_code == 200, f"Expected 200, got {response.status_code}: {response.json()}"


def test_team_share_grants_project_access(
    client: TestClient, project, owner, other_user, auth_headers, auth_headers_for
):
    """Test that sharing a project with a team gives its members access."""
    team_id = client.post("/api/teams", json={"name": "Ops"}, headers=auth_headers).json()["id"]
    response = client.put(
        f"/api/teams/{team_id}/members", json={"user_id": other_user.id}, headers=auth_headers,
    )
    assert response.status_code == 200, f"Expected 200, got {response.status_code}: {response.json()}"

    response = client.put(
        f"/api/projects/{project.id}/teams", json={"team_id": team_id, "right": 1}, headers=auth_headers,
    )
    assert response.status_code == 200, f"Expected 200, got {response.status_code}: {response.json()}"

    response = client.put(
        f"/api/projects/{project.id}/buckets", json={"title": "Inbox"}, headers=auth_headers_for(other_user),
    )
    assert response.status_code == 201, f"Expected 201, got {response.status_code}: {response.json()}"


def test_remove_team_member_revokes_project_access(
    client: TestClient, project, other_user, auth_headers, auth_headers_for
):
    """Test that removing a member takes away the access the team share gave them."""
    team_id = client.post("/api/teams", json={"name": "Ops"}, headers=auth_headers).json()["id"]
    client.put(f"/api/teams/{team_id}/members", json={"user_id": other_user.id}, headers=auth_headers)
    client.put(f"/api/projects/{project.id}/teams", json={"team_id": team_id, "right": 0}, headers=auth_headers)

    response = client.get(f"/api/projects/{project.id}", headers=auth_headers_for(other_user))
    assert response.status_code == 200, f"Expected 200, got {response.status_code}: {response.json()}"

    response = client.delete(f"/api/teams/{team_id}/members/{other_user.id}", headers=auth_headers)
    assert response.status_code == 200, f"Expected 200, got {response.status_code}: {response.json()}"

    response = client.get(f"/api/projects/{project.id}", headers=auth_headers_for(other_user))
    assert response.status_code == 404, f"Expected 404, got {response.status_code}: {response.json()}"
    logger.info("✓ Removed team member lost project access")


def test_remove_team_member_requires_admin(
    client: TestClient, owner, other_user, third_user, auth_headers, auth_headers_for
):
    team_id = client.post("/api/teams", json={"name": "Ops"}, headers=auth_headers).json()["id"]
    client.put(f"/api/teams/{team_id}/members", json={"user_id": other_user.id}, headers=auth_headers)

    response = client.delete(f"/api/teams/{team_id}/members/{owner.id}", headers=auth_headers_for(other_user))
    assert response.status_code == 403, f"Expected 403, got {response.status_code}: {response.json()}"

    response = client.delete(f"/api/teams/{team_id}/members/{third_user.id}", headers=auth_headers)
    assert response.status_code == 404, f"Expected 404, got {response.status_code}: {response.json()}"
    assert response.json()["code"] == 6502


def test_cannot_remove_last_team_member(client: TestClient, owner, auth_headers):
    team_id = client.post("/api/teams", json={"name": "Solo"}, headers=auth_headers).json()["id"]

    response = client.delete(f"/api/teams/{team_id}/members/{owner.id}", headers=auth_headers)
    assert response.status_code == 400, f"Expected 400, got {response.status_code}: {response.json()}"
    assert response.json()["code"] == 6503


def test_read_share_cannot_write(client: TestClient, project, other_user, test_db: Session, auth_headers_for):
    test_db.add(models.ProjectUser(project_id=project.id, user_id=other_user.id, right=models.Right.read))
    test_db.commit()

    response = client.put(
        f"/api/projects/{project.id}/tasks", json={"title": "Nope"}, headers=auth_headers_for(other_user),
    )
    assert response.status_code == 403, f"Expected 403, got {response.status_code}: {response.json()}"


def test_link_share_gets_random_hash(client: TestClient, project, auth_headers):
    response = client.put(
        f"/api/projects/{project.id}/shares",
        json={"name": "Public", "right": 0, "password": "hunter22"},
        headers=auth_headers,
    )
    assert response.status_code == 200, f"Expected 200, got {response.status_code}: {response.json()}"
    share = response.json()
    assert len(share["hash"]) == 40
    assert share["sharing_type"] == models.SharingType.with_password
    assert "password" not in share and "password_hash" not in share


def test_delete_project_removes_files(
    client: TestClient, project, auth_headers, files_dir, test_db: Session
):
    """Test that deleting a project removes its stored files."""
    task_id = client.put(
        f"/api/projects/{project.id}/tasks", json={"title": "With file"}, headers=auth_headers,
    ).json()["id"]
    client.put(
        f"/api/tasks/{task_id}/attachments",
        files={"file": ("notes.txt", b"some notes", "text/plain")},
        headers=auth_headers,
    )
    assert len(list(files_dir.iterdir())) == 1

    response = client.delete(f"/api/projects/{project.id}", headers=auth_headers)
    assert response.status_code == 200, f"Expected 200, got {response.status_code}: {response.json()}"
    assert list(files_dir.iterdir()) == []
    assert test_db.query(models.File).count() == 0


# ============== Tasks ==============


def test_task_lifecycle(client: TestClient, project, other_user, test_db: Session, auth_headers):
    """Test tasks with buckets, assignees, labels, comments and relations."""
    bucket_id = client.put(
        f"/api/projects/{project.id}/buckets", json={"title": "Todo"}, headers=auth_headers,
    ).json()["id"]

    response = client.put(
        f"/api/projects/{project.id}/tasks",
        json={"title": "First", "bucket_id": bucket_id, "priority": 2},
        headers=auth_headers,
    )
    assert response.status_code == 201, f"Expected 201, got {response.status_code}: {response.json()}"
    first = response.json()
    assert first["index"] == 1
    assert first["uid"]

    second = client.put(
        f"/api/projects/{project.id}/tasks", json={"title": "Second"}, headers=auth_headers,
    ).json()
    assert second["index"] == 2

    # bob has no access to the project and cannot be assigned
    response = client.put(
        f"/api/tasks/{first['id']}/assignees", json={"user_id": other_user.id}, headers=auth_headers,
    )
    assert response.status_code == 403, f"Expected 403, got {response.status_code}: {response.json()}"
    assert response.json()["code"] == 3004

    label_id = client.post("/api/labels", json={"title": "urgent"}, headers=auth_headers).json()["id"]
    response = client.put(
        f"/api/tasks/{first['id']}/labels", json={"label_id": label_id}, headers=auth_headers,
    )
    assert response.status_code == 201, f"Expected 201, got {response.status_code}: {response.json()}"

    response = client.put(
        f"/api/tasks/{first['id']}/comments", json={"comment": "Looks good"}, headers=auth_headers,
    )
    assert response.status_code == 201

    response = client.put(
        f"/api/tasks/{first['id']}/relations",
        json={"other_task_id": second["id"], "relation_kind": "blocking"},
        headers=auth_headers,
    )
    assert response.status_code == 201, f"Expected 201, got {response.status_code}: {response.json()}"

    response = client.put(
        f"/api/tasks/{first['id']}/relations",
        json={"other_task_id": first["id"], "relation_kind": "related"},
        headers=auth_headers,
    )
    assert response.status_code == 409, f"Expected 409, got {response.status_code}: {response.json()}"

    task = client.get(f"/api/tasks/{first['id']}", headers=auth_headers).json()
    assert [label["title"] for label in task["labels"]] == ["urgent"]
    assert task["bucket_id"] == bucket_id
    comments = client.get(f"/api/tasks/{first['id']}/comments", headers=auth_headers).json()
    assert [c["comment"] for c in comments] == ["Looks good"]
    logger.info("✓ Task lifecycle works")


def add_tasks(test_db: Session, project: models.Project, specs: list) -> list:
    tasks = []
    for index, (title, done, priority) in enumerate(specs, start=1):
        task = models.Task(
            title=title, project_id=project.id, uid=f"uid-{index}", index=index, done=done, priority=priority,
        )
        test_db.add(task)
        tasks.append(task)
    test_db.commit()
    return tasks


def test_list_tasks_default_order(client: TestClient, project, test_db: Session, auth_headers):
    """Test that open tasks come first, newest first within each group."""
    add_tasks(test_db, project, [("First", False, 0), ("Second", True, 0), ("Third", False, 0)])

    response = client.get(f"/api/projects/{project.id}/tasks", headers=auth_headers)
    assert response.status_code == 200, f"Expected 200, got {response.status_code}: {response.json()}"
    assert [t["title"] for t in response.json()] == ["Third", "First", "Second"]


def test_list_tasks_search(client: TestClient, project, test_db: Session, auth_headers):
    add_tasks(test_db, project, [("Write invoice", False, 0), ("Call client", False, 0), ("Send INVOICE", True, 0)])

    response = client.get(f"/api/projects/{project.id}/tasks", params={"s": "invoice"}, headers=auth_headers)
    assert response.status_code == 200, f"Expected 200, got {response.status_code}: {response.json()}"
    assert sorted(t["title"] for t in response.json()) == ["Send INVOICE", "Write invoice"]


def test_list_tasks_custom_sort(client: TestClient, project, test_db: Session, auth_headers):
    add_tasks(test_db, project, [("Low", False, 1), ("Urgent", False, 4), ("Medium", False, 2)])

    response = client.get(
        f"/api/projects/{project.id}/tasks",
        params={"sort_by": ["priority", "id"], "order_by": ["desc", "asc"]},
        headers=auth_headers,
    )
    assert response.status_code == 200, f"Expected 200, got {response.status_code}: {response.json()}"
    assert [t["title"] for t in response.json()] == ["Urgent", "Medium", "Low"]


def test_list_tasks_pagination(client: TestClient, project, test_db: Session, auth_headers):
    """Test that pages are cut in sort order and totals come back as headers."""
    add_tasks(test_db, project, [(f"Task {n}", False, 0) for n in range(1, 6)])

    response = client.get(
        f"/api/projects/{project.id}/tasks",
        params={"page": 2, "per_page": 2, "sort_by": "id", "order_by": "asc"},
        headers=auth_headers,
    )
    assert response.status_code == 200, f"Expected 200, got {response.status_code}: {response.json()}"
    assert [t["title"] for t in response.json()] == ["Task 3", "Task 4"]
    assert response.headers["x-pagination-total-pages"] == "3"
    assert response.headers["x-pagination-result-count"] == "2"

    response = client.get(
        f"/api/projects/{project.id}/tasks", params={"page": 3, "per_page": 2}, headers=auth_headers,
    )
    assert len(response.json()) == 1


def test_list_tasks_invalid_sort(client: TestClient, project, auth_headers):
    response = client.get(
        f"/api/projects/{project.id}/tasks", params={"sort_by": "password"}, headers=auth_headers,
    )
    assert response.status_code == 400, f"Expected 400, got {response.status_code}: {response.json()}"
    assert response.json()["code"] == 4017

    response = client.get(
        f"/api/projects/{project.id}/tasks", params={"sort_by": "id", "order_by": "sideways"}, headers=auth_headers,
    )
    assert response.status_code == 400, f"Expected 400, got {response.status_code}: {response.json()}"


def test_task_with_bucket_of_other_project(client: TestClient, project, namespace, auth_headers):
    other_id = client.post(
        f"/api/namespaces/{namespace.id}/projects", json={"title": "Other"}, headers=auth_headers,
    ).json()["id"]
    bucket_id = client.put(
        f"/api/projects/{other_id}/buckets", json={"title": "Elsewhere"}, headers=auth_headers,
    ).json()["id"]

    response = client.put(
        f"/api/projects/{project.id}/tasks", json={"title": "Misplaced", "bucket_id": bucket_id},
        headers=auth_headers,
    )
    assert response.status_code == 400, f"Expected 400, got {response.status_code}: {response.json()}"
    assert response.json()["code"] == 10002


def test_attachment_upload_and_download(client: TestClient, project, auth_headers):
    task_id = client.put(
        f"/api/projects/{project.id}/tasks", json={"title": "Docs"}, headers=auth_headers,
    ).json()["id"]

    response = client.put(
        f"/api/tasks/{task_id}/attachments",
        files={"file": ("readme.md", b"# Hello", "text/markdown")},
        headers=auth_headers,
    )
    assert response.status_code == 201, f"Expected 201, got {response.status_code}: {response.json()}"
    attachment = response.json()
    assert attachment["file"]["name"] == "readme.md"
    assert attachment["file"]["size"] == 7

    response = client.get(f"/api/tasks/{task_id}/attachments/{attachment['id']}", headers=auth_headers)
    assert response.status_code == 200
    assert response.content == b"# Hello"


def test_background_upload_and_download(client: TestClient, project, auth_headers):
    response = client.put(
        f"/api/projects/{project.id}/background",
        files={"background": ("sky.png", b"\x89PNG", "image/png")},
        data={"blur_hash": "LKO2?U%2Tw=w"},
        headers=auth_headers,
    )
    assert response.status_code == 200, f"Expected 200, got {response.status_code}: {response.json()}"
    assert response.json()["background_blur_hash"] == "LKO2?U%2Tw=w"

    response = client.get(f"/api/projects/{project.id}/background", headers=auth_headers)
    assert response.status_code == 200
    assert response.content == b"\x89PNG"


def test_attachment_too_large(client: TestClient, project, auth_headers, monkeypatch):
    monkeypatch.setenv("MAX_FILE_SIZE", "4")
    task_id = client.put(
        f"/api/projects/{project.id}/tasks", json={"title": "Big"}, headers=auth_headers,
    ).json()["id"]

    response = client.put(
        f"/api/tasks/{task_id}/attachments",
        files={"file": ("big.bin", b"0123456789", "application/octet-stream")},
        headers=auth_headers,
    )
    assert response.status_code == 413, f"Expected 413, got {response.status_code}: {response.json()}"
    assert response.json()["code"] == 7002


# ============== Duplication ==============


def test_duplicate_endpoint(client: TestClient, project, target_namespace, auth_headers):
    """Test duplicating a project through the API."""
    bucket_id = client.put(
        f"/api/projects/{project.id}/buckets", json={"title": "Todo"}, headers=auth_headers,
    ).json()["id"]
    client.put(
        f"/api/projects/{project.id}/tasks", json={"title": "Copy me", "bucket_id": bucket_id},
        headers=auth_headers,
    )

    response = client.put(
        f"/api/projects/{project.id}/duplicate",
        json={"namespace_id": target_namespace.id},
        headers=auth_headers,
    )
    assert response.status_code == 201, f"Expected 201, got {response.status_code}: {response.json()}"
    body = response.json()
    assert body["project_id"] == project.id
    assert body["namespace_id"] == target_namespace.id
    new_project = body["project"]
    assert new_project["id"] != project.id
    assert new_project["namespace_id"] == target_namespace.id
    assert [b["title"] for b in new_project["buckets"]] == ["Todo"]
    assert new_project["buckets"][0]["id"] != bucket_id

    tasks = client.get(f"/api/projects/{new_project['id']}/tasks", headers=auth_headers).json()
    assert [t["title"] for t in tasks] == ["Copy me"]
    assert tasks[0]["bucket_id"] == new_project["buckets"][0]["id"]
    logger.info("✓ Duplicate endpoint works")


def test_duplicate_endpoint_without_source_access(
    client: TestClient, project, other_user, test_db: Session, auth_headers_for
):
    """Test that a user who cannot read the source cannot duplicate it."""
    own_namespace = models.Namespace(title="Bob's", owner_id=other_user.id)
    test_db.add(own_namespace)
    test_db.commit()

    response = client.put(
        f"/api/projects/{project.id}/duplicate",
        json={"namespace_id": own_namespace.id},
        headers=auth_headers_for(other_user),
    )
    assert response.status_code == 403, f"Expected 403, got {response.status_code}: {response.json()}"
    assert response.json()["code"] == 1001
    assert test_db.query(models.Project).count() == 1


def test_duplicate_endpoint_without_namespace_write(
    client: TestClient, project, target_namespace, other_user, test_db: Session, auth_headers_for
):
    test_db.add(models.ProjectUser(project_id=project.id, user_id=other_user.id, right=models.Right.admin))
    test_db.commit()

    response = client.put(
        f"/api/projects/{project.id}/duplicate",
        json={"namespace_id": target_namespace.id},
        headers=auth_headers_for(other_user),
    )
    assert response.status_code == 403, f"Expected 403, got {response.status_code}: {response.json()}"


def test_duplicate_endpoint_unknown_project(client: TestClient, target_namespace, auth_headers):
    response = client.put(
        "/api/projects/9999/duplicate", json={"namespace_id": target_namespace.id}, headers=auth_headers,
    )
    assert response.status_code == 404, f"Expected 404, got {response.status_code}: {response.json()}"
    assert response.json()["code"] == 3001


def test_duplicate_endpoint_archived_namespace(
    client: TestClient, project, target_namespace, test_db: Session, auth_headers
):
    target_namespace.is_archived = True
    test_db.commit()

    response = client.put(
        f"/api/projects/{project.id}/duplicate", json={"namespace_id": target_namespace.id}, headers=auth_headers,
    )
    assert response.status_code == 412, f"Expected 412, got {response.status_code}: {response.json()}"
    assert response.json()["code"] == 5009


def test_duplicate_endpoint_invalid_namespace_id(client: TestClient, project, auth_headers):
    response = client.put(
        f"/api/projects/{project.id}/duplicate", json={"namespace_id": 0}, headers=auth_headers,
    )
    assert response.status_code == 422, f"Expected 422, got {response.status_code}: {response.json()}"


def test_duplicate_endpoint_failure_rolls_back(
    client: TestClient, project, target_namespace, test_db: Session, auth_headers, monkeypatch
):
    """Test that a failed duplication returns 500 naming the step and leaves no project behind."""
    client.put(f"/api/projects/{project.id}/buckets", json={"title": "Todo"}, headers=auth_headers)

    def broken_create_bucket(db, bucket, doer):
        raise SQLAlchemyError("database is locked")

    monkeypatch.setattr(duplicate_module, "create_bucket", broken_create_bucket)

    response = client.put(
        f"/api/projects/{project.id}/duplicate", json={"namespace_id": target_namespace.id}, headers=auth_headers,
    )
    assert response.status_code == 500, f"Expected 500, got {response.status_code}: {response.json()}"
    body = response.json()
    assert body["code"] == 3012
    assert "bucket" in body["message"]
    assert test_db.query(models.Project).count() == 1, "Failed duplicate must not leave a project"
    logger.info("✓ Failed duplicate rolled back")
