from fastapi import FastAPI, HTTPException, Depends, UploadFile, File, Form, Query, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from sqlalchemy.orm import Session, selectinload
from typing import List, Optional
import logging
import math
import os

from database import get_db
import models
import schemas
import filestore
from errors import (
    AccessDenied, AttachmentDoesNotExist, FileDoesNotExist, TaskboardError,
    CannotDeleteLastTeamMember, TeamDoesNotExist, UserDoesNotExist, UserIsNotTeamMember,
)
from auth.routes import router as auth_router
from auth.dependencies import get_current_user
from auth.permissions import (
    NamespaceRights, get_namespace_right, get_user_project_ids, require_project_right,
)
from auth.security import hash_password
from services import projects as project_service
from services import tasks as task_service
from services.duplicate import ProjectDuplicate
from string_utils import make_random_string
from time_utils import utc_now

# Configure logging
logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO").upper())
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Taskboard API",
    description="Namespaces, projects, kanban buckets and tasks, with project duplication",
    version="1.0.0"
)

CORS_ORIGINS = [
    origin.strip()
    for origin in os.environ.get("CORS_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router)


@app.exception_handler(TaskboardError)
async def taskboard_error_handler(request: Request, exc: TaskboardError):
    if exc.http_status >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(
        status_code=exc.http_status,
        content={"code": exc.code, "message": exc.message},
    )


def upload_size(upload: UploadFile) -> int:
    """Size of an uploaded file in bytes, leaving the read position at the start."""
    upload.file.seek(0, os.SEEK_END)
    size = upload.file.tell()
    upload.file.seek(0)
    return size


def get_task_for_user(db: Session, task_id: int, user: models.User, required: models.Right) -> models.Task:
    """Load a task and require a right on its project."""
    task = task_service.get_task(db, task_id)
    require_project_right(user, task.project_id, required, db)
    return task


def require_team_admin(db: Session, team_id: int, user: models.User, message: str) -> None:
    """Raise unless the team exists and the user is one of its admins."""
    if db.get(models.Team, team_id) is None:
        raise TeamDoesNotExist(team_id)

    is_admin = (
        db.query(models.TeamMember)
        .filter(
            models.TeamMember.team_id == team_id,
            models.TeamMember.user_id == user.id,
            models.TeamMember.admin.is_(True),
        )
        .first()
    )
    if not is_admin:
        raise AccessDenied(message)


# Health check
@app.get("/health")
def health_check():
    return {"status": "healthy"}


# ============== Namespaces ==============

@app.post("/api/namespaces", response_model=schemas.Namespace, status_code=status.HTTP_201_CREATED)
def create_namespace(
    namespace: schemas.NamespaceCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Create a namespace owned by the current user."""
    db_namespace = models.Namespace(**namespace.model_dump(), owner_id=current_user.id)
    db.add(db_namespace)
    db.commit()
    db.refresh(db_namespace)

    logger.info(f"Namespace created: {db_namespace.title} (ID: {db_namespace.id}) by user {current_user.id}")
    return db_namespace


@app.get("/api/namespaces", response_model=List[schemas.Namespace])
def list_namespaces(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """List all namespaces the current user owns or has been given a right on."""
    namespaces = db.query(models.Namespace).order_by(models.Namespace.id).all()
    visible = [ns for ns in namespaces if get_namespace_right(current_user, ns, db) is not None]

    logger.debug(f"User {current_user.id} retrieved {len(visible)} namespaces")
    return visible


@app.put("/api/namespaces/{namespace_id}/users", response_model=schemas.UserShare)
def share_namespace_with_user(
    namespace_id: int,
    share: schemas.UserShareCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Grant a user a right on a namespace (requires namespace admin)."""
    namespace = db.get(models.Namespace, namespace_id)
    if namespace is None or get_namespace_right(current_user, namespace, db) != models.Right.admin:
        raise AccessDenied("Only namespace admins can share a namespace")
    if db.get(models.User, share.user_id) is None:
        raise UserDoesNotExist(share.user_id)

    existing = (
        db.query(models.NamespaceUser)
        .filter(models.NamespaceUser.namespace_id == namespace_id, models.NamespaceUser.user_id == share.user_id)
        .first()
    )
    if existing:
        existing.right = int(share.right)
        db_share = existing
    else:
        db_share = models.NamespaceUser(namespace_id=namespace_id, user_id=share.user_id, right=int(share.right))
        db.add(db_share)
    db.commit()
    db.refresh(db_share)

    logger.info(f"User {share.user_id} given right {share.right.name} on namespace {namespace_id}")
    return db_share


# ============== Teams ==============

@app.post("/api/teams", response_model=schemas.Team, status_code=status.HTTP_201_CREATED)
def create_team(
    team: schemas.TeamCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Create a team; the creator becomes its first admin member."""
    db_team = models.Team(**team.model_dump(), created_by_id=current_user.id)
    db.add(db_team)
    db.flush()
    db.add(models.TeamMember(team_id=db_team.id, user_id=current_user.id, admin=True))
    db.commit()
    db.refresh(db_team)

    logger.info(f"Team created: {db_team.name} (ID: {db_team.id}) by user {current_user.id}")
    return db_team


@app.put("/api/teams/{team_id}/members", response_model=schemas.TeamMember)
def add_team_member(
    team_id: int,
    member: schemas.TeamMemberCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Add a user to a team (requires team admin)."""
    require_team_admin(db, team_id, current_user, "Only team admins can add members")
    if db.get(models.User, member.user_id) is None:
        raise UserDoesNotExist(member.user_id)

    existing = (
        db.query(models.TeamMember)
        .filter(models.TeamMember.team_id == team_id, models.TeamMember.user_id == member.user_id)
        .first()
    )
    if existing:
        raise HTTPException(status_code=400, detail="User is already a member of this team")

    db_member = models.TeamMember(team_id=team_id, user_id=member.user_id, admin=member.admin)
    db.add(db_member)
    db.commit()
    db.refresh(db_member)

    logger.info(f"User {member.user_id} added to team {team_id}")
    return db_member


@app.delete("/api/teams/{team_id}/members/{user_id}")
def remove_team_member(
    team_id: int,
    user_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Remove a user from a team (requires team admin).

    The user loses every right the team granted, including access to projects
    shared with the team. A team always keeps at least one member.
    """
    require_team_admin(db, team_id, current_user, "Only team admins can remove members")

    membership = (
        db.query(models.TeamMember)
        .filter(models.TeamMember.team_id == team_id, models.TeamMember.user_id == user_id)
        .first()
    )
    if membership is None:
        raise UserIsNotTeamMember(user_id, team_id)

    member_count = db.query(models.TeamMember).filter(models.TeamMember.team_id == team_id).count()
    if member_count <= 1:
        raise CannotDeleteLastTeamMember(team_id)

    db.delete(membership)
    db.commit()

    logger.info(f"User {user_id} removed from team {team_id} by user {current_user.id}")
    return {"message": "Team member removed"}


# ============== Projects ==============

@app.post(
    "/api/namespaces/{namespace_id}/projects",
    response_model=schemas.Project,
    status_code=status.HTTP_201_CREATED,
)
def create_project(
    namespace_id: int,
    project: schemas.ProjectCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Create a project in a namespace (requires namespace write)."""
    if not NamespaceRights(namespace_id).can_write(current_user, db):
        raise AccessDenied("You cannot create projects in this namespace")

    db_project = models.Project(**project.model_dump(), namespace_id=namespace_id)
    project_service.create_project(db, db_project, current_user)
    db.commit()
    db.refresh(db_project)
    return db_project


@app.get("/api/projects", response_model=List[schemas.Project])
def list_projects(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """List all projects accessible to the current user."""
    project_ids = get_user_project_ids(current_user, db)
    if not project_ids:
        return []

    projects = (
        db.query(models.Project)
        .filter(models.Project.id.in_(project_ids))
        .order_by(models.Project.position, models.Project.id)
        .all()
    )
    logger.debug(f"User {current_user.id} retrieved {len(projects)} projects")
    return projects


@app.get("/api/projects/{project_id}", response_model=schemas.ProjectWithBuckets)
def get_project(
    project_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Get a project with its buckets (requires read)."""
    return require_project_right(current_user, project_id, models.Right.read, db)


@app.delete("/api/projects/{project_id}")
def delete_project(
    project_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Delete a project with everything in it (requires admin)."""
    project = require_project_right(current_user, project_id, models.Right.admin, db)
    try:
        project_service.delete_project(db, project)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(f"Project deleted: {project_id} by user {current_user.id}")
    return {"message": "Project deleted"}


@app.put(
    "/api/projects/{project_id}/duplicate",
    response_model=schemas.ProjectDuplicate,
    status_code=status.HTTP_201_CREATED,
)
def duplicate_project(
    project_id: int,
    request: schemas.ProjectDuplicateCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Copy a project with its buckets, tasks, attachments, labels, assignees,
    comments, relations, background and shares into another namespace.

    The caller needs read access on the project and write access on the
    target namespace. The copy is created in one transaction: on any failure
    nothing of it remains.
    """
    logger.debug(f"User {current_user.id} duplicating project {project_id} into namespace {request.namespace_id}")

    duplicate = ProjectDuplicate(project_id=project_id, namespace_id=request.namespace_id)
    if not duplicate.can_create(current_user, db):
        raise AccessDenied("You do not have the permission to duplicate this project into that namespace")

    try:
        new_project = duplicate.create(current_user, db)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(new_project)
    return {"project_id": project_id, "namespace_id": request.namespace_id, "project": new_project}


@app.put("/api/projects/{project_id}/background", response_model=schemas.Project)
def upload_project_background(
    project_id: int,
    background: UploadFile = File(...),
    blur_hash: Optional[str] = Form(None),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Upload a new background image for a project (requires write)."""
    project = require_project_right(current_user, project_id, models.Right.write, db)
    old_file_id = project.background_file_id

    try:
        new_file = filestore.create_file(
            db, background.file, background.filename or "background", upload_size(background), current_user,
            mime=background.content_type,
        )
        project_service.set_project_background(db, project, new_file, blur_hash)
        if old_file_id:
            old_file = db.get(models.File, old_file_id)
            if old_file is not None:
                db.query(models.UnsplashPhoto).filter(models.UnsplashPhoto.file_id == old_file_id).delete()
                filestore.delete_file(db, old_file)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(project)
    logger.info(f"Background of project {project_id} set to file {new_file.id}")
    return project


@app.get("/api/projects/{project_id}/background")
def get_project_background(
    project_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Download the background image of a project (requires read)."""
    project = require_project_right(current_user, project_id, models.Right.read, db)
    if not project.background_file_id:
        raise HTTPException(status_code=404, detail="Project has no background")

    file = filestore.load_file_meta_by_id(db, project.background_file_id)
    path = filestore.file_path(file.id)
    if not path.exists():
        raise FileDoesNotExist(file.id)
    return FileResponse(path, media_type=file.mime or "application/octet-stream", filename=file.name)


# ============== Project shares ==============

@app.put("/api/projects/{project_id}/users", response_model=schemas.UserShare)
def share_project_with_user(
    project_id: int,
    share: schemas.UserShareCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Share a project with a user (requires admin)."""
    require_project_right(current_user, project_id, models.Right.admin, db)
    if db.get(models.User, share.user_id) is None:
        raise UserDoesNotExist(share.user_id)

    existing = (
        db.query(models.ProjectUser)
        .filter(models.ProjectUser.project_id == project_id, models.ProjectUser.user_id == share.user_id)
        .first()
    )
    if existing:
        existing.right = int(share.right)
        db_share = existing
    else:
        db_share = models.ProjectUser(project_id=project_id, user_id=share.user_id, right=int(share.right))
        db.add(db_share)
    db.commit()
    db.refresh(db_share)

    logger.info(f"Project {project_id} shared with user {share.user_id} ({share.right.name})")
    return db_share


@app.get("/api/projects/{project_id}/users", response_model=List[schemas.UserShare])
def list_project_user_shares(
    project_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    require_project_right(current_user, project_id, models.Right.admin, db)
    return (
        db.query(models.ProjectUser)
        .filter(models.ProjectUser.project_id == project_id)
        .order_by(models.ProjectUser.id)
        .all()
    )


@app.put("/api/projects/{project_id}/teams", response_model=schemas.TeamShare)
def share_project_with_team(
    project_id: int,
    share: schemas.TeamShareCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Share a project with a team (requires admin)."""
    require_project_right(current_user, project_id, models.Right.admin, db)
    if db.get(models.Team, share.team_id) is None:
        raise TeamDoesNotExist(share.team_id)

    existing = (
        db.query(models.TeamProject)
        .filter(models.TeamProject.project_id == project_id, models.TeamProject.team_id == share.team_id)
        .first()
    )
    if existing:
        existing.right = int(share.right)
        db_share = existing
    else:
        db_share = models.TeamProject(project_id=project_id, team_id=share.team_id, right=int(share.right))
        db.add(db_share)
    db.commit()
    db.refresh(db_share)

    logger.info(f"Project {project_id} shared with team {share.team_id} ({share.right.name})")
    return db_share


@app.get("/api/projects/{project_id}/teams", response_model=List[schemas.TeamShare])
def list_project_team_shares(
    project_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    require_project_right(current_user, project_id, models.Right.admin, db)
    return (
        db.query(models.TeamProject)
        .filter(models.TeamProject.project_id == project_id)
        .order_by(models.TeamProject.id)
        .all()
    )


@app.put("/api/projects/{project_id}/shares", response_model=schemas.LinkShare)
def create_link_share(
    project_id: int,
    share: schemas.LinkShareCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Create a public link share for a project (requires admin)."""
    require_project_right(current_user, project_id, models.Right.admin, db)

    sharing_type = models.SharingType.without_password
    password_hash = None
    if share.password:
        sharing_type = models.SharingType.with_password
        password_hash = hash_password(share.password)

    db_share = models.LinkSharing(
        hash=make_random_string(40),
        name=share.name,
        project_id=project_id,
        right=int(share.right),
        sharing_type=int(sharing_type),
        password_hash=password_hash,
        shared_by_id=current_user.id,
    )
    db.add(db_share)
    db.commit()
    db.refresh(db_share)

    logger.info(f"Link share {db_share.id} created for project {project_id}")
    return db_share


@app.get("/api/projects/{project_id}/shares", response_model=List[schemas.LinkShare])
def list_link_shares(
    project_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    require_project_right(current_user, project_id, models.Right.admin, db)
    return (
        db.query(models.LinkSharing)
        .filter(models.LinkSharing.project_id == project_id)
        .order_by(models.LinkSharing.id)
        .all()
    )


# ============== Buckets ==============

@app.put("/api/projects/{project_id}/buckets", response_model=schemas.Bucket, status_code=status.HTTP_201_CREATED)
def create_bucket(
    project_id: int,
    bucket: schemas.BucketCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    require_project_right(current_user, project_id, models.Right.write, db)
    db_bucket = models.Bucket(**bucket.model_dump(), project_id=project_id)
    project_service.create_bucket(db, db_bucket, current_user)
    db.commit()
    db.refresh(db_bucket)
    return db_bucket


@app.get("/api/projects/{project_id}/buckets", response_model=List[schemas.Bucket])
def list_buckets(
    project_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    project = require_project_right(current_user, project_id, models.Right.read, db)
    return project.buckets


# ============== Tasks ==============

@app.put("/api/projects/{project_id}/tasks", response_model=schemas.Task, status_code=status.HTTP_201_CREATED)
def create_task(
    project_id: int,
    task: schemas.TaskCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Create a task in a project (requires write)."""
    require_project_right(current_user, project_id, models.Right.write, db)

    task_data = task.model_dump(exclude={"reminders"})
    db_task = models.Task(**task_data, project_id=project_id)
    if db_task.done:
        db_task.done_at = utc_now()

    task_service.create_task(db, db_task, current_user, reminders=task.reminders)
    db.commit()
    db.refresh(db_task)

    logger.info(f"Task created: {db_task.title} (ID: {db_task.id}) in project {project_id}")
    return db_task


@app.get("/api/projects/{project_id}/tasks", response_model=List[schemas.Task])
def list_project_tasks(
    project_id: int,
    response: Response,
    s: Optional[str] = Query(None, description="Search text matched against title and description"),
    sort_by: Optional[List[str]] = Query(None, description="Sort fields, e.g. done, id, due_date, priority"),
    order_by: Optional[List[str]] = Query(None, description="asc or desc for each sort field"),
    page: int = Query(1, ge=1, description="1-based page number"),
    per_page: int = Query(50, ge=1, le=500, description="Tasks per page (max 500)"),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    List a project's tasks (requires read).

    Defaults to open tasks first, newest first. Pagination totals are returned
    in the x-pagination-total-pages and x-pagination-result-count headers.
    """
    logger.debug(f"User {current_user.id} listing tasks of project {project_id}: s={s}, sort_by={sort_by}, page={page}")
    require_project_right(current_user, project_id, models.Right.read, db)

    tasks, total = task_service.list_project_tasks(
        db, project_id, search=s, sort_by=sort_by, order_by=order_by, page=page, per_page=per_page,
    )
    response.headers["x-pagination-total-pages"] = str(max(1, math.ceil(total / per_page)))
    response.headers["x-pagination-result-count"] = str(len(tasks))
    return tasks


@app.get("/api/tasks/{task_id}", response_model=schemas.Task)
def get_task(
    task_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return get_task_for_user(db, task_id, current_user, models.Right.read)


@app.put("/api/tasks/{task_id}/assignees", response_model=schemas.Assignee, status_code=status.HTTP_201_CREATED)
def add_task_assignee(
    task_id: int,
    assignee: schemas.AssigneeCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Assign a user to a task. The user needs access to the task's project."""
    task = get_task_for_user(db, task_id, current_user, models.Right.write)
    db_assignee = task_service.add_assignee(db, task, assignee.user_id, task.project, current_user)
    db.commit()
    db.refresh(db_assignee)
    return db_assignee


# ============== Labels ==============

@app.post("/api/labels", response_model=schemas.Label, status_code=status.HTTP_201_CREATED)
def create_label(
    label: schemas.LabelCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    db_label = models.Label(**label.model_dump(), created_by_id=current_user.id)
    db.add(db_label)
    db.commit()
    db.refresh(db_label)
    return db_label


@app.put("/api/tasks/{task_id}/labels", response_model=schemas.Label, status_code=status.HTTP_201_CREATED)
def add_task_label(
    task_id: int,
    label_task: schemas.LabelTaskCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    task = get_task_for_user(db, task_id, current_user, models.Right.write)
    task_service.add_label(db, task, label_task.label_id)
    db.commit()
    return db.get(models.Label, label_task.label_id)


# ============== Comments ==============

@app.put("/api/tasks/{task_id}/comments", response_model=schemas.Comment, status_code=status.HTTP_201_CREATED)
def create_comment(
    task_id: int,
    comment: schemas.CommentCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    task = get_task_for_user(db, task_id, current_user, models.Right.write)
    db_comment = task_service.create_comment(db, task, comment.comment, current_user)
    db.commit()
    db.refresh(db_comment)
    return db_comment


@app.get("/api/tasks/{task_id}/comments", response_model=List[schemas.Comment])
def list_comments(
    task_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    get_task_for_user(db, task_id, current_user, models.Right.read)
    return (
        db.query(models.TaskComment)
        .options(selectinload(models.TaskComment.author))
        .filter(models.TaskComment.task_id == task_id)
        .order_by(models.TaskComment.id)
        .all()
    )


# ============== Relations ==============

@app.put("/api/tasks/{task_id}/relations", response_model=schemas.Relation, status_code=status.HTTP_201_CREATED)
def create_relation(
    task_id: int,
    relation: schemas.RelationCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Relate a task to another task. The other task may be in any project the user can read."""
    task = get_task_for_user(db, task_id, current_user, models.Right.write)
    other = task_service.get_task(db, relation.other_task_id)
    require_project_right(current_user, other.project_id, models.Right.read, db)

    db_relation = task_service.create_relation(
        db, task, relation.other_task_id, models.RelationKind(relation.relation_kind.value), current_user
    )
    db.commit()
    db.refresh(db_relation)
    return db_relation


# ============== Attachments ==============

@app.put("/api/tasks/{task_id}/attachments", response_model=schemas.Attachment, status_code=status.HTTP_201_CREATED)
def upload_attachment(
    task_id: int,
    file: UploadFile = File(...),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Upload a file attachment to a task (requires write)."""
    get_task_for_user(db, task_id, current_user, models.Right.write)
    logger.debug(f"Uploading attachment to task {task_id}: {file.filename}")

    try:
        attachment = task_service.new_attachment(
            db, task_id, file.file, file.filename or "attachment", upload_size(file), current_user,
            mime=file.content_type,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(attachment)
    logger.info(f"Uploaded attachment {attachment.id} to task {task_id}")
    return attachment


@app.get("/api/tasks/{task_id}/attachments", response_model=List[schemas.Attachment])
def list_attachments(
    task_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    get_task_for_user(db, task_id, current_user, models.Right.read)
    return (
        db.query(models.TaskAttachment)
        .options(selectinload(models.TaskAttachment.file))
        .filter(models.TaskAttachment.task_id == task_id)
        .order_by(models.TaskAttachment.id)
        .all()
    )


@app.get("/api/tasks/{task_id}/attachments/{attachment_id}")
def download_attachment(
    task_id: int,
    attachment_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Download the content of an attachment (requires read)."""
    get_task_for_user(db, task_id, current_user, models.Right.read)

    attachment = db.get(models.TaskAttachment, attachment_id)
    if attachment is None or attachment.task_id != task_id:
        raise AttachmentDoesNotExist(attachment_id)
    if not attachment.file_id:
        raise AttachmentDoesNotExist(attachment_id)

    file = filestore.load_file_meta_by_id(db, attachment.file_id)
    path = filestore.file_path(file.id)
    if not path.exists():
        raise FileDoesNotExist(file.id)
    return FileResponse(path, media_type=file.mime or "application/octet-stream", filename=file.name)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=os.environ.get("HOST", "0.0.0.0"), port=int(os.environ.get("PORT", "8000")))
