"""
Task operations: creation, listing, assignees, labels, comments, relations
and attachments.

Functions only flush; the caller owns the transaction.
"""

import logging
import uuid
from datetime import datetime
from typing import BinaryIO, Iterable, Optional, Sequence

from sqlalchemy import asc, desc, func, or_
from sqlalchemy.orm import Session, selectinload

import models
import filestore
from auth.permissions import has_project_access
from errors import (
    BucketDoesNotBelongToProject, BucketDoesNotExist, InvalidTaskSort, LabelDoesNotExist,
    LabelIsAlreadyOnTask, RelationAlreadyExists, RelationTasksCannotBeTheSame, TaskDoesNotExist,
    UserAlreadyAssigned, UserDoesNotExist, UserDoesNotHaveAccessToProject,
)

logger = logging.getLogger(__name__)

# Fields a task list can be sorted by
TASK_SORT_FIELDS = {
    "id": models.Task.id,
    "title": models.Task.title,
    "done": models.Task.done,
    "done_at": models.Task.done_at,
    "due_date": models.Task.due_date,
    "priority": models.Task.priority,
    "index": models.Task.index,
    "position": models.Task.position,
    "created_at": models.Task.created_at,
    "updated_at": models.Task.updated_at,
}

DEFAULT_SORT_BY = ["done", "id"]
DEFAULT_ORDER_BY = ["asc", "desc"]


def get_task(db: Session, task_id: int) -> models.Task:
    """
    Load a task by id.

    Args:
        db: Database session
        task_id: ID of the task

    Returns:
        The task

    Raises:
        TaskDoesNotExist: if there is no task with this id
    """
    task = db.get(models.Task, task_id)
    if task is None:
        raise TaskDoesNotExist(task_id)
    return task


def get_tasks_for_projects(db: Session, project_ids: Iterable[int]) -> list[models.Task]:
    """All tasks of the given projects in id order, with reminders, assignees and labels loaded."""
    project_ids = list(project_ids)
    if not project_ids:
        return []
    return (
        db.query(models.Task)
        .filter(models.Task.project_id.in_(project_ids))
        .options(
            selectinload(models.Task.reminders),
            selectinload(models.Task.assignees),
            selectinload(models.Task.labels),
        )
        .order_by(models.Task.id)
        .all()
    )


def _task_order_clauses(sort_by: Sequence[str], order_by: Sequence[str]) -> list:
    clauses = []
    for position, field in enumerate(sort_by):
        column = TASK_SORT_FIELDS.get(field)
        if column is None:
            raise InvalidTaskSort(f"Cannot sort tasks by '{field}'")
        direction = order_by[position] if position < len(order_by) else "asc"
        if direction not in ("asc", "desc"):
            raise InvalidTaskSort(f"Invalid sort order '{direction}', use 'asc' or 'desc'")
        clauses.append(asc(column) if direction == "asc" else desc(column))
    # id as tiebreaker for deterministic pagination
    if "id" not in sort_by:
        clauses.append(asc(models.Task.id))
    return clauses


def list_project_tasks(
    db: Session,
    project_id: int,
    search: Optional[str] = None,
    sort_by: Optional[Sequence[str]] = None,
    order_by: Optional[Sequence[str]] = None,
    page: int = 1,
    per_page: int = 50,
) -> tuple[list[models.Task], int]:
    """
    List one page of a project's tasks.

    Without explicit sorting, open tasks come before done ones and newer tasks
    before older ones. Each order_by entry applies to the sort_by field at the
    same position; missing entries sort ascending.

    Args:
        db: Database session
        project_id: ID of the project
        search: Case-insensitive text matched against title and description
        sort_by: Field names from TASK_SORT_FIELDS
        order_by: "asc" or "desc" per sort field
        page: 1-based page number
        per_page: Page size

    Returns:
        Tuple of (tasks on the page, total number of matching tasks)

    Raises:
        InvalidTaskSort: on an unknown sort field or order

    Example:
        >>> tasks, total = list_project_tasks(db, 7, search="invoice", page=2)
    """
    if not sort_by:
        sort_by, order_by = DEFAULT_SORT_BY, DEFAULT_ORDER_BY
    order_clauses = _task_order_clauses(sort_by, order_by or [])

    query = db.query(models.Task).filter(models.Task.project_id == project_id)
    if search and search.strip():
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(models.Task.title.ilike(pattern), models.Task.description.ilike(pattern)))

    total = query.count()
    tasks = (
        query.options(
            selectinload(models.Task.reminders),
            selectinload(models.Task.assignees),
            selectinload(models.Task.labels),
        )
        .order_by(*order_clauses)
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    logger.debug(
        f"Listed {len(tasks)} of {total} tasks in project {project_id}: "
        f"search={search}, sort_by={list(sort_by)}, page={page}"
    )
    return tasks, total

def _next_task_index(db: Session, project_id: int) -> int:
    latest = (
        db.query(func.max(models.Task.index))
        .filter(models.Task.project_id == project_id)
        .scalar()
    )
    return (latest or 0) + 1


def create_task(
    db: Session,
    task: models.Task,
    doer: models.User,
    reminders: Optional[Iterable[datetime]] = None,
) -> models.Task:
    """
    Insert a new task.

    A missing uid is generated, a missing index becomes the next free index of
    the project. A given bucket must belong to the task's project.

    Args:
        db: Database session
        task: Transient task with project_id set
        doer: User creating the task
        reminders: Optional reminder times

    Returns:
        The flushed task

    Raises:
        BucketDoesNotExist, BucketDoesNotBelongToProject
    """
    if task.bucket_id is not None:
        bucket = db.get(models.Bucket, task.bucket_id)
        if bucket is None:
            raise BucketDoesNotExist(task.bucket_id)
        if bucket.project_id != task.project_id:
            raise BucketDoesNotBelongToProject(task.bucket_id, task.project_id)

    if not task.uid:
        task.uid = uuid.uuid4().hex
    if not task.index:
        task.index = _next_task_index(db, task.project_id)
    task.created_by_id = doer.id

    db.add(task)
    db.flush()

    for reminder in reminders or []:
        db.add(models.TaskReminder(task_id=task.id, reminder=reminder))
    db.flush()

    logger.debug(f"Task created: id={task.id} in project {task.project_id}")
    return task


def add_assignee(
    db: Session,
    task: models.Task,
    user_id: int,
    project: models.Project,
    doer: models.User,
) -> models.TaskAssignee:
    """
    Assign a user to a task after checking they can see the task's project.

    Raises:
        UserDoesNotExist: if the user is missing
        UserDoesNotHaveAccessToProject: if the user cannot read the project
        UserAlreadyAssigned: if the user is already assigned
    """
    user = db.get(models.User, user_id)
    if user is None:
        raise UserDoesNotExist(user_id)

    if not has_project_access(user, project, db):
        logger.info(f"User {user_id} cannot be assigned to task {task.id}: no access to project {project.id}")
        raise UserDoesNotHaveAccessToProject(user_id, project.id)

    existing = (
        db.query(models.TaskAssignee)
        .filter(models.TaskAssignee.task_id == task.id, models.TaskAssignee.user_id == user_id)
        .first()
    )
    if existing:
        raise UserAlreadyAssigned(user_id, task.id)

    assignee = models.TaskAssignee(task_id=task.id, user_id=user_id)
    db.add(assignee)
    db.flush()
    logger.debug(f"User {user_id} assigned to task {task.id} by user {doer.id}")
    return assignee


def add_label(db: Session, task: models.Task, label_id: int) -> models.LabelTask:
    """
    Put an existing label on a task.

    Args:
        db: Database session
        task: Task to label
        label_id: ID of the label

    Returns:
        The new label association

    Raises:
        LabelDoesNotExist: if the label is missing
        LabelIsAlreadyOnTask: if the task already carries the label
    """
    if db.get(models.Label, label_id) is None:
        raise LabelDoesNotExist(label_id)
    existing = (
        db.query(models.LabelTask)
        .filter(models.LabelTask.task_id == task.id, models.LabelTask.label_id == label_id)
        .first()
    )
    if existing:
        raise LabelIsAlreadyOnTask(label_id, task.id)

    label_task = models.LabelTask(task_id=task.id, label_id=label_id)
    db.add(label_task)
    db.flush()
    return label_task


def create_comment(db: Session, task: models.Task, text: str, author: models.User) -> models.TaskComment:
    """
    Add a comment to a task.

    Args:
        db: Database session
        task: Task being commented on
        text: Comment body
        author: User writing the comment

    Returns:
        The flushed comment
    """
    comment =models.TaskComment(task_id=task.id, comment=text, author_id=author.id)
    db.add(comment)
    db.flush()
    logger.debug(f"Comment {comment.id} added to task {task.id}")
    return comment


def create_relation(
    db: Session,
    task: models.Task,
    other_task_id: int,
    kind: models.RelationKind,
    doer: models.User,
) -> models.TaskRelation:
    """
    Relate two tasks. The other task may live in another project.

    Args:
        db: Database session
        task: Task the relation starts from
        other_task_id: ID of the related task
        kind: Relation kind
        doer: User creating the relation

    Returns:
        The flushed relation

    Raises:
        RelationTasksCannotBeTheSame, TaskDoesNotExist, RelationAlreadyExists
    """
    if other_task_id == task.id:
        raise RelationTasksCannotBeTheSame(task.id)
    get_task(db, other_task_id)

    existing = (
        db.query(models.TaskRelation)
        .filter(
            models.TaskRelation.task_id == task.id,
            models.TaskRelation.other_task_id == other_task_id,
            models.TaskRelation.relation_kind == kind,
        )
        .first()
    )
    if existing:
        raise RelationAlreadyExists(task.id, other_task_id, kind.value)

    relation = models.TaskRelation(
        task_id=task.id,
        other_task_id=other_task_id,
        relation_kind=kind,
        created_by_id=doer.id,
    )
    db.add(relation)
    db.flush()
    return relation


def get_task_attachments_by_task_ids(db: Session, task_ids: Iterable[int]) -> list[models.TaskAttachment]:
    task_ids = list(task_ids)
    if not task_ids:
        return []
    return (
        db.query(models.TaskAttachment)
        .filter(models.TaskAttachment.task_id.in_(task_ids))
        .order_by(models.TaskAttachment.id)
        .all()
    )


def new_attachment(
    db: Session,
    task_id: int,
    content: BinaryIO,
    name: str,
    size: int,
    doer: models.User,
    mime: Optional[str] = None,
) -> models.TaskAttachment:
    """
    Store the content as a new file and attach it to a task.

    Args:
        db: Database session
        task_id: ID of the task receiving the attachment
        content: Readable binary stream with the file content
        name: File name
        size: Content size in bytes
        doer: Uploading user
        mime: Optional MIME type

    Returns:
        The flushed attachment

    Raises:
        FileTooLarge: if size exceeds MAX_FILE_SIZE
    """
    file = filestore.create_file(db, content, name, size, doer, mime=mime)
    attachment = models.TaskAttachment(task_id=task_id, file_id=file.id, created_by_id=doer.id)
    db.add(attachment)
    db.flush()
    logger.debug(f"Attachment {attachment.id} (file {file.id}) added to task {task_id}")
    return attachment
