"""
Project, bucket and background operations shared by the API and by duplication.

Functions only flush; the caller owns the transaction.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

import models
import filestore
from errors import (
    FileIsNotUnsplashFile, NamespaceDoesNotExist, ProjectDoesNotExist, ProjectIdentifierIsNotUnique,
)
from string_utils import identifier_from_title

logger = logging.getLogger(__name__)


def get_project(db: Session, project_id: int) -> models.Project:
    """
    Load a project by id.

    Args:
        db: Database session
        project_id: ID of the project

    Returns:
        The project

    Raises:
        ProjectDoesNotExist: if there is no project with this id
    """
    project = db.get(models.Project, project_id)
    if project is None:
        raise ProjectDoesNotExist(project_id)
    return project


def identifier_in_use(db: Session, identifier: str, exclude_project_id: Optional[int] = None) -> bool:
    query = db.query(models.Project.id).filter(models.Project.identifier == identifier)
    if exclude_project_id is not None:
        query = query.filter(models.Project.id != exclude_project_id)
    return query.first() is not None


def create_project(
    db: Session,
    project: models.Project,
    doer: models.User,
    generate_identifier: bool = False,
) -> models.Project:
    """
    Insert a new project owned by doer.

    Args:
        db: Database session
        project: Transient project; namespace_id must be set
        doer: The creating user, who becomes the owner
        generate_identifier: Derive an identifier from the title when none is set

    Returns:
        The flushed project

    Raises:
        NamespaceDoesNotExist: if the target namespace is missing
        ProjectIdentifierIsNotUnique: if the (given or generated) identifier is taken.
            Nothing is inserted in that case.
    """
    if db.get(models.Namespace, project.namespace_id) is None:
        raise NamespaceDoesNotExist(project.namespace_id)

    if not project.identifier and generate_identifier:
        project.identifier = identifier_from_title(project.title)
    project.identifier = project.identifier or ""

    if project.identifier and identifier_in_use(db, project.identifier):
        logger.info(f"Project identifier '{project.identifier}' is already in use")
        raise ProjectIdentifierIsNotUnique(project.identifier)

    project.owner_id = doer.id
    db.add(project)
    db.flush()

    logger.info(f"Project created: {project.title} (ID: {project.id}) by user {doer.id}")
    return project


def create_bucket(db: Session, bucket: models.Bucket, doer: models.User) -> models.Bucket:
    """
    Insert a kanban bucket into its project.

    Args:
        db: Database session
        bucket: Transient bucket with project_id set
        doer: User creating the bucket

    Returns:
        The flushed bucket

    Raises:
        ProjectDoesNotExist: if the bucket's project is missing
    """
    get_project(db, bucket.project_id)
    bucket.created_by_id = doer.id
    db.add(bucket)
    db.flush()
    logger.debug(f"Created bucket {bucket.id} in project {bucket.project_id}")
    return bucket


def get_unsplash_photo_by_file_id(db: Session, file_id: int) -> models.UnsplashPhoto:
    """
    Load the unsplash attribution of a stored file.

    Args:
        db: Database session
        file_id: ID of the stored file

    Returns:
        The attribution row

    Raises:
        FileIsNotUnsplashFile: if the file has no unsplash attribution
    """
    photo = (
        db.query(models.UnsplashPhoto)
        .filter(models.UnsplashPhoto.file_id == file_id)
        .first()
    )
    if photo is None:
        raise FileIsNotUnsplashFile(file_id)
    return photo


def set_project_background(
    db: Session,
    project: models.Project,
    file: Optional[models.File],
    blur_hash: Optional[str],
) -> models.Project:
    """Point a project's background at a stored file, or clear it with file=None."""
    project.background_file_id = file.id if file is not None else None
    project.background_blur_hash = blur_hash if file is not None else None
    db.flush()
    logger.debug(f"Set background of project {project.id} to file {project.background_file_id}")
    return project


def delete_project(db: Session, project: models.Project) -> None:
    """
    Delete a project with its tasks, shares and stored files.

    File content is only removed from disk once the caller commits.

    Args:
        db: Database session
        project: Project to delete
    """
    attachments = (
        db.query(models.TaskAttachment)
        .join(models.Task, models.Task.id == models.TaskAttachment.task_id)
        .filter(models.Task.project_id == project.id)
        .all()
    )
    file_ids = [a.file_id for a in attachments if a.file_id]
    if project.background_file_id:
        file_ids.append(project.background_file_id)

    task_ids = [t.id for t in project.tasks]
    if task_ids:
        for model in (models.LabelTask, models.TaskAssignee):
            db.query(model).filter(model.task_id.in_(task_ids)).delete(synchronize_session=False)
        db.query(models.TaskRelation).filter(
            models.TaskRelation.task_id.in_(task_ids) | models.TaskRelation.other_task_id.in_(task_ids)
        ).delete(synchronize_session=False)
    for model in (models.ProjectUser, models.TeamProject, models.LinkSharing):
        db.query(model).filter(model.project_id == project.id).delete(synchronize_session=False)

    project.background_file_id = None
    db.delete(project)
    db.flush()

    for file_id in file_ids:
        file = db.get(models.File, file_id)
        if file is not None:
            db.query(models.UnsplashPhoto).filter(models.UnsplashPhoto.file_id == file_id).delete()
            filestore.delete_file(db, file)

    logger.info(f"Deleted project {project.id} and {len(file_ids)} stored files")
