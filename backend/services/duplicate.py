"""
Project duplication.

Copies a project with its buckets, tasks (reminders, attachments and their
files, label associations, assignees, comments, relations inside the
project), background image and shares into a new project in a target
namespace.

Everything runs in the caller's session and is only flushed. The caller
commits on success and rolls back on any exception, so a failed duplication
leaves nothing behind.
"""

import logging
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import models
import filestore
from auth.permissions import ProjectRights, Rights
from errors import (
    AccessDenied, FileDoesNotExist, FileIsNotUnsplashFile, ProjectDuplicationFailed, ProjectIdentifierIsNotUnique,
    TaskboardError, UserDoesNotHaveAccessToProject,
)
from services.projects import (
    create_bucket, create_project, get_project, get_unsplash_photo_by_file_id, set_project_background,
)
from services.tasks import (
    add_assignee, create_task, get_task_attachments_by_task_ids, get_tasks_for_projects, new_attachment,
)
from string_utils import make_random_string

logger = logging.getLogger(__name__)

LINK_SHARE_HASH_LENGTH = 40

# Builds the capability checker for a project id and/or namespace id
RightsFactory = Callable[..., Rights]


@contextmanager
def duplication_step(entity: str, project_id: int) -> Iterator[None]:
    """Turn any failure while copying one entity type into ProjectDuplicationFailed."""
    try:
        yield
    except ProjectDuplicationFailed:
        raise
    except (SQLAlchemyError, OSError, TaskboardError) as e:
        logger.error(f"Duplicating {entity} of project {project_id} failed: {e}")
        raise ProjectDuplicationFailed(entity, project_id, str(e)) from e


class ProjectDuplicate:
    """
    Duplicate project `project_id` into namespace `namespace_id`.

    Example:
        >>> duplicate = ProjectDuplicate(project_id=3, namespace_id=7)
        >>> if duplicate.can_create(user, db):
        ...     new_project = duplicate.create(user, db)
        ...     db.commit()
    """

    def __init__(
        self,
        project_id: int,
        namespace_id: int,
        rights_factory: Optional[RightsFactory] = None,
    ):
        self.project_id = project_id
        self.namespace_id = namespace_id
        self.rights_factory = rights_factory or ProjectRights
        self.project: Optional[models.Project] = None
        # Old bucket id -> new bucket id
        self.bucket_map: dict[int, int] = {}

    def can_create(self, doer: models.User, db: Session) -> bool:
        """
        The doer must be able to read the source project and to create projects
        in the target namespace. Nothing is written.
        """
        if not self.rights_factory(project_id=self.project_id).can_read(doer, db):
            logger.info(f"User {doer.id} cannot read project {self.project_id}, duplication denied")
            return False
        if not self.rights_factory(namespace_id=self.namespace_id).can_create(doer, db):
            logger.info(
                f"User {doer.id} cannot create projects in namespace {self.namespace_id}, duplication denied"
            )
            return False
        return True

    def create(self, doer: models.User, db: Session) -> models.Project:
        """Run the duplication. Returns the new, flushed project."""
        logger.debug(f"Duplicating project {self.project_id}")

        source = get_project(db, self.project_id)

        with duplication_step("project", self.project_id):
            self.project = self._copy_project(source, doer, db)
        logger.debug(f"Duplicated project {self.project_id} into new project {self.project.id}")

        with duplication_step("bucket", self.project_id):
            self._copy_buckets(doer, db)
        logger.debug(f"Duplicated all buckets from project {self.project_id} into {self.project.id}")

        TaskGraphDuplicator(self, doer, db).run()

        if source.background_file_id:
            with duplication_step("background", self.project_id):
                self._copy_background(source, doer, db)

        self._copy_shares(db)

        db.refresh(self.project)
        logger.info(f"Project {self.project_id} duplicated into {self.project.id} by user {doer.id}")
        return self.project

    def _copy_project(self, source: models.Project, doer: models.User, db: Session) -> models.Project:
        project = source.clone(
            identifier="",
            namespace_id=self.namespace_id,
            owner_id=doer.id,
            background_file_id=None,
            background_blur_hash=None,
        )
        try:
            return create_project(db, project, doer, generate_identifier=True)
        except ProjectIdentifierIsNotUnique:
            # The identifier is a convenience only
            logger.debug(f"Identifier '{project.identifier}' is taken, creating duplicate without one")
            project.identifier = ""
            return create_project(db, project, doer)

    def _copy_buckets(self, doer: models.User, db: Session) -> None:
        buckets = (
            db.query(models.Bucket)
            .filter(models.Bucket.project_id == self.project_id)
            .order_by(models.Bucket.position, models.Bucket.id)
            .all()
        )
        for bucket in buckets:
            new_bucket = create_bucket(db, bucket.clone(project_id=self.project.id), doer)
            self.bucket_map[bucket.id] = new_bucket.id

    def _copy_background(self, source: models.Project, doer: models.User, db: Session) -> None:
        old_file_id = source.background_file_id
        logger.debug(f"Duplicating background {old_file_id} from project {self.project_id} into {self.project.id}")

        meta = filestore.load_file_meta_by_id(db, old_file_id)
        with filestore.open_file_content(meta) as content:
            new_file = filestore.create_file(db, content, meta.name, meta.size, doer, mime=meta.mime)

        try:
            photo = get_unsplash_photo_by_file_id(db, old_file_id)
        except FileIsNotUnsplashFile:
            photo = None
        if photo is not None:
            db.add(photo.clone(file_id=new_file.id))
            db.flush()

        set_project_background(db, self.project, new_file, source.background_blur_hash)
        logger.debug(f"Duplicated project background from project {self.project_id} into {self.project.id}")

    def _copy_shares(self, db: Session) -> None:
        # Only shares made directly on the project, namespace shares stay where they are
        with duplication_step("user share", self.project_id):
            self._copy_rows(db, models.ProjectUser)
        logger.debug(f"Duplicated user shares from project {self.project_id} into {self.project.id}")

        with duplication_step("team share", self.project_id):
            self._copy_rows(db, models.TeamProject)
        logger.debug(f"Duplicated team shares from project {self.project_id} into {self.project.id}")

        with duplication_step("link share", self.project_id):
            self._copy_rows(db, models.LinkSharing, regenerate_hash=True)
        logger.debug(f"Duplicated all link shares from project {self.project_id} into {self.project.id}")

    def _copy_rows(self, db: Session, model, regenerate_hash: bool = False) -> None:
        rows = db.query(model).filter(model.project_id == self.project_id).order_by(model.id).all()
        for row in rows:
            overrides = {"project_id": self.project.id}
            if regenerate_hash:
                overrides["hash"] = make_random_string(LINK_SHARE_HASH_LENGTH)
            db.add(row.clone(**overrides))
        db.flush()


class TaskGraphDuplicator:
    """Copies all tasks of a project and everything hanging off them."""

    def __init__(self, duplicate: ProjectDuplicate, doer: models.User, db: Session):
        self.duplicate = duplicate
        self.doer = doer
        self.db = db
        self.source_id = duplicate.project_id
        self.project = duplicate.project
        # Old task id -> new task id
        self.task_map: dict[int, int] = {}
        self.old_task_ids: list[int] = []

    def run(self) -> None:
        with duplication_step("task", self.source_id):
            tasks = get_tasks_for_projects(self.db, [self.source_id])
        if not tasks:
            return

        with duplication_step("task", self.source_id):
            self._copy_tasks(tasks)
        logger.debug(f"Duplicated all tasks from project {self.source_id} into {self.project.id}")

        with duplication_step("attachment", self.source_id):
            self._copy_attachments()
        logger.debug(f"Duplicated all attachments from project {self.source_id} into {self.project.id}")

        with duplication_step("label", self.source_id):
            self._copy_labels()
        logger.debug(f"Duplicated all labels from project {self.source_id} into {self.project.id}")

        with duplication_step("assignee", self.source_id):
            self._copy_assignees()
        logger.debug(f"Duplicated all assignees from project {self.source_id} into {self.project.id}")

        with duplication_step("comment", self.source_id):
            self._copy_comments()
        logger.debug(f"Duplicated all comments from project {self.source_id} into {self.project.id}")

        with duplication_step("relation", self.source_id):
            self._copy_relations()
        logger.debug(f"Duplicated all task relations from project {self.source_id} into {self.project.id}")

    def _copy_tasks(self, tasks: list[models.Task]) -> None:
        bucket_map = self.duplicate.bucket_map
        for task in tasks:
            new_task = task.clone(
                project_id=self.project.id,
                bucket_id=bucket_map.get(task.bucket_id),
                uid=None,
            )
            create_task(self.db, new_task, self.doer, reminders=[r.reminder for r in task.reminders])
            self.task_map[task.id] = new_task.id
            self.old_task_ids.append(task.id)

    def _copy_attachments(self) -> None:
        # The files are copied too, so that changing them in one project does not affect the other
        for attachment in get_task_attachments_by_task_ids(self.db, self.old_task_ids):
            new_task_id = self.task_map.get(attachment.task_id)
            if new_task_id is None:
                logger.debug(
                    f"Not duplicating attachment {attachment.id}: "
                    f"old task {attachment.task_id} has no new counterpart"
                )
                continue
            if not attachment.file_id:
                logger.debug(f"Not duplicating attachment {attachment.id}: its file was deleted")
                continue

            try:
                meta = filestore.load_file_meta_by_id(self.db, attachment.file_id)
            except FileDoesNotExist:
                logger.debug(
                    f"Not duplicating attachment {attachment.id} (file {attachment.file_id}) because it does "
                    f"not exist from project {self.source_id} into {self.project.id}"
                )
                continue

            with filestore.open_file_content(meta) as content:
                new = new_attachment(self.db, new_task_id, content, meta.name, meta.size, self.doer, mime=meta.mime)

            logger.debug(
                f"Duplicated attachment {attachment.id} into {new.id} "
                f"from project {self.source_id} into {self.project.id}"
            )

    def _copy_labels(self) -> None:
        # Only the associations, labels themselves are shared
        label_tasks = (
            self.db.query(models.LabelTask)
            .filter(models.LabelTask.task_id.in_(self.old_task_ids))
            .order_by(models.LabelTask.id)
            .all()
        )
        for label_task in label_tasks:
            self.db.add(label_task.clone(task_id=self.task_map[label_task.task_id]))
        self.db.flush()

    def _copy_assignees(self) -> None:
        assignees = (
            self.db.query(models.TaskAssignee)
            .filter(models.TaskAssignee.task_id.in_(self.old_task_ids))
            .order_by(models.TaskAssignee.id)
            .all()
        )
        for assignee in assignees:
            new_task = self.db.get(models.Task, self.task_map[assignee.task_id])
            try:
                add_assignee(self.db, new_task, assignee.user_id, self.project, self.doer)
            except UserDoesNotHaveAccessToProject:
                logger.debug(
                    f"Not duplicating assignee {assignee.user_id} of task {assignee.task_id}: "
                    f"no access to project {self.project.id}"
                )
                continue

    def _copy_comments(self) -> None:
        comments = (
            self.db.query(models.TaskComment)
            .filter(models.TaskComment.task_id.in_(self.old_task_ids))
            .order_by(models.TaskComment.id)
            .all()
        )
        for comment in comments:
            self.db.add(comment.clone(task_id=self.task_map[comment.task_id]))
        self.db.flush()

    def _copy_relations(self) -> None:
        # Only relations between two tasks of this project; relations to other
        # projects' tasks are dropped
        relations = (
            self.db.query(models.TaskRelation)
            .filter(models.TaskRelation.task_id.in_(self.old_task_ids))
            .order_by(models.TaskRelation.id)
            .all()
        )
        for relation in relations:
            other_task_id = self.task_map.get(relation.other_task_id)
            if other_task_id is None:
                continue
            self.db.add(relation.clone(task_id=self.task_map[relation.task_id], other_task_id=other_task_id))
        self.db.flush()


def duplicate_project(
    db: Session,
    project_id: int,
    namespace_id: int,
    doer: models.User,
    rights_factory: Optional[RightsFactory] = None,
) -> models.Project:
    """
    Check access and duplicate a project in one call.

    Args:
        db: Database session; the caller commits or rolls back
        project_id: ID of the project to copy
        namespace_id: ID of the namespace receiving the copy
        doer: User running the duplication, owner of the copy
        rights_factory: Optional capability checker, defaults to ProjectRights

    Returns:
        The new, flushed project

    Raises:
        AccessDenied: if the doer cannot read the source or create in the namespace
        ProjectDuplicationFailed: on any non-recoverable error
    """
    duplicate = ProjectDuplicate(project_id, namespace_id, rights_factory=rights_factory)
    if not duplicate.can_create(doer, db):
        raise AccessDenied("You do not have the permission to duplicate this project into that namespace")
    return duplicate.create(doer, db)
