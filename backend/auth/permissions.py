"""
Capability checks for projects and namespaces.

A user's effective right on a project is the highest of:
1. Ownership of the project or of its namespace (admin)
2. A direct user share on the project or the namespace
3. A team share on the project or the namespace, via team membership

Route handlers and services depend on the Rights interface only, so a
different capability source can be swapped in (e.g. in tests).
"""

import logging
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from errors import AccessDenied, NamespaceDoesNotExist, NamespaceIsArchived, ProjectDoesNotExist
from models import (
    Namespace, NamespaceUser, Project, ProjectUser, Right, TeamMember, TeamNamespace,
    TeamProject, User,
)

logger = logging.getLogger(__name__)


def _max_right(*rights: Optional[int]) -> Optional[Right]:
    present = [r for r in rights if r is not None]
    if not present:
        return None
    return Right(max(present))


def _user_share_right(db: Session, model, column, entity_id: int, user_id: int) -> Optional[int]:
    return (
        db.query(func.max(model.right))
        .filter(column == entity_id, model.user_id == user_id)
        .scalar()
    )


def _team_share_right(db: Session, model, column, entity_id: int, user_id: int) -> Optional[int]:
    return (
        db.query(func.max(model.right))
        .join(TeamMember, TeamMember.team_id == model.team_id)
        .filter(column == entity_id, TeamMember.user_id == user_id)
        .scalar()
    )


def get_namespace_right(user: User, namespace: Namespace, db: Session) -> Optional[Right]:
    """Effective right of a user on a namespace, or None without any access."""
    if namespace.owner_id == user.id:
        return Right.admin
    return _max_right(
        _user_share_right(db, NamespaceUser, NamespaceUser.namespace_id, namespace.id, user.id),
        _team_share_right(db, TeamNamespace, TeamNamespace.namespace_id, namespace.id, user.id),
    )


def get_project_right(user: User, project: Project, db: Session) -> Optional[Right]:
    """
    Effective right of a user on a project, or None without any access.

    Example:
        >>> right = get_project_right(user, project, db)
        >>> if right is None or right < Right.write:
        ...     raise AccessDenied()
    """
    if project.owner_id == user.id:
        return Right.admin

    namespace = db.get(Namespace, project.namespace_id)
    namespace_right = get_namespace_right(user, namespace, db) if namespace else None
    if namespace_right == Right.admin:
        return namespace_right

    return _max_right(
        namespace_right,
        _user_share_right(db, ProjectUser, ProjectUser.project_id, project.id, user.id),
        _team_share_right(db, TeamProject, TeamProject.project_id, project.id, user.id),
    )


class Rights:
    """Capability checks of one entity kind."""

    def can_read(self, user: User, db: Session) -> bool:
        raise NotImplementedError

    def can_write(self, user: User, db: Session) -> bool:
        raise NotImplementedError

    def can_create(self, user: User, db: Session) -> bool:
        raise NotImplementedError


class NamespaceRights(Rights):
    def __init__(self, namespace_id: int):
        self.namespace_id = namespace_id

    def _load(self, db: Session) -> Namespace:
        namespace = db.get(Namespace, self.namespace_id)
        if namespace is None:
            logger.info(f"Namespace {self.namespace_id} not found")
            raise NamespaceDoesNotExist(self.namespace_id)
        return namespace

    def _has_right(self, user: User, db: Session, required: Right) -> bool:
        right = get_namespace_right(user, self._load(db), db)
        has_permission = right is not None and right >= required
        if not has_permission:
            logger.info(
                f"User {user.id} has right {right} on namespace {self.namespace_id}, "
                f"but {required.name} is required"
            )
        return has_permission

    def can_read(self, user: User, db: Session) -> bool:
        return self._has_right(user, db, Right.read)

    def can_write(self, user: User, db: Session) -> bool:
        """Write access on a namespace means projects can be created in it."""
        namespace = self._load(db)
        if namespace.is_archived:
            raise NamespaceIsArchived(self.namespace_id)
        return self._has_right(user, db, Right.write)

    def can_create(self, user: User, db: Session) -> bool:
        # Every user may create their own namespaces
        return True


class ProjectRights(Rights):
    """
    Checks on an existing project (project_id) or on a project about to be
    created in a namespace (namespace_id).
    """

    def __init__(self, project_id: Optional[int] = None, namespace_id: Optional[int] = None):
        self.project_id = project_id
        self.namespace_id = namespace_id

    def _load(self, db: Session) -> Project:
        project = db.get(Project, self.project_id) if self.project_id else None
        if project is None:
            logger.info(f"Project {self.project_id} not found")
            raise ProjectDoesNotExist(self.project_id)
        return project

    def get_right(self, user: User, db: Session) -> Optional[Right]:
        return get_project_right(user, self._load(db), db)

    def can_read(self, user: User, db: Session) -> bool:
        right = self.get_right(user, db)
        return right is not None

    def can_write(self, user: User, db: Session) -> bool:
        project = self._load(db)
        if project.is_archived:
            logger.info(f"Project {project.id} is archived, denying write")
            return False
        right = get_project_right(user, project, db)
        return right is not None and right >= Right.write

    def can_admin(self, user: User, db: Session) -> bool:
        right = self.get_right(user, db)
        return right is not None and right >= Right.admin

    def can_create(self, user: User, db: Session) -> bool:
        return NamespaceRights(self.namespace_id).can_write(user, db)


def has_project_access(user: User, project: Project, db: Session) -> bool:
    """True if the user has at least read access to the project."""
    return get_project_right(user, project, db) is not None


def require_project_right(user: User, project_id: int, required: Right, db: Session) -> Project:
    """
    Require a right on a project, or raise.

    Raises:
        ProjectDoesNotExist: if the project is missing or the user has no access at all
            (existence is not leaked to non-members)
        AccessDenied: if the user has access but a lower right

    Returns:
        The project
    """
    project = db.get(Project, project_id)
    if project is None:
        raise ProjectDoesNotExist(project_id)

    right = get_project_right(user, project, db)
    if right is None:
        logger.info(f"User {user.id} has no access to project {project_id}, returning 404")
        raise ProjectDoesNotExist(project_id)
    if right < required:
        logger.info(
            f"User {user.id} has right {right.name} on project {project_id}, "
            f"but {required.name} is required"
        )
        raise AccessDenied(f"Insufficient permissions. Required right: {required.name}")
    if required >= Right.write and project.is_archived:
        raise AccessDenied(f"Project {project_id} is archived")

    logger.debug(f"Permission check passed for user {user.id} on project {project_id}")
    return project


def get_user_project_ids(user: User, db: Session) -> list[int]:
    """All project ids the user can read: owned, shared, or in an accessible namespace."""
    namespace_ids = set(
        row.id for row in db.query(Namespace.id).filter(Namespace.owner_id == user.id)
    )
    namespace_ids.update(
        row.namespace_id
        for row in db.query(NamespaceUser.namespace_id).filter(NamespaceUser.user_id == user.id)
    )
    namespace_ids.update(
        row.namespace_id
        for row in db.query(TeamNamespace.namespace_id)
        .join(TeamMember, TeamMember.team_id == TeamNamespace.team_id)
        .filter(TeamMember.user_id == user.id)
    )

    project_ids = set(
        row.id for row in db.query(Project.id).filter(Project.owner_id == user.id)
    )
    if namespace_ids:
        project_ids.update(
            row.id for row in db.query(Project.id).filter(Project.namespace_id.in_(namespace_ids))
        )
    project_ids.update(
        row.project_id
        for row in db.query(ProjectUser.project_id).filter(ProjectUser.user_id == user.id)
    )
    project_ids.update(
        row.project_id
        for row in db.query(TeamProject.project_id)
        .join(TeamMember, TeamMember.team_id == TeamProject.team_id)
        .filter(TeamMember.user_id == user.id)
    )

    logger.debug(f"User {user.id} has access to {len(project_ids)} projects")
    return sorted(project_ids)
