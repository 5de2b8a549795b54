"""
Duplicate a project from the command line.

Runs the same duplication as PUT /api/projects/{id}/duplicate, acting as the
given user, inside a single database transaction.

Usage:
    python duplicate_cli.py PROJECT_ID NAMESPACE_ID --user USERNAME
"""

import argparse
import logging
import os
import sys

import models
from database import session_scope
from errors import TaskboardError, UserDoesNotExist
from services.duplicate import duplicate_project

logger = logging.getLogger(__name__)


def duplicate(project_id: int, namespace_id: int, username: str) -> int:
    """
    Duplicate a project as the named user and commit the copy.

    Args:
        project_id: ID of the project to copy
        namespace_id: ID of the namespace receiving the copy
        username: User the duplication runs as

    Returns:
        ID of the new project

    Raises:
        UserDoesNotExist: if there is no user with this username
        AccessDenied: if the user may not duplicate the project into the namespace
        ProjectDuplicationFailed: on any error while copying, after rolling back
    """
    with session_scope() as db:
        doer = db.query(models.User).filter(models.User.username == username).first()
        if doer is None:
            raise UserDoesNotExist(username)
        new_project = duplicate_project(db, project_id, namespace_id, doer)
        new_project_id = new_project.id

    logger.info(f"Project {project_id} duplicated into {new_project_id} as {username}")
    return new_project_id


def main():
    parser = argparse.ArgumentParser(description="Duplicate a project into a namespace")
    parser.add_argument("project_id", type=int, help="Project to copy")
    parser.add_argument("namespace_id", type=int, help="Namespace which will hold the copy")
    parser.add_argument("--user", required=True, help="Username the duplication runs as")
    args = parser.parse_args()

    logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO").upper())

    try:
        new_project_id = duplicate(args.project_id, args.namespace_id, args.user)
    except TaskboardError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        sys.exit(1)

    print(f"Created project {new_project_id}")


if __name__ == "__main__":
    main()
