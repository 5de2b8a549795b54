"""
Domain errors.

Every error carries a stable numeric code and the HTTP status it maps to.
main.py renders them as {"code": ..., "message": ...}.
"""

from typing import Union

from fastapi import status


class TaskboardError(Exception):
    """Base class for all application errors."""

    code = 0
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str = "An application error occurred"):
        self.message = message
        super().__init__(self.message)


class AccessDenied(TaskboardError):
    code = 1001
    http_status = status.HTTP_403_FORBIDDEN

    def __init__(self, message: str = "You do not have the permission to do that"):
        super().__init__(message)


class UserDoesNotExist(TaskboardError):
    code = 1005
    http_status = status.HTTP_404_NOT_FOUND

    def __init__(self, user_id: Union[int, str]):
        self.user_id = user_id
        super().__init__(f"User {user_id} does not exist")


class ProjectDoesNotExist(TaskboardError):
    code = 3001
    http_status = status.HTTP_404_NOT_FOUND

    def __init__(self, project_id: int):
        self.project_id = project_id
        super().__init__(f"Project {project_id} does not exist")


class UserDoesNotHaveAccessToProject(TaskboardError):
    code = 3004
    http_status = status.HTTP_403_FORBIDDEN

    def __init__(self, user_id: int, project_id: int):
        self.user_id = user_id
        self.project_id = project_id
        super().__init__(f"User {user_id} does not have access to project {project_id}")


class ProjectIdentifierIsNotUnique(TaskboardError):
    code = 3007
    http_status = status.HTTP_400_BAD_REQUEST

    def __init__(self, identifier: str):
        self.identifier = identifier
        super().__init__(f"A project with the identifier '{identifier}' already exists")


class ProjectDuplicationFailed(TaskboardError):
    """A non-recoverable error while copying one entity type of a project."""

    code = 3012

    def __init__(self, entity: str, project_id: int, reason: str):
        self.entity = entity
        self.project_id = project_id
        super().__init__(f"Could not duplicate {entity} of project {project_id}: {reason}")


class TaskDoesNotExist(TaskboardError):
    code = 4002
    http_status = status.HTTP_404_NOT_FOUND

    def __init__(self, task_id: int):
        self.task_id = task_id
        super().__init__(f"Task {task_id} does not exist")


class UserAlreadyAssigned(TaskboardError):
    code = 4008
    http_status = status.HTTP_400_BAD_REQUEST

    def __init__(self, user_id: int, task_id: int):
        super().__init__(f"User {user_id} is already assigned to task {task_id}")


class RelationAlreadyExists(TaskboardError):
    code = 4012
    http_status = status.HTTP_409_CONFLICT

    def __init__(self, task_id: int, other_task_id: int, kind: str):
        super().__init__(f"Task {task_id} already has a '{kind}' relation to task {other_task_id}")


class RelationTasksCannotBeTheSame(TaskboardError):
    code = 4016
    http_status = status.HTTP_409_CONFLICT

    def __init__(self, task_id: int):
        super().__init__(f"Task {task_id} cannot be related to itself")


class AttachmentDoesNotExist(TaskboardError):
    code = 4011
    http_status = status.HTTP_404_NOT_FOUND

    def __init__(self, attachment_id: int):
        super().__init__(f"Attachment {attachment_id} does not exist")


class FileDoesNotExist(TaskboardError):
    code = 7001
    http_status = status.HTTP_404_NOT_FOUND

    def __init__(self, file_id: int):
        self.file_id = file_id
        super().__init__(f"File {file_id} does not exist")


class FileTooLarge(TaskboardError):
    code = 7002
    http_status = status.HTTP_413_REQUEST_ENTITY_TOO_LARGE

    def __init__(self, size: int, max_size: int):
        super().__init__(f"File is too large ({size} bytes, maximum is {max_size})")


class FileIsNotUnsplashFile(TaskboardError):
    code = 7003
    http_status = status.HTTP_412_PRECONDITION_FAILED

    def __init__(self, file_id: int):
        self.file_id = file_id
        super().__init__(f"File {file_id} is not an unsplash photo")


class BucketDoesNotExist(TaskboardError):
    code = 10001
    http_status = status.HTTP_404_NOT_FOUND

    def __init__(self, bucket_id: int):
        super().__init__(f"Bucket {bucket_id} does not exist")


class BucketDoesNotBelongToProject(TaskboardError):
    code = 10002
    http_status = status.HTTP_400_BAD_REQUEST

    def __init__(self, bucket_id: int, project_id: int):
        super().__init__(f"Bucket {bucket_id} does not belong to project {project_id}")


class LabelDoesNotExist(TaskboardError):
    code = 6001
    http_status = status.HTTP_404_NOT_FOUND

    def __init__(self, label_id: int):
        super().__init__(f"Label {label_id} does not exist")


class LabelIsAlreadyOnTask(TaskboardError):
    code = 6004
    http_status = status.HTTP_400_BAD_REQUEST

    def __init__(self, label_id: int, task_id: int):
        super().__init__(f"Label {label_id} is already on task {task_id}")


class NamespaceDoesNotExist(TaskboardError):
    code = 5001
    http_status = status.HTTP_404_NOT_FOUND

    def __init__(self, namespace_id: int):
        self.namespace_id = namespace_id
        super().__init__(f"Namespace {namespace_id} does not exist")


class NamespaceIsArchived(TaskboardError):
    code = 5009
    http_status = status.HTTP_412_PRECONDITION_FAILED

    def __init__(self, namespace_id: int):
        self.namespace_id = namespace_id
        super().__init__(f"Namespace {namespace_id} is archived")


class TeamDoesNotExist(TaskboardError):
    code = 6501
    http_status = status.HTTP_404_NOT_FOUND

    def __init__(self, team_id: int):
        super().__init__(f"Team {team_id} does not exist")


class UserIsNotTeamMember(TaskboardError):
    code = 6502
    http_status = status.HTTP_404_NOT_FOUND

    def __init__(self, user_id: int, team_id: int):
        super().__init__(f"User {user_id} is not a member of team {team_id}")


class CannotDeleteLastTeamMember(TaskboardError):
    code = 6503
    http_status = status.HTTP_400_BAD_REQUEST

    def __init__(self, team_id: int):
        super().__init__(f"Team {team_id} needs at least one member")


class InvalidTaskSort(TaskboardError):
    code = 4017
    http_status = status.HTTP_400_BAD_REQUEST
