from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List
from enum import Enum


class Right(int, Enum):
    read = 0
    write = 1
    admin = 2


class RelationKind(str, Enum):
    subtask = "subtask"
    parenttask = "parenttask"
    related = "related"
    duplicateof = "duplicateof"
    duplicates = "duplicates"
    blocking = "blocking"
    blocked = "blocked"
    precedes = "precedes"
    follows = "follows"
    copiedfrom = "copiedfrom"
    copiedto = "copiedto"


class SharingType(int, Enum):
    undefined = 0
    without_password = 1
    with_password = 2


# User schemas
class User(BaseModel):
    id: int
    username: str
    name: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# Team schemas
class TeamCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=250)
    description: Optional[str] = None


class Team(TeamCreate):
    id: int
    created_by_id: Optional[int] = None

    class Config:
        from_attributes = True


class TeamMemberCreate(BaseModel):
    user_id: int
    admin: bool = False


class TeamMember(TeamMemberCreate):
    id: int
    team_id: int

    class Config:
        from_attributes = True


# Namespace schemas
class NamespaceCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=250)
    description: Optional[str] = None
    hex_color: Optional[str] = Field(None, max_length=6)


class Namespace(NamespaceCreate):
    id: int
    owner_id: int
    is_archived: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# Share schemas (user/team rights on a namespace or project)
class UserShareCreate(BaseModel):
    user_id: int
    right: Right = Right.read


class UserShare(UserShareCreate):
    id: int

    class Config:
        from_attributes = True


class TeamShareCreate(BaseModel):
    team_id: int
    right: Right = Right.read


class TeamShare(TeamShareCreate):
    id: int

    class Config:
        from_attributes = True


class LinkShareCreate(BaseModel):
    name: Optional[str] = None
    right: Right = Right.read
    password: Optional[str] = Field(None, min_length=1, description="Protect the link with a password")


class LinkShare(BaseModel):
    id: int
    name: Optional[str] = None
    right: Right
    hash: str
    project_id: int
    sharing_type: SharingType
    shared_by_id: Optional[int] = None

    class Config:
        from_attributes = True


# Bucket schemas
class BucketCreate(BaseModel):
    title: str = Field(..., min_length=1)
    limit: int = Field(0, ge=0)
    position: float = 0


class Bucket(BucketCreate):
    id: int
    project_id: int

    class Config:
        from_attributes = True


# Project schemas
class ProjectCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=250)
    description: Optional[str] = None
    identifier: Optional[str] = Field(None, max_length=10)
    hex_color: Optional[str] = Field(None, max_length=6)


class Project(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    identifier: Optional[str] = None
    hex_color: Optional[str] = None
    owner_id: Optional[int] = None
    namespace_id: int
    is_archived: bool
    background_file_id: Optional[int] = None
    background_blur_hash: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ProjectWithBuckets(Project):
    buckets: List[Bucket] = []


class ProjectDuplicateCreate(BaseModel):
    namespace_id: int = Field(..., gt=0, description="The namespace which should hold the copied project")


class ProjectDuplicate(BaseModel):
    project_id: int
    namespace_id: int
    project: ProjectWithBuckets


# Label schemas
class LabelCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=250)
    description: Optional[str] = None
    hex_color: Optional[str] = Field(None, max_length=6)


class Label(LabelCreate):
    id: int
    created_by_id: Optional[int] = None

    class Config:
        from_attributes = True


class LabelTaskCreate(BaseModel):
    label_id: int


# Task schemas
class TaskBase(BaseModel):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    done: bool = False
    due_date: Optional[datetime] = None
    priority: int = Field(0, ge=0)
    percent_done: float = Field(0, ge=0, le=1)
    hex_color: Optional[str] = Field(None, max_length=6)
    repeat_after: int = Field(0, ge=0, description="Seconds after which a done task repeats")
    bucket_id: Optional[int] = None
    position: float = 0


class TaskCreate(TaskBase):
    reminders: List[datetime] = []


class TaskReminder(BaseModel):
    reminder: datetime

    class Config:
        from_attributes = True


class Task(TaskBase):
    id: int
    project_id: int
    uid: Optional[str] = None
    index: int
    done_at: Optional[datetime] = None
    created_by_id: Optional[int] = None
    is_overdue: bool = False
    reminders: List[TaskReminder] = []
    assignees: List[User] = []
    labels: List[Label] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AssigneeCreate(BaseModel):
    user_id: int


class Assignee(BaseModel):
    id: int
    task_id: int
    user_id: int

    class Config:
        from_attributes = True


# Comment schemas
class CommentCreate(BaseModel):
    comment: str = Field(..., min_length=1)


class Comment(CommentCreate):
    id: int
    task_id: int
    author_id: Optional[int]
    author: Optional[User] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# Relation schemas
class RelationCreate(BaseModel):
    other_task_id: int
    relation_kind: RelationKind


class Relation(RelationCreate):
    id: int
    task_id: int
    created_by_id: Optional[int] = None

    class Config:
        from_attributes = True


# File / attachment schemas
class File(BaseModel):
    id: int
    name: str
    mime: Optional[str] = None
    size: int
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class Attachment(BaseModel):
    id: int
    task_id: int
    file_id: Optional[int] = None
    file: Optional[File] = None
    created_by_id: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
