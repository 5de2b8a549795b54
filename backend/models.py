from sqlalchemy import (
    Boolean, Column, DateTime, Enum, Float, ForeignKey, Integer, String, Text, UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import enum
from database import Base
import time_utils


class Right(enum.IntEnum):
    """Access level granted to a user or team on a project or namespace."""
    read = 0
    write = 1
    admin = 2


class RelationKind(str, enum.Enum):
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


class SharingType(enum.IntEnum):
    undefined = 0
    without_password = 1
    with_password = 2


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(250), unique=True, nullable=False)
    email = Column(String(250), unique=True, nullable=False)
    name = Column(String(250))
    password_hash = Column(String(255), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class Team(Base):
    __tablename__ = "teams"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(250), nullable=False)
    description = Column(Text)
    created_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"))
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    members = relationship("TeamMember", back_populates="team", cascade="all, delete-orphan")


class TeamMember(Base):
    __tablename__ = "team_members"
    __table_args__ = (UniqueConstraint("team_id", "user_id"),)

    id = Column(Integer, primary_key=True, index=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    admin = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    team = relationship("Team", back_populates="members")
    user = relationship("User")


class Namespace(Base):
    __tablename__ = "namespaces"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(250), nullable=False)
    description = Column(Text)
    owner_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    is_archived = Column(Boolean, nullable=False, default=False)
    hex_color = Column(String(6))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    owner = relationship("User")
    projects = relationship("Project", back_populates="namespace", cascade="all, delete-orphan")


class NamespaceUser(Base):
    __tablename__ = "users_namespaces"
    __table_args__ = (UniqueConstraint("namespace_id", "user_id"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    namespace_id = Column(Integer, ForeignKey("namespaces.id", ondelete="CASCADE"), nullable=False)
    right = Column(Integer, nullable=False, default=Right.read)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class TeamNamespace(Base):
    __tablename__ = "team_namespaces"
    __table_args__ = (UniqueConstraint("namespace_id", "team_id"),)

    id = Column(Integer, primary_key=True, index=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    namespace_id = Column(Integer, ForeignKey("namespaces.id", ondelete="CASCADE"), nullable=False)
    right = Column(Integer, nullable=False, default=Right.read)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class File(Base):
    """Metadata of a stored file. The content lives in the file store, keyed by id."""
    __tablename__ = "files"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(Text, nullable=False)
    mime = Column(Text)
    size = Column(Integer, nullable=False, default=0)
    created_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"))
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class UnsplashPhoto(Base):
    """Attribution of a background image taken from unsplash.com."""
    __tablename__ = "unsplash_photos"

    id = Column(Integer, primary_key=True, index=True)
    file_id = Column(Integer, ForeignKey("files.id", ondelete="CASCADE"), nullable=False, unique=True)
    unsplash_id = Column(String(50), nullable=False)
    author = Column(Text)
    author_name = Column(Text)


class Project(Base):
    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(250), nullable=False)
    description = Column(Text)
    # Short unique prefix for task references, e.g. "WEB-12"; empty means none
    identifier = Column(String(10), index=True, default="")
    hex_color = Column(String(6))
    owner_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"))
    namespace_id = Column(Integer, ForeignKey("namespaces.id", ondelete="CASCADE"), nullable=False)
    is_archived = Column(Boolean, nullable=False, default=False)
    background_file_id = Column(Integer, ForeignKey("files.id", ondelete="SET NULL"))
    background_blur_hash = Column(String(50))
    position = Column(Float, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    owner = relationship("User")
    namespace = relationship("Namespace", back_populates="projects")
    buckets = relationship(
        "Bucket", back_populates="project", cascade="all, delete-orphan",
        order_by="Bucket.position",
    )
    tasks = relationship("Task", back_populates="project", cascade="all, delete-orphan")


class Bucket(Base):
    """A kanban column of a project."""
    __tablename__ = "buckets"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(Text, nullable=False)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    limit = Column(Integer, nullable=False, default=0)
    position = Column(Float, nullable=False, default=0)
    created_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    project = relationship("Project", back_populates="buckets")


class Task(Base):
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(Text, nullable=False)
    description = Column(Text)
    done = Column(Boolean, nullable=False, default=False)
    done_at = Column(DateTime(timezone=True))
    due_date = Column(DateTime(timezone=True))
    priority = Column(Integer, nullable=False, default=0)
    percent_done = Column(Float, nullable=False, default=0)
    hex_color = Column(String(6))
    repeat_after = Column(Integer, nullable=False, default=0)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    bucket_id = Column(Integer, ForeignKey("buckets.id", ondelete="SET NULL"))
    # Calendar sync identifier, unique across all tasks
    uid = Column(String(250), unique=True)
    index = Column(Integer, nullable=False, default=0)
    position = Column(Float, nullable=False, default=0)
    created_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    project = relationship("Project", back_populates="tasks")
    bucket = relationship("Bucket")
    reminders = relationship(
        "TaskReminder", back_populates="task", cascade="all, delete-orphan",
        order_by="TaskReminder.reminder",
    )
    assignees = relationship("User", secondary="task_assignees", viewonly=True)
    labels = relationship("Label", secondary="label_tasks", viewonly=True)
    comments = relationship("TaskComment", back_populates="task", cascade="all, delete-orphan")
    attachments = relationship("TaskAttachment", back_populates="task", cascade="all, delete-orphan")

    @property
    def is_overdue(self) -> bool:
        return time_utils.is_overdue(self.due_date, self.done)


class TaskReminder(Base):
    __tablename__ = "task_reminders"

    id = Column(Integer, primary_key=True, index=True)
    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False)
    reminder = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    task = relationship("Task", back_populates="reminders")


class TaskAssignee(Base):
    __tablename__ = "task_assignees"
    __table_args__ = (UniqueConstraint("task_id", "user_id"),)

    id = Column(Integer, primary_key=True, index=True)
    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Label(Base):
    """Labels belong to their creator and are shared by every project that uses them."""
    __tablename__ = "labels"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(250), nullable=False)
    description = Column(Text)
    hex_color = Column(String(6))
    created_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class LabelTask(Base):
    __tablename__ = "label_tasks"
    __table_args__ = (UniqueConstraint("task_id", "label_id"),)

    id = Column(Integer, primary_key=True, index=True)
    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False)
    label_id = Column(Integer, ForeignKey("labels.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class TaskComment(Base):
    __tablename__ = "task_comments"

    id = Column(Integer, primary_key=True, index=True)
    comment = Column(Text, nullable=False)
    author_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"))
    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    task = relationship("Task", back_populates="comments")
    author = relationship("User")


class TaskRelation(Base):
    __tablename__ = "task_relations"

    id = Column(Integer, primary_key=True, index=True)
    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False)
    other_task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False)
    relation_kind = Column(Enum(RelationKind, name="relation_kind", native_enum=False), nullable=False)
    created_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"))
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class TaskAttachment(Base):
    __tablename__ = "task_attachments"

    id = Column(Integer, primary_key=True, index=True)
    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False)
    file_id = Column(Integer, ForeignKey("files.id", ondelete="SET NULL"))
    created_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"))
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    task = relationship("Task", back_populates="attachments")
    file = relationship("File")


class ProjectUser(Base):
    __tablename__ = "users_projects"
    __table_args__ = (UniqueConstraint("project_id", "user_id"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    right = Column(Integer, nullable=False, default=Right.read)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class TeamProject(Base):
    __tablename__ = "team_projects"
    __table_args__ = (UniqueConstraint("project_id", "team_id"),)

    id = Column(Integer, primary_key=True, index=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    right = Column(Integer, nullable=False, default=Right.read)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class LinkSharing(Base):
    __tablename__ = "link_shares"

    id = Column(Integer, primary_key=True, index=True)
    # Public secret in the share URL, never reused between projects
    hash = Column(String(40), unique=True, nullable=False)
    name = Column(Text)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    right = Column(Integer, nullable=False, default=Right.read)
    sharing_type = Column(Integer, nullable=False, default=SharingType.undefined)
    password_hash = Column(Text)
    shared_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
