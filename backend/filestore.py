"""
Stored files: metadata rows in the files table, content on disk.

Content for a file lives at <FILES_BASEPATH>/<file id>. Content changes are
tied to the session transaction through session.info: blobs written in a
rolled back transaction are removed again, and blobs of deleted files are
only removed once the deletion commits.
"""

import logging
import os
import shutil
from pathlib import Path
from typing import BinaryIO, Optional

from sqlalchemy import event
from sqlalchemy.orm import Session

import models
from errors import FileDoesNotExist, FileTooLarge

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024  # 1MB

PENDING_BLOBS_KEY = "pending_file_blobs"
PENDING_DELETES_KEY = "pending_file_deletes"


def get_files_basepath() -> Path:
    return Path(os.environ.get("FILES_BASEPATH", "./files"))


def get_max_file_size() -> int:
    try:
        return int(os.environ.get("MAX_FILE_SIZE", str(20 * 1024 * 1024)))
    except ValueError:
        logger.warning("Invalid MAX_FILE_SIZE value in environment. Using default of 20MB.")
        return 20 * 1024 * 1024


def file_path(file_id: int) -> Path:
    return get_files_basepath() / str(file_id)


def load_file_meta_by_id(db: Session, file_id: int) -> models.File:
    """
    Load the metadata row of a stored file.

    Raises:
        FileDoesNotExist: if there is no row with this id
    """
    file = db.get(models.File, file_id)
    if file is None:
        logger.debug(f"File {file_id} has no metadata row")
        raise FileDoesNotExist(file_id)
    return file


def open_file_content(file: models.File) -> BinaryIO:
    """
    Open the stored content of a file for reading.

    The caller owns the handle and must close it, preferably with a `with` block.
    A missing blob raises FileNotFoundError.
    """
    return open(file_path(file.id), "rb")


def create_file(
    db: Session,
    content: BinaryIO,
    name: str,
    size: int,
    owner: models.User,
    mime: Optional[str] = None,
) -> models.File:
    """
    Store new file content and create its metadata row.

    The row is flushed to obtain an id, then the content is streamed to disk in
    chunks. Nothing is committed.

    Raises:
        FileTooLarge: if size exceeds MAX_FILE_SIZE
    """
    max_size = get_max_file_size()
    if size > max_size:
        raise FileTooLarge(size, max_size)

    file = models.File(name=name, size=size, mime=mime, created_by_id=owner.id)
    db.add(file)
    db.flush()

    path = file_path(file.id)
    path.parent.mkdir(parents=True, exist_ok=True)
    db.info.setdefault(PENDING_BLOBS_KEY, []).append(path)
    with open(path, "wb") as out:
        shutil.copyfileobj(content, out, CHUNK_SIZE)

    logger.debug(f"Stored file {file.id} ({name}, {size} bytes)")
    return file


def delete_file(db: Session, file: models.File) -> None:
    """
    Delete a file's metadata row and schedule removal of its content.

    The content stays on disk until the session commits, so a rollback
    restores both the row and the blob.

    Args:
        db: Session the deletion runs in
        file: Stored file to delete
    """
    path = file_path(file.id)
    db.delete(file)
    db.flush()
    db.info.setdefault(PENDING_DELETES_KEY, []).append(path)
    logger.debug(f"Deleted file {file.id}, content removal pending commit")


@event.listens_for(Session, "after_commit")
def _finish_pending_blobs(session: Session) -> None:
    session.info.pop(PENDING_BLOBS_KEY, None)
    for path in session.info.pop(PENDING_DELETES_KEY, []):
        try:
            path.unlink()
        except FileNotFoundError:
            logger.info(f"Content of deleted file was already gone: {path}")


@event.listens_for(Session, "after_rollback")
def _remove_pending_blobs(session: Session) -> None:
    session.info.pop(PENDING_DELETES_KEY, None)
    for path in session.info.pop(PENDING_BLOBS_KEY, []):
        try:
            path.unlink()
            logger.info(f"Removed orphaned file content after rollback: {path}")
        except FileNotFoundError:
            pass
