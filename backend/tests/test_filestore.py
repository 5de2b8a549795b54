"""
Tests for the file store and the small helpers it is used with.
"""

import io
import logging
from datetime import timedelta

import pytest
from sqlalchemy.orm import Session

import models
import filestore
from errors import FileDoesNotExist, FileTooLarge
from string_utils import identifier_from_title, make_random_string
from time_utils import is_overdue, utc_now

logger = logging.getLogger(__name__)


def test_create_file_writes_content(test_db: Session, owner, files_dir):
    file = filestore.create_file(test_db, io.BytesIO(b"hello"), "hello.txt", 5, owner, mime="text/plain")
    test_db.commit()

    assert (files_dir / str(file.id)).read_bytes() == b"hello"
    loaded = filestore.load_file_meta_by_id(test_db, file.id)
    assert (loaded.name, loaded.size, loaded.mime) == ("hello.txt", 5, "text/plain")
    assert loaded.created_by_id == owner.id


def test_rollback_removes_written_content(test_db: Session, owner, files_dir):
    """Test that content written in a rolled back transaction does not stay on disk."""
    filestore.create_file(test_db, io.BytesIO(b"temporary"), "tmp.txt", 9, owner)
    assert len(list(files_dir.iterdir())) == 1

    test_db.rollback()

    assert list(files_dir.iterdir()) == []
    assert test_db.query(models.File).count() == 0
    logger.info("✓ Rollback removed file content")


def test_commit_keeps_content_after_later_rollback(test_db: Session, owner, files_dir):
    file = filestore.create_file(test_db, io.BytesIO(b"keep"), "keep.txt", 4, owner)
    test_db.commit()
    test_db.rollback()

    assert (files_dir / str(file.id)).exists()


def test_file_too_large(test_db: Session, owner, monkeypatch):
    monkeypatch.setenv("MAX_FILE_SIZE", "3")
    with pytest.raises(FileTooLarge):
        filestore.create_file(test_db, io.BytesIO(b"four"), "big.txt", 4, owner)


def test_load_missing_file(test_db: Session):
    with pytest.raises(FileDoesNotExist):
        filestore.load_file_meta_by_id(test_db, 31337)


def test_delete_file(test_db: Session, owner, files_dir):
    file = filestore.create_file(test_db, io.BytesIO(b"bye"), "bye.txt", 3, owner)
    test_db.commit()

    filestore.delete_file(test_db, file)
    test_db.commit()

    assert list(files_dir.iterdir()) == []
    assert test_db.query(models.File).count() == 0


def test_delete_file_keeps_content_until_commit(test_db: Session, owner, files_dir):
    """Test that a rolled back deletion leaves both the row and the content in place."""
    file = filestore.create_file(test_db, io.BytesIO(b"keep me"), "keep.txt", 7, owner)
    test_db.commit()
    file_id = file.id

    filestore.delete_file(test_db, file)
    assert (files_dir / str(file_id)).exists(), "Content should stay on disk before commit"

    test_db.rollback()

    assert test_db.get(models.File, file_id) is not None
    assert (files_dir / str(file_id)).read_bytes() == b"keep me"
    logger.info("✓ Rolled back deletion kept file content")


def test_deletion_pending_list_is_cleared_by_rollback(test_db: Session, owner, files_dir):
    file = filestore.create_file(test_db, io.BytesIO(b"still here"), "still.txt", 10, owner)
    test_db.commit()

    filestore.delete_file(test_db, file)
    test_db.rollback()
    # A later unrelated commit must not remove the content of the restored file
    test_db.add(models.Label(title="unrelated", created_by_id=owner.id))
    test_db.commit()

    assert (files_dir / str(file.id)).exists()


def test_open_missing_content(test_db: Session, owner, files_dir):
    file = filestore.create_file(test_db, io.BytesIO(b"gone"), "gone.txt", 4, owner)
    test_db.commit()
    (files_dir / str(file.id)).unlink()

    with pytest.raises(FileNotFoundError):
        filestore.open_file_content(file)


@pytest.mark.parametrize("title,expected", [
    ("Website Relaunch", "WR"),
    ("Groceries", "GROC"),
    ("a b c d e f g h i j k l", "ABCDEFGHIJ"),
    ("  --  ", ""),
    ("Q3 planning: budget", "QPB"),
])
def test_identifier_from_title(title, expected):
    assert identifier_from_title(title) == expected


def test_make_random_string():
    first = make_random_string(40)
    assert len(first) == 40
    assert first.isalpha() and first.isascii()
    assert make_random_string(40) != first


def test_is_overdue():
    assert is_overdue(utc_now() - timedelta(hours=1), done=False) is True
    assert is_overdue(utc_now() - timedelta(hours=1), done=True) is False
    assert is_overdue(utc_now() + timedelta(hours=1), done=False) is False
    assert is_overdue(None, done=False) is False
    # naive datetimes as returned by SQLite count as UTC
    naive = (utc_now() - timedelta(days=1)).replace(tzinfo=None)
    assert is_overdue(naive, done=False) is True
