"""Subject collection persistence.

The whole collection lives in one named blob and is always read and written
as a unit. Every mutation recomputes the full list and saves it; both
directions fail soft so the in-memory list stays authoritative for the run.
"""
import json
import logging
import sqlite3
from datetime import datetime

from quiz_master.db import init_db, read_blob, write_blob
from quiz_master.errors import QuizMasterError
from quiz_master.models import Subject

logger = logging.getLogger(__name__)

STORAGE_KEY = "quizMasterAI_subjects"


def load_subjects(db_path: str) -> list[Subject]:
    """Load every saved subject. Returns [] on a missing or unreadable blob."""
    try:
        init_db(db_path)
        raw = read_blob(db_path, STORAGE_KEY)
    except (sqlite3.Error, OSError):
        logger.exception("Failed to read subjects from %s", db_path)
        return []
    if raw is None:
        return []
    try:
        data = json.loads(raw)
        if not isinstance(data, list):
            raise TypeError(f"expected a list, got {type(data).__name__}")
        return [Subject.from_dict(item) for item in data]
    except (ValueError, KeyError, TypeError, AttributeError, QuizMasterError):
        logger.exception("Failed to parse subjects from %s", db_path)
        return []


def save_subjects(db_path: str, subjects: list[Subject]) -> bool:
    """Replace the stored collection. Returns False (after logging) on failure."""
    try:
        payload = json.dumps([s.to_dict() for s in subjects], ensure_ascii=False)
        init_db(db_path)
        write_blob(db_path, STORAGE_KEY, payload, datetime.now().isoformat())
    except (sqlite3.Error, OSError, TypeError, ValueError):
        logger.exception("Failed to save %d subjects to %s", len(subjects), db_path)
        return False
    return True


def find_subject(subjects: list[Subject], subject_id: str) -> Subject | None:
    return next((s for s in subjects if s.id == subject_id), None)


def add_subject(subjects: list[Subject], subject: Subject) -> list[Subject]:
    return [*subjects, subject]


def replace_subject(subjects: list[Subject], subject: Subject) -> list[Subject]:
    return [subject if s.id == subject.id else s for s in subjects]


def remove_subject(subjects: list[Subject], subject_id: str) -> list[Subject]:
    return [s for s in subjects if s.id != subject_id]
