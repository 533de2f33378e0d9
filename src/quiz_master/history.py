"""Appending completed attempts to a subject's history."""
import logging
from dataclasses import replace

from quiz_master.models import QuizAttempt, Subject
from quiz_master.store import find_subject, replace_subject, save_subjects

logger = logging.getLogger(__name__)


def record_attempt(db_path: str, subjects: list[Subject], subject_id: str,
                   attempt: QuizAttempt) -> list[Subject]:
    """Append ``attempt`` to the subject's history and persist the whole collection.

    Other subjects are left as they are. An unknown id leaves the list
    unchanged and saves nothing.
    """
    subject = find_subject(subjects, subject_id)
    if subject is None:
        logger.warning("Not recording attempt: no subject with id %s", subject_id)
        return subjects
    updated = replace(subject, history=[*subject.history, attempt])
    subjects = replace_subject(subjects, updated)
    save_subjects(db_path, subjects)
    return subjects


def sorted_history(subject: Subject) -> list[QuizAttempt]:
    """Attempts oldest first, whatever order they were appended in."""
    return sorted(subject.history, key=lambda a: a.date)
