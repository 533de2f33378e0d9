"""Quiz session engine.

Pure transitions over :class:`QuizSession` values: every function returns a
new session and never mutates its input. Timing (the auto-advance after a
correct answer) is the caller's job; :func:`submit_answer` only reports
whether one is due.
"""
from dataclasses import replace
from datetime import datetime
from typing import Callable, Iterable, Optional, Sequence

from quiz_master.batch import shuffle
from quiz_master.errors import PreconditionError
from quiz_master.models import AnswerResult, Question, QuizAttempt, QuizSession, SessionStatus


def start_session(
    questions: Sequence[Question],
    *,
    master_list: Optional[Sequence[Question]] = None,
    remaining_queue: Sequence[Question] = (),
    subject_id: Optional[str] = None,
    is_review: bool = False,
    shuffle_fn: Callable[[Sequence], list] = shuffle,
    version: int = 0,
) -> QuizSession:
    """Begin a run over ``questions`` in shuffled order."""
    if not questions:
        raise PreconditionError("Cannot start a quiz without questions.")
    return QuizSession(
        master_list=tuple(questions if master_list is None else master_list),
        remaining_queue=tuple(remaining_queue),
        active_batch=tuple(shuffle_fn(questions)),
        subject_id=subject_id,
        is_review=is_review,
        version=version + 1,
    )


def grade(question: Question, selected: Iterable[str]) -> bool:
    """Exact set equality between the selection and the correct answers."""
    return frozenset(selected) == question.answer


def submit_answer(session: QuizSession, selected: Iterable[str]) -> tuple[QuizSession, AnswerResult]:
    """Grade the current question once.

    A repeat submission for a question that is already graded changes
    nothing and returns the original result.
    """
    if session.is_complete:
        raise PreconditionError("The quiz is already finished.")
    if session.graded is not None:
        return session, session.graded
    selected = frozenset(selected)
    if not selected:
        raise PreconditionError("Select at least one option before submitting.")
    question = session.current_question
    unknown = selected - set(question.options)
    if unknown:
        raise PreconditionError(f"Not an option for this question: {sorted(unknown)}")

    is_correct = grade(question, selected)
    result = AnswerResult(
        question=question,
        selected=selected,
        is_correct=is_correct,
        auto_advance=is_correct,
    )
    if is_correct:
        session = replace(session, score=session.score + 1, graded=result)
    else:
        session = replace(session, wrong_list=session.wrong_list + (question,), graded=result)
    return session, result


def advance(session: QuizSession) -> QuizSession:
    """Move past the graded question, finishing the run after the last one."""
    if session.is_complete:
        raise PreconditionError("The quiz is already finished.")
    if session.graded is None:
        raise PreconditionError("Answer the current question before moving on.")
    if session.current_index < len(session.active_batch) - 1:
        return replace(
            session,
            current_index=session.current_index + 1,
            graded=None,
            version=session.version + 1,
        )
    return replace(session, status=SessionStatus.RESULTS, graded=None, version=session.version + 1)


def completion_attempt(session: QuizSession, now: Optional[datetime] = None) -> Optional[QuizAttempt]:
    """The attempt to record for a finished run, or None if nothing is recorded.

    Ad-hoc runs (no subject) and review runs never produce attempts.
    """
    if not session.is_complete or session.subject_id is None or session.is_review:
        return None
    return QuizAttempt(
        date=now or datetime.now(),
        score=session.score,
        total_questions=len(session.active_batch),
    )
