"""Data classes for the quiz domain model."""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional
import re
import uuid

from quiz_master.errors import ValidationError


class QuizState(str, Enum):
    SUBJECT_SELECTION = "subject_selection"
    CONTENT_INTAKE = "content_intake"
    GENERATING = "generating"
    IN_PROGRESS = "in_progress"
    RESULTS = "results"


class SessionStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    RESULTS = "results"


def _require_mapping(data, kind: str) -> dict:
    if not isinstance(data, dict):
        raise ValidationError(f"Expected a {kind} object, got {type(data).__name__}")
    return data


@dataclass(frozen=True)
class Question:
    """A multiple-choice question with one or more correct options.

    ``answer`` has set semantics: order and duplicates are irrelevant and
    grading compares it to the learner's selection as a set.
    """
    question: str
    options: tuple
    answer: frozenset
    explanation: str = ""

    def __post_init__(self):
        object.__setattr__(self, "options", tuple(self.options))
        object.__setattr__(self, "answer", frozenset(self.answer))
        if not self.question or not self.question.strip():
            raise ValidationError("Question text must not be empty.")
        if len(self.options) < 2:
            raise ValidationError(f"Question needs at least 2 options: {self.question!r}")
        if not self.answer:
            raise ValidationError(f"Question has no correct answer: {self.question!r}")
        missing = self.answer - set(self.options)
        if missing:
            raise ValidationError(
                f"Answer(s) {sorted(missing)} not among the options of {self.question!r}"
            )

    @property
    def is_multi_answer(self) -> bool:
        return len(self.answer) > 1

    def to_dict(self) -> dict:
        return {
            "question": self.question,
            "options": list(self.options),
            # Option order keeps the stored blob stable across runs.
            "answer": [o for o in dict.fromkeys(self.options) if o in self.answer],
            "explanation": self.explanation,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Question":
        data = _require_mapping(data, "question")
        answer = data["answer"]
        if isinstance(answer, str):
            answer = [answer]
        return cls(
            question=data["question"],
            options=tuple(data["options"]),
            answer=frozenset(answer),
            explanation=data.get("explanation") or "",
        )


@dataclass(frozen=True)
class QuizAttempt:
    date: datetime
    score: int
    total_questions: int

    def __post_init__(self):
        if self.total_questions <= 0:
            raise ValidationError("An attempt needs at least one question.")
        if not 0 <= self.score <= self.total_questions:
            raise ValidationError(
                f"Score {self.score} out of range for {self.total_questions} questions."
            )

    @property
    def percentage(self) -> float:
        return self.score / self.total_questions * 100

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "score": self.score,
            "totalQuestions": self.total_questions,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "QuizAttempt":
        data = _require_mapping(data, "attempt")
        raw_date = data["date"]
        if isinstance(raw_date, (int, float)):
            # Epoch milliseconds, as written by older exports.
            date = datetime.fromtimestamp(raw_date / 1000)
        else:
            # fromisoformat only accepts a trailing "Z" from 3.11 on.
            date = datetime.fromisoformat(re.sub(r"Z$", "+00:00", raw_date))
            if date.tzinfo is not None:
                # Stored dates are naive local time.
                date = date.astimezone().replace(tzinfo=None)
        return cls(date=date, score=int(data["score"]), total_questions=int(data["totalQuestions"]))


def new_subject_id() -> str:
    return uuid.uuid4().hex


@dataclass
class Subject:
    id: str
    name: str
    content: str
    cached_questions: Optional[list] = None
    history: list = field(default_factory=list)

    def __setattr__(self, name, value):
        if name == "id" and "id" in self.__dict__:
            raise AttributeError("Subject id is immutable")
        super().__setattr__(name, value)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "content": self.content,
            "cachedQuestions": (
                [q.to_dict() for q in self.cached_questions]
                if self.cached_questions is not None else None
            ),
            "history": [a.to_dict() for a in self.history],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Subject":
        data = _require_mapping(data, "subject")
        cached = data.get("cachedQuestions")
        return cls(
            id=str(data["id"]),
            name=data["name"],
            content=data.get("content", ""),
            cached_questions=[Question.from_dict(q) for q in cached] if cached is not None else None,
            history=[QuizAttempt.from_dict(a) for a in data.get("history") or []],
        )


@dataclass(frozen=True)
class AnswerResult:
    question: Question
    selected: frozenset
    is_correct: bool
    auto_advance: bool


@dataclass(frozen=True)
class QuizSession:
    """One quiz run. Transitions live in :mod:`quiz_master.quiz`."""
    master_list: tuple
    remaining_queue: tuple
    active_batch: tuple
    current_index: int = 0
    score: int = 0
    wrong_list: tuple = ()
    subject_id: Optional[str] = None
    is_review: bool = False
    graded: Optional[AnswerResult] = None
    status: SessionStatus = SessionStatus.IN_PROGRESS
    version: int = 0

    @property
    def current_question(self) -> Question:
        return self.active_batch[self.current_index]

    @property
    def total_questions(self) -> int:
        return len(self.active_batch)

    @property
    def is_complete(self) -> bool:
        return self.status is SessionStatus.RESULTS

    @property
    def percentage(self) -> float:
        return self.score / self.total_questions * 100 if self.active_batch else 0.0

    @property
    def has_wrong_answers(self) -> bool:
        return bool(self.wrong_list)

    @property
    def has_next_batch(self) -> bool:
        return bool(self.remaining_queue)
