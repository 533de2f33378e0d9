import random

import pytest

from quiz_master.errors import GenerationError
from quiz_master.models import Question


@pytest.fixture
def tmp_db(tmp_path):
    """Provide a temporary SQLite database path for tests."""
    return str(tmp_path / "test_quiz_master.db")


def make_question(n: int, answer=("A",), options=("A", "B", "C", "D")) -> Question:
    return Question(
        question=f"Question {n}?",
        options=options,
        answer=frozenset(answer),
        explanation=f"Because {n}.",
    )


@pytest.fixture
def questions():
    return [make_question(i) for i in range(1, 46)]


@pytest.fixture
def identity_shuffle():
    return lambda qs: list(qs)


class StubGenerator:
    """Returns canned questions or raises the given error."""

    def __init__(self, questions=None, error=None):
        self.questions = questions or []
        self.error = error
        self.calls = []

    def generate(self, text, language):
        self.calls.append((text, language))
        if self.error is not None:
            raise self.error
        return list(self.questions)


@pytest.fixture
def stub_generator(questions):
    return StubGenerator(questions)


@pytest.fixture
def failing_generator():
    return StubGenerator(error=GenerationError("upstream exploded"))


STUDY_TEXT = (
    "Photosynthesis converts light energy into chemical energy stored in glucose. "
    "It takes place in the chloroplasts of plant cells."
)


class FakeClock:
    """Monotonic clock whose ``sleep`` just moves time forward."""

    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.now += seconds
