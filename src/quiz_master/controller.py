"""Session control surface consumed by the presentation layer.

``QuizController`` owns the only long-lived mutable state: the subject list,
the master question list of the current material and the active
:class:`QuizSession`. Every user action is one method (or one command passed
to :meth:`QuizController.dispatch`) mapping to a single transition.
"""
import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Optional

from quiz_master import quiz
from quiz_master.batch import next_batch, shuffle
from quiz_master.config import AUTO_ADVANCE_DELAY, BATCH_SIZE, MIN_TEXT_LENGTH, AppConfig
from quiz_master.errors import (
    GenerationError, GenerationInProgressError, PreconditionError, ValidationError,
)
from quiz_master.generator import Language, QuestionGenerator, validate_source_text
from quiz_master.history import record_attempt
from quiz_master.models import (
    AnswerResult, QuizSession, QuizState, Subject, new_subject_id,
)
from quiz_master.scheduler import CooperativeScheduler, ScheduledTask
from quiz_master.store import (
    add_subject, find_subject, load_subjects, remove_subject, replace_subject, save_subjects,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------- commands

@dataclass(frozen=True)
class SelectSubject:
    subject_id: str


@dataclass(frozen=True)
class CreateSubject:
    text: str


@dataclass(frozen=True)
class DeleteSubject:
    subject_id: str


@dataclass(frozen=True)
class SubmitAnswer:
    selected: frozenset


@dataclass(frozen=True)
class Advance:
    pass


@dataclass(frozen=True)
class Restart:
    pass


@dataclass(frozen=True)
class Review:
    pass


@dataclass(frozen=True)
class NextBatch:
    pass


@dataclass(frozen=True)
class SaveSubject:
    name: str


@dataclass(frozen=True)
class StartOver:
    pass


@dataclass(frozen=True)
class ControllerView:
    state: QuizState
    session: Optional[QuizSession]
    subjects: tuple
    error: Optional[str] = None
    last_result: Optional[AnswerResult] = None
    can_save_subject: bool = False


class QuizController:
    def __init__(
        self,
        db_path: str,
        generator: QuestionGenerator,
        *,
        batch_size: int = BATCH_SIZE,
        auto_advance_delay: float = AUTO_ADVANCE_DELAY,
        min_text_length: int = MIN_TEXT_LENGTH,
        language: Language = Language.PRIMARY,
        scheduler: Optional[CooperativeScheduler] = None,
        shuffle_fn: Callable = shuffle,
        now: Callable[[], datetime] = datetime.now,
    ):
        self.db_path = db_path
        self.generator = generator
        self.batch_size = batch_size
        self.auto_advance_delay = auto_advance_delay
        self.min_text_length = min_text_length
        self.language = Language(language)
        self.scheduler = scheduler or CooperativeScheduler()
        self.shuffle_fn = shuffle_fn
        self.now = now

        self.subjects: list[Subject] = load_subjects(db_path)
        self.state = QuizState.SUBJECT_SELECTION
        self.session: Optional[QuizSession] = None
        self.master_list: list = []
        self.subject_id: Optional[str] = None
        self.pending_content: Optional[str] = None
        self.error: Optional[str] = None
        self.last_result: Optional[AnswerResult] = None
        self._in_flight: set = set()
        self._auto_task: Optional[ScheduledTask] = None
        self._version = 0
        self._handlers = {
            SelectSubject: lambda c: self.select_subject(c.subject_id),
            CreateSubject: lambda c: self.create_subject(c.text),
            DeleteSubject: lambda c: self.delete_subject(c.subject_id),
            SubmitAnswer: lambda c: self.submit_answer(c.selected),
            Advance: lambda c: self.advance(),
            Restart: lambda c: self.restart(),
            Review: lambda c: self.review(),
            NextBatch: lambda c: self.next_batch(),
            SaveSubject: lambda c: self.save_subject(c.name),
            StartOver: lambda c: self.start_over(),
        }

    @classmethod
    def from_config(cls, config: AppConfig, generator: QuestionGenerator, **kwargs) -> "QuizController":
        return cls(
            config.db_path,
            generator,
            batch_size=config.batch_size,
            auto_advance_delay=config.auto_advance_delay,
            min_text_length=config.min_text_length,
            language=Language(config.language),
            **kwargs,
        )

    def dispatch(self, command) -> ControllerView:
        handler = self._handlers.get(type(command))
        if handler is None:
            raise PreconditionError(f"Unknown command: {command!r}")
        return handler(command)

    def view(self) -> ControllerView:
        return ControllerView(
            state=self.state,
            session=self.session,
            subjects=tuple(self.subjects),
            error=self.error,
            last_result=self.last_result,
            can_save_subject=self.pending_content is not None and self.subject_id is None,
        )

    # ------------------------------------------------------------ subjects

    def select_subject(self, subject_id: str) -> ControllerView:
        """Quiz a saved subject, generating (and caching) questions only if none are cached."""
        subject = find_subject(self.subjects, subject_id)
        if subject is None:
            raise PreconditionError(f"No subject with id {subject_id}")
        self._check_not_in_flight(subject.id)
        self._reset_run()
        questions = subject.cached_questions
        if not questions:
            try:
                questions = self._generate(subject.id, subject.content)
            except GenerationInProgressError:
                raise
            except GenerationError as e:
                return self._generation_failed(e)
            subject = replace(subject, cached_questions=list(questions))
            self.subjects = replace_subject(self.subjects, subject)
            save_subjects(self.db_path, self.subjects)
        self.subject_id = subject.id
        self.master_list = list(questions)
        return self._start_batch(self.master_list)

    def open_content_intake(self) -> ControllerView:
        self._reset_run()
        self.state = QuizState.CONTENT_INTAKE
        return self.view()

    def create_subject(self, text: str) -> ControllerView:
        """Generate an ad-hoc quiz from fresh text; it can be saved later with :meth:`save_subject`."""
        text = validate_source_text(text, self.min_text_length)
        self._check_not_in_flight(("text", text))
        self._reset_run()
        self.state = QuizState.CONTENT_INTAKE
        try:
            questions = self._generate(("text", text), text)
        except GenerationInProgressError:
            raise
        except GenerationError as e:
            return self._generation_failed(e)
        self.pending_content = text
        self.master_list = list(questions)
        return self._start_batch(self.master_list)

    def delete_subject(self, subject_id: str) -> ControllerView:
        if find_subject(self.subjects, subject_id) is None:
            raise PreconditionError(f"No subject with id {subject_id}")
        self.subjects = remove_subject(self.subjects, subject_id)
        save_subjects(self.db_path, self.subjects)
        if self.subject_id == subject_id:
            self.subject_id = None
            if self.session is not None:
                self.session = replace(self.session, subject_id=None)
        return self.view()

    def save_subject(self, name: str) -> ControllerView:
        """Persist the unsaved material as a new subject and tie the current run to it."""
        if self.pending_content is None or self.subject_id is not None:
            raise PreconditionError("There is no unsaved quiz to save.")
        name = (name or "").strip()
        if not name:
            raise ValidationError("Subject name must not be empty.")
        subject = Subject(
            id=new_subject_id(),
            name=name,
            content=self.pending_content,
            cached_questions=list(self.master_list),
        )
        self.subjects = add_subject(self.subjects, subject)
        save_subjects(self.db_path, self.subjects)
        self.subject_id = subject.id
        self.pending_content = None
        if self.session is not None and not self.session.is_review:
            self.session = replace(self.session, subject_id=subject.id)
        return self.view()

    # ------------------------------------------------------------ quiz run

    def submit_answer(self, selected) -> ControllerView:
        self._require(QuizState.IN_PROGRESS)
        was_graded = self.session.graded is not None
        self.session, result = quiz.submit_answer(self.session, selected)
        self.last_result = result
        if result.auto_advance and not was_graded:
            version = self.session.version
            self._cancel_auto_advance()
            self._auto_task = self.scheduler.call_later(
                self.auto_advance_delay, lambda: self._auto_advance(version)
            )
        return self.view()

    def advance(self) -> ControllerView:
        self._require(QuizState.IN_PROGRESS)
        self._cancel_auto_advance()
        self.session = quiz.advance(self.session)
        self._version = self.session.version
        self.last_result = None
        if self.session.is_complete:
            attempt = quiz.completion_attempt(self.session, self.now())
            if attempt is not None:
                self.subjects = record_attempt(
                    self.db_path, self.subjects, self.session.subject_id, attempt
                )
            self.state = QuizState.RESULTS
        return self.view()

    def run_pending_timers(self, block: bool = False) -> ControllerView:
        self.scheduler.run_pending(block=block)
        return self.view()

    def _auto_advance(self, version: int) -> None:
        session = self.session
        if (
            self.state is not QuizState.IN_PROGRESS
            or session is None
            or session.version != version
            or session.graded is None
        ):
            logger.debug("Ignoring stale auto-advance for version %s", version)
            return
        self.advance()

    def restart(self) -> ControllerView:
        """Start again from the first batch of the full master list."""
        self._require(QuizState.RESULTS)
        if not self.master_list:
            raise PreconditionError("There is nothing to restart.")
        return self._start_batch(self.master_list)

    def next_batch(self) -> ControllerView:
        self._require(QuizState.RESULTS)
        if not self.session.remaining_queue:
            raise PreconditionError("All questions have been used.")
        return self._start_batch(self.session.remaining_queue)

    def review(self) -> ControllerView:
        """Quiz only the questions missed in the run that just finished."""
        self._require(QuizState.RESULTS)
        wrong = self.session.wrong_list
        if not wrong:
            raise PreconditionError("There are no mistakes to review.")
        self.session = quiz.start_session(
            wrong,
            master_list=wrong,
            remaining_queue=self.session.remaining_queue,
            subject_id=self.subject_id,
            is_review=True,
            shuffle_fn=self.shuffle_fn,
            version=self._version,
        )
        self._entered_session()
        return self.view()

    def start_over(self) -> ControllerView:
        self._reset_run()
        self.state = QuizState.SUBJECT_SELECTION
        return self.view()

    # ------------------------------------------------------------ helpers

    def _require(self, state: QuizState) -> None:
        if self.state is not state or self.session is None:
            raise PreconditionError(
                f"Not allowed while {self.state.value.replace('_', ' ')}."
            )

    def _check_not_in_flight(self, key) -> None:
        if key in self._in_flight:
            raise GenerationInProgressError("Questions for this material are already being generated.")

    def _generate(self, key, text: str) -> list:
        self._check_not_in_flight(key)
        self._in_flight.add(key)
        self.state = QuizState.GENERATING
        self.error = None
        try:
            questions = self.generator.generate(text, self.language)
        finally:
            self._in_flight.discard(key)
        if not questions:
            raise GenerationError(
                "Could not generate a quiz from the provided text. The content might not be suitable."
            )
        return questions

    def _generation_failed(self, error: GenerationError) -> ControllerView:
        logger.error("Quiz generation failed: %s", error)
        self._reset_run()
        self.error = f"Quiz Generation Failed: {error}"
        self.state = QuizState.SUBJECT_SELECTION
        return self.view()

    def _start_batch(self, pool) -> ControllerView:
        batch, remainder = next_batch(pool, self.batch_size)
        self.session = quiz.start_session(
            batch,
            master_list=self.master_list,
            remaining_queue=remainder,
            subject_id=self.subject_id,
            shuffle_fn=self.shuffle_fn,
            version=self._version,
        )
        self._entered_session()
        return self.view()

    def _entered_session(self) -> None:
        self._cancel_auto_advance()
        self._version = self.session.version
        self.last_result = None
        self.state = QuizState.IN_PROGRESS

    def _cancel_auto_advance(self) -> None:
        if self._auto_task is not None:
            self._auto_task.cancel()
            self._auto_task = None

    def _reset_run(self) -> None:
        self._cancel_auto_advance()
        if self.session is not None:
            self._version = self.session.version
        self.session = None
        self.master_list = []
        self.subject_id = None
        self.pending_content = None
        self.last_result = None
        self.error = None
