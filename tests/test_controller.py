"""Tests for the session control surface."""
from datetime import datetime
from unittest.mock import patch

import pytest

from conftest import STUDY_TEXT, FakeClock, StubGenerator, make_question
from quiz_master.controller import (
    Advance, CreateSubject, NextBatch, QuizController, Review, SaveSubject, SelectSubject,
    StartOver, SubmitAnswer,
)
from quiz_master.errors import (
    GenerationError, GenerationInProgressError, PreconditionError, ValidationError,
)
from quiz_master.generator import GeminiQuestionGenerator, Language
from quiz_master.models import QuizState, Subject
from quiz_master.scheduler import CooperativeScheduler
from quiz_master.store import find_subject, load_subjects, save_subjects


@pytest.fixture
def clock():
    return FakeClock()


def make_controller(tmp_db, generator, clock, **kwargs):
    kwargs.setdefault("shuffle_fn", lambda qs: list(qs))
    kwargs.setdefault("now", lambda: datetime(2024, 6, 1, 12, 0))
    return QuizController(
        tmp_db, generator,
        scheduler=CooperativeScheduler(clock=clock, sleep=clock.sleep),
        **kwargs,
    )


def answer_all(controller, correct=True):
    """Answer every remaining question of the active session."""
    while controller.state is QuizState.IN_PROGRESS:
        q = controller.session.current_question
        selected = q.answer if correct else {o for o in q.options if o not in q.answer}
        controller.submit_answer(selected)
        controller.advance()


def saved_subject(tmp_db, questions=None, subject_id="s1"):
    subject = Subject(id=subject_id, name="Biology", content=STUDY_TEXT, cached_questions=questions)
    save_subjects(tmp_db, [subject])
    return subject


def test_starts_in_subject_selection_with_loaded_subjects(tmp_db, stub_generator, clock):
    saved_subject(tmp_db)
    controller = make_controller(tmp_db, stub_generator, clock)
    view = controller.view()
    assert view.state is QuizState.SUBJECT_SELECTION
    assert [s.id for s in view.subjects] == ["s1"]


def test_create_subject_generates_and_starts_first_batch(tmp_db, stub_generator, clock, questions):
    controller = make_controller(tmp_db, stub_generator, clock)
    view = controller.create_subject(STUDY_TEXT)
    assert view.state is QuizState.IN_PROGRESS
    assert view.session.active_batch == tuple(questions[:20])
    assert len(view.session.remaining_queue) == 25
    assert view.session.subject_id is None
    assert view.can_save_subject
    assert stub_generator.calls == [(STUDY_TEXT, Language.PRIMARY)]


def test_short_text_is_rejected_before_generation(tmp_db, stub_generator, clock):
    controller = make_controller(tmp_db, stub_generator, clock)
    controller.open_content_intake()
    with pytest.raises(ValidationError):
        controller.create_subject("too short")
    assert controller.state is QuizState.CONTENT_INTAKE
    assert stub_generator.calls == []


def test_generation_failure_reverts_to_subject_selection(tmp_db, failing_generator, clock):
    controller = make_controller(tmp_db, failing_generator, clock)
    view = controller.create_subject(STUDY_TEXT)
    assert view.state is QuizState.SUBJECT_SELECTION
    assert view.error == "Quiz Generation Failed: upstream exploded"
    assert view.session is None
    assert load_subjects(tmp_db) == []


def test_empty_generation_is_a_failure(tmp_db, clock):
    controller = make_controller(tmp_db, StubGenerator([]), clock)
    view = controller.create_subject(STUDY_TEXT)
    assert view.state is QuizState.SUBJECT_SELECTION
    assert "Could not generate a quiz" in view.error


def test_select_subject_uses_cache_without_generating(tmp_db, stub_generator, clock):
    cached = [make_question(i) for i in range(3)]
    saved_subject(tmp_db, cached)
    controller = make_controller(tmp_db, stub_generator, clock)
    view = controller.select_subject("s1")
    assert view.state is QuizState.IN_PROGRESS
    assert view.session.active_batch == tuple(cached)
    assert view.session.subject_id == "s1"
    assert stub_generator.calls == []


def test_select_subject_without_cache_generates_and_caches(tmp_db, stub_generator, clock, questions):
    saved_subject(tmp_db)
    controller = make_controller(tmp_db, stub_generator, clock)
    controller.select_subject("s1")
    assert len(stub_generator.calls) == 1
    stored = find_subject(load_subjects(tmp_db), "s1")
    assert stored.cached_questions == questions
    controller.start_over()
    controller.select_subject("s1")
    assert len(stub_generator.calls) == 1


def test_select_unknown_subject(tmp_db, stub_generator, clock):
    controller = make_controller(tmp_db, stub_generator, clock)
    with pytest.raises(PreconditionError):
        controller.select_subject("missing")


def test_wrong_answer_waits_for_acknowledgement(tmp_db, stub_generator, clock):
    controller = make_controller(tmp_db, stub_generator, clock)
    controller.create_subject(STUDY_TEXT)
    view = controller.submit_answer({"B"})
    assert not view.last_result.is_correct
    clock.now += 60
    controller.run_pending_timers()
    assert controller.session.current_index == 0
    controller.advance()
    assert controller.session.current_index == 1


def test_correct_answer_auto_advances_after_delay(tmp_db, stub_generator, clock):
    controller = make_controller(tmp_db, stub_generator, clock)
    controller.create_subject(STUDY_TEXT)
    controller.submit_answer({"A"})
    clock.now += 2.4
    controller.run_pending_timers()
    assert controller.session.current_index == 0
    clock.now += 0.2
    controller.run_pending_timers()
    assert controller.session.current_index == 1


def test_manual_advance_cancels_pending_auto_advance(tmp_db, stub_generator, clock):
    controller = make_controller(tmp_db, stub_generator, clock)
    controller.create_subject(STUDY_TEXT)
    controller.submit_answer({"A"})
    controller.advance()
    clock.now += 10
    controller.run_pending_timers()
    assert controller.session.current_index == 1


def test_stale_timer_after_start_over_is_ignored(tmp_db, stub_generator, clock):
    controller = make_controller(tmp_db, stub_generator, clock)
    controller.create_subject(STUDY_TEXT)
    task_version = controller.session.version
    controller.submit_answer({"A"})
    controller.start_over()
    controller.create_subject(STUDY_TEXT)
    assert controller.session.version > task_version
    clock.now += 10
    controller.run_pending_timers()
    assert controller.session.current_index == 0


def test_stale_timer_cannot_advance_a_newer_session(tmp_db, stub_generator, clock):
    controller = make_controller(tmp_db, stub_generator, clock)
    controller.create_subject(STUDY_TEXT)
    controller.submit_answer({"A"})
    stale = controller._auto_task.callback
    controller.advance()
    controller.submit_answer({"A"})
    stale()
    assert controller.session.current_index == 1


def test_completion_records_attempt_for_saved_subject(tmp_db, stub_generator, clock):
    saved_subject(tmp_db, [make_question(i) for i in range(4)])
    controller = make_controller(tmp_db, stub_generator, clock)
    controller.select_subject("s1")
    for correct in (True, False, True, True):
        q = controller.session.current_question
        controller.submit_answer(q.answer if correct else {"D"})
        controller.advance()
    assert controller.state is QuizState.RESULTS
    history = find_subject(load_subjects(tmp_db), "s1").history
    assert len(history) == 1
    assert (history[0].score, history[0].total_questions) == (3, 4)
    assert history[0].date == datetime(2024, 6, 1, 12, 0)


def test_ad_hoc_completion_records_nothing(tmp_db, clock):
    controller = make_controller(tmp_db, StubGenerator([make_question(1)]), clock)
    controller.create_subject(STUDY_TEXT)
    answer_all(controller)
    assert controller.state is QuizState.RESULTS
    assert load_subjects(tmp_db) == []


def test_next_batch_consumes_remainder(tmp_db, stub_generator, clock, questions):
    controller = make_controller(tmp_db, stub_generator, clock)
    controller.create_subject(STUDY_TEXT)
    sizes = []
    while True:
        sizes.append(len(controller.session.active_batch))
        answer_all(controller)
        if not controller.session.has_next_batch:
            break
        controller.next_batch()
    assert sizes == [20, 20, 5]
    with pytest.raises(PreconditionError):
        controller.next_batch()


def test_restart_resplits_full_master_list(tmp_db, stub_generator, clock, questions):
    controller = make_controller(tmp_db, stub_generator, clock)
    controller.create_subject(STUDY_TEXT)
    answer_all(controller)
    controller.next_batch()
    answer_all(controller)
    controller.restart()
    assert controller.session.active_batch == tuple(questions[:20])
    assert len(controller.session.remaining_queue) == 25


def test_review_runs_only_wrong_answers_and_keeps_queue(tmp_db, clock):
    qs = [make_question(i) for i in range(25)]
    saved_subject(tmp_db, qs)
    controller = make_controller(tmp_db, StubGenerator(), clock)
    controller.select_subject("s1")
    while controller.state is QuizState.IN_PROGRESS:
        q = controller.session.current_question
        controller.submit_answer(q.answer if controller.session.current_index % 2 else {"D"})
        controller.advance()
    wrong = controller.session.wrong_list
    remaining = controller.session.remaining_queue
    controller.review()
    review = controller.session
    assert review.is_review
    assert review.master_list == wrong
    assert set(review.active_batch) == set(wrong)
    assert review.remaining_queue == remaining
    answer_all(controller)
    history = find_subject(load_subjects(tmp_db), "s1").history
    assert len(history) == 1
    controller.next_batch()
    assert controller.session.active_batch == tuple(qs[20:])


def test_review_requires_mistakes(tmp_db, stub_generator, clock):
    controller = make_controller(tmp_db, stub_generator, clock)
    controller.create_subject(STUDY_TEXT)
    answer_all(controller)
    with pytest.raises(PreconditionError):
        controller.review()


def test_results_actions_require_results_state(tmp_db, stub_generator, clock):
    controller = make_controller(tmp_db, stub_generator, clock)
    controller.create_subject(STUDY_TEXT)
    for action in (controller.restart, controller.review, controller.next_batch):
        with pytest.raises(PreconditionError):
            action()


def test_submit_outside_quiz_is_rejected(tmp_db, stub_generator, clock):
    controller = make_controller(tmp_db, stub_generator, clock)
    with pytest.raises(PreconditionError):
        controller.submit_answer({"A"})


def test_save_subject_binds_current_run(tmp_db, clock):
    qs = [make_question(i) for i in range(2)]
    controller = make_controller(tmp_db, StubGenerator(qs), clock)
    controller.create_subject(STUDY_TEXT)
    view = controller.save_subject("  Photosynthesis  ")
    assert not view.can_save_subject
    [subject] = load_subjects(tmp_db)
    assert subject.name == "Photosynthesis"
    assert subject.content == STUDY_TEXT
    assert subject.cached_questions == qs
    assert controller.session.subject_id == subject.id
    answer_all(controller)
    assert len(find_subject(load_subjects(tmp_db), subject.id).history) == 1


def test_save_subject_validation(tmp_db, stub_generator, clock):
    controller = make_controller(tmp_db, stub_generator, clock)
    with pytest.raises(PreconditionError):
        controller.save_subject("Nothing generated")
    controller.create_subject(STUDY_TEXT)
    with pytest.raises(ValidationError):
        controller.save_subject("   ")


def test_delete_subject(tmp_db, stub_generator, clock):
    saved_subject(tmp_db)
    controller = make_controller(tmp_db, stub_generator, clock)
    view = controller.delete_subject("s1")
    assert view.subjects == ()
    assert load_subjects(tmp_db) == []
    with pytest.raises(PreconditionError):
        controller.delete_subject("s1")


def test_start_over_clears_everything(tmp_db, stub_generator, clock):
    controller = make_controller(tmp_db, stub_generator, clock)
    controller.create_subject(STUDY_TEXT)
    view = controller.start_over()
    assert view.state is QuizState.SUBJECT_SELECTION
    assert view.session is None
    assert controller.master_list == []


def test_in_flight_generation_is_not_duplicated(tmp_db, clock):
    class ReentrantGenerator:
        def __init__(self):
            self.controller = None
            self.inner_error = None

        def generate(self, text, language):
            try:
                self.controller.create_subject(text)
            except GenerationInProgressError as e:
                self.inner_error = e
            return [make_question(1)]

    generator = ReentrantGenerator()
    controller = make_controller(tmp_db, generator, clock)
    generator.controller = controller
    view = controller.create_subject(STUDY_TEXT)
    assert isinstance(generator.inner_error, GenerationInProgressError)
    assert view.state is QuizState.IN_PROGRESS


def test_dispatch_commands(tmp_db, clock):
    controller = make_controller(tmp_db, StubGenerator([make_question(1)]), clock)
    controller.dispatch(CreateSubject(STUDY_TEXT))
    controller.dispatch(SaveSubject("Plants"))
    controller.dispatch(SubmitAnswer(frozenset({"B"})))
    view = controller.dispatch(Advance())
    assert view.state is QuizState.RESULTS
    view = controller.dispatch(Review())
    assert view.session.is_review
    view = controller.dispatch(StartOver())
    assert view.state is QuizState.SUBJECT_SELECTION
    subject_id = view.subjects[0].id
    view = controller.dispatch(SelectSubject(subject_id))
    assert view.session.subject_id == subject_id
    with pytest.raises(PreconditionError):
        controller.dispatch(NextBatch())
    with pytest.raises(PreconditionError):
        controller.dispatch(object())


def test_generation_error_is_not_raised_to_caller(tmp_db, clock):
    saved_subject(tmp_db)
    controller = make_controller(tmp_db, StubGenerator(error=GenerationError("bad schema")), clock)
    view = controller.select_subject("s1")
    assert view.state is QuizState.SUBJECT_SELECTION
    assert "bad schema" in view.error
    assert find_subject(load_subjects(tmp_db), "s1").cached_questions is None


def test_short_text_from_results_keeps_the_finished_run(tmp_db, clock):
    controller = make_controller(tmp_db, StubGenerator([make_question(1), make_question(2)]), clock)
    controller.create_subject(STUDY_TEXT)
    answer_all(controller, correct=False)
    session, master_list = controller.session, controller.master_list
    with pytest.raises(ValidationError):
        controller.dispatch(CreateSubject("too short"))
    assert controller.state is QuizState.RESULTS
    assert controller.session is session
    assert controller.master_list == master_list
    controller.review()
    assert controller.state is QuizState.IN_PROGRESS


@patch("quiz_master.generator.genai")
def test_unexpected_sdk_error_reverts_to_subject_selection(genai, tmp_db, clock):
    genai.GenerativeModel.return_value.generate_content.side_effect = RuntimeError("blocked prompt")
    controller = make_controller(tmp_db, GeminiQuestionGenerator("key", ["model-a"]), clock)
    view = controller.create_subject(STUDY_TEXT)
    assert view.state is QuizState.SUBJECT_SELECTION
    assert view.error == "Quiz Generation Failed: AI model failed to generate quiz: blocked prompt"
    assert view.session is None
