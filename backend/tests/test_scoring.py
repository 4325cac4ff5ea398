import pytest

from attempt_engine.errors import InvalidAnswer, QuestionNotFound
from attempt_engine.models import Attempt, AttemptAnswer
from attempt_engine.services import scoring
from attempt_engine.services.scoring import score_mcq

from conftest import STUDENT_ID, begin_and_start, create_exam


def attempt_row(db, attempt_id):
    db.expire_all()
    return db.get(Attempt, attempt_id)


# ── marking rule ─────────────────────────────────────────────

def test_correct_single_choice_earns_full_points():
    assert score_mcq([2], {2}, 4, 1) == (True, 4.0)


def test_wrong_single_choice_costs_the_penalty():
    assert score_mcq([1], {2}, 4, 1) == (False, -1.0)


def test_multiple_correct_needs_the_exact_set():
    assert score_mcq([1, 2], {1, 2}, 4, 1) == (True, 4.0)
    assert score_mcq([1], {1, 2}, 4, 1) == (False, -1.0)
    assert score_mcq([1, 2, 3], {1, 2}, 4, 1) == (False, -1.0)


def test_empty_selection_scores_nothing():
    assert score_mcq([], {2}, 4, 1) == (False, 0.0)


# ── save_mcq_answer ──────────────────────────────────────────

def test_save_answer_scores_and_updates_counters(db, exam):
    issued = begin_and_start(db, exam.assessment_id)

    result = scoring.save_mcq_answer(db, STUDENT_ID, exam.assessment_id,
                                     exam.aq_single, [exam.single_correct])
    assert result["is_correct"] is True
    assert result["points_earned"] == 4.0
    assert result["max_points"] == 4.0
    assert "correct_option_ids" not in result

    result = scoring.save_mcq_answer(db, STUDENT_ID, exam.assessment_id,
                                     exam.aq_multi, [exam.multi_wrong])
    assert result["is_correct"] is False
    assert result["points_earned"] == -1.0

    attempt = attempt_row(db, issued["attempt_id"])
    assert attempt.answered_questions == 2
    assert attempt.correct_answers == 1
    assert attempt.wrong_answers == 1
    assert attempt.score_obtained == 3.0


def test_reanswering_replaces_the_previous_contribution(db, exam):
    issued = begin_and_start(db, exam.assessment_id)

    scoring.save_mcq_answer(db, STUDENT_ID, exam.assessment_id, exam.aq_single, [exam.single_wrong])
    scoring.save_mcq_answer(db, STUDENT_ID, exam.assessment_id, exam.aq_single, [exam.single_correct])

    attempt = attempt_row(db, issued["attempt_id"])
    assert attempt.score_obtained == 4.0
    assert attempt.answered_questions == 1
    assert attempt.correct_answers == 1
    assert attempt.wrong_answers == 0
    assert db.query(AttemptAnswer).filter(AttemptAnswer.attempt_id == attempt.id).count() == 1


def test_clearing_an_answer_removes_its_contribution(db, exam):
    issued = begin_and_start(db, exam.assessment_id)

    scoring.save_mcq_answer(db, STUDENT_ID, exam.assessment_id, exam.aq_single, [exam.single_wrong])
    result = scoring.save_mcq_answer(db, STUDENT_ID, exam.assessment_id, exam.aq_single, [])
    assert result["points_earned"] == 0.0

    attempt = attempt_row(db, issued["attempt_id"])
    assert attempt.score_obtained == 0.0
    assert attempt.answered_questions == 0


def test_penalties_can_make_the_score_negative(db, exam):
    issued = begin_and_start(db, exam.assessment_id)
    scoring.save_mcq_answer(db, STUDENT_ID, exam.assessment_id, exam.aq_single, [exam.single_wrong])
    scoring.save_mcq_answer(db, STUDENT_ID, exam.assessment_id, exam.aq_multi, [exam.multi_wrong])
    assert attempt_row(db, issued["attempt_id"]).score_obtained == -2.0


def test_correct_answers_are_revealed_only_when_enabled(db):
    exam = create_exam(db, show_correct_answers=True)
    begin_and_start(db, exam.assessment_id)
    result = scoring.save_mcq_answer(db, STUDENT_ID, exam.assessment_id,
                                     exam.aq_single, [exam.single_wrong])
    assert result["correct_option_ids"] == [exam.single_correct]


def test_options_from_another_question_are_rejected(db, exam):
    issued = begin_and_start(db, exam.assessment_id)
    with pytest.raises(InvalidAnswer):
        scoring.save_mcq_answer(db, STUDENT_ID, exam.assessment_id,
                                exam.aq_single, [exam.multi_wrong])
    db.rollback()
    assert attempt_row(db, issued["attempt_id"]).answered_questions == 0


def test_single_choice_rejects_several_options(db, exam):
    begin_and_start(db, exam.assessment_id)
    with pytest.raises(InvalidAnswer):
        scoring.save_mcq_answer(db, STUDENT_ID, exam.assessment_id, exam.aq_single,
                                [exam.single_correct, exam.single_wrong])


def test_coding_question_does_not_take_an_mcq_answer(db, exam):
    begin_and_start(db, exam.assessment_id)
    with pytest.raises(InvalidAnswer):
        scoring.save_mcq_answer(db, STUDENT_ID, exam.assessment_id, exam.aq_coding, [])


def test_question_of_another_assessment_is_not_found(db, exam):
    other = create_exam(db)
    begin_and_start(db, exam.assessment_id)
    with pytest.raises(QuestionNotFound):
        scoring.save_mcq_answer(db, STUDENT_ID, exam.assessment_id, other.aq_single,
                                [other.single_correct])


# ── flags ────────────────────────────────────────────────────

def test_flag_creates_an_unscored_row(db, exam):
    issued = begin_and_start(db, exam.assessment_id)

    result = scoring.flag_question(db, STUDENT_ID, exam.assessment_id, exam.aq_multi, True)
    assert result == {"assessment_question_id": exam.aq_multi, "is_flagged": True}

    attempt = attempt_row(db, issued["attempt_id"])
    assert attempt.answered_questions == 0
    answer = db.query(AttemptAnswer).filter(AttemptAnswer.attempt_id == attempt.id).one()
    assert answer.is_flagged is True
    assert answer.is_answered is False


def test_flag_keeps_the_existing_answer(db, exam):
    issued = begin_and_start(db, exam.assessment_id)
    scoring.save_mcq_answer(db, STUDENT_ID, exam.assessment_id, exam.aq_single, [exam.single_correct])
    scoring.flag_question(db, STUDENT_ID, exam.assessment_id, exam.aq_single, True)
    scoring.flag_question(db, STUDENT_ID, exam.assessment_id, exam.aq_single, False)

    attempt = attempt_row(db, issued["attempt_id"])
    answer = db.query(AttemptAnswer).filter(AttemptAnswer.attempt_id == attempt.id).one()
    assert answer.is_flagged is False
    assert answer.points_earned == 4.0
    assert attempt.score_obtained == 4.0
