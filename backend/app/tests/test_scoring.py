"""Unit tests for quiz grading and progress arithmetic."""

import pathlib
import sys
from types import SimpleNamespace

import pytest

# Allow importing the app package
sys.path.append(str(pathlib.Path(__file__).resolve().parents[2]))

from app.exceptions import ValidationError
from app.scoring import (
    grade_submission,
    is_answer_correct,
    strip_correct_flags,
    lesson_completed,
    enrollment_progress,
    compute_percentage,
)


def _question(qid, qtype, correct, options=("a", "b", "c"), points=1):
    return SimpleNamespace(
        id=qid,
        type=qtype,
        points=points,
        options=[
            {"id": o, "text": f"Option {o}", "is_correct": o in correct}
            for o in options
        ],
    )


def _answer(qid, answer):
    return SimpleNamespace(question_id=qid, answer=answer)


QUESTIONS = [
    _question(1, "single_choice", {"a"}),
    _question(2, "true_false", {"t"}, options=("t", "f")),
    _question(3, "multiple_choice", {"b", "c"}, points=2),
]


def test_two_of_three_questions_right_passes():
    result = grade_submission(
        QUESTIONS, 70, [_answer(1, "a"), _answer(3, ["c", "b"])]
    )
    assert result.score == 3
    assert result.max_score == 4
    assert result.percentage == 75.0
    assert result.passed is True
    assert [a.question_id for a in result.answers] == [1, 3]
    assert all(a.is_correct for a in result.answers)


def test_only_first_question_right_fails():
    result = grade_submission(QUESTIONS, 70, [_answer(1, "a")])
    assert result.score == 1
    assert result.max_score == 4
    assert result.percentage == 25.0
    assert result.passed is False


def test_unanswered_questions_still_count_toward_max_score():
    result = grade_submission(QUESTIONS, 0, [])
    assert result.score == 0
    assert result.max_score == 4
    assert result.answers == []
    assert result.passed is True


def test_pass_boundary_is_inclusive():
    questions = [_question(i, "single_choice", {"a"}) for i in range(1, 11)]
    answers = [_answer(i, "a" if i <= 7 else "b") for i in range(1, 11)]
    result = grade_submission(questions, 70, answers)
    assert result.percentage == 70.0
    assert result.passed is True

    answers[0] = _answer(1, "b")
    assert grade_submission(questions, 70, answers).passed is False


def test_percentage_is_rounded_to_two_places():
    assert compute_percentage(1, 3) == 33.33
    assert compute_percentage(2, 3) == 66.67
    assert compute_percentage(0, 0) == 0.0


def test_multiple_choice_needs_the_exact_set():
    q = QUESTIONS[2]
    assert is_answer_correct(q.type, q.options, ["b", "c"])
    assert is_answer_correct(q.type, q.options, ["c", "b", "b"])
    assert not is_answer_correct(q.type, q.options, ["b"])
    assert not is_answer_correct(q.type, q.options, ["a", "b", "c"])
    assert not is_answer_correct(q.type, q.options, ["a"])
    assert not is_answer_correct(q.type, q.options, [])


def test_short_answer_ignores_case_and_whitespace():
    options = [{"id": "x", "text": "Ethereum", "is_correct": True}]
    assert is_answer_correct("short_answer", options, "  ethereum ")
    assert not is_answer_correct("short_answer", options, "bitcoin")


def test_unknown_question_rejects_whole_submission():
    with pytest.raises(ValidationError) as exc:
        grade_submission(QUESTIONS, 70, [_answer(1, "a"), _answer(99, "a")])
    assert exc.value.code == "quiz_unknown_question"


def test_duplicate_question_is_rejected():
    with pytest.raises(ValidationError) as exc:
        grade_submission(QUESTIONS, 70, [_answer(1, "a"), _answer(1, "b")])
    assert exc.value.code == "quiz_duplicate_answer"


@pytest.mark.parametrize(
    "answer",
    [_answer(1, ["a"]), _answer(3, "b")],
)
def test_answer_shape_must_match_question_type(answer):
    with pytest.raises(ValidationError) as exc:
        grade_submission(QUESTIONS, 70, [answer])
    assert exc.value.code == "quiz_malformed_answer"


def test_empty_quiz_cannot_be_graded():
    with pytest.raises(ValidationError) as exc:
        grade_submission([], 70, [])
    assert exc.value.code == "quiz_empty"


def test_learner_options_hide_correct_flags():
    stripped = strip_correct_flags(QUESTIONS[0].options)
    assert stripped[0] == {"id": "a", "text": "Option a"}
    assert all("is_correct" not in o for o in stripped)


def test_lesson_completes_at_ninety_percent():
    assert not lesson_completed(False, 89, 100)
    assert lesson_completed(False, 90, 100)
    assert lesson_completed(False, 540, 600)
    assert not lesson_completed(False, 539, 600)


def test_lesson_completion_is_sticky():
    assert lesson_completed(True, 0, 100)


def test_lesson_without_duration_completes_on_client_flag():
    assert not lesson_completed(False, 0, None)
    assert lesson_completed(False, 0, None, client_completed=True)
    assert lesson_completed(False, 0, 0, client_completed=True)
    # a video lesson ignores the client flag
    assert not lesson_completed(False, 10, 100, client_completed=True)


def test_enrollment_progress():
    assert enrollment_progress(0, 4) == 0.0
    assert enrollment_progress(1, 3) == 33.33
    assert enrollment_progress(3, 3) == 100.0
    assert enrollment_progress(0, 0) == 0.0


def test_short_answer_options_are_hidden_from_learners():
    options = [{"id": "x", "text": "Ethereum", "is_correct": True}]
    assert strip_correct_flags(options, "short_answer") == []
    assert strip_correct_flags(QUESTIONS[0].options, "single_choice")[0] == {
        "id": "a",
        "text": "Option a",
    }
