"""Quiz grading and progress arithmetic.

Everything here is a pure function of its arguments so the rules can be
tested without a database.  ``app.crud`` loads the rows, calls into this
module and persists the outcome inside a single transaction.
"""

from dataclasses import dataclass, field
from typing import Iterable, Sequence

from app.exceptions import ValidationError

SINGLE_CHOICE = "single_choice"
MULTIPLE_CHOICE = "multiple_choice"
TRUE_FALSE = "true_false"
SHORT_ANSWER = "short_answer"

QUESTION_TYPES = (SINGLE_CHOICE, MULTIPLE_CHOICE, TRUE_FALSE, SHORT_ANSWER)

# A lesson counts as watched once 90% of the video has been played.
COMPLETION_THRESHOLD = 0.9


@dataclass
class GradedAnswer:
    question_id: int
    answer: str | list[str] | None
    is_correct: bool
    points: int

    def to_dict(self) -> dict:
        return {
            "question_id": self.question_id,
            "answer": self.answer,
            "is_correct": self.is_correct,
            "points": self.points,
        }


@dataclass
class GradeResult:
    score: int
    max_score: int
    percentage: float
    passed: bool
    answers: list[GradedAnswer] = field(default_factory=list)


def correct_option_ids(options: Iterable[dict]) -> set[str]:
    return {str(o["id"]) for o in options if o.get("is_correct")}


def strip_correct_flags(options: Iterable[dict], question_type: str | None = None) -> list[dict]:
    """Return options safe to show to a learner taking the quiz.

    Short-answer options are the accepted answers themselves, so none are shown.
    """
    if question_type == SHORT_ANSWER:
        return []
    return [{"id": o["id"], "text": o["text"]} for o in options]


def is_answer_correct(question_type: str, options: Sequence[dict], answer) -> bool:
    """Check a single answer against the question's correct options.

    Single-choice and true/false answers are one option id that must be
    correct.  Multiple-choice answers must select exactly the correct set.
    Short answers match the text of any correct option, ignoring case and
    surrounding whitespace.
    """
    correct = correct_option_ids(options)
    if question_type in (SINGLE_CHOICE, TRUE_FALSE):
        return str(answer) in correct
    if question_type == MULTIPLE_CHOICE:
        return {str(a) for a in answer} == correct
    if question_type == SHORT_ANSWER:
        accepted = {
            str(o["text"]).strip().casefold() for o in options if o.get("is_correct")
        }
        return str(answer).strip().casefold() in accepted
    return False


def _check_answer_shape(question_id, question_type: str, answer) -> None:
    if question_type == MULTIPLE_CHOICE:
        if not isinstance(answer, list):
            raise ValidationError(
                f"Question {question_id} expects a list of option ids",
                "quiz_malformed_answer",
            )
    elif isinstance(answer, list):
        raise ValidationError(
            f"Question {question_id} expects a single answer",
            "quiz_malformed_answer",
        )


def compute_percentage(score: int, max_score: int) -> float:
    if max_score <= 0:
        return 0.0
    return round(score / max_score * 100, 2)


def is_passing(percentage: float, passing_score: int) -> bool:
    return percentage >= passing_score


def grade_submission(questions: Sequence, passing_score: int, answers: Sequence) -> GradeResult:
    """Grade a submission against the current question definitions.

    ``questions`` are objects with ``id``, ``type``, ``options`` and
    ``points``; ``answers`` are objects with ``question_id`` and ``answer``.
    The whole submission is rejected if it names a question that is not part
    of the quiz, names a question twice, or gives an answer of the wrong
    shape.  Unanswered questions earn nothing but still count toward the
    maximum score.
    """
    if not questions:
        raise ValidationError("Quiz has no questions", "quiz_empty")

    by_id = {q.id: q for q in questions}
    submitted = {}
    for item in answers:
        question = by_id.get(item.question_id)
        if question is None:
            raise ValidationError(
                f"Question {item.question_id} not found", "quiz_unknown_question"
            )
        if item.question_id in submitted:
            raise ValidationError(
                f"Question {item.question_id} answered more than once",
                "quiz_duplicate_answer",
            )
        _check_answer_shape(item.question_id, question.type, item.answer)
        submitted[item.question_id] = item.answer

    score = 0
    max_score = 0
    graded = []
    for question in questions:
        max_score += question.points
        answer = submitted.get(question.id)
        correct = answer is not None and is_answer_correct(
            question.type, question.options, answer
        )
        points = question.points if correct else 0
        score += points
        if question.id in submitted:
            graded.append(GradedAnswer(question.id, answer, correct, points))

    percentage = compute_percentage(score, max_score)
    return GradeResult(
        score=score,
        max_score=max_score,
        percentage=percentage,
        passed=is_passing(percentage, passing_score),
        answers=graded,
    )


def lesson_completed(
    already_completed: bool,
    watched_seconds: int,
    video_duration: int | None,
    client_completed: bool = False,
) -> bool:
    """Decide whether a lesson is complete after a progress update.

    Completion is sticky: once complete a lesson stays complete.  Video
    lessons complete at the watch threshold; lessons without a duration
    complete when the client reports them done.
    """
    if already_completed:
        return True
    if video_duration and video_duration > 0:
        return watched_seconds / video_duration >= COMPLETION_THRESHOLD
    return bool(client_completed)


def enrollment_progress(completed_lessons: int, total_lessons: int) -> float:
    if total_lessons <= 0:
        return 0.0
    return round(completed_lessons / total_lessons * 100, 2)
