"""Quiz authoring, quiz taking and attempt history."""

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import ValidationError as SchemaValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import get_current_user
from app.database import get_session
from app.exceptions import ValidationError
from app.models import Quiz, User
from app.schemas import (
    QuizCreate,
    QuizUpdate,
    QuizRead,
    QuizDetail,
    LearnerQuiz,
    QuestionCreate,
    QuestionUpdate,
    QuestionRead,
    QuizSubmission,
    AttemptRead,
    AttemptResult,
)
from app.crud import (
    get_module,
    get_course,
    can_author_course,
    create_quiz,
    get_quiz,
    get_quiz_by_module,
    get_quiz_course,
    update_quiz,
    delete_quiz,
    create_question,
    get_question,
    update_question,
    delete_question,
    submit_quiz,
    list_attempts,
    get_best_attempt,
)
from app.scoring import strip_correct_flags

router = APIRouter(prefix="/quizzes", tags=["quizzes"])


def learner_view(quiz: Quiz) -> LearnerQuiz:
    """The quiz as a learner sees it, without the correct answers."""
    data = QuizRead.model_validate(quiz).model_dump()
    data["questions"] = [
        {
            "id": q.id,
            "text": q.text,
            "type": q.type,
            "options": strip_correct_flags(q.options, q.type),
            "points": q.points,
            "order": q.order,
        }
        for q in quiz.questions
    ]
    return LearnerQuiz(**data)


def _forbidden() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="You can only modify quizzes of your own courses",
    )


async def _authored_quiz(
    db: AsyncSession, quiz_id: int, user: User, with_questions: bool = False
) -> Quiz:
    quiz = await get_quiz(db, quiz_id, with_questions=with_questions)
    if not quiz:
        raise HTTPException(status_code=404, detail="Quiz not found")
    if not await can_author_course(db, user, await get_quiz_course(db, quiz)):
        raise _forbidden()
    return quiz


@router.post(
    "/module/{module_id}", response_model=QuizRead, status_code=status.HTTP_201_CREATED
)
async def create_quiz_route(
    module_id: int,
    data: QuizCreate,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    module = await get_module(db, module_id)
    if not module:
        raise HTTPException(status_code=404, detail="Module not found")
    course = await get_course(db, module.course_id)
    if not await can_author_course(db, current_user, course):
        raise _forbidden()
    return await create_quiz(db, module_id, data.model_dump())


@router.get("/module/{module_id}", response_model=LearnerQuiz)
async def read_module_quiz(
    module_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    quiz = await get_quiz_by_module(db, module_id, with_questions=True)
    if not quiz:
        raise HTTPException(status_code=404, detail="Quiz not found")
    return learner_view(quiz)


@router.get("/{quiz_id}", response_model=LearnerQuiz)
async def read_quiz(
    quiz_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    quiz = await get_quiz(db, quiz_id, with_questions=True)
    if not quiz:
        raise HTTPException(status_code=404, detail="Quiz not found")
    return learner_view(quiz)


@router.get("/{quiz_id}/admin", response_model=QuizDetail)
async def read_quiz_with_answers(
    quiz_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    return await _authored_quiz(db, quiz_id, current_user, with_questions=True)


@router.patch("/{quiz_id}", response_model=QuizRead)
async def update_quiz_route(
    quiz_id: int,
    data: QuizUpdate,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    quiz = await _authored_quiz(db, quiz_id, current_user)
    changes = data.model_dump(exclude_unset=True)
    for field in ("title", "passing_score"):
        if field in changes and changes[field] is None:
            del changes[field]
    return await update_quiz(db, quiz, changes)


@router.delete("/{quiz_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_quiz_route(
    quiz_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    """Delete a quiz along with its questions and every recorded attempt."""
    quiz = await _authored_quiz(db, quiz_id, current_user)
    await delete_quiz(db, quiz)


# Questions

@router.post(
    "/{quiz_id}/questions",
    response_model=QuestionRead,
    status_code=status.HTTP_201_CREATED,
)
async def add_question(
    quiz_id: int,
    data: QuestionCreate,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    await _authored_quiz(db, quiz_id, current_user)
    return await create_question(db, quiz_id, data.model_dump())


@router.patch("/questions/{question_id}", response_model=QuestionRead)
async def edit_question(
    question_id: int,
    data: QuestionUpdate,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    question = await get_question(db, question_id)
    if not question:
        raise HTTPException(status_code=404, detail="Question not found")
    await _authored_quiz(db, question.quiz_id, current_user)

    # Re-check the option rules against the question as it will be stored.
    merged = QuestionRead.model_validate(question).model_dump(
        exclude={"id", "quiz_id"}
    )
    merged.update(data.model_dump(exclude_unset=True, exclude_none=True))
    try:
        checked = QuestionCreate.model_validate(merged)
    except SchemaValidationError as exc:
        raise ValidationError(
            "; ".join(err["msg"] for err in exc.errors()), "question_invalid"
        )
    return await update_question(db, question, checked.model_dump())


@router.delete("/questions/{question_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_question(
    question_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    question = await get_question(db, question_id)
    if not question:
        raise HTTPException(status_code=404, detail="Question not found")
    await _authored_quiz(db, question.quiz_id, current_user)
    await delete_question(db, question)


# Attempts

@router.post("/{quiz_id}/submit", response_model=AttemptResult)
async def submit(
    quiz_id: int,
    data: QuizSubmission,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    """Grade a submission and record it as a new attempt."""
    attempt, quiz = await submit_quiz(
        db, current_user.id, quiz_id, data.answers, started_at=data.started_at
    )
    result = AttemptRead.model_validate(attempt).model_dump()
    result["quiz"] = {"title": quiz.title, "passing_score": quiz.passing_score}
    return result


@router.get("/{quiz_id}/attempts", response_model=list[AttemptRead])
async def my_attempts(
    quiz_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    return await list_attempts(db, current_user.id, quiz_id)


@router.get("/{quiz_id}/best-attempt", response_model=AttemptRead | None)
async def my_best_attempt(
    quiz_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    return await get_best_attempt(db, current_user.id, quiz_id)
