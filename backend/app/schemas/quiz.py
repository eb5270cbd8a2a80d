from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, model_validator

QuestionType = Literal["single_choice", "multiple_choice", "true_false", "short_answer"]


class QuizCreate(BaseModel):
    title: str = Field(min_length=3, max_length=200)
    description: str | None = None
    passing_score: int | None = Field(default=None, ge=0, le=100)
    time_limit: int | None = Field(default=None, ge=1, le=180)


class QuizUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=3, max_length=200)
    description: str | None = None
    passing_score: int | None = Field(default=None, ge=0, le=100)
    time_limit: int | None = Field(default=None, ge=1, le=180)


class QuestionOption(BaseModel):
    id: str = Field(min_length=1)
    text: str = Field(min_length=1)
    is_correct: bool = False


class QuestionCreate(BaseModel):
    text: str = Field(min_length=3)
    type: QuestionType
    options: list[QuestionOption]
    explanation: str | None = None
    points: int = Field(default=1, ge=1)
    order: int = Field(ge=1)

    @model_validator(mode="after")
    def check_options(self):
        ids = [o.id for o in self.options]
        if len(ids) != len(set(ids)):
            raise ValueError("Option ids must be unique")
        correct = sum(1 for o in self.options if o.is_correct)
        if correct == 0:
            raise ValueError("At least one option must be correct")
        if self.type == "single_choice" and correct != 1:
            raise ValueError("Single choice questions need exactly one correct option")
        if self.type == "true_false" and (len(self.options) != 2 or correct != 1):
            raise ValueError(
                "True/false questions need two options with one correct"
            )
        return self


class QuestionUpdate(BaseModel):
    text: str | None = Field(default=None, min_length=3)
    type: QuestionType | None = None
    options: list[QuestionOption] | None = None
    explanation: str | None = None
    points: int | None = Field(default=None, ge=1)
    order: int | None = Field(default=None, ge=1)


class QuestionRead(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    quiz_id: int
    text: str
    type: str
    options: list[QuestionOption]
    explanation: str | None = None
    points: int
    order: int


class LearnerOption(BaseModel):
    id: str
    text: str


class LearnerQuestion(BaseModel):
    id: int
    text: str
    type: str
    options: list[LearnerOption]
    points: int
    order: int


class QuizRead(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    module_id: int
    title: str
    description: str | None = None
    passing_score: int
    time_limit: int | None = None
    created_at: datetime


class QuizDetail(QuizRead):
    questions: list[QuestionRead] = []


class LearnerQuiz(QuizRead):
    questions: list[LearnerQuestion] = []


class QuizAnswer(BaseModel):
    question_id: int
    answer: str | list[str]


class QuizSubmission(BaseModel):
    answers: list[QuizAnswer]
    started_at: datetime | None = None


class GradedAnswerRead(BaseModel):
    question_id: int
    answer: str | list[str] | None = None
    is_correct: bool
    points: int


class AttemptRead(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    user_id: int
    quiz_id: int
    score: int
    max_score: int
    percentage: float
    passed: bool
    answers: list[GradedAnswerRead]
    started_at: datetime
    completed_at: datetime | None = None


class AttemptQuizInfo(BaseModel):
    title: str
    passing_score: int


class AttemptResult(AttemptRead):
    quiz: AttemptQuizInfo
