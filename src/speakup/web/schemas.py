"""Pydantic schemas for Web API.

Serialization models for sessions, quiz views and dashboard summaries.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from speakup.core.engine import AnswerCorrect, AnswerState, AnswerWrong, SessionState
from speakup.core.models import Exercise
from speakup.core.projection import SessionProjection


# =============================================================================
# HEALTH
# =============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    timestamp: str


# =============================================================================
# SESSION SCHEMAS
# =============================================================================


class SessionStartRequest(BaseModel):
    """Request to start a practice session.

    user_id is optional so that a missing sign-in surfaces as a session
    error instead of a validation failure.
    """

    user_id: str | None = Field(default=None, max_length=128)


class SessionResponse(BaseModel):
    """Response for a session."""

    session_id: str
    user_id: str | None
    created_at: str
    status: str = "active"  # active | completed
    engine_status: str


class AnswerRequest(BaseModel):
    """Request to answer the current exercise."""

    selected_index: int = Field(..., ge=0)


class SeedResponse(BaseModel):
    """Result of seeding the catalog."""

    seeded: bool
    count: int


# =============================================================================
# VIEW SCHEMAS
# =============================================================================


class SummaryResponse(BaseModel):
    """Dashboard numbers, shared with the quiz view."""

    level_progress_ratio: float = Field(..., ge=0.0, le=1.0)
    level_label: str
    level_tier: int
    completed_count: int
    completed_minutes: int
    xp_points: int
    total_exercises_in_level: int

    @classmethod
    def from_projection(cls, projection: SessionProjection) -> SummaryResponse:
        return cls(
            level_progress_ratio=projection.level_progress_ratio,
            level_label=projection.level_label,
            level_tier=projection.level_tier,
            completed_count=projection.completed_count,
            completed_minutes=projection.completed_minutes,
            xp_points=projection.xp_points,
            total_exercises_in_level=projection.total_exercises_in_level,
        )


class ExerciseResponse(BaseModel):
    """An exercise as shown to the learner.

    correct_option_index is only revealed once the exercise is answered.
    """

    id: str
    level: str
    kind: str
    prompt: str
    options: list[str]
    correct_option_index: int | None = None

    @classmethod
    def from_exercise(cls, exercise: Exercise, reveal: bool = False) -> ExerciseResponse:
        return cls(
            id=exercise.id,
            level=exercise.level,
            kind=exercise.kind.value,
            prompt=exercise.prompt,
            options=list(exercise.options),
            correct_option_index=exercise.correct_option_index if reveal else None,
        )


class AnswerStateResponse(BaseModel):
    """Feedback for the current exercise."""

    kind: Literal["idle", "correct", "wrong"]
    selected_index: int | None = None
    explanation: str | None = None

    @classmethod
    def from_answer_state(cls, answer: AnswerState) -> AnswerStateResponse:
        if isinstance(answer, AnswerCorrect):
            return cls(kind="correct", explanation=answer.explanation)
        if isinstance(answer, AnswerWrong):
            return cls(
                kind="wrong",
                selected_index=answer.selected_index,
                explanation=answer.explanation,
            )
        return cls(kind="idle")


class QuizStateResponse(BaseModel):
    """Everything the quiz screen renders."""

    session_id: str
    status: str
    is_loading: bool
    is_finished: bool
    current_index: int
    pending_count: int
    exercise: ExerciseResponse | None
    answer: AnswerStateResponse
    error_message: str | None
    error_kind: str | None
    summary: SummaryResponse

    @classmethod
    def from_state(cls, session_id: str, state: SessionState) -> QuizStateResponse:
        answer = AnswerStateResponse.from_answer_state(state.answer_state)
        exercise = state.current_exercise
        return cls(
            session_id=session_id,
            status=state.status.name,
            is_loading=state.is_loading,
            is_finished=state.is_finished,
            current_index=state.current_index,
            pending_count=len(state.pending_exercises),
            exercise=(
                ExerciseResponse.from_exercise(exercise, reveal=answer.kind != "idle")
                if exercise is not None
                else None
            ),
            answer=answer,
            error_message=state.error_message,
            error_kind=state.error_kind,
            summary=SummaryResponse.from_projection(state.projection),
        )
