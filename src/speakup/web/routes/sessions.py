"""Session endpoints.

The quiz screen drives a session through these routes; the dashboard
reads /summary. Both views are built from the same projection.
"""

import asyncio
from typing import AsyncGenerator

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import StreamingResponse

from speakup.core.seed import SEED_EXERCISES
from speakup.web.schemas import (
    AnswerRequest,
    QuizStateResponse,
    SeedResponse,
    SessionResponse,
    SessionStartRequest,
    SummaryResponse,
)
from speakup.web.sessions import Session, get_session_manager

router = APIRouter(prefix="/api/sessions", tags=["sessions"])


async def _get_session_or_404(session_id: str) -> Session:
    session = await get_session_manager().get_session(session_id)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Session '{session_id}' not found",
        )
    return session


def _quiz_view(session: Session) -> QuizStateResponse:
    return QuizStateResponse.from_state(session.session_id, session.engine.state)


@router.post("", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def start_session(request: SessionStartRequest) -> SessionResponse:
    """Start a practice session for a user."""
    session = await get_session_manager().create_session(user_id=request.user_id)
    return SessionResponse(**session.to_dict())


@router.get("/{session_id}", response_model=SessionResponse)
async def get_session(session_id: str) -> SessionResponse:
    """Get session details."""
    session = await _get_session_or_404(session_id)
    return SessionResponse(**session.to_dict())


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def end_session(session_id: str) -> None:
    """End a practice session."""
    if not await get_session_manager().end_session(session_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Session '{session_id}' not found",
        )


@router.get("/{session_id}/quiz", response_model=QuizStateResponse)
async def get_quiz(session_id: str) -> QuizStateResponse:
    """Current exercise, answer feedback and progress summary."""
    session = await _get_session_or_404(session_id)
    return _quiz_view(session)


@router.get("/{session_id}/summary", response_model=SummaryResponse)
async def get_summary(session_id: str) -> SummaryResponse:
    """Dashboard summary for the session's user."""
    session = await _get_session_or_404(session_id)
    return SummaryResponse.from_projection(session.engine.state.projection)


@router.post("/{session_id}/answer", response_model=QuizStateResponse)
async def submit_answer(session_id: str, request: AnswerRequest) -> QuizStateResponse:
    """Answer the current exercise. Ignored if already answered."""
    session = await _get_session_or_404(session_id)
    session.engine.submit_answer(request.selected_index)
    return _quiz_view(session)


@router.post("/{session_id}/advance", response_model=QuizStateResponse)
async def advance(session_id: str) -> QuizStateResponse:
    """Move to the next exercise."""
    session = await _get_session_or_404(session_id)
    session.engine.advance()
    return _quiz_view(session)


@router.post("/{session_id}/restart", response_model=QuizStateResponse)
async def restart(session_id: str) -> QuizStateResponse:
    """Replay the loaded exercises from the start."""
    session = await _get_session_or_404(session_id)
    session.engine.restart()
    return _quiz_view(session)


@router.delete("/{session_id}/error", response_model=QuizStateResponse)
async def clear_error(session_id: str) -> QuizStateResponse:
    """Acknowledge the current error message."""
    session = await _get_session_or_404(session_id)
    session.engine.clear_error()
    return _quiz_view(session)


@router.post("/{session_id}/seed", response_model=SeedResponse)
async def seed_catalog(session_id: str) -> SeedResponse:
    """Write the built-in bootstrap catalog (administrative)."""
    session = await _get_session_or_404(session_id)
    seeded = await session.engine.seed_catalog()
    return SeedResponse(seeded=seeded, count=len(SEED_EXERCISES) if seeded else 0)


async def _event_generator(session: Session) -> AsyncGenerator[str, None]:
    """Generate SSE events for one client of a session."""
    queue = session.open_stream()
    try:
        yield f"event: quiz_state\ndata: {_quiz_view(session).model_dump_json()}\n\n"

        while True:
            try:
                # Wait for next state with timeout
                state = await asyncio.wait_for(
                    queue.get(),
                    timeout=30.0,  # Send keepalive every 30s
                )
            except asyncio.TimeoutError:
                yield "event: keepalive\ndata: ping\n\n"
                continue

            if state is None:
                # Session ended
                yield "event: close\ndata: Session ended\n\n"
                return

            view = QuizStateResponse.from_state(session.session_id, state)
            yield f"event: quiz_state\ndata: {view.model_dump_json()}\n\n"
    finally:
        session.close_stream(queue)


@router.get("/{session_id}/events")
async def stream_events(session_id: str) -> StreamingResponse:
    """Stream quiz state changes using Server-Sent Events.

    Events:
    - quiz_state: QuizStateResponse as JSON, sent on every state change
    - keepalive: Sent every 30s to keep connection alive
    - close: Session has ended
    """
    session = await _get_session_or_404(session_id)

    return StreamingResponse(
        _event_generator(session),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )
