"""User progress endpoints.

Reads the stored progress directly, without opening a session, for
dashboards that only need the summary numbers.
"""

from fastapi import APIRouter, HTTPException, status

from speakup.core.errors import SubscriptionFailureError
from speakup.core.models import UserProgress
from speakup.core.projection import project
from speakup.web.schemas import SummaryResponse
from speakup.web.sessions import get_session_manager

router = APIRouter(prefix="/api/users", tags=["progress"])


@router.get("/{user_id}/summary", response_model=SummaryResponse)
async def get_user_summary(user_id: str) -> SummaryResponse:
    """Dashboard summary computed from the stored progress.

    Users without a progress document get the fresh tier-1 summary.
    """
    store = get_session_manager().store
    try:
        progress = await store.get_user_progress(user_id) or UserProgress(user_id=user_id)
        exercises = await store.get_exercises(progress.level_label)
    except SubscriptionFailureError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Error al cargar progreso: {e.reason}",
        )
    return SummaryResponse.from_projection(project(progress, len(exercises)))
