"""Derived, read-only view of a learner's progress.

The dashboard summary and the quiz view both render this projection, so
the numbers they show always agree.
"""

from __future__ import annotations

from dataclasses import dataclass

from speakup.core.models import UserProgress


@dataclass(frozen=True)
class SessionProjection:
    """Display-ready numbers derived from progress and catalog size."""

    level_progress_ratio: float
    level_label: str
    level_tier: int
    completed_count: int
    completed_minutes: int
    xp_points: int
    total_exercises_in_level: int


def project(progress: UserProgress, total_exercises_in_level: int) -> SessionProjection:
    """Compute the projection for a progress value.

    Args:
        progress: Current in-memory progress
        total_exercises_in_level: Catalog size for the current level

    Returns:
        SessionProjection with the ratio clamped to [0, 1]
    """
    completed = progress.completed_count
    ratio = completed / max(1, total_exercises_in_level)

    return SessionProjection(
        level_progress_ratio=min(1.0, max(0.0, ratio)),
        level_label=progress.level_label,
        level_tier=progress.current_level_tier,
        completed_count=completed,
        # One completed exercise counts as one minute of practice
        completed_minutes=completed,
        xp_points=progress.xp_points,
        total_exercises_in_level=total_exercises_in_level,
    )
