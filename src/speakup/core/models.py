"""Domain models for exercises and user progress.

Both models are immutable. Each one knows how to encode itself to the
store document shape and how to decode a stored document permissively:
unknown or missing fields fall back to defaults, and only payloads that
cannot represent a valid value raise MalformedDocumentError.

Document shapes:
- exercises/{id}: {id, level, type, question, options, correctAnswerIndex, explanation}
- userProgress/{uid}: {uid, currentLevel, xpPoints, completedExercises}
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from speakup.core.errors import MalformedDocumentError

EXERCISES_COLLECTION = "exercises"
PROGRESS_COLLECTION = "userProgress"

# Tier 1 -> "A1", tier 2 -> "A2", ...
LEVEL_LABELS: tuple[str, ...] = ("A1", "A2", "B1", "B2", "C1")


def level_label_for(tier: int) -> str:
    """Map a level tier to its canonical label.

    Tiers outside the table fall back to the first label.
    """
    if 1 <= tier <= len(LEVEL_LABELS):
        return LEVEL_LABELS[tier - 1]
    return LEVEL_LABELS[0]


def _as_int(value: Any, default: int) -> int:
    """Coerce a stored numeric field, falling back to default."""
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return default


def _as_str(value: Any, default: str) -> str:
    return value if isinstance(value, str) else default


def _as_str_list(value: Any) -> list[str]:
    if not isinstance(value, (list, tuple)):
        return []
    return [item for item in value if isinstance(item, str)]


# =============================================================================
# EXERCISE
# =============================================================================


class ExerciseType(str, Enum):
    """Supported exercise variants."""

    MULTIPLE_CHOICE = "MULTIPLE_CHOICE"
    FILL_IN_THE_BLANK = "FILL_IN_THE_BLANK"

    @classmethod
    def parse(cls, raw: Any) -> ExerciseType:
        """Parse a stored type name; unknown names become MULTIPLE_CHOICE."""
        if isinstance(raw, str) and raw in cls.__members__:
            return cls[raw]
        return cls.MULTIPLE_CHOICE


@dataclass(frozen=True)
class Exercise:
    """A single catalog entry. Read-only to the engine."""

    id: str
    level: str = "A1"
    kind: ExerciseType = ExerciseType.MULTIPLE_CHOICE
    prompt: str = ""
    options: tuple[str, ...] = ()
    correct_option_index: int = 0
    explanation: str = ""

    def __post_init__(self) -> None:
        # Accept any sequence for options but store a tuple
        if not isinstance(self.options, tuple):
            object.__setattr__(self, "options", tuple(self.options))

    def is_correct(self, selected_index: int) -> bool:
        """Compare a selected option index with the correct one."""
        return selected_index == self.correct_option_index

    def to_document(self) -> dict[str, Any]:
        """Convert to the store document shape."""
        return {
            "id": self.id,
            "level": self.level,
            "type": self.kind.value,
            "question": self.prompt,
            "options": list(self.options),
            "correctAnswerIndex": self.correct_option_index,
            "explanation": self.explanation,
        }

    @classmethod
    def from_document(cls, doc_id: str | None, data: Any) -> Exercise:
        """Build an Exercise from a stored document.

        Args:
            doc_id: Document key; falls back to the "id" field when empty
            data: Raw document payload

        Returns:
            Decoded Exercise

        Raises:
            MalformedDocumentError: If the payload is not a mapping, has no id,
                or its correct index falls outside the options
        """
        if not isinstance(data, Mapping):
            raise MalformedDocumentError(
                EXERCISES_COLLECTION, str(doc_id), "payload is not a mapping"
            )

        exercise_id = doc_id or _as_str(data.get("id"), "")
        if not exercise_id:
            raise MalformedDocumentError(EXERCISES_COLLECTION, "?", "missing id")

        options = _as_str_list(data.get("options"))
        correct_index = _as_int(data.get("correctAnswerIndex"), 0)
        if not 0 <= correct_index < max(1, len(options)):
            raise MalformedDocumentError(
                EXERCISES_COLLECTION,
                exercise_id,
                f"correctAnswerIndex {correct_index} out of range for {len(options)} options",
            )

        return cls(
            id=exercise_id,
            level=_as_str(data.get("level"), LEVEL_LABELS[0]),
            kind=ExerciseType.parse(data.get("type")),
            prompt=_as_str(data.get("question"), ""),
            options=tuple(options),
            correct_option_index=correct_index,
            explanation=_as_str(data.get("explanation"), ""),
        )


# =============================================================================
# USER PROGRESS
# =============================================================================


@dataclass(frozen=True)
class UserProgress:
    """Durable learning progress for one user.

    completed_exercise_ids only holds exercises of the current tier; it is
    emptied at every level-up.
    """

    user_id: str
    current_level_tier: int = 1
    xp_points: int = 0
    completed_exercise_ids: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        if not isinstance(self.completed_exercise_ids, frozenset):
            object.__setattr__(
                self, "completed_exercise_ids", frozenset(self.completed_exercise_ids)
            )

    @property
    def level_label(self) -> str:
        """Label matching the "level" field of exercise documents."""
        return level_label_for(self.current_level_tier)

    @property
    def completed_count(self) -> int:
        return len(self.completed_exercise_ids)

    def to_document(self) -> dict[str, Any]:
        """Convert to the store document shape.

        Completed ids are written sorted so equal values encode identically.
        """
        return {
            "uid": self.user_id,
            "currentLevel": self.current_level_tier,
            "xpPoints": self.xp_points,
            "completedExercises": sorted(self.completed_exercise_ids),
        }

    @classmethod
    def from_document(cls, data: Any, user_id: str | None = None) -> UserProgress:
        """Build a UserProgress from a stored document.

        Args:
            data: Raw document payload
            user_id: Document key, used when the "uid" field is missing

        Raises:
            MalformedDocumentError: If the payload is not a mapping
        """
        if not isinstance(data, Mapping):
            raise MalformedDocumentError(
                PROGRESS_COLLECTION, str(user_id), "payload is not a mapping"
            )

        return cls(
            user_id=_as_str(data.get("uid"), "") or (user_id or ""),
            current_level_tier=max(1, _as_int(data.get("currentLevel"), 1)),
            xp_points=max(0, _as_int(data.get("xpPoints"), 0)),
            completed_exercise_ids=frozenset(_as_str_list(data.get("completedExercises"))),
        )
