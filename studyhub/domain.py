"""Domain vocabulary shared across services and repositories."""
from __future__ import annotations

from datetime import timedelta
from enum import Enum


class EntityType(str, Enum):
    """Tags naming each collection held by an entity store."""

    USER = "user"
    DOCUMENT = "document"
    NOTE = "note"
    FLASHCARD_SET = "flashcard_set"
    FLASHCARD = "flashcard"
    QUIZ = "quiz"
    QUIZ_ATTEMPT = "quiz_attempt"
    CHAT_MESSAGE = "chat_message"


class Difficulty(str, Enum):
    """How well a reviewer recalled a flashcard."""

    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"

    @property
    def interval(self) -> timedelta:
        return timedelta(days=REVIEW_INTERVAL_DAYS[self])


REVIEW_INTERVAL_DAYS = {
    Difficulty.EASY: 3.0,
    Difficulty.MEDIUM: 1.0,
    Difficulty.HARD: 0.5,
}


class InvalidDifficulty(ValueError):
    """Raised when a rating is not one of easy, medium or hard."""


def parse_difficulty(value: object) -> Difficulty:
    if isinstance(value, Difficulty):
        return value
    try:
        return Difficulty(value)
    except ValueError:
        raise InvalidDifficulty(
            f"Unknown difficulty {value!r}; expected one of easy, medium, hard"
        ) from None


__all__ = [
    "Difficulty",
    "EntityType",
    "InvalidDifficulty",
    "REVIEW_INTERVAL_DAYS",
    "parse_difficulty",
]
