"""Validation utilities for generated content prior to persistence."""
from __future__ import annotations

import re
from typing import Iterable

from .models import FlashcardInput, QuizQuestion


FORBIDDEN_PATTERNS = (
    re.compile(r"\bTODO\b", re.IGNORECASE),
    re.compile(r"\bTBD\b", re.IGNORECASE),
    re.compile(r"lorem ipsum", re.IGNORECASE),
    re.compile(r"\?{3,}"),
)
MIN_OPTIONS = 2


class ValidationError(ValueError):
    """Raised when generated artefacts fail validation."""


def _assert_not_blank(text: str, context: str) -> None:
    if not text.strip():
        raise ValidationError(f"{context} must be non-empty")


def _assert_forbidden_patterns(text: str, context: str) -> None:
    for pattern in FORBIDDEN_PATTERNS:
        if pattern.search(text):
            raise ValidationError(f"Forbidden pattern detected in {context}: '{pattern.pattern}'")


def _normalize_question(text: str) -> str:
    return " ".join(text.lower().split())


def validate_flashcards(
    cards: Iterable[FlashcardInput], existing_questions: Iterable[str] = ()
) -> None:
    """Validate flashcards before they are stored in a set.

    ``existing_questions`` are the questions already in the set; a card
    repeating one of them is a duplicate.
    """

    seen_questions = {_normalize_question(text) for text in existing_questions}
    for index, card in enumerate(cards, start=1):
        _assert_not_blank(card.question, f"Flashcard {index} question")
        _assert_not_blank(card.answer, f"Flashcard {index} answer")
        _assert_forbidden_patterns(card.question, f"flashcard {index} question")
        _assert_forbidden_patterns(card.answer, f"flashcard {index} answer")

        normalized = _normalize_question(card.question)
        if normalized in seen_questions:
            raise ValidationError(f"Duplicate flashcard question detected: {card.question!r}")
        seen_questions.add(normalized)


def validate_quiz_questions(questions: Iterable[QuizQuestion]) -> None:
    """Validate generated multiple-choice questions for structural quality."""

    count = 0
    for index, question in enumerate(questions, start=1):
        count += 1
        _assert_not_blank(question.question, f"Question {index}")
        _assert_forbidden_patterns(question.question, f"question {index}")

        if len(question.options) < MIN_OPTIONS:
            raise ValidationError(f"Question {index} requires at least {MIN_OPTIONS} options")
        for option in question.options:
            _assert_not_blank(option, f"Question {index} options")
            _assert_forbidden_patterns(option, f"question {index} option")
        if len(set(question.options)) != len(question.options):
            raise ValidationError(f"Question {index} has duplicate options")
        if not 0 <= question.correct_answer < len(question.options):
            raise ValidationError(
                f"Question {index} correct_answer {question.correct_answer} is out of range"
            )
    if not count:
        raise ValidationError("A quiz must contain at least one question")


__all__ = ["ValidationError", "validate_flashcards", "validate_quiz_questions"]
