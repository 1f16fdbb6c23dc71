"""Core services implementing the study and review workflows."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from .domain import Difficulty, EntityType, InvalidDifficulty, parse_difficulty
from .metrics import METRICS, MetricsRegistry
from .models import (
    ChatCreate,
    ChatMessage,
    Document,
    DocumentCreate,
    Flashcard,
    FlashcardInput,
    FlashcardSet,
    FlashcardSetCreate,
    FlashcardUpdate,
    Note,
    NoteCreate,
    NoteUpdate,
    Quiz,
    QuizAttempt,
    QuizAttemptCreate,
    QuizCreate,
)
from .repositories import EntityStore, utcnow
from .validators import validate_flashcards, validate_quiz_questions


logger = logging.getLogger(__name__)

DEFAULT_USER_ID = "demo-user"


def compute_review(card: Flashcard, difficulty: Difficulty, now: datetime) -> Dict[str, Any]:
    """Return the scheduling fields a review at ``now`` assigns to ``card``.

    The interval depends only on the rating; ``easiness_factor`` is not
    consulted.
    """

    return {
        "difficulty": difficulty,
        "last_reviewed": now,
        "next_review": now + difficulty.interval,
        "repetitions": card.repetitions + 1,
    }


def is_due(card: Flashcard, now: datetime) -> bool:
    return card.next_review is None or card.next_review <= now


class ReviewScheduler:
    """Applies difficulty ratings to flashcards."""

    def __init__(
        self,
        store: EntityStore,
        clock: Callable[[], datetime] = utcnow,
        metrics: Optional[MetricsRegistry] = None,
    ) -> None:
        self._store = store
        self._clock = clock
        self._metrics = metrics or METRICS

    def review_card(self, card_id: str, difficulty: object) -> Optional[Flashcard]:
        """Record a review and return the rescheduled card.

        Returns ``None`` when the card does not exist; raises
        :class:`InvalidDifficulty` for ratings other than easy, medium or hard.
        """

        try:
            rating = parse_difficulty(difficulty)
        except InvalidDifficulty:
            self._metrics.record_invalid_rating()
            logger.warning("Rejected rating %r for card %s", difficulty, card_id)
            raise

        now = self._clock()
        updated = self._store.update_with(
            EntityType.FLASHCARD, card_id, lambda card: compute_review(card, rating, now)
        )
        if updated is None:
            self._metrics.record_review_not_found()
            logger.warning("Review requested for unknown card %s", card_id)
            return None

        self._metrics.record_review(rating.value, rating.interval.total_seconds() / 3600)
        logger.debug(
            "Card %s rated %s, next review %s", card_id, rating.value, updated.next_review
        )
        return updated

    def due_cards(self, set_id: str, now: Optional[datetime] = None) -> List[Flashcard]:
        """Cards of a set that were never reviewed or whose review date has passed."""

        now = now or self._clock()
        cards = self._store.list_by(EntityType.FLASHCARD, "set_id", set_id)
        due = [card for card in cards if is_due(card, now)]
        return sorted(due, key=lambda card: (card.next_review is not None, card.next_review or now))


class StudyService:
    """Write paths behind the study API: documents, notes, cards, quizzes and chat."""

    def __init__(
        self,
        store: EntityStore,
        default_user_id: str = DEFAULT_USER_ID,
        metrics: Optional[MetricsRegistry] = None,
    ) -> None:
        self._store = store
        self._default_user_id = default_user_id
        self._metrics = metrics or METRICS

    def _user(self, user_id: Optional[str]) -> str:
        return user_id or self._default_user_id

    def _create(self, entity_type: EntityType, fields: Dict[str, Any]):
        record = self._store.create(entity_type, fields)
        self._metrics.record_creation(entity_type.value)
        return record

    # region Documents
    def create_document(self, payload: DocumentCreate) -> Document:
        fields = payload.model_dump()
        fields["user_id"] = self._user(payload.user_id)
        document = self._create(EntityType.DOCUMENT, fields)
        logger.info("Stored %s document %s for %s", document.type, document.id, document.user_id)
        return document

    def delete_document(self, document_id: str) -> bool:
        removed = self._store.delete(EntityType.DOCUMENT, document_id)
        if removed:
            self._metrics.record_deletion(EntityType.DOCUMENT.value)
        return removed

    # endregion

    # region Notes
    def create_note(self, payload: NoteCreate) -> Note:
        fields = payload.model_dump()
        fields["user_id"] = self._user(payload.user_id)
        if payload.word_count is None:
            fields["word_count"] = len(payload.content.split())
        return self._create(EntityType.NOTE, fields)

    def update_note(self, note_id: str, patch: NoteUpdate) -> Optional[Note]:
        changes = patch.model_dump(exclude_unset=True)
        if changes.get("content") is not None and "word_count" not in changes:
            changes["word_count"] = len(changes["content"].split())
        return self._store.update(EntityType.NOTE, note_id, changes)

    def delete_note(self, note_id: str) -> bool:
        removed = self._store.delete(EntityType.NOTE, note_id)
        if removed:
            self._metrics.record_deletion(EntityType.NOTE.value)
        return removed

    # endregion

    # region Flashcards
    def create_flashcard_set(self, payload: FlashcardSetCreate) -> FlashcardSet:
        """Create a set and its cards; ``card_count`` matches the cards stored."""

        validate_flashcards(payload.cards)
        flashcard_set = self._create(
            EntityType.FLASHCARD_SET,
            {
                "user_id": self._user(payload.user_id),
                "document_id": payload.document_id,
                "title": payload.title,
                "description": payload.description,
                "card_count": len(payload.cards),
            },
        )
        for card in payload.cards:
            self._store.create(EntityType.FLASHCARD, self._card_fields(flashcard_set.id, card))
        self._metrics.record_creation(EntityType.FLASHCARD.value, len(payload.cards))
        logger.info("Created flashcard set %s with %d cards", flashcard_set.id, len(payload.cards))
        return flashcard_set

    @staticmethod
    def _card_fields(set_id: str, card: FlashcardInput) -> Dict[str, Any]:
        return {
            "set_id": set_id,
            "question": card.question,
            "answer": card.answer,
            "difficulty": card.difficulty,
        }

    def add_flashcard(self, set_id: str, card: FlashcardInput) -> Optional[Flashcard]:
        if self._store.get(EntityType.FLASHCARD_SET, set_id) is None:
            return None
        validate_flashcards([card], self._set_questions(set_id))
        flashcard = self._create(EntityType.FLASHCARD, self._card_fields(set_id, card))
        self._store.update_with(
            EntityType.FLASHCARD_SET,
            set_id,
            lambda current: {"card_count": current.card_count + 1},
        )
        return flashcard

    def update_flashcard(self, card_id: str, patch: FlashcardUpdate) -> Optional[Flashcard]:
        """Edit a card's text, applying the checks used when cards are added."""

        current = self._store.get(EntityType.FLASHCARD, card_id)
        if current is None:
            return None
        changes = patch.model_dump(exclude_unset=True)
        edited = FlashcardInput(
            question=changes.get("question", current.question),
            answer=changes.get("answer", current.answer),
            difficulty=current.difficulty,
        )
        validate_flashcards([edited], self._set_questions(current.set_id, exclude=card_id))
        return self._store.update(EntityType.FLASHCARD, card_id, changes)

    def _set_questions(self, set_id: str, exclude: Optional[str] = None) -> List[str]:
        return [
            card.question
            for card in self._store.list_by(EntityType.FLASHCARD, "set_id", set_id)
            if card.id != exclude
        ]

    # endregion

    # region Quizzes
    def create_quiz(self, payload: QuizCreate) -> Quiz:
        validate_quiz_questions(payload.questions)
        fields = payload.model_dump()
        fields["user_id"] = self._user(payload.user_id)
        return self._create(EntityType.QUIZ, fields)

    def record_quiz_attempt(self, payload: QuizAttemptCreate) -> Optional[QuizAttempt]:
        """Store an attempt, scoring it against the quiz when no score is given."""

        quiz = self._store.get(EntityType.QUIZ, payload.quiz_id)
        if quiz is None:
            return None
        score = payload.score
        if score is None:
            score = sum(
                1
                for question, answer in zip(quiz.questions, payload.answers)
                if answer == question.correct_answer
            )
        total = payload.total_questions
        if total is None:
            total = len(quiz.questions)
        if score > total:
            raise ValueError(f"Score {score} exceeds the {total} questions of quiz {quiz.id}")
        return self._create(
            EntityType.QUIZ_ATTEMPT,
            {
                "user_id": self._user(payload.user_id),
                "quiz_id": quiz.id,
                "answers": payload.answers,
                "score": score,
                "total_questions": total,
                "time_spent": payload.time_spent,
            },
        )

    # endregion

    # region Chat
    def record_chat(self, payload: ChatCreate) -> ChatMessage:
        fields = payload.model_dump()
        fields["user_id"] = self._user(payload.user_id)
        return self._create(EntityType.CHAT_MESSAGE, fields)

    def chat_history(self, document_id: str) -> List[ChatMessage]:
        messages = self._store.list_by(EntityType.CHAT_MESSAGE, "document_id", document_id)
        return sorted(messages, key=lambda message: message.created_at)

    # endregion


__all__ = [
    "DEFAULT_USER_ID",
    "ReviewScheduler",
    "StudyService",
    "compute_review",
    "is_due",
]
