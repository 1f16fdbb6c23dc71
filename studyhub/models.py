"""Pydantic models for the studyhub backend."""
from __future__ import annotations

from datetime import datetime
from typing import Any, ClassVar, Dict, List, Literal, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .domain import Difficulty, EntityType


DocumentType = Literal["pdf", "docx", "txt", "audio", "youtube"]


class Entity(BaseModel):
    """Base record held by an entity store.

    Subclasses declare which timestamps the store stamps and which fields
    ``list_by`` may filter on.
    """

    model_config = ConfigDict(extra="forbid")

    created_field: ClassVar[Optional[str]] = "created_at"
    updated_field: ClassVar[Optional[str]] = None
    immutable_fields: ClassVar[Tuple[str, ...]] = ("id",)
    index_fields: ClassVar[Tuple[str, ...]] = ()

    id: str

    @classmethod
    def server_fields(cls) -> Tuple[str, ...]:
        stamped = tuple(name for name in (cls.created_field, cls.updated_field) if name)
        return ("id",) + stamped

    def check_patch(self, changes: Dict[str, Any]) -> None:
        """Reject patches that would break a per-type invariant."""


class User(Entity):
    index_fields: ClassVar[Tuple[str, ...]] = ("email",)

    username: str
    email: str
    password: str
    spotify_access_token: Optional[str] = None
    spotify_refresh_token: Optional[str] = None
    created_at: Optional[datetime] = None


class Document(Entity):
    index_fields: ClassVar[Tuple[str, ...]] = ("user_id",)

    user_id: str
    title: str
    type: DocumentType
    original_url: Optional[str] = None
    content: str
    metadata: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None


class Note(Entity):
    updated_field: ClassVar[Optional[str]] = "updated_at"
    index_fields: ClassVar[Tuple[str, ...]] = ("user_id", "document_id")

    user_id: str
    document_id: Optional[str] = None
    title: str
    content: str
    subject: Optional[str] = None
    tags: Optional[List[str]] = None
    word_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class FlashcardSet(Entity):
    index_fields: ClassVar[Tuple[str, ...]] = ("user_id", "document_id")

    user_id: str
    document_id: Optional[str] = None
    title: str
    description: Optional[str] = None
    card_count: int = Field(default=0, ge=0)
    created_at: Optional[datetime] = None


class Flashcard(Entity):
    """A question/answer card owned by exactly one flashcard set.

    ``easiness_factor`` is stored for a future SM-2 style weighting; the
    review scheduler does not read it.
    """

    created_field: ClassVar[Optional[str]] = None
    immutable_fields: ClassVar[Tuple[str, ...]] = ("id", "set_id")
    index_fields: ClassVar[Tuple[str, ...]] = ("set_id",)

    set_id: str
    question: str
    answer: str
    difficulty: Difficulty = Difficulty.MEDIUM
    last_reviewed: Optional[datetime] = None
    next_review: Optional[datetime] = None
    repetitions: int = Field(default=0, ge=0)
    easiness_factor: int = 250

    @field_validator("last_reviewed", "next_review")
    @classmethod
    def require_timezone(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.utcoffset() is None:
            raise ValueError("Review timestamps must be timezone-aware")
        return value

    @model_validator(mode="after")
    def check_schedule(self) -> "Flashcard":
        if self.last_reviewed and self.next_review and self.next_review <= self.last_reviewed:
            raise ValueError("next_review must be after last_reviewed")
        return self

    def check_patch(self, changes: Dict[str, Any]) -> None:
        repetitions = changes.get("repetitions")
        if repetitions is not None and repetitions < self.repetitions:
            raise ValueError(
                f"repetitions cannot decrease (from {self.repetitions} to {repetitions})"
            )


class QuizQuestion(BaseModel):
    """Multiple-choice question stored inside a quiz."""

    question: str
    options: List[str]
    correct_answer: int
    explanation: str = ""


class Quiz(Entity):
    index_fields: ClassVar[Tuple[str, ...]] = ("user_id", "document_id")

    user_id: str
    document_id: Optional[str] = None
    title: str
    description: Optional[str] = None
    questions: List[QuizQuestion]
    time_limit: Optional[int] = None
    created_at: Optional[datetime] = None


class QuizAttempt(Entity):
    created_field: ClassVar[Optional[str]] = "completed_at"
    index_fields: ClassVar[Tuple[str, ...]] = ("user_id", "quiz_id")

    user_id: str
    quiz_id: str
    answers: List[Any]
    score: int = Field(ge=0)
    total_questions: int = Field(ge=0)
    time_spent: Optional[int] = None
    completed_at: Optional[datetime] = None


class ChatMessage(Entity):
    index_fields: ClassVar[Tuple[str, ...]] = ("user_id", "document_id")

    user_id: str
    document_id: Optional[str] = None
    message: str
    response: str
    created_at: Optional[datetime] = None


ENTITY_MODELS: Dict[EntityType, Type[Entity]] = {
    EntityType.USER: User,
    EntityType.DOCUMENT: Document,
    EntityType.NOTE: Note,
    EntityType.FLASHCARD_SET: FlashcardSet,
    EntityType.FLASHCARD: Flashcard,
    EntityType.QUIZ: Quiz,
    EntityType.QUIZ_ATTEMPT: QuizAttempt,
    EntityType.CHAT_MESSAGE: ChatMessage,
}


def model_for(entity_type: EntityType) -> Type[Entity]:
    return ENTITY_MODELS[EntityType(entity_type)]


# Request bodies --------------------------------------------------------


class DocumentCreate(BaseModel):
    """Input body for POST /v1/documents (content already extracted)."""

    user_id: Optional[str] = None
    title: str
    type: DocumentType = "txt"
    original_url: Optional[str] = None
    content: str
    metadata: Optional[Dict[str, Any]] = None

    @field_validator("content")
    @classmethod
    def content_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Document content must not be empty")
        return value


class NoteCreate(BaseModel):
    user_id: Optional[str] = None
    document_id: Optional[str] = None
    title: str
    content: str
    subject: Optional[str] = None
    tags: Optional[List[str]] = None
    word_count: Optional[int] = None


class NoteUpdate(BaseModel):
    """Patch body for PUT /v1/notes/{id}; only the fields sent are changed."""

    title: Optional[str] = None
    content: Optional[str] = None
    subject: Optional[str] = None
    tags: Optional[List[str]] = None
    word_count: Optional[int] = None


class FlashcardInput(BaseModel):
    question: str
    answer: str
    difficulty: Difficulty = Difficulty.MEDIUM


class FlashcardUpdate(BaseModel):
    question: Optional[str] = None
    answer: Optional[str] = None


class FlashcardSetCreate(BaseModel):
    user_id: Optional[str] = None
    document_id: Optional[str] = None
    title: str
    description: Optional[str] = None
    cards: List[FlashcardInput] = Field(default_factory=list)


class ReviewRequest(BaseModel):
    difficulty: Difficulty


class QuizCreate(BaseModel):
    user_id: Optional[str] = None
    document_id: Optional[str] = None
    title: str
    description: Optional[str] = None
    questions: List[QuizQuestion]
    time_limit: Optional[int] = 30


class QuizAttemptCreate(BaseModel):
    user_id: Optional[str] = None
    quiz_id: str
    answers: List[Optional[int]]
    score: Optional[int] = None
    total_questions: Optional[int] = None
    time_spent: Optional[int] = None


class ChatCreate(BaseModel):
    user_id: Optional[str] = None
    document_id: Optional[str] = None
    message: str
    response: str


class DeleteResponse(BaseModel):
    deleted: bool


__all__ = [
    "ChatCreate",
    "ChatMessage",
    "DeleteResponse",
    "Document",
    "DocumentCreate",
    "ENTITY_MODELS",
    "Entity",
    "Flashcard",
    "FlashcardInput",
    "FlashcardSet",
    "FlashcardSetCreate",
    "FlashcardUpdate",
    "Note",
    "NoteCreate",
    "NoteUpdate",
    "Quiz",
    "QuizAttempt",
    "QuizAttemptCreate",
    "QuizCreate",
    "QuizQuestion",
    "ReviewRequest",
    "User",
    "model_for",
]
