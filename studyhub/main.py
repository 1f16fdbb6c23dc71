"""FastAPI application wiring for the studyhub backend."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Callable, List, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request

from .config import AppConfig, configure_logging
from .domain import EntityType
from .metrics import METRICS, MetricsRegistry
from .models import (
    ChatCreate,
    ChatMessage,
    DeleteResponse,
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
    ReviewRequest,
)
from .repositories import EntityStore, utcnow
from .services import ReviewScheduler, StudyService


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1")


def get_store(request: Request) -> EntityStore:
    return request.app.state.store


def get_study_service(request: Request) -> StudyService:
    return request.app.state.study_service


def get_review_scheduler(request: Request) -> ReviewScheduler:
    return request.app.state.review_scheduler


def get_user_id(request: Request, user_id: Optional[str] = None) -> str:
    return user_id or request.app.state.config.default_user_id


def _not_found(kind: str, entity_id: str) -> HTTPException:
    return HTTPException(status_code=404, detail=f"{kind} {entity_id} not found")


# Documents --------------------------------------------------------------


@router.get("/documents", response_model=List[Document])
def list_documents(
    user_id: str = Depends(get_user_id), store: EntityStore = Depends(get_store)
) -> List[Document]:
    return store.list_by(EntityType.DOCUMENT, "user_id", user_id)


@router.post("/documents", response_model=Document)
def create_document(
    request: DocumentCreate, service: StudyService = Depends(get_study_service)
) -> Document:
    return service.create_document(request)


@router.get("/documents/{document_id}", response_model=Document)
def get_document(document_id: str, store: EntityStore = Depends(get_store)) -> Document:
    document = store.get(EntityType.DOCUMENT, document_id)
    if document is None:
        raise _not_found("Document", document_id)
    return document


@router.delete("/documents/{document_id}", response_model=DeleteResponse)
def delete_document(
    document_id: str, service: StudyService = Depends(get_study_service)
) -> DeleteResponse:
    if not service.delete_document(document_id):
        raise _not_found("Document", document_id)
    return DeleteResponse(deleted=True)


# Notes ------------------------------------------------------------------


@router.get("/notes", response_model=List[Note])
def list_notes(
    document_id: Optional[str] = None,
    user_id: str = Depends(get_user_id),
    store: EntityStore = Depends(get_store),
) -> List[Note]:
    if document_id:
        return store.list_by(EntityType.NOTE, "document_id", document_id)
    return store.list_by(EntityType.NOTE, "user_id", user_id)


@router.post("/notes", response_model=Note)
def create_note(request: NoteCreate, service: StudyService = Depends(get_study_service)) -> Note:
    return service.create_note(request)


@router.put("/notes/{note_id}", response_model=Note)
def update_note(
    note_id: str, request: NoteUpdate, service: StudyService = Depends(get_study_service)
) -> Note:
    try:
        note = service.update_note(note_id, request)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if note is None:
        raise _not_found("Note", note_id)
    return note


@router.delete("/notes/{note_id}", response_model=DeleteResponse)
def delete_note(note_id: str, service: StudyService = Depends(get_study_service)) -> DeleteResponse:
    if not service.delete_note(note_id):
        raise _not_found("Note", note_id)
    return DeleteResponse(deleted=True)


# Flashcards -------------------------------------------------------------


@router.get("/flashcard-sets", response_model=List[FlashcardSet])
def list_flashcard_sets(
    user_id: str = Depends(get_user_id), store: EntityStore = Depends(get_store)
) -> List[FlashcardSet]:
    return store.list_by(EntityType.FLASHCARD_SET, "user_id", user_id)


@router.post("/flashcard-sets", response_model=FlashcardSet)
def create_flashcard_set(
    request: FlashcardSetCreate, service: StudyService = Depends(get_study_service)
) -> FlashcardSet:
    try:
        return service.create_flashcard_set(request)
    except ValueError as exc:  # validation from service level
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.get("/flashcard-sets/{set_id}/cards", response_model=List[Flashcard])
def list_flashcards(set_id: str, store: EntityStore = Depends(get_store)) -> List[Flashcard]:
    return store.list_by(EntityType.FLASHCARD, "set_id", set_id)


@router.post("/flashcard-sets/{set_id}/cards", response_model=Flashcard)
def add_flashcard(
    set_id: str, request: FlashcardInput, service: StudyService = Depends(get_study_service)
) -> Flashcard:
    try:
        card = service.add_flashcard(set_id, request)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if card is None:
        raise _not_found("Flashcard set", set_id)
    return card


@router.get("/flashcard-sets/{set_id}/due", response_model=List[Flashcard])
def due_flashcards(
    set_id: str, scheduler: ReviewScheduler = Depends(get_review_scheduler)
) -> List[Flashcard]:
    return scheduler.due_cards(set_id)


@router.put("/flashcards/{card_id}", response_model=Flashcard)
def update_flashcard(
    card_id: str, request: FlashcardUpdate, service: StudyService = Depends(get_study_service)
) -> Flashcard:
    try:
        card = service.update_flashcard(card_id, request)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if card is None:
        raise _not_found("Flashcard", card_id)
    return card


@router.post("/flashcards/{card_id}/review", response_model=Flashcard)
def review_flashcard(
    card_id: str, request: ReviewRequest, scheduler: ReviewScheduler = Depends(get_review_scheduler)
) -> Flashcard:
    try:
        card = scheduler.review_card(card_id, request.difficulty)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    if card is None:
        raise _not_found("Flashcard", card_id)
    return card


# Quizzes ----------------------------------------------------------------


@router.get("/quizzes", response_model=List[Quiz])
def list_quizzes(
    user_id: str = Depends(get_user_id), store: EntityStore = Depends(get_store)
) -> List[Quiz]:
    return store.list_by(EntityType.QUIZ, "user_id", user_id)


@router.post("/quizzes", response_model=Quiz)
def create_quiz(request: QuizCreate, service: StudyService = Depends(get_study_service)) -> Quiz:
    try:
        return service.create_quiz(request)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.get("/quizzes/{quiz_id}", response_model=Quiz)
def get_quiz(quiz_id: str, store: EntityStore = Depends(get_store)) -> Quiz:
    quiz = store.get(EntityType.QUIZ, quiz_id)
    if quiz is None:
        raise _not_found("Quiz", quiz_id)
    return quiz


@router.get("/quiz-attempts", response_model=List[QuizAttempt])
def list_quiz_attempts(
    user_id: str = Depends(get_user_id), store: EntityStore = Depends(get_store)
) -> List[QuizAttempt]:
    return store.list_by(EntityType.QUIZ_ATTEMPT, "user_id", user_id)


@router.post("/quiz-attempts", response_model=QuizAttempt)
def create_quiz_attempt(
    request: QuizAttemptCreate, service: StudyService = Depends(get_study_service)
) -> QuizAttempt:
    try:
        attempt = service.record_quiz_attempt(request)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if attempt is None:
        raise _not_found("Quiz", request.quiz_id)
    return attempt


# Chat -------------------------------------------------------------------


@router.post("/chat", response_model=ChatMessage)
def create_chat_message(
    request: ChatCreate, service: StudyService = Depends(get_study_service)
) -> ChatMessage:
    return service.record_chat(request)


@router.get("/chat/{document_id}", response_model=List[ChatMessage])
def chat_history(
    document_id: str, service: StudyService = Depends(get_study_service)
) -> List[ChatMessage]:
    return service.chat_history(document_id)


@router.get("/metrics")
def metrics_snapshot(request: Request) -> dict:
    return request.app.state.metrics.snapshot()


def create_app(
    config: Optional[AppConfig] = None,
    store: Optional[EntityStore] = None,
    clock: Callable[[], datetime] = utcnow,
    metrics: Optional[MetricsRegistry] = None,
) -> FastAPI:
    """Build the application; the store is created at startup unless injected."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        settings = config or AppConfig.from_env()
        configure_logging(settings.log_level)
        repository = store or settings.build_store()
        registry = metrics or METRICS

        app.state.config = settings
        app.state.store = repository
        app.state.metrics = registry
        app.state.study_service = StudyService(
            repository, default_user_id=settings.default_user_id, metrics=registry
        )
        app.state.review_scheduler = ReviewScheduler(repository, clock=clock, metrics=registry)
        logger.info(
            "studyhub started with %s store (%s)", settings.storage, type(repository).__name__
        )
        yield
        close = getattr(repository, "close", None)
        if store is None and close is not None:
            close()

    app = FastAPI(title="studyhub", version="0.1.0", lifespan=lifespan)
    app.include_router(router)

    return app


app = create_app()


__all__ = ["app", "create_app"]
