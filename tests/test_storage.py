"""Tests for the entity stores (in-memory and SQLite share one contract)."""

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta

import pytest

from studyhub.domain import Difficulty, EntityType
from studyhub.models import Flashcard, NoteUpdate
from studyhub.storage import SqliteEntityStore

from conftest import NOW


PAYLOADS = {
    EntityType.USER: {"username": "ada", "email": "ada@example.com", "password": "secret"},
    EntityType.DOCUMENT: {
        "user_id": "u1",
        "title": "Cell biology",
        "type": "txt",
        "content": "Cells divide by mitosis.",
    },
    EntityType.NOTE: {"user_id": "u1", "title": "Mitosis", "content": "Four phases"},
    EntityType.FLASHCARD_SET: {"user_id": "u1", "title": "Biology"},
    EntityType.FLASHCARD: {"set_id": "s1", "question": "What is ATP?", "answer": "Energy currency"},
    EntityType.QUIZ: {
        "user_id": "u1",
        "title": "Arithmetic",
        "questions": [
            {"question": "2 + 2?", "options": ["3", "4"], "correct_answer": 1, "explanation": "Sum"}
        ],
    },
    EntityType.QUIZ_ATTEMPT: {
        "user_id": "u1",
        "quiz_id": "q1",
        "answers": [1],
        "score": 1,
        "total_questions": 1,
    },
    EntityType.CHAT_MESSAGE: {
        "user_id": "u1",
        "document_id": "d1",
        "message": "What is mitosis?",
        "response": "Cell division.",
    },
}


def _card(store, set_id="set-1", **fields):
    payload = {"set_id": set_id, "question": "Q?", "answer": "A", **fields}
    return store.create(EntityType.FLASHCARD, payload)


@pytest.mark.parametrize("entity_type", list(EntityType))
def test_create_then_get_returns_same_record(store, entity_type):
    created = store.create(entity_type, PAYLOADS[entity_type])

    assert created.id
    assert store.get(entity_type, created.id) == created


def test_create_assigns_unique_ids(store):
    ids = {store.create(EntityType.NOTE, PAYLOADS[EntityType.NOTE]).id for _ in range(25)}

    assert len(ids) == 25
    assert store.count(EntityType.NOTE) == 25


def test_create_ignores_caller_supplied_id_and_timestamps(store):
    stale = NOW - timedelta(days=30)
    note = store.create(
        EntityType.NOTE,
        {**PAYLOADS[EntityType.NOTE], "id": "chosen", "created_at": stale, "updated_at": stale},
    )

    assert note.id != "chosen"
    assert note.created_at == NOW
    assert note.updated_at == NOW


def test_create_fills_flashcard_defaults(store):
    card = _card(store)

    assert card.difficulty == Difficulty.MEDIUM
    assert card.repetitions == 0
    assert card.easiness_factor == 250
    assert card.last_reviewed is None
    assert card.next_review is None


def test_create_fills_optional_defaults(store):
    flashcard_set = store.create(EntityType.FLASHCARD_SET, PAYLOADS[EntityType.FLASHCARD_SET])
    note = store.create(EntityType.NOTE, PAYLOADS[EntityType.NOTE])
    user = store.create(EntityType.USER, PAYLOADS[EntityType.USER])

    assert flashcard_set.card_count == 0
    assert flashcard_set.document_id is None
    assert note.word_count == 0
    assert note.tags is None
    assert user.spotify_access_token is None
    assert user.created_at == NOW


def test_create_rejects_malformed_payload(store):
    with pytest.raises(ValueError):
        store.create(EntityType.FLASHCARD, {"question": "Q?", "answer": "A"})
    assert store.count(EntityType.FLASHCARD) == 0


def test_missing_ids_report_not_found_without_mutation(store):
    _card(store)

    assert store.get(EntityType.FLASHCARD, "missing") is None
    assert store.update(EntityType.FLASHCARD, "missing", {"question": "New?"}) is None
    assert store.delete(EntityType.FLASHCARD, "missing") is False
    assert store.count(EntityType.FLASHCARD) == 1


def test_update_with_skips_builder_for_missing_id(store):
    calls = []

    result = store.update_with(EntityType.NOTE, "missing", lambda note: calls.append(note) or {})

    assert result is None
    assert calls == []


def test_delete_twice_reports_false_the_second_time(store):
    document = store.create(EntityType.DOCUMENT, PAYLOADS[EntityType.DOCUMENT])

    assert store.delete(EntityType.DOCUMENT, document.id) is True
    assert store.delete(EntityType.DOCUMENT, document.id) is False
    assert store.get(EntityType.DOCUMENT, document.id) is None


def test_partial_update_changes_only_given_field(store, clock):
    card = _card(store, question="Old?", answer="Kept")

    updated = store.update(EntityType.FLASHCARD, card.id, {"question": "New?"})

    assert updated.question == "New?"
    assert updated.model_dump(exclude={"question"}) == card.model_dump(exclude={"question"})
    assert store.get(EntityType.FLASHCARD, card.id) == updated


def test_update_refreshes_updated_at_only(store, clock):
    note = store.create(EntityType.NOTE, PAYLOADS[EntityType.NOTE])
    clock.now = NOW + timedelta(hours=2)

    updated = store.update(EntityType.NOTE, note.id, NoteUpdate(title="Meiosis"))

    assert updated.title == "Meiosis"
    assert updated.content == note.content
    assert updated.created_at == NOW
    assert updated.updated_at == NOW + timedelta(hours=2)


def test_update_replaces_nested_values_wholesale(store):
    document = store.create(
        EntityType.DOCUMENT,
        {**PAYLOADS[EntityType.DOCUMENT], "metadata": {"pages": 3, "author": "Ada"}},
    )

    updated = store.update(EntityType.DOCUMENT, document.id, {"metadata": {"language": "en"}})

    assert updated.metadata == {"language": "en"}


def test_update_rejects_changing_immutable_fields(store):
    card = _card(store, set_id="set-1")

    with pytest.raises(ValueError):
        store.update(EntityType.FLASHCARD, card.id, {"set_id": "set-2"})
    with pytest.raises(ValueError):
        store.update(EntityType.FLASHCARD, card.id, {"id": "other"})

    assert store.get(EntityType.FLASHCARD, card.id) == card


def test_update_cannot_lower_repetitions(store):
    card = _card(store, repetitions=2)

    with pytest.raises(ValueError):
        store.update(EntityType.FLASHCARD, card.id, {"repetitions": 0})

    assert store.get(EntityType.FLASHCARD, card.id) == card
    assert store.update(EntityType.FLASHCARD, card.id, {"repetitions": 3}).repetitions == 3


def test_naive_review_timestamps_are_rejected(store):
    card = _card(store, last_reviewed=NOW, next_review=NOW + timedelta(days=1), repetitions=1)

    with pytest.raises(ValueError):
        store.update(EntityType.FLASHCARD, card.id, {"last_reviewed": datetime(2024, 1, 1)})
    with pytest.raises(ValueError):
        _card(store, next_review=datetime(2024, 1, 5))

    assert store.get(EntityType.FLASHCARD, card.id) == card
    assert store.count(EntityType.FLASHCARD) == 1


def test_unknown_fields_are_rejected(store):
    card = _card(store)

    with pytest.raises(ValueError):
        store.update(EntityType.FLASHCARD, card.id, {"qestion": "Typo?"})
    with pytest.raises(ValueError):
        store.create(EntityType.NOTE, {**PAYLOADS[EntityType.NOTE], "colour": "red"})

    assert store.get(EntityType.FLASHCARD, card.id) == card
    assert store.count(EntityType.NOTE) == 0


def test_returned_records_are_detached_from_storage(store):
    document = store.create(
        EntityType.DOCUMENT, {**PAYLOADS[EntityType.DOCUMENT], "metadata": {"pages": 3}}
    )

    document.metadata["pages"] = 99

    assert store.get(EntityType.DOCUMENT, document.id).metadata == {"pages": 3}


def test_list_by_returns_exactly_matching_records(store):
    matching = {_card(store, set_id="S").id for _ in range(3)}
    _card(store, set_id="other")

    cards = store.list_by(EntityType.FLASHCARD, "set_id", "S")

    assert {card.id for card in cards} == matching
    assert all(isinstance(card, Flashcard) for card in cards)


def test_list_by_matches_null_foreign_keys(store):
    standalone = store.create(EntityType.NOTE, PAYLOADS[EntityType.NOTE])
    store.create(EntityType.NOTE, {**PAYLOADS[EntityType.NOTE], "document_id": "d1"})

    notes = store.list_by(EntityType.NOTE, "document_id", None)

    assert [note.id for note in notes] == [standalone.id]


def test_list_by_finds_user_by_email(store):
    user = store.create(EntityType.USER, PAYLOADS[EntityType.USER])

    assert store.list_by(EntityType.USER, "email", "ada@example.com") == [user]
    assert store.list_by(EntityType.USER, "email", "bob@example.com") == []


def test_list_by_rejects_unknown_field(store):
    with pytest.raises(ValueError):
        store.list_by(EntityType.FLASHCARD, "question", "Q?")


def test_concurrent_update_with_loses_no_increment(store):
    flashcard_set = store.create(EntityType.FLASHCARD_SET, PAYLOADS[EntityType.FLASHCARD_SET])

    def increment(_):
        store.update_with(
            EntityType.FLASHCARD_SET,
            flashcard_set.id,
            lambda current: {"card_count": current.card_count + 1},
        )

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(increment, range(40)))

    assert store.get(EntityType.FLASHCARD_SET, flashcard_set.id).card_count == 40


def test_sqlite_store_survives_reopen(tmp_path, clock):
    path = tmp_path / "durable.db"
    first = SqliteEntityStore(path, clock=clock)
    card = _card(first, set_id="S")
    first.update(EntityType.FLASHCARD, card.id, {"answer": "Updated"})
    first.close()

    reopened = SqliteEntityStore(path, clock=clock)
    try:
        restored = reopened.get(EntityType.FLASHCARD, card.id)
        assert restored.answer == "Updated"
        assert [c.id for c in reopened.list_by(EntityType.FLASHCARD, "set_id", "S")] == [card.id]
    finally:
        reopened.close()
