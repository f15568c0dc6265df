from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import inspect

from catalogsync.adapters.sqlalchemy import create_all_tables, start_mappers
from catalogsync.adapters.sqlalchemy.repositories import (
    SqlAlchemyCanonicalEntityRepository,
    SqlAlchemyNotificationLogRepository,
    SqlAlchemyProcessedEventRepository,
    SqlAlchemyRelationRepository,
    SqlAlchemySyncAttemptRepository,
    SqlAlchemyTombstoneRepository,
)
from catalogsync.domain.model import (
    CanonicalEntity,
    ChangeType,
    CouponDetails,
    DedupKey,
    EntityKind,
    NotificationLog,
    OrderDetails,
    OrderLine,
    SyncAttempt,
    SyncOutcome,
    TermDetails,
    TermKind,
    Tombstone,
)
from tests.support.catalog import make_product, make_term

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine
    from sqlalchemy.orm import Session


def test_start_mappers_is_idempotent() -> None:
    # the sqlite_engine fixture already mapped everything once
    start_mappers()
    start_mappers()


def test_create_all_tables_registers_catalog_tables(sqlite_engine: Engine) -> None:
    create_all_tables(sqlite_engine)
    table_names = set(inspect(sqlite_engine).get_table_names())
    for required in (
        "canonical_entity",
        "relation_edge",
        "tombstone",
        "processed_event",
        "sync_attempt",
        "notification_log",
    ):
        assert required in table_names


def test_details_survive_a_round_trip(sqlite_session: Session) -> None:
    repository = SqlAlchemyCanonicalEntityRepository(sqlite_session)
    expires = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
    coupon = CanonicalEntity(
        kind=EntityKind.COUPON,
        natural_key="VERANO10",
        name="VERANO10",
        details=CouponDetails(
            discount_type="percent", amount="10", expires_at=expires, product_ids=(55, 56)
        ),
        channels=frozenset({"woo_moraleja"}),
    )
    order = CanonicalEntity(
        kind=EntityKind.ORDER,
        natural_key="1042",
        name="Order 1042",
        details=OrderDetails(status="processing", lines=(OrderLine(sku="978", quantity=2),)),
    )
    term = make_term("Editorial Sudamericana", term_kind=TermKind.PUBLISHER)
    repository.add(coupon)
    repository.add(order)
    repository.add(term)
    sqlite_session.commit()
    sqlite_session.expunge_all()

    loaded_coupon = repository.get_by_natural_key(EntityKind.COUPON, "VERANO10")
    loaded_order = repository.get_by_natural_key(EntityKind.ORDER, "1042")
    loaded_term = repository.get_by_document_id(term.document_id)

    assert loaded_coupon is not None
    assert loaded_coupon.details == CouponDetails(
        discount_type="percent", amount="10", expires_at=expires, product_ids=(55, 56)
    )
    assert loaded_coupon.channels == frozenset({"woo_moraleja"})
    assert loaded_order is not None
    assert loaded_order.details == OrderDetails(
        status="processing", lines=(OrderLine(sku="978", quantity=2),)
    )
    assert loaded_term is not None
    assert loaded_term.details == TermDetails(term_kind=TermKind.PUBLISHER)
    assert loaded_term.created_at.tzinfo is not None


def test_external_id_lookups_compare_as_strings(sqlite_session: Session) -> None:
    repository = SqlAlchemyCanonicalEntityRepository(sqlite_session)
    first = make_product("9789560001", external_ids={"woo_moraleja": 55})
    second = make_product("9789560002", external_ids={"woo_moraleja": "55"})
    third = make_product("9789560003", external_ids={"woo_moraleja": 56})
    for entity in (first, second, third):
        repository.add(entity)
    sqlite_session.flush()

    found = repository.get_by_external_id(EntityKind.PRODUCT, "woo_moraleja", "55")
    sharing = repository.sharing_external_id(
        EntityKind.PRODUCT, "woo_moraleja", 55, exclude_document_id=first.document_id
    )

    assert found is first
    assert sharing == [second]
    assert repository.get_by_external_id(EntityKind.TERM, "woo_moraleja", 55) is None


def test_relations_resolve_both_directions(sqlite_session: Session) -> None:
    entities = SqlAlchemyCanonicalEntityRepository(sqlite_session)
    relations = SqlAlchemyRelationRepository(sqlite_session)
    author = make_term("Isabel Allende")
    book_a = make_product("9789560001")
    book_b = make_product("9789560002")
    for entity in (author, book_a, book_b):
        entities.add(entity)

    relations.link(book_a, author)
    relations.link(book_b, author)
    relations.link(book_b, author)
    sqlite_session.flush()

    assert entities.dependents_of(author) == [book_a, book_b]
    assert entities.references_of(book_b) == [author]

    relations.unlink(book_a, author)
    assert entities.dependents_of(author) == [book_b]

    relations.remove_all(author)
    assert entities.references_of(book_b) == []


def test_entity_cannot_reference_itself(sqlite_session: Session) -> None:
    entities = SqlAlchemyCanonicalEntityRepository(sqlite_session)
    relations = SqlAlchemyRelationRepository(sqlite_session)
    book = make_product()
    entities.add(book)

    with pytest.raises(ValueError):
        relations.link(book, book)


def test_unstored_entities_cannot_be_linked(sqlite_session: Session) -> None:
    entities = SqlAlchemyCanonicalEntityRepository(sqlite_session)
    relations = SqlAlchemyRelationRepository(sqlite_session)
    book = make_product()
    entities.add(book)

    with pytest.raises(ValueError, match="must be stored"):
        relations.link(book, make_term())


def test_list_for_platform_includes_known_entities(sqlite_session: Session) -> None:
    repository = SqlAlchemyCanonicalEntityRepository(sqlite_session)
    routed = make_product("9789560001", channels=("woo_escolar",))
    known = make_product("9789560002", channels=(), external_ids={"woo_escolar": 7})
    elsewhere = make_product("9789560003", channels=("woo_moraleja",))
    for entity in (routed, known, elsewhere):
        repository.add(entity)
    sqlite_session.flush()

    assert repository.list_for_platform("woo_escolar") == [routed, known]


def test_processed_event_is_claimed_once_until_released(sqlite_session: Session) -> None:
    repository = SqlAlchemyProcessedEventRepository(sqlite_session)

    assert repository.claim("evt-1", "delete:woo_moraleja") is True
    assert repository.claim("evt-1", "delete:woo_moraleja") is False
    assert repository.claim("evt-1", "delete:woo_escolar") is True
    assert repository.is_processed("evt-1", "delete:woo_moraleja")
    assert not repository.is_processed("evt-2", "delete:woo_moraleja")

    repository.release("evt-1", "delete:woo_moraleja")

    assert not repository.is_processed("evt-1", "delete:woo_moraleja")
    assert repository.is_processed("evt-1", "delete:woo_escolar")
    assert repository.claim("evt-1", "delete:woo_moraleja") is True


def test_tombstone_keeps_enough_to_address_remote_copies(sqlite_session: Session) -> None:
    repository = SqlAlchemyTombstoneRepository(sqlite_session)
    term = make_term(
        "Isabel Allende", term_kind=TermKind.PUBLISHER, external_ids={"woo_escolar": 7}
    )
    repository.add(Tombstone.of(term, "evt-1"))
    sqlite_session.flush()
    sqlite_session.expire_all()

    tombstone = repository.get(term.document_id)

    assert tombstone is not None
    remnant = tombstone.remnant()
    assert remnant.document_id == term.document_id
    assert remnant.natural_key == "Isabel Allende"
    assert remnant.term_kind is TermKind.PUBLISHER
    assert remnant.external_ids == {"woo_escolar": 7}


def _attempt(
    platform: str, document_id: str, outcome: SyncOutcome, minutes: int
) -> SyncAttempt:
    return SyncAttempt(
        event_id=f"evt-{minutes}",
        platform=platform,
        kind=EntityKind.PRODUCT,
        document_id=document_id,
        change=ChangeType.UPDATE,
        outcome=outcome,
        attempted_at=datetime(2026, 1, 1, tzinfo=UTC) + timedelta(minutes=minutes),
    )


def test_latest_failures_ignores_recovered_pairs(sqlite_session: Session) -> None:
    repository = SqlAlchemySyncAttemptRepository(sqlite_session)
    repository.add(_attempt("woo_moraleja", "doc-a", SyncOutcome.FAILED, 1))
    repository.add(_attempt("woo_moraleja", "doc-a", SyncOutcome.SUCCESS, 2))
    repository.add(_attempt("woo_escolar", "doc-a", SyncOutcome.FAILED, 3))
    repository.add(_attempt("woo_moraleja", "doc-b", SyncOutcome.SUCCESS, 4))
    repository.add(_attempt("woo_moraleja", "doc-b", SyncOutcome.FAILED, 5))
    sqlite_session.flush()

    failures = repository.latest_failures()

    assert sorted((item.platform, item.document_id) for item in failures) == [
        ("woo_escolar", "doc-a"),
        ("woo_moraleja", "doc-b"),
    ]


def _sent(key: DedupKey, at: datetime) -> NotificationLog:
    log = NotificationLog.pending(key)
    log.mark_sent(at)
    return log


def test_find_blocking_since_respects_window_and_campaign(sqlite_session: Session) -> None:
    repository = SqlAlchemyNotificationLogRepository(sqlite_session)
    now = datetime(2026, 6, 1, tzinfo=UTC)
    plain = DedupKey.build("welcome", "Ana@Example.com")
    campaign = DedupKey.build("promo", "ana@example.com", "spring")
    repository.add(_sent(plain, now - timedelta(days=200)))
    recent = _sent(plain, now - timedelta(days=10))
    repository.add(recent)
    repository.add(_sent(campaign, now - timedelta(days=1)))

    assert repository.find_blocking_since(plain, now - timedelta(days=180)) is recent
    assert repository.find_blocking_since(plain, now - timedelta(days=5)) is None
    assert (
        repository.find_blocking_since(
            DedupKey.build("promo", "ana@example.com", "autumn"), now - timedelta(days=180)
        )
        is None
    )
    assert repository.find_blocking_since(campaign, now - timedelta(days=180)) is not None


def test_in_flight_send_blocks_until_it_fails(sqlite_session: Session) -> None:
    repository = SqlAlchemyNotificationLogRepository(sqlite_session)
    now = datetime(2026, 6, 1, tzinfo=UTC)
    reminder = DedupKey.build("reminder", "ana@example.com")
    pending = NotificationLog.pending(reminder)
    pending.created_at = now - timedelta(minutes=1)
    repository.add(pending)

    assert repository.find_blocking_since(reminder, now - timedelta(days=180)) is pending

    pending.mark_failed("smtp down")
    sqlite_session.flush()

    assert repository.find_blocking_since(reminder, now - timedelta(days=180)) is None
    assert repository.get(pending.id or 0) is pending
