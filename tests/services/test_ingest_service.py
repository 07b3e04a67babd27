"""End-to-end tests for IngestService.ingest().

Every test runs the rule-only pipeline against an in-memory SQLite
database, so no test touches the network.
"""

import asyncio
import time

import pytest
from sqlalchemy import func, select

from src.db.models import ConversationState, DisambiguationSession, IngestEvent, Order
from src.errors import USER_SAFE_MESSAGE
from src.orchestrator.models.ingest import NoneReason
from src.orchestrator.models.intent import (
    ClassificationResult,
    InquiryKind,
    IntentCategory,
)
from src.orchestrator.models.order import LineItem, ModifierStatus
from src.orchestrator.nl_engine.classifier import ClassifierAdapter
from src.orchestrator.nl_engine.outcome import Ok
from src.services.ingest_service import MAX_TEXT_LENGTH, IngestService
from src.services.order_service import OrderService, load_items
from tests.helpers import CUSTOMER, TENANT, StubClassifierBackend, T0, at


async def send(service: IngestService, text: str, minutes: float = 0, **kwargs):
    """Ingest one message for the default tenant and customer."""
    kwargs.setdefault("message_id", f"msg-{minutes}-{abs(hash(text)) % 10_000}")
    return await service.ingest(
        tenant_id=TENANT,
        customer_key=CUSTOMER,
        text=text,
        timestamp=at(minutes),
        **kwargs,
    )


def order_count(db) -> int:
    return db.execute(select(func.count()).select_from(Order)).scalar_one()


def stage_of(db, customer_key: str = CUSTOMER) -> str | None:
    state = db.execute(
        select(ConversationState).where(
            ConversationState.tenant_id == TENANT,
            ConversationState.customer_key == customer_key,
        )
    ).scalar_one_or_none()
    return state.stage if state else None


def fresh_order(db, order_id: str) -> Order:
    db.expire_all()
    return db.get(Order, order_id)


# ============================================================================
# Core scenarios
# ============================================================================


class TestCoreScenarios:
    """The reference conversations and basic order creation."""

    @pytest.mark.asyncio
    async def test_new_order_from_inline_quantities(self, ingest_service, db):
        """'2kg onion, 1L milk' on a fresh conversation creates an order."""
        result = await send(ingest_service, "2kg onion, 1L milk")

        assert result.kind == "order"
        assert [(i.canonical, i.qty, i.unit) for i in result.items] == [
            ("onion", 2, "kg"),
            ("milk", 1, "l"),
        ]
        assert result.link_reason == "no_previous"
        assert result.stage == "building_order"
        assert stage_of(db) == "building_order"
        assert order_count(db) == 1

    @pytest.mark.asyncio
    async def test_zero_quantity_is_not_ordered(self, ingest_service, db):
        result = await send(ingest_service, "0 coke, 2kg onion")

        assert result.kind == "order"
        assert [(i.canonical, i.qty) for i in result.items] == [("onion", 2)]
        assert [i.canonical for i in load_items(fresh_order(db, result.order_id))] == ["onion"]

    @pytest.mark.asyncio
    async def test_greeting_creates_nothing(self, ingest_service, db):
        """'hi' is a greeting: no order, stage stays idle."""
        result = await send(ingest_service, "hi")

        assert result.kind == "none"
        assert result.reason == NoneReason.GREETING
        assert order_count(db) == 0
        assert stage_of(db) == "idle"

    @pytest.mark.asyncio
    async def test_remove_last_item(self, ingest_service, db):
        """'remove coke' on an order holding only coke empties it."""
        created = await send(ingest_service, "1 coke")
        result = await send(ingest_service, "remove coke", minutes=1)

        assert result.kind == "modifier"
        assert result.status == ModifierStatus.APPLIED
        assert result.order_id == created.order_id
        assert result.items == []
        assert load_items(fresh_order(db, created.order_id)) == []

    @pytest.mark.asyncio
    async def test_pronoun_change_is_ambiguous(self, ingest_service, db):
        """'make it 2 instead' with two items asks which one."""
        created = await send(ingest_service, "2kg onion, 1L milk")
        result = await send(ingest_service, "make it 2 instead", minutes=1)

        assert result.kind == "modifier"
        assert result.status == ModifierStatus.AMBIGUOUS
        assert len(result.candidates) == 2
        assert [c.label for c in result.candidates] == ["onion kg", "milk l"]
        assert result.disambiguation_id is not None
        assert "Which item did you mean?" in result.reply

        items = load_items(fresh_order(db, created.order_id))
        assert [(i.canonical, i.qty) for i in items] == [("onion", 2), ("milk", 1)]


# ============================================================================
# Idempotency and validation
# ============================================================================


class TestIdempotency:
    """Re-delivery of the same event is a no-op."""

    @pytest.mark.asyncio
    async def test_redelivery_is_duplicate(self, ingest_service, db):
        first = await send(ingest_service, "2kg onion", message_id="wa-1")
        second = await send(ingest_service, "2kg onion", message_id="wa-1")

        assert first.kind == "order"
        assert second.kind == "none"
        assert second.reason == NoneReason.DUPLICATE
        assert order_count(db) == 1
        items = load_items(fresh_order(db, first.order_id))
        assert len(items) == 1

    @pytest.mark.asyncio
    async def test_ingest_event_recorded(self, ingest_service, db):
        result = await send(ingest_service, "2kg onion", message_id="wa-1")

        event = db.execute(select(IngestEvent)).scalar_one()
        assert event.message_id == "wa-1"
        assert event.result_kind == "order"
        assert event.order_id == result.order_id

    @pytest.mark.asyncio
    async def test_same_text_new_message_id_is_processed(self, ingest_service, db):
        await send(ingest_service, "2kg onion", message_id="wa-1")
        result = await send(ingest_service, "2kg onion", message_id="wa-2")

        assert result.kind == "order"
        assert len(result.items) == 2


class TestValidation:
    """Input errors come back as error results with a safe reply."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("field", ["tenant_id", "customer_key", "text"])
    async def test_missing_field(self, ingest_service, field):
        kwargs = {"tenant_id": TENANT, "customer_key": CUSTOMER, "text": "2kg onion"}
        kwargs[field] = "  "
        result = await ingest_service.ingest(**kwargs)

        assert result.kind == "error"
        assert result.error == "E-1001"
        assert result.reply == USER_SAFE_MESSAGE

    @pytest.mark.asyncio
    async def test_text_too_long(self, ingest_service):
        result = await send(ingest_service, "a" * (MAX_TEXT_LENGTH + 1))

        assert result.kind == "error"
        assert result.error == "E-1002"

    @pytest.mark.asyncio
    async def test_forced_order_of_other_customer(self, ingest_service, db):
        """A forced order id must belong to the customer."""
        other = await ingest_service.ingest(
            tenant_id=TENANT, customer_key="someone-else", text="1 coke", timestamp=T0
        )
        result = await send(
            ingest_service, "2 sprite", minutes=1, forced_active_order_id=other.order_id
        )

        assert result.kind == "error"
        assert result.error == "E-4004"
        assert result.retryable is False
        assert load_items(fresh_order(db, other.order_id))[0].canonical == "coke"


# ============================================================================
# Linking
# ============================================================================


class TestLinking:
    """Append-vs-new decisions through the full pipeline."""

    @pytest.mark.asyncio
    async def test_follow_up_within_window_appends(self, ingest_service, db):
        first = await send(ingest_service, "1 coke")
        result = await send(ingest_service, "2 sprite", minutes=30)

        assert result.order_id == first.order_id
        assert result.link_reason == "default_within_window"
        assert [i.canonical for i in result.items] == ["coke", "sprite"]
        assert fresh_order(db, first.order_id).link_reason == (
            "no_previous | default_within_window"
        )

    @pytest.mark.asyncio
    async def test_follow_up_after_window_creates_new(self, ingest_service, db):
        first = await send(ingest_service, "1 coke")
        result = await send(ingest_service, "2 sprite", minutes=180)

        assert result.order_id != first.order_id
        assert result.link_reason == "new_after_window"
        assert order_count(db) == 2

    @pytest.mark.asyncio
    async def test_explicit_append_keyword(self, ingest_service):
        first = await send(ingest_service, "1 coke")
        result = await send(ingest_service, "also 2 sprite", minutes=5)

        assert result.order_id == first.order_id
        assert result.link_reason == "explicit_append"

    @pytest.mark.asyncio
    async def test_fresh_list_starts_new_order(self, ingest_service):
        first = await send(ingest_service, "1 coke")
        result = await send(ingest_service, "2kg rice\n1 l milk", minutes=5)

        assert result.order_id != first.order_id
        assert result.link_reason == "fresh_list_shape"
        assert [i.canonical for i in result.items] == ["rice", "milk"]

    @pytest.mark.asyncio
    async def test_forced_order_receives_items(self, ingest_service, db):
        first = await send(ingest_service, "1 coke")
        await send(ingest_service, "2kg rice\n1 l milk", minutes=5)
        result = await send(
            ingest_service, "2 sprite", minutes=6, forced_active_order_id=first.order_id
        )

        assert result.order_id == first.order_id
        assert [i.canonical for i in result.items] == ["coke", "sprite"]
        assert order_count(db) == 2

    @pytest.mark.asyncio
    async def test_customers_are_isolated(self, ingest_service, db):
        mine = await send(ingest_service, "1 coke")
        theirs = await ingest_service.ingest(
            tenant_id=TENANT, customer_key="cust-other", text="2 sprite", timestamp=at(1)
        )

        assert mine.order_id != theirs.order_id
        assert theirs.link_reason == "no_previous"

    @pytest.mark.asyncio
    async def test_concurrent_messages_are_serialized(self, ingest_service, db):
        """Two messages from one customer at once end up on one order."""
        first, second = await asyncio.gather(
            send(ingest_service, "2kg onion"),
            send(ingest_service, "1 coke", minutes=1),
        )

        assert first.order_id == second.order_id
        assert order_count(db) == 1
        assert len(load_items(fresh_order(db, first.order_id))) == 2

    @pytest.mark.asyncio
    async def test_slow_store_does_not_block_event_loop(self, ingest_service, monkeypatch):
        """Other coroutines keep running while one message waits on the database."""
        create = OrderService.create

        def slow_create(self, *args, **kwargs):
            time.sleep(0.3)
            return create(self, *args, **kwargs)

        monkeypatch.setattr(OrderService, "create", slow_create)

        ticks = 0

        async def ticker():
            nonlocal ticks
            while True:
                await asyncio.sleep(0.01)
                ticks += 1

        task = asyncio.create_task(ticker())
        try:
            result = await send(ingest_service, "2kg onion")
        finally:
            task.cancel()

        assert result.kind == "order"
        assert ticks >= 5


# ============================================================================
# Disambiguation
# ============================================================================


class TestDisambiguation:
    """Answering a 'which item did you mean?' question."""

    async def _ambiguous(self, service):
        created = await send(service, "2kg onion, 1L milk")
        asked = await send(service, "make it 2 instead", minutes=1)
        assert asked.status == ModifierStatus.AMBIGUOUS
        return created, asked

    @pytest.mark.asyncio
    async def test_numeric_reply_applies_to_chosen_item(self, ingest_service, db):
        created, asked = await self._ambiguous(ingest_service)
        result = await send(ingest_service, "2", minutes=2)

        assert result.kind == "modifier"
        assert result.status == ModifierStatus.APPLIED
        assert result.disambiguation_id == asked.disambiguation_id
        assert [(i.canonical, i.qty) for i in result.items] == [("onion", 2), ("milk", 2)]

        order = fresh_order(db, created.order_id)
        assert order.link_reason.endswith("disambiguation:qty")
        session = db.get(DisambiguationSession, asked.disambiguation_id)
        assert session.status == "resolved"

    @pytest.mark.asyncio
    async def test_label_reply_applies_to_chosen_item(self, ingest_service):
        await self._ambiguous(ingest_service)
        result = await send(ingest_service, "the onion", minutes=2)

        assert result.status == ModifierStatus.APPLIED
        assert [(i.canonical, i.qty) for i in result.items] == [("onion", 2), ("milk", 1)]

    @pytest.mark.asyncio
    async def test_unmatched_reply_asks_again(self, ingest_service, db):
        _, asked = await self._ambiguous(ingest_service)
        result = await send(ingest_service, "the blue one", minutes=2)

        assert result.status == ModifierStatus.AMBIGUOUS
        assert result.disambiguation_id == asked.disambiguation_id
        assert result.reply == asked.reply
        session = db.get(DisambiguationSession, asked.disambiguation_id)
        assert session.status == "pending"

    @pytest.mark.asyncio
    async def test_new_items_while_asked_are_ordered(self, ingest_service, db):
        created, asked = await self._ambiguous(ingest_service)
        result = await send(ingest_service, "1 coke", minutes=2)

        assert result.kind == "order"
        assert result.order_id == created.order_id
        assert [i.canonical for i in result.items] == ["onion", "milk", "coke"]
        session = db.get(DisambiguationSession, asked.disambiguation_id)
        assert session.status == "pending"

    @pytest.mark.asyncio
    async def test_reply_after_items_changed_is_stale(self, ingest_service, db):
        created, asked = await self._ambiguous(ingest_service)

        orders = OrderService(db)
        order = orders.get(created.order_id)
        orders.replace_items(
            order,
            [LineItem(name="coke", canonical="coke", qty=1), LineItem(name="sprite", canonical="sprite", qty=1)],
            "test",
        )
        db.commit()

        result = await send(ingest_service, "2", minutes=2)

        assert result.kind == "none"
        assert result.reason == NoneReason.STALE_SESSION
        db.expire_all()
        assert db.get(DisambiguationSession, asked.disambiguation_id).status == "expired"
        assert [i.qty for i in load_items(fresh_order(db, created.order_id))] == [1, 1]

    @pytest.mark.asyncio
    async def test_reply_after_order_closed_is_stale(self, ingest_service, db):
        created, _ = await self._ambiguous(ingest_service)

        orders = OrderService(db)
        orders.cancel(orders.get(created.order_id))
        db.commit()

        result = await send(ingest_service, "1", minutes=2)

        assert result.kind == "none"
        assert result.reason == NoneReason.STALE_SESSION

    @pytest.mark.asyncio
    async def test_expired_session_routes_normally(self, ingest_service):
        await self._ambiguous(ingest_service)
        result = await send(ingest_service, "hi", minutes=60)

        assert result.kind == "none"
        assert result.reason == NoneReason.GREETING

    @pytest.mark.asyncio
    async def test_cancel_bypasses_pending_question(self, ingest_service, db):
        created, asked = await self._ambiguous(ingest_service)
        result = await send(ingest_service, "cancel my order", minutes=2)

        assert result.reason == NoneReason.ORDER_CANCELLED
        db.expire_all()
        assert db.get(DisambiguationSession, asked.disambiguation_id).status == "expired"


# ============================================================================
# Commands
# ============================================================================


class TestCommands:
    """Start-new and cancel commands."""

    @pytest.mark.asyncio
    async def test_start_new_archives_open_order(self, ingest_service, db):
        first = await send(ingest_service, "1 coke")
        result = await send(ingest_service, "new order", minutes=1)

        assert result.kind == "none"
        assert result.reason == NoneReason.STARTED_NEW
        assert result.order_id == first.order_id
        assert fresh_order(db, first.order_id).status == "archived_for_new"
        assert stage_of(db) == "idle"

        follow = await send(ingest_service, "2 sprite", minutes=2)
        assert follow.order_id != first.order_id
        assert follow.link_reason == "new_after_shipped_or_paid"

    @pytest.mark.asyncio
    async def test_start_new_without_order(self, ingest_service):
        result = await send(ingest_service, "start over")

        assert result.reason == NoneReason.STARTED_NEW
        assert result.order_id is None

    @pytest.mark.asyncio
    async def test_cancel_open_order(self, ingest_service, db):
        first = await send(ingest_service, "1 coke")
        result = await send(ingest_service, "cancel my order", minutes=1)

        assert result.reason == NoneReason.ORDER_CANCELLED
        assert result.order_id == first.order_id
        assert fresh_order(db, first.order_id).status == "cancelled_by_customer"
        assert stage_of(db) == "idle"

    @pytest.mark.asyncio
    async def test_cancel_without_order(self, ingest_service):
        result = await send(ingest_service, "cancel")

        assert result.reason == NoneReason.NO_ACTIVE_ORDER

    @pytest.mark.asyncio
    async def test_change_without_order(self, ingest_service):
        result = await send(ingest_service, "remove coke")

        assert result.kind == "none"
        assert result.reason == NoneReason.NO_ACTIVE_ORDER

    @pytest.mark.asyncio
    async def test_change_on_missing_item_is_no_match(self, ingest_service):
        await send(ingest_service, "1 coke")
        result = await send(ingest_service, "remove sprite", minutes=1)

        assert result.kind == "modifier"
        assert result.status == ModifierStatus.NO_MATCH

    @pytest.mark.asyncio
    async def test_change_request_the_parser_cannot_read(self, ingest_service, session_factory):
        """A model CHANGE_REQUEST the modifier parser cannot parse is reported."""
        backend = StubClassifierBackend(
            Ok(ClassificationResult(category=IntentCategory.CHANGE_REQUEST, confidence=0.9))
        )
        model_service = IngestService(
            session_factory=session_factory,
            classifier=ClassifierAdapter(backend, confidence_floor=0.35),
        )
        await send(ingest_service, "1 coke")
        result = await send(model_service, "fix my stuff", minutes=1)

        assert result.kind == "none"
        assert result.reason == NoneReason.MODIFIER_UNPARSED
        assert backend.calls


# ============================================================================
# Non-order messages
# ============================================================================


class TestNonOrders:
    """Messages that never touch an order."""

    @pytest.mark.asyncio
    async def test_small_talk(self, ingest_service, db):
        result = await send(ingest_service, "how are you")

        assert result.reason == NoneReason.SMALL_TALK
        assert order_count(db) == 0

    @pytest.mark.asyncio
    async def test_unrecognized_text_is_not_order(self, ingest_service, db):
        result = await send(ingest_service, "what is this")

        assert result.reason == NoneReason.NOT_ORDER
        assert order_count(db) == 0

    @pytest.mark.asyncio
    async def test_availability_inquiry_in_catalog(self, ingest_service, add_products):
        (onion_id,) = add_products(("Onion", None))
        result = await send(ingest_service, "do you have onion?")

        assert result.kind == "inquiry"
        assert result.inquiry_kind == InquiryKind.AVAILABILITY
        assert result.canonical == "Onion"
        assert result.product_id == onion_id
        assert result.in_catalog is True

    @pytest.mark.asyncio
    async def test_price_inquiry_not_in_catalog(self, ingest_service, add_products):
        add_products(("Onion", None))
        result = await send(ingest_service, "price of mango")

        assert result.kind == "inquiry"
        assert result.inquiry_kind == InquiryKind.PRICE
        assert result.in_catalog is False
        assert "mango" in result.reply

    @pytest.mark.asyncio
    async def test_inquiry_without_catalog(self, ingest_service):
        result = await send(ingest_service, "do you have onion?")

        assert result.kind == "inquiry"
        assert result.in_catalog is None

    @pytest.mark.asyncio
    async def test_list_of_questions_is_an_inquiry(self, ingest_service, db):
        result = await send(ingest_service, "what is the price of rice?\ndo you deliver on sunday?")

        assert result.kind == "inquiry"
        assert result.inquiry_kind == InquiryKind.PRICE
        assert result.canonical == "rice"
        assert order_count(db) == 0

    @pytest.mark.asyncio
    async def test_questions_mixed_into_a_list_are_skipped(self, ingest_service):
        result = await send(ingest_service, "2kg onion\ndo you deliver on sunday?\n1 l milk")

        assert result.kind == "order"
        assert [(i.canonical, i.qty) for i in result.items] == [("onion", 2), ("milk", 1)]


# ============================================================================
# Catalog gate and clarification
# ============================================================================


class TestCatalogGate:
    """Reconciliation against a tenant catalog."""

    @pytest.mark.asyncio
    async def test_all_unmatched_creates_nothing(self, ingest_service, add_products, db):
        add_products(("Onion", None))
        result = await send(ingest_service, "2 mango")

        assert result.kind == "none"
        assert result.reason == NoneReason.CATALOG_UNMATCHED
        assert "mango" in result.reply
        assert order_count(db) == 0

    @pytest.mark.asyncio
    async def test_partial_match_keeps_matched_items(self, ingest_service, add_products):
        (onion_id,) = add_products(("Onion", None))
        result = await send(ingest_service, "2kg onion, 1 mango")

        assert result.kind == "order"
        assert [i.canonical for i in result.items] == ["Onion"]
        assert result.items[0].product_id == onion_id
        assert result.items[0].match_type == "catalog_exact"
        assert result.unmatched == ["mango"]

    @pytest.mark.asyncio
    async def test_variant_named_in_text_resolves(self, ingest_service, add_products):
        _, half_id = add_products(("Chicken Biryani", "full"), ("Chicken Biryani", "half"))
        result = await send(ingest_service, "1 half chicken biryani")

        item = result.items[0]
        assert item.variant == "half"
        assert item.product_id == half_id
        assert item.needs_clarify is False
        assert result.clarifications == []


class TestClarification:
    """Variant questions for ambiguous catalog matches."""

    @pytest.mark.asyncio
    async def test_lone_item_is_held_until_variant_chosen(self, ingest_service, add_products, db):
        _, half_id = add_products(("Chicken Biryani", "full"), ("Chicken Biryani", "half"))

        held = await send(ingest_service, "chicken biryani")
        assert held.kind == "none"
        assert held.reason == NoneReason.NEEDS_CLARIFICATION
        assert "Which Chicken Biryani" in held.reply
        assert order_count(db) == 0

        result = await send(ingest_service, "half", minutes=1)
        assert result.kind == "order"
        item = result.items[0]
        assert item.variant == "half"
        assert item.product_id == half_id
        assert item.needs_clarify is False
        assert fresh_order(db, result.order_id).link_reason == "no_previous+clarified"

    @pytest.mark.asyncio
    async def test_multi_item_order_commits_and_asks(self, ingest_service, add_products, db):
        full_id, _, coke_id = add_products(
            ("Chicken Biryani", "full"), ("Chicken Biryani", "half"), ("Coke", None)
        )

        result = await send(ingest_service, "1 chicken biryani, 2 coke")
        assert result.kind == "order"
        assert result.stage == "awaiting_clarification"
        assert len(result.clarifications) == 1
        assert result.clarifications[0].item_index == 0
        assert sorted(result.clarifications[0].options) == ["full", "half"]
        assert result.items[0].needs_clarify is True
        assert result.items[0].product_id is None
        assert result.items[1].product_id == coke_id

        answered = await send(ingest_service, "full", minutes=1)
        assert answered.kind == "order"
        assert answered.order_id == result.order_id
        assert answered.link_reason == "clarified"
        assert answered.stage == "building_order"
        assert answered.items[0].variant == "full"
        assert answered.items[0].product_id == full_id
        assert stage_of(db) == "building_order"


# ============================================================================
# Address capture
# ============================================================================


class TestAddressCapture:
    """require_address asks for and stores a delivery address."""

    @pytest.mark.asyncio
    async def test_address_requested_then_captured(self, make_service, db):
        service = make_service(require_address=True)

        created = await send(service, "2kg onion")
        assert created.stage == "awaiting_address"
        assert "delivery address" in created.reply

        result = await send(service, "Flat 12, MG Road, 560001", minutes=1)
        assert result.kind == "order"
        assert result.link_reason == "address_captured"
        assert result.stage == "post_order"

        order = fresh_order(db, created.order_id)
        assert order.status == "confirmed"
        assert order.delivery_address == "Flat 12, MG Road, 560001"

    @pytest.mark.asyncio
    async def test_multi_line_address_is_captured(self, make_service, db):
        service = make_service(require_address=True)

        created = await send(service, "2kg onion")
        result = await send(service, "Flat 12, Tower B\nMG Road, Bangalore 560001", minutes=1)

        assert result.kind == "order"
        assert result.link_reason == "address_captured"
        assert result.order_id == created.order_id
        assert [(i.canonical, i.qty) for i in result.items] == [("onion", 2)]
        assert result.stage == "post_order"
        assert order_count(db) == 1

        order = fresh_order(db, created.order_id)
        assert order.delivery_address == "Flat 12, Tower B, MG Road, Bangalore 560001"

    @pytest.mark.asyncio
    async def test_items_while_awaiting_address_are_appended(self, make_service):
        service = make_service(require_address=True)

        created = await send(service, "2kg onion")
        result = await send(service, "1 coke", minutes=1)

        assert result.kind == "order"
        assert result.order_id == created.order_id
        assert result.stage == "awaiting_address"

    @pytest.mark.asyncio
    async def test_address_without_request_is_not_order(self, ingest_service, db):
        result = await send(ingest_service, "Flat 12, MG Road")

        assert result.kind == "none"
        assert result.reason == NoneReason.NOT_ORDER
        assert order_count(db) == 0


# ============================================================================
# Message edits
# ============================================================================


class TestEdits:
    """An edited message replaces the items it created."""

    @pytest.mark.asyncio
    async def test_edit_replaces_items(self, ingest_service, db):
        created = await send(ingest_service, "2kg onion", message_id="wa-1")
        result = await send(ingest_service, "3kg onion", minutes=1, message_id="wa-1", edited=True)

        assert result.kind == "order"
        assert result.order_id == created.order_id
        assert result.link_reason == "edit_replace"
        assert [(i.canonical, i.qty) for i in result.items] == [("onion", 3)]
        assert order_count(db) == 1

    @pytest.mark.asyncio
    async def test_edit_outside_window_is_new_message(self, ingest_service):
        created = await send(ingest_service, "2kg onion", message_id="wa-1")
        result = await send(ingest_service, "3kg onion", minutes=30, message_id="wa-1", edited=True)

        assert result.order_id == created.order_id
        assert result.link_reason == "default_within_window"
        assert len(result.items) == 2
