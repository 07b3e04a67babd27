"""Ingest entry point: one inbound customer message in, one decision out.

IngestService.ingest() runs the whole decision pipeline for a message:

    dedupe -> stage checks (start new, pending questions, address capture)
    -> classify -> route by category
    -> parse -> catalog gate -> link (append/new) -> persist -> stage events

Everything for one message happens inside a per-customer asyncio lock and
one database transaction. The transaction runs in a worker thread
(asyncio.to_thread); collaborator coroutines are handed back to the event
loop with run_coroutine_threadsafe. The ingest event row that makes
re-delivery a no-op is written in that same transaction. Store failures
roll back and come back as an error result with a user-safe reply;
collaborator failures never surface because every collaborator has a rule
fallback.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, Callable, Coroutine, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from src.config import EngineConfig
from src.db.connection import SessionLocal
from src.db.models import (
    ConversationStage,
    ConversationState,
    DisambiguationSession,
    IngestEvent,
    Order,
    parse_iso,
)
from src.errors.domain import ConcurrentUpdateError, InvalidTransitionError, NotFoundError
from src.errors.formatter import OrderDeskError, format_error
from src.orchestrator.models.ingest import (
    ClarificationRequest,
    ErrorIngestResult,
    IngestResult,
    InquiryIngestResult,
    ModifierIngestResult,
    NoneIngestResult,
    NoneReason,
    OrderIngestResult,
)
from src.orchestrator.models.intent import (
    ClassificationResult,
    IntentCategory,
    IntentHints,
    InquiryKind,
)
from src.orchestrator.models.order import LineItem, ModifierStatus
from src.orchestrator.nl_engine.classifier import ClassifierAdapter
from src.orchestrator.nl_engine.cost_guard import CostGuard
from src.orchestrator.nl_engine.model_backends import (
    ClaudeIntentClassifier,
    ClaudeModifierExtractor,
    ClaudeOrderExtractor,
)
from src.orchestrator.nl_engine.modifier_parser import ModifierParser
from src.orchestrator.nl_engine.order_parser import OrderParserPipeline
from src.orchestrator.nl_engine.rule_classifier import (
    first_inquiry,
    is_cancel_request,
    is_start_new_command,
    looks_like_address,
)
from src.orchestrator.nl_engine.text_shape import has_list_shape, has_quantity
from src.services.address import AddressExtractor, SimpleAddressExtractor
from src.services.catalog_service import (
    catalog_hint,
    find_product_group,
    list_products,
    lookup,
    reconcile,
    resolve_item,
)
from src.services.conversation_state import (
    ConversationStateService,
    StageEvent,
    can_transition,
)
from src.services.customer_locks import KeyedLockRegistry
from src.services.disambiguation_service import DisambiguationService, pick_candidate_index
from src.services.idempotency import ingest_fingerprint
from src.services.linking import LinkAction, decide
from src.services.modifier_engine import (
    apply_modifier,
    apply_modifier_at,
    build_candidates,
    candidate_label,
)
from src.services.order_service import OrderService, load_items
from src.services.pending_actions import PendingActionStore, PendingKind
from src.utils.redaction import redact_customer_key, redact_text

logger = logging.getLogger(__name__)

MAX_TEXT_LENGTH = 4000

T = TypeVar("T")


@dataclass
class _Turn:
    """Per-message context shared by the routing helpers."""

    db: Session
    loop: asyncio.AbstractEventLoop
    tenant_id: str
    customer_key: str
    text: str
    message_id: str | None
    now: datetime
    forced_order_id: str | None
    state: ConversationState
    orders: OrderService
    states: ConversationStateService
    sessions: DisambiguationService
    pending: PendingActionStore


def _as_utc(timestamp: datetime | None) -> datetime:
    if timestamp is None:
        return datetime.now(UTC)
    if timestamp.tzinfo is None:
        return timestamp.replace(tzinfo=UTC)
    return timestamp.astimezone(UTC)


def _item_name(item: LineItem) -> str:
    return item.canonical or item.name


def _variant_question(item: LineItem, options: list[str]) -> str:
    lines = [f"Which {_item_name(item)} would you like?"]
    lines.extend(f"{n}. {option}" for n, option in enumerate(options, 1))
    return "\n".join(lines)


class IngestService:
    """Decision engine for inbound customer messages.

    Attributes:
        config: Engine tunables.
        classifier: Confidence-gated intent classifier.
        order_parser: Order parser pipeline.
        modifier_parser: Change-request extractor.
        address_extractor: Delivery address collaborator.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] | None = None,
        config: EngineConfig | None = None,
        classifier: ClassifierAdapter | None = None,
        order_parser: OrderParserPipeline | None = None,
        modifier_parser: ModifierParser | None = None,
        address_extractor: AddressExtractor | None = None,
        locks: KeyedLockRegistry | None = None,
    ) -> None:
        """Initialize the service.

        Collaborators default to their rule-only forms, so a bare
        IngestService() never makes a network call.

        Args:
            session_factory: Callable returning a new SQLAlchemy session.
            config: Engine tunables.
            classifier: Intent classifier adapter.
            order_parser: Order parser pipeline.
            modifier_parser: Change-request parser.
            address_extractor: Address collaborator.
            locks: Per-customer lock registry.
        """
        self.config = config or EngineConfig()
        timeout = self.config.model_timeout_seconds
        floor = self.config.confidence_floor
        self._session_factory = session_factory or SessionLocal
        self.classifier = classifier or ClassifierAdapter(
            confidence_floor=floor, timeout_seconds=timeout
        )
        self.order_parser = order_parser or OrderParserPipeline(timeout_seconds=timeout)
        self.modifier_parser = modifier_parser or ModifierParser(
            confidence_floor=floor, timeout_seconds=timeout
        )
        self.address_extractor = address_extractor or SimpleAddressExtractor()
        self._locks = locks or KeyedLockRegistry()

    @classmethod
    def with_model_backends(
        cls,
        session_factory: Callable[[], Session] | None = None,
        config: EngineConfig | None = None,
        cost_guard: CostGuard | None = None,
        address_extractor: AddressExtractor | None = None,
    ) -> "IngestService":
        """Build a service whose collaborators try Claude before the rules.

        Without ANTHROPIC_API_KEY the backends report themselves unavailable
        and every call goes straight to the rule path.
        """
        config = config or EngineConfig()
        timeout = config.model_timeout_seconds
        return cls(
            session_factory=session_factory,
            config=config,
            classifier=ClassifierAdapter(
                ClaudeIntentClassifier(cost_guard=cost_guard),
                confidence_floor=config.confidence_floor,
                timeout_seconds=timeout,
            ),
            order_parser=OrderParserPipeline(
                ClaudeOrderExtractor(cost_guard=cost_guard), timeout_seconds=timeout
            ),
            modifier_parser=ModifierParser(
                ClaudeModifierExtractor(cost_guard=cost_guard),
                confidence_floor=config.confidence_floor,
                timeout_seconds=timeout,
            ),
            address_extractor=address_extractor,
        )

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def ingest(
        self,
        tenant_id: str,
        customer_key: str,
        text: str,
        message_id: str | None = None,
        timestamp: datetime | None = None,
        forced_active_order_id: str | None = None,
        edited: bool = False,
    ) -> IngestResult:
        """Process one inbound message.

        Args:
            tenant_id: Tenant the message belongs to.
            customer_key: Opaque customer identity.
            text: Message body.
            message_id: Channel message id, used for dedupe and edits.
            timestamp: Message time; defaults to now.
            forced_active_order_id: Pin linking and changes to this order.
            edited: The message is an edit of an earlier message_id.

        Returns:
            Exactly one tagged IngestResult.
        """
        for field_name, value in (
            ("tenant_id", tenant_id),
            ("customer_key", customer_key),
            ("text", text),
        ):
            if not value or not str(value).strip():
                return self._error_result("E-1001", field=field_name)
        if len(text) > MAX_TEXT_LENGTH:
            return self._error_result("E-1002", length=len(text), limit=MAX_TEXT_LENGTH)

        now = _as_utc(timestamp)

        async with self._locks.hold(tenant_id, customer_key):
            # Store work is blocking; it runs in a worker thread so other
            # customers keep being served while this one waits on SQLite.
            return await asyncio.to_thread(
                self._run_turn,
                asyncio.get_running_loop(),
                tenant_id,
                customer_key,
                text,
                message_id,
                now,
                forced_active_order_id,
                edited,
            )

    def _run_turn(
        self,
        loop: asyncio.AbstractEventLoop,
        tenant_id: str,
        customer_key: str,
        text: str,
        message_id: str | None,
        now: datetime,
        forced_active_order_id: str | None,
        edited: bool,
    ) -> IngestResult:
        """One database unit of work for one message (worker thread)."""
        fingerprint = ingest_fingerprint(tenant_id, customer_key, message_id, text, now)
        masked = redact_customer_key(customer_key)

        db = self._session_factory()
        try:
            if self._seen(db, fingerprint):
                logger.info("Duplicate message %s from %s ignored", message_id, masked)
                return NoneIngestResult(reason=NoneReason.DUPLICATE)

            turn = self._open_turn(
                db, loop, tenant_id, customer_key, text, message_id, now, forced_active_order_id
            )
            if forced_active_order_id and turn.orders.get_for_customer(
                tenant_id, customer_key, forced_active_order_id
            ) is None:
                db.rollback()
                return self._error_result("E-4004", order_id=forced_active_order_id)

            result = self._route(turn, edited)

            db.add(IngestEvent(
                fingerprint=fingerprint,
                tenant_id=tenant_id,
                customer_key=customer_key,
                message_id=message_id,
                result_kind=result.kind,
                order_id=getattr(result, "order_id", None),
                created_at=now.isoformat(),
            ))
            db.commit()
            logger.info(
                "Ingested %s from %s -> %s (%s)",
                message_id,
                masked,
                result.kind,
                getattr(result, "reason", None) or getattr(result, "status", None)
                or getattr(result, "link_reason", ""),
            )
            return result

        except IntegrityError as e:
            db.rollback()
            if self._seen(db, fingerprint):
                logger.info("Duplicate message %s from %s lost insert race", message_id, masked)
                return NoneIngestResult(reason=NoneReason.DUPLICATE)
            return self._error_result("E-4001", entity="ingest", reason=type(e).__name__)
        except ConcurrentUpdateError as e:
            db.rollback()
            return self._error_result(
                "E-4002", entity=e.resource_type, identifier=e.identifier
            )
        except InvalidTransitionError as e:
            db.rollback()
            return self._error_result("E-4003", event=e.event, stage=e.stage)
        except NotFoundError as e:
            db.rollback()
            logger.warning("Stale reference %s '%s'; nothing to act on", e.resource_type, e.identifier)
            return NoneIngestResult(reason=NoneReason.STALE_SESSION)
        except SQLAlchemyError as e:
            db.rollback()
            return self._error_result("E-4001", entity="order state", reason=type(e).__name__)
        finally:
            db.close()

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    def _open_turn(
        self,
        db: Session,
        loop: asyncio.AbstractEventLoop,
        tenant_id: str,
        customer_key: str,
        text: str,
        message_id: str | None,
        now: datetime,
        forced_order_id: str | None,
    ) -> _Turn:
        states = ConversationStateService(db)
        state = states.get_or_create(tenant_id, customer_key)
        states.expire_if_stale(state, self.config.state_ttl_minutes, now)
        return _Turn(
            db=db,
            loop=loop,
            tenant_id=tenant_id,
            customer_key=customer_key,
            text=text,
            message_id=message_id,
            now=now,
            forced_order_id=forced_order_id,
            state=state,
            orders=OrderService(db),
            states=states,
            sessions=DisambiguationService(db, self.config.disambiguation_ttl_minutes),
            pending=PendingActionStore(db, self.config.pending_action_ttl_minutes),
        )

    def _route(self, turn: _Turn, edited: bool) -> IngestResult:
        self._sync_stage_with_order(turn)

        if edited and turn.message_id:
            result = self._handle_edit(turn)
            if result is not None:
                return result

        if is_start_new_command(turn.text):
            return self._start_new(turn)
        if is_cancel_request(turn.text):
            return self._cancel(turn)

        session = turn.sessions.get_pending(turn.tenant_id, turn.customer_key, turn.now)
        if session is not None:
            result = self._answer_disambiguation(turn, session)
            if result is not None:
                return result

        result = self._answer_variant_choice(turn)
        if result is not None:
            return result

        if turn.state.stage == ConversationStage.awaiting_clarification.value:
            result = self._answer_clarification(turn)
            if result is not None:
                return result

        if turn.state.stage == ConversationStage.awaiting_address.value:
            result = self._capture_address(turn)
            if result is not None:
                return result

        classification = self._collaborate(turn, self.classifier.classify(turn.text))
        logger.debug(
            "Classified %r as %s (%.2f via %s, fallback=%s)",
            redact_text(turn.text),
            classification.category.value,
            classification.confidence,
            classification.source.value,
            classification.fallback.value,
        )
        return self._dispatch(turn, classification)

    def _dispatch(self, turn: _Turn, classification: ClassificationResult) -> IngestResult:
        category = classification.category
        hints = classification.hints

        if category == IntentCategory.START_NEW and not (hints.has_quantity or hints.has_list_shape):
            return self._start_new(turn)
        if category == IntentCategory.GREETING:
            return NoneIngestResult(reason=NoneReason.GREETING)
        if category == IntentCategory.SMALLTALK:
            return NoneIngestResult(reason=NoneReason.SMALL_TALK)
        if category == IntentCategory.CANCEL:
            return self._cancel(turn)
        if category == IntentCategory.CHANGE_REQUEST:
            return self._apply_change(turn)
        if category == IntentCategory.INQUIRY:
            return self._inquiry(turn, hints)
        if category == IntentCategory.ADDRESS:
            # Address text only counts while the stage is awaiting_address.
            return NoneIngestResult(reason=NoneReason.NOT_ORDER)
        return self._handle_order(turn)

    def _sync_stage_with_order(self, turn: _Turn) -> None:
        """Reset a non-idle stage whose active order is gone or closed."""
        state = turn.state
        if state.stage == ConversationStage.idle.value or not state.active_order_id:
            return
        order = turn.orders.get(state.active_order_id)
        if order is None or order.is_closed:
            turn.state = turn.states.reset(state, last_action="active_order_closed", now=turn.now)

    def _advance(self, turn: _Turn, event: StageEvent, order_id: str | None = None) -> None:
        if event == StageEvent.ITEMS_ADDED and turn.state.stage == ConversationStage.idle.value:
            event = StageEvent.ORDER_OPENED
        turn.state = turn.states.transition(
            turn.state, event, active_order_id=order_id, now=turn.now
        )

    def _target_order(self, turn: _Turn) -> Order | None:
        """Order a change or cancel applies to: forced, active, latest open."""
        if turn.forced_order_id:
            return turn.orders.get_for_customer(
                turn.tenant_id, turn.customer_key, turn.forced_order_id
            )
        active = turn.orders.get_for_customer(
            turn.tenant_id, turn.customer_key, turn.state.active_order_id
        )
        if active is not None and not active.is_closed:
            return active
        return turn.orders.latest_open(turn.tenant_id, turn.customer_key)

    def _close_open_questions(self, turn: _Turn) -> None:
        turn.sessions.expire_all(turn.tenant_id, turn.customer_key)
        turn.pending.clear(turn.tenant_id, turn.customer_key)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def _start_new(self, turn: _Turn) -> NoneIngestResult:
        archived = self._target_order(turn)
        archived_id = None
        if archived is not None and not archived.is_closed:
            turn.orders.archive_for_new(archived, turn.now)
            archived_id = archived.id
        self._close_open_questions(turn)
        turn.state = turn.states.reset(turn.state, last_action="start_new", now=turn.now)
        return NoneIngestResult(
            reason=NoneReason.STARTED_NEW,
            order_id=archived_id,
            reply="Okay, starting a fresh order. What would you like?",
        )

    def _cancel(self, turn: _Turn) -> NoneIngestResult:
        order = self._target_order(turn)
        if order is None or order.is_closed:
            return NoneIngestResult(
                reason=NoneReason.NO_ACTIVE_ORDER,
                reply="You don't have an open order to cancel.",
            )
        turn.orders.cancel(order, turn.now)
        self._close_open_questions(turn)
        turn.state = turn.states.reset(turn.state, last_action="order_cancelled", now=turn.now)
        return NoneIngestResult(
            reason=NoneReason.ORDER_CANCELLED,
            order_id=order.id,
            reply="Your order has been cancelled.",
        )

    def _inquiry(self, turn: _Turn, hints: IntentHints) -> InquiryIngestResult:
        kind = hints.inquiry_kind
        canonical = hints.canonical
        if kind is None:
            detected = first_inquiry(turn.text)
            kind, canonical = detected if detected else (InquiryKind.AVAILABILITY, canonical)

        products = list_products(turn.db, turn.tenant_id)
        product = lookup(
            products,
            canonical,
            self.config.single_word_min_overlap,
            self.config.multi_word_min_overlap,
        )
        in_catalog = None if not products or not canonical else product is not None
        reply = None
        if in_catalog is False:
            reply = f"Sorry, we don't have {canonical} right now."
        return InquiryIngestResult(
            inquiry_kind=kind,
            canonical=product.canonical if product else canonical,
            product_id=product.id if product else None,
            in_catalog=in_catalog,
            reply=reply,
        )

    # ------------------------------------------------------------------
    # Pending questions
    # ------------------------------------------------------------------

    def _answer_disambiguation(
        self, turn: _Turn, session: DisambiguationSession
    ) -> IngestResult | None:
        """Resolve a pending "which item?" question with this reply.

        Returns None when the message should be routed normally: the session
        was stale and the message is not a pick, or the message carries items
        of its own. In the second case the question stays open.
        """
        order = turn.orders.get_for_customer(turn.tenant_id, turn.customer_key, session.order_id)
        index = turn.sessions.resolve(session, turn.text)
        looks_like_pick = index is not None or turn.text.strip().isdigit()

        if order is None or order.is_closed:
            turn.sessions.expire(session)
            logger.info("Closed stale disambiguation session %s", session.id)
            return NoneIngestResult(reason=NoneReason.STALE_SESSION) if looks_like_pick else None

        items = load_items(order)
        if index is None and (has_list_shape(turn.text) or has_quantity(turn.text)):
            logger.info("Reply to session %s carries items; routing normally", session.id)
            return None
        if index is None:
            live =[i for i in session.candidate_indexes if i < len(items)]
            candidates = build_candidates(items, live)
            return ModifierIngestResult(
                status=ModifierStatus.AMBIGUOUS,
                order_id=order.id,
                items=items,
                summary="reply did not match an option",
                candidates=candidates,
                disambiguation_id=session.id,
                reply=session.question,
            )

        position = session.candidate_indexes.index(index)
        if index >= len(items) or candidate_label(items[index], index) != session.options[position]:
            turn.sessions.expire(session)
            logger.info("Disambiguation session %s no longer matches order %s", session.id, order.id)
            return NoneIngestResult(reason=NoneReason.STALE_SESSION, order_id=order.id)

        modifier = turn.sessions.modifier_for(session)
        result = apply_modifier_at(items, modifier, index)
        if result.status == ModifierStatus.APPLIED:
            order = turn.orders.replace_items(
                order, result.items, f"disambiguation:{modifier.change.type}", turn.now
            )
        turn.sessions.mark_resolved(session, turn.now)
        return ModifierIngestResult(
            status=result.status,
            order_id=order.id,
            items=result.items,
            summary=result.summary,
            disambiguation_id=session.id,
            reply=f"Done: {result.summary}." if result.status == ModifierStatus.APPLIED else None,
        )

    def _answer_variant_choice(self, turn: _Turn) -> IngestResult | None:
        """Commit a held-back item once the customer picks its variant."""
        payload = turn.pending.get(
            turn.tenant_id, turn.customer_key, PendingKind.VARIANT_CHOICE, turn.now
        )
        if payload is None:
            return None
        options = payload.get("options", [])
        pick = pick_candidate_index(options, list(range(len(options))), turn.text)
        turn.pending.pop(turn.tenant_id, turn.customer_key, PendingKind.VARIANT_CHOICE)
        if pick is None:
            logger.debug("Reply did not pick a variant; dropping held item")
            return None

        item = LineItem.model_validate(payload["item"])
        products = list_products(turn.db, turn.tenant_id)
        _, group = find_product_group(
            _item_name(item),
            products,
            self.config.single_word_min_overlap,
            self.config.multi_word_min_overlap,
        )
        if not group:
            return NoneIngestResult(reason=NoneReason.CATALOG_UNMATCHED)
        resolved = resolve_item(item, group, options[pick]).model_copy(
            update={"match_type": item.match_type}
        )
        return self._commit_items(turn, [resolved], unmatched=[], extra_reason="clarified")

    def _answer_clarification(self, turn: _Turn) -> IngestResult | None:
        """Resolve the first needs_clarify item on the active order."""
        order = self._target_order(turn)
        if order is None:
            turn.state = turn.states.reset(turn.state, last_action="clarification_orphaned", now=turn.now)
            return None
        items = load_items(order)
        flagged = [i for i, item in enumerate(items) if item.needs_clarify]
        if not flagged:
            self._advance(turn, StageEvent.CLARIFICATION_RESOLVED, order.id)
            return None

        index = flagged[0]
        item = items[index]
        pick = pick_candidate_index(item.variant_options, list(range(len(item.variant_options))), turn.text)
        if pick is None:
            return None

        products = list_products(turn.db, turn.tenant_id)
        _, group = find_product_group(
            _item_name(item),
            products,
            self.config.single_word_min_overlap,
            self.config.multi_word_min_overlap,
        )
        if not group:
            return None
        items[index] = resolve_item(item, group, item.variant_options[pick]).model_copy(
            update={"match_type": item.match_type}
        )
        order = turn.orders.replace_items(order, items, "clarified", turn.now)

        remaining = [
            ClarificationRequest(item_index=i, item_name=_item_name(it), options=it.variant_options)
            for i, it in enumerate(items)
            if it.needs_clarify
        ]
        reply = None
        if remaining:
            reply = _variant_question(items[remaining[0].item_index], remaining[0].options)
        else:
            self._advance(turn, StageEvent.CLARIFICATION_RESOLVED, order.id)
            reply = self._maybe_request_address(turn, order)

        return OrderIngestResult(
            order_id=order.id,
            items=items,
            link_reason="clarified",
            stage=turn.state.stage,
            clarifications=remaining,
            reply=reply,
        )

    def _capture_address(self, turn: _Turn) -> IngestResult | None:
        # Multi-line addresses have list shape; only item-shaped text skips capture.
        if not looks_like_address(turn.text) and (
            has_list_shape(turn.text) or has_quantity(turn.text)
        ):
            return None
        order = self._target_order(turn)
        if order is None:
            return None

        try:
            address = self._collaborate(turn, self._extract_address(turn.text))
        except asyncio.TimeoutError:
            logger.warning("Address extractor timed out after %.1fs", self.config.model_timeout_seconds)
            return None
        if not address:
            return None

        order = turn.orders.set_address(order, address, turn.now)
        self._advance(turn, StageEvent.ORDER_FINALIZED, order.id)
        return OrderIngestResult(
            order_id=order.id,
            items=load_items(order),
            link_reason="address_captured",
            stage=turn.state.stage,
            reply="Thanks! Your order is confirmed.",
        )

    def _maybe_request_address(self, turn: _Turn, order: Order) -> str | None:
        if (
            self.config.require_address
            and not order.delivery_address
            and turn.state.stage == ConversationStage.building_order.value
        ):
            self._advance(turn, StageEvent.ADDRESS_REQUESTED, order.id)
            return "Please share your delivery address."
        return None

    # ------------------------------------------------------------------
    # Orders and changes
    # ------------------------------------------------------------------

    def _handle_edit(self, turn: _Turn) -> IngestResult | None:
        """Replace the items of the open order an edited message created."""
        order = turn.orders.find_by_source_message(
            turn.tenant_id, turn.customer_key, turn.message_id
        )
        if order is None or order.is_closed:
            return None
        created_at = parse_iso(order.created_at)
        if created_at is None or turn.now - created_at > timedelta(
            minutes=self.config.edit_window_minutes
        ):
            logger.info("Edit of %s is outside the edit window; processing as new", turn.message_id)
            return None

        products = list_products(turn.db, turn.tenant_id)
        parsed = self._collaborate(
            turn, self.order_parser.parse(turn.text, catalog_hint(products) or None)
        )
        if not parsed.items:
            return None
        items = parsed.items
        unmatched: list[str] = []
        gate = reconcile(
            items,
            products,
            turn.text,
            self.config.single_word_min_overlap,
            self.config.multi_word_min_overlap,
        )
        if gate is not None:
            if gate.all_unmatched:
                return None
            items = gate.matched
            unmatched = [i.name for i in gate.unmatched]

        order = turn.orders.replace_items(order, items, "edit_replace", turn.now)
        return OrderIngestResult(
            order_id=order.id,
            items=load_items(order),
            link_reason="edit_replace",
            stage=turn.state.stage,
            unmatched=unmatched,
        )

    def _apply_change(self, turn: _Turn) -> IngestResult:
        order = self._target_order(turn)
        if order is None:
            return NoneIngestResult(
                reason=NoneReason.NO_ACTIVE_ORDER,
                reply="There's no open order to change.",
            )
        if order.is_closed:
            return NoneIngestResult(reason=NoneReason.ORDER_CLOSED, order_id=order.id)

        items = load_items(order)
        modifier = self._collaborate(turn, self.modifier_parser.parse(turn.text, items))
        if modifier is None:
            return NoneIngestResult(
                reason=NoneReason.MODIFIER_UNPARSED,
                order_id=order.id,
                reply="Sorry, I couldn't tell what to change. Could you rephrase?",
            )

        result = apply_modifier(items, modifier)
        if result.status == ModifierStatus.AMBIGUOUS:
            session = turn.sessions.open(
                turn.tenant_id, turn.customer_key, order, modifier, result.candidates, turn.now
            )
            return ModifierIngestResult(
                status=result.status,
                order_id=order.id,
                items=items,
                summary=result.summary,
                candidates=result.candidates,
                disambiguation_id=session.id,
                reply=session.question,
            )

        if result.status == ModifierStatus.APPLIED:
            order = turn.orders.replace_items(
                order, result.items, f"modifier:{modifier.change.type}", turn.now
            )
            return ModifierIngestResult(
                status=result.status,
                order_id=order.id,
                items=result.items,
                summary=result.summary,
                reply=f"Done: {result.summary}.",
            )

        return ModifierIngestResult(
            status=result.status,
            order_id=order.id,
            items=items,
            summary=result.summary,
        )

    def _handle_order(self, turn: _Turn) -> IngestResult:
        products = list_products(turn.db, turn.tenant_id)
        parsed = self._collaborate(
            turn, self.order_parser.parse(turn.text, catalog_hint(products) or None)
        )

        if not parsed.items:
            detected = first_inquiry(turn.text)
            if detected is not None:
                kind, canonical = detected
                return self._inquiry(turn, IntentHints(inquiry_kind=kind, canonical=canonical))
            return NoneIngestResult(reason=NoneReason.NOT_ORDER)

        items = parsed.items
        unmatched: list[str] = []
        gate = reconcile(
            items,
            products,
            turn.text,
            self.config.single_word_min_overlap,
            self.config.multi_word_min_overlap,
        )
        if gate is not None:
            if gate.all_unmatched:
                names = ", ".join(i.name for i in gate.unmatched)
                return NoneIngestResult(
                    reason=NoneReason.CATALOG_UNMATCHED,
                    reply=f"Sorry, we couldn't find {names} in our catalog. Could you check the name?",
                )
            items = gate.matched
            unmatched = [i.name for i in gate.unmatched]

            flagged = gate.needs_clarify
            if (
                flagged
                and len(items) == 1
                and not parsed.is_order_like
                and not has_list_shape(turn.text)
            ):
                return self._hold_for_variant(turn, items[0])

        return self._commit_items(turn, items, unmatched)

    def _hold_for_variant(self, turn: _Turn, item: LineItem) -> NoneIngestResult:
        """Ask for a variant before committing a lone ambiguous item."""
        turn.pending.put(
            turn.tenant_id,
            turn.customer_key,
            PendingKind.VARIANT_CHOICE,
            {
                "item": item.model_dump(),
                "options": item.variant_options,
                "message_id": turn.message_id,
            },
            turn.now,
        )
        if turn.state.active_order_id and can_transition(
            turn.state.stage, StageEvent.CLARIFICATION_NEEDED
        ):
            self._advance(turn, StageEvent.CLARIFICATION_NEEDED, turn.state.active_order_id)
        return NoneIngestResult(
            reason=NoneReason.NEEDS_CLARIFICATION,
            reply=_variant_question(item, item.variant_options),
        )

    def _linking_candidate(self, turn: _Turn) -> Order | None:
        if turn.forced_order_id:
            return turn.orders.get_for_customer(
                turn.tenant_id, turn.customer_key, turn.forced_order_id
            )
        return turn.orders.latest(turn.tenant_id, turn.customer_key)

    def _commit_items(
        self,
        turn: _Turn,
        items: list[LineItem],
        unmatched: list[str],
        extra_reason: str | None = None,
    ) -> OrderIngestResult:
        """Link items to an order, persist them and advance the stage."""
        last = self._linking_candidate(turn)
        decision = decide(last, turn.text, self.config.merge_window_minutes, turn.now)
        audit = decision.reason.value if not extra_reason else f"{decision.reason.value}+{extra_reason}"

        if decision.action == LinkAction.APPEND and last is not None:
            offset = len(load_items(last))
            order = turn.orders.append_items(last, items, audit, turn.now)
            self._advance(turn, StageEvent.ITEMS_ADDED, order.id)
        else:
            offset = 0
            order = turn.orders.create(
                turn.tenant_id,
                turn.customer_key,
                items,
                audit,
                source_message_id=turn.message_id,
                now=turn.now,
            )
            self._advance(turn, StageEvent.ORDER_OPENED, order.id)

        order_items = load_items(order)
        clarifications = [
            ClarificationRequest(
                item_index=offset + i,
                item_name=_item_name(item),
                options=item.variant_options,
            )
            for i, item in enumerate(items)
            if item.needs_clarify
        ]

        replies: list[str] = []
        if unmatched:
            replies.append(f"We couldn't find {', '.join(unmatched)} in our catalog.")
        if clarifications:
            self._advance(turn, StageEvent.CLARIFICATION_NEEDED, order.id)
            first = clarifications[0]
            replies.append(_variant_question(order_items[first.item_index], first.options))
        else:
            if turn.state.stage == ConversationStage.awaiting_clarification.value and not any(
                it.needs_clarify for it in order_items
            ):
                self._advance(turn, StageEvent.CLARIFICATION_RESOLVED, order.id)
            address_prompt = self._maybe_request_address(turn, order)
            if address_prompt:
                replies.append(address_prompt)

        return OrderIngestResult(
            order_id=order.id,
            items=order_items,
            link_reason=decision.reason.value,
            stage=turn.state.stage,
            unmatched=unmatched,
            clarifications=clarifications,
            reply="\n".join(replies) or None,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _collaborate(turn: _Turn, coro: Coroutine[Any, Any, T]) -> T:
        """Run a collaborator coroutine on the caller's event loop and wait for it.

        Called from the worker thread; the collaborators keep their own
        asyncio timeouts and rule fallbacks.
        """
        return asyncio.run_coroutine_threadsafe(coro, turn.loop).result()

    async def _extract_address(self, text: str) -> str | None:
        return await asyncio.wait_for(
            asyncio.to_thread(self.address_extractor.extract, text),
            timeout=self.config.model_timeout_seconds,
        )

    @staticmethod
    def _seen(db: Session, fingerprint: str) -> bool:
        return db.execute(
            select(IngestEvent.id).where(IngestEvent.fingerprint == fingerprint)
        ).first() is not None

    @staticmethod
    def _error_result(code: str, **context: object) -> ErrorIngestResult:
        error = OrderDeskError.from_code(code, **context)
        logger.error("Ingest failed\n%s", format_error(error, include_remediation=False))
        return ErrorIngestResult(
            error=error.code,
            retryable=error.is_retryable,
            reply=error.user_message,
        )
