"""Conversation stage state machine with compare-and-swap persistence.

Each tenant+customer has one ConversationState row, created lazily on the
first inbound message. The stage only changes through transition(), which
looks the (stage, event) pair up in TRANSITIONS and writes the new stage
with an UPDATE guarded by the row version. Losing that race raises
ConcurrentUpdateError instead of silently clobbering another writer.
"""

import logging
from datetime import UTC, datetime, timedelta
from enum import Enum

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from src.db.models import ConversationStage, ConversationState, parse_iso
from src.errors.domain import ConcurrentUpdateError, InvalidTransitionError
from src.utils.redaction import redact_customer_key

logger = logging.getLogger(__name__)


class StageEvent(str, Enum):
    """Events that drive the conversation stage."""

    ORDER_OPENED = "order_opened"
    ITEMS_ADDED = "items_added"
    CLARIFICATION_NEEDED = "clarification_needed"
    CLARIFICATION_RESOLVED = "clarification_resolved"
    ADDRESS_REQUESTED = "address_requested"
    ORDER_FINALIZED = "order_finalized"
    RESET = "reset"


_S = ConversationStage

# (from stage, event) -> to stage. RESET is legal from every stage.
TRANSITIONS: dict[tuple[ConversationStage, StageEvent], ConversationStage] = {
    (_S.idle, StageEvent.ORDER_OPENED): _S.building_order,
    (_S.building_order, StageEvent.ORDER_OPENED): _S.building_order,
    (_S.awaiting_clarification, StageEvent.ORDER_OPENED): _S.building_order,
    (_S.awaiting_address, StageEvent.ORDER_OPENED): _S.building_order,
    (_S.post_order, StageEvent.ORDER_OPENED): _S.building_order,
    (_S.building_order, StageEvent.ITEMS_ADDED): _S.building_order,
    (_S.awaiting_clarification, StageEvent.ITEMS_ADDED): _S.awaiting_clarification,
    (_S.awaiting_address, StageEvent.ITEMS_ADDED): _S.building_order,
    (_S.post_order, StageEvent.ITEMS_ADDED): _S.building_order,
    (_S.building_order, StageEvent.CLARIFICATION_NEEDED): _S.awaiting_clarification,
    (_S.awaiting_clarification, StageEvent.CLARIFICATION_NEEDED): _S.awaiting_clarification,
    (_S.awaiting_clarification, StageEvent.CLARIFICATION_RESOLVED): _S.building_order,
    (_S.building_order, StageEvent.ADDRESS_REQUESTED): _S.awaiting_address,
    (_S.awaiting_clarification, StageEvent.ADDRESS_REQUESTED): _S.awaiting_address,
    (_S.awaiting_address, StageEvent.ORDER_FINALIZED): _S.post_order,
}
TRANSITIONS.update({(stage, StageEvent.RESET): _S.idle for stage in ConversationStage})


def next_stage(stage: ConversationStage | str, event: StageEvent) -> ConversationStage:
    """Target stage for an event, raising InvalidTransitionError if illegal."""
    current = ConversationStage(stage)
    target = TRANSITIONS.get((current, event))
    if target is None:
        raise InvalidTransitionError(current.value, event.value)
    return target


def can_transition(stage: ConversationStage | str, event: StageEvent) -> bool:
    return (ConversationStage(stage), event) in TRANSITIONS


class ConversationStateService:
    """Reads and transitions the per-customer conversation stage.

    Attributes:
        db: SQLAlchemy session for database operations.
    """

    def __init__(self, db: Session) -> None:
        """Initialize the service with a database session.

        Args:
            db: SQLAlchemy session for database operations.
        """
        self.db = db

    def get(self, tenant_id: str, customer_key: str) -> ConversationState | None:
        return self.db.execute(
            select(ConversationState).where(
                ConversationState.tenant_id == tenant_id,
                ConversationState.customer_key == customer_key,
            )
        ).scalar_one_or_none()

    def get_or_create(self, tenant_id: str, customer_key: str) -> ConversationState:
        """Return the state row, creating an idle one on first contact.

        A concurrent first insert from another process fails on the unique
        (tenant_id, customer_key) constraint at flush time.
        """
        state = self.get(tenant_id, customer_key)
        if state is not None:
            return state

        state = ConversationState(
            tenant_id=tenant_id,
            customer_key=customer_key,
            stage=ConversationStage.idle.value,
            version=1,
        )
        self.db.add(state)
        self.db.flush()
        logger.debug("Created conversation state for %s", redact_customer_key(customer_key))
        return state

    def transition(
        self,
        state: ConversationState,
        event: StageEvent,
        active_order_id: str | None = None,
        keep_active_order: bool = True,
        last_action: str | None = None,
        now: datetime | None = None,
    ) -> ConversationState:
        """Apply an event to the stage with a compare-and-swap write.

        Args:
            state: Current state row as read by this request.
            event: Stage event.
            active_order_id: New active order pointer, if any.
            keep_active_order: When active_order_id is None, keep the
                existing pointer instead of clearing it.
            last_action: Audit tag; defaults to the event name.
            now: Timestamp recorded as updated_at.

        Returns:
            The refreshed state row.

        Raises:
            InvalidTransitionError: Event not legal from the current stage.
            ConcurrentUpdateError: Another writer changed the row first.
        """
        target = next_stage(state.stage, event)
        if active_order_id is None and keep_active_order:
            active_order_id = state.active_order_id

        seen_version = state.version
        result = self.db.execute(
            update(ConversationState)
            .where(
                ConversationState.id == state.id,
                ConversationState.version == seen_version,
            )
            .values(
                stage=target.value,
                active_order_id=active_order_id,
                last_action=last_action or event.value,
                version=seen_version + 1,
                updated_at=(now or datetime.now(UTC)).isoformat(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConcurrentUpdateError("ConversationState", state.id)

        previous = state.stage
        self.db.refresh(state)
        logger.debug(
            "Stage %s --%s--> %s for %s",
            previous,
            event.value,
            target.value,
            redact_customer_key(state.customer_key),
        )
        return state

    def reset(
        self,
        state: ConversationState,
        last_action: str = "reset",
        now: datetime | None = None,
    ) -> ConversationState:
        """Back to idle, clearing the active order."""
        return self.transition(
            state,
            StageEvent.RESET,
            active_order_id=None,
            keep_active_order=False,
            last_action=last_action,
            now=now,
        )

    def expire_if_stale(
        self,
        state: ConversationState,
        ttl_minutes: int,
        now: datetime | None = None,
    ) -> bool:
        """Reset a non-idle stage untouched for longer than ttl_minutes.

        Returns:
            True when the stage was reset.
        """
        if ttl_minutes <= 0 or state.stage == ConversationStage.idle.value:
            return False
        updated_at = parse_iso(state.updated_at)
        now = now or datetime.now(UTC)
        if updated_at is None or now - updated_at <= timedelta(minutes=ttl_minutes):
            return False
        logger.info(
            "Stage %s for %s idle past %d min; resetting",
            state.stage,
            redact_customer_key(state.customer_key),
            ttl_minutes,
        )
        self.reset(state, last_action="stage_expired", now=now)
        return True
