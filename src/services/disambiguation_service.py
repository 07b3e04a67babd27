"""Disambiguation sessions: "which item did you mean?".

When a modifier matches several items, a session stores the question, the
option labels and the parallel candidate item indexes, plus the modifier
that triggered it. A later reply is mapped back to exactly one candidate
or to nothing, in which case the session stays pending and the question is
asked again.

Methods do NOT call db.commit(); the ingest service owns the transaction.
"""

import json
import logging
import re
from datetime import UTC, datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from src.db.models import (
    DisambiguationSession,
    DisambiguationStatus,
    Order,
    parse_iso,
)
from src.orchestrator.models.order import ModifierCandidate, ModifierPayload
from src.orchestrator.nl_engine.text_shape import normalize_text

logger = logging.getLogger(__name__)

DEFAULT_TTL_MINUTES = 30

SCORE_PREFIX = 2
SCORE_CONTAINS = 1

_ORDINALS = {
    "first": 1, "1st": 1, "second": 2, "2nd": 2, "third": 3, "3rd": 3,
    "fourth": 4, "4th": 4, "fifth": 5, "5th": 5, "last": -1,
}
_REPLY_FILLER = re.compile(r"^(the\s+|option\s+|no\.\s*|no\s+|number\s+|#\s*)+|(\s+one|\s+please|\s+pls)+$")


def pick_candidate_index(
    options: list[str],
    candidate_indexes: list[int],
    reply: str | None,
) -> int | None:
    """Map a reply to one entry of candidate_indexes.

    Tries a 1-indexed number against options, then an exact label match,
    then the single best prefix/contains match. Ties and misses give None.

    Args:
        options: Option labels, parallel to candidate_indexes.
        candidate_indexes: Item indexes the question offered.
        reply: Customer's reply text.

    Returns:
        The chosen item index, or None when the reply is not a clear pick.
    """
    low = normalize_text(reply).strip("!.?, ")
    if not low or not options:
        return None

    bare = _REPLY_FILLER.sub("", low).strip()
    if bare.isdigit():
        n = int(bare)
        if 1 <= n <= len(options):
            return candidate_indexes[n - 1]
        return None
    if bare in _ORDINALS:
        n = _ORDINALS[bare]
        if n == -1:
            return candidate_indexes[-1]
        if n <= len(options):
            return candidate_indexes[n - 1]
        return None

    phrase = bare or low
    labels = [normalize_text(o) for o in options]
    for i, label in enumerate(labels):
        if label == low or label == phrase:
            return candidate_indexes[i]

    scores = []
    for label in labels:
        if label.startswith(phrase) or phrase.startswith(label):
            scores.append(SCORE_PREFIX)
        elif phrase in label or label in phrase:
            scores.append(SCORE_CONTAINS)
        else:
            scores.append(0)
    best = max(scores)
    if best == 0 or scores.count(best) > 1:
        return None
    return candidate_indexes[scores.index(best)]


def build_question(candidates: list[ModifierCandidate]) -> str:
    """Numbered question listing the candidate items."""
    lines = ["Which item did you mean?"]
    for n, candidate in enumerate(candidates, 1):
        qty = f" (qty {candidate.qty})" if candidate.qty is not None else ""
        lines.append(f"{n}. {candidate.label}{qty}")
    lines.append("Reply with the number.")
    return "\n".join(lines)


class DisambiguationService:
    """Session store operations for pending disambiguation questions."""

    def __init__(self, db: Session, ttl_minutes: int = DEFAULT_TTL_MINUTES) -> None:
        """Initialize with a SQLAlchemy session.

        Args:
            db: Active database session.
            ttl_minutes: Minutes a question stays answerable.
        """
        self.db = db
        self.ttl_minutes = ttl_minutes

    def open(
        self,
        tenant_id: str,
        customer_key: str,
        order: Order,
        modifier: ModifierPayload,
        candidates: list[ModifierCandidate],
        now: datetime | None = None,
    ) -> DisambiguationSession:
        """Persist a new pending question, superseding any other pending one.

        Args:
            tenant_id: Tenant.
            customer_key: Customer.
            order: Order the modifier targets.
            modifier: The modifier that was ambiguous.
            candidates: One candidate per matching item, in item order.
            now: Reference time.

        Returns:
            The new pending DisambiguationSession.
        """
        now = now or datetime.now(UTC)
        superseded = self.expire_all(tenant_id, customer_key)
        if superseded:
            logger.info("Superseded %d pending disambiguation session(s)", superseded)

        session = DisambiguationSession(
            tenant_id=tenant_id,
            customer_key=customer_key,
            order_id=order.id,
            question=build_question(candidates),
            options_json=json.dumps([c.label for c in candidates]),
            candidate_indexes_json=json.dumps([c.index for c in candidates]),
            modifier_json=modifier.model_dump_json(),
            status=DisambiguationStatus.pending.value,
            created_at=now.isoformat(),
            expires_at=(now + timedelta(minutes=self.ttl_minutes)).isoformat(),
        )
        self.db.add(session)
        self.db.flush()
        return session

    def get_pending(
        self,
        tenant_id: str,
        customer_key: str,
        now: datetime | None = None,
    ) -> DisambiguationSession | None:
        """Return the customer's pending session, expiring it if stale."""
        session = self.db.execute(
            select(DisambiguationSession)
            .where(
                DisambiguationSession.tenant_id == tenant_id,
                DisambiguationSession.customer_key == customer_key,
                DisambiguationSession.status == DisambiguationStatus.pending.value,
            )
            .order_by(DisambiguationSession.created_at.desc())
        ).scalars().first()
        if session is None:
            return None

        now = now or datetime.now(UTC)
        expires_at = parse_iso(session.expires_at)
        if expires_at is not None and now > expires_at:
            self.expire(session)
            return None
        return session

    def resolve(self, session: DisambiguationSession, reply: str) -> int | None:
        """Map a reply to one candidate item index, or None to re-ask."""
        return pick_candidate_index(session.options, session.candidate_indexes, reply)

    def modifier_for(self, session: DisambiguationSession) -> ModifierPayload:
        """The modifier that opened the session."""
        return ModifierPayload.model_validate_json(session.modifier_json)

    def mark_resolved(self, session: DisambiguationSession, now: datetime | None = None) -> None:
        session.status = DisambiguationStatus.resolved.value
        session.resolved_at = (now or datetime.now(UTC)).isoformat()
        self.db.flush()

    def expire(self, session: DisambiguationSession) -> None:
        session.status = DisambiguationStatus.expired.value
        self.db.flush()

    def expire_all(self, tenant_id: str, customer_key: str) -> int:
        """Expire every pending session for the customer. Returns the count."""
        result = self.db.execute(
            update(DisambiguationSession)
            .where(
                DisambiguationSession.tenant_id == tenant_id,
                DisambiguationSession.customer_key == customer_key,
                DisambiguationSession.status == DisambiguationStatus.pending.value,
            )
            .values(status=DisambiguationStatus.expired.value)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount or 0
