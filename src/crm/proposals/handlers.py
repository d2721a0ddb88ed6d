"""Domain event handlers that drive the proposal status engine.

Each handler translates a business event (proposal created, sent, viewed,
client feedback, payment) into a trigger plus metadata, performs the
bookkeeping the trigger alone cannot express, and delegates to
ProposalStatusEngine.transition().
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Protocol

import structlog

from src.crm.proposals.engine import ProposalStatusEngine
from src.crm.proposals.schemas import (
    PaymentRecord,
    PaymentType,
    ProposalTrackingRecord,
    ProposalTrigger,
    QuerySnapshot,
    QueryStatus,
    TransitionFailure,
    TransitionResult,
)

logger = structlog.get_logger(__name__)

SendMethod = Literal["email", "whatsapp", "portal"]
ViewSource = Literal["email", "portal"]
FeedbackKind = Literal["interested", "modification-requested", "negotiation", "rejection"]

# Client feedback kinds mapped to the trigger they fire.
FEEDBACK_TRIGGERS: dict[str, ProposalTrigger] = {
    "interested": ProposalTrigger.CLIENT_INTERESTED,
    "modification-requested": ProposalTrigger.CLIENT_FEEDBACK,
    "negotiation": ProposalTrigger.NEGOTIATION_STARTED,
    "rejection": ProposalTrigger.CLIENT_REJECTED,
}

# Query states from which a new proposal enters the tracked lifecycle.
_OPEN_QUERY_STATUSES = {status.value for status in QueryStatus}


class QueryStatusOracle(Protocol):
    """Read access to the owning travel query's lifecycle status."""

    def get_query_by_id(self, query_id: str) -> QuerySnapshot | None: ...


class ProposalEventHandlers:
    """Entry points for proposal lifecycle events.

    Args:
        engine: Transition engine (also provides the tracking repository).
        query_oracle: Source of query status for the first transition.
            When None, new proposals are initialized but never fire
            ``proposal-created``.
    """

    def __init__(
        self,
        engine: ProposalStatusEngine,
        query_oracle: QueryStatusOracle | None = None,
    ) -> None:
        self._engine = engine
        self._queries = query_oracle

    def on_proposal_created(
        self,
        query_id: str,
        proposal_id: str,
        *,
        now: datetime | None = None,
    ) -> ProposalTrackingRecord:
        """Start tracking a proposal and fire its first transition when allowed.

        The first transition fires only when the owning query is ``assigned``
        or ``in-progress``; drafts created ahead of assignment stay in
        ``proposal-in-draft`` with just the initial history entry.

        Raises:
            TrackingAlreadyExistsError: If the proposal is already tracked.
        """
        now = now or self._engine.now()
        record = self._engine.repository.initialize(query_id, proposal_id, now)

        query = self._queries.get_query_by_id(query_id) if self._queries else None
        if query is None or query.status not in _OPEN_QUERY_STATUSES:
            logger.info(
                "proposal_handlers.created_without_transition",
                query_id=query_id,
                proposal_id=proposal_id,
                query_status=query.status if query else None,
            )
            return record

        self._engine.transition(
            proposal_id,
            ProposalTrigger.PROPOSAL_CREATED,
            {
                "query_status": query.status,
                "proposal_created_at": now.isoformat(),
            },
            now=now,
            from_status=QueryStatus(query.status),
        )
        return self._engine.repository.get(proposal_id) or record

    def on_proposal_sent(
        self,
        proposal_id: str,
        method: SendMethod,
        *,
        now: datetime | None = None,
    ) -> TransitionResult:
        now = now or self._engine.now()
        return self._engine.transition(
            proposal_id,
            ProposalTrigger.PROPOSAL_SENT,
            {"send_method": method, "sent_at": now.isoformat()},
            now=now,
        )

    def on_proposal_viewed(
        self,
        proposal_id: str,
        client_id: str,
        source: ViewSource,
        *,
        now: datetime | None = None,
    ) -> TransitionResult:
        now = now or self._engine.now()
        return self._engine.transition(
            proposal_id,
            ProposalTrigger.PROPOSAL_VIEWED,
            {
                "client_id": client_id,
                "view_source": source,
                "viewed_at": now.isoformat(),
            },
            now=now,
        )

    def on_client_feedback(
        self,
        proposal_id: str,
        kind: FeedbackKind,
        *,
        now: datetime | None = None,
    ) -> TransitionResult:
        """Fire the trigger mapped to a client feedback kind.

        ``rejection`` maps to ``client-rejected``, which no rule accepts, so
        it currently returns NO_APPLICABLE_RULE without changing the record.

        Raises:
            ValueError: If ``kind`` is not a known feedback kind.
        """
        trigger = FEEDBACK_TRIGGERS.get(kind)
        if trigger is None:
            raise ValueError(f"Unknown feedback kind: {kind!r}")

        now = now or self._engine.now()
        return self._engine.transition(
            proposal_id,
            trigger,
            {"feedback_type": kind, "received_at": now.isoformat()},
            now=now,
        )

    def on_payment_received(
        self,
        proposal_id: str,
        amount: float,
        payment_type: Literal["advance", "full"] | PaymentType,
        *,
        now: datetime | None = None,
    ) -> TransitionResult:
        """Record a payment, then fire ``payment-received``.

        The payment is saved before the transition so the ``payment_received``
        guard observes it. It stays recorded even if the transition fails
        (e.g. the proposal is not yet confirmed).

        Raises:
            ValueError: If ``payment_type`` is unknown or ``amount`` is negative.
        """
        now = now or self._engine.now()
        repo = self._engine.repository

        record = repo.get(proposal_id)
        if record is None:
            logger.warning(
                "proposal_handlers.payment_for_unknown_proposal",
                proposal_id=proposal_id,
                amount=amount,
            )
            return TransitionResult(
                ok=False,
                proposal_id=proposal_id,
                trigger=ProposalTrigger.PAYMENT_RECEIVED,
                reason=TransitionFailure.RECORD_NOT_FOUND,
            )

        kind = (
            PaymentType.FULL_PAYMENT
            if payment_type == "full"
            else PaymentType(payment_type)
        )
        record.payment_history.append(PaymentRecord(amount=amount, date=now, type=kind))
        repo.save(record)

        logger.info(
            "proposal_handlers.payment_recorded",
            proposal_id=proposal_id,
            amount=amount,
            payment_type=kind.value,
            payments=len(record.payment_history),
        )

        return self._engine.transition(
            proposal_id,
            ProposalTrigger.PAYMENT_RECEIVED,
            {
                "amount": amount,
                "payment_type": kind.value,
                "received_at": now.isoformat(),
            },
            now=now,
        )
