"""Automated proposal status transition engine.

Looks up the rule matching a proposal's current status and a trigger,
evaluates the rule's guard conditions, and applies the transition: status
and history update, status-specific bookkeeping, persistence, and one
workflow event.

Every failure is recoverable and reported through TransitionResult (never
raised). A failed attempt leaves the stored record unchanged: transitions are
applied to a copy that is saved only once the whole update is built.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from typing import Any

import structlog

from src.crm.proposals.conditions import evaluate_conditions, unmet_conditions
from src.crm.proposals.repository import TrackingRepository
from src.crm.proposals.rules import TRANSITION_RULES, find_applicable_rules
from src.crm.proposals.schemas import (
    ProposalStatus,
    ProposalTrackingRecord,
    ProposalTrigger,
    QueryStatus,
    StatusHistoryEntry,
    TransitionFailure,
    TransitionResult,
    TransitionRule,
    utc_now,
)
from src.crm.proposals.workflow_log import (
    WorkflowEventSink,
    build_status_changed_event,
)

logger = structlog.get_logger(__name__)


def _is_fresh_draft(record: ProposalTrackingRecord) -> bool:
    """True until the record's first transition has been applied."""
    return (
        record.current_status == ProposalStatus.PROPOSAL_IN_DRAFT
        and len(record.status_history) == 1
    )


class ProposalStatusEngine:
    """Executes rule-driven status transitions on proposal tracking records.

    The engine is the only writer of ``current_status`` and
    ``status_history``. It assumes a single writer per record; callers that
    share a store across threads must serialize access per proposal id.

    Args:
        repository: Tracking record store.
        event_sink: Workflow log receiving one event per applied transition.
            Optional; when None no events are emitted.
        rules: Ordered transition table (defaults to TRANSITION_RULES).
        clock: Source of the current time for callers that omit ``now``.
    """

    def __init__(
        self,
        repository: TrackingRepository,
        event_sink: WorkflowEventSink | None = None,
        *,
        rules: tuple[TransitionRule, ...] = TRANSITION_RULES,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._repo = repository
        self._sink = event_sink
        self._rules = rules
        self._clock = clock

    @property
    def repository(self) -> TrackingRepository:
        return self._repo

    def now(self) -> datetime:
        """Current time according to the engine's clock."""
        return self._clock()

    def transition(
        self,
        proposal_id: str,
        trigger: ProposalTrigger | str,
        metadata: dict[str, Any] | None = None,
        *,
        now: datetime | None = None,
        from_status: QueryStatus | None = None,
    ) -> TransitionResult:
        """Fire a trigger against a proposal and apply the first matching rule.

        Args:
            proposal_id: Proposal to transition.
            trigger: Trigger to fire.
            metadata: Context recorded in history and the workflow event.
            now: Evaluation and timestamp time (defaults to the engine clock).
            from_status: Query state to match rules against instead of the
                record's current status. Honoured only for the first
                transition of a freshly initialized draft; any other record
                gets NO_APPLICABLE_RULE.

        Returns:
            TransitionResult; truthy when the transition was applied.

        Raises:
            ValueError: If ``trigger`` or ``from_status`` is not a known value.
        """
        trigger = ProposalTrigger(trigger)
        if from_status is not None:
            from_status = QueryStatus(from_status)
        now = now or self.now()

        record = self._repo.get(proposal_id)
        if record is None:
            logger.warning(
                "proposal_engine.record_not_found",
                proposal_id=proposal_id,
                trigger=trigger.value,
            )
            return TransitionResult(
                ok=False,
                proposal_id=proposal_id,
                trigger=trigger,
                reason=TransitionFailure.RECORD_NOT_FOUND,
            )

        if from_status is not None and not _is_fresh_draft(record):
            logger.warning(
                "proposal_engine.query_source_rejected",
                proposal_id=proposal_id,
                current_status=record.current_status.value,
                from_status=from_status.value,
                trigger=trigger.value,
            )
            return TransitionResult(
                ok=False,
                proposal_id=proposal_id,
                trigger=trigger,
                reason=TransitionFailure.NO_APPLICABLE_RULE,
                previous_status=record.current_status,
            )

        source = from_status if from_status is not None else record.current_status

        applicable = find_applicable_rules(source, trigger, self._rules)
        if not applicable:
            logger.warning(
                "proposal_engine.no_applicable_rule",
                proposal_id=proposal_id,
                current_status=source.value,
                trigger=trigger.value,
            )
            return TransitionResult(
                ok=False,
                proposal_id=proposal_id,
                trigger=trigger,
                reason=TransitionFailure.NO_APPLICABLE_RULE,
                previous_status=source,
            )

        rule = applicable[0]
        if not evaluate_conditions(record, rule.conditions, now):
            logger.warning(
                "proposal_engine.conditions_not_met",
                proposal_id=proposal_id,
                from_status=source.value,
                to_status=rule.to_status.value,
                trigger=trigger.value,
                missing=unmet_conditions(record, rule.conditions, now),
            )
            return TransitionResult(
                ok=False,
                proposal_id=proposal_id,
                trigger=trigger,
                reason=TransitionFailure.GUARD_NOT_SATISFIED,
                previous_status=source,
            )

        updated = self._apply(record, rule.to_status, trigger, metadata or {}, now)
        self._repo.save(updated)
        self._emit(updated.query_id, source, rule.to_status, trigger, metadata, now)

        logger.info(
            "proposal_engine.transition_applied",
            proposal_id=proposal_id,
            query_id=updated.query_id,
            from_status=source.value,
            to_status=rule.to_status.value,
            trigger=trigger.value,
        )
        return TransitionResult(
            ok=True,
            proposal_id=proposal_id,
            trigger=trigger,
            previous_status=source,
            new_status=rule.to_status,
        )

    def _apply(
        self,
        record: ProposalTrackingRecord,
        new_status: ProposalStatus,
        trigger: ProposalTrigger,
        metadata: dict[str, Any],
        now: datetime,
    ) -> ProposalTrackingRecord:
        """Build the post-transition record without touching the original."""
        updated = record.model_copy(deep=True)
        updated.current_status = new_status
        updated.status_history.append(
            StatusHistoryEntry(
                status=new_status,
                timestamp=now,
                triggered_by=trigger.value,
                metadata=dict(metadata),
            )
        )

        if new_status == ProposalStatus.PROPOSAL_SENT:
            updated.proposal_sent_date = now
        elif new_status == ProposalStatus.PROPOSAL_VIEWED:
            updated.proposal_viewed_date = now
            updated.last_client_interaction = now
            updated.client_response_count += 1
        elif new_status == ProposalStatus.FOLLOW_UP_PENDING:
            updated.follow_up_count += 1
            updated.last_follow_up_date = now

        return updated

    def _emit(
        self,
        query_id: str,
        previous_status: ProposalStatus | QueryStatus,
        new_status: ProposalStatus,
        trigger: ProposalTrigger,
        metadata: dict[str, Any] | None,
        now: datetime,
    ) -> None:
        """Append the status_changed event; sink errors never undo a transition."""
        if self._sink is None:
            return

        event = build_status_changed_event(
            query_id, previous_status, new_status, trigger, now, metadata
        )
        try:
            self._sink.add_event(query_id, event)
        except Exception as exc:
            logger.warning(
                "proposal_engine.event_emit_failed",
                query_id=query_id,
                new_status=new_status.value,
                error=str(exc),
            )
