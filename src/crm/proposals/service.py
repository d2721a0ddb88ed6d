"""Proposal tracking service -- wiring and read-side queries.

Bundles the engine, domain event handlers, and follow-up detector around a
single tracking repository, and answers the reporting queries consumed by
the UI (lookups, follow-up list, aggregate stats).
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

import structlog

from src.crm.proposals.engine import ProposalStatusEngine
from src.crm.proposals.followup import FollowUpDetector, FollowUpPolicy
from src.crm.proposals.handlers import ProposalEventHandlers, QueryStatusOracle
from src.crm.proposals.repository import InMemoryTrackingRepository, TrackingRepository
from src.crm.proposals.schemas import (
    CONVERTED_STATUSES,
    ProposalStats,
    ProposalTrackingRecord,
    utc_now,
)
from src.crm.proposals.workflow_log import InMemoryWorkflowLog, WorkflowEventSink

logger = structlog.get_logger(__name__)

_SECONDS_PER_HOUR = 3600.0


class ProposalTrackingService:
    """Facade over the proposal lifecycle components.

    Args:
        repository: Tracking store; defaults to a fresh in-memory store.
        event_sink: Workflow log; defaults to a fresh in-memory log.
        query_oracle: Query status source for the first transition.
        policy: Follow-up detection thresholds.
        clock: Time source shared by every component.
    """

    def __init__(
        self,
        repository: TrackingRepository | None = None,
        event_sink: WorkflowEventSink | None = None,
        query_oracle: QueryStatusOracle | None = None,
        policy: FollowUpPolicy | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.repository = repository if repository is not None else InMemoryTrackingRepository()
        self.event_sink = event_sink if event_sink is not None else InMemoryWorkflowLog()
        self.engine = ProposalStatusEngine(self.repository, self.event_sink, clock=clock)
        self.handlers = ProposalEventHandlers(self.engine, query_oracle)
        self.detector = FollowUpDetector(self.engine, policy)

    # ── Lookups ──────────────────────────────────────────────────────────

    def get_tracking(self, proposal_id: str) -> ProposalTrackingRecord | None:
        return self.repository.get(proposal_id)

    def get_tracking_by_query_id(self, query_id: str) -> ProposalTrackingRecord | None:
        return self.repository.find_by_query_id(query_id)

    def get_proposals_needing_follow_up(self, now: datetime | None = None) -> list[str]:
        return self.detector.proposals_needing_follow_up(now)

    # ── Reporting ────────────────────────────────────────────────────────

    def get_proposal_stats(self) -> ProposalStats:
        """Aggregate status distribution, time-to-view, and conversion rate.

        ``average_time_to_view`` is the mean number of hours between
        ``proposal_sent_date`` and ``proposal_viewed_date`` over proposals that
        have both. ``conversion_rate`` is the percentage of proposals whose
        current status is confirmed, advance-received, or booking-confirmed.
        """
        records = self.repository.list_all()
        if not records:
            return ProposalStats()

        distribution: dict[str, int] = {}
        for record in records:
            key = record.current_status.value
            distribution[key] = distribution.get(key, 0) + 1

        view_hours = [
            (r.proposal_viewed_date - r.proposal_sent_date).total_seconds()
            / _SECONDS_PER_HOUR
            for r in records
            if r.proposal_sent_date is not None and r.proposal_viewed_date is not None
        ]
        average_time_to_view = sum(view_hours) / len(view_hours) if view_hours else 0.0

        converted = sum(1 for r in records if r.current_status in CONVERTED_STATUSES)
        conversion_rate = converted / len(records) * 100

        stats = ProposalStats(
            total_proposals=len(records),
            status_distribution=distribution,
            average_time_to_view=average_time_to_view,
            conversion_rate=conversion_rate,
        )
        logger.debug(
            "proposal_service.stats_computed",
            total=stats.total_proposals,
            conversion_rate=stats.conversion_rate,
        )
        return stats
