"""Follow-up and no-response detection for stale proposals.

Pure, time-driven predicates over tracking records plus a detector that
turns a positive check into the matching proactive trigger. There is no
internal timer: a scheduler decides how often ``sweep()`` runs, and each run
recomputes everything from record state and ``now``.

Two thresholds are deliberately independent. The detector escalates a
``follow-up-pending`` proposal based on ``last_follow_up_date``, while the
``no-response-detected`` rule guard measures ``days_since_last_activity``
against ``last_client_interaction``. An escalation the detector considers
due can therefore still be refused by the engine.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

import structlog
from pydantic import BaseModel, Field

from src.crm.proposals.conditions import whole_days_between
from src.crm.proposals.engine import ProposalStatusEngine
from src.crm.proposals.schemas import (
    ProposalStatus,
    ProposalTrackingRecord,
    ProposalTrigger,
    SweepReport,
    TransitionFailure,
    TransitionResult,
)

logger = structlog.get_logger(__name__)


class FollowUpPolicy(BaseModel):
    """Thresholds (whole days / counts) for proactive follow-up detection."""

    follow_up_after_days: int = Field(
        default=3, ge=0, description="Days after last client activity before a sent proposal needs follow-up"
    )
    repeat_follow_up_after_days: int = Field(
        default=2, ge=0, description="Days after the last follow-up before another is due"
    )
    max_follow_ups: int = Field(
        default=2, ge=0, description="Follow-ups after which a proposal escalates to no-response"
    )
    no_response_after_days: int = Field(
        default=4, ge=0, description="Days after the last follow-up before escalating to no-response"
    )


DEFAULT_POLICY = FollowUpPolicy()


# ── Predicates ──────────────────────────────────────────────────────────────


def is_follow_up_due(
    record: ProposalTrackingRecord,
    now: datetime,
    policy: FollowUpPolicy = DEFAULT_POLICY,
) -> bool:
    """Whether a proposal needs a follow-up now.

    - ``proposal-sent``: the last client interaction is at least
      ``follow_up_after_days`` old. No recorded interaction means not due.
    - ``follow-up-pending``: fewer than ``max_follow_ups`` sent and the last
      follow-up is at least ``repeat_follow_up_after_days`` old.
    - Any other status: never due.
    """
    if record.current_status == ProposalStatus.PROPOSAL_SENT:
        last_activity = record.last_client_interaction
        return (
            last_activity is not None
            and whole_days_between(last_activity, now) >= policy.follow_up_after_days
        )

    if record.current_status == ProposalStatus.FOLLOW_UP_PENDING:
        last_follow_up = record.last_follow_up_date
        return (
            record.follow_up_count < policy.max_follow_ups
            and last_follow_up is not None
            and whole_days_between(last_follow_up, now)
            >= policy.repeat_follow_up_after_days
        )

    return False


def is_no_response_due(
    record: ProposalTrackingRecord,
    now: datetime,
    policy: FollowUpPolicy = DEFAULT_POLICY,
) -> bool:
    """Whether a follow-up-pending proposal should escalate to no-response."""
    if record.current_status != ProposalStatus.FOLLOW_UP_PENDING:
        return False
    last_follow_up = record.last_follow_up_date
    return (
        record.follow_up_count >= policy.max_follow_ups
        and last_follow_up is not None
        and whole_days_between(last_follow_up, now) >= policy.no_response_after_days
    )


def scan_for_follow_up(
    records: Iterable[ProposalTrackingRecord],
    now: datetime,
    policy: FollowUpPolicy = DEFAULT_POLICY,
) -> list[str]:
    """Proposal ids of every record for which a follow-up is due.

    Order follows the iteration order of ``records``.
    """
    return [r.proposal_id for r in records if is_follow_up_due(r, now, policy)]


# ── Detector ────────────────────────────────────────────────────────────────


class FollowUpDetector:
    """Fires proactive follow-up triggers through the transition engine.

    Args:
        engine: Transition engine (also provides the tracking repository).
        policy: Detection thresholds; defaults to DEFAULT_POLICY.
    """

    def __init__(
        self,
        engine: ProposalStatusEngine,
        policy: FollowUpPolicy | None = None,
    ) -> None:
        self._engine = engine
        self._policy = policy or DEFAULT_POLICY

    @property
    def policy(self) -> FollowUpPolicy:
        return self._policy

    def proposals_needing_follow_up(self, now: datetime | None = None) -> list[str]:
        """Scan the whole store for proposals due a follow-up."""
        now = now or self._engine.now()
        return scan_for_follow_up(
            self._engine.repository.list_all(), now, self._policy
        )

    def check_and_transition(
        self, proposal_id: str, now: datetime | None = None
    ) -> TransitionResult:
        """Fire ``follow-up-due`` or ``no-response-detected`` when one is due.

        The engine still applies the matched rule's guard, so a due check can
        come back as GUARD_NOT_SATISFIED. A follow-up-pending proposal that
        ``is_follow_up_due`` lists for a repeat follow-up is reported NOT_DUE
        here, since no rule fires follow-up-due from follow-up-pending.

        Returns:
            The engine's TransitionResult, or a NOT_DUE / RECORD_NOT_FOUND
            failure when no trigger was fired.
        """
        now = now or self._engine.now()
        record = self._engine.repository.get(proposal_id)
        if record is None:
            return TransitionResult(
                ok=False,
                proposal_id=proposal_id,
                trigger=ProposalTrigger.FOLLOW_UP_DUE,
                reason=TransitionFailure.RECORD_NOT_FOUND,
            )

        if record.current_status == ProposalStatus.PROPOSAL_SENT and is_follow_up_due(
            record, now, self._policy
        ):
            return self._engine.transition(
                proposal_id,
                ProposalTrigger.FOLLOW_UP_DUE,
                {
                    "reason": f"No response after {self._policy.follow_up_after_days} days",
                    "follow_up_number": record.follow_up_count + 1,
                },
                now=now,
            )

        if is_no_response_due(record, now, self._policy):
            return self._engine.transition(
                proposal_id,
                ProposalTrigger.NO_RESPONSE_DETECTED,
                {
                    "reason": "No response after multiple follow-ups",
                    "total_follow_ups": record.follow_up_count,
                },
                now=now,
            )

        logger.debug(
            "follow_up_detector.not_due",
            proposal_id=proposal_id,
            current_status=record.current_status.value,
        )
        trigger = (
            ProposalTrigger.NO_RESPONSE_DETECTED
            if record.current_status == ProposalStatus.FOLLOW_UP_PENDING
            else ProposalTrigger.FOLLOW_UP_DUE
        )
        return TransitionResult(
            ok=False,
            proposal_id=proposal_id,
            trigger=trigger,
            reason=TransitionFailure.NOT_DUE,
            previous_status=record.current_status,
        )

    def sweep(self, now: datetime | None = None) -> SweepReport:
        """Run ``check_and_transition`` over every tracked proposal.

        Safe to re-run: a proposal that was not due, or whose guard failed,
        is simply checked again on the next sweep.
        """
        now = now or self._engine.now()
        report = SweepReport()

        for record in self._engine.repository.list_all():
            report.checked += 1
            result = self.check_and_transition(record.proposal_id, now)
            if result.ok:
                report.transitioned.append(record.proposal_id)
            elif result.reason == TransitionFailure.NOT_DUE:
                report.not_due += 1
            else:
                report.failed[record.proposal_id] = result.reason.value

        logger.info(
            "follow_up_detector.sweep_complete",
            checked=report.checked,
            transitioned=len(report.transitioned),
            not_due=report.not_due,
            failed=len(report.failed),
        )
        return report
