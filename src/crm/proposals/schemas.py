"""Pydantic data models for the proposal lifecycle tracker.

Defines the closed vocabularies (proposal statuses, query pseudo-states,
triggers, payment types), the declarative transition rule shape, the
per-proposal tracking record, and the result/report types returned by the
engine. Every other module in ``src.crm.proposals`` depends on these types.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# ── Enums ───────────────────────────────────────────────────────────────────


class ProposalStatus(str, Enum):
    """Lifecycle state of a proposal, ordered by typical progression."""

    PROPOSAL_IN_DRAFT = "proposal-in-draft"
    PROPOSAL_SENT = "proposal-sent"
    PROPOSAL_VIEWED = "proposal-viewed"
    MODIFICATION_REQUESTED = "modification-requested"
    REVISED_PROPOSAL_SENT = "revised-proposal-sent"
    FOLLOW_UP_PENDING = "follow-up-pending"
    NO_RESPONSE = "no-response"
    INTERESTED = "interested"
    NEGOTIATION = "negotiation"
    CONFIRMED = "confirmed"
    ADVANCE_RECEIVED = "advance-received"
    BOOKING_CONFIRMED = "booking-confirmed"


class QueryStatus(str, Enum):
    """Query lifecycle states that may source the first proposal transition.

    These belong to the enclosing travel query, not to the proposal. The
    engine never transitions a proposal into them.
    """

    ASSIGNED = "assigned"
    IN_PROGRESS = "in-progress"


class ProposalTrigger(str, Enum):
    """Discrete events that can fire a proposal status transition."""

    PROPOSAL_CREATED = "proposal-created"
    PROPOSAL_SENT = "proposal-sent"
    PROPOSAL_VIEWED = "proposal-viewed"
    CLIENT_FEEDBACK = "client-feedback"
    FOLLOW_UP_DUE = "follow-up-due"
    NO_RESPONSE_DETECTED = "no-response-detected"
    CLIENT_INTERESTED = "client-interested"
    NEGOTIATION_STARTED = "negotiation-started"
    PAYMENT_RECEIVED = "payment-received"
    BOOKING_COMPLETED = "booking-completed"
    # Produced by rejection feedback; no rule consumes it yet.
    CLIENT_REJECTED = "client-rejected"


class PaymentType(str, Enum):
    """Kind of payment recorded against a proposal."""

    ADVANCE = "advance"
    FULL_PAYMENT = "full-payment"


class TransitionFailure(str, Enum):
    """Recoverable reasons a transition attempt did not apply."""

    RECORD_NOT_FOUND = "record_not_found"
    NO_APPLICABLE_RULE = "no_applicable_rule"
    GUARD_NOT_SATISFIED = "guard_not_satisfied"
    NOT_DUE = "not_due"


# Statuses counted as converted for reporting.
CONVERTED_STATUSES: frozenset[ProposalStatus] = frozenset(
    {
        ProposalStatus.CONFIRMED,
        ProposalStatus.ADVANCE_RECEIVED,
        ProposalStatus.BOOKING_CONFIRMED,
    }
)


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


# ── Transition Rules ────────────────────────────────────────────────────────


class TransitionConditions(BaseModel):
    """Guard conditions for a transition rule (all present checks must hold).

    Attributes:
        days_since_last_activity: Minimum whole days since the last client
            interaction. Fails closed when no interaction has been recorded.
        follow_up_count: Minimum number of follow-ups already made.
        payment_received: Requires at least one recorded payment.
        client_response_required: Informational; always satisfied.
    """

    model_config = ConfigDict(frozen=True)

    days_since_last_activity: int | None = Field(default=None, ge=0)
    follow_up_count: int | None = Field(default=None, ge=0)
    payment_received: bool | None = None
    client_response_required: bool | None = None


class TransitionRule(BaseModel):
    """One row of the declarative transition table."""

    model_config = ConfigDict(frozen=True)

    from_status: ProposalStatus | QueryStatus
    to_status: ProposalStatus
    trigger: ProposalTrigger
    conditions: TransitionConditions | None = None


# ── Tracking Record ─────────────────────────────────────────────────────────


class StatusHistoryEntry(BaseModel):
    """A single entry in a proposal's append-only status history."""

    status: ProposalStatus
    timestamp: datetime
    triggered_by: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class PaymentRecord(BaseModel):
    """A payment received against a proposal."""

    amount: float = Field(ge=0.0)
    date: datetime
    type: PaymentType


class ProposalTrackingRecord(BaseModel):
    """Per-proposal lifecycle state owned by the transition engine.

    ``current_status`` always equals the status of the last history entry.
    Only the engine and the domain event handlers write to a record.
    """

    query_id: str
    proposal_id: str
    current_status: ProposalStatus = ProposalStatus.PROPOSAL_IN_DRAFT
    status_history: list[StatusHistoryEntry] = Field(default_factory=list)

    proposal_sent_date: datetime | None = None
    proposal_viewed_date: datetime | None = None
    last_client_interaction: datetime | None = None

    follow_up_count: int = Field(default=0, ge=0)
    last_follow_up_date: datetime | None = None
    client_response_count: int = Field(default=0, ge=0)

    payment_history: list[PaymentRecord] = Field(default_factory=list)


# ── External Collaborators ──────────────────────────────────────────────────


class QuerySnapshot(BaseModel):
    """Minimal view of the owning travel query, as reported by the query oracle."""

    query_id: str
    status: str


class WorkflowEvent(BaseModel):
    """Status-change record appended to the query workflow log."""

    type: str = "status_changed"
    query_id: str
    timestamp: datetime = Field(default_factory=utc_now)
    user_id: str = "automated-system"
    user_name: str = "Automated System"
    user_role: str = "system"
    details: str
    metadata: dict[str, Any] = Field(default_factory=dict)


# ── Results & Reports ───────────────────────────────────────────────────────


class TransitionResult(BaseModel):
    """Outcome of a transition attempt. Truthy only when the transition applied."""

    ok: bool
    proposal_id: str
    trigger: ProposalTrigger
    reason: TransitionFailure | None = None
    previous_status: ProposalStatus | QueryStatus | None = None
    new_status: ProposalStatus | None = None

    def __bool__(self) -> bool:
        return self.ok


class ProposalStats(BaseModel):
    """Aggregate reporting over all tracked proposals."""

    total_proposals: int = 0
    status_distribution: dict[str, int] = Field(default_factory=dict)
    average_time_to_view: float = Field(
        default=0.0, description="Mean hours between sending and first view"
    )
    conversion_rate: float = Field(
        default=0.0, description="Percent of proposals confirmed or beyond"
    )


class SweepReport(BaseModel):
    """Summary of one follow-up sweep over the tracking store."""

    checked: int = 0
    transitioned: list[str] = Field(default_factory=list)
    not_due: int = 0
    failed: dict[str, str] = Field(default_factory=dict)
