"""Proposal lifecycle tracking -- automated status transitions and follow-up detection.

Provides the status/trigger vocabulary and tracking record models, the
declarative transition table, guard evaluation, the transition engine and
its domain event handlers, the follow-up detector, and a service facade
that wires them around a tracking repository.
"""

from __future__ import annotations

from src.crm.proposals.engine import ProposalStatusEngine
from src.crm.proposals.followup import FollowUpDetector, FollowUpPolicy
from src.crm.proposals.handlers import ProposalEventHandlers
from src.crm.proposals.repository import (
    InMemoryTrackingRepository,
    TrackingAlreadyExistsError,
)
from src.crm.proposals.schemas import (
    ProposalStatus,
    ProposalTrackingRecord,
    ProposalTrigger,
    TransitionFailure,
    TransitionResult,
)
from src.crm.proposals.service import ProposalTrackingService

__all__ = [
    "FollowUpDetector",
    "FollowUpPolicy",
    "InMemoryTrackingRepository",
    "ProposalEventHandlers",
    "ProposalStatus",
    "ProposalStatusEngine",
    "ProposalTrackingRecord",
    "ProposalTrackingService",
    "ProposalTrigger",
    "TrackingAlreadyExistsError",
    "TransitionFailure",
    "TransitionResult",
]
