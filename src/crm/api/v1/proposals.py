"""REST API endpoints for proposal lifecycle tracking.

Read-side lookups and reporting for the UI, a manual trigger endpoint, and
a follow-up sweep endpoint for an external scheduler. The tracking service
is resolved from ``app.state.proposal_service``.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request, status
from pydantic import BaseModel, Field

from src.crm.proposals.schemas import (
    ProposalStats,
    ProposalTrackingRecord,
    ProposalTrigger,
    SweepReport,
    TransitionFailure,
    TransitionResult,
)
from src.crm.proposals.service import ProposalTrackingService

router = APIRouter(prefix="/proposals", tags=["proposals"])


# ── Request / Response Schemas ───────────────────────────────────────────────


class TransitionRequest(BaseModel):
    """Request body for firing a trigger against a proposal."""

    trigger: ProposalTrigger
    metadata: dict[str, Any] = Field(default_factory=dict)


class FollowUpListResponse(BaseModel):
    """Proposals currently due a follow-up."""

    proposal_ids: list[str] = Field(default_factory=list)


# ── Dependency Injection Helper ──────────────────────────────────────────────


def _get_proposal_service(request: Request) -> ProposalTrackingService:
    """Retrieve ProposalTrackingService from app.state, 503 if not available."""
    service = getattr(request.app.state, "proposal_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Proposal tracking not initialized",
        )
    return service


# ── Tracking Endpoints ───────────────────────────────────────────────────────


@router.get("/tracking/by-query/{query_id}", response_model=ProposalTrackingRecord)
async def get_tracking_by_query(query_id: str, request: Request) -> ProposalTrackingRecord:
    """Get the tracking record of the first proposal created for a query."""
    service = _get_proposal_service(request)
    record = service.get_tracking_by_query_id(query_id)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No proposal tracking for query: {query_id}",
        )
    return record


@router.get("/tracking/{proposal_id}", response_model=ProposalTrackingRecord)
async def get_tracking(proposal_id: str, request: Request) -> ProposalTrackingRecord:
    """Get the tracking record for a proposal."""
    service = _get_proposal_service(request)
    record = service.get_tracking(proposal_id)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Proposal tracking not found: {proposal_id}",
        )
    return record


@router.get("/stats", response_model=ProposalStats)
async def get_stats(request: Request) -> ProposalStats:
    """Aggregate proposal statistics."""
    service = _get_proposal_service(request)
    return service.get_proposal_stats()


# ── Follow-Up Endpoints ──────────────────────────────────────────────────────


@router.get("/follow-ups", response_model=FollowUpListResponse)
async def list_follow_ups(request: Request) -> FollowUpListResponse:
    """List proposals currently due a follow-up."""
    service = _get_proposal_service(request)
    return FollowUpListResponse(proposal_ids=service.get_proposals_needing_follow_up())


@router.post("/follow-ups/sweep", response_model=SweepReport)
async def run_follow_up_sweep(request: Request) -> SweepReport:
    """Run one follow-up sweep over every tracked proposal."""
    service = _get_proposal_service(request)
    return service.detector.sweep()


# ── Transition Endpoint ──────────────────────────────────────────────────────


@router.post("/{proposal_id}/transitions", response_model=TransitionResult)
async def fire_transition(
    proposal_id: str,
    body: TransitionRequest,
    request: Request,
) -> TransitionResult:
    """Fire a trigger against a proposal.

    404 when the proposal is not tracked, 409 when no rule applies or the
    rule's conditions are not met.
    """
    service = _get_proposal_service(request)
    result = service.engine.transition(proposal_id, body.trigger, body.metadata)
    if result.reason == TransitionFailure.RECORD_NOT_FOUND:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Proposal tracking not found: {proposal_id}",
        )
    if not result.ok:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "reason": result.reason.value if result.reason else None,
                "current_status": (
                    result.previous_status.value if result.previous_status else None
                ),
                "trigger": result.trigger.value,
            },
        )
    return result
