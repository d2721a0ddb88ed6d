"""Tracking record storage for the proposal lifecycle engine.

Defines the TrackingRepository protocol the engine depends on and an
in-memory implementation. The in-memory store keeps a secondary
``query_id -> [proposal_id, ...]`` index so lookups by query are
deterministic (earliest initialized proposal first).

Records handed out by the in-memory store are deep copies; writes go
through ``save()`` only.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

import structlog

from src.crm.proposals.schemas import (
    ProposalStatus,
    ProposalTrackingRecord,
    StatusHistoryEntry,
    utc_now,
)

logger = structlog.get_logger(__name__)


class TrackingAlreadyExistsError(ValueError):
    """Raised when tracking is initialized twice for the same proposal."""

    def __init__(self, proposal_id: str) -> None:
        self.proposal_id = proposal_id
        super().__init__(f"Tracking already initialized for proposal {proposal_id}")


def new_tracking_record(
    query_id: str, proposal_id: str, now: datetime
) -> ProposalTrackingRecord:
    """Build a fresh draft record with its initial history entry."""
    return ProposalTrackingRecord(
        query_id=query_id,
        proposal_id=proposal_id,
        current_status=ProposalStatus.PROPOSAL_IN_DRAFT,
        status_history=[
            StatusHistoryEntry(
                status=ProposalStatus.PROPOSAL_IN_DRAFT,
                timestamp=now,
                triggered_by="system",
                metadata={"reason": "Initial proposal creation"},
            )
        ],
    )


class TrackingRepository(Protocol):
    """Storage contract for proposal tracking records."""

    def initialize(
        self, query_id: str, proposal_id: str, now: datetime | None = None
    ) -> ProposalTrackingRecord: ...

    def get(self, proposal_id: str) -> ProposalTrackingRecord | None: ...

    def save(self, record: ProposalTrackingRecord) -> None: ...

    def find_by_query_id(self, query_id: str) -> ProposalTrackingRecord | None: ...

    def list_by_query_id(self, query_id: str) -> list[ProposalTrackingRecord]: ...

    def list_all(self) -> list[ProposalTrackingRecord]: ...


class InMemoryTrackingRepository:
    """Process-local tracking store keyed by proposal id."""

    def __init__(self) -> None:
        self._records: dict[str, ProposalTrackingRecord] = {}
        self._by_query: dict[str, list[str]] = {}

    def __len__(self) -> int:
        return len(self._records)

    def initialize(
        self, query_id: str, proposal_id: str, now: datetime | None = None
    ) -> ProposalTrackingRecord:
        """Create the tracking record for a new proposal.

        Args:
            query_id: Owning travel query.
            proposal_id: Proposal to track.
            now: Creation time (defaults to current UTC time).

        Returns:
            The newly created record (a copy).

        Raises:
            TrackingAlreadyExistsError: If the proposal is already tracked.
        """
        if proposal_id in self._records:
            raise TrackingAlreadyExistsError(proposal_id)

        record = new_tracking_record(query_id, proposal_id, now or utc_now())
        self._records[proposal_id] = record
        self._by_query.setdefault(query_id, []).append(proposal_id)

        logger.info(
            "tracking_repository.initialized",
            query_id=query_id,
            proposal_id=proposal_id,
        )
        return record.model_copy(deep=True)

    def get(self, proposal_id: str) -> ProposalTrackingRecord | None:
        record = self._records.get(proposal_id)
        return record.model_copy(deep=True) if record is not None else None

    def save(self, record: ProposalTrackingRecord) -> None:
        """Replace the stored record for an already-initialized proposal.

        Raises:
            KeyError: If the proposal was never initialized.
        """
        if record.proposal_id not in self._records:
            raise KeyError(f"No tracking record for proposal {record.proposal_id}")
        self._records[record.proposal_id] = record.model_copy(deep=True)

    def find_by_query_id(self, query_id: str) -> ProposalTrackingRecord | None:
        proposal_ids = self._by_query.get(query_id)
        if not proposal_ids:
            return None
        return self.get(proposal_ids[0])

    def list_by_query_id(self, query_id: str) -> list[ProposalTrackingRecord]:
        return [
            self._records[pid].model_copy(deep=True)
            for pid in self._by_query.get(query_id, [])
        ]

    def list_all(self) -> list[ProposalTrackingRecord]:
        return [r.model_copy(deep=True) for r in self._records.values()]
