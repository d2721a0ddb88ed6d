"""Shared fixtures for proposal tracking tests.

Provides:
- A fixed clock (NOW) so elapsed-day checks are deterministic
- In-memory tracking repository and workflow log
- Engine, handlers, and follow-up detector wired to them
- A query status oracle test double
- seed_record: put a tracked proposal directly into any lifecycle state
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

import pytest

from src.crm.proposals.engine import ProposalStatusEngine
from src.crm.proposals.followup import FollowUpDetector
from src.crm.proposals.handlers import ProposalEventHandlers
from src.crm.proposals.repository import InMemoryTrackingRepository
from src.crm.proposals.schemas import (
    ProposalStatus,
    ProposalTrackingRecord,
    QuerySnapshot,
    StatusHistoryEntry,
)
from src.crm.proposals.workflow_log import InMemoryWorkflowLog

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


class FakeQueryOracle:
    """In-memory query status lookup."""

    def __init__(self, statuses: dict[str, str] | None = None) -> None:
        self.statuses: dict[str, str] = dict(statuses or {})

    def get_query_by_id(self, query_id: str) -> QuerySnapshot | None:
        status = self.statuses.get(query_id)
        if status is None:
            return None
        return QuerySnapshot(query_id=query_id, status=status)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def repo() -> InMemoryTrackingRepository:
    return InMemoryTrackingRepository()


@pytest.fixture
def workflow_log() -> InMemoryWorkflowLog:
    return InMemoryWorkflowLog()


@pytest.fixture
def engine(
    repo: InMemoryTrackingRepository, workflow_log: InMemoryWorkflowLog
) -> ProposalStatusEngine:
    """Engine whose clock is frozen at NOW."""
    return ProposalStatusEngine(repo, workflow_log, clock=lambda: NOW)


@pytest.fixture
def query_oracle() -> FakeQueryOracle:
    return FakeQueryOracle()


@pytest.fixture
def handlers(
    engine: ProposalStatusEngine, query_oracle: FakeQueryOracle
) -> ProposalEventHandlers:
    return ProposalEventHandlers(engine, query_oracle)


@pytest.fixture
def detector(engine: ProposalStatusEngine) -> FollowUpDetector:
    return FollowUpDetector(engine)


@pytest.fixture
def seed_record(
    repo: InMemoryTrackingRepository,
) -> Callable[..., ProposalTrackingRecord]:
    """Factory placing a tracked proposal in an arbitrary state.

    The seeded status is appended to history so current_status always
    matches the last history entry.
    """

    def _seed(
        proposal_id: str = "P1",
        status: ProposalStatus = ProposalStatus.PROPOSAL_IN_DRAFT,
        *,
        query_id: str = "Q1",
        **fields: Any,
    ) -> ProposalTrackingRecord:
        record = repo.initialize(query_id, proposal_id, NOW)
        if status != ProposalStatus.PROPOSAL_IN_DRAFT:
            record.current_status = status
            record.status_history.append(
                StatusHistoryEntry(status=status, timestamp=NOW, triggered_by="test-seed")
            )
        for name, value in fields.items():
            setattr(record, name, value)
        repo.save(record)
        return repo.get(proposal_id)

    return _seed
