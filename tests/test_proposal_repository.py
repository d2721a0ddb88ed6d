"""Unit tests for InMemoryTrackingRepository."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from src.crm.proposals.repository import (
    InMemoryTrackingRepository,
    TrackingAlreadyExistsError,
)
from src.crm.proposals.schemas import ProposalStatus

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


class TestInitialize:
    def test_creates_draft_with_single_history_entry(
        self, repo: InMemoryTrackingRepository
    ) -> None:
        record = repo.initialize("Q1", "P1", NOW)

        assert record.query_id == "Q1"
        assert record.proposal_id == "P1"
        assert record.current_status == ProposalStatus.PROPOSAL_IN_DRAFT
        assert len(record.status_history) == 1
        entry = record.status_history[0]
        assert entry.status == ProposalStatus.PROPOSAL_IN_DRAFT
        assert entry.triggered_by == "system"
        assert entry.timestamp == NOW
        assert record.follow_up_count == 0
        assert record.client_response_count == 0
        assert record.payment_history == []

    def test_second_initialize_fails(self, repo: InMemoryTrackingRepository) -> None:
        repo.initialize("Q1", "P1", NOW)
        with pytest.raises(TrackingAlreadyExistsError):
            repo.initialize("Q2", "P1", NOW)
        # Original record untouched
        assert repo.get("P1").query_id == "Q1"

    def test_defaults_timestamp_to_now(self, repo: InMemoryTrackingRepository) -> None:
        record = repo.initialize("Q1", "P1")
        assert record.status_history[0].timestamp.tzinfo is not None


class TestReads:
    def test_get_unknown_returns_none(self, repo: InMemoryTrackingRepository) -> None:
        assert repo.get("missing") is None

    def test_get_returns_copy(self, repo: InMemoryTrackingRepository) -> None:
        repo.initialize("Q1", "P1", NOW)
        record = repo.get("P1")
        record.current_status = ProposalStatus.CONFIRMED
        record.status_history.clear()

        stored = repo.get("P1")
        assert stored.current_status == ProposalStatus.PROPOSAL_IN_DRAFT
        assert len(stored.status_history) == 1

    def test_find_by_query_id_returns_earliest(
        self, repo: InMemoryTrackingRepository
    ) -> None:
        repo.initialize("Q1", "P1", NOW)
        repo.initialize("Q2", "P2", NOW)
        repo.initialize("Q1", "P3", NOW)

        assert repo.find_by_query_id("Q1").proposal_id == "P1"
        assert repo.find_by_query_id("Q2").proposal_id == "P2"
        assert repo.find_by_query_id("Q9") is None

    def test_list_by_query_id(self, repo: InMemoryTrackingRepository) -> None:
        repo.initialize("Q1", "P1", NOW)
        repo.initialize("Q2", "P2", NOW)
        repo.initialize("Q1", "P3", NOW)

        assert [r.proposal_id for r in repo.list_by_query_id("Q1")] == ["P1", "P3"]
        assert repo.list_by_query_id("Q9") == []

    def test_list_all_in_insertion_order(self, repo: InMemoryTrackingRepository) -> None:
        for pid in ("P2", "P1", "P3"):
            repo.initialize("Q1", pid, NOW)
        assert [r.proposal_id for r in repo.list_all()] == ["P2", "P1", "P3"]
        assert len(repo) == 3


class TestSave:
    def test_save_replaces_record(self, repo: InMemoryTrackingRepository) -> None:
        record = repo.initialize("Q1", "P1", NOW)
        record.follow_up_count = 1
        repo.save(record)
        assert repo.get("P1").follow_up_count == 1

    def test_save_unknown_raises(self, repo: InMemoryTrackingRepository) -> None:
        record = repo.initialize("Q1", "P1", NOW)
        record.proposal_id = "P2"
        with pytest.raises(KeyError):
            repo.save(record)
