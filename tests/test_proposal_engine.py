"""Unit tests for ProposalStatusEngine -- rule-driven proposal status transitions.

Tests cover:
- transition: applied transitions, status-specific bookkeeping, history and events
- failures: unknown proposal, no applicable rule, guard not satisfied (no mutation)
- first transition from a query pseudo-state
- event sink failures never undo a transition
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from src.crm.proposals.engine import ProposalStatusEngine
from src.crm.proposals.repository import InMemoryTrackingRepository
from src.crm.proposals.schemas import (
    ProposalStatus,
    ProposalTrigger,
    QueryStatus,
    TransitionFailure,
    WorkflowEvent,
)
from src.crm.proposals.workflow_log import InMemoryWorkflowLog


class _FailingSink:
    def add_event(self, query_id: str, event: WorkflowEvent) -> None:
        raise RuntimeError("workflow log unavailable")


# ── Applied transitions ─────────────────────────────────────────────────────


class TestAppliedTransitions:
    def test_draft_to_sent(self, engine, repo, workflow_log, now) -> None:
        repo.initialize("Q1", "P1", now)

        result = engine.transition("P1", ProposalTrigger.PROPOSAL_SENT, {"send_method": "email"})

        assert result.ok
        assert bool(result) is True
        assert result.previous_status == ProposalStatus.PROPOSAL_IN_DRAFT
        assert result.new_status == ProposalStatus.PROPOSAL_SENT

        record = repo.get("P1")
        assert record.current_status == ProposalStatus.PROPOSAL_SENT
        assert record.proposal_sent_date == now
        assert len(record.status_history) == 2
        entry = record.status_history[-1]
        assert entry.status == ProposalStatus.PROPOSAL_SENT
        assert entry.triggered_by == "proposal-sent"
        assert entry.metadata == {"send_method": "email"}
        assert entry.timestamp == now

    def test_emits_one_status_changed_event(self, engine, repo, workflow_log, now) -> None:
        repo.initialize("Q1", "P1", now)
        engine.transition("P1", ProposalTrigger.PROPOSAL_SENT, {"send_method": "portal"})

        (event,) = workflow_log.events_for("Q1")
        assert event.type == "status_changed"
        assert event.query_id == "Q1"
        assert event.user_id == "automated-system"
        assert event.timestamp == now
        assert event.metadata == {
            "previous_status": "proposal-in-draft",
            "new_status": "proposal-sent",
            "trigger": "proposal-sent",
            "automated": True,
            "send_method": "portal",
        }
        assert "proposal-in-draft -> proposal-sent" in event.details

    def test_viewed_bookkeeping(self, engine, repo, seed_record, now) -> None:
        seed_record("P1", ProposalStatus.PROPOSAL_SENT)

        assert engine.transition("P1", "proposal-viewed")

        record = repo.get("P1")
        assert record.current_status == ProposalStatus.PROPOSAL_VIEWED
        assert record.proposal_viewed_date == now
        assert record.last_client_interaction == now
        assert record.client_response_count == 1

    def test_follow_up_pending_bookkeeping(self, engine, repo, seed_record, now) -> None:
        seed_record(
            "P1",
            ProposalStatus.PROPOSAL_SENT,
            last_client_interaction=now - timedelta(days=3),
        )

        assert engine.transition("P1", ProposalTrigger.FOLLOW_UP_DUE)

        record = repo.get("P1")
        assert record.current_status == ProposalStatus.FOLLOW_UP_PENDING
        assert record.follow_up_count == 1
        assert record.last_follow_up_date == now

    def test_other_statuses_have_no_extra_bookkeeping(self, engine, repo, seed_record) -> None:
        seed_record("P1", ProposalStatus.PROPOSAL_VIEWED)
        before = repo.get("P1")

        assert engine.transition("P1", ProposalTrigger.CLIENT_INTERESTED)

        after = repo.get("P1")
        assert after.current_status == ProposalStatus.INTERESTED
        assert after.client_response_count == before.client_response_count
        assert after.follow_up_count == before.follow_up_count
        assert after.proposal_sent_date == before.proposal_sent_date

    def test_explicit_now_overrides_clock(self, engine, repo, now) -> None:
        repo.initialize("Q1", "P1", now)
        later = now + timedelta(hours=5)

        engine.transition("P1", ProposalTrigger.PROPOSAL_SENT, now=later)

        assert repo.get("P1").proposal_sent_date == later

    def test_unknown_trigger_string_raises(self, engine, repo, now) -> None:
        repo.initialize("Q1", "P1", now)
        with pytest.raises(ValueError):
            engine.transition("P1", "client-ghosted")


# ── Failures ────────────────────────────────────────────────────────────────


class TestFailedTransitions:
    def test_unknown_proposal(self, engine, workflow_log) -> None:
        result = engine.transition("missing", ProposalTrigger.PROPOSAL_SENT)

        assert not result
        assert result.reason == TransitionFailure.RECORD_NOT_FOUND
        assert len(workflow_log) == 0

    def test_no_applicable_rule_leaves_record_unchanged(
        self, engine, repo, workflow_log, seed_record
    ) -> None:
        seed_record("P1", ProposalStatus.PROPOSAL_VIEWED)
        snapshot = repo.get("P1").model_dump()

        result = engine.transition("P1", ProposalTrigger.BOOKING_COMPLETED)

        assert not result.ok
        assert result.reason == TransitionFailure.NO_APPLICABLE_RULE
        assert result.previous_status == ProposalStatus.PROPOSAL_VIEWED
        assert repo.get("P1").model_dump() == snapshot
        assert len(workflow_log) == 0

    def test_guard_not_satisfied_leaves_record_unchanged(
        self, engine, repo, workflow_log, seed_record, now
    ) -> None:
        seed_record(
            "P1",
            ProposalStatus.PROPOSAL_SENT,
            last_client_interaction=now - timedelta(days=2),
        )
        snapshot = repo.get("P1").model_dump()

        result = engine.transition("P1", ProposalTrigger.FOLLOW_UP_DUE)

        assert not result.ok
        assert result.reason == TransitionFailure.GUARD_NOT_SATISFIED
        assert repo.get("P1").model_dump() == snapshot
        assert len(workflow_log) == 0

    def test_payment_guard_requires_recorded_payment(self, engine, repo, seed_record) -> None:
        seed_record("P1", ProposalStatus.CONFIRMED)

        result = engine.transition("P1", ProposalTrigger.PAYMENT_RECEIVED)

        assert result.reason == TransitionFailure.GUARD_NOT_SATISFIED
        assert repo.get("P1").current_status == ProposalStatus.CONFIRMED

    def test_sending_twice_fails_the_second_time(self, engine, repo, now) -> None:
        repo.initialize("Q1", "P1", now)

        assert engine.transition("P1", ProposalTrigger.PROPOSAL_SENT)
        second = engine.transition("P1", ProposalTrigger.PROPOSAL_SENT)

        assert second.reason == TransitionFailure.NO_APPLICABLE_RULE
        assert len(repo.get("P1").status_history) == 2

    def test_resend_after_modification_request(self, engine, repo, seed_record, now) -> None:
        seed_record("P1", ProposalStatus.PROPOSAL_VIEWED)

        assert engine.transition("P1", ProposalTrigger.CLIENT_FEEDBACK)
        result = engine.transition("P1", ProposalTrigger.PROPOSAL_SENT)

        assert result.new_status == ProposalStatus.REVISED_PROPOSAL_SENT
        # proposal_sent_date is only set on entry into proposal-sent itself
        assert repo.get("P1").proposal_sent_date is None

    def test_proposal_created_does_not_match_record_status(self, engine, repo, now) -> None:
        """Without an explicit source, proposal-created never matches a draft."""
        repo.initialize("Q1", "P1", now)

        result = engine.transition("P1", ProposalTrigger.PROPOSAL_CREATED)

        assert result.reason == TransitionFailure.NO_APPLICABLE_RULE


# ── First transition from the query lifecycle ───────────────────────────────


class TestQuerySourcedTransition:
    @pytest.mark.parametrize("query_status", [QueryStatus.ASSIGNED, QueryStatus.IN_PROGRESS])
    def test_fires_from_query_status(
        self, engine, repo, workflow_log, now, query_status
    ) -> None:
        repo.initialize("Q1", "P1", now)

        result = engine.transition(
            "P1", ProposalTrigger.PROPOSAL_CREATED, from_status=query_status
        )

        assert result.ok
        assert result.previous_status == query_status
        record = repo.get("P1")
        assert record.current_status == ProposalStatus.PROPOSAL_IN_DRAFT
        assert [e.status for e in record.status_history] == [
            ProposalStatus.PROPOSAL_IN_DRAFT,
            ProposalStatus.PROPOSAL_IN_DRAFT,
        ]
        (event,) = workflow_log.events_for("Q1")
        assert event.metadata["previous_status"] == query_status.value

    def test_query_source_rejected_for_advanced_record(
        self, engine, repo, workflow_log, seed_record
    ) -> None:
        seed_record("P1", ProposalStatus.ADVANCE_RECEIVED)
        snapshot = repo.get("P1").model_dump()

        result = engine.transition(
            "P1", ProposalTrigger.PROPOSAL_CREATED, from_status=QueryStatus.ASSIGNED
        )

        assert not result.ok
        assert result.reason == TransitionFailure.NO_APPLICABLE_RULE
        assert result.previous_status == ProposalStatus.ADVANCE_RECEIVED
        assert repo.get("P1").model_dump() == snapshot
        assert len(workflow_log) == 0

    def test_query_source_only_for_first_transition(self, engine, repo, now) -> None:
        repo.initialize("Q1", "P1", now)
        assert engine.transition(
            "P1", ProposalTrigger.PROPOSAL_CREATED, from_status=QueryStatus.ASSIGNED
        )

        again = engine.transition(
            "P1", ProposalTrigger.PROPOSAL_CREATED, from_status=QueryStatus.IN_PROGRESS
        )

        assert again.reason == TransitionFailure.NO_APPLICABLE_RULE
        assert len(repo.get("P1").status_history) == 2

    def test_proposal_status_cannot_be_used_as_source(self, engine, repo, now) -> None:
        repo.initialize("Q1", "P1", now)

        with pytest.raises(ValueError):
            engine.transition(
                "P1",
                ProposalTrigger.BOOKING_COMPLETED,
                from_status=ProposalStatus.ADVANCE_RECEIVED,
            )

        record = repo.get("P1")
        assert record.current_status == ProposalStatus.PROPOSAL_IN_DRAFT
        assert len(record.status_history) == 1


# ── Collaborators ───────────────────────────────────────────────────────────


class TestEventSink:
    def test_sink_failure_does_not_undo_transition(self, now) -> None:
        repo = InMemoryTrackingRepository()
        engine = ProposalStatusEngine(repo, _FailingSink(), clock=lambda: now)
        repo.initialize("Q1", "P1", now)

        result = engine.transition("P1", ProposalTrigger.PROPOSAL_SENT)

        assert result.ok
        assert repo.get("P1").current_status == ProposalStatus.PROPOSAL_SENT

    def test_engine_without_sink(self, now) -> None:
        repo = InMemoryTrackingRepository()
        engine = ProposalStatusEngine(repo, clock=lambda: now)
        repo.initialize("Q1", "P1", now)

        assert engine.transition("P1", ProposalTrigger.PROPOSAL_SENT)

    def test_events_accumulate_per_query(self, engine, repo, workflow_log, now) -> None:
        repo.initialize("Q1", "P1", now)
        repo.initialize("Q2", "P2", now)

        engine.transition("P1", ProposalTrigger.PROPOSAL_SENT)
        engine.transition("P1", ProposalTrigger.PROPOSAL_VIEWED)
        engine.transition("P2", ProposalTrigger.PROPOSAL_SENT)

        assert [e.metadata["new_status"] for e in workflow_log.events_for("Q1")] == [
            "proposal-sent",
            "proposal-viewed",
        ]
        assert len(workflow_log.events_for("Q2")) == 1
        assert isinstance(workflow_log, InMemoryWorkflowLog)
