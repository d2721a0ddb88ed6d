"""Workflow event sink for automated proposal status changes.

The workflow log is owned by the query subsystem; the proposal engine only
appends to it. WorkflowEventSink is the contract, InMemoryWorkflowLog a
process-local implementation that keeps per-query events in arrival order.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol

import structlog

from src.crm.proposals.schemas import (
    ProposalStatus,
    ProposalTrigger,
    QueryStatus,
    WorkflowEvent,
)

logger = structlog.get_logger(__name__)


class WorkflowEventSink(Protocol):
    """Append-only destination for workflow events."""

    def add_event(self, query_id: str, event: WorkflowEvent) -> None: ...


def build_status_changed_event(
    query_id: str,
    previous_status: ProposalStatus | QueryStatus,
    new_status: ProposalStatus,
    trigger: ProposalTrigger,
    timestamp: datetime,
    metadata: dict[str, Any] | None = None,
) -> WorkflowEvent:
    """Build the status_changed event emitted after a successful transition.

    Caller-supplied metadata is merged last, on top of the transition fields.
    """
    details = (
        f"Automated status transition: {previous_status.value} -> "
        f"{new_status.value} (trigger: {trigger.value})"
    )
    return WorkflowEvent(
        query_id=query_id,
        timestamp=timestamp,
        details=details,
        metadata={
            "previous_status": previous_status.value,
            "new_status": new_status.value,
            "trigger": trigger.value,
            "automated": True,
            **(metadata or {}),
        },
    )


class InMemoryWorkflowLog:
    """Process-local workflow log grouped by query id."""

    def __init__(self) -> None:
        self._events: dict[str, list[WorkflowEvent]] = {}

    def add_event(self, query_id: str, event: WorkflowEvent) -> None:
        self._events.setdefault(query_id, []).append(event)
        logger.debug(
            "workflow_log.event_added",
            query_id=query_id,
            event_type=event.type,
        )

    def events_for(self, query_id: str) -> list[WorkflowEvent]:
        """Events recorded for a query, oldest first."""
        return list(self._events.get(query_id, []))

    def __len__(self) -> int:
        return sum(len(events) for events in self._events.values())
