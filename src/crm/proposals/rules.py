"""Declarative proposal status transition table.

Rules are matched on ``(from_status, trigger)``. Declaration order is
significant: when more than one rule matches, the engine applies the first.
The table is immutable at runtime.
"""

from __future__ import annotations

from src.crm.proposals.schemas import (
    ProposalStatus,
    ProposalTrigger,
    QueryStatus,
    TransitionConditions,
    TransitionRule,
)

# ── Transition Table ────────────────────────────────────────────────────────

TRANSITION_RULES: tuple[TransitionRule, ...] = (
    # Initial proposal creation
    TransitionRule(
        from_status=QueryStatus.ASSIGNED,
        to_status=ProposalStatus.PROPOSAL_IN_DRAFT,
        trigger=ProposalTrigger.PROPOSAL_CREATED,
    ),
    TransitionRule(
        from_status=QueryStatus.IN_PROGRESS,
        to_status=ProposalStatus.PROPOSAL_IN_DRAFT,
        trigger=ProposalTrigger.PROPOSAL_CREATED,
    ),
    # Sending and viewing
    TransitionRule(
        from_status=ProposalStatus.PROPOSAL_IN_DRAFT,
        to_status=ProposalStatus.PROPOSAL_SENT,
        trigger=ProposalTrigger.PROPOSAL_SENT,
    ),
    TransitionRule(
        from_status=ProposalStatus.PROPOSAL_SENT,
        to_status=ProposalStatus.PROPOSAL_VIEWED,
        trigger=ProposalTrigger.PROPOSAL_VIEWED,
    ),
    TransitionRule(
        from_status=ProposalStatus.PROPOSAL_VIEWED,
        to_status=ProposalStatus.MODIFICATION_REQUESTED,
        trigger=ProposalTrigger.CLIENT_FEEDBACK,
        conditions=TransitionConditions(client_response_required=True),
    ),
    TransitionRule(
        from_status=ProposalStatus.MODIFICATION_REQUESTED,
        to_status=ProposalStatus.REVISED_PROPOSAL_SENT,
        trigger=ProposalTrigger.PROPOSAL_SENT,
    ),
    # Client engagement
    TransitionRule(
        from_status=ProposalStatus.PROPOSAL_VIEWED,
        to_status=ProposalStatus.INTERESTED,
        trigger=ProposalTrigger.CLIENT_INTERESTED,
    ),
    TransitionRule(
        from_status=ProposalStatus.INTERESTED,
        to_status=ProposalStatus.NEGOTIATION,
        trigger=ProposalTrigger.NEGOTIATION_STARTED,
    ),
    TransitionRule(
        from_status=ProposalStatus.NEGOTIATION,
        to_status=ProposalStatus.CONFIRMED,
        trigger=ProposalTrigger.CLIENT_INTERESTED,
    ),
    # Payment and booking
    TransitionRule(
        from_status=ProposalStatus.CONFIRMED,
        to_status=ProposalStatus.ADVANCE_RECEIVED,
        trigger=ProposalTrigger.PAYMENT_RECEIVED,
        conditions=TransitionConditions(payment_received=True),
    ),
    TransitionRule(
        from_status=ProposalStatus.ADVANCE_RECEIVED,
        to_status=ProposalStatus.BOOKING_CONFIRMED,
        trigger=ProposalTrigger.BOOKING_COMPLETED,
    ),
    # Follow-up automation
    TransitionRule(
        from_status=ProposalStatus.PROPOSAL_SENT,
        to_status=ProposalStatus.FOLLOW_UP_PENDING,
        trigger=ProposalTrigger.FOLLOW_UP_DUE,
        conditions=TransitionConditions(
            days_since_last_activity=3, follow_up_count=0
        ),
    ),
    TransitionRule(
        from_status=ProposalStatus.FOLLOW_UP_PENDING,
        to_status=ProposalStatus.NO_RESPONSE,
        trigger=ProposalTrigger.NO_RESPONSE_DETECTED,
        conditions=TransitionConditions(
            days_since_last_activity=7, follow_up_count=2
        ),
    ),
)


def find_applicable_rules(
    from_status: ProposalStatus | QueryStatus,
    trigger: ProposalTrigger,
    rules: tuple[TransitionRule, ...] = TRANSITION_RULES,
) -> list[TransitionRule]:
    """Return the rules matching a source state and trigger, in declaration order.

    Args:
        from_status: Current proposal status, or a query pseudo-state for
            the first transition.
        trigger: Trigger being fired.
        rules: Rule table to search (defaults to TRANSITION_RULES).

    Returns:
        Matching rules; empty if no rule accepts the pair.
    """
    return [
        rule
        for rule in rules
        if rule.from_status == from_status and rule.trigger == trigger
    ]
