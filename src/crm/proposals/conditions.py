"""Guard condition evaluation for proposal transition rules.

Conditions are an AND-composition: each present check must hold. Elapsed
time is measured in whole days (floor), and an elapsed-time check against a
missing timestamp fails closed.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from src.crm.proposals.schemas import ProposalTrackingRecord, TransitionConditions

_ONE_DAY = timedelta(days=1)


def whole_days_between(earlier: datetime, later: datetime) -> int:
    """Floor of the number of days elapsed from ``earlier`` to ``later``."""
    return (later - earlier) // _ONE_DAY


def unmet_conditions(
    record: ProposalTrackingRecord,
    conditions: TransitionConditions | None,
    now: datetime,
) -> list[str]:
    """List every condition the record does not satisfy.

    Args:
        record: Tracking record under evaluation.
        conditions: Guard conditions of the matched rule, or None.
        now: Evaluation time.

    Returns:
        Human-readable descriptions of unmet conditions; empty when all hold.
    """
    if conditions is None:
        return []

    missing: list[str] = []

    if conditions.days_since_last_activity is not None:
        last_activity = record.last_client_interaction
        if last_activity is None:
            missing.append(
                f"days_since_last_activity: {conditions.days_since_last_activity} "
                "required, no client interaction recorded"
            )
        else:
            days = whole_days_between(last_activity, now)
            if days < conditions.days_since_last_activity:
                missing.append(
                    f"days_since_last_activity: {conditions.days_since_last_activity} "
                    f"required, {days} actual"
                )

    if conditions.follow_up_count is not None:
        if record.follow_up_count < conditions.follow_up_count:
            missing.append(
                f"follow_up_count: {conditions.follow_up_count} required, "
                f"{record.follow_up_count} actual"
            )

    if conditions.payment_received and not record.payment_history:
        missing.append("payment_received: no payment recorded")

    return missing


def evaluate_conditions(
    record: ProposalTrackingRecord,
    conditions: TransitionConditions | None,
    now: datetime,
) -> bool:
    """Return True when the record satisfies every present guard condition."""
    if conditions is None:
        return True

    if conditions.days_since_last_activity is not None:
        last_activity = record.last_client_interaction
        if last_activity is None:
            return False
        if whole_days_between(last_activity, now) < conditions.days_since_last_activity:
            return False

    if (
        conditions.follow_up_count is not None
        and record.follow_up_count < conditions.follow_up_count
    ):
        return False

    if conditions.payment_received and not record.payment_history:
        return False

    # client_response_required is informational only.
    return True
