from __future__ import annotations

import logging
from enum import Enum
from typing import FrozenSet, NamedTuple

from monitor_client.errors import InvalidTransitionError
from monitor_client.schemas.alerts import Alert
from monitor_client.schemas.common import AlertStatus, VerificationStatus
from monitor_client.services.mutations import MutationPipeline

logger = logging.getLogger(__name__)


class AlertAction(str, Enum):
    """Operator actions exposed on an alert."""

    resolve = "resolve"
    verify = "verify"


class AlertState(NamedTuple):
    """Joint (status, verification_status) state of an alert."""

    status: AlertStatus
    verification: VerificationStatus

    def __str__(self) -> str:
        return f"({self.status.value}, {self.verification.value})"


INITIAL_STATE = AlertState(AlertStatus.active, VerificationStatus.pending)
TERMINAL_STATE = AlertState(AlertStatus.resolved, VerificationStatus.verified)


def state_of(alert: Alert) -> AlertState:
    return AlertState(alert.status, alert.verification_status)


# PUBLIC_INTERFACE
def expected_state(state: AlertState, action: AlertAction) -> AlertState:
    """
    Pure transition function.

    resolve: only from active; status -> resolved, verification unchanged.
    verify: from any state; verification -> verified, status unchanged (irreversible).
    Raises ValueError for resolve on an already-resolved alert.
    """
    if action == AlertAction.resolve:
        if state.status != AlertStatus.active:
            raise ValueError(f"resolve is not valid from {state}")
        return AlertState(AlertStatus.resolved, state.verification)
    if action == AlertAction.verify:
        return AlertState(state.status, VerificationStatus.verified)
    raise ValueError(f"unknown alert action: {action!r}")


# PUBLIC_INTERFACE
def allowed_actions(alert: Alert) -> FrozenSet[AlertAction]:
    """Actions to offer the operator. Verifying an already-verified alert is a no-op and is not offered."""
    actions = set()
    if alert.status == AlertStatus.active:
        actions.add(AlertAction.resolve)
    if alert.verification_status != VerificationStatus.verified:
        actions.add(AlertAction.verify)
    return frozenset(actions)


def is_terminal(alert: Alert) -> bool:
    return state_of(alert) == TERMINAL_STATE


def _adopt(before: Alert, after: Alert, action: AlertAction) -> Alert:
    expected = expected_state(state_of(before), action)
    actual = state_of(after)
    if actual != expected:
        # Server is authoritative; e.g. a resolve that also auto-verifies.
        logger.info(
            "Alert %s %s: backend returned %s (expected %s); adopting backend state",
            before.id,
            action.value,
            actual,
            expected,
        )
    return after


# PUBLIC_INTERFACE
async def resolve(pipeline: MutationPipeline, alert: Alert) -> Alert:
    """Resolve an active alert and return the alert exactly as the backend reports it."""
    if alert.status != AlertStatus.active:
        raise InvalidTransitionError(alert.id, AlertAction.resolve.value, state_of(alert))
    after = await pipeline.resolve_alert(alert.id)
    return _adopt(alert, after, AlertAction.resolve)


# PUBLIC_INTERFACE
async def verify(pipeline: MutationPipeline, alert: Alert) -> Alert:
    """Verify an alert (valid in any state) and return the alert as the backend reports it."""
    after = await pipeline.verify_alert(alert.id)
    return _adopt(alert, after, AlertAction.verify)
