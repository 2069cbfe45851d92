"""Approval state machine for daily reconciliation records.

Transitions are pure: each returns a new :class:`ApprovalState` or raises
:class:`InvalidStateTransition` and leaves the given state untouched.

``Draft`` --request--> ``PendingApproval`` --approve--> ``Approved``
                                           --reject---> ``Rejected``

A minor discrepancy skips the queue and is approved by its submitter when the
record is first saved.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from . import log
from .constants import ApprovalStatus, Severity
from .models import ApprovalState, InvalidStateTransition


def initial_state(severity: Severity, submitter: Optional[str], at: datetime) -> ApprovalState:
    """Return the state of a freshly saved record."""
    if severity is Severity.MINOR:
        return ApprovalState(status=ApprovalStatus.APPROVED, by=submitter, at=at)
    return ApprovalState(status=ApprovalStatus.DRAFT)


def request_approval(state: ApprovalState, severity: Severity) -> ApprovalState:
    """Escalate a draft with a major discrepancy to the approval queue.

    Raises:
        InvalidStateTransition: If the record is not a draft or its
            discrepancy does not need approval.
    """
    if state.status is not ApprovalStatus.DRAFT:
        log.warning("Cannot request approval from state %s", state.status.value)
        raise InvalidStateTransition(f"Cannot request approval for a record in state {state.status.value}")
    if severity is not Severity.MAJOR:
        log.warning("Approval requested for a %s discrepancy", severity.value)
        raise InvalidStateTransition(f"Only major discrepancies need approval, got {severity.value}")
    return ApprovalState(status=ApprovalStatus.PENDING_APPROVAL)


def _ensure_pending(state: ApprovalState, action: str) -> None:
    if state.status is not ApprovalStatus.PENDING_APPROVAL:
        log.warning("Cannot %s a record in state %s", action, state.status.value)
        raise InvalidStateTransition(f"Cannot {action} a record in state {state.status.value}")


def approve(state: ApprovalState, approver: str, at: datetime) -> ApprovalState:
    """Settle a pending record as approved.

    Raises:
        InvalidStateTransition: If the record is not pending approval or no
            approver is named.
    """
    _ensure_pending(state, "approve")
    if not approver or not approver.strip():
        raise InvalidStateTransition("An approver is required")
    return ApprovalState(status=ApprovalStatus.APPROVED, by=approver.strip(), at=at)


def reject(state: ApprovalState, approver: str, at: datetime, reason: str) -> ApprovalState:
    """Settle a pending record as rejected.

    Raises:
        InvalidStateTransition: If the record is not pending approval, no
            approver is named or ``reason`` is blank.
    """
    _ensure_pending(state, "reject")
    if not approver or not approver.strip():
        raise InvalidStateTransition("An approver is required")
    if not reason or not reason.strip():
        log.warning("Rejection without a reason refused")
        raise InvalidStateTransition("A rejection reason is required")
    return ApprovalState(status=ApprovalStatus.REJECTED, by=approver.strip(), at=at, reason=reason.strip())
