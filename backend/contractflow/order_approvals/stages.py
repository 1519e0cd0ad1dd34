"""Order approval stage machine.

Approvals move draft -> negotiating -> approved, one step at a time and
backwards as well as forwards. ``sent`` is kept for older records: the send
action moves a draft straight to negotiating and records sent_at. An
approved record is read-only.
"""

from enum import Enum
from typing import Optional


class ApprovalStage(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    NEGOTIATING = "negotiating"
    APPROVED = "approved"


# Stages a PATCH may move to, in workflow order
EDITABLE_STAGES = (ApprovalStage.DRAFT, ApprovalStage.NEGOTIATING, ApprovalStage.APPROVED)

VENDOR_VISIBLE_STAGES = (ApprovalStage.NEGOTIATING, ApprovalStage.APPROVED)


class StageTransitionError(Exception):
    """Raised when an approval cannot move to the requested stage"""
    pass


def _position(stage: str) -> int:
    # a sent approval is already with the vendor
    if stage == ApprovalStage.SENT.value:
        stage = ApprovalStage.NEGOTIATING.value
    return [s.value for s in EDITABLE_STAGES].index(stage)


def validate_stage_change(
    current: str,
    new: str,
    pm_approved: bool,
    vendor_approved: bool,
) -> None:
    """Check a stage change requested by project staff.

    Args:
        current: Stage the approval is in
        new: Requested stage
        pm_approved: PM approval after the update is applied
        vendor_approved: Vendor approval after the update is applied

    Raises:
        StageTransitionError: Unknown stage, skipped stage, read-only record,
            or approval without both sign-offs
    """
    if new not in [s.value for s in EDITABLE_STAGES]:
        raise StageTransitionError("Invalid stage")

    if current == ApprovalStage.APPROVED.value:
        raise StageTransitionError("Approved orders are read-only")

    if abs(_position(new) - _position(current)) > 1:
        raise StageTransitionError("Cannot skip stages. Can only move forward or backward one step.")

    if new == ApprovalStage.APPROVED.value and not (pm_approved and vendor_approved):
        raise StageTransitionError("Both PM and Vendor must approve before moving to approved stage")


def validate_send(current: str, item_count: int, deleted: bool = False) -> None:
    """Check that an approval can be sent to the vendor.

    Raises:
        StageTransitionError: Deleted, not a draft, or no items selected
    """
    if deleted:
        raise StageTransitionError("Cannot send deleted approval")
    if current != ApprovalStage.DRAFT.value:
        raise StageTransitionError("Can only send approvals from draft stage")
    if item_count == 0:
        raise StageTransitionError("Cannot send approval without selected items")


def resolve_flag(requested: Optional[bool], stored: bool) -> bool:
    return stored if requested is None else requested
