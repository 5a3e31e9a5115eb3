"""Swipe gestures on an item card -> assignment intents -> assignments.

Left assigns the item to the payer, right asks which member takes it, up asks
for a custom split and down splits it evenly across the group.
"""
import os
from decimal import Decimal
from enum import Enum
from typing import Iterable, Mapping, Optional, Sequence

from receipt_splitter.domain import (
    Assignment,
    CustomAssignment,
    Item,
    Member,
    MemberAssignment,
    SelfAssignment,
    Share,
    SplitAssignment,
    custom_shares_match,
)
from receipt_splitter.exceptions import InvalidAssignmentError

SWIPE_THRESHOLD = float(os.getenv("SWIPE_THRESHOLD", "100"))
# fraction of the release velocity added to the drag offset
VELOCITY_WEIGHT = 0.1


class AssignmentIntent(str, Enum):
    NONE = "none"
    ASSIGN_SELF = "assign_self"
    REQUEST_MEMBER_PICK = "request_member_pick"
    REQUEST_CUSTOM_SPLIT = "request_custom_split"
    ASSIGN_SPLIT_EVEN = "assign_split_even"


def gesture_vector(
    offset_x: float,
    offset_y: float,
    velocity_x: float = 0.0,
    velocity_y: float = 0.0,
) -> tuple[float, float]:
    return (
        offset_x + velocity_x * VELOCITY_WEIGHT,
        offset_y + velocity_y * VELOCITY_WEIGHT,
    )


def classify_gesture(dx: float, dy: float, threshold: float = SWIPE_THRESHOLD) -> AssignmentIntent:
    """
    Horizontal wins when |dx| >= |dy|, so a perfect diagonal is read as a
    sideways swipe. Movements that stay within the threshold return NONE.
    """
    if abs(dx) >= abs(dy):
        if dx < -threshold:
            return AssignmentIntent.ASSIGN_SELF
        if dx > threshold:
            return AssignmentIntent.REQUEST_MEMBER_PICK
    else:
        if dy < -threshold:
            return AssignmentIntent.REQUEST_CUSTOM_SPLIT
        if dy > threshold:
            return AssignmentIntent.ASSIGN_SPLIT_EVEN
    return AssignmentIntent.NONE


def build_custom_assignment(
    item: Item,
    roster: Sequence[Member],
    shares: Iterable[tuple[str, Decimal]],
) -> CustomAssignment:
    member_ids = {m.id for m in roster}
    kept = []
    for member_id, amount in shares:
        if member_id not in member_ids:
            raise InvalidAssignmentError(f"Member {member_id} is not in this group")
        if amount < 0:
            raise InvalidAssignmentError("Share amounts cannot be negative")
        if amount > 0:
            kept.append(Share(member_id=member_id, amount=amount))
    kept = tuple(kept)
    if not custom_shares_match(item.price, kept):
        total = sum((s.amount for s in kept), Decimal("0"))
        raise InvalidAssignmentError(
            f"Shares total ({total}) must equal item price ({item.price})"
        )
    return CustomAssignment(shares=kept)


def resolve_intent(
    intent: AssignmentIntent,
    item: Item,
    roster: Sequence[Member],
    member_id: Optional[str] = None,
    shares: Optional[Iterable[tuple[str, Decimal]]] = None,
) -> Optional[Assignment]:
    """
    Finish an intent with the secondary selection, if one is needed.

    Returns None while nothing should change: the gesture was ignored, or the
    member picker / custom split has not been completed yet.
    """
    if intent == AssignmentIntent.ASSIGN_SELF:
        return SelfAssignment()
    if intent == AssignmentIntent.ASSIGN_SPLIT_EVEN:
        return SplitAssignment()
    if intent == AssignmentIntent.REQUEST_MEMBER_PICK:
        if member_id is None:
            return None
        member = next((m for m in roster if m.id == member_id), None)
        if member is None:
            raise InvalidAssignmentError(f"Member {member_id} is not in this group")
        if member.is_payer:
            return SelfAssignment()
        return MemberAssignment(target_member_id=member.id)
    if intent == AssignmentIntent.REQUEST_CUSTOM_SPLIT:
        if shares is None:
            return None
        return build_custom_assignment(item, roster, shares)
    return None


def apply_intent(
    assignments: Mapping[str, Assignment],
    item: Item,
    roster: Sequence[Member],
    intent: AssignmentIntent,
    member_id: Optional[str] = None,
    shares: Optional[Iterable[tuple[str, Decimal]]] = None,
) -> dict[str, Assignment]:
    updated = dict(assignments)
    assignment = resolve_intent(intent, item, roster, member_id=member_id, shares=shares)
    if assignment is not None:
        updated[item.id] = assignment
    return updated
