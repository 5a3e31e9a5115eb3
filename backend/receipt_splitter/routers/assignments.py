"""Assignments: classify a swipe on an item card without touching any receipt."""
from fastapi import APIRouter, Depends

from receipt_splitter.auth import get_current_user
from receipt_splitter.models import User
from receipt_splitter.schemas import GestureIn, GestureResult
from receipt_splitter.services.assignment_classifier import SWIPE_THRESHOLD, classify_gesture, gesture_vector

router = APIRouter(prefix="/assignments", tags=["assignments"])


@router.post("/classify", response_model=GestureResult)
def classify(
    data: GestureIn,
    current_user: User = Depends(get_current_user),
):
    dx, dy = gesture_vector(data.offset_x, data.offset_y, data.velocity_x, data.velocity_y)
    intent = classify_gesture(dx, dy, data.threshold or SWIPE_THRESHOLD)
    return GestureResult(intent=intent.value, dx=dx, dy=dy)
