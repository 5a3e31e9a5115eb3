"""Receipts: parse an image, create, list, edit items and assignments, swipe-assign, delete."""
from dataclasses import replace
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from loguru import logger
from sqlalchemy.orm import Session

from receipt_splitter import domain
from receipt_splitter.auth import check_group_member, get_current_user
from receipt_splitter.database import get_db
from receipt_splitter.exceptions import InvalidAssignmentError, ParserNotConfiguredError, ReceiptParseError
from receipt_splitter.models import AssignmentShare, Group, ItemAssignment, Receipt, ReceiptItem, User
from receipt_splitter.schemas import (
    AssignmentIn,
    AssignmentOut,
    ItemGestureIn,
    ItemGestureResult,
    ItemIn,
    ItemResponse,
    ParsedReceipt,
    ParseReceiptRequest,
    ReceiptAssignmentsReplace,
    ReceiptCreate,
    ReceiptItemsReplace,
    ReceiptResponse,
    ReceiptUpdate,
    ShareIn,
)
from receipt_splitter.services import receipt_parser
from receipt_splitter.services.assignment_classifier import (
    SWIPE_THRESHOLD,
    apply_intent,
    build_custom_assignment,
    classify_gesture,
    gesture_vector,
)
from receipt_splitter.services.store import (
    get_roster,
    item_snapshot,
    receipt_snapshot,
    to_decimal,
)

router = APIRouter(prefix="/receipts", tags=["receipts"])


def _assignment_out(row: ItemAssignment) -> AssignmentOut:
    shares = None
    if row.assignment_type == domain.AssignmentType.CUSTOM.value:
        shares = [ShareIn(member_id=s.member_id, amount=s.amount) for s in row.shares]
    return AssignmentOut(
        type=row.assignment_type,
        target_member_id=row.target_member_id,
        shares=shares,
    )


def _receipt_response(receipt: Receipt) -> ReceiptResponse:
    items = [
        ItemResponse(
            id=i.id,
            name=i.name,
            unit_price=i.unit_price,
            quantity=i.quantity,
            price=float(item_snapshot(i).price),
            category=i.category,
        )
        for i in receipt.items
    ]
    return ReceiptResponse(
        id=receipt.id,
        group_id=receipt.group_id,
        uploaded_by_id=receipt.uploaded_by_id,
        paid_by_member_id=receipt.paid_by_member_id,
        store_name=receipt.store_name,
        receipt_date=receipt.receipt_date,
        image_url=receipt.image_url,
        status=receipt.status,
        total=float(receipt_snapshot(receipt).total),
        created_at=receipt.created_at,
        items=items,
        assignments={i.id: _assignment_out(i.assignment) for i in receipt.items if i.assignment},
    )


def _get_receipt(db: Session, receipt_id: int, user: User) -> tuple[Receipt, Group]:
    receipt = db.query(Receipt).filter(Receipt.id == receipt_id).first()
    if not receipt:
        raise HTTPException(status_code=404, detail="Receipt not found")
    group, _ = check_group_member(db, receipt.group_id, user)
    return receipt, group


def _check_payer(group: Group, member_id: int) -> int:
    if not any(m.id == member_id for m in group.members):
        raise HTTPException(status_code=400, detail="Payer must be a group member")
    return member_id


def _payer_id(paid_by_member_id: Optional[int], roster: list[domain.Member]) -> Optional[str]:
    if paid_by_member_id is not None:
        return str(paid_by_member_id)
    return next((m.id for m in roster if m.is_payer), None)


def _to_domain(
    data: AssignmentIn,
    item: domain.Item,
    roster: list[domain.Member],
    payer_id: Optional[str],
) -> domain.Assignment:
    if data.type == domain.AssignmentType.SELF.value:
        return domain.SelfAssignment()
    if data.type == domain.AssignmentType.SPLIT.value:
        return domain.SplitAssignment()
    if data.type == domain.AssignmentType.MEMBER.value:
        target = str(data.target_member_id)
        if not any(m.id == target for m in roster):
            raise HTTPException(status_code=400, detail="Assigned member must be a group member")
        # picking whoever paid is the same as keeping the item
        if target == payer_id:
            return domain.SelfAssignment()
        return domain.MemberAssignment(target_member_id=target)
    try:
        return build_custom_assignment(
            item,
            roster,
            [(str(s.member_id), to_decimal(s.amount)) for s in data.shares],
        )
    except InvalidAssignmentError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


def _assignment_row(assignment: domain.Assignment) -> ItemAssignment:
    row = ItemAssignment(assignment_type=assignment.type.value)
    if isinstance(assignment, domain.MemberAssignment):
        row.target_member_id = int(assignment.target_member_id)
    elif isinstance(assignment, domain.CustomAssignment):
        row.shares = [
            AssignmentShare(member_id=int(s.member_id), amount=float(s.amount))
            for s in assignment.shares
        ]
    return row


def _item_rows(items: list[ItemIn], roster: list[domain.Member], payer_id: Optional[str]) -> list[ReceiptItem]:
    rows = []
    for n, data in enumerate(items):
        row = ReceiptItem(
            name=data.name,
            unit_price=data.unit_price,
            quantity=data.quantity,
            category=data.category,
            line_number=n,
        )
        if data.assignment is not None:
            snapshot = domain.Item(
                id=str(n),
                name=data.name,
                unit_price=to_decimal(data.unit_price),
                quantity=data.quantity,
            )
            row.assignment = _assignment_row(_to_domain(data.assignment, snapshot, roster, payer_id))
        rows.append(row)
    return rows


@router.post("/parse", response_model=ParsedReceipt)
def parse_receipt(
    data: ParseReceiptRequest,
    current_user: User = Depends(get_current_user),
):
    if not data.image_data:
        raise HTTPException(status_code=400, detail="Image data is required")
    try:
        return receipt_parser.parse_receipt_image(data.image_data)
    except ParserNotConfiguredError as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    except ReceiptParseError as exc:
        raise HTTPException(status_code=502, detail=str(exc))


@router.post("", response_model=ReceiptResponse)
def create_receipt(
    data: ReceiptCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    group, membership = check_group_member(db, data.group_id, current_user)
    paid_by = membership.id
    if data.paid_by_member_id is not None:
        paid_by = _check_payer(group, data.paid_by_member_id)

    roster = get_roster(db, group.id)
    receipt = Receipt(
        group_id=group.id,
        uploaded_by_id=current_user.id,
        paid_by_member_id=paid_by,
        store_name=data.store_name or "Unknown Store",
        receipt_date=data.receipt_date,
        image_url=data.image_url,
        status=domain.ReceiptStatus.PENDING.value,
    )
    receipt.items = _item_rows(data.items, roster, str(paid_by))
    db.add(receipt)
    db.commit()
    db.refresh(receipt)
    logger.info("Receipt {} created in group {} with {} items", receipt.id, group.id, len(receipt.items))
    return _receipt_response(receipt)


@router.get("", response_model=list[ReceiptResponse])
def list_receipts(
    group_id: int,
    status: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    check_group_member(db, group_id, current_user)
    q = db.query(Receipt).filter(Receipt.group_id == group_id)
    if status:
        q = q.filter(Receipt.status == status)
    receipts = q.order_by(Receipt.created_at.desc(), Receipt.id.desc()).all()
    return [_receipt_response(r) for r in receipts]


@router.get("/{receipt_id}", response_model=ReceiptResponse)
def get_receipt(
    receipt_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    receipt, _ = _get_receipt(db, receipt_id, current_user)
    return _receipt_response(receipt)


@router.patch("/{receipt_id}", response_model=ReceiptResponse)
def update_receipt(
    receipt_id: int,
    data: ReceiptUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    receipt, group = _get_receipt(db, receipt_id, current_user)
    if data.status is not None:
        receipt.status = data.status
    if data.store_name is not None:
        receipt.store_name = data.store_name
    if data.paid_by_member_id is not None:
        receipt.paid_by_member_id = _check_payer(group, data.paid_by_member_id)
        for item in receipt.items:
            row = item.assignment
            if row is not None and row.target_member_id == receipt.paid_by_member_id:
                row.assignment_type = domain.AssignmentType.SELF.value
                row.target_member_id = None
    db.commit()
    db.refresh(receipt)
    return _receipt_response(receipt)


@router.put("/{receipt_id}/items", response_model=ReceiptResponse)
def replace_items(
    receipt_id: int,
    data: ReceiptItemsReplace,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    receipt, group = _get_receipt(db, receipt_id, current_user)
    roster = get_roster(db, group.id)
    new_items = _item_rows(data.items, roster, _payer_id(receipt.paid_by_member_id, roster))
    receipt.items = []
    db.flush()
    receipt.items = new_items
    db.commit()
    db.refresh(receipt)
    return _receipt_response(receipt)


@router.put("/{receipt_id}/assignments", response_model=ReceiptResponse)
def replace_assignments(
    receipt_id: int,
    data: ReceiptAssignmentsReplace,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    receipt, group = _get_receipt(db, receipt_id, current_user)
    items_by_id = {i.id: i for i in receipt.items}
    unknown = [str(k) for k in data.assignments if k not in items_by_id]
    if unknown:
        raise HTTPException(status_code=400, detail=f"Items not on this receipt: {', '.join(unknown)}")

    roster = get_roster(db, group.id)
    payer_id = _payer_id(receipt.paid_by_member_id, roster)
    new_rows = {
        item_id: _assignment_row(_to_domain(a, item_snapshot(items_by_id[item_id]), roster, payer_id))
        for item_id, a in data.assignments.items()
    }
    for item in receipt.items:
        item.assignment = None
    db.flush()
    for item_id, row in new_rows.items():
        items_by_id[item_id].assignment = row
    db.commit()
    db.refresh(receipt)
    return _receipt_response(receipt)


@router.post("/{receipt_id}/items/{item_id}/gesture", response_model=ItemGestureResult)
def assign_by_gesture(
    receipt_id: int,
    item_id: int,
    data: ItemGestureIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    receipt, group = _get_receipt(db, receipt_id, current_user)
    item_row = next((i for i in receipt.items if i.id == item_id), None)
    if not item_row:
        raise HTTPException(status_code=404, detail="Item not on this receipt")

    dx, dy = gesture_vector(data.offset_x, data.offset_y, data.velocity_x, data.velocity_y)
    intent = classify_gesture(dx, dy, data.threshold or SWIPE_THRESHOLD)

    snapshot = receipt_snapshot(receipt)
    payer_id = snapshot.paid_by_member_id
    roster = [replace(m, is_payer=m.id == payer_id) for m in get_roster(db, group.id)]
    item = snapshot.find_item(str(item_id))
    shares = None
    if data.shares is not None:
        shares = [(str(s.member_id), to_decimal(s.amount)) for s in data.shares]
    try:
        updated = apply_intent(
            snapshot.assignments,
            item,
            roster,
            intent,
            member_id=str(data.member_id) if data.member_id is not None else None,
            shares=shares,
        )
    except InvalidAssignmentError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    before = snapshot.assignments.get(item.id)
    after = updated.get(item.id)
    applied = after is not None and after != before
    if applied:
        item_row.assignment = None
        db.flush()
        item_row.assignment = _assignment_row(after)
        db.commit()
        db.refresh(item_row)
        logger.info("Item {} on receipt {} assigned as {} by swipe", item_id, receipt_id, after.type.value)

    return ItemGestureResult(
        intent=intent.value,
        dx=dx,
        dy=dy,
        applied=applied,
        assignment=_assignment_out(item_row.assignment) if item_row.assignment else None,
    )


@router.delete("/{receipt_id}", status_code=204)
def delete_receipt(
    receipt_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    receipt, _ = _get_receipt(db, receipt_id, current_user)
    db.delete(receipt)
    db.commit()
