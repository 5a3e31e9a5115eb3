"""Read snapshots of a group's roster, receipts and payments for the balance engine."""
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from receipt_splitter import domain
from receipt_splitter.models import GroupMember, ItemAssignment, Payment, Receipt, ReceiptItem


def to_decimal(value) -> Decimal:
    # via str so 3.33 stays 3.33 instead of its binary expansion
    return Decimal(str(value))


def member_snapshot(member: GroupMember) -> domain.Member:
    return domain.Member(
        id=str(member.id),
        display_name=member.display_name,
        is_payer=bool(member.is_payer),
    )


def item_snapshot(item: ReceiptItem) -> domain.Item:
    return domain.Item(
        id=str(item.id),
        name=item.name,
        unit_price=to_decimal(item.unit_price),
        quantity=item.quantity,
    )


def assignment_snapshot(row: ItemAssignment) -> Optional[domain.Assignment]:
    kind = row.assignment_type
    if kind == domain.AssignmentType.SELF.value:
        return domain.SelfAssignment()
    if kind == domain.AssignmentType.SPLIT.value:
        return domain.SplitAssignment()
    if kind == domain.AssignmentType.MEMBER.value and row.target_member_id is not None:
        return domain.MemberAssignment(target_member_id=str(row.target_member_id))
    if kind == domain.AssignmentType.CUSTOM.value:
        return domain.CustomAssignment(shares=tuple(
            domain.Share(member_id=str(s.member_id), amount=to_decimal(s.amount))
            for s in row.shares
        ))
    return None


def receipt_snapshot(receipt: Receipt) -> domain.Receipt:
    assignments = {}
    for item in receipt.items:
        if item.assignment is None:
            continue
        snapshot = assignment_snapshot(item.assignment)
        if snapshot is not None:
            assignments[str(item.id)] = snapshot
    return domain.Receipt(
        id=str(receipt.id),
        store_name=receipt.store_name,
        items=tuple(item_snapshot(i) for i in receipt.items),
        assignments=assignments,
        date=receipt.receipt_date,
        status=domain.ReceiptStatus(receipt.status),
        paid_by_member_id=str(receipt.paid_by_member_id) if receipt.paid_by_member_id else None,
    )


def get_roster(db: Session, group_id: int) -> list[domain.Member]:
    members = (
        db.query(GroupMember)
        .filter(GroupMember.group_id == group_id)
        .order_by(GroupMember.id)
        .all()
    )
    return [member_snapshot(m) for m in members]


def get_receipts(db: Session, group_id: int) -> list[domain.Receipt]:
    receipts = (
        db.query(Receipt)
        .filter(Receipt.group_id == group_id)
        .order_by(Receipt.id)
        .all()
    )
    return [receipt_snapshot(r) for r in receipts]


def get_payments(db: Session, group_id: int) -> list[domain.Payment]:
    payments = db.query(Payment).filter(Payment.group_id == group_id).all()
    return [
        domain.Payment(
            from_member_id=str(p.from_member_id),
            to_member_id=str(p.to_member_id),
            amount=to_decimal(p.amount),
        )
        for p in payments
    ]
