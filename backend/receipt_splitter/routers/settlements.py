"""Settlements: balances and who owes whom for a group, record payments, dashboard."""
from fastapi import APIRouter, Depends, HTTPException
from loguru import logger
from sqlalchemy.orm import Session

from receipt_splitter.auth import check_group_member, get_current_user
from receipt_splitter.database import get_db
from receipt_splitter.domain import BalanceReport, ReceiptStatus, is_valid_amount
from receipt_splitter.exceptions import ConfigurationError
from receipt_splitter.models import Group, Payment, User
from receipt_splitter.schemas import (
    AnomalyItem,
    BalanceItem,
    DashboardStats,
    MemberInfo,
    PaymentCreate,
    PaymentResponse,
    SettlementItem,
    SettlementSummary,
)
from receipt_splitter.services.balance_engine import compute_balances
from receipt_splitter.services.settlement_calculator import compute_settlements
from receipt_splitter.services.store import get_payments, get_receipts, get_roster

router = APIRouter(prefix="/settlements", tags=["settlements"])


def _optional_int(value):
    return int(value) if value is not None else None


def _group_report(db: Session, group: Group, receipts=None) -> BalanceReport:
    if receipts is None:
        receipts = get_receipts(db, group.id)
    try:
        return compute_balances(get_roster(db, group.id), receipts, get_payments(db, group.id))
    except ConfigurationError as exc:
        logger.warning("Balances unavailable for group {}: {}", group.id, exc)
        raise HTTPException(status_code=409, detail=f"Balances unavailable: {exc}")


@router.get("/group/{group_id}", response_model=SettlementSummary)
def get_settlements(
    group_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    group, _ = check_group_member(db, group_id, current_user)
    report = _group_report(db, group)
    names = {str(m.id): m.display_name for m in group.members}
    return SettlementSummary(
        group_id=group_id,
        members=[MemberInfo.model_validate(m) for m in group.members],
        balances=[
            BalanceItem(
                member_id=int(b.member_id),
                display_name=names[b.member_id],
                total_owed=float(b.total_owed),
                total_owes=float(b.total_owes),
                net=float(b.net),
            )
            for b in report.balances
        ],
        settlements=[
            SettlementItem(
                from_member_id=int(t.from_member_id),
                to_member_id=int(t.to_member_id),
                amount=float(t.amount),
            )
            for t in compute_settlements(report.balances)
        ],
        anomalies=[
            AnomalyItem(
                kind=a.kind.value,
                message=a.message,
                receipt_id=_optional_int(a.receipt_id),
                item_id=_optional_int(a.item_id),
            )
            for a in report.anomalies
        ],
    )


@router.post("/pay", response_model=PaymentResponse)
def record_payment(
    data: PaymentCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    group, membership = check_group_member(db, data.group_id, current_user)
    member_ids = {m.id for m in group.members}
    from_member_id = data.from_member_id if data.from_member_id is not None else membership.id
    if from_member_id not in member_ids:
        raise HTTPException(status_code=400, detail="Payer must be a group member")
    if data.to_member_id not in member_ids:
        raise HTTPException(status_code=400, detail="Recipient must be a group member")
    if data.to_member_id == from_member_id:
        raise HTTPException(status_code=400, detail="Cannot pay yourself")
    if data.amount <= 0:
        raise HTTPException(status_code=400, detail="Amount must be positive")

    payment = Payment(
        group_id=data.group_id,
        from_member_id=from_member_id,
        to_member_id=data.to_member_id,
        receipt_id=data.receipt_id,
        amount=data.amount,
        description=data.description,
    )
    db.add(payment)
    db.commit()
    db.refresh(payment)
    logger.info("Payment {} recorded in group {}", payment.id, data.group_id)
    return PaymentResponse.model_validate(payment)


@router.get("/payments/{group_id}", response_model=list[PaymentResponse])
def list_payments(
    group_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    check_group_member(db, group_id, current_user)
    payments = (
        db.query(Payment)
        .filter(Payment.group_id == group_id)
        .order_by(Payment.created_at.desc(), Payment.id.desc())
        .all()
    )
    return [PaymentResponse.model_validate(p) for p in payments]


@router.get("/dashboard/{group_id}", response_model=DashboardStats)
def get_dashboard(
    group_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    group, membership = check_group_member(db, group_id, current_user)
    receipts = get_receipts(db, group_id)
    report = _group_report(db, group, receipts)
    mine = report.for_member(str(membership.id))

    return DashboardStats(
        total_spent=float(sum(
            i.price for r in receipts for i in r.items if is_valid_amount(i.price)
        )),
        receipt_count=len(receipts),
        pending_receipts=sum(1 for r in receipts if r.status == ReceiptStatus.PENDING),
        item_count=sum(len(r.items) for r in receipts),
        your_balance=float(mine.net) if mine else 0.0,
    )
