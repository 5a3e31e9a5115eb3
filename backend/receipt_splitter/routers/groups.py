"""Groups: create, list, get, update, delete, add/remove members, choose the payer."""
from fastapi import APIRouter, Depends, HTTPException
from loguru import logger
from sqlalchemy import or_
from sqlalchemy.orm import Session

from receipt_splitter.auth import check_group_member, get_current_user
from receipt_splitter.database import get_db
from receipt_splitter.models import AssignmentShare, Group, GroupMember, ItemAssignment, Payment, Receipt, User
from receipt_splitter.schemas import GroupAddMember, GroupCreate, GroupResponse, GroupUpdate, MemberInfo

router = APIRouter(prefix="/groups", tags=["groups"])


def _group_response(group: Group) -> GroupResponse:
    return GroupResponse(
        id=group.id,
        name=group.name,
        description=group.description,
        created_by_id=group.created_by_id,
        created_at=group.created_at,
        member_count=len(group.members),
        members=[MemberInfo.model_validate(m) for m in group.members],
    )


def _member_references(db: Session, member_id: int) -> list[str]:
    """What still points at a member: receipts paid, items assigned, split shares, payments."""
    checks = [
        ("receipts", db.query(Receipt).filter(Receipt.paid_by_member_id == member_id)),
        ("item assignments", db.query(ItemAssignment).filter(ItemAssignment.target_member_id == member_id)),
        ("split shares", db.query(AssignmentShare).filter(AssignmentShare.member_id == member_id)),
        ("payments", db.query(Payment).filter(
            or_(Payment.from_member_id == member_id, Payment.to_member_id == member_id)
        )),
    ]
    return [name for name, q in checks if db.query(q.exists()).scalar()]


@router.get("", response_model=list[GroupResponse])
def list_groups(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    groups = (
        db.query(Group)
        .filter(Group.members.any(GroupMember.user_id == current_user.id))
        .order_by(Group.created_at.desc(), Group.id.desc())
        .all()
    )
    return [_group_response(g) for g in groups]


@router.post("", response_model=GroupResponse)
def create_group(
    data: GroupCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    group = Group(name=data.name, description=data.description, created_by_id=current_user.id)
    # the creator fronts the money until someone else is made payer
    members = [GroupMember(
        user_id=current_user.id,
        display_name=current_user.name or current_user.email,
        is_payer=True,
    )]
    for name in data.member_names:
        if name.strip():
            members.append(GroupMember(display_name=name.strip()))
    group.members = members
    db.add(group)
    db.commit()
    db.refresh(group)
    logger.info("Group {} created by user {} with {} members", group.id, current_user.id, len(members))
    return _group_response(group)


@router.get("/{group_id}", response_model=GroupResponse)
def get_group(
    group_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    group, _ = check_group_member(db, group_id, current_user)
    return _group_response(group)


@router.patch("/{group_id}", response_model=GroupResponse)
def update_group(
    group_id: int,
    data: GroupUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    group, _ = check_group_member(db, group_id, current_user)
    if data.name is not None:
        group.name = data.name
    if data.description is not None:
        group.description = data.description
    db.commit()
    db.refresh(group)
    return _group_response(group)


@router.delete("/{group_id}", status_code=204)
def delete_group(
    group_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    group, _ = check_group_member(db, group_id, current_user)
    if group.created_by_id != current_user.id:
        raise HTTPException(status_code=403, detail="Only the group creator can delete the group")
    db.delete(group)
    db.commit()
    logger.info("Group {} deleted", group_id)


@router.post("/{group_id}/members", response_model=GroupResponse)
def add_group_member(
    group_id: int,
    data: GroupAddMember,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    group, _ = check_group_member(db, group_id, current_user)
    if data.email:
        user = db.query(User).filter(User.email == data.email).first()
        if not user:
            raise HTTPException(status_code=404, detail="No user found with that email")
        if any(m.user_id == user.id for m in group.members):
            raise HTTPException(status_code=400, detail="User already in group")
        member = GroupMember(user_id=user.id, display_name=data.display_name or user.name or user.email)
    else:
        member = GroupMember(display_name=data.display_name.strip())
    group.members.append(member)
    db.commit()
    db.refresh(group)
    return _group_response(group)


@router.delete("/{group_id}/members/{member_id}", response_model=GroupResponse)
def remove_group_member(
    group_id: int,
    member_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    group, membership = check_group_member(db, group_id, current_user)
    member = next((m for m in group.members if m.id == member_id), None)
    if not member:
        raise HTTPException(status_code=404, detail="Member not in this group")
    if group.created_by_id != current_user.id and member.id != membership.id:
        raise HTTPException(status_code=403, detail="Not authorized to remove this member")
    in_use = _member_references(db, member.id)
    if in_use:
        raise HTTPException(
            status_code=409,
            detail=f"Member is still referenced by {', '.join(in_use)}; reassign them first",
        )
    group.members.remove(member)
    db.commit()
    db.refresh(group)
    if member.is_payer:
        logger.warning("Group {} lost its payer; balances are unavailable until a new one is set", group_id)
    return _group_response(group)


@router.put("/{group_id}/payer/{member_id}", response_model=GroupResponse)
def set_group_payer(
    group_id: int,
    member_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    group, _ = check_group_member(db, group_id, current_user)
    if not any(m.id == member_id for m in group.members):
        raise HTTPException(status_code=404, detail="Member not in this group")
    for m in group.members:
        m.is_payer = m.id == member_id
    db.commit()
    db.refresh(group)
    return _group_response(group)
