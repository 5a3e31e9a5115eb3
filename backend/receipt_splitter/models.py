"""SQLAlchemy models."""
from sqlalchemy import Boolean, Column, Date, DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from receipt_splitter.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    name = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    memberships = relationship("GroupMember", back_populates="user")


class Group(Base):
    __tablename__ = "groups"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(String(512), nullable=True)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    members = relationship(
        "GroupMember",
        back_populates="group",
        cascade="all, delete-orphan",
        order_by="GroupMember.id",
    )
    receipts = relationship("Receipt", back_populates="group", cascade="all, delete-orphan")
    payments = relationship("Payment", back_populates="group", cascade="all, delete-orphan")


class GroupMember(Base):
    """A seat in a group. Placeholder members (friends without an account) have no user."""
    __tablename__ = "group_members"

    id = Column(Integer, primary_key=True, index=True)
    group_id = Column(Integer, ForeignKey("groups.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    display_name = Column(String(255), nullable=False)
    is_payer = Column(Boolean, nullable=False, default=False)
    joined_at = Column(DateTime(timezone=True), server_default=func.now())

    group = relationship("Group", back_populates="members")
    user = relationship("User", back_populates="memberships")


class Receipt(Base):
    __tablename__ = "receipts"

    id = Column(Integer, primary_key=True, index=True)
    group_id = Column(Integer, ForeignKey("groups.id"), nullable=False)
    uploaded_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    paid_by_member_id = Column(Integer, ForeignKey("group_members.id"), nullable=True)
    store_name = Column(String(255), nullable=False, default="Unknown Store")
    receipt_date = Column(Date, nullable=True)
    image_url = Column(String(1024), nullable=True)
    status = Column(String(20), nullable=False, default="pending")
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    group = relationship("Group", back_populates="receipts")
    paid_by = relationship("GroupMember", foreign_keys=[paid_by_member_id])
    items = relationship(
        "ReceiptItem",
        back_populates="receipt",
        cascade="all, delete-orphan",
        order_by="ReceiptItem.line_number",
    )


class ReceiptItem(Base):
    __tablename__ = "receipt_items"

    id = Column(Integer, primary_key=True, index=True)
    receipt_id = Column(Integer, ForeignKey("receipts.id"), nullable=False)
    name = Column(String(255), nullable=False)
    unit_price = Column(Float, nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    category = Column(String(50), nullable=True)
    line_number = Column(Integer, nullable=False, default=0)

    receipt = relationship("Receipt", back_populates="items")
    assignment = relationship(
        "ItemAssignment",
        back_populates="item",
        uselist=False,
        cascade="all, delete-orphan",
    )


class ItemAssignment(Base):
    __tablename__ = "item_assignments"

    id = Column(Integer, primary_key=True, index=True)
    item_id = Column(Integer, ForeignKey("receipt_items.id"), nullable=False, unique=True)
    assignment_type = Column(String(20), nullable=False)
    target_member_id = Column(Integer, ForeignKey("group_members.id"), nullable=True)

    item = relationship("ReceiptItem", back_populates="assignment")
    target_member = relationship("GroupMember", foreign_keys=[target_member_id])
    shares = relationship(
        "AssignmentShare",
        back_populates="assignment",
        cascade="all, delete-orphan",
        order_by="AssignmentShare.id",
    )


class AssignmentShare(Base):
    __tablename__ = "assignment_shares"

    id = Column(Integer, primary_key=True, index=True)
    assignment_id = Column(Integer, ForeignKey("item_assignments.id"), nullable=False)
    member_id = Column(Integer, ForeignKey("group_members.id"), nullable=False)
    amount = Column(Float, nullable=False)

    assignment = relationship("ItemAssignment", back_populates="shares")
    member = relationship("GroupMember")


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    group_id = Column(Integer, ForeignKey("groups.id"), nullable=False)
    from_member_id = Column(Integer, ForeignKey("group_members.id"), nullable=False)
    to_member_id = Column(Integer, ForeignKey("group_members.id"), nullable=False)
    receipt_id = Column(Integer, ForeignKey("receipts.id", ondelete="SET NULL"), nullable=True)
    amount = Column(Float, nullable=False)
    description = Column(String(512), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    group = relationship("Group", back_populates="payments")
    from_member = relationship("GroupMember", foreign_keys=[from_member_id])
    to_member = relationship("GroupMember", foreign_keys=[to_member_id])
