"""Pydantic schemas for request/response."""
from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field, model_validator

from receipt_splitter.domain import MAX_AMOUNT

MONEY_CAP = float(MAX_AMOUNT)


# ----- User -----
class UserBase(BaseModel):
    email: EmailStr
    name: Optional[str] = None


class UserCreate(UserBase):
    password: str


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class UserResponse(UserBase):
    id: int
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


class MemberInfo(BaseModel):
    id: int
    display_name: str
    user_id: Optional[int] = None
    is_payer: bool = False

    class Config:
        from_attributes = True


# ----- Group -----
class GroupBase(BaseModel):
    name: str
    description: Optional[str] = None


class GroupCreate(GroupBase):
    member_names: list[str] = []


class GroupUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None


class GroupAddMember(BaseModel):
    email: Optional[EmailStr] = None
    display_name: Optional[str] = None

    @model_validator(mode="after")
    def _one_of(self):
        if not self.email and not (self.display_name and self.display_name.strip()):
            raise ValueError("Provide an email or a display name")
        return self


class GroupResponse(GroupBase):
    id: int
    created_by_id: int
    created_at: Optional[datetime] = None
    member_count: int = 0
    members: list[MemberInfo] = []


# ----- Assignment -----
class ShareIn(BaseModel):
    member_id: int
    amount: float = Field(ge=0, le=MONEY_CAP, allow_inf_nan=False)


class AssignmentIn(BaseModel):
    type: Literal["self", "member", "split", "custom"]
    target_member_id: Optional[int] = None
    shares: Optional[list[ShareIn]] = None

    @model_validator(mode="after")
    def _check_payload(self):
        if self.type == "member" and self.target_member_id is None:
            raise ValueError("Member assignment requires target_member_id")
        if self.type == "custom" and not self.shares:
            raise ValueError("Custom split requires shares")
        return self


class AssignmentOut(BaseModel):
    type: str
    target_member_id: Optional[int] = None
    shares: Optional[list[ShareIn]] = None


# ----- Receipt -----
class ItemIn(BaseModel):
    name: str
    unit_price: float = Field(gt=0, le=MONEY_CAP, allow_inf_nan=False)
    quantity: int = Field(default=1, ge=1)
    category: Optional[str] = None
    assignment: Optional[AssignmentIn] = None


class ItemResponse(BaseModel):
    id: int
    name: str
    unit_price: float
    quantity: int
    price: float
    category: Optional[str] = None


class ReceiptCreate(BaseModel):
    group_id: int
    store_name: Optional[str] = None
    receipt_date: Optional[date] = None
    image_url: Optional[str] = None
    paid_by_member_id: Optional[int] = None
    items: list[ItemIn]


class ReceiptItemsReplace(BaseModel):
    items: list[ItemIn]


class ReceiptAssignmentsReplace(BaseModel):
    assignments: dict[int, AssignmentIn]


class ReceiptUpdate(BaseModel):
    status: Optional[Literal["pending", "settled"]] = None
    store_name: Optional[str] = None
    paid_by_member_id: Optional[int] = None


class ReceiptResponse(BaseModel):
    id: int
    group_id: int
    uploaded_by_id: int
    paid_by_member_id: Optional[int] = None
    store_name: str
    receipt_date: Optional[date] = None
    image_url: Optional[str] = None
    status: str
    total: float
    created_at: Optional[datetime] = None
    items: list[ItemResponse] = []
    assignments: dict[int, AssignmentOut] = {}


# ----- Receipt parsing -----
class ParseReceiptRequest(BaseModel):
    image_data: str


class ParsedItem(BaseModel):
    name: str
    price: float
    quantity: int = 1
    category: str = "other"


class ParsedReceipt(BaseModel):
    store_name: Optional[str] = None
    date: Optional[str] = None
    items: list[ParsedItem] = []
    subtotal: Optional[float] = None
    tax: Optional[float] = None
    total: Optional[float] = None


# ----- Gestures -----
class GestureIn(BaseModel):
    offset_x: float = 0.0
    offset_y: float = 0.0
    velocity_x: float = 0.0
    velocity_y: float = 0.0
    threshold: Optional[float] = Field(default=None, gt=0)


class GestureResult(BaseModel):
    intent: str
    dx: float
    dy: float


class ItemGestureIn(GestureIn):
    member_id: Optional[int] = None
    shares: Optional[list[ShareIn]] = None


class ItemGestureResult(GestureResult):
    applied: bool
    assignment: Optional[AssignmentOut] = None


# ----- Payment (settle up) -----
class PaymentCreate(BaseModel):
    group_id: int
    to_member_id: int
    from_member_id: Optional[int] = None
    amount: float = Field(le=MONEY_CAP, allow_inf_nan=False)
    description: Optional[str] = None
    receipt_id: Optional[int] = None


class PaymentResponse(BaseModel):
    id: int
    group_id: int
    from_member_id: int
    to_member_id: int
    receipt_id: Optional[int] = None
    amount: float
    description: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ----- Settlement -----
class BalanceItem(BaseModel):
    member_id: int
    display_name: str
    total_owed: float
    total_owes: float
    net: float


class AnomalyItem(BaseModel):
    kind: str
    message: str
    receipt_id: Optional[int] = None
    item_id: Optional[int] = None


class SettlementItem(BaseModel):
    from_member_id: int
    to_member_id: int
    amount: float


class SettlementSummary(BaseModel):
    group_id: int
    members: list[MemberInfo] = []
    balances: list[BalanceItem]
    settlements: list[SettlementItem]
    anomalies: list[AnomalyItem] = []


# ----- Dashboard -----
class DashboardStats(BaseModel):
    total_spent: float
    receipt_count: int
    pending_receipts: int
    item_count: int
    your_balance: float
