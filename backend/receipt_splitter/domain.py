"""Core data contracts shared by the balance engine and the assignment classifier.

These are plain snapshots: nothing here touches the database. Money is always
``Decimal``; ids are strings so the core does not care how rows are keyed.
"""
import datetime
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import ClassVar, Mapping, Optional, Union

CUSTOM_SPLIT_EPSILON = Decimal("0.01")
# largest amount a single item, share or payment may carry
MAX_AMOUNT = Decimal("1000000000")


@dataclass(frozen=True)
class Member:
    id: str
    display_name: str
    is_payer: bool = False


@dataclass(frozen=True)
class Item:
    id: str
    name: str
    unit_price: Decimal
    quantity: int = 1

    def __post_init__(self):
        if self.quantity < 1:
            raise ValueError(f"Item {self.id!r} quantity must be at least 1")

    @property
    def price(self) -> Decimal:
        return self.unit_price * self.quantity


class AssignmentType(str, Enum):
    SELF = "self"
    MEMBER = "member"
    SPLIT = "split"
    CUSTOM = "custom"


@dataclass(frozen=True)
class SelfAssignment:
    type: ClassVar[AssignmentType] = AssignmentType.SELF


@dataclass(frozen=True)
class MemberAssignment:
    target_member_id: str
    type: ClassVar[AssignmentType] = AssignmentType.MEMBER


@dataclass(frozen=True)
class SplitAssignment:
    type: ClassVar[AssignmentType] = AssignmentType.SPLIT


@dataclass(frozen=True)
class Share:
    member_id: str
    amount: Decimal


@dataclass(frozen=True)
class CustomAssignment:
    shares: tuple[Share, ...]
    type: ClassVar[AssignmentType] = AssignmentType.CUSTOM

    @property
    def total(self) -> Decimal:
        return sum((s.amount for s in self.shares), Decimal("0"))


Assignment = Union[SelfAssignment, MemberAssignment, SplitAssignment, CustomAssignment]


class ReceiptStatus(str, Enum):
    PENDING = "pending"
    SETTLED = "settled"


@dataclass(frozen=True)
class Receipt:
    id: str
    store_name: str
    items: tuple[Item, ...]
    assignments: Mapping[str, Assignment] = field(default_factory=dict)
    date: Optional[datetime.date] = None
    status: ReceiptStatus = ReceiptStatus.PENDING
    paid_by_member_id: Optional[str] = None

    def find_item(self, item_id: str) -> Optional[Item]:
        return next((i for i in self.items if i.id == item_id), None)

    @property
    def total(self) -> Decimal:
        return sum((i.price for i in self.items), Decimal("0"))


@dataclass(frozen=True)
class Payment:
    """Money already handed over outside the app; settles part of a debt."""
    from_member_id: str
    to_member_id: str
    amount: Decimal


@dataclass(frozen=True)
class Balance:
    member_id: str
    total_owed: Decimal
    total_owes: Decimal
    net: Decimal


class AnomalyKind(str, Enum):
    DANGLING_ITEM = "dangling_item"
    SELF_TARGETED_MEMBER = "self_targeted_member"
    CUSTOM_SHARES_MISMATCH = "custom_shares_mismatch"
    UNKNOWN_MEMBER = "unknown_member"
    INVALID_AMOUNT = "invalid_amount"


@dataclass(frozen=True)
class DataAnomaly:
    kind: AnomalyKind
    message: str
    receipt_id: Optional[str] = None
    item_id: Optional[str] = None


@dataclass(frozen=True)
class BalanceReport:
    balances: tuple[Balance, ...]
    anomalies: tuple[DataAnomaly, ...] = ()

    def for_member(self, member_id: str) -> Optional[Balance]:
        return next((b for b in self.balances if b.member_id == member_id), None)


def is_valid_amount(value: Decimal) -> bool:
    """Finite and no larger than MAX_AMOUNT either way."""
    return value.is_finite() and abs(value) <= MAX_AMOUNT


def custom_shares_match(price: Decimal, shares: tuple[Share, ...]) -> bool:
    total = sum((s.amount for s in shares), Decimal("0"))
    return abs(total - price) < CUSTOM_SPLIT_EPSILON


@dataclass(frozen=True)
class Transfer:
    from_member_id: str
    to_member_id: str
    amount: Decimal
