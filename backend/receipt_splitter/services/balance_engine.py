"""Turn a group's receipts and roster into per-member balances (who is owed, who owes)."""
from collections import defaultdict
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Sequence

from loguru import logger

from receipt_splitter.domain import (
    AnomalyKind,
    Balance,
    BalanceReport,
    CustomAssignment,
    DataAnomaly,
    Member,
    MemberAssignment,
    Payment,
    Receipt,
    SelfAssignment,
    SplitAssignment,
    custom_shares_match,
    is_valid_amount,
)
from receipt_splitter.exceptions import ConfigurationError

CENT = Decimal("0.01")
ZERO = Decimal("0")


def round_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def find_payer(roster: Sequence[Member]) -> Member:
    payers = [m for m in roster if m.is_payer]
    if len(payers) != 1:
        raise ConfigurationError(
            f"Roster must have exactly one payer, found {len(payers)}"
        )
    return payers[0]


def compute_balances(
    roster: Sequence[Member],
    receipts: Iterable[Receipt],
    payments: Iterable[Payment] = (),
) -> BalanceReport:
    """
    Recompute every member's position from scratch.

    The roster's payer is the default creditor; a receipt with ``paid_by_member_id``
    overrides it for that receipt. Values accumulate unrounded and are rounded once,
    half away from zero, when the report is built. Bad records become anomalies and
    are skipped; only an unusable roster raises.
    """
    default_payer = find_payer(roster)
    member_ids = {m.id for m in roster}
    owed: dict[str, Decimal] = defaultdict(lambda: ZERO)
    owes: dict[str, Decimal] = defaultdict(lambda: ZERO)
    anomalies: list[DataAnomaly] = []

    def note(kind: AnomalyKind, message: str, receipt_id=None, item_id=None):
        logger.warning("Balance anomaly ({}): {}", kind.value, message)
        anomalies.append(DataAnomaly(kind=kind, message=message, receipt_id=receipt_id, item_id=item_id))

    for receipt in receipts:
        payer_id = receipt.paid_by_member_id or default_payer.id
        if payer_id not in member_ids:
            note(
                AnomalyKind.UNKNOWN_MEMBER,
                f"Receipt {receipt.id} is paid by {payer_id}, who is not in the group",
                receipt_id=receipt.id,
            )
            continue

        for item_id, assignment in receipt.assignments.items():
            item = receipt.find_item(item_id)
            if item is None:
                note(
                    AnomalyKind.DANGLING_ITEM,
                    f"Assignment points at missing item {item_id}",
                    receipt_id=receipt.id,
                    item_id=item_id,
                )
                continue
            price = item.price
            if not is_valid_amount(price):
                note(
                    AnomalyKind.INVALID_AMOUNT,
                    f"Item {item.name!r} has an unusable price {price}",
                    receipt_id=receipt.id,
                    item_id=item_id,
                )
                continue

            if isinstance(assignment, SelfAssignment):
                continue

            if isinstance(assignment, MemberAssignment):
                target = assignment.target_member_id
                if target not in member_ids:
                    note(
                        AnomalyKind.UNKNOWN_MEMBER,
                        f"Item {item.name!r} is assigned to unknown member {target}",
                        receipt_id=receipt.id,
                        item_id=item_id,
                    )
                elif target == payer_id:
                    note(
                        AnomalyKind.SELF_TARGETED_MEMBER,
                        f"Item {item.name!r} is assigned to its own payer",
                        receipt_id=receipt.id,
                        item_id=item_id,
                    )
                else:
                    owes[target] += price
                    owed[payer_id] += price

            elif isinstance(assignment, SplitAssignment):
                split_amount = price / len(roster)
                for m in roster:
                    if m.id != payer_id:
                        owes[m.id] += split_amount
                owed[payer_id] += split_amount * (len(roster) - 1)

            elif isinstance(assignment, CustomAssignment):
                strangers = [s.member_id for s in assignment.shares if s.member_id not in member_ids]
                if strangers:
                    note(
                        AnomalyKind.UNKNOWN_MEMBER,
                        f"Custom split on {item.name!r} names unknown members {', '.join(strangers)}",
                        receipt_id=receipt.id,
                        item_id=item_id,
                    )
                    continue
                if not all(is_valid_amount(s.amount) for s in assignment.shares):
                    note(
                        AnomalyKind.INVALID_AMOUNT,
                        f"Custom split on {item.name!r} has an unusable share amount",
                        receipt_id=receipt.id,
                        item_id=item_id,
                    )
                    continue
                if not custom_shares_match(price, assignment.shares):
                    note(
                        AnomalyKind.CUSTOM_SHARES_MISMATCH,
                        f"Custom shares on {item.name!r} total {assignment.total}, item costs {price}",
                        receipt_id=receipt.id,
                        item_id=item_id,
                    )
                    continue
                for share in assignment.shares:
                    # the payer cannot owe themselves
                    if share.member_id == payer_id:
                        continue
                    owes[share.member_id] += share.amount
                    owed[payer_id] += share.amount

    for p in payments:
        if p.from_member_id not in member_ids or p.to_member_id not in member_ids:
            note(
                AnomalyKind.UNKNOWN_MEMBER,
                f"Payment {p.from_member_id} -> {p.to_member_id} involves a member outside the group",
            )
            continue
        if not is_valid_amount(p.amount) or p.amount <= ZERO:
            note(
                AnomalyKind.INVALID_AMOUNT,
                f"Payment {p.from_member_id} -> {p.to_member_id} has an unusable amount {p.amount}",
            )
            continue
        owed[p.from_member_id] += p.amount
        owes[p.to_member_id] += p.amount

    balances = []
    for m in roster:
        total_owed = round_money(owed[m.id])
        total_owes = round_money(owes[m.id])
        if total_owed == ZERO and total_owes == ZERO:
            continue
        balances.append(Balance(
            member_id=m.id,
            total_owed=total_owed,
            total_owes=total_owes,
            net=total_owed - total_owes,
        ))
    return BalanceReport(balances=tuple(balances), anomalies=tuple(anomalies))
