"""Minimize number of transfers so everyone is settled (who owes whom)."""
from decimal import Decimal
from typing import Iterable

from receipt_splitter.domain import Balance, Transfer

ZERO = Decimal("0")


def compute_settlements(balances: Iterable[Balance]) -> list[Transfer]:
    """
    balances: output of the balance engine (positive net = is owed money,
    negative net = owes money).
    Returns minimal list of transfers to settle up.
    """
    debtors = []  # (member_id, amount_owed)
    creditors = []
    for b in balances:
        if b.net < ZERO:
            debtors.append((b.member_id, -b.net))
        elif b.net > ZERO:
            creditors.append((b.member_id, b.net))
    debtors.sort(key=lambda x: -x[1])
    creditors.sort(key=lambda x: -x[1])

    out: list[Transfer] = []
    i, j = 0, 0
    while i < len(debtors) and j < len(creditors):
        dm, d_amount = debtors[i]
        cm, c_amount = creditors[j]
        transfer = min(d_amount, c_amount)
        out.append(Transfer(from_member_id=dm, to_member_id=cm, amount=transfer))
        debtors[i] = (dm, d_amount - transfer)
        creditors[j] = (cm, c_amount - transfer)
        if debtors[i][1] == ZERO:
            i += 1
        if creditors[j][1] == ZERO:
            j += 1
    return out
