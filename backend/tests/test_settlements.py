import json

import pytest

from receipt_splitter.models import Payment, ReceiptItem


@pytest.fixture
def dinner(client, auth_headers, group, member_ids):
    """Burger 12 for Alice, fries 6 split three ways, soda 3 for the payer."""
    res = client.post("/api/receipts", json={
        "group_id": group["id"],
        "store_name": "Burger Barn",
        "items": [
            {"name": "Burger", "unit_price": 12.0,
             "assignment": {"type": "member", "target_member_id": member_ids["alice"]}},
            {"name": "Fries", "unit_price": 6.0, "assignment": {"type": "split"}},
            {"name": "Soda", "unit_price": 3.0, "assignment": {"type": "self"}},
        ],
    }, headers=auth_headers)
    return res.json()


def _balances(data):
    return {b["member_id"]: b for b in data["balances"]}


def test_settlements_for_receipt(client, auth_headers, group, member_ids, dinner):
    res = client.get(f"/api/settlements/group/{group['id']}", headers=auth_headers)
    assert res.status_code == 200
    data = res.json()
    balances = _balances(data)
    assert balances[member_ids["you"]]["total_owed"] == 16.0
    assert balances[member_ids["you"]]["net"] == 16.0
    assert balances[member_ids["alice"]]["total_owes"] == 14.0
    assert balances[member_ids["alice"]]["net"] == -14.0
    assert balances[member_ids["bob"]]["net"] == -2.0
    assert balances[member_ids["alice"]]["display_name"] == "Alice"
    assert sum(b["net"] for b in data["balances"]) == pytest.approx(0)

    transfers = {(s["from_member_id"], s["to_member_id"]): s["amount"] for s in data["settlements"]}
    assert transfers == {
        (member_ids["alice"], member_ids["you"]): 14.0,
        (member_ids["bob"], member_ids["you"]): 2.0,
    }
    assert data["anomalies"] == []


def test_empty_group_has_no_balances(client, auth_headers, group):
    res = client.get(f"/api/settlements/group/{group['id']}", headers=auth_headers)
    assert res.status_code == 200
    assert res.json()["balances"] == []
    assert res.json()["settlements"] == []


def test_balances_follow_receipt_payer(client, auth_headers, group, member_ids):
    client.post("/api/receipts", json={
        "group_id": group["id"],
        "paid_by_member_id": member_ids["bob"],
        "items": [{"name": "Taxi", "unit_price": 9.0, "assignment": {"type": "split"}}],
    }, headers=auth_headers)
    res = client.get(f"/api/settlements/group/{group['id']}", headers=auth_headers)
    balances = _balances(res.json())
    assert balances[member_ids["bob"]]["net"] == 6.0
    assert balances[member_ids["you"]]["net"] == -3.0
    assert balances[member_ids["alice"]]["net"] == -3.0


def test_balances_unavailable_when_payer_removed(client, auth_headers, group, member_ids, dinner):
    # move the payer flag to Bob, then drop Bob from the group
    client.put(f"/api/groups/{group['id']}/payer/{member_ids['bob']}", headers=auth_headers)
    client.delete(f"/api/groups/{group['id']}/members/{member_ids['bob']}", headers=auth_headers)
    res = client.get(f"/api/settlements/group/{group['id']}", headers=auth_headers)
    assert res.status_code == 409
    assert res.json()["detail"].startswith("Balances unavailable")

    res = client.get(f"/api/settlements/dashboard/{group['id']}", headers=auth_headers)
    assert res.status_code == 409


def test_referenced_member_cannot_be_removed(client, auth_headers, group, member_ids, dinner):
    res = client.delete(f"/api/groups/{group['id']}/members/{member_ids['alice']}", headers=auth_headers)
    assert res.status_code == 409
    assert "item assignments" in res.json()["detail"]

    res = client.get(f"/api/settlements/group/{group['id']}", headers=auth_headers)
    assert res.json()["anomalies"] == []
    assert _balances(res.json())[member_ids["alice"]]["net"] == -14.0


def test_member_in_a_payment_cannot_be_removed(client, auth_headers, group, member_ids):
    client.post("/api/settlements/pay", json={
        "group_id": group["id"], "from_member_id": member_ids["bob"],
        "to_member_id": member_ids["you"], "amount": 5.0,
    }, headers=auth_headers)
    res = client.delete(f"/api/groups/{group['id']}/members/{member_ids['bob']}", headers=auth_headers)
    assert res.status_code == 409
    assert res.json()["detail"] == "Member is still referenced by payments; reassign them first"


def test_unusable_stored_amounts_become_anomalies(client, auth_headers, group, member_ids, dinner, db_session):
    # rows written before amounts were validated
    burger = db_session.query(ReceiptItem).filter(ReceiptItem.name == "Burger").one()
    burger.unit_price = 1e27
    db_session.add(Payment(
        group_id=group["id"], from_member_id=member_ids["bob"],
        to_member_id=member_ids["you"], amount=1e15,
    ))
    db_session.commit()

    res = client.get(f"/api/settlements/group/{group['id']}", headers=auth_headers)
    assert res.status_code == 200
    data = res.json()
    assert [a["kind"] for a in data["anomalies"]] == ["invalid_amount", "invalid_amount"]
    balances = _balances(data)
    assert balances[member_ids["you"]]["total_owed"] == 4.0
    assert balances[member_ids["alice"]]["net"] == -2.0

    res = client.get(f"/api/settlements/dashboard/{group['id']}", headers=auth_headers)
    assert res.status_code == 200
    assert res.json()["total_spent"] == 9.0


def test_record_payment(client, auth_headers, group, member_ids, dinner):
    res = client.post("/api/settlements/pay", json={
        "group_id": group["id"],
        "from_member_id": member_ids["alice"],
        "to_member_id": member_ids["you"],
        "amount": 14.0,
        "description": "Burger Barn",
        "receipt_id": dinner["id"],
    }, headers=auth_headers)
    assert res.status_code == 200
    assert res.json()["from_member_id"] == member_ids["alice"]

    res = client.get(f"/api/settlements/payments/{group['id']}", headers=auth_headers)
    payments = res.json()
    assert len(payments) == 1
    assert payments[0]["amount"] == 14.0

    res = client.get(f"/api/settlements/group/{group['id']}", headers=auth_headers)
    data = res.json()
    balances = _balances(data)
    assert balances[member_ids["alice"]]["net"] == 0.0
    assert balances[member_ids["you"]]["net"] == 2.0
    assert data["settlements"] == [
        {"from_member_id": member_ids["bob"], "to_member_id": member_ids["you"], "amount": 2.0},
    ]


def test_payment_defaults_to_caller(client, auth_headers, group, member_ids):
    res = client.post("/api/settlements/pay", json={
        "group_id": group["id"], "to_member_id": member_ids["bob"], "amount": 5.0,
    }, headers=auth_headers)
    assert res.status_code == 200
    assert res.json()["from_member_id"] == member_ids["you"]


@pytest.mark.parametrize("body, detail", [
    ({"to_member_id": 999, "amount": 5.0}, "Recipient must be a group member"),
    ({"amount": -1.0}, "Amount must be positive"),
    ({"from_member_id": 999, "amount": 5.0}, "Payer must be a group member"),
])
def test_invalid_payments(client, auth_headers, group, member_ids, body, detail):
    payload = {"group_id": group["id"], "to_member_id": member_ids["alice"], **body}
    res = client.post("/api/settlements/pay", json=payload, headers=auth_headers)
    assert res.status_code == 400
    assert res.json()["detail"] == detail


def test_cannot_pay_yourself(client, auth_headers, group, member_ids):
    res = client.post("/api/settlements/pay", json={
        "group_id": group["id"], "to_member_id": member_ids["you"], "amount": 5.0,
    }, headers=auth_headers)
    assert res.status_code == 400


def test_dashboard(client, auth_headers, group, member_ids, dinner):
    client.post("/api/receipts", json={
        "group_id": group["id"], "store_name": "Cafe",
        "items": [{"name": "Coffee", "unit_price": 2.5, "quantity": 2}],
    }, headers=auth_headers)
    client.patch(f"/api/receipts/{dinner['id']}", json={"status": "settled"}, headers=auth_headers)

    res = client.get(f"/api/settlements/dashboard/{group['id']}", headers=auth_headers)
    assert res.status_code == 200
    data = res.json()
    assert data["total_spent"] == 26.0
    assert data["receipt_count"] == 2
    assert data["pending_receipts"] == 1
    assert data["item_count"] == 4
    assert data["your_balance"] == 16.0


@pytest.mark.parametrize("amount", [float("inf"), float("nan"), 1e13])
def test_payment_amount_must_be_finite(client, auth_headers, group, member_ids, amount):
    body = json.dumps({"group_id": group["id"], "to_member_id": member_ids["alice"], "amount": amount})
    res = client.post(
        "/api/settlements/pay",
        content=body,
        headers={**auth_headers, "Content-Type": "application/json"},
    )
    assert res.status_code == 422
