"""
Tests for the integration bridge endpoints.
"""

from decimal import Decimal

PAYMENT = {
    "subject": "payment.received",
    "payload": {
        "payment_id": "PAY-9",
        "invoice_number": "EXT-9",
        "amount": "500.00",
        "payment_method": "bank",
        "payment_date": "2024-06-05",
    },
}


def test_list_subjects(client):
    response = client.get("/bridge/subjects")
    assert response.status_code == 200
    assert response.json() == sorted(response.json())
    assert "invoice.created" in response.json()


def test_event_posts_entry(client, accounts, publisher):
    response = client.post("/bridge/events", json=PAYMENT)

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "posted"
    assert data["entry_type"] == "PMT"
    assert [Decimal(line["debit_amount"]) for line in data["lines"]] == \
        [Decimal("500.00"), Decimal("0.00")]
    assert "bridge.entry_created" in publisher.names()


def test_redelivery_returns_same_entry(client, accounts):
    first = client.post("/bridge/events", json=PAYMENT).json()
    second = client.post("/bridge/events", json=PAYMENT).json()

    assert second["id"] == first["id"]
    assert len(client.get("/ledger/entries").json()) == 1


def test_unknown_subject_returns_400(client):
    response = client.post("/bridge/events", json={
        "subject": "order.shipped", "payload": {},
    })
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "VALIDATION_ERROR"


def test_missing_mapping_returns_422(client):
    response = client.post("/bridge/events", json=PAYMENT)
    assert response.status_code == 422
    assert response.json()["detail"]["code"] == "MISSING_ACCOUNT_MAPPING"


def test_sub_paisa_amount_returns_400(client, accounts):
    response = client.post("/bridge/events", json={
        "subject": "invoice.created",
        "payload": {"invoice_id": "1", "invoice_number": "EXT-1",
                    "subtotal": "1000.005", "tax_amount": "179.995",
                    "total_amount": "1180.00"},
    })
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "VALIDATION_ERROR"
    assert client.get("/ledger/entries").json() == []


def test_restaurant_room_charge_posts_to_guest_ledger(client, accounts):
    response = client.post("/bridge/events", json={
        "subject": "restaurant.order.paid",
        "payload": {"order_id": 31, "table_number": "4", "total": "820.00",
                    "payment_method": "room_charge"},
    })

    assert response.status_code == 201
    data = response.json()
    assert data["entry_type"] == "POS"
    assert data["reference_id"] == "31"
    assert data["lines"][0]["account_id"] == accounts["guest_ledger"]
