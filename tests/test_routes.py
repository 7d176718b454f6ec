import json

import pytest

from models.audit_log import AuditLog

BOOKING_BODY = {
    "date": "2026-02-10",
    "hours": [18, 19],
    "customer": {"name": "Ali Khan", "phone": "03001234567"},
    "advance_payment": 500,
    "advance_payment_method": "easypaisa",
    "advance_payment_proof": "EP-778812",
}


def _book(client, **overrides):
    return client.post("/bookings", json=dict(BOOKING_BODY, **overrides))


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.get_json() == {"status": "ok"}
    assert resp.headers["X-Content-Type-Options"] == "nosniff"


def test_availability_endpoint(client):
    resp = client.get("/availability?date=2026-02-10")
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["date"] == "2026-02-10"
    assert len(body["slots"]) == 24
    assert body["slots"][18] == {"hour": 18, "status": "available", "is_night_rate": True, "hourly_rate": "2000.00"}


@pytest.mark.parametrize("query", ["", "?date=10-02-2026", "?date=tomorrow"])
def test_availability_rejects_bad_dates(client, query):
    resp = client.get("/availability" + query)
    assert resp.status_code == 400
    assert resp.get_json()["code"] == "validation_error"


def test_create_and_lookup(client):
    resp = _book(client)
    assert resp.status_code == 201
    created = resp.get_json()
    assert created["booking_number"] == "BK-20260210-001"
    assert created["status"] == "pending"
    assert created["hours"] == [18, 19]
    assert created["total_amount"] == "4000.00"
    assert created["remaining_payment"] == "3500.00"

    resp = client.get("/bookings/lookup", query_string={"booking_number": created["booking_number"],
                                                          "phone": "0300-1234567"})
    assert resp.status_code == 200
    assert resp.get_json()["id"] == created["id"]

    resp = client.get("/bookings/lookup", query_string={"booking_number": created["booking_number"],
                                                          "phone": "03110000000"})
    assert resp.status_code == 404

    audit = AuditLog.query.filter_by(action="BOOKING_CREATE").one()
    assert audit.actor == "public"
    assert json.loads(audit.metadata_json)["hours"] == [18, 19]


def test_overlapping_request_gets_409(client):
    assert _book(client).status_code == 201
    resp = _book(client, hours=[19, 20], customer={"name": "Bilal", "phone": "03111111111"})
    assert resp.status_code == 409
    body = resp.get_json()
    assert body["code"] == "slot_conflict"
    assert body["conflicts"] == [{"hour": 19, "status": "pending"}]


def test_availability_check_endpoint(client):
    _book(client)
    resp = client.post("/availability/check", json={"date": "2026-02-10", "hours": [19, 20]})
    assert resp.get_json() == {"date": "2026-02-10", "available": False,
                               "conflicts": [{"hour": 19, "status": "pending"}]}

    resp = client.post("/availability/check", json={"date": "2026-02-10", "hours": "19"})
    assert resp.status_code == 400


def test_create_validation_errors(client):
    resp = _book(client, advance_payment=100)
    assert resp.status_code == 400
    assert resp.get_json()["field"] == "advance_payment"

    resp = _book(client, customer={"name": "Ali"})
    assert resp.status_code == 400
    assert resp.get_json()["field"] == "customer.phone"


def test_admin_routes_need_the_token(client, app, admin_headers):
    assert client.get("/admin/bookings").status_code == 403
    assert client.get("/admin/bookings", headers={"X-Admin-Token": "nope"}).status_code == 403
    assert client.get("/admin/bookings", headers=admin_headers).status_code == 200

    app.config["ADMIN_API_TOKEN"] = None
    assert client.get("/admin/bookings", headers=admin_headers).status_code == 503


def test_admin_settles_a_booking(client, admin_headers):
    booking_id = _book(client).get_json()["id"]

    resp = client.post(f"/admin/bookings/{booking_id}/approve", json={"admin_notes": "advance seen"},
                       headers=admin_headers)
    assert resp.status_code == 200
    assert resp.get_json()["status"] == "approved"

    resp = client.post(f"/admin/bookings/{booking_id}/complete-payment", headers=admin_headers, json={
        "payment_amount": 3000,
        "payment_method": "cash",
    })
    assert resp.status_code == 422
    body = resp.get_json()
    assert body["code"] == "amount_mismatch"
    assert body["expected"] == "3500.00"

    resp = client.post(f"/admin/bookings/{booking_id}/complete-payment", headers=admin_headers, json={
        "payment_amount": 3500,
        "payment_method": "split",
        "cash_amount": 2000,
        "online_amount": 1500,
        "online_method": "easypaisa",
    })
    assert resp.status_code == 200
    assert resp.get_json()["balance_after"] == "0.00"

    detail = client.get(f"/admin/bookings/{booking_id}", headers=admin_headers).get_json()
    assert detail["status"] == "completed"
    assert detail["remaining_cash_amount"] == "2000.00"
    assert detail["remaining_online_amount"] == "1500.00"
    assert detail["amount_collected"] == "4000.00"
    assert detail["customer"]["phone"] == "03001234567"
    assert len(detail["payments"]) == 3

    dashboard = client.get("/admin/dashboard", headers=admin_headers).get_json()
    assert dashboard["total_revenue"] == "4000.00"


def test_complete_payment_requires_amount(client, admin_headers):
    booking_id = _book(client).get_json()["id"]
    resp = client.post(f"/admin/bookings/{booking_id}/complete-payment", json={}, headers=admin_headers)
    assert resp.status_code == 400


def test_admin_cancel_and_transitions(client, admin_headers):
    booking_id = _book(client).get_json()["id"]

    resp = client.post(f"/admin/bookings/{booking_id}/cancel", json={"reason": "duplicate"}, headers=admin_headers)
    assert resp.status_code == 200
    assert resp.get_json()["status"] == "cancelled"

    resp = client.post(f"/admin/bookings/{booking_id}/approve", headers=admin_headers)
    assert resp.status_code == 409
    assert resp.get_json()["code"] == "invalid_transition"

    assert client.get("/admin/bookings/999", headers=admin_headers).status_code == 404


def test_admin_booking_filters(client, admin_headers):
    _book(client)
    assert len(client.get("/admin/bookings?status=pending", headers=admin_headers).get_json()) == 1
    assert client.get("/admin/bookings?status=approved", headers=admin_headers).get_json() == []
    assert client.get("/admin/bookings?status=bogus", headers=admin_headers).status_code == 400
    assert client.get("/admin/bookings?date=2026-02-11", headers=admin_headers).get_json() == []
    assert client.get("/admin/dashboard?start=nope", headers=admin_headers).status_code == 400


def test_admin_expire_sweep(client, clock, admin_headers):
    _book(client)
    clock.advance(minutes=31)
    resp = client.post("/admin/bookings/expire", headers=admin_headers)
    assert resp.get_json() == {"expired": 1}
    resp = client.post("/admin/bookings/expire", headers=admin_headers)
    assert resp.get_json() == {"expired": 0}


def test_admin_notifications(client, admin_headers):
    _book(client)
    feed = client.get("/admin/notifications?unread=1", headers=admin_headers).get_json()
    assert [n["type"] for n in feed] == ["new_booking"]

    resp = client.post(f"/admin/notifications/{feed[0]['id']}/read", headers=admin_headers)
    assert resp.get_json() == {"id": feed[0]["id"], "is_read": True}
    assert client.post("/admin/notifications/999/read", headers=admin_headers).status_code == 404
    assert client.post("/admin/notifications/mark-all-read", headers=admin_headers).get_json() == {"updated": 0}


def test_admin_manual_booking(client, admin_headers):
    body = {
        "date": "2026-02-10",
        "hours": [14, 15],
        "customer": {"name": "Walk-in Team", "phone": "03220000000"},
        "advance_payment": 0,
        "notes": "booked at the counter",
        "auto_approve": True,
    }
    assert client.post("/admin/bookings", json=body).status_code == 403

    resp = client.post("/admin/bookings", json=body, headers=admin_headers)
    assert resp.status_code == 201
    created = resp.get_json()
    assert created["status"] == "approved"
    assert created["total_amount"] == "3000.00"
    assert created["remaining_payment"] == "3000.00"

    audit = AuditLog.query.filter_by(action="BOOKING_CREATE_MANUAL").one()
    assert audit.actor == "admin"
    assert json.loads(audit.metadata_json)["status"] == "approved"

    resp = _book(client, hours=[15, 16])
    assert resp.status_code == 409
    assert resp.get_json()["conflicts"] == [{"hour": 15, "status": "approved"}]


def test_admin_reschedule(client, admin_headers):
    booking_id = _book(client).get_json()["id"]
    _book(client, hours=[21], customer={"name": "Bilal", "phone": "03111111111"})

    resp = client.post(f"/admin/bookings/{booking_id}/reschedule", json={"date": "2026-02-10", "hours": [19, 20]},
                       headers=admin_headers)
    assert resp.status_code == 200
    assert resp.get_json()["hours"] == [19, 20]

    resp = client.post(f"/admin/bookings/{booking_id}/reschedule", json={"date": "2026-02-10", "hours": [20, 21]},
                       headers=admin_headers)
    assert resp.status_code == 409
    assert resp.get_json()["conflicts"] == [{"hour": 21, "status": "pending"}]

    resp = client.post(f"/admin/bookings/{booking_id}/reschedule", json={"hours": [20]}, headers=admin_headers)
    assert resp.status_code == 400

    audit = AuditLog.query.filter_by(action="BOOKING_RESCHEDULE").one()
    assert json.loads(audit.metadata_json)["hours"] == [19, 20]
