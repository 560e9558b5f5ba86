from datetime import timedelta
from decimal import Decimal

import pytest


def create(client, headers, **overrides):
    payload = {
        "equipment_id": overrides.pop("equipment_id"),
        "start_time": "2030-06-01T10:00:00Z",
        "end_time": "2030-06-01T12:00:00Z",
        "booking_type": "hourly",
        "location": {"coordinates": [77.5946, 12.9716], "address": "Survey 12, Hosur"},
    }
    payload.update(overrides)
    return client.post("/api/v1/bookings", json=payload, headers=headers)


@pytest.fixture()
def booking_id(client, seed, auth):
    response = create(client, auth(seed.farmer), equipment_id=seed.equipment)
    assert response.status_code == 201
    return response.get_json()["id"]


def set_status(client, headers, booking_id, status, notes=None):
    return client.put(f"/api/v1/bookings/{booking_id}/status", json={"status": status, "notes": notes}, headers=headers)


def test_create_booking(client, seed, auth):
    response = create(client, auth(seed.farmer), equipment_id=seed.equipment, notes="Paddy field")
    body = response.get_json()

    assert response.status_code == 201
    assert body["status"] == "pending"
    assert Decimal(body["pricing"]["total_amount"]) == Decimal("1000")
    assert body["booking_number"].startswith("BK-")
    assert body["site"]["address"] == "Survey 12, Hosur"
    assert body["notes"] == "Paddy field"
    assert [event["status"] for event in body["status_history"]] == ["pending"]


def test_create_booking_accepts_camel_case(client, seed, auth):
    response = client.post(
        "/api/v1/bookings",
        json={"equipment": seed.equipment, "startTime": "2030-06-02T06:00:00Z", "endTime": "2030-06-02T09:00:00Z"},
        headers=auth(seed.farmer),
    )
    assert response.status_code == 201
    assert Decimal(response.get_json()["pricing"]["total_amount"]) == Decimal("1500")


def test_requests_without_valid_token_are_unauthorized(client, seed, auth):
    assert client.get("/api/v1/bookings").status_code == 401
    assert client.get("/api/v1/bookings", headers={"Authorization": "Bearer nonsense"}).status_code == 401
    expired = auth(seed.farmer, expires_in=timedelta(seconds=-30))
    assert client.get("/api/v1/bookings", headers=expired).status_code == 401


def test_only_farmers_create_bookings(client, seed, auth):
    response = create(client, auth(seed.owner), equipment_id=seed.equipment)
    assert response.status_code == 403


def test_create_booking_errors(client, seed, auth):
    headers = auth(seed.farmer)

    inverted = create(client, headers, equipment_id=seed.equipment, end_time="2030-06-01T09:00:00Z")
    assert inverted.status_code == 400
    assert inverted.get_json()["code"] == "invalid_interval"

    missing = create(client, headers, equipment_id=9999)
    assert missing.status_code == 404

    bad_time = create(client, headers, equipment_id=seed.equipment, start_time="tomorrow")
    assert bad_time.status_code == 400

    no_equipment = client.post("/api/v1/bookings", json={"start_time": "2030-06-01T10:00:00Z"}, headers=headers)
    assert no_equipment.status_code == 400


def test_overlapping_booking_conflicts(client, seed, auth, booking_id):
    response = create(
        client,
        auth(seed.other_farmer),
        equipment_id=seed.equipment,
        start_time="2030-06-01T11:00:00Z",
        end_time="2030-06-01T13:00:00Z",
    )
    assert response.status_code == 409
    assert response.get_json()["code"] == "equipment_unavailable"


def test_full_lifecycle_with_cash_payment(client, seed, auth, booking_id):
    owner = auth(seed.owner)
    for status in ("confirmed", "in_progress", "completed"):
        response = set_status(client, owner, booking_id, status)
        assert response.status_code == 200

    body = response.get_json()
    assert body["status"] == "completed"
    assert body["payment"]["status"] == "paid"
    assert body["payment"]["paid_at"] is not None
    assert [event["status"] for event in body["status_history"]] == ["pending", "confirmed", "in_progress", "completed"]


def test_renter_cannot_complete_pending_booking(client, seed, auth, booking_id):
    response = set_status(client, auth(seed.farmer), booking_id, "completed")
    assert response.status_code == 403
    assert response.get_json()["code"] == "forbidden"


def test_invalid_transition_and_missing_status(client, seed, auth, booking_id):
    owner = auth(seed.owner)
    skipped = set_status(client, owner, booking_id, "completed")
    assert skipped.status_code == 409
    assert skipped.get_json()["code"] == "invalid_transition"

    empty = client.put(f"/api/v1/bookings/{booking_id}/status", json={}, headers=owner)
    assert empty.status_code == 400


def test_renter_cancels_and_slot_reopens(client, seed, auth, booking_id):
    set_status(client, auth(seed.owner), booking_id, "confirmed")
    response = set_status(client, auth(seed.farmer), booking_id, "cancelled", notes="Rain forecast")
    body = response.get_json()

    assert response.status_code == 200
    assert body["cancellation"]["reason"] == "Rain forecast"
    assert body["cancellation"]["refund_status"] == "not_applicable"

    availability = client.get(
        f"/api/v1/equipment/{seed.equipment}/availability",
        query_string={"start": "2030-06-01T10:00:00Z", "end": "2030-06-01T12:00:00Z"},
    )
    assert availability.get_json()["is_available"] is True


def test_booking_visibility(client, seed, auth, booking_id):
    assert client.get(f"/api/v1/bookings/{booking_id}", headers=auth(seed.farmer)).status_code == 200
    assert client.get(f"/api/v1/bookings/{booking_id}", headers=auth(seed.owner)).status_code == 200
    assert client.get(f"/api/v1/bookings/{booking_id}", headers=auth(seed.other_farmer)).status_code == 403
    assert client.get("/api/v1/bookings/424242", headers=auth(seed.admin)).status_code == 404


def test_list_bookings_filters(client, seed, auth, booking_id):
    mine = client.get("/api/v1/bookings", headers=auth(seed.farmer)).get_json()
    assert mine["count"] == 1
    assert mine["items"][0]["id"] == booking_id

    assert client.get("/api/v1/bookings", headers=auth(seed.other_farmer)).get_json()["count"] == 0
    pending = client.get("/api/v1/bookings", query_string={"status": "pending"}, headers=auth(seed.owner))
    assert pending.get_json()["count"] == 1
    later = client.get("/api/v1/bookings", query_string={"start_date": "2030-07-01T00:00:00Z"}, headers=auth(seed.owner))
    assert later.get_json()["count"] == 0


def test_tracking_updates(client, seed, auth, booking_id):
    owner = auth(seed.owner)
    set_status(client, owner, booking_id, "confirmed")
    set_status(client, owner, booking_id, "on_the_way")
    response = client.put(
        f"/api/v1/bookings/{booking_id}/tracking",
        json={"current_location": {"coordinates": [77.6, 12.95]}, "estimated_arrival": "2030-06-01T09:45:00Z"},
        headers=owner,
    )
    body = response.get_json()
    assert response.status_code == 200
    assert [float(value) for value in body["tracking"]["current_location"]] == [77.6, 12.95]
    assert body["tracking"]["last_updated"] is not None

    renter = client.put(
        f"/api/v1/bookings/{booking_id}/tracking",
        json={"current_location": {"coordinates": [77.6, 12.95]}},
        headers=auth(seed.farmer),
    )
    assert renter.status_code == 403

    malformed = client.put(f"/api/v1/bookings/{booking_id}/tracking", json={"current_location": {}}, headers=owner)
    assert malformed.status_code == 400


def test_rating_flow(client, seed, auth, booking_id):
    owner = auth(seed.owner)
    farmer = auth(seed.farmer)

    early = client.post(f"/api/v1/bookings/{booking_id}/rating", json={"equipment_rating": 5}, headers=farmer)
    assert early.status_code == 403

    for status in ("confirmed", "working", "completed"):
        set_status(client, owner, booking_id, status)

    rated = client.post(
        f"/api/v1/bookings/{booking_id}/rating",
        json={"equipmentRating": 4, "equipmentReview": "Strong pull", "operatorRating": 5},
        headers=farmer,
    )
    assert rated.status_code == 200
    assert rated.get_json()["rating"]["equipment"] == {"rating": 4, "review": "Strong pull"}

    again = client.post(f"/api/v1/bookings/{booking_id}/rating", json={"equipment_rating": 3}, headers=farmer)
    assert again.status_code == 409
    assert again.get_json()["code"] == "already_rated"

    equipment = client.get(f"/api/v1/equipment/{seed.equipment}").get_json()
    assert equipment["ratings"] == {"average": 4.0, "count": 1}
    assert len(equipment["reviews"]) == 1


def test_payment_and_refund(client, seed, auth, booking_id):
    owner = auth(seed.owner)
    set_status(client, owner, booking_id, "confirmed")
    paid = client.put(
        f"/api/v1/bookings/{booking_id}/payment",
        json={"amount": "250.00", "method": "upi", "transaction_id": "UPI-77"},
        headers=owner,
    )
    assert paid.status_code == 200
    assert paid.get_json()["payment"]["status"] == "partially_paid"

    set_status(client, auth(seed.farmer), booking_id, "cancelled")
    not_admin = client.put(f"/api/v1/bookings/{booking_id}/refund", json={"refund_status": "processed"}, headers=owner)
    assert not_admin.status_code == 403

    refunded = client.put(
        f"/api/v1/bookings/{booking_id}/refund", json={"refund_status": "processed"}, headers=auth(seed.admin)
    )
    body = refunded.get_json()
    assert refunded.status_code == 200
    assert body["cancellation"]["refund_status"] == "processed"
    assert Decimal(body["cancellation"]["refund_amount"]) == Decimal("250")
    assert body["payment"]["status"] == "refunded"


def test_provider_inbox(client, seed, auth, booking_id):
    inbox = client.get("/api/v1/notifications/me", headers=auth(seed.owner)).get_json()
    assert inbox["unread"] == 1
    assert inbox["items"][0]["booking_id"] == booking_id

    assert client.post("/api/v1/notifications/me/read", headers=auth(seed.owner)).status_code == 200
    assert client.get("/api/v1/notifications/me", headers=auth(seed.owner)).get_json()["unread"] == 0
