from __future__ import annotations

import re

from conftest import RecordingNotifier
from fastapi.testclient import TestClient

from spa_booking.config import Settings
from spa_booking.main import create_app, get_booking_service


def _booking(**overrides) -> dict:
    body = {
        "service": "Swedish Massage",
        "therapyName": "Anna",
        "duration": "60min",
        "price": "$60",
        "name": "Jane Doe",
        "phone": "+1 555 0100",
        "datetime": "2026-11-02T10:00:00",
    }
    body.update(overrides)
    return body


def _testimonial(**overrides) -> dict:
    body = {
        "reviewerName": "Mia",
        "reviewerEmail": "mia@example.com",
        "reviewTitle": "Lovely",
        "reviewText": "Best massage in town.",
        "rating": 5,
        "genuineOpinion": True,
    }
    body.update(overrides)
    return body


def test_root_and_health(client: TestClient) -> None:
    assert client.get("/").status_code == 200
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["ok"] is True


def test_create_booking_normalizes_fields(client: TestClient, notifier: RecordingNotifier) -> None:
    r = client.post("/bookings", json=_booking())

    assert r.status_code == 201
    body = r.json()
    assert body["service"] == "Swedish Massage"
    assert body["therapyName"] == "Anna"
    assert body["duration"] == 60
    assert body["price"] == 60.0
    assert body["datetime"] == "2026-11-02 10:00 AM"
    assert body["endTime"] == "2026-11-02 11:00 AM"
    assert body["paymentStatus"] == "pending"
    assert notifier.kinds == ["booking_created"]


def test_created_booking_round_trips_through_list(client: TestClient) -> None:
    created = client.post("/bookings", json=_booking()).json()

    r = client.get("/bookings")

    assert r.status_code == 200
    assert r.json() == [created]


def test_timezone_aware_start_is_stored_as_utc(client: TestClient) -> None:
    r = client.post("/bookings", json=_booking(datetime="2026-11-02T12:00:00+02:00"))
    assert r.status_code == 201
    assert r.json()["datetime"] == "2026-11-02 10:00 AM"


def test_partial_overlap_is_rejected_with_409(client: TestClient, notifier: RecordingNotifier) -> None:
    assert client.post("/bookings", json=_booking()).status_code == 201

    r = client.post("/bookings", json=_booking(datetime="2026-11-02T10:30:00"))

    assert r.status_code == 409
    assert r.json() == {
        "error": "Therapist Anna already has a booking from 2026-11-02 10:00 AM to 2026-11-02 11:00 AM. "
                 "Please choose another time."
    }
    assert len(client.get("/bookings").json()) == 1
    assert notifier.kinds == ["booking_created"]


def test_back_to_back_bookings_both_succeed(client: TestClient) -> None:
    assert client.post("/bookings", json=_booking(datetime="2026-11-02T09:00:00")).status_code == 201
    assert client.post("/bookings", json=_booking(datetime="2026-11-02T10:00:00")).status_code == 201

    starts = [b["datetime"] for b in client.get("/bookings").json()]
    assert starts == ["2026-11-02 10:00 AM", "2026-11-02 09:00 AM"]


def test_missing_field_returns_400_without_side_effects(client: TestClient, notifier: RecordingNotifier) -> None:
    body = _booking()
    del body["therapyName"]

    r = client.post("/bookings", json=body)

    assert r.status_code == 400
    assert "therapyName" in r.json()["error"]
    assert client.get("/bookings").json() == []
    assert notifier.events == []


def test_malformed_duration_and_price_return_400(client: TestClient) -> None:
    assert client.post("/bookings", json=_booking(duration="an hour")).status_code == 400
    assert client.post("/bookings", json=_booking(price="free")).status_code == 400
    assert client.post("/bookings", json=_booking(duration="0min")).status_code == 400


def test_start_near_end_of_calendar_returns_400(client: TestClient, notifier: RecordingNotifier) -> None:
    r = client.post("/bookings", json=_booking(datetime="9999-12-31T23:30:00"))

    assert r.status_code == 400
    assert "datetime" in r.json()["error"]
    assert client.get("/bookings").json() == []
    assert notifier.events == []


def test_start_near_beginning_of_calendar_returns_400(client: TestClient) -> None:
    r = client.post("/bookings", json=_booking(datetime="0001-01-01T00:30:00"))

    assert r.status_code == 400
    assert r.json() == {"error": "datetime: outside the supported date range"}


def test_duration_above_maximum_returns_400(client: TestClient) -> None:
    r = client.post("/bookings", json=_booking(duration="180min"))
    assert r.status_code == 400
    assert "duration" in r.json()["error"]


def test_notification_failure_still_returns_201(client: TestClient, notifier: RecordingNotifier) -> None:
    notifier.fail = True

    r = client.post("/bookings", json=_booking())

    assert r.status_code == 201
    assert len(client.get("/bookings").json()) == 1


def test_delete_booking(client: TestClient, notifier: RecordingNotifier) -> None:
    created = client.post("/bookings", json=_booking()).json()

    r = client.delete(f"/bookings/{created['id']}")

    assert r.status_code == 200
    assert r.json()["message"] == f"Booking with ID {created['id']} deleted successfully."
    assert r.json()["booking"] == created
    assert client.get("/bookings").json() == []
    assert notifier.kinds == ["booking_created", "booking_cancelled"]


def test_delete_unknown_booking_returns_404(client: TestClient, notifier: RecordingNotifier) -> None:
    r = client.delete("/bookings/999")

    assert r.status_code == 404
    assert r.json() == {"error": "Booking with ID 999 not found."}
    assert notifier.events == []


def test_cancel_via_bot(client: TestClient, notifier: RecordingNotifier) -> None:
    created = client.post("/bookings", json=_booking()).json()

    assert client.post("/cancel-via-bot", json={}).status_code == 400
    assert client.post("/cancel-via-bot", json={"bookingId": 999}).status_code == 404

    r = client.post("/cancel-via-bot", json={"bookingId": created["id"]})
    assert r.status_code == 200
    assert r.json() == {"message": f"Booking with ID {created['id']} cancelled successfully."}
    assert notifier.kinds == ["booking_created", "booking_cancelled"]


def test_confirm_payment_is_visible_in_list(client: TestClient) -> None:
    created = client.post("/bookings", json=_booking()).json()

    r = client.post("/payments/confirm", json={"bookingId": created["id"]})
    assert r.status_code == 200
    assert r.json()["message"] == f"Payment for booking ID {created['id']} confirmed successfully."
    assert client.post("/payments/confirm", json={"bookingId": created["id"]}).status_code == 200

    [listed] = client.get("/bookings").json()
    assert listed["paymentStatus"] == "completed"


def test_confirm_payment_errors(client: TestClient) -> None:
    assert client.post("/payments/confirm", json={}).status_code == 400
    r = client.post("/payments/confirm", json={"bookingId": 7})
    assert r.status_code == 404
    assert "error" in r.json()


def test_initiate_payment(client: TestClient) -> None:
    r = client.post("/payments/initiate", json={"amount": "$60", "serviceName": "Swedish Massage", "bookingId": 3})

    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "pending"
    assert body["qrCodeUrl"].endswith("?amount=60.00&bookingId=3")
    assert re.fullmatch(r"TXN-\d+-[0-9a-z]{9}", body["transactionId"])


def test_initiate_payment_keeps_amount_digits(client: TestClient) -> None:
    r = client.post(
        "/payments/initiate", json={"amount": "$1234567.89", "serviceName": "Spa Day Package", "bookingId": 3}
    )

    assert r.status_code == 200
    assert r.json()["qrCodeUrl"].endswith("?amount=1234567.89&bookingId=3")


def test_initiate_payment_requires_all_fields(client: TestClient) -> None:
    r = client.post("/payments/initiate", json={"amount": "$60", "bookingId": 3})
    assert r.status_code == 400
    assert "serviceName" in r.json()["error"]


def test_testimonial_lifecycle(client: TestClient) -> None:
    r = client.post("/testimonials", json=_testimonial())
    assert r.status_code == 201
    first = r.json()
    assert first["reviewerName"] == "Mia"
    assert first["genuineOpinion"] is True

    untitled = _testimonial(reviewerName="Noah")
    del untitled["reviewTitle"]
    second = client.post("/testimonials", json=untitled).json()
    assert second["reviewTitle"] is None

    listed = client.get("/testimonials").json()
    assert [t["id"] for t in listed] == [second["id"], first["id"]]

    r = client.delete(f"/testimonials/{first['id']}")
    assert r.status_code == 200
    assert r.json() == {"message": f"Testimonial with ID {first['id']} deleted successfully."}
    assert client.delete(f"/testimonials/{first['id']}").status_code == 404


def test_testimonial_validation(client: TestClient) -> None:
    assert client.post("/testimonials", json=_testimonial(rating=6)).status_code == 400
    assert client.post("/testimonials", json=_testimonial(rating=0)).status_code == 400
    assert client.post("/testimonials", json=_testimonial(reviewerEmail="not-an-email")).status_code == 400

    body = _testimonial()
    del body["genuineOpinion"]
    r = client.post("/testimonials", json=body)
    assert r.status_code == 400
    assert "genuineOpinion" in r.json()["error"]
    assert client.get("/testimonials").json() == []


def test_unexpected_error_returns_json_500(settings: Settings) -> None:
    def broken_service():
        raise RuntimeError("database driver exploded")

    app = create_app(settings)
    app.dependency_overrides[get_booking_service] = broken_service
    with TestClient(app, raise_server_exceptions=False) as c:
        r = c.get("/bookings")

    assert r.status_code == 500
    assert r.headers["content-type"].startswith("application/json")
    assert r.json() == {"error": "Internal server error."}
