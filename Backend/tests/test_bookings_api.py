"""
HTTP tests for the booking API.

Run with: pytest Backend/tests/test_bookings_api.py -v
"""
import asyncio
import uuid
from datetime import datetime, timedelta

from httpx import ASGITransport, AsyncClient

from conftest import booking_payload, next_weekday
from luxe_booking import emailer, main, routes_bookings, store
from luxe_booking.errors import TransientError
from luxe_booking.scheduling import get_local_now

MONDAY = next_weekday(0)
TUESDAY = next_weekday(1)
SUNDAY = next_weekday(6)


async def create(client, catalog, day=MONDAY, time="10:00", **overrides):
    response = await client.post("/bookings", json=booking_payload(catalog, day, time, **overrides))
    assert response.status_code == 201, response.text
    return response.json()


# ============================================================================
# CREATE
# ============================================================================

class TestCreateEndpoint:

    async def test_create_returns_booking(self, client, catalog):
        body = await create(client, catalog)

        assert body["status"] == "pending"
        assert body["paymentStatus"] == "pending"
        assert body["totalPrice"] == 85.0
        assert body["customerEmail"] == "jane@example.com"
        assert body["date"] == MONDAY.isoformat()
        assert body["time"] == "10:00"
        assert body["confirmationSent"] is False
        assert body["service"] == {
            "id": catalog.cut.id,
            "name": "Deep Conditioning Treatment",
            "price": 85.0,
            "duration": 60,
            "category": "Hair Treatments",
        }
        assert body["staff"]["name"] == "Isabella Martinez"
        uuid.UUID(body["id"])

    async def test_missing_fields_return_400_with_field_list(self, client, catalog):
        response = await client.post("/bookings", json={"serviceId": catalog.cut.id, "customerEmail": "bad"})
        assert response.status_code == 400
        body = response.json()
        assert body["error"]["code"] == "VALIDATION_ERROR"
        assert body["error"]["details"]["fields"] == [
            "staffId",
            "customerName",
            "customerEmail",
            "customerPhone",
            "date",
            "time",
        ]

    async def test_wrong_type_returns_400(self, client, catalog):
        response = await client.post("/bookings", json=booking_payload(catalog, MONDAY, serviceId="abc"))
        assert response.status_code == 400
        assert "serviceId" in response.json()["error"]["details"]["fields"]

    async def test_unknown_staff_returns_404(self, client, catalog):
        response = await client.post("/bookings", json=booking_payload(catalog, MONDAY, staffId=4242))
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"

    async def test_taken_slot_returns_409(self, client, catalog):
        await create(client, catalog)
        response = await client.post("/bookings", json=booking_payload(catalog, MONDAY, "10:30"))
        assert response.status_code == 409
        assert response.json()["message"] == "Time slot already booked"

    async def test_simultaneous_requests_one_wins(self, client, catalog):
        payload = booking_payload(catalog, MONDAY, "13:00")
        first, second = await asyncio.gather(
            client.post("/bookings", json=payload),
            client.post("/bookings", json=payload),
        )
        assert sorted([first.status_code, second.status_code]) == [201, 409]

        listing = await client.get("/bookings", params={"staffId": catalog.stylist.id})
        assert listing.json()["total"] == 1

    async def test_cancel_then_rebook_same_slot(self, client, catalog):
        booking = await create(client, catalog)
        response = await client.put(f"/bookings/{booking['id']}", json={"status": "cancelled"})
        assert response.status_code == 200

        rebooked = await create(client, catalog, customerName="Second Customer")
        assert rebooked["time"] == "10:00"


# ============================================================================
# SLOTS
# ============================================================================

class TestAvailableSlots:

    async def test_slots_around_existing_booking(self, client, catalog):
        await create(client, catalog, time="10:00")
        response = await client.get(
            f"/bookings/available-slots/{catalog.stylist.id}/{MONDAY.isoformat()}",
            params={"duration": 60},
        )
        assert response.status_code == 200
        slots = response.json()
        times = [slot["time"] for slot in slots]

        assert times[0] == "09:00"
        assert times[1] == "11:00"
        assert times[-1] == "17:00"
        for taken in ("09:30", "10:00", "10:30"):
            assert taken not in times
        assert slots[0] == {"time": "09:00", "available": True, "staffId": catalog.stylist.id}

    async def test_default_duration(self, client, catalog):
        response = await client.get(f"/bookings/available-slots/{catalog.stylist.id}/{MONDAY.isoformat()}")
        assert [slot["time"] for slot in response.json()][-1] == "17:00"

    async def test_longer_duration_shortens_grid(self, client, catalog):
        response = await client.get(
            f"/bookings/available-slots/{catalog.stylist.id}/{MONDAY.isoformat()}",
            params={"duration": 240},
        )
        assert [slot["time"] for slot in response.json()][-1] == "14:00"

    async def test_day_off_returns_empty_list(self, client, catalog):
        response = await client.get(f"/bookings/available-slots/{catalog.stylist.id}/{SUNDAY.isoformat()}")
        assert response.status_code == 200
        assert response.json() == []

    async def test_unknown_staff_returns_404(self, client, catalog):
        response = await client.get(f"/bookings/available-slots/4242/{MONDAY.isoformat()}")
        assert response.status_code == 404

    async def test_non_positive_duration_returns_400(self, client, catalog):
        response = await client.get(
            f"/bookings/available-slots/{catalog.stylist.id}/{MONDAY.isoformat()}",
            params={"duration": 0},
        )
        assert response.status_code == 400
        assert response.json()["error"]["details"]["fields"] == ["duration"]

    async def test_repeat_calls_match(self, client, catalog):
        await create(client, catalog, time="12:00")
        url = f"/bookings/available-slots/{catalog.stylist.id}/{MONDAY.isoformat()}"
        first = await client.get(url)
        second = await client.get(url)
        assert first.json() == second.json()

    async def test_past_day_has_no_slots(self, client, catalog):
        past = get_local_now().date() - timedelta(days=7)
        response = await client.get(f"/bookings/available-slots/{catalog.stylist.id}/{past.isoformat()}")
        assert response.json() == []


# ============================================================================
# LIST / GET / STATS
# ============================================================================

class TestListing:

    async def test_filters_and_pagination(self, client, catalog):
        for time in ("09:00", "11:00", "13:00"):
            await create(client, catalog, time=time, customerName=f"Client {time}")
        await create(client, catalog, day=TUESDAY, time="09:00", customerName="Tuesday Person")

        page = await client.get("/bookings", params={"limit": 2, "page": 1})
        body = page.json()
        assert body["total"] == 4
        assert body["totalPages"] == 2
        assert body["currentPage"] == 1
        assert [b["time"] for b in body["bookings"]] == ["09:00", "11:00"]

        second = (await client.get("/bookings", params={"limit": 2, "page": 2})).json()
        assert [b["customerName"] for b in second["bookings"]] == ["Client 13:00", "Tuesday Person"]

        search = (await client.get("/bookings", params={"search": "tuesday"})).json()
        assert search["total"] == 1

        upcoming = (await client.get("/bookings", params={"date": "upcoming"})).json()
        assert upcoming["total"] == 4
        past = (await client.get("/bookings", params={"date": "past"})).json()
        assert past["total"] == 0
        today = (await client.get("/bookings", params={"date": "today"})).json()
        assert today["total"] == 0

    async def test_search_wildcards_match_literally(self, client, catalog):
        await create(client, catalog, time="09:00", customerName="Promo 100% Club")
        await create(client, catalog, time="11:00", customerName="Promo 1000 Club")
        await create(client, catalog, time="13:00", customerName="Ann_Lee")
        await create(client, catalog, time="15:00", customerName="AnnXLee")

        percent = (await client.get("/bookings", params={"search": "100%"})).json()
        assert [b["customerName"] for b in percent["bookings"]] == ["Promo 100% Club"]
        underscore = (await client.get("/bookings", params={"search": "ann_"})).json()
        assert [b["customerName"] for b in underscore["bookings"]] == ["Ann_Lee"]

    async def test_status_filter(self, client, catalog):
        first = await create(client, catalog, time="09:00")
        await create(client, catalog, time="11:00")
        await client.put(f"/bookings/{first['id']}", json={"status": "confirmed"})

        confirmed = (await client.get("/bookings", params={"status": "confirmed"})).json()
        assert [b["id"] for b in confirmed["bookings"]] == [first["id"]]
        everything = (await client.get("/bookings", params={"status": "all"})).json()
        assert everything["total"] == 2

    async def test_bad_filters_return_400(self, client, catalog):
        response = await client.get("/bookings", params={"status": "lost", "date": "tomorrow"})
        assert response.status_code == 400
        assert response.json()["error"]["details"]["fields"] == ["status", "date"]

    async def test_get_single_booking(self, client, catalog):
        booking = await create(client, catalog)
        response = await client.get(f"/bookings/{booking['id']}")
        assert response.status_code == 200
        assert response.json()["id"] == booking["id"]

    async def test_get_unknown_booking(self, client, catalog):
        assert (await client.get(f"/bookings/{uuid.uuid4()}")).status_code == 404
        assert (await client.get("/bookings/not-a-uuid")).status_code == 404


class TestStats:

    async def test_stats(self, client, catalog):
        first = await create(client, catalog, time="09:00")
        second = await create(client, catalog, time="10:00")
        await create(client, catalog, time="11:00")
        await create(client, catalog, time="13:00", serviceId=catalog.bridal.id)
        await client.put(f"/bookings/{first['id']}", json={"status": "confirmed"})
        await client.put(f"/bookings/{second['id']}", json={"status": "confirmed"})
        await client.put(f"/bookings/{second['id']}", json={"status": "completed"})

        response = await client.get("/bookings/stats")
        assert response.status_code == 200
        assert response.json() == {
            "totalBookings": 4,
            "pendingBookings": 2,
            "confirmedBookings": 1,
            "todayBookings": 0,
            "revenue": 170.0,
        }

    async def test_empty_stats(self, client, catalog):
        response = await client.get("/bookings/stats")
        assert response.json()["revenue"] == 0


# ============================================================================
# UPDATE / DELETE
# ============================================================================

class TestUpdateAndDelete:

    async def test_update_fields(self, client, catalog):
        booking = await create(client, catalog)
        response = await client.put(
            f"/bookings/{booking['id']}",
            json={"notes": "Bring photos", "paymentStatus": "paid", "totalPrice": 1},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["notes"] == "Bring photos"
        assert body["paymentStatus"] == "paid"
        assert body["totalPrice"] == 85.0

    async def test_illegal_transition_returns_400(self, client, catalog):
        booking = await create(client, catalog)
        await client.put(f"/bookings/{booking['id']}", json={"status": "cancelled"})
        response = await client.put(f"/bookings/{booking['id']}", json={"status": "confirmed"})
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_TRANSITION"

    async def test_reschedule_conflict_returns_409(self, client, catalog):
        await create(client, catalog, time="10:00")
        other = await create(client, catalog, time="15:00")
        response = await client.put(f"/bookings/{other['id']}", json={"time": "09:30"})
        assert response.status_code == 409

    async def test_update_unknown_returns_404(self, client, catalog):
        response = await client.put(f"/bookings/{uuid.uuid4()}", json={"notes": "x"})
        assert response.status_code == 404

    async def test_delete(self, client, catalog):
        booking = await create(client, catalog)
        response = await client.delete(f"/bookings/{booking['id']}")
        assert response.status_code == 200
        assert response.json() == {"message": "Booking deleted successfully"}
        assert (await client.delete(f"/bookings/{booking['id']}")).status_code == 404


# ============================================================================
# EMAIL RE-SENDS AND HEALTH
# ============================================================================

class TestEmailEndpoints:

    async def test_resend_confirmation(self, client, catalog, monkeypatch):
        booking = await create(client, catalog)

        async def fake_confirmation(booking, service, staff):
            return True

        monkeypatch.setattr(emailer, "send_booking_confirmation", fake_confirmation)
        response = await client.post(f"/email/resend-confirmation/{booking['id']}")
        assert response.status_code == 200

        refreshed = (await client.get(f"/bookings/{booking['id']}")).json()
        assert refreshed["confirmationSent"] is True

    async def test_send_update_fails_without_email_configured(self, client, catalog):
        booking = await create(client, catalog)
        response = await client.post(f"/email/send-update/{booking['id']}")
        assert response.status_code == 502
        assert response.json()["error"]["code"] == "NOTIFICATION_FAILED"

    async def test_unknown_booking(self, client, catalog):
        response = await client.post(f"/email/resend-confirmation/{uuid.uuid4()}")
        assert response.status_code == 404


    async def test_unsaved_confirmation_flag_still_creates(self, client, catalog, monkeypatch):
        async def fake_confirmation(booking, service, staff):
            return True

        async def unavailable_flag_write(session, booking_id, timeout=None):
            raise TransientError("Storage unavailable")

        monkeypatch.setattr(emailer, "send_booking_confirmation", fake_confirmation)
        monkeypatch.setattr(store, "mark_confirmation_sent", unavailable_flag_write)
        body = await create(client, catalog)
        assert body["confirmationSent"] is False

        listing = (await client.get("/bookings")).json()
        assert listing["total"] == 1


# ============================================================================
# ERROR ENVELOPES
# ============================================================================

class TestErrorResponses:

    async def test_storage_failure_returns_503(self, client, catalog, monkeypatch):
        async def unavailable(*args, **kwargs):
            raise TransientError("Storage request timed out", details={"timeout_seconds": 5.0})

        monkeypatch.setattr(routes_bookings, "list_bookings", unavailable)
        response = await client.get("/bookings")

        assert response.status_code == 503
        assert response.json() == {
            "message": "Storage request timed out",
            "error": {
                "code": "STORAGE_UNAVAILABLE",
                "message": "Storage request timed out",
                "details": {"timeout_seconds": 5.0},
            },
            "status": "error",
        }

    async def get_with_crash(self, client, monkeypatch, environment):
        async def crash(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(routes_bookings, "list_bookings", crash)
        monkeypatch.setattr(main.settings, "environment", environment)
        # Starlette re-raises after the 500 handler runs; keep the response.
        transport = ASGITransport(app=main.app, raise_app_exceptions=False)
        async with AsyncClient(transport=transport, base_url="http://test") as raw_client:
            return await raw_client.get("/bookings")

    async def test_unexpected_error_shows_details_in_development(self, client, catalog, monkeypatch):
        response = await self.get_with_crash(client, monkeypatch, "development")

        assert response.status_code == 500
        body = response.json()
        assert body["error"]["code"] == "INTERNAL_ERROR"
        assert body["error"]["details"] == {"error": "boom", "type": "RuntimeError"}

    async def test_unexpected_error_hides_details_in_production(self, client, catalog, monkeypatch):
        response = await self.get_with_crash(client, monkeypatch, "production")

        assert response.status_code == 500
        body = response.json()
        assert body == {
            "message": "Internal Server Error",
            "error": {"code": "INTERNAL_ERROR", "message": "Internal Server Error"},
            "status": "error",
        }


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "OK"
    datetime.fromisoformat(body["timestamp"])
