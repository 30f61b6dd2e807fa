"""Tests for jadwa.web.routes.consultations, payments and admin."""

from uuid import uuid4


def book_chat(client, auth, people, price=100):
    response = client.post(
        "/api/consultations/book",
        json={"type": "chat", "price": price, "notes": "Cash-flow questions"},
        headers=auth(people.client),
    )
    assert response.status_code == 201
    return response.json()


class TestBooking:
    def test_book_chat(self, client, auth, people):
        body = book_chat(client, auth, people)

        assert body["consultation"]["status"] == "pending"
        assert body["consultation"]["type"] == "chat"
        assert body["consultation"]["consultant_id"] is None
        assert body["payment"]["status"] == "pending"
        assert body["payment"]["related_id"] == body["consultation"]["id"]

    def test_book_video_with_camel_case_fields(self, client, auth, people):
        response = client.post(
            "/api/consultations/book",
            json={
                "type": "video",
                "price": "300",
                "durationMinutes": 30,
                "consultantId": str(people.consultant.user_id),
            },
            headers=auth(people.client),
        )

        assert response.status_code == 201
        assert response.json()["consultation"]["consultant_id"] == str(people.consultant.user_id)
        assert response.json()["consultation"]["duration_minutes"] == 30

    def test_video_without_consultant_is_400(self, client, auth, people):
        response = client.post(
            "/api/consultations/book",
            json={"type": "video", "price": 300},
            headers=auth(people.client),
        )

        assert response.status_code == 400
        assert response.json()["error"]["kind"] == "validation"

    def test_missing_token_is_403(self, client):
        response = client.post("/api/consultations/book", json={"type": "chat", "price": 100})

        assert response.status_code == 403
        assert response.json()["error"]["kind"] == "authorization"


class TestChatFlow:
    def test_payment_then_assignment_opens_listing(self, client, auth, people):
        booking = book_chat(client, auth, people)
        consultation_id = booking["consultation"]["id"]

        listed = client.get("/api/consultations/my", params={"type": "chat"}, headers=auth(people.client))
        assert listed.status_code == 200
        assert listed.json() == []

        early = client.put(
            f"/api/consultations/{consultation_id}/assign-consultant",
            json={"consultantId": str(people.consultant.user_id)},
            headers=auth(people.admin),
        )
        assert early.status_code == 409
        assert early.json()["error"]["kind"] == "precondition_failed"

        denied = client.put(f"/api/payments/{booking['payment']['id']}/confirm", headers=auth(people.client))
        assert denied.status_code == 403

        confirmed = client.put(f"/api/payments/{booking['payment']['id']}/confirm", headers=auth(people.admin))
        assert confirmed.status_code == 200
        assert confirmed.json()["status"] == "completed"

        assigned = client.put(
            f"/api/consultations/{consultation_id}/assign-consultant",
            json={"consultantId": str(people.consultant.user_id)},
            headers=auth(people.admin),
        )
        assert assigned.status_code == 200
        assert assigned.json()["status"] == "confirmed"

        for viewer in (people.client, people.consultant):
            listed = client.get("/api/consultations/my", params={"type": "chat"}, headers=auth(viewer))
            assert [c["id"] for c in listed.json()] == [consultation_id]

        payments = client.get(f"/api/payments/consultation/{consultation_id}", headers=auth(people.client))
        assert [p["status"] for p in payments.json()] == ["completed"]

    def test_status_updates(self, client, auth, people):
        booking = book_chat(client, auth, people)
        consultation_id = booking["consultation"]["id"]

        foreign = client.put(
            f"/api/consultations/{consultation_id}/status",
            json={"status": "cancelled"},
            headers=auth(people.other_client),
        )
        assert foreign.status_code == 403

        cancelled = client.put(
            f"/api/consultations/{consultation_id}/status",
            json={"status": "cancelled"},
            headers=auth(people.client),
        )
        assert cancelled.status_code == 200
        assert cancelled.json()["status"] == "cancelled"

        reopened = client.put(
            f"/api/consultations/{consultation_id}/status",
            json={"status": "confirmed"},
            headers=auth(people.admin),
        )
        assert reopened.status_code == 409
        assert reopened.json()["error"]["kind"] == "invalid_transition"

    def test_unknown_consultation_is_404(self, client, auth, people):
        response = client.get(f"/api/consultations/{uuid4()}", headers=auth(people.admin))

        assert response.status_code == 404
        assert response.json()["error"]["kind"] == "not_found"


class TestAdmin:
    def test_approve_and_views(self, client, auth, people):
        booking = book_chat(client, auth, people)
        consultation_id = booking["consultation"]["id"]
        client.put(f"/api/payments/{booking['payment']['id']}/confirm", headers=auth(people.admin))

        requests = client.get("/api/admin/consultations", params={"view": "requests"}, headers=auth(people.admin))
        assert [row["consultation"]["id"] for row in requests.json()] == [consultation_id]
        assert requests.json()[0]["payment"]["status"] == "completed"

        approved = client.put(
            f"/api/admin/consultations/{consultation_id}/approve",
            json={"consultant_id": str(people.consultant.user_id)},
            headers=auth(people.admin),
        )
        assert approved.status_code == 200
        assert approved.json()["consultant_id"] == str(people.consultant.user_id)

        active = client.get("/api/admin/consultations", params={"view": "active"}, headers=auth(people.admin))
        assert [row["consultation"]["id"] for row in active.json()] == [consultation_id]

    def test_admin_routes_reject_clients(self, client, auth, people):
        response = client.get("/api/admin/consultations", headers=auth(people.client))

        assert response.status_code == 403


class TestOperational:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "database": "connected"}

    def test_metrics(self, client):
        assert client.get("/metrics").status_code == 200

    def test_request_id_is_echoed(self, client):
        response = client.get("/health", headers={"X-Request-ID": "req-123"})

        assert response.headers["X-Request-ID"] == "req-123"
