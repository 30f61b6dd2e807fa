"""Tests for jadwa.web.routes.messages and the /ws relay endpoint."""


def open_chat(client, auth, people):
    booking = client.post(
        "/api/consultations/book",
        json={"type": "chat", "price": 100},
        headers=auth(people.client),
    ).json()
    client.put(f"/api/payments/{booking['payment']['id']}/confirm", headers=auth(people.admin))
    client.put(
        f"/api/consultations/{booking['consultation']['id']}/assign-consultant",
        json={"consultant_id": str(people.consultant.user_id)},
        headers=auth(people.admin),
    )
    return booking["consultation"]["id"]


def bearer(headers):
    return headers["Authorization"].split(" ", 1)[1]


def join(ws, token, consultation_id):
    ws.send_json({"event": "authenticate", "data": {"token": token}})
    assert ws.receive_json()["event"] == "authenticated"
    ws.send_json({"event": "join-consultation", "data": {"consultationId": consultation_id}})
    joined = ws.receive_json()
    assert joined == {"event": "joined", "data": {"consultation_id": consultation_id}}


class TestRelaySocket:
    def test_client_message_reaches_consultant(self, client, auth, people):
        consultation_id = open_chat(client, auth, people)

        with client.websocket_connect("/ws") as client_ws, client.websocket_connect("/ws") as consultant_ws:
            join(client_ws, bearer(auth(people.client)), consultation_id)
            join(consultant_ws, bearer(auth(people.consultant)), consultation_id)

            client_ws.send_json(
                {"event": "send-message", "data": {"consultationId": consultation_id, "message": "hello"}}
            )

            received = consultant_ws.receive_json()
            echoed = client_ws.receive_json()

        assert received["event"] == "new-message"
        assert received["data"]["message"] == "hello"
        assert received["data"]["sender_id"] == str(people.client.user_id)
        assert echoed == received

        history = client.get(f"/api/messages/{consultation_id}", headers=auth(people.consultant))
        assert history.status_code == 200
        assert [(m["message"], m["sender"]["full_name"]) for m in history.json()] == [("hello", "Sara Client")]

        unread = client.get(f"/api/messages/{consultation_id}/unread-count", headers=auth(people.consultant))
        assert unread.json()["unread"] == 1

        message_id = history.json()[0]["id"]
        marked = client.put(f"/api/messages/{message_id}/read", headers=auth(people.consultant))
        assert marked.json() == {"success": True}
        unread = client.get(f"/api/messages/{consultation_id}/unread-count", headers=auth(people.consultant))
        assert unread.json()["unread"] == 0

    def test_join_requires_authentication(self, client, auth, people):
        consultation_id = open_chat(client, auth, people)

        with client.websocket_connect("/ws") as ws:
            ws.send_json({"event": "join-consultation", "data": {"consultationId": consultation_id}})
            reply = ws.receive_json()

        assert reply["event"] == "error"
        assert reply["data"]["kind"] == "authorization"

    def test_unpaid_chat_cannot_be_joined(self, client, auth, people):
        booking = client.post(
            "/api/consultations/book",
            json={"type": "chat", "price": 100},
            headers=auth(people.client),
        ).json()

        with client.websocket_connect("/ws") as ws:
            ws.send_json({"event": "authenticate", "data": {"token": bearer(auth(people.client))}})
            ws.receive_json()
            ws.send_json(
                {"event": "join-consultation", "data": {"consultationId": booking["consultation"]["id"]}}
            )
            reply = ws.receive_json()

        assert reply["event"] == "error"
        assert reply["data"]["kind"] == "authorization"

    def test_malformed_frames(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_text("not json")
            first = ws.receive_json()
            ws.send_json({"event": "dance", "data": {}})
            second = ws.receive_json()
            ws.send_json({"event": "authenticate", "data": {"token": "garbage"}})
            third = ws.receive_json()

        assert first["event"] == second["event"] == "error"
        assert first["data"]["kind"] == second["data"]["kind"] == "validation"
        assert third["data"]["kind"] == "authorization"

    def test_history_is_gated(self, client, auth, people):
        consultation_id = open_chat(client, auth, people)

        response = client.get(f"/api/messages/{consultation_id}", headers=auth(people.other_client))

        assert response.status_code == 403
