"""
Tests for the participant and presence endpoints.

Tests cover:
- Joining (201) and the "entered" status message
- Duplicate names (409)
- Validation and sanitizing of names (422)
- Listing participants in join order
- Heartbeats (200 / 404)
"""


def join(client, name: str):
    """Helper to join the room."""
    return client.post("/participants", json={"name": name})


class TestJoin:
    """Test POST /participants."""

    def test_join_success(self, client):
        response = join(client, "Ana")

        assert response.status_code == 201
        data = response.json()
        assert data["name"] == "Ana"
        assert isinstance(data["lastSeen"], int)

    def test_join_announces_participant(self, client):
        """Joining appends exactly one broadcast status message."""
        join(client, "Ana")

        messages = client.get("/messages", headers={"User": "Ana"}).json()
        assert len(messages) == 1
        status_msg = messages[0]
        assert status_msg["from"] == "Ana"
        assert status_msg["to"] == "Todos"
        assert status_msg["kind"] == "status"
        assert status_msg["text"] == "entered the room"

    def test_duplicate_name_conflict(self, client):
        assert join(client, "Ana").status_code == 201

        response = join(client, "Ana")
        assert response.status_code == 409

        # No second participant and no second status message
        assert len(client.get("/participants").json()) == 1
        assert len(client.get("/messages").json()) == 1

    def test_names_are_case_sensitive(self, client):
        assert join(client, "ana").status_code == 201
        assert join(client, "Ana").status_code == 201

    def test_name_is_sanitized(self, client):
        response = join(client, "  <b>Ana</b>  ")

        assert response.status_code == 201
        assert response.json()["name"] == "Ana"

    def test_sanitized_duplicate_conflicts(self, client):
        assert join(client, "Ana").status_code == 201
        assert join(client, " <i>Ana</i> ").status_code == 409

    def test_missing_name(self, client):
        response = client.post("/participants", json={})
        assert response.status_code == 422

    def test_empty_name(self, client):
        assert join(client, "").status_code == 422

    def test_name_empty_after_sanitizing(self, client):
        assert join(client, "   <br/>  ").status_code == 422
        assert client.get("/participants").json() == []

    def test_non_string_name(self, client):
        response = client.post("/participants", json={"name": 42})
        assert response.status_code == 422


class TestListParticipants:
    """Test GET /participants."""

    def test_empty(self, client):
        response = client.get("/participants")

        assert response.status_code == 200
        assert response.json() == []

    def test_join_order(self, client):
        for name in ("Ana", "Bob", "Cid"):
            join(client, name)

        names = [p["name"] for p in client.get("/participants").json()]
        assert names == ["Ana", "Bob", "Cid"]


class TestHeartbeat:
    """Test POST /status."""

    def test_heartbeat_known_participant(self, client):
        join(client, "Ana")

        response = client.post("/status", headers={"User": "Ana"})

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_heartbeat_does_not_duplicate_or_log(self, client):
        join(client, "Ana")
        before = client.get("/participants").json()[0]["lastSeen"]

        for _ in range(3):
            assert client.post("/status", headers={"User": "Ana"}).status_code == 200

        participants = client.get("/participants").json()
        assert len(participants) == 1
        assert participants[0]["lastSeen"] >= before
        # Only the join status message
        assert len(client.get("/messages").json()) == 1

    def test_heartbeat_unknown_participant(self, client):
        response = client.post("/status", headers={"User": "Ghost"})
        assert response.status_code == 404

    def test_heartbeat_without_header(self, client):
        response = client.post("/status")
        assert response.status_code == 404
