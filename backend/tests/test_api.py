"""HTTP tests for the Lexia API."""

HEADERS = {"X-User-ID": "user-1"}

ALL_STEPS = [
    {"step": "hechos_admitidos", "hechos_admitidos": "La relación laboral"},
    {"step": "hechos_negados", "hechos_negados": "El despido sin causa"},
    {"step": "defensas", "defensas": "Pago de indemnización", "prueba_ofrecida": ["Recibos"]},
    {"step": "excepciones", "excepciones": ""},
]


def _create_session(client, **body) -> str:
    response = client.post("/contestacion/sessions", json=body, headers=HEADERS)
    assert response.status_code == 200
    return response.json()["session_id"]


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}


class TestSessionEndpoints:
    """Test the contestación session routes."""

    def test_requires_user(self, client):
        response = client.post("/contestacion/sessions", json={})

        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}

    def test_create_session(self, client, memory_db):
        memory_db.assign_case("case-1", "user-1")

        response = client.post(
            "/contestacion/sessions",
            json={"case_id": "case-1", "raw_input": "Demanda por despido"},
            headers=HEADERS,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["state"] == {}
        assert body["current_step"] == "init"
        assert body["case_id"] == "case-1"
        assert body["session_id"] in memory_db.sessions

    def test_create_session_forbidden_case(self, client, memory_db):
        response = client.post(
            "/contestacion/sessions", json={"case_id": "case-9"}, headers=HEADERS
        )

        assert response.status_code == 403
        assert memory_db.sessions == {}

    def test_create_session_with_document(self, client, memory_db):
        memory_db.assign_case("case-1", "user-1")
        memory_db.add_document("doc-1", "case-1")
        memory_db.add_document("doc-2", "case-2")

        response = client.post(
            "/contestacion/sessions",
            json={"case_id": "case-1", "demanda_document_id": "doc-1"},
            headers=HEADERS,
        )
        assert response.status_code == 200
        session_id = response.json()["session_id"]
        loaded = client.get(f"/contestacion/sessions/{session_id}", headers=HEADERS)
        assert loaded.json()["session"]["demanda_document_id"] == "doc-1"

        mismatched = client.post(
            "/contestacion/sessions",
            json={"case_id": "case-1", "demanda_document_id": "doc-2"},
            headers=HEADERS,
        )
        assert mismatched.status_code == 422
        assert mismatched.json()["error"] == "Document must belong to the same case"

    def test_advance_out_of_order(self, client):
        session_id = _create_session(client)

        response = client.post(
            f"/contestacion/sessions/{session_id}/advance",
            json={"update": ALL_STEPS[3]},
            headers=HEADERS,
        )

        assert response.status_code == 409

    def test_advance_and_consolidate(self, client):
        session_id = _create_session(client)

        response = client.post(
            f"/contestacion/sessions/{session_id}/advance",
            json={"update": ALL_STEPS[0]},
            headers=HEADERS,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["current_step"] == "hechos_negados"
        assert body["ready"] is False
        assert body["outstanding"] == ["hechos_negados", "defensas", "excepciones"]

        consolidated = client.get(
            f"/contestacion/sessions/{session_id}/consolidated", headers=HEADERS
        )
        assert consolidated.json() == {"hechos_admitidos": "La relación laboral"}

    def test_full_flow_to_completion(self, client):
        session_id = _create_session(client)
        for update in ALL_STEPS:
            response = client.post(
                f"/contestacion/sessions/{session_id}/advance",
                json={"update": update},
                headers=HEADERS,
            )
        assert response.json()["ready"] is True

        form = client.get(f"/contestacion/sessions/{session_id}/form-data", headers=HEADERS)
        assert form.json() == {
            "hechos_admitidos": "La relación laboral",
            "hechos_negados": "El despido sin causa",
            "defensas": "Pago de indemnización\n\nPrueba ofrecida:\n1. Recibos",
            "excepciones": "",
        }

        completed = client.post(f"/contestacion/sessions/{session_id}/complete", headers=HEADERS)
        assert completed.status_code == 200
        assert completed.json()["session"]["current_step"] == "completed"

        again = client.post(
            f"/contestacion/sessions/{session_id}/advance",
            json={"update": ALL_STEPS[2]},
            headers=HEADERS,
        )
        assert again.status_code == 409

    def test_advance_rejects_unknown_step(self, client):
        session_id = _create_session(client)

        response = client.post(
            f"/contestacion/sessions/{session_id}/advance",
            json={"update": {"step": "alegatos", "alegatos": "x"}},
            headers=HEADERS,
        )

        assert response.status_code == 422

    def test_advance_rejects_mismatched_fields(self, client):
        session_id = _create_session(client)

        response = client.post(
            f"/contestacion/sessions/{session_id}/advance",
            json={"update": {"step": "defensas", "excepciones": "x"}},
            headers=HEADERS,
        )

        assert response.status_code == 422

    def test_other_users_session(self, client):
        session_id = _create_session(client)

        response = client.get(
            f"/contestacion/sessions/{session_id}", headers={"X-User-ID": "user-2"}
        )

        assert response.status_code == 403

    def test_missing_session(self, client):
        response = client.get("/contestacion/sessions/missing", headers=HEADERS)

        assert response.status_code == 404
        assert response.json() == {"error": "Session not found"}


class TestConversationEndpoints:
    """Test the conversation routes."""

    def _create_conversation(self, client) -> str:
        response = client.post("/conversations", json={}, headers=HEADERS)
        assert response.status_code == 200
        return response.json()["conversation"]["id"]

    def test_empty_batch_is_ok(self, client):
        conversation_id = self._create_conversation(client)

        response = client.post(
            f"/conversations/{conversation_id}/messages", json={"messages": []}, headers=HEADERS
        )

        assert response.status_code == 200
        assert response.json() == {"ok": True}

    def test_append_and_load(self, client):
        conversation_id = self._create_conversation(client)

        response = client.post(
            f"/conversations/{conversation_id}/messages",
            json={
                "messages": [
                    {"id": "m1", "role": "user", "content": "Hola"},
                    {"id": "m2", "role": "assistant", "content": "¿En qué puedo ayudar?"},
                ]
            },
            headers=HEADERS,
        )
        assert response.json() == {"ok": True}

        loaded = client.get(f"/conversations/{conversation_id}", headers=HEADERS).json()
        assert loaded["conversation"]["message_count"] == 2
        assert [m["client_id"] for m in loaded["messages"]] == ["m1", "m2"]

    def test_invalid_batch_returns_details(self, client):
        conversation_id = self._create_conversation(client)

        response = client.post(
            f"/conversations/{conversation_id}/messages",
            json={
                "messages": [
                    {
                        "id": "m1",
                        "role": "assistant",
                        "tool_calls": [{"id": "c1", "name": "deleteCase", "arguments": {}}],
                    }
                ]
            },
            headers=HEADERS,
        )

        assert response.status_code == 422
        body = response.json()
        assert "deleteCase" in body["error"]
        assert "calculateDeadline" in body["details"]["allowed_tools"]

    def test_non_list_batch_returns_details(self, client):
        """A malformed payload gets the same error shape as a bad message."""
        conversation_id = self._create_conversation(client)

        response = client.post(
            f"/conversations/{conversation_id}/messages",
            json={"messages": "oops"},
            headers=HEADERS,
        )

        assert response.status_code == 422
        assert response.json() == {"error": "Messages must be a list", "details": "str"}

    def test_other_users_conversation(self, client):
        conversation_id = self._create_conversation(client)

        response = client.get(
            f"/conversations/{conversation_id}", headers={"X-User-ID": "user-2"}
        )

        assert response.status_code == 404
