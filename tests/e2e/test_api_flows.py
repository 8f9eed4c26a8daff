"""
End-to-End Tests for the Calmify API

Drives the FastAPI app through TestClient with the model client faked:
- Settings → check-in → high-stress confirmation → dashboard
- Chat turns (plain and streaming)
- Assessments and doctor directory
- Token authentication
"""

import json

import pytest
from fastapi.testclient import TestClient

import main
from calmify.gemini_service import GeminiService
from lib.auth import create_access_token


@pytest.fixture
def client(fake_llm, monkeypatch):
    """API client with fresh in-memory state and a fake model."""
    monkeypatch.delenv("CALMIFY_JWT_SECRET", raising=False)
    main._store = None
    main._pending_check_ins = None
    main._chat_sessions = None
    main._gemini_service = None
    main._check_in_service = None
    main._chat_companion = None
    service = GeminiService(llm_client=fake_llm)
    main.app.dependency_overrides[main.get_gemini_service] = lambda: service
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


class TestCheckInFlow:
    """Check-in analysis, confirmation and history."""

    def test_check_in_commits_to_history(self, client, fake_llm, make_analysis):
        """Test a normal check-in appears in history and the dashboard."""
        fake_llm.queue(make_analysis(stress=4, mood="Hopeful"))

        response = client.post("/api/checkins", json={"text": "Slept well"})
        assert response.status_code == 200
        body = response.json()
        assert body["committed"] is True
        assert body["alert"] is False

        history = client.get("/api/checkins").json()["history"]
        assert history[-1]["mood"] == "Hopeful"
        assert len(history) == 3  # Two demo check-ins plus this one

        dashboard = client.get("/api/dashboard").json()
        assert dashboard["mood"] == "Hopeful"

    def test_high_stress_requires_acknowledgement(self, client, fake_llm, make_analysis):
        """Test a high-stress check-in waits for confirmation before history."""
        client.put("/api/settings", json={
            "emergency_contact": {"name": "Jane Doe", "phone": "+1 555 000 0000", "relation": "Parent"}
        })
        fake_llm.queue(make_analysis(stress=9, mood="Overwhelmed"))

        body = client.post("/api/checkins", json={"text": "I can't cope"}).json()
        assert body["alert"] is True
        assert body["committed"] is False
        assert body["emergency_contact"]["name"] == "Jane Doe"
        assert len(client.get("/api/checkins").json()["history"]) == 2

        record_id = body["record"]["id"]
        ack = client.post(f"/api/checkins/{record_id}/acknowledge")
        assert ack.status_code == 200
        history = client.get("/api/checkins").json()["history"]
        assert history[-1]["id"] == record_id

        assert client.post(f"/api/checkins/{record_id}/acknowledge").status_code == 404

    def test_late_acknowledge_keeps_history_in_order(self, client, fake_llm, make_analysis):
        """Test confirming an alert after a later check-in keeps history chronological."""
        client.put("/api/settings", json={
            "emergency_contact": {"name": "Jane Doe", "phone": "+1 555 000 0000", "relation": "Parent"}
        })
        fake_llm.queue(make_analysis(stress=9, mood="Overwhelmed"), make_analysis(stress=3, mood="Calm"))
        alerted = client.post("/api/checkins", json={"text": "Too much"}).json()
        assert client.post("/api/checkins", json={"text": "Better"}).json()["committed"] is True

        client.post(f"/api/checkins/{alerted['record']['id']}/acknowledge")

        history = client.get("/api/checkins").json()["history"]
        timestamps = [r["timestamp"] for r in history]
        assert timestamps == sorted(timestamps)
        assert client.get("/api/dashboard").json()["mood"] == "Overwhelmed"

    def test_empty_check_in_rejected(self, client):
        """Test a check-in with no input is a 400."""
        assert client.post("/api/checkins", json={"text": ""}).status_code == 400

    def test_analysis_failure_is_502(self, client, fake_llm):
        """Test an unparseable analysis is a 502."""
        fake_llm.queue("not json")
        response = client.post("/api/checkins", json={"text": "hello"})
        assert response.status_code == 502
        assert response.json()["detail"] == "Analysis failed. Please try again."

    def test_null_analysis_is_502(self, client, fake_llm):
        """Test a JSON reply that is not an object is a 502."""
        fake_llm.queue("null")
        assert client.post("/api/checkins", json={"text": "hello"}).status_code == 502

    def test_completed_habit_reaches_prompt(self, client, fake_llm, make_analysis):
        """Test today's completed habits are sent to the model."""
        assert client.post("/api/habits/h3/toggle").json()["completed"] is True
        fake_llm.queue(make_analysis())
        client.post("/api/checkins", json={"text": "walked"})
        prompt = fake_llm.calls[0]["messages"][1]["content"][0]["text"]
        assert "Take a 15 min walk" in prompt

    def test_transcribe(self, client, fake_llm):
        """Test a voice recording is transcribed."""
        fake_llm.queue("I feel tired")
        response = client.post("/api/voice/transcribe", json={"audio": "data:audio/wav;base64,YXVkaW8="})
        assert response.json() == {"text": "I feel tired"}


class TestSettingsAndDashboard:
    """Profile settings, habits and dashboard views."""

    def test_language_validation(self, client):
        """Test only supported languages are accepted."""
        assert client.put("/api/settings/language", json={"language": "es"}).json() == {"language": "es"}
        assert client.put("/api/settings/language", json={"language": "xx"}).status_code == 400

    def test_unknown_habit(self, client):
        """Test toggling an unknown habit is a 404."""
        assert client.post("/api/habits/nope/toggle").status_code == 404

    def test_dashboard_modes(self, client):
        """Test the monthly view and an invalid mode."""
        assert client.get("/api/dashboard", params={"mode": "MONTHLY"}).json()["chart_range"] == "Last 30 Days"
        assert client.get("/api/dashboard", params={"mode": "YEARLY"}).status_code == 400


class TestChat:
    """Chat companion over plain and SSE endpoints."""

    def test_chat_turn(self, client, fake_llm):
        """Test a turn is appended after the welcome message."""
        welcome = client.get("/api/chat/messages").json()
        assert welcome["messages"][0]["text"].startswith("Hello. I'm Calmify.")

        fake_llm.queue("I'm here for you.")
        reply = client.post("/api/chat", json={"content": "Rough day"}).json()
        assert reply["role"] == "model"
        assert reply["text"] == "I'm here for you."

        messages = client.get("/api/chat/messages").json()["messages"]
        assert [m["role"] for m in messages] == ["model", "user", "model"]

    def test_language_change_resets_chat(self, client):
        """Test changing language starts a new conversation."""
        client.get("/api/chat/messages")
        client.put("/api/settings/language", json={"language": "hi"})
        messages = client.get("/api/chat/messages").json()["messages"]
        assert [m["text"] for m in messages] == ["I switched languages. I am listening..."]

    def test_chat_stream(self, client, fake_llm):
        """Test the SSE stream yields the reply and a done event."""
        fake_llm.queue(["Let's ", "breathe."])
        response = client.post("/api/chat/stream", json={"content": "Panic"})
        events = [
            json.loads(line[len("data: "):])
            for line in response.text.splitlines()
            if line.startswith("data: ")
        ]
        assert "".join(e["content"] for e in events if e["type"] == "chunk") == "Let's breathe."
        assert events[-1]["done"] is True

    def test_blank_chat_rejected(self, client):
        """Test a blank message is a 400."""
        assert client.post("/api/chat", json={"content": " "}).status_code == 400


class TestAssessmentsAndDoctors:
    """Screening questionnaires and the doctor directory."""

    def test_phq9_submission(self, client):
        """Test a PHQ-9 submission is scored, advised and logged."""
        questions = client.get("/api/assessments/PHQ-9/questions").json()
        assert len(questions["questions"]) == 9
        assert questions["options"][3]["label"] == "Nearly every day"

        result = client.post("/api/assessments/PHQ-9", json={"answers": [2] * 9}).json()
        assert result["record"]["score"] == 18
        assert result["record"]["severity"] == "Moderately Severe"
        assert "meaningful symptoms" in result["recommendation"]

        assessments = client.get("/api/assessments").json()["assessments"]
        assert len(assessments) == 1

    def test_incomplete_submission(self, client):
        """Test an incomplete questionnaire is a 400."""
        assert client.post("/api/assessments/PHQ-9", json={"answers": [1, 2]}).status_code == 400

    def test_unknown_assessment(self, client):
        """Test an unknown questionnaire is a 404."""
        assert client.get("/api/assessments/XYZ/questions").status_code == 404

    def test_nearby_doctors_use_saved_location(self, client):
        """Test nearby search uses the saved location."""
        client.put("/api/settings", json={"location": "San Francisco, CA"})
        doctors = client.get("/api/doctors", params={"nearby": True}).json()["doctors"]
        assert [d["name"] for d in doctors] == ["Dr. Emily Rodriguez"]

    def test_available_doctors(self, client):
        """Test the availability filter."""
        doctors = client.get("/api/doctors", params={"available": True}).json()["doctors"]
        assert all(d["available"] for d in doctors)

    def test_doctor_profile(self, client):
        """Test a single doctor is served by id."""
        assert client.get("/api/doctors/1").json()["name"] == "Dr. Sarah Chen"
        assert client.get("/api/doctors/42").status_code == 404

    def test_crisis_hotline(self, client):
        """Test the crisis hotline is served."""
        assert "24/7" in client.get("/api/crisis-hotline").json()["description"]


class TestAuthentication:
    """Bearer token handling when a JWT secret is configured."""

    def test_token_required_when_secret_set(self, client, monkeypatch):
        """Test missing, malformed and invalid tokens are a 401."""
        monkeypatch.setenv("CALMIFY_JWT_SECRET", "test-secret")
        assert client.get("/api/settings").status_code == 401
        assert client.get("/api/settings", headers={"Authorization": "Token abc"}).status_code == 401
        assert client.get("/api/settings", headers={"Authorization": "Bearer garbage"}).status_code == 401

    def test_users_are_separated_by_token(self, client, monkeypatch):
        """Test each token maps to its own state."""
        monkeypatch.setenv("CALMIFY_JWT_SECRET", "test-secret")
        alice = {"Authorization": f"Bearer {create_access_token('alice')}"}
        bob = {"Authorization": f"Bearer {create_access_token('bob')}"}

        client.put("/api/settings", json={"name": "Alice"}, headers=alice)
        assert client.get("/api/settings", headers=alice).json()["name"] == "Alice"
        assert client.get("/api/settings", headers=bob).json()["name"] == "Alex"


class TestWithoutApiKey:
    """Endpoints that never call the model keep working without an API key."""

    @pytest.fixture
    def keyless_client(self, client, monkeypatch):
        """API client with no model override and no GEMINI_API_KEY."""
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        main.app.dependency_overrides.clear()
        return client

    def test_chat_history_is_served(self, keyless_client):
        """Test reading the conversation does not need the model."""
        response = keyless_client.get("/api/chat/messages")
        assert response.status_code == 200
        assert len(response.json()["messages"]) == 1

    def test_pending_check_in_endpoints(self, keyless_client):
        """Test confirming or discarding reaches the pending store."""
        assert keyless_client.post("/api/checkins/missing/acknowledge").status_code == 404
        assert keyless_client.delete("/api/checkins/missing").status_code == 404

    def test_model_endpoints_are_unavailable(self, keyless_client):
        """Test endpoints that call the model report 503."""
        assert keyless_client.post("/api/checkins", json={"text": "hi"}).status_code == 503
        assert keyless_client.post("/api/chat", json={"content": "hi"}).status_code == 503
