"""
Tests for the live session feed (WS /ws/sessions/{id}).
"""

from sutra.consult.content import MessageType, TextContent
from sutra.consult.records import Message, SenderType


def test_history_then_live_messages(test_client, services, session_id, patient_headers, doctor_headers):
    with test_client.websocket_connect(f"/ws/sessions/{session_id}", headers=doctor_headers) as ws:
        first = ws.receive_json()
        assert first["type"] == "message"
        assert first["message"]["content"]["event"] == "session_created"

        resp = test_client.post(
            f"/api/sessions/{session_id}/messages",
            json={"sender_id": "patient-p", "sender_type": "patient", "content": {"text": "Are you there?"}},
            headers=patient_headers,
        )
        assert resp.status_code == 201

        live = ws.receive_json()
        assert live["type"] == "message"
        assert live["message"]["id"] == resp.json()["id"]
        assert live["message"]["content"]["text"] == "Are you there?"

    assert services.feed.subscriber_count(session_id) == 0


def test_other_sessions_not_streamed(test_client, services, session_id, doctor_headers, patient_headers):
    other = services.store.insert("messages", Message(
        session_id="another-session",
        sender_type=SenderType.PATIENT,
        sender_id="patient-q",
        message_type=MessageType.TEXT,
        content=TextContent(text="not for you"),
    ))

    with test_client.websocket_connect(f"/ws/sessions/{session_id}", headers=doctor_headers) as ws:
        ws.receive_json()  # session_created
        resp = test_client.post(
            f"/api/sessions/{session_id}/messages",
            json={"sender_id": "patient-p", "sender_type": "patient", "content": {"text": "mine"}},
            headers=patient_headers,
        )
        live = ws.receive_json()
        assert live["message"]["id"] == resp.json()["id"]
        assert live["message"]["id"] != other.id


def test_outsider_gets_error_frame(test_client, session_id, second_doctor_headers):
    with test_client.websocket_connect(f"/ws/sessions/{session_id}", headers=second_doctor_headers) as ws:
        frame = ws.receive_json()
    assert frame["type"] == "error"
    assert frame["status"] == 403
    assert frame["error"] == "unauthorized"


def test_anonymous_connection_rejected(test_client, session_id):
    with test_client.websocket_connect(f"/ws/sessions/{session_id}") as ws:
        frame = ws.receive_json()
    assert frame["status"] == 401
