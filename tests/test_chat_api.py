import uuid

import pytest

from supportdesk.core.config import settings
from supportdesk.models.chat_session import ChatSession
from supportdesk.models.comment import Comment
from supportdesk.models.ticket import Ticket

API = settings.API_V1_STR


def _send(client, message, headers=None, session_id=None):
    payload = {"message": message}
    if session_id:
        payload["sessionId"] = session_id
    return client.post(f"{API}/chat", json=payload, headers=headers or {})


def test_settings_endpoint(client):
    body = client.get(f"{API}/chat/settings").json()
    assert body["enabled"] is True
    assert body["escalationThreshold"] == settings.CHAT_ESCALATION_THRESHOLD
    assert body["welcomeMessage"]


def test_new_conversation(client, requester, auth_headers):
    response = _send(client, "my wallet is locked", auth_headers(requester))

    assert response.status_code == 200
    body = response.json()
    assert body["sessionId"]
    assert body["messageId"]
    assert body["response"].startswith("Happy to help")

    detail = client.get(f"{API}/chat/sessions/{body['sessionId']}/messages", headers=auth_headers(requester)).json()
    assert [m["role"] for m in detail["messages"]] == ["USER", "ASSISTANT"]
    assert detail["escalationDue"] is False


def test_anonymous_chat(client):
    response = _send(client, "hello")
    assert response.status_code == 200
    session_id = response.json()["sessionId"]

    detail = client.get(f"{API}/chat/sessions/{session_id}/messages")
    assert detail.status_code == 200
    assert len(detail.json()["messages"]) == 2


def test_empty_message_rejected(client):
    response = _send(client, "   ")
    assert response.status_code == 400
    assert response.json()["errors"][0]["field"] == "message"


def test_generation_failure_returns_fallback(client, generator, requester, auth_headers):
    generator.fail = True

    response = _send(client, "hello?", auth_headers(requester))

    assert response.status_code == 200
    body = response.json()
    assert body["response"] == settings.CHAT_FALLBACK_MESSAGE
    assert body["messageId"] is None
    detail = client.get(f"{API}/chat/sessions/{body['sessionId']}/messages", headers=auth_headers(requester)).json()
    assert [m["content"] for m in detail["messages"]] == ["hello?"]


def test_disabled_chat_rejects_messages(client, monkeypatch):
    monkeypatch.setattr(settings, "CHAT_ENABLED", False)
    assert _send(client, "hello").status_code == 403


def test_escalation_due_after_threshold(client, requester, auth_headers):
    headers = auth_headers(requester)
    session_id = None
    flags = []
    for n in range(settings.CHAT_ESCALATION_THRESHOLD):
        body = _send(client, f"still broken {n}", headers, session_id).json()
        session_id = body["sessionId"]
        flags.append(body["escalationDue"])

    assert flags[-1] is True
    assert not any(flags[:-1])


def test_feedback_and_regenerate(client, requester, auth_headers):
    headers = auth_headers(requester)
    body = _send(client, "my wallet is locked", headers).json()
    session_id, message_id = body["sessionId"], body["messageId"]

    feedback = client.post(
        f"{API}/chat/sessions/{session_id}/feedback",
        json={"messageId": message_id, "wasHelpful": False},
        headers=headers,
    )
    assert feedback.status_code == 200
    assert feedback.json() == {"success": True}

    regen = client.post(
        f"{API}/chat/sessions/{session_id}/regenerate",
        json={"messageId": message_id},
        headers=headers,
    )
    assert regen.status_code == 200
    assert regen.json()["messageId"] == message_id
    assert regen.json()["response"] != body["response"]

    detail = client.get(f"{API}/chat/sessions/{session_id}/messages", headers=headers).json()
    assistant = detail["messages"][1]
    assert assistant["id"] == message_id
    assert assistant["content"] == regen.json()["response"]
    assert assistant["wasHelpful"] is None


def test_regenerate_failure_is_500(client, generator, requester, auth_headers):
    headers = auth_headers(requester)
    body = _send(client, "question", headers).json()
    generator.fail = True

    response = client.post(
        f"{API}/chat/sessions/{body['sessionId']}/regenerate",
        json={"messageId": body["messageId"]},
        headers=headers,
    )
    assert response.status_code == 500
    assert response.json()["errors"][0]["code"] == "INTERNAL_ERROR"


def test_feedback_unknown_message(client, requester, auth_headers):
    headers = auth_headers(requester)
    body = _send(client, "question", headers).json()

    response = client.post(
        f"{API}/chat/sessions/{body['sessionId']}/feedback",
        json={"messageId": str(uuid.uuid4()), "wasHelpful": True},
        headers=headers,
    )
    assert response.status_code == 404


def test_other_users_session_is_not_found(client, requester, other_requester, auth_headers):
    body = _send(client, "private", auth_headers(requester)).json()

    send = _send(client, "hijack", auth_headers(other_requester), body["sessionId"])
    feedback = client.post(
        f"{API}/chat/sessions/{body['sessionId']}/feedback",
        json={"messageId": body["messageId"], "wasHelpful": True},
        headers=auth_headers(other_requester),
    )
    read = client.get(f"{API}/chat/sessions/{body['sessionId']}/messages", headers=auth_headers(other_requester))

    assert send.status_code == 404
    assert feedback.status_code == 404
    assert read.status_code == 403


def test_admin_can_read_any_session(client, requester, admin, auth_headers):
    body = _send(client, "private", auth_headers(requester)).json()
    read = client.get(f"{API}/chat/sessions/{body['sessionId']}/messages", headers=auth_headers(admin))
    assert read.status_code == 200


def test_ended_session_rejects_messages(client, requester, auth_headers):
    headers = auth_headers(requester)
    body = _send(client, "thanks", headers).json()

    end = client.post(f"{API}/chat/sessions/{body['sessionId']}/end", json={"resolved": True}, headers=headers)
    assert end.status_code == 200

    again = _send(client, "one more thing", headers, body["sessionId"])
    assert again.status_code == 409
    assert again.json()["errors"][0]["code"] == "CONFLICT"

    regen = client.post(
        f"{API}/chat/sessions/{body['sessionId']}/regenerate",
        json={"messageId": body["messageId"]},
        headers=headers,
    )
    assert regen.status_code == 409

    end_again = client.post(f"{API}/chat/sessions/{body['sessionId']}/end", json={"resolved": False}, headers=headers)
    assert end_again.status_code == 409


def test_handoff_preview(client, requester, auth_headers):
    headers = auth_headers(requester)
    body = _send(client, "my wallet is locked", headers).json()

    response = client.get(f"{API}/chat/sessions/{body['sessionId']}/handoff", headers=headers)

    assert response.status_code == 200
    payload = response.json()
    assert payload["subject"] == "my wallet is locked"
    assert payload["sessionId"] == body["sessionId"]
    assert payload["description"].startswith("--- Chat Conversation ---")
    assert "Me: my wallet is locked" in payload["description"]


def test_handoff_creates_ticket_and_ends_chat(client, db_session, requester, auth_headers):
    headers = auth_headers(requester)
    body = _send(client, "my wallet is locked", headers).json()

    response = client.post(f"{API}/chat/sessions/{body['sessionId']}/handoff", headers=headers)

    assert response.status_code == 201
    data = response.json()
    ticket = db_session.get(Ticket, data["ticket"]["id"])
    assert ticket.subject == "my wallet is locked"
    assert ticket.channel.value == "CHAT"
    assert ticket.status.value == "NEW"
    assert ticket.requester_id == requester.id

    first_comment = db_session.query(Comment).filter(Comment.ticket_id == ticket.id).one()
    assert first_comment.body == data["payload"]["description"]

    chat = db_session.get(ChatSession, body["sessionId"])
    db_session.refresh(chat)
    assert chat.status.value == "ENDED"
    assert chat.resolved is False
    assert chat.ticket_id == ticket.id

    again = client.post(f"{API}/chat/sessions/{body['sessionId']}/handoff", headers=headers)
    assert again.status_code == 409


def test_handoff_requires_login(client):
    body = _send(client, "anonymous question").json()
    response = client.post(f"{API}/chat/sessions/{body['sessionId']}/handoff")
    assert response.status_code == 401


@pytest.mark.parametrize("status_filter, expected", [(None, 2), ("ACTIVE", 1), ("ENDED", 1)])
def test_admin_lists_sessions(client, requester, admin, auth_headers, status_filter, expected):
    headers = auth_headers(requester)
    first = _send(client, "one", headers).json()
    _send(client, "two", headers)
    client.post(f"{API}/chat/sessions/{first['sessionId']}/end", json={"resolved": True}, headers=headers)

    params = {"status": status_filter} if status_filter else {}
    response = client.get(f"{API}/chat/sessions", params=params, headers=auth_headers(admin))

    assert response.status_code == 200
    page = response.json()
    assert page["total"] == expected
    assert all(s["messageCount"] == 2 for s in page["sessions"])


def test_session_list_is_admin_only(client, agent, auth_headers):
    assert client.get(f"{API}/chat/sessions", headers=auth_headers(agent)).status_code == 403
