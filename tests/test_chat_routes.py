# tests/test_chat_routes.py

"""
Tests for the chat endpoints: messaging, role inboxes, read state and
the resolution workflow.
"""

from fastapi.testclient import TestClient

from dependencies.auth import CurrentUser
from tests.conftest import ADMIN, GUARD, OUTSIDER, RESIDENT, RESIDENT_2
from tests.fakes import RESIDENT_ROLE_ID, SECURITY_ROLE_ID


def _chat(org_id: str) -> str:
    return f"/organizations/{org_id}/chat"


def _open_role_conversation(client, login, org_id) -> str:
    """Resident writes to the security inbox; returns the conversation id."""
    login(RESIDENT)
    response = client.post(f"{_chat(org_id)}/messages", json={"roleId": SECURITY_ROLE_ID, "content": "Hay ruido en el piso 3"})
    assert response.status_code == 200
    return response.json()["data"]["conversationId"]


# -----------------------------------------------------
# Membership gate
# -----------------------------------------------------
def test_non_member_is_forbidden(client: TestClient, login, org_id):
    login(OUTSIDER)

    response = client.get(f"{_chat(org_id)}/permissions")
    assert response.status_code == 403
    assert response.json()["message"] == "No eres miembro de esta organización."


# -----------------------------------------------------
# Permission matrix
# -----------------------------------------------------
def test_admin_toggles_permission(client: TestClient, login, fake_db, org_id):
    body = {"senderRoleId": RESIDENT_ROLE_ID, "recipientRoleId": SECURITY_ROLE_ID, "disabled": True}

    login(RESIDENT)
    response = client.put(f"{_chat(org_id)}/permissions", json=body)
    assert response.status_code == 403

    login(ADMIN)
    assert client.put(f"{_chat(org_id)}/permissions", json=body).status_code == 200
    assert client.put(f"{_chat(org_id)}/permissions", json=body).status_code == 200
    assert len(fake_db.rows("role_chat_permissions")) == 1

    matrix = client.get(f"{_chat(org_id)}/permissions").json()["data"]
    assert sum(c["disabled"] for c in matrix["permissions"]) == 1

    login(RESIDENT)
    check = client.get(f"{_chat(org_id)}/permissions/check", params={"userId": GUARD.id})
    assert check.json()["data"]["canMessage"] is False

    login(GUARD)
    check = client.get(f"{_chat(org_id)}/permissions/check", params={"userId": RESIDENT.id})
    assert check.json()["data"]["canMessage"] is True


def test_toggle_rejects_foreign_roles(client: TestClient, login, org_id):
    login(ADMIN)

    response = client.put(
        f"{_chat(org_id)}/permissions",
        json={"senderRoleId": 99, "recipientRoleId": SECURITY_ROLE_ID, "disabled": True},
    )
    assert response.status_code == 400


def test_roles_and_members(client: TestClient, login, org_id):
    login(RESIDENT)

    roles = client.get(f"{_chat(org_id)}/roles").json()["data"]
    assert roles["total"] == 3

    members = client.get(f"{_chat(org_id)}/members").json()["data"]["members"]
    assert RESIDENT.id not in {m["userId"] for m in members}
    assert {m["roleName"] for m in members} == {"admin", "resident", "security"}


# -----------------------------------------------------
# Messages
# -----------------------------------------------------
def test_direct_message(client: TestClient, login, fake_db, org_id):
    login(RESIDENT)

    response = client.post(f"{_chat(org_id)}/messages", json={"recipientId": RESIDENT_2.id, "content": " Hola vecino "})
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["isRoleConversation"] is False
    assert data["message"]["content"] == "Hola vecino"
    assert data["message"]["recipientId"] == RESIDENT_2.id

    again = client.post(f"{_chat(org_id)}/messages", json={"recipientId": RESIDENT_2.id, "content": "¿Estás?"})
    assert again.json()["data"]["conversationId"] == data["conversationId"]

    login(RESIDENT_2)
    conversations = client.get(f"{_chat(org_id)}/conversations").json()["data"]["conversations"]
    assert conversations[0]["unread_count"] == 2


def test_direct_message_checks_eligibility_every_time(client: TestClient, login, fake_db, org_id):
    login(RESIDENT)
    first = client.post(f"{_chat(org_id)}/messages", json={"recipientId": GUARD.id, "content": "Hola"})
    conversation_id = first.json()["data"]["conversationId"]

    fake_db.insert_row("role_chat_permissions", {
        "organization_id": org_id,
        "sender_role_id": RESIDENT_ROLE_ID,
        "recipient_role_id": SECURITY_ROLE_ID,
    })

    response = client.post(f"{_chat(org_id)}/messages", json={"recipientId": GUARD.id, "content": "Hola"})
    assert response.status_code == 403

    response = client.post(f"{_chat(org_id)}/messages", json={"conversationId": conversation_id, "content": "Hola"})
    assert response.status_code == 403


def test_message_target_validation(client: TestClient, login, org_id):
    login(RESIDENT)

    response = client.post(f"{_chat(org_id)}/messages", json={"content": "Hola"})
    assert response.status_code == 400
    assert response.json()["message"] == "El ID del destinatario o el ID de conversación es requerido."

    response = client.post(f"{_chat(org_id)}/messages", json={"recipientId": OUTSIDER.id, "content": "Hola"})
    assert response.status_code == 404

    response = client.post(f"{_chat(org_id)}/messages", json={"recipientId": RESIDENT_2.id, "content": "   "})
    assert response.status_code == 400


def test_role_message_requires_role_permission(client: TestClient, login, fake_db, org_id):
    fake_db.insert_row("role_chat_role_permissions", {
        "organization_id": org_id,
        "sender_role_id": RESIDENT_ROLE_ID,
        "recipient_role_id": SECURITY_ROLE_ID,
    })
    login(RESIDENT)

    response = client.post(f"{_chat(org_id)}/messages", json={"roleId": SECURITY_ROLE_ID, "content": "Hola"})
    assert response.status_code == 403
    assert response.json()["message"] == "No tienes permiso para enviar mensajes a este rol."


def test_role_conversation_replies(client: TestClient, login, fake_db, org_id):
    conversation_id = _open_role_conversation(client, login, org_id)

    login(GUARD)
    inbox = client.get(f"{_chat(org_id)}/role-conversations").json()["data"]["conversations"]
    assert [c["conversation_id"] for c in inbox] == [conversation_id]

    detail = client.get(f"{_chat(org_id)}/role-conversations/{conversation_id}").json()["data"]
    assert detail["initiatorName"] == RESIDENT.full_name
    assert detail["roleName"] == "security"
    assert detail["isInitiator"] is False

    reply = client.post(f"{_chat(org_id)}/messages", json={"conversationId": conversation_id, "content": "Vamos para allá"})
    assert reply.status_code == 200
    assert reply.json()["data"]["message"]["recipientId"] == RESIDENT.id

    login(RESIDENT_2)
    response = client.post(f"{_chat(org_id)}/messages", json={"conversationId": conversation_id, "content": "Yo también"})
    assert response.status_code == 403

    login(RESIDENT)
    history = client.get(f"{_chat(org_id)}/conversations/{conversation_id}/messages").json()["data"]["messages"]
    assert [m["recipientId"] for m in history] == [None, RESIDENT.id]


def test_role_conversation_skips_eligibility_after_creation(client: TestClient, login, fake_db, org_id):
    conversation_id = _open_role_conversation(client, login, org_id)

    fake_db.insert_row("role_chat_role_permissions", {
        "organization_id": org_id,
        "sender_role_id": RESIDENT_ROLE_ID,
        "recipient_role_id": SECURITY_ROLE_ID,
    })

    login(RESIDENT)
    response = client.post(f"{_chat(org_id)}/messages", json={"conversationId": conversation_id, "content": "Sigue el ruido"})
    assert response.status_code == 200


# -----------------------------------------------------
# Read state
# -----------------------------------------------------
def test_read_partition_in_role_conversation(client: TestClient, login, fake_db, org_id):
    conversation_id = _open_role_conversation(client, login, org_id)
    login(GUARD)
    client.post(f"{_chat(org_id)}/messages", json={"conversationId": conversation_id, "content": "Recibido"})

    broadcast, reply = sorted(
        fake_db.rows("chat_messages", conversation_id=conversation_id),
        key=lambda m: m["recipient_id"] is not None,
    )

    login(RESIDENT)
    response = client.put(f"{_chat(org_id)}/conversations/{conversation_id}/read")
    assert response.json()["data"]["updated"] == 1
    assert fake_db.rows("chat_messages", id=reply["id"])[0]["is_read"] is True
    assert fake_db.rows("chat_messages", id=broadcast["id"])[0]["is_read"] is False

    login(GUARD)
    client.put(f"{_chat(org_id)}/conversations/{conversation_id}/read")
    assert fake_db.rows("chat_messages", id=broadcast["id"])[0]["is_read"] is True


def test_mark_single_message_read(client: TestClient, login, fake_db, org_id):
    conversation_id = _open_role_conversation(client, login, org_id)
    broadcast = fake_db.rows("chat_messages", conversation_id=conversation_id)[0]

    login(RESIDENT)
    response = client.put(f"{_chat(org_id)}/messages/{broadcast['id']}/read")
    assert response.status_code == 403
    assert response.json()["message"] == "Solo el destinatario puede marcar el mensaje como leído."

    login(GUARD)
    response = client.put(f"{_chat(org_id)}/messages/{broadcast['id']}/read")
    assert response.status_code == 200
    assert response.json()["data"]["isRead"] is True


# -----------------------------------------------------
# Resolution workflow
# -----------------------------------------------------
def _resolve_url(org_id, conversation_id):
    return f"{_chat(org_id)}/conversations/{conversation_id}/resolve"


def _status(fake_db, conversation_id):
    return fake_db.rows("chat_conversations", id=conversation_id)[0]["status"]


def test_request_then_approve_resolves(client: TestClient, login, fake_db, org_id):
    conversation_id = _open_role_conversation(client, login, org_id)

    login(RESIDENT)
    response = client.post(_resolve_url(org_id, conversation_id), json={"resolutionNote": "Ya se calmó"})
    assert response.status_code == 200
    request_id = response.json()["data"]["requestId"]
    assert _status(fake_db, conversation_id) == "active"

    duplicate = client.post(_resolve_url(org_id, conversation_id), json={})
    assert duplicate.status_code == 409

    response = client.put(_resolve_url(org_id, conversation_id), json={"requestId": request_id, "action": "approve"})
    assert response.status_code == 403

    login(GUARD)
    pending = client.get(_resolve_url(org_id, conversation_id)).json()["data"]["requests"]
    assert pending[0]["requesterName"] == RESIDENT.full_name

    response = client.put(_resolve_url(org_id, conversation_id), json={"requestId": request_id, "action": "approve"})
    assert response.status_code == 200
    assert _status(fake_db, conversation_id) == "resolved"

    response = client.put(_resolve_url(org_id, conversation_id), json={"requestId": request_id, "action": "reject"})
    assert response.status_code == 400

    archive = client.post(f"{_chat(org_id)}/conversations/{conversation_id}/archive")
    assert archive.status_code == 200
    assert _status(fake_db, conversation_id) == "archived"

    again = client.post(f"{_chat(org_id)}/conversations/{conversation_id}/archive")
    assert again.status_code == 400
    assert _status(fake_db, conversation_id) == "archived"


def test_reject_keeps_conversation_active(client: TestClient, login, fake_db, org_id):
    conversation_id = _open_role_conversation(client, login, org_id)

    login(RESIDENT)
    request_id = client.post(_resolve_url(org_id, conversation_id)).json()["data"]["requestId"]

    login(GUARD)
    response = client.put(_resolve_url(org_id, conversation_id), json={"requestId": request_id, "action": "reject"})
    assert response.status_code == 200
    assert _status(fake_db, conversation_id) == "active"

    response = client.post(f"{_chat(org_id)}/conversations/{conversation_id}/archive")
    assert response.status_code == 400
    assert _status(fake_db, conversation_id) == "active"


def test_role_member_cannot_settle_fellow_members_request(client: TestClient, login, fake_db, org_id):
    second_guard = CurrentUser(id="0b6a3c1e-5d1f-4d8e-9a44-0a1b2c3d4e06", email="sofia@example.com", full_name="Sofía Seguridad")
    fake_db.add_member(org_id, second_guard.id, SECURITY_ROLE_ID, name=second_guard.full_name)
    conversation_id = _open_role_conversation(client, login, org_id)

    login(GUARD)
    request_id = client.post(_resolve_url(org_id, conversation_id)).json()["data"]["requestId"]

    login(second_guard)
    for action in ("approve", "reject"):
        response = client.put(_resolve_url(org_id, conversation_id), json={"requestId": request_id, "action": action})
        assert response.status_code == 403
    assert _status(fake_db, conversation_id) == "active"

    login(RESIDENT)
    response = client.put(_resolve_url(org_id, conversation_id), json={"requestId": request_id, "action": "approve"})
    assert response.status_code == 200
    assert _status(fake_db, conversation_id) == "resolved"


def test_direct_conversations_cannot_be_resolved(client: TestClient, login, org_id):
    login(RESIDENT)
    sent = client.post(f"{_chat(org_id)}/messages", json={"recipientId": RESIDENT_2.id, "content": "Hola"})
    conversation_id = sent.json()["data"]["conversationId"]

    response = client.post(_resolve_url(org_id, conversation_id))
    assert response.status_code == 400


def test_archived_conversation_rejects_messages(client: TestClient, login, fake_db, org_id):
    conversation_id = _open_role_conversation(client, login, org_id)
    fake_db.rows("chat_conversations", id=conversation_id)[0]["status"] = "archived"

    login(RESIDENT)
    response = client.post(f"{_chat(org_id)}/messages", json={"conversationId": conversation_id, "content": "Hola"})
    assert response.status_code == 400
