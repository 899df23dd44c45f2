# routers/chat.py

from fastapi import APIRouter, Depends, HTTPException, Query

from dependencies.auth import get_current_user, CurrentUser
from core.supabase_client import get_supabase_client
from core.logging_config import logger
from core.config import settings
from core.errors import translate_store_error
from core import chat_permissions as chat
from core.chat_permissions import Participant
from core.organization_access import (
    fetch_membership,
    normalize_role_name,
    require_member,
    require_role,
)
from core.responses import envelope
from core.store import SupabaseStore
from core.utils import validate_uuid
from models.chat import (
    MessageCreate,
    PermissionUpdate,
    ResolutionDecision,
    ResolutionRequestCreate,
    RoleConversation,
)
from models.enums import ConversationStatus

router = APIRouter(
    prefix="/organizations/{organization_id}/chat",
    tags=["Chat"],
)


def _member_client(organization_id: str, current_user: CurrentUser):
    """Validated org id + membership check; returns (client, store)."""
    validate_uuid(organization_id, "organización")
    client = get_supabase_client()
    require_member(client, current_user.id, organization_id)
    return client, SupabaseStore(client)


def _message_out(row: dict) -> dict:
    return {
        "id": row["id"],
        "conversationId": row.get("conversation_id"),
        "senderId": row.get("sender_id"),
        "recipientId": row.get("recipient_id"),
        "content": row.get("content"),
        "isRead": row.get("is_read", False),
        "createdAt": row.get("created_at"),
    }


# ============================================================
# Permission matrix
# ============================================================
@router.get("/permissions", summary="Role × role chat permission matrix")
def get_chat_permissions(
    organization_id: str,
    current_user: CurrentUser = Depends(get_current_user),
):
    client, _ = _member_client(organization_id, current_user)
    matrix = chat.get_permission_matrix(client, organization_id)
    return envelope(matrix, "Permisos obtenidos exitosamente.")


@router.put("/permissions", summary="Enable or disable a role pair (admin)")
def update_chat_permissions(
    organization_id: str,
    payload: PermissionUpdate,
    current_user: CurrentUser = Depends(get_current_user),
):
    validate_uuid(organization_id, "organización")
    client = get_supabase_client()

    require_role(
        client, current_user.id, organization_id, "admin",
        message="No tienes permisos para modificar los permisos de chat. Solo los administradores pueden hacerlo.",
    )

    role_ids = {r["id"] for r in chat.fetch_organization_roles(client, organization_id)}
    if payload.sender_role_id not in role_ids or payload.recipient_role_id not in role_ids:
        raise HTTPException(400, "Datos inválidos. Los roles no pertenecen a esta organización.")

    try:
        chat.set_pair_disabled(
            client,
            organization_id,
            payload.sender_role_id,
            payload.recipient_role_id,
            payload.disabled,
            role_to_role=payload.is_role_to_role,
        )
    except Exception as e:
        raise translate_store_error(e, "Error al actualizar los permisos.")

    return envelope(
        {
            "senderRoleId": payload.sender_role_id,
            "recipientRoleId": payload.recipient_role_id,
            "disabled": payload.disabled,
            "isRoleToRole": payload.is_role_to_role,
        },
        "Permisos actualizados exitosamente.",
    )


@router.get("/permissions/check", summary="Can the caller message this user?")
def check_chat_permission(
    organization_id: str,
    user_id: str = Query(..., alias="userId"),
    current_user: CurrentUser = Depends(get_current_user),
):
    client, store = _member_client(organization_id, current_user)
    validate_uuid(user_id, "usuario")

    if fetch_membership(client, user_id, organization_id) is None:
        raise HTTPException(404, "El destinatario no es miembro de esta organización.")

    can_message = chat.can_message_user(store, current_user.id, user_id, organization_id)
    return envelope({"canMessage": can_message}, "Permiso verificado exitosamente.")


@router.get("/roles", summary="Roles the caller may message")
def list_messageable_roles(
    organization_id: str,
    current_user: CurrentUser = Depends(get_current_user),
):
    client, store = _member_client(organization_id, current_user)

    roles = chat.fetch_organization_roles(client, organization_id)
    available = chat.messageable_roles(store, current_user.id, organization_id, roles)

    return envelope({"roles": available, "total": len(available)}, "Roles obtenidos exitosamente.")


@router.get("/members", summary="Members the caller can chat with")
def list_chat_members(
    organization_id: str,
    current_user: CurrentUser = Depends(get_current_user),
):
    client, store = _member_client(organization_id, current_user)

    members = (
        client.table("organization_members")
        .select("user_id, organization_role_id")
        .eq("organization_id", organization_id)
        .neq("user_id", current_user.id)
        .execute()
    ).data or []

    role_ids = list({m["organization_role_id"] for m in members if m.get("organization_role_id")})
    roles = {}
    if role_ids:
        rows = (
            client.table("organization_roles")
            .select("id, name")
            .in_("id", role_ids)
            .execute()
        ).data or []
        roles = {r["id"]: normalize_role_name(r["name"]) for r in rows}

    data = [
        {
            "userId": m["user_id"],
            "name": store.get_user_name(m["user_id"]),
            "roleId": m.get("organization_role_id"),
            "roleName": roles.get(m.get("organization_role_id")),
        }
        for m in members
    ]
    return envelope({"members": data, "total": len(data)}, "Miembros obtenidos exitosamente.")


# ============================================================
# Messages
# ============================================================
@router.post("/messages", summary="Send a message")
def send_message(
    organization_id: str,
    payload: MessageCreate,
    current_user: CurrentUser = Depends(get_current_user),
):
    """
    Targets, in order of precedence:
      - conversationId: continue an existing conversation. Inside a role
        conversation the initiator and role members may always continue;
        eligibility was checked when it was opened.
      - roleId: open (or reuse) the caller's conversation with a role.
      - recipientId: direct message, eligibility checked on every send.
    """
    client, store = _member_client(organization_id, current_user)
    content = chat.validate_message_content(payload.content, settings.CHAT_MESSAGE_MAX_LENGTH)

    if payload.conversation_id:
        validate_uuid(payload.conversation_id, "conversación")
        conversation = chat.get_conversation(client, organization_id, payload.conversation_id)
        participant = chat.require_participant(client, conversation, current_user.id)

        if conversation.status == ConversationStatus.archived:
            raise HTTPException(400, "Esta conversación está archivada.")

        recipient_id = chat.recipient_for(conversation, participant, current_user.id)
        if participant == Participant.PARTICIPANT and not chat.can_message_user(
            store, current_user.id, recipient_id, organization_id
        ):
            raise HTTPException(403, "No tienes permiso para enviar mensajes a este usuario.")

        conversation_id = conversation.id
        is_role_conversation = isinstance(conversation, RoleConversation)

    elif payload.role_id is not None:
        if not chat.can_message_role(store, current_user.id, payload.role_id, organization_id):
            raise HTTPException(403, "No tienes permiso para enviar mensajes a este rol.")

        conversation_id = store.get_or_create_role_conversation(
            current_user.id, payload.role_id, organization_id
        )
        recipient_id = None
        is_role_conversation = True

    elif payload.recipient_id:
        validate_uuid(payload.recipient_id, "destinatario")
        if payload.recipient_id == current_user.id:
            raise HTTPException(400, "No puedes enviarte mensajes a ti mismo.")
        if fetch_membership(client, payload.recipient_id, organization_id) is None:
            raise HTTPException(404, "El destinatario no es miembro de esta organización.")
        if not chat.can_message_user(store, current_user.id, payload.recipient_id, organization_id):
            raise HTTPException(403, "No tienes permiso para enviar mensajes a este usuario.")

        conversation_id = store.get_or_create_conversation(
            current_user.id, payload.recipient_id, organization_id
        )
        recipient_id = payload.recipient_id
        is_role_conversation = False

    else:
        raise HTTPException(400, "El ID del destinatario o el ID de conversación es requerido.")

    if not conversation_id:
        raise HTTPException(500, "Error al obtener o crear la conversación.")

    try:
        result = client.table("chat_messages").insert({
            "conversation_id": conversation_id,
            "organization_id": organization_id,
            "sender_id": current_user.id,
            "recipient_id": recipient_id,
            "content": content,
        }).execute()
    except Exception as e:
        raise translate_store_error(e, "Error al enviar el mensaje.")

    message = result.data[0]
    logger.info(f"Message {message['id']} sent in conversation {conversation_id} by {current_user.id}")

    return envelope(
        {
            "message": _message_out(message),
            "conversationId": conversation_id,
            "isRoleConversation": is_role_conversation,
        },
        "Mensaje enviado exitosamente.",
    )


@router.put("/messages/{message_id}/read", summary="Mark one message as read")
def mark_message_read(
    organization_id: str,
    message_id: str,
    current_user: CurrentUser = Depends(get_current_user),
):
    client, _ = _member_client(organization_id, current_user)
    validate_uuid(message_id, "mensaje")

    result = (
        client.table("chat_messages")
        .select("*")
        .eq("id", message_id)
        .eq("organization_id", organization_id)
        .limit(1)
        .execute()
    )
    if not result.data:
        raise HTTPException(404, "Mensaje no encontrado.")
    message = result.data[0]

    conversation = chat.get_conversation(client, organization_id, message["conversation_id"])
    participant = chat.resolve_participant(client, conversation, current_user.id)

    if not chat.can_mark_message_read(conversation, participant, message, current_user.id):
        raise HTTPException(403, "Solo el destinatario puede marcar el mensaje como leído.")

    updated = (
        client.table("chat_messages")
        .update({"is_read": True})
        .eq("id", message_id)
        .execute()
    )
    return envelope(
        _message_out(updated.data[0] if updated.data else {**message, "is_read": True}),
        "Mensaje marcado como leído exitosamente.",
    )


# ============================================================
# Conversations
# ============================================================
@router.get("/conversations", summary="Caller's conversations")
def list_conversations(
    organization_id: str,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Direct and self-initiated role conversations with last-message preview and unread count."""
    _, store = _member_client(organization_id, current_user)
    conversations = store.get_user_conversations_with_metadata(
        current_user.id, organization_id, limit, offset
    )
    return envelope(
        {"conversations": conversations, "limit": limit, "offset": offset},
        "Conversaciones obtenidas exitosamente.",
    )


@router.get("/role-conversations", summary="Role inbox: one conversation per initiator")
def list_role_conversations(
    organization_id: str,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    current_user: CurrentUser = Depends(get_current_user),
):
    _, store = _member_client(organization_id, current_user)
    conversations = store.get_role_conversations_for_role_member(
        current_user.id, organization_id, limit, offset
    )
    return envelope(
        {"conversations": conversations, "limit": limit, "offset": offset},
        "Conversaciones de rol obtenidas exitosamente.",
    )


@router.get("/role-conversations/{conversation_id}", summary="Role conversation detail")
def get_role_conversation(
    organization_id: str,
    conversation_id: str,
    current_user: CurrentUser = Depends(get_current_user),
):
    client, store = _member_client(organization_id, current_user)
    validate_uuid(conversation_id, "conversación")

    conversation = chat.get_conversation(client, organization_id, conversation_id)
    if not isinstance(conversation, RoleConversation):
        raise HTTPException(404, "Conversación de rol no encontrada.")
    participant = chat.require_participant(client, conversation, current_user.id)

    role = (
        client.table("organization_roles")
        .select("id, name")
        .eq("id", conversation.role_id)
        .limit(1)
        .execute()
    )

    return envelope(
        {
            "id": conversation.id,
            "status": conversation.status.value,
            "initiatorId": conversation.initiator_id,
            "initiatorName": store.get_user_name(conversation.initiator_id),
            "roleId": conversation.role_id,
            "roleName": normalize_role_name(role.data[0]["name"]) if role.data else None,
            "isInitiator": participant == Participant.INITIATOR,
            "archivedAt": conversation.archived_at,
        },
        "Conversación obtenida exitosamente.",
    )


@router.get("/conversations/{conversation_id}/messages", summary="Conversation history")
def list_conversation_messages(
    organization_id: str,
    conversation_id: str,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    current_user: CurrentUser = Depends(get_current_user),
):
    client, _ = _member_client(organization_id, current_user)
    validate_uuid(conversation_id, "conversación")

    conversation = chat.get_conversation(client, organization_id, conversation_id)
    chat.require_participant(client, conversation, current_user.id)

    rows = (
        client.table("chat_messages")
        .select("*")
        .eq("conversation_id", conversation_id)
        .eq("organization_id", organization_id)
        .order("created_at")
        .range(offset, offset + limit - 1)
        .execute()
    ).data or []

    return envelope(
        {"messages": [_message_out(r) for r in rows], "limit": limit, "offset": offset},
        "Mensajes obtenidos exitosamente.",
    )


@router.put("/conversations/{conversation_id}/read", summary="Mark conversation as read")
def mark_conversation_read(
    organization_id: str,
    conversation_id: str,
    current_user: CurrentUser = Depends(get_current_user),
):
    """
    Role conversations are partitioned: the initiator marks replies
    addressed to them, role members mark the initiator's broadcasts.
    """
    client, _ = _member_client(organization_id, current_user)
    validate_uuid(conversation_id, "conversación")

    conversation = chat.get_conversation(client, organization_id, conversation_id)
    participant = chat.resolve_participant(client, conversation, current_user.id)
    if participant is None:
        raise HTTPException(403, "No eres participante de esta conversación.")

    query = (
        client.table("chat_messages")
        .update({"is_read": True})
        .eq("conversation_id", conversation_id)
        .eq("organization_id", organization_id)
        .eq("is_read", False)
    )
    try:
        result = chat.apply_unread_partition(query, conversation, participant, current_user.id).execute()
    except Exception as e:
        raise translate_store_error(e, "Error al marcar los mensajes como leídos.")

    return envelope(
        {"updated": len(result.data or [])},
        "Mensajes marcados como leídos exitosamente.",
    )


# ============================================================
# Resolution workflow
# ============================================================
@router.post("/conversations/{conversation_id}/resolve", summary="Request resolution")
def request_resolution(
    organization_id: str,
    conversation_id: str,
    payload: ResolutionRequestCreate = ResolutionRequestCreate(),
    current_user: CurrentUser = Depends(get_current_user),
):
    client, store = _member_client(organization_id, current_user)
    validate_uuid(conversation_id, "conversación")

    conversation = chat.get_conversation(client, organization_id, conversation_id)
    request_id = chat.request_resolution(
        client, store, conversation, current_user.id, payload.resolution_note
    )
    return envelope({"requestId": request_id}, "Solicitud de resolución enviada exitosamente.")


@router.put("/conversations/{conversation_id}/resolve", summary="Approve or reject resolution")
def decide_resolution(
    organization_id: str,
    conversation_id: str,
    payload: ResolutionDecision,
    current_user: CurrentUser = Depends(get_current_user),
):
    client, store = _member_client(organization_id, current_user)
    validate_uuid(conversation_id, "conversación")

    conversation = chat.get_conversation(client, organization_id, conversation_id)
    success = chat.decide_resolution(
        client, store, conversation, current_user.id, payload.request_id, payload.action
    )

    verb = "aprobada" if payload.action.value == "approve" else "rechazada"
    return envelope({"success": success}, f"Resolución {verb} exitosamente.")


@router.get("/conversations/{conversation_id}/resolve", summary="Pending resolution requests")
def get_resolution_status(
    organization_id: str,
    conversation_id: str,
    current_user: CurrentUser = Depends(get_current_user),
):
    client, store = _member_client(organization_id, current_user)
    validate_uuid(conversation_id, "conversación")

    conversation = chat.get_conversation(client, organization_id, conversation_id)
    chat.require_participant(client, conversation, current_user.id)

    requests = (
        client.table("chat_conversation_resolution_requests")
        .select("*")
        .eq("conversation_id", conversation_id)
        .eq("status", "pending")
        .order("requested_at", desc=True)
        .execute()
    ).data or []

    for req in requests:
        req["requesterName"] = store.get_user_name(req.get("requested_by"))

    return envelope(
        {"requests": requests, "status": conversation.status.value},
        "Estado de resolución obtenido exitosamente.",
    )


@router.post("/conversations/{conversation_id}/archive", summary="Archive a resolved conversation")
def archive_conversation(
    organization_id: str,
    conversation_id: str,
    current_user: CurrentUser = Depends(get_current_user),
):
    client, store = _member_client(organization_id, current_user)
    validate_uuid(conversation_id, "conversación")

    conversation = chat.get_conversation(client, organization_id, conversation_id)
    success = chat.archive(client, store, conversation, current_user.id)
    return envelope({"success": success}, "Conversación archivada exitosamente.")
