# core/chat_permissions.py

"""
Chat messaging policy.

Permission model: every role may message every role (itself included)
unless an override row disables the (sender role, recipient role) pair.
  - role_chat_permissions        → direct user-to-user messages
  - role_chat_role_permissions   → messages into a role inbox
The authoritative per-message check lives in the database
(can_user_message_user / can_user_message_role); this module builds the
display matrix, toggles overrides, and owns the role-conversation rules
(participants, recipients, read partition, resolution workflow).
"""

from enum import Enum
from typing import Dict, Iterable, List, Optional, Set, Tuple

from fastapi import HTTPException
from supabase import Client

from core.errors import UNIQUE_VIOLATION, supabase_error_code
from core.logging_config import logger
from core.store import SupabaseStore
from models.chat import (
    Conversation,
    RoleConversation,
    conversation_from_row,
)
from models.enums import ResolutionAction, ResolutionStatus


USER_PERMISSIONS_TABLE = "role_chat_permissions"
ROLE_PERMISSIONS_TABLE = "role_chat_role_permissions"

RolePair = Tuple[int, int]


class Participant(str, Enum):
    INITIATOR = "initiator"        # user1 of a role conversation
    ROLE_MEMBER = "role_member"    # holder of the conversation's role
    PARTICIPANT = "participant"    # either side of a user-to-user conversation


# ============================================================
# Permission matrix (pure)
# ============================================================
def is_pair_allowed(sender_role_id: int, recipient_role_id: int, disabled_pairs: Set[RolePair]) -> bool:
    return (sender_role_id, recipient_role_id) not in disabled_pairs


def build_permission_matrix(
    roles: List[dict],
    disabled_pairs: Set[RolePair],
    flag: str = "disabled",
) -> List[dict]:
    """
    Full roles × roles cross product, each cell annotated with `flag`.
    flag="disabled" marks override rows; flag="enabled" is the inverse.
    """
    matrix = []
    for sender in roles:
        for recipient in roles:
            disabled = not is_pair_allowed(sender["id"], recipient["id"], disabled_pairs)
            matrix.append({
                "senderRoleId": sender["id"],
                "senderRoleName": sender["name"],
                "recipientRoleId": recipient["id"],
                "recipientRoleName": recipient["name"],
                flag: disabled if flag == "disabled" else not disabled,
            })
    return matrix


# ============================================================
# Reads
# ============================================================
def fetch_organization_roles(client: Client, organization_id: str) -> List[dict]:
    """Roles of the organization's type, ordered by id. 404 if the organization is missing."""
    org = (
        client.table("organizations")
        .select("organization_type_id")
        .eq("id", organization_id)
        .limit(1)
        .execute()
    )
    if not org.data:
        raise HTTPException(404, "Organización no encontrada.")

    roles = (
        client.table("organization_roles")
        .select("id, name, description")
        .eq("organization_type_id", org.data[0]["organization_type_id"])
        .order("id")
        .execute()
    )
    return roles.data or []


def fetch_disabled_pairs(client: Client, organization_id: str, table: str = USER_PERMISSIONS_TABLE) -> Set[RolePair]:
    result = (
        client.table(table)
        .select("sender_role_id, recipient_role_id")
        .eq("organization_id", organization_id)
        .execute()
    )
    return {(row["sender_role_id"], row["recipient_role_id"]) for row in result.data or []}


def get_permission_matrix(client: Client, organization_id: str) -> Dict[str, list]:
    roles = fetch_organization_roles(client, organization_id)
    user_pairs = fetch_disabled_pairs(client, organization_id, USER_PERMISSIONS_TABLE)

    try:
        role_pairs = fetch_disabled_pairs(client, organization_id, ROLE_PERMISSIONS_TABLE)
    except Exception as e:
        # Role-inbox override table is optional
        logger.error(f"Error fetching role-to-role permissions for {organization_id}: {e}")
        role_pairs = set()

    return {
        "permissions": build_permission_matrix(roles, user_pairs, "disabled"),
        "roleRolePermissions": build_permission_matrix(roles, role_pairs, "enabled"),
        "roles": roles,
    }


# ============================================================
# Override toggle (idempotent)
# ============================================================
def set_pair_disabled(
    client: Client,
    organization_id: str,
    sender_role_id: int,
    recipient_role_id: int,
    disabled: bool,
    role_to_role: bool = False,
) -> None:
    """
    disabled=True inserts the override row (an existing row counts as success);
    disabled=False deletes it (deleting a missing row is a no-op).
    """
    table = ROLE_PERMISSIONS_TABLE if role_to_role else USER_PERMISSIONS_TABLE
    pair = f"{sender_role_id}->{recipient_role_id}"

    if disabled:
        try:
            client.table(table).insert({
                "organization_id": organization_id,
                "sender_role_id": sender_role_id,
                "recipient_role_id": recipient_role_id,
            }).execute()
        except Exception as e:
            if supabase_error_code(e) != UNIQUE_VIOLATION:
                raise
        logger.info(f"Chat permission {pair} disabled in {organization_id} ({table})")
        return

    (
        client.table(table)
        .delete()
        .eq("organization_id", organization_id)
        .eq("sender_role_id", sender_role_id)
        .eq("recipient_role_id", recipient_role_id)
        .execute()
    )
    logger.info(f"Chat permission {pair} enabled in {organization_id} ({table})")


# ============================================================
# Eligibility
# ============================================================
def can_message_user(store: SupabaseStore, sender_id: str, recipient_id: str, organization_id: str) -> bool:
    return store.can_user_message_user(sender_id, recipient_id, organization_id)


def can_message_role(store: SupabaseStore, user_id: str, role_id: int, organization_id: str) -> bool:
    return store.can_user_message_role(user_id, role_id, organization_id)


def messageable_roles(store: SupabaseStore, user_id: str, organization_id: str, roles: Iterable[dict]) -> List[dict]:
    """Roles the user may open a conversation with; a failed check hides the role."""
    available = []
    for role in roles:
        try:
            if can_message_role(store, user_id, role["id"], organization_id):
                available.append(role)
        except HTTPException as e:
            logger.warning(f"Role eligibility check failed for role {role['id']}: {e.detail}")
    return available


# ============================================================
# Conversations & participants
# ============================================================
def get_conversation(client: Client, organization_id: str, conversation_id: str) -> Conversation:
    result = (
        client.table("chat_conversations")
        .select("*")
        .eq("id", conversation_id)
        .eq("organization_id", organization_id)
        .limit(1)
        .execute()
    )
    if not result.data:
        raise HTTPException(404, "Conversación no encontrada.")
    return conversation_from_row(result.data[0])


def is_role_member(client: Client, user_id: str, organization_id: str, role_id: int) -> bool:
    result = (
        client.table("organization_members")
        .select("id")
        .eq("organization_id", organization_id)
        .eq("user_id", user_id)
        .eq("organization_role_id", role_id)
        .limit(1)
        .execute()
    )
    return bool(result.data)


def resolve_participant(client: Client, conversation: Conversation, user_id: str) -> Optional[Participant]:
    if isinstance(conversation, RoleConversation):
        if conversation.initiator_id == user_id:
            return Participant.INITIATOR
        if is_role_member(client, user_id, conversation.organization_id, conversation.role_id):
            return Participant.ROLE_MEMBER
        return None

    if user_id in (conversation.user1_id, conversation.user2_id):
        return Participant.PARTICIPANT
    return None


def require_participant(client: Client, conversation: Conversation, user_id: str) -> Participant:
    participant = resolve_participant(client, conversation, user_id)
    if participant is None:
        raise HTTPException(403, "No tienes acceso a esta conversación.")
    return participant


def recipient_for(conversation: Conversation, participant: Participant, user_id: str) -> Optional[str]:
    """
    Initiator → role broadcast (None); role member → the initiator;
    user conversation → the other user.
    """
    if isinstance(conversation, RoleConversation):
        if participant == Participant.INITIATOR:
            return None
        return conversation.initiator_id
    return conversation.other_user(user_id)


# ============================================================
# Read partition
# ============================================================
def unread_partition(conversation: Conversation, participant: Participant, user_id: str) -> Optional[str]:
    """
    recipient_id value whose messages the caller may mark read.
    None means the initiator's broadcasts (recipient_id IS NULL), which every
    role member shares; the initiator only reads replies addressed to them.
    """
    if isinstance(conversation, RoleConversation) and participant == Participant.ROLE_MEMBER:
        return None
    return user_id


def apply_unread_partition(query, conversation: Conversation, participant: Participant, user_id: str):
    recipient = unread_partition(conversation, participant, user_id)
    if recipient is None:
        return query.is_("recipient_id", "null")
    return query.eq("recipient_id", recipient)


def can_mark_message_read(
    conversation: Conversation,
    participant: Optional[Participant],
    message: dict,
    user_id: str,
) -> bool:
    if participant is None:
        return False
    return message.get("recipient_id") == unread_partition(conversation, participant, user_id)


# ============================================================
# Message content
# ============================================================
def validate_message_content(content, max_length: int = 5000) -> str:
    if not isinstance(content, str) or not content.strip():
        raise HTTPException(400, "El contenido del mensaje es requerido.")
    content = content.strip()
    if len(content) > max_length:
        raise HTTPException(400, f"El mensaje no puede tener más de {max_length} caracteres.")
    return content


# ============================================================
# Resolution workflow (role conversations only)
# ============================================================
def require_role_conversation(conversation: Conversation) -> RoleConversation:
    if not isinstance(conversation, RoleConversation):
        raise HTTPException(400, "Solo las conversaciones de rol pueden resolverse.")
    return conversation


def request_resolution(
    client: Client,
    store: SupabaseStore,
    conversation: Conversation,
    user_id: str,
    note: Optional[str] = None,
) -> str:
    """Creates a pending request; the conversation status is unchanged."""
    require_role_conversation(conversation)
    require_participant(client, conversation, user_id)

    request_id = store.request_conversation_resolution(
        conversation.id, user_id, note.strip() if note and note.strip() else None
    )
    logger.info(f"Resolution requested for conversation {conversation.id} by {user_id}")
    return request_id


def fetch_resolution_request(client: Client, conversation_id: str, request_id: str) -> dict:
    result = (
        client.table("chat_conversation_resolution_requests")
        .select("*")
        .eq("id", request_id)
        .eq("conversation_id", conversation_id)
        .limit(1)
        .execute()
    )
    if not result.data:
        raise HTTPException(404, "Solicitud de resolución no encontrada.")
    return result.data[0]


def requester_side(conversation: RoleConversation, requested_by: Optional[str]) -> Participant:
    if requested_by == conversation.initiator_id:
        return Participant.INITIATOR
    return Participant.ROLE_MEMBER


def decide_resolution(
    client: Client,
    store: SupabaseStore,
    conversation: Conversation,
    user_id: str,
    request_id: str,
    action: ResolutionAction,
) -> bool:
    """
    Approve or reject a pending request. Only the other side of the
    conversation may decide: a role member cannot settle a fellow member's
    request. The database enforces the transition itself.
    """
    conversation = require_role_conversation(conversation)
    participant = require_participant(client, conversation, user_id)

    request = fetch_resolution_request(client, conversation.id, request_id)
    if request.get("requested_by") == user_id:
        raise HTTPException(403, "No puedes aprobar o rechazar tu propia solicitud de resolución.")
    if participant == requester_side(conversation, request.get("requested_by")):
        raise HTTPException(403, "Solo el otro participante puede aprobar o rechazar esta solicitud.")
    if request.get("status") != ResolutionStatus.pending.value:
        raise HTTPException(400, "Esta solicitud de resolución ya fue procesada.")

    if action == ResolutionAction.approve:
        success = store.approve_conversation_resolution(request_id, user_id)
        outcome = "approved"
    else:
        success = store.reject_conversation_resolution(request_id, user_id)
        outcome = "rejected"

    logger.info(f"Resolution request {request_id} {outcome} by {user_id}")
    return success


def archive(client: Client, store: SupabaseStore, conversation: Conversation, user_id: str) -> bool:
    """Only `resolved` conversations can be archived; the database rejects anything else."""
    require_role_conversation(conversation)
    require_participant(client, conversation, user_id)

    success = store.archive_conversation(conversation.id, user_id)
    logger.info(f"Conversation {conversation.id} archived by {user_id}")
    return success
