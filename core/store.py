# core/store.py

"""
Named wrappers around the Supabase stored procedures.

Every multi-step invariant (pending-request uniqueness, resolution approval
flipping the conversation status, invitation acceptance, organization
creation with its first admin) is enforced transactionally inside the
database. Routers and the policy modules call these methods instead of
`client.rpc(...)` directly so the boundary is explicit and can be faked
in tests.
"""

from typing import Any, Dict, List, Optional

from supabase import Client

from core.errors import (
    PROC_NOT_FOUND,
    UNIQUE_VIOLATION,
    translate_store_error,
)
from core.logging_config import logger


# Workflow procedures RAISE with the default code (P0001) when a state
# precondition fails; those are validation errors, not missing rows.
WORKFLOW_STATUSES = {PROC_NOT_FOUND: 400}


def _permission_codes(data) -> List[str]:
    """get_user_permissions returns either plain codes or rows with permission_code."""
    codes = []
    for item in data or []:
        if isinstance(item, str):
            codes.append(item)
        elif isinstance(item, dict):
            code = item.get("permission_code") or item.get("code")
            if code:
                codes.append(code)
    return codes


class SupabaseStore:
    """TransactionalStore over a (service-role) Supabase client."""

    def __init__(self, client: Client):
        self.client = client

    # ============================================================
    # Internal
    # ============================================================
    def _rpc(
        self,
        name: str,
        params: Dict[str, Any],
        operation: str,
        messages: Optional[Dict[str, str]] = None,
        expose_message: bool = False,
        statuses: Optional[Dict[str, int]] = None,
    ):
        try:
            return self.client.rpc(name, params).execute().data
        except Exception as e:
            raise translate_store_error(
                e,
                operation,
                messages=messages,
                expose_message=expose_message,
                statuses=statuses,
            )

    # ============================================================
    # Permissions & identity
    # ============================================================
    def has_permission(self, user_id: str, organization_id: str, permission_code: str) -> bool:
        try:
            data = (
                self.client.rpc(
                    "has_permission",
                    {
                        "p_user_id": user_id,
                        "p_org_id": organization_id,
                        "p_permission_code": permission_code,
                    },
                )
                .execute()
                .data
            )
        except Exception as e:
            # A failed check is a denial
            logger.warning(f"has_permission({permission_code}) failed for {user_id}: {e}")
            return False
        return bool(data)

    def get_user_permissions(self, user_id: str, organization_id: str) -> List[str]:
        data = self._rpc(
            "get_user_permissions",
            {"p_user_id": user_id, "p_org_id": organization_id},
            "Error al obtener los permisos del usuario.",
        )
        return _permission_codes(data)

    def get_user_name(self, user_id: Optional[str]) -> Optional[str]:
        """Display name lookup; failures resolve to None."""
        if not user_id:
            return None
        try:
            name = self.client.rpc("get_user_name", {"p_user_id": user_id}).execute().data
        except Exception as e:
            logger.warning(f"get_user_name failed for {user_id}: {e}")
            return None
        if isinstance(name, str) and name.strip():
            return name.strip()
        return None

    # ============================================================
    # Chat eligibility
    # ============================================================
    def can_user_message_user(self, sender_id: str, recipient_id: str, organization_id: str) -> bool:
        return bool(
            self._rpc(
                "can_user_message_user",
                {
                    "p_sender_id": sender_id,
                    "p_recipient_id": recipient_id,
                    "p_organization_id": organization_id,
                },
                "Error al verificar los permisos.",
            )
        )

    def can_user_message_role(self, user_id: str, role_id: int, organization_id: str) -> bool:
        return bool(
            self._rpc(
                "can_user_message_role",
                {
                    "p_user_id": user_id,
                    "p_role_id": role_id,
                    "p_organization_id": organization_id,
                },
                "Error al verificar los permisos.",
            )
        )

    # ============================================================
    # Conversations
    # ============================================================
    def get_or_create_conversation(self, user1_id: str, user2_id: str, organization_id: str) -> str:
        return self._rpc(
            "get_or_create_conversation",
            {
                "p_user1_id": user1_id,
                "p_user2_id": user2_id,
                "p_organization_id": organization_id,
            },
            "Error al obtener o crear la conversación.",
        )

    def get_or_create_role_conversation(self, user_id: str, role_id: int, organization_id: str) -> str:
        return self._rpc(
            "get_or_create_role_conversation",
            {
                "p_user_id": user_id,
                "p_role_id": role_id,
                "p_organization_id": organization_id,
            },
            "Error al obtener o crear la conversación de rol.",
        )

    def get_user_conversations_with_metadata(
        self, user_id: str, organization_id: str, limit: int, offset: int
    ) -> List[dict]:
        return self._rpc(
            "get_user_conversations_with_metadata",
            {
                "p_user_id": user_id,
                "p_organization_id": organization_id,
                "p_limit": limit,
                "p_offset": offset,
            },
            "Error al obtener las conversaciones.",
        ) or []

    def get_role_conversations_for_role_member(
        self, user_id: str, organization_id: str, limit: int, offset: int
    ) -> List[dict]:
        return self._rpc(
            "get_role_conversations_for_role_member",
            {
                "p_user_id": user_id,
                "p_organization_id": organization_id,
                "p_limit": limit,
                "p_offset": offset,
            },
            "Error al obtener las conversaciones de rol.",
        ) or []

    # ============================================================
    # Resolution workflow
    # ============================================================
    def request_conversation_resolution(
        self, conversation_id: str, user_id: str, resolution_note: Optional[str]
    ) -> str:
        return self._rpc(
            "request_conversation_resolution",
            {
                "p_conversation_id": conversation_id,
                "p_user_id": user_id,
                "p_resolution_note": resolution_note,
            },
            "Error al solicitar la resolución.",
            messages={UNIQUE_VIOLATION: "Ya existe una solicitud de resolución pendiente."},
            expose_message=True,
            statuses=WORKFLOW_STATUSES,
        )

    def approve_conversation_resolution(self, request_id: str, approver_id: str) -> bool:
        return bool(
            self._rpc(
                "approve_conversation_resolution",
                {"p_request_id": request_id, "p_approver_id": approver_id},
                "Error al aprobar la resolución.",
                expose_message=True,
                statuses=WORKFLOW_STATUSES,
            )
        )

    def reject_conversation_resolution(self, request_id: str, rejector_id: str) -> bool:
        return bool(
            self._rpc(
                "reject_conversation_resolution",
                {"p_request_id": request_id, "p_rejector_id": rejector_id},
                "Error al rechazar la resolución.",
                expose_message=True,
                statuses=WORKFLOW_STATUSES,
            )
        )

    def archive_conversation(self, conversation_id: str, user_id: str) -> bool:
        return bool(
            self._rpc(
                "archive_conversation",
                {"p_conversation_id": conversation_id, "p_user_id": user_id},
                "Error al archivar la conversación.",
                expose_message=True,
                statuses=WORKFLOW_STATUSES,
            )
        )

    # ============================================================
    # Organizations & members
    # ============================================================
    def create_organization_with_admin(
        self, name: str, creator_user_id: str, organization_type_id: int
    ) -> str:
        return self._rpc(
            "create_organization_with_admin",
            {
                "org_name": name,
                "creator_user_id": creator_user_id,
                "p_organization_type_id": organization_type_id,
            },
            "Error al crear la organización.",
            messages={UNIQUE_VIOLATION: "Ya existe una organización con ese nombre."},
        )

    def count_members_in_organization(self, organization_id: str) -> int:
        return int(
            self._rpc(
                "count_members_in_organization",
                {"p_organization_id": organization_id},
                "Error al verificar miembros de la organización.",
            )
            or 0
        )

    def is_last_admin_in_organization(self, user_id: str, organization_id: str) -> bool:
        return bool(
            self._rpc(
                "is_last_admin_in_organization",
                {"p_user_id": user_id, "p_organization_id": organization_id},
                "Error al verificar los administradores de la organización.",
            )
        )

    # ============================================================
    # Invitations
    # ============================================================
    def get_invitation_by_token(self, token: str) -> Optional[dict]:
        data = self._rpc(
            "get_invitation_by_token",
            {"p_token": token},
            "Error al obtener la invitación.",
            messages={PROC_NOT_FOUND: "Invitación no encontrada."},
        )
        if isinstance(data, list):
            return data[0] if data else None
        return data

    def accept_organization_invitation(self, token: str, user_id: str):
        return self._rpc(
            "accept_organization_invitation",
            {"p_token": token, "p_user_id": user_id},
            "Error al aceptar la invitación.",
            messages={UNIQUE_VIOLATION: "Ya eres miembro de esta organización."},
            expose_message=True,
        )

    def get_general_invite_link_by_token(self, token: str) -> Optional[dict]:
        data = self._rpc(
            "get_general_invite_link_by_token",
            {"p_token": token},
            "Error al obtener el enlace de invitación.",
            messages={PROC_NOT_FOUND: "Enlace de invitación no encontrado."},
        )
        if isinstance(data, list):
            return data[0] if data else None
        return data

    def create_invitation_from_general_link(
        self,
        general_invite_link_id: str,
        email: str,
        token: str,
        first_name: Optional[str] = None,
    ) -> str:
        return self._rpc(
            "create_invitation_from_general_link",
            {
                "p_general_invite_link_id": general_invite_link_id,
                "p_email": email,
                "p_token": token,
                "p_first_name": first_name,
            },
            "Error al crear la invitación.",
            messages={UNIQUE_VIOLATION: "Ya existe una invitación para este correo."},
            expose_message=True,
        )
