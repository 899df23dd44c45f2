# routers/invitations.py

from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from dependencies.auth import get_current_user, get_optional_auth, CurrentUser
from core.supabase_client import get_supabase_client
from core.logging_config import logger
from core.config import settings
from core.errors import translate_store_error
from core.notifications import send_approval_email
from core.organization_access import (
    fetch_membership,
    load_organization_context,
    require_permission,
)
from core.responses import envelope
from core.store import SupabaseStore
from core.utils import generate_token, is_expired, normalize_name, utcnow, validate_uuid
from models.enums import InvitationStatus
from models.invitation import InvitationCreate

router = APIRouter(
    prefix="/organizations/{organization_id}/invitations",
    tags=["Invitations"],
)

public_router = APIRouter(
    prefix="/invitations",
    tags=["Invitations"],
)


OPEN_STATUSES = [InvitationStatus.pending.value, InvitationStatus.pending_approval.value]


def invitation_url(token: str) -> str:
    return f"{settings.APP_BASE_URL.rstrip('/')}/invitations/{token}"


def _get_invitation(client, organization_id: str, invitation_id: str) -> dict:
    result = (
        client.table("organization_invitations")
        .select("*")
        .eq("id", invitation_id)
        .eq("organization_id", organization_id)
        .limit(1)
        .execute()
    )
    if not result.data:
        raise HTTPException(404, "Invitación no encontrada.")
    return result.data[0]


def _require_manager(client, current_user: CurrentUser, organization_id: str, message: str):
    context = load_organization_context(client, current_user.id, organization_id)
    require_permission(context, "members:manage", message)
    return context


# ============================================================
# Organization-scoped (admin)
# ============================================================
@router.post("", summary="Invite someone by email")
def create_invitation(
    organization_id: str,
    payload: InvitationCreate,
    current_user: CurrentUser = Depends(get_current_user),
):
    validate_uuid(organization_id, "organización")
    client = get_supabase_client()
    context = _require_manager(
        client, current_user, organization_id, "No tienes permisos para invitar miembros."
    )

    role = (
        client.table("organization_roles")
        .select("id")
        .eq("id", payload.role_id)
        .eq("organization_type_id", context.organization.get("organization_type_id"))
        .limit(1)
        .execute()
    )
    if not role.data:
        raise HTTPException(400, "Rol inválido para esta organización.")

    email = payload.email.lower()
    existing = (
        client.table("organization_invitations")
        .select("id, expires_at")
        .eq("organization_id", organization_id)
        .eq("email", email)
        .in_("status", OPEN_STATUSES)
        .execute()
    ).data or []
    if any(not is_expired(inv.get("expires_at")) for inv in existing):
        raise HTTPException(409, "Ya existe una invitación pendiente para este correo.")

    token = generate_token()
    row = {
        "organization_id": organization_id,
        "email": email,
        "role_id": payload.role_id,
        "first_name": normalize_name(payload.first_name),
        "last_name": normalize_name(payload.last_name),
        "status": InvitationStatus.pending.value,
        "token": token,
        "invited_by": current_user.id,
        "expires_at": (utcnow() + timedelta(days=settings.INVITATION_TTL_DAYS)).isoformat(),
    }

    try:
        result = client.table("organization_invitations").insert(row).execute()
    except Exception as e:
        raise translate_store_error(e, "Error al crear la invitación.")

    invitation = result.data[0]
    invitation["url"] = invitation_url(token)

    logger.info(f"Invitation {invitation['id']} created in {organization_id} by {current_user.id}")
    return envelope(invitation, "Invitación creada exitosamente.", status_code=201)


@router.get("", summary="List invitations")
def list_invitations(
    organization_id: str,
    status: Optional[InvitationStatus] = None,
    current_user: CurrentUser = Depends(get_current_user),
):
    validate_uuid(organization_id, "organización")
    client = get_supabase_client()
    _require_manager(client, current_user, organization_id, "No tienes permisos para ver las invitaciones.")

    query = (
        client.table("organization_invitations")
        .select("*")
        .eq("organization_id", organization_id)
    )
    if status:
        query = query.eq("status", status.value)

    invitations = query.order("created_at", desc=True).execute().data or []

    now = utcnow()
    for inv in invitations:
        inv["is_expired"] = is_expired(inv.get("expires_at"), now)

    return envelope(invitations, "Invitaciones obtenidas exitosamente.")


@router.delete("/{invitation_id}", summary="Cancel an invitation")
def cancel_invitation(
    organization_id: str,
    invitation_id: str,
    current_user: CurrentUser = Depends(get_current_user),
):
    validate_uuid(organization_id, "organización")
    validate_uuid(invitation_id, "invitación")
    client = get_supabase_client()
    _require_manager(client, current_user, organization_id, "No tienes permisos para cancelar invitaciones.")

    invitation = _get_invitation(client, organization_id, invitation_id)
    if invitation["status"] not in OPEN_STATUSES:
        raise HTTPException(400, "Solo se pueden cancelar invitaciones pendientes.")

    result = (
        client.table("organization_invitations")
        .update({"status": InvitationStatus.cancelled.value})
        .eq("id", invitation_id)
        .execute()
    )

    logger.info(f"Invitation {invitation_id} cancelled by {current_user.id}")
    return envelope(result.data[0] if result.data else None, "Invitación cancelada exitosamente.")


@router.post("/{invitation_id}/approve", summary="Approve a join request")
def approve_invitation(
    organization_id: str,
    invitation_id: str,
    current_user: CurrentUser = Depends(get_current_user),
):
    validate_uuid(organization_id, "organización")
    validate_uuid(invitation_id, "invitación")
    client = get_supabase_client()
    context = _require_manager(
        client, current_user, organization_id, "No tienes permisos para aprobar invitaciones."
    )

    invitation = _get_invitation(client, organization_id, invitation_id)
    if invitation["status"] != InvitationStatus.pending_approval.value:
        raise HTTPException(400, "Esta invitación no requiere aprobación o ya ha sido procesada.")

    try:
        result = (
            client.table("organization_invitations")
            .update({"status": InvitationStatus.accepted.value})
            .eq("id", invitation_id)
            .eq("status", InvitationStatus.pending_approval.value)
            .execute()
        )
    except Exception as e:
        raise translate_store_error(e, "Error al aprobar la invitación.")

    if not result.data:
        raise HTTPException(400, "Esta invitación no requiere aprobación o ya ha sido procesada.")

    user_id = invitation.get("user_id")
    if user_id and fetch_membership(client, user_id, organization_id) is None:
        try:
            client.table("organization_members").insert({
                "organization_id": organization_id,
                "user_id": user_id,
                "organization_role_id": invitation.get("role_id"),
                "invited_by": invitation.get("invited_by") or current_user.id,
            }).execute()
        except Exception as e:
            raise translate_store_error(e, "Error al agregar el miembro.")
    elif not user_id:
        logger.warning(f"Invitation {invitation_id} approved without user_id; user must accept first")

    send_approval_email(
        invitation.get("email"),
        invitation.get("first_name"),
        invitation.get("last_name"),
        context.organization.get("name") or "la organización",
    )

    logger.info(f"Invitation {invitation_id} approved by {current_user.id}")
    return envelope(result.data[0], "Invitación aprobada exitosamente.")


@router.post("/{invitation_id}/reject", summary="Reject a join request")
def reject_invitation(
    organization_id: str,
    invitation_id: str,
    current_user: CurrentUser = Depends(get_current_user),
):
    validate_uuid(organization_id, "organización")
    validate_uuid(invitation_id, "invitación")
    client = get_supabase_client()
    _require_manager(client, current_user, organization_id, "No tienes permisos para rechazar invitaciones.")

    invitation = _get_invitation(client, organization_id, invitation_id)
    if invitation["status"] != InvitationStatus.pending_approval.value:
        raise HTTPException(400, "Esta invitación no requiere aprobación o ya ha sido procesada.")

    result = (
        client.table("organization_invitations")
        .update({"status": InvitationStatus.rejected.value})
        .eq("id", invitation_id)
        .eq("status", InvitationStatus.pending_approval.value)
        .execute()
    )
    if not result.data:
        raise HTTPException(400, "Esta invitación no requiere aprobación o ya ha sido procesada.")

    logger.info(f"Invitation {invitation_id} rejected by {current_user.id}")
    return envelope(result.data[0], "Invitación rechazada exitosamente.")


# ============================================================
# Public (by token)
# ============================================================
@public_router.get("/{token}", summary="Look up an invitation by token")
def get_invitation(
    token: str,
    current_user: Optional[CurrentUser] = Depends(get_optional_auth),
):
    client = get_supabase_client()
    invitation = SupabaseStore(client).get_invitation_by_token(token)
    if not invitation:
        raise HTTPException(404, "Invitación no encontrada.")

    if invitation.get("status") not in OPEN_STATUSES:
        raise HTTPException(400, "Esta invitación ya fue procesada.")
    if is_expired(invitation.get("expires_at")):
        raise HTTPException(410, "Esta invitación ha expirado.")

    data = dict(invitation)
    data.pop("token", None)
    if current_user:
        data["emailMatches"] = (current_user.email or "").lower() == (invitation.get("email") or "").lower()

    return envelope(data, "Invitación obtenida exitosamente.")


@public_router.post("/{token}/accept", summary="Accept an invitation")
def accept_invitation(
    token: str,
    current_user: CurrentUser = Depends(get_current_user),
):
    client = get_supabase_client()
    store = SupabaseStore(client)

    invitation = store.get_invitation_by_token(token)
    if not invitation:
        raise HTTPException(404, "Invitación no encontrada.")

    if invitation.get("status") == InvitationStatus.pending_approval.value:
        raise HTTPException(400, "Esta invitación está pendiente de aprobación por un administrador.")
    if invitation.get("status") != InvitationStatus.pending.value:
        raise HTTPException(400, "Esta invitación ya fue procesada.")
    if is_expired(invitation.get("expires_at")):
        raise HTTPException(410, "Esta invitación ha expirado.")
    if (current_user.email or "").lower() != (invitation.get("email") or "").lower():
        raise HTTPException(403, "Esta invitación fue enviada a otro correo electrónico.")

    store.accept_organization_invitation(token, current_user.id)

    logger.info(f"Invitation {invitation.get('id')} accepted by {current_user.id}")
    return envelope(
        {"organization_id": invitation.get("organization_id")},
        "Invitación aceptada exitosamente.",
    )
