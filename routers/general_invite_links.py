# routers/general_invite_links.py

from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from dependencies.auth import get_current_user, get_optional_auth, CurrentUser
from core.supabase_client import get_supabase_client
from core.logging_config import logger
from core.config import settings
from core.errors import translate_store_error
from core.organization_access import (
    fetch_membership,
    load_organization_context,
    require_permission,
)
from core.responses import envelope
from core.store import SupabaseStore
from core.utils import generate_token, is_expired, utcnow, validate_uuid
from models.enums import InvitationStatus
from models.invitation import GeneralInviteLinkAccept, GeneralInviteLinkCreate

router = APIRouter(
    prefix="/organizations/{organization_id}/general-invite-links",
    tags=["General Invite Links"],
)

public_router = APIRouter(
    prefix="/general-invite-links",
    tags=["General Invite Links"],
)


def link_url(token: str) -> str:
    return f"{settings.APP_BASE_URL.rstrip('/')}/invitations/general/{token}"


# ============================================================
# Organization-scoped (admin)
# ============================================================
@router.post("", summary="Create a reusable invite link")
def create_general_invite_link(
    organization_id: str,
    payload: GeneralInviteLinkCreate,
    current_user: CurrentUser = Depends(get_current_user),
):
    validate_uuid(organization_id, "organización")
    client = get_supabase_client()

    context = load_organization_context(client, current_user.id, organization_id)
    require_permission(context, "members:manage", "No tienes permisos para crear enlaces de invitación.")

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

    token = generate_token()
    expires_at = None
    if payload.expires_in_days:
        expires_at = (utcnow() + timedelta(days=payload.expires_in_days)).isoformat()

    try:
        result = client.table("general_invite_links").insert({
            "organization_id": organization_id,
            "organization_role_id": payload.role_id,
            "requires_approval": payload.requires_approval,
            "expires_at": expires_at,
            "token": token,
            "created_by": current_user.id,
        }).execute()
    except Exception as e:
        raise translate_store_error(e, "Error al crear el enlace de invitación.")

    link = result.data[0]
    link["url"] = link_url(token)

    logger.info(f"General invite link {link['id']} created in {organization_id} by {current_user.id}")
    return envelope(link, "Enlace de invitación creado exitosamente.", status_code=201)


@router.get("", summary="List invite links")
def list_general_invite_links(
    organization_id: str,
    current_user: CurrentUser = Depends(get_current_user),
):
    validate_uuid(organization_id, "organización")
    client = get_supabase_client()

    context = load_organization_context(client, current_user.id, organization_id)
    require_permission(context, "members:manage", "No tienes permisos para ver los enlaces de invitación.")

    links = (
        client.table("general_invite_links")
        .select("*")
        .eq("organization_id", organization_id)
        .order("created_at", desc=True)
        .execute()
    ).data or []

    now = utcnow()
    for link in links:
        link["is_expired"] = is_expired(link.get("expires_at"), now)
        link["url"] = link_url(link["token"])

    return envelope(links, "Enlaces de invitación obtenidos exitosamente.")


@router.delete("/{link_id}", summary="Delete an invite link")
def delete_general_invite_link(
    organization_id: str,
    link_id: str,
    current_user: CurrentUser = Depends(get_current_user),
):
    validate_uuid(organization_id, "organización")
    validate_uuid(link_id, "enlace")
    client = get_supabase_client()

    context = load_organization_context(client, current_user.id, organization_id)
    require_permission(context, "members:manage", "No tienes permisos para eliminar enlaces de invitación.")

    result = (
        client.table("general_invite_links")
        .delete()
        .eq("id", link_id)
        .eq("organization_id", organization_id)
        .execute()
    )
    if not result.data:
        raise HTTPException(404, "Enlace de invitación no encontrado.")

    logger.info(f"General invite link {link_id} deleted by {current_user.id}")
    return envelope(None, "Enlace de invitación eliminado exitosamente.")


# ============================================================
# Public (by token)
# ============================================================
def _active_link(store: SupabaseStore, token: str) -> dict:
    link = store.get_general_invite_link_by_token(token)
    if not link:
        raise HTTPException(404, "Enlace de invitación no encontrado.")
    if is_expired(link.get("expires_at")):
        raise HTTPException(410, "Este enlace de invitación ha expirado.")
    return link


@public_router.get("/{token}", summary="Look up an invite link")
def get_general_invite_link(
    token: str,
    current_user: Optional[CurrentUser] = Depends(get_optional_auth),
):
    client = get_supabase_client()
    link = dict(_active_link(SupabaseStore(client), token))

    if current_user:
        link["isMember"] = fetch_membership(client, current_user.id, link["organization_id"]) is not None

    return envelope(link, "Enlace de invitación obtenido exitosamente.")


@public_router.post("/{token}/accept", summary="Join through an invite link (logged in)")
def accept_general_invite_link(
    token: str,
    payload: Optional[GeneralInviteLinkAccept] = None,
    current_user: CurrentUser = Depends(get_current_user),
):
    """
    Creates an invitation from the link. Links without approval are
    accepted immediately; otherwise the invitation waits in
    pending_approval for an administrator.
    """
    client = get_supabase_client()
    store = SupabaseStore(client)
    link = _active_link(store, token)

    organization_id = link["organization_id"]
    if fetch_membership(client, current_user.id, organization_id) is not None:
        raise HTTPException(409, "Ya eres miembro de esta organización.")
    if not current_user.email:
        raise HTTPException(400, "Tu cuenta no tiene un correo electrónico asociado.")

    invitation_token = generate_token()
    invitation_id = store.create_invitation_from_general_link(
        link["id"],
        current_user.email.lower(),
        invitation_token,
        first_name=payload.first_name if payload else None,
    )

    client.table("organization_invitations").update(
        {"user_id": current_user.id}
    ).eq("token", invitation_token).execute()

    if link.get("requires_approval"):
        status = InvitationStatus.pending_approval.value
        message = "Solicitud enviada. Un administrador debe aprobarla."
    else:
        store.accept_organization_invitation(invitation_token, current_user.id)
        status = InvitationStatus.accepted.value
        message = "Te has unido a la organización exitosamente."

    logger.info(f"User {current_user.id} used invite link {link['id']} ({status})")
    return envelope(
        {
            "invitationId": invitation_id,
            "organizationId": organization_id,
            "status": status,
        },
        message,
    )
