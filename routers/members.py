# routers/members.py

from fastapi import APIRouter, Depends, HTTPException, Query

from dependencies.auth import get_current_user, CurrentUser
from core.supabase_client import get_supabase_client
from core.logging_config import logger
from core.errors import translate_store_error
from core.organization_access import (
    fetch_membership,
    load_organization_context,
    normalize_role_name,
    require_permission,
)
from core.responses import envelope
from core.store import SupabaseStore
from core.utils import validate_uuid
from models.organization import MemberRoleUpdate

router = APIRouter(
    prefix="/organizations/{organization_id}/members",
    tags=["Members"],
)


def _role_names(client, role_ids) -> dict:
    if not role_ids:
        return {}
    rows = (
        client.table("organization_roles")
        .select("id, name")
        .in_("id", list(role_ids))
        .execute()
    ).data or []
    return {r["id"]: normalize_role_name(r["name"]) for r in rows}


# -----------------------------------------------------
# GET: list members (members:view)
# -----------------------------------------------------
@router.get("", summary="List organization members")
def list_members(
    organization_id: str,
    current_user: CurrentUser = Depends(get_current_user),
):
    validate_uuid(organization_id, "organización")
    client = get_supabase_client()
    store = SupabaseStore(client)

    context = load_organization_context(client, current_user.id, organization_id)
    require_permission(context, "members:view", "No tienes permisos para ver los miembros.")

    members = (
        client.table("organization_members")
        .select("id, user_id, organization_role_id, joined_at, invited_by")
        .eq("organization_id", organization_id)
        .order("joined_at")
        .execute()
    ).data or []

    roles = _role_names(client, {m["organization_role_id"] for m in members if m.get("organization_role_id")})
    for member in members:
        member["role"] = roles.get(member.get("organization_role_id"))
        member["name"] = store.get_user_name(member["user_id"])

    return envelope(members, "Miembros obtenidos exitosamente.")


# -----------------------------------------------------
# PUT: change a member's role (members:manage)
# -----------------------------------------------------
@router.put("", summary="Change a member's role")
def update_member_role(
    organization_id: str,
    payload: MemberRoleUpdate,
    current_user: CurrentUser = Depends(get_current_user),
):
    validate_uuid(organization_id, "organización")
    validate_uuid(payload.user_id, "usuario")
    client = get_supabase_client()
    store = SupabaseStore(client)

    context = load_organization_context(client, current_user.id, organization_id)
    require_permission(context, "members:manage", "No tienes permisos para administrar miembros.")

    member = fetch_membership(client, payload.user_id, organization_id)
    if member is None:
        raise HTTPException(404, "Miembro no encontrado.")

    role = (
        client.table("organization_roles")
        .select("id, name, organization_type_id")
        .eq("id", payload.role_id)
        .eq("organization_type_id", context.organization.get("organization_type_id"))
        .limit(1)
        .execute()
    )
    if not role.data:
        raise HTTPException(400, "Rol inválido para esta organización.")

    if role.data[0]["name"] != "admin" and store.is_last_admin_in_organization(payload.user_id, organization_id):
        raise HTTPException(400, "No se puede cambiar el rol del último administrador de la organización.")

    try:
        result = (
            client.table("organization_members")
            .update({"organization_role_id": payload.role_id})
            .eq("id", member["id"])
            .execute()
        )
    except Exception as e:
        raise translate_store_error(e, "Error al actualizar el rol del miembro.")

    logger.info(
        f"Member {payload.user_id} of {organization_id} moved to role {payload.role_id} by {current_user.id}"
    )
    return envelope(result.data[0] if result.data else None, "Rol actualizado exitosamente.")


# -----------------------------------------------------
# DELETE: remove a member (members:manage) or leave
# -----------------------------------------------------
@router.delete("", summary="Remove a member")
def remove_member(
    organization_id: str,
    user_id: str = Query(..., alias="userId"),
    current_user: CurrentUser = Depends(get_current_user),
):
    validate_uuid(organization_id, "organización")
    validate_uuid(user_id, "usuario")
    client = get_supabase_client()
    store = SupabaseStore(client)

    context = load_organization_context(client, current_user.id, organization_id)
    if user_id != current_user.id:
        require_permission(context, "members:manage", "No tienes permisos para eliminar miembros.")

    member = fetch_membership(client, user_id, organization_id)
    if member is None:
        raise HTTPException(404, "Miembro no encontrado.")

    if store.is_last_admin_in_organization(user_id, organization_id):
        raise HTTPException(400, "No se puede eliminar al último administrador de la organización.")

    try:
        client.table("organization_members").delete().eq("id", member["id"]).execute()
    except Exception as e:
        raise translate_store_error(e, "Error al eliminar el miembro.")

    logger.info(f"Member {user_id} removed from {organization_id} by {current_user.id}")
    return envelope(None, "Miembro eliminado exitosamente.")
