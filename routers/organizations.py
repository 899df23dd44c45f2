# routers/organizations.py

from fastapi import APIRouter, Depends, HTTPException, Query

from dependencies.auth import get_current_user, CurrentUser
from core.supabase_client import get_supabase_client
from core.logging_config import logger
from core.config import settings
from core.errors import UNIQUE_VIOLATION, translate_store_error
from core.menu import get_default_route, get_menu_items
from core.organization_access import (
    check_route_access,
    load_organization_context,
    normalize_role_name,
    require_role,
    require_route_access,
)
from core.responses import envelope
from core.store import SupabaseStore
from core.utils import validate_uuid
from models.organization import OrganizationCreate, OrganizationUpdate

router = APIRouter(
    prefix="/organizations",
    tags=["Organizations"],
)


# Rows owned by an organization, deleted children-first
ORGANIZATION_CHILD_TABLES = [
    "chat_messages",
    "chat_conversation_resolution_requests",
    "chat_conversations",
    "role_chat_permissions",
    "role_chat_role_permissions",
    "access_logs",
    "qr_codes",
    "organization_invitations",
    "general_invite_links",
]


# -----------------------------------------------------
# Create organization (creator becomes admin)
# -----------------------------------------------------
@router.post("", summary="Create organization")
def create_organization(
    payload: OrganizationCreate,
    current_user: CurrentUser = Depends(get_current_user),
):
    client = get_supabase_client()
    store = SupabaseStore(client)

    type_name = payload.organization_type or settings.DEFAULT_ORGANIZATION_TYPE
    type_result = (
        client.table("organization_types")
        .select("id, name")
        .eq("name", type_name)
        .limit(1)
        .execute()
    )
    if not type_result.data:
        raise HTTPException(400, "Tipo de organización inválido.")

    organization_id = store.create_organization_with_admin(
        payload.name.strip(),
        current_user.id,
        type_result.data[0]["id"],
    )

    created = (
        client.table("organizations")
        .select("*")
        .eq("id", organization_id)
        .limit(1)
        .execute()
    )

    logger.info(f"Organization {organization_id} created by {current_user.id}")
    return envelope(
        created.data[0] if created.data else {"id": organization_id},
        "Organización creada exitosamente.",
        status_code=201,
    )


# -----------------------------------------------------
# List the caller's organizations
# -----------------------------------------------------
@router.get("", summary="List my organizations")
def list_organizations(current_user: CurrentUser = Depends(get_current_user)):
    client = get_supabase_client()

    memberships = (
        client.table("organization_members")
        .select("organization_id, organization_role_id")
        .eq("user_id", current_user.id)
        .execute()
    ).data or []

    if not memberships:
        return envelope([], "Organizaciones obtenidas exitosamente.")

    org_ids = [m["organization_id"] for m in memberships]
    role_ids = list({m["organization_role_id"] for m in memberships if m.get("organization_role_id")})

    organizations = (
        client.table("organizations")
        .select("id, name, organization_type_id, created_by, created_at, updated_at")
        .in_("id", org_ids)
        .order("created_at", desc=True)
        .execute()
    ).data or []

    roles = {}
    if role_ids:
        role_rows = (
            client.table("organization_roles")
            .select("id, name")
            .in_("id", role_ids)
            .execute()
        ).data or []
        roles = {r["id"]: r["name"] for r in role_rows}

    role_by_org = {m["organization_id"]: roles.get(m.get("organization_role_id")) for m in memberships}
    for org in organizations:
        role_name = role_by_org.get(org["id"])
        org["userRole"] = normalize_role_name(role_name)

    return envelope(organizations, "Organizaciones obtenidas exitosamente.")


# -----------------------------------------------------
# Organization detail + caller's role / permissions
# Non-members get 404 (existence is never leaked)
# -----------------------------------------------------
@router.get("/{organization_id}", summary="Get organization")
def get_organization(
    organization_id: str,
    current_user: CurrentUser = Depends(get_current_user),
):
    validate_uuid(organization_id, "organización")
    client = get_supabase_client()

    context = load_organization_context(client, current_user.id, organization_id)
    org = context.organization

    data = {
        "id": org["id"],
        "name": org["name"],
        "organization_type": context.organization_type,
        "created_by": org.get("created_by"),
        "created_by_name": SupabaseStore(client).get_user_name(org.get("created_by")),
        "created_at": org.get("created_at"),
        "updated_at": org.get("updated_at"),
        "userRole": context.role_name,
        "isAdmin": context.is_admin,
        "permissions": context.permissions,
    }
    return envelope(data, "Organización obtenida exitosamente.")


# -----------------------------------------------------
# Update (admin only; name only)
# -----------------------------------------------------
@router.put("/{organization_id}", summary="Update organization")
def update_organization(
    organization_id: str,
    payload: OrganizationUpdate,
    current_user: CurrentUser = Depends(get_current_user),
):
    validate_uuid(organization_id, "organización")
    client = get_supabase_client()

    require_role(
        client, current_user.id, organization_id, "admin",
        message="No tienes permisos para editar esta organización. Solo los administradores pueden editar organizaciones.",
    )

    try:
        result = (
            client.table("organizations")
            .update({"name": payload.name.strip()})
            .eq("id", organization_id)
            .execute()
        )
    except Exception as e:
        raise translate_store_error(
            e,
            "Error al actualizar la organización.",
            messages={UNIQUE_VIOLATION: "Ya existe una organización con ese nombre."},
        )

    if not result.data:
        raise HTTPException(500, "No se pudo actualizar la organización.")

    logger.info(f"Organization {organization_id} renamed by {current_user.id}")
    return envelope(result.data[0], "Organización actualizada exitosamente.")


# -----------------------------------------------------
# Delete (admin only; the admin must be the last member)
# -----------------------------------------------------
@router.delete("/{organization_id}", summary="Delete organization")
def delete_organization(
    organization_id: str,
    current_user: CurrentUser = Depends(get_current_user),
):
    validate_uuid(organization_id, "organización")
    client = get_supabase_client()
    store = SupabaseStore(client)

    require_role(
        client, current_user.id, organization_id, "admin",
        message="No tienes permisos para eliminar esta organización. Solo los administradores pueden eliminar organizaciones.",
    )

    member_count = store.count_members_in_organization(organization_id)
    if member_count > 1:
        raise HTTPException(
            400,
            "No se puede eliminar una organización que tiene miembros. Elimina todos los miembros primero.",
        )

    try:
        for table in ORGANIZATION_CHILD_TABLES:
            client.table(table).delete().eq("organization_id", organization_id).execute()
        client.table("organization_members").delete().eq("organization_id", organization_id).execute()
        client.table("organizations").delete().eq("id", organization_id).execute()
    except Exception as e:
        raise translate_store_error(e, "Error al eliminar la organización.")

    logger.info(f"Organization {organization_id} deleted by {current_user.id}")
    return envelope(None, "Organización eliminada exitosamente.")


# -----------------------------------------------------
# Menu & default landing route for the caller
# -----------------------------------------------------
@router.get("/{organization_id}/menu", summary="Organization menu for the caller")
def get_organization_menu(
    organization_id: str,
    current_user: CurrentUser = Depends(get_current_user),
):
    validate_uuid(organization_id, "organización")
    client = get_supabase_client()

    context = load_organization_context(client, current_user.id, organization_id)
    return envelope(
        {
            "items": get_menu_items(organization_id, context.permissions),
            "defaultRoute": get_default_route(organization_id, context.permissions),
        },
        "Menú obtenido exitosamente.",
    )


# -----------------------------------------------------
# Route access check
# redirect=true behaves like a page load: denial → 307 to org home
# -----------------------------------------------------
@router.get("/{organization_id}/route-access", summary="Check access to an organization page")
def get_route_access(
    organization_id: str,
    path: str = Query(..., description="Organization page path, e.g. /members"),
    redirect: bool = Query(False),
    current_user: CurrentUser = Depends(get_current_user),
):
    validate_uuid(organization_id, "organización")
    client = get_supabase_client()

    if redirect:
        context = require_route_access(client, current_user.id, organization_id, path)
        return envelope(
            {"hasAccess": True, "role": context.role_name},
            "Acceso permitido.",
        )

    result = check_route_access(client, current_user.id, organization_id, path)
    if result.error and result.error.status in (404, 500):
        raise HTTPException(result.error.status, result.error.message)

    return envelope(
        {
            "hasAccess": result.has_access,
            "role": result.organization.role_name if result.organization else None,
            "reason": result.error.message if result.error else None,
        },
        "Acceso permitido." if result.has_access else result.error.message,
    )
