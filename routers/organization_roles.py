# routers/organization_roles.py

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from dependencies.auth import get_current_user, CurrentUser
from core.supabase_client import get_supabase_client
from core.config import settings
from core.organization_access import normalize_role_name
from core.responses import envelope

router = APIRouter(
    prefix="/organization-roles",
    tags=["Organization Roles"],
)


@router.get("", summary="Roles of an organization type")
def list_organization_roles(
    organization_type: Optional[str] = Query(None),
    current_user: CurrentUser = Depends(get_current_user),
):
    client = get_supabase_client()
    type_name = organization_type or settings.DEFAULT_ORGANIZATION_TYPE

    org_type = (
        client.table("organization_types")
        .select("id, name")
        .eq("name", type_name)
        .limit(1)
        .execute()
    )
    if not org_type.data:
        raise HTTPException(404, "Tipo de organización no encontrado.")

    roles = (
        client.table("organization_roles")
        .select("id, name, description")
        .eq("organization_type_id", org_type.data[0]["id"])
        .order("id")
        .execute()
    ).data or []

    for role in roles:
        role["name"] = normalize_role_name(role["name"])

    return envelope(roles, "Roles obtenidos exitosamente.")
