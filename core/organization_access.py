# core/organization_access.py

"""
Organization-scoped authorization.

Every check re-reads membership, role and permission codes from Supabase;
nothing is cached between requests, so role changes apply immediately.
"""

from typing import Iterable, List, Optional, Union

from fastapi import HTTPException
from pydantic import BaseModel, Field
from supabase import Client

from core.logging_config import logger
from core.menu import find_menu_item
from core.route_permissions import has_route_access
from core.store import SupabaseStore


NOT_MEMBER_MESSAGE = "No eres miembro de esta organización."
NO_ROLE_MESSAGE = "No tienes un rol asignado en esta organización."
NO_ACCESS_MESSAGE = "No tienes permiso para acceder a esta página."
NOT_FOUND_MESSAGE = "Organización no encontrada o no tienes acceso a ella."

# Legacy role name still present in older organizations
ROLE_ALIASES = {"security_personnel": "security"}


def normalize_role_name(name: Optional[str]) -> Optional[str]:
    if not name:
        return None
    return ROLE_ALIASES.get(name, name)


# ============================================================
# Errors
# ============================================================
class OrganizationNotFound(HTTPException):
    def __init__(self, message: str = NOT_FOUND_MESSAGE):
        super().__init__(status_code=404, detail=message)


class NotAMember(HTTPException):
    def __init__(self, message: str = NOT_MEMBER_MESSAGE):
        super().__init__(status_code=403, detail=message)


class NoRoleAssigned(HTTPException):
    def __init__(self, message: str = NO_ROLE_MESSAGE):
        super().__init__(status_code=403, detail=message)


class RouteAccessDenied(Exception):
    """
    Raised from page-context checks. Rendered as a redirect to the
    organization home instead of an error page.
    """

    def __init__(self, organization_id: str, message: str = NO_ACCESS_MESSAGE):
        super().__init__(message)
        self.organization_id = organization_id
        self.message = message

    @property
    def redirect_to(self) -> str:
        return f"/organizations/{self.organization_id}"


# ============================================================
# Models
# ============================================================
class OrganizationContext(BaseModel):
    organization: dict
    organization_type: str = "residential"
    member_id: Optional[str] = None
    role_id: Optional[int] = None
    role_name: Optional[str] = None
    permissions: List[str] = Field(default_factory=list)

    @property
    def is_member(self) -> bool:
        return self.member_id is not None

    @property
    def is_admin(self) -> bool:
        return self.role_name == "admin"

    def has_permission(self, code: str) -> bool:
        return code in self.permissions


class AccessError(BaseModel):
    message: str
    status: int


class RouteAccessResult(BaseModel):
    has_access: bool
    organization: Optional[OrganizationContext] = None
    error: Optional[AccessError] = None


# ============================================================
# Lookups
# ============================================================
def fetch_membership(client: Client, user_id: str, organization_id: str) -> Optional[dict]:
    result = (
        client.table("organization_members")
        .select("id, user_id, organization_role_id, joined_at")
        .eq("organization_id", organization_id)
        .eq("user_id", user_id)
        .limit(1)
        .execute()
    )
    return result.data[0] if result.data else None


def fetch_role(client: Client, role_id) -> Optional[dict]:
    if role_id is None:
        return None
    result = (
        client.table("organization_roles")
        .select("id, name, description, organization_type_id")
        .eq("id", role_id)
        .limit(1)
        .execute()
    )
    return result.data[0] if result.data else None


def fetch_organization_type_name(client: Client, organization_type_id) -> str:
    if organization_type_id is None:
        return "residential"
    result = (
        client.table("organization_types")
        .select("name")
        .eq("id", organization_type_id)
        .limit(1)
        .execute()
    )
    return result.data[0]["name"] if result.data else "residential"


def load_organization_context(
    client: Client,
    user_id: str,
    organization_id: str,
    require_member: bool = True,
) -> OrganizationContext:
    """
    Organization row + the caller's membership, role and permission codes.

    With `require_member` (default) a non-member gets the same 404 as a
    missing organization so existence is never leaked.
    """
    result = (
        client.table("organizations")
        .select("id, name, organization_type_id, created_by, created_at, updated_at")
        .eq("id", organization_id)
        .limit(1)
        .execute()
    )
    if not result.data:
        raise OrganizationNotFound()
    organization = result.data[0]

    member = fetch_membership(client, user_id, organization_id)
    if member is None and require_member:
        raise OrganizationNotFound()

    role = fetch_role(client, member.get("organization_role_id")) if member else None
    permissions = (
        SupabaseStore(client).get_user_permissions(user_id, organization_id) if member else []
    )

    return OrganizationContext(
        organization=organization,
        organization_type=fetch_organization_type_name(
            client, organization.get("organization_type_id")
        ),
        member_id=member["id"] if member else None,
        role_id=role["id"] if role else None,
        role_name=normalize_role_name(role["name"]) if role else None,
        permissions=permissions,
    )


# ============================================================
# Route access (permission code first, role table fallback)
# ============================================================
def check_route_access(
    client: Client,
    user_id: str,
    organization_id: str,
    route_path: str,
) -> RouteAccessResult:
    """Never raises; failures are reported in `error`."""
    try:
        context = load_organization_context(client, user_id, organization_id)

        if not context.role_name:
            return RouteAccessResult(
                has_access=False,
                organization=context,
                error=AccessError(message=NO_ROLE_MESSAGE, status=403),
            )

        menu_item = find_menu_item(route_path)
        if menu_item and menu_item.permission:
            granted = context.has_permission(menu_item.permission)
        else:
            granted = has_route_access(route_path, context.role_name, context.organization_type)

        return RouteAccessResult(
            has_access=granted,
            organization=context,
            error=None if granted else AccessError(message=NO_ACCESS_MESSAGE, status=403),
        )

    except HTTPException as e:
        return RouteAccessResult(
            has_access=False,
            error=AccessError(message=str(e.detail), status=e.status_code),
        )
    except Exception as e:
        logger.error(f"Error checking route access to {route_path}: {e}", exc_info=True)
        return RouteAccessResult(
            has_access=False,
            error=AccessError(message="Error inesperado al verificar permisos.", status=500),
        )


def require_route_access(
    client: Client,
    user_id: str,
    organization_id: str,
    route_path: str,
) -> OrganizationContext:
    result = check_route_access(client, user_id, organization_id, route_path)
    if result.error and result.error.status in (404, 500):
        raise HTTPException(result.error.status, result.error.message)
    if not result.has_access or result.organization is None:
        raise RouteAccessDenied(
            organization_id,
            result.error.message if result.error else NO_ACCESS_MESSAGE,
        )
    return result.organization


# ============================================================
# Literal role / permission gates
# ============================================================
def require_member(client: Client, user_id: str, organization_id: str) -> dict:
    member = fetch_membership(client, user_id, organization_id)
    if member is None:
        raise NotAMember()
    return member


def require_role(
    client: Client,
    user_id: str,
    organization_id: str,
    roles: Union[str, Iterable[str]],
    message: str = NO_ACCESS_MESSAGE,
) -> OrganizationContext:
    """Literal role-name allow-list, independent of the menu table."""
    allowed = {roles} if isinstance(roles, str) else set(roles)

    context = load_organization_context(
        client, user_id, organization_id, require_member=False
    )
    if not context.is_member:
        raise NotAMember()
    if not context.role_name:
        raise NoRoleAssigned()
    if context.role_name not in allowed:
        raise HTTPException(status_code=403, detail=message)
    return context


def require_permission(context: OrganizationContext, code: str, message: str = NO_ACCESS_MESSAGE):
    if not context.has_permission(code):
        raise HTTPException(status_code=403, detail=message)
