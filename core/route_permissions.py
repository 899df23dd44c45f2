# core/route_permissions.py

from functools import lru_cache
from typing import Dict, FrozenSet, List, NamedTuple, Optional, Tuple

from models.enums import RoleName


class MenuEntry(NamedTuple):
    key: str
    path: str
    roles: Tuple[str, ...]


ADMIN = RoleName.admin.value
RESIDENT = RoleName.resident.value
SECURITY = RoleName.security.value

ALL_ROLES = (ADMIN, RESIDENT, SECURITY)


# ============================================
# RESIDENTIAL MENU (per role)
# A path may be declared under several roles' menus;
# the allowed role sets are merged, never overwritten.
# ============================================
RESIDENTIAL_MENU_ITEMS: Dict[str, Tuple[MenuEntry, ...]] = {

    # =====================================================
    # ADMIN: members, invitations, chat settings
    # =====================================================
    ADMIN: (
        MenuEntry("members", "/members", (ADMIN,)),
        MenuEntry("invitations", "/invitations", (ADMIN,)),
        MenuEntry("chat-permissions", "/chat-permissions", (ADMIN,)),
        MenuEntry("chat", "/chat", ALL_ROLES),
    ),

    # =====================================================
    # RESIDENT: visitor invites
    # =====================================================
    RESIDENT: (
        MenuEntry("invites", "/invites", (RESIDENT,)),
        MenuEntry("chat", "/chat", ALL_ROLES),
    ),

    # =====================================================
    # SECURITY: gate validation & history
    # =====================================================
    SECURITY: (
        MenuEntry("validate", "/validate", (SECURITY,)),
        MenuEntry("history", "/history", (SECURITY,)),
        MenuEntry("pending", "/pending", (SECURITY,)),
        MenuEntry("chat", "/chat", ALL_ROLES),
    ),
}

# Organization type name → menu declaration
MENU_TABLES: Dict[str, Dict[str, Tuple[MenuEntry, ...]]] = {
    "residential": RESIDENTIAL_MENU_ITEMS,
}


@lru_cache(maxsize=None)
def _route_roles(organization_type: str) -> Dict[str, FrozenSet[str]]:
    table = MENU_TABLES.get(organization_type, {})
    merged: Dict[str, set] = {}
    for entries in table.values():
        for entry in entries:
            merged.setdefault(entry.path, set()).update(entry.roles)
    return {path: frozenset(roles) for path, roles in merged.items()}


def get_allowed_roles(route_path: str, organization_type: str = "residential") -> FrozenSet[str]:
    """Union of roles declared for `route_path`; empty for undeclared paths."""
    return _route_roles(organization_type).get(route_path, frozenset())


def has_route_access(
    route_path: Optional[str],
    role: Optional[str],
    organization_type: str = "residential",
) -> bool:
    """Default-deny: undeclared routes and unknown roles are refused."""
    if not route_path or not role:
        return False
    return role in get_allowed_roles(route_path, organization_type)


def get_routes_for_role(role: str, organization_type: str = "residential") -> List[str]:
    return sorted(
        path
        for path, roles in _route_roles(organization_type).items()
        if role in roles
    )
