# core/menu.py

from typing import Iterable, List, NamedTuple, Optional


class MenuItem(NamedTuple):
    key: str
    path: str
    permission: Optional[str]


# ============================================
# ORGANIZATION MENU (permission-gated)
# Order matters: the first visible item is the default landing route.
# ============================================
MENU_ITEMS = (
    MenuItem("members", "/members", "members:view"),
    MenuItem("invites", "/invites", "invites:create"),
    MenuItem("validate", "/validate", "qr:validate"),
    MenuItem("history", "/history", "qr:view_history"),
    MenuItem("pending", "/pending", "qr:validate"),
    MenuItem("chat", "/chat", "chat:read"),
)


def find_menu_item(path: str) -> Optional[MenuItem]:
    for item in MENU_ITEMS:
        if item.path == path:
            return item
    return None


def get_menu_items(organization_id: Optional[str], permissions: Optional[Iterable[str]]) -> List[dict]:
    """Menu entries visible with `permissions`, with organization-scoped paths."""
    if not organization_id or permissions is None:
        return []

    granted = set(permissions)
    return [
        {
            "key": item.key,
            "path": f"/organizations/{organization_id}{item.path}",
        }
        for item in MENU_ITEMS
        if not item.permission or item.permission in granted
    ]


def get_default_route(organization_id: Optional[str], permissions: Optional[Iterable[str]]) -> Optional[str]:
    items = get_menu_items(organization_id, permissions)
    return items[0]["path"] if items else None
