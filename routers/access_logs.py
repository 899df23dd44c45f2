# routers/access_logs.py

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from dependencies.auth import get_current_user, CurrentUser
from core.supabase_client import get_supabase_client
from core.responses import envelope
from core.store import SupabaseStore
from core.utils import validate_uuid
from models.enums import EntryType

router = APIRouter(
    prefix="/access-logs",
    tags=["Access Logs"],
)


# -----------------------------------------------------
# GET /access-logs: gate history (qr:view_history)
# -----------------------------------------------------
@router.get("", summary="Organization access history")
def list_access_logs(
    organization_id: str = Query(...),
    entry_type: Optional[EntryType] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    current_user: CurrentUser = Depends(get_current_user),
):
    """
    Newest first. Each row carries the visitor name and code identifier of
    the validated QR code plus the display name of the guard who scanned it.
    """
    validate_uuid(organization_id, "organización")
    client = get_supabase_client()
    store = SupabaseStore(client)

    if not store.has_permission(current_user.id, organization_id, "qr:view_history"):
        raise HTTPException(403, "No tienes permisos para ver el historial de accesos.")

    query = (
        client.table("access_logs")
        .select("*", count="exact")
        .eq("organization_id", organization_id)
    )
    if entry_type:
        query = query.eq("entry_type", entry_type.value)

    result = query.order("timestamp", desc=True).range(offset, offset + limit - 1).execute()
    logs = result.data or []

    qr_ids = list({log["qr_code_id"] for log in logs if log.get("qr_code_id")})
    codes = {}
    if qr_ids:
        rows = (
            client.table("qr_codes")
            .select("id, identifier, visitor_name, visitor_id, created_by")
            .in_("id", qr_ids)
            .execute()
        ).data or []
        codes = {row["id"]: row for row in rows}

    scanners = {uid: store.get_user_name(uid) for uid in {log.get("scanned_by") for log in logs} if uid}

    for log in logs:
        code = codes.get(log.get("qr_code_id"), {})
        log["identifier"] = code.get("identifier")
        log["visitor_name"] = code.get("visitor_name")
        log["visitor_id"] = code.get("visitor_id")
        log["scanned_by_name"] = scanners.get(log.get("scanned_by"))

    return envelope(
        {
            "logs": logs,
            "total": result.count if result.count is not None else len(logs),
            "limit": limit,
            "offset": offset,
        },
        "Historial de accesos obtenido exitosamente.",
    )
