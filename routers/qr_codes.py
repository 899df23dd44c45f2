# routers/qr_codes.py

from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from dependencies.auth import get_current_user, CurrentUser
from core.supabase_client import get_supabase_client
from core.logging_config import logger
from core.config import settings
from core.errors import translate_store_error
from core.notifications import notify_visitor_entry
from core.responses import envelope
from core.store import SupabaseStore
from core.utils import (
    generate_identifier,
    generate_token,
    is_expired,
    sanitize,
    utcnow,
    validate_uuid,
)
from models.enums import QRCodeStatus
from models.qr_code import QRCodeCreate, QRCodeUpdate, QRCodeValidate

router = APIRouter(
    prefix="/qr-codes",
    tags=["QR Codes"],
)


QR_FIELDS = (
    "id, token, organization_id, created_by, created_at, updated_at, status, is_used, "
    "expires_at, validated_at, validated_by, visitor_name, visitor_id, document_photo_url, "
    "identifier, notes"
)

USED_MESSAGE = "Este código ya ha sido utilizado."
EXPIRED_MESSAGE = "Este código ha expirado."
REVOKED_MESSAGE = "Este código fue revocado."


# -----------------------------------------------------
# Helpers
# -----------------------------------------------------
def effective_status(qr: dict, now=None) -> str:
    """Stored status with time-derived expiry applied."""
    if qr.get("is_used") or qr.get("status") == QRCodeStatus.used.value:
        return QRCodeStatus.used.value
    if qr.get("status") == QRCodeStatus.revoked.value:
        return QRCodeStatus.revoked.value
    if is_expired(qr.get("expires_at"), now):
        return QRCodeStatus.expired.value
    return qr.get("status") or QRCodeStatus.active.value


def ensure_validatable(qr: dict):
    """409 when used, 410 when expired or revoked."""
    status = effective_status(qr)
    if status == QRCodeStatus.used.value:
        raise HTTPException(409, USED_MESSAGE)
    if status == QRCodeStatus.expired.value:
        raise HTTPException(410, EXPIRED_MESSAGE)
    if status == QRCodeStatus.revoked.value:
        raise HTTPException(410, REVOKED_MESSAGE)


def _get_by_token(client, token: str) -> dict:
    if not token or not token.strip():
        raise HTTPException(400, "Token inválido.")
    result = (
        client.table("qr_codes")
        .select(QR_FIELDS)
        .eq("token", token)
        .limit(1)
        .execute()
    )
    if not result.data:
        raise HTTPException(404, "Token no encontrado o inválido.")
    return result.data[0]


def _get_by_id(client, qr_id: str) -> dict:
    validate_uuid(qr_id, "código QR")
    result = (
        client.table("qr_codes")
        .select(QR_FIELDS)
        .eq("id", qr_id)
        .limit(1)
        .execute()
    )
    if not result.data:
        raise HTTPException(404, "Código QR no encontrado.")
    return result.data[0]


def _require_owner(qr: dict, current_user: CurrentUser):
    # Non-owners get 404 so the code's existence is not leaked
    if qr.get("created_by") != current_user.id:
        raise HTTPException(404, "Código QR no encontrado.")


def _require_validator(store: SupabaseStore, current_user: CurrentUser, organization_id: str):
    if not store.has_permission(current_user.id, organization_id, "qr:validate"):
        raise HTTPException(403, "No tienes permisos para validar este código.")


def _release_qr_code(client, qr: dict):
    """Undo a validation whose access log could not be written."""
    try:
        (
            client.table("qr_codes")
            .update({
                "visitor_name": qr.get("visitor_name"),
                "visitor_id": qr.get("visitor_id"),
                "document_photo_url": qr.get("document_photo_url"),
                "is_used": False,
                "status": qr.get("status") or QRCodeStatus.active.value,
                "validated_at": qr.get("validated_at"),
                "validated_by": qr.get("validated_by"),
            })
            .eq("id", qr["id"])
            .eq("is_used", True)
            .execute()
        )
        logger.warning(f"QR code {qr['id']} released after failed access log insert")
    except Exception as e:
        logger.error(f"Error releasing QR code {qr['id']}: {e}")


# -----------------------------------------------------
# POST: resident creates a visitor code (qr:create)
# -----------------------------------------------------
@router.post("", summary="Create visitor QR code")
def create_qr_code(
    payload: QRCodeCreate,
    current_user: CurrentUser = Depends(get_current_user),
):
    validate_uuid(payload.organization_id, "organización")
    client = get_supabase_client()
    store = SupabaseStore(client)

    if not store.has_permission(current_user.id, payload.organization_id, "qr:create"):
        raise HTTPException(403, "No tienes permisos para crear códigos QR en esta organización.")

    row = {
        "token": generate_token(),
        "organization_id": payload.organization_id,
        "created_by": current_user.id,
        "status": QRCodeStatus.active.value,
        "is_used": False,
        "expires_at": (utcnow() + timedelta(hours=settings.QR_CODE_TTL_HOURS)).isoformat(),
        "identifier": generate_identifier(),
        "notes": payload.notes.strip() if payload.notes and payload.notes.strip() else None,
    }

    try:
        result = client.table("qr_codes").insert(row).execute()
    except Exception as e:
        raise translate_store_error(e, "Error al crear el código QR.")

    qr = result.data[0]
    logger.info(f"QR code {qr['id']} created in {payload.organization_id} by {current_user.id}")
    return envelope(qr, "Enlace generado exitosamente.", status_code=201)


# -----------------------------------------------------
# GET: own codes, or pending codes for security staff
# -----------------------------------------------------
@router.get("", summary="List QR codes")
def list_qr_codes(
    organization_id: Optional[str] = Query(None),
    role: Optional[str] = Query(None, description="'security' lists the organization's pending codes"),
    current_user: CurrentUser = Depends(get_current_user),
):
    client = get_supabase_client()
    store = SupabaseStore(client)
    now = utcnow()

    if role == "security":
        if not organization_id:
            raise HTTPException(400, "ID de organización es requerido para usuarios de seguridad.")
        validate_uuid(organization_id, "organización")

        if not store.has_permission(current_user.id, organization_id, "qr:view_history"):
            raise HTTPException(403, "No tienes permisos para ver códigos QR de esta organización.")

        codes = (
            client.table("qr_codes")
            .select("id, identifier, created_by, created_at, expires_at")
            .eq("organization_id", organization_id)
            .eq("is_used", False)
            .eq("status", QRCodeStatus.active.value)
            .gt("expires_at", now.isoformat())
            .order("created_at", desc=True)
            .execute()
        ).data or []

        names = {uid: store.get_user_name(uid) for uid in {c["created_by"] for c in codes if c.get("created_by")}}
        for code in codes:
            code["created_by_name"] = names.get(code.get("created_by"))

        return envelope(codes, "Códigos QR pendientes obtenidos exitosamente.")

    query = (
        client.table("qr_codes")
        .select(QR_FIELDS)
        .eq("created_by", current_user.id)
    )
    if organization_id:
        validate_uuid(organization_id, "organización")
        query = query.eq("organization_id", organization_id)

    codes = query.order("created_at", desc=True).execute().data or []
    for code in codes:
        code["status"] = effective_status(code, now)

    return envelope(codes, "Códigos QR obtenidos exitosamente.")


# -----------------------------------------------------
# Validation (security; qr:validate)
# -----------------------------------------------------
@router.get("/validate/{token}", summary="Preview a QR code before validating")
def preview_qr_code(
    token: str,
    current_user: CurrentUser = Depends(get_current_user),
):
    client = get_supabase_client()
    qr = _get_by_token(client, token)
    _require_validator(SupabaseStore(client), current_user, qr["organization_id"])

    ensure_validatable(qr)
    qr["status"] = effective_status(qr)
    return envelope(qr, "Código QR válido.")


@router.post("/validate/{token}", summary="Validate a QR code at the gate")
def validate_qr_code(
    token: str,
    payload: QRCodeValidate,
    current_user: CurrentUser = Depends(get_current_user),
):
    """
    Single-use: the 'mark used' update only matches while is_used is false,
    so of two concurrent validations exactly one gets the row back and
    writes the access log. The other receives 409 and logs nothing.
    """
    clean = sanitize(payload.model_dump(exclude={"entry_type"}))
    visitor_name = clean.get("visitor_name")
    visitor_id = clean.get("visitor_id")
    document_photo_url = clean.get("document_photo_url")

    if not visitor_name:
        raise HTTPException(400, "El nombre del visitante es requerido.")
    if not visitor_id and not document_photo_url:
        raise HTTPException(400, "Debes proporcionar el número de documento o una foto del documento.")

    client = get_supabase_client()
    qr = _get_by_token(client, token)
    _require_validator(SupabaseStore(client), current_user, qr["organization_id"])
    ensure_validatable(qr)

    now = utcnow()
    try:
        updated = (
            client.table("qr_codes")
            .update({
                "visitor_name": visitor_name,
                "visitor_id": visitor_id,
                "document_photo_url": document_photo_url,
                "is_used": True,
                "status": QRCodeStatus.used.value,
                "validated_at": now.isoformat(),
                "validated_by": current_user.id,
            })
            .eq("id", qr["id"])
            .eq("is_used", False)
            .execute()
        )
    except Exception as e:
        raise translate_store_error(e, "Error al actualizar el código QR.")

    if not updated.data:
        logger.info(f"QR code {qr['id']} lost validation race to another scan")
        raise HTTPException(409, USED_MESSAGE)

    try:
        log = client.table("access_logs").insert({
            "qr_code_id": qr["id"],
            "scanned_by": current_user.id,
            "organization_id": qr["organization_id"],
            "entry_type": payload.entry_type.value,
            "timestamp": now.isoformat(),
            "notes": clean.get("notes"),
        }).execute()
    except Exception as e:
        _release_qr_code(client, qr)
        raise translate_store_error(e, "Error al registrar el acceso.")

    access_log = log.data[0] if log.data else None
    logger.info(f"QR code {qr['id']} validated by {current_user.id} ({payload.entry_type.value})")

    if access_log:
        notify_visitor_entry(updated.data[0], access_log)

    return envelope(
        {"qr_code": updated.data[0], "access_log": access_log},
        "Código QR validado exitosamente.",
    )


# -----------------------------------------------------
# Single code (creator only)
# -----------------------------------------------------
@router.get("/{qr_id}", summary="Get a QR code")
def get_qr_code(
    qr_id: str,
    current_user: CurrentUser = Depends(get_current_user),
):
    client = get_supabase_client()
    qr = _get_by_id(client, qr_id)

    if qr.get("created_by") != current_user.id and not SupabaseStore(client).has_permission(
        current_user.id, qr["organization_id"], "qr:view_history"
    ):
        raise HTTPException(404, "Código QR no encontrado.")

    qr["status"] = effective_status(qr)
    return envelope(qr, "Código QR obtenido exitosamente.")


@router.put("/{qr_id}", summary="Update or revoke a QR code")
def update_qr_code(
    qr_id: str,
    payload: QRCodeUpdate,
    current_user: CurrentUser = Depends(get_current_user),
):
    client = get_supabase_client()
    qr = _get_by_id(client, qr_id)
    _require_owner(qr, current_user)

    status = effective_status(qr)
    if status == QRCodeStatus.used.value:
        raise HTTPException(409, "Un código utilizado no puede modificarse.")

    update = {}
    if payload.notes is not None:
        update["notes"] = payload.notes.strip() or None
    if payload.status is not None:
        if payload.status != QRCodeStatus.revoked:
            raise HTTPException(400, "Solo se puede revocar un código QR.")
        if status != QRCodeStatus.active.value:
            raise HTTPException(410, "Este código ya no está activo.")
        update["status"] = QRCodeStatus.revoked.value

    if not update:
        raise HTTPException(400, "No hay cambios para guardar.")

    result = (
        client.table("qr_codes")
        .update(update)
        .eq("id", qr_id)
        .eq("is_used", False)
        .execute()
    )
    if not result.data:
        raise HTTPException(409, "Un código utilizado no puede modificarse.")

    logger.info(f"QR code {qr_id} updated by {current_user.id}: {sorted(update)}")
    return envelope(result.data[0], "Código QR actualizado exitosamente.")


@router.delete("/{qr_id}", summary="Delete an unused QR code")
def delete_qr_code(
    qr_id: str,
    current_user: CurrentUser = Depends(get_current_user),
):
    client = get_supabase_client()
    qr = _get_by_id(client, qr_id)
    _require_owner(qr, current_user)

    if effective_status(qr) == QRCodeStatus.used.value:
        raise HTTPException(409, "Un código utilizado no puede eliminarse.")

    result = (
        client.table("qr_codes")
        .delete()
        .eq("id", qr_id)
        .eq("is_used", False)
        .execute()
    )
    if not result.data:
        raise HTTPException(409, "Un código utilizado no puede eliminarse.")

    logger.info(f"QR code {qr_id} deleted by {current_user.id}")
    return envelope(None, "Código QR eliminado exitosamente.")


@router.get("/{qr_id}/access-logs", summary="Access log for a QR code")
def get_qr_code_access_logs(
    qr_id: str,
    current_user: CurrentUser = Depends(get_current_user),
):
    client = get_supabase_client()
    qr = _get_by_id(client, qr_id)

    if qr.get("created_by") != current_user.id and not SupabaseStore(client).has_permission(
        current_user.id, qr["organization_id"], "qr:view_history"
    ):
        raise HTTPException(404, "Código QR no encontrado.")

    logs = (
        client.table("access_logs")
        .select("*")
        .eq("qr_code_id", qr_id)
        .order("timestamp", desc=True)
        .execute()
    ).data or []

    return envelope(logs, "Registros de acceso obtenidos exitosamente.")
