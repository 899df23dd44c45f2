# core/errors.py

from typing import Dict, Optional

from fastapi import HTTPException

from core.logging_config import logger


# PostgREST / Postgres error codes the stored procedures and tables raise
UNIQUE_VIOLATION = "23505"
FOREIGN_KEY_VIOLATION = "23503"
INVALID_TEXT_REPRESENTATION = "22P02"
NO_ROWS = "PGRST116"
# Custom codes raised by our stored procedures (RAISE ... USING ERRCODE)
PROC_NOT_FOUND = "P0001"
PROC_EXPIRED = "P0002"
PROC_INVALID_STATE = "P0003"

DEFAULT_CODE_STATUS = {
    UNIQUE_VIOLATION: 409,
    FOREIGN_KEY_VIOLATION: 400,
    INVALID_TEXT_REPRESENTATION: 400,
    NO_ROWS: 404,
    PROC_NOT_FOUND: 404,
    PROC_EXPIRED: 410,
    PROC_INVALID_STATE: 400,
}

DEFAULT_CODE_MESSAGES = {
    UNIQUE_VIOLATION: "El registro ya existe.",
    FOREIGN_KEY_VIOLATION: "Referencia inválida.",
    INVALID_TEXT_REPRESENTATION: "El formato del ID no es válido.",
    NO_ROWS: "Recurso no encontrado.",
    PROC_NOT_FOUND: "Recurso no encontrado.",
    PROC_EXPIRED: "El recurso ha expirado.",
    PROC_INVALID_STATE: "El estado del recurso no es válido.",
}


def extract_supabase_error(error: Exception) -> str:
    """
    Safely extract readable details from Supabase Python client errors.
    Handles:
      • PostgREST errors
      • GoTrue (Auth) errors
      • Generic Python exceptions
    """

    # Case 1: PostgREST APIError / GoTrue errors
    message = getattr(error, "message", None)
    if message:
        return str(message)

    # Case 2: errors with args (common)
    if getattr(error, "args", None):
        return str(error.args[0])

    # Case 3: Plain string fallback
    return str(error) or "Unknown Supabase error"


def supabase_error_code(error: Exception) -> Optional[str]:
    """Vendor error code (e.g. '23505', 'PGRST116') or None."""
    code = getattr(error, "code", None)
    return str(code) if code else None


def translate_store_error(
    error: Exception,
    operation: str,
    messages: Optional[Dict[str, str]] = None,
    expose_message: bool = False,
    statuses: Optional[Dict[str, int]] = None,
) -> HTTPException:
    """
    Translate a data-store error into an HTTPException of the API taxonomy.
    Returns the exception (doesn't raise) so the caller can re-raise it.

    Args:
        error: The exception raised by the Supabase client
        operation: User-safe fallback message for unmatched codes
        messages: Per-code user-facing messages overriding the defaults
        expose_message: Surface the stored procedure's own message for
            matched codes (procedures raise user-facing Spanish text)
        statuses: Per-code status overrides (e.g. P0001 → 400 for workflow procedures)
    """
    code = supabase_error_code(error)
    detail = extract_supabase_error(error)
    messages = messages or {}
    status_map = {**DEFAULT_CODE_STATUS, **(statuses or {})}

    if code in status_map:
        logger.info(f"{operation}: store rejected with {code}: {detail}")
        if code in messages:
            message = messages[code]
        elif expose_message and detail:
            message = detail
        else:
            message = DEFAULT_CODE_MESSAGES.get(code, operation)
        return HTTPException(status_code=status_map[code], detail=message)

    logger.error(f"{operation}: {detail}", exc_info=error)
    return HTTPException(status_code=500, detail=operation)


