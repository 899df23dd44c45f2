from typing import Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel
from supabase import Client

from core.supabase_client import get_supabase_client
from core.utils import normalize_full_name


UNAUTHENTICATED_MESSAGE = "No estás autenticado. Por favor, inicia sesión."

bearer_scheme = HTTPBearer(auto_error=False)


# ============================================================
# Current User Model
# Organization role/permissions are per organization and are
# resolved by core.organization_access, not carried here.
# ============================================================
class CurrentUser(BaseModel):
    id: str                         # Supabase Auth UID
    email: Optional[str] = None
    full_name: Optional[str] = None


# ============================================================
# AUTH DECODING (Supabase: validates JWT via GoTrue)
# ============================================================
def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> CurrentUser:

    unauthorized = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=UNAUTHENTICATED_MESSAGE,
        headers={"WWW-Authenticate": "Bearer"},
    )

    if not credentials or not credentials.credentials:
        raise unauthorized

    client: Client = get_supabase_client()
    if not client:
        raise HTTPException(500, "Supabase client not configured")

    # ---------------------------------------------------------
    # Validate JWT via Supabase GoTrue
    # ---------------------------------------------------------
    try:
        auth_resp = client.auth.get_user(credentials.credentials)
        if not auth_resp or not auth_resp.user:
            raise unauthorized
        auth_user = auth_resp.user
    except HTTPException:
        raise
    except Exception:
        raise unauthorized

    metadata = auth_user.user_metadata or {}
    full_name = metadata.get("full_name") or normalize_full_name(
        metadata.get("first_name"), metadata.get("last_name")
    )

    return CurrentUser(
        id=auth_user.id,
        email=auth_user.email,
        full_name=full_name,
    )


# ============================================================
# OPTIONAL AUTHENTICATION (for hybrid endpoints)
# ============================================================
def get_optional_auth(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[CurrentUser]:
    """
    Returns CurrentUser if a valid token is provided, None otherwise.
    Does not raise when the token is missing or invalid.
    """
    if not credentials:
        return None

    try:
        return get_current_user(credentials)
    except HTTPException:
        return None
