# core/utils.py

import secrets
import uuid
from datetime import datetime, timezone
from typing import Optional

from fastapi import HTTPException


def sanitize(data: dict) -> dict:
    """
    Sanitize dictionary data:
    - Empty strings → None
    - Preserve booleans, None values
    - Strip string whitespace
    """
    clean = {}

    for k, v in data.items():
        # Preserve None / booleans
        if v is None or isinstance(v, bool):
            clean[k] = v
            continue

        # Empty string → None
        if isinstance(v, str):
            stripped = v.strip()
            clean[k] = stripped if stripped else None
            continue

        # For other types, keep as-is
        clean[k] = v

    return clean


# -----------------------------------------------------
# Tokens & identifiers
# -----------------------------------------------------
def generate_token() -> str:
    """URL-safe random token for QR codes, invitations and invite links."""
    return secrets.token_urlsafe(32)


SUPERPOWERS = [
    "flying", "invisible", "super-strong", "telepathic", "telekinetic",
    "electric", "fire", "ice", "shadow", "lightning",
    "magnetic", "time-traveling", "shape-shifting", "mind-reading", "super-fast",
    "indestructible", "teleporting", "x-ray", "water", "wind",
]

ANIMALS = [
    "monkey", "eagle", "tiger", "lion", "wolf",
    "bear", "shark", "dolphin", "elephant", "panther",
    "hawk", "fox", "jaguar", "cobra", "phoenix",
    "dragon", "falcon", "raven", "leopard", "cheetah",
]


def generate_identifier() -> str:
    """
    Human-friendly visitor code identifier, e.g. "flying monkey".
    Security staff read it aloud at the gate; it is not unique.
    """
    return f"{secrets.choice(SUPERPOWERS)} {secrets.choice(ANIMALS)}"


# -----------------------------------------------------
# Names
# -----------------------------------------------------
def normalize_name(name: Optional[str]) -> Optional[str]:
    """Collapse whitespace and capitalize each word ("  ana  maría" → "Ana María")."""
    if not name or not isinstance(name, str):
        return None
    words = name.split()
    if not words:
        return None
    return " ".join(w[:1].upper() + w[1:].lower() for w in words)


def normalize_full_name(first_name: Optional[str], last_name: Optional[str]) -> Optional[str]:
    parts = [p for p in (normalize_name(first_name), normalize_name(last_name)) if p]
    return " ".join(parts) if parts else None


# -----------------------------------------------------
# Validation
# -----------------------------------------------------
def is_valid_uuid(value) -> bool:
    if not value or not isinstance(value, str):
        return False
    try:
        uuid.UUID(value)
        return True
    except ValueError:
        return False


def validate_uuid(value, field: str = "organización") -> str:
    """Raise 400 when `value` is not a UUID; returns the value unchanged."""
    if not is_valid_uuid(value):
        raise HTTPException(
            status_code=400,
            detail=(
                f"ID de {field} inválido. El formato del ID no es válido. "
                "Por favor, verifica el enlace o contacta al administrador."
            ),
        )
    return value


# -----------------------------------------------------
# Time
# -----------------------------------------------------
def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value) -> Optional[datetime]:
    """Parse a PostgREST timestamp (ISO 8601, possibly with 'Z'). Naive values are treated as UTC."""
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def is_expired(expires_at, now: Optional[datetime] = None) -> bool:
    """Expiry is derived from the timestamp, never stored."""
    expires = parse_timestamp(expires_at)
    if expires is None:
        return False
    return (now or utcnow()) > expires
