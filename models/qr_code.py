# models/qr_code.py

from typing import Optional
from pydantic import BaseModel, Field

from models.enums import EntryType, QRCodeStatus


class QRCodeCreate(BaseModel):
    organization_id: str = Field(..., description="Organization the visitor is invited to")
    notes: Optional[str] = Field(None, max_length=500)


class QRCodeUpdate(BaseModel):
    """Residents can annotate or revoke an unused code."""
    notes: Optional[str] = Field(None, max_length=500)
    status: Optional[QRCodeStatus] = Field(None, description="Only 'revoked' is accepted")


class QRCodeValidate(BaseModel):
    visitor_name: Optional[str] = None
    visitor_id: Optional[str] = None
    document_photo_url: Optional[str] = None
    entry_type: EntryType = EntryType.entry
    notes: Optional[str] = Field(None, max_length=500)
