# models/invitation.py

from typing import Optional
from pydantic import BaseModel, Field, EmailStr


class InvitationCreate(BaseModel):
    email: EmailStr
    role_id: int = Field(..., alias="roleId")
    first_name: Optional[str] = Field(None, alias="firstName", max_length=100)
    last_name: Optional[str] = Field(None, alias="lastName", max_length=100)

    model_config = {"populate_by_name": True}


class GeneralInviteLinkCreate(BaseModel):
    role_id: int = Field(..., alias="roleId")
    requires_approval: bool = Field(False, alias="requiresApproval")
    expires_in_days: Optional[int] = Field(None, alias="expiresInDays", ge=1, le=365)

    model_config = {"populate_by_name": True}


class GeneralInviteLinkAccept(BaseModel):
    """Logged-in join through a general invite link."""
    first_name: Optional[str] = Field(None, alias="firstName", max_length=100)

    model_config = {"populate_by_name": True}
