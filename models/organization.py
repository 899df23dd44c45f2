# models/organization.py

from typing import Optional
from pydantic import BaseModel, Field


class OrganizationCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=100, description="Organization (building) name")
    organization_type: Optional[str] = Field(
        None, description="Organization type name (defaults to residential)"
    )


class OrganizationUpdate(BaseModel):
    """Only the name can change; the type is fixed at creation."""
    name: str = Field(..., min_length=2, max_length=100)


class MemberRoleUpdate(BaseModel):
    user_id: str = Field(..., alias="userId")
    role_id: int = Field(..., alias="roleId")

    model_config = {"populate_by_name": True}
