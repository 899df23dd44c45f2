# models/chat.py

from typing import Annotated, Literal, Optional, Union
from datetime import datetime
from pydantic import BaseModel, Field

from models.enums import ConversationStatus, ResolutionAction


# -----------------------------------------------------
# Conversations (tagged union)
# -----------------------------------------------------
class ConversationBase(BaseModel):
    id: str
    organization_id: str
    status: ConversationStatus = ConversationStatus.active
    archived_at: Optional[datetime] = None
    archived_by: Optional[str] = None
    created_at: Optional[datetime] = None


class UserConversation(ConversationBase):
    """Direct conversation between two members."""
    type: Literal["user"] = "user"
    user1_id: str
    user2_id: str

    def other_user(self, user_id: str) -> Optional[str]:
        if user_id == self.user1_id:
            return self.user2_id
        if user_id == self.user2_id:
            return self.user1_id
        return None


class RoleConversation(ConversationBase):
    """
    Conversation between one initiator and whoever holds `role_id`.
    The initiator is not necessarily a member of that role.
    """
    type: Literal["role"] = "role"
    initiator_id: str
    role_id: int


Conversation = Annotated[
    Union[UserConversation, RoleConversation],
    Field(discriminator="type"),
]


class MalformedConversation(ValueError):
    pass


def conversation_from_row(row: dict) -> Union[UserConversation, RoleConversation]:
    """
    Map a chat_conversations row onto its variant.
    Exactly one of user2_id / role_id must be set.
    """
    user2_id = row.get("user2_id")
    role_id = row.get("role_id")

    if (user2_id is None) == (role_id is None):
        raise MalformedConversation(
            f"Conversation {row.get('id')} must have exactly one of user2_id / role_id"
        )

    common = {
        "id": row["id"],
        "organization_id": row["organization_id"],
        "status": row.get("status") or ConversationStatus.active,
        "archived_at": row.get("archived_at"),
        "archived_by": row.get("archived_by"),
        "created_at": row.get("created_at"),
    }

    if role_id is not None:
        return RoleConversation(initiator_id=row["user1_id"], role_id=role_id, **common)
    return UserConversation(user1_id=row["user1_id"], user2_id=user2_id, **common)


# -----------------------------------------------------
# Messages
# -----------------------------------------------------
class MessageCreate(BaseModel):
    """
    Exactly one target:
      - recipientId: direct message to a member
      - roleId: start (or continue) a conversation with a role
      - conversationId: reply inside an existing role conversation
    """
    recipient_id: Optional[str] = Field(None, alias="recipientId")
    role_id: Optional[int] = Field(None, alias="roleId")
    conversation_id: Optional[str] = Field(None, alias="conversationId")
    content: Optional[str] = None

    model_config = {"populate_by_name": True}


# -----------------------------------------------------
# Permissions
# -----------------------------------------------------
class PermissionUpdate(BaseModel):
    sender_role_id: int = Field(..., alias="senderRoleId")
    recipient_role_id: int = Field(..., alias="recipientRoleId")
    disabled: bool
    is_role_to_role: bool = Field(False, alias="isRoleToRole")

    model_config = {"populate_by_name": True}


# -----------------------------------------------------
# Resolution workflow
# -----------------------------------------------------
class ResolutionRequestCreate(BaseModel):
    resolution_note: Optional[str] = Field(None, alias="resolutionNote", max_length=1000)

    model_config = {"populate_by_name": True}


class ResolutionDecision(BaseModel):
    request_id: str = Field(..., alias="requestId")
    action: ResolutionAction

    model_config = {"populate_by_name": True}
