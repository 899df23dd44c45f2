# models/__init__.py

from .enums import (
    RoleName,
    InvitationStatus,
    QRCodeStatus,
    EntryType,
    ConversationStatus,
    ResolutionStatus,
    ResolutionAction,
)
from .organization import (
    OrganizationCreate,
    OrganizationUpdate,
    MemberRoleUpdate,
)
from .invitation import (
    InvitationCreate,
    GeneralInviteLinkCreate,
    GeneralInviteLinkAccept,
)
from .qr_code import QRCodeCreate, QRCodeUpdate, QRCodeValidate
from .chat import (
    Conversation,
    UserConversation,
    RoleConversation,
    MalformedConversation,
    conversation_from_row,
    MessageCreate,
    PermissionUpdate,
    ResolutionRequestCreate,
    ResolutionDecision,
)
