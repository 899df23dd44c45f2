from enum import Enum


class BaseStrEnum(str, Enum):
    """
    Base enum that serializes cleanly to a string
    and provides a .list() method for UI dropdowns.
    """

    def __str__(self):
        return str(self.value)

    @classmethod
    def list(cls):
        return [item.value for item in cls]


# -----------------------------------------------------
# ORGANIZATION ROLE
# -----------------------------------------------------
class RoleName(BaseStrEnum):
    """Roles of the residential organization type."""

    admin = "admin"
    resident = "resident"
    security = "security"


# -----------------------------------------------------
# INVITATION STATUS
# -----------------------------------------------------
class InvitationStatus(BaseStrEnum):
    """
    pending → accepted | cancelled
    pending_approval → accepted | rejected
    Never transitions backward. Expiry is derived, not stored.
    """

    pending = "pending"
    pending_approval = "pending_approval"
    accepted = "accepted"
    cancelled = "cancelled"
    rejected = "rejected"


# -----------------------------------------------------
# QR CODE STATUS
# -----------------------------------------------------
class QRCodeStatus(BaseStrEnum):
    """active → used | expired | revoked (all terminal)."""

    active = "active"
    used = "used"
    expired = "expired"
    revoked = "revoked"


class EntryType(BaseStrEnum):
    entry = "entry"
    exit = "exit"


# -----------------------------------------------------
# CHAT
# -----------------------------------------------------
class ConversationStatus(BaseStrEnum):
    """active → resolved → archived (terminal)."""

    active = "active"
    resolved = "resolved"
    archived = "archived"


class ResolutionStatus(BaseStrEnum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class ResolutionAction(BaseStrEnum):
    approve = "approve"
    reject = "reject"
