"""Shared ticket, project, and role vocabularies."""

TICKET_STATUS_OPEN = "open"
TICKET_STATUS_IN_PROGRESS = "in_progress"
TICKET_STATUS_BLOCKED = "blocked"
TICKET_STATUS_RESOLVED = "resolved"
TICKET_STATUS_CLOSED = "closed"

TICKET_STATUSES = (
    TICKET_STATUS_OPEN,
    TICKET_STATUS_IN_PROGRESS,
    TICKET_STATUS_BLOCKED,
    TICKET_STATUS_RESOLVED,
    TICKET_STATUS_CLOSED,
)

TICKET_PRIORITIES = ("low", "medium", "high", "urgent")
DEFAULT_PRIORITY = "medium"

# Higher rank sorts first when manual sort order does not decide.
PRIORITY_RANK = {
    "urgent": 4,
    "high": 3,
    "medium": 2,
    "low": 1,
}

TICKET_TYPES = ("bug", "feature", "improvement", "question")
DEFAULT_TICKET_TYPE = "bug"

EVIDENCE_KINDS = ("link", "file")

# Manual ordering step; gaps leave room for later insertion.
SORT_ORDER_STEP = 10

FORMATTING_FLAGS = ("bold", "italic", "underline", "highlight", "allCaps")

ROLE_ADMIN = "Admin"
ROLE_UX = "UX Researcher"
ROLE_DEVELOPER = "Developer"
ROLE_CLIENT = "Client"

ORG_ROLES = (ROLE_ADMIN, ROLE_UX, ROLE_DEVELOPER, ROLE_CLIENT)

ROLE_DESCRIPTIONS = {
    ROLE_ADMIN: "Full access to the organization, its clients, projects and users",
    ROLE_UX: "Writes and formats tickets, manages manual ticket order",
    ROLE_DEVELOPER: "Works tickets and changes their status",
    ROLE_CLIENT: "External stakeholder limited to client-visible tickets",
}

MEMBER_ROLE_ADMIN = "admin"
MEMBER_ROLE_UX = "ux"
MEMBER_ROLE_DEV = "dev"
MEMBER_ROLE_CLIENT = "client"

MEMBER_ROLES = (MEMBER_ROLE_ADMIN, MEMBER_ROLE_UX, MEMBER_ROLE_DEV, MEMBER_ROLE_CLIENT)
ASSIGNABLE_MEMBER_ROLES = (MEMBER_ROLE_ADMIN, MEMBER_ROLE_DEV, MEMBER_ROLE_UX)

PROJECT_STATUSES = ("planning", "active", "on_hold", "completed", "cancelled")
CLIENT_BILLING_TYPES = ("hourly", "fixed", "retainer", "custom")
CLIENT_STATUSES = ("active", "inactive", "prospect")


def normalize_choice(value: str | None, default: str) -> str:
    """Return a lowercase choice value with a safe default."""

    return (value or default).strip().lower()


__all__ = [
    "ASSIGNABLE_MEMBER_ROLES",
    "CLIENT_BILLING_TYPES",
    "CLIENT_STATUSES",
    "DEFAULT_PRIORITY",
    "DEFAULT_TICKET_TYPE",
    "EVIDENCE_KINDS",
    "FORMATTING_FLAGS",
    "MEMBER_ROLES",
    "MEMBER_ROLE_ADMIN",
    "MEMBER_ROLE_CLIENT",
    "MEMBER_ROLE_DEV",
    "MEMBER_ROLE_UX",
    "ORG_ROLES",
    "PRIORITY_RANK",
    "PROJECT_STATUSES",
    "ROLE_ADMIN",
    "ROLE_CLIENT",
    "ROLE_DESCRIPTIONS",
    "ROLE_DEVELOPER",
    "ROLE_UX",
    "SORT_ORDER_STEP",
    "TICKET_PRIORITIES",
    "TICKET_STATUSES",
    "TICKET_STATUS_OPEN",
    "TICKET_TYPES",
    "normalize_choice",
]
