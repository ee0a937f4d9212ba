"""
Ticket Infrastructure Layer
===========================

Infrastructure implementations for the ticket lifecycle:
- Models: SQLAlchemy ORM models
- Repositories: Data access layer
- External: SMTP and Slack notifiers, lifecycle policy watcher
"""

from repairdesk.tickets.infrastructure.models import (
    InternalCommentModel,
    StaffMemberModel,
    TicketHistoryModel,
    TicketModel,
)
from repairdesk.tickets.infrastructure.repositories import (
    SQLAlchemyStaffRepository,
    SQLAlchemyTicketRepository,
)
from repairdesk.tickets.infrastructure.external import (
    CircuitBreaker,
    EmailNotificationSender,
    PolicyConfigManager,
    SlackEscalationNotifier,
    build_status_email,
)

__all__ = [
    "InternalCommentModel",
    "StaffMemberModel",
    "TicketHistoryModel",
    "TicketModel",
    "SQLAlchemyStaffRepository",
    "SQLAlchemyTicketRepository",
    "CircuitBreaker",
    "EmailNotificationSender",
    "PolicyConfigManager",
    "SlackEscalationNotifier",
    "build_status_email",
]
