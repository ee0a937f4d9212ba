"""
Ticket Application Layer
========================

Application layer for the repair/return lifecycle.

Contains:
- Services: Orchestrate lifecycle rules and coordinate with repositories
- DTOs: Data transfer objects for API serialization

This layer depends on the domain layer and repository interfaces,
but not on concrete infrastructure implementations.
"""

from repairdesk.tickets.application.dto import (
    AllowedTransitionsResponse,
    AssignTechnicianDTO,
    CommentCreateDTO,
    EscalateDTO,
    FeedbackCreateDTO,
    FeedbackKPIResponse,
    StatusUpdateDTO,
    TicketCreateDTO,
    TicketListResponse,
    TicketResponse,
)
from repairdesk.tickets.application.services import (
    AssignmentPlanner,
    BackgroundDispatcher,
    IEscalationNotifier,
    INotificationSender,
    IPolicyProvider,
    IStaffDirectory,
    ITicketRepository,
    StaticPolicyProvider,
    TicketLifecycleService,
    TicketQueryService,
)

__all__ = [
    # DTOs
    "AllowedTransitionsResponse",
    "AssignTechnicianDTO",
    "CommentCreateDTO",
    "EscalateDTO",
    "FeedbackCreateDTO",
    "FeedbackKPIResponse",
    "StatusUpdateDTO",
    "TicketCreateDTO",
    "TicketListResponse",
    "TicketResponse",
    # Services
    "AssignmentPlanner",
    "BackgroundDispatcher",
    "StaticPolicyProvider",
    "TicketLifecycleService",
    "TicketQueryService",
    # Interfaces
    "IEscalationNotifier",
    "INotificationSender",
    "IPolicyProvider",
    "IStaffDirectory",
    "ITicketRepository",
]
