"""
Ticket Domain Layer
===================

Domain layer for the repair/return lifecycle.

Contains:
- Entities: Ticket, Technician and their owned records
- Value Objects: LifecyclePolicy, ServiceProfile, TransitionOutcome
- Domain Services: EligibilityEvaluator, StatusTransitionGuard

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from repairdesk.tickets.domain.entities import (
    ActorContext,
    Feedback,
    HistoryEntry,
    InternalComment,
    IssueDetails,
    ProductInfo,
    ShippingAddress,
    Technician,
    Ticket,
)
from repairdesk.tickets.domain.value_objects import (
    EligibilityEvaluator,
    LifecyclePolicy,
    ServiceProfile,
    TransitionOutcome,
)
from repairdesk.tickets.domain.transitions import (
    TRANSITIONS,
    StatusTransitionGuard,
)

__all__ = [
    # Entities
    "ActorContext",
    "Feedback",
    "HistoryEntry",
    "InternalComment",
    "IssueDetails",
    "ProductInfo",
    "ShippingAddress",
    "Technician",
    "Ticket",
    # Value Objects & Services
    "EligibilityEvaluator",
    "LifecyclePolicy",
    "ServiceProfile",
    "TransitionOutcome",
    "TRANSITIONS",
    "StatusTransitionGuard",
]
