"""
Ticket Domain Entities
======================

Pure Python domain entities for the repair/return lifecycle.

Entities carry identity and the small amount of behaviour that keeps
their own invariants (append-only history, one-way escalation,
single feedback). Cross-entity rules live in the domain services.
"""

from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Optional, Tuple

from repairdesk.config import (
    CommentType,
    DeliveryMethod,
    ResolutionOption,
    Role,
    ServiceType,
    STAFF_ROLES,
    TERMINAL_STATUSES,
    TicketStatus,
    WarrantyStatus,
)


@dataclass(frozen=True)
class ActorContext:
    """Authenticated caller, supplied by the edge on every operation."""

    actor_id: str
    role: Role

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES

    @property
    def is_technician(self) -> bool:
        return self.role == Role.TECHNICIAN


@dataclass(frozen=True)
class ProductInfo:
    """The device the ticket is about."""

    serial_number: str
    model: str
    purchase_date: date
    device_type: str


@dataclass(frozen=True)
class IssueDetails:
    """Customer-reported problem."""

    category: str
    description: str
    photos: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ShippingAddress:
    """Where the courier collects and returns the device."""

    street: str
    city: str
    postal_code: str

    def __str__(self) -> str:
        return f"{self.street}, {self.city} {self.postal_code}"


@dataclass(frozen=True)
class HistoryEntry:
    """One audit-log line. Immutable once written."""

    action: str
    actor_id: str
    timestamp: datetime
    notes: Optional[str] = None


@dataclass(frozen=True)
class InternalComment:
    """Staff-only note attached to a ticket."""

    text: str
    comment_type: CommentType
    author_id: str
    created_at: datetime


@dataclass(frozen=True)
class Feedback:
    """Customer satisfaction rating for a completed ticket."""

    rating: int
    comment: Optional[str]
    submitted_at: datetime


@dataclass
class Technician:
    """Staff member performing repairs."""

    id: str
    full_name: str
    email: str
    specialty: str
    role: Role = Role.TECHNICIAN
    created_at: Optional[datetime] = None


@dataclass
class Ticket:
    """
    Ticket entity representing one repair or return case.

    ``history`` and ``internal_comments`` are tuples: every write produces a
    new tuple with the entry appended, so no caller can rewrite or share
    the log.
    """

    id: str
    ticket_number: str
    customer_id: str
    contact_name: str
    contact_email: str
    service_type: ServiceType
    product: ProductInfo
    issue: IssueDetails
    status: TicketStatus
    warranty_status: WarrantyStatus
    resolution_options: Tuple[ResolutionOption, ...]
    created_at: datetime
    updated_at: datetime

    assigned_technician_id: Optional[str] = None
    escalated: bool = False
    feedback: Optional[Feedback] = None
    history: Tuple[HistoryEntry, ...] = ()
    internal_comments: Tuple[InternalComment, ...] = ()
    delivery_method: DeliveryMethod = DeliveryMethod.COURIER
    shipping_address: Optional[ShippingAddress] = None
    contact_phone: Optional[str] = None

    def __post_init__(self):
        """Validate ticket on initialization."""
        if self.updated_at < self.created_at:
            raise ValueError("updated_at cannot be before created_at")

    @property
    def is_terminal(self) -> bool:
        """Completed and Cancelled accept no further status changes."""
        return self.status in TERMINAL_STATUSES

    def record(
        self,
        action: str,
        actor_id: str,
        notes: Optional[str] = None,
        timestamp: Optional[datetime] = None
    ) -> HistoryEntry:
        """Append a history entry and bump ``updated_at``."""
        entry = HistoryEntry(
            action=action,
            actor_id=actor_id,
            timestamp=timestamp or datetime.now(timezone.utc),
            notes=notes,
        )
        self.history = self.history + (entry,)
        self.updated_at = max(self.updated_at, entry.timestamp)
        return entry

    def add_comment(self, comment: InternalComment) -> None:
        self.internal_comments = self.internal_comments + (comment,)
        self.updated_at = max(self.updated_at, comment.created_at)

    def assign_to(
        self,
        technician: Technician,
        actor_id: str,
        action: str = "Technician Assigned",
        timestamp: Optional[datetime] = None
    ) -> None:
        """Point the ticket at ``technician`` and log the assignment."""
        previous = self.assigned_technician_id
        self.assigned_technician_id = technician.id
        notes = f"Assigned to {technician.full_name} ({technician.specialty})"
        if previous and previous != technician.id:
            notes += f", replacing {previous}"
        self.record(action, actor_id, notes, timestamp)

    def mark_escalated(
        self,
        actor_id: str,
        reason: Optional[str] = None,
        timestamp: Optional[datetime] = None
    ) -> bool:
        """Set the escalation flag. Returns False when it was already set."""
        if self.escalated:
            return False
        self.escalated = True
        self.record("Ticket Escalated", actor_id, reason, timestamp)
        return True

    def leave_feedback(
        self,
        rating: int,
        comment: Optional[str],
        timestamp: Optional[datetime] = None
    ) -> Feedback:
        if self.feedback is not None:
            raise ValueError("Feedback already submitted")
        self.feedback = Feedback(
            rating=rating,
            comment=comment,
            submitted_at=timestamp or datetime.now(timezone.utc),
        )
        self.updated_at = max(self.updated_at, self.feedback.submitted_at)
        return self.feedback

