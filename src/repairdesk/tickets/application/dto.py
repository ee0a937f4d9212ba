"""
Ticket Application DTOs
=======================

Data Transfer Objects for the ticket API layer.

These Pydantic models handle serialization/deserialization and validation
for API requests and responses.
"""

from datetime import date, datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, StrictInt

from repairdesk.tickets.domain import Ticket


# ========== Type Aliases for Literals ==========
ServiceTypeStr = Literal["Repair", "Return"]
DeviceTypeStr = Literal["Smartphone", "Laptop", "TV", "Other"]
TicketStatusStr = Literal[
    "Submitted", "Pending Validation", "In Progress", "Waiting for Parts",
    "Shipping", "Ready for Pickup", "Shipped Back", "Completed", "Cancelled"
]
CommentTypeStr = Literal["Note", "Waiting for Parts", "Escalation", "SLA Risk"]
DeliveryMethodStr = Literal["Courier", "Drop-off"]


# ========== Request DTOs ==========

class TicketCreateDTO(BaseModel):
    """Customer submission for a repair or return."""
    service_type: ServiceTypeStr = Field(..., description="Repair or Return")
    serial_number: str = Field(..., min_length=1, description="Device serial number")
    model: str = Field(..., min_length=1, description="Device model")
    purchase_date: date = Field(..., description="Date of purchase")
    device_type: DeviceTypeStr = Field(..., description="Device type")
    category: str = Field(..., min_length=1, description="Issue category")
    description: str = Field(..., min_length=1, description="Issue description")
    photos: List[str] = Field(default_factory=list, description="Stored photo references")
    contact_name: str = Field(..., min_length=1, description="Name for status updates")
    contact_email: str = Field(..., min_length=3, description="Email for status updates")
    contact_phone: Optional[str] = Field(None, max_length=32, description="Phone for courier coordination")
    delivery_method: DeliveryMethodStr = Field(default="Courier", description="Courier pickup or store drop-off")
    address: Optional[str] = Field(None, max_length=255, description="Street address, required for courier")
    city: Optional[str] = Field(None, max_length=100, description="City, required for courier")
    postal_code: Optional[str] = Field(None, max_length=20, description="Postal code, required for courier")
    customer_id: Optional[str] = Field(
        None,
        description="Owning customer when staff file on a customer's behalf"
    )


class StatusUpdateDTO(BaseModel):
    """Requested status change."""
    status: TicketStatusStr
    notes: Optional[str] = Field(None, max_length=2000)


class AssignTechnicianDTO(BaseModel):
    """Manual technician assignment."""
    technician_id: str = Field(..., min_length=1)


class CommentCreateDTO(BaseModel):
    """Internal staff comment."""
    text: str = Field(..., min_length=1, max_length=5000)
    type: CommentTypeStr = Field(default="Note")


class FeedbackCreateDTO(BaseModel):
    """Customer satisfaction feedback."""
    rating: StrictInt = Field(..., description="Integer rating 1-5; booleans, strings and floats are rejected")
    comment: Optional[str] = Field(None, max_length=2000)


class EscalateDTO(BaseModel):
    """Optional escalation reason."""
    reason: Optional[str] = Field(None, max_length=2000)


# ========== Response DTOs ==========

class ProductResponse(BaseModel):
    serial_number: str
    model: str
    purchase_date: date
    device_type: str


class IssueResponse(BaseModel):
    category: str
    description: str
    photos: List[str] = Field(default_factory=list)


class ShippingAddressResponse(BaseModel):
    street: str
    city: str
    postal_code: str


class HistoryEntryResponse(BaseModel):
    action: str
    actor_id: str
    timestamp: datetime
    notes: Optional[str] = None


class CommentResponse(BaseModel):
    text: str
    type: CommentTypeStr
    author_id: str
    created_at: datetime


class FeedbackResponse(BaseModel):
    rating: int
    comment: Optional[str] = None
    submitted_at: datetime


class TicketResponse(BaseModel):
    """Full ticket view returned by every lifecycle operation."""
    id: str = Field(..., description="Internal ticket UUID")
    ticket_number: str = Field(..., description="Display ticket number")
    customer_id: str
    contact_name: str
    contact_email: str
    contact_phone: Optional[str] = None
    service_type: ServiceTypeStr
    delivery_method: DeliveryMethodStr
    shipping_address: Optional[ShippingAddressResponse] = None
    product: ProductResponse
    issue: IssueResponse
    status: TicketStatusStr
    warranty_status: str
    resolution_options: List[str]
    assigned_technician_id: Optional[str] = None
    escalated: bool = False
    feedback: Optional[FeedbackResponse] = None
    history: List[HistoryEntryResponse] = Field(default_factory=list)
    internal_comments: List[CommentResponse] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, ticket: Ticket, include_internal: bool = True) -> "TicketResponse":
        """Create from domain entity. Customers never see internal comments."""
        return cls(
            id=ticket.id,
            ticket_number=ticket.ticket_number,
            customer_id=ticket.customer_id,
            contact_name=ticket.contact_name,
            contact_email=ticket.contact_email,
            contact_phone=ticket.contact_phone,
            service_type=ticket.service_type.value,
            delivery_method=ticket.delivery_method.value,
            shipping_address=ShippingAddressResponse(
                street=ticket.shipping_address.street,
                city=ticket.shipping_address.city,
                postal_code=ticket.shipping_address.postal_code,
            ) if ticket.shipping_address else None,
            product=ProductResponse(
                serial_number=ticket.product.serial_number,
                model=ticket.product.model,
                purchase_date=ticket.product.purchase_date,
                device_type=ticket.product.device_type,
            ),
            issue=IssueResponse(
                category=ticket.issue.category,
                description=ticket.issue.description,
                photos=list(ticket.issue.photos),
            ),
            status=ticket.status.value,
            warranty_status=ticket.warranty_status.value,
            resolution_options=[o.value for o in ticket.resolution_options],
            assigned_technician_id=ticket.assigned_technician_id,
            escalated=ticket.escalated,
            feedback=FeedbackResponse(
                rating=ticket.feedback.rating,
                comment=ticket.feedback.comment,
                submitted_at=ticket.feedback.submitted_at,
            ) if ticket.feedback else None,
            history=[
                HistoryEntryResponse(
                    action=h.action,
                    actor_id=h.actor_id,
                    timestamp=h.timestamp,
                    notes=h.notes,
                )
                for h in ticket.history
            ],
            internal_comments=[
                CommentResponse(
                    text=c.text,
                    type=c.comment_type.value,
                    author_id=c.author_id,
                    created_at=c.created_at,
                )
                for c in ticket.internal_comments
            ] if include_internal else [],
            created_at=ticket.created_at,
            updated_at=ticket.updated_at,
        )


class TicketListResponse(BaseModel):
    tickets: List[TicketResponse]
    total_count: int


class AllowedTransitionsResponse(BaseModel):
    ticket_id: str
    current_status: TicketStatusStr
    allowed_statuses: List[TicketStatusStr]


class FeedbackKPIResponse(BaseModel):
    """Customer satisfaction summary for managers."""
    total_feedback: int = Field(..., description="Tickets with feedback")
    average_rating: float = Field(..., description="Mean rating, 0 when no feedback")
    rating_distribution: Dict[int, int] = Field(..., description="Count per rating 1-5")
    satisfaction_rate: float = Field(..., description="Percentage of ratings >= 4")
