"""
Ticket Infrastructure Models
============================

SQLAlchemy ORM models for the tickets module.

These are the database representations of our domain entities.
They belong in the infrastructure layer, not the domain layer.
"""

from datetime import date, datetime, timezone
from typing import List, Optional
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from repairdesk.infrastructure.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TicketModel(Base):
    """
    Database model for Ticket entity.

    Maps to the 'tickets' table. Product and issue details are flattened
    into columns; history and internal comments live in child tables.
    """
    __tablename__ = "tickets"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Display identifier
    ticket_number: Mapped[str] = mapped_column(String(32), unique=True, index=True, nullable=False)

    # Ownership and contact
    customer_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    contact_name: Mapped[str] = mapped_column(String(255), nullable=False)
    contact_email: Mapped[str] = mapped_column(String(255), nullable=False)
    contact_phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    # Logistics; address columns are null for store drop-off
    delivery_method: Mapped[str] = mapped_column(String(20), nullable=False, default="Courier")
    shipping_street: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    shipping_city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    shipping_postal_code: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    # Service request
    service_type: Mapped[str] = mapped_column(String(20), nullable=False)
    serial_number: Mapped[str] = mapped_column(String(255), nullable=False)
    model: Mapped[str] = mapped_column(String(255), nullable=False)
    purchase_date: Mapped[date] = mapped_column(Date, nullable=False)
    device_type: Mapped[str] = mapped_column(String(50), nullable=False)
    issue_category: Mapped[str] = mapped_column(String(255), nullable=False)
    issue_description: Mapped[str] = mapped_column(Text, nullable=False)
    photos: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)

    # Lifecycle
    status: Mapped[str] = mapped_column(String(50), index=True, nullable=False)
    warranty_status: Mapped[str] = mapped_column(String(50), nullable=False)
    resolution_options: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    assigned_technician_id: Mapped[Optional[str]] = mapped_column(String(64), index=True, nullable=True)
    escalated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Feedback (set once)
    feedback_rating: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    feedback_comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    feedback_submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    history: Mapped[List["TicketHistoryModel"]] = relationship(
        back_populates="ticket",
        order_by="TicketHistoryModel.position",
        cascade="all, delete-orphan",
    )
    internal_comments: Mapped[List["InternalCommentModel"]] = relationship(
        back_populates="ticket",
        order_by="InternalCommentModel.position",
        cascade="all, delete-orphan",
    )


class TicketHistoryModel(Base):
    """
    Append-only audit log rows.

    Maps to the 'ticket_history' table.
    """
    __tablename__ = "ticket_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ticket_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("tickets.id", ondelete="CASCADE"), index=True, nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)

    action: Mapped[str] = mapped_column(String(255), nullable=False)
    actor_id: Mapped[str] = mapped_column(String(64), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    ticket: Mapped[TicketModel] = relationship(back_populates="history")


class InternalCommentModel(Base):
    """
    Staff-only comments.

    Maps to the 'ticket_internal_comments' table.
    """
    __tablename__ = "ticket_internal_comments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ticket_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("tickets.id", ondelete="CASCADE"), index=True, nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)

    text: Mapped[str] = mapped_column(Text, nullable=False)
    comment_type: Mapped[str] = mapped_column(String(50), nullable=False)
    author_id: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    ticket: Mapped[TicketModel] = relationship(back_populates="internal_comments")


class StaffMemberModel(Base):
    """
    Database model for staff accounts referenced by tickets.

    Maps to the 'staff_members' table. Authentication lives upstream;
    only what assignment needs is stored here.
    """
    __tablename__ = "staff_members"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    role: Mapped[str] = mapped_column(String(20), index=True, nullable=False)
    specialty: Mapped[str] = mapped_column(String(50), index=True, nullable=False, default="Other")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
