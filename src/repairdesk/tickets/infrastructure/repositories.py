"""
Ticket Infrastructure Repositories
==================================

Concrete implementations of repository interfaces using SQLAlchemy.

Repositories hand out detached domain entities; ``save`` writes the
scalar fields back and inserts only the history and comment entries that
were appended since the ticket was loaded.
"""

from datetime import datetime, timezone
from typing import Iterable, List, Optional
from uuid import UUID

from sqlalchemy import and_, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from repairdesk.config import (
    CommentType,
    DeliveryMethod,
    ResolutionOption,
    Role,
    ServiceType,
    TicketStatus,
    WarrantyStatus,
)
from repairdesk.core import RepositoryException
from repairdesk.shared.infrastructure.logging import get_logger
from repairdesk.tickets.application import IStaffDirectory, ITicketRepository
from repairdesk.tickets.domain import (
    Feedback,
    HistoryEntry,
    InternalComment,
    IssueDetails,
    ProductInfo,
    ShippingAddress,
    Technician,
    Ticket,
)
from repairdesk.tickets.infrastructure.models import (
    InternalCommentModel,
    StaffMemberModel,
    TicketHistoryModel,
    TicketModel,
)

logger = get_logger(__name__)


def _parse_uuid(value: str) -> Optional[UUID]:
    try:
        return UUID(value)
    except (ValueError, TypeError):
        return None


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    """Drivers without timezone support hand back naive UTC values."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_domain(model: TicketModel) -> Ticket:
    """Convert ORM row (with children loaded) into a detached entity."""
    feedback = None
    if model.feedback_rating is not None:
        feedback = Feedback(
            rating=model.feedback_rating,
            comment=model.feedback_comment,
            submitted_at=_aware(model.feedback_submitted_at),
        )

    shipping_address = None
    if model.shipping_street is not None:
        shipping_address = ShippingAddress(
            street=model.shipping_street,
            city=model.shipping_city or "",
            postal_code=model.shipping_postal_code or "",
        )

    return Ticket(
        id=str(model.id),
        ticket_number=model.ticket_number,
        customer_id=model.customer_id,
        contact_name=model.contact_name,
        contact_email=model.contact_email,
        service_type=ServiceType(model.service_type),
        product=ProductInfo(
            serial_number=model.serial_number,
            model=model.model,
            purchase_date=model.purchase_date,
            device_type=model.device_type,
        ),
        issue=IssueDetails(
            category=model.issue_category,
            description=model.issue_description,
            photos=tuple(model.photos or ()),
        ),
        status=TicketStatus(model.status),
        warranty_status=WarrantyStatus(model.warranty_status),
        resolution_options=tuple(ResolutionOption(o) for o in model.resolution_options or ()),
        created_at=_aware(model.created_at),
        updated_at=_aware(model.updated_at),
        assigned_technician_id=model.assigned_technician_id,
        escalated=model.escalated,
        feedback=feedback,
        history=tuple(
            HistoryEntry(action=h.action, actor_id=h.actor_id, timestamp=_aware(h.timestamp), notes=h.notes)
            for h in model.history
        ),
        internal_comments=tuple(
            InternalComment(
                text=c.text,
                comment_type=CommentType(c.comment_type),
                author_id=c.author_id,
                created_at=_aware(c.created_at),
            )
            for c in model.internal_comments
        ),
        delivery_method=DeliveryMethod(model.delivery_method),
        shipping_address=shipping_address,
        contact_phone=model.contact_phone,
    )


def _apply_scalars(model: TicketModel, ticket: Ticket) -> None:
    model.status = ticket.status.value
    model.assigned_technician_id = ticket.assigned_technician_id
    model.escalated = ticket.escalated
    model.updated_at = ticket.updated_at
    if ticket.feedback is not None:
        model.feedback_rating = ticket.feedback.rating
        model.feedback_comment = ticket.feedback.comment
        model.feedback_submitted_at = ticket.feedback.submitted_at


def _append_children(model: TicketModel, ticket: Ticket) -> None:
    for position in range(len(model.history), len(ticket.history)):
        entry = ticket.history[position]
        model.history.append(TicketHistoryModel(
            position=position,
            action=entry.action,
            actor_id=entry.actor_id,
            timestamp=entry.timestamp,
            notes=entry.notes,
        ))
    for position in range(len(model.internal_comments), len(ticket.internal_comments)):
        comment = ticket.internal_comments[position]
        model.internal_comments.append(InternalCommentModel(
            position=position,
            text=comment.text,
            comment_type=comment.comment_type.value,
            author_id=comment.author_id,
            created_at=comment.created_at,
        ))


class SQLAlchemyTicketRepository(ITicketRepository):
    """
    SQLAlchemy implementation of ticket repository.

    Handles persistence of Ticket entities using async SQLAlchemy.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    def _select(self):
        return select(TicketModel).options(
            selectinload(TicketModel.history),
            selectinload(TicketModel.internal_comments),
        )

    async def _get_model(self, ticket_id: str) -> Optional[TicketModel]:
        ticket_uuid = _parse_uuid(ticket_id)
        if ticket_uuid is None:
            return None
        stmt = self._select().where(TicketModel.id == ticket_uuid)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_id(self, ticket_id: str) -> Optional[Ticket]:
        """Get ticket by internal ID."""
        model = await self._get_model(ticket_id)
        return _to_domain(model) if model else None

    async def create(self, ticket: Ticket) -> Ticket:
        """Create new ticket."""
        model = TicketModel(
            id=UUID(ticket.id),
            ticket_number=ticket.ticket_number,
            customer_id=ticket.customer_id,
            contact_name=ticket.contact_name,
            contact_email=ticket.contact_email,
            contact_phone=ticket.contact_phone,
            service_type=ticket.service_type.value,
            delivery_method=ticket.delivery_method.value,
            serial_number=ticket.product.serial_number,
            model=ticket.product.model,
            purchase_date=ticket.product.purchase_date,
            device_type=ticket.product.device_type,
            issue_category=ticket.issue.category,
            issue_description=ticket.issue.description,
            photos=list(ticket.issue.photos),
            warranty_status=ticket.warranty_status.value,
            resolution_options=[o.value for o in ticket.resolution_options],
            created_at=ticket.created_at,
            history=[],
            internal_comments=[],
        )
        if ticket.shipping_address is not None:
            model.shipping_street = ticket.shipping_address.street
            model.shipping_city = ticket.shipping_address.city
            model.shipping_postal_code = ticket.shipping_address.postal_code
        _apply_scalars(model, ticket)
        _append_children(model, ticket)

        self._session.add(model)
        try:
            await self._session.flush()
        except SQLAlchemyError as e:
            raise RepositoryException(
                f"Failed to create ticket {ticket.ticket_number}",
                {"error": str(e)}
            ) from e
        return ticket

    async def save(self, ticket: Ticket) -> Ticket:
        """Update existing ticket."""
        model = await self._get_model(ticket.id)
        if model is None:
            raise RepositoryException(f"Ticket {ticket.id} not found")

        _apply_scalars(model, ticket)
        _append_children(model, ticket)

        try:
            await self._session.flush()
        except SQLAlchemyError as e:
            raise RepositoryException(
                f"Failed to save ticket {ticket.ticket_number}",
                {"error": str(e)}
            ) from e
        return ticket

    async def count_active_by_assignee(
        self,
        technician_id: str,
        excluded_statuses: Iterable[str]
    ) -> int:
        """Count tickets assigned to a technician outside the excluded statuses."""
        stmt = select(func.count(TicketModel.id)).where(
            and_(
                TicketModel.assigned_technician_id == technician_id,
                TicketModel.status.not_in(list(excluded_statuses)),
            )
        )
        result = await self._session.execute(stmt)
        return result.scalar_one()

    async def list(
        self,
        filters: dict,
        limit: int = 100,
        offset: int = 0
    ) -> List[Ticket]:
        """List tickets with filters."""
        stmt = self._select()

        # Apply filters
        conditions = []
        if "customer_id" in filters:
            conditions.append(TicketModel.customer_id == filters["customer_id"])

        if "assigned_technician_id" in filters:
            conditions.append(TicketModel.assigned_technician_id == filters["assigned_technician_id"])

        if "status" in filters:
            status_list = filters["status"]
            if isinstance(status_list, list):
                conditions.append(TicketModel.status.in_(status_list))
            else:
                conditions.append(TicketModel.status == status_list)

        if "escalated" in filters:
            conditions.append(TicketModel.escalated == filters["escalated"])

        if conditions:
            stmt = stmt.where(and_(*conditions))

        # Newest first
        stmt = stmt.order_by(TicketModel.created_at.desc(), TicketModel.ticket_number.desc())
        stmt = stmt.limit(limit).offset(offset)

        result = await self._session.execute(stmt)
        return [_to_domain(m) for m in result.scalars().all()]

    async def list_with_feedback(self) -> List[Ticket]:
        """All tickets carrying customer feedback."""
        stmt = self._select().where(TicketModel.feedback_rating.is_not(None))
        result = await self._session.execute(stmt)
        return [_to_domain(m) for m in result.scalars().all()]

    async def commit(self) -> None:
        try:
            await self._session.commit()
        except SQLAlchemyError as e:
            await self._session.rollback()
            logger.error("Ticket commit failed", extra={"error": str(e)})
            raise RepositoryException("Failed to commit ticket changes", {"error": str(e)}) from e


class SQLAlchemyStaffRepository(IStaffDirectory):
    """Staff directory backed by the 'staff_members' table."""

    def __init__(self, session: AsyncSession):
        self._session = session

    @staticmethod
    def _to_domain(model: StaffMemberModel) -> Technician:
        return Technician(
            id=model.id,
            full_name=model.full_name,
            email=model.email,
            specialty=model.specialty,
            role=Role(model.role),
            created_at=_aware(model.created_at),
        )

    async def get_by_id(self, staff_id: str) -> Optional[Technician]:
        model = await self._session.get(StaffMemberModel, staff_id)
        return self._to_domain(model) if model else None

    async def find_by_role_and_specialty(self, role: Role, specialty: str) -> List[Technician]:
        stmt = (
            select(StaffMemberModel)
            .where(
                and_(
                    StaffMemberModel.role == role.value,
                    StaffMemberModel.specialty == specialty,
                )
            )
            .order_by(StaffMemberModel.created_at.asc(), StaffMemberModel.id.asc())
        )
        result = await self._session.execute(stmt)
        return [self._to_domain(m) for m in result.scalars().all()]

    async def add(self, member: Technician) -> Technician:
        """Insert a staff member (seeding and admin tooling)."""
        model = StaffMemberModel(
            id=member.id,
            full_name=member.full_name,
            email=member.email,
            role=member.role.value,
            specialty=member.specialty,
        )
        if member.created_at is not None:
            model.created_at = member.created_at
        self._session.add(model)
        await self._session.flush()
        return self._to_domain(model)
