"""
Ticket Controllers (API Routes)
===============================

FastAPI routes for the repair/return ticket lifecycle.

Controllers are thin - they delegate to application services. The
caller's identity arrives in ``X-Actor-Id`` / ``X-Actor-Role`` headers set
by the authentication gateway in front of this service.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from repairdesk.config import CommentType, Role, TicketStatus
from repairdesk.infrastructure.database import get_session
from repairdesk.shared.infrastructure.logging import get_logger
from repairdesk.tickets.application import (
    AllowedTransitionsResponse,
    AssignTechnicianDTO,
    CommentCreateDTO,
    EscalateDTO,
    FeedbackCreateDTO,
    FeedbackKPIResponse,
    StaticPolicyProvider,
    StatusUpdateDTO,
    TicketCreateDTO,
    TicketLifecycleService,
    TicketListResponse,
    TicketQueryService,
    TicketResponse,
)
from repairdesk.tickets.application.dto import TicketStatusStr
from repairdesk.tickets.domain import ActorContext
from repairdesk.tickets.infrastructure import (
    SQLAlchemyStaffRepository,
    SQLAlchemyTicketRepository,
)

logger = get_logger(__name__)
router = APIRouter(prefix="/tickets", tags=["Tickets"])


# ========== Example payloads for Swagger ==========

TICKET_CREATE_EXAMPLE = {
    "service_type": "Repair",
    "serial_number": "SN-4471-XK",
    "model": "ThinkPad X1 Carbon",
    "purchase_date": "2024-03-10",
    "device_type": "Laptop",
    "category": "Hardware",
    "description": "Screen flickers after waking from sleep.",
    "photos": [],
    "contact_name": "Dana Reyes",
    "contact_email": "dana@example.com"
}


# ========== Dependencies ==========

async def get_actor(
    actor_id: Optional[str] = Header(None, alias="X-Actor-Id"),
    actor_role: Optional[str] = Header(None, alias="X-Actor-Role")
) -> ActorContext:
    """Build the actor context from gateway headers."""
    if not actor_id or not actor_role:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing actor headers"
        )
    try:
        role = Role(actor_role)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Unknown actor role: {actor_role}"
        )
    return ActorContext(actor_id=actor_id, role=role)


async def get_lifecycle_service(
    request: Request,
    session: AsyncSession = Depends(get_session)
) -> TicketLifecycleService:
    """Get lifecycle service wired to the app-wide locks and notifiers."""
    state = request.app.state
    return TicketLifecycleService(
        ticket_repository=SQLAlchemyTicketRepository(session),
        staff_directory=SQLAlchemyStaffRepository(session),
        policy_provider=getattr(state, "policy_provider", None) or StaticPolicyProvider(),
        ticket_locks=state.ticket_locks,
        dispatcher=state.dispatcher,
        notifier=getattr(state, "notifier", None),
        escalation_notifier=getattr(state, "escalation_notifier", None),
        assignment_lock=getattr(state, "assignment_lock", None),
    )


async def get_query_service(
    session: AsyncSession = Depends(get_session)
) -> TicketQueryService:
    """Get read-side ticket service."""
    return TicketQueryService(SQLAlchemyTicketRepository(session))


def _render(ticket, actor: ActorContext) -> TicketResponse:
    return TicketResponse.from_domain(ticket, include_internal=actor.is_staff)


def _render_list(tickets, actor: ActorContext) -> TicketListResponse:
    return TicketListResponse(
        tickets=[_render(t, actor) for t in tickets],
        total_count=len(tickets)
    )


# ========== Route Handlers ==========

@router.post(
    "",
    response_model=TicketResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit a repair or return request",
    description="""
    Create a ticket. Eligibility is evaluated from the purchase date:

    - **Repair**: under warranty up to 24 calendar months; the ticket starts
      as `Submitted` and is auto-assigned to a technician with capacity.
    - **Return**: accepted up to 15 days after purchase; the ticket starts
      as `Pending Validation`, unassigned. Later returns are rejected with 422.
    """,
    responses={
        201: {"description": "Ticket created"},
        422: {"description": "Validation failed or return period expired"}
    },
    openapi_extra={"requestBody": {"content": {"application/json": {"example": TICKET_CREATE_EXAMPLE}}}}
)
async def create_ticket(
    payload: TicketCreateDTO,
    actor: ActorContext = Depends(get_actor),
    service: TicketLifecycleService = Depends(get_lifecycle_service)
):
    ticket = await service.create_ticket(payload, actor)
    return _render(ticket, actor)


@router.get(
    "",
    response_model=TicketListResponse,
    summary="List my tickets",
    description="Tickets owned by the calling customer, newest first."
)
async def list_my_tickets(
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    actor: ActorContext = Depends(get_actor),
    service: TicketQueryService = Depends(get_query_service)
):
    tickets = await service.list_my_tickets(actor, limit=limit, offset=offset)
    return _render_list(tickets, actor)


@router.get(
    "/assigned",
    response_model=TicketListResponse,
    summary="List tickets assigned to me",
    description="Technician work queue, newest first."
)
async def list_assigned_tickets(
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    actor: ActorContext = Depends(get_actor),
    service: TicketQueryService = Depends(get_query_service)
):
    tickets = await service.list_assigned_tickets(actor, limit=limit, offset=offset)
    return _render_list(tickets, actor)


@router.get(
    "/all",
    response_model=TicketListResponse,
    summary="List all tickets (staff)",
    description="All tickets, optionally filtered by status or escalation flag."
)
async def list_all_tickets(
    status_filter: Optional[TicketStatusStr] = Query(None, alias="status"),
    escalated: Optional[bool] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    actor: ActorContext = Depends(get_actor),
    service: TicketQueryService = Depends(get_query_service)
):
    tickets = await service.list_tickets(
        actor,
        status=TicketStatus(status_filter) if status_filter else None,
        escalated=escalated,
        limit=limit,
        offset=offset
    )
    return _render_list(tickets, actor)


@router.get(
    "/analytics/kpi",
    response_model=FeedbackKPIResponse,
    summary="Customer feedback KPIs",
    description="Average rating, distribution and satisfaction rate. Managers and admins only."
)
async def feedback_kpis(
    actor: ActorContext = Depends(get_actor),
    service: TicketQueryService = Depends(get_query_service)
):
    return await service.feedback_kpis(actor)


@router.get(
    "/{ticket_id}",
    response_model=TicketResponse,
    summary="Get ticket",
    responses={404: {"description": "Ticket not found"}}
)
async def get_ticket(
    ticket_id: str,
    actor: ActorContext = Depends(get_actor),
    service: TicketQueryService = Depends(get_query_service)
):
    ticket = await service.get_ticket(ticket_id, actor)
    return _render(ticket, actor)


@router.get(
    "/{ticket_id}/transitions",
    response_model=AllowedTransitionsResponse,
    summary="Statuses the caller may set next"
)
async def get_allowed_transitions(
    ticket_id: str,
    actor: ActorContext = Depends(get_actor),
    service: TicketQueryService = Depends(get_query_service)
):
    ticket = await service.get_ticket(ticket_id, actor)
    allowed = await service.allowed_transitions(ticket_id, actor)
    return AllowedTransitionsResponse(
        ticket_id=ticket.id,
        current_status=ticket.status.value,
        allowed_statuses=[s.value for s in allowed]
    )


@router.patch(
    "/{ticket_id}/status",
    response_model=TicketResponse,
    summary="Change ticket status",
    description="""
    Technicians follow the lifecycle table and may only update tickets assigned
    to them. Employees, managers and admins may set any non-terminal ticket to
    any status. Completed and Cancelled tickets are final.
    """,
    responses={
        403: {"description": "Actor may not change this ticket"},
        409: {"description": "Transition not allowed; body lists allowed statuses"}
    }
)
async def update_status(
    ticket_id: str,
    payload: StatusUpdateDTO,
    actor: ActorContext = Depends(get_actor),
    service: TicketLifecycleService = Depends(get_lifecycle_service)
):
    ticket = await service.update_status(
        ticket_id, TicketStatus(payload.status), actor, notes=payload.notes
    )
    return _render(ticket, actor)


@router.patch(
    "/{ticket_id}/assign",
    response_model=TicketResponse,
    summary="Assign a technician manually"
)
async def assign_technician(
    ticket_id: str,
    payload: AssignTechnicianDTO,
    actor: ActorContext = Depends(get_actor),
    service: TicketLifecycleService = Depends(get_lifecycle_service)
):
    ticket = await service.assign_technician(ticket_id, payload.technician_id, actor)
    return _render(ticket, actor)


@router.post(
    "/{ticket_id}/internal-comments",
    response_model=TicketResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add an internal staff comment"
)
async def add_internal_comment(
    ticket_id: str,
    payload: CommentCreateDTO,
    actor: ActorContext = Depends(get_actor),
    service: TicketLifecycleService = Depends(get_lifecycle_service)
):
    ticket = await service.add_comment(ticket_id, payload.text, CommentType(payload.type), actor)
    return _render(ticket, actor)


@router.post(
    "/{ticket_id}/feedback",
    response_model=TicketResponse,
    summary="Rate a completed ticket"
)
async def submit_feedback(
    ticket_id: str,
    payload: FeedbackCreateDTO,
    actor: ActorContext = Depends(get_actor),
    service: TicketLifecycleService = Depends(get_lifecycle_service)
):
    ticket = await service.submit_feedback(ticket_id, payload.rating, payload.comment, actor)
    return _render(ticket, actor)


@router.post(
    "/{ticket_id}/escalate",
    response_model=TicketResponse,
    summary="Escalate a ticket"
)
async def escalate_ticket(
    ticket_id: str,
    payload: Optional[EscalateDTO] = None,
    actor: ActorContext = Depends(get_actor),
    service: TicketLifecycleService = Depends(get_lifecycle_service)
):
    ticket = await service.escalate(ticket_id, actor, reason=payload.reason if payload else None)
    return _render(ticket, actor)


# Export router
tickets_router = router
