"""
Ticket Application Services
===========================

Application services orchestrate the lifecycle rules and coordinate between
domain entities, repositories and notifiers.

Following SOLID principles:
- Single Responsibility: planner, lifecycle writes and queries are separate
- Dependency Inversion: depend on repository/notifier abstractions
"""

import asyncio
import time
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Iterable, List, Optional, Set

from repairdesk.config import (
    ANALYTICS_ROLES,
    ASSIGNER_ROLES,
    CommentType,
    DeliveryMethod,
    Role,
    ServiceType,
    SUBMITTER_ROLES,
    TicketStatus,
    WarrantyStatus,
    WORKLOAD_EXCLUDED_STATUSES,
)
from repairdesk.core import (
    AuthorizationException,
    InvalidTransitionException,
    PolicyBlockedException,
    ResourceNotFoundException,
    ValidationException,
)
from repairdesk.shared.infrastructure.concurrency import KeyedLock
from repairdesk.shared.infrastructure.logging import get_logger, log_latency
from repairdesk.tickets.application.dto import FeedbackKPIResponse, TicketCreateDTO
from repairdesk.tickets.domain import (
    ActorContext,
    EligibilityEvaluator,
    InternalComment,
    IssueDetails,
    LifecyclePolicy,
    ProductInfo,
    ServiceProfile,
    ShippingAddress,
    StatusTransitionGuard,
    Technician,
    Ticket,
)

logger = get_logger(__name__)

SYSTEM_ACTOR_ID = "system"


# ========== Repository Interfaces (Dependency Inversion) ==========

class ITicketRepository(ABC):
    """Interface for ticket data access."""

    @abstractmethod
    async def get_by_id(self, ticket_id: str) -> Optional[Ticket]:
        """Get ticket by internal ID."""

    @abstractmethod
    async def create(self, ticket: Ticket) -> Ticket:
        """Persist a new ticket."""

    @abstractmethod
    async def save(self, ticket: Ticket) -> Ticket:
        """Persist scalar changes and any newly appended history/comments."""

    @abstractmethod
    async def count_active_by_assignee(
        self,
        technician_id: str,
        excluded_statuses: Iterable[str]
    ) -> int:
        """Count tickets assigned to a technician outside the excluded statuses."""

    @abstractmethod
    async def list(
        self,
        filters: dict,
        limit: int = 100,
        offset: int = 0
    ) -> List[Ticket]:
        """List tickets with filters, newest first."""

    @abstractmethod
    async def list_with_feedback(self) -> List[Ticket]:
        """All tickets carrying customer feedback."""

    @abstractmethod
    async def commit(self) -> None:
        """Make pending writes durable."""


class IStaffDirectory(ABC):
    """Interface for staff/technician lookups."""

    @abstractmethod
    async def get_by_id(self, staff_id: str) -> Optional[Technician]:
        """Get staff member by ID."""

    @abstractmethod
    async def find_by_role_and_specialty(self, role: Role, specialty: str) -> List[Technician]:
        """Staff with ``role`` and ``specialty`` in creation order."""


class INotificationSender(ABC):
    """Customer-facing status change notifications."""

    @abstractmethod
    async def send(
        self,
        recipient_email: str,
        recipient_name: str,
        ticket_number: str,
        product_model: str,
        new_status: str,
        shipping_address: Optional[str] = None
    ) -> bool:
        """
        Deliver a status update. Returns False instead of raising.

        ``shipping_address`` is set for courier tickets only.
        """


class IEscalationNotifier(ABC):
    """Staff-facing escalation notices."""

    @abstractmethod
    async def notify_escalation(
        self,
        ticket: Ticket,
        actor_id: str,
        reason: Optional[str] = None
    ) -> bool:
        """Announce an escalation. Returns False instead of raising."""


class IPolicyProvider(ABC):
    """Interface for lifecycle policy access."""

    @abstractmethod
    def get_policy(self) -> LifecyclePolicy:
        """Get current lifecycle policy."""


class StaticPolicyProvider(IPolicyProvider):
    """Fixed policy, used when no policy file is configured."""

    def __init__(self, policy: Optional[LifecyclePolicy] = None):
        self._policy = policy or LifecyclePolicy()

    def get_policy(self) -> LifecyclePolicy:
        return self._policy


# ========== Background Dispatch ==========

class BackgroundDispatcher:
    """
    Fire-and-forget runner for side effects.

    Holds strong references to running tasks and swallows (logs) their
    failures, so the operation that scheduled them is never affected.
    """

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    def dispatch(self, name: str, coro: Awaitable[Any], **log_context: Any) -> asyncio.Task:
        task = asyncio.ensure_future(self._run(name, coro, log_context))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, name: str, coro: Awaitable[Any], log_context: dict) -> None:
        try:
            delivered = await coro
            if delivered is False:
                logger.warning(f"{name} not delivered", extra=log_context)
        except Exception as e:
            logger.error(
                f"{name} failed",
                extra={"error": str(e), "error_type": type(e).__name__, **log_context}
            )

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every in-flight task (shutdown and tests)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


# ========== Assignment ==========

class AssignmentPlanner:
    """
    First-fit technician selection for repair tickets.

    Specialists for the device type are scanned in creation order and the
    first one below capacity wins; the general pool is the fallback.
    Workload is read live, one candidate at a time, and the scan stops at
    the first match.
    """

    async def assign(
        self,
        ticket: Ticket,
        technician_directory: IStaffDirectory,
        workload_lookup: ITicketRepository,
        policy: LifecyclePolicy
    ) -> Optional[Technician]:
        pools = [ticket.product.device_type]
        if policy.general_pool_specialty not in pools:
            pools.append(policy.general_pool_specialty)

        for specialty in pools:
            candidates = await technician_directory.find_by_role_and_specialty(
                Role.TECHNICIAN, specialty
            )
            for technician in candidates:
                if technician.role != Role.TECHNICIAN:
                    continue
                workload = await workload_lookup.count_active_by_assignee(
                    technician.id, WORKLOAD_EXCLUDED_STATUSES
                )
                if workload < policy.capacity_limit:
                    logger.debug(
                        "Technician selected",
                        extra={
                            "technician_id": technician.id,
                            "specialty": specialty,
                            "workload": workload,
                        }
                    )
                    return technician

        return None


# ========== Application Services ==========

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_ticket_number(now: datetime) -> str:
    return f"TKT-{int(now.timestamp() * 1000)}"


class TicketLifecycleService:
    """
    Sole entry point for ticket mutations.

    Every mutation of an existing ticket runs under that ticket's lock and
    commits before the lock is released. Notifications are dispatched
    after the commit and never influence the result.
    """

    def __init__(
        self,
        ticket_repository: ITicketRepository,
        staff_directory: IStaffDirectory,
        policy_provider: IPolicyProvider,
        ticket_locks: KeyedLock,
        dispatcher: BackgroundDispatcher,
        notifier: Optional[INotificationSender] = None,
        escalation_notifier: Optional[IEscalationNotifier] = None,
        assignment_lock: Optional[asyncio.Lock] = None,
        guard: Optional[StatusTransitionGuard] = None,
        planner: Optional[AssignmentPlanner] = None,
        clock: Callable[[], datetime] = _utcnow
    ):
        self._tickets = ticket_repository
        self._staff = staff_directory
        self._policy_provider = policy_provider
        self._locks = ticket_locks
        self._dispatcher = dispatcher
        self._notifier = notifier
        self._escalation_notifier = escalation_notifier
        self._assignment_lock = assignment_lock
        self._guard = guard or StatusTransitionGuard()
        self._planner = planner or AssignmentPlanner()
        self._clock = clock

    # ----- create -----

    async def create_ticket(self, submission: TicketCreateDTO, actor: ActorContext) -> Ticket:
        """
        Validate, evaluate eligibility, auto-assign and persist a new ticket.

        Raises:
            AuthorizationException: technicians cannot file tickets
            ValidationException: blank fields or a future purchase date
            PolicyBlockedException: return requested past the return window
        """
        if actor.role not in SUBMITTER_ROLES:
            raise AuthorizationException(
                f"Role {actor.role.value} cannot submit tickets",
                {"role": actor.role.value}
            )

        now = self._clock()
        self._validate_submission(submission, now)

        policy = self._policy_provider.get_policy()
        service_type = ServiceType(submission.service_type)
        warranty_status = EligibilityEvaluator.evaluate(
            submission.purchase_date, service_type, now, policy
        )

        if warranty_status == WarrantyStatus.RETURN_PERIOD_EXPIRED:
            days = EligibilityEvaluator.days_since_purchase(submission.purchase_date, now)
            logger.warning(
                "Return blocked by policy",
                extra={
                    "actor_id": actor.actor_id,
                    "days_since_purchase": days,
                    "return_window_days": policy.return_window_days,
                }
            )
            raise PolicyBlockedException(
                f"Return period expired ({days} days since purchase, "
                f"window is {policy.return_window_days} days). File a repair request instead.",
                {
                    "days_since_purchase": days,
                    "return_window_days": policy.return_window_days,
                }
            )

        profile = ServiceProfile.for_service(service_type)
        delivery_method = DeliveryMethod(submission.delivery_method)
        shipping_address = None
        if delivery_method == DeliveryMethod.COURIER:
            shipping_address = ShippingAddress(
                street=submission.address.strip(),
                city=submission.city.strip(),
                postal_code=submission.postal_code.strip(),
            )
        customer_id = actor.actor_id
        if actor.is_staff and submission.customer_id:
            customer_id = submission.customer_id.strip()

        ticket = Ticket(
            id=str(uuid.uuid4()),
            ticket_number=_new_ticket_number(now),
            customer_id=customer_id,
            contact_name=submission.contact_name.strip(),
            contact_email=submission.contact_email.strip(),
            service_type=service_type,
            product=ProductInfo(
                serial_number=submission.serial_number.strip(),
                model=submission.model.strip(),
                purchase_date=submission.purchase_date,
                device_type=submission.device_type,
            ),
            issue=IssueDetails(
                category=submission.category.strip(),
                description=submission.description.strip(),
                photos=tuple(submission.photos),
            ),
            status=profile.initial_status,
            warranty_status=warranty_status,
            resolution_options=profile.resolution_options,
            created_at=now,
            updated_at=now,
            delivery_method=delivery_method,
            shipping_address=shipping_address,
            contact_phone=(submission.contact_phone or "").strip() or None,
        )
        ticket.record(
            "Ticket Created",
            actor.actor_id,
            "Initial submission by customer" if actor.role == Role.CUSTOMER
            else f"Submitted by {actor.role.value} on behalf of customer",
            now,
        )

        with log_latency(logger, "ticket_create", ticket_number=ticket.ticket_number):
            if profile.auto_assign and self._assignment_lock is not None:
                async with self._assignment_lock:
                    await self._assign_and_persist(ticket, policy, now)
            elif profile.auto_assign:
                await self._assign_and_persist(ticket, policy, now)
            else:
                await self._tickets.create(ticket)
                await self._tickets.commit()

        logger.info(
            "Ticket created",
            extra={
                "ticket_id": ticket.id,
                "ticket_number": ticket.ticket_number,
                "service_type": service_type.value,
                "warranty_status": warranty_status.value,
                "status": ticket.status.value,
                "assigned_technician_id": ticket.assigned_technician_id,
            }
        )
        return ticket

    async def _assign_and_persist(self, ticket: Ticket, policy: LifecyclePolicy, now: datetime) -> None:
        technician = await self._planner.assign(ticket, self._staff, self._tickets, policy)
        if technician is not None:
            ticket.assign_to(technician, SYSTEM_ACTOR_ID, "Technician Assigned", now)
        else:
            logger.info(
                "No technician with capacity, ticket left unassigned",
                extra={"ticket_number": ticket.ticket_number, "device_type": ticket.product.device_type}
            )
        await self._tickets.create(ticket)
        await self._tickets.commit()

    @staticmethod
    def _validate_submission(submission: TicketCreateDTO, now: datetime) -> None:
        required = {
            "serial_number": submission.serial_number,
            "model": submission.model,
            "category": submission.category,
            "description": submission.description,
            "contact_name": submission.contact_name,
            "contact_email": submission.contact_email,
        }
        missing = [name for name, value in required.items() if not value or not value.strip()]
        if submission.delivery_method == DeliveryMethod.COURIER.value:
            courier_fields = {
                "address": submission.address,
                "city": submission.city,
                "postal_code": submission.postal_code,
            }
            missing += [name for name, value in courier_fields.items() if not value or not value.strip()]
        if missing:
            raise ValidationException(
                f"Missing required fields: {', '.join(missing)}",
                {"missing_fields": missing}
            )
        if "@" not in submission.contact_email:
            raise ValidationException(
                "contact_email is not a valid email address",
                {"contact_email": submission.contact_email}
            )
        if submission.purchase_date > now.date():
            raise ValidationException(
                "purchase_date cannot be in the future",
                {"purchase_date": submission.purchase_date.isoformat()}
            )

    # ----- mutations -----

    async def update_status(
        self,
        ticket_id: str,
        new_status: TicketStatus,
        actor: ActorContext,
        notes: Optional[str] = None
    ) -> Ticket:
        """
        Move a ticket to ``new_status`` through the transition guard.

        Raises:
            ResourceNotFoundException: unknown ticket
            AuthorizationException: see StatusTransitionGuard
            InvalidTransitionException: see StatusTransitionGuard
        """
        async with self._locks.hold(ticket_id):
            ticket = await self._load(ticket_id)
            try:
                outcome = self._guard.transition(ticket, new_status, actor, self._clock(), notes)
            except (InvalidTransitionException, AuthorizationException) as e:
                logger.warning(
                    "Status change rejected",
                    extra={
                        "ticket_id": ticket_id,
                        "actor_id": actor.actor_id,
                        "role": actor.role.value,
                        "current_status": ticket.status.value,
                        "requested_status": new_status.value,
                        "reason": e.message,
                    }
                )
                raise

            if not outcome.changed:
                return ticket

            await self._tickets.save(ticket)
            await self._tickets.commit()

        logger.info(
            "Ticket status changed",
            extra={
                "ticket_id": ticket.id,
                "ticket_number": ticket.ticket_number,
                "from_status": outcome.previous_status.value,
                "to_status": outcome.new_status.value,
                "actor_id": actor.actor_id,
            }
        )

        if self._notifier is not None:
            self._dispatcher.dispatch(
                "Status email",
                self._notifier.send(
                    ticket.contact_email,
                    ticket.contact_name,
                    ticket.ticket_number,
                    ticket.product.model,
                    outcome.new_status.value,
                    shipping_address=str(ticket.shipping_address) if ticket.shipping_address else None,
                ),
                ticket_number=ticket.ticket_number,
                status=outcome.new_status.value,
            )
        return ticket

    async def add_comment(
        self,
        ticket_id: str,
        text: str,
        comment_type: CommentType,
        actor: ActorContext
    ) -> Ticket:
        """Attach an internal staff comment."""
        if not actor.is_staff:
            raise AuthorizationException("Only staff can add internal comments")
        if not text or not text.strip():
            raise ValidationException("Comment text is required")

        async with self._locks.hold(ticket_id):
            ticket = await self._load(ticket_id)
            ticket.add_comment(InternalComment(
                text=text.strip(),
                comment_type=comment_type,
                author_id=actor.actor_id,
                created_at=self._clock(),
            ))
            await self._tickets.save(ticket)
            await self._tickets.commit()

        logger.info(
            "Internal comment added",
            extra={"ticket_id": ticket_id, "comment_type": comment_type.value, "actor_id": actor.actor_id}
        )
        return ticket

    async def assign_technician(
        self,
        ticket_id: str,
        technician_id: str,
        actor: ActorContext
    ) -> Ticket:
        """Manual override: unconditionally points the ticket at a technician."""
        if actor.role not in ASSIGNER_ROLES:
            raise AuthorizationException(
                f"Role {actor.role.value} cannot assign technicians",
                {"role": actor.role.value}
            )

        technician = await self._staff.get_by_id(technician_id)
        if technician is None or technician.role != Role.TECHNICIAN:
            raise ResourceNotFoundException("Technician", technician_id)

        async with self._locks.hold(ticket_id):
            ticket = await self._load(ticket_id)
            action = "Technician Reassigned" if ticket.assigned_technician_id else "Technician Assigned"
            ticket.assign_to(technician, actor.actor_id, action, self._clock())
            await self._tickets.save(ticket)
            await self._tickets.commit()

        logger.info(
            "Technician assigned",
            extra={"ticket_id": ticket_id, "technician_id": technician_id, "actor_id": actor.actor_id}
        )
        return ticket

    async def submit_feedback(
        self,
        ticket_id: str,
        rating: int,
        comment: Optional[str],
        actor: ActorContext
    ) -> Ticket:
        """
        Record the owning customer's rating of a completed ticket.

        Raises:
            AuthorizationException: not the owning customer, or not Completed
            ValidationException: rating outside 1-5 or feedback already given
        """
        async with self._locks.hold(ticket_id):
            ticket = await self._load(ticket_id)

            if actor.role != Role.CUSTOMER or ticket.customer_id != actor.actor_id:
                raise AuthorizationException(
                    "Only the ticket's customer can submit feedback",
                    {"ticket_id": ticket_id}
                )
            if ticket.status != TicketStatus.COMPLETED:
                raise AuthorizationException(
                    "Feedback can only be submitted for completed tickets",
                    {"ticket_id": ticket_id, "status": ticket.status.value}
                )
            if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
                raise ValidationException(
                    "Rating must be an integer between 1 and 5",
                    {"rating": rating}
                )
            if ticket.feedback is not None:
                raise ValidationException(
                    "Feedback already submitted for this ticket",
                    {"ticket_id": ticket_id}
                )

            now = self._clock()
            ticket.leave_feedback(rating, comment.strip() if comment else None, now)
            ticket.record("Feedback Submitted", actor.actor_id, f"Rating {rating}/5", now)
            await self._tickets.save(ticket)
            await self._tickets.commit()

        logger.info("Feedback submitted", extra={"ticket_id": ticket_id, "rating": rating})
        return ticket

    async def escalate(
        self,
        ticket_id: str,
        actor: ActorContext,
        reason: Optional[str] = None
    ) -> Ticket:
        """Flag a ticket as escalated. Escalating twice is a no-op."""
        if not actor.is_staff:
            raise AuthorizationException("Only staff can escalate tickets")

        async with self._locks.hold(ticket_id):
            ticket = await self._load(ticket_id)
            if not ticket.mark_escalated(actor.actor_id, reason, self._clock()):
                return ticket
            await self._tickets.save(ticket)
            await self._tickets.commit()

        logger.info("Ticket escalated", extra={"ticket_id": ticket_id, "actor_id": actor.actor_id})

        if self._escalation_notifier is not None:
            self._dispatcher.dispatch(
                "Escalation notice",
                self._escalation_notifier.notify_escalation(ticket, actor.actor_id, reason),
                ticket_number=ticket.ticket_number,
            )
        return ticket

    async def _load(self, ticket_id: str) -> Ticket:
        ticket = await self._tickets.get_by_id(ticket_id)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", ticket_id)
        return ticket


class TicketQueryService:
    """Read-side operations with the visibility rules of each role."""

    def __init__(
        self,
        ticket_repository: ITicketRepository,
        guard: Optional[StatusTransitionGuard] = None
    ):
        self._tickets = ticket_repository
        self._guard = guard or StatusTransitionGuard()

    async def get_ticket(self, ticket_id: str, actor: ActorContext) -> Ticket:
        ticket = await self._tickets.get_by_id(ticket_id)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", ticket_id)
        if not actor.is_staff and ticket.customer_id != actor.actor_id:
            raise AuthorizationException("Customers can only view their own tickets")
        return ticket

    async def list_my_tickets(self, actor: ActorContext, limit: int = 100, offset: int = 0) -> List[Ticket]:
        return await self._tickets.list({"customer_id": actor.actor_id}, limit=limit, offset=offset)

    async def list_assigned_tickets(self, actor: ActorContext, limit: int = 100, offset: int = 0) -> List[Ticket]:
        if not actor.is_technician:
            raise AuthorizationException("Only technicians have assigned tickets")
        return await self._tickets.list(
            {"assigned_technician_id": actor.actor_id}, limit=limit, offset=offset
        )

    async def list_tickets(
        self,
        actor: ActorContext,
        status: Optional[TicketStatus] = None,
        escalated: Optional[bool] = None,
        limit: int = 100,
        offset: int = 0
    ) -> List[Ticket]:
        if not actor.is_staff:
            raise AuthorizationException("Only staff can list all tickets")
        filters: dict = {}
        if status is not None:
            filters["status"] = status.value
        if escalated is not None:
            filters["escalated"] = escalated
        return await self._tickets.list(filters, limit=limit, offset=offset)

    async def allowed_transitions(self, ticket_id: str, actor: ActorContext) -> List[TicketStatus]:
        ticket = await self.get_ticket(ticket_id, actor)
        if actor.is_technician and ticket.assigned_technician_id != actor.actor_id:
            return []
        return self._guard.allowed_next(ticket, actor)

    async def feedback_kpis(self, actor: ActorContext) -> FeedbackKPIResponse:
        """Aggregate customer ratings."""
        if actor.role not in ANALYTICS_ROLES:
            raise AuthorizationException("Only managers and admins can view feedback KPIs")

        start = time.perf_counter()
        ratings = [t.feedback.rating for t in await self._tickets.list_with_feedback() if t.feedback]
        distribution = {score: 0 for score in range(1, 6)}
        for rating in ratings:
            distribution[rating] += 1

        total = len(ratings)
        result = FeedbackKPIResponse(
            total_feedback=total,
            average_rating=round(sum(ratings) / total, 2) if total else 0.0,
            rating_distribution=distribution,
            satisfaction_rate=round(sum(1 for r in ratings if r >= 4) / total * 100, 2) if total else 0.0,
        )
        logger.debug(
            "Feedback KPIs computed",
            extra={"total_feedback": total, "latency_ms": int((time.perf_counter() - start) * 1000)}
        )
        return result
