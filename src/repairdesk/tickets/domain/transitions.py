"""
Status Transition Guard
=======================

The ticket state machine.

Technicians are held to the transition table and may only move tickets
assigned to them. Employees, managers and admins may set any status.
Completed and Cancelled are final for everyone.
"""

from datetime import datetime
from typing import Dict, FrozenSet, List, Optional

from repairdesk.config import TicketStatus
from repairdesk.core import AuthorizationException, InvalidTransitionException
from repairdesk.tickets.domain.entities import ActorContext, Ticket
from repairdesk.tickets.domain.value_objects import TransitionOutcome


S = TicketStatus

TRANSITIONS: Dict[TicketStatus, FrozenSet[TicketStatus]] = {
    S.SUBMITTED: frozenset({S.PENDING_VALIDATION, S.CANCELLED}),
    S.PENDING_VALIDATION: frozenset({S.IN_PROGRESS, S.CANCELLED}),
    S.IN_PROGRESS: frozenset({
        S.WAITING_FOR_PARTS, S.SHIPPING, S.READY_FOR_PICKUP, S.COMPLETED, S.CANCELLED
    }),
    S.WAITING_FOR_PARTS: frozenset({S.IN_PROGRESS, S.CANCELLED}),
    S.SHIPPING: frozenset({S.SHIPPED_BACK, S.COMPLETED, S.CANCELLED}),
    S.SHIPPED_BACK: frozenset({S.COMPLETED}),
    S.READY_FOR_PICKUP: frozenset({S.COMPLETED, S.CANCELLED}),
    S.COMPLETED: frozenset(),
    S.CANCELLED: frozenset(),
}


def _ordered(statuses) -> List[TicketStatus]:
    """Declaration order of TicketStatus, so callers get stable lists."""
    return [s for s in TicketStatus if s in statuses]


class StatusTransitionGuard:
    """Validates and applies ticket status changes."""

    def __init__(self, transitions: Optional[Dict[TicketStatus, FrozenSet[TicketStatus]]] = None):
        self._transitions = transitions or TRANSITIONS

    def allowed_next(self, ticket: Ticket, actor: ActorContext) -> List[TicketStatus]:
        """Statuses ``actor`` may move ``ticket`` to right now."""
        current = ticket.status
        if ticket.is_terminal or not actor.is_staff:
            return []
        if actor.is_technician:
            return _ordered(self._transitions.get(current, frozenset()))
        return _ordered(set(TicketStatus) - {current})

    def transition(
        self,
        ticket: Ticket,
        requested: TicketStatus,
        actor: ActorContext,
        timestamp: Optional[datetime] = None,
        notes: Optional[str] = None
    ) -> TransitionOutcome:
        """
        Apply ``requested`` to ``ticket`` on behalf of ``actor``.

        A request for the current status is an idempotent success and
        writes nothing. Rejections leave the ticket untouched.

        Raises:
            AuthorizationException: customer actor, or a technician acting
                on a ticket not assigned to them
            InvalidTransitionException: target not reachable for this role
        """
        current = ticket.status
        if requested == current:
            return TransitionOutcome(previous_status=current, new_status=current)

        self._check_actor(ticket, actor)

        allowed = self.allowed_next(ticket, actor)
        if requested not in allowed:
            raise InvalidTransitionException(
                current_status=current.value,
                requested_status=requested.value,
                allowed_statuses=[s.value for s in allowed],
            )

        ticket.status = requested
        ticket.record(
            f"Status changed from {current.value} to {requested.value}",
            actor.actor_id,
            notes,
            timestamp,
        )
        return TransitionOutcome(previous_status=current, new_status=requested)

    @staticmethod
    def _check_actor(ticket: Ticket, actor: ActorContext) -> None:
        if not actor.is_staff:
            raise AuthorizationException(
                "Customers cannot change ticket status",
                {"ticket_id": ticket.id, "role": actor.role.value},
            )
        if actor.is_technician and ticket.assigned_technician_id != actor.actor_id:
            raise AuthorizationException(
                "Technicians may only update tickets assigned to them",
                {
                    "ticket_id": ticket.id,
                    "actor_id": actor.actor_id,
                    "assigned_technician_id": ticket.assigned_technician_id,
                },
            )
