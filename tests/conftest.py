"""
Shared pytest fixtures for all tests.

Provides in-memory repository fakes, a controllable clock, a seeded staff
directory and factories for the lifecycle services.
"""

import copy
import os
from datetime import date, datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional

import pytest

# Ensure test environment before settings are imported
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("POLICY_CONFIG_PATH", "does-not-exist.yaml")

from repairdesk.config import (  # noqa: E402
    DeliveryMethod,
    ResolutionOption,
    Role,
    ServiceType,
    TicketStatus,
    WarrantyStatus,
)
from repairdesk.shared.infrastructure.concurrency import KeyedLock  # noqa: E402
from repairdesk.tickets.application import (  # noqa: E402
    BackgroundDispatcher,
    IEscalationNotifier,
    INotificationSender,
    IStaffDirectory,
    ITicketRepository,
    StaticPolicyProvider,
    TicketCreateDTO,
    TicketLifecycleService,
    TicketQueryService,
)
from repairdesk.tickets.domain import (  # noqa: E402
    ActorContext,
    IssueDetails,
    LifecyclePolicy,
    ProductInfo,
    ShippingAddress,
    Technician,
    Ticket,
)


NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)
HOME_ADDRESS = ShippingAddress("12 Harbour Street", "Thessaloniki", "54622")


# ============================================================================
# FAKES
# ============================================================================


class FakeClock:
    """Deterministic clock; each call can optionally advance time."""

    def __init__(self, start: datetime = NOW, step: timedelta = timedelta(0)):
        self.current = start
        self.step = step

    def __call__(self) -> datetime:
        value = self.current
        self.current = self.current + self.step
        return value

    def advance(self, **kwargs) -> None:
        self.current = self.current + timedelta(**kwargs)


class InMemoryTicketRepository(ITicketRepository):
    """Dict-backed repository that hands out copies, like a real store."""

    def __init__(self):
        self.tickets: Dict[str, Ticket] = {}
        self.commits = 0
        self.saves = 0

    async def get_by_id(self, ticket_id: str) -> Optional[Ticket]:
        ticket = self.tickets.get(ticket_id)
        return copy.deepcopy(ticket) if ticket else None

    async def create(self, ticket: Ticket) -> Ticket:
        self.tickets[ticket.id] = copy.deepcopy(ticket)
        return ticket

    async def save(self, ticket: Ticket) -> Ticket:
        self.saves += 1
        self.tickets[ticket.id] = copy.deepcopy(ticket)
        return ticket

    async def count_active_by_assignee(self, technician_id: str, excluded_statuses: Iterable[str]) -> int:
        excluded = set(excluded_statuses)
        return sum(
            1 for t in self.tickets.values()
            if t.assigned_technician_id == technician_id and t.status.value not in excluded
        )

    async def list(self, filters: dict, limit: int = 100, offset: int = 0) -> List[Ticket]:
        matches = [
            t for t in self.tickets.values()
            if all(self._matches(t, key, value) for key, value in filters.items())
        ]
        matches.sort(key=lambda t: (t.created_at, t.ticket_number), reverse=True)
        return [copy.deepcopy(t) for t in matches[offset:offset + limit]]

    @staticmethod
    def _matches(ticket: Ticket, key: str, value) -> bool:
        if key == "status":
            return ticket.status.value == value
        return getattr(ticket, key) == value

    async def list_with_feedback(self) -> List[Ticket]:
        return [copy.deepcopy(t) for t in self.tickets.values() if t.feedback is not None]

    async def commit(self) -> None:
        self.commits += 1

    def put(self, ticket: Ticket) -> Ticket:
        self.tickets[ticket.id] = copy.deepcopy(ticket)
        return ticket


class InMemoryStaffDirectory(IStaffDirectory):
    """Staff list in insertion (creation) order."""

    def __init__(self, members: Optional[List[Technician]] = None):
        self.members: List[Technician] = list(members or [])

    async def get_by_id(self, staff_id: str) -> Optional[Technician]:
        return next((m for m in self.members if m.id == staff_id), None)

    async def find_by_role_and_specialty(self, role: Role, specialty: str) -> List[Technician]:
        return [m for m in self.members if m.role == role and m.specialty == specialty]


class RecordingNotifier(INotificationSender):
    def __init__(self, result: bool = True, error: Optional[Exception] = None):
        self.calls = []
        self.shipping_addresses = []
        self.result = result
        self.error = error

    async def send(
        self, recipient_email, recipient_name, ticket_number, product_model, new_status, shipping_address=None
    ) -> bool:
        self.calls.append((recipient_email, recipient_name, ticket_number, product_model, new_status))
        self.shipping_addresses.append(shipping_address)
        if self.error:
            raise self.error
        return self.result


class RecordingEscalationNotifier(IEscalationNotifier):
    def __init__(self):
        self.calls = []

    async def notify_escalation(self, ticket, actor_id, reason=None) -> bool:
        self.calls.append((ticket.id, actor_id, reason))
        return True


# ============================================================================
# BUILDERS
# ============================================================================


def technician(tech_id: str, specialty: str, role: Role = Role.TECHNICIAN) -> Technician:
    return Technician(
        id=tech_id,
        full_name=f"Tech {tech_id}",
        email=f"{tech_id}@example.com",
        specialty=specialty,
        role=role,
    )


def make_ticket(
    ticket_id: str = "ticket-1",
    status: TicketStatus = TicketStatus.IN_PROGRESS,
    assigned_technician_id: Optional[str] = "tech-1",
    customer_id: str = "cust-1",
    service_type: ServiceType = ServiceType.REPAIR,
    device_type: str = "Laptop",
    created_at: datetime = NOW,
    delivery_method: DeliveryMethod = DeliveryMethod.COURIER,
) -> Ticket:
    return Ticket(
        id=ticket_id,
        ticket_number=f"TKT-{ticket_id}",
        customer_id=customer_id,
        contact_name="Dana Reyes",
        contact_email="dana@example.com",
        service_type=service_type,
        product=ProductInfo(
            serial_number="SN-1",
            model="ThinkPad X1",
            purchase_date=date(2025, 1, 10),
            device_type=device_type,
        ),
        issue=IssueDetails(category="Hardware", description="Screen flickers"),
        status=status,
        warranty_status=WarrantyStatus.UNDER_WARRANTY,
        resolution_options=(ResolutionOption.REPAIR,),
        created_at=created_at,
        updated_at=created_at,
        assigned_technician_id=assigned_technician_id,
        delivery_method=delivery_method,
        shipping_address=HOME_ADDRESS if delivery_method == DeliveryMethod.COURIER else None,
        contact_phone="+30 2310 555000",
    )


def submission(**overrides) -> TicketCreateDTO:
    data = {
        "service_type": "Repair",
        "serial_number": "SN-4471-XK",
        "model": "ThinkPad X1 Carbon",
        "purchase_date": date(2025, 1, 10),
        "device_type": "Laptop",
        "category": "Hardware",
        "description": "Screen flickers after waking from sleep.",
        "contact_name": "Dana Reyes",
        "contact_email": "dana@example.com",
        "contact_phone": "+30 2310 555000",
        "delivery_method": "Courier",
        "address": "12 Harbour Street",
        "city": "Thessaloniki",
        "postal_code": "54622",
    }
    data.update(overrides)
    return TicketCreateDTO(**data)


# ============================================================================
# FIXTURES
# ============================================================================


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(step=timedelta(milliseconds=1))


@pytest.fixture
def policy() -> LifecyclePolicy:
    return LifecyclePolicy(warranty_months=24, return_window_days=15, capacity_limit=5)


@pytest.fixture
def ticket_repo() -> InMemoryTicketRepository:
    return InMemoryTicketRepository()


@pytest.fixture
def staff() -> InMemoryStaffDirectory:
    return InMemoryStaffDirectory([
        technician("tech-laptop-1", "Laptop"),
        technician("tech-laptop-2", "Laptop"),
        technician("tech-phone-1", "Smartphone"),
        technician("tech-general-1", "Other"),
        technician("desk-1", "Other", Role.EMPLOYEE),
    ])


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def escalation_notifier() -> RecordingEscalationNotifier:
    return RecordingEscalationNotifier()


@pytest.fixture
def dispatcher() -> BackgroundDispatcher:
    return BackgroundDispatcher()


@pytest.fixture
def lifecycle_service(ticket_repo, staff, policy, notifier, escalation_notifier, dispatcher, clock):
    return TicketLifecycleService(
        ticket_repository=ticket_repo,
        staff_directory=staff,
        policy_provider=StaticPolicyProvider(policy),
        ticket_locks=KeyedLock(),
        dispatcher=dispatcher,
        notifier=notifier,
        escalation_notifier=escalation_notifier,
        clock=clock,
    )


@pytest.fixture
def query_service(ticket_repo) -> TicketQueryService:
    return TicketQueryService(ticket_repo)


@pytest.fixture
def customer() -> ActorContext:
    return ActorContext("cust-1", Role.CUSTOMER)


@pytest.fixture
def employee() -> ActorContext:
    return ActorContext("desk-1", Role.EMPLOYEE)


@pytest.fixture
def manager() -> ActorContext:
    return ActorContext("manager-1", Role.MANAGER)


@pytest.fixture
def assigned_tech() -> ActorContext:
    return ActorContext("tech-1", Role.TECHNICIAN)
