"""SQLAlchemy repositories against an in-memory SQLite database."""

from datetime import timedelta

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from conftest import NOW, make_ticket, submission, technician
from repairdesk.config import CommentType, DeliveryMethod, Role, TicketStatus, WORKLOAD_EXCLUDED_STATUSES
from repairdesk.infrastructure.database import Base
from repairdesk.shared.infrastructure.concurrency import KeyedLock
from repairdesk.tickets.application import (
    BackgroundDispatcher,
    StaticPolicyProvider,
    TicketLifecycleService,
)
from repairdesk.tickets.domain import ActorContext, InternalComment, LifecyclePolicy
from repairdesk.tickets.infrastructure import (
    SQLAlchemyStaffRepository,
    SQLAlchemyTicketRepository,
    models,  # noqa: F401
)

pytestmark = pytest.mark.integration

TICKET_ID = "5f0c1d9e-2b8a-4c7e-9f31-0a6b2d4e8c11"


def _uuid(n: int) -> str:
    return f"00000000-0000-4000-8000-{n:012d}"


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    await engine.dispose()


@pytest.mark.asyncio
async def test_create_and_reload(session_factory):
    ticket = make_ticket(TICKET_ID, status=TicketStatus.SUBMITTED)
    ticket.record("Ticket Created", "cust-1", "Initial submission by customer", NOW)

    async with session_factory() as session:
        repo = SQLAlchemyTicketRepository(session)
        await repo.create(ticket)
        await repo.commit()

    async with session_factory() as session:
        loaded = await SQLAlchemyTicketRepository(session).get_by_id(TICKET_ID)

    assert loaded.id == TICKET_ID
    assert loaded.status == TicketStatus.SUBMITTED
    assert loaded.product == ticket.product
    assert loaded.issue == ticket.issue
    assert loaded.resolution_options == ticket.resolution_options
    assert loaded.created_at == NOW
    assert [h.action for h in loaded.history] == ["Ticket Created"]
    assert loaded.history[0].timestamp == NOW
    assert loaded.delivery_method == DeliveryMethod.COURIER
    assert loaded.shipping_address == ticket.shipping_address
    assert loaded.contact_phone == "+30 2310 555000"


@pytest.mark.asyncio
async def test_dropoff_reloads_without_address(session_factory):
    async with session_factory() as session:
        repo = SQLAlchemyTicketRepository(session)
        await repo.create(make_ticket(TICKET_ID, delivery_method=DeliveryMethod.DROPOFF))
        await repo.commit()

    async with session_factory() as session:
        loaded = await SQLAlchemyTicketRepository(session).get_by_id(TICKET_ID)

    assert loaded.delivery_method == DeliveryMethod.DROPOFF
    assert loaded.shipping_address is None


@pytest.mark.asyncio
async def test_save_appends_history_comments_and_feedback(session_factory):
    async with session_factory() as session:
        repo = SQLAlchemyTicketRepository(session)
        await repo.create(make_ticket(TICKET_ID, status=TicketStatus.IN_PROGRESS))
        await repo.commit()

    async with session_factory() as session:
        repo = SQLAlchemyTicketRepository(session)
        ticket = await repo.get_by_id(TICKET_ID)
        ticket.status = TicketStatus.COMPLETED
        ticket.record("Status changed from In Progress to Completed", "tech-1", None, NOW + timedelta(hours=1))
        ticket.add_comment(InternalComment("Replaced panel", CommentType.NOTE, "tech-1", NOW + timedelta(hours=1)))
        ticket.leave_feedback(4, "Good", NOW + timedelta(hours=2))
        await repo.save(ticket)
        await repo.commit()

    async with session_factory() as session:
        loaded = await SQLAlchemyTicketRepository(session).get_by_id(TICKET_ID)

    assert loaded.status == TicketStatus.COMPLETED
    assert len(loaded.history) == 1
    assert loaded.internal_comments[0].text == "Replaced panel"
    assert loaded.feedback.rating == 4
    assert loaded.updated_at == NOW + timedelta(hours=2)


@pytest.mark.asyncio
async def test_unknown_or_malformed_id(session_factory):
    async with session_factory() as session:
        repo = SQLAlchemyTicketRepository(session)
        assert await repo.get_by_id("not-a-uuid") is None
        assert await repo.get_by_id(_uuid(404)) is None


@pytest.mark.asyncio
async def test_workload_count_excludes_finished_statuses(session_factory):
    statuses = [
        TicketStatus.IN_PROGRESS, TicketStatus.WAITING_FOR_PARTS, TicketStatus.COMPLETED,
        TicketStatus.CANCELLED, TicketStatus.SUBMITTED,
    ]
    async with session_factory() as session:
        repo = SQLAlchemyTicketRepository(session)
        for i, status in enumerate(statuses):
            await repo.create(make_ticket(_uuid(i), status=status, assigned_technician_id="tech-1"))
        await repo.create(make_ticket(_uuid(99), assigned_technician_id="tech-2"))
        await repo.commit()

        assert await repo.count_active_by_assignee("tech-1", WORKLOAD_EXCLUDED_STATUSES) == 3
        assert await repo.count_active_by_assignee("tech-3", WORKLOAD_EXCLUDED_STATUSES) == 0


@pytest.mark.asyncio
async def test_list_filters_and_order(session_factory):
    async with session_factory() as session:
        repo = SQLAlchemyTicketRepository(session)
        for i in range(3):
            await repo.create(make_ticket(_uuid(i), created_at=NOW + timedelta(minutes=i)))
        other = make_ticket(_uuid(10), customer_id="cust-2", status=TicketStatus.SHIPPING)
        other.escalated = True
        await repo.create(other)
        await repo.commit()

        mine = await repo.list({"customer_id": "cust-1"})
        assert [t.id for t in mine] == [_uuid(2), _uuid(1), _uuid(0)]
        assert [t.id for t in await repo.list({"status": "Shipping"})] == [_uuid(10)]
        assert [t.id for t in await repo.list({"escalated": True})] == [_uuid(10)]
        assert len(await repo.list({}, limit=2)) == 2


@pytest.mark.asyncio
async def test_staff_directory_order(session_factory):
    async with session_factory() as session:
        staff = SQLAlchemyStaffRepository(session)
        for offset, member in enumerate([
            technician("laptop-b", "Laptop"),
            technician("laptop-a", "Laptop"),
            technician("desk-1", "Laptop", Role.EMPLOYEE),
        ]):
            member.created_at = NOW + timedelta(seconds=offset)
            await staff.add(member)
        await session.commit()

        found = await staff.find_by_role_and_specialty(Role.TECHNICIAN, "Laptop")
        assert [m.id for m in found] == ["laptop-b", "laptop-a"]
        assert (await staff.get_by_id("desk-1")).role == Role.EMPLOYEE
        assert await staff.get_by_id("ghost") is None


@pytest.mark.asyncio
async def test_lifecycle_end_to_end(session_factory):
    customer = ActorContext("cust-1", Role.CUSTOMER)
    tech = ActorContext("laptop-1", Role.TECHNICIAN)
    clock_values = iter(NOW + timedelta(seconds=i) for i in range(100))

    async with session_factory() as session:
        await SQLAlchemyStaffRepository(session).add(technician("laptop-1", "Laptop"))
        await session.commit()

    def service_for(session):
        return TicketLifecycleService(
            SQLAlchemyTicketRepository(session),
            SQLAlchemyStaffRepository(session),
            StaticPolicyProvider(LifecyclePolicy()),
            KeyedLock(),
            BackgroundDispatcher(),
            clock=lambda: next(clock_values),
        )

    async with session_factory() as session:
        created = await service_for(session).create_ticket(submission(), customer)

    async with session_factory() as session:
        service = service_for(session)
        await service.update_status(created.id, TicketStatus.PENDING_VALIDATION, tech)
        await service.update_status(created.id, TicketStatus.IN_PROGRESS, tech)
        await service.update_status(created.id, TicketStatus.COMPLETED, tech)
        rated = await service.submit_feedback(created.id, 5, None, customer)

    async with session_factory() as session:
        loaded = await SQLAlchemyTicketRepository(session).get_by_id(created.id)

    assert loaded.assigned_technician_id == "laptop-1"
    assert loaded.status == TicketStatus.COMPLETED
    assert loaded.feedback.rating == 5
    assert [h.action for h in loaded.history] == [h.action for h in rated.history]
    assert len(loaded.history) == 6
