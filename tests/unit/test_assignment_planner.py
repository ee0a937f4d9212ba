"""First-fit technician auto-assignment."""

from unittest.mock import AsyncMock

import pytest

from conftest import InMemoryStaffDirectory, InMemoryTicketRepository, make_ticket, technician
from repairdesk.config import Role, TicketStatus
from repairdesk.tickets.application import AssignmentPlanner
from repairdesk.tickets.domain import LifecyclePolicy


planner = AssignmentPlanner()
POLICY = LifecyclePolicy(capacity_limit=5)


def _load(repo: InMemoryTicketRepository, tech_id: str, count: int, status=TicketStatus.IN_PROGRESS):
    for i in range(count):
        repo.put(make_ticket(f"{tech_id}-{status.name}-{i}", status=status, assigned_technician_id=tech_id))


@pytest.mark.asyncio
async def test_picks_first_specialist_with_capacity(staff, ticket_repo):
    result = await planner.assign(make_ticket(device_type="Laptop"), staff, ticket_repo, POLICY)
    assert result.id == "tech-laptop-1"


@pytest.mark.asyncio
async def test_skips_specialist_at_capacity(staff, ticket_repo):
    _load(ticket_repo, "tech-laptop-1", 5)
    result = await planner.assign(make_ticket(device_type="Laptop"), staff, ticket_repo, POLICY)
    assert result.id == "tech-laptop-2"


@pytest.mark.asyncio
async def test_falls_back_to_general_pool(staff, ticket_repo):
    _load(ticket_repo, "tech-laptop-1", 5)
    _load(ticket_repo, "tech-laptop-2", 7)
    result = await planner.assign(make_ticket(device_type="Laptop"), staff, ticket_repo, POLICY)
    assert result.id == "tech-general-1"


@pytest.mark.asyncio
async def test_returns_none_when_everyone_is_full(staff, ticket_repo):
    for tech_id in ("tech-laptop-1", "tech-laptop-2", "tech-general-1"):
        _load(ticket_repo, tech_id, 5)
    assert await planner.assign(make_ticket(device_type="Laptop"), staff, ticket_repo, POLICY) is None


@pytest.mark.asyncio
async def test_no_specialists_uses_general_pool(staff, ticket_repo):
    result = await planner.assign(make_ticket(device_type="TV"), staff, ticket_repo, POLICY)
    assert result.id == "tech-general-1"


@pytest.mark.asyncio
async def test_finished_work_does_not_count(staff, ticket_repo):
    for status in (TicketStatus.COMPLETED, TicketStatus.CANCELLED):
        _load(ticket_repo, "tech-laptop-1", 5, status=status)
    _load(ticket_repo, "tech-laptop-1", 4)
    result = await planner.assign(make_ticket(device_type="Laptop"), staff, ticket_repo, POLICY)
    assert result.id == "tech-laptop-1"


@pytest.mark.asyncio
async def test_only_technicians_are_candidates(ticket_repo):
    directory = InMemoryStaffDirectory([technician("desk-1", "Other", Role.EMPLOYEE)])
    assert await planner.assign(make_ticket(device_type="Other"), directory, ticket_repo, POLICY) is None


@pytest.mark.asyncio
async def test_other_device_does_not_scan_general_pool_twice():
    directory = InMemoryStaffDirectory([technician("tech-general-1", "Other")])
    lookup = AsyncMock()
    lookup.count_active_by_assignee = AsyncMock(return_value=5)

    assert await planner.assign(make_ticket(device_type="Other"), directory, lookup, POLICY) is None
    assert lookup.count_active_by_assignee.await_count == 1


@pytest.mark.asyncio
async def test_workload_read_lazily_and_stops_at_first_fit(staff, ticket_repo):
    lookup = AsyncMock()
    lookup.count_active_by_assignee = AsyncMock(return_value=0)

    await planner.assign(make_ticket(device_type="Laptop"), staff, lookup, POLICY)
    lookup.count_active_by_assignee.assert_awaited_once()
    assert lookup.count_active_by_assignee.await_args.args[0] == "tech-laptop-1"


@pytest.mark.asyncio
async def test_capacity_limit_comes_from_policy(staff, ticket_repo):
    _load(ticket_repo, "tech-laptop-1", 2)
    result = await planner.assign(
        make_ticket(device_type="Laptop"), staff, ticket_repo, LifecyclePolicy(capacity_limit=2)
    )
    assert result.id == "tech-laptop-2"


@pytest.mark.asyncio
async def test_planner_does_not_mutate_ticket(staff, ticket_repo):
    ticket = make_ticket(device_type="Laptop", assigned_technician_id=None)
    await planner.assign(ticket, staff, ticket_repo, POLICY)
    assert ticket.assigned_technician_id is None
    assert ticket.history == ()
