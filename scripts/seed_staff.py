#!/usr/bin/env python3
"""
Seed Staff Directory
====================

Insert a starter roster of technicians and desk staff so auto-assignment
has someone to pick. Existing ids are skipped.

Usage:
    python scripts/seed_staff.py
"""

import asyncio
from datetime import datetime, timedelta, timezone

from repairdesk.config import Role, settings
from repairdesk.infrastructure.database import (
    close_database,
    create_tables,
    get_session_context,
    init_database,
)
from repairdesk.shared.infrastructure.logging import get_logger, setup_logging
from repairdesk.tickets.domain import Technician
from repairdesk.tickets.infrastructure import SQLAlchemyStaffRepository

logger = get_logger(__name__)

ROSTER = [
    ("tech-phone-1", "Priya Natarajan", "priya.n@electronics-rr.com", "Smartphone", Role.TECHNICIAN),
    ("tech-phone-2", "Marco Villa", "marco.v@electronics-rr.com", "Smartphone", Role.TECHNICIAN),
    ("tech-laptop-1", "Jon Okafor", "jon.o@electronics-rr.com", "Laptop", Role.TECHNICIAN),
    ("tech-laptop-2", "Lena Hoffmann", "lena.h@electronics-rr.com", "Laptop", Role.TECHNICIAN),
    ("tech-tv-1", "Sam Whitaker", "sam.w@electronics-rr.com", "TV", Role.TECHNICIAN),
    ("tech-general-1", "Alex Moreno", "alex.m@electronics-rr.com", "Other", Role.TECHNICIAN),
    ("desk-1", "Ruth Adeyemi", "ruth.a@electronics-rr.com", "Other", Role.EMPLOYEE),
    ("manager-1", "Chris Lindqvist", "chris.l@electronics-rr.com", "Other", Role.MANAGER),
]


async def seed() -> int:
    init_database()
    await create_tables()

    base = datetime.now(timezone.utc)
    created = 0
    try:
        async with get_session_context() as session:
            repo = SQLAlchemyStaffRepository(session)
            for offset, (staff_id, name, email, specialty, role) in enumerate(ROSTER):
                if await repo.get_by_id(staff_id):
                    continue
                # Spaced timestamps keep the roster's creation order deterministic
                await repo.add(Technician(
                    id=staff_id,
                    full_name=name,
                    email=email,
                    specialty=specialty,
                    role=role,
                    created_at=base + timedelta(seconds=offset),
                ))
                created += 1
    finally:
        await close_database()
    return created


def main():
    setup_logging(settings.log_level, settings.environment)
    created = asyncio.run(seed())
    logger.info("Staff seeding complete", extra={"created": created, "roster_size": len(ROSTER)})
    print(f"Seeded {created} staff member(s) ({len(ROSTER) - created} already present)")


if __name__ == "__main__":
    main()
