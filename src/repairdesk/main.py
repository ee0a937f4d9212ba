"""
Repair Desk - Main Application
==============================

Repair and return ticketing service for consumer electronics.

Modules:
- Tickets: submission, eligibility, auto-assignment, status lifecycle,
  internal comments, escalation and customer feedback

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: Entities, value objects, transition guard
- Infrastructure: Database, SMTP, Slack, policy file
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

# Configuration
from repairdesk.config import settings

# Infrastructure
from repairdesk.infrastructure.database import (
    close_database,
    create_tables,
    init_database,
    ping_database,
)

# Tickets module
from repairdesk.shared.infrastructure.concurrency import KeyedLock
from repairdesk.tickets.application import BackgroundDispatcher
from repairdesk.tickets.infrastructure.external import (
    EmailNotificationSender,
    PolicyConfigManager,
    SlackEscalationNotifier,
)
from repairdesk.tickets.interfaces import tickets_router

# Shared API
from repairdesk.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    register_exception_handlers,
)

# Logging
from repairdesk.shared.infrastructure.logging import get_logger, setup_logging

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Initialize database and create tables
    3. Load lifecycle policy and start watching it
    4. Build notifiers, ticket locks and background dispatcher

    SHUTDOWN:
    1. Drain pending notifications
    2. Stop policy watcher, close Slack client
    3. Close database connections
    """
    # === STARTUP ===
    setup_logging(settings.log_level, settings.environment)
    logger.info("Starting Repair Desk", extra={
        "version": settings.app_version,
        "environment": settings.environment
    })

    logger.info("Initializing database")
    init_database()

    # Note: If database is not available, the server will start but
    # database-dependent endpoints will fail
    logger.info("Creating database tables")
    app.state.database_ready = False
    try:
        await create_tables()
        app.state.database_ready = True
    except Exception as e:
        logger.warning(f"Database not available - running in degraded mode: {e}")

    logger.info("Loading lifecycle policy")
    policy_manager = PolicyConfigManager(settings)
    policy_manager.load(settings.policy_config_path)
    policy_manager.start_watching()

    slack_notifier = SlackEscalationNotifier(settings)
    dispatcher = BackgroundDispatcher()

    # Store services in app state for dependency injection
    app.state.settings = settings
    app.state.policy_provider = policy_manager
    app.state.notifier = EmailNotificationSender(settings)
    app.state.escalation_notifier = slack_notifier
    app.state.ticket_locks = KeyedLock()
    app.state.dispatcher = dispatcher
    app.state.assignment_lock = asyncio.Lock() if settings.serialize_assignments else None

    logger.info("Repair Desk started successfully")

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Shutting down Repair Desk", extra={"pending_notifications": dispatcher.pending})

    await dispatcher.drain()
    policy_manager.stop_watching()
    await slack_notifier.close()
    await close_database()

    logger.info("Repair Desk shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="Repair Desk API",
    description="""
    ## Repair & Return Ticketing

    Customers file repair or return requests for their devices; staff move
    them through a role-aware lifecycle.

    ---

    ### Lifecycle

    | Current | Technician may move to |
    |---------|------------------------|
    | Submitted | Pending Validation, Cancelled |
    | Pending Validation | In Progress, Cancelled |
    | In Progress | Waiting for Parts, Shipping, Ready for Pickup, Completed, Cancelled |
    | Waiting for Parts | In Progress, Cancelled |
    | Shipping | Shipped Back, Completed, Cancelled |
    | Shipped Back | Completed |
    | Ready for Pickup | Completed, Cancelled |

    Employees, managers and admins may set any status on a non-terminal
    ticket. Completed and Cancelled are final.

    ### Policy

    - Repairs are under warranty for 24 calendar months after purchase
    - Returns are accepted within 15 days of purchase
    - Repairs are auto-assigned to the first device specialist below
      5 active tickets, then to the general pool

    ### Identity

    Every call carries `X-Actor-Id` and `X-Actor-Role` headers
    (Customer, Technician, Employee, Manager, Admin).
    """,
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# === CORS Middleware ===
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# === Custom Middleware (from shared) ===
app.add_middleware(LoggingMiddleware)
app.add_middleware(CorrelationIDMiddleware)
register_exception_handlers(app)

# === Include Module Routers ===
app.include_router(tickets_router)


# === Health Check Endpoint ===

@app.get("/health", tags=["Health"], responses={
    200: {
        "description": "Service is healthy",
        "content": {
            "application/json": {
                "example": {
                    "status": "healthy",
                    "version": "1.0.0",
                    "environment": "development",
                    "checks": {
                        "database": "connected",
                        "lifecycle_policy": "loaded",
                        "pending_notifications": 0
                    }
                }
            }
        }
    }
})
async def health_check(request: Request):
    """
    Health check endpoint for load balancers and orchestrators.

    Returns service health status including:
    - Database reachability (schema must have been created at startup)
    - Lifecycle policy status
    - Notifications still in flight
    """
    state = request.app.state
    dispatcher = getattr(state, "dispatcher", None)
    database_ready = getattr(state, "database_ready", False) and await ping_database()
    checks = {
        "database": "connected" if database_ready else "unavailable",
        "lifecycle_policy": "loaded" if getattr(state, "policy_provider", None) else "not_loaded",
        "pending_notifications": dispatcher.pending if dispatcher else 0,
    }

    return {
        "status": "healthy" if database_ready else "degraded",
        "version": settings.app_version,
        "environment": settings.environment,
        "checks": checks
    }


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API information."""
    return {
        "service": "Repair Desk",
        "version": settings.app_version,
        "architecture": "Clean Architecture / Modular Monolith",
        "docs": "/docs",
        "health": "/health",
        "modules": {
            "tickets": {
                "prefix": "/tickets",
                "endpoints": [
                    "POST /tickets - Submit repair or return",
                    "GET /tickets - My tickets",
                    "GET /tickets/assigned - Technician queue",
                    "GET /tickets/all - All tickets (staff)",
                    "GET /tickets/analytics/kpi - Feedback KPIs",
                    "GET /tickets/{id} - Ticket details",
                    "GET /tickets/{id}/transitions - Allowed next statuses",
                    "PATCH /tickets/{id}/status - Change status",
                    "PATCH /tickets/{id}/assign - Assign technician",
                    "POST /tickets/{id}/internal-comments - Internal comment",
                    "POST /tickets/{id}/feedback - Customer feedback",
                    "POST /tickets/{id}/escalate - Escalate"
                ]
            }
        }
    }


# === Development Entry Point ===

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "repairdesk.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level="info"
    )
