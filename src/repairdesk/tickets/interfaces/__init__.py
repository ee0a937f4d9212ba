"""
Ticket Interfaces Layer
=======================

Interface adapters (controllers) for the ticket lifecycle.

Contains:
- Controllers: FastAPI route handlers

This is the outermost layer - handles HTTP requests/responses and
delegates to application services.
"""

from repairdesk.tickets.interfaces.controllers import tickets_router

__all__ = ["tickets_router"]
