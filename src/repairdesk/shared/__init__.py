"""
Shared Kernel Module
====================

Shared infrastructure used by every bounded context.

Architecture Pattern: Modular Monolith
- The tickets module is the bounded context for the repair/return lifecycle
- Shared kernel contains only generic infrastructure

DO NOT add ticket lifecycle rules to the shared kernel.
"""

__version__ = "1.0.0"
