"""
Repair Desk
===========

Repair and return ticket lifecycle service.
"""

__version__ = "1.0.0"
