"""
Tickets Module
==============

Repair and return ticket lifecycle: eligibility evaluation, technician
auto-assignment, role-aware status transitions, internal comments,
escalation and customer feedback.
"""
