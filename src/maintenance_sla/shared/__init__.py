"""
Shared Kernel Module
====================

Shared infrastructure used across the application: structured logging,
metrics export and HTTP middleware.

DO NOT add SLA or escalation business logic to the shared kernel.
"""
