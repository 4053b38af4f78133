"""
Maintenance SLA & Escalation Engine
===================================

Deadline tracking and emergency escalation for maintenance work orders.

Modules:
- sla: SLA status calculation, escalation policy, evaluator and acknowledgment
- core: Exceptions and the injectable clock
- shared: Logging and HTTP middleware
"""

__version__ = "1.0.0"
