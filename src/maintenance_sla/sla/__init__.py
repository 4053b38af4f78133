"""
Maintenance SLA Module
======================

Bounded Context for maintenance request SLA tracking and emergency escalation.

Responsibilities:
- Classify response and resolution deadlines (on track, at risk, overdue)
- Escalate unacknowledged emergencies through configured levels
- Notify each newly reached level once, retrying failed deliveries
- Record acknowledgments, which stop escalation permanently
- Provide read APIs for SLA status and emergency dashboards
"""
