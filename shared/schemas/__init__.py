"""Helpdesk Pattern Detector Shared Schemas"""

from .alert import (
    AlertSeverity,
    AlertType,
    PatternAlert,
    SpamDetection,
    SpamReason,
    SpamStatus,
)
from .analytics import PatternAnalytics
from .cluster import (
    Cluster,
    IncidentPriority,
    IncidentStatus,
    IncidentTicket,
    RecurringIssue,
)
from .ticket import Department, HelpdeskTicket, utcnow

__all__ = [
    # Ticket schemas
    "Department",
    "HelpdeskTicket",
    "utcnow",
    # Cluster schemas
    "Cluster",
    "IncidentTicket",
    "IncidentStatus",
    "IncidentPriority",
    "RecurringIssue",
    # Alert schemas
    "PatternAlert",
    "AlertType",
    "AlertSeverity",
    "SpamDetection",
    "SpamReason",
    "SpamStatus",
    # Dashboard
    "PatternAnalytics",
]
