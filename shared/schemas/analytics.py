"""
Helpdesk Pattern Detector - Analytics Schemas

Read-only aggregation served to the pattern dashboard
"""

from pydantic import BaseModel, Field

from .alert import PatternAlert, SpamDetection
from .cluster import Cluster, RecurringIssue


class PatternAnalytics(BaseModel):
    """Snapshot of pattern-detection state for one department (or all)"""

    active_clusters: list[Cluster] = Field(default_factory=list)
    recent_alerts: list[PatternAlert] = Field(default_factory=list)
    top_recurring_issues: list[RecurringIssue] = Field(default_factory=list)
    spam_detections: list[SpamDetection] = Field(default_factory=list)
