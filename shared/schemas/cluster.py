"""
Helpdesk Pattern Detector - Cluster Schemas

Defines Cluster, IncidentTicket and the recurring-issue view used by dashboards
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from .ticket import utcnow


class IncidentStatus(str, Enum):
    """Incident workflow status"""
    OPEN = "open"
    INVESTIGATING = "investigating"
    RESOLVED = "resolved"


class IncidentPriority(str, Enum):
    """Incident priority (derived from cluster size at escalation)"""
    HIGH = "high"
    URGENT = "urgent"


class Cluster(BaseModel):
    """
    An online-maintained group of similar tickets within one department.

    keywords are fixed when the cluster is opened; centroid and membership
    change on every merge.
    """

    id: Optional[int] = None
    department: str
    keywords: list[str] = Field(default_factory=list)
    centroid_embedding: list[float]
    member_ticket_ids: list[int] = Field(..., min_length=1)

    first_seen: datetime = Field(default_factory=utcnow)
    last_seen: datetime = Field(default_factory=utcnow)
    is_active: bool = True
    alert_sent: bool = False
    incident_ticket_id: Optional[int] = None
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def member_count(self) -> int:
        return len(self.member_ticket_ids)

    class Config:
        json_schema_extra = {
            "example": {
                "id": 7,
                "department": "IT",
                "keywords": ["vpn", "disconnecting", "morning"],
                "centroid_embedding": [0.12, -0.03, 0.44],
                "member_ticket_ids": [1042, 1043, 1051],
                "alert_sent": False,
            }
        }


class IncidentTicket(BaseModel):
    """Aggregate ticket created by escalating a cluster"""

    id: Optional[int] = None
    cluster_id: int
    title: str
    description: str
    status: IncidentStatus = IncidentStatus.OPEN
    priority: IncidentPriority = IncidentPriority.HIGH
    department: str

    # Left for the external incident workflow
    assigned_to: Optional[str] = None
    impacted_users: int = 0
    estimated_resolution: Optional[datetime] = None
    public_statement: Optional[str] = None

    created_by: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    class Config:
        use_enum_values = True


class RecurringIssue(BaseModel):
    """Dashboard view of an active cluster ranked by size"""

    cluster_id: int
    keywords: list[str]
    ticket_count: int
    department: str
    last_seen: datetime
