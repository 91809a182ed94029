"""
Helpdesk Pattern Detector - Alert Schemas

Defines PatternAlert and SpamDetection records
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from .ticket import utcnow


class AlertType(str, Enum):
    """Kind of pattern alert"""
    THRESHOLD_EXCEEDED = "threshold_exceeded"
    SPAM_DETECTED = "spam_detected"
    UNUSUAL_PATTERN = "unusual_pattern"


class AlertSeverity(str, Enum):
    """Alert severity"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class SpamReason(str, Enum):
    """Why a ticket was flagged"""
    RAPID_SUBMISSION = "rapid_submission"
    DUPLICATE_CONTENT = "duplicate_content"
    SUSPICIOUS_PATTERN = "suspicious_pattern"


class SpamStatus(str, Enum):
    """Review state of a spam detection"""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    DISMISSED = "dismissed"


class PatternAlert(BaseModel):
    """One-time notification that a cluster crossed its department threshold"""

    id: Optional[int] = None
    cluster_id: int
    alert_type: AlertType = AlertType.THRESHOLD_EXCEEDED
    severity: AlertSeverity
    message: str
    department: str

    acknowledged: bool = False
    acknowledged_by: Optional[str] = None
    acknowledged_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)

    class Config:
        use_enum_values = True


class SpamDetection(BaseModel):
    """A ticket flagged as a rapid-fire or duplicate submission"""

    id: Optional[int] = None
    ticket_id: int
    user_id: str
    department: str
    reason: SpamReason
    confidence: int = Field(..., description="0-100")
    status: SpamStatus = SpamStatus.PENDING

    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: float) -> int:
        return max(0, min(100, int(round(value))))

    class Config:
        use_enum_values = True
