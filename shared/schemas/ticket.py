"""
Helpdesk Pattern Detector - Ticket Schemas

Defines the inbound HelpdeskTicket handed over by the ticket-ingestion service
"""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field, field_validator


def utcnow() -> datetime:
    """Timezone-aware current UTC time"""
    return datetime.now(timezone.utc)


class Department(str, Enum):
    """Known helpdesk departments (tickets may carry any other string)"""
    IT = "IT"
    HR = "HR"
    FINANCE = "Finance"
    ADMIN = "Admin"
    FACILITIES = "Facilities"


class HelpdeskTicket(BaseModel):
    """
    A ticket as created by the helpdesk.
    This is the unit for spam checks, embeddings and clustering.
    """
    id: int
    department: str
    user_id: str
    title: str
    description: str = ""
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("created_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def fulltext(self) -> str:
        """Text used for normalization and embedding (title + description)"""
        return f"{self.title} {self.description}"

    class Config:
        json_schema_extra = {
            "example": {
                "id": 1042,
                "department": "IT",
                "user_id": "u-alice",
                "title": "VPN keeps disconnecting",
                "description": "Since this morning the VPN drops every few minutes.",
                "created_at": "2025-01-15T10:30:00Z",
            }
        }
