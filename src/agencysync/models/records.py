"""
Records that reference a client or team member by foreign key.

Every foreign key declared here must be reassigned by
EntityResolver.merge(); see matching/resolver.py.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


class TimeEntry(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("monday_item_id", "team_member_id", "date"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    client_id: Optional[int] = Field(default=None, foreign_key="client.id", index=True)
    team_member_id: Optional[int] = Field(
        default=None, foreign_key="teammember.id", index=True
    )
    date: datetime
    hours: float
    description: Optional[str] = None
    monday_item_id: Optional[str] = None
    monday_board_id: Optional[str] = None
    is_incomplete: bool = False
    is_overhead: bool = False
    source: str
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class Deliverable(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    client_id: Optional[int] = Field(default=None, foreign_key="client.id", index=True)
    name: str
    status: Optional[str] = None
    due_date: Optional[datetime] = None
    revision_count: int = 0
    monday_item_id: Optional[str] = Field(default=None, unique=True)
    source: str
    created_at: datetime = Field(default_factory=datetime.utcnow)


class DeliverableAssignment(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("deliverable_id", "team_member_id", "role"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    deliverable_id: int = Field(foreign_key="deliverable.id", index=True)
    team_member_id: Optional[int] = Field(
        default=None, foreign_key="teammember.id", index=True
    )
    role: str  # "editor", "animator", "designer", "reviewer"
    assigned_at: datetime = Field(default_factory=datetime.utcnow)


class ClientAssignment(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("client_id", "team_member_id", "role"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    client_id: int = Field(foreign_key="client.id", index=True)
    team_member_id: int = Field(foreign_key="teammember.id", index=True)
    role: str
    is_primary: bool = False


class FinancialRecord(SQLModel, table=True):
    """Monthly money movement for a client. month is "YYYY-MM"."""

    __table_args__ = (UniqueConstraint("client_id", "month", "type", "category"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    client_id: int = Field(foreign_key="client.id", index=True)
    month: str
    type: str  # "retainer", "cost"
    category: Optional[str] = None
    amount: float
    description: Optional[str] = None
    source: str
    external_id: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class CommunicationLog(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    client_id: int = Field(foreign_key="client.id", index=True)
    type: str  # "slack", "email"
    subject: Optional[str] = None
    summary: Optional[str] = None
    date: datetime
    source: str
    external_id: str = Field(unique=True, index=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class MeetingLog(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    client_id: Optional[int] = Field(default=None, foreign_key="client.id", index=True)
    title: str
    date: datetime
    duration_minutes: Optional[int] = None
    summary: Optional[str] = None
    source: str
    external_id: str = Field(unique=True, index=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class MeetingAttendee(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("meeting_id", "email"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    meeting_id: int = Field(foreign_key="meetinglog.id", index=True)
    email: str
    name: Optional[str] = None


class AuditLog(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    action: str
    actor: Optional[str] = None
    entity: Optional[str] = None
    entity_id: Optional[str] = None
    details: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
