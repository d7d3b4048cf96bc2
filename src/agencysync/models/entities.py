"""Business entities that arrive from several sources: clients and team members."""
from datetime import datetime
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


class Client(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    status: str = "active"  # "active", "prospect", "churned"
    industry: Optional[str] = None
    website: Optional[str] = None
    retainer_value: Optional[float] = None
    deal_stage: Optional[str] = None
    notes: Optional[str] = None

    # Provider ids
    hubspot_deal_id: Optional[str] = Field(default=None, unique=True)
    hubspot_company_id: Optional[str] = Field(default=None, unique=True)
    xero_contact_id: Optional[str] = Field(default=None, unique=True)
    monday_item_id: Optional[str] = None

    source: str  # "hubspot", "xero", "monday", "manual", ...
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class ClientAlias(SQLModel, table=True):
    """Alternate name a client is known by in one source."""

    __table_args__ = (UniqueConstraint("alias", "source"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    client_id: int = Field(foreign_key="client.id", index=True)
    alias: str
    source: str
    external_id: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class TeamMember(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    email: Optional[str] = Field(default=None, unique=True)
    role: Optional[str] = None
    division: Optional[str] = None
    annual_salary: Optional[float] = None
    hourly_rate: Optional[float] = None
    monday_user_id: Optional[str] = Field(default=None, unique=True)
    slack_user_id: Optional[str] = Field(default=None, unique=True)
    source: str
    active: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class TeamMemberAlias(SQLModel, table=True):
    """Alternate name a team member is known by in one source."""

    __table_args__ = (UniqueConstraint("alias", "source"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    team_member_id: int = Field(foreign_key="teammember.id", index=True)
    alias: str
    source: str
    external_id: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class MatchRejection(SQLModel, table=True):
    """An operator-rejected match suggestion; suppresses it from future listings."""

    __table_args__ = (UniqueConstraint("entity_kind", "pair_key"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    entity_kind: str  # "client", "team_member"
    pair_key: str  # "<low id>:<high id>"
    rejected_at: datetime = Field(default_factory=datetime.utcnow)
