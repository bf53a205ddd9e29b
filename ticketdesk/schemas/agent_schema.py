from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ticketdesk.schemas.ticket_schema import _as_utc


class AgentRecord(BaseModel):
    username: str
    is_admin: bool = Field(default=False, alias="isAdmin")
    logged_in: bool = Field(default=False, alias="loggedIn")
    is_working: bool = Field(default=False, alias="isWorking")
    last_assigned_time: Optional[datetime] = Field(default=None, alias="lastAssignedTime")
    last_activity: Optional[datetime] = Field(default=None, alias="lastActivity")
    last_logout_time: Optional[datetime] = Field(default=None, alias="lastLogoutTime")

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    @field_validator("last_assigned_time", "last_activity", "last_logout_time")
    @classmethod
    def _coerce_utc(cls, v):
        return _as_utc(v)


class AgentStatusRequest(BaseModel):
    is_working: bool = Field(..., alias="isWorking")

    model_config = ConfigDict(populate_by_name=True)
