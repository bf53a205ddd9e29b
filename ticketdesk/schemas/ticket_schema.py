from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

Category = Literal["K1", "K2", "K3"]
Level = Literal["L1", "L2", "L3", "L4", "L5", "L6", "L7"]
TicketStatus = Literal["Open", "Active", "Completed", "Pending"]
ArchiveAction = Literal["Closed", "Expired"]


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _normalize_ttr(value) -> str:
    if value is None or value == "":
        return "00:00:00"
    if isinstance(value, (int, float)):
        # Older uploads carried TTR as a plain number of minutes.
        total_seconds = int(round(float(value) * 60))
        hours, rest = divmod(total_seconds, 3600)
        minutes, seconds = divmod(rest, 60)
        return f"{hours:02d}:{minutes:02d}:{seconds:02d}"
    parts = str(value).strip().split(":")
    if len(parts) == 2:
        parts.append("00")
    if len(parts) != 3 or not all(p.strip().isdigit() for p in parts):
        raise ValueError(f"TTR must look like HH:MM:SS, got {value!r}")
    hours, minutes, seconds = (int(p) for p in parts)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


class TicketRecord(BaseModel):
    """Canonical live-ticket shape used by the engine and returned by the API.

    Field aliases are the document field names agents and uploads have always used.
    """

    incident: str = Field(alias="Incident", min_length=1)
    sid: Optional[str] = Field(default=None, alias="SID")
    ttr: str = Field(default="00:00:00", alias="TTR")
    category: Category
    level: Level = "L1"
    status: TicketStatus = "Open"
    assigned_to: Optional[str] = Field(default=None, alias="assignedTo")
    handled_by: Optional[str] = Field(default=None, alias="handledBy")
    last_assigned_time: Optional[datetime] = Field(default=None, alias="lastAssignedTime")
    last_updated: Optional[datetime] = Field(default=None, alias="lastUpdated")

    detail_case: Optional[str] = Field(default=None, alias="Detail Case")
    analisa: Optional[str] = Field(default=None, alias="Analisa")
    escalation_level: Optional[str] = Field(default=None, alias="Escalation Level")

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    @field_validator("ttr", mode="before")
    @classmethod
    def _coerce_ttr(cls, v):
        return _normalize_ttr(v)

    @field_validator("last_assigned_time", "last_updated")
    @classmethod
    def _coerce_utc(cls, v):
        return _as_utc(v)


class ClosedTicketResponse(BaseModel):
    incident: str = Field(serialization_alias="Incident")
    category: Optional[str] = None
    level: Optional[str] = None
    status: Optional[str] = None
    assigned_to: Optional[str] = Field(default=None, serialization_alias="assignedTo")
    handled_by: Optional[str] = Field(default=None, serialization_alias="handledBy")
    last_assigned_time: Optional[datetime] = Field(default=None, serialization_alias="lastAssignedTime")
    detail_case: Optional[str] = Field(default=None, serialization_alias="Detail Case")
    analisa: Optional[str] = Field(default=None, serialization_alias="Analisa")
    escalation_level: Optional[str] = Field(default=None, serialization_alias="Escalation Level")
    action: ArchiveAction
    details: str
    closed_at: datetime = Field(serialization_alias="closedAt")

    model_config = ConfigDict(from_attributes=True)


class TicketLogResponse(BaseModel):
    ticket_id: str = Field(serialization_alias="ticketId")
    username: str
    action: str
    details: Optional[str] = None
    level: Optional[str] = None
    timestamp: datetime

    model_config = ConfigDict(from_attributes=True)


class TicketUploadRow(BaseModel):
    incident: str = Field(alias="Incident", min_length=1, max_length=64)
    sid: Optional[str] = Field(default=None, alias="SID")
    ttr: str = Field(default="00:00:00", alias="TTR")
    # Empty means "look the SID up in the category filters".
    category: Optional[Category] = None

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("incident")
    @classmethod
    def _strip_incident(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Incident must not be blank")
        return v

    @field_validator("category", mode="before")
    @classmethod
    def _blank_category(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("ttr", mode="before")
    @classmethod
    def _coerce_ttr(cls, v):
        return _normalize_ttr(v)


class TicketUploadRequest(BaseModel):
    tickets: List[TicketUploadRow] = Field(..., min_length=1)


class CompleteTicketRequest(BaseModel):
    detail_case: str = Field(..., alias="Detail Case", min_length=1)
    analisa: str = Field(..., alias="Analisa", min_length=1)
    escalation_level: str = Field(..., alias="Escalation Level", min_length=1, max_length=64)

    model_config = ConfigDict(populate_by_name=True)
