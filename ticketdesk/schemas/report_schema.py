from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ActiveTicketDetail(BaseModel):
    incident: str = Field(alias="Incident")
    last_assigned_time: datetime = Field(alias="lastAssignedTime")
    elapsed_minutes: float = Field(alias="elapsedTime", description="Minutes since assignment.")

    model_config = ConfigDict(populate_by_name=True)


class AgentPerformance(BaseModel):
    username: str
    total_tickets: int = Field(alias="totalTickets")
    active_tickets: int = Field(alias="activeTickets")
    average_minutes: Optional[float] = Field(default=None, alias="averageTime")
    active_ticket_details: List[ActiveTicketDetail] = Field(default_factory=list, alias="activeTicketDetails")

    model_config = ConfigDict(populate_by_name=True)
