from typing import List, Literal

from pydantic import BaseModel, ConfigDict, Field

from ticketdesk.schemas.ticket_schema import TicketRecord


class DistributionRequest(BaseModel):
    is_bulk_upload: bool = Field(default=False, alias="isBulkUpload")
    # Tickets the agent skipped during this session.
    excluded_tickets: List[str] = Field(default_factory=list, alias="excludedTickets")

    model_config = ConfigDict(populate_by_name=True)


class DistributionResponse(BaseModel):
    outcome: Literal["assigned", "no_capacity", "no_tickets", "not_working", "offline"]
    assigned_tickets: List[TicketRecord] = Field(default_factory=list, alias="assignedTickets")
    newly_assigned: List[TicketRecord] = Field(default_factory=list, alias="newlyAssigned")
    archived_count: int = Field(default=0, alias="archivedCount")

    model_config = ConfigDict(populate_by_name=True)


class UploadResponse(BaseModel):
    inserted: int
    updated: int
    escalated: int
    closed: int
    expired: int
    distribution: DistributionResponse

    model_config = ConfigDict(populate_by_name=True)
