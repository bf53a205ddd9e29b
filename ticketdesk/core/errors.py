"""Error taxonomy shared by the engine, the store adapter and the API layer."""


class TicketDeskError(Exception):
    """Base class for all domain errors."""


class AgentNotFoundError(TicketDeskError):
    def __init__(self, username: str):
        super().__init__(f"Agent '{username}' not found")
        self.username = username


class AgentNotWorkingError(TicketDeskError):
    def __init__(self, username: str):
        super().__init__(f"Agent '{username}' is not in working status")
        self.username = username


class TicketNotFoundError(TicketDeskError):
    def __init__(self, incident: str):
        super().__init__(f"Ticket '{incident}' not found")
        self.incident = incident


class TicketConflictError(TicketDeskError):
    """The ticket is not in the state the caller expected (already taken, not yours, ...)."""


class DistributionTimeoutError(TicketDeskError):
    """A cycle or batch save ran past its time budget; nothing was committed."""


class StoreError(TicketDeskError):
    """Persistence failure. The surrounding transaction has been rolled back."""
