import logging

from fastapi import HTTPException

from ticketdesk.core.errors import (
    AgentNotFoundError,
    AgentNotWorkingError,
    DistributionTimeoutError,
    StoreError,
    TicketConflictError,
    TicketDeskError,
    TicketNotFoundError,
)

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR = (
    (AgentNotFoundError, 404),
    (TicketNotFoundError, 404),
    (AgentNotWorkingError, 400),
    (TicketConflictError, 409),
    (DistributionTimeoutError, 503),
)


def to_http_error(exc: TicketDeskError) -> HTTPException:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    if isinstance(exc, StoreError):
        return HTTPException(status_code=500, detail="Storage error, please try again")
    logger.error("Unmapped domain error: %s", exc)
    return HTTPException(status_code=500, detail="Internal server error")
