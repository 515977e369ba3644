"""
Ticket HTTP routes.
Single-ticket creation for callers that do not hold a WebSocket session.
"""

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from bulkdesk.dependencies import get_profile_store, get_ticket_service
from bulkdesk.infrastructure.observability.logging import get_logger
from bulkdesk.models.api.ticket_request import SingleTicketRequest
from bulkdesk.models.api.ticket_response import SingleTicketResponse
from bulkdesk.services.errors import ProfileValidationError
from bulkdesk.services.profile_store import ProfileStore, ProfileStoreError
from bulkdesk.services.ticket_service import TicketService

logger = get_logger(__name__)

router = APIRouter(prefix="/api/tickets", tags=["tickets"])


def _error_response(status_code: int, message: str, full_response=None) -> JSONResponse:
    body = SingleTicketResponse(success=False, error=message, full_response=full_response)
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json", by_alias=True, exclude_none=True),
    )


@router.post("/single", response_model=SingleTicketResponse, response_model_by_alias=True)
async def create_single_ticket(
    request: SingleTicketRequest,
    profile_store: ProfileStore = Depends(get_profile_store),
    ticket_service: TicketService = Depends(get_ticket_service),
):
    """Create one ticket (and optionally send the direct reply) synchronously."""
    if not request.is_complete():
        return _error_response(status.HTTP_400_BAD_REQUEST, "Missing email or profile.")

    try:
        profile = profile_store.require(request.profile_name)
    except ProfileValidationError as e:
        return _error_response(status.HTTP_404_NOT_FOUND, e.message)
    except ProfileStoreError as e:
        logger.error("Profiles unavailable for single ticket", error=str(e))
        return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Could not load profiles.")

    outcome = await ticket_service.create_ticket(profile, request.work_item())
    result = outcome.result

    if not result.success:
        return _error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR, result.error, result.full_response
        )

    logger.info(
        "Single ticket created",
        profile_name=profile.profile_name,
        ticket_number=result.ticket_number,
    )
    return SingleTicketResponse(
        success=True,
        ticket_number=result.ticket_number,
        details=result.details,
        full_response=result.full_response,
    )
