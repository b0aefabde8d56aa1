import logging

from fastapi import APIRouter, Depends, HTTPException

from app.api.v1.schemas import (
    AuthorizationUrlSchema,
    CalendarStatusSchema,
    ConnectCalendarRequestSchema,
    DisconnectCalendarResponseSchema,
)
from app.application.exceptions import AuthExchangeError
from app.application.ports.calendar import CalendarGatewayPort
from app.wiring.dependencies import get_calendar

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/calendar/authorization-url", response_model=AuthorizationUrlSchema)
def authorization_url(calendar: CalendarGatewayPort = Depends(get_calendar)):
    return AuthorizationUrlSchema(url=calendar.build_authorization_url())


@router.post("/advisors/{advisor_id}/calendar/connect", response_model=CalendarStatusSchema)
def connect_calendar(
    advisor_id: str,
    req: ConnectCalendarRequestSchema,
    calendar: CalendarGatewayPort = Depends(get_calendar),
):
    try:
        tokens = calendar.exchange_code_for_tokens(req.code)
    except AuthExchangeError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if not calendar.persist_credentials(advisor_id, tokens):
        logger.error("Calendar authorized but credentials not saved", extra={"advisor_id": advisor_id})
        raise HTTPException(status_code=500, detail="Calendar authorized but the connection could not be saved. Try again.")

    status = calendar.is_calendar_connected(advisor_id)
    return CalendarStatusSchema(
        connected=status.connected,
        email=status.email,
        last_synced=status.last_synced,
        error=status.error,
    )


@router.get("/advisors/{advisor_id}/calendar/status", response_model=CalendarStatusSchema)
def calendar_status(advisor_id: str, calendar: CalendarGatewayPort = Depends(get_calendar)):
    status = calendar.is_calendar_connected(advisor_id)
    return CalendarStatusSchema(
        connected=status.connected,
        email=status.email,
        last_synced=status.last_synced,
        error=status.error,
    )


@router.delete("/advisors/{advisor_id}/calendar", response_model=DisconnectCalendarResponseSchema)
def disconnect_calendar(advisor_id: str, calendar: CalendarGatewayPort = Depends(get_calendar)):
    if not calendar.revoke_access(advisor_id):
        raise HTTPException(status_code=500, detail="Could not disconnect the calendar")
    return DisconnectCalendarResponseSchema(disconnected=True)
