from fastapi import APIRouter, Depends, HTTPException

from app.api.v1.schemas import (
    BookingSchema,
    CreateBookingRequestSchema,
    RescheduleBookingRequestSchema,
    TimeSlotSchema,
)
from app.application.exceptions import NotFoundError, SlotConflictError
from app.application.use_cases.booking import BookingUseCase
from app.wiring.dependencies import get_booking_use_case

router = APIRouter()


def _conflict(e: SlotConflictError) -> HTTPException:
    return HTTPException(
        status_code=409,
        detail={
            "message": str(e),
            "free_slots": [TimeSlotSchema.from_entity(s).model_dump(mode="json") for s in e.free_slots],
        },
    )


@router.post("/bookings", response_model=BookingSchema, status_code=201)
def create_booking(
    req: CreateBookingRequestSchema,
    uc: BookingUseCase = Depends(get_booking_use_case),
):
    try:
        booking = uc.create_booking(
            company_id=req.company_id,
            advisor_id=req.advisor_id,
            session_id=req.session_id,
            start=req.start_time,
            end=req.end_time,
            created_by=req.created_by,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except SlotConflictError as e:
        raise _conflict(e)
    return BookingSchema.from_entity(booking)


@router.post("/bookings/{booking_id}/cancel", response_model=BookingSchema)
def cancel_booking(booking_id: str, uc: BookingUseCase = Depends(get_booking_use_case)):
    try:
        booking = uc.cancel_booking(booking_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return BookingSchema.from_entity(booking)


@router.patch("/bookings/{booking_id}", response_model=BookingSchema)
def reschedule_booking(
    booking_id: str,
    req: RescheduleBookingRequestSchema,
    uc: BookingUseCase = Depends(get_booking_use_case),
):
    try:
        booking = uc.reschedule_booking(booking_id, req.start_time, req.end_time)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except SlotConflictError as e:
        raise _conflict(e)
    return BookingSchema.from_entity(booking)


@router.get("/advisors/{advisor_id}/bookings", response_model=list[BookingSchema])
def advisor_bookings(advisor_id: str, uc: BookingUseCase = Depends(get_booking_use_case)):
    return [BookingSchema.from_entity(b) for b in uc.list_advisor_bookings(advisor_id)]


@router.get("/companies/{company_id}/bookings", response_model=list[BookingSchema])
def company_bookings(company_id: str, uc: BookingUseCase = Depends(get_booking_use_case)):
    return [BookingSchema.from_entity(b) for b in uc.list_company_bookings(company_id)]
