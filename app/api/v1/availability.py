from datetime import date

from fastapi import APIRouter, Depends, Query

from app.api.v1.schemas import AvailabilityDaySchema, TimeSlotSchema
from app.application.use_cases.availability import AvailabilityUseCase
from app.wiring.dependencies import get_availability_use_case

router = APIRouter()


@router.get("/advisors/{advisor_id}/availability", response_model=list[TimeSlotSchema])
def get_availability(
    advisor_id: str,
    day: date = Query(..., alias="date"),
    uc: AvailabilityUseCase = Depends(get_availability_use_case),
):
    return [TimeSlotSchema.from_entity(s) for s in uc.compute_availability(advisor_id, day)]


@router.get("/advisors/{advisor_id}/availability/days", response_model=list[AvailabilityDaySchema])
def get_availability_days(
    advisor_id: str,
    start: date,
    days: int = Query(7, ge=1, le=31),
    uc: AvailabilityUseCase = Depends(get_availability_use_case),
):
    return [
        AvailabilityDaySchema(date=d.date, slots=[TimeSlotSchema.from_entity(s) for s in d.slots])
        for d in uc.compute_availability_days(advisor_id, start, days)
    ]
