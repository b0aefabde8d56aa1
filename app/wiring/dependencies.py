import logging
from zoneinfo import ZoneInfo

from app.application.ports.calendar import CalendarGatewayPort
from app.application.use_cases.availability import AvailabilityUseCase
from app.application.use_cases.booking import BookingUseCase
from app.core.config import settings
from app.infrastructure.calendar.google_calendar import GoogleCalendarGateway
from app.infrastructure.calendar.mock_calendar import MockCalendarGateway
from app.infrastructure.store.memory_store import MemoryAdvisoryStore
from app.infrastructure.store.supabase_store import SupabaseAdvisoryStore

logger = logging.getLogger(__name__)

_store: MemoryAdvisoryStore | SupabaseAdvisoryStore | None = None
# One gateway per process so the per-advisor refresh locks are shared by all requests.
_calendar: CalendarGatewayPort | None = None


def get_store() -> MemoryAdvisoryStore | SupabaseAdvisoryStore:
    global _store
    if _store is None:
        if settings.STORE_PROVIDER.lower() == "supabase":
            _store = SupabaseAdvisoryStore()
        else:
            logger.info("Using MemoryAdvisoryStore (STORE_PROVIDER=%s)", settings.STORE_PROVIDER)
            _store = MemoryAdvisoryStore()
    return _store


def get_calendar() -> CalendarGatewayPort:
    global _calendar
    if _calendar is None:
        if not settings.GOOGLE_CLIENT_ID and settings.ENV.lower() in {"dev", "local"}:
            logger.info("Using MockCalendarGateway (GOOGLE_CLIENT_ID missing, ENV=dev/local)")
            _calendar = MockCalendarGateway(advisors=get_store())
        else:
            _calendar = GoogleCalendarGateway(advisors=get_store())
    return _calendar


def get_availability_use_case() -> AvailabilityUseCase:
    store = get_store()
    return AvailabilityUseCase(
        advisors=store,
        bookings=store,
        calendar=get_calendar(),
        timezone=ZoneInfo(settings.BUSINESS_TIMEZONE),
        start_hour=settings.AVAILABILITY_START_HOUR,
        end_hour=settings.AVAILABILITY_END_HOUR,
        slot_minutes=settings.SLOT_DURATION_MINUTES,
    )


def get_booking_use_case() -> BookingUseCase:
    store = get_store()
    return BookingUseCase(
        advisors=store,
        bookings=store,
        catalog=store,
        calendar=get_calendar(),
        availability=get_availability_use_case(),
    )


def reset_dependencies() -> None:
    global _store, _calendar
    _store = None
    _calendar = None
