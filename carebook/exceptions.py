# carebook/exceptions.py
# Error kinds raised by the stores and the booking services.
# Routers never catch these; main.py maps them to HTTP responses.
from fastapi import status


class BookingEngineError(Exception):
    code = "booking_engine_error"
    http_status = status.HTTP_400_BAD_REQUEST
    default_message = "The request could not be processed."

    def __init__(self, message: str = None, **context):
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)

    def to_dict(self) -> dict:
        body = {"error": self.code, "detail": self.message}
        if self.context:
            body["context"] = self.context
        return body


class InvalidScheduleRule(BookingEngineError):
    code = "invalid_schedule_rule"
    default_message = "The schedule rule is malformed."


class BookingInPast(BookingEngineError):
    code = "booking_in_past"
    default_message = "Bookings can only be made for a future date and time."


class SlotUnavailable(BookingEngineError):
    code = "slot_unavailable"
    http_status = status.HTTP_409_CONFLICT
    default_message = "The requested time is not a bookable slot."


class SlotConflict(BookingEngineError):
    code = "slot_conflict"
    http_status = status.HTTP_409_CONFLICT
    default_message = "This slot was just taken. Please refresh availability and choose another time."


class ModificationWindowClosed(BookingEngineError):
    http_status = status.HTTP_409_CONFLICT
    default_message = "Cannot modify within 24 hours of your appointment."


class ReschedulingWindowClosed(ModificationWindowClosed):
    code = "rescheduling_window_closed"


class CancellationWindowClosed(ModificationWindowClosed):
    code = "cancellation_window_closed"


class InvalidTransition(BookingEngineError):
    code = "invalid_transition"
    http_status = status.HTTP_409_CONFLICT
    default_message = "This change is not allowed for the booking's current status."


class LocationNotAssigned(BookingEngineError):
    code = "location_not_assigned"
    http_status = status.HTTP_403_FORBIDDEN
    default_message = "The provider does not practice at this location."


class NotFound(BookingEngineError):
    code = "not_found"
    http_status = status.HTTP_404_NOT_FOUND
    default_message = "The requested resource could not be found."


class PermissionDenied(BookingEngineError):
    code = "permission_denied"
    http_status = status.HTTP_403_FORBIDDEN
    default_message = "You do not have permission to perform this action."


class StoreUnavailable(BookingEngineError):
    code = "store_unavailable"
    http_status = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "The booking store is temporarily unavailable. Nothing was changed."
