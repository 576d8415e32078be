from roomstay.modules.bookings.manager import BookingManager, generate_booking_number
from roomstay.modules.bookings.state import ALLOWED_TRANSITIONS, can_transition, transition

__all__ = [
    "ALLOWED_TRANSITIONS",
    "BookingManager",
    "can_transition",
    "generate_booking_number",
    "transition",
]
