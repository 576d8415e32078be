from roomstay.modules.availability.checker import (
    AvailabilityChecker,
    DayOccupancy,
    check_window,
    ranges_overlap,
)

__all__ = ["AvailabilityChecker", "DayOccupancy", "check_window", "ranges_overlap"]
