"""Domain models for the schedule -> mileage route import tool.

This package contains the dataclasses shared by the parser, the itinerary
builder, the route stitcher and the persistence layer.
"""

from .error_record import ErrorRecord
from .header_mapping import HeaderMapping
from .itinerary import DailyItinerary, Stop
from .route import DayRoute, RouteLeg
from .row_data import CellValue, RawRow
from .schedule_entry import (
    ApiUsageRecord,
    ProcessedFileRecord,
    ProcessingStatus,
    ScheduleEntry,
    UserSettings,
)
from .processing_result import ImportSummary

__all__ = [
    # Input models
    "CellValue",
    "RawRow",
    "HeaderMapping",
    # Intermediate models
    "Stop",
    "DailyItinerary",
    "RouteLeg",
    "DayRoute",
    # Persisted models
    "ScheduleEntry",
    "ProcessingStatus",
    "ProcessedFileRecord",
    "UserSettings",
    "ApiUsageRecord",
    "ErrorRecord",
    # Results
    "ImportSummary",
]
