import logging
from abc import ABC, abstractmethod
from datetime import date, datetime, time, timedelta
from typing import List, Optional

from .constants import MINIMUM_LEAD_TIME_MINUTES
from .models import AvailableSlot, Table

logger = logging.getLogger(__name__)


def format_date_for_api(day: date) -> str:
    """YYYY-MM-DD in local calendar terms; datetimes are truncated to their date."""
    if isinstance(day, datetime):
        day = day.date()
    return day.strftime("%Y-%m-%d")


def parse_slot_time(slot_time: str) -> time:
    hours, minutes = slot_time.split(":")[:2]
    return time(int(hours), int(minutes))


def combine_date_time(day: date, slot_time: str) -> str:
    """Local naive date-time string, YYYY-MM-DDTHH:MM:00, no UTC offset."""
    t = parse_slot_time(slot_time)
    return f"{format_date_for_api(day)}T{t.hour:02d}:{t.minute:02d}:00"


def tables_for_slot(slot: AvailableSlot, number_of_guests: int) -> List[Table]:
    return [table for table in slot.available_tables if table.capacity >= number_of_guests]


def is_slot_selectable(slot: AvailableSlot, number_of_guests: int) -> bool:
    return len(tables_for_slot(slot, number_of_guests)) > 0


def is_slot_in_past(slot_time: str, selected_date: date, now: Optional[datetime] = None) -> bool:
    """
    A slot is past only on the current calendar day, when it starts earlier
    than now plus the minimum lead time. Future dates are never past.
    """
    now = now or datetime.now()
    if isinstance(selected_date, datetime):
        selected_date = selected_date.date()
    if selected_date != now.date():
        return False

    slot_at = datetime.combine(selected_date, parse_slot_time(slot_time))
    minimum_time = now + timedelta(minutes=MINIMUM_LEAD_TIME_MINUTES)
    return slot_at < minimum_time


class AbstractTableSelector(ABC):
    @abstractmethod
    def select(self, slot: AvailableSlot, number_of_guests: int) -> Optional[Table]:
        pass


class TightestFitSelector(AbstractTableSelector):
    """
    Smallest table that still seats the party. When nothing fits, falls back
    to the first table in the slot; callers are expected to have disabled such
    slots already.
    """

    def select(self, slot, number_of_guests):
        candidates = tables_for_slot(slot, number_of_guests)
        if candidates:
            # min() keeps the first of equal capacities, matching a stable sort
            return min(candidates, key=lambda t: t.capacity)

        if slot.available_tables:
            fallback = slot.available_tables[0]
            logger.warning(
                "No table at %s seats %s guests; falling back to table %s (capacity %s)",
                slot.time,
                number_of_guests,
                fallback.table_id,
                fallback.capacity,
            )
            return fallback
        return None
