import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import date, datetime, timedelta
from typing import Dict, List, NamedTuple, Optional, Tuple

from .api_access import InmeroApiAccess
from .constants import DEFAULT_OCCASION_TYPES, DURATION_OPTIONS, InmeroEndpoints
from .errors import (
    ApiError,
    IncompleteSelection,
    InmeroError,
    ReservationFailed,
    SessionExpired,
    ValidationError,
)
from .models import (
    AvailableSlot,
    BookingDraft,
    OccasionType,
    ReservationMenuItemRequest,
    ReservationRequest,
    Table,
)
from .selectors import (
    AbstractTableSelector,
    TightestFitSelector,
    combine_date_time,
    format_date_for_api,
    is_slot_in_past,
    tables_for_slot,
)

logger = logging.getLogger(__name__)

PREORDER_MAX_WORKERS = 5


class SlotOption(NamedTuple):
    slot: AvailableSlot
    tables: List[Table]
    in_past: bool

    @property
    def selectable(self) -> bool:
        return bool(self.tables) and not self.in_past


def build_reservation_payload(
    draft: BookingDraft, location_id: int, user_id: Optional[int]
) -> ReservationRequest:
    if draft.selected_slot is None or draft.selected_table is None:
        raise IncompleteSelection("Selecciona un horario y una mesa")
    if user_id is None:
        raise ValidationError("No se pudo obtener el ID del usuario", field="user_id")

    comments = draft.comments.strip() if draft.comments else ""
    return ReservationRequest(
        user_id=user_id,
        table_id=draft.selected_table.table_id,
        date_time=combine_date_time(draft.date, draft.selected_slot.time),
        number_of_guests=draft.number_of_guests,
        occasion_type_id=draft.occasion_type_id,
        comments=comments or None,
        duration_minutes=draft.duration_minutes,
        location_id=location_id,
    )


def submit_reservation(api_access: InmeroApiAccess, payload: ReservationRequest) -> int:
    """
    POST the reservation and return its id. Backend rejections become
    ReservationFailed carrying the response body, so `user_message` shows the
    backend's detail when there is one. SessionExpired and NetworkError pass
    through unchanged.
    """
    try:
        reservation = api_access.create_reservation(payload)
    except SessionExpired:
        raise
    except ApiError as e:
        logger.error(
            "Reservation failed for location_id=%s table_id=%s: status=%s",
            payload.location_id,
            payload.table_id,
            e.status_code,
        )
        raise ReservationFailed(
            str(e),
            status_code=e.status_code,
            response_body=e.response_body,
            endpoint=e.endpoint,
        ) from e

    logger.info("Created reservation %s at %s", reservation.id, payload.date_time)
    return reservation.id


class BookingSelector:
    """
    Booking flow for one restaurant: a BookingDraft plus the slots loaded for
    its date.

    Slot fetches are tagged with a sequence number; a response that arrives
    after a newer fetch was issued is dropped and `load_slots` returns None.
    Any change of date or guest count clears the selected slot and table.
    """

    def __init__(
        self,
        api_access: InmeroApiAccess,
        location_id: int,
        user_id: Optional[int],
        today: Optional[date] = None,
        table_selector: Optional[AbstractTableSelector] = None,
    ):
        self.api_access = api_access
        self.location_id = location_id
        self.user_id = user_id
        self.table_selector = table_selector or TightestFitSelector()
        self._today = today
        self._lock = threading.Lock()
        self._sequence = 0
        self.draft = BookingDraft(date=self.today())
        self.available_slots: List[AvailableSlot] = []
        self.occasion_types: List[OccasionType] = []

    def today(self) -> date:
        return self._today or date.today()

    def _invalidate(self) -> None:
        # Caller holds the lock
        self._sequence += 1
        self.available_slots = []
        self.draft.clear_selection()

    # --- Query ---

    def set_date(self, day: date) -> None:
        if isinstance(day, datetime):
            day = day.date()
        with self._lock:
            if day == self.draft.date:
                return
            self.draft.date = day
            self._invalidate()

    def shift_date(self, days: int) -> date:
        """Move the draft date; never earlier than today."""
        target = max(self.draft.date + timedelta(days=days), self.today())
        self.set_date(target)
        return target

    def set_guests(self, number_of_guests: int) -> None:
        if number_of_guests < 1:
            raise ValidationError("Número de personas inválido", field="number_of_guests")
        with self._lock:
            if number_of_guests == self.draft.number_of_guests:
                return
            self.draft.number_of_guests = number_of_guests
            self._invalidate()

    def load_slots(self) -> Optional[List[AvailableSlot]]:
        with self._lock:
            self._sequence += 1
            sequence = self._sequence
            desired_date = format_date_for_api(self.draft.date)

        logger.info("Loading slots for location_id=%s date=%s (#%s)", self.location_id, desired_date, sequence)
        try:
            slots = self.api_access.get_available_slots(self.location_id, desired_date)
        except InmeroError:
            with self._lock:
                if sequence != self._sequence:
                    logger.info("Ignoring failed slot fetch #%s for %s; superseded", sequence, desired_date)
                    return None
                self.available_slots = []
            raise

        with self._lock:
            if sequence != self._sequence:
                logger.info("Discarding stale slots #%s for %s", sequence, desired_date)
                return None
            self.available_slots = list(slots)
            self.draft.clear_selection()
        return list(slots)

    def slot_options(self, now: Optional[datetime] = None) -> List[SlotOption]:
        guests = self.draft.number_of_guests
        return [
            SlotOption(
                slot=slot,
                tables=tables_for_slot(slot, guests),
                in_past=is_slot_in_past(slot.time, self.draft.date, now),
            )
            for slot in self.available_slots
        ]

    # --- Selection ---

    def select_slot(self, slot: AvailableSlot, now: Optional[datetime] = None) -> Tuple[AvailableSlot, Table]:
        if is_slot_in_past(slot.time, self.draft.date, now):
            raise IncompleteSelection(f"El horario de las {slot.time} ya no se puede reservar")
        table = self.table_selector.select(slot, self.draft.number_of_guests)
        if table is None:
            raise IncompleteSelection(f"No hay mesas disponibles a las {slot.time}")
        with self._lock:
            self.draft.selected_slot = slot
            self.draft.selected_table = table
        logger.info("Selected %s table_id=%s capacity=%s", slot.time, table.table_id, table.capacity)
        return slot, table

    def set_occasion(self, occasion_type_id: Optional[int]) -> None:
        self.draft.occasion_type_id = occasion_type_id

    def set_duration(self, minutes: int) -> None:
        if minutes not in DURATION_OPTIONS:
            raise ValidationError("Duración inválida", field="duration_minutes")
        self.draft.duration_minutes = minutes

    def set_comments(self, comments: str) -> None:
        self.draft.comments = comments or ""

    def load_occasion_types(self) -> List[OccasionType]:
        """Occasion types from the backend, or the built-in list when that fails."""
        try:
            occasion_types = self.api_access.list_occasion_types()
        except SessionExpired:
            raise
        except InmeroError as e:
            logger.warning("Could not load occasion types, using defaults: %s", e)
            occasion_types = []
        if not occasion_types:
            occasion_types = [OccasionType(**entry) for entry in DEFAULT_OCCASION_TYPES]

        self.occasion_types = occasion_types
        if self.draft.occasion_type_id is None:
            self.draft.occasion_type_id = occasion_types[0].id
        return occasion_types

    # --- Submission ---

    def build_payload(self) -> ReservationRequest:
        with self._lock:
            return build_reservation_payload(self.draft, self.location_id, self.user_id)

    def submit(self) -> int:
        reservation_id = submit_reservation(self.api_access, self.build_payload())
        with self._lock:
            self.draft = BookingDraft(date=self.today())
            self._invalidate()
        return reservation_id

    def preorder(self, reservation_id: int, items: Dict[int, int]) -> List[dict]:
        """
        Attach menu items ({menu_item_id: quantity}) to a reservation. Items are
        posted in parallel; if any fail, ReservationFailed names them after the
        others have been sent.
        """
        bodies = [
            ReservationMenuItemRequest(reservation_id=reservation_id, menu_item_id=item_id, quantity=quantity)
            for item_id, quantity in items.items()
            if quantity > 0
        ]
        if not bodies:
            return []

        results = []
        failures = []
        with ThreadPoolExecutor(max_workers=PREORDER_MAX_WORKERS) as executor:
            future_to_item = {
                executor.submit(self.api_access.add_reservation_menu_item, body): body.menu_item_id
                for body in bodies
            }
            for future in as_completed(future_to_item):
                item_id = future_to_item[future]
                try:
                    results.append(future.result())
                except InmeroError as e:
                    logger.error("Preorder item %s failed for reservation %s: %s", item_id, reservation_id, e)
                    failures.append(item_id)

        if failures:
            raise ReservationFailed(
                f"Preorder failed for menu items {sorted(failures)}",
                endpoint=InmeroEndpoints.RESERVATION_MENU_ITEMS.value,
            )
        logger.info("Preordered %s items for reservation %s", len(results), reservation_id)
        return results
