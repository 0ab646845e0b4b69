"""
Menu browsing for preorders: a location's menu, its categories and their items,
plus the item quantities picked before they are attached to a reservation.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Dict, List, Optional, Tuple

from .api_access import InmeroApiAccess
from .errors import InmeroError, MenuUnavailable, SessionExpired
from .models import Menu, MenuCategory, MenuItem, Reservation

logger = logging.getLogger(__name__)

MENU_ITEM_MAX_WORKERS = 5


def format_price(price: Optional[float]) -> str:
    """Colombian peso formatting: $12.500 or $12.500,50."""
    if price is None:
        return "-"
    if float(price).is_integer():
        return "$" + f"{price:,.0f}".replace(",", ".")
    whole, cents = f"{price:,.2f}".split(".")
    return "$" + whole.replace(",", ".") + "," + cents


class PreorderCart:
    """Menu item quantities keyed by item id. Items at zero are dropped."""

    def __init__(self):
        self._quantities: Dict[int, int] = {}

    def change(self, menu_item_id: int, delta: int) -> int:
        quantity = max(0, self._quantities.get(menu_item_id, 0) + delta)
        if quantity == 0:
            self._quantities.pop(menu_item_id, None)
        else:
            self._quantities[menu_item_id] = quantity
        return quantity

    def quantity(self, menu_item_id: int) -> int:
        return self._quantities.get(menu_item_id, 0)

    @property
    def items(self) -> Dict[int, int]:
        return dict(self._quantities)

    @property
    def total_items(self) -> int:
        return sum(self._quantities.values())

    def __len__(self):
        return len(self._quantities)


class MenuCatalog:
    def __init__(self, api_access: InmeroApiAccess):
        self.api_access = api_access

    def load_categories(self, location_id: int) -> Tuple[Menu, List[MenuCategory]]:
        """Categories of the location's first menu. Raises MenuUnavailable when it has none."""
        menus = self.api_access.list_location_menus(location_id)
        if not menus:
            raise MenuUnavailable("Este restaurante no tiene menú disponible")
        menu = menus[0]
        categories = self.api_access.list_menu_categories(menu.id)
        logger.info("Loaded menu %s for location_id=%s: %s categories", menu.id, location_id, len(categories))
        return menu, categories

    def items_for(self, category_id: int) -> List[MenuItem]:
        """Items of one category; an empty list when they cannot be loaded."""
        try:
            return self.api_access.list_category_items(category_id)
        except SessionExpired:
            raise
        except InmeroError as e:
            logger.warning("Could not load items for category_id=%s: %s", category_id, e)
            return []

    def preordered_items(self, reservation: Reservation) -> List[Tuple[MenuItem, int]]:
        """
        Details of the items preordered on a reservation, paired with their
        quantity, in reservation order. Items whose lookup fails are left out.
        """
        entries = [entry for entry in reservation.menu_items if entry.get("menu_item_id") is not None]
        if not entries:
            return []

        details: Dict[int, MenuItem] = {}
        with ThreadPoolExecutor(max_workers=MENU_ITEM_MAX_WORKERS) as executor:
            future_to_id = {
                executor.submit(self.api_access.get_menu_item, item_id): item_id
                for item_id in {entry["menu_item_id"] for entry in entries}
            }
            for future in as_completed(future_to_id):
                item_id = future_to_id[future]
                try:
                    details[item_id] = future.result()
                except SessionExpired:
                    raise
                except InmeroError as e:
                    logger.warning("Menu item %s lookup failed for reservation %s: %s", item_id, reservation.id, e)

        return [
            (details[entry["menu_item_id"]], int(entry.get("quantity") or 0))
            for entry in entries
            if entry["menu_item_id"] in details
        ]
