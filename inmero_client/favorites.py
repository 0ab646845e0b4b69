import logging
from typing import Dict, FrozenSet, Iterable, List, Optional

from .api_access import InmeroApiAccess
from .constants import FAVORITES_PAGE_SIZE
from .models import Favorite, FavoriteCreateRequest, ToggleResult

logger = logging.getLogger(__name__)


class FavoriteIndex:
    """
    Immutable location_id <-> favorite_id map. `apply` returns a new index so
    each caller keeps its own copy.
    """

    def __init__(self, favorite_ids: Optional[Dict[int, int]] = None):
        self._by_location: Dict[int, int] = dict(favorite_ids or {})
        self._by_favorite: Dict[int, int] = {fav_id: loc_id for loc_id, fav_id in self._by_location.items()}

    @classmethod
    def from_favorites(cls, favorites: Iterable[Favorite]) -> "FavoriteIndex":
        return cls({fav.location_id: fav.id for fav in favorites})

    @property
    def location_ids(self) -> FrozenSet[int]:
        return frozenset(self._by_location)

    def contains(self, location_id: int) -> bool:
        return location_id in self._by_location

    def favorite_id_for(self, location_id: int) -> Optional[int]:
        return self._by_location.get(location_id)

    def location_id_for(self, favorite_id: int) -> Optional[int]:
        return self._by_favorite.get(favorite_id)

    def apply(self, result: ToggleResult) -> "FavoriteIndex":
        updated = dict(self._by_location)
        if result.action == "added":
            updated[result.location_id] = result.favorite_id
        else:
            updated.pop(result.location_id, None)
        return FavoriteIndex(updated)

    def __len__(self) -> int:
        return len(self._by_location)

    def __contains__(self, location_id) -> bool:
        return self.contains(location_id)

    def __repr__(self) -> str:
        return f"FavoriteIndex({self._by_location!r})"


class FavoritesManager:
    def __init__(self, api_access: InmeroApiAccess):
        self.api_access = api_access

    def list_all(self, user_id: int, page_size: int = FAVORITES_PAGE_SIZE) -> List[Favorite]:
        favorites = []
        offset = 0
        while True:
            page = self.api_access.list_favorites(user_id, limit=page_size, offset=offset)
            favorites.extend(page.data)
            if not page.has_next_page or not page.data:
                break
            offset += len(page.data)
        return favorites

    def rebuild_index(self, user_id: int) -> FavoriteIndex:
        favorites = self.list_all(user_id)
        index = FavoriteIndex.from_favorites(fav for fav in favorites if fav.user_id in (None, user_id))
        logger.info("Rebuilt favorite index for user_id=%s: %s favorites", user_id, len(index))
        return index

    def toggle(self, user_id: int, location_id: int, index: FavoriteIndex) -> ToggleResult:
        """
        Delete the favorite when `index` has one for `location_id`, create it
        otherwise. `index` is left untouched; apply the result to it.
        """
        favorite_id = index.favorite_id_for(location_id)
        if favorite_id is not None:
            self.api_access.remove_favorite(favorite_id)
            logger.info("Removed favorite %s (location_id=%s)", favorite_id, location_id)
            return ToggleResult(action="removed", location_id=location_id, favorite_id=favorite_id)

        favorite = self.api_access.add_favorite(FavoriteCreateRequest(user_id=user_id, location_id=location_id))
        logger.info("Added favorite %s (location_id=%s)", favorite.id, location_id)
        return ToggleResult(action="added", location_id=location_id, favorite_id=favorite.id)
