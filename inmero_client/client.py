import logging
from typing import Optional

from .api_access import InmeroApiAccess
from .auth import AuthManager
from .booking import BookingSelector
from .discovery import DiscoveryManager
from .favorites import FavoritesManager
from .menu import MenuCatalog
from .models import ClientConfig
from .notifications import NotificationsManager
from .session import SessionStore
from .storage import InMemoryStorage, JsonFileStorage, KeyValueStorage

logger = logging.getLogger(__name__)


class InmeroClient:
    """Wires storage, session, transport and the feature managers together."""

    @classmethod
    def build(cls, config: ClientConfig, storage: Optional[KeyValueStorage] = None) -> "InmeroClient":
        if storage is None:
            storage = JsonFileStorage(config.storage_path) if config.storage_path else InMemoryStorage()
        store = SessionStore(storage)
        store.load()
        return cls(config, store, InmeroApiAccess.build(config, store))

    def __init__(self, config: ClientConfig, store: SessionStore, api_access: InmeroApiAccess):
        self.config = config
        self.store = store
        self.api_access = api_access
        self.auth = AuthManager(api_access, store)
        self.favorites = FavoritesManager(api_access)
        self.discovery = DiscoveryManager(api_access)
        self.menu = MenuCatalog(api_access)

    @property
    def storage(self) -> KeyValueStorage:
        return self.store.storage

    @property
    def user_id(self) -> Optional[int]:
        return self.store.user_id

    def booking(self, location_id: int) -> BookingSelector:
        return BookingSelector(self.api_access, location_id, self.user_id)

    def notifications(self) -> NotificationsManager:
        return NotificationsManager(self.api_access, self.user_id)
