import json
import logging
import mimetypes
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from .constants import (
    CATALOG_PAGE_SIZE,
    FAVORITES_PAGE_SIZE,
    LOCATIONS_PAGE_SIZE,
    NOTIFICATIONS_PAGE_SIZE,
    InmeroEndpoints,
)
from .http_client import InmeroHttpClient
from .models import (
    AvailableSlot,
    AvailableSlotsResponseBody,
    CatalogEntry,
    ChangePasswordRequestBody,
    ClientConfig,
    Favorite,
    FavoriteCreateRequest,
    ForgotPasswordRequestBody,
    Location,
    LoginRequestBody,
    LoginResponseBody,
    LogoutRequestBody,
    Menu,
    MenuCategory,
    MenuItem,
    OccasionType,
    Page,
    RatingSummary,
    Reservation,
    ReservationMenuItemRequest,
    ReservationRequest,
    ReservationUpdateRequest,
    Review,
    SignupRequestBody,
    UserNotification,
    UserProfile,
)
from .session import SessionStore

logger = logging.getLogger(__name__)


def _json_or_empty(resp) -> Dict[str, Any]:
    if not resp.content:
        return {}
    return resp.json()


class InmeroApiAccess:
    """
    Typed wrappers over the Inmero REST endpoints.

    Login, signup and password reset go through the public client; everything
    else goes through the authenticated client. Transport errors propagate
    untouched.
    """

    @classmethod
    def build(cls, config: ClientConfig, store: SessionStore) -> "InmeroApiAccess":
        return cls(
            public=InmeroHttpClient.build_public(config),
            private=InmeroHttpClient.build_private(config, store),
        )

    def __init__(self, public: InmeroHttpClient, private: InmeroHttpClient):
        self.public = public
        self.private = private

    # --- Users ---

    def login(self, body: LoginRequestBody) -> LoginResponseBody:
        resp = self.public.post_json(InmeroEndpoints.LOGIN.value, body.model_dump())
        return LoginResponseBody(**_json_or_empty(resp))

    def signup(self, body: SignupRequestBody) -> Dict[str, Any]:
        resp = self.public.post_json(InmeroEndpoints.SIGNUP.value, body.model_dump())
        return _json_or_empty(resp)

    def forgot_password(self, body: ForgotPasswordRequestBody) -> Dict[str, Any]:
        resp = self.public.post_json(InmeroEndpoints.FORGOT_PASSWORD.value, body.model_dump())
        return _json_or_empty(resp)

    def logout(self, body: LogoutRequestBody) -> None:
        self.private.post_json(InmeroEndpoints.LOGOUT.value, body.model_dump())

    def change_password(self, body: ChangePasswordRequestBody) -> Dict[str, Any]:
        resp = self.private.post_json(InmeroEndpoints.CHANGE_PASSWORD.value, body.model_dump())
        return _json_or_empty(resp)

    def get_user(self, user_id: int) -> UserProfile:
        resp = self.private.get(InmeroEndpoints.USER.value.format(user_id=user_id))
        return UserProfile(**resp.json())

    def update_user(self, user_id: int, fields: Dict[str, Any]) -> UserProfile:
        resp = self.private.put_json(InmeroEndpoints.USER.value.format(user_id=user_id), fields)
        return UserProfile(**_json_or_empty(resp))

    # --- Reservations ---

    def get_available_slots(self, location_id: int, desired_date: str) -> List[AvailableSlot]:
        resp = self.private.get(
            InmeroEndpoints.AVAILABLE_SLOTS.value,
            params={"location_id": location_id, "desired_date": desired_date},
        )
        return AvailableSlotsResponseBody(**resp.json()).available_slots

    def create_reservation(self, body: ReservationRequest) -> Reservation:
        # comments is omitted rather than sent as null when empty
        resp = self.private.post_json(InmeroEndpoints.RESERVATIONS.value, body.model_dump(exclude_none=True))
        return Reservation(**resp.json())

    def get_reservation(self, reservation_id: int) -> Reservation:
        resp = self.private.get(InmeroEndpoints.RESERVATION.value.format(reservation_id=reservation_id))
        return Reservation(**resp.json())

    def list_reservations(self, user_id: int, limit: int = 10, offset: int = 0) -> Page[Reservation]:
        resp = self.private.get(
            InmeroEndpoints.RESERVATIONS.value,
            params={"user_id": user_id, "limit": limit, "offset": offset},
        )
        return Page[Reservation](**resp.json())

    def update_reservation(self, reservation_id: int, body: ReservationUpdateRequest) -> Reservation:
        resp = self.private.put_json(
            InmeroEndpoints.RESERVATION.value.format(reservation_id=reservation_id),
            body.model_dump(exclude_none=True),
        )
        return Reservation(**resp.json())

    def cancel_reservation(self, reservation_id: int) -> None:
        self.private.delete(InmeroEndpoints.RESERVATION.value.format(reservation_id=reservation_id))

    def list_occasion_types(self, limit: int = CATALOG_PAGE_SIZE, offset: int = 0) -> List[OccasionType]:
        resp = self.private.get(
            InmeroEndpoints.OCCASION_TYPES.value,
            params={"limit": limit, "offset": offset},
        )
        return Page[OccasionType](**resp.json()).data

    def add_reservation_menu_item(self, body: ReservationMenuItemRequest) -> Dict[str, Any]:
        resp = self.private.post_json(InmeroEndpoints.RESERVATION_MENU_ITEMS.value, body.model_dump())
        return _json_or_empty(resp)

    # --- Menu ---

    def list_location_menus(self, location_id: int) -> List[Menu]:
        resp = self.private.get(InmeroEndpoints.LOCATION_MENUS.value.format(location_id=location_id))
        return Page[Menu](**resp.json()).data

    def list_menu_categories(self, menu_id: int) -> List[MenuCategory]:
        resp = self.private.get(InmeroEndpoints.MENU_CATEGORIES.value.format(menu_id=menu_id))
        return Page[MenuCategory](**resp.json()).data

    def list_category_items(self, category_id: int) -> List[MenuItem]:
        resp = self.private.get(InmeroEndpoints.CATEGORY_MENU_ITEMS.value.format(category_id=category_id))
        return Page[MenuItem](**resp.json()).data

    def get_menu_item(self, menu_item_id: int) -> MenuItem:
        resp = self.private.get(InmeroEndpoints.MENU_ITEM.value.format(menu_item_id=menu_item_id))
        return MenuItem(**resp.json())

    # --- Favorites ---

    def list_favorites(self, user_id: int, limit: int = FAVORITES_PAGE_SIZE, offset: int = 0) -> Page[Favorite]:
        resp = self.private.get(
            InmeroEndpoints.LOCATION_FAVORITES.value,
            params={"user_id": user_id, "limit": limit, "offset": offset},
        )
        return Page[Favorite](**resp.json())

    def add_favorite(self, body: FavoriteCreateRequest) -> Favorite:
        resp = self.private.post_json(InmeroEndpoints.LOCATION_FAVORITES.value, body.model_dump())
        return Favorite(**resp.json())

    def remove_favorite(self, favorite_id: int) -> None:
        self.private.delete(InmeroEndpoints.LOCATION_FAVORITE.value.format(favorite_id=favorite_id))

    # --- Notifications ---

    def list_notifications(
        self, user_id: int, limit: int = NOTIFICATIONS_PAGE_SIZE, offset: int = 0
    ) -> Page[UserNotification]:
        resp = self.private.get(
            InmeroEndpoints.USER_NOTIFICATIONS.value.format(user_id=user_id),
            params={"limit": limit, "offset": offset},
        )
        return Page[UserNotification](**resp.json())

    def mark_notification_read(self, user_id: int, notification_id: int) -> None:
        """notification_id is notification.id, not the user_notification id."""
        self.private.put_json(
            InmeroEndpoints.NOTIFICATION_READ.value.format(user_id=user_id, notification_id=notification_id),
            {},
        )

    def mark_all_notifications_read(self, user_id: int) -> None:
        self.private.put_json(InmeroEndpoints.NOTIFICATIONS_READ_ALL.value.format(user_id=user_id), {})

    def delete_notification(self, user_id: int, user_notification_id: int) -> None:
        self.private.delete(
            InmeroEndpoints.NOTIFICATION.value.format(
                user_id=user_id, user_notification_id=user_notification_id
            )
        )

    # --- Restaurants ---

    def list_locations(
        self,
        limit: int = LOCATIONS_PAGE_SIZE,
        offset: int = 0,
        city_id: Optional[int] = None,
        ambience_id: Optional[int] = None,
    ) -> Page[Location]:
        params: Dict[str, Any] = {"limit": limit, "offset": offset}
        if city_id:
            params["city_api_id"] = city_id
        if ambience_id:
            params["ambience_id"] = ambience_id
        resp = self.private.get(InmeroEndpoints.LOCATIONS.value, params=params)
        return Page[Location](**resp.json())

    def get_location(self, location_id: int) -> Location:
        resp = self.private.get(InmeroEndpoints.LOCATION.value.format(location_id=location_id))
        return Location(**resp.json())

    def list_location_types(self, limit: int = CATALOG_PAGE_SIZE, offset: int = 0) -> List[CatalogEntry]:
        resp = self.private.get(InmeroEndpoints.LOCATION_TYPES.value, params={"limit": limit, "offset": offset})
        return Page[CatalogEntry](**resp.json()).data

    def list_ambiences(self, limit: int = CATALOG_PAGE_SIZE, offset: int = 0) -> List[CatalogEntry]:
        resp = self.private.get(
            InmeroEndpoints.LOCATION_AMBIENCES.value, params={"limit": limit, "offset": offset}
        )
        return Page[CatalogEntry](**resp.json()).data

    def get_rating_summary(self, location_id: int) -> RatingSummary:
        resp = self.private.get(InmeroEndpoints.LOCATION_REVIEW_SUMMARY.value.format(location_id=location_id))
        return RatingSummary(**_json_or_empty(resp))

    # --- Reviews ---

    def list_location_reviews(self, location_id: int, limit: int = 10, offset: int = 0) -> Page[Review]:
        resp = self.private.get(
            InmeroEndpoints.LOCATION_REVIEWS.value.format(location_id=location_id),
            params={"limit": limit, "offset": offset},
        )
        return Page[Review](**resp.json())

    def get_review(self, review_id: int) -> Review:
        resp = self.private.get(InmeroEndpoints.REVIEW.value.format(review_id=review_id))
        return Review(**resp.json())

    def create_review(
        self,
        user_id: int,
        location_id: int,
        rating: float,
        review_text: Optional[str] = None,
        photos: Sequence[Path] = (),
    ) -> Dict[str, Any]:
        form: Dict[str, Any] = {"user_id": user_id, "location_id": location_id, "rating": float(rating)}
        if review_text:
            form["review_text"] = review_text
        files = _read_photos(photos)
        resp = self.private.post_multipart(InmeroEndpoints.REVIEWS.value, data=form, files=files or None)
        return _json_or_empty(resp)

    def update_review(
        self,
        review_id: int,
        rating: float,
        review_text: Optional[str] = None,
        keep_photo_ids: Sequence[int] = (),
        photos: Sequence[Path] = (),
    ) -> Dict[str, Any]:
        form: Dict[str, Any] = {"rating": float(rating)}
        if review_text:
            form["review_text"] = review_text
        if keep_photo_ids:
            form["keep_photo_ids"] = json.dumps(list(keep_photo_ids))
        files = _read_photos(photos)
        resp = self.private.put_multipart(
            InmeroEndpoints.REVIEW.value.format(review_id=review_id), data=form, files=files or None
        )
        return _json_or_empty(resp)


def _read_photos(photos: Sequence[Path]) -> List[tuple]:
    """Multipart parts held as bytes, so a resend after a token refresh carries the same content."""
    files = []
    for index, photo in enumerate(photos):
        photo = Path(photo)
        mime_type = mimetypes.guess_type(photo.name)[0] or "image/jpeg"
        files.append(("files", (f"photo_{index}{photo.suffix}", photo.read_bytes(), mime_type)))
    return files
