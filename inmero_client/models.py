import os
import re
from datetime import date
from typing import Any, Dict, Generic, List, Literal, Optional, Tuple, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .constants import (
    DEFAULT_DURATION_MINUTES,
    DEFAULT_NUMBER_OF_GUESTS,
    DEFAULT_TOKEN_TYPE,
    INMERO_BASE_URL,
    PRIVATE_REQUEST_TIMEOUT,
    PUBLIC_REQUEST_TIMEOUT,
)

T = TypeVar("T")

_SLOT_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::\d{2})?$")


class ClientConfig(BaseModel):
    base_url: str = INMERO_BASE_URL
    public_timeout: Tuple[int, int] = PUBLIC_REQUEST_TIMEOUT
    private_timeout: Tuple[int, int] = PRIVATE_REQUEST_TIMEOUT
    storage_path: Optional[str] = None
    sentry_dsn: Optional[str] = None

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, base_url: str) -> str:
        return base_url.rstrip("/")

    @classmethod
    def from_env(cls) -> "ClientConfig":
        """Build config from INMERO_BASE_URL, INMERO_STORAGE_PATH and SENTRY_DSN."""
        return cls(
            base_url=os.getenv("INMERO_BASE_URL", INMERO_BASE_URL),
            storage_path=os.getenv("INMERO_STORAGE_PATH") or None,
            sentry_dsn=os.getenv("SENTRY_DSN") or None,
        )


# --- Session ---


class TokenClaims(BaseModel):
    """Claims read (unverified) from the middle segment of an access token."""
    model_config = ConfigDict(extra="allow", frozen=True)

    user_id: Optional[int] = None
    exp: Optional[int] = None

    def is_expired(self, now: float) -> bool:
        # Exactly-equal counts as expired
        return self.exp is None or self.exp <= now


class Session(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = DEFAULT_TOKEN_TYPE
    user_id: Optional[int] = None
    username: Optional[str] = None
    email: Optional[str] = None


# --- Auth (/users/*, /auth/refresh) ---


class LoginRequestBody(BaseModel):
    email_or_document_number: str
    password: str


class LoginUser(BaseModel):
    model_config = ConfigDict(extra="allow")
    id: Optional[int] = None
    email: Optional[str] = None
    username: Optional[str] = None


class LoginResponseBody(BaseModel):
    model_config = ConfigDict(extra="allow")
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    token_type: Optional[str] = None
    user: Optional[LoginUser] = None


class RefreshResponseBody(BaseModel):
    model_config = ConfigDict(extra="allow")
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    token_type: Optional[str] = None


class SignupRequestBody(BaseModel):
    first_name: str
    second_name: Optional[str] = None
    first_last_name: str
    second_last_name: Optional[str] = None
    document_type_id: int = 1
    document_number: str
    email: str
    gender_id: int = 1
    password: str
    confirm_password: str


class ForgotPasswordRequestBody(BaseModel):
    email: str


class ChangePasswordRequestBody(BaseModel):
    current_password: str
    new_password: str
    confirm_password: str


class LogoutRequestBody(BaseModel):
    refresh_token: str


class UserProfile(BaseModel):
    model_config = ConfigDict(extra="allow")
    id: Optional[int] = None
    first_name: Optional[str] = None
    second_name: Optional[str] = None
    first_last_name: Optional[str] = None
    second_last_name: Optional[str] = None
    email: Optional[str] = None
    document_type_id: Optional[int] = None
    document_number: Optional[str] = None
    gender_id: Optional[int] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.first_last_name or ''}".strip()


# --- Pagination ---


class Page(BaseModel, Generic[T]):
    """List endpoints answer with {data: [...], meta: {...}}."""
    model_config = ConfigDict(extra="allow")
    data: List[T] = []
    meta: Dict[str, Any] = {}

    @property
    def has_next_page(self) -> bool:
        return bool(self.meta.get("hasNextPage") or self.meta.get("has_next_page"))


# --- Availability & booking ---


class Table(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)
    table_id: int
    capacity: int
    table_number: Optional[int | str] = None


class AvailableSlot(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)
    time: str  # HH:MM
    available_tables: Tuple[Table, ...] = ()

    @field_validator("time")
    @classmethod
    def validate_time(cls, time: str) -> str:
        match = _SLOT_TIME_RE.match(time.strip())
        if not match:
            raise ValueError("Slot time must be HH:MM")
        hours, minutes = int(match.group(1)), int(match.group(2))
        if hours > 23 or minutes > 59:
            raise ValueError("Slot time must be HH:MM")
        return f"{hours:02d}:{minutes:02d}"


class AvailableSlotsResponseBody(BaseModel):
    model_config = ConfigDict(extra="allow")
    available_slots: List[AvailableSlot] = []


class BookingDraft(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    date: date
    number_of_guests: int = Field(default=DEFAULT_NUMBER_OF_GUESTS, ge=1)
    selected_slot: Optional[AvailableSlot] = None
    selected_table: Optional[Table] = None
    occasion_type_id: Optional[int] = None
    duration_minutes: int = DEFAULT_DURATION_MINUTES
    comments: str = ""

    def clear_selection(self) -> None:
        self.selected_slot = None
        self.selected_table = None


class ReservationRequest(BaseModel):
    user_id: int
    table_id: int
    date_time: str  # YYYY-MM-DDTHH:MM:00, no offset
    number_of_guests: int
    occasion_type_id: Optional[int] = None
    comments: Optional[str] = None
    duration_minutes: int
    location_id: int


class ReservationUpdateRequest(BaseModel):
    table_id: Optional[int] = None
    date_time: Optional[str] = None
    number_of_guests: Optional[int] = None
    occasion_type_id: Optional[int] = None
    comments: Optional[str] = None
    duration_minutes: Optional[int] = None
    status: Optional[str] = None


class Reservation(BaseModel):
    model_config = ConfigDict(extra="allow")
    id: int
    user_id: Optional[int] = None
    location_id: Optional[int] = None
    table_id: Optional[int] = None
    date_time: Optional[str] = None
    number_of_guests: Optional[int] = None
    status: Optional[str] = None
    menu_items: List[Dict[str, Any]] = []


class OccasionType(BaseModel):
    model_config = ConfigDict(extra="allow")
    id: int
    name: str


class ReservationMenuItemRequest(BaseModel):
    reservation_id: int
    menu_item_id: int
    quantity: int = Field(ge=1)


# --- Favorites ---


class Favorite(BaseModel):
    model_config = ConfigDict(extra="allow")
    id: int
    location_id: int
    user_id: Optional[int] = None


class FavoriteCreateRequest(BaseModel):
    user_id: int
    location_id: int


class ToggleResult(BaseModel):
    model_config = ConfigDict(frozen=True)
    action: Literal["added", "removed"]
    location_id: int
    favorite_id: Optional[int] = None


# --- Notifications ---


class UserNotification(BaseModel):
    """`id` is the user_notification id; `notification_id` the shared notification."""
    model_config = ConfigDict(extra="allow")
    id: int
    notification_id: Optional[int] = None
    is_read: bool = False
    title: Optional[str] = None
    message: Optional[str] = None
    created_at: Optional[str] = None


# --- Restaurants ---


class Location(BaseModel):
    model_config = ConfigDict(extra="allow")
    id: int
    name: Optional[str] = None
    address: Optional[str] = None
    city_name: Optional[str] = None
    location_types: List[Dict[str, Any]] = []
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    distance_km: Optional[float] = None
    distance_label: Optional[str] = None
    rating: float = 0
    total_reviews: int = 0


class CatalogEntry(BaseModel):
    """Location types and ambiences share this shape."""
    model_config = ConfigDict(extra="allow")
    id: int
    name: Optional[str] = None


class RatingSummary(BaseModel):
    model_config = ConfigDict(extra="allow")
    average_rating: float = 0
    total_reviews_count: int = 0


class Coordinates(BaseModel):
    latitude: float
    longitude: float
    city_id: Optional[int] = None


# --- Menu ---


class Menu(BaseModel):
    model_config = ConfigDict(extra="allow")
    id: int
    name: Optional[str] = None
    location_id: Optional[int] = None


class MenuCategory(BaseModel):
    model_config = ConfigDict(extra="allow")
    id: int
    name: Optional[str] = None
    menu_id: Optional[int] = None


class MenuItem(BaseModel):
    """`price` arrives as a decimal string on some endpoints."""
    model_config = ConfigDict(extra="allow")
    id: int
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = None
    category_id: Optional[int] = None
    photos: List[Dict[str, Any]] = []


# --- Reviews ---


class ReviewPhoto(BaseModel):
    model_config = ConfigDict(extra="allow")
    id: int
    url: Optional[str] = None


class Review(BaseModel):
    model_config = ConfigDict(extra="allow")
    id: int
    user_id: Optional[int] = None
    location_id: Optional[int] = None
    rating: float = 0
    review_text: Optional[str] = None
    photos: List[ReviewPhoto] = []
