from enum import Enum


INMERO_BASE_URL = "https://api.inmero.co/restpaid"

# Timeouts (connect, read) in seconds
PUBLIC_REQUEST_TIMEOUT = (5, 10)
PRIVATE_REQUEST_TIMEOUT = (5, 15)

DEFAULT_TOKEN_TYPE = "bearer"

# Slots starting sooner than this on the current day cannot be booked
MINIMUM_LEAD_TIME_MINUTES = 30

GUEST_OPTIONS = (1, 2, 3, 4, 5, 6, 7, 8)
DURATION_OPTIONS = (30, 60, 90, 120)
DEFAULT_DURATION_MINUTES = 120
DEFAULT_NUMBER_OF_GUESTS = 2

# Used when /reservation/occasion_types/ cannot be loaded
DEFAULT_OCCASION_TYPES = (
    {"id": 1, "name": "Cumpleaños"},
    {"id": 2, "name": "Aniversario"},
    {"id": 3, "name": "Cita Romántica"},
    {"id": 4, "name": "Reunión de Negocios"},
    {"id": 5, "name": "Cena Familiar"},
)

FAVORITES_PAGE_SIZE = 100
NOTIFICATIONS_PAGE_SIZE = 10
LOCATIONS_PAGE_SIZE = 50
CATALOG_PAGE_SIZE = 10

NEARBY_MAX_DISTANCE_KM = 15
NEARBY_LIMIT = 5


class InmeroEndpoints(Enum):
    LOGIN = "/users/login"
    SIGNUP = "/users/signup"
    FORGOT_PASSWORD = "/users/forgot-password"
    CHANGE_PASSWORD = "/users/change-password"
    LOGOUT = "/users/logout"
    USER = "/users/users/{user_id}"
    REFRESH = "/auth/refresh"
    RESERVATIONS = "/reservation/reservations/"
    RESERVATION = "/reservation/reservations/{reservation_id}"
    AVAILABLE_SLOTS = "/reservation/reservations/available_slots"
    OCCASION_TYPES = "/reservation/occasion_types/"
    RESERVATION_MENU_ITEMS = "/reservation/reservation_menu_items/"
    LOCATION_MENUS = "/menu/menus/{location_id}/by-location"
    MENU_CATEGORIES = "/menu/menu-categories/{menu_id}/by-menu"
    CATEGORY_MENU_ITEMS = "/menu/menu-items/{category_id}/by-category"
    MENU_ITEM = "/menu/menu-items/{menu_item_id}"
    LOCATION_FAVORITES = "/restaurants/location_favorites/"
    LOCATION_FAVORITE = "/restaurants/location_favorites/{favorite_id}"
    LOCATIONS = "/restaurants/locations/"
    LOCATION = "/restaurant/locations/{location_id}"
    LOCATION_TYPES = "/restaurants/location_types/"
    LOCATION_AMBIENCES = "/restaurants/location_ambiences/"
    LOCATION_REVIEWS = "/review/reviews/location/{location_id}"
    LOCATION_REVIEW_SUMMARY = "/review/reviews/location/{location_id}/summary"
    REVIEWS = "/review/reviews/"
    REVIEW = "/review/reviews/{review_id}"
    USER_NOTIFICATIONS = "/notifications/user_notifications/user/{user_id}"
    NOTIFICATION_READ = "/notifications/user_notifications/user/{user_id}/notification/{notification_id}/read"
    NOTIFICATIONS_READ_ALL = "/notifications/user_notifications/user/{user_id}/read_all"
    NOTIFICATION = "/notifications/user_notifications/user/{user_id}/notification/{user_notification_id}"


class StorageKeys(Enum):
    ACCESS_TOKEN = "restpaid_access_token"
    REFRESH_TOKEN = "restpaid_refresh_token"
    TOKEN_TYPE = "restpaid_token_type"
    USERNAME = "restpaid_username"
    USER_ID = "restpaid_user_id"
    USER_EMAIL = "restpaid_user_email"
    PERMISSIONS_ASKED = "@permissions_asked"
    LAST_LOGIN_EMAIL = "@last_login_email_restpaid"
    USER_LOCATION = "@user_location"


SESSION_KEYS = (
    StorageKeys.ACCESS_TOKEN,
    StorageKeys.REFRESH_TOKEN,
    StorageKeys.TOKEN_TYPE,
    StorageKeys.USERNAME,
    StorageKeys.USER_ID,
    StorageKeys.USER_EMAIL,
)
