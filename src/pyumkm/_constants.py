"""Internal constants shared across the library."""

BASE_URL = "http://localhost:3000"
API_PREFIX = "/api"
USER_AGENT = "pyumkm/0.1"

# ------------------------------------------------------------------
# Catalog resources
# ------------------------------------------------------------------

RESOURCE_PRODUCTS = "products"
RESOURCE_UMKM = "umkm"
RESOURCE_CATEGORIES = "categories"

# Default cache lifetimes in seconds.  Aggregate lists change fastest;
# reference data such as categories is near-static.
DEFAULT_CATEGORIES_TTL: float = 5 * 60
DEFAULT_PRODUCTS_TTL: float = 2 * 60
DEFAULT_UMKM_TTL: float = 3 * 60
DEFAULT_PRODUCT_DETAIL_TTL: float = 5 * 60
DEFAULT_UMKM_DETAIL_TTL: float = 3 * 60

# Prefetch shape for the storefront landing page.
PREFETCH_PRODUCTS_LIMIT = 12
PREFETCH_CATEGORY_LIMIT = 8

# ------------------------------------------------------------------
# Backend error codes
# ------------------------------------------------------------------

VALIDATION_STATUSES: frozenset[int] = frozenset({400, 409, 422})
AUTH_STATUSES: frozenset[int] = frozenset({401, 403})
NOT_FOUND_STATUS = 404

VALIDATION_CODES: frozenset[str] = frozenset(
    {
        "invalid_quantity",
        "insufficient_stock",
        "product_unavailable",
        "validation_error",
    }
)
AUTH_CODES: frozenset[str] = frozenset({"not_authenticated", "session_expired", "forbidden"})
NOT_FOUND_CODES: frozenset[str] = frozenset({"not_found", "cart_item_not_found"})

# Display fallbacks used while a cart line has no product details yet.
UNKNOWN_PRODUCT_NAME = "Unknown Product"
UNKNOWN_UMKM_NAME = "Unknown"

# ------------------------------------------------------------------
# Push channel
# ------------------------------------------------------------------

CART_TABLE = "cart_items"
# Bounds of paho's automatic reconnect backoff, in seconds.
PUSH_RECONNECT_MIN_DELAY = 1
PUSH_RECONNECT_MAX_DELAY = 60
