"""pyumkm - Async Python client for the UMKM storefront catalog and cart."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pyumkm")
except PackageNotFoundError:
    __version__ = "0+local"
from pyumkm.cart import CartStateManager
from pyumkm.catalog import CatalogService, FetchResult
from pyumkm.client import UmkmClient
from pyumkm.config import CacheTtlPolicy, UmkmConfig
from pyumkm.exceptions import (
    UmkmApiError,
    UmkmConfigError,
    UmkmError,
    UmkmNetworkError,
    UmkmNotAuthenticatedError,
    UmkmStaleDataError,
    UmkmValidationError,
)
from pyumkm.listener import ChangeNotificationListener
from pyumkm.models import (
    CartLine,
    CartSnapshot,
    Category,
    LineMeta,
    LineStatus,
    Pagination,
    Product,
    Umkm,
)
from pyumkm.session import Session
from pyumkm.state.events import ChangeEvent, ChangeKind

__all__ = [
    "__version__",
    "CacheTtlPolicy",
    "CartLine",
    "CartSnapshot",
    "CartStateManager",
    "CatalogService",
    "Category",
    "ChangeEvent",
    "ChangeKind",
    "ChangeNotificationListener",
    "FetchResult",
    "LineMeta",
    "LineStatus",
    "Pagination",
    "Product",
    "Session",
    "Umkm",
    "UmkmApiError",
    "UmkmClient",
    "UmkmConfig",
    "UmkmConfigError",
    "UmkmError",
    "UmkmNetworkError",
    "UmkmNotAuthenticatedError",
    "UmkmStaleDataError",
    "UmkmValidationError",
]
