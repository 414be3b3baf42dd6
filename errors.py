"""
Error taxonomy for cart pricing.

Every failure that crosses the resolver or saved-cart boundary is one of:
- EmptyCartError: Resolving or saving an empty cart (user-correctable)
- ValidationError: Blank names, invalid quantities (caught before any request)
- NoAvailableStoresError: No store in the city could price the cart
- PriceServiceUnavailableError: Transport failure, safe to retry
- PriceServiceRejectedError: The server answered with an error status
"""

from typing import Optional


class CartPricingError(Exception):
    """Base class for all cart pricing failures"""

    kind = "error"
    retryable = False

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause

    def __str__(self) -> str:
        return self.message


class ValidationError(CartPricingError, ValueError):
    """Raised for invalid input before any network call"""

    kind = "validation"


class EmptyCartError(ValidationError):
    """Raised when an operation needs at least one cart line"""

    kind = "empty_cart"

    def __init__(self, message: str = "Cart is empty"):
        super().__init__(message)


class NoAvailableStoresError(CartPricingError):
    """Raised when the comparison ran but no store could price the cart"""

    kind = "no_available_stores"

    def __init__(self, city: str, message: Optional[str] = None):
        super().__init__(message or f"No store in '{city}' carries the items in this cart")
        self.city = city


class PriceServiceUnavailableError(CartPricingError):
    """Raised on timeouts, refused connections and malformed payloads"""

    kind = "service_unavailable"
    retryable = True


class PriceServiceRejectedError(CartPricingError):
    """Raised when the server returns an error status"""

    kind = "service_rejected"

    def __init__(self, status: int, message: Optional[str] = None):
        super().__init__(message or f"Price service rejected the request (HTTP {status})")
        self.status = status
        self.server_message = message
