"""Exception types raised by storefront components.

Validation problems are raised before any state change happens. Lookup misses
are never raised; they resolve to documented fallbacks instead. Failures of
external collaborators (shipping-rate provider, exchange-rate API) are
reported as failed result records and logged.
"""


class StorefrontError(Exception):
    """Base class for all storefront errors."""


class CheckoutValidationError(StorefrontError, ValueError):
    """Rejected input: malformed cart item, bad address, bad tariff request.

    Attributes:
        field: Name of the offending field when known.
    """

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field
