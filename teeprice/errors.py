"""Exceptions for teeprice."""


class PricingError(Exception):
    """Base exception for pricing and quote errors."""
    pass


class ConfigurationError(PricingError):
    """Raised when a course has no usable base price (or signing key)."""
    pass


class BookingBlockedError(PricingError):
    """Raised when a block override covers the requested tee time."""

    def __init__(self, override_id: str, override_name: str = ""):
        self.override_id = override_id
        self.override_name = override_name
        super().__init__(f"Tee time blocked by override {override_id} ({override_name})")


class QuoteError(PricingError):
    """Base exception for quote verification errors."""
    pass


class ExpiredQuoteError(QuoteError):
    """Raised when a quote is verified after its expires_at."""
    pass


class InvalidQuoteHashError(QuoteError):
    """Raised when a quote's signature does not match its fields."""

    def __init__(self):
        # Never say which field differs.
        super().__init__("Invalid quote")


class ValidationError(PricingError):
    """Raised for malformed requests or records."""
    pass


class RepositoryError(PricingError):
    """Raised when the rule store cannot load or write."""
    pass
