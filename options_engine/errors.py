"""
Meridian 1.0 -- Engine exceptions.

All failures raised by the pricing core derive from :class:`PricingError`
so the HTTP layer can map them to responses in one place.  Nothing in the
core substitutes mock values on failure; callers decide what to do.
"""


class PricingError(Exception):
    """Base exception for pricing, Greeks and strategy computation errors."""

    kind = "pricing_error"


class InvalidInputError(PricingError, ValueError):
    """Raised for non-positive price/strike/volatility, negative time, etc."""

    kind = "invalid_input"


class NumericInstabilityError(PricingError):
    """Raised when vega or volatility is too small for a safe division."""

    kind = "numeric_instability"


class NonConvergenceError(PricingError):
    """Raised when the implied volatility solver exhausts its iteration cap."""

    kind = "non_convergence"


class UnknownStrategyError(PricingError):
    """Raised when a request references a strategy template that does not exist."""

    kind = "unknown_strategy"


class UnknownSymbolError(PricingError, KeyError):
    """Raised by a price source that has no quote for the requested symbol."""

    kind = "unknown_symbol"

    def __str__(self) -> str:
        # KeyError.__str__ would wrap the message in quotes
        return Exception.__str__(self)


class NotFoundError(PricingError, KeyError):
    """Raised when a portfolio or position ID does not exist."""

    kind = "not_found"

    def __str__(self) -> str:
        return Exception.__str__(self)
