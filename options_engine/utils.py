"""
Meridian 1.0 -- Shared utilities.

Provides:
  - Correlation ID generation for request tracing
  - Structured logging helpers
  - Price rounding
  - Calendar helpers (days / years to expiration)

Extension points:
  - Add custom log formatters for different sinks
  - Trading-day (252) instead of calendar-day (365) year fractions
"""

import uuid
import logging
from datetime import date, datetime
from typing import Any, Optional, Union

DAYS_PER_YEAR = 365.0


def generate_correlation_id() -> str:
    """Generate a short unique correlation ID for request tracing.

    Returns an 8-character hex string -- sufficient for log correlation
    within a single dashboard process.
    """
    return uuid.uuid4().hex[:8]


def get_logger(name: str) -> logging.Logger:
    """Return a named logger instance."""
    return logging.getLogger(name)


def log_structured(
    logger: logging.Logger,
    level: int,
    message: str,
    correlation_id: str,
    **fields: Any,
) -> None:
    """Emit a structured log line with correlation ID and key-value fields.

    Example output::

        [abc12345] Strategy evaluated | kind=iron_condor legs=4 breakevens=2
    """
    parts = [f"[{correlation_id}]", message]
    if fields:
        kv = " ".join(f"{k}={v}" for k, v in fields.items() if v is not None)
        if kv:
            parts.append("|")
            parts.append(kv)
    logger.log(level, " ".join(parts))


def round_price(price: float) -> float:
    """Round a stock or options price to the nearest cent."""
    return round(price, 2)


def _as_date(value: Union[str, date, datetime]) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(value.strip(), "%Y-%m-%d").date()
    except ValueError:
        raise ValueError(f"Cannot parse expiration date: '{value}'")


def days_to_expiration(
    expiration: Union[str, date, datetime],
    today: Optional[date] = None,
) -> int:
    """Return whole calendar days from *today* until *expiration*.

    An option expiring today gives zero; expired contracts give a
    negative number.

    Args:
        expiration: ``YYYY-MM-DD`` string, :class:`date` or :class:`datetime`.
        today: Reference date (defaults to :meth:`date.today`).
    """
    expiry = _as_date(expiration)
    reference = today or date.today()
    return (expiry - reference).days


def years_to_expiry(
    expiration: Union[str, date, datetime],
    today: Optional[date] = None,
) -> float:
    """Convert an expiration date into a Black-Scholes time in years.

    Uses calendar days / 365 and never returns a negative value, so an
    expired contract prices at intrinsic value.
    """
    return max(0, days_to_expiration(expiration, today)) / DAYS_PER_YEAR
