"""Locale service for money and date formatting.

Uses babel with the locale from settings (LOCALE env var, default en_US).
The currency is derived from the locale territory, so en_US formats USD.

Example:
    >>> format_amount(Decimal("25.00"))
    '$25.00'
    >>> format_signed_amount(Decimal("-10.00"))
    '-$10.00'
"""

import logging
from datetime import datetime
from decimal import Decimal

from babel import Locale, UnknownLocaleError
from babel.dates import format_datetime as babel_format_datetime
from babel.numbers import format_currency as babel_format_currency
from babel.numbers import get_territory_currencies

from marketplace.config import settings

logger = logging.getLogger(__name__)

DEFAULT_LOCALE = "en_US"
DEFAULT_CURRENCY = "USD"


def _get_locale() -> str:
    """Get locale from settings with validation and fallback."""
    locale_str = settings.locale or DEFAULT_LOCALE
    try:
        Locale.parse(locale_str)
        return locale_str
    except (UnknownLocaleError, ValueError) as e:
        logger.warning(f"Invalid LOCALE '{locale_str}': {e}. Falling back to '{DEFAULT_LOCALE}'")
        return DEFAULT_LOCALE


def _get_currency_from_locale(locale_str: str) -> str:
    """Derive currency code from locale territory.

    Args:
        locale_str: Locale string (e.g., 'en_US')

    Returns:
        Currency code (e.g., 'USD')
    """
    try:
        territory = Locale.parse(locale_str).territory
        if territory:
            currencies = get_territory_currencies(territory)
            if currencies:
                return currencies[0]
    except (UnknownLocaleError, ValueError) as e:
        logger.warning(f"Could not derive currency from locale '{locale_str}': {e}")

    return DEFAULT_CURRENCY


# Module-level constants (computed once at import)
LOCALE = _get_locale()
CURRENCY = _get_currency_from_locale(LOCALE)


def format_amount(amount: Decimal) -> str:
    """Format a monetary amount according to locale, e.g. '$1,234.56'."""
    return babel_format_currency(amount, CURRENCY, locale=LOCALE)


def format_signed_amount(amount: Decimal) -> str:
    """Format a ledger amount with an explicit sign: '+$25.00' or '-$10.00'."""
    prefix = "+" if amount > 0 else "-" if amount < 0 else ""
    return prefix + format_amount(abs(amount))


def format_date(dt: datetime, format: str = "medium") -> str:
    """Format a datetime for messages sent to users."""
    return babel_format_datetime(dt, format=format, locale=LOCALE)


__all__ = [
    "LOCALE",
    "CURRENCY",
    "format_amount",
    "format_signed_amount",
    "format_date",
]
