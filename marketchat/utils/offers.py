"""
Offer price parsing and formatting utilities.

WHAT: Turn user-entered amounts into validated prices and offer text
WHY: Invalid prices must be rejected locally before any request is made
HOW: Decimal parsing with sign and fraction-digit checks
"""

import re
from decimal import Decimal, InvalidOperation

from ..core.config import settings
from .exceptions import ValidationError
from .logger import get_logger

logger = get_logger(__name__)

MAX_FRACTION_DIGITS = 2

_AMOUNT_PATTERN = re.compile(r'^\s*(?:A?\$\s*)?([0-9]+(?:\.[0-9]*)?|\.[0-9]+)\s*$')


def parse_price(raw: str | int | float | Decimal | None) -> Decimal:
    """
    Parse an offer amount as a positive decimal with at most 2 fraction digits.

    Accepts plain numbers and amounts with a leading `$` or `A$`.

    Args:
        raw: User-entered amount

    Returns:
        Decimal price

    Raises:
        ValidationError: Amount is missing, not a number, not positive,
            or has more than 2 fraction digits
    """
    if raw is None or isinstance(raw, bool):
        raise ValidationError("Please enter a valid offer amount greater than 0", field="price")

    if isinstance(raw, Decimal):
        text = str(raw)
    elif isinstance(raw, float):
        text = repr(raw)
    else:
        text = str(raw)

    match = _AMOUNT_PATTERN.match(text)
    if not match:
        raise ValidationError("Please enter a valid offer amount greater than 0", field="price")

    try:
        price = Decimal(match.group(1))
    except InvalidOperation as e:
        raise ValidationError("Please enter a valid offer amount greater than 0", field="price") from e

    if price <= 0:
        raise ValidationError("Please enter a valid offer amount greater than 0", field="price")

    exponent = price.as_tuple().exponent
    if isinstance(exponent, int) and -exponent > MAX_FRACTION_DIGITS:
        raise ValidationError(
            f"Offer amount can have at most {MAX_FRACTION_DIGITS} decimal places",
            field="price"
        )

    return price


def format_price(price: Decimal) -> str:
    """
    Format a price for offer text: whole amounts without decimals.

    Examples:
        Decimal("50") -> "50", Decimal("49.5") -> "49.50"
    """
    if price == price.to_integral_value():
        return str(price.quantize(Decimal(1)))
    return str(price.quantize(Decimal("0.01")))


def offer_content(price: Decimal, amended: bool = False) -> str:
    """Message text the backend expects for a new or amended offer."""
    verb = "Updated offer" if amended else "Made offer"
    return f"{verb}: {settings.CURRENCY_PREFIX}{format_price(price)}"
