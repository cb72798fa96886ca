"""
Module: billing_kernel.db.types
Responsibility: Money helpers for invoice amounts.  Centralizes precision,
    rounding, and currency validation so that every model and service uses
    identical definitions.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and modules.  MUST NOT import from any of those layers.

Invariants enforced:
    - round_money() is the only sanctioned rounding function for amounts
      shown on an invoice (2 places, ROUND_HALF_UP).
    - validate_currency() accepts only 3-letter ISO 4217 codes.
    - No floats.  All monetary amounts are Decimal.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def to_decimal(value: object) -> Decimal:
    """
    Coerce an int, str, or Decimal into a Decimal.

    Floats are rejected: their binary representation leaks into amounts.

    Raises:
        ValueError: If the value is a float or not numeric.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (bool, float)):
        raise ValueError(f"Refusing to convert {type(value).__name__} to Decimal: {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"Not a numeric amount: {value!r}") from exc


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the given number of decimal places.

    Args:
        value: The Decimal value to round.
        decimal_places: Number of decimal places to round to.
        rounding: Rounding mode (default: ROUND_HALF_UP).

    Returns:
        Rounded Decimal value.
    """
    quantize_str = "0." + "0" * decimal_places if decimal_places else "1"
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def percent_of(amount: Decimal, rate: Decimal) -> Decimal:
    """Return ``amount * rate / 100`` rounded to cents."""
    return round_money(amount * rate / HUNDRED)


class InvalidCurrencyError(ValueError):
    """Raised when a currency code is not a 3-letter ISO 4217 code."""

    def __init__(self, currency: str):
        self.currency = currency
        super().__init__(f"Invalid ISO 4217 currency code: '{currency}'")


def validate_currency(currency: str) -> str:
    """
    Validate and normalize a currency code.

    Returns:
        The uppercase, trimmed currency code.

    Raises:
        InvalidCurrencyError: If the code is not three ASCII letters.
    """
    if not currency or not isinstance(currency, str):
        raise InvalidCurrencyError(str(currency))

    normalized = currency.upper().strip()
    if len(normalized) != 3 or not normalized.isascii() or not normalized.isalpha():
        raise InvalidCurrencyError(currency)
    return normalized
