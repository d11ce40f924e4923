"""
Amount parsing and canonical formatting.

Every monetary value entering the kernel passes through ``parse_amount``.
Floats are refused outright: a binary float cannot represent most decimal
amounts exactly, and an amount that differs in the ninth decimal place
hashes differently.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from budget_kernel.exceptions import ValidationError

# Matches the Numeric(38, 9) storage precision
MONEY_DECIMAL_PLACES = 9
ZERO = Decimal("0")


def parse_amount(value: object, field: str = "amount", *, allow_zero: bool = False) -> Decimal:
    """
    Convert an inbound amount to an exact, validated Decimal.

    Preconditions: value is a Decimal, int, or decimal string.
    Postconditions: Returns a finite Decimal > 0 (or >= 0 with allow_zero)
        with at most MONEY_DECIMAL_PLACES fractional digits.

    Raises:
        ValidationError: float/bool input, unparseable text, NaN/Infinity,
            too many decimal places, or a non-positive value.
    """
    if value is None:
        raise ValidationError(field, "is required")
    if isinstance(value, bool) or isinstance(value, float):
        raise ValidationError(field, f"must be an exact decimal, got {type(value).__name__}")
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, str)):
        try:
            amount = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValidationError(field, f"not a decimal number: {value!r}") from None
    else:
        raise ValidationError(field, f"unsupported type {type(value).__name__}")

    if not amount.is_finite():
        raise ValidationError(field, "must be finite")
    if -amount.as_tuple().exponent > MONEY_DECIMAL_PLACES:
        raise ValidationError(
            field, f"more than {MONEY_DECIMAL_PLACES} decimal places"
        )
    if amount < ZERO or (amount == ZERO and not allow_zero):
        raise ValidationError(field, "must be positive")
    return amount


def canonical_amount(amount: Decimal) -> str:
    """
    Plain decimal string without exponent or trailing zeros.

    Decimal("50000.000000000") -> "50000", Decimal("12.50") -> "12.5".
    Storage backends return different scales for the same value; this is
    the form every hash computation uses.
    """
    normalized = amount.normalize()
    if normalized == ZERO:
        return "0"
    return format(normalized, "f")


def round_money(value: Decimal, decimal_places: int = 2) -> Decimal:
    """Round a monetary value for display (ROUND_HALF_UP)."""
    quantize_str = "0." + "0" * decimal_places if decimal_places else "1"
    return value.quantize(Decimal(quantize_str), rounding=ROUND_HALF_UP)
