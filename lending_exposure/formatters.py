"""Formatting and conversion utilities."""

from decimal import ROUND_HALF_UP, Context, Decimal, InvalidOperation

from lending_exposure.constants import DECIMAL_PRECISION, PCT_PLACES, SHARES_PLACES, VALUE_PLACES

# Wide context for quantizing: the default (28 digits) cannot hold 18 fractional digits of a large amount.
WIDE_CONTEXT = Context(prec=DECIMAL_PRECISION, rounding=ROUND_HALF_UP)


def as_int(value, *, default: int = 0) -> int:
    """Convert value to int, handling various types."""
    if value is None:
        return default
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        v = value.strip()
        if v.startswith("0x"):
            return int(v, 16)
        return int(v)
    return int(value)


def as_decimal(value) -> Decimal:
    """Convert value to a finite Decimal.

    Floats go through `str` so that `0.1` becomes `Decimal("0.1")`, not its binary expansion.
    Raises ValueError for anything that is not a finite number.
    """
    if value is None or isinstance(value, bool):
        raise ValueError(f"not a number: {value!r}")
    if isinstance(value, Decimal):
        d = value
    elif isinstance(value, int):
        d = Decimal(value)
    elif isinstance(value, float):
        d = Decimal(str(value))
    elif isinstance(value, str):
        try:
            d = Decimal(value.strip())
        except InvalidOperation as ex:
            raise ValueError(f"not a number: {value!r}") from ex
    else:
        raise ValueError(f"not a number: {value!r}")
    if not d.is_finite():
        raise ValueError(f"not a finite number: {value!r}")
    return d


def format_fixed(value: Decimal, places: int) -> str:
    """Round half-up to `places` fractional digits and render without exponent."""
    q = value.quantize(Decimal(1).scaleb(-places), context=WIDE_CONTEXT)
    if q.is_zero():
        # Avoid "-0.00" for tiny negative inputs.
        q = abs(q)
    return f"{q:f}"


def format_shares(value: Decimal) -> str:
    return format_fixed(value, SHARES_PLACES)


def format_value(value: Decimal) -> str:
    return format_fixed(value, VALUE_PLACES)


def format_pct(value: Decimal) -> str:
    return format_fixed(value, PCT_PLACES)


def percent_of(part: Decimal, whole: Decimal) -> Decimal:
    """`part / whole * 100`, or 0 when `whole` is zero."""
    if whole == 0:
        return Decimal(0)
    return WIDE_CONTEXT.multiply(WIDE_CONTEXT.divide(part, whole), Decimal(100))


def format_units(amount: int, decimals: int) -> str:
    """Render an integer token amount with `decimals` fractional digits (exact)."""
    if decimals < 0:
        raise ValueError("decimals must be >= 0")
    return format_fixed(Decimal(amount).scaleb(-decimals, context=WIDE_CONTEXT), decimals)


def short_address(address: str) -> str:
    """Shorten an address for console output: 0x1234abcd...ef5678."""
    if len(address) <= 18:
        return address
    return f"{address[:10]}...{address[-6:]}"


def source_tag(sources: tuple[str, ...] | list[str]) -> str:
    """Bracketed source list, e.g. [direct_holding+custodial_stake]."""
    return f"[{'+'.join(sources)}]"
