"""Number parsing utilities for Colombian (es-CO) formats."""
import re
from decimal import Decimal, InvalidOperation

CO_NUMBER_PATTERN = re.compile(r"^-?(?:\d{1,3}(?:\.\d{3})+|\d+)(?:,\d+)?$")
NON_NUMERIC_CHARS = re.compile(r"[^\d.,-]")


def parse_co_number(value: str) -> Decimal:
    """
    Parse a number string in Colombian format (e.g., 1.234.567,89 or 4200) to Decimal.

    Rules:
    - Thousands separator: dot (.)
    - Decimal separator: comma (,)
    - Currency symbols and spaces are ignored ("$ 1.500" -> 1500)
    - Strings that are not es-CO formatted fall back to plain parsing
      ("4200.50" -> 4200.50)

    Raises:
        ValueError: if the value is invalid or empty.
    """
    if value is None:
        raise ValueError('Formato inválido. Usá 1.234,56 o 1.234')

    cleaned = NON_NUMERIC_CHARS.sub('', value.strip())
    if not cleaned:
        raise ValueError('Formato inválido. Usá 1.234,56 o 1.234')

    if CO_NUMBER_PATTERN.match(cleaned):
        normalized = cleaned.replace('.', '').replace(',', '.')
    else:
        normalized = cleaned.replace(',', '.')

    try:
        return Decimal(normalized)
    except (InvalidOperation, ValueError):
        raise ValueError('Formato inválido. Usá 1.234,56 o 1.234')


def to_decimal(value, default=None):
    """
    Coerce user or stored input into a Decimal.

    Accepts Decimal, int, float, es-CO formatted strings and None. Blank or
    unparseable values return ``default``. Floats go through ``str`` so that
    0.1 stays 0.1.
    """
    if value is None or isinstance(value, bool):
        return default

    if isinstance(value, Decimal):
        return value if value.is_finite() else default

    if isinstance(value, int):
        return Decimal(value)

    if isinstance(value, float):
        if value != value or value in (float('inf'), float('-inf')):
            return default
        return Decimal(str(value))

    if isinstance(value, str):
        if not value.strip():
            return default
        try:
            return parse_co_number(value)
        except ValueError:
            return default

    return default
