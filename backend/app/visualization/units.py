# Unit normalizer.
#
# Turns matched value tokens ("$1,234.56", "8.5%", "3.2x") into NormalizedValue.
# The unit comes from the metric kind, never from the token's symbols.

import math

from app.models.visualization_models import MetricKind, NormalizedValue, ValueUnit


class UnitParseError(ValueError):
    """Raised when a value token does not contain a parseable number."""


UNIT_BY_KIND: dict[MetricKind, ValueUnit] = {
    MetricKind.IMPRESSIONS: ValueUnit.COUNT,
    MetricKind.CLICKS:      ValueUnit.COUNT,
    MetricKind.CONVERSIONS: ValueUnit.COUNT,
    MetricKind.COST:        ValueUnit.CURRENCY,
    MetricKind.SALES:       ValueUnit.CURRENCY,
    MetricKind.CTR:         ValueUnit.PERCENT,
    MetricKind.ROAS:        ValueUnit.RATIO,
}

# ROAS shows up as "850" (8.5x) or "0.085" (8.5%) depending on who typed it.
RENORMALIZED_KINDS = frozenset({MetricKind.ROAS})


MAGNITUDE_SUFFIXES = {"k": 1_000, "m": 1_000_000, "b": 1_000_000_000}


def parse_number(token: str) -> float:
    """
    Strip currency symbols, thousands separators and %/x suffixes, then parse.
    A trailing K/M/B scales the value ("1.2M" -> 1200000).
    """
    cleaned = token.strip().replace("$", "").replace(",", "").replace(" ", "")
    cleaned = cleaned.rstrip("%").rstrip("xX")
    scale = 1
    if cleaned and cleaned[-1].lower() in MAGNITUDE_SUFFIXES:
        scale = MAGNITUDE_SUFFIXES[cleaned[-1].lower()]
        cleaned = cleaned[:-1]
    if not cleaned:
        raise UnitParseError(f"no number in {token!r}")
    try:
        value = float(cleaned)
    except ValueError:
        raise UnitParseError(f"not a number: {token!r}") from None
    if not math.isfinite(value):
        raise UnitParseError(f"not a finite number: {token!r}")
    if scale != 1:
        value = round(value * scale, 6)
    return value


def renormalize_ratio(value: float) -> float:
    # Lossy: a true 0.5x ROAS becomes 50x. Kept for parity with existing templates.
    if value > 100:
        value = value / 100
    elif 0.01 <= value < 1:
        value = value * 100
    return round(value, 2)


def format_value(value: float, unit: ValueUnit) -> str:
    if unit is ValueUnit.CURRENCY:
        return f"${value:,.2f}"
    if unit is ValueUnit.PERCENT:
        return f"{value:,.1f}%"
    if unit is ValueUnit.RATIO:
        return f"{value:,.2f}x"
    if value == int(value):
        return f"{int(value):,}"
    return f"{value:,.2f}"


def normalize(raw_token: str, kind: MetricKind) -> NormalizedValue:
    """
    Return the NormalizedValue for a token read next to a metric of `kind`.
    Raises UnitParseError when the token has no parseable number.
    """
    value = parse_number(raw_token)
    if kind in RENORMALIZED_KINDS:
        value = renormalize_ratio(value)
    unit = UNIT_BY_KIND[kind]
    return NormalizedValue(raw=value, unit=unit, display_hint=format_value(value, unit))
