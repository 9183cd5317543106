import pytest

from app.models.visualization_models import MetricKind, ValueUnit
from app.visualization.units import UnitParseError, format_value, normalize, parse_number


def test_currency_strips_symbol_and_separators():
    value = normalize("$1,234.56", MetricKind.COST)
    assert value.raw == 1234.56
    assert value.unit == ValueUnit.CURRENCY
    assert value.display_hint == "$1,234.56"


def test_unit_follows_metric_kind_not_token():
    assert normalize("5", MetricKind.CTR).unit == ValueUnit.PERCENT
    assert normalize("$20", MetricKind.CLICKS).unit == ValueUnit.COUNT
    assert normalize("3.2x", MetricKind.ROAS).unit == ValueUnit.RATIO
    assert normalize("900", MetricKind.SALES).unit == ValueUnit.CURRENCY


def test_percent_and_count_formatting():
    assert normalize("8.5%", MetricKind.CTR).display_hint == "8.5%"
    count = normalize("10,000", MetricKind.IMPRESSIONS)
    assert count.raw == 10000
    assert count.display_hint == "10,000"


def test_roas_above_100_is_divided():
    assert normalize("850", MetricKind.ROAS).raw == 8.5


def test_roas_fraction_is_multiplied():
    assert normalize("0.085", MetricKind.ROAS).raw == 8.5


def test_roas_in_plain_range_is_rounded_only():
    assert normalize("3.456x", MetricKind.ROAS).raw == 3.46
    assert normalize("1", MetricKind.ROAS).raw == 1.0


def test_renormalization_only_applies_to_roas():
    assert normalize("850", MetricKind.CTR).raw == 850
    assert normalize("0.5%", MetricKind.CTR).raw == 0.5


@pytest.mark.parametrize("token", ["", "$", "n/a", "12abc", "nan", "inf", "%"])
def test_unparseable_tokens_raise(token):
    with pytest.raises(UnitParseError):
        normalize(token, MetricKind.COST)


def test_unit_parse_error_is_value_error():
    with pytest.raises(ValueError):
        parse_number("--")


def test_format_ratio_and_fractional_count():
    assert format_value(4.2, ValueUnit.RATIO) == "4.20x"
    assert format_value(12.5, ValueUnit.COUNT) == "12.50"


def test_magnitude_suffixes():
    assert parse_number("1.2M") == 1200000
    assert parse_number("45k") == 45000
    assert parse_number("2B") == 2000000000
    assert normalize("$4.1K", MetricKind.COST).display_hint == "$4,100.00"
