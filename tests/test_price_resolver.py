import pytest

from price_resolver import PriceResolver

CONDITION = {"Precio": 100, "Dto": 10, "DtoEurosXUd": 0}


@pytest.mark.parametrize("payload", [
    {"conditions": [CONDITION]},
    {"CondicionesTarifa": [CONDITION], "InfoError": {"Codigo": 0}},
    [CONDITION],
    CONDITION,
])
def test_shape_invariance(payload):
    result = PriceResolver().resolve(payload)
    assert result.found
    assert result.base_price == 100
    assert result.effective_price == 90


def test_skips_non_positive_price_and_keeps_scanning():
    payload = [{"Precio": 0, "Dto": 50}, {"Precio": -5}, {"Precio": "abc"}, {"Precio": 40, "DtoEurosXUd": 5}]
    result = PriceResolver().resolve(payload)
    assert result.found
    assert result.base_price == 40
    assert result.effective_price == 35


def test_first_match_wins_over_cheaper_later_condition():
    result = PriceResolver().resolve([{"Precio": 50}, {"Precio": 10}])
    assert result.base_price == 50
    assert result.effective_price == 50


def test_percent_discount_takes_precedence():
    result = PriceResolver().resolve({"Precio": 20, "Dto": 25, "DtoEurosXUd": 1})
    assert result.effective_price == 15


@pytest.mark.parametrize("payload", [None, [], {"CondicionesTarifa": []}, "garbage", [1, 2]])
def test_nothing_found(payload):
    result = PriceResolver().resolve(payload)
    assert not result.found
    assert result.base_price is None and result.effective_price is None


def test_price_with_letters_is_not_numeric():
    result = PriceResolver().resolve([{"Precio": "v2"}, {"Precio": "12abc"}, {"Precio": "7,50"}])
    assert result.base_price == 7.5
