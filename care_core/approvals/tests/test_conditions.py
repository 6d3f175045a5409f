import pytest

from care_core.approvals.conditions import Condition, normalize_conditions, parse_conditions, step_applies
from care_core.common.exceptions import ValidationError


def test_legacy_amount_bounds_become_predicates():
    conditions = parse_conditions({"minAmount": 5_000_000, "maxAmount": 20_000_000})

    assert conditions == [
        Condition(field="amount", operator="gte", value=5_000_000),
        Condition(field="amount", operator="lte", value=20_000_000),
    ]
    assert step_applies(conditions, {"amount": 5_000_000})
    assert step_applies(conditions, {"amount": 20_000_000})
    assert not step_applies(conditions, {"amount": 4_999_999})


@pytest.mark.parametrize("raw", [None, "", [], {}])
def test_empty_conditions_always_apply(raw):
    assert parse_conditions(raw) == []
    assert step_applies([], {})


@pytest.mark.parametrize(
    "operator,value,actual,expected",
    [
        ("gt", 100, 101, True),
        ("gt", 100, 100, False),
        ("lt", 100, 99, True),
        ("eq", "SUPPLIES", "SUPPLIES", True),
        ("ne", "SUPPLIES", "SALARY", True),
        ("in", ["CASH", "BANK_TRANSFER"], "CASH", True),
        ("in", ["CASH"], "BANK_TRANSFER", False),
    ],
)
def test_operators(operator, value, actual, expected):
    cond = parse_conditions([{"field": "x", "operator": operator, "value": value}])[0]
    assert cond.evaluate({"x": actual}) is expected


def test_missing_attribute_is_an_error_not_a_skip():
    cond = Condition(field="category", operator="eq", value="SUPPLIES")

    with pytest.raises(ValidationError):
        cond.evaluate({"amount": 10})


def test_incomparable_attribute_is_an_error():
    cond = Condition(field="amount", operator="gte", value=100)

    with pytest.raises(ValidationError):
        cond.evaluate({"amount": "a lot"})


@pytest.mark.parametrize(
    "raw",
    [
        [{"field": "amount", "operator": "between", "value": 1}],
        [{"operator": "gte", "value": 1}],
        [{"field": "amount", "operator": "gte"}],
        [{"field": "amount", "operator": "in", "value": 5}],
        [{"field": "amount", "operator": "gte", "value": "5000000"}],
        [{"field": "amount", "operator": "lt", "value": None}],
        {"maxAmount": "1000000"},
        {"minAmount": False},
        {"minimum": 1},
        ["amount >= 1"],
        42,
    ],
)
def test_malformed_conditions_are_rejected(raw):
    with pytest.raises(ValidationError):
        parse_conditions(raw)


def test_normalized_form_is_a_predicate_list():
    assert normalize_conditions({"minAmount": 1}) == [{"field": "amount", "operator": "gte", "value": 1}]
