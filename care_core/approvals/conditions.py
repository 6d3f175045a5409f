# care_core/approvals/conditions.py
"""
Step conditions as explicit predicates.

A step's `conditions` JSON is a list of {"field", "operator", "value"} objects,
all of which must hold for the step to apply. The legacy object shape
{"minAmount": N, "maxAmount": M} is normalized to amount predicates.
"""
from __future__ import annotations

import operator as op
from dataclasses import dataclass
from numbers import Real
from typing import Any, Callable, Dict, List, Mapping

from care_core.common.exceptions import ValidationError

OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "gte": op.ge,
    "gt": op.gt,
    "lte": op.le,
    "lt": op.lt,
    "eq": op.eq,
    "ne": op.ne,
    "in": lambda actual, expected: actual in expected,
}

LEGACY_KEYS = {
    "minAmount": ("amount", "gte"),
    "maxAmount": ("amount", "lte"),
}

ORDERING_OPERATORS = {"gte", "gt", "lte", "lt"}


def _check_value(field: str, operator: str, value: Any) -> None:
    if operator in ORDERING_OPERATORS and (isinstance(value, bool) or not isinstance(value, Real)):
        raise ValidationError(
            f"Operator '{operator}' expects a numeric value.",
            field=field,
            value=repr(value),
        )
    if operator == "in" and not isinstance(value, (list, tuple)):
        raise ValidationError("Operator 'in' expects a list value.", field=field)


@dataclass(frozen=True)
class Condition:
    field: str
    operator: str
    value: Any

    def evaluate(self, attributes: Mapping[str, Any]) -> bool:
        if self.field not in attributes:
            raise ValidationError(
                f"Missing attribute '{self.field}' required by step condition.",
                field=self.field,
            )
        actual = attributes[self.field]
        try:
            return bool(OPERATORS[self.operator](actual, self.value))
        except TypeError as exc:
            raise ValidationError(
                f"Attribute '{self.field}' cannot be compared with {self.operator}.",
                field=self.field,
            ) from exc

    def as_dict(self) -> dict:
        return {"field": self.field, "operator": self.operator, "value": self.value}


def _parse_one(raw: Any) -> Condition:
    if not isinstance(raw, Mapping):
        raise ValidationError("Condition must be an object.")

    field = raw.get("field")
    operator = raw.get("operator")
    if not field or not isinstance(field, str):
        raise ValidationError("Condition field is required.")
    if operator not in OPERATORS:
        raise ValidationError(f"Unknown condition operator: {operator}.", operator=operator)
    if "value" not in raw:
        raise ValidationError("Condition value is required.", field=field)

    value = raw["value"]
    _check_value(field, operator, value)

    return Condition(field=field, operator=operator, value=value)


def parse_conditions(raw: Any) -> List[Condition]:
    """
    Accepts None, a list of predicate objects, or the legacy minAmount/maxAmount object.
    """
    if raw in (None, "", [], {}):
        return []

    if isinstance(raw, Mapping):
        conditions = []
        for key, value in raw.items():
            if key not in LEGACY_KEYS:
                raise ValidationError(f"Unknown condition key: {key}.", key=key)
            field, operator = LEGACY_KEYS[key]
            _check_value(field, operator, value)
            conditions.append(Condition(field=field, operator=operator, value=value))
        return conditions

    if isinstance(raw, (list, tuple)):
        return [_parse_one(item) for item in raw]

    raise ValidationError("Conditions must be a list or object.")


def normalize_conditions(raw: Any) -> List[dict]:
    """Canonical JSON form stored on ApprovalStep.conditions."""
    return [c.as_dict() for c in parse_conditions(raw)]


def step_applies(conditions: List[Condition], attributes: Mapping[str, Any]) -> bool:
    return all(c.evaluate(attributes) for c in conditions)
