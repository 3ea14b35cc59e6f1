"""Translate facet tagged values into JSON Schema constraints."""

from __future__ import annotations

import math
from typing import Any, Dict, List, Optional, Tuple

from schema_nodes import Number, SchemaNode
from uml_model import ModelElement

# facet name -> (precedence rank, exclusive); lower rank wins
LOWER_BOUND_FACETS: Dict[str, Tuple[int, bool]] = {
    "minimum": (0, False),
    "exclusiveminimum": (0, True),
    "mininclusive": (1, False),
    "minexclusive": (1, True),
}
UPPER_BOUND_FACETS: Dict[str, Tuple[int, bool]] = {
    "maximum": (0, False),
    "exclusivemaximum": (0, True),
    "maxinclusive": (1, False),
    "maxexclusive": (1, True),
}

Bound = Tuple[int, Number, bool]


def parse_integer(value: str) -> Optional[int]:
    try:
        return int(value)
    except ValueError:
        return None


def parse_number(value: str) -> Optional[Number]:
    try:
        return int(value)
    except ValueError:
        pass
    try:
        number = float(value)
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    return number


def parse_digit_count(value: str) -> Optional[int]:
    number = parse_number(value)
    if number is None or number != int(number):
        return None
    return int(number)


def anchor_pattern(pattern: str) -> str:
    if not pattern.startswith("^"):
        pattern = "^" + pattern
    if not pattern.endswith("$"):
        pattern = pattern + "$"
    return pattern


def split_enum_values(value: str) -> List[str]:
    return [token.strip() for token in value.split(",") if token.strip()]


def coerce_enum_value(token: str, node_type: Optional[str]) -> Any:
    """Convert an enum token to the node's base type; None when it does not fit."""
    if node_type == "integer":
        return parse_integer(token)
    if node_type == "number":
        return parse_number(token)
    if node_type == "boolean":
        lowered = token.lower()
        if lowered in ("true", "false"):
            return lowered == "true"
        return None
    return token


def _pick_bound(current: Optional[Bound], rank: int, value: Number, exclusive: bool) -> Bound:
    if current is not None and current[0] < rank:
        return current
    return (rank, value, exclusive)


def apply_facets(element: ModelElement, node: SchemaNode) -> None:
    """Apply the facet tags of ``element`` to ``node``.

    Explicit bounds (``minimum``, ``exclusiveMaximum``, ...) win over the XSD
    style ones (``minInclusive``, ``maxExclusive``, ...), and both win over the
    bounds derived from ``totalDigits``/``fractionDigits``. Values that do not
    parse as numbers are ignored, and so are enum tokens that do not fit the
    node's base type.
    """
    lower: Optional[Bound] = None
    upper: Optional[Bound] = None
    multiple_of: Optional[Number] = None
    total_digits: Optional[int] = None
    fraction_digits: Optional[int] = None
    pattern: Optional[str] = None

    for tag in element.tagged_values:
        key = tag.name.strip().lower()
        value = tag.text
        if key == "minlength":
            length = parse_integer(value)
            if length is not None:
                node.min_length = length
        elif key == "maxlength":
            length = parse_integer(value)
            if length is not None:
                node.max_length = length
        elif key == "length":
            length = parse_integer(value)
            if length is not None:
                node.min_length = length
                node.max_length = length
        elif key == "pattern":
            if value:
                pattern = value
        elif key == "format":
            if value:
                node.format = value
        elif key == "enum":
            for token in split_enum_values(value):
                allowed = coerce_enum_value(token, node.type)
                if allowed is not None:
                    node.add_enum_value(allowed)
        elif key in LOWER_BOUND_FACETS:
            number = parse_number(value)
            if number is not None:
                rank, exclusive = LOWER_BOUND_FACETS[key]
                lower = _pick_bound(lower, rank, number, exclusive)
        elif key in UPPER_BOUND_FACETS:
            number = parse_number(value)
            if number is not None:
                rank, exclusive = UPPER_BOUND_FACETS[key]
                upper = _pick_bound(upper, rank, number, exclusive)
        elif key == "multipleof":
            number = parse_number(value)
            if number is not None and number > 0:
                multiple_of = number
        elif key == "totaldigits":
            total_digits = parse_digit_count(value)
        elif key == "fractiondigits":
            fraction_digits = parse_digit_count(value)

    # format takes precedence over pattern
    if pattern and not node.format:
        node.pattern = anchor_pattern(pattern)
    if lower is not None:
        _, node.minimum, node.exclusive_minimum = lower
    if upper is not None:
        _, node.maximum, node.exclusive_maximum = upper
    if multiple_of is not None:
        node.multiple_of = multiple_of

    if total_digits is None:
        return
    fraction = fraction_digits or 0
    limit = 10 ** (total_digits - fraction)
    if upper is None:
        node.maximum = limit
        node.exclusive_maximum = True
    if lower is None:
        node.minimum = -limit
        node.exclusive_minimum = True
    if multiple_of is None and fraction > 0:
        node.multiple_of = 10 ** -fraction
