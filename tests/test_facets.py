from __future__ import annotations

from pathlib import Path
import sys

import pytest

ROOT_DIR = Path(__file__).resolve().parent.parent
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from facets import anchor_pattern, apply_facets, parse_number
from schema_nodes import SchemaNode
from uml_model import ModelElement, TaggedValue


def _element(*tags):
    return ModelElement(name="element", tagged_values=[TaggedValue(name, value) for name, value in tags])


def _apply(*tags, node=None):
    node = node if node is not None else SchemaNode()
    apply_facets(_element(*tags), node)
    return node


def test_precision_facets_derive_bounds_and_step():
    node = _apply(("totalDigits", "5"), ("fractionDigits", "2"))

    assert node.maximum == 1000 and node.exclusive_maximum
    assert node.minimum == -1000 and node.exclusive_minimum
    assert node.multiple_of == 0.01
    assert node.to_dict() == {"exclusiveMinimum": -1000, "exclusiveMaximum": 1000, "multipleOf": 0.01}


def test_precision_facets_accept_integral_decimals():
    node = _apply(("totalDigits", "5.0"), ("fractionDigits", "2"))

    assert node.to_dict() == {"exclusiveMinimum": -1000, "exclusiveMaximum": 1000, "multipleOf": 0.01}


def test_fractional_precision_values_are_ignored():
    assert _apply(("totalDigits", "2.5")).to_dict() == {}
    assert _apply(("totalDigits", "3"), ("fractionDigits", "x")).to_dict() == {
        "exclusiveMinimum": -1000,
        "exclusiveMaximum": 1000,
    }


def test_precision_without_fraction_digits_sets_no_step():
    node = _apply(("totalDigits", "3"))

    assert node.to_dict() == {"exclusiveMinimum": -1000, "exclusiveMaximum": 1000}


def test_draft_04_renders_boolean_exclusivity():
    node = _apply(("totalDigits", "2"))

    assert node.to_dict("http://json-schema.org/draft-04/schema#") == {
        "minimum": -100,
        "exclusiveMinimum": True,
        "maximum": 100,
        "exclusiveMaximum": True,
    }


def test_explicit_bound_beats_derived_bound():
    node = _apply(("totalDigits", "4"), ("maximum", "500"), ("multipleOf", "5"))

    assert node.maximum == 500 and not node.exclusive_maximum
    assert node.minimum == -10000 and node.exclusive_minimum
    assert node.multiple_of == 5


@pytest.mark.parametrize(
    "tags",
    [
        (("minInclusive", "3"), ("minimum", "1")),
        (("minimum", "1"), ("minInclusive", "3")),
    ],
)
def test_explicit_facet_beats_xsd_facet_in_any_order(tags):
    node = _apply(*tags)

    assert node.minimum == 1


@pytest.mark.parametrize(
    "tags",
    [
        (("maxInclusive", "90"), ("maximum", "50")),
        (("maximum", "50"), ("maxInclusive", "90")),
        (("maxExclusive", "90"), ("maximum", "50")),
    ],
)
def test_explicit_upper_facet_beats_xsd_facet_in_any_order(tags):
    node = _apply(*tags)

    assert node.maximum == 50
    assert not node.exclusive_maximum


def test_explicit_exclusive_facets():
    node = _apply(("exclusiveMinimum", "1"), ("exclusiveMaximum", "9.5"))

    assert node.exclusive_minimum and node.exclusive_maximum
    assert node.to_dict() == {"exclusiveMinimum": 1, "exclusiveMaximum": 9.5}
    assert node.to_dict("http://json-schema.org/draft-04/schema#") == {
        "minimum": 1,
        "exclusiveMinimum": True,
        "maximum": 9.5,
        "exclusiveMaximum": True,
    }


def test_explicit_exclusive_facet_beats_inclusive_xsd_facet():
    node = _apply(("exclusiveMinimum", "1"), ("minInclusive", "5"), ("maxInclusive", "7"), ("exclusiveMaximum", "3"))

    assert node.to_dict() == {"exclusiveMinimum": 1, "exclusiveMaximum": 3}


def test_xsd_exclusive_facets():
    node = _apply(("minExclusive", "0"), ("maxExclusive", "10.5"))

    assert node.to_dict() == {"exclusiveMinimum": 0, "exclusiveMaximum": 10.5}


def test_inclusive_bounds():
    node = _apply(("minInclusive", "0"), ("maxInclusive", "150"))

    assert node.to_dict() == {"minimum": 0, "maximum": 150}


def test_pattern_is_anchored():
    assert _apply(("pattern", "abc")).pattern == "^abc$"
    assert _apply(("pattern", "^abc$")).pattern == "^abc$"
    assert anchor_pattern("^[0-9]{4}") == "^[0-9]{4}$"


@pytest.mark.parametrize(
    "tags",
    [
        (("pattern", "abc"), ("format", "email")),
        (("format", "email"), ("pattern", "abc")),
    ],
)
def test_format_takes_precedence_over_pattern(tags):
    node = _apply(*tags)

    assert node.format == "email"
    assert node.pattern is None


def test_pattern_skipped_when_node_already_has_format():
    node = _apply(("pattern", "abc"), node=SchemaNode(type="string", format="date-time"))

    assert node.pattern is None


def test_length_facets():
    assert _apply(("length", "4")).to_dict() == {"minLength": 4, "maxLength": 4}
    assert _apply(("MINLENGTH", "1"), ("maxlength", "9")).to_dict() == {"minLength": 1, "maxLength": 9}


def test_enum_facet_splits_comma_lists():
    node = _apply(("enum", "a, b,c"), ("enum", "d"))

    assert node.enum == ["a", "b", "c", "d"]


@pytest.mark.parametrize(
    "node_type, value, expected",
    [
        ("integer", "1, 2,x", [1, 2]),
        ("number", "0.5,2", [0.5, 2]),
        ("boolean", "True,false,maybe", [True, False]),
        ("string", "1,2", ["1", "2"]),
        (None, "1,a", ["1", "a"]),
    ],
)
def test_enum_tokens_follow_node_type(node_type, value, expected):
    node = _apply(("enum", value), node=SchemaNode(type=node_type))

    assert node.enum == expected


def test_malformed_values_are_ignored():
    node = _apply(("minLength", "abc"), ("minimum", "low"), ("multipleOf", "0"), ("maximum", "nan"))

    assert node.to_dict() == {}


def test_malformed_explicit_bound_does_not_block_derived_bound():
    node = _apply(("minimum", "x"), ("totalDigits", "2"))

    assert node.minimum == -100 and node.exclusive_minimum


def test_applying_twice_is_idempotent():
    element = _element(("enum", "a,b"), ("pattern", "x"), ("totalDigits", "5"), ("fractionDigits", "2"))
    node = SchemaNode(type="number")
    apply_facets(element, node)
    first = node.to_dict()
    apply_facets(element, node)

    assert node.to_dict() == first


def test_parse_number():
    assert parse_number("10") == 10
    assert isinstance(parse_number("10"), int)
    assert parse_number("2.5") == 2.5
    assert parse_number("inf") is None
    assert parse_number("") is None
