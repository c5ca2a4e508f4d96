"""Tests for the condition expression parser and evaluator."""

import pytest

from report_engine.errors import ExpressionError
from report_engine.templates.expressions import (
    Comparison,
    Literal,
    Logical,
    Not,
    evaluate_expression,
    parse_expression,
    tokenize,
)


# =============================================================================
# Parsing
# =============================================================================

def test_tokenize():
    assert tokenize("10 >= 'a''b' && !TRUE") == [
        ("number", "10"),
        ("op", ">="),
        ("string", "'a''b'"),
        ("op", "&&"),
        ("op", "!"),
        ("word", "TRUE"),
    ]


def test_strict_equality_aliases():
    assert tokenize("1 === 1 !== 2") == [
        ("number", "1"), ("op", "=="), ("number", "1"), ("op", "!="), ("number", "2"),
    ]


def test_parse_builds_ast():
    tree = parse_expression("!(1 > 2) && 'a' == 'a' || false")
    assert tree == Logical("||", (
        Logical("&&", (
            Not(Comparison(">", Literal(1), Literal(2))),
            Comparison("==", Literal("a"), Literal("a")),
        )),
        Literal(False),
    ))


@pytest.mark.parametrize("text", [
    "",
    "1 >",
    "(1 > 2",
    "1 > 2)",
    "1 = 1",
    "import os",
    "1 ; 2",
    "- 'a'",
])
def test_parse_errors(text):
    with pytest.raises(ExpressionError):
        parse_expression(text)


# =============================================================================
# Evaluation
# =============================================================================

@pytest.mark.parametrize("text, expected", [
    ("10 > 5", True),
    ("3 > 5", False),
    ("5 >= 5 && 5 <= 5", True),
    ("1 < 2 || 2 < 1", True),
    ("1 != 1", False),
    ("'EU' == 'EU'", True),
    ("'EU' === 'US'", False),
    ("\"EU\" == 'EU'", True),
    ("!(1 > 2)", True),
    ("TRUE", True),
    ("null", False),
    ("NULL == null", True),
    ("undefined == null", True),
    ("-1 < 0", True),
    ("1.5 > 1", True),
    ("'10' == 10", True),
    ("'b' > 'a'", True),
    ("(1 > 2 || 3 > 2) && !false", True),
    ("0", False),
    ("''", False),
])
def test_evaluate_expression(text, expected):
    assert evaluate_expression(text) is expected


def test_ordering_against_null_is_false():
    assert evaluate_expression("NULL > 5") is False
    assert evaluate_expression("NULL < 5") is False


def test_ordering_mismatched_types_is_an_error():
    with pytest.raises(ExpressionError, match="Cannot order"):
        evaluate_expression("'abc' > 5")
