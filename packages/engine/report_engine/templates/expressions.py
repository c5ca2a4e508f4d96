"""Condition expression parser and evaluator.

A deliberately small language for ``{#if}`` conditions, parsed by recursive
descent into an explicit AST and evaluated without executing any code.

Grammar:
    expression  := or_expr
    or_expr     := and_expr ( "||" and_expr )*
    and_expr    := comparison ( "&&" comparison )*
    comparison  := unary ( ( ">" | "<" | ">=" | "<=" | "==" | "!=" ) unary )?
    unary       := "!" unary | "-" NUMBER | primary
    primary     := NUMBER | STRING | "true" | "false" | "null" | "(" expression ")"

``===`` and ``!==`` are accepted as aliases of ``==`` and ``!=``. Strings are
single- or double-quoted with the quote doubled to escape it ('O''Brien').
Keywords are case-insensitive (TRUE, NULL, ...), and ``undefined`` reads as
null.
"""

import re
from dataclasses import dataclass
from typing import Any, List, Tuple

from ..errors import ExpressionError


# =============================================================================
# AST
# =============================================================================

@dataclass(frozen=True)
class Literal:
    value: Any


@dataclass(frozen=True)
class Comparison:
    operator: str
    left: Any
    right: Any


@dataclass(frozen=True)
class Logical:
    operator: str
    operands: Tuple[Any, ...]


@dataclass(frozen=True)
class Not:
    operand: Any


# =============================================================================
# Tokenizer
# =============================================================================

_TOKEN = re.compile(r"""
    (?P<ws>\s+)
  | (?P<number>\d+(?:\.\d+)?(?:[eE][+-]?\d+)?|\.\d+)
  | (?P<string>'(?:[^']|'')*'|"(?:[^"]|"")*")
  | (?P<op>===|!==|==|!=|>=|<=|&&|\|\||[<>!()\-])
  | (?P<word>[A-Za-z_][A-Za-z0-9_]*)
""", re.VERBOSE)

_KEYWORDS = {
    "true": True,
    "false": False,
    "null": None,
    "undefined": None,
}

_ALIASES = {"===": "==", "!==": "!="}

COMPARISON_OPERATORS = (">", "<", ">=", "<=", "==", "!=")


def tokenize(text: str) -> List[Tuple[str, str]]:
    """Split an expression into (kind, text) tokens."""
    tokens: List[Tuple[str, str]] = []
    position = 0
    while position < len(text):
        match = _TOKEN.match(text, position)
        if match is None:
            raise ExpressionError(f"Unexpected character {text[position]!r} at {position}")
        kind = match.lastgroup
        if kind != "ws":
            value = match.group()
            if kind == "op":
                value = _ALIASES.get(value, value)
            tokens.append((kind, value))
        position = match.end()
    return tokens


def _unquote(token: str) -> str:
    quote = token[0]
    return token[1:-1].replace(quote * 2, quote)


# =============================================================================
# Parser
# =============================================================================

class _Parser:
    def __init__(self, tokens: List[Tuple[str, str]]):
        self.tokens = tokens
        self.position = 0

    def peek(self) -> Tuple[str, str]:
        if self.position < len(self.tokens):
            return self.tokens[self.position]
        return ("end", "")

    def take(self) -> Tuple[str, str]:
        token = self.peek()
        self.position += 1
        return token

    def expect(self, value: str) -> None:
        kind, text = self.take()
        if text != value:
            raise ExpressionError(f"Expected {value!r}, found {text or 'end of expression'!r}")

    def parse(self) -> Any:
        if not self.tokens:
            raise ExpressionError("Empty expression")
        node = self.or_expr()
        if self.position != len(self.tokens):
            raise ExpressionError(f"Unexpected token {self.peek()[1]!r}")
        return node

    def or_expr(self) -> Any:
        operands = [self.and_expr()]
        while self.peek() == ("op", "||"):
            self.take()
            operands.append(self.and_expr())
        return operands[0] if len(operands) == 1 else Logical("||", tuple(operands))

    def and_expr(self) -> Any:
        operands = [self.comparison()]
        while self.peek() == ("op", "&&"):
            self.take()
            operands.append(self.comparison())
        return operands[0] if len(operands) == 1 else Logical("&&", tuple(operands))

    def comparison(self) -> Any:
        left = self.unary()
        kind, text = self.peek()
        if kind == "op" and text in COMPARISON_OPERATORS:
            self.take()
            return Comparison(text, left, self.unary())
        return left

    def unary(self) -> Any:
        kind, text = self.peek()
        if (kind, text) == ("op", "!"):
            self.take()
            return Not(self.unary())
        if (kind, text) == ("op", "-"):
            self.take()
            number_kind, number = self.take()
            if number_kind != "number":
                raise ExpressionError("Unary minus only applies to numbers")
            return Literal(-_to_number(number))
        return self.primary()

    def primary(self) -> Any:
        kind, text = self.take()
        if kind == "number":
            return Literal(_to_number(text))
        if kind == "string":
            return Literal(_unquote(text))
        if kind == "word":
            keyword = text.lower()
            if keyword in _KEYWORDS:
                return Literal(_KEYWORDS[keyword])
            raise ExpressionError(f"Unknown identifier {text!r}")
        if (kind, text) == ("op", "("):
            node = self.or_expr()
            self.expect(")")
            return node
        raise ExpressionError(f"Unexpected token {text or 'end of expression'!r}")


def _to_number(text: str) -> Any:
    if re.fullmatch(r"\d+", text):
        return int(text)
    return float(text)


def parse_expression(text: str) -> Any:
    """Parse a condition into its AST.

    Raises:
        ExpressionError: On any syntax error
    """
    return _Parser(tokenize(text)).parse()


# =============================================================================
# Evaluation
# =============================================================================

def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _coerce_pair(left: Any, right: Any) -> Tuple[Any, Any]:
    """Compare a number with a numeric string as two numbers."""
    if _is_number(left) and isinstance(right, str):
        try:
            return left, float(right)
        except ValueError:
            return left, right
    if isinstance(left, str) and _is_number(right):
        try:
            return float(left), right
        except ValueError:
            return left, right
    return left, right


def _compare(operator: str, left: Any, right: Any) -> bool:
    left, right = _coerce_pair(left, right)

    if operator == "==":
        return left == right
    if operator == "!=":
        return left != right

    # Ordering against null is never true
    if left is None or right is None:
        return False

    comparable = (
        (_is_number(left) or isinstance(left, bool)) and (_is_number(right) or isinstance(right, bool))
    ) or (isinstance(left, str) and isinstance(right, str))
    if not comparable:
        raise ExpressionError(
            f"Cannot order {type(left).__name__} and {type(right).__name__}"
        )

    if operator == ">":
        return left > right
    if operator == "<":
        return left < right
    if operator == ">=":
        return left >= right
    return left <= right


def evaluate_node(node: Any) -> Any:
    """Evaluate an AST node to a Python value."""
    if isinstance(node, Literal):
        return node.value
    if isinstance(node, Not):
        return not evaluate_node(node.operand)
    if isinstance(node, Comparison):
        return _compare(node.operator, evaluate_node(node.left), evaluate_node(node.right))
    if isinstance(node, Logical):
        if node.operator == "&&":
            return all(bool(evaluate_node(operand)) for operand in node.operands)
        return any(bool(evaluate_node(operand)) for operand in node.operands)
    raise ExpressionError(f"Unknown expression node {node!r}")


def evaluate_expression(text: str) -> bool:
    """Parse and evaluate a condition to a boolean.

    Raises:
        ExpressionError: If the expression cannot be parsed or compared

    Example:
        evaluate_expression("10 > 5 && ('EU' == 'EU' || false)")  → True
    """
    return bool(evaluate_node(parse_expression(text)))
