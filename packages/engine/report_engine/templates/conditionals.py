"""Conditional template regions.

Syntax:
    {#if <condition>} shown when true {/if}
    {#if <condition>} shown when true {:else} shown when false {/if}

Conditions may reference values:
    ${inputs.name} / ${metadata.name}   parameter / metadata value
    ${query.column}                     column of the first row of a result
    ${query.column[2]}                  column of row 2 of a result
    ${name}                             parameter value

References are replaced by literals (rendered as for query text), the result
is checked against an allow-list of characters, parsed and evaluated. A
rejected or unparseable condition is False.
"""

import logging
import re
from typing import Any, List, Optional

from ..errors import ExpressionError, TemplateParseError
from ..analysis.references import IDENTIFIER, PATTERNS
from .context import RenderContext
from .expressions import evaluate_expression
from .interpolation import render_literal, render_quoted_literal
from .markers import Region, has_markers, rewrite_regions

logger = logging.getLogger(__name__)


TAG = "if"

# ${source}, ${source.prop}, ${source.prop[index]} with optional wrapping quotes
_CONDITION_REF = re.compile(
    r"(')?\$\{(" + IDENTIFIER + r")(?:\.(" + IDENTIFIER + r")(?:\[(\d+)\])?)?\}(')?"
)

# Checked outside string literals; literal contents are free text
_ALLOWED = re.compile(r"^[\s\w'\".\-<>=!&|()]+$")
_DOUBLE_QUOTED = re.compile(r'"(?:[^"]|"")*"')


def _without_string_contents(expression: str) -> str:
    expression = PATTERNS["STRING_LITERAL"].sub("''", expression)
    return _DOUBLE_QUOTED.sub('""', expression)


# =============================================================================
# Value Lookup
# =============================================================================

def _lookup(context: RenderContext, source: str, prop: Optional[str], index: Optional[str]) -> Any:
    """Resolve one condition reference to its raw value (None when unknown)."""
    if prop is None:
        return context.parameters.get(source)

    if source in ("inputs", "metadata"):
        values = context.parameters if source == "inputs" else context.metadata
        value = values.get(prop)
        if index is not None:
            if isinstance(value, (list, tuple)) and int(index) < len(value):
                return value[int(index)]
            return None
        return value

    rows = context.rows(source)
    row_number = int(index) if index is not None else 0
    if not rows or row_number >= len(rows):
        return None
    return rows[row_number].get(prop)


def substitute_references(condition: str, context: RenderContext) -> str:
    """Replace every ``${...}`` reference in a condition with a literal.

    Example:
        substitute_references("${inputs.x} > 5", RenderContext(parameters={"x": 10}))
        → "10 > 5"
    """
    def replace(match: "re.Match[str]") -> str:
        open_quote, source, prop, index, close_quote = match.groups()
        value = _lookup(context, source, prop, index)

        if open_quote is not None and close_quote is not None:
            literal, _warning = render_quoted_literal(value)
            return literal

        literal, _warning = render_literal(value)
        return (open_quote or "") + literal + (close_quote or "")

    return _CONDITION_REF.sub(replace, condition)


# =============================================================================
# Evaluation
# =============================================================================

def evaluate_condition(condition: str, context: RenderContext) -> bool:
    """Evaluate an ``{#if}`` condition against a render context.

    Args:
        condition: Condition text (the argument of ``{#if ...}``)
        context: Query results, parameters and metadata

    Returns:
        The condition's truth value; False for anything that is rejected,
        fails to parse, or fails to compare

    Example:
        evaluate_condition("${inputs.x} > 5", RenderContext(parameters={"x": 10}))  → True
        evaluate_condition("${inputs.x}; import os", ...)                          → False
    """
    expression = substitute_references(condition, context).strip()

    if not _ALLOWED.match(_without_string_contents(expression)):
        logger.warning("Rejected condition %r (resolved to %r)", condition, expression)
        return False

    try:
        return evaluate_expression(expression)
    except ExpressionError as e:
        logger.warning("Could not evaluate condition %r (resolved to %r): %s", condition, expression, e)
        return False


# =============================================================================
# Processing
# =============================================================================

def has_conditional_blocks(content: str) -> bool:
    return has_markers(content, TAG)


def process_conditionals(
    content: str,
    context: RenderContext,
    errors: Optional[List[TemplateParseError]] = None,
) -> str:
    """Replace every ``{#if}`` region with the branch its condition selects.

    The selected branch is stripped of surrounding whitespace; a false
    condition without ``{:else}`` produces an empty string. Nested regions are
    resolved by repeated passes over the output. Unterminated regions are
    logged (and appended to ``errors``) and left as they are.

    Example:
        process_conditionals("{#if ${inputs.x} > 5}A{:else}B{/if}",
                             RenderContext(parameters={"x": 3}))
        → "B"
    """
    if not has_conditional_blocks(content):
        return content

    def replacement(region: Region, source: str) -> str:
        if evaluate_condition(region.argument, context):
            return region.body(source).strip()
        if region.has_else:
            return region.else_body(source).strip()
        return ""

    return rewrite_regions(content, TAG, replacement, errors)
