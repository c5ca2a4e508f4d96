"""Template interpolation for query text.

Replaces references with literals the query engine understands:
- ``${inputs.name}`` / ``${metadata.name}`` → type-aware literal
- ``${block_name}``                          → materialized table name
- ``FROM block_name`` / ``JOIN block_name``  → materialized table name

Literal rendering:
    str             'text'  (embedded quotes doubled)
    int/float/Dec   bare number (NaN renders as NULL)
    bool            TRUE / FALSE
    date/datetime   'ISO-8601'
    list/tuple/set  ('a', 2, ...)  each element rendered by its own type
    None/missing    NULL, with a warning
    anything else   NULL, with a warning

A reference already wrapped in single quotes (``'${inputs.region}'``) takes
the quotes over: the value is rendered as one quoted string, so the author's
quotes are not doubled up.

All functions are pure string transforms; on text with no remaining
references they return the text unchanged.
"""

import logging
import math
import numbers
import re
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Iterable, List, Mapping, Optional, Tuple

from ..schemas import InterpolationResult, TemplateContext
from ..analysis.references import IDENTIFIER, RESERVED_NAMESPACES, clause_matches

logger = logging.getLogger(__name__)


# Optional wrapping quotes are captured so they can be taken over
_CONTEXT_REF = re.compile(r"(')?\$\{(inputs|metadata)\.(\w+)\}(')?")
_BLOCK_REF = re.compile(r'\$\{(' + IDENTIFIER + r')\}')
_CLAUSE_REF = re.compile(
    r'(\b(?:FROM|JOIN)\s+)(["\'`]?)(' + IDENTIFIER + r')(["\'`]?)(?![A-Za-z0-9_.(])',
    re.IGNORECASE,
)


# =============================================================================
# Literal Rendering
# =============================================================================

def quote_string(text: str) -> str:
    """Quote text as a string literal, doubling embedded single quotes."""
    return "'" + text.replace("'", "''") + "'"


def _render_number(value: Any) -> Optional[str]:
    if isinstance(value, numbers.Integral):
        return str(int(value))
    if isinstance(value, Decimal):
        return None if value.is_nan() else str(value)
    if isinstance(value, numbers.Real):
        number = float(value)
        if math.isnan(number) or math.isinf(number):
            return None
        return repr(number)
    return None


def render_literal(value: Any, null_literal: str = "NULL") -> Tuple[str, Optional[str]]:
    """Render a value as a query literal.

    Args:
        value: Parameter, metadata, or row value
        null_literal: Literal used for missing or unsupported values

    Returns:
        (literal, warning) where warning is None unless the value fell back
        to the null literal

    Example:
        render_literal("O'Brien")   → ("'O''Brien'", None)
        render_literal([1, "a"])    → ("(1, 'a')", None)
        render_literal(None)        → ("NULL", "value is null")
    """
    # numpy/pandas scalars coming from result rows
    if type(value).__module__ == "numpy" and hasattr(value, "item"):
        value = value.item()

    if value is None:
        return null_literal, "value is null"

    # bool before numbers: bool is an Integral
    if isinstance(value, bool):
        return ("TRUE" if value else "FALSE"), None

    if isinstance(value, str):
        return quote_string(value), None

    if isinstance(value, numbers.Number):
        rendered = _render_number(value)
        if rendered is None:
            return null_literal, f"unsupported numeric value {value!r}"
        return rendered, None

    if isinstance(value, (datetime, date, time)):
        return quote_string(value.isoformat()), None

    if isinstance(value, (list, tuple, set, frozenset)):
        items = sorted(value, key=repr) if isinstance(value, (set, frozenset)) else list(value)
        if not items:
            return f"({null_literal})", None
        rendered_items = []
        warnings = []
        for item in items:
            literal, warning = render_literal(item, null_literal)
            rendered_items.append(literal)
            if warning:
                warnings.append(warning)
        return "(" + ", ".join(rendered_items) + ")", ("; ".join(warnings) or None)

    return null_literal, f"unsupported value type {type(value).__name__}"


def render_quoted_literal(value: Any, null_literal: str = "NULL") -> Tuple[str, Optional[str]]:
    """Render a value that replaces a quoted reference ('${...}')."""
    literal, warning = render_literal(value, null_literal)
    if warning is not None or isinstance(value, (list, tuple, set, frozenset)):
        return literal, warning
    if literal.startswith("'"):
        return literal, None
    return quote_string(literal), None


# =============================================================================
# Parameter / Metadata Interpolation
# =============================================================================

def interpolate_sql(
    text: str,
    context: TemplateContext,
    null_literal: str = "NULL",
) -> InterpolationResult:
    """Replace ``${inputs.*}`` and ``${metadata.*}`` references with literals.

    Args:
        text: Query text
        context: Parameter and metadata values
        null_literal: Literal for missing/null/unsupported values

    Returns:
        InterpolationResult; missing or null values are listed in
        ``missing_variables`` and described in ``warnings``

    Example:
        interpolate_sql(
            "SELECT * FROM t WHERE region = '${inputs.region}'",
            TemplateContext(parameters={"region": "EU"}),
        ).output
        → "SELECT * FROM t WHERE region = 'EU'"
    """
    replaced: List[str] = []
    missing: List[str] = []
    warnings: List[str] = []

    def replace(match: "re.Match[str]") -> str:
        open_quote, namespace, name, close_quote = match.groups()
        quoted = open_quote is not None and close_quote is not None
        values = context.parameters if namespace == "inputs" else context.metadata
        reference = f"{namespace}.{name}"

        value = values.get(name)
        if quoted:
            literal, warning = render_quoted_literal(value, null_literal)
        else:
            literal, warning = render_literal(value, null_literal)

        if warning is None:
            replaced.append(reference)
        else:
            if name not in values:
                warning = "not defined"
            missing.append(reference)
            message = f"Template variable '{reference}' {warning}; replaced with {null_literal}"
            warnings.append(message)
            logger.warning(message)

        if quoted:
            return literal
        return (open_quote or "") + literal + (close_quote or "")

    output = _CONTEXT_REF.sub(replace, text)

    if output != text:
        logger.debug("Interpolated query: %s", output)

    return InterpolationResult(
        output=output,
        replaced_variables=replaced,
        missing_variables=missing,
        warnings=warnings,
    )


def validate_context(text: str, context: TemplateContext) -> List[str]:
    """List the ``inputs.*`` / ``metadata.*`` references that have no value.

    Example:
        validate_context("${inputs.a} ${metadata.b}", TemplateContext(parameters={"a": 1}))
        → ["metadata.b"]
    """
    missing: List[str] = []
    for _open, namespace, name, _close in _CONTEXT_REF.findall(text):
        values = context.parameters if namespace == "inputs" else context.metadata
        reference = f"{namespace}.{name}"
        if values.get(name) is None and reference not in missing:
            missing.append(reference)
    return missing


# =============================================================================
# Block Reference Resolution
# =============================================================================

def resolve_block_references(text: str, table_mapping: Mapping[str, str]) -> InterpolationResult:
    """Replace ``${block_name}`` placeholders with mapped table names.

    Placeholders with no mapping entry are left intact (so the query engine
    raises the eventual failure) and listed in ``missing_variables``.

    Example:
        resolve_block_references("SELECT * FROM ${sales}", {"sales": "chart_data_block_0"})
        → output "SELECT * FROM chart_data_block_0"
    """
    replaced: List[str] = []
    missing: List[str] = []
    warnings: List[str] = []

    def replace(match: "re.Match[str]") -> str:
        ref = match.group(1)
        if ref in RESERVED_NAMESPACES:
            return match.group(0)
        table_name = table_mapping.get(ref)
        if table_name:
            replaced.append(ref)
            return table_name
        missing.append(ref)
        message = f"Block reference '{ref}' not found in table mapping"
        warnings.append(message)
        logger.warning(message)
        return match.group(0)

    output = _BLOCK_REF.sub(replace, text)
    return InterpolationResult(
        output=output,
        replaced_variables=replaced,
        missing_variables=missing,
        warnings=warnings,
    )


def resolve_clause_references(
    text: str,
    table_mapping: Mapping[str, str],
    known_block_names: Iterable[str],
) -> InterpolationResult:
    """Rewrite implicit ``FROM name`` / ``JOIN name`` block references.

    Only identifiers that are known block ids or names are touched; any other
    table name is left alone, and so is ``from name`` inside a string literal.
    """
    known = set(known_block_names)
    replaced: List[str] = []
    missing: List[str] = []

    def replace(match: "re.Match[str]") -> str:
        keyword, open_quote, name, close_quote = match.groups()
        if name not in known:
            return match.group(0)
        table_name = table_mapping.get(name)
        if not table_name:
            missing.append(name)
            return match.group(0)
        replaced.append(name)
        return f"{keyword}{open_quote}{table_name}{close_quote}"

    parts: List[str] = []
    position = 0
    for match in clause_matches(text, _CLAUSE_REF):
        parts.append(text[position:match.start()])
        parts.append(replace(match))
        position = match.end()
    parts.append(text[position:])
    output = "".join(parts)
    return InterpolationResult(
        output=output,
        replaced_variables=replaced,
        missing_variables=missing,
    )


def interpolate_full_sql(
    text: str,
    table_mapping: Mapping[str, str],
    context: TemplateContext,
    known_block_names: Iterable[str] = (),
    null_literal: str = "NULL",
) -> InterpolationResult:
    """Resolve block references, then interpolate parameters and metadata.

    Block references go first so a parameter value containing ``${...}`` text
    can never be taken for a block reference.
    """
    blocks = resolve_block_references(text, table_mapping)
    clauses = resolve_clause_references(blocks.output, table_mapping, known_block_names)
    values = interpolate_sql(clauses.output, context, null_literal)

    return InterpolationResult(
        output=values.output,
        replaced_variables=[
            *blocks.replaced_variables,
            *clauses.replaced_variables,
            *values.replaced_variables,
        ],
        missing_variables=[
            *blocks.missing_variables,
            *clauses.missing_variables,
            *values.missing_variables,
        ],
        warnings=[*blocks.warnings, *clauses.warnings, *values.warnings],
    )
