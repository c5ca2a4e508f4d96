"""Loop template regions.

Syntax:
    {#each <source> as <item>} ... {/each}
    {#each <source> as <item>, <index>} ... {/each}
    {#each <source> as <item>} ... {:else} shown when empty {/each}

Inside the body:
    ${item.column}              column value of the current row ('' for null)
    ${item}                     the whole row as JSON
    ${index}                    zero-based row position (when an index is declared)
    ${index + 1} / ${index - 1} position with an offset

<source> is a query block name or ID from the render context.
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from ..errors import TemplateParseError
from .context import RenderContext
from .interpolation import render_literal, render_quoted_literal
from .markers import BEGIN, Region, build_region_tree, has_markers, rewrite_regions, scan_markers

logger = logging.getLogger(__name__)


TAG = "each"

_LOOP_SPEC = re.compile(r'^(\w+)\s+as\s+(\w+)(?:\s*,\s*(\w+))?$')


def parse_loop_spec(argument: str) -> Optional[Tuple[str, str, Optional[str]]]:
    """Split ``source as item[, index]`` into its parts, or None if malformed."""
    match = _LOOP_SPEC.match(argument.strip())
    if match is None:
        return None
    return match.group(1), match.group(2), match.group(3)


def _stringify(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def _fill_condition_arguments(content: str, item: str, row: Dict[str, Any]) -> str:
    """Substitute row values inside ``{#if ...}`` arguments as condition literals.

    ``'${r.name}'`` with O'Brien becomes ``'O''Brien'`` and a bare
    ``${r.total}`` becomes a typed literal, so the condition still parses.
    """
    reference = re.compile(r"(')?\$\{" + item + r"\.([A-Za-z_][A-Za-z0-9_]*)\}(')?")

    def replace(match: "re.Match[str]") -> str:
        open_quote, column, close_quote = match.groups()
        value = row.get(column)
        if open_quote is not None and close_quote is not None:
            return render_quoted_literal(value)[0]
        return (open_quote or "") + render_literal(value)[0] + (close_quote or "")

    conditions = [
        marker for marker in scan_markers(content)
        if marker.kind == BEGIN and marker.tag == "if"
    ]
    for marker in reversed(conditions):
        tag = content[marker.start:marker.end]
        content = content[:marker.start] + reference.sub(replace, tag) + content[marker.end:]
    return content


def interpolate_item_variables(
    content: str,
    item_name: str,
    index_name: Optional[str],
    row: Dict[str, Any],
    index: int,
) -> str:
    """Fill one loop body with the values of one row.

    Example:
        interpolate_item_variables("${i + 1}. ${r.name}", "r", "i", {"name": "a"}, 0)
        → "1. a"
    """
    item = re.escape(item_name)

    result = _fill_condition_arguments(content, item, row)
    result = re.sub(
        r'\$\{' + item + r'\.([A-Za-z_][A-Za-z0-9_]*)\}',
        lambda match: _stringify(row.get(match.group(1))),
        result,
    )
    result = re.sub(
        r'\$\{' + item + r'\}',
        lambda match: json.dumps(row, default=str),
        result,
    )

    if index_name:
        position = re.escape(index_name)

        def offset(match: "re.Match[str]") -> str:
            amount = int(match.group(2))
            return str(index + amount if match.group(1) == "+" else index - amount)

        result = re.sub(r'\$\{' + position + r'\}', lambda match: str(index), result)
        result = re.sub(r'\$\{' + position + r'\s*([+-])\s*(\d+)\}', offset, result)

    return result


def expand_loop(region: Region, source_text: str, context: RenderContext) -> str:
    """Expand one ``{#each}`` region against the context's query results."""
    spec = parse_loop_spec(region.argument)
    if spec is None:
        logger.warning("Malformed loop header {#each %s}; leaving block unexpanded", region.argument)
        return source_text[region.start:region.end]

    source, item_name, index_name = spec
    rows = context.rows(source)
    if rows is None:
        logger.warning("Loop source '%s' has no query result; treating it as empty", source)
        rows = []

    logger.debug("{#each %s as %s}: %d rows", source, item_name, len(rows))

    if not rows:
        if region.has_else:
            return region.else_body(source_text).strip()
        return ""

    body = region.body(source_text)
    return "".join(
        interpolate_item_variables(body, item_name, index_name, row, index)
        for index, row in enumerate(rows)
    )


# =============================================================================
# Processing
# =============================================================================

def has_loop_blocks(content: str) -> bool:
    return has_markers(content, TAG)


def get_loop_data_sources(content: str) -> List[str]:
    """Sources named by every loop in content (nested ones included), in text order."""
    sources: List[str] = []

    def walk(regions: List[Region]) -> None:
        for region in regions:
            if region.tag == TAG:
                spec = parse_loop_spec(region.argument)
                if spec is not None and spec[0] not in sources:
                    sources.append(spec[0])
            walk(region.children)

    walk(build_region_tree(content))
    return sources


def process_loops(
    content: str,
    context: RenderContext,
    errors: Optional[List[TemplateParseError]] = None,
) -> str:
    """Replace every ``{#each}`` region with one body expansion per row.

    Rows with no data produce the stripped ``{:else}`` body, or nothing.
    Nested loops are resolved by repeated passes over the output.
    Unterminated regions are logged (and appended to ``errors``) and left as
    they are.

    Example:
        process_loops("{#each rows as r}${r.name};{/each}", ctx)  → "a;b;"
    """
    if not has_loop_blocks(content):
        return content

    def replacement(region: Region, source_text: str) -> str:
        return expand_loop(region, source_text, context)

    return rewrite_regions(content, TAG, replacement, errors)
