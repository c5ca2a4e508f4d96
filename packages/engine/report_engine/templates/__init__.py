"""Template processing for block content.

Architecture:
    Query text:      ${inputs.x} / ${metadata.x} / ${block} → literals, tables
    Narrative text:  {#each} loops → {#if} conditionals → rendered text

Usage:
    from report_engine.templates import interpolate_full_sql, render_template

    sql = interpolate_full_sql(block.content, table_mapping, context).output
    text = render_template(markdown, build_render_context(blocks, results))
"""

from .interpolation import (
    interpolate_full_sql,
    interpolate_sql,
    quote_string,
    render_literal,
    render_quoted_literal,
    resolve_block_references,
    resolve_clause_references,
    validate_context,
)
from .markers import (
    Marker,
    Region,
    build_region_tree,
    parse_regions,
    rewrite_regions,
    scan_markers,
)
from .expressions import (
    Comparison,
    Literal,
    Logical,
    Not,
    evaluate_expression,
    parse_expression,
)
from .context import RenderContext, build_render_context
from .conditionals import (
    evaluate_condition,
    has_conditional_blocks,
    process_conditionals,
    substitute_references,
)
from .loops import (
    get_loop_data_sources,
    has_loop_blocks,
    interpolate_item_variables,
    parse_loop_spec,
    process_loops,
)
from .render import render_template

__all__ = [
    # Query interpolation
    "interpolate_full_sql",
    "interpolate_sql",
    "quote_string",
    "render_literal",
    "render_quoted_literal",
    "resolve_block_references",
    "resolve_clause_references",
    "validate_context",
    # Markers
    "Marker",
    "Region",
    "build_region_tree",
    "parse_regions",
    "rewrite_regions",
    "scan_markers",
    # Expressions
    "Comparison",
    "Literal",
    "Logical",
    "Not",
    "evaluate_expression",
    "parse_expression",
    # Rendering
    "RenderContext",
    "build_render_context",
    "evaluate_condition",
    "has_conditional_blocks",
    "process_conditionals",
    "substitute_references",
    "get_loop_data_sources",
    "has_loop_blocks",
    "interpolate_item_variables",
    "parse_loop_spec",
    "process_loops",
    "render_template",
]
