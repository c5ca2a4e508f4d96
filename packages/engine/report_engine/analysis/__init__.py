"""Dependency analysis for document blocks.

Architecture:
    Blocks → References → Dependency graph → Cycles / Execution order

Usage:
    from report_engine.analysis import analyze_dependencies

    analysis = analyze_dependencies(blocks)
    for block_id in analysis.execution_order:
        ...
"""

from .references import (
    PATTERNS,
    extract_block_references,
    extract_parameter_dependencies,
    extract_variables,
    has_input_variables,
    has_template_variables,
)
from .graph import (
    analyze_dependencies,
    build_dependency_graph,
    build_name_table,
    detect_circular_dependencies,
    find_missing_dependencies,
    get_dependent_blocks,
    get_upstream_blocks,
    order_blocks,
    query_blocks,
    topological_sort,
)

__all__ = [
    "PATTERNS",
    "extract_block_references",
    "extract_parameter_dependencies",
    "extract_variables",
    "has_input_variables",
    "has_template_variables",
    "analyze_dependencies",
    "build_dependency_graph",
    "build_name_table",
    "detect_circular_dependencies",
    "find_missing_dependencies",
    "get_dependent_blocks",
    "get_upstream_blocks",
    "order_blocks",
    "query_blocks",
    "topological_sort",
]
