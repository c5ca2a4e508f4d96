"""Tests for dependency analysis.

Tests cover:
- Graph construction from explicit and implicit references
- Topological sort (Kahn) and the dependencies-first property
- Cycle detection across components
- Declaration-order fallback on cycles
- Missing references and graph queries
"""

import pytest

from report_engine.analysis import (
    analyze_dependencies,
    build_dependency_graph,
    build_name_table,
    detect_circular_dependencies,
    find_missing_dependencies,
    get_dependent_blocks,
    get_upstream_blocks,
    order_blocks,
    topological_sort,
)
from report_engine.errors import MalformedDocumentError
from report_engine.schemas import Block, BlockMetadata, EngineCFG


def sql(block_id, content, name=None):
    metadata = BlockMetadata(name=name) if name else None
    return Block(id=block_id, language="sql", content=content, metadata=metadata)


# =============================================================================
# Graph Construction
# =============================================================================

def test_graph_has_one_node_per_query_block():
    """Non-query blocks are not part of the graph."""
    blocks = [
        sql("a", "SELECT 1"),
        Block(id="chart", language="chart", content="data: a"),
        Block(id="text", language="markdown", content="Hello"),
    ]
    graph = build_dependency_graph(blocks)
    assert list(graph) == ["a"]


def test_graph_resolves_names_and_ids():
    blocks = [
        sql("a", "SELECT 1 AS total", name="totals"),
        sql("b", "SELECT * FROM ${totals}"),
        sql("c", "SELECT * FROM ${b}"),
    ]
    graph = build_dependency_graph(blocks)

    assert graph["b"].dependencies == {"a"}
    assert graph["c"].dependencies == {"b"}
    assert graph["a"].dependents == {"b"}
    assert graph["a"].block_name == "totals"


def test_graph_implicit_reference():
    blocks = [
        sql("a", "SELECT 1 AS total", name="totals"),
        sql("b", "SELECT * FROM totals"),
    ]
    graph = build_dependency_graph(blocks)
    assert graph["b"].dependencies == {"a"}


def test_graph_ignores_block_names_inside_string_literals():
    blocks = [
        sql("a", "SELECT 1 AS total", name="totals"),
        sql("b", "SELECT 'data from totals' AS note"),
    ]
    graph = build_dependency_graph(blocks)
    assert graph["b"].dependencies == set()
    assert graph["a"].dependents == set()


def test_graph_ignores_self_references():
    blocks = [sql("a", "SELECT * FROM ${self_ref}", name="self_ref")]
    graph = build_dependency_graph(blocks)
    assert graph["a"].dependencies == set()
    assert detect_circular_dependencies(graph) is None


def test_graph_respects_query_languages():
    blocks = [
        Block(id="a", language="duckdb", content="SELECT 1"),
        sql("b", "SELECT * FROM ${a}"),
    ]
    graph = build_dependency_graph(blocks, ["sql", "duckdb"])
    assert graph["b"].dependencies == {"a"}


def test_name_table_first_declaration_wins():
    blocks = [
        sql("a", "SELECT 1", name="dup"),
        sql("b", "SELECT 2", name="dup"),
    ]
    assert build_name_table(blocks)["dup"] == "a"


def test_missing_dependencies_recorded():
    blocks = [
        sql("a", "SELECT * FROM ${nowhere}"),
        sql("b", "SELECT 1"),
    ]
    missing = find_missing_dependencies(blocks)
    assert len(missing) == 1
    assert missing[0].block_id == "a"
    assert missing[0].missing == ["nowhere"]

    # Unresolved references never become edges
    graph = build_dependency_graph(blocks)
    assert graph["a"].dependencies == set()


# =============================================================================
# Topological Sort
# =============================================================================

def test_topological_sort_linear_chain():
    """Test sorting linear dependency chain declared out of order: C -> B -> A."""
    blocks = [
        sql("c", "SELECT * FROM ${b}"),
        sql("a", "SELECT 1"),
        sql("b", "SELECT * FROM ${a}"),
    ]
    order = topological_sort(build_dependency_graph(blocks))
    assert order == ["a", "b", "c"]


def test_topological_sort_parallel_blocks():
    """Test sorting parallel blocks with shared dependency."""
    blocks = [
        sql("c", "SELECT * FROM ${a}"),
        sql("b", "SELECT * FROM ${a}"),
        sql("a", "SELECT 1"),
    ]
    order = topological_sort(build_dependency_graph(blocks))

    # A must be first, B and C follow in declaration order
    assert order == ["a", "c", "b"]


def test_topological_sort_returns_none_on_cycle():
    blocks = [
        sql("a", "SELECT * FROM ${c}"),
        sql("b", "SELECT * FROM ${a}"),
        sql("c", "SELECT * FROM ${b}"),
    ]
    assert topological_sort(build_dependency_graph(blocks)) is None


def test_every_dependency_precedes_its_dependent():
    blocks = [
        sql("report", "SELECT * FROM ${joined} JOIN ${regions} USING (region)"),
        sql("joined", "SELECT * FROM ${orders} JOIN ${customers} USING (cid)"),
        sql("customers", "SELECT 1 AS cid"),
        sql("orders", "SELECT 1 AS cid, 'EU' AS region"),
        sql("regions", "SELECT 'EU' AS region"),
    ]
    analysis = analyze_dependencies(blocks)
    position = {block_id: i for i, block_id in enumerate(analysis.execution_order)}

    assert sorted(analysis.execution_order) == sorted(block.id for block in blocks)
    for block_id, deps in analysis.dependencies.items():
        for dep in deps:
            assert position[dep] < position[block_id]


# =============================================================================
# Cycle Detection
# =============================================================================

def test_two_node_cycle():
    """A references B and B references A."""
    blocks = [
        sql("a", "SELECT * FROM ${b}"),
        sql("b", "SELECT * FROM ${a}"),
    ]
    analysis = analyze_dependencies(blocks)

    assert analysis.circular_dependencies is not None
    assert len(analysis.circular_dependencies) == 1
    assert set(analysis.circular_dependencies[0]) == {"a", "b"}
    assert analysis.execution_order == ["a", "b"]
    assert analysis.has_cycles


def test_cycle_path_order():
    blocks = [
        sql("a", "SELECT * FROM ${b}"),
        sql("b", "SELECT * FROM ${c}"),
        sql("c", "SELECT * FROM ${a}"),
    ]
    cycles = detect_circular_dependencies(build_dependency_graph(blocks))
    assert cycles == [["a", "b", "c"]]


def test_independent_cycles_all_reported():
    blocks = [
        sql("a", "SELECT * FROM ${b}"),
        sql("b", "SELECT * FROM ${a}"),
        sql("x", "SELECT 1"),
        sql("c", "SELECT * FROM ${d}"),
        sql("d", "SELECT * FROM ${c}"),
    ]
    cycles = detect_circular_dependencies(build_dependency_graph(blocks))
    assert cycles == [["a", "b"], ["c", "d"]]


def test_cycle_falls_back_to_declaration_order_for_all_blocks():
    blocks = [
        sql("late", "SELECT * FROM ${early}"),
        sql("early", "SELECT 1"),
        sql("a", "SELECT * FROM ${b}"),
        sql("b", "SELECT * FROM ${a}"),
    ]
    analysis = analyze_dependencies(blocks)

    assert analysis.execution_order == ["late", "early", "a", "b"]
    assert any("Circular dependencies detected" in warning for warning in analysis.warnings)


def test_acyclic_graph_has_no_cycles():
    blocks = [sql("a", "SELECT 1"), sql("b", "SELECT * FROM ${a}")]
    assert detect_circular_dependencies(build_dependency_graph(blocks)) is None


def test_deep_chain_does_not_hit_recursion_limit():
    blocks = [sql("b0", "SELECT 1")]
    blocks += [sql(f"b{i}", f"SELECT * FROM ${{b{i - 1}}}") for i in range(1, 1500)]
    # Declared deepest-first so the search descends the whole chain
    analysis = analyze_dependencies(list(reversed(blocks)))

    assert analysis.circular_dependencies is None
    assert analysis.execution_order[0] == "b0"
    assert analysis.execution_order[-1] == "b1499"


# =============================================================================
# Analysis Entry Point
# =============================================================================

def test_scenario_name_reference_orders_dependency_first():
    """Block A (named totals) and Block B reading ${totals}."""
    blocks = [
        sql("block_a", "SELECT 1 AS total", name="totals"),
        sql("block_b", "SELECT * FROM ${totals}"),
    ]
    assert analyze_dependencies(blocks).execution_order == ["block_a", "block_b"]


def test_duplicate_ids_are_rejected():
    blocks = [sql("a", "SELECT 1"), sql("a", "SELECT 2")]
    with pytest.raises(MalformedDocumentError, match="Duplicate block id 'a'"):
        analyze_dependencies(blocks)


def test_analysis_uses_configured_languages():
    blocks = [
        Block(id="a", language="SQL", content="SELECT 1"),
        Block(id="b", language="duckdb", content="SELECT 1"),
    ]
    assert analyze_dependencies(blocks).execution_order == ["a"]
    assert analyze_dependencies(blocks, EngineCFG(query_languages=["duckdb"])).execution_order == ["b"]


def test_missing_reference_is_a_warning_not_an_error():
    analysis = analyze_dependencies([sql("a", "SELECT * FROM ${ghost}")])
    assert analysis.execution_order == ["a"]
    assert analysis.missing_dependencies[0].missing == ["ghost"]
    assert any("ghost" in warning for warning in analysis.warnings)


# =============================================================================
# Graph Queries
# =============================================================================

@pytest.fixture
def diamond():
    blocks = [
        sql("base", "SELECT 1"),
        sql("left", "SELECT * FROM ${base}"),
        sql("right", "SELECT * FROM ${base}"),
        sql("top", "SELECT * FROM ${left} JOIN ${right}"),
        sql("other", "SELECT 2"),
    ]
    return blocks, build_dependency_graph(blocks)


def test_get_dependent_blocks(diamond):
    _, graph = diamond
    assert get_dependent_blocks("base", graph) == ["left", "right", "top"]
    assert get_dependent_blocks("other", graph) == []


def test_get_upstream_blocks(diamond):
    _, graph = diamond
    assert get_upstream_blocks("top", graph) == ["left", "right", "base"]


def test_order_blocks(diamond):
    blocks, _ = diamond
    ordered = order_blocks(blocks, ["top", "base"])
    assert [block.id for block in ordered] == ["top", "base", "left", "right", "other"]
