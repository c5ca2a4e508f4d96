"""Dependency graph construction, cycle detection and topological ordering.

This module provides the analysis half of the engine:
- build_dependency_graph: one node per query block, edges from references
- detect_circular_dependencies: DFS with a recursion stack, every cycle
- topological_sort: Kahn's algorithm, dependencies first
- analyze_dependencies: the entry point used by the block executor

Traversals follow block declaration order, so every result is deterministic
for a given block list.
"""

import logging
from collections import deque
from typing import Dict, Iterable, List, Optional, Sequence

from ..errors import MalformedDocumentError
from ..schemas import (
    Block,
    DependencyAnalysis,
    DependencyNode,
    EngineCFG,
    MissingDependency,
)
from .references import extract_block_references

logger = logging.getLogger(__name__)


# =============================================================================
# Helpers
# =============================================================================

def query_blocks(blocks: Sequence[Block], query_languages: Iterable[str] = ("sql",)) -> List[Block]:
    """Filter to the query-bearing blocks, in declaration order."""
    languages = {language.lower() for language in query_languages}
    return [block for block in blocks if block.language.lower() in languages]


def ensure_unique_ids(blocks: Sequence[Block]) -> None:
    """Raise MalformedDocumentError if two blocks share an id."""
    seen = set()
    for block in blocks:
        if block.id in seen:
            raise MalformedDocumentError(f"Duplicate block id '{block.id}' in document")
        seen.add(block.id)


def build_name_table(blocks: Sequence[Block]) -> Dict[str, str]:
    """Map every block id and declared name to its block id.

    Ids take precedence over names; when two blocks declare the same name,
    the first declaration wins.
    """
    name_to_id: Dict[str, str] = {block.id: block.id for block in blocks}
    for block in blocks:
        name = block.name
        if not name or name in name_to_id:
            if name and name_to_id[name] != block.id:
                logger.warning(
                    "Block name '%s' of block %s is already taken by block %s; ignoring it",
                    name, block.id, name_to_id[name],
                )
            continue
        name_to_id[name] = block.id
    return name_to_id


def _declaration_index(graph: Dict[str, DependencyNode]) -> Dict[str, int]:
    return {block_id: index for index, block_id in enumerate(graph)}


def _ordered(ids: Iterable[str], index: Dict[str, int]) -> List[str]:
    return sorted((i for i in ids if i in index), key=index.__getitem__)


# =============================================================================
# Graph Construction
# =============================================================================

def build_dependency_graph(
    blocks: Sequence[Block],
    query_languages: Iterable[str] = ("sql",),
) -> Dict[str, DependencyNode]:
    """Build the dependency graph for the query blocks of a document.

    Every block reference (explicit ``${name}`` or implicit ``FROM name``) is
    resolved against the id/name table. Resolved references become edges;
    unresolved ones are left to find_missing_dependencies. Self references
    never become edges.

    Args:
        blocks: All document blocks (non-query blocks are ignored)
        query_languages: Languages that carry queries

    Returns:
        Block ID -> DependencyNode, in declaration order

    Example:
        A: SELECT 1 AS total            (name: totals)
        B: SELECT * FROM ${totals}

        build_dependency_graph([A, B])
        → {A: deps={}, dependents={B}, B: deps={A}, dependents={}}
    """
    sql_blocks = query_blocks(blocks, query_languages)
    name_to_id = build_name_table(sql_blocks)

    graph: Dict[str, DependencyNode] = {
        block.id: DependencyNode(block_id=block.id, block_name=block.name)
        for block in sql_blocks
    }

    for block in sql_blocks:
        node = graph[block.id]
        refs = extract_block_references(block.content, name_to_id.keys())

        for ref in refs.block_refs:
            ref_id = name_to_id.get(ref)
            # Unresolved refs are reported as missing, not as edges
            if ref_id is None or ref_id == block.id:
                continue
            node.dependencies.add(ref_id)
            graph[ref_id].dependents.add(block.id)

    return graph


def find_missing_dependencies(
    blocks: Sequence[Block],
    query_languages: Iterable[str] = ("sql",),
) -> List[MissingDependency]:
    """Report explicit ``${name}`` references that name no query block."""
    sql_blocks = query_blocks(blocks, query_languages)
    name_to_id = build_name_table(sql_blocks)

    missing: List[MissingDependency] = []
    for block in sql_blocks:
        refs = extract_block_references(block.content, name_to_id.keys())
        unknown = [ref for ref in refs.template_refs if ref not in name_to_id]
        if unknown:
            missing.append(MissingDependency(block_id=block.id, missing=unknown))
    return missing


# =============================================================================
# Cycle Detection
# =============================================================================

def detect_circular_dependencies(graph: Dict[str, DependencyNode]) -> Optional[List[List[str]]]:
    """Find every dependency cycle with a depth-first search.

    When the search reaches a node that is still on the recursion stack, the
    stack from that node to the current one (inclusive) is recorded as one
    cycle. The search continues over every component, so independent cycles
    are all reported. O(V+E).

    Args:
        graph: Dependency graph from build_dependency_graph

    Returns:
        List of cycles (each a list of block IDs), or None if acyclic

    Example:
        A depends on B, B depends on A
        → [["A", "B"]]
    """
    index = _declaration_index(graph)
    cycles: List[List[str]] = []
    visited = set()
    on_stack = set()
    path: List[str] = []

    for root in graph:
        if root in visited:
            continue

        visited.add(root)
        on_stack.add(root)
        path.append(root)
        pending = [iter(_ordered(graph[root].dependencies, index))]

        while pending:
            descended = False
            for dep_id in pending[-1]:
                if dep_id not in visited:
                    visited.add(dep_id)
                    on_stack.add(dep_id)
                    path.append(dep_id)
                    pending.append(iter(_ordered(graph[dep_id].dependencies, index)))
                    descended = True
                    break
                if dep_id in on_stack:
                    cycles.append(path[path.index(dep_id):])

            if not descended:
                pending.pop()
                on_stack.discard(path.pop())

    return cycles or None


# =============================================================================
# Topological Sort
# =============================================================================

def topological_sort(graph: Dict[str, DependencyNode]) -> Optional[List[str]]:
    """Sort block IDs so every block follows the blocks it depends on.

    Uses Kahn's algorithm: blocks with no dependencies seed the queue (in
    declaration order); each emitted block lowers the in-degree of its
    dependents, which join the queue once they reach zero.

    Args:
        graph: Dependency graph from build_dependency_graph

    Returns:
        Block IDs in execution order, or None if a cycle prevents a valid order

    Example:
        C depends on B, B depends on A, declared [C, A, B]
        → ["A", "B", "C"]
    """
    index = _declaration_index(graph)

    # In-degree = number of dependencies inside the graph
    in_degree: Dict[str, int] = {
        block_id: len([d for d in node.dependencies if d in graph])
        for block_id, node in graph.items()
    }

    queue = deque(block_id for block_id in graph if in_degree[block_id] == 0)
    sorted_ids: List[str] = []

    while queue:
        current = queue.popleft()
        sorted_ids.append(current)

        for dependent in _ordered(graph[current].dependents, index):
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                queue.append(dependent)

    # Not every node was emitted: the rest sit on or behind a cycle
    if len(sorted_ids) != len(graph):
        return None

    return sorted_ids


# =============================================================================
# Analysis Entry Point
# =============================================================================

def analyze_dependencies(
    blocks: Sequence[Block],
    config: Optional[EngineCFG] = None,
) -> DependencyAnalysis:
    """Analyze the blocks of one document for execution.

    Builds the graph, detects cycles, and computes the execution order. A
    cycle is never fatal: the order falls back to declaration order for all
    query blocks and the cycles are returned for the caller to surface as a
    warning.

    Args:
        blocks: All document blocks, in declaration order
        config: Engine configuration (defaults to EngineCFG())

    Returns:
        DependencyAnalysis

    Raises:
        MalformedDocumentError: If block ids are not unique
    """
    config = config or EngineCFG()
    ensure_unique_ids(blocks)

    sql_blocks = query_blocks(blocks, config.query_languages)
    declaration_order = [block.id for block in sql_blocks]

    graph = build_dependency_graph(blocks, config.query_languages)
    circular = detect_circular_dependencies(graph)

    if circular:
        logger.warning("Circular dependencies detected: %s", circular)
        execution_order = declaration_order
    else:
        execution_order = topological_sort(graph) or declaration_order

    missing = find_missing_dependencies(blocks, config.query_languages)
    for entry in missing:
        logger.warning(
            "Block %s references unknown blocks: %s", entry.block_id, ", ".join(entry.missing)
        )

    dependencies = {
        block_id: _ordered(node.dependencies, _declaration_index(graph))
        for block_id, node in graph.items()
    }

    logger.debug("Execution order: %s", " -> ".join(execution_order))

    return DependencyAnalysis(
        execution_order=execution_order,
        dependencies=dependencies,
        circular_dependencies=circular,
        missing_dependencies=missing,
        graph=graph,
    )


# =============================================================================
# Graph Queries
# =============================================================================

def get_dependent_blocks(block_id: str, graph: Dict[str, DependencyNode]) -> List[str]:
    """All blocks that read from block_id, directly or transitively (BFS order)."""
    dependents: List[str] = []
    seen = {block_id}
    queue = deque([block_id])
    index = _declaration_index(graph)

    while queue:
        node = graph.get(queue.popleft())
        if node is None:
            continue
        for dep_id in _ordered(node.dependents, index):
            if dep_id not in seen:
                seen.add(dep_id)
                dependents.append(dep_id)
                queue.append(dep_id)

    return dependents


def get_upstream_blocks(block_id: str, graph: Dict[str, DependencyNode]) -> List[str]:
    """All blocks that block_id reads from, directly or transitively (BFS order)."""
    upstream: List[str] = []
    seen = {block_id}
    queue = deque([block_id])
    index = _declaration_index(graph)

    while queue:
        node = graph.get(queue.popleft())
        if node is None:
            continue
        for dep_id in _ordered(node.dependencies, index):
            if dep_id not in seen:
                seen.add(dep_id)
                upstream.append(dep_id)
                queue.append(dep_id)

    return upstream


def order_blocks(blocks: Sequence[Block], order_ids: Sequence[str]) -> List[Block]:
    """Arrange blocks by order_ids; blocks not listed keep their order at the end."""
    by_id = {block.id: block for block in blocks}
    ordered = [by_id[block_id] for block_id in order_ids if block_id in by_id]
    listed = set(order_ids)
    ordered.extend(block for block in blocks if block.id not in listed)
    return ordered
