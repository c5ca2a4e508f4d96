"""Reactive re-execution after parameter changes.

When parameters change, only the query blocks that read them are re-run:

    old/new snapshots → changed parameters → affected blocks → re-execute

A block is affected when it reads a changed parameter directly. Blocks that
read from an affected block (transitively) are affected too unless
``include_dependents`` is turned off, so no dependent keeps serving a result
computed from the old parameter values. Every other block and its table
mapping entries are left untouched.
"""

import logging
from typing import Any, Dict, Iterable, List, Mapping, MutableMapping, Optional, Sequence, Set, Union

from ..analysis import (
    build_dependency_graph,
    build_name_table,
    detect_circular_dependencies,
    extract_parameter_dependencies,
    get_dependent_blocks,
    query_blocks,
)
from ..errors import ReportEngineError
from ..schemas import (
    AffectedBlocks,
    Block,
    BlockExecutionResult,
    DependencyAnalysis,
    DependencyNode,
    EngineCFG,
    ExecutionIssue,
    ParameterChanges,
    ReactiveUpdateResult,
    TemplateContext,
)
from .executor import BlockExecutor

logger = logging.getLogger(__name__)


# =============================================================================
# Change Detection
# =============================================================================

def _values_equal(left: Any, right: Any) -> bool:
    try:
        return bool(left == right)
    except ValueError:
        # Array-likes compare element-wise and have no single truth value
        return repr(left) == repr(right)


def get_changed_parameters(
    new_parameters: Mapping[str, Any],
    old_parameters: Mapping[str, Any],
) -> ParameterChanges:
    """Compare two parameter snapshots.

    Values are compared by deep equality, so a new list with the same items
    is not a change.

    Example:
        get_changed_parameters({"a": 1, "b": 3, "c": 0}, {"a": 1, "b": 2, "d": 5})
        → changed=["b"], added=["c"], removed=["d"]
    """
    changed = [
        name for name, value in new_parameters.items()
        if name in old_parameters and not _values_equal(value, old_parameters[name])
    ]
    added = [name for name in new_parameters if name not in old_parameters]
    removed = [name for name in old_parameters if name not in new_parameters]

    return ParameterChanges(changed=changed, added=added, removed=removed)


# =============================================================================
# Affected Blocks
# =============================================================================

def find_affected_blocks(
    blocks: Sequence[Block],
    changed_parameters: Iterable[str],
    cached_dependencies: Optional[Mapping[str, List[str]]] = None,
    graph: Optional[Dict[str, DependencyNode]] = None,
    include_dependents: bool = True,
    query_languages: Iterable[str] = ("sql",),
) -> AffectedBlocks:
    """Find the query blocks that must re-run for a set of changed parameters.

    Args:
        blocks: Current document blocks, in declaration order
        changed_parameters: Names of changed, added or removed parameters
        cached_dependencies: Block ID -> parameter names recorded during the
            last execution; blocks missing from it are re-extracted
        graph: Dependency graph used to pull in downstream blocks (built
            from blocks when omitted)
        include_dependents: Also return blocks that read from an affected block
        query_languages: Languages that carry queries

    Returns:
        AffectedBlocks with IDs in declaration order

    Example:
        A: SELECT * FROM sales                              (no parameters)
        B: SELECT * FROM sales WHERE region = ${inputs.region}

        find_affected_blocks([A, B], ["region"]).block_ids  → ["B"]
    """
    changed = set(changed_parameters)
    cached_dependencies = cached_dependencies or {}
    sql_blocks = query_blocks(blocks, query_languages)

    affected = AffectedBlocks()
    block_dependencies: Dict[str, List[str]] = {}
    affected_by: Dict[str, List[str]] = {}

    for block in sql_blocks:
        if block.id in cached_dependencies:
            parameters = list(cached_dependencies[block.id])
        else:
            parameters = extract_parameter_dependencies(block.content)
        block_dependencies[block.id] = parameters

        hits = [name for name in parameters if name in changed]
        if hits:
            affected_by[block.id] = hits

    downstream: Set[str] = set()
    if include_dependents and affected_by:
        if graph is None:
            graph = build_dependency_graph(blocks, query_languages)
        for block_id in affected_by:
            downstream.update(
                dependent for dependent in get_dependent_blocks(block_id, graph)
                if dependent not in affected_by
            )

    affected.block_ids = [
        block.id for block in sql_blocks if block.id in affected_by or block.id in downstream
    ]
    affected.downstream = [block.id for block in sql_blocks if block.id in downstream]
    affected.affected_by = affected_by
    affected.block_dependencies = block_dependencies

    if affected.block_ids:
        logger.info(
            "Parameters %s affect %d blocks: %s",
            sorted(changed), len(affected.block_ids), affected.block_ids,
        )
    else:
        logger.debug("Parameters %s affect no blocks", sorted(changed))

    return affected


# =============================================================================
# Re-execution
# =============================================================================

class ReactiveExecutor:
    """Re-runs affected blocks through a BlockExecutor.

    Example:
        reactive = ReactiveExecutor(executor)
        update = reactive.update(
            blocks,
            new_parameters={"region": "US"},
            old_parameters={"region": "EU"},
            table_mapping=session_mapping,
        )
        update.affected_block_ids   → ["block_1"]
    """

    def __init__(self, executor: BlockExecutor):
        self.executor = executor

    @property
    def config(self) -> EngineCFG:
        return self.executor.config

    def re_execute(
        self,
        blocks: Sequence[Block],
        affected: Union[AffectedBlocks, Sequence[str]],
        table_mapping: MutableMapping[str, str],
        context: Optional[TemplateContext] = None,
        execution_order: Optional[Sequence[str]] = None,
    ) -> ReactiveUpdateResult:
        """Re-run affected blocks, updating the table mapping in place.

        Blocks run in their relative position in ``execution_order`` (the
        order of the last full pass) when given, otherwise in declaration
        order. Blocks that are no longer in the document are skipped.

        Args:
            blocks: Current document blocks
            affected: AffectedBlocks or a list of block IDs
            table_mapping: Mapping from the last execution (updated in place)
            context: New parameter and metadata values
            execution_order: Order of the last full pass

        Returns:
            ReactiveUpdateResult (``changes`` left empty; see update())
        """
        block_ids = affected.block_ids if isinstance(affected, AffectedBlocks) else list(affected)

        sql_blocks = query_blocks(blocks, self.config.query_languages)
        block_map = {block.id: block for block in sql_blocks}
        name_table = build_name_table(sql_blocks)

        order = list(execution_order) if execution_order else [block.id for block in sql_blocks]
        position = {block_id: index for index, block_id in enumerate(order)}
        ordered_ids = sorted(block_ids, key=lambda block_id: position.get(block_id, len(order)))

        results: Dict[str, BlockExecutionResult] = {}
        errors: List[ExecutionIssue] = []
        warnings: List[str] = []
        failed: Set[str] = set()

        for block_id in ordered_ids:
            block = block_map.get(block_id)
            if block is None:
                message = f"Block '{block_id}' is no longer in the document; skipped"
                logger.warning(message)
                warnings.append(message)
                continue

            logger.debug("Re-executing block %s", block_id)
            execution = self.executor.execute_block(block, table_mapping, context, name_table, failed)
            results[block_id] = execution
            warnings.extend(f"Block '{block_id}': {warning}" for warning in execution.warnings)

            if not execution.success:
                self.executor.record_failure(block, failed, name_table)
                if block.id in table_mapping:
                    message = (
                        f"Block '{block_id}' failed to re-execute; "
                        f"{table_mapping[block.id]} still holds its previous result"
                    )
                    logger.warning(message)
                    warnings.append(message)
                errors.append(ExecutionIssue(
                    block_id=block_id,
                    kind=execution.error_kind or ReportEngineError.kind,
                    message=execution.error or "",
                ))

        logger.info(
            "Re-executed %d blocks (%d failed)", len(results), len(errors),
        )

        return ReactiveUpdateResult(
            affected_block_ids=[block_id for block_id in ordered_ids if block_id in block_map],
            results=results,
            errors=errors,
            warnings=warnings,
        )

    def update(
        self,
        blocks: Sequence[Block],
        new_parameters: Mapping[str, Any],
        old_parameters: Mapping[str, Any],
        table_mapping: MutableMapping[str, str],
        metadata: Optional[Mapping[str, Any]] = None,
        cached_dependencies: Optional[Mapping[str, List[str]]] = None,
        graph: Optional[Dict[str, DependencyNode]] = None,
        execution_order: Optional[Sequence[str]] = None,
    ) -> ReactiveUpdateResult:
        """Detect changes between snapshots and re-run what they affect.

        Like a full pass, an update that re-runs blocks of a cyclic document
        starts its warnings with the cycle warning.
        """
        changes = get_changed_parameters(new_parameters, old_parameters)
        if not changes.has_changes:
            logger.debug("No parameter changes")
            return ReactiveUpdateResult(changes=changes)

        if graph is None:
            graph = build_dependency_graph(blocks, self.config.query_languages)

        affected = find_affected_blocks(
            blocks,
            changes.all,
            cached_dependencies=cached_dependencies,
            graph=graph,
            include_dependents=self.config.include_downstream_dependents,
            query_languages=self.config.query_languages,
        )

        context = TemplateContext(parameters=dict(new_parameters), metadata=dict(metadata or {}))
        update = self.re_execute(blocks, affected, table_mapping, context, execution_order)
        update.changes = changes

        cycles = detect_circular_dependencies(graph)
        if cycles and update.affected_block_ids:
            update.warnings = DependencyAnalysis(circular_dependencies=cycles).warnings + update.warnings
        return update
