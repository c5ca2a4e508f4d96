"""Full-document block execution.

BlockExecutor runs every query block of a document in dependency order:

    analyze → for each block in execution_order:
        check block references → interpolate → validate → execute → materialize
        → record id and name in the table mapping

A failing block never stops the pass. It is recorded as a failed result, and
any later block that reads from it fails with a reference error instead of
running against a missing or stale table.
"""

import logging
import re
import time
from typing import Callable, Dict, Iterable, List, Mapping, MutableMapping, Optional, Sequence, Set

from ..analysis import analyze_dependencies, build_name_table, extract_block_references, query_blocks
from ..errors import BlockReferenceError, CircularDependencyError, QueryExecutionError, ReportEngineError
from ..schemas import (
    Block,
    BlockDependencies,
    BlockExecutionResult,
    DocumentExecutionResult,
    EngineCFG,
    ExecutionIssue,
    TemplateContext,
)
from ..templates import interpolate_full_sql
from .engines import QueryEngine
from .validation import validate_query

logger = logging.getLogger(__name__)


# Called with (percent, current, total) before each block runs
ProgressCallback = Callable[[int, int, int], None]


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000


class BlockExecutor:
    """Executes query blocks in dependency order against a query engine.

    Example:
        engine = SQLiteQueryEngine()
        executor = BlockExecutor(engine)

        result = executor.execute(
            blocks,
            TemplateContext(parameters={"region": "EU"}),
        )

        result.table_mapping   # {"block_0": "chart_data_block_0", "totals": "chart_data_block_0", ...}
        result.results["block_1"].result.to_frame()
    """

    def __init__(self, engine: QueryEngine, config: Optional[EngineCFG] = None):
        """Initialize executor.

        Args:
            engine: Query engine that runs queries and stores result tables
            config: Engine configuration (defaults to EngineCFG())
        """
        self.engine = engine
        self.config = config or EngineCFG()

    def table_name_for(self, block_id: str) -> str:
        """Materialized table name for a block ID.

        Example:
            table_name_for("block-0")  → "chart_data_block_0"
        """
        return self.config.table_prefix + re.sub(r'[^A-Za-z0-9_]', '_', block_id)

    # =========================================================================
    # Document
    # =========================================================================

    def execute(
        self,
        blocks: Sequence[Block],
        context: Optional[TemplateContext] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> DocumentExecutionResult:
        """Execute every query block of a document.

        Args:
            blocks: All document blocks, in declaration order
            context: Parameter and metadata values for interpolation
            on_progress: Optional callback receiving (percent, current, total)

        Returns:
            DocumentExecutionResult with per-block results, the table mapping
            and the dependency analysis

        Raises:
            MalformedDocumentError: If block ids are not unique
        """
        started = time.perf_counter()
        context = context if context is not None else TemplateContext()

        analysis = analyze_dependencies(blocks, self.config)
        sql_blocks = query_blocks(blocks, self.config.query_languages)
        block_map = {block.id: block for block in sql_blocks}
        name_table = build_name_table(sql_blocks)

        table_mapping: Dict[str, str] = {}
        failed: Set[str] = set()
        document = DocumentExecutionResult(analysis=analysis)
        errors: List[ExecutionIssue] = []
        warnings: List[str] = list(analysis.warnings)

        for cycle in analysis.circular_dependencies or []:
            errors.append(ExecutionIssue(
                block_id=cycle[0],
                kind=CircularDependencyError.kind,
                message=str(CircularDependencyError([cycle])),
            ))

        total = len(analysis.execution_order)
        logger.info("Executing %d query blocks", total)

        results: Dict[str, BlockExecutionResult] = {}
        for position, block_id in enumerate(analysis.execution_order, start=1):
            if on_progress is not None:
                on_progress(round(position / total * 100), position, total)

            block = block_map[block_id]
            execution = self.execute_block(block, table_mapping, context, name_table, failed)
            results[block_id] = execution
            warnings.extend(f"Block '{block_id}': {warning}" for warning in execution.warnings)

            if not execution.success:
                self.record_failure(block, failed, name_table)
                errors.append(ExecutionIssue(
                    block_id=block_id,
                    kind=execution.error_kind or ReportEngineError.kind,
                    message=execution.error or "",
                ))

        executed = sum(1 for execution in results.values() if execution.success)
        document.executed_blocks = executed
        document.failed_blocks = total - executed
        document.success = document.failed_blocks == 0
        document.results = results
        document.table_mapping = table_mapping
        document.errors = errors
        document.warnings = warnings
        document.total_time = _elapsed_ms(started)

        logger.info(
            "Executed %d/%d query blocks in %.1fms (%d table mappings)",
            executed, total, document.total_time, len(table_mapping),
        )

        return document

    def owns_name(
        self,
        block: Block,
        table_mapping: Mapping[str, str],
        name_table: Optional[Mapping[str, str]] = None,
    ) -> bool:
        """Whether references to ``block.name`` resolve to this block.

        Ids take precedence over names and the first declaration of a name
        wins (see build_name_table). Without a name table, a name already
        mapped to another block's table belongs to that block.
        """
        if not block.name:
            return False
        if name_table is not None:
            return name_table.get(block.name) == block.id
        mapped = table_mapping.get(block.name)
        return mapped is None or mapped == self.table_name_for(block.id)

    def record_failure(
        self,
        block: Block,
        failed: Set[str],
        name_table: Optional[Mapping[str, str]] = None,
    ) -> None:
        """Mark a block's id (and its name, when it owns it) as failed."""
        failed.add(block.id)
        if self.owns_name(block, {}, name_table):
            failed.add(block.name)

    # =========================================================================
    # Single Block
    # =========================================================================

    def execute_block(
        self,
        block: Block,
        table_mapping: MutableMapping[str, str],
        context: Optional[TemplateContext] = None,
        name_table: Optional[Mapping[str, str]] = None,
        failed_blocks: Optional[Set[str]] = None,
    ) -> BlockExecutionResult:
        """Execute one query block and materialize its rows.

        Every error is caught here and returned as a failed result; the
        mapping is only written on success. The name entry is written only
        when the block owns its name, so id and name entries of the mapping
        always point at the block the dependency graph resolved them to.

        Args:
            block: Query block to run
            table_mapping: Block id or name -> table name (updated in place)
            context: Parameter and metadata values
            name_table: Block id or name -> owning block id for every query
                block of the document, from build_name_table (defaults to
                the mapping's keys)
            failed_blocks: Ids and names of blocks that failed earlier in the
                current pass

        Returns:
            BlockExecutionResult
        """
        started = time.perf_counter()
        context = context if context is not None else TemplateContext()
        names = name_table.keys() if name_table is not None else table_mapping.keys()
        failed_blocks = failed_blocks if failed_blocks is not None else set()
        owns_name = self.owns_name(block, table_mapping, name_table)

        # A block never reads its own previous result: "FROM sales" inside
        # the block named sales means the source table
        own = {block.id, block.name} if owns_name else {block.id}
        known = [name for name in names if name not in own]

        refs = extract_block_references(block.content, known)
        dependencies = BlockDependencies(
            parameters=refs.parameter_refs,
            blocks=[ref for ref in refs.block_refs if ref not in own],
        )
        query: Optional[str] = None
        warnings: List[str] = []

        try:
            self._check_block_references(dependencies.blocks, table_mapping, known, failed_blocks)

            resolved = interpolate_full_sql(
                block.content,
                table_mapping,
                context,
                known_block_names=known,
                null_literal=self.config.null_literal,
            )
            query = resolved.output
            warnings = resolved.warnings

            if self.config.validate_queries:
                validate_query(query, self.config.forbidden_keywords)

            logger.debug("Executing block %s: %s", block.id, query)
            result = self.engine.execute(query)

            table_name = self.table_name_for(block.id)
            self.engine.materialize(table_name, result.rows, result.column_names)

        except ReportEngineError as e:
            return self._failure(block, e, e.kind, query, dependencies, warnings, started)
        except Exception as e:
            # Engines may raise their own driver errors
            return self._failure(block, e, QueryExecutionError.kind, query, dependencies, warnings, started)

        table_mapping[block.id] = table_name
        if owns_name:
            table_mapping[block.name] = table_name
            logger.debug("Mapped '%s' -> %s", block.name, table_name)
        elif block.name:
            logger.debug("Name '%s' of block %s belongs to another block; not mapped", block.name, block.id)

        elapsed = _elapsed_ms(started)
        logger.debug(
            "Block %s executed in %.1fms (%d rows into %s)",
            block.id, elapsed, result.row_count, table_name,
        )
        if dependencies.parameters:
            logger.debug("  Parameter dependencies: %s", dependencies.parameters)
        if dependencies.blocks:
            logger.debug("  Block dependencies: %s", dependencies.blocks)

        return BlockExecutionResult(
            block_id=block.id,
            success=True,
            result=result,
            table_name=table_name,
            query=query,
            elapsed_time=elapsed,
            dependencies=dependencies,
            warnings=warnings,
        )

    @staticmethod
    def _check_block_references(
        refs: Iterable[str],
        table_mapping: MutableMapping[str, str],
        known: Iterable[str],
        failed_blocks: Set[str],
    ) -> None:
        """Fail fast when a referenced query block has no usable table.

        References to names that are not blocks at all are left for the
        interpolator (placeholder kept, warning logged).
        """
        known = set(known)
        for ref in refs:
            if ref not in known:
                continue
            if ref in failed_blocks:
                raise BlockReferenceError(f"Referenced block '{ref}' failed to execute")
            if ref not in table_mapping:
                raise BlockReferenceError(f"Referenced block '{ref}' has no result table")

    def _failure(
        self,
        block: Block,
        error: Exception,
        kind: str,
        query: Optional[str],
        dependencies: BlockDependencies,
        warnings: List[str],
        started: float,
    ) -> BlockExecutionResult:
        message = str(error) or type(error).__name__
        logger.error("Block %s failed (%s): %s", block.id, kind, message)
        return BlockExecutionResult(
            block_id=block.id,
            success=False,
            query=query,
            error=message,
            error_kind=kind,
            elapsed_time=_elapsed_ms(started),
            dependencies=dependencies,
            warnings=warnings,
        )
