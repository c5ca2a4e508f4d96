"""Execution state for one open document.

ReportSession is the integration point for a host application. It keeps
everything a document needs between passes (blocks, table mapping, results,
last parameter snapshot) and wires the executor, the reactive re-executor,
an optional chart builder and an optional parameter store together.

Usage:
    engine = SQLiteQueryEngine()
    session = ReportSession(blocks, engine, chart_builder=my_builder)

    session.execute({"region": "EU"})
    text = session.render(narrative)

    store = InMemoryParameterStore({"region": "EU"})
    session.attach(store)
    store.set("region", "US")      # re-runs only the blocks reading region

    session.close()
"""

import copy
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from ..errors import TemplateParseError
from ..schemas import (
    Block,
    BlockExecutionResult,
    DependencyAnalysis,
    DocumentExecutionResult,
    EngineCFG,
    ReactiveUpdateResult,
    TemplateContext,
)
from ..templates import RenderContext, build_render_context, render_template
from .charts import ChartBuilder, chart_blocks, find_affected_chart_blocks
from .engines import QueryEngine
from .executor import BlockExecutor, ProgressCallback
from .reactive import ReactiveExecutor
from .stores import ParameterStore

logger = logging.getLogger(__name__)


class ReportSession:
    """Execution state and reactive updates for one document."""

    def __init__(
        self,
        blocks: Sequence[Block],
        engine: QueryEngine,
        config: Optional[EngineCFG] = None,
        metadata: Optional[Mapping[str, Any]] = None,
        chart_builder: Optional[ChartBuilder] = None,
    ):
        """Initialize session.

        Args:
            blocks: Document blocks, in declaration order
            engine: Query engine shared by every pass
            config: Engine configuration (defaults to EngineCFG())
            metadata: Document metadata for ``${metadata.*}`` references
            chart_builder: Builds chart descriptors after each pass
        """
        self.blocks = list(blocks)
        self.engine = engine
        self.config = config or EngineCFG()
        self.metadata: Dict[str, Any] = dict(metadata or {})
        self.chart_builder = chart_builder

        self.executor = BlockExecutor(engine, self.config)
        self.reactive = ReactiveExecutor(self.executor)

        self.table_mapping: Dict[str, str] = {}
        self.results: Dict[str, BlockExecutionResult] = {}
        self.charts: Dict[str, Any] = {}
        self.parameters: Dict[str, Any] = {}
        self.analysis: Optional[DependencyAnalysis] = None
        self._unsubscribers: List[Callable[[], None]] = []

    @property
    def executed(self) -> bool:
        """Whether a full pass has run."""
        return self.analysis is not None

    def template_context(self) -> TemplateContext:
        return TemplateContext(parameters=dict(self.parameters), metadata=dict(self.metadata))

    # =========================================================================
    # Execution
    # =========================================================================

    def execute(
        self,
        parameters: Optional[Mapping[str, Any]] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> DocumentExecutionResult:
        """Run a full pass over every query block.

        Args:
            parameters: Parameter values (defaults to the last snapshot)
            on_progress: Optional callback receiving (percent, current, total)

        Returns:
            DocumentExecutionResult, including chart descriptors when a chart
            builder is configured

        Raises:
            MalformedDocumentError: If block ids are not unique
        """
        if parameters is not None:
            self.parameters = copy.deepcopy(dict(parameters))

        context = self.template_context()
        document = self.executor.execute(self.blocks, context, on_progress)

        self.analysis = document.analysis
        self.table_mapping = dict(document.table_mapping)
        self.results = dict(document.results)

        if self.chart_builder is not None:
            charts = chart_blocks(self.blocks, self.config.chart_languages)
            self.charts = self._build_charts(charts, context, document.warnings)
            document.charts = dict(self.charts)

        return document

    def update_parameters(self, parameters: Mapping[str, Any]) -> Optional[ReactiveUpdateResult]:
        """React to a new parameter snapshot.

        Before the first full pass only the snapshot is recorded (there is
        nothing to re-run yet) and None is returned.

        Returns:
            ReactiveUpdateResult describing what was re-run
        """
        new_parameters = copy.deepcopy(dict(parameters))

        if not self.executed:
            logger.debug("Document not executed yet; recording parameters only")
            self.parameters = new_parameters
            return None

        previous = self.parameters
        self.parameters = new_parameters

        update = self.reactive.update(
            self.blocks,
            new_parameters,
            previous,
            self.table_mapping,
            metadata=self.metadata,
            cached_dependencies=self._cached_dependencies(),
            graph=self.analysis.graph,
            execution_order=self.analysis.execution_order,
        )
        self.results.update(update.results)

        if self.chart_builder is not None and update.affected_block_ids:
            charts = find_affected_chart_blocks(
                self.blocks,
                update.affected_block_ids,
                self.table_mapping,
                self.config.chart_languages,
            )
            rebuilt = self._build_charts(charts, self.template_context(), update.warnings)
            self.charts.update(rebuilt)
            update.charts = rebuilt

        return update

    def _cached_dependencies(self) -> Dict[str, List[str]]:
        """Parameter dependencies recorded by successful executions."""
        return {
            block_id: list(result.dependencies.parameters)
            for block_id, result in self.results.items()
            if result.success
        }

    def _build_charts(
        self,
        charts: Sequence[Block],
        context: TemplateContext,
        warnings: List[str],
    ) -> Dict[str, Any]:
        if not charts:
            return {}
        try:
            return dict(self.chart_builder.build(charts, dict(self.table_mapping), context))
        except Exception as e:
            # Chart failures never invalidate query results
            message = f"Chart build failed for {[block.id for block in charts]}: {e}"
            logger.error(message)
            warnings.append(message)
            return {}

    # =========================================================================
    # Rendering
    # =========================================================================

    def render_context(self) -> RenderContext:
        return build_render_context(self.blocks, self.results, self.parameters, self.metadata)

    def render(self, content: str, errors: Optional[List[TemplateParseError]] = None) -> str:
        """Expand ``{#each}`` and ``{#if}`` regions with the current results."""
        return render_template(content, self.render_context(), errors)

    # =========================================================================
    # Parameter Store
    # =========================================================================

    def attach(self, store: ParameterStore) -> Callable[[], None]:
        """Follow a parameter store: every change triggers update_parameters.

        The store's current values become the session's snapshot.

        Returns:
            Callable that detaches the session from the store
        """
        self.update_parameters(store.snapshot())

        def on_change(new_parameters: Dict[str, Any], old_parameters: Dict[str, Any]) -> None:
            self.update_parameters(new_parameters)

        unsubscribe = store.subscribe(on_change)
        self._unsubscribers.append(unsubscribe)
        return unsubscribe

    def close(self, drop_tables: bool = False) -> None:
        """Detach from every store; optionally drop materialized tables."""
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

        if drop_tables:
            for table_name in sorted(set(self.table_mapping.values())):
                self.engine.drop_table(table_name)
            self.table_mapping = {}
