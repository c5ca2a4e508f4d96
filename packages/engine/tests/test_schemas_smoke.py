"""Smoke tests for schema validation.

These tests verify that:
1. All schemas can be imported
2. Basic instantiation works
3. Field validation catches obvious errors
4. Derived properties behave as documented
"""

import pandas as pd
import pytest
from pydantic import ValidationError

from report_engine import __version__
from report_engine.errors import CircularDependencyError
from report_engine.schemas import (
    # Blocks
    Block,
    BlockMetadata,
    # Dependency analysis
    BlockReferences,
    DependencyAnalysis,
    MissingDependency,
    # Templates
    TemplateContext,
    # Execution
    QueryResult,
    BlockExecutionResult,
    ParameterChanges,
    ReactiveUpdateResult,
    # Configuration
    EngineCFG,
)


class TestBasicInstantiation:
    """Test that basic schema instantiation works."""

    def test_version(self):
        assert __version__ == "0.1.0"

    def test_block_defaults(self):
        block = Block(id="block_0", language="sql")
        assert block.content == ""
        assert block.name is None
        assert block.metadata_value("data") is None

    def test_block_name_and_extra_metadata(self):
        block = Block(
            id="block_0",
            language="chart",
            metadata=BlockMetadata(name="totals", data="sales", display_options={"color": "red"}),
        )
        assert block.name == "totals"
        assert block.metadata_value("data") == "sales"
        assert block.metadata_value("display_options") == {"color": "red"}

    def test_empty_name_is_no_name(self):
        assert Block(id="a", language="sql", metadata=BlockMetadata(name="")).name is None

    def test_engine_config_defaults(self):
        config = EngineCFG()
        assert config.query_languages == ["sql"]
        assert config.chart_languages == ["chart", "histogram"]
        assert config.table_prefix == "chart_data_"
        assert config.forbidden_keywords == ["DROP", "DELETE", "TRUNCATE", "ALTER"]
        assert config.include_downstream_dependents


class TestValidation:
    """Test that field validation catches obvious errors."""

    def test_block_requires_id(self):
        with pytest.raises(ValidationError):
            Block(id="", language="sql")

    def test_block_is_frozen(self):
        block = Block(id="a", language="sql", content="SELECT 1")
        with pytest.raises(ValidationError):
            block.content = "SELECT 2"

    def test_template_context_is_frozen(self):
        context = TemplateContext(parameters={"a": 1})
        with pytest.raises(ValidationError):
            context.parameters = {}

    @pytest.mark.parametrize("prefix", ["", "1abc", "chart-data"])
    def test_invalid_table_prefix(self, prefix):
        with pytest.raises(ValidationError):
            EngineCFG(table_prefix=prefix)

    def test_languages_and_keywords_are_normalized(self):
        config = EngineCFG(query_languages=["SQL", "DuckDB"], forbidden_keywords=["insert"])
        assert config.query_languages == ["sql", "duckdb"]
        assert config.forbidden_keywords == ["INSERT"]

    def test_negative_row_count_rejected(self):
        with pytest.raises(ValidationError):
            QueryResult(row_count=-1)


class TestDerivedProperties:
    """Test properties computed from model fields."""

    def test_block_refs_union(self):
        refs = BlockReferences(template_refs=["a", "b"], clause_refs=["b", "c"])
        assert refs.block_refs == ["a", "b", "c"]

    def test_analysis_warnings(self):
        analysis = DependencyAnalysis(
            execution_order=["a", "b"],
            circular_dependencies=[["a", "b", "a"]],
            missing_dependencies=[MissingDependency(block_id="a", missing=["ghost"])],
        )
        assert analysis.has_cycles
        assert analysis.warnings == [
            "Circular dependencies detected: a -> b -> a. Blocks run in declaration order.",
            "Block 'a' references unknown blocks: ghost",
        ]

    def test_acyclic_analysis_has_no_warnings(self):
        analysis = DependencyAnalysis(execution_order=["a"])
        assert not analysis.has_cycles
        assert analysis.warnings == []

    def test_query_result_to_frame(self):
        result = QueryResult(
            rows=[{"b": 2, "a": 1}],
            column_names=["a", "b"],
            row_count=1,
        )
        frame = result.to_frame()
        assert isinstance(frame, pd.DataFrame)
        assert list(frame.columns) == ["a", "b"]
        assert result.first_row() == {"b": 2, "a": 1}
        assert QueryResult().first_row() is None

    def test_parameter_changes(self):
        assert not ParameterChanges().has_changes
        assert ParameterChanges(removed=["x"]).all == ["x"]

    def test_reactive_update_success(self):
        update = ReactiveUpdateResult(results={
            "a": BlockExecutionResult(block_id="a", success=True),
            "b": BlockExecutionResult(block_id="b", success=False, error="boom"),
        })
        assert not update.success
        assert ReactiveUpdateResult().success

    def test_circular_dependency_error_message(self):
        error = CircularDependencyError([["a", "b", "a"], ["c", "c"]])
        assert error.kind == "cycle"
        assert error.cycles == [["a", "b", "a"], ["c", "c"]]
        assert str(error) == "Circular dependencies detected: a -> b -> a; c -> c"
