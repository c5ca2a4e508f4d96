"""Tests for {#each} loop regions and template rendering.

Tests cover:
- Loop header parsing and item/index substitution
- Row expansion counts, empty results and else bodies
- Nested loops and loops combined with conditionals
- Render context construction from execution results
"""

import json

import pytest

from report_engine.schemas import Block, BlockExecutionResult, BlockMetadata, QueryResult
from report_engine.templates import (
    RenderContext,
    build_render_context,
    get_loop_data_sources,
    has_loop_blocks,
    interpolate_item_variables,
    parse_loop_spec,
    process_loops,
    render_template,
)


def result(rows):
    columns = list(rows[0]) if rows else []
    return QueryResult(rows=rows, column_names=columns, row_count=len(rows))


@pytest.fixture
def context():
    return RenderContext(queries={
        "rows": result([{"name": "a"}, {"name": "b"}]),
        "empty": result([]),
        "regions": result([{"region": "EU"}, {"region": "US"}]),
        "people": result([{"name": "Ann", "age": 31, "team": None}]),
    })


# =============================================================================
# Headers and Items
# =============================================================================

def test_parse_loop_spec():
    assert parse_loop_spec("rows as r") == ("rows", "r", None)
    assert parse_loop_spec(" rows as r, i ") == ("rows", "r", "i")
    assert parse_loop_spec("rows r") is None


def test_interpolate_item_variables():
    row = {"name": "a", "total": 5, "note": None}
    body = "${i}/${i + 1}/${i - 1}: ${r.name}=${r.total} [${r.note}]"
    assert interpolate_item_variables(body, "r", "i", row, 2) == "2/3/1: a=5 []"


def test_item_alone_renders_json():
    row = {"name": "a", "total": 5}
    output = interpolate_item_variables("${r}", "r", None, row, 0)
    assert json.loads(output) == row


def test_index_left_alone_when_not_declared():
    assert interpolate_item_variables("${i}", "r", None, {}, 0) == "${i}"


def test_condition_arguments_take_literals():
    row = {"name": "O'Brien", "total": 5, "note": None}
    body = "{#if '${r.name}' == 'x' && ${r.total} > 3 && ${r.note} == null}${r.name}{/if}"
    assert interpolate_item_variables(body, "r", None, row, 0) == (
        "{#if 'O''Brien' == 'x' && 5 > 3 && NULL == null}O'Brien{/if}"
    )


# =============================================================================
# Expansion
# =============================================================================

def test_each_scenario(context):
    assert process_loops("{#each rows as r}${r.name};{/each}", context) == "a;b;"


def test_loop_over_n_rows_expands_n_times(context):
    output = process_loops("{#each regions as r, i}<${i + 1}:${r.region}>{/each}", context)
    assert output == "<1:EU><2:US>"
    assert output.count("<") == 2


def test_empty_result_uses_else_body(context):
    text = "{#each empty as r}${r.name}{:else}\n  No rows\n{/each}"
    assert process_loops(text, context) == "No rows"


def test_empty_result_without_else_is_empty(context):
    assert process_loops("[{#each empty as r}${r.name}{/each}]", context) == "[]"


def test_unknown_source_is_treated_as_empty(context):
    assert process_loops("{#each ghost as g}x{:else}none{/each}", context) == "none"


def test_null_values_render_empty(context):
    assert process_loops("{#each people as p}${p.name}|${p.team}|${p.age}{/each}", context) == "Ann||31"


def test_nested_loops(context):
    text = "{#each regions as r}[${r.region}:{#each rows as x}${x.name}{/each}]{/each}"
    assert process_loops(text, context) == "[EU:ab][US:ab]"


def test_malformed_header_left_unexpanded(context):
    text = "{#each rows}x{/each}"
    assert process_loops(text, context) == text


def test_unterminated_loop_is_reported(context):
    errors = []
    text = "{#each rows as r}${r.name}"
    assert process_loops(text, context, errors) == text
    assert errors


def test_processing_resolved_output_is_noop(context):
    once = process_loops("{#each rows as r}${r.name}{/each}", context)
    assert process_loops(once, context) == once


def test_get_loop_data_sources():
    text = "{#each a as x}{#each b as y}{/each}{/each}{#each a as z}{/each}{#each c as w}{/each}"
    assert get_loop_data_sources(text) == ["a", "b", "c"]


def test_has_loop_blocks():
    assert has_loop_blocks("{#each a as b}{/each}")
    assert not has_loop_blocks("{#if x}{/if}")


# =============================================================================
# Rendering
# =============================================================================

def test_render_template_runs_loops_before_conditionals(context):
    text = "{#each rows as r}{#if '${r.name}' == 'a'}A{:else}-{/if}{/each}"
    assert render_template(text, context) == "A-"


def test_render_template_conditional_around_loop(context):
    text = "{#if ${rows.name} == 'a'}{#each rows as r}${r.name}{/each}{:else}none{/if}"
    assert render_template(text, context) == "ab"


@pytest.mark.parametrize("condition, expected", [
    ("'${r.name}' != 'x'", "Y"),
    ("'${r.name}' == 'O''Brien'", "Y"),
    ("${r.name} == 'O''Brien'", "Y"),
    ("'${r.name}' == 'OBrien'", "N"),
])
def test_row_values_with_quotes_in_conditions(condition, expected):
    context = RenderContext(queries={"rows": result([{"name": "O'Brien"}])})
    text = "{#each rows as r}{#if " + condition + "}Y{:else}N{/if}{/each}"
    assert render_template(text, context) == expected


def test_build_render_context_registers_names_and_ids():
    blocks = [
        Block(id="block_0", language="sql", content="SELECT 1", metadata=BlockMetadata(name="totals")),
        Block(id="block_1", language="sql", content="SELECT 2"),
        Block(id="block_2", language="sql", content="SELECT 3"),
    ]
    results = {
        "block_0": BlockExecutionResult(block_id="block_0", success=True, result=result([{"n": 1}])),
        "block_1": BlockExecutionResult(block_id="block_1", success=False, error="boom"),
    }
    context = build_render_context(blocks, results, {"x": 1}, {"title": "T"})

    assert set(context.queries) == {"totals", "block_0"}
    assert context.rows("totals") == [{"n": 1}]
    assert context.parameters == {"x": 1}
    assert context.metadata == {"title": "T"}
