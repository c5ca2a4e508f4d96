"""Tests for template marker scanning and region parsing.

Tests cover:
- BEGIN/ELSE/END tokens and brace-balanced arguments
- Else ownership across nested regions of both tags
- Malformed nesting (unterminated, stray markers)
- Bounded rewriting of nested regions
"""

from report_engine.errors import TemplateParseError
from report_engine.templates.markers import (
    BEGIN,
    ELSE,
    END,
    build_region_tree,
    parse_regions,
    rewrite_regions,
    scan_markers,
)


# =============================================================================
# Scanning
# =============================================================================

def test_scan_markers_kinds():
    markers = scan_markers("{#if x}A{:else}B{/if}")
    assert [(m.kind, m.tag) for m in markers] == [(BEGIN, "if"), (ELSE, None), (END, "if")]
    assert markers[0].argument == "x"


def test_scan_markers_balances_braces_in_argument():
    """A condition may contain ${...} references."""
    markers = scan_markers("{#if ${inputs.x} > 5}A{/if}")
    assert markers[0].argument == "${inputs.x} > 5"
    assert markers[0].end == len("{#if ${inputs.x} > 5}")


def test_scan_markers_ignores_lookalikes():
    assert scan_markers("{#iffy} {#eachother} ${x} {not a marker}") == []


def test_scan_markers_reports_unclosed_tag():
    errors = []
    assert scan_markers("{#if ${inputs.x > 5", errors) == []
    assert len(errors) == 1
    assert isinstance(errors[0], TemplateParseError)


# =============================================================================
# Regions
# =============================================================================

def test_region_spans():
    text = "x{#if c}yes{:else}no{/if}z"
    (region,) = parse_regions(text, "if")

    assert text[region.start:region.end] == "{#if c}yes{:else}no{/if}"
    assert region.body(text) == "yes"
    assert region.else_body(text) == "no"
    assert region.has_else


def test_else_belongs_to_innermost_region():
    """Only an {:else} at depth 1 is the outer region's else branch."""
    text = "{#if a}{#if b}B{:else}notB{/if}{/if}"
    (outer,) = parse_regions(text, "if")

    assert not outer.has_else
    assert outer.body(text) == "{#if b}B{:else}notB{/if}"
    assert outer.children[0].else_body(text) == "notB"


def test_else_inside_loop_belongs_to_loop():
    text = "{#if a}{#each rows as r}x{:else}empty{/each}{:else}no{/if}"
    (region,) = parse_regions(text, "if")

    assert region.body(text) == "{#each rows as r}x{:else}empty{/each}"
    assert region.else_body(text) == "no"


def test_parse_regions_returns_outermost_of_tag_only():
    text = "{#each a as x}{#if c}1{/if}{/each} {#if d}{#if e}2{/if}{/if}"
    regions = parse_regions(text, "if")

    # The {#if c} inside the loop is outermost among conditionals
    assert [region.argument for region in regions] == ["c", "d"]


def test_unterminated_region_is_reported_and_skipped():
    errors = []
    text = "{#if a}never closed {#if b}B{/if}"
    regions = parse_regions(text, "if", errors)

    assert [region.argument for region in regions] == ["b"]
    assert len(errors) == 1
    assert "Unclosed" in str(errors[0])


def test_stray_end_marker_is_reported():
    errors = []
    assert build_region_tree("text {/if} more", errors) == []
    assert "Unmatched" in str(errors[0])


def test_stray_else_is_reported():
    errors = []
    build_region_tree("a {:else} b", errors)
    assert len(errors) == 1


# =============================================================================
# Rewriting
# =============================================================================

def test_rewrite_regions_resolves_nested_levels():
    text = "[{#if a}<{#if b}inner{/if}>{/if}]"

    def unwrap(region, source):
        return region.body(source)

    assert rewrite_regions(text, "if", unwrap) == "[<inner>]"


def test_rewrite_regions_leaves_unterminated_text():
    text = "{#if a}open"
    assert rewrite_regions(text, "if", lambda region, source: "") == text


def test_rewrite_regions_stops_when_nothing_changes():
    calls = []

    def keep(region, source):
        calls.append(region.argument)
        return source[region.start:region.end]

    text = "{#if a}{#if b}x{/if}{/if}"
    assert rewrite_regions(text, "if", keep) == text
    assert calls == ["a"]
