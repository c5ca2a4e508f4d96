"""Tokenizer and region parser for ``{#if}`` / ``{#each}`` template markers.

The scanner turns text into a flat list of markers:

    {#if <condition>}   BEGIN  tag="if"    argument=<condition>
    {#each <spec>}      BEGIN  tag="each"  argument=<spec>
    {:else}             ELSE
    {/if}, {/each}      END

BEGIN arguments are read with brace balancing, so a condition may itself
contain ``${...}`` references.

parse_regions() feeds the markers through a stack of open regions. An ELSE
always belongs to the innermost open region, so only an ``{:else}`` at depth 1
of a region becomes that region's else-branch. Unterminated regions and stray
END markers are logged as TemplateParseError and left in the text untouched.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from ..errors import TemplateParseError

logger = logging.getLogger(__name__)


BEGIN = "begin"
ELSE = "else"
END = "end"

_MARKER = re.compile(r'\{(?:#(if|each)(?=[\s}])|(:else)\}|/(if|each)\})')


# =============================================================================
# Tokens
# =============================================================================

@dataclass(frozen=True)
class Marker:
    """One template marker found in the text."""

    kind: str
    tag: Optional[str]
    start: int
    end: int
    argument: str = ""


@dataclass
class Region:
    """A matched BEGIN ... [ELSE ...] END span.

    Indices address the text the region was parsed from:
        text[start:end]              whole region, markers included
        text[body_start:body_end]    primary body
        text[else_start:else_end]    else body (when present)
    """

    tag: str
    argument: str
    start: int
    end: int
    body_start: int
    body_end: int
    else_start: Optional[int] = None
    else_end: Optional[int] = None
    children: List["Region"] = field(default_factory=list)

    @property
    def has_else(self) -> bool:
        return self.else_start is not None

    def body(self, text: str) -> str:
        return text[self.body_start:self.body_end]

    def else_body(self, text: str) -> Optional[str]:
        if self.else_start is None:
            return None
        return text[self.else_start:self.else_end]


@dataclass
class _OpenRegion:
    begin: Marker
    else_marker: Optional[Marker] = None
    children: List[Region] = field(default_factory=list)


def _report(errors: Optional[List[TemplateParseError]], message: str) -> None:
    error = TemplateParseError(message)
    logger.warning("Template parse error: %s", error)
    if errors is not None:
        errors.append(error)


def _find_tag_end(text: str, position: int) -> int:
    """Index of the ``}`` closing a BEGIN tag whose ``{`` precedes position, or -1."""
    depth = 1
    for index in range(position, len(text)):
        char = text[index]
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return index
    return -1


def scan_markers(text: str, errors: Optional[List[TemplateParseError]] = None) -> List[Marker]:
    """Tokenize text into BEGIN/ELSE/END markers, left to right.

    Example:
        scan_markers("{#if ${inputs.x} > 5}A{:else}B{/if}")
        → [Marker(BEGIN, "if", argument="${inputs.x} > 5"),
           Marker(ELSE, ...), Marker(END, "if", ...)]
    """
    markers: List[Marker] = []
    position = 0

    while True:
        match = _MARKER.search(text, position)
        if match is None:
            break

        begin_tag, else_token, end_tag = match.groups()
        if begin_tag:
            close = _find_tag_end(text, match.end())
            if close == -1:
                _report(errors, f"Unclosed {{#{begin_tag}}} tag at index {match.start()}")
                position = match.end()
                continue
            markers.append(Marker(
                kind=BEGIN,
                tag=begin_tag,
                start=match.start(),
                end=close + 1,
                argument=text[match.end():close].strip(),
            ))
            position = close + 1
        elif else_token:
            markers.append(Marker(kind=ELSE, tag=None, start=match.start(), end=match.end()))
            position = match.end()
        else:
            markers.append(Marker(kind=END, tag=end_tag, start=match.start(), end=match.end()))
            position = match.end()

    return markers


# =============================================================================
# Regions
# =============================================================================

def _close(frame: _OpenRegion, end: Marker) -> Region:
    begin = frame.begin
    if frame.else_marker is not None:
        return Region(
            tag=begin.tag,
            argument=begin.argument,
            start=begin.start,
            end=end.end,
            body_start=begin.end,
            body_end=frame.else_marker.start,
            else_start=frame.else_marker.end,
            else_end=end.start,
            children=frame.children,
        )
    return Region(
        tag=begin.tag,
        argument=begin.argument,
        start=begin.start,
        end=end.end,
        body_start=begin.end,
        body_end=end.start,
        children=frame.children,
    )


def build_region_tree(text: str, errors: Optional[List[TemplateParseError]] = None) -> List[Region]:
    """Match markers of both tags into a tree of top-level regions."""
    roots: List[Region] = []
    stack: List[_OpenRegion] = []

    def attach(region: Region) -> None:
        if stack:
            stack[-1].children.append(region)
        else:
            roots.append(region)

    def abandon(frame: _OpenRegion) -> None:
        _report(errors, f"Unclosed {{#{frame.begin.tag}}} block starting at index {frame.begin.start}")
        # Completed regions inside an unterminated one are still valid
        for child in frame.children:
            attach(child)

    for marker in scan_markers(text, errors):
        if marker.kind == BEGIN:
            stack.append(_OpenRegion(begin=marker))

        elif marker.kind == ELSE:
            if not stack:
                _report(errors, f"{{:else}} outside any block at index {marker.start}")
            elif stack[-1].else_marker is not None:
                _report(errors, f"Second {{:else}} in one block at index {marker.start}")
            else:
                stack[-1].else_marker = marker

        else:
            if not any(frame.begin.tag == marker.tag for frame in stack):
                _report(errors, f"Unmatched {{/{marker.tag}}} at index {marker.start}")
                continue
            while stack[-1].begin.tag != marker.tag:
                abandon(stack.pop())
            attach(_close(stack.pop(), marker))

    while stack:
        abandon(stack.pop())

    roots.sort(key=lambda region: region.start)
    return roots


def parse_regions(
    text: str,
    tag: str,
    errors: Optional[List[TemplateParseError]] = None,
) -> List[Region]:
    """Outermost regions of one tag, in text order.

    A region of ``tag`` nested inside another region of the same tag is not
    returned (it is resolved on a later pass); regions of the other tag are
    looked through.
    """
    found: List[Region] = []

    def walk(regions: List[Region]) -> None:
        for region in sorted(regions, key=lambda r: r.start):
            if region.tag == tag:
                found.append(region)
            else:
                walk(region.children)

    walk(build_region_tree(text, errors))
    return found


def count_begin_markers(text: str, tag: str) -> int:
    return sum(1 for match in _MARKER.finditer(text) if match.group(1) == tag)


def has_markers(text: str, tag: str) -> bool:
    return "{#" + tag in text


# =============================================================================
# Rewriting
# =============================================================================

def rewrite_regions(
    text: str,
    tag: str,
    replacement: Callable[[Region, str], str],
    errors: Optional[List[TemplateParseError]] = None,
) -> str:
    """Replace every region of ``tag`` with ``replacement(region, source_text)``.

    Outermost regions are replaced right to left in one pass; the pass is
    repeated while regions remain (nested blocks exposed by the previous
    pass). Each pass resolves one nesting level, so the number of passes is
    bounded by the BEGIN markers in the original text, and a pass that changes
    nothing ends the loop.
    """
    budget = count_begin_markers(text, tag)
    result = text

    for _ in range(budget):
        regions = parse_regions(result, tag, errors)
        if not regions:
            break

        rewritten = result
        for region in reversed(regions):
            rewritten = rewritten[:region.start] + replacement(region, result) + rewritten[region.end:]

        if rewritten == result:
            break
        result = rewritten

    return result
