"""Template region rendering for narrative content."""

from typing import List, Optional

from ..errors import TemplateParseError
from .conditionals import process_conditionals
from .context import RenderContext
from .loops import process_loops


def render_template(
    content: str,
    context: RenderContext,
    errors: Optional[List[TemplateParseError]] = None,
) -> str:
    """Expand every ``{#each}`` and ``{#if}`` region of content.

    Loops run first, so conditions inside a loop body see the row values
    substituted by the loop.

    Example:
        render_template(
            "{#each rows as r}{#if '${r.name}' == 'a'}A{:else}-{/if}{/each}",
            ctx,
        )
        → "A-"
    """
    expanded = process_loops(content, context, errors)
    return process_conditionals(expanded, context, errors)
