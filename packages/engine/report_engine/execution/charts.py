"""Chart builder interface and affected-chart detection.

Chart blocks do not run queries. They name a data source (a query block's
name or id) and are turned into chart descriptors by an external builder
once the query results are materialized.

A chart block names its source in one of three places, checked in order:
    metadata extra key ``data``
    ``display_options["data"]``
    a ``data: <source>`` line in the block content
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from ..schemas import Block, TemplateContext


class ChartBuilder(ABC):
    """Turns chart blocks into chart descriptors."""

    @abstractmethod
    def build(
        self,
        blocks: Sequence[Block],
        table_mapping: Mapping[str, str],
        context: TemplateContext,
    ) -> Dict[str, Any]:
        """Build descriptors for chart blocks.

        Returns:
            Chart block ID -> chart descriptor
        """
        pass


def chart_blocks(blocks: Sequence[Block], chart_languages: Iterable[str] = ("chart", "histogram")) -> List[Block]:
    languages = {language.lower() for language in chart_languages}
    return [block for block in blocks if block.language.lower() in languages]


def chart_data_source(block: Block) -> Optional[str]:
    """The data source a chart block reads from, if it names one.

    Example:
        Block(id="c1", language="chart", content="type: bar\\ndata: sales")
        → "sales"
    """
    source = block.metadata_value("data")
    if not source and block.metadata is not None:
        source = block.metadata.display_options.get("data")
    if not source:
        for line in block.content.splitlines():
            stripped = line.strip()
            if stripped.startswith("data:"):
                source = stripped[len("data:"):].strip()
                break
    return str(source) if source else None


def find_affected_chart_blocks(
    blocks: Sequence[Block],
    affected_block_ids: Iterable[str],
    table_mapping: Mapping[str, str],
    chart_languages: Iterable[str] = ("chart", "histogram"),
) -> List[Block]:
    """Chart blocks whose data source maps to a table of an affected block.

    Args:
        blocks: All document blocks
        affected_block_ids: Query blocks that were (re-)executed
        table_mapping: Block id or name -> table name
        chart_languages: Languages of chart blocks

    Returns:
        Affected chart blocks in declaration order
    """
    affected_tables = {
        table_mapping[block_id] for block_id in affected_block_ids if block_id in table_mapping
    }
    affected_sources = {
        source for source, table_name in table_mapping.items() if table_name in affected_tables
    }

    return [
        block for block in chart_blocks(blocks, chart_languages)
        if chart_data_source(block) in affected_sources
    ]
