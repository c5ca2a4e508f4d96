"""Document block models.

Blocks are produced by the external document parser, one per fenced region of
the document (a query, a chart spec, an input control, ...). The engine only
reads them: a Block is frozen for the duration of an execution pass.
"""

from typing import Any, Dict, Optional
from pydantic import ConfigDict, Field

from .base import DomainModel, BlockId


class BlockMetadata(DomainModel):
    """Optional per-block metadata attached by the document parser.

    Unknown keys are preserved (chart blocks carry e.g. ``data``), so the
    model allows extra fields.
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    name: Optional[str] = Field(
        default=None,
        description="Human-readable alias that other blocks can reference (e.g., 'totals')"
    )

    display_options: Dict[str, Any] = Field(
        default_factory=dict,
        description="Presentation hints passed through to renderers"
    )


class Block(DomainModel):
    """One unit of document content with a stable identifier.

    Example:
        Block(
            id="block_1",
            language="sql",
            content="SELECT * FROM ${totals} WHERE region = ${inputs.region}",
            metadata=BlockMetadata(name="regional_totals"),
        )
    """

    model_config = ConfigDict(frozen=True)

    id: BlockId = Field(
        description="Unique identifier, stable per document build"
    )

    language: str = Field(
        description="Block language as declared in the document (e.g., 'sql', 'chart')"
    )

    content: str = Field(
        default="",
        description="Raw block text; may reference parameters or other blocks"
    )

    metadata: Optional[BlockMetadata] = Field(
        default=None,
        description="Optional metadata (name, display options)"
    )

    @property
    def name(self) -> Optional[str]:
        """Declared block name, if any."""
        if self.metadata is None:
            return None
        return self.metadata.name or None

    def metadata_value(self, key: str) -> Any:
        """Look up a metadata key, including extra keys kept by the parser."""
        if self.metadata is None:
            return None
        if key == "name":
            return self.metadata.name
        if key == "display_options":
            return self.metadata.display_options
        extra = self.metadata.model_extra or {}
        return extra.get(key)
