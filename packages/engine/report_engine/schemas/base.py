"""Base classes and type aliases for report engine models.

This module provides the foundational pydantic base class and the shared
type aliases used throughout the schema package.
"""

from typing import Annotated, Any, Dict
from pydantic import BaseModel, Field, ConfigDict

# =============================================================================
# Base Model
# =============================================================================

class DomainModel(BaseModel):
    """Base class for all report engine models.

    Provides common configuration for all Pydantic models in the engine:
    - Validation on assignment for runtime safety
    - Support for arbitrary value types (dates, Decimal, numpy scalars)
    """

    model_config = ConfigDict(
        frozen=False,
        validate_assignment=True,
        arbitrary_types_allowed=True,
    )


# =============================================================================
# Type Aliases
# =============================================================================

BlockId = Annotated[
    str,
    Field(min_length=1, description="Unique, build-stable block identifier")
]

TableName = Annotated[
    str,
    Field(
        pattern=r'^[A-Za-z_][A-Za-z0-9_]*$',
        description="Name of a materialized result relation (e.g., 'chart_data_block_0')"
    )
]

# Parameter name -> value (str, number, bool, date, list, or None)
ParameterState = Dict[str, Any]

# Block id or block name -> materialized relation name
TableMapping = Dict[str, str]


# =============================================================================
# Naming Conventions
# =============================================================================
#
# Block IDs:
#   - Assigned by the document parser: "block_0", "block_1", ...
#   - Or UUIDs: "550e8400-e29b-41d4-a716-446655440000"
#
# Block names (metadata.name):
#   - Human-readable aliases used in references: "sales_data", "totals"
#
# Table names:
#   - "<table_prefix><sanitized block id>": "chart_data_block_0"
#
# =============================================================================
