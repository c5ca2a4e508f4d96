"""Report engine schemas.

This package contains all Pydantic models for the report engine:
- Base types and conventions
- Document blocks and metadata
- Dependency analysis results
- Template contexts and interpolation results
- Execution results (per block, per document, reactive updates)
- Engine configuration

Usage:
    from report_engine.schemas import (
        Block, BlockMetadata, TemplateContext,
        DependencyAnalysis, DocumentExecutionResult, EngineCFG
    )
"""

# Base types
from .base import (
    DomainModel,
    BlockId,
    TableName,
    ParameterState,
    TableMapping,
)

# Blocks
from .blocks import (
    Block,
    BlockMetadata,
)

# Dependency analysis
from .analysis import (
    BlockReferences,
    DependencyNode,
    MissingDependency,
    DependencyAnalysis,
)

# Templates
from .template import (
    TemplateContext,
    InterpolationResult,
)

# Execution
from .execution import (
    QueryResult,
    BlockDependencies,
    BlockExecutionResult,
    ExecutionIssue,
    DocumentExecutionResult,
    ParameterChanges,
    AffectedBlocks,
    ReactiveUpdateResult,
)

# Configuration
from .config import EngineCFG

__all__ = [
    # Base types
    "DomainModel",
    "BlockId",
    "TableName",
    "ParameterState",
    "TableMapping",
    # Blocks
    "Block",
    "BlockMetadata",
    # Dependency analysis
    "BlockReferences",
    "DependencyNode",
    "MissingDependency",
    "DependencyAnalysis",
    # Templates
    "TemplateContext",
    "InterpolationResult",
    # Execution
    "QueryResult",
    "BlockDependencies",
    "BlockExecutionResult",
    "ExecutionIssue",
    "DocumentExecutionResult",
    "ParameterChanges",
    "AffectedBlocks",
    "ReactiveUpdateResult",
    # Configuration
    "EngineCFG",
]
