"""Dependency analysis models.

These are produced by ``report_engine.analysis`` once per full-document pass and
consumed by the block executor and the reactive re-executor.
"""

from typing import Dict, List, Optional, Set
from pydantic import Field

from .base import DomainModel


class BlockReferences(DomainModel):
    """References extracted from one block's text.

    ``block_refs`` is the ordered union of ``template_refs`` (explicit
    ``${name}`` placeholders) and ``clause_refs`` (implicit ``FROM name`` /
    ``JOIN name`` references to known blocks). Each list has set semantics:
    first occurrence wins, duplicates are dropped.
    """

    parameter_refs: List[str] = Field(
        default_factory=list,
        description="Parameter names referenced as ${inputs.<name>}"
    )

    metadata_refs: List[str] = Field(
        default_factory=list,
        description="Metadata keys referenced as ${metadata.<name>}"
    )

    template_refs: List[str] = Field(
        default_factory=list,
        description="Explicit block references: ${block_name}"
    )

    clause_refs: List[str] = Field(
        default_factory=list,
        description="Implicit block references following FROM/JOIN"
    )

    @property
    def block_refs(self) -> List[str]:
        refs = list(self.template_refs)
        for ref in self.clause_refs:
            if ref not in refs:
                refs.append(ref)
        return refs


class DependencyNode(DomainModel):
    """Dependency graph node for one query-bearing block."""

    block_id: str
    block_name: Optional[str] = None

    dependencies: Set[str] = Field(
        default_factory=set,
        description="Block IDs this block depends on"
    )

    dependents: Set[str] = Field(
        default_factory=set,
        description="Block IDs that depend on this block"
    )


class MissingDependency(DomainModel):
    """Explicit references of a block that resolve to no known query block."""

    block_id: str
    missing: List[str]


class DependencyAnalysis(DomainModel):
    """Result of analyzing a document's block list.

    Invariant: ``execution_order`` is a permutation of the ids of all query
    blocks. When ``circular_dependencies`` is not None it is the original
    declaration order.
    """

    execution_order: List[str] = Field(
        default_factory=list,
        description="Block IDs in execution order (dependencies first)"
    )

    dependencies: Dict[str, List[str]] = Field(
        default_factory=dict,
        description="Block ID -> IDs of the blocks it depends on"
    )

    circular_dependencies: Optional[List[List[str]]] = Field(
        default=None,
        description="Every cycle found, each as a path of block IDs; None when acyclic"
    )

    missing_dependencies: List[MissingDependency] = Field(
        default_factory=list,
        description="Blocks whose explicit references resolve to no block"
    )

    graph: Dict[str, DependencyNode] = Field(
        default_factory=dict,
        description="Full graph for upstream/downstream queries"
    )

    @property
    def has_cycles(self) -> bool:
        return bool(self.circular_dependencies)

    @property
    def warnings(self) -> List[str]:
        """Human-readable warnings describing cycles and missing references."""
        messages: List[str] = []
        if self.circular_dependencies:
            cycles = "; ".join(" -> ".join(cycle) for cycle in self.circular_dependencies)
            messages.append(
                f"Circular dependencies detected: {cycles}. "
                "Blocks run in declaration order."
            )
        for entry in self.missing_dependencies:
            messages.append(
                f"Block '{entry.block_id}' references unknown blocks: {', '.join(entry.missing)}"
            )
        return messages
