"""Engine configuration.

EngineCFG is the single configuration object threaded through the executor,
the reactive re-executor and the document session. There is no global
registry: construct one and pass it in (or rely on the defaults).
"""

from typing import List
from pydantic import Field, field_validator

from .base import DomainModel


DEFAULT_FORBIDDEN_KEYWORDS = ["DROP", "DELETE", "TRUNCATE", "ALTER"]


class EngineCFG(DomainModel):
    """Configuration for dependency analysis and block execution.

    Examples:
        # Defaults: SQL blocks, "chart_data_" tables, validation on
        EngineCFG()

        # Treat both sql and duckdb fences as query blocks
        EngineCFG(query_languages=["sql", "duckdb"])

        # Trusted documents: skip the forbidden-keyword check
        EngineCFG(validate_queries=False)
    """

    query_languages: List[str] = Field(
        default_factory=lambda: ["sql"],
        description="Block languages that carry queries and take part in the dependency graph"
    )

    chart_languages: List[str] = Field(
        default_factory=lambda: ["chart", "histogram"],
        description="Block languages handed to the chart builder"
    )

    table_prefix: str = Field(
        default="chart_data_",
        description="Prefix for materialized result tables (followed by the sanitized block id)"
    )

    null_literal: str = Field(
        default="NULL",
        description="Query-engine literal used for missing or unsupported values"
    )

    validate_queries: bool = Field(
        default=True,
        description="Reject resolved queries containing forbidden keywords before execution"
    )

    forbidden_keywords: List[str] = Field(
        default_factory=lambda: list(DEFAULT_FORBIDDEN_KEYWORDS),
        description="Whole-word, case-insensitive keywords rejected by query validation"
    )

    include_downstream_dependents: bool = Field(
        default=True,
        description=(
            "On parameter change, also re-run blocks that (transitively) read from "
            "an affected block so no dependent keeps a stale result"
        )
    )

    @field_validator('table_prefix')
    @classmethod
    def validate_table_prefix(cls, v: str) -> str:
        """Table prefix must start an identifier so generated names are valid."""
        if not v or not (v[0].isalpha() or v[0] == "_") or not all(c.isalnum() or c == "_" for c in v):
            raise ValueError(f"table_prefix must be an identifier prefix, got: {v!r}")
        return v

    @field_validator('query_languages', 'chart_languages')
    @classmethod
    def normalize_languages(cls, v: List[str]) -> List[str]:
        return [language.lower() for language in v]

    @field_validator('forbidden_keywords')
    @classmethod
    def normalize_keywords(cls, v: List[str]) -> List[str]:
        return [keyword.upper() for keyword in v]
