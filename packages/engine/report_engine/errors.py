"""Report engine error hierarchy.

All engine errors inherit from ReportEngineError. Each class carries a ``kind``
string that is copied into ``ExecutionIssue.kind`` when the error is recovered
at the per-block boundary and aggregated into a document result.

Only MalformedDocumentError is meant to reach callers; everything else is
caught by the executor and reported per block.
"""


class ReportEngineError(Exception):
    """Base error for all report engine operations."""

    kind = "engine"


class TemplateParseError(ReportEngineError):
    """Unterminated or malformed {#if}/{#each} marker."""

    kind = "parse"


class BlockReferenceError(ReportEngineError):
    """A block or table reference cannot be resolved."""

    kind = "reference"


class CircularDependencyError(ReportEngineError):
    """Raised (or reported) when blocks have circular dependencies."""

    kind = "cycle"

    def __init__(self, cycles):
        self.cycles = [list(cycle) for cycle in cycles]
        super().__init__(
            "Circular dependencies detected: "
            + "; ".join(" -> ".join(cycle) for cycle in self.cycles)
        )


class QueryExecutionError(ReportEngineError):
    """The query engine rejected or failed a block's resolved query."""

    kind = "query"


class QueryValidationError(ReportEngineError):
    """Resolved query text failed the pre-execution safety check."""

    kind = "validation"


class MalformedDocumentError(ReportEngineError):
    """The block list itself is unusable (e.g. duplicate block ids)."""

    kind = "document"


class ExpressionError(ReportEngineError):
    """A condition expression could not be parsed or evaluated."""

    kind = "expression"
