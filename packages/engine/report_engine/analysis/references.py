"""Reference extraction for block content.

Recognizes the reference forms a block can contain:
- ``${inputs.name}``    parameter reference
- ``${metadata.name}``  document metadata reference
- ``${block_name}``     explicit reference to another block's result
- ``FROM block_name`` / ``JOIN block_name``
                        implicit reference, only when the identifier is a
                        known block id or name

Every function here is a pure function of its arguments: identical content
always yields identical references.
"""

import re
from typing import Dict, Iterable, List, Tuple

from ..schemas import BlockReferences


# =============================================================================
# Patterns
# =============================================================================

IDENTIFIER = r'[A-Za-z_][A-Za-z0-9_]*'

PATTERNS: Dict[str, re.Pattern] = {
    # ${identifier} - block reference
    "TEMPLATE_VAR": re.compile(r'\$\{(' + IDENTIFIER + r')\}'),
    # ${inputs.name}
    "INPUT_VAR": re.compile(r'\$\{inputs\.(\w+)\}'),
    # ${metadata.name}
    "METADATA_VAR": re.compile(r'\$\{metadata\.(\w+)\}'),
    # ${namespace.property}
    "QUALIFIED_VAR": re.compile(r'\$\{(' + IDENTIFIER + r')\.(' + IDENTIFIER + r')\}'),
    # ${namespace.property[index]}
    "INDEXED_VAR": re.compile(r'\$\{(' + IDENTIFIER + r')\.(' + IDENTIFIER + r')\[(\d+)\]\}'),
    # FROM name / JOIN name, optionally quoted
    "CLAUSE_REF": re.compile(
        r'\b(?:FROM|JOIN)\s+["\'`]?(' + IDENTIFIER + r')["\'`]?(?![A-Za-z0-9_.(])',
        re.IGNORECASE,
    ),
    # 'string literal' with doubled quotes as escapes
    "STRING_LITERAL": re.compile(r"'(?:[^']|'')*'"),
}

# Namespaces that are never block names
RESERVED_NAMESPACES = frozenset({"inputs", "metadata"})


def _unique(values: Iterable[str]) -> List[str]:
    seen: List[str] = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return seen


def string_literal_spans(text: str) -> List[Tuple[int, int]]:
    """(start, end) of every single-quoted string literal in text."""
    return [m.span() for m in PATTERNS["STRING_LITERAL"].finditer(text)]


def in_string_literal(position: int, spans: List[Tuple[int, int]]) -> bool:
    """Whether position falls inside one of the given literal spans."""
    return any(start < position < end for start, end in spans)


def clause_matches(text: str, pattern: "re.Pattern[str]") -> List["re.Match[str]"]:
    """FROM/JOIN matches of pattern that are SQL, not text inside a string literal.

    Example:
        SELECT 'data from sales' AS note FROM totals
        → only the match for "FROM totals"
    """
    spans = string_literal_spans(text)
    return [m for m in pattern.finditer(text) if not in_string_literal(m.start(), spans)]


# =============================================================================
# Detection
# =============================================================================

def has_template_variables(text: str) -> bool:
    """Check if text contains any ``${...}`` placeholder.

    Example:
        has_template_variables('SELECT * FROM ${table}')  → True
        has_template_variables('SELECT * FROM users')     → False
    """
    return re.search(r'\$\{[^}]+\}', text) is not None


def has_input_variables(text: str) -> bool:
    """Check if text contains ``${inputs.*}`` or ``${metadata.*}`` references."""
    return (
        PATTERNS["INPUT_VAR"].search(text) is not None
        or PATTERNS["METADATA_VAR"].search(text) is not None
    )


# =============================================================================
# Extraction
# =============================================================================

def extract_variables(text: str) -> Dict[str, List[str]]:
    """Extract every explicit placeholder, grouped by namespace.

    Returns:
        Dict with keys ``inputs``, ``metadata`` and ``blocks``

    Example:
        extract_variables('SELECT * FROM ${table} WHERE region = ${inputs.region}')
        → {"inputs": ["region"], "metadata": [], "blocks": ["table"]}
    """
    inputs = _unique(m.group(1) for m in PATTERNS["INPUT_VAR"].finditer(text))
    metadata = _unique(m.group(1) for m in PATTERNS["METADATA_VAR"].finditer(text))
    blocks = _unique(
        m.group(1)
        for m in PATTERNS["TEMPLATE_VAR"].finditer(text)
        if m.group(1) not in RESERVED_NAMESPACES
    )
    return {"inputs": inputs, "metadata": metadata, "blocks": blocks}


def extract_parameter_dependencies(text: str) -> List[str]:
    """Names of the parameters a block's text reads via ``${inputs.*}``."""
    return extract_variables(text)["inputs"]


def extract_block_references(text: str, known_block_names: Iterable[str] = ()) -> BlockReferences:
    """Extract parameter, metadata and block references from one block.

    Args:
        text: Block content
        known_block_names: Block ids and names eligible for implicit
            ``FROM``/``JOIN`` detection. Explicit ``${name}`` references are
            always reported, known or not.

    Returns:
        BlockReferences with duplicates collapsed

    Example:
        extract_block_references(
            "SELECT * FROM ${base} b JOIN customers c ON b.cid = c.id",
            {"base", "customers"},
        )
        → template_refs=["base"], clause_refs=["customers"]
    """
    known = set(known_block_names)
    variables = extract_variables(text)

    template_refs = variables["blocks"]
    clause_refs = _unique(
        m.group(1)
        for m in clause_matches(text, PATTERNS["CLAUSE_REF"])
        if m.group(1) in known and m.group(1) not in template_refs
    )

    return BlockReferences(
        parameter_refs=variables["inputs"],
        metadata_refs=variables["metadata"],
        template_refs=template_refs,
        clause_refs=clause_refs,
    )
