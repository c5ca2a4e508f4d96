"""Report Engine - Block dependency and reactive execution for interactive documents.

This package provides the execution core for documents that mix narrative
text, embedded queries, charts and user-adjustable parameters:
- Reference extraction and dependency graphs with cycle detection
- Topological execution of query blocks with materialized result tables
- Parameter interpolation and {#if}/{#each} template regions
- Reactive re-execution of only the blocks a parameter change affects

The engine is designed to be:
- Host-agnostic (no UI, no network; collaborators are passed in)
- Testable (pure functions plus a bundled SQLite query engine)
- Forgiving (a failing block is reported, never fatal to the document)
"""

from .schemas import *  # noqa: F403, F401

__version__ = "0.1.0"
