"""Knowledge plane: context collection, reference extraction, and the dependency graph."""

from crossexam.knowledge_plane.context_store import (
    ContextLimits,
    ContextStore,
    reference_in_context,
    render_context_summary,
    resolve_target,
)
from crossexam.knowledge_plane.dependency_graph import (
    AffectedFile,
    DependencyEdge,
    DependencyGraph,
    GraphNode,
    GraphStats,
    ImpactKind,
    NodeKind,
    RippleEffect,
)
from crossexam.knowledge_plane.references import (
    AdapterParseError,
    DependencyAdapter,
    FileAnalysis,
    FunctionInfo,
    MentionedFile,
    PythonImportAdapter,
    ReferenceExtractor,
    RegexReferenceExtractor,
    ScriptImportAdapter,
    default_adapters,
    extract_mentioned_files,
    is_plausible_file_reference,
)

__all__ = [
    "AdapterParseError",
    "AffectedFile",
    "ContextLimits",
    "ContextStore",
    "DependencyAdapter",
    "DependencyEdge",
    "DependencyGraph",
    "FileAnalysis",
    "FunctionInfo",
    "GraphNode",
    "GraphStats",
    "ImpactKind",
    "MentionedFile",
    "NodeKind",
    "PythonImportAdapter",
    "ReferenceExtractor",
    "RegexReferenceExtractor",
    "RippleEffect",
    "ScriptImportAdapter",
    "default_adapters",
    "extract_mentioned_files",
    "is_plausible_file_reference",
    "reference_in_context",
    "render_context_summary",
    "resolve_target",
]
