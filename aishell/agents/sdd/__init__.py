from .context import SddContext, create_context_loader
from .paths import SddDocPaths, resolve_sdd_doc_paths
from .sdd_agent import SddRunScope, SddWorkflowRunner

__all__ = [
    "SddContext",
    "SddDocPaths",
    "SddRunScope",
    "SddWorkflowRunner",
    "create_context_loader",
    "resolve_sdd_doc_paths",
]
