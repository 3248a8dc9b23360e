"""
Macro subsystem — public API.
"""

from .compiler import Macro, compile_macro
from .engine import MAX_SWEEPS, MacroEngine
from .errors import (
    CompileError,
    ConvergenceError,
    DeclarationError,
    IncludeError,
    MacroCompileError,
    MarkError,
    MetaError,
    RegistryFrozenError,
    RenderError,
    TemplateCompileError,
)
from .extractor import extract_macros
from .includes import IncludeResolver, resolve_includes
from .meta import DocumentMeta, extract_meta
from .pipeline import RenderedDocument, extract_and_expand, render_document, wrap_layout
from .registry import TemplateRegistry
from .stdlib import Lib, assemble

__all__ = [
    "Macro",
    "compile_macro",
    "MacroEngine",
    "MAX_SWEEPS",
    "extract_macros",
    "TemplateRegistry",
    "IncludeResolver",
    "resolve_includes",
    "DocumentMeta",
    "extract_meta",
    "Lib",
    "assemble",
    "RenderedDocument",
    "extract_and_expand",
    "render_document",
    "wrap_layout",
    "MarkError",
    "DeclarationError",
    "CompileError",
    "TemplateCompileError",
    "MacroCompileError",
    "RenderError",
    "ConvergenceError",
    "IncludeError",
    "MetaError",
    "RegistryFrozenError",
]
