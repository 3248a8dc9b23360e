"""
Document pipeline
=================
The entry point a service or CLI calls once per document:

    lib = assemble(directory.lookup)
    markup = extract_and_expand(text, lib, resolver=IncludeResolver(root))

Stages, in order:

1. includes are spliced in until none is left (private template overlay);
2. macro declarations are extracted from the document;
3. document macros, then standard macros, are expanded to a fixed point.

``render_document`` additionally reads the metadata header and wraps the
result in the ``ac:layout`` template.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .engine import MAX_SWEEPS, MacroEngine
from .extractor import extract_macros
from .includes import MAX_INCLUDE_DEPTH, IncludeResolver, resolve_includes
from .meta import DocumentMeta, extract_meta
from .registry import TemplateRegistry
from .stdlib import Lib

logger = logging.getLogger(__name__)


@dataclass
class RenderedDocument:
    meta: Optional[DocumentMeta]
    body: str
    markup: str


def extract_and_expand(
    text: str,
    lib: Lib,
    *,
    resolver: IncludeResolver | None = None,
    max_sweeps: int = MAX_SWEEPS,
    max_include_depth: int = MAX_INCLUDE_DEPTH,
) -> str:
    """Expand every macro in *text*; raises a ``MarkError`` subclass on failure."""
    registry = lib.templates

    if resolver is not None:
        registry, text = resolve_includes(text, registry, resolver, max_include_depth)

    macros, text = extract_macros(text, registry)

    if resolver is not None and macros:
        registry = resolver.load_macro_templates(macros, registry)

    engine = MacroEngine(registry, max_sweeps=max_sweeps)
    return engine.expand(text, [*macros, *lib.macros])


def wrap_layout(registry: TemplateRegistry, body: str, layout: str = "") -> str:
    """Render the page-level ``ac:layout`` wrapper around *body*."""
    return registry.render("ac:layout", {"Layout": layout, "Body": body})


def render_document(
    text: str,
    lib: Lib,
    *,
    resolver: IncludeResolver | None = None,
    layout: str | None = None,
    max_sweeps: int = MAX_SWEEPS,
    max_include_depth: int = MAX_INCLUDE_DEPTH,
) -> RenderedDocument:
    """
    Full per-document run: metadata, macro expansion and layout.

    An explicit *layout* overrides the document's ``Layout`` header.
    """
    meta, text = extract_meta(text)
    body = extract_and_expand(
        text,
        lib,
        resolver=resolver,
        max_sweeps=max_sweeps,
        max_include_depth=max_include_depth,
    )

    if layout is None:
        layout = meta.layout if meta else ""

    logger.info(
        "Rendered document %r (%d chars, layout=%s)",
        meta.title if meta else "", len(body), layout or "default",
    )
    return RenderedDocument(meta=meta, body=body, markup=wrap_layout(lib.templates, body, layout))
