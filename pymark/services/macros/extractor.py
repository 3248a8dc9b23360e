"""
Macro extractor
===============
Finds macro declarations embedded in a document, compiles them and strips
them from the text.

    <!-- Macro: @\\{([^}]+)\\}
         Template: ac:link:user
         Name: ${1} -->

The first line holds the pattern, the second the template name, the rest
is a YAML mapping of template fields.  Declarations are returned in
document order.  A block that starts like a declaration but is malformed
raises ``DeclarationError`` carrying the block's literal text.
"""

from __future__ import annotations

import logging
import re
import textwrap

import yaml

from .compiler import Macro, compile_macro
from .errors import DeclarationError, MacroCompileError
from .registry import TemplateRegistry

logger = logging.getLogger(__name__)

# Any comment that opens with "Macro:" is a declaration, well-formed or not.
_BLOCK_RE = re.compile(r"<!--\s*Macro:.*?-->", re.DOTALL)

_DECLARATION_RE = re.compile(
    r"<!--\s*Macro:[ \t]*(?P<pattern>[^\n]*?)[ \t]*\n"
    r"\s*Template:[ \t]*(?P<template>\S+)[ \t]*"
    r"(?P<fields>\n.*?)?"
    r"-->",
    re.DOTALL,
)
_TEMPLATE_LINE = re.compile(r"^\s*Template:", re.MULTILINE)


def extract_macros(
    text: str,
    registry: TemplateRegistry | None = None,
) -> tuple[list[Macro], str]:
    """
    Return ``(macros, remaining_text)``.

    *registry* is optional and only used to note templates that are not
    defined yet; the lookup itself happens at render time.
    """
    macros: list[Macro] = []

    def _compile(match: re.Match) -> str:
        block = match.group(0)
        macro = parse_declaration(block)
        if registry is not None and not registry.has(macro.template):
            logger.debug("Macro %r refers to undefined template %s", macro.name, macro.template)
        macros.append(macro)
        return ""

    remaining = _BLOCK_RE.sub(_compile, text)
    if macros:
        logger.debug("Extracted %d macro declaration(s)", len(macros))
    return macros, remaining


def parse_declaration(block: str) -> Macro:
    """
    Compile a single ``<!-- Macro: … -->`` block.

    The field section may hold any non-empty mapping; ``Name:`` is the
    usual key but is not required, so a declaration can feed templates
    such as ``ac:code`` (``Language``/``Text``) directly.  A declaration
    with no fields at all is a ``DeclarationError``.
    """
    match = _DECLARATION_RE.fullmatch(block)
    if match is None:
        if not _TEMPLATE_LINE.search(block):
            raise DeclarationError("macro declaration has no Template: line", block)
        raise DeclarationError("malformed macro declaration", block)

    pattern = match.group("pattern")
    if not pattern:
        raise DeclarationError("macro declaration has an empty pattern", block)

    raw_fields = textwrap.dedent(match.group("fields") or "").strip()
    if not raw_fields:
        raise DeclarationError("macro declaration has no field mapping", block)

    try:
        fields = yaml.safe_load(raw_fields)
    except yaml.YAMLError as exc:
        raise DeclarationError(f"unable to parse field mapping ({exc})", block) from exc

    if not isinstance(fields, dict) or not fields:
        raise DeclarationError("field mapping must be a non-empty 'Key: value' mapping", block)

    try:
        return compile_macro(
            pattern,
            {str(key): value for key, value in fields.items()},
            match.group("template"),
            source=block,
        )
    except MacroCompileError as exc:
        raise DeclarationError(exc.reason, block) from exc
