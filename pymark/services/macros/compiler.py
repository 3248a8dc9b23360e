"""
Macro compiler
==============
Turns a macro declaration (pattern + field mapping + template name) into a
``Macro``: a compiled ``re.Pattern`` bound to a template reference.

Field values may refer to the pattern's capture groups:

    ${1}  $1      numbered group
    ${name}       named group (?P<name>…)
    $$            literal dollar

The template itself is not looked up here; documents may declare a macro
before the include that defines its template.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Mapping

from .errors import MacroCompileError
from .registry import TemplateRegistry

logger = logging.getLogger(__name__)

_TEMPLATE_NAME = re.compile(r"^[A-Za-z0-9_.:/-]+$")
_GROUP_REF = re.compile(r"\$(?:(\$)|\{(\w+)\}|(\d+))")


@dataclass(frozen=True)
class Macro:
    pattern: re.Pattern
    template: str
    fields: Mapping[str, Any] = field(default_factory=dict)
    source: str = field(default="", repr=False, compare=False)

    @property
    def name(self) -> str:
        return self.pattern.pattern

    def context(self, match: re.Match) -> dict[str, Any]:
        """Build the render context of one match."""
        return {key: _expand(value, match) for key, value in self.fields.items()}

    def render(self, match: re.Match, registry: TemplateRegistry) -> str:
        return registry.render(self.template, self.context(match))

    def apply(self, text: str, registry: TemplateRegistry) -> tuple[str, int]:
        """Replace every non-overlapping match; returns ``(text, count)``."""
        return self.pattern.subn(lambda m: self.render(m, registry), text)


# -----------------------------------------------------------------------------

def compile_macro(
    pattern: str,
    fields: Mapping[str, Any],
    template: str,
    source: str = "",
) -> Macro:
    """
    Compile a macro declaration.

    Raises ``MacroCompileError`` when *pattern* is not a valid regular
    expression, matches the empty string, when *template* has characters
    outside ``[A-Za-z0-9_.:/-]``, or when a field refers to a capture group
    the pattern does not define.
    """
    if not template or not _TEMPLATE_NAME.match(template):
        raise MacroCompileError(f"invalid template name {template!r}", pattern)

    try:
        compiled = re.compile(pattern)
    except re.error as exc:
        raise MacroCompileError(str(exc), pattern) from exc

    if compiled.fullmatch(""):
        raise MacroCompileError("pattern matches the empty string", pattern)

    for key, value in fields.items():
        for ref in _references(value):
            if ref.isdigit():
                ok = int(ref) <= compiled.groups
            else:
                ok = ref in compiled.groupindex
            if not ok:
                raise MacroCompileError(
                    f"field {key!r} refers to undefined group ${{{ref}}}", pattern
                )

    logger.debug("Compiled macro %r -> %s", pattern, template)
    return Macro(pattern=compiled, template=template, fields=dict(fields), source=source)


# -----------------------------------------------------------------------------

def _references(value: Any) -> list[str]:
    if isinstance(value, str):
        return [m.group(2) or m.group(3) for m in _GROUP_REF.finditer(value) if not m.group(1)]
    if isinstance(value, Mapping):
        return [ref for v in value.values() for ref in _references(v)]
    if isinstance(value, (list, tuple)):
        return [ref for v in value for ref in _references(v)]
    return []


def _expand(value: Any, match: re.Match) -> Any:
    if isinstance(value, str):
        def _group(m: re.Match) -> str:
            if m.group(1):
                return "$"
            ref = m.group(2) or m.group(3)
            return match.group(int(ref) if ref.isdigit() else ref) or ""
        return _GROUP_REF.sub(_group, value)
    if isinstance(value, Mapping):
        return {k: _expand(v, match) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_expand(v, match) for v in value]
    return value
