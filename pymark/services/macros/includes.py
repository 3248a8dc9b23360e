"""
Include directive
-----------------
Splices a template file into the document.

<!-- Include: templates/header.tmpl -->
<!-- Include: templates/status.tmpl
     Color: Green
     Title: Done -->

The file is registered as a template under its path (once per document)
and rendered with the YAML fields that follow the path.  The rendered text
may itself contain includes or macro declarations, so callers loop
``process`` until it reports no more work (see ``resolve_includes``).

Templates named by a document macro (``Template: templates/x.tmpl``) are
loaded the same way when the registry does not already know them.

All registration happens on an overlay; the shared standard registry is
never written to.
"""

from __future__ import annotations

import logging
import re
import textwrap
from pathlib import Path
from typing import Any, Iterable

import yaml

from .compiler import Macro
from .errors import IncludeError
from .registry import TemplateRegistry

logger = logging.getLogger(__name__)

MAX_INCLUDE_DEPTH = 8

_INCLUDE_RE = re.compile(
    r"<!--\s*Include:[ \t]*(?P<path>\S+?)[ \t]*(?P<fields>\n.*?)?-->",
    re.DOTALL,
)


class IncludeResolver:
    """
    Resolve include directives against files under *root*.

    Parameters
    ----------
    root : Path
        Directory include paths are relative to.  Paths that resolve
        outside it, or through a hidden (dot-prefixed) file or directory,
        are rejected.
    """

    def __init__(self, root: Path | str = ".") -> None:
        self.root = Path(root).resolve()

    # ----------------------------------------------------------------- public

    def process(self, text: str, registry: TemplateRegistry) -> tuple[TemplateRegistry, str, bool]:
        """
        Replace every include directive in *text* once.

        Returns ``(registry, text, recurse)``; *recurse* is true when at
        least one directive was replaced and another pass may be needed.
        """
        if not _INCLUDE_RE.search(text):
            return registry, text, False

        if registry.frozen:
            registry = registry.overlay()

        def _include(match: re.Match) -> str:
            path = match.group("path")
            fields = _parse_fields(match.group(0), match.group("fields"))
            self.load(path, registry)
            logger.debug("Including %s", path)
            return registry.render(path, fields)

        return registry, _INCLUDE_RE.sub(_include, text), True

    def load(self, path: str, registry: TemplateRegistry) -> None:
        """Register file *path* as a template unless *registry* has it."""
        if registry.has(path):
            return

        source = self._resolve(path)
        try:
            body = source.read_text(encoding="utf-8")
        except OSError as exc:
            raise IncludeError(f"unable to read include ({exc.strerror})", path) from exc

        registry.register(path, body)

    def load_macro_templates(
        self,
        macros: Iterable[Macro],
        registry: TemplateRegistry,
    ) -> TemplateRegistry:
        """Load file templates referenced by document macros."""
        for macro in macros:
            if registry.has(macro.template) or not self._exists(macro.template):
                continue
            if registry.frozen:
                registry = registry.overlay()
            self.load(macro.template, registry)
        return registry

    # ----------------------------------------------------------------- private

    def _resolve(self, path: str) -> Path:
        source = (self.root / path).resolve()
        if not source.is_relative_to(self.root):
            raise IncludeError("include path escapes the include root", path)
        # .env, .git/... and other dot-files are never served
        if any(part.startswith(".") for part in source.relative_to(self.root).parts):
            raise IncludeError("include path names a hidden file", path)
        if not source.is_file():
            raise IncludeError("include file not found", path)
        return source

    def _exists(self, path: str) -> bool:
        try:
            self._resolve(path)
        except IncludeError:
            return False
        return True


# -----------------------------------------------------------------------------

def resolve_includes(
    text: str,
    registry: TemplateRegistry,
    resolver: IncludeResolver,
    max_depth: int = MAX_INCLUDE_DEPTH,
) -> tuple[TemplateRegistry, str]:
    """Run *resolver* until no include directive is left."""
    for _pass in range(max_depth):
        registry, text, recurse = resolver.process(text, registry)
        if not recurse:
            return registry, text
    raise IncludeError(f"maximum include depth ({max_depth}) reached")


def _parse_fields(block: str, raw: str | None) -> dict[str, Any]:
    raw = textwrap.dedent(raw or "").strip()
    if not raw:
        return {}
    try:
        fields = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise IncludeError(f"unable to parse include fields ({exc})", block) from exc
    if not isinstance(fields, dict):
        raise IncludeError("include fields must be a 'Key: value' mapping", block)
    return {str(key): value for key, value in fields.items()}
