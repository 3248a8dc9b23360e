"""
TemplateRegistry — named store of compiled storage-format templates.

Templates are parsed when registered, so a broken body fails at startup
rather than on the first document that uses it:

    registry = TemplateRegistry(funcs={"cdata": cdata})
    registry.register("ac:emoticon", '<ac:emoticon ac:name="{{ .Name }}"/>')
    registry.render("ac:emoticon", {"Name": "tick"})

The standard registry is frozen once assembled and shared between
documents.  Document-level templates (includes) go into an ``overlay()``,
which reads through to its parent and never writes to it.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Mapping

from .errors import RegistryFrozenError, RenderError
from .template import Template

logger = logging.getLogger(__name__)


# helper functions callable from template bodies, e.g. {{ .Name | user }}
TemplateFunc = Callable[..., Any]


class TemplateRegistry:
    def __init__(
        self,
        funcs: Mapping[str, TemplateFunc] | None = None,
        parent: "TemplateRegistry | None" = None,
    ) -> None:
        self._parent = parent
        self._funcs: dict[str, TemplateFunc] = dict(parent.funcs if parent else {})
        self._funcs.update(funcs or {})
        self._templates: dict[str, Template] = {}
        self._frozen = False

    # ---------------------------------------------------------------- register

    def register(self, name: str, body: str) -> Template:
        """
        Parse *body* and store it under *name*.

        Re-registering a name replaces the earlier template.  Raises
        ``TemplateCompileError`` on a syntax error and
        ``RegistryFrozenError`` on a frozen registry.
        """
        if self._frozen:
            raise RegistryFrozenError(
                f"cannot register template {name!r}: registry is read-only, use overlay()"
            )

        template = Template.compile(name, body, self._funcs)
        if name in self._templates:
            logger.debug("Replacing template: %s", name)
        else:
            logger.debug("Registered template: %s", name)
        self._templates[name] = template
        return template

    def freeze(self) -> "TemplateRegistry":
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def overlay(self, funcs: Mapping[str, TemplateFunc] | None = None) -> "TemplateRegistry":
        """Return a writable child registry layered over this one."""
        return TemplateRegistry(funcs=funcs, parent=self)

    # ------------------------------------------------------------------ lookup

    @property
    def funcs(self) -> Mapping[str, TemplateFunc]:
        return self._funcs

    def get(self, name: str) -> Template | None:
        template = self._templates.get(name)
        if template is None and self._parent is not None:
            return self._parent.get(name)
        return template

    def has(self, name: str) -> bool:
        return self.get(name) is not None

    def render(self, name: str, context: Mapping[str, Any]) -> str:
        """Render template *name* against *context*."""
        template = self.get(name)
        if template is None:
            raise RenderError("template is not defined", template=name)
        return template.render(context, self._funcs)

    # ---------------------------------------------------------- introspection

    def names(self) -> list[str]:
        own = set(self._templates)
        if self._parent is not None:
            own.update(self._parent.names())
        return sorted(own)

    def __contains__(self, name: str) -> bool:
        return self.has(name)

    def __repr__(self) -> str:
        return f"<TemplateRegistry templates={len(self.names())} frozen={self._frozen}>"
