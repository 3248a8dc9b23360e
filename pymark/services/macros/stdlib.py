"""
Standard library
================
Built-in storage-format templates and macros.

Call ``assemble()`` once per process (or once per lookup function) and pass
the resulting ``Lib`` to every document run.  The template registry it
returns is frozen; documents layer their own templates on an overlay.

Built-in macros are written in the same ``<!-- Macro: … -->`` syntax a
document uses, so both go through the same extractor.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from .compiler import Macro
from .extractor import extract_macros
from .registry import TemplateRegistry

logger = logging.getLogger(__name__)

# literal newline; the storage format is sensitive to it inside macros
NL = '{{ printf "\\n" }}'

# lookup(name) -> identity or None; may raise, failures become None
UserLookup = Callable[[str], Optional[Any]]


@dataclass(frozen=True)
class Lib:
    templates: TemplateRegistry
    macros: tuple[Macro, ...]


def assemble(lookup: UserLookup | None = None) -> Lib:
    """Build the standard template registry and macro list."""
    templates = _templates(lookup)
    macros = _macros(templates)
    templates.freeze()
    logger.debug(
        "Standard library assembled: %d templates, %d macros",
        len(templates.names()), len(macros),
    )
    return Lib(templates=templates, macros=tuple(macros))


# -----------------------------------------------------------------------------

def _lines(*lines: str) -> str:
    return "\n".join(lines)


def _macros(templates: TemplateRegistry) -> list[Macro]:
    macros, _ = extract_macros(
        _lines(
            r"<!-- Macro: @\{([^}]+)\}",
            r"     Template: ac:link:user",
            r"     Name: ${1} -->",

            r"<!-- Macro: (?ms)^```([\w+#.-]*)[ \t]*\n(.*?)\n```[ \t]*$",
            r"     Template: ac:code",
            r"     Language: ${1}",
            r"     Collapse: false",
            r"     Text: ${2} -->",

            r"<!-- Macro: (?m)^\[TOC\][ \t]*$",
            r"     Template: ac:toc",
            r"     Printable: true -->",
        ),
        templates,
    )
    return macros


# -----------------------------------------------------------------------------

def _user_helper(lookup: UserLookup | None) -> Callable[[str], Any]:
    def user(name: str) -> Any:
        if lookup is None:
            return None
        try:
            return lookup(name)
        except Exception:
            logger.warning("User lookup failed for %r", name, exc_info=True)
            return None

    return user


def cdata(data: str) -> str:
    # The only way to escape the CDATA end marker is to split it
    # across two CDATA sections.
    return str(data).replace("]]>", "]]><![CDATA[]]]]><![CDATA[>")


def _templates(lookup: UserLookup | None) -> TemplateRegistry:
    text = "".join

    registry = TemplateRegistry(funcs={"user": _user_helper(lookup), "cdata": cdata})

    bodies = {
        # whole-article layout
        "ac:layout": text([
            '{{ if eq .Layout "article" }}',
            "<ac:layout>",
            '<ac:layout-section ac:type="two_right_sidebar">',
            "<ac:layout-cell>{{ .Body }}</ac:layout-cell>",
            "<ac:layout-cell></ac:layout-cell>",
            "</ac:layout-section>",
            "</ac:layout>",
            "{{ else }}",
            "{{ .Body }}",
            "{{ end }}",
        ]),

        # fenced code
        "ac:code": text([
            '{{ if .Collapse }}<ac:structured-macro ac:name="expand">' + NL,
            '{{ if .Title }}<ac:parameter ac:name="title">{{ .Title }}</ac:parameter>' + NL + '{{ end }}',
            "<ac:rich-text-body>" + NL + "{{ end }}",

            '<ac:structured-macro ac:name="code">' + NL,
            '<ac:parameter ac:name="language">{{ .Language }}</ac:parameter>' + NL,
            '<ac:parameter ac:name="collapse">{{ .Collapse }}</ac:parameter>' + NL,
            '{{ if .Title }}<ac:parameter ac:name="title">{{ .Title }}</ac:parameter>' + NL + '{{ end }}',
            "<ac:plain-text-body><![CDATA[{{ .Text | cdata }}]]></ac:plain-text-body>" + NL,
            "</ac:structured-macro>" + NL,

            "{{ if .Collapse }}</ac:rich-text-body>" + NL,
            "</ac:structured-macro>" + NL + "{{ end }}",
        ]),

        "ac:status": text([
            '<ac:structured-macro ac:name="status">',
            '<ac:parameter ac:name="colour">{{ or .Color "Grey" }}</ac:parameter>',
            '<ac:parameter ac:name="title">{{ or .Title .Color "Grey" }}</ac:parameter>',
            '<ac:parameter ac:name="subtle">{{ or .Subtle false }}</ac:parameter>',
            "</ac:structured-macro>",
        ]),

        # unknown users fall back to the literal name
        "ac:link:user": text([
            "{{ with .Name | user }}",
            "<ac:link>",
            '<ri:user ri:account-id="{{ .AccountID }}"/>',
            "</ac:link>",
            "{{ else }}",
            "{{ .Name }}",
            "{{ end }}",
        ]),

        "ac:jira:ticket": text([
            '<ac:structured-macro ac:name="jira">',
            '<ac:parameter ac:name="key">{{ .Ticket }}</ac:parameter>',
            "</ac:structured-macro>",
        ]),

        # info / tip / note / warning boxes
        "ac:box": text([
            '<ac:structured-macro ac:name="{{ .Name }}">' + NL,
            '<ac:parameter ac:name="icon">{{ or .Icon "false" }}</ac:parameter>' + NL,
            '<ac:parameter ac:name="title">{{ or .Title "" }}</ac:parameter>' + NL,
            "<ac:rich-text-body>" + NL,
            "{{ .Body }}" + NL,
            "</ac:rich-text-body>" + NL,
            "</ac:structured-macro>" + NL,
        ]),

        "ac:toc": text([
            '<ac:structured-macro ac:name="toc">' + NL,
            '<ac:parameter ac:name="printable">{{ or .Printable "true" }}</ac:parameter>' + NL,
            '<ac:parameter ac:name="style">{{ or .Style "disc" }}</ac:parameter>' + NL,
            '<ac:parameter ac:name="maxLevel">{{ or .MaxLevel "7" }}</ac:parameter>' + NL,
            '<ac:parameter ac:name="indent">{{ or .Indent "" }}</ac:parameter>' + NL,
            '<ac:parameter ac:name="minLevel">{{ or .MinLevel "1" }}</ac:parameter>' + NL,
            '<ac:parameter ac:name="exclude">{{ or .Exclude "" }}</ac:parameter>' + NL,
            '<ac:parameter ac:name="type">{{ or .Type "list" }}</ac:parameter>' + NL,
            '<ac:parameter ac:name="outline">{{ or .Outline "clear" }}</ac:parameter>' + NL,
            '<ac:parameter ac:name="include">{{ or .Include "" }}</ac:parameter>' + NL,
            "</ac:structured-macro>" + NL,
        ]),

        "ac:emoticon": '<ac:emoticon ac:name="{{ .Name }}"/>',
    }

    for name, body in bodies.items():
        registry.register(name, body)

    return registry
