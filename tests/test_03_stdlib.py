"""
Standard Library & Pipeline Test Suite
======================================
Tests for:
  - Built-in templates (status, code, link:user, layout, box, toc, emoticon)
  - Built-in macros (@{name}, fenced code, [TOC])
  - Lookup failures degrading to the literal name
  - Includes (overlay, recursion, depth limit, path safety)
  - Metadata headers
  - extract_and_expand / render_document end-to-end
"""

from __future__ import annotations

import logging

import pytest

from pymark.services.directory import Identity
from pymark.services.macros import (
    ConvergenceError,
    DeclarationError,
    IncludeError,
    IncludeResolver,
    MetaError,
    RegistryFrozenError,
    RenderError,
    assemble,
    extract_and_expand,
    extract_meta,
    render_document,
    wrap_layout,
)
from pymark.services.macros.stdlib import cdata


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# 1. Built-in templates
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class TestStandardTemplates:
    def test_all_templates_present(self, lib):
        assert lib.templates.names() == sorted([
            "ac:layout", "ac:code", "ac:status", "ac:link:user",
            "ac:jira:ticket", "ac:box", "ac:toc", "ac:emoticon",
        ])

    def test_registry_is_frozen(self, lib):
        assert lib.templates.frozen
        with pytest.raises(RegistryFrozenError):
            lib.templates.register("ac:extra", "x")

    def test_status_default_color(self, lib):
        out = lib.templates.render("ac:status", {"Title": "Done"})
        assert '<ac:parameter ac:name="colour">Grey</ac:parameter>' in out
        assert '<ac:parameter ac:name="title">Done</ac:parameter>' in out
        assert '<ac:parameter ac:name="subtle">false</ac:parameter>' in out

    def test_status_title_falls_back_to_color(self, lib):
        out = lib.templates.render("ac:status", {"Color": "Green"})
        assert '<ac:parameter ac:name="colour">Green</ac:parameter>' in out
        assert '<ac:parameter ac:name="title">Green</ac:parameter>' in out

    def test_link_user_known(self, lib):
        out = lib.templates.render("ac:link:user", {"Name": "alice"})
        assert out == '<ac:link><ri:user ri:account-id="42"/></ac:link>'

    def test_link_user_unknown_renders_name(self, lib):
        assert lib.templates.render("ac:link:user", {"Name": "Ghost"}) == "Ghost"

    def test_link_user_requires_name(self, lib):
        with pytest.raises(RenderError):
            lib.templates.render("ac:link:user", {})

    def test_code_block(self, lib):
        out = lib.templates.render(
            "ac:code", {"Language": "go", "Collapse": False, "Text": "x := 1"},
        )
        assert out == (
            '<ac:structured-macro ac:name="code">\n'
            '<ac:parameter ac:name="language">go</ac:parameter>\n'
            '<ac:parameter ac:name="collapse">false</ac:parameter>\n'
            "<ac:plain-text-body><![CDATA[x := 1]]></ac:plain-text-body>\n"
            "</ac:structured-macro>\n"
        )

    def test_code_block_collapsed_with_title(self, lib):
        out = lib.templates.render(
            "ac:code",
            {"Language": "sh", "Collapse": True, "Title": "Run", "Text": "ls"},
        )
        assert out.startswith('<ac:structured-macro ac:name="expand">\n')
        assert out.count('<ac:parameter ac:name="title">Run</ac:parameter>') == 2
        assert out.endswith("</ac:rich-text-body>\n</ac:structured-macro>\n")

    def test_cdata_split(self):
        assert cdata("a]]>b") == "a]]><![CDATA[]]]]><![CDATA[>b"

    def test_layout_article(self, lib):
        out = wrap_layout(lib.templates, "<p>x</p>", "article")
        assert out.startswith("<ac:layout>")
        assert "<ac:layout-cell><p>x</p></ac:layout-cell>" in out

    def test_layout_default(self, lib):
        assert wrap_layout(lib.templates, "<p>x</p>") == "<p>x</p>"

    def test_box_defaults(self, lib):
        out = lib.templates.render("ac:box", {"Name": "info", "Body": "Careful"})
        assert '<ac:structured-macro ac:name="info">' in out
        assert '<ac:parameter ac:name="icon">false</ac:parameter>' in out
        assert "Careful\n" in out

    def test_toc_defaults(self, lib):
        out = lib.templates.render("ac:toc", {})
        assert '<ac:parameter ac:name="maxLevel">7</ac:parameter>' in out
        assert '<ac:parameter ac:name="style">disc</ac:parameter>' in out

    def test_jira_and_emoticon(self, lib):
        assert "PROJ-1" in lib.templates.render("ac:jira:ticket", {"Ticket": "PROJ-1"})
        assert lib.templates.render("ac:emoticon", {"Name": "tick"}) == '<ac:emoticon ac:name="tick"/>'


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# 2. Built-in macros and lookup degradation
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class TestStandardMacros:
    def test_user_shorthand(self, lib):
        out = extract_and_expand("Hi @{bob}", lib)
        assert out == 'Hi <ac:link><ri:user ri:account-id="7"/></ac:link>'

    def test_unknown_user_is_literal(self, lib):
        assert extract_and_expand("@{Ghost} was here", lib) == "Ghost was here"

    def test_fenced_code_escapes_cdata_end(self, lib, text):
        out = extract_and_expand(text("```python", "x = ']]>'", "```"), lib)
        assert "<ac:plain-text-body><![CDATA[x = ']]><![CDATA[]]]]><![CDATA[>']]></ac:plain-text-body>" in out
        assert "```" not in out
        # every section end closes a section start
        assert out.count("]]>") == out.count("<![CDATA[") == 3

    def test_fenced_code_without_language(self, lib, text):
        out = extract_and_expand(text("```", "plain", "```"), lib)
        assert '<ac:parameter ac:name="language"></ac:parameter>' in out

    def test_toc_marker(self, lib, text):
        out = extract_and_expand(text("[TOC]", "# Heading"), lib)
        assert out.startswith('<ac:structured-macro ac:name="toc">')
        assert "[TOC]" not in out

    def test_expansion_is_idempotent(self, lib, text):
        doc = text("Ping @{alice}", "```sh", "echo hi", "```", "[TOC]")
        once = extract_and_expand(doc, lib)
        assert extract_and_expand(once, lib) == once

    def test_failing_lookup_falls_back(self, caplog):
        def lookup(name):
            raise TimeoutError("directory timed out")

        lib = assemble(lookup)
        with caplog.at_level(logging.WARNING):
            assert extract_and_expand("@{alice}", lib) == "alice"
        assert "User lookup failed" in caplog.text

    def test_without_lookup_names_are_literal(self):
        assert extract_and_expand("@{alice}", assemble()) == "alice"


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# 3. Document macros end-to-end
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class TestExtractAndExpand:
    def test_declared_user_macro(self, lib, text):
        doc = text(
            r"<!-- Macro: @\{([^}]+)\}",
            r"     Template: ac:link:user",
            r"     Name: ${1} -->",
            "Hello @{alice}",
        )
        out = extract_and_expand(doc, lib)
        assert 'ri:account-id="42"' in out
        assert "@{alice}" not in out
        assert "Macro:" not in out

    def test_document_macro_precedes_standard(self, lib, text):
        doc = text(
            r"<!-- Macro: @\{([^}]+)\}",
            r"     Template: ac:status",
            r"     Title: ${1} -->",
            "@{alice}",
        )
        out = extract_and_expand(doc, lib)
        assert '<ac:parameter ac:name="title">alice</ac:parameter>' in out
        assert "ri:account-id" not in out

    def test_document_macro_with_standard_template(self, lib, text):
        doc = text(
            r"<!-- Macro: \[([A-Z]+-\d+)\]",
            r"     Template: ac:jira:ticket",
            r"     Ticket: ${1} -->",
            "Fixes [PROJ-12].",
        )
        out = extract_and_expand(doc, lib)
        assert '<ac:parameter ac:name="key">PROJ-12</ac:parameter>' in out

    def test_undefined_template_is_render_error(self, lib, text):
        doc = text("<!-- Macro: zz", "     Template: my:missing", "     Name: x -->", "zz")
        with pytest.raises(RenderError) as info:
            extract_and_expand(doc, lib)
        assert info.value.template == "my:missing"

    def test_malformed_declaration(self, lib, text):
        with pytest.raises(DeclarationError):
            extract_and_expand(text("<!-- Macro: zz", "     Name: x -->"), lib)

    def test_non_converging_document_macro(self, lib, text):
        doc = text(
            r"<!-- Macro: ~(\w+)~",
            r"     Template: ac:box",
            r"     Name: info",
            r"     Body: ~${1}~ -->",
            "~loop~",
        )
        with pytest.raises(ConvergenceError):
            extract_and_expand(doc, lib, max_sweeps=4)

    def test_shared_registry_untouched(self, lib, text):
        before = lib.templates.names()
        extract_and_expand(text(r"<!-- Macro: QQ", "     Template: ac:emoticon", "     Name: q -->", "QQ"), lib)
        assert lib.templates.names() == before


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# 4. Includes
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class TestIncludes:
    @pytest.fixture(autouse=True)
    def _root(self, tmp_path):
        self.root = tmp_path
        self.resolver = IncludeResolver(tmp_path)

    def write(self, name: str, body: str) -> None:
        path = self.root / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(body, encoding="utf-8")

    def test_include_with_fields(self, lib, text):
        self.write("badge.tmpl", "<b>{{ .Label }}</b>")
        doc = text("x <!-- Include: badge.tmpl", "     Label: ok -->")
        assert extract_and_expand(doc, lib, resolver=self.resolver) == "x <b>ok</b>"
        assert not lib.templates.has("badge.tmpl")

    def test_include_without_fields(self, lib):
        self.write("plain.md", "plain text")
        assert extract_and_expand("<!-- Include: plain.md -->", lib, resolver=self.resolver) == "plain text"

    def test_nested_include(self, lib):
        self.write("a.tmpl", "A<!-- Include: b.tmpl -->")
        self.write("b.tmpl", "B")
        assert extract_and_expand("<!-- Include: a.tmpl -->", lib, resolver=self.resolver) == "AB"

    def test_included_macro_declarations(self, lib, text):
        self.write("macros.md", text(
            r"<!-- Macro: :(\w+):",
            r"     Template: ac:emoticon",
            r"     Name: ${1} -->",
        ))
        doc = text("<!-- Include: macros.md -->", "Done :tick:")
        out = extract_and_expand(doc, lib, resolver=self.resolver)
        assert out == '\nDone <ac:emoticon ac:name="tick"/>'

    def test_macro_template_loaded_from_file(self, lib, text):
        self.write("tmpl/shout.tmpl", "{{ .Name }}!")
        doc = text(
            r"<!-- Macro: !(\w+)",
            r"     Template: tmpl/shout.tmpl",
            r"     Name: ${1} -->",
            "say !hi",
        )
        assert extract_and_expand(doc, lib, resolver=self.resolver) == "\nsay hi!"

    def test_self_include_hits_depth_limit(self, lib):
        self.write("loop.tmpl", "<!-- Include: loop.tmpl -->")
        with pytest.raises(IncludeError, match="maximum include depth"):
            extract_and_expand("<!-- Include: loop.tmpl -->", lib, resolver=self.resolver, max_include_depth=3)

    def test_missing_file(self, lib):
        with pytest.raises(IncludeError, match="not found"):
            extract_and_expand("<!-- Include: nope.tmpl -->", lib, resolver=self.resolver)

    def test_path_outside_root(self, lib):
        with pytest.raises(IncludeError, match="escapes"):
            extract_and_expand("<!-- Include: ../secret -->", lib, resolver=self.resolver)

    @pytest.mark.parametrize("path", [".env", ".git/config", "docs/.secret.tmpl"])
    def test_hidden_paths_rejected(self, lib, path):
        self.write(path, "token")
        with pytest.raises(IncludeError, match="hidden"):
            extract_and_expand(f"<!-- Include: {path} -->", lib, resolver=self.resolver)

    def test_macro_template_never_loaded_from_hidden_file(self, lib, text):
        self.write(".hidden.tmpl", "leaked")
        doc = text(r"<!-- Macro: QQ", "     Template: .hidden.tmpl", "     Name: q -->", "QQ")
        with pytest.raises(RenderError):
            extract_and_expand(doc, lib, resolver=self.resolver)

    def test_malformed_fields(self, lib, text):
        self.write("badge.tmpl", "x")
        with pytest.raises(IncludeError):
            extract_and_expand(text("<!-- Include: badge.tmpl", "     - a -->"), lib, resolver=self.resolver)

    def test_process_reports_recursion(self, lib):
        self.write("b.tmpl", "B")
        registry, out, recurse = self.resolver.process("<!-- Include: b.tmpl -->", lib.templates)
        assert (out, recurse) == ("B", True)
        assert registry is not lib.templates
        assert self.resolver.process(out, registry) == (registry, "B", False)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# 5. Metadata and full render
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class TestDocument:
    def test_meta_headers(self, text):
        meta, rest = extract_meta(text(
            "<!-- Space: DOCS -->",
            "<!-- Parent: Engineering -->",
            "<!-- Parent: Runbooks -->",
            "<!-- Title: Release checklist -->",
            "[]: # (Label: release)",
            "",
            "Body",
        ))
        assert meta.space == "DOCS"
        assert meta.parents == ["Engineering", "Runbooks"]
        assert meta.title == "Release checklist"
        assert meta.labels == ["release"]
        assert meta.type == "page"
        assert rest == "Body"

    def test_no_meta(self):
        assert extract_meta("just text") == (None, "just text")

    def test_meta_stops_at_unknown_header(self, text):
        doc = text("<!-- Title: T -->", "<!-- Include: x.tmpl -->", "Body")
        meta, rest = extract_meta(doc)
        assert meta.title == "T"
        assert rest == "<!-- Include: x.tmpl -->\nBody"

    def test_invalid_type(self):
        with pytest.raises(MetaError):
            extract_meta("<!-- Type: wiki -->\n")

    def test_render_document_article_layout(self, lib, text):
        doc = render_document(text("<!-- Layout: article -->", "<!-- Title: T -->", "Hi @{alice}"), lib)
        assert doc.meta.layout == "article"
        assert doc.body == 'Hi <ac:link><ri:user ri:account-id="42"/></ac:link>'
        assert doc.markup.startswith("<ac:layout>")
        assert doc.body in doc.markup

    def test_render_document_layout_override(self, lib):
        doc = render_document("<!-- Layout: article -->\nx", lib, layout="")
        assert doc.markup == "x"

    def test_separate_runs_share_nothing(self, lib, text):
        first = text(r"<!-- Macro: zz", "     Template: ac:emoticon", "     Name: z -->", "zz")
        assert extract_and_expand(first, lib) == '\n<ac:emoticon ac:name="z"/>'
        assert extract_and_expand("zz", lib) == "zz"

    def test_identity_model_from_lookup(self):
        lib = assemble(lambda name: Identity(account_id="a-1"))
        assert 'ri:account-id="a-1"' in extract_and_expand("@{anyone}", lib)
