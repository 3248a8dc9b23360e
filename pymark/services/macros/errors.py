"""
Error taxonomy for the macro/template engine.

Every error is fatal to the document being processed except lookup failures,
which never get here: the ``user`` helper swallows them into ``None``.
"""

from __future__ import annotations


class MarkError(Exception):
    """Base class for every document-fatal engine error."""

    kind = "error"

    def describe(self) -> dict[str, str]:
        """Structured context for the caller (HTTP layer, logs)."""
        return {"kind": self.kind, "message": str(self)}


# -----------------------------------------------------------------------------

class DeclarationError(MarkError):
    """A ``<!-- Macro: ... -->`` block is malformed."""

    kind = "declaration"

    def __init__(self, message: str, block: str) -> None:
        super().__init__(f"{message}: {block!r}")
        self.reason = message
        self.block = block

    def describe(self) -> dict[str, str]:
        return {**super().describe(), "block": self.block}


class CompileError(MarkError):
    kind = "compile"


class TemplateCompileError(CompileError):
    """A template body failed to parse."""

    def __init__(self, message: str, template: str, body: str = "") -> None:
        super().__init__(f"unable to parse template {template!r}: {message}")
        self.reason = message
        self.template = template
        self.body = body

    def describe(self) -> dict[str, str]:
        return {**super().describe(), "template": self.template}


class MacroCompileError(CompileError):
    """A macro pattern or template reference is invalid."""

    def __init__(self, message: str, pattern: str) -> None:
        super().__init__(f"unable to compile macro {pattern!r}: {message}")
        self.reason = message
        self.pattern = pattern

    def describe(self) -> dict[str, str]:
        return {**super().describe(), "pattern": self.pattern}


class RenderError(MarkError):
    """Rendering failed: unknown template or unguarded missing field."""

    kind = "render"

    def __init__(self, message: str, template: str = "", field: str = "") -> None:
        where = f"template {template!r}" if template else "template"
        super().__init__(f"{where}: {message}")
        self.reason = message
        self.template = template
        self.field = field

    def describe(self) -> dict[str, str]:
        out = {**super().describe(), "template": self.template}
        if self.field:
            out["field"] = self.field
        return out


class ConvergenceError(MarkError):
    """Macro expansion did not reach a fixed point within the sweep ceiling."""

    kind = "convergence"

    def __init__(self, sweeps: int, macro: str = "") -> None:
        super().__init__(
            f"macro expansion does not converge after {sweeps} sweeps"
            + (f" (last substitution by {macro!r})" if macro else "")
        )
        self.sweeps = sweeps
        self.macro = macro

    def describe(self) -> dict[str, str]:
        return {**super().describe(), "macro": self.macro}


class IncludeError(MarkError):
    kind = "include"

    def __init__(self, message: str, path: str = "") -> None:
        super().__init__(f"{message}: {path}" if path else message)
        self.path = path


class MetaError(MarkError):
    kind = "meta"


class RegistryFrozenError(MarkError):
    """Attempt to register into a shared, read-only registry."""

    kind = "registry"
