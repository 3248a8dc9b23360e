"""
MacroEngine
===========
The core expansion loop.  Applies an ordered list of compiled macros to a
document and renders every match through the template registry.

One sweep tries every macro in order; each macro sees the text produced
by the macros before it, so an earlier macro may emit a placeholder that a
later one rewrites.  Sweeps repeat until one changes nothing.  A macro
whose output re-creates its own trigger would never settle, so the number
of changing sweeps is capped and exceeding it raises ``ConvergenceError``.
"""

from __future__ import annotations

import logging
from typing import Sequence

from .compiler import Macro
from .errors import ConvergenceError
from .registry import TemplateRegistry

logger = logging.getLogger(__name__)

MAX_SWEEPS = 32     # guard against macros that re-create their own pattern


class MacroEngine:
    """
    Expand macros in a piece of document text.

    Usage::

        engine = MacroEngine(lib.templates)
        markup = engine.expand(text, document_macros + lib.macros)
    """

    def __init__(self, registry: TemplateRegistry, max_sweeps: int = MAX_SWEEPS) -> None:
        if max_sweeps < 1:
            raise ValueError("max_sweeps must be at least 1")
        self._registry = registry
        self._max_sweeps = max_sweeps

    @property
    def registry(self) -> TemplateRegistry:
        return self._registry

    # ----------------------------------------------------------------- public

    def expand(self, text: str, macros: Sequence[Macro]) -> str:
        """Return *text* with every macro expanded to a fixed point."""
        if not text or not macros:
            return text

        # max_sweeps bounds the sweeps that change the text; one more sweep
        # is needed to see that nothing changes
        for sweep in range(self._max_sweeps + 1):
            expanded, changed_by = self._sweep(text, macros)
            if expanded == text:
                logger.debug("Macro expansion converged after %d changing sweep(s)", sweep)
                return text
            text = expanded

        logger.error(
            "Macro expansion did not converge after %d sweeps (last: %s)",
            self._max_sweeps, changed_by.name,
        )
        raise ConvergenceError(self._max_sweeps, changed_by.name)

    # ----------------------------------------------------------------- private

    def _sweep(self, text: str, macros: Sequence[Macro]) -> tuple[str, Macro | None]:
        """
        Run every macro once over *text*.

        Returns the new text and the last macro that substituted anything.
        """
        changed_by: Macro | None = None
        for macro in macros:
            expanded, count = macro.apply(text, self._registry)
            if count and expanded != text:
                logger.debug("Macro %r made %d substitution(s)", macro.name, count)
                changed_by = macro
                text = expanded
        return text, changed_by
