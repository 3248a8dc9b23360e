"""
Pydantic v2 schemas for request validation and response serialisation.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from pymark.services.macros.meta import DocumentMeta


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Render
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class RenderRequest(BaseModel):
    text: str = Field(..., description="Document text, macros and headers included")
    layout: Optional[str] = Field(
        default=None, description="Overrides the document's Layout header"
    )


# -----------------------------------------------------------------------------

class RenderResponse(BaseModel):
    meta: Optional[DocumentMeta] = None
    body: str
    markup: str


# -----------------------------------------------------------------------------

class RenderErrorDetail(BaseModel):
    kind: str
    message: str
    block: Optional[str] = None
    template: Optional[str] = None
    field: Optional[str] = None
    pattern: Optional[str] = None
    macro: Optional[str] = None


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Templates
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class TemplateListResponse(BaseModel):
    templates: list[str]
    macros: list[str]
