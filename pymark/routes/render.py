#!/usr/bin/env python
#
#
# -----------------------------------------------------------------------------
"""
Render router
=============
POST /api/v1/render      — expand a document into storage format
GET  /api/v1/templates   — list standard templates and macros

Engine errors are document errors, reported as 422 with a structured
detail (kind, message and the offending block/template/field).
Include directives are resolved only when ``INCLUDE_ROOT`` is configured;
otherwise they are left in the text as plain comments.
"""
# -----------------------------------------------------------------------------

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from pymark.core.config import Settings, get_settings
from pymark.schemas import RenderErrorDetail, RenderRequest, RenderResponse, TemplateListResponse
from pymark.services.macros import IncludeResolver, Lib, MarkError, render_document

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------

router = APIRouter(tags=["render"])


# -----------------------------------------------------------------------------

def get_lib(request: Request) -> Lib:
    """Standard library assembled once at startup."""
    return request.app.state.lib


# -----------------------------------------------------------------------------

@router.post("/render", response_model=RenderResponse)
def render(
    body: RenderRequest,
    lib: Lib = Depends(get_lib),
    settings: Settings = Depends(get_settings),
):
    resolver = IncludeResolver(settings.include_root) if settings.include_root else None
    try:
        doc = render_document(
            body.text,
            lib,
            resolver=resolver,
            layout=body.layout,
            max_sweeps=settings.max_sweeps,
            max_include_depth=settings.max_include_depth,
        )
    except MarkError as exc:
        logger.warning("Render failed: %s", exc)
        raise HTTPException(
            status_code=422,
            detail=RenderErrorDetail(**exc.describe()).model_dump(exclude_none=True),
        ) from exc

    return RenderResponse(meta=doc.meta, body=doc.body, markup=doc.markup)


# -----------------------------------------------------------------------------

@router.get("/templates", response_model=TemplateListResponse)
def list_templates(lib: Lib = Depends(get_lib)):
    return TemplateListResponse(
        templates=lib.templates.names(),
        macros=[macro.name for macro in lib.macros],
    )
