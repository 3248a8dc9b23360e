"""
Document metadata headers.

A document may open with header comments describing where it is published:

    <!-- Space: DOCS -->
    <!-- Parent: Engineering -->
    <!-- Title: Release checklist -->
    <!-- Layout: article -->
    <!-- Label: release -->

The legacy ``[]: # (Key: value)`` form is accepted too.  Only the leading
block is read; the first line that is not a known header ends it.
"""

from __future__ import annotations

import re
from typing import Literal, Optional

from pydantic import BaseModel, Field

from .errors import MetaError

_HEADER_RE = re.compile(r"^\s*(?:<!--\s*([^:]+?):\s*(.*?)\s*-->|\[\]:\s*#\s*\(([^:]+?):\s*(.*?)\s*\))\s*$")

_HEADERS = {"Parent", "Space", "Title", "Layout", "Type", "Label", "Attachment"}


class DocumentMeta(BaseModel):
    space: str = ""
    title: str = ""
    layout: str = ""
    type: Literal["page", "blogpost"] = "page"
    parents: list[str] = Field(default_factory=list)
    labels: list[str] = Field(default_factory=list)
    attachments: list[str] = Field(default_factory=list)


def extract_meta(text: str) -> tuple[Optional[DocumentMeta], str]:
    """Return ``(meta, remaining_text)``; *meta* is ``None`` without headers."""
    values: dict[str, object] = {}
    lines = text.splitlines(keepends=True)
    offset = 0

    for line in lines:
        if not line.strip():
            offset += 1
            continue
        m = _HEADER_RE.match(line)
        if m is None:
            break
        key = (m.group(1) or m.group(3)).strip()
        value = (m.group(2) if m.group(1) else m.group(4)).strip()
        if key not in _HEADERS:
            break

        if key == "Parent":
            values.setdefault("parents", []).append(value)
        elif key == "Label":
            values.setdefault("labels", []).append(value)
        elif key == "Attachment":
            values.setdefault("attachments", []).append(value)
        elif key == "Type":
            if value not in ("page", "blogpost"):
                raise MetaError(f"unknown content type {value!r} (expected page or blogpost)")
            values["type"] = value
        else:
            values[key.lower()] = value
        offset += 1

    if not values:
        return None, text

    return DocumentMeta(**values), "".join(lines[offset:])
