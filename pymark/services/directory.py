#!/usr/bin/env python
#
#
# -----------------------------------------------------------------------------
"""
Directory lookup
================
Resolves a person's display name to a Confluence account, for the
``ac:link:user`` template.

The lookup never raises: HTTP errors, timeouts and unknown names are
logged and reported as ``None`` so the template falls back to the
literal name.
"""
# -----------------------------------------------------------------------------

from __future__ import annotations

import json
import logging
from typing import Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from pymark.core.config import Settings

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------

class Identity(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    account_id: str = Field(alias="accountId")
    display_name: str = Field(default="", alias="displayName")
    username: str = ""


# -----------------------------------------------------------------------------

class DirectoryClient:
    """
    Synchronous Confluence user search.

    Parameters
    ----------
    base_url : str
        Confluence root, e.g. ``https://example.atlassian.net/wiki``.
    timeout : float
        Per-request timeout in seconds; a lookup that exceeds it yields
        ``None``.
    transport : httpx.BaseTransport, optional
        Injected in tests (``httpx.MockTransport``).
    """

    _SEARCH_PATHS = ("/rest/api/search", "/rest/api/search/user")

    def __init__(
        self,
        base_url: str,
        username: str = "",
        password: str = "",
        timeout: float = 5.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        auth = (username, password) if username else None
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            auth=auth,
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "DirectoryClient":
        return cls(
            settings.confluence_base_url,
            username=settings.confluence_username,
            password=settings.confluence_password,
            timeout=settings.lookup_timeout,
        )

    # ----------------------------------------------------------------- public

    def lookup(self, name: str) -> Optional[Identity]:
        """Return the first account whose full name matches *name*."""
        params = {"cql": f"user.fullname~{json.dumps(name, ensure_ascii=False)}"}

        for path in self._SEARCH_PATHS:
            try:
                resp = self._client.get(path, params=params)
                resp.raise_for_status()
                results = resp.json().get("results") or []
            except httpx.TimeoutException:
                logger.warning("User lookup timed out for %r", name)
                return None
            except (httpx.HTTPError, ValueError) as exc:
                logger.warning("User lookup failed for %r on %s: %s", name, path, exc)
                continue

            for result in results:
                try:
                    return Identity.model_validate(result.get("user") or result)
                except ValidationError:
                    continue

        logger.warning("User with name %r is not found", name)
        return None

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "DirectoryClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
