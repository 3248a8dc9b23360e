#!/usr/bin/env python
#
#
# -----------------------------------------------------------------------------
"""
Test fixtures
=============
The engine is synchronous and in-memory; the only collaborator is the user
lookup, replaced here by a dict of known people.  API tests talk to the
FastAPI app through httpx's ASGI transport.
"""
# -----------------------------------------------------------------------------

from __future__ import annotations

import os
from typing import AsyncGenerator

import pytest
import pytest_asyncio

from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

# ── Env vars must be set before importing app modules ────────────────────────
os.environ.setdefault("ENVIRONMENT",         "testing")
os.environ.setdefault("CONFLUENCE_BASE_URL", "")

from pymark.main import create_app
from pymark.services.directory import Identity
from pymark.services.macros import Lib, assemble

PEOPLE = {
    "alice": Identity(account_id="42", display_name="Alice Liddell"),
    "bob":   Identity(account_id="7", display_name="Bob Ross"),
}


def lookup(name: str) -> Identity | None:
    """Directory stand-in: known names resolve, everyone else is absent."""
    return PEOPLE.get(name)


# -----------------------------------------------------------------------------

@pytest.fixture(scope="session")
def lib() -> Lib:
    """Standard library shared by every test, as it is in production."""
    return assemble(lookup)


@pytest.fixture
def text():
    def _text(*lines: str) -> str:
        return "\n".join(lines)
    return _text


# ── HTTP client against a fresh app ──────────────────────────────────────────
@pytest.fixture
def app() -> FastAPI:
    return create_app(lookup=lookup)


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c


# -----------------------------------------------------------------------------
