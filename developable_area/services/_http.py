"""Shared aiohttp session handling for the remote collaborators."""

from contextlib import asynccontextmanager
from typing import AsyncIterator

import aiohttp


@asynccontextmanager
async def client_session(
    session: aiohttp.ClientSession | None,
    timeout_s: float,
) -> AsyncIterator[aiohttp.ClientSession]:
    """Yield the caller's session, or a short-lived one closed on exit."""
    if session is not None:
        yield session
        return

    async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=timeout_s)) as owned:
        yield owned
