"""Outbound HTTP bounded by a wall-clock budget for the whole exchange.

Each request runs on a private event loop under `asyncio.wait_for`; when the
budget is spent the exchange is cancelled and its connection closed.
"""

import asyncio
from typing import Any

import httpx


async def _send(method: str, url: str, timeout: float, kwargs: dict[str, Any]) -> httpx.Response:
    async with httpx.AsyncClient(timeout=timeout, follow_redirects=False) as client:
        return await client.request(method, url, **kwargs)


def send_with_deadline(method: str, url: str, *, timeout: float, **kwargs: Any) -> httpx.Response:
    """Sends one request and raises httpx.TimeoutException past `timeout` seconds in total.

    Must be called from a thread without a running event loop (sync routes and workers).
    """
    try:
        return asyncio.run(asyncio.wait_for(_send(method, url, timeout, kwargs), timeout=timeout))
    except asyncio.TimeoutError as exc:
        raise httpx.TimeoutException(f"{method} {url} exceeded {timeout}s") from exc
