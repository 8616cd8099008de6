from __future__ import annotations

from dataclasses import dataclass

import httpx

from app.errors import FetchError


@dataclass(frozen=True)
class FetchedFeed:
    url: str
    status_code: int
    content: bytes
    elapsed_ms: int


def build_timeout(seconds: float) -> httpx.Timeout:
    return httpx.Timeout(connect=5.0, read=seconds, write=5.0, pool=5.0)


async def fetch(
    client: httpx.AsyncClient,
    *,
    url: str,
    user_agent: str,
    timeout_seconds: float,
    extra_headers: dict[str, str] | None = None,
) -> FetchedFeed:
    headers = {
        "User-Agent": user_agent,
        "Accept": "text/html, application/xml, application/rss+xml, text/xml, */*",
    }
    if extra_headers:
        headers.update(extra_headers)

    try:
        response = await client.get(
            url, headers=headers, timeout=build_timeout(timeout_seconds)
        )
    except httpx.TimeoutException as e:
        raise FetchError(f"timeout fetching {url}") from e
    except httpx.RequestError as e:
        raise FetchError(f"request failed for {url}: {e}") from e

    if not response.is_success:
        raise FetchError(
            f"{url} returned HTTP {response.status_code}",
            status_code=response.status_code,
        )
    return FetchedFeed(
        url=url,
        status_code=response.status_code,
        content=response.content,
        elapsed_ms=int(response.elapsed.total_seconds() * 1000),
    )
