"""HTTP client with power-of-two backoff retry."""

import logging
from typing import Any

import httpx

from oracle_gateway.infrastructure.retry import HTTP_ATTEMPTS, retry_call

logger = logging.getLogger(__name__)

# JSON can be any of these types
JsonValue = dict[str, Any] | list[Any] | str | int | float | bool | None


async def request(
    method: str,
    url: str,
    *,
    json: Any = None,
    params: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
    timeout: float = 30.0,
    client: httpx.AsyncClient | None = None,
    attempts: int = HTTP_ATTEMPTS,
    extensions: dict[str, Any] | None = None,
) -> httpx.Response:
    """Send a request, retrying transport failures only.

    Non-2xx responses are returned as-is; callers decide what a bad status means.
    """

    async def _send() -> httpx.Response:
        if client is not None:
            return await client.request(
                method,
                url,
                json=json,
                params=params,
                headers=headers,
                timeout=timeout,
                extensions=extensions,
            )
        async with httpx.AsyncClient(timeout=timeout) as own_client:
            return await own_client.request(
                method, url, json=json, params=params, headers=headers, extensions=extensions
            )

    logger.debug(f"{method.upper()} {url}")
    return await retry_call(
        _send,
        label=f"{method.upper()} {url}",
        attempts=attempts,
        retry_on=(httpx.TransportError,),
    )


async def _request_json(
    method: str,
    url: str,
    attempts: int,
    **kwargs: Any,
) -> JsonValue:
    async def _send() -> JsonValue:
        response = await request(method, url, attempts=1, **kwargs)
        response.raise_for_status()
        return response.json()

    return await retry_call(
        _send, label=f"{method} {url}", attempts=attempts, retry_on=(httpx.HTTPError,)
    )


async def get(
    url: str,
    params: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
    timeout: float = 30.0,
    client: httpx.AsyncClient | None = None,
    attempts: int = HTTP_ATTEMPTS,
    extensions: dict[str, Any] | None = None,
) -> JsonValue:
    return await _request_json(
        "GET",
        url,
        attempts,
        params=params,
        headers=headers,
        timeout=timeout,
        client=client,
        extensions=extensions,
    )


async def post(
    url: str,
    json: Any = None,
    headers: dict[str, str] | None = None,
    timeout: float = 30.0,
    client: httpx.AsyncClient | None = None,
    attempts: int = HTTP_ATTEMPTS,
    extensions: dict[str, Any] | None = None,
) -> JsonValue:
    return await _request_json(
        "POST",
        url,
        attempts,
        json=json,
        headers=headers,
        timeout=timeout,
        client=client,
        extensions=extensions,
    )
