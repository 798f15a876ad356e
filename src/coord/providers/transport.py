"""HTTP plumbing shared by the provider adapters.

Both vendors stream Server-Sent Events over a POST request.  Requests are
retried on transient statuses and connection failures, but only until the
first segment has reached the caller.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import AsyncIterator, Awaitable, Callable

import httpx

from coord.errors import NoResponseError, ResponseDecodeError, error_for_status
from coord.llm.stream import StreamWriter

_logger = logging.getLogger(__name__)

# Retry configuration
_MAX_RETRIES = 3
_BACKOFF_BASE = 1  # seconds -- exponential: 1, 2, 4

_RETRY_STATUS = (429, 500, 502, 503, 504, 529)


def error_message(body: str) -> str:
    """Pull a human-readable message out of a vendor error body."""
    try:
        data = json.loads(body)
    except json.JSONDecodeError:
        return body.strip()[:500]
    if isinstance(data, dict):
        err = data.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
        if isinstance(err, str):
            return err
        if data.get("message"):
            return str(data["message"])
    return body.strip()[:500]


async def iter_sse_data(resp: httpx.Response) -> AsyncIterator[str]:
    """Yield the payload of every ``data:`` line until ``[DONE]``."""
    async for raw_line in resp.aiter_lines():
        if not raw_line.startswith("data:"):
            continue
        data = raw_line[5:].strip()
        if not data:
            continue
        if data == "[DONE]":
            return
        yield data


async def post_stream(
    client: httpx.AsyncClient,
    path: str,
    payload: dict,
    out: StreamWriter,
    consume: Callable[[httpx.Response], Awaitable[None]],
    label: str = "LLM",
) -> None:
    """POST *payload* and hand the streaming response to *consume*.

    Parameters
    ----------
    client:
        Client configured with the vendor base URL and headers.
    path:
        Endpoint path relative to the base URL.
    payload:
        JSON request body.
    out:
        Writer of the stream being fed; once it has sent anything the
        request is no longer retried.
    consume:
        Reads the successful response.  Called once per attempt, so it
        must start from fresh parsing state.
    label:
        Vendor name used in log messages.

    Raises
    ------
    LLMError
        For error statuses, after retries where they apply.
    NoResponseError
        When the connection fails on the last attempt or mid-stream.
    """
    for attempt in range(_MAX_RETRIES):
        last = attempt == _MAX_RETRIES - 1
        try:
            async with client.stream("POST", path, json=payload) as resp:
                if resp.status_code != 200:
                    body = (await resp.aread()).decode("utf-8", errors="replace")
                    if resp.status_code in _RETRY_STATUS and not last:
                        _logger.warning(
                            "%s API returned %d (attempt %d/%d), retrying...",
                            label, resp.status_code, attempt + 1, _MAX_RETRIES,
                        )
                        await asyncio.sleep(_BACKOFF_BASE * (2 ** attempt))
                        continue
                    raise error_for_status(resp.status_code, error_message(body))
                await consume(resp)
                return
        except (httpx.TimeoutException, httpx.TransportError) as e:
            if out.sent or last:
                raise NoResponseError(f"{label} connection failed: {e}") from e
            _logger.warning(
                "%s stream error (attempt %d/%d): %s",
                label, attempt + 1, _MAX_RETRIES, e,
            )
            await asyncio.sleep(_BACKOFF_BASE * (2 ** attempt))

    raise NoResponseError(f"{label} API gave no response")


def decode_event(data: str) -> dict:
    """Decode one SSE payload, mapping garbage to a response error."""
    try:
        event = json.loads(data)
    except json.JSONDecodeError as e:
        raise ResponseDecodeError(f"malformed stream event: {data[:200]!r}") from e
    if not isinstance(event, dict):
        raise ResponseDecodeError(f"stream event is not an object: {data[:200]!r}")
    return event

