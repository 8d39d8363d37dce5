"""Small helpers shared by the traversal, extraction and image code."""

import asyncio
import difflib
import hashlib
import inspect
import json
import logging
from typing import Any, Awaitable, Callable, TypeVar

from playscrape.exceptions import FatalError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def hash_value(data: str) -> str:
    """Content hash used for record and image ids."""
    return hashlib.md5(data.encode("utf-8")).hexdigest()


async def wait(delay_ms: int) -> None:
    """Sleep for the configured inter-action delay (milliseconds)."""
    if delay_ms > 0:
        await asyncio.sleep(delay_ms / 1000)


async def maybe_await(value: Any) -> Any:
    """Resolve values returned by site callbacks, which may be sync or async."""
    if inspect.isawaitable(value):
        return await value
    return value


async def with_retries(
    operation: Callable[[], Awaitable[T] | T],
    *,
    retries: int = 3,
    delay: int = 0,
    label: str = "operation",
) -> T:
    """Run ``operation`` up to ``retries`` times in total.

    The configured delay is honored between attempts. The last exception is
    re-raised once every attempt has failed. Fatal errors propagate at once.
    """
    attempts = max(retries, 1)
    for attempt in range(1, attempts + 1):
        try:
            return await maybe_await(operation())
        except FatalError:
            raise
        except Exception as e:
            if attempt >= attempts:
                logger.error(f"{label} failed after {attempts} attempt(s): {e}")
                raise
            logger.warning(f"{label} failed (attempt {attempt}/{attempts}), retrying: {e}")
            await wait(delay)
    raise AssertionError("unreachable")


def to_json(data: Any, indent: int | None = 2) -> str:
    return json.dumps(data, indent=indent, sort_keys=True, ensure_ascii=False, default=str)


def json_equal(old: Any, new: Any) -> bool:
    """Serialized equality of two extracted payloads."""
    return to_json(old, indent=None) == to_json(new, indent=None)


def json_diff(old: Any, new: Any) -> str:
    """Human readable unified diff between two extracted payloads."""
    lines = difflib.unified_diff(
        to_json(old).splitlines(),
        to_json(new).splitlines(),
        fromfile="previous",
        tofile="extracted",
        lineterm="",
    )
    return "\n".join(lines)
