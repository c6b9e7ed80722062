"""Timeout and error translation shared by every persistence call."""

import asyncio
import logging
from typing import Awaitable, TypeVar

from complaint_agent.errors import StoreUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def guarded(awaitable: Awaitable[T], timeout_sec: float, operation: str) -> T:
    """Await a repository call with a timeout, surfacing any failure as StoreUnavailable."""
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_sec)
    except asyncio.TimeoutError:
        logger.error("Store operation '%s' timed out after %.1fs", operation, timeout_sec)
        raise StoreUnavailable(f"{operation} timed out") from None
    except StoreUnavailable:
        raise
    except Exception as exc:
        logger.exception("Store operation '%s' failed", operation)
        raise StoreUnavailable(f"{operation} failed") from exc
