# bounded, failure-tolerant query execution
# a failing or hung query degrades to a default value instead of blanking the dashboard

import asyncio
import logging
from typing import Awaitable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def guarded(query: Awaitable[T], default: T, *, label: str, doctor_id: str, timeout: float) -> T:
    """await a query with a timeout, returning `default` if it fails or times out"""
    try:
        return await asyncio.wait_for(query, timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"{label} timed out after {timeout}s for doctor {doctor_id}")
    except Exception as e:
        logger.warning(f"{label} failed for doctor {doctor_id}: {e}")
    return default
