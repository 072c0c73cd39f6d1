"""Network reachability check.

Consulted once before the first negotiation attempt so that an offline
machine produces a clear error instead of a string of refused ports.
"""

import asyncio
import contextlib
from enum import Enum

import structlog

logger = structlog.get_logger(__name__)

# Well known anycast resolvers; any TCP answer means packets leave the host
DEFAULT_ENDPOINTS: tuple[tuple[str, int], ...] = (
    ("1.1.1.1", 53),
    ("8.8.8.8", 53),
    ("9.9.9.9", 53),
)


class NetworkStatus(str, Enum):
    ONLINE = "online"
    DEGRADED = "degraded"
    OFFLINE = "offline"


async def _can_reach(host: str, port: int, timeout: float) -> bool:
    try:
        _, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout=timeout)
    except (OSError, asyncio.TimeoutError) as e:
        logger.debug("network_endpoint_unreachable", host=host, port=port, error=str(e))
        return False
    writer.close()
    with contextlib.suppress(Exception):
        await writer.wait_closed()
    return True


async def check_network(
    endpoints: tuple[tuple[str, int], ...] | list[tuple[str, int]] = DEFAULT_ENDPOINTS,
    timeout: float = 3.0,
) -> NetworkStatus:
    """Check a few endpoints concurrently and summarize reachability.

    Args:
        endpoints: (host, port) pairs to open TCP connections to.
        timeout: Per endpoint connect timeout in seconds.

    Returns:
        ONLINE if every endpoint answered, DEGRADED if only some did,
        OFFLINE if none did.
    """
    if not endpoints:
        return NetworkStatus.ONLINE

    results = await asyncio.gather(
        *(_can_reach(host, port, timeout) for host, port in endpoints)
    )
    reachable = sum(results)

    if reachable == len(results):
        status = NetworkStatus.ONLINE
    elif reachable:
        status = NetworkStatus.DEGRADED
    else:
        status = NetworkStatus.OFFLINE

    logger.debug("network_checked", status=status.value, reachable=reachable, total=len(results))
    return status
