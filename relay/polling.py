"""
Readiness polling for files uploaded to the Gemini file store.

A freshly uploaded file starts in PROCESSING and eventually moves to ACTIVE
(usable in prompts) or to a failure state. Polling is bounded by an attempt
budget so a file that never settles cannot stall a request forever.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable

from relay.errors import FileProcessingError, PollingTimeoutError

logger = logging.getLogger("relay.polling")

PROCESSING = "PROCESSING"
ACTIVE = "ACTIVE"

FetchFile = Callable[[str], Awaitable[Any]]
Sleep = Callable[[float], Awaitable[None]]


@dataclass
class PollPolicy:
    interval: float = 2.0
    max_attempts: int = 150


def state_of(file: Any) -> str:
    """Return the file state as a plain upper-case string (SDK enums or strings)."""
    state = getattr(file, "state", None)
    if state is None:
        return "STATE_UNSPECIFIED"
    return str(getattr(state, "value", state)).upper()


async def wait_for_file_active(
    name: str,
    fetch: FetchFile,
    policy: PollPolicy,
    sleep: Sleep = asyncio.sleep,
) -> Any:
    """
    Poll one file until it leaves PROCESSING.

    Returns the last fetched file object when it is ACTIVE.

    Raises:
        FileProcessingError: terminal state other than ACTIVE.
        PollingTimeoutError: still PROCESSING after `policy.max_attempts` fetches.
    """
    file = await fetch(name)
    attempts = 1
    while state_of(file) == PROCESSING:
        if attempts >= policy.max_attempts:
            logger.error(f"[Poll] {name}: still processing after {attempts} checks")
            raise PollingTimeoutError(
                f"File {name} was still processing after {attempts} status checks",
                file_name=name,
            )
        await sleep(policy.interval)
        file = await fetch(name)
        attempts += 1

    state = state_of(file)
    if state != ACTIVE:
        logger.error(f"[Poll] {name}: ended in state {state}")
        raise FileProcessingError(f"File {name} failed to process", file_name=name)

    logger.info(f"[Poll] {name}: active after {attempts} check(s)")
    return file


async def wait_for_files_active(
    files: Iterable[Any],
    fetch: FetchFile,
    policy: PollPolicy,
    sleep: Sleep = asyncio.sleep,
) -> list[Any]:
    """Poll each file in turn; fails on the first file that does not become ACTIVE."""
    return [
        await wait_for_file_active(file.name, fetch, policy, sleep)
        for file in files
    ]
