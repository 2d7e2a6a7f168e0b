# backend/poller.py
import asyncio
import logging
from typing import Any, Awaitable, Callable

from .errors import MalformedResponse, PollTimeout, TransportError
from .model import PredictionHandle

logger = logging.getLogger(__name__)

FetchStatus = Callable[[str], Awaitable[Any]]
Sleep = Callable[[float], Awaitable[None]]


class PredictionPoller:
    """
    Drive a prediction handle from starting/processing to a terminal status.

    Each attempt sleeps `interval` seconds, then fetches the status URL and
    replaces status/output/error on the handle. Attempts are sequential and
    bounded by `max_attempts`; a failed attempt (transport or malformed body)
    is logged and still counts.
    """

    def __init__(
        self,
        fetch_status: FetchStatus,
        interval: float = 2.0,
        max_attempts: int = 30,
        sleep: Sleep = asyncio.sleep,
    ):
        self.fetch_status = fetch_status
        self.interval = interval
        self.max_attempts = max_attempts
        self.sleep = sleep

    async def resolve(self, handle: PredictionHandle) -> PredictionHandle:
        attempts = 0
        while not handle.is_terminal:
            if attempts >= self.max_attempts:
                logger.error(
                    "[Poller] Prediction %s still %s after %d attempts",
                    handle.id, handle.status, attempts,
                )
                raise PollTimeout(
                    f"Image generation is still processing after polling. Status: {handle.status}"
                )

            await self.sleep(self.interval)
            attempts += 1

            try:
                payload = await self.fetch_status(handle.status_url)
                handle.update_from(payload)
            except (TransportError, MalformedResponse) as e:
                logger.warning(
                    "[Poller] Attempt %d/%d for %s failed: %s",
                    attempts, self.max_attempts, handle.id, e,
                )
                continue

            logger.info(
                "[Poller] Attempt %d/%d, status: %s", attempts, self.max_attempts, handle.status
            )

        return handle
