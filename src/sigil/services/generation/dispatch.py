"""Hand generations off to the processing endpoint.

Dispatch is fire-and-forget from the caller's point of view: the create and
retry routes answer 202 immediately and the POST to
``/api/generate/process`` runs as a detached task. A dispatch that never
lands leaves the generation in ``processing`` until the recovery sweep fails
it.
"""

import asyncio
from collections.abc import Coroutine
from typing import Any
from uuid import UUID

import httpx
import structlog

logger = structlog.get_logger(__name__)

PROCESS_PATH = "/api/generate/process"
DISPATCH_SECRET_HEADER = "X-Dispatch-Secret"


class HttpGenerationDispatcher:
    """POSTs generation ids to the processing endpoint with bounded retries."""

    def __init__(
        self,
        max_attempts: int = 3,
        retry_base_delay_seconds: float = 1.0,
        dispatch_secret: str = "",
        timeout_seconds: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.max_attempts = max(1, max_attempts)
        self.retry_base_delay_seconds = retry_base_delay_seconds
        self.dispatch_secret = dispatch_secret
        self.timeout_seconds = timeout_seconds
        self.transport = transport
        self._tasks: set[asyncio.Task] = set()

    async def enqueue(self, generation_id: UUID, base_url: str) -> bool:
        """Deliver one generation to the processing endpoint.

        2xx and 4xx responses are definitive; 5xx responses and transport
        errors are retried, waiting ``attempt * retry_base_delay_seconds``
        between attempts. Never raises.

        Returns:
            True if the endpoint accepted the dispatch
        """
        url = base_url.rstrip("/") + PROCESS_PATH
        headers = {}
        if self.dispatch_secret:
            headers[DISPATCH_SECRET_HEADER] = self.dispatch_secret

        for attempt in range(1, self.max_attempts + 1):
            try:
                async with httpx.AsyncClient(
                    timeout=self.timeout_seconds, transport=self.transport
                ) as client:
                    response = await client.post(
                        url, json={"generationId": str(generation_id)}, headers=headers
                    )

                if response.status_code < 500:
                    if response.status_code >= 400:
                        logger.warning(
                            "dispatch.rejected",
                            generation_id=str(generation_id),
                            status_code=response.status_code,
                        )
                        return False
                    logger.debug(
                        "dispatch.delivered", generation_id=str(generation_id), attempt=attempt
                    )
                    return True

                logger.warning(
                    "dispatch.server_error",
                    generation_id=str(generation_id),
                    status_code=response.status_code,
                    attempt=attempt,
                )
            except httpx.HTTPError as e:
                logger.warning(
                    "dispatch.transport_error",
                    generation_id=str(generation_id),
                    error_type=type(e).__name__,
                    error=str(e),
                    attempt=attempt,
                )

            if attempt < self.max_attempts:
                await asyncio.sleep(attempt * self.retry_base_delay_seconds)

        logger.error(
            "dispatch.failed",
            generation_id=str(generation_id),
            attempts=self.max_attempts,
        )
        return False

    def schedule(self, generation_id: UUID, base_url: str) -> asyncio.Task:
        """Run enqueue as a detached task, keeping a reference until it finishes."""
        return self._spawn(self.enqueue(generation_id, base_url))

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for in-flight dispatches (used on shutdown)."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
