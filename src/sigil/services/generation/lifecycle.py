"""Generation lifecycle: create, claim, process, retry and delete generations.

## Transactions

Processing never holds a database transaction open across the provider call.
It uses several short Units of Work instead:

1. Load + claim (processing -> processing_locked), committed immediately
2. Heartbeat ticks while the adapter runs, one UoW per tick
3. Terminal write: re-load the row, mark completed and insert outputs in one
   transaction (or mark failed)

Because the row is re-loaded for the terminal write, a generation failed by
the recovery sweep while the provider call was in flight stays failed.
"""

import asyncio
import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager, suppress
from dataclasses import dataclass
from typing import Any
from uuid import UUID

import structlog

from sigil.models.generation import Generation, GenerationStatus, InvalidStateTransition
from sigil.models.output import FileType, Output
from sigil.services.cost import calculate_generation_cost
from sigil.services.exceptions import GenerationNotFoundError, UnknownModelError
from sigil.services.generation.classification import classify_error, user_facing_message
from sigil.services.models.base import OutputArtifact
from sigil.services.models.registry import ModelRegistry
from sigil.services.models.request_builder import normalize_generation_request
from sigil.services.models.routing import ProviderCredentials, route_model
from sigil.services.storage.output_persistence import OutputPersistence

logger = structlog.get_logger(__name__)

NO_OUTPUTS_ERROR = "Generation did not produce outputs"


@dataclass
class ProcessResult:
    """Summary returned by process_generation.

    ``message`` is set when nothing was done (already processed, already
    claimed, state changed). ``status`` carries the terminal status reached,
    or the existing one for an already processed generation.
    """

    id: UUID
    status: str | None = None
    message: str | None = None
    error: str | None = None
    output_count: int | None = None
    model_id: str | None = None
    routed: bool | None = None
    route_reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = {
            "id": str(self.id),
            "status": self.status,
            "message": self.message,
            "error": self.error,
            "outputCount": self.output_count,
            "modelId": self.model_id,
            "routed": self.routed,
            "routeReason": self.route_reason,
        }
        return {key: value for key, value in data.items() if value is not None}


def output_file_type(artifact: OutputArtifact) -> FileType:
    return FileType.VIDEO if artifact.duration else FileType.IMAGE


class GenerationLifecycle:
    """Drives generations through processing -> processing_locked -> terminal."""

    def __init__(
        self,
        uow_factory: Callable,
        registry: ModelRegistry,
        credentials: ProviderCredentials,
        persistence: OutputPersistence,
        heartbeat_interval_seconds: float = 10.0,
    ):
        self.uow_factory = uow_factory
        self.registry = registry
        self.credentials = credentials
        self.persistence = persistence
        self.heartbeat_interval_seconds = heartbeat_interval_seconds

    async def create_generation(
        self,
        user_id: UUID,
        session_id: UUID,
        model_id: str,
        prompt: str,
        negative_prompt: str | None = None,
        parameters: dict[str, Any] | None = None,
    ) -> Generation:
        """Insert a new generation in ``processing``.

        The caller is responsible for dispatching it.

        Raises:
            UnknownModelError: If model_id is not in the registry
        """
        if self.registry.get_model_config(model_id) is None:
            raise UnknownModelError(f"Model not found: {model_id}")

        async with await self.uow_factory() as uow:
            generation = await uow.generations.add(
                Generation(
                    user_id=user_id,
                    session_id=session_id,
                    model_id=model_id,
                    prompt=prompt,
                    negative_prompt=negative_prompt,
                    parameters=dict(parameters or {}),
                )
            )

        logger.info(
            "generation.created",
            generation_id=str(generation.id),
            user_id=str(user_id),
            model_id=model_id,
        )
        return generation

    async def get_generation(
        self, generation_id: UUID, user_id: UUID | None = None
    ) -> tuple[Generation, list[Output]]:
        """Load a generation with its outputs.

        Raises:
            GenerationNotFoundError: Unknown id, or owned by another user
        """
        async with await self.uow_factory() as uow:
            generation = await self._load(uow, generation_id, user_id)
            outputs = await uow.outputs.get_by_generation(generation_id)
        return generation, outputs

    async def process_generation(self, generation_id: UUID) -> ProcessResult:
        """Run one generation to a terminal state.

        Provider failures are returned as a failed ProcessResult, not raised.

        Raises:
            GenerationNotFoundError: If the generation does not exist
            Exception: Database faults, after a best-effort failure mark
        """
        log = logger.bind(generation_id=str(generation_id))

        async with await self.uow_factory() as uow:
            generation = await uow.generations.get_by_id(generation_id)
            if generation is None:
                raise GenerationNotFoundError(f"Generation not found: {generation_id}")

            if generation.is_terminal:
                log.info("generation.already_processed", status=generation.status.value)
                return ProcessResult(
                    id=generation_id,
                    status=generation.status.value,
                    message="Generation already processed",
                )

            claimed = await self.claim(uow, generation)
            if not claimed:
                log.info("generation.already_claimed")
                return ProcessResult(id=generation_id, message="Generation already claimed")

            snapshot = {
                "user_id": generation.user_id,
                "model_id": generation.model_id,
                "prompt": generation.prompt,
                "negative_prompt": generation.negative_prompt,
                "parameters": dict(generation.parameters or {}),
            }

        try:
            return await self._run_claimed(generation_id, snapshot)
        except Exception as e:
            log.exception("generation.processing_error", error_type=type(e).__name__)
            await self._mark_failed_best_effort(generation_id, e)
            raise

    async def claim(self, uow, generation: Generation) -> bool:
        """Claim a loaded generation for processing.

        A zero-row claim still proceeds when the loaded row was already
        ``processing_locked`` (a re-dispatch of a claimed generation).
        """
        claimed = await uow.generations.claim_for_processing(generation.id)
        if claimed:
            logger.info("generation.claimed", generation_id=str(generation.id))
            return True
        return generation.status == GenerationStatus.PROCESSING_LOCKED

    async def _run_claimed(self, generation_id: UUID, snapshot: dict[str, Any]) -> ProcessResult:
        log = logger.bind(generation_id=str(generation_id))

        routing = route_model(snapshot["model_id"], self.credentials)
        if routing.routed:
            log.info(
                "generation.routed",
                requested_model=snapshot["model_id"],
                model_id=routing.model_id,
                reason=routing.reason,
            )

        adapter = self.registry.get_model(routing.model_id)
        if adapter is None:
            error = f"Unknown model: {routing.model_id}"
            await self._mark_failed(generation_id, UnknownModelError(error))
            return ProcessResult(id=generation_id, status="failed", error=error)

        request = normalize_generation_request(
            snapshot["prompt"], snapshot["negative_prompt"], snapshot["parameters"]
        )

        start_time = time.time()
        log.info("generation.started", model_id=routing.model_id)
        try:
            async with self._heartbeat(generation_id):
                result = await adapter.generate(request)
        except Exception as e:
            error = str(e) or type(e).__name__
            log.warning("generation.adapter_raised", error_type=type(e).__name__, error=error)
            await self._mark_failed(generation_id, e)
            return ProcessResult(id=generation_id, status="failed", error=error)

        if result.status != "completed" or not result.outputs:
            error = result.error or NO_OUTPUTS_ERROR
            log.warning("generation.adapter_failed", model_id=routing.model_id, error=error)
            await self._mark_failed(generation_id, error)
            return ProcessResult(id=generation_id, status="failed", error=error)

        artifacts = result.outputs
        urls = await asyncio.gather(
            *(
                self.persistence.persist_output(
                    artifact.url,
                    str(snapshot["user_id"]),
                    str(generation_id),
                    index,
                    output_file_type(artifact).value,
                )
                for index, artifact in enumerate(artifacts)
            )
        )

        cost = None
        config = self.registry.get_model_config(routing.model_id)
        if config is not None:
            cost = calculate_generation_cost(
                config,
                len(artifacts),
                predict_time_seconds=result.metrics.predict_time if result.metrics else None,
                output_has_video=any(artifact.duration for artifact in artifacts),
            )

        try:
            async with await self.uow_factory() as uow:
                generation = await uow.generations.get_by_id(generation_id)
                if generation is None:
                    raise InvalidStateTransition("Generation was deleted during processing")
                generation.mark_completed(routing.model_id, cost)
                await uow.generations.save(generation)
                await uow.outputs.add_many(
                    [
                        Output(
                            generation_id=generation_id,
                            file_url=url,
                            file_type=output_file_type(artifact),
                            width=artifact.width,
                            height=artifact.height,
                            duration=artifact.duration,
                        )
                        for artifact, url in zip(artifacts, urls)
                    ]
                )
        except InvalidStateTransition as e:
            log.warning("generation.state_changed", error=str(e))
            return ProcessResult(
                id=generation_id, message="Generation state changed during processing"
            )

        log.info(
            "generation.completed",
            model_id=routing.model_id,
            output_count=len(artifacts),
            cost=cost,
            duration_seconds=round(time.time() - start_time, 3),
        )
        return ProcessResult(
            id=generation_id,
            status="completed",
            output_count=len(artifacts),
            model_id=routing.model_id,
            routed=routing.routed,
            route_reason=routing.reason,
        )

    @asynccontextmanager
    async def _heartbeat(self, generation_id: UUID) -> AsyncIterator[None]:
        """Refresh last_heartbeat_at periodically while the body runs."""
        task = asyncio.create_task(self._heartbeat_loop(generation_id))
        try:
            yield
        finally:
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task

    async def _heartbeat_loop(self, generation_id: UUID) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_interval_seconds)
            try:
                async with await self.uow_factory() as uow:
                    await uow.generations.touch_heartbeat(generation_id)
            except Exception as e:
                # Best-effort: a missed tick only makes the sweep more eager
                logger.warning(
                    "generation.heartbeat_failed",
                    generation_id=str(generation_id),
                    error=str(e),
                )

    async def _mark_failed(self, generation_id: UUID, error: BaseException | str) -> None:
        """Classify the failure and store the user-facing message.

        No-op when the generation is gone or already terminal.
        """
        classified = classify_error(error)
        async with await self.uow_factory() as uow:
            generation = await uow.generations.get_by_id(generation_id)
            if generation is None or generation.is_terminal:
                logger.info(
                    "generation.fail_skipped",
                    generation_id=str(generation_id),
                    status=generation.status.value if generation else None,
                )
                return
            generation.mark_failed(
                user_facing_message(classified), classified.category, classified.retryable
            )
            await uow.generations.save(generation)

        logger.info(
            "generation.failed",
            generation_id=str(generation_id),
            error_category=classified.category,
            retryable=classified.retryable,
            error=classified.message,
        )

    async def _mark_failed_best_effort(self, generation_id: UUID, error: BaseException) -> None:
        try:
            await self._mark_failed(generation_id, error)
        except Exception as mark_error:
            logger.error(
                "generation.fail_persist_error",
                generation_id=str(generation_id),
                error=str(mark_error),
            )

    async def retry_generation(
        self, generation_id: UUID, user_id: UUID | None = None
    ) -> Generation:
        """Reset a terminal generation to processing and purge its outputs.

        The caller is responsible for dispatching it.

        Raises:
            GenerationNotFoundError: Unknown id, or owned by another user
            InvalidStateTransition: Generation is still processing
        """
        async with await self.uow_factory() as uow:
            generation = await self._load(uow, generation_id, user_id)
            generation.reset_for_retry()
            deleted = await uow.outputs.delete_by_generation(generation_id)
            await uow.generations.save(generation)

        logger.info("generation.retried", generation_id=str(generation_id), outputs_deleted=deleted)
        return generation

    async def delete_generation(self, generation_id: UUID, user_id: UUID | None = None) -> None:
        """Dismiss a failed generation.

        Raises:
            GenerationNotFoundError: Unknown id, or owned by another user
            InvalidStateTransition: Generation is not failed
        """
        async with await self.uow_factory() as uow:
            generation = await self._load(uow, generation_id, user_id)
            generation.ensure_deletable()
            await uow.generations.delete(generation)

        logger.info("generation.deleted", generation_id=str(generation_id))

    async def _load(self, uow, generation_id: UUID, user_id: UUID | None) -> Generation:
        generation = await uow.generations.get_by_id(generation_id)
        if generation is None or (user_id is not None and generation.user_id != user_id):
            raise GenerationNotFoundError(f"Generation not found: {generation_id}")
        return generation
