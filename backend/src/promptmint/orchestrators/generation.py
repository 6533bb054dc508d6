"""Image generation orchestrator.

Drives idle → generating → uploading → completed | error:

1. Re-check can_generate (double submissions are ignored)
2. Validate the prompt (fails fast, never retried, no ledger entry)
3. Check network reachability (fails fast, no ledger entry)
4. Record a pending ledger entry and start generation
5. Call the generation service under the retry engine while a progress
   ticker advances the visible percentage (10 → 80)
6. Jump to 90/uploading, require both image URL and token URI
7. Complete, or classify the failure and record it in state and ledger
"""

import asyncio
import contextlib
import time
from dataclasses import dataclass
from typing import Optional

import structlog

from promptmint.core.controller import AppStateController
from promptmint.core.retry import GENERATION_RETRY_CONFIG, RetryConfig, with_retry
from promptmint.errors import AppError, classify, validation_error
from promptmint.interfaces import ImageGenerationService, NetworkMonitor
from promptmint.models import (
    ErrorKind,
    GenerationResult,
    GenerationStatus,
    OperationResult,
    OperationStatus,
    OperationType,
)

logger = structlog.get_logger(__name__)

MIN_PROMPT_LENGTH = 3
MAX_PROMPT_LENGTH = 500

PROGRESS_START = 10
PROGRESS_STEP = 10
PROGRESS_CEILING = 80
PROGRESS_UPLOADING = 90


@dataclass(frozen=True)
class PromptValidation:
    is_valid: bool
    error: Optional[str] = None


def validate_prompt(prompt: str) -> PromptValidation:
    """Client-side prompt validation.

    Args:
        prompt: Raw prompt text as typed

    Returns:
        PromptValidation distinguishing empty, too short and too long prompts
    """
    trimmed = (prompt or "").strip()

    if not trimmed:
        return PromptValidation(False, "Please enter a prompt to generate an image")

    if len(trimmed) < MIN_PROMPT_LENGTH:
        return PromptValidation(
            False, f"Prompt must be at least {MIN_PROMPT_LENGTH} characters long"
        )

    if len(trimmed) > MAX_PROMPT_LENGTH:
        return PromptValidation(False, f"Prompt must be less than {MAX_PROMPT_LENGTH} characters")

    return PromptValidation(True)


class ProgressTicker:
    """Simulated progress while the upstream call is outstanding.

    Adds PROGRESS_STEP every ``interval`` seconds, never above PROGRESS_CEILING.
    ``stop()`` cancels the task and waits for it, so no tick lands after the
    real result has been recorded.
    """

    def __init__(self, controller: AppStateController, interval: float):
        self.controller = controller
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    def start(self) -> None:
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            generation = self.controller.state.generation_state
            if generation.status != GenerationStatus.GENERATING:
                continue
            progress = min(generation.progress + PROGRESS_STEP, PROGRESS_CEILING)
            if progress != generation.progress:
                self.controller.update_generation_progress(progress, GenerationStatus.GENERATING)


class GenerationOrchestrator:
    """Runs the image generation workflow against an AppStateController."""

    def __init__(
        self,
        controller: AppStateController,
        service: ImageGenerationService,
        network: NetworkMonitor,
        retry_config: RetryConfig = GENERATION_RETRY_CONFIG,
        progress_interval: float = 0.5,
    ):
        self.controller = controller
        self.service = service
        self.network = network
        self.retry_config = retry_config
        self.progress_interval = progress_interval

    async def generate(self) -> Optional[GenerationResult]:
        """Generate an image for the current prompt.

        Returns:
            The generation result, or None if the attempt failed or was not started
        """
        controller = self.controller

        if self._operation_in_progress():
            return None

        validation = validate_prompt(controller.state.prompt)
        if not validation.is_valid:
            controller.fail_generation(validation_error(validation.error or "Invalid prompt"))
            return None

        prompt = controller.state.prompt.strip()

        if not await self.network.is_online():
            controller.fail_generation(
                AppError(
                    ErrorKind.NETWORK_ERROR,
                    "No internet connection. Please check your network and try again.",
                    retryable=True,
                )
            )
            return None

        # Another call may have started while the network check was pending
        if self._operation_in_progress():
            return None

        operation_id = controller.add_operation(OperationType.GENERATION, prompt)
        controller.start_generation()

        start_time = time.time()
        logger.info("generation.started", operation_id=operation_id, prompt_length=len(prompt))

        ticker = ProgressTicker(controller, self.progress_interval)
        ticker.start()

        try:
            try:
                result = await with_retry(
                    lambda: self.service.generate(prompt),
                    self.retry_config,
                    on_retry=self._on_retry,
                )
            finally:
                await ticker.stop()

            controller.update_generation_progress(PROGRESS_UPLOADING, GenerationStatus.UPLOADING)

            if not result.image_url or not result.token_uri:
                raise AppError(
                    ErrorKind.GENERATION_FAILED,
                    "Invalid response: missing image URL or token URI",
                    retryable=True,
                )

            controller.complete_generation(result.image_url, result.token_uri)
            controller.update_operation(
                operation_id,
                status=OperationStatus.SUCCESS,
                result=OperationResult(image_url=result.image_url, token_uri=result.token_uri),
            )

            logger.info(
                "generation.succeeded",
                operation_id=operation_id,
                image_url=result.image_url,
                token_uri=result.token_uri,
                duration_seconds=time.time() - start_time,
            )
            return result

        except asyncio.CancelledError:
            raise

        except Exception as e:
            error = classify(e)
            error_state = controller.fail_generation(error, operation_id=operation_id)
            controller.update_operation(
                operation_id, status=OperationStatus.ERROR, error=error_state.message
            )
            logger.error(
                "generation.failed",
                operation_id=operation_id,
                error_kind=error.kind.value,
                error_message=error.message,
                duration_seconds=time.time() - start_time,
            )
            return None

    def _operation_in_progress(self) -> bool:
        controller = self.controller
        if not (controller.is_generating or controller.is_minting):
            return False
        logger.info(
            "generation.ignored",
            reason="operation_in_progress",
            generation_status=controller.state.generation_state.status.value,
            minting_status=controller.state.minting_state.status.value,
        )
        return True

    async def retry(self) -> Optional[GenerationResult]:
        """Clear the active error and run a fresh generation."""
        self.controller.clear_error()
        return await self.generate()

    def _on_retry(self, attempt: int, error: AppError) -> None:
        # Never leave the UI showing progress from the failed attempt
        logger.info(
            "generation.retrying",
            attempt=attempt,
            error_kind=error.kind.value,
        )
        self.controller.update_generation_progress(PROGRESS_START, GenerationStatus.GENERATING)
