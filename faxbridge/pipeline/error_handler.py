"""Failure classification and retry decisions for pipeline stages.

The handler is the only writer of the failure audit trail: every stage
failure passes through ``handle`` exactly once per attempt.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Type

from faxbridge.core.exceptions import (
    AgentError,
    ContextRecoveryError,
    DeliveryTransientError,
    InputFetchError,
    InterpretationError,
    PipelineError,
    PostActionError,
    RenderError,
    UserResolutionError,
)
from faxbridge.models.job import PipelineJob
from faxbridge.services.audit_service import AuditService
from faxbridge.utils.logging import get_logger

LOGGER = get_logger(__name__)


class Stage(str, Enum):
    DOWNLOAD_IMAGE = "download_image"
    RESOLVE_USER = "resolve_user"
    INTERPRET = "interpret"
    RECOVER_CONTEXT = "recover_context"
    INVOKE_AGENT = "invoke_agent"
    BUILD_DOCUMENT = "build_document"
    RENDER_AND_PAGINATE = "render_and_paginate"
    UPLOAD_AND_DELIVER = "upload_and_deliver"
    POST_ACTIONS = "post_actions"


STAGE_ERRORS: Dict[Stage, Type[PipelineError]] = {
    Stage.DOWNLOAD_IMAGE: InputFetchError,
    Stage.RESOLVE_USER: UserResolutionError,
    Stage.INTERPRET: InterpretationError,
    Stage.RECOVER_CONTEXT: ContextRecoveryError,
    Stage.INVOKE_AGENT: AgentError,
    Stage.BUILD_DOCUMENT: RenderError,
    Stage.RENDER_AND_PAGINATE: RenderError,
    Stage.UPLOAD_AND_DELIVER: DeliveryTransientError,
    Stage.POST_ACTIONS: PostActionError,
}


class ErrorAction(str, Enum):
    RETRY = "retry"
    TERMINAL = "terminal"
    SKIP = "skip"


@dataclass
class ErrorDecision:
    action: ErrorAction
    error: PipelineError
    delay: float = 0.0


class PipelineErrorHandler:
    """Decides whether a failed stage is retried, skipped or ends the job.

    Args:
        audit: Audit sink for the failure trail
        max_attempts: Attempts allowed per stage; stages not listed get one
        base_delay_seconds: Retry ``n`` waits ``base * 2**(n-1)``
    """

    def __init__(
        self,
        audit: AuditService,
        max_attempts: Optional[Dict[Stage, int]] = None,
        base_delay_seconds: float = 2.0,
    ):
        self.audit = audit
        self.max_attempts = max_attempts or {}
        self.base_delay_seconds = base_delay_seconds

    @classmethod
    def from_settings(cls, pipeline_settings, audit: AuditService) -> "PipelineErrorHandler":
        return cls(
            audit=audit,
            max_attempts={
                Stage.DOWNLOAD_IMAGE: pipeline_settings.download_max_attempts,
                Stage.RESOLVE_USER: pipeline_settings.resolve_user_max_attempts,
                Stage.INTERPRET: pipeline_settings.interpret_max_attempts,
                Stage.INVOKE_AGENT: pipeline_settings.agent_max_attempts,
                Stage.UPLOAD_AND_DELIVER: pipeline_settings.deliver_max_attempts,
            },
            base_delay_seconds=pipeline_settings.retry_base_delay_seconds,
        )

    def max_attempts_for(self, stage: Stage) -> int:
        return max(1, self.max_attempts.get(stage, 1))

    def retry_delay(self, attempt: int) -> float:
        return self.base_delay_seconds * (2 ** (attempt - 1))

    def classify(self, stage: Stage, error: Exception) -> PipelineError:
        """Wrap ``error`` into the taxonomy error owned by ``stage``."""
        if isinstance(error, PipelineError):
            if error.stage is None:
                error.stage = stage.value
            return error

        error_class = STAGE_ERRORS[stage]
        if isinstance(error, asyncio.TimeoutError):
            message = f"{stage.value} timed out"
        else:
            message = f"{stage.value} failed: {str(error) or type(error).__name__}"
        return error_class(message, original_error=error, stage=stage.value)

    async def handle(self, stage: Stage, error: Exception, attempt: int, job: PipelineJob) -> ErrorDecision:
        """Classify a stage failure, audit it and return what to do next.

        Args:
            stage: The failed stage
            error: What the stage raised
            attempt: 1-based attempt number that failed
            job: The job being processed

        Returns:
            The decision; ``delay`` is set for retries
        """
        wrapped = self.classify(stage, error)
        details = {
            "stage": stage.value,
            "attempt": attempt,
            "error_type": type(wrapped).__name__,
            "error": str(wrapped),
            "from_number": job.from_number,
        }

        if wrapped.skippable:
            LOGGER.warning(f"Stage {stage.value} skipped: {wrapped}", extra={"fax_id": job.fax_id})
            await self.audit.record("fax_job", job.fax_id, "stage_skipped", details)
            return ErrorDecision(action=ErrorAction.SKIP, error=wrapped)

        max_attempts = self.max_attempts_for(stage)
        if wrapped.retryable and attempt < max_attempts:
            delay = self.retry_delay(attempt)
            LOGGER.warning(
                f"Stage {stage.value} failed (Attempt {attempt}/{max_attempts}), retrying in {delay}s: {wrapped}",
                extra={"fax_id": job.fax_id},
            )
            await self.audit.record("fax_job", job.fax_id, "processing_error", {**details, "retry_in": delay})
            return ErrorDecision(action=ErrorAction.RETRY, error=wrapped, delay=delay)

        LOGGER.error(
            f"Stage {stage.value} failed permanently: {wrapped}",
            exc_info=wrapped.original_error or wrapped,
            extra={"fax_id": job.fax_id, "attempt": attempt, "retryable": wrapped.retryable},
        )
        await self.audit.record(
            "fax_job",
            job.fax_id,
            "processing_failed",
            {**details, "retryable": wrapped.retryable, "max_attempts": max_attempts},
        )
        return ErrorDecision(action=ErrorAction.TERMINAL, error=wrapped)
