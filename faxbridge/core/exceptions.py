"""Exception hierarchy for the fax response core.

Pipeline errors carry a ``retryable`` flag that the pipeline error handler
uses to choose between retrying a stage and aborting the job.
"""

from typing import Optional


class AppError(Exception):
    """Base exception for application errors."""
    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.original_error = original_error


class APIClientError(AppError):
    """Raised when an external API call fails."""
    def __init__(self, message: str, original_error: Exception = None, status_code: Optional[int] = None):
        super().__init__(message, original_error=original_error)
        self.status_code = status_code


class APITimeoutError(APIClientError):
    """Raised when an external API call times out."""
    pass


class ValidationError(AppError):
    """Raised when input validation fails."""
    pass


class ConfigurationError(AppError):
    """Raised when configuration is invalid or missing."""
    pass


class StorageError(AppError):
    """Raised when an object storage operation fails."""
    pass


class ReferenceIdConflictError(AppError):
    """Raised when a reference code is already held by another user's conversation."""
    def __init__(self, reference_id: str):
        super().__init__(f"Reference id {reference_id} belongs to another user")
        self.reference_id = reference_id


class PipelineError(AppError):
    """Base class for errors raised by a pipeline stage."""

    retryable: bool = False
    skippable: bool = False

    def __init__(self, message: str, original_error: Exception = None, stage: Optional[str] = None):
        super().__init__(message, original_error=original_error)
        self.stage = stage


class InputFetchError(PipelineError):
    """Inbound fax image is unavailable or corrupt."""
    retryable = True


class UserResolutionError(PipelineError):
    """User lookup or creation by phone number failed."""
    retryable = True


class InterpretationError(PipelineError):
    """The interpretation collaborator failed."""
    retryable = True


class AgentError(PipelineError):
    """The action agent failed to execute the request."""
    retryable = True


class RenderError(PipelineError):
    """Content model is invalid or the document encoder failed.

    Always terminal: it indicates a defect upstream of the renderer.
    """
    retryable = False


class DeliveryError(PipelineError):
    """Base class for outbound delivery failures."""


class DeliveryClientError(DeliveryError):
    """Transmission rejected the request (4xx other than 429)."""
    retryable = False

    def __init__(self, message: str, original_error: Exception = None, stage: Optional[str] = None,
                 status_code: Optional[int] = None):
        super().__init__(message, original_error=original_error, stage=stage)
        self.status_code = status_code


class DeliveryTransientError(DeliveryError):
    """Rate limiting, server or network failure during delivery."""
    retryable = True

    def __init__(self, message: str, original_error: Exception = None, stage: Optional[str] = None,
                 status_code: Optional[int] = None):
        super().__init__(message, original_error=original_error, stage=stage)
        self.status_code = status_code


class ContextRecoveryError(PipelineError):
    """Context recovery failed; the job continues without context."""
    skippable = True


class PostActionError(PipelineError):
    """A best-effort post action (welcome or help fax) failed."""
    skippable = True
