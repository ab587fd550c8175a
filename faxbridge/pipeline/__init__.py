from faxbridge.pipeline.error_handler import ErrorAction, ErrorDecision, PipelineErrorHandler, Stage
from faxbridge.pipeline.fax_pipeline import FaxPipeline

__all__ = ["ErrorAction", "ErrorDecision", "FaxPipeline", "PipelineErrorHandler", "Stage"]
