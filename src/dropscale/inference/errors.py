"""
Dropscale - Pipeline Errors

Typed failures reported by the inference engine. Every error carries a
message that is safe to show to the user as-is.
"""

from typing import Optional


class PipelineError(Exception):
    """Base class for every failure the upscaling pipeline reports."""

    default_message = "Image upscaling failed"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)


class ModelLoadError(PipelineError):
    """The model asset is missing or could not be loaded."""

    default_message = "The super-resolution model could not be loaded"


class ModelUnavailable(PipelineError):
    """Inference was requested but no model is loaded."""

    default_message = "The super-resolution model is not available"


class InvalidImage(PipelineError):
    """The input image is empty, undecodable or in an unsupported format."""

    default_message = "The selected image is not valid"


class ProcessingError(PipelineError):
    """Format conversion or model execution failed."""

    default_message = "An error occurred while processing the image"
