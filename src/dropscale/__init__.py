"""
Dropscale - AI Image Super-Resolution

Drop in an image, enlarge it with a packaged super-resolution model,
save the result.
"""

__version__ = "1.0.0"
__description__ = "AI image super-resolution with a drop-in web interface"

from .inference.bitmap import Bitmap
from .inference.errors import PipelineError, ModelLoadError, ModelUnavailable, InvalidImage, ProcessingError
from .inference.upscaler import InferenceEngine, UpscalerConfig, create_engine, get_engine

__all__ = [
    'Bitmap',
    'PipelineError',
    'ModelLoadError',
    'ModelUnavailable',
    'InvalidImage',
    'ProcessingError',
    'InferenceEngine',
    'UpscalerConfig',
    'create_engine',
    'get_engine'
]
