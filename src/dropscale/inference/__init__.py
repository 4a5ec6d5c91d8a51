"""Dropscale - Inference Module"""

from .bitmap import Bitmap, SUPPORTED_PIXEL_FORMATS
from .errors import PipelineError, ModelLoadError, ModelUnavailable, InvalidImage, ProcessingError
from .model_loader import ModelLoader, DEFAULT_MODEL_PATH, get_device_info, get_optimal_device
from .upscaler import InferenceEngine, UpscalerConfig, create_engine, get_engine

__all__ = [
    'Bitmap',
    'SUPPORTED_PIXEL_FORMATS',
    'PipelineError',
    'ModelLoadError',
    'ModelUnavailable',
    'InvalidImage',
    'ProcessingError',
    'ModelLoader',
    'DEFAULT_MODEL_PATH',
    'get_device_info',
    'get_optimal_device',
    'InferenceEngine',
    'UpscalerConfig',
    'create_engine',
    'get_engine'
]
