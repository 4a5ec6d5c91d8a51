"""
Dropscale - Core Upscaling Engine

Runs the packaged super-resolution model on one bitmap at a time. The engine
loads its model once, is safe to call from several threads at once and
reports every failure as a typed PipelineError.
"""

import asyncio
import gc
import logging
import threading
import time
from pathlib import Path
from typing import Optional, Tuple, Dict, Any, Union

import cv2
import numpy as np
import torch
import torch.nn.functional as F

from .bitmap import Bitmap, SUPPORTED_PIXEL_FORMATS
from .errors import (
    PipelineError,
    ModelLoadError,
    ModelUnavailable,
    InvalidImage,
    ProcessingError,
)
from .model_loader import ModelLoader, DEFAULT_MODEL_PATH, get_optimal_device, get_memory_info

logger = logging.getLogger(__name__)


class UpscalerConfig:
    """Configuration for the inference engine."""

    def __init__(
        self,
        model_path: Union[str, Path] = DEFAULT_MODEL_PATH,
        device: str = 'auto',
        half_precision: bool = False,
        model_scale: int = 4,
        input_size: Optional[Tuple[int, int]] = None,
        pad_multiple: int = 1
    ):
        self.model_path = Path(model_path)
        self.device = device
        self.half_precision = half_precision
        self.model_scale = int(model_scale)
        # (width, height) for models traced with a fixed input shape
        self.input_size = (int(input_size[0]), int(input_size[1])) if input_size else None
        self.pad_multiple = max(1, int(pad_multiple))


class InferenceEngine:
    """
    Super-resolution inference engine.

    Call initialize() once before upscaling. A failed load leaves the engine
    unavailable instead of raising, and every later upscale() call reports
    ModelUnavailable.
    """

    def __init__(self, config: Optional[UpscalerConfig] = None, model_loader: Optional[ModelLoader] = None):
        self.config = config or UpscalerConfig()
        self.model_loader = model_loader or ModelLoader(self.config.model_path)
        self.device = None
        self.model = None
        self.load_error = None
        self._scale = None
        self._half = False
        self._initialized = False
        self._init_lock = threading.Lock()
        self._stats_lock = threading.Lock()
        self.stats = self._empty_stats()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self) -> bool:
        """
        Load the model. Runs at most once per engine.

        Returns:
            bool: True if the model is loaded and the engine is usable
        """
        with self._init_lock:
            if self._initialized:
                return self.model is not None
            self._initialized = True

            try:
                device = get_optimal_device(self.config.device)
                model = self.model_loader.load(device, self.config.half_precision)
                scale = self.model_loader.model_scale(model, self.config.model_scale)
            except ModelLoadError as e:
                self.load_error = e
                logger.error(f"❌ Failed to load model: {e}")
                return False
            except Exception as e:
                self.load_error = ModelLoadError(f"Unexpected error while loading model: {e}")
                logger.exception("❌ Failed to load model")
                return False

            self.device = device
            self._half = self.config.half_precision and device.type != 'cpu'
            self._scale = scale
            self.model = model

        logger.info(f"🚀 Inference engine ready ({scale}x on {device})")
        return True

    @property
    def is_available(self) -> bool:
        return self.model is not None

    @property
    def scale(self) -> Optional[int]:
        """Upscale ratio of the loaded model, None while unavailable."""
        return self._scale

    def status(self) -> Dict[str, Any]:
        """Summarize the engine state for display."""
        return {
            'available': self.is_available,
            'device': str(self.device) if self.device is not None else None,
            'scale': self._scale,
            'model_path': str(self.config.model_path),
            'error': str(self.load_error) if self.load_error else None,
        }

    # ------------------------------------------------------------------
    # Inference
    # ------------------------------------------------------------------

    def upscale(self, image: Bitmap) -> Bitmap:
        """
        Upscale a single bitmap.

        Args:
            image: Decoded input bitmap, left untouched

        Returns:
            Bitmap: New bitmap in the input's pixel format, enlarged by the
            model's fixed ratio

        Raises:
            ModelUnavailable: no model is loaded
            InvalidImage: empty input or unsupported pixel format
            ProcessingError: conversion or inference failed
        """
        model = self.model
        if model is None:
            if self.load_error is not None:
                raise ModelUnavailable(f"The super-resolution model is not available: {self.load_error}")
            raise ModelUnavailable()

        self._validate(image)

        start_time = time.time()
        logger.info(f"🔄 Upscaling {image.width}x{image.height} {image.pixel_format} image...")
        memory_before = get_memory_info(self.device)

        try:
            result = self._run(model, image)
        except PipelineError:
            raise
        except Exception as e:
            logger.error(f"❌ Upscaling failed: {e}")
            raise ProcessingError(f"An error occurred while processing the image: {e}") from e
        finally:
            self._cleanup_memory()

        processing_time = time.time() - start_time
        self._record(image, result, processing_time)

        memory_after = get_memory_info(self.device)
        logger.info(f"✅ Upscaled to {result.width}x{result.height} in {processing_time:.2f}s")
        logger.debug(f"📊 Memory: {memory_before.get('allocated', 0):.1f}GB → {memory_after.get('allocated', 0):.1f}GB")

        return result

    async def upscale_async(self, image: Bitmap) -> Bitmap:
        """Run upscale() on a worker thread and resume with its result."""
        return await asyncio.to_thread(self.upscale, image)

    def _validate(self, image: Bitmap):
        if not isinstance(image, Bitmap):
            raise InvalidImage(f"Expected a decoded bitmap, got {type(image).__name__}")
        if image.width == 0 or image.height == 0:
            raise InvalidImage(f"The selected image has no pixels ({image.width}x{image.height})")
        if image.pixel_format not in SUPPORTED_PIXEL_FORMATS:
            raise InvalidImage(f"Unsupported pixel format: {image.pixel_format}")
        if not image.is_well_formed():
            raise InvalidImage(f"Pixel buffer {image.pixels.shape} does not match format {image.pixel_format}")

    def _run(self, model: torch.nn.Module, image: Bitmap) -> Bitmap:
        rgb, alpha = self._split_channels(image)

        if self.config.input_size is not None:
            rgb, (content_w, content_h) = self._letterbox(rgb)
        else:
            content_h, content_w = rgb.shape[:2]

        tensor = self._to_tensor(rgb)
        padded = self._pad(tensor)

        with torch.no_grad():
            output = model(padded)

        output = self._check_output(output, padded)

        out_h, out_w = content_h * self._scale, content_w * self._scale
        output = output[:, :, :out_h, :out_w]
        out_rgb = self._to_array(output)

        if alpha is not None:
            out_alpha = cv2.resize(alpha, (out_w, out_h), interpolation=cv2.INTER_CUBIC)
            pixels = np.dstack([out_rgb, out_alpha])
        elif image.pixel_format == 'L':
            pixels = cv2.cvtColor(out_rgb, cv2.COLOR_RGB2GRAY)
        else:
            pixels = out_rgb

        return Bitmap(pixels, image.pixel_format)

    @staticmethod
    def _split_channels(image: Bitmap) -> Tuple[np.ndarray, Optional[np.ndarray]]:
        """Return (rgb, alpha) copies; alpha is None for opaque formats."""
        pixels = image.pixels
        if image.pixel_format == 'L':
            return np.repeat(pixels[:, :, None], 3, axis=2), None
        if image.pixel_format == 'RGBA':
            return np.array(pixels[:, :, :3]), np.array(pixels[:, :, 3])
        return np.array(pixels), None

    def _letterbox(self, rgb: np.ndarray) -> Tuple[np.ndarray, Tuple[int, int]]:
        """Fit the image inside the model input without cropping."""
        target_w, target_h = self.config.input_size
        height, width = rgb.shape[:2]

        ratio = min(target_w / width, target_h / height)
        new_w = min(target_w, max(1, round(width * ratio)))
        new_h = min(target_h, max(1, round(height * ratio)))

        interpolation = cv2.INTER_AREA if ratio < 1 else cv2.INTER_CUBIC
        resized = cv2.resize(rgb, (new_w, new_h), interpolation=interpolation)

        canvas = np.zeros((target_h, target_w, 3), dtype=np.uint8)
        canvas[:new_h, :new_w] = resized
        return canvas, (new_w, new_h)

    def _to_tensor(self, rgb: np.ndarray) -> torch.Tensor:
        chw = np.array(rgb.transpose(2, 0, 1), dtype=np.float32) / 255.0
        tensor = torch.from_numpy(chw).unsqueeze(0).to(self.device)
        return tensor.half() if self._half else tensor

    def _pad(self, tensor: torch.Tensor) -> torch.Tensor:
        multiple = self.config.pad_multiple
        height, width = tensor.shape[2:]
        pad_h = (multiple - height % multiple) % multiple
        pad_w = (multiple - width % multiple) % multiple
        if pad_h == 0 and pad_w == 0:
            return tensor

        # reflect needs the pad to be smaller than the edge it mirrors
        mode = 'reflect' if pad_h < height and pad_w < width else 'replicate'
        return F.pad(tensor, (0, pad_w, 0, pad_h), mode=mode)

    def _check_output(self, output: Any, model_input: torch.Tensor) -> torch.Tensor:
        if isinstance(output, (tuple, list)):
            tensors = [item for item in output if isinstance(item, torch.Tensor)]
            output = tensors[0] if tensors else None
        if not isinstance(output, torch.Tensor):
            raise ProcessingError("The model returned no image")

        _, _, height, width = model_input.shape
        expected = (1, 3, height * self._scale, width * self._scale)
        if tuple(output.shape) != expected:
            raise ProcessingError(
                f"The model returned an image of shape {tuple(output.shape)}, expected {expected}"
            )
        return output

    @staticmethod
    def _to_array(output: torch.Tensor) -> np.ndarray:
        array = output.squeeze(0).float().clamp(0.0, 1.0).cpu().numpy()
        return (array.transpose(1, 2, 0) * 255.0).round().astype(np.uint8)

    def _cleanup_memory(self):
        """Clean up GPU/MPS memory."""
        gc.collect()

        if self.device is None:
            return
        if self.device.type == 'cuda':
            torch.cuda.empty_cache()
        elif self.device.type == 'mps':
            torch.mps.empty_cache()

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    @staticmethod
    def _empty_stats() -> Dict[str, Any]:
        return {
            'images_processed': 0,
            'total_time': 0.0,
            'total_pixels_in': 0,
            'total_pixels_out': 0
        }

    def _record(self, image: Bitmap, result: Bitmap, processing_time: float):
        with self._stats_lock:
            self.stats['images_processed'] += 1
            self.stats['total_time'] += processing_time
            self.stats['total_pixels_in'] += image.width * image.height
            self.stats['total_pixels_out'] += result.width * result.height

    def get_stats(self) -> Dict[str, Any]:
        """Get processing statistics."""
        with self._stats_lock:
            stats = dict(self.stats)

        processed = stats['images_processed']
        if processed > 0:
            avg_time = stats['total_time'] / processed
            avg_pixels_in = stats['total_pixels_in'] / processed
            avg_pixels_out = stats['total_pixels_out'] / processed
            throughput = processed / max(stats['total_time'], 0.001)
        else:
            avg_time = 0
            avg_pixels_in = 0
            avg_pixels_out = 0
            throughput = 0

        return {
            **stats,
            'avg_time_per_image': avg_time,
            'avg_input_pixels': avg_pixels_in,
            'avg_output_pixels': avg_pixels_out,
            'throughput_ips': throughput,
            'device': str(self.device),
            'model': self.config.model_path.name
        }

    def reset_stats(self):
        """Reset processing statistics."""
        with self._stats_lock:
            self.stats = self._empty_stats()
        logger.info("📊 Statistics reset")


def create_engine(model_path: Union[str, Path] = DEFAULT_MODEL_PATH, device: str = 'auto', **kwargs) -> InferenceEngine:
    """Create and initialize an engine with the given config."""
    engine = InferenceEngine(UpscalerConfig(model_path=model_path, device=device, **kwargs))
    engine.initialize()
    return engine


# Process-wide engine (lazy loaded)
_default_engine = None
_default_engine_lock = threading.Lock()


def get_engine() -> InferenceEngine:
    """Get the shared engine, loading the packaged model on first use."""
    global _default_engine

    with _default_engine_lock:
        if _default_engine is None:
            _default_engine = InferenceEngine()
            _default_engine.initialize()

    return _default_engine
